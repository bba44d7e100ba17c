from .components import (
    ComponentLoadError,
    ComponentLoader,
    ComponentResult,
    PlaceholderNotFoundError,
    load_page_components,
)
from .config import ComponentSpec, ConfigError, SiteConfig, load_config
from .events import EventBus
from .fetch import FetchError, HttpFetcher, LocalFetcher
from .language import LanguageChange, LanguageSystem, TranslationRegistry, TranslationReport
from .page import RenderedPage, SitePage, render_page

__all__ = [
    "ComponentLoadError",
    "ComponentLoader",
    "ComponentResult",
    "ComponentSpec",
    "ConfigError",
    "EventBus",
    "FetchError",
    "HttpFetcher",
    "LanguageChange",
    "LanguageSystem",
    "LocalFetcher",
    "PlaceholderNotFoundError",
    "RenderedPage",
    "SiteConfig",
    "SitePage",
    "TranslationRegistry",
    "TranslationReport",
    "load_config",
    "load_page_components",
    "render_page",
]
