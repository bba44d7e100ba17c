from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Mapping

from bs4 import BeautifulSoup

from .components import ComponentLoader, ComponentResult, load_page_components
from .config import SiteConfig
from .controllers import HeaderController
from .dom import parse_html
from .events import LANGUAGE_CHANGE_REQUESTED, LANGUAGE_CHANGED, EventBus
from .fetch import Fetcher
from .language import LanguageChange, LanguageSystem, TranslationRegistry, TranslationReport
from .logging_utils import get_logger
from .preferences import PreferenceStore

PAGE_COMPONENT = "page"

_log = get_logger("page")


@dataclass(slots=True)
class RenderedPage:
    html: str
    language: str
    components: dict[str, ComponentResult] = field(default_factory=dict)
    report: TranslationReport | None = None
    change: LanguageChange | None = None


class SitePage:
    """One page render: the context object that owns the page's language state and fragments."""

    def __init__(
        self,
        config: SiteConfig,
        fetcher: Fetcher,
        markup: str,
        *,
        path: str = "/",
        preferences: PreferenceStore | None = None,
        browser_language: str | None = None,
        on_components_loaded: Callable[[Mapping[str, ComponentResult]], object] | None = None,
    ) -> None:
        self.config = config
        self.path = path
        self.document: BeautifulSoup = parse_html(markup)
        self.bus = EventBus()
        self.registry = TranslationRegistry()
        self.language = LanguageSystem.from_config(
            config,
            fetcher,
            preferences=preferences,
            browser_language=browser_language,
            registry=self.registry,
            bus=self.bus,
        )
        self.loader = ComponentLoader(self.document, fetcher, registry=self.registry)
        self.header = HeaderController(self.document, path)
        self.on_components_loaded = on_components_loaded
        self.last_change: LanguageChange | None = None
        self.bus.subscribe(LANGUAGE_CHANGED, self._record_change)

    def _record_change(self, change: LanguageChange) -> None:
        self.last_change = change

    def request_language(self, code: str) -> None:
        self.bus.publish(LANGUAGE_CHANGE_REQUESTED, code)

    def build(self, requested_language: str | None = None) -> RenderedPage:
        self.registry.mount(PAGE_COMPONENT, self.document)
        results = load_page_components(
            self.loader,
            self.config.components,
            on_header_loaded=self.language.refresh,
            on_complete=self.on_components_loaded,
            bus=self.bus,
        )
        self.header.attach(self.language)
        self.language.initialize()
        if requested_language and requested_language != self.language.current_language:
            self.request_language(requested_language)
        report = self.language.last_report
        if report is None:
            _log.error("Page %s rendered without translations.", self.path)
        return RenderedPage(
            html=str(self.document),
            language=self.language.current_language,
            components=results,
            report=report,
            change=self.last_change,
        )


def render_page(
    config: SiteConfig,
    fetcher: Fetcher,
    page_url: str,
    *,
    preferences: PreferenceStore | None = None,
    browser_language: str | None = None,
    requested_language: str | None = None,
) -> RenderedPage:
    markup = fetcher.fetch_text(page_url)
    page = SitePage(
        config,
        fetcher,
        markup,
        path=page_url,
        preferences=preferences,
        browser_language=browser_language,
    )
    return page.build(requested_language)


__all__ = ["PAGE_COMPONENT", "RenderedPage", "SitePage", "render_page"]
