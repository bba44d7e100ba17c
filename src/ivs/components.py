from __future__ import annotations

import html
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Mapping, Sequence

from bs4 import BeautifulSoup

from .config import DEFAULT_COMPONENTS, ComponentSpec
from .dom import replace_children
from .events import COMPONENTS_LOADED, EventBus
from .fetch import FetchError, Fetcher
from .logging_utils import get_logger

if TYPE_CHECKING:
    from .language import TranslationRegistry

HEADER_COMPONENT = "Header"

_log = get_logger("loader")


class ComponentError(RuntimeError):
    """Base class for shared fragment loading failures."""


class PlaceholderNotFoundError(ComponentError):
    """Raised when the page has no element matching the component placeholder."""


class ComponentLoadError(ComponentError):
    """Raised when a fragment could not be fetched."""


@dataclass(slots=True)
class ComponentResult:
    name: str
    url: str
    status: str
    content: str = ""
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status in {"loaded", "duplicate"}


def error_markup(name: str) -> str:
    return (
        '<div style="text-align:center;color:red;padding:1rem;">'
        f"Error loading {html.escape(name)}.</div>"
    )


class ComponentLoader:
    """Inject shared HTML fragments into one parsed page, fetching each URL at most once."""

    def __init__(
        self,
        document: BeautifulSoup,
        fetcher: Fetcher,
        *,
        registry: TranslationRegistry | None = None,
    ) -> None:
        self.document = document
        self.fetcher = fetcher
        self.registry = registry
        self._loaded_urls: set[str] = set()
        self._urls_lock = threading.Lock()
        self._dom_lock = threading.Lock()

    @property
    def loaded_urls(self) -> frozenset[str]:
        with self._urls_lock:
            return frozenset(self._loaded_urls)

    def _claim(self, url: str) -> bool:
        with self._urls_lock:
            if url in self._loaded_urls:
                return False
            self._loaded_urls.add(url)
            return True

    def load_component(self, name: str, url: str, placeholder_selector: str) -> str:
        return self._load(name, url, placeholder_selector)[0]

    def load(self, spec: ComponentSpec) -> ComponentResult:
        try:
            content, fresh = self._load(spec.name, spec.url, spec.placeholder)
        except PlaceholderNotFoundError as exc:
            return ComponentResult(spec.name, spec.url, "skipped", error=str(exc))
        except ComponentError as exc:
            return ComponentResult(spec.name, spec.url, "failed", error=str(exc))
        if not fresh:
            return ComponentResult(spec.name, spec.url, "duplicate")
        return ComponentResult(spec.name, spec.url, "loaded", content=content)

    def _load(self, name: str, url: str, placeholder_selector: str) -> tuple[str, bool]:
        with self._dom_lock:
            placeholder = self.document.select_one(placeholder_selector)
        if placeholder is None:
            raise PlaceholderNotFoundError(
                f"Placeholder {placeholder_selector} not found, skipping {name}."
            )
        if not self._claim(url):
            _log.debug("%s already requested from %s", name, url)
            return "", False

        _log.debug("Loading %s...", name)
        try:
            content = self.fetcher.fetch_text(url)
        except FetchError as exc:
            _log.error("Failed to load %s: %s", name, exc)
            with self._dom_lock:
                replace_children(placeholder, error_markup(name))
            raise ComponentLoadError(f"Failed to load {name} from {url}: {exc}") from exc

        with self._dom_lock:
            replace_children(placeholder, content)
            if self.registry is not None:
                self.registry.mount(name, placeholder)
        _log.info("%s loaded successfully.", name)
        return content, True


def load_page_components(
    loader: ComponentLoader,
    components: Sequence[ComponentSpec] = DEFAULT_COMPONENTS,
    *,
    on_header_loaded: Callable[[], object] | None = None,
    on_complete: Callable[[Mapping[str, ComponentResult]], object] | None = None,
    bus: EventBus | None = None,
) -> dict[str, ComponentResult]:
    """Load every component concurrently and wait until all have settled."""
    _log.debug("Initialization sequence started.")
    results: dict[str, ComponentResult] = {}
    if not components:
        return results
    with ThreadPoolExecutor(max_workers=len(components), thread_name_prefix="ivs-component") as pool:
        futures = {pool.submit(loader.load, spec): spec for spec in components}
        for future in as_completed(futures):
            spec = futures[future]
            result = future.result()
            results[spec.name] = result
            if result.status == "skipped":
                _log.debug(result.error)
            if spec.name == HEADER_COMPONENT and result.status == "loaded" and on_header_loaded:
                try:
                    on_header_loaded()
                except Exception:
                    _log.exception("Header hook failed")

    ordered = {spec.name: results[spec.name] for spec in components}
    if on_complete is not None:
        try:
            on_complete(ordered)
        except Exception:
            _log.exception("Page components callback failed")
    else:
        _log.info("No page components callback registered.")
    if bus is not None:
        bus.publish(COMPONENTS_LOADED, ordered)
    _log.debug("Initialization sequence complete.")
    return ordered


__all__ = [
    "ComponentError",
    "ComponentLoadError",
    "ComponentLoader",
    "ComponentResult",
    "HEADER_COMPONENT",
    "PlaceholderNotFoundError",
    "error_markup",
    "load_page_components",
]
