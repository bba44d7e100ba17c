from __future__ import annotations

import logging
import threading

import pytest

from ivs.components import (
    ComponentLoadError,
    ComponentLoader,
    PlaceholderNotFoundError,
    load_page_components,
)
from ivs.config import DEFAULT_COMPONENTS, ComponentSpec
from ivs.dom import parse_html
from ivs.events import COMPONENTS_LOADED, EventBus
from ivs.fetch import FetchError
from ivs.language import TranslationRegistry

HEADER = '<header id="ivs-main-header"><a data-lang-key="nav_home">Trang chủ</a></header>'
FOOTER = "<footer><p>&copy; IVS</p></footer>"
FABS = '<div class="fab-container"><button>+</button></div>'


class CountingFetcher:
    def __init__(self, files: dict[str, str]) -> None:
        self.files = files
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def fetch_text(self, url: str, params=None) -> str:
        with self._lock:
            self.calls.append(url)
        if url not in self.files:
            raise FetchError(url, "HTTP error 404", status=404)
        return self.files[url]


def _page(*placeholders: str) -> str:
    slots = "".join(f'<div id="{name}"></div>' for name in placeholders)
    return f"<html><body>{slots}</body></html>"


def _all_files() -> dict[str, str]:
    return {
        "/components/header.html": HEADER,
        "/components/footer.html": FOOTER,
        "/components/fab-container.html": FABS,
    }


def test_missing_placeholder_rejects_without_fetching() -> None:
    fetcher = CountingFetcher(_all_files())
    loader = ComponentLoader(parse_html(_page("header-placeholder")), fetcher)

    with pytest.raises(PlaceholderNotFoundError):
        loader.load_component("Footer", "/components/footer.html", "#footer-placeholder")

    assert fetcher.calls == []


def test_success_injects_verbatim_and_mounts() -> None:
    fetcher = CountingFetcher(_all_files())
    document = parse_html(_page("header-placeholder"))
    registry = TranslationRegistry()
    loader = ComponentLoader(document, fetcher, registry=registry)

    content = loader.load_component("Header", "/components/header.html", "#header-placeholder")

    assert content == HEADER
    placeholder = document.select_one("#header-placeholder")
    assert placeholder.select_one("#ivs-main-header") is not None
    assert registry.names() == ["Header"]
    assert [binding.key for binding in registry.bindings()] == ["nav_home"]


def test_same_url_is_fetched_once() -> None:
    fetcher = CountingFetcher(_all_files())
    document = parse_html(_page("first", "second"))
    loader = ComponentLoader(document, fetcher)

    first = loader.load_component("Footer", "/components/footer.html", "#first")
    second = loader.load_component("Footer again", "/components/footer.html", "#second")

    assert first == FOOTER
    assert second == ""
    assert fetcher.calls == ["/components/footer.html"]
    assert document.select_one("#second").contents == []


def test_fetch_failure_writes_inline_error() -> None:
    fetcher = CountingFetcher({})
    document = parse_html(_page("footer-placeholder"))
    loader = ComponentLoader(document, fetcher)

    with pytest.raises(ComponentLoadError):
        loader.load_component("Footer", "/components/footer.html", "#footer-placeholder")

    message = document.select_one("#footer-placeholder").get_text()
    assert message == "Error loading Footer."


def test_page_components_skip_absent_footer_and_still_complete() -> None:
    fetcher = CountingFetcher(_all_files())
    document = parse_html(_page("header-placeholder", "fab-container-placeholder"))
    loader = ComponentLoader(document, fetcher)
    completed = []
    header_hook = []

    results = load_page_components(
        loader,
        DEFAULT_COMPONENTS,
        on_header_loaded=lambda: header_hook.append(True),
        on_complete=completed.append,
    )

    assert "/components/footer.html" not in fetcher.calls
    assert sorted(fetcher.calls) == ["/components/fab-container.html", "/components/header.html"]
    assert results["Header"].status == "loaded"
    assert results["FABs"].status == "loaded"
    assert results["Footer"].status == "skipped"
    assert len(completed) == 1
    assert list(completed[0]) == ["Header", "Footer", "FABs"]
    assert header_hook == [True]


def test_page_components_settle_failures_and_publish() -> None:
    files = _all_files()
    del files["/components/fab-container.html"]
    fetcher = CountingFetcher(files)
    document = parse_html(_page("header-placeholder", "footer-placeholder", "fab-container-placeholder"))
    loader = ComponentLoader(document, fetcher)
    bus = EventBus()
    published = []
    bus.subscribe(COMPONENTS_LOADED, published.append)

    results = load_page_components(loader, DEFAULT_COMPONENTS, bus=bus)

    assert results["FABs"].status == "failed"
    assert not results["FABs"].ok
    assert results["Header"].ok and results["Footer"].ok
    assert published == [results]
    assert "Error loading FABs." in document.select_one("#fab-container-placeholder").get_text()


def test_page_components_without_callback_logs(caplog) -> None:
    fetcher = CountingFetcher(_all_files())
    loader = ComponentLoader(parse_html(_page("header-placeholder")), fetcher)

    with caplog.at_level(logging.INFO, logger="ivs"):
        load_page_components(loader, DEFAULT_COMPONENTS)

    assert "No page components callback registered." in caplog.text


def test_duplicate_urls_in_one_batch_fetch_once() -> None:
    fetcher = CountingFetcher(_all_files())
    document = parse_html(_page("a", "b"))
    loader = ComponentLoader(document, fetcher)
    specs = (
        ComponentSpec("Banner A", "/components/footer.html", "#a"),
        ComponentSpec("Banner B", "/components/footer.html", "#b"),
    )

    results = load_page_components(loader, specs, on_complete=lambda _: None)

    assert fetcher.calls == ["/components/footer.html"]
    assert sorted(result.status for result in results.values()) == ["duplicate", "loaded"]


def test_header_hook_errors_do_not_break_loading() -> None:
    fetcher = CountingFetcher(_all_files())
    loader = ComponentLoader(parse_html(_page("header-placeholder")), fetcher)
    completed = []

    def _broken() -> None:
        raise RuntimeError("hook")

    load_page_components(
        loader,
        DEFAULT_COMPONENTS,
        on_header_loaded=_broken,
        on_complete=completed.append,
    )

    assert len(completed) == 1
