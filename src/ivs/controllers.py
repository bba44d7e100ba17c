from __future__ import annotations

from typing import Sequence

from bs4 import BeautifulSoup, NavigableString, Tag

from .dom import select_all, toggle_class
from .language import LanguageSystem
from .logging_utils import get_logger

HEADER_SELECTOR = "#ivs-main-header"
NAV_LINK_SELECTOR = "a.nav-link, a.mobile-nav-link, a.mobile-nav-link-sub, a.bottom-nav-item"
LANGUAGE_DISPLAY_SELECTORS = ("#current-lang-desktop", "#current-lang-mobile")
SUBMENU_CONTENT_CLASS = "mobile-submenu-content"

_log = get_logger("header")


def _normalize_path(path: str) -> str:
    if not path:
        return "/"
    path = path.split("?", 1)[0].split("#", 1)[0]
    return path if path.startswith("/") else f"/{path}"


def link_matches(href: str | None, current_path: str) -> bool:
    if not href:
        return False
    href = _normalize_path(href)
    if href == current_path:
        return True
    return href != "/" and current_path.startswith(href)


class HeaderController:
    """Server-side counterpart of the header script: active links and language badges."""

    def __init__(self, document: BeautifulSoup, current_path: str) -> None:
        self.document = document
        self.current_path = _normalize_path(current_path)
        self.header: Tag | None = None

    def attach(self, language: LanguageSystem) -> bool:
        self.header = self.document.select_one(HEADER_SELECTOR)
        if self.header is None:
            _log.warning("Header element not found. UI logic will not run.")
            return False
        language.add_observer(self.on_language_changed)
        self.update_active_links()
        self.update_language_display(language.current_language)
        _log.debug("Header controller initialized.")
        return True

    def on_language_changed(self, code: str, roots: Sequence[Tag]) -> None:
        self.update_language_display(code)

    def update_language_display(self, code: str) -> None:
        for selector in LANGUAGE_DISPLAY_SELECTORS:
            for badge in select_all([self.document], selector):
                badge.clear()
                badge.append(NavigableString(code.upper()))

    def update_active_links(self) -> int:
        active = 0
        for link in select_all([self.document], NAV_LINK_SELECTOR):
            is_active = link_matches(link.get("href"), self.current_path)
            toggle_class(link, "active", is_active)
            if is_active:
                link["aria-current"] = "page"
                active += 1
                self._expand_parent_submenu(link)
            elif link.has_attr("aria-current"):
                del link["aria-current"]
        return active

    def _expand_parent_submenu(self, link: Tag) -> None:
        content = link.find_parent(class_=SUBMENU_CONTENT_CLASS)
        if content is None:
            return
        toggle = content.find_previous_sibling()
        if toggle is None or "nested-level" in (toggle.get("class") or []):
            return
        toggle_class(content, "hidden", False)
        toggle["aria-expanded"] = "true"


__all__ = ["HeaderController", "link_matches"]
