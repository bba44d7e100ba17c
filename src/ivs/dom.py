from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator

from bs4 import BeautifulSoup, NavigableString, Tag

LANG_KEY_ATTR = "data-lang-key"
LANG_TARGET_ATTR = "data-lang-target"
FALLBACK_ATTR = "data-lang-fallback"
LANG_BUTTON_SELECTOR = "button[data-lang]"
ACTIVE_LANGUAGE_CLASS = "active-language"

TEXT_TARGETS = {"textContent", "innerText"}
HTML_TARGET = "innerHTML"


@dataclass(slots=True)
class TranslationBinding:
    element: Tag
    key: str
    target: str = "textContent"


def parse_html(markup: str) -> BeautifulSoup:
    return BeautifulSoup(markup, "html.parser")


def _tagged_elements(root: Tag) -> Iterator[Tag]:
    if not isinstance(root, BeautifulSoup) and root.has_attr(LANG_KEY_ATTR):
        yield root
    yield from root.select(f"[{LANG_KEY_ATTR}]")


def find_bindings(root: Tag) -> list[TranslationBinding]:
    bindings: list[TranslationBinding] = []
    for element in _tagged_elements(root):
        key = (element.get(LANG_KEY_ATTR) or "").strip()
        if not key:
            continue
        target = (element.get(LANG_TARGET_ATTR) or "").strip() or "textContent"
        bindings.append(TranslationBinding(element=element, key=key, target=target))
    return bindings


def replace_children(element: Tag, markup: str) -> None:
    element.clear()
    fragment = parse_html(markup)
    for node in list(fragment.contents):
        element.append(node.extract())


def write_translation(binding: TranslationBinding, value: str) -> None:
    element = binding.element
    if binding.target in TEXT_TARGETS:
        element.clear()
        element.append(NavigableString(value))
    elif binding.target == HTML_TARGET:
        replace_children(element, value)
    else:
        element[binding.target] = value


def mark_fallback(element: Tag, is_fallback: bool) -> None:
    if is_fallback:
        element[FALLBACK_ATTR] = "true"
    elif element.has_attr(FALLBACK_ATTR):
        del element[FALLBACK_ATTR]


def select_all(roots: Iterable[Tag], selector: str) -> Iterator[Tag]:
    seen: set[int] = set()
    for root in roots:
        for element in root.select(selector):
            if id(element) in seen:
                continue
            seen.add(id(element))
            yield element


def set_document_language(roots: Iterable[Tag], code: str) -> None:
    for root in roots:
        if isinstance(root, BeautifulSoup):
            html = root.find("html")
            if isinstance(html, Tag):
                html["lang"] = code


def toggle_class(element: Tag, name: str, enabled: bool) -> None:
    classes = element.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    classes = [cls for cls in classes if cls != name]
    if enabled:
        classes.append(name)
    if classes:
        element["class"] = classes
    elif element.has_attr("class"):
        del element["class"]


def update_language_buttons(code: str, roots: Iterable[Tag]) -> None:
    """Mark the toggle for ``code`` as pressed and active."""
    roots = list(roots)
    for button in select_all(roots, LANG_BUTTON_SELECTOR):
        is_active = button.get("data-lang") == code
        button["aria-pressed"] = "true" if is_active else "false"
        toggle_class(button, ACTIVE_LANGUAGE_CLASS, is_active)


__all__ = [
    "FALLBACK_ATTR",
    "LANG_KEY_ATTR",
    "LANG_TARGET_ATTR",
    "TranslationBinding",
    "find_bindings",
    "mark_fallback",
    "parse_html",
    "replace_children",
    "set_document_language",
    "toggle_class",
    "select_all",
    "update_language_buttons",
    "write_translation",
]
