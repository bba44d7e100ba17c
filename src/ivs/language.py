"""Localization engine.

Keeps one cache of translation tables per page context, resolves the active
language (stored preference, then browser language, then the default) and
rewrites every registered ``data-lang-key`` element. The default language's
table is always loaded first and is the fallback of last resort; failing to
load it is the only fatal condition and leaves the document untouched.
"""

from __future__ import annotations

import itertools
import json
import threading
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Callable, Mapping, Sequence

from bs4 import Tag

from .dom import (
    TranslationBinding,
    find_bindings,
    mark_fallback,
    set_document_language,
    update_language_buttons,
    write_translation,
)
from .events import LANGUAGE_CHANGE_REQUESTED, LANGUAGE_CHANGED, EventBus
from .fetch import FetchError, Fetcher
from .logging_utils import get_logger
from .preferences import MemoryPreferenceStore, PreferenceStore

if TYPE_CHECKING:
    from .config import SiteConfig

TranslationTable = Mapping[str, str]
LanguageObserver = Callable[[str, Sequence[Tag]], None]

_log = get_logger("lang")


@dataclass(slots=True)
class LanguageSystemState:
    default_language: str
    current_language: str
    cache: dict[str, TranslationTable] = field(default_factory=dict)
    initialized: bool = False


@dataclass(frozen=True, slots=True)
class LanguageChange:
    requested: str
    previous: str
    current: str

    @property
    def coerced(self) -> bool:
        return self.requested.strip().lower() != self.current


@dataclass(slots=True)
class TranslationReport:
    language: str
    applied: int = 0
    fallbacks: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class TranslationRegistry:
    """Translatable elements grouped by the component that mounted them."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._mounts: dict[str, tuple[Tag, list[TranslationBinding]]] = {}

    def mount(self, name: str, root: Tag) -> int:
        bindings = find_bindings(root)
        with self._lock:
            self._mounts[name] = (root, bindings)
        _log.debug("Mounted %s with %d translatable element(s)", name, len(bindings))
        return len(bindings)

    def unmount(self, name: str) -> bool:
        with self._lock:
            return self._mounts.pop(name, None) is not None

    def names(self) -> list[str]:
        with self._lock:
            return list(self._mounts)

    def roots(self) -> list[Tag]:
        with self._lock:
            return [root for root, _ in self._mounts.values()]

    def bindings(self) -> list[TranslationBinding]:
        seen: set[int] = set()
        ordered: list[TranslationBinding] = []
        with self._lock:
            mounts = list(self._mounts.values())
        for _, bindings in mounts:
            for binding in bindings:
                marker = id(binding.element)
                if marker in seen:
                    continue
                seen.add(marker)
                ordered.append(binding)
        return ordered


def parse_translation_table(raw: str, code: str) -> TranslationTable:
    payload = json.loads(raw)
    if not isinstance(payload, dict):
        raise ValueError(f"Translation file for {code!r} must be a JSON object")
    table: dict[str, str] = {}
    for key, value in payload.items():
        if isinstance(value, str):
            table[key] = value
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            table[key] = str(value)
        else:
            _log.warning("Ignoring non-string value for key %r in %s.json", key, code)
    return MappingProxyType(table)


class LanguageSystem:
    def __init__(
        self,
        fetcher: Fetcher,
        *,
        default_language: str = "vi",
        supported_languages: Sequence[str] = ("vi", "en"),
        language_path: str = "/lang/",
        storage_key: str = "userPreferredLanguage_v3",
        preferences: PreferenceStore | None = None,
        browser_language: str | None = None,
        registry: TranslationRegistry | None = None,
        bus: EventBus | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.fetcher = fetcher
        self.supported_languages = tuple(supported_languages)
        if default_language not in self.supported_languages:
            self.supported_languages = (default_language, *self.supported_languages)
        self.language_path = language_path if language_path.endswith("/") else language_path + "/"
        self.storage_key = storage_key
        self.preferences: PreferenceStore = preferences or MemoryPreferenceStore()
        self.browser_language = browser_language
        self.registry = registry or TranslationRegistry()
        self.bus = bus or EventBus()
        self._clock = clock
        self._state = LanguageSystemState(
            default_language=default_language,
            current_language=default_language,
        )
        self._state_lock = threading.Lock()
        self._render_lock = threading.RLock()
        self._fetch_locks: dict[str, threading.Lock] = {}
        self._tokens = itertools.count(1)
        self._latest_token = 0
        self._observers: list[LanguageObserver] = [update_language_buttons]
        self.last_report: TranslationReport | None = None
        self._unsubscribe = self.bus.subscribe(LANGUAGE_CHANGE_REQUESTED, self._on_change_requested)

    @classmethod
    def from_config(cls, config: SiteConfig, fetcher: Fetcher, **kwargs) -> LanguageSystem:
        return cls(
            fetcher,
            default_language=config.default_language,
            supported_languages=config.supported_languages,
            language_path=config.language_path,
            storage_key=config.storage_key,
            **kwargs,
        )

    @property
    def default_language(self) -> str:
        return self._state.default_language

    @property
    def current_language(self) -> str:
        with self._state_lock:
            return self._state.current_language

    @property
    def initialized(self) -> bool:
        with self._state_lock:
            return self._state.initialized

    def snapshot(self) -> LanguageSystemState:
        with self._state_lock:
            return LanguageSystemState(
                default_language=self._state.default_language,
                current_language=self._state.current_language,
                cache=dict(self._state.cache),
                initialized=self._state.initialized,
            )

    def is_supported(self, code: object) -> bool:
        return isinstance(code, str) and code.strip().lower() in self.supported_languages

    def has_table(self, code: str) -> bool:
        with self._state_lock:
            return code in self._state.cache

    def table(self, code: str) -> TranslationTable | None:
        with self._state_lock:
            return self._state.cache.get(code)

    def add_observer(self, observer: LanguageObserver) -> Callable[[], None]:
        self._observers.append(observer)

        def _remove() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _remove

    def close(self) -> None:
        self._unsubscribe()

    # -- loading -----------------------------------------------------------

    def _fetch_lock(self, code: str) -> threading.Lock:
        with self._state_lock:
            lock = self._fetch_locks.get(code)
            if lock is None:
                lock = self._fetch_locks[code] = threading.Lock()
            return lock

    def fetch_translations(self, code: str) -> bool:
        """Ensure the table for ``code`` is cached. Returns False when it cannot be loaded."""
        if self.has_table(code):
            return True
        with self._fetch_lock(code):
            if self.has_table(code):
                return True
            url = f"{self.language_path}{code}.json"
            _log.debug("Fetching translations for: %s", code)
            try:
                raw = self.fetcher.fetch_text(url, params={"v": str(int(self._clock() * 1000))})
                table = parse_translation_table(raw, code)
            except (FetchError, ValueError) as exc:
                _log.error("Failed to fetch translations for %s: %s", code, exc)
                return False
            with self._state_lock:
                self._state.cache.setdefault(code, table)
        _log.info("Successfully loaded translations for %s.", code)
        return True

    # -- language selection ------------------------------------------------

    def _initial_language(self) -> str:
        stored = self.preferences.get(self.storage_key)
        if stored:
            return stored
        if self.browser_language:
            prefix = self.browser_language.split(",")[0].split(";")[0].split("-")[0].strip().lower()
            if prefix:
                return prefix
        return self.default_language

    def initialize(self) -> LanguageChange | None:
        with self._state_lock:
            if self._state.initialized:
                _log.info("Language system already initialized. Skipping re-initialization.")
                return None
            self._state.initialized = True

        initial = self._initial_language()
        if not self.fetch_translations(self.default_language):
            _log.critical(
                "Default language pack '%s' failed to load. Language system cannot function.",
                self.default_language,
            )
            return None
        change = self.set_language(initial)
        _log.info("Language system initialized. Current language: '%s'.", self.current_language)
        return change

    def set_language(self, code: str) -> LanguageChange | None:
        with self._state_lock:
            token = next(self._tokens)
            self._latest_token = token

        requested = code if isinstance(code, str) else str(code)
        lang = requested.strip().lower()
        _log.debug("Attempting to set language to: %s", requested)
        if lang not in self.supported_languages:
            _log.warning(
                "Unsupported language '%s', using default '%s'.",
                requested,
                self.default_language,
            )
            lang = self.default_language

        if not self.fetch_translations(lang) and lang != self.default_language:
            _log.warning(
                "Cannot set language to '%s', falling back to default '%s'.",
                lang,
                self.default_language,
            )
            lang = self.default_language
            self.fetch_translations(lang)

        if not self.has_table(lang):
            _log.critical(
                "Default language pack '%s' failed to load. Language system cannot function.",
                lang,
            )
            return None

        with self._render_lock:
            with self._state_lock:
                if token != self._latest_token:
                    _log.debug("Discarding stale switch to '%s'", lang)
                    return None
                previous = self._state.current_language
                self._state.current_language = lang
            change = LanguageChange(requested=requested, previous=previous, current=lang)
            try:
                self.preferences.set(self.storage_key, lang)
            except OSError as exc:
                _log.error("Could not persist language preference: %s", exc)
            self._render()
        self.bus.publish(LANGUAGE_CHANGED, change)
        return change

    def _on_change_requested(self, payload: object) -> None:
        if isinstance(payload, str) and payload:
            self.set_language(payload)
        else:
            _log.warning("Ignoring language change request with payload %r", payload)

    # -- rendering ---------------------------------------------------------

    def _render(self) -> TranslationReport | None:
        with self._render_lock:
            report = self.apply_translations()
            if report is None:
                return None
            self.last_report = report
            roots = self.registry.roots()
            for observer in list(self._observers):
                try:
                    observer(report.language, roots)
                except Exception:
                    _log.exception("Language observer %r failed", observer)
            return report

    def refresh(self) -> TranslationReport | None:
        """Re-render registered elements from cached tables without fetching."""
        if not self.initialized:
            return None
        return self._render()

    def translate(self, key: str, default: str | None = None) -> str | None:
        with self._state_lock:
            lang = self._state.current_language
            active = self._state.cache.get(lang)
            fallback = self._state.cache.get(self._state.default_language)
        if active is not None and key in active:
            return active[key]
        if fallback is not None and key in fallback:
            return fallback[key]
        return default

    def apply_translations(self) -> TranslationReport | None:
        with self._render_lock:
            with self._state_lock:
                lang = self._state.current_language
                default_lang = self._state.default_language
                active = self._state.cache.get(lang)
                fallback_table = self._state.cache.get(default_lang) if lang != default_lang else None

            if active is None and fallback_table is None:
                _log.error(
                    "No translations available for '%s' or default. DOM update skipped.", lang
                )
                return None

            _log.debug("Applying translations for '%s'...", lang)
            report = TranslationReport(language=lang)
            for binding in self.registry.bindings():
                key = binding.key
                try:
                    value = active.get(key) if active is not None else None
                    is_fallback = False
                    if value is None and fallback_table is not None:
                        value = fallback_table.get(key)
                        is_fallback = value is not None
                    if value is None:
                        report.missing.append(key)
                        _log.warning("Key '%s' not found for language '%s'.", key, lang)
                        continue
                    write_translation(binding, value)
                    mark_fallback(binding.element, is_fallback)
                except Exception:
                    report.failed.append(key)
                    _log.exception("Failed to translate element for key '%s'", key)
                    continue
                if is_fallback:
                    report.fallbacks.append(key)
                report.applied += 1
            set_document_language(self.registry.roots(), lang)
            return report


__all__ = [
    "LanguageChange",
    "LanguageObserver",
    "LanguageSystem",
    "LanguageSystemState",
    "TranslationRegistry",
    "TranslationReport",
    "TranslationTable",
    "parse_translation_table",
]
