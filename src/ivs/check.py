from __future__ import annotations

import json
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from rich.console import Console
from rich.table import Table
from watchdog.events import FileSystemEventHandler
from watchdog.observers.polling import PollingObserver

from .config import SiteConfig
from .dom import find_bindings, parse_html
from .fetch import FetchError, LocalFetcher
from .language import TranslationTable, parse_translation_table
from .logging_utils import get_logger
from .utils import debounce

HTML_SUFFIXES = {".html", ".htm"}
MISSING_PREFIX = "missing-"

_log = get_logger("check")


@dataclass(slots=True)
class TranslationCheck:
    default_language: str
    key_counts: dict[str, int] = field(default_factory=dict)
    missing: dict[str, list[str]] = field(default_factory=dict)
    unreadable: dict[str, str] = field(default_factory=dict)
    undefined: dict[str, list[str]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not (self.unreadable or self.undefined or any(self.missing.values()))


def load_tables(config: SiteConfig) -> tuple[dict[str, TranslationTable], dict[str, str]]:
    fetcher = LocalFetcher(config.root)
    tables: dict[str, TranslationTable] = {}
    errors: dict[str, str] = {}
    for code in config.supported_languages:
        try:
            raw = fetcher.fetch_text(config.translation_url(code))
            tables[code] = parse_translation_table(raw, code)
        except (FetchError, ValueError) as exc:
            errors[code] = str(exc)
    return tables, errors


def collect_used_keys(root: Path, language_dir: Path | None = None) -> dict[str, list[str]]:
    """Map every ``data-lang-key`` found in HTML files under ``root`` to the files using it."""
    used: dict[str, list[str]] = {}
    for path in sorted(root.rglob("*")):
        if path.suffix.lower() not in HTML_SUFFIXES or not path.is_file():
            continue
        if language_dir is not None and language_dir in path.parents:
            continue
        try:
            markup = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            _log.warning("Skipping %s: %s", path, exc)
            continue
        rel = path.relative_to(root).as_posix()
        for binding in find_bindings(parse_html(markup)):
            files = used.setdefault(binding.key, [])
            if rel not in files:
                files.append(rel)
    return used


def check_translations(config: SiteConfig) -> TranslationCheck:
    tables, errors = load_tables(config)
    default = config.default_language
    result = TranslationCheck(default_language=default, unreadable=errors)
    for code, table in tables.items():
        result.key_counts[code] = len(table)
    reference = tables.get(default)
    if reference is not None:
        for code, table in tables.items():
            if code == default:
                continue
            result.missing[code] = [key for key in reference if not table.get(key)]
    language_dir = config.root / config.language_path.strip("/")
    known: set[str] = set()
    for table in tables.values():
        known.update(table)
    for key, files in collect_used_keys(config.root, language_dir).items():
        if key not in known:
            result.undefined[key] = files
    return result


def write_missing_files(config: SiteConfig, result: TranslationCheck) -> list[Path]:
    """Write ``missing-<code>.json`` next to the tables, seeded with the default strings."""
    tables, _ = load_tables(config)
    reference = tables.get(config.default_language)
    if reference is None:
        return []
    language_dir = config.root / config.language_path.strip("/")
    written: list[Path] = []
    for code, keys in result.missing.items():
        if not keys:
            continue
        payload = {key: reference[key] for key in keys}
        path = language_dir / f"{MISSING_PREFIX}{code}.json"
        path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        written.append(path)
    return written


def render_check(result: TranslationCheck, console: Console) -> None:
    summary = Table(title="Translation tables")
    summary.add_column("Language")
    summary.add_column("Keys", justify="right")
    summary.add_column("Missing", justify="right")
    for code, count in result.key_counts.items():
        missing = "-" if code == result.default_language else str(len(result.missing.get(code, [])))
        label = f"{code} (default)" if code == result.default_language else code
        summary.add_row(label, str(count), missing)
    for code, error in result.unreadable.items():
        summary.add_row(code, "[red]unreadable[/red]", error)
    console.print(summary)

    for code, keys in result.missing.items():
        if not keys:
            continue
        console.print(f"[yellow]Missing keys in {code}.json: {len(keys)}[/yellow]")
        for key in keys:
            console.print(f"  {key}")
    if result.undefined:
        table = Table(title="Keys used in pages but defined nowhere")
        table.add_column("Key")
        table.add_column("Files")
        for key, files in sorted(result.undefined.items()):
            table.add_row(key, ", ".join(files))
        console.print(table)
    if result.ok:
        console.print("[green]All translation keys are present.[/green]")


class _TranslationChangeHandler(FileSystemEventHandler):
    def __init__(self, callback: Callable[[], None]) -> None:
        self.callback = callback

    def on_any_event(self, event) -> None:  # type: ignore[override]
        if event.is_directory:
            return
        name = Path(event.src_path).name
        if name.startswith(MISSING_PREFIX):
            return
        if Path(event.src_path).suffix.lower() in HTML_SUFFIXES | {".json"}:
            self.callback()


def watch_translations(
    config: SiteConfig,
    on_change: Callable[[], None],
    *,
    wait: float = 0.5,
    stop: threading.Event | None = None,
) -> None:
    """Call ``on_change`` (debounced) whenever a page or table changes, until ``stop`` is set."""
    stop = stop or threading.Event()
    debounced = debounce(wait)(on_change)
    observer = PollingObserver()
    observer.schedule(_TranslationChangeHandler(debounced), str(config.root), recursive=True)
    observer.start()
    try:
        while not stop.is_set():
            time.sleep(0.2)
    finally:
        debounced.cancel()
        observer.stop()
        observer.join()


__all__ = [
    "TranslationCheck",
    "check_translations",
    "collect_used_keys",
    "load_tables",
    "render_check",
    "watch_translations",
    "write_missing_files",
]
