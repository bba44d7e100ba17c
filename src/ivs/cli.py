from __future__ import annotations

import argparse
import socket
import sys
from dataclasses import replace
from importlib import metadata
from pathlib import Path

import tomllib
import uvicorn
from rich.console import Console

from .check import check_translations, render_check, watch_translations, write_missing_files
from .config import ConfigError, SiteConfig, load_config
from .fetch import FetchError, HttpFetcher, LocalFetcher
from .logging_utils import build_uvicorn_log_config, configure_logging
from .page import render_page
from .preferences import JsonPreferenceStore, MemoryPreferenceStore
from .web import create_app


def _read_local_version() -> str | None:
    try:
        pyproject_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
    except IndexError:
        return None
    try:
        with pyproject_path.open("rb") as fh:
            data = tomllib.load(fh)
    except (FileNotFoundError, tomllib.TOMLDecodeError):
        return None
    return data.get("project", {}).get("version")


try:
    __version__ = metadata.version("ivs-site")
except metadata.PackageNotFoundError:
    __version__ = _read_local_version() or "0.0.0+unknown"


def _add_version_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"ivs {__version__}",
    )


def _add_root_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "root",
        help="Site directory containing pages, components/ and lang/.",
    )
    parser.add_argument(
        "--config",
        help="Path to a site.toml (default: <root>/site.toml).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose debug logging.",
    )


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="ivs",
        description="Localized page assembly for the IVS website.",
    )
    _add_version_flag(ap)
    ap.add_argument(
        "command",
        nargs="?",
        choices=["serve", "render", "check"],
        help="Run `ivs <command> --help` for details.",
    )
    return ap


def build_serve_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="ivs serve", description="Serve the site with server-side localization.")
    _add_version_flag(ap)
    _add_root_argument(ap)
    ap.add_argument(
        "--host",
        default="0.0.0.0",
        help="Host interface for the web server (default: 0.0.0.0).",
    )
    ap.add_argument(
        "--port",
        type=int,
        default=8080,
        help="Port for the web server (default: 8080).",
    )
    return ap


def build_render_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="ivs render", description="Render one localized page to HTML.")
    _add_version_flag(ap)
    _add_root_argument(ap)
    ap.add_argument(
        "page",
        help="Page URL path relative to the site root, e.g. /index.html.",
    )
    ap.add_argument(
        "--lang",
        help="Language to switch to after initialization.",
    )
    ap.add_argument(
        "--browser-language",
        help="Simulated browser language (Accept-Language value).",
    )
    ap.add_argument(
        "--preferences",
        help="JSON file persisting the chosen language between runs.",
    )
    ap.add_argument(
        "--base-url",
        help="Fetch pages, fragments and tables from this origin instead of the site root.",
    )
    ap.add_argument(
        "-o",
        "--output",
        help="Write the HTML here instead of stdout.",
    )
    return ap


def build_check_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="ivs check", description="Report missing translation keys.")
    _add_version_flag(ap)
    _add_root_argument(ap)
    ap.add_argument(
        "--write-missing",
        action="store_true",
        help="Write lang/missing-<code>.json with default strings as placeholders.",
    )
    ap.add_argument(
        "--watch",
        action="store_true",
        help="Re-run the check whenever pages or tables change.",
    )
    return ap


def _load(args: argparse.Namespace) -> SiteConfig:
    root = Path(args.root).expanduser().resolve()
    config_path = Path(args.config).expanduser() if args.config else None
    config = load_config(root, config_path)
    if args.debug:
        config = replace(config, debug=True)
    configure_logging(config.debug)
    return config


def _run_serve(args: argparse.Namespace) -> int:
    config = _load(args)
    app = create_app(config)
    public_ip = _resolve_local_ip(args.host)
    print(f"Serving {config.root}")
    print(f"Web URL: http://{public_ip}:{args.port}/")
    print("Press Ctrl+C to stop.\n")
    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        log_config=build_uvicorn_log_config(config.debug),
    )
    return 0


def _run_render(args: argparse.Namespace) -> int:
    config = _load(args)
    base_url = args.base_url or config.base_url
    fetcher = HttpFetcher(base_url) if base_url else LocalFetcher(config.root)
    preferences = (
        JsonPreferenceStore(Path(args.preferences))
        if args.preferences
        else MemoryPreferenceStore()
    )
    try:
        rendered = render_page(
            config,
            fetcher,
            args.page,
            preferences=preferences,
            browser_language=args.browser_language,
            requested_language=args.lang,
        )
    except FetchError as exc:
        raise SystemExit(f"Could not load {args.page}: {exc}") from exc
    finally:
        if isinstance(fetcher, HttpFetcher):
            fetcher.close()
    if args.output:
        Path(args.output).write_text(rendered.html, encoding="utf-8")
    else:
        sys.stdout.write(rendered.html)
    report = rendered.report
    console = Console(stderr=True)
    if report is None:
        console.print("[red]No translations were applied.[/red]")
        return 1
    console.print(
        f"Rendered {args.page} in {report.language}: {report.applied} applied, "
        f"{len(report.fallbacks)} fallback, {len(report.missing)} missing."
    )
    return 0


def _run_check(args: argparse.Namespace) -> int:
    config = _load(args)
    console = Console()

    def _run_once() -> bool:
        result = check_translations(config)
        render_check(result, console)
        if args.write_missing:
            for path in write_missing_files(config, result):
                console.print(f"Wrote {path}")
        return result.ok

    ok = _run_once()
    if not args.watch:
        return 0 if ok else 1
    console.print("Watching for changes. Press Ctrl+C to stop.")
    try:
        watch_translations(config, _run_once)
    except KeyboardInterrupt:
        console.print("\nStopping ivs check...")
    return 0


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    try:
        if argv and argv[0] == "serve":
            return _run_serve(build_serve_parser().parse_args(argv[1:]))
        if argv and argv[0] == "render":
            return _run_render(build_render_parser().parse_args(argv[1:]))
        if argv and argv[0] == "check":
            return _run_check(build_check_parser().parse_args(argv[1:]))
    except ConfigError as exc:
        raise SystemExit(f"Invalid configuration: {exc}") from exc

    parser = build_parser()
    if not argv:
        parser.print_help()
        return 0
    parser.parse_args(argv)
    return 0


def _resolve_local_ip(host: str) -> str:
    if host not in {"", "0.0.0.0"}:
        return host
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 80))
            return sock.getsockname()[0]
    except OSError:
        return "127.0.0.1"


if __name__ == "__main__":
    raise SystemExit(main())
