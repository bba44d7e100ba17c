from __future__ import annotations

from fastapi import Body, Cookie, FastAPI, Header, HTTPException, Query
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse, Response

from .config import SiteConfig
from .fetch import FetchError, LocalFetcher
from .language import LanguageSystem
from .logging_utils import get_logger
from .page import SitePage
from .preferences import MemoryPreferenceStore

COOKIE_MAX_AGE = 365 * 24 * 60 * 60
PAGE_SUFFIXES = (".html", ".htm")

_log = get_logger("web")


def _set_language_cookie(response: Response, config: SiteConfig, code: str) -> None:
    response.set_cookie(
        config.storage_key,
        code,
        max_age=COOKIE_MAX_AGE,
        samesite="lax",
    )


def create_app(config: SiteConfig) -> FastAPI:
    root = config.root.expanduser().resolve()
    if not root.exists():
        raise FileNotFoundError(f"Site root not found: {root}")

    app = FastAPI(title="IVS site")
    app.state.config = config
    app.state.root = root
    fetcher = LocalFetcher(root)
    app.state.fetcher = fetcher
    fragment_urls = {spec.url for spec in config.components}

    def _render(
        page_url: str,
        request_path: str,
        lang: str | None,
        preferred: str | None,
        accept_language: str | None,
    ) -> HTMLResponse:
        try:
            markup = fetcher.fetch_text(page_url)
        except FetchError as exc:
            raise HTTPException(status_code=404, detail="Page not found") from exc
        preferences = MemoryPreferenceStore(
            {config.storage_key: preferred} if preferred else None
        )
        page = SitePage(
            config,
            fetcher,
            markup,
            path=request_path,
            preferences=preferences,
            browser_language=accept_language,
        )
        rendered = page.build(lang)
        response = HTMLResponse(rendered.html)
        response.headers["Content-Language"] = rendered.language
        stored = preferences.get(config.storage_key)
        if stored:
            _set_language_cookie(response, config, stored)
        return response

    @app.get("/", response_class=HTMLResponse)
    def index(
        lang: str | None = Query(None),
        preferred: str | None = Cookie(None, alias=config.storage_key),
        accept_language: str | None = Header(None),
    ) -> HTMLResponse:
        return _render("/index.html", "/", lang, preferred, accept_language)

    @app.get("/api/language")
    def api_language(
        preferred: str | None = Cookie(None, alias=config.storage_key),
    ) -> JSONResponse:
        current = preferred if preferred in config.supported_languages else config.default_language
        return JSONResponse(
            {
                "default": config.default_language,
                "supported": list(config.supported_languages),
                "current": current,
            }
        )

    @app.post("/api/language")
    def api_set_language(payload: dict[str, object] = Body(...)) -> JSONResponse:
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Invalid payload.")
        requested = payload.get("language")
        if not isinstance(requested, str) or not requested.strip():
            raise HTTPException(status_code=400, detail="language is required.")
        system = LanguageSystem.from_config(config, fetcher, preferences=MemoryPreferenceStore())
        change = system.set_language(requested)
        if change is None:
            raise HTTPException(status_code=503, detail="Translations are unavailable.")
        response = JSONResponse(
            {
                "language": change.current,
                "requested": change.requested,
                "coerced": change.coerced,
            }
        )
        _set_language_cookie(response, config, change.current)
        return response

    @app.get("/{file_path:path}")
    def site_file(
        file_path: str,
        lang: str | None = Query(None),
        preferred: str | None = Cookie(None, alias=config.storage_key),
        accept_language: str | None = Header(None),
    ) -> Response:
        request_path = "/" + file_path.lstrip("/")
        url = request_path + "index.html" if request_path.endswith("/") else request_path
        if url.lower().endswith(PAGE_SUFFIXES) and url not in fragment_urls:
            return _render(url, request_path, lang, preferred, accept_language)
        try:
            path = fetcher.resolve(url)
        except FetchError as exc:
            raise HTTPException(status_code=404, detail="Not found") from exc
        if not path.is_file():
            raise HTTPException(status_code=404, detail="Not found")
        return FileResponse(path)

    _log.debug("Serving site from %s", root)
    return app


__all__ = ["create_app"]
