from __future__ import annotations

import threading
from collections import Counter
from pathlib import Path
from typing import Mapping, Protocol
from urllib.parse import unquote, urljoin, urlparse

import requests


class FetchError(RuntimeError):
    """Raised when a fragment or translation file cannot be retrieved."""

    def __init__(self, url: str, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status = status


class Fetcher(Protocol):
    def fetch_text(self, url: str, params: Mapping[str, str] | None = None) -> str:
        ...


def _url_path(url: str) -> str:
    return urlparse(url).path or "/"


class _CountingMixin:
    def __init__(self) -> None:
        self._counts: Counter[str] = Counter()
        self._count_lock = threading.Lock()

    def _record(self, url: str) -> None:
        with self._count_lock:
            self._counts[_url_path(url)] += 1

    def request_count(self, path: str | None = None) -> int:
        """Number of requests issued, for one URL path or in total."""
        with self._count_lock:
            if path is None:
                return sum(self._counts.values())
            return self._counts.get(_url_path(path), 0)


class HttpFetcher(_CountingMixin):
    def __init__(self, base_url: str, *, timeout: float = 10.0) -> None:
        super().__init__()
        self.base_url = base_url.rstrip("/") + "/"
        self.timeout = timeout
        self._session = requests.Session()

    def _absolute(self, url: str) -> str:
        return urljoin(self.base_url, url.lstrip("/"))

    def fetch_text(self, url: str, params: Mapping[str, str] | None = None) -> str:
        target = self._absolute(url)
        self._record(url)
        try:
            resp = self._session.get(target, params=dict(params or {}), timeout=self.timeout)
        except requests.RequestException as exc:
            raise FetchError(url, f"Failed to contact {target}: {exc}") from exc
        if resp.status_code != 200:
            raise FetchError(url, f"HTTP error {resp.status_code}", status=resp.status_code)
        if "charset" not in resp.headers.get("content-type", "").lower():
            resp.encoding = "utf-8"
        return resp.text

    def close(self) -> None:
        self._session.close()


class LocalFetcher(_CountingMixin):
    """Serve URL paths from a site directory on disk."""

    def __init__(self, root: Path) -> None:
        super().__init__()
        self.root = root.expanduser().resolve()

    def resolve(self, url: str) -> Path:
        rel = unquote(_url_path(url)).lstrip("/")
        candidate = (self.root / rel).resolve()
        try:
            candidate.relative_to(self.root)
        except ValueError as exc:
            raise FetchError(url, "HTTP error 404", status=404) from exc
        return candidate

    def fetch_text(self, url: str, params: Mapping[str, str] | None = None) -> str:
        self._record(url)
        path = self.resolve(url)
        if not path.is_file():
            raise FetchError(url, "HTTP error 404", status=404)
        try:
            return path.read_text(encoding="utf-8")
        except OSError as exc:
            raise FetchError(url, f"Failed to read {path}: {exc}") from exc


__all__ = ["FetchError", "Fetcher", "HttpFetcher", "LocalFetcher"]
