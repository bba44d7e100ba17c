from __future__ import annotations

import logging
import logging.config
from copy import copy, deepcopy
from typing import Any
from urllib.parse import unquote

from uvicorn.config import LOGGING_CONFIG
from uvicorn.logging import AccessFormatter as UvicornAccessFormatter

LOGGER_NAME = "ivs"

_LEVEL_ALIASES = {
    "log": logging.INFO,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def get_logger(name: str | None = None) -> logging.Logger:
    if not name:
        return logging.getLogger(LOGGER_NAME)
    return logging.getLogger(f"{LOGGER_NAME}.{name}")


def component_log(message: str, level: str = "info", *, logger: logging.Logger | None = None) -> None:
    """Log ``message`` at a console-style level name (``log``, ``warn``, ``error``...)."""
    numeric = _LEVEL_ALIASES.get((level or "").lower(), logging.INFO)
    (logger or get_logger()).log(numeric, message)


def _decode_path(value: str) -> str:
    try:
        return unquote(value, encoding="utf-8", errors="replace")
    except Exception:
        return value


class Utf8AccessFormatter(UvicornAccessFormatter):
    """Uvicorn access log formatter that prints decoded UTF-8 paths."""

    def formatMessage(self, record):  # type: ignore[override]
        try:
            client_addr, method, full_path, http_version, status_code = record.args
        except Exception:
            return super().formatMessage(record)
        decoded_path = _decode_path(full_path) if isinstance(full_path, str) else full_path
        new_record = copy(record)
        new_record.args = (client_addr, method, decoded_path, http_version, status_code)
        return super().formatMessage(new_record)


def build_uvicorn_log_config(debug: bool = False) -> dict[str, Any]:
    """Return a uvicorn logging config with UTF-8 access paths and the ``ivs`` logger."""
    config = deepcopy(LOGGING_CONFIG)
    formatter = config.get("formatters", {}).get("access")
    if isinstance(formatter, dict):
        formatter["()"] = "ivs.logging_utils.Utf8AccessFormatter"
    loggers = config.setdefault("loggers", {})
    loggers[LOGGER_NAME] = {
        "handlers": ["default"],
        "level": "DEBUG" if debug else "INFO",
        "propagate": True,
    }
    return config


def configure_logging(debug: bool = False) -> None:
    logging.config.dictConfig(build_uvicorn_log_config(debug))
