from __future__ import annotations

import threading
from collections import defaultdict
from typing import Any, Callable

from .logging_utils import get_logger

LANGUAGE_CHANGE_REQUESTED = "language-change-requested"
LANGUAGE_CHANGED = "language-changed"
COMPONENTS_LOADED = "components-loaded"

Handler = Callable[[Any], None]

_log = get_logger("events")


class EventBus:
    """Small synchronous publish/subscribe hub shared by one page context."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        with self._lock:
            self._handlers[topic].append(handler)

        def _unsubscribe() -> None:
            with self._lock:
                handlers = self._handlers.get(topic)
                if handlers and handler in handlers:
                    handlers.remove(handler)

        return _unsubscribe

    def publish(self, topic: str, payload: Any = None) -> int:
        """Deliver ``payload`` to every subscriber; returns how many handlers ran."""
        with self._lock:
            handlers = list(self._handlers.get(topic, ()))
        delivered = 0
        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                _log.exception("Handler for %r failed", topic)
                continue
            delivered += 1
        return delivered

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._handlers.get(topic, ()))


__all__ = [
    "COMPONENTS_LOADED",
    "EventBus",
    "LANGUAGE_CHANGED",
    "LANGUAGE_CHANGE_REQUESTED",
]
