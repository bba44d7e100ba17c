from __future__ import annotations

import functools
import threading
from typing import Any, Callable


class Debounced:
    """Callable wrapper that postpones ``func`` until calls stop for ``wait`` seconds."""

    def __init__(self, func: Callable[..., Any], wait: float) -> None:
        self.func = func
        self.wait = max(0.0, float(wait))
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._pending: tuple[tuple[Any, ...], dict[str, Any]] | None = None
        functools.update_wrapper(self, func)

    def __call__(self, *args: Any, **kwargs: Any) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._pending = (args, kwargs)
            self._timer = threading.Timer(self.wait, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _fire(self) -> None:
        with self._lock:
            pending = self._pending
            self._pending = None
            self._timer = None
        if pending is not None:
            args, kwargs = pending
            self.func(*args, **kwargs)

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None
            self._pending = None

    def flush(self) -> None:
        """Run a pending call immediately, if any."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None
        self._fire()

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._pending is not None


def debounce(wait: float) -> Callable[[Callable[..., Any]], Debounced]:
    def decorator(func: Callable[..., Any]) -> Debounced:
        return Debounced(func, wait)

    return decorator


__all__ = ["Debounced", "debounce"]
