"""Cooperative cancellation for long-running engine invocations."""

from __future__ import annotations

import threading
from collections.abc import Callable

from .logger import get_logger

_logger = get_logger("cancellation")


class CancellationToken:
    """A one-way cancellation flag with observer callbacks.

    ``cancel()`` is idempotent. Observers registered before cancellation run
    once, on the thread that calls ``cancel()``; observers registered after it
    run immediately. Observers must return quickly.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: dict[int, Callable[[], None]] = {}
        self._next_id = 0

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()
        for callback in callbacks:
            try:
                callback()
            except Exception:
                _logger.exception("cancellation callback failed")

    def register(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run ``callback`` on cancellation. Returns a function that unregisters it."""
        with self._lock:
            if not self._event.is_set():
                reg_id = self._next_id
                self._next_id += 1
                self._callbacks[reg_id] = callback

                def _unregister() -> None:
                    with self._lock:
                        self._callbacks.pop(reg_id, None)

                return _unregister
        callback()
        return lambda: None

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)
