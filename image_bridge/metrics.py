"""In-process counters and timings for the bridge.

Counters make native-handle leaks observable: once every invocation has
finished, ``image_list.created`` must equal ``image_list.destroyed``.

Usage:
    from image_bridge.metrics import metrics
    metrics.inc("runner.started")
    with metrics.timed("runner.native_run"):
        ...
    metrics.outstanding("image_list.created", "image_list.destroyed")
"""

from __future__ import annotations

import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from threading import RLock
from typing import Any


@dataclass
class _Timing:
    count: int = 0
    total: float = 0.0
    max: float = 0.0

    def add(self, elapsed: float) -> None:
        self.count += 1
        self.total += elapsed
        self.max = max(self.max, elapsed)


class _Metrics:
    def __init__(self) -> None:
        self._counters: dict[str, int] = defaultdict(int)
        self._timings: dict[str, _Timing] = defaultdict(_Timing)
        self._lock = RLock()

    def inc(self, key: str, amount: int = 1) -> None:
        with self._lock:
            self._counters[key] += int(amount)

    def count(self, key: str) -> int:
        with self._lock:
            return self._counters.get(key, 0)

    def outstanding(self, opened: str, closed: str) -> int:
        """``opened`` minus ``closed``; non-zero after all work ends means a leak."""
        with self._lock:
            return self._counters.get(opened, 0) - self._counters.get(closed, 0)

    @contextmanager
    def timed(self, key: str):
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed = time.perf_counter() - start
            with self._lock:
                self._timings[key].add(elapsed)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "counters": dict(self._counters),
                "timings": {
                    k: {"count": t.count, "total": t.total, "max": t.max} for k, t in self._timings.items()
                },
            }

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._timings.clear()


metrics = _Metrics()
