"""Periodic progress polling for a running native invocation.

The native engine writes a float percentage into a shared cell whenever it
likes. The poller samples that cell on its own thread and forwards integer
percentages to the caller. Reads are lock-free and racy; a stale sample only
delays a report.
"""

from __future__ import annotations

import math
import threading
from collections.abc import Callable

from image_bridge.logger import get_logger
from image_bridge.metrics import metrics

_logger = get_logger("progress")

PROGRESS_UNKNOWN = -1.0


class ProgressPoller:
    """Samples ``read_progress`` and reports increasing integer percentages.

    - The first sample happens after ``initial_delay`` so fast commands report nothing.
    - Values at or below the -1 sentinel are ignored; others are clamped to [0, 100].
    - A report is sent only when the rounded value exceeds the previous report.
    - ``generation`` ties the poller to one invocation; once ``is_current``
      rejects it, or after ``stop()``, nothing more is reported.
    """

    def __init__(
        self,
        read_progress: Callable[[], float],
        report: Callable[[int], None],
        generation: int,
        is_current: Callable[[int], bool],
        initial_delay: float = 1.0,
        interval: float = 0.25,
    ):
        self._read = read_progress
        self._report = report
        self.generation = generation
        self._is_current = is_current
        self._initial_delay = initial_delay
        self._interval = interval
        self._stop = threading.Event()
        self._tick_lock = threading.Lock()
        self._tick_owner: int | None = None
        self._thread: threading.Thread | None = None
        self._last: int | None = None

    @property
    def last_reported(self) -> int | None:
        return self._last

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._loop, name=f"progress-poller-{self.generation}", daemon=True
        )
        self._thread.start()

    def _loop(self) -> None:
        if self._stop.wait(self._initial_delay):
            return
        while True:
            self.poll()
            if self._stop.wait(self._interval):
                return

    def poll(self) -> bool:
        """Take one sample. Returns True when a report was delivered."""
        if not self._tick_lock.acquire(blocking=False):
            # Previous tick still busy in a slow sink.
            metrics.inc("progress.skipped_ticks")
            return False
        self._tick_owner = threading.get_ident()
        try:
            if self._stop.is_set() or not self._is_current(self.generation):
                return False
            value = float(self._read())
            if math.isnan(value) or value <= PROGRESS_UNKNOWN:
                return False
            percent = int(round(min(max(value, 0.0), 100.0)))
            if self._last is not None and percent <= self._last:
                return False
            self._last = percent
            try:
                self._report(percent)
            except Exception:
                _logger.exception("progress sink failed (generation=%s)", self.generation)
                return False
            metrics.inc("progress.reports")
            return True
        finally:
            self._tick_owner = None
            self._tick_lock.release()

    def stop(self) -> None:
        """Stop polling and wait for an in-flight report to finish."""
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        if self._tick_owner != threading.get_ident():
            with self._tick_lock:
                pass
