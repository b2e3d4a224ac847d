"""Execution engine: runs one blocking native command off the caller's thread.

One invocation moves through ``IDLE -> RUNNING -> COMPLETED | FAILED |
CANCELED``. The native call runs on a dedicated daemon thread and gets
pointers to two shared cells owned by the runner:

- a float progress cell the engine writes (starts at the -1 sentinel);
- a byte abort cell the engine polls (set to 1 by the cancellation observer).

Neither cell is locked; the native side cannot take Python locks and both
values are hints. The outcome is delivered through a
``concurrent.futures.Future``. Its callbacks run on the worker thread; wrap it
with ``asyncio.wrap_future`` or use ``QtCommandRunner`` to receive completion
on another thread.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import CancelledError, Future
from ctypes import byref, c_float, c_ubyte, pointer
from dataclasses import dataclass
from enum import Enum

from image_bridge.cancellation import CancellationToken
from image_bridge.exceptions import AlreadyRunningError
from image_bridge.imaging.bitmap import Bitmap
from image_bridge.imaging.output import NumpyOutputFactory, OutputImageFactory, OutputImageInfo
from image_bridge.interop.errors import check_status
from image_bridge.interop.image_list import NativeImageList
from image_bridge.interop.native_types import ErrorInfo, NativeStatus, Options, encode_text
from image_bridge.logger import get_logger
from image_bridge.metrics import metrics
from image_bridge.settings_manager import SettingsManager

from .progress import PROGRESS_UNKNOWN, ProgressPoller

_logger = get_logger("runner")


class RunnerState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"


@dataclass(frozen=True)
class RunRequest:
    """Everything one invocation needs. The runner takes ownership of ``image_list``."""

    command: str
    image_list: NativeImageList
    resource_path: str | None = None
    host_name: str | None = None
    progress: Callable[[int], None] | None = None
    cancellation: CancellationToken | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.command, str) or not self.command:
            raise ValueError("command must be a non-empty string")


class CommandRunner:
    """Runs native commands one at a time and reports progress/cancellation."""

    def __init__(self, output_factory: OutputImageFactory | None = None, settings: SettingsManager | None = None):
        self._factory = output_factory or NumpyOutputFactory()
        self._settings = settings or SettingsManager()
        self._lock = threading.Lock()
        self._state = RunnerState.IDLE
        self._generation = 0
        self._progress = c_float(PROGRESS_UNKNOWN)
        self._abort = c_ubyte(0)
        self._thread: threading.Thread | None = None
        self.last_error: BaseException | None = None

    # ---- state -------------------------------------------------------
    @property
    def state(self) -> RunnerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == RunnerState.RUNNING

    def get_progress(self) -> float:
        """Raw progress cell: -1 until the engine reports, then 0..100."""
        return self._progress.value

    def _signal_cancel(self, generation: int) -> None:
        # Only ever 0 -> 1 during its own invocation; a late observer from an
        # earlier run must not abort the current one.
        with self._lock:
            if self._is_current(generation):
                self._abort.value = 1

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and self._state == RunnerState.RUNNING

    # ---- public API --------------------------------------------------
    def start(self, request: RunRequest) -> Future:
        """Start an invocation. The future resolves to the list of output bitmaps.

        ``future.result()`` raises ``concurrent.futures.CancelledError`` when the
        invocation was canceled, or the translated native error when it failed.
        """
        with self._lock:
            if self._state == RunnerState.RUNNING:
                raise AlreadyRunningError()
            self._state = RunnerState.RUNNING
            self._generation += 1
            generation = self._generation
            self.last_error = None
            self._progress.value = PROGRESS_UNKNOWN
            self._abort.value = 0

        future: Future = Future()
        # RUNNING futures cannot be cancelled by callers; cancellation goes through the token.
        future.set_running_or_notify_cancel()
        metrics.inc("runner.started")

        token = request.cancellation
        if token is not None and token.cancelled:
            _logger.debug("run %s canceled before start", generation)
            self._finish(generation, request, future, None, None, True, None, None)
            return future

        unregister = token.register(lambda: self._signal_cancel(generation)) if token is not None else None

        poller = None
        if request.progress is not None:
            poller = ProgressPoller(
                self.get_progress,
                request.progress,
                generation,
                self._is_current,
                initial_delay=self._settings.progress_initial_delay,
                interval=self._settings.progress_interval,
            )

        thread = threading.Thread(
            target=self._worker,
            args=(generation, request, future, poller, unregister),
            name=f"engine-runner-{generation}",
            daemon=True,
        )
        self._thread = thread
        try:
            if poller is not None:
                poller.start()
            thread.start()
        except Exception as exc:
            _logger.exception("failed to start run %s", generation)
            self._finish(generation, request, future, None, exc, False, poller, unregister)
            return future
        _logger.debug("run %s started: command=%r progress=%s cancel=%s", generation, request.command,
                      poller is not None, token is not None)
        return future

    def run(self, request: RunRequest) -> list[Bitmap]:
        """Blocking variant of ``start``."""
        return self.start(request).result()

    # ---- worker ------------------------------------------------------
    def _worker(
        self,
        generation: int,
        request: RunRequest,
        future: Future,
        poller: ProgressPoller | None,
        unregister: Callable[[], None] | None,
    ) -> None:
        outputs: list[Bitmap] | None = None
        error: BaseException | None = None
        canceled = False
        try:
            canceled, status, error_info = self._invoke_native(request)
            if not canceled:
                check_status(status, error_info)
                outputs = self._collect_outputs(request.image_list)
        except Exception as exc:
            error = exc
        self._finish(generation, request, future, outputs, error, canceled, poller, unregister)

    def _invoke_native(self, request: RunRequest) -> tuple[bool, int, ErrorInfo]:
        image_list = request.image_list
        options = Options()
        options.command = request.command.encode("utf-8")
        options.resource_path = encode_text(request.resource_path or self._settings.get("custom_resource_path"))
        options.host_name = encode_text(request.host_name) or self._settings.host_name.encode("utf-8")
        if request.progress is not None:
            options.progress = pointer(self._progress)
        if request.cancellation is not None:
            options.abort = pointer(self._abort)
        error_info = ErrorInfo()

        if self._abort.value:
            return True, NativeStatus.OK, error_info
        with metrics.timed("runner.native_run"):
            status = image_list.table.run(image_list.handle, byref(options), byref(error_info))
        # An abort request wins over whatever status the engine returned.
        return self._abort.value != 0, status, error_info

    def _collect_outputs(self, image_list: NativeImageList) -> list[Bitmap]:
        outputs: list[Bitmap] = []
        for index in range(image_list.count()):
            entry = image_list.get_image_data(index)
            bitmap = self._factory.create(OutputImageInfo(entry.width, entry.height, entry.pixel_format, entry.name))
            bitmap.copy_from_planes(entry.pixel_format, entry.pixels)
            outputs.append(bitmap)
        return outputs

    def _finish(
        self,
        generation: int,
        request: RunRequest,
        future: Future,
        outputs: list[Bitmap] | None,
        error: BaseException | None,
        canceled: bool,
        poller: ProgressPoller | None,
        unregister: Callable[[], None] | None,
    ) -> None:
        if unregister is not None:
            unregister()
        if poller is not None:
            poller.stop()
        try:
            request.image_list.destroy()
        except Exception as exc:
            _logger.exception("run %s: destroying the image list failed", generation)
            if error is None and not canceled:
                error = exc
                outputs = None

        if canceled:
            state = RunnerState.CANCELED
        elif error is not None:
            state = RunnerState.FAILED
        else:
            state = RunnerState.COMPLETED
        with self._lock:
            self._state = state
            self.last_error = error
        metrics.inc(f"runner.{state.value}")

        if state == RunnerState.CANCELED:
            _logger.info("run %s canceled", generation)
            future.set_exception(CancelledError())
        elif state == RunnerState.FAILED:
            _logger.warning("run %s failed: %s", generation, error)
            future.set_exception(error)  # type: ignore[arg-type]
        else:
            _logger.debug("run %s completed with %s output image(s)", generation, len(outputs or []))
            future.set_result(outputs or [])
