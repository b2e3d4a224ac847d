"""Qt adapter for ``CommandRunner``.

Progress and completion arrive on worker threads; re-emitting them as Signals
lets queued connections deliver them on the receiver's thread (usually the GUI
thread).
"""

from __future__ import annotations

from concurrent.futures import CancelledError, Future

from PySide6.QtCore import QObject, Signal

from image_bridge.engine.runner import CommandRunner, RunRequest
from image_bridge.logger import get_logger

_logger = get_logger("qt_runner")


class QtCommandRunner(QObject):
    progress_changed = Signal(int)
    finished = Signal(object, object, bool)  # outputs, error, canceled

    def __init__(self, runner: CommandRunner | None = None, parent: QObject | None = None):
        super().__init__(parent)
        self._runner = runner or CommandRunner()

    @property
    def runner(self) -> CommandRunner:
        return self._runner

    @property
    def is_running(self) -> bool:
        return self._runner.is_running

    def start(self, request: RunRequest, report_progress: bool = True) -> Future:
        """Start ``request``; ``report_progress`` routes progress through ``progress_changed``."""
        if report_progress and request.progress is None:
            request = RunRequest(
                request.command,
                request.image_list,
                resource_path=request.resource_path,
                host_name=request.host_name,
                progress=self.progress_changed.emit,
                cancellation=request.cancellation,
            )
        future = self._runner.start(request)
        future.add_done_callback(self._on_done)
        return future

    def _on_done(self, future: Future) -> None:
        try:
            outputs = future.result()
        except CancelledError:
            self.finished.emit(None, None, True)
            return
        except Exception as e:
            _logger.debug("run finished with error: %s", e)
            self.finished.emit(None, e, False)
            return
        self.finished.emit(outputs, None, False)
