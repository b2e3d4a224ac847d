"""High-level facade over the native command engine.

Collects input bitmaps, validates the command and drives one
``CommandRunner`` invocation per ``run`` call.
"""

from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import Future

from image_bridge.cancellation import CancellationToken
from image_bridge.engine.runner import CommandRunner, RunRequest
from image_bridge.imaging.bitmap import Bitmap
from image_bridge.imaging.output import OutputImageFactory
from image_bridge.interop.function_table import load_function_table
from image_bridge.interop.image_list import NativeImageList
from image_bridge.logger import get_logger
from image_bridge.settings_manager import SettingsManager

_logger = get_logger("processor")


def _validate_command(command: str) -> str:
    if command is None:
        raise TypeError("command must not be None")
    if not isinstance(command, str):
        raise TypeError(f"command must be a str, got {type(command).__name__}")
    if not command.strip():
        raise ValueError("command must not be empty or whitespace")
    return command


class ImageProcessor:
    """Queue input images, then run a command over them.

    Inputs are kept after a run so the same images can be processed again with
    another command; call ``clear_inputs`` to drop them.
    """

    def __init__(self, output_factory: OutputImageFactory | None = None, settings: SettingsManager | None = None):
        self._settings = settings or SettingsManager()
        self._runner = CommandRunner(output_factory, self._settings)
        self._inputs: list[tuple[Bitmap, str | None]] = []
        self.custom_resource_path: str | None = self._settings.get("custom_resource_path")
        self.host_name: str = self._settings.host_name

    @property
    def is_running(self) -> bool:
        return self._runner.is_running

    @property
    def runner(self) -> CommandRunner:
        return self._runner

    @property
    def input_count(self) -> int:
        return len(self._inputs)

    def add_input_image(self, bitmap: Bitmap, name: str | None = None) -> None:
        if bitmap is None:
            raise TypeError("bitmap must not be None")
        self._inputs.append((bitmap, name))

    def clear_inputs(self) -> None:
        self._inputs.clear()

    def _build_image_list(self) -> NativeImageList:
        image_list = NativeImageList(load_function_table(self._settings))
        try:
            for bitmap, name in self._inputs:
                image_list.add_bitmap(bitmap, name)
        except Exception:
            image_list.destroy()
            raise
        _logger.debug("image list built with %s input(s)", len(self._inputs))
        return image_list

    def run_async(
        self,
        command: str,
        progress: Callable[[int], None] | None = None,
        cancellation: CancellationToken | None = None,
    ) -> Future:
        """Start ``command`` in the background; the future resolves to the output bitmaps."""
        command = _validate_command(command)
        image_list = self._build_image_list()
        request = RunRequest(
            command,
            image_list,
            resource_path=self.custom_resource_path,
            host_name=self.host_name,
            progress=progress,
            cancellation=cancellation,
        )
        try:
            return self._runner.start(request)
        except Exception:
            # Not started: the runner never took ownership.
            image_list.destroy()
            raise

    def run(
        self,
        command: str,
        progress: Callable[[int], None] | None = None,
        cancellation: CancellationToken | None = None,
    ) -> list[Bitmap]:
        return self.run_async(command, progress, cancellation).result()
