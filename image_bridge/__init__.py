"""image_bridge: run native image-processing commands from Python.

The native engine library is loaded lazily, on the first image list or run.
"""

__version__ = "0.4.0"

from .cancellation import CancellationToken
from .engine import CommandRunner, RunnerState, RunRequest
from .exceptions import (
    AlreadyRunningError,
    BridgeError,
    ConfigurationError,
    EngineError,
    MarshalingError,
    NativeResourceError,
)
from .imaging import Bitmap, NumpyBitmap, NumpyOutputFactory, OutputImageFactory, OutputImageInfo, PixelFormat
from .interop import NativeImageList
from .processor import ImageProcessor

__all__ = [
    "AlreadyRunningError",
    "Bitmap",
    "BridgeError",
    "CancellationToken",
    "CommandRunner",
    "ConfigurationError",
    "EngineError",
    "ImageProcessor",
    "MarshalingError",
    "NativeImageList",
    "NativeResourceError",
    "NumpyBitmap",
    "NumpyOutputFactory",
    "OutputImageFactory",
    "OutputImageInfo",
    "PixelFormat",
    "RunRequest",
    "RunnerState",
    "__version__",
]
