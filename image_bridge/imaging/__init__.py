"""Bitmap contract, pixel formats and planar marshaling.

``decoder`` needs pyvips and is imported on demand:

    from image_bridge.imaging.decoder import load_bitmap, save_bitmap
"""

from .bitmap import Bitmap
from .marshaling import PlanarPixels
from .numpy_bitmap import NumpyBitmap
from .output import NumpyOutputFactory, OutputImageFactory, OutputImageInfo
from .pixel_format import PixelFormat

__all__ = [
    "Bitmap",
    "NumpyBitmap",
    "NumpyOutputFactory",
    "OutputImageFactory",
    "OutputImageInfo",
    "PixelFormat",
    "PlanarPixels",
]
