from __future__ import annotations

import numpy as np

from image_bridge.exceptions import UnsupportedFormatError

from .bitmap import Bitmap
from .marshaling import CHANNEL_ORDERS, PlanarPixels, interleaved_to_planar, planar_to_interleaved
from .pixel_format import PixelFormat, to_pixel_format

_GRAY_DIMS = 2


def _infer_format(array: np.ndarray) -> PixelFormat:
    channels = 1 if array.ndim == _GRAY_DIMS else array.shape[2]
    formats = {1: PixelFormat.GRAY, 2: PixelFormat.GRAY_ALPHA, 3: PixelFormat.RGB, 4: PixelFormat.RGBA}
    try:
        return formats[channels]
    except KeyError:
        raise UnsupportedFormatError(f"{channels} channels") from None


class NumpyBitmap(Bitmap):
    """Bitmap over an interleaved ``(H, W)`` or ``(H, W, C)`` uint8 array.

    ``channel_order`` is "RGB" or "BGR"; BGR buffers are swapped while copying.
    Pass ``pixel_format=PixelFormat.GRAY`` for a 3 channel array that holds
    R=G=B so only one native plane is used.
    """

    def __init__(
        self,
        array: np.ndarray,
        channel_order: str = "RGB",
        pixel_format: PixelFormat | int | None = None,
        name: str | None = None,
        copy: bool = True,
    ):
        arr = np.asarray(array)
        if arr.dtype != np.uint8:
            raise TypeError(f"expected a uint8 array, got {arr.dtype}")
        if arr.ndim not in (2, 3) or arr.shape[0] <= 0 or arr.shape[1] <= 0:
            raise ValueError(f"unexpected image array shape: {arr.shape}")
        if channel_order not in CHANNEL_ORDERS:
            raise ValueError(f"channel_order must be one of {CHANNEL_ORDERS}")
        # Own the buffer; the caller's array is never aliased.
        self._array = np.ascontiguousarray(arr).copy() if copy else np.ascontiguousarray(arr)
        self._format = _infer_format(self._array) if pixel_format is None else to_pixel_format(pixel_format)
        self.channel_order = channel_order
        self.name = name

    @classmethod
    def blank(cls, width: int, height: int, pixel_format: PixelFormat, channel_order: str = "RGB") -> NumpyBitmap:
        fmt = to_pixel_format(pixel_format)
        shape = (height, width) if fmt.plane_count == 1 else (height, width, fmt.plane_count)
        return cls(np.zeros(shape, dtype=np.uint8), channel_order=channel_order, pixel_format=fmt, copy=False)

    @property
    def array(self) -> np.ndarray:
        return self._array

    @property
    def width(self) -> int:
        return int(self._array.shape[1])

    @property
    def height(self) -> int:
        return int(self._array.shape[0])

    def pixel_format(self) -> PixelFormat:
        return self._format

    def copy_to_planes(self, pixel_format: PixelFormat, pixels: PlanarPixels) -> None:
        interleaved_to_planar(self._array, pixel_format, pixels, self.channel_order)

    def copy_from_planes(self, pixel_format: PixelFormat, pixels: PlanarPixels) -> None:
        planar_to_interleaved(pixels, pixel_format, self._array, self.channel_order)

    def __repr__(self) -> str:
        return (
            f"NumpyBitmap({self.width}x{self.height}, {self._format.name}, "
            f"order={self.channel_order}, name={self.name!r})"
        )
