"""Owner of one native image list handle.

Plane arrays returned by ``add`` and ``get_image_data`` are numpy views over
native memory. They are valid only until the list is cleared or destroyed and
must be copied out synchronously; nothing in image_bridge keeps them.
"""

from __future__ import annotations

from ctypes import byref, c_int, string_at
from dataclasses import dataclass
from typing import Any

import numpy as np

from image_bridge.exceptions import ImageListClosedError, ImageListCreationError, IndexOutOfRangeError, MarshalingError
from image_bridge.imaging.bitmap import Bitmap
from image_bridge.imaging.marshaling import PlanarPixels
from image_bridge.imaging.pixel_format import PixelFormat, to_pixel_format
from image_bridge.logger import get_logger
from image_bridge.metrics import metrics

from .errors import check_status
from .function_table import NativeFunctionTable, load_function_table
from .native_types import ImageData, PixelData, encode_text

_logger = get_logger("image_list")

_UINT32_MAX = 0xFFFFFFFF


@dataclass
class ImageEntry:
    width: int
    height: int
    pixel_format: PixelFormat
    pixels: PlanarPixels
    name: str | None = None


def _plane_view(pointer: Any, width: int, height: int, label: str) -> np.ndarray:
    if width == 0 or height == 0:
        return np.empty((height, width), dtype=np.float32)
    if not pointer:
        raise MarshalingError(f"the native {label} plane is missing")
    return np.ctypeslib.as_array(pointer, shape=(height, width))


def _planes_from_native(pixel_data: PixelData, width: int, height: int, pixel_format: PixelFormat) -> PlanarPixels:
    fmt = to_pixel_format(pixel_format)
    first = _plane_view(pixel_data.red, width, height, "gray" if fmt.is_gray else "red")
    return PlanarPixels(
        red=first,
        green=None if fmt.is_gray else _plane_view(pixel_data.green, width, height, "green"),
        blue=None if fmt.is_gray else _plane_view(pixel_data.blue, width, height, "blue"),
        alpha=_plane_view(pixel_data.alpha, width, height, "alpha") if fmt.has_alpha else None,
    )


def _check_dimension(value: int, label: str) -> int:
    value = int(value)
    if value <= 0 or value > _UINT32_MAX:
        raise ValueError(f"{label} must be between 1 and {_UINT32_MAX}, got {value}")
    return value


class NativeImageList:
    """A native image list. Create one per invocation and destroy it afterwards."""

    def __init__(self, table: NativeFunctionTable | None = None):
        self._table = table or load_function_table()
        handle = self._table.create_image_list()
        if not handle:
            raise ImageListCreationError()
        self._handle: int | None = handle
        metrics.inc("image_list.created")
        _logger.debug("image list created: 0x%x", handle)

    # ---- lifecycle -------------------------------------------------
    @property
    def closed(self) -> bool:
        return self._handle is None

    @property
    def table(self) -> NativeFunctionTable:
        return self._table

    @property
    def handle(self) -> int:
        if self._handle is None:
            raise ImageListClosedError()
        return self._handle

    def destroy(self) -> None:
        """Release the native list. Safe to call more than once."""
        handle, self._handle = self._handle, None
        if handle is None:
            return
        self._table.image_list_destroy(handle)
        metrics.inc("image_list.destroyed")
        _logger.debug("image list destroyed: 0x%x", handle)

    close = destroy

    def __enter__(self) -> NativeImageList:
        return self

    def __exit__(self, *exc_info) -> None:
        self.destroy()

    # ---- contents ----------------------------------------------------
    def count(self) -> int:
        return int(self._table.image_list_get_count(self.handle))

    def __len__(self) -> int:
        return self.count()

    def clear(self) -> None:
        """Drop every image; the handle stays valid."""
        self._table.image_list_clear(self.handle)

    def add(
        self, width: int, height: int, pixel_format: PixelFormat | int, name: str | None = None
    ) -> tuple[PlanarPixels, PixelFormat]:
        """Allocate one native image and return writable plane views plus the storage format."""
        width = _check_dimension(width, "width")
        height = _check_dimension(height, "height")
        fmt = to_pixel_format(pixel_format)

        pixel_data = PixelData()
        native_format = c_int(int(fmt))
        status = self._table.image_list_add(
            self.handle, width, height, int(fmt), encode_text(name), byref(pixel_data), byref(native_format)
        )
        check_status(status)
        chosen = to_pixel_format(native_format.value)
        return _planes_from_native(pixel_data, width, height, chosen), chosen

    def add_bitmap(self, bitmap: Bitmap, name: str | None = None) -> None:
        pixels, storage_format = self.add(
            bitmap.width, bitmap.height, bitmap.pixel_format(), name if name is not None else bitmap.name
        )
        bitmap.copy_to_planes(storage_format, pixels)

    def get_image_data(self, index: int) -> ImageEntry:
        count = self.count()
        if index < 0 or index >= count:
            raise IndexOutOfRangeError(f"image index {index} is out of range for a list of {count}")
        data = ImageData()
        status = self._table.image_list_get_image_data(self.handle, index, byref(data))
        check_status(status)

        fmt = to_pixel_format(data.format)
        width, height = int(data.width), int(data.height)
        name = None
        if data.name and data.name_length > 0:
            name = string_at(data.name, data.name_length).decode("utf-8", errors="replace")
        return ImageEntry(width, height, fmt, _planes_from_native(data.pixels, width, height, fmt), name)

    def __repr__(self) -> str:
        state = "closed" if self._handle is None else f"0x{self._handle:x}"
        return f"NativeImageList({state})"
