from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from .bitmap import Bitmap
from .numpy_bitmap import NumpyBitmap
from .pixel_format import PixelFormat


@dataclass(frozen=True)
class OutputImageInfo:
    width: int
    height: int
    pixel_format: PixelFormat
    name: str | None = None


class OutputImageFactory(Protocol):
    """Builds the bitmap that receives one output image of a run."""

    def create(self, info: OutputImageInfo) -> Bitmap: ...


class NumpyOutputFactory:
    def __init__(self, channel_order: str = "RGB"):
        self.channel_order = channel_order

    def create(self, info: OutputImageInfo) -> Bitmap:
        bitmap = NumpyBitmap.blank(info.width, info.height, info.pixel_format, channel_order=self.channel_order)
        bitmap.name = info.name
        return bitmap
