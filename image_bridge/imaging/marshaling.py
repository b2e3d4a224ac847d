"""Pixel marshaling between interleaved uint8 buffers and native float planes.

The native engine stores every image as separate float planes in component
order red/gray, green, blue, alpha. Each plane is ``height`` rows of ``width``
floats with no padding, so the row stride of a plane is the image width.
Values use the byte range: byte ``v`` is stored as float ``v``.

Everything here copies. Plane arrays handed in by the image list alias native
memory and are only valid for the duration of the call.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from image_bridge.exceptions import MarshalingError

from .pixel_format import PixelFormat, to_pixel_format

CHANNEL_ORDERS = ("RGB", "BGR")
_ALPHA_CHANNEL = 3


@dataclass
class PlanarPixels:
    """Plane views for one native image. ``red`` doubles as the gray plane."""

    red: np.ndarray
    green: np.ndarray | None = None
    blue: np.ndarray | None = None
    alpha: np.ndarray | None = None

    @property
    def gray(self) -> np.ndarray:
        return self.red

    def planes_for(self, pixel_format: PixelFormat) -> list[np.ndarray]:
        fmt = to_pixel_format(pixel_format)
        if fmt == PixelFormat.GRAY:
            planes = [self.red]
        elif fmt == PixelFormat.GRAY_ALPHA:
            planes = [self.red, self.alpha]
        elif fmt == PixelFormat.RGB:
            planes = [self.red, self.green, self.blue]
        else:
            planes = [self.red, self.green, self.blue, self.alpha]
        if any(p is None for p in planes):
            raise MarshalingError(f"missing plane for {fmt.name}")
        return planes  # type: ignore[return-value]


def float_to_byte(values) -> np.ndarray:
    """Clamp to [0, 255] and round to the nearest byte."""
    arr = np.nan_to_num(np.asarray(values, dtype=np.float32), nan=0.0)
    return np.clip(np.rint(arr), 0, 255).astype(np.uint8)


def _as_hwc(buffer: np.ndarray) -> np.ndarray:
    if buffer.ndim == 2:
        return buffer[:, :, np.newaxis]
    if buffer.ndim != 3:
        raise MarshalingError(f"unexpected pixel buffer shape: {buffer.shape}")
    return buffer


def _channel_indices(pixel_format: PixelFormat, channels: int, channel_order: str) -> list[int]:
    """Interleaved channel index for each plane, in plane order."""
    if channel_order not in CHANNEL_ORDERS:
        raise MarshalingError(f"unsupported channel order: {channel_order!r}")
    fmt = to_pixel_format(pixel_format)
    swap = channel_order == "BGR"

    if fmt == PixelFormat.GRAY:
        # A 3/4 channel buffer advertising GRAY holds R=G=B.
        return [0]
    if fmt == PixelFormat.GRAY_ALPHA:
        if channels == 2:
            return [0, 1]
        if channels == 4:
            return [0, _ALPHA_CHANNEL]
    elif fmt == PixelFormat.RGB and channels >= 3:
        return [2, 1, 0] if swap else [0, 1, 2]
    elif fmt == PixelFormat.RGBA and channels == 4:
        return [2, 1, 0, _ALPHA_CHANNEL] if swap else [0, 1, 2, _ALPHA_CHANNEL]
    raise MarshalingError(f"a {channels} channel buffer cannot hold {fmt.name} pixels")


def _check_plane_shapes(planes: Sequence[np.ndarray], height: int, width: int) -> None:
    for plane in planes:
        if plane.shape != (height, width):
            raise MarshalingError(f"plane shape {plane.shape} does not match image {height}x{width}")


def interleaved_to_planar(
    source: np.ndarray, pixel_format: PixelFormat, pixels: PlanarPixels, channel_order: str = "RGB"
) -> None:
    """Copy an interleaved uint8 buffer into native planes."""
    fmt = to_pixel_format(pixel_format)
    src = _as_hwc(np.asarray(source))
    height, width, channels = src.shape
    planes = pixels.planes_for(fmt)
    _check_plane_shapes(planes, height, width)

    # The engine may store an image in a wider format than the caller advertised.
    if not fmt.is_gray and channels < 3:
        for plane in planes[:3]:
            plane[...] = src[:, :, 0]
        if fmt.has_alpha:
            planes[_ALPHA_CHANNEL][...] = src[:, :, 1] if channels == 2 else 255.0
        return
    if fmt == PixelFormat.RGBA and channels == 3:
        for plane, index in zip(planes[:3], _channel_indices(PixelFormat.RGB, channels, channel_order), strict=True):
            plane[...] = src[:, :, index]
        planes[_ALPHA_CHANNEL][...] = 255.0
        return
    if fmt == PixelFormat.GRAY_ALPHA and channels in (1, 3):
        planes[0][...] = src[:, :, 0]
        planes[1][...] = 255.0
        return

    for plane, index in zip(planes, _channel_indices(fmt, channels, channel_order), strict=True):
        plane[...] = src[:, :, index]


def planar_to_interleaved(
    pixels: PlanarPixels, pixel_format: PixelFormat, destination: np.ndarray, channel_order: str = "RGB"
) -> None:
    """Copy native planes into a writable interleaved uint8 buffer."""
    fmt = to_pixel_format(pixel_format)
    dst = _as_hwc(destination)
    height, width, channels = dst.shape
    planes = pixels.planes_for(fmt)
    _check_plane_shapes(planes, height, width)

    if fmt.is_gray:
        gray = float_to_byte(planes[0])
        for c in range(3 if channels >= 3 else 1):
            dst[:, :, c] = gray
        # Destinations with an alpha channel keep it last.
        if channels in (2, 4):
            dst[:, :, channels - 1] = float_to_byte(planes[1]) if fmt.has_alpha else 255
        return

    for plane, index in zip(planes, _channel_indices(fmt, channels, channel_order), strict=True):
        dst[:, :, index] = float_to_byte(plane)
    if fmt == PixelFormat.RGB and channels == 4:
        dst[:, :, _ALPHA_CHANNEL] = 255


def allocate_planes(width: int, height: int, pixel_format: PixelFormat) -> PlanarPixels:
    """Managed float planes with the native layout, used when no native list is involved."""
    fmt = to_pixel_format(pixel_format)

    def _plane() -> np.ndarray:
        return np.zeros((height, width), dtype=np.float32)

    return PlanarPixels(
        red=_plane(),
        green=_plane() if not fmt.is_gray else None,
        blue=_plane() if not fmt.is_gray else None,
        alpha=_plane() if fmt.has_alpha else None,
    )
