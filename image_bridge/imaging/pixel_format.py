from __future__ import annotations

from enum import IntEnum

from image_bridge.exceptions import UnsupportedFormatError


class PixelFormat(IntEnum):
    """The four pixel layouts the native engine stores.

    Values are the integers used on the native ABI.
    """

    GRAY = 0
    GRAY_ALPHA = 1
    RGB = 2
    RGBA = 3

    @property
    def plane_count(self) -> int:
        return _PLANE_COUNTS[self]

    @property
    def has_alpha(self) -> bool:
        return self in (PixelFormat.GRAY_ALPHA, PixelFormat.RGBA)

    @property
    def is_gray(self) -> bool:
        return self in (PixelFormat.GRAY, PixelFormat.GRAY_ALPHA)


_PLANE_COUNTS = {
    PixelFormat.GRAY: 1,
    PixelFormat.GRAY_ALPHA: 2,
    PixelFormat.RGB: 3,
    PixelFormat.RGBA: 4,
}


def to_pixel_format(value: object) -> PixelFormat:
    """Validate an int/enum coming from a caller or from native code."""
    if isinstance(value, PixelFormat):
        return value
    if isinstance(value, bool):
        raise UnsupportedFormatError(value)
    try:
        return PixelFormat(int(value))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise UnsupportedFormatError(value) from None
