"""Contract a caller-supplied bitmap must satisfy to cross the native boundary."""

from __future__ import annotations

from abc import ABC, abstractmethod

from .marshaling import PlanarPixels
from .pixel_format import PixelFormat


class Bitmap(ABC):
    """A bitmap the native engine can read from and write into.

    Implementations own their pixel buffer exclusively. ``copy_to_planes`` and
    ``copy_from_planes`` receive plane views over native memory that are only
    valid for the duration of the call and must never be stored.
    """

    name: str | None = None

    @property
    @abstractmethod
    def width(self) -> int: ...

    @property
    @abstractmethod
    def height(self) -> int: ...

    @abstractmethod
    def pixel_format(self) -> PixelFormat:
        """Format advertised to the native engine.

        A bitmap that stores gray pixels as R=G=B must still report GRAY so the
        engine allocates a single plane.
        """

    @abstractmethod
    def copy_to_planes(self, pixel_format: PixelFormat, pixels: PlanarPixels) -> None:
        """Copy this bitmap's pixels into native planes of ``pixel_format``."""

    @abstractmethod
    def copy_from_planes(self, pixel_format: PixelFormat, pixels: PlanarPixels) -> None:
        """Overwrite this bitmap's pixels from native planes of ``pixel_format``."""
