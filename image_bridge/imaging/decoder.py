"""Read and write NumpyBitmap instances through pyvips.

Band layout is preserved: 1 band -> GRAY, 2 -> GRAY_ALPHA, 3 -> RGB,
4 -> RGBA. Other colourspaces are converted to sRGB first.
"""

import contextlib
from pathlib import Path
from typing import Any

import numpy as np

from image_bridge.logger import get_logger

from .numpy_bitmap import NumpyBitmap

_logger = get_logger("decoder")

_MAX_BANDS = 4

_pyvips: Any | None = None


def _get_pyvips_module() -> Any:
    global _pyvips
    if _pyvips is None:
        import pyvips  # type: ignore

        _pyvips = pyvips
    return _pyvips


def load_bitmap(path: str | Path, name: str | None = None) -> NumpyBitmap:
    """Decode an image file into a NumpyBitmap in RGB channel order."""
    pyvips = _get_pyvips_module()
    image = pyvips.Image.new_from_file(str(path), access="sequential")

    if image.interpretation not in ("b-w", "srgb"):
        with contextlib.suppress(Exception):
            image = image.colourspace("srgb")
    if image.bands > _MAX_BANDS:
        image = image.extract_band(0, n=_MAX_BANDS)
    if image.format != "uchar":
        image = image.cast("uchar")

    mem = image.write_to_memory()
    array = np.frombuffer(mem, dtype=np.uint8).reshape(image.height, image.width, image.bands)
    if image.bands == 1:
        array = array[:, :, 0]
    _logger.debug("loaded %s: %sx%s bands=%s", path, image.width, image.height, image.bands)
    # NumpyBitmap copies, so the pyvips memory block can be released.
    return NumpyBitmap(array, name=name if name is not None else Path(path).stem)


def save_bitmap(bitmap: NumpyBitmap, path: str | Path) -> None:
    """Encode a NumpyBitmap to any format pyvips can write, picked by file suffix."""
    pyvips = _get_pyvips_module()
    array = bitmap.array
    if array.ndim == 2:
        array = array[:, :, np.newaxis]
    if bitmap.channel_order == "BGR" and array.shape[2] >= 3:
        array = array[:, :, [2, 1, 0, *range(3, array.shape[2])]]
    array = np.ascontiguousarray(array)
    height, width, bands = array.shape
    image = pyvips.Image.new_from_memory(array.tobytes(), width, height, bands, "uchar")
    if bands >= 3:
        image = image.copy(interpretation="srgb")
    else:
        image = image.copy(interpretation="b-w")
    image.write_to_file(str(path))
    _logger.debug("saved %s: %sx%s bands=%s", path, width, height, bands)
