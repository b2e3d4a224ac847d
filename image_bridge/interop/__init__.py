"""Native interop layer: library loading, the bound function table and image lists.

Usage:
    from image_bridge.interop import NativeImageList

    with NativeImageList() as images:   # loads the native library on first use
        images.add_bitmap(bitmap)
"""

from .function_table import NativeFunctionTable, initialize, instance, load_function_table
from .image_list import ImageEntry, NativeImageList
from .library_loader import LibraryResolver, current_platform_id
from .native_types import NativeStatus

__all__ = [
    "ImageEntry",
    "LibraryResolver",
    "NativeFunctionTable",
    "NativeImageList",
    "NativeStatus",
    "current_platform_id",
    "initialize",
    "instance",
    "load_function_table",
]
