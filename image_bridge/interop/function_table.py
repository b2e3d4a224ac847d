"""Process-wide table of bound native entry points.

The table is created once, on first use, and never torn down: the operating
system reclaims the library when the process exits. Binding is atomic:
either every export resolves and the library version is compatible, or no
table is published and the next caller retries from scratch.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from ctypes import byref, c_int
from typing import Any

from image_bridge.exceptions import NotInitializedError, VersionMismatchError
from image_bridge.logger import get_logger
from image_bridge.settings_manager import SettingsManager

from .library_loader import LibraryResolver
from .native_types import PROTOTYPES

_logger = get_logger("function_table")

_lock = threading.Lock()
_instance: NativeFunctionTable | None = None
_VERSION_PARTS = 3


def _package_version() -> tuple[int, int, int]:
    from image_bridge import __version__

    parts = [int(p) for p in __version__.split(".")[:_VERSION_PARTS]]
    while len(parts) < _VERSION_PARTS:
        parts.append(0)
    return parts[0], parts[1], parts[2]


def is_compatible(library: tuple[int, int, int], expected: tuple[int, int, int]) -> bool:
    """Major versions must match; before 1.0 the minor version must match too."""
    if library[0] != expected[0]:
        return False
    if expected[0] == 0 and library[1] != expected[1]:
        return False
    return True


class NativeFunctionTable:
    """Callable entry points bound from one loaded library handle.

    Immutable after construction, so it is safe to share across threads.
    """

    def __init__(self, handle: Any, resolve: Callable[[Any, str], int]):
        self.handle = handle
        bound = {name: prototype(resolve(handle, name)) for name, prototype in PROTOTYPES.items()}
        self.get_library_version = bound["get_library_version"]
        self.create_image_list = bound["create_image_list"]
        self.image_list_destroy = bound["image_list_destroy"]
        self.image_list_clear = bound["image_list_clear"]
        self.image_list_get_count = bound["image_list_get_count"]
        self.image_list_add = bound["image_list_add"]
        self.image_list_get_image_data = bound["image_list_get_image_data"]
        self.run = bound["run"]

    def library_version(self) -> tuple[int, int, int]:
        major, minor, patch = c_int(0), c_int(0), c_int(0)
        self.get_library_version(byref(major), byref(minor), byref(patch))
        return major.value, minor.value, patch.value


def initialize(
    handle: Any,
    resolve: Callable[[Any, str], int],
    expected_version: tuple[int, int, int] | None = None,
) -> NativeFunctionTable:
    """Bind every entry point once; later calls return the existing table."""
    global _instance
    table = _instance
    if table is not None:
        return table
    with _lock:
        if _instance is not None:
            return _instance
        table = NativeFunctionTable(handle, resolve)
        library_version = table.library_version()
        expected = expected_version or _package_version()
        if not is_compatible(library_version, expected):
            _logger.error("native library version %s incompatible with %s", library_version, expected)
            raise VersionMismatchError(library_version, expected)
        _instance = table
        _logger.info("native function table ready (library %s)", ".".join(map(str, library_version)))
        return table


def instance() -> NativeFunctionTable:
    table = _instance
    if table is None:
        raise NotInitializedError()
    return table


def is_initialized() -> bool:
    return _instance is not None


def load_function_table(settings: SettingsManager | None = None) -> NativeFunctionTable:
    """Return the table, loading the native library on first use."""
    table = _instance
    if table is not None:
        return table
    settings = settings or SettingsManager()
    with _lock:
        if _instance is not None:
            return _instance
        resolver = LibraryResolver(extra_dirs=settings.library_dirs)
        handle = resolver.load()
    return initialize(handle, resolver.resolve)
