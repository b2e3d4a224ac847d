"""Locate and load the native engine library.

The library lives in a platform/architecture qualified directory next to the
package, in one of two layouts:

- ``native/<platform-id>/<file>``: local/development deployments.
- ``runtimes/<platform-id>/native/<file>``: the layout used by binary wheels.

Loading goes through a small capability record per platform family instead of
``ctypes.CDLL`` so the platform loader's own error text reaches the caller.
Loaded libraries stay mapped until the process exits; there is no unload.
"""

from __future__ import annotations

import contextlib
import ctypes
import ctypes.util
import os
import platform
import struct
import sys
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from image_bridge.exceptions import (
    EntryPointNotFoundError,
    LibraryLoadError,
    LibraryNotFoundError,
    PlatformNotSupportedError,
)
from image_bridge.logger import get_logger

_logger = get_logger("library_loader")

LIBRARY_BASE_NAME = "libimage_bridge_native"
_PACKAGE_DIR = Path(__file__).resolve().parent.parent
_RTLD_NOW = getattr(os, "RTLD_NOW", 2)
_SEM_FAILCRITICALERRORS = 0x0001
_POINTER_SIZE_32 = 4

_ARCH_ALIASES = {
    "x86_64": "x64",
    "amd64": "x64",
    "x64": "x64",
    "i386": "x86",
    "i486": "x86",
    "i586": "x86",
    "i686": "x86",
    "x86": "x86",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv8l": "arm",
}


def _os_name(system: str) -> str:
    if system.startswith("win") or system == "cygwin":
        return "win"
    if system.startswith("linux"):
        return "linux"
    if system == "darwin":
        return "osx"
    if "bsd" in system or system.startswith(("dragonfly", "sunos")):
        return "unix"
    raise PlatformNotSupportedError(f"Unsupported platform: {system}")


def current_platform_id(system: str | None = None, machine: str | None = None, pointer_size: int | None = None) -> str:
    """``<os>-<arch>`` for the running process, e.g. ``linux-x64``."""
    system = (system or sys.platform).lower()
    machine = (machine if machine is not None else platform.machine()).lower()
    pointer_size = pointer_size or struct.calcsize("P")

    arch = _ARCH_ALIASES.get(machine)
    if arch is None and machine.startswith("arm"):
        arch = "arm"
    if arch is None:
        raise PlatformNotSupportedError(f"Unsupported process architecture: {machine or '<unknown>'}")
    # A 32-bit interpreter on a 64-bit OS loads 32-bit libraries.
    if pointer_size == _POINTER_SIZE_32:
        arch = {"x64": "x86", "arm64": "arm"}.get(arch, arch)
    return f"{_os_name(system)}-{arch}"


def library_file_name(system: str | None = None) -> str:
    os_name = _os_name((system or sys.platform).lower())
    ext = {"win": ".dll", "osx": ".dylib"}.get(os_name, ".so")
    return LIBRARY_BASE_NAME + ext


def candidate_paths(
    base_dir: str | Path | None = None,
    platform_id: str | None = None,
    extra_dirs: Sequence[str | Path] = (),
    file_name: str | None = None,
) -> list[str]:
    base = Path(base_dir) if base_dir is not None else _PACKAGE_DIR
    pid = platform_id or current_platform_id()
    name = file_name or library_file_name()
    paths = [Path(d) / name for d in extra_dirs]
    paths.append(base / "native" / pid / name)
    paths.append(base / "runtimes" / pid / "native" / name)
    return [str(p) for p in paths]


# ---- platform loader capabilities ---------------------------------------


@dataclass(frozen=True)
class LoaderBackend:
    """Loader primitives for one platform family.

    ``load(path)`` returns ``(handle, "")`` or ``(None, platform error text)``.
    ``resolve(handle, name)`` returns a symbol address or None.
    """

    name: str
    load: Callable[[str], tuple[int | None, str]]
    resolve: Callable[[int, str], int | None]


def _windows_backend() -> LoaderBackend:
    kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)  # type: ignore[attr-defined]
    kernel32.LoadLibraryW.argtypes = [ctypes.c_wchar_p]
    kernel32.LoadLibraryW.restype = ctypes.c_void_p
    kernel32.GetProcAddress.argtypes = [ctypes.c_void_p, ctypes.c_char_p]
    kernel32.GetProcAddress.restype = ctypes.c_void_p
    kernel32.SetThreadErrorMode.argtypes = [ctypes.c_uint32, ctypes.POINTER(ctypes.c_uint32)]
    kernel32.SetThreadErrorMode.restype = ctypes.c_int

    def load(path: str) -> tuple[int | None, str]:
        # Suppress the system dialog LoadLibrary shows when a dependency is missing.
        old_mode = ctypes.c_uint32(0)
        kernel32.SetThreadErrorMode(_SEM_FAILCRITICALERRORS, ctypes.byref(old_mode))
        try:
            handle = kernel32.LoadLibraryW(path)
            error = ctypes.get_last_error()  # type: ignore[attr-defined]
        finally:
            kernel32.SetThreadErrorMode(old_mode.value, None)
        if handle:
            return handle, ""
        return None, ctypes.FormatError(error).strip()  # type: ignore[attr-defined]

    def resolve(handle: int, name: str) -> int | None:
        return kernel32.GetProcAddress(handle, name.encode("ascii")) or None

    return LoaderBackend("windows", load, resolve)


def _open_posix_runtime(runtime: str) -> Any:
    found = ctypes.util.find_library("dl" if runtime == "libdl" else "c")
    if found:
        with contextlib.suppress(OSError):
            return ctypes.CDLL(found)
    # The main program image exports the loader on every POSIX platform we target.
    return ctypes.CDLL(None)


def _posix_backend(runtime: str) -> LoaderBackend:
    """dlopen/dlsym/dlerror, exported by ``libdl`` or by the base C runtime."""
    rt = _open_posix_runtime(runtime)
    rt.dlopen.argtypes = [ctypes.c_char_p, ctypes.c_int]
    rt.dlopen.restype = ctypes.c_void_p
    rt.dlsym.argtypes = [ctypes.c_void_p, ctypes.c_char_p]
    rt.dlsym.restype = ctypes.c_void_p
    rt.dlerror.argtypes = []
    rt.dlerror.restype = ctypes.c_char_p

    def load(path: str) -> tuple[int | None, str]:
        handle = rt.dlopen(os.fsencode(path), _RTLD_NOW)
        if handle:
            return handle, ""
        message = rt.dlerror()
        return None, message.decode("utf-8", errors="replace") if message else "dlopen failed"

    def resolve(handle: int, name: str) -> int | None:
        rt.dlerror()
        return rt.dlsym(handle, name.encode("ascii")) or None

    return LoaderBackend(f"posix:{runtime}", load, resolve)


def default_backend(system: str | None = None) -> LoaderBackend:
    os_name = _os_name((system or sys.platform).lower())
    if os_name == "win":
        return _windows_backend()
    if os_name in ("linux", "osx"):
        return _posix_backend("libdl")
    # BSDs export dlopen from libc itself.
    return _posix_backend("libc")


# ---- resolver --------------------------------------------------------------


class LibraryResolver:
    """Finds the native library on disk, loads it and resolves its exports."""

    def __init__(
        self,
        base_dir: str | Path | None = None,
        platform_id: str | None = None,
        extra_dirs: Sequence[str | Path] = (),
        backend: LoaderBackend | None = None,
        file_name: str | None = None,
    ):
        self.file_name = file_name or library_file_name()
        self.search_paths = candidate_paths(base_dir, platform_id, extra_dirs, self.file_name)
        self._backend = backend
        self._dll_dir_cookies: list[Any] = []
        self.loaded_path: str | None = None

    @property
    def backend(self) -> LoaderBackend:
        if self._backend is None:
            self._backend = default_backend()
        return self._backend

    def load(self) -> int:
        """Load the first candidate that exists and return its handle."""
        for path in self.search_paths:
            if not os.path.isfile(path):
                continue
            if os.name == "nt":
                # Let the loader find the engine's own DLL dependencies next to it.
                with contextlib.suppress(Exception):
                    self._dll_dir_cookies.append(os.add_dll_directory(os.path.dirname(path)))
            handle, error = self.backend.load(path)
            if not handle:
                _logger.error("native library rejected by %s loader: %s (%s)", self.backend.name, path, error)
                raise LibraryLoadError(path, error)
            self.loaded_path = path
            _logger.info("native library loaded: %s", path)
            return handle
        _logger.error("native library not found; searched %s", self.search_paths)
        raise LibraryNotFoundError(self.search_paths)

    def resolve(self, handle: int, name: str) -> int:
        address = self.backend.resolve(handle, name)
        if not address:
            raise EntryPointNotFoundError(name, self.file_name)
        return address
