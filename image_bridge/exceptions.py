"""Failure taxonomy for the native bridge.

Configuration errors are fatal and surface before any command runs.
Marshaling errors mean a caller contract violation or a version skew between
the Python package and the native library. Engine errors carry the native
engine's message and the offending command. Native allocation failures are
``MemoryError`` subclasses so callers can shrink their batch and retry on
their own. Cancellation is not an error and has no class here.
"""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for every failure raised by image_bridge."""


# ---- configuration -------------------------------------------------------


class ConfigurationError(BridgeError):
    """The native library is missing, unloadable or incompatible."""


class PlatformNotSupportedError(ConfigurationError):
    pass


class LibraryNotFoundError(ConfigurationError):
    def __init__(self, searched: list[str]):
        self.searched = list(searched)
        paths = ", ".join(self.searched) or "<none>"
        super().__init__(f"The native engine library was not found. Searched: {paths}")


class LibraryLoadError(ConfigurationError):
    """A candidate file exists but the platform loader rejected it."""

    def __init__(self, path: str, native_error: str):
        self.path = path
        self.native_error = native_error
        super().__init__(f"Unable to load the native engine library from {path}: {native_error}")


class EntryPointNotFoundError(ConfigurationError):
    def __init__(self, name: str, library: str = "the native engine library"):
        self.name = name
        super().__init__(f"The entry point '{name}' was not found in {library}.")


class VersionMismatchError(ConfigurationError):
    def __init__(self, library_version: tuple[int, int, int], expected_version: tuple[int, int, int]):
        self.library_version = library_version
        self.expected_version = expected_version
        lib = ".".join(str(v) for v in library_version)
        exp = ".".join(str(v) for v in expected_version)
        super().__init__(f"Native library version {lib} is not compatible with image_bridge {exp}.")


class NotInitializedError(ConfigurationError):
    def __init__(self) -> None:
        super().__init__("The native function table has not been initialized.")


# ---- marshaling ------------------------------------------------------------


class MarshalingError(BridgeError):
    pass


class UnsupportedFormatError(MarshalingError):
    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Unsupported pixel format: {value!r}")


class IndexOutOfRangeError(MarshalingError, IndexError):
    def __init__(self, message: str = "The image list index is not valid."):
        super().__init__(message)


class UnknownImageFormatError(MarshalingError):
    def __init__(self, message: str = "The image uses an unknown format."):
        super().__init__(message)


class UnsupportedChannelCountError(MarshalingError):
    def __init__(self, message: str = "The output image has an unsupported number of channels."):
        super().__init__(message)


# ---- engine ----------------------------------------------------------------


class EngineError(BridgeError):
    """Error reported by the native engine while processing a command."""

    def __init__(self, message: str = "An unspecified error occurred when running the engine.", command: str = ""):
        self.command = command or ""
        super().__init__(message)


class InvalidParameterError(EngineError):
    def __init__(self, message: str = "An invalid parameter was passed to a native function."):
        super().__init__(message)


class UnknownNativeError(EngineError):
    def __init__(self, message: str = "An unspecified error occurred."):
        super().__init__(message)


# ---- resources / lifecycle -------------------------------------------------


class NativeResourceError(BridgeError):
    pass


class NativeOutOfMemoryError(NativeResourceError, MemoryError):
    def __init__(self, message: str = "The native engine ran out of memory."):
        super().__init__(message)


class ImageListCreationError(NativeResourceError):
    def __init__(self, message: str = "Failed to create the native image list."):
        super().__init__(message)


class ImageListClosedError(NativeResourceError):
    def __init__(self) -> None:
        super().__init__("The native image list handle is closed or invalid.")


class AlreadyRunningError(BridgeError, RuntimeError):
    def __init__(self) -> None:
        super().__init__("This engine instance is already running.")
