"""Translate native status codes into image_bridge exceptions."""

from __future__ import annotations

from image_bridge.exceptions import (
    EngineError,
    IndexOutOfRangeError,
    InvalidParameterError,
    NativeOutOfMemoryError,
    UnknownImageFormatError,
    UnknownNativeError,
    UnsupportedChannelCountError,
)
from image_bridge.logger import get_logger

from .native_types import ErrorInfo, NativeStatus, decode_fixed_buffer

_logger = get_logger("native_errors")


def error_from_status(status: int, error_info: ErrorInfo | None = None) -> Exception | None:
    """Exception for ``status`` or None when the status is not a failure."""
    try:
        code = NativeStatus(int(status))
    except ValueError:
        return UnknownNativeError(f"An unspecified error occurred (status {status}).")

    if code == NativeStatus.OK:
        return None
    if code == NativeStatus.RESOURCE_PATH_INIT_FAILED:
        # Not fatal: the engine falls back to its built-in resources.
        _logger.debug("resource path init failed; continuing with built-in resources")
        return None
    if code == NativeStatus.INVALID_PARAMETER:
        return InvalidParameterError()
    if code == NativeStatus.OUT_OF_MEMORY:
        return NativeOutOfMemoryError()
    if code == NativeStatus.UNKNOWN_IMAGE_FORMAT:
        return UnknownImageFormatError()
    if code == NativeStatus.ENGINE_ERROR:
        if error_info is not None:
            message = decode_fixed_buffer(error_info.message)
            if message.strip():
                return EngineError(message, decode_fixed_buffer(error_info.command_name))
        return EngineError()
    if code == NativeStatus.UNSUPPORTED_CHANNEL_COUNT:
        return UnsupportedChannelCountError()
    if code == NativeStatus.INDEX_OUT_OF_RANGE:
        return IndexOutOfRangeError()
    return UnknownNativeError()


def check_status(status: int, error_info: ErrorInfo | None = None) -> None:
    error = error_from_status(status, error_info)
    if error is not None:
        raise error
