"""ctypes mirror of the native engine's C ABI.

All entry points use the C calling convention. Structures are laid out
sequentially with default alignment, matching the engine's headers.
"""

from __future__ import annotations

from ctypes import (
    CFUNCTYPE,
    POINTER,
    Structure,
    Union,
    c_char_p,
    c_float,
    c_int,
    c_ubyte,
    c_uint32,
    c_void_p,
)
from enum import IntEnum

ERROR_INFO_FIELD_SIZE = 256
IMAGE_DATA_VERSION = 1


class NativeStatus(IntEnum):
    OK = 0
    INVALID_PARAMETER = 1
    OUT_OF_MEMORY = 2
    UNKNOWN_IMAGE_FORMAT = 3
    ENGINE_ERROR = 4
    RESOURCE_PATH_INIT_FAILED = 5
    UNSUPPORTED_CHANNEL_COUNT = 6
    INDEX_OUT_OF_RANGE = 7
    UNKNOWN_ERROR = 8


class _RedGrayPlane(Union):
    # Gray and red are mutually exclusive and share the first plane slot.
    _fields_ = [
        ("red", POINTER(c_float)),
        ("gray", POINTER(c_float)),
    ]


class PixelData(Structure):
    _anonymous_ = ("_red_gray",)
    _fields_ = [
        ("_red_gray", _RedGrayPlane),
        ("green", POINTER(c_float)),
        ("blue", POINTER(c_float)),
        ("alpha", POINTER(c_float)),
    ]


class ImageData(Structure):
    _fields_ = [
        ("version", c_int),
        ("width", c_uint32),
        ("height", c_uint32),
        ("format", c_int),
        ("pixels", PixelData),
        ("name", c_void_p),
        ("name_length", c_int),
    ]

    def __init__(self) -> None:
        super().__init__()
        self.version = IMAGE_DATA_VERSION


class Options(Structure):
    # progress/abort stay NULL unless the caller asked for that feature.
    _fields_ = [
        ("command", c_char_p),
        ("resource_path", c_char_p),
        ("host_name", c_char_p),
        ("progress", POINTER(c_float)),
        ("abort", POINTER(c_ubyte)),
    ]


class ErrorInfo(Structure):
    _fields_ = [
        ("command_name", c_ubyte * ERROR_INFO_FIELD_SIZE),
        ("message", c_ubyte * ERROR_INFO_FIELD_SIZE),
    ]


# name -> prototype for every export the bridge binds.
PROTOTYPES = {
    "get_library_version": CFUNCTYPE(None, POINTER(c_int), POINTER(c_int), POINTER(c_int)),
    "create_image_list": CFUNCTYPE(c_void_p),
    "image_list_destroy": CFUNCTYPE(None, c_void_p),
    "image_list_clear": CFUNCTYPE(None, c_void_p),
    "image_list_get_count": CFUNCTYPE(c_uint32, c_void_p),
    "image_list_add": CFUNCTYPE(
        c_int, c_void_p, c_uint32, c_uint32, c_int, c_char_p, POINTER(PixelData), POINTER(c_int)
    ),
    "image_list_get_image_data": CFUNCTYPE(c_int, c_void_p, c_uint32, POINTER(ImageData)),
    "run": CFUNCTYPE(c_int, c_void_p, POINTER(Options), POINTER(ErrorInfo)),
}


def encode_text(value: str | None) -> bytes | None:
    """UTF-8 bytes for an optional native string; blank strings become NULL."""
    if value is None or not value.strip():
        return None
    return value.encode("utf-8")


def decode_fixed_buffer(data) -> str:
    """Decode a fixed-size byte field: drop trailing zero bytes, then UTF-8."""
    raw = bytes(data).rstrip(b"\x00")
    return raw.decode("utf-8", errors="replace")
