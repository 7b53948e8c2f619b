"""Conversions between raw bytes and base64 data-URIs."""

import base64
import binascii
import re
from typing import Any, Tuple

from errors import InvalidImageFormatError

DATA_URI_PATTERN = re.compile(r"^data:([^;,]+);base64,(.+)$", re.DOTALL)
IMAGE_DATA_URI_PATTERN = re.compile(r"^data:image/[a-z]+;base64,")


def decode_data_uri(value: Any) -> Tuple[str, bytes]:
    if not isinstance(value, str):
        raise InvalidImageFormatError("Invalid base64 string")
    match = DATA_URI_PATTERN.match(value)
    if not match:
        raise InvalidImageFormatError("Invalid base64 string")
    mime_type, payload = match.group(1).strip(), match.group(2)
    if not mime_type:
        raise InvalidImageFormatError("Invalid base64 string")
    try:
        raw = base64.b64decode(payload)
    except (binascii.Error, ValueError) as e:
        raise InvalidImageFormatError(f"Invalid base64 payload: {e}") from e
    return mime_type, raw


def encode_data_uri(mime_type: str, data: bytes) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def is_image_data_uri(value: Any) -> bool:
    """Only gate applied before a base64 image is accepted into storage."""
    return isinstance(value, str) and bool(IMAGE_DATA_URI_PATTERN.match(value))


def extension_for_mime(mime_type: str) -> str:
    # "image/png; charset=binary" -> "png"
    base = mime_type.split(";", 1)[0].strip()
    return base.split("/", 1)[-1]
