"""
Upload validation for plant images.

Checks the declared MIME type and byte size of an upload before anything is
sent upstream, and base64-encodes accepted payloads for inline transmission.
"""
import base64
from dataclasses import dataclass
from typing import Optional

from ..config import DEFAULT_MAX_UPLOAD_BYTES
from ..errors import EmptyPayload, InvalidMediaType, PayloadTooLarge

ALLOWED_MIME_TYPES = (
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/heic",
    "image/heif",
)

MIME_ALIASES = {
    "image/jpg": "image/jpeg",
    "image/pjpeg": "image/jpeg",
}


@dataclass(frozen=True)
class EncodedImage:
    data: str
    mime_type: str
    size: int


def normalize_mime_type(mime_type: Optional[str]) -> str:
    """Lower-case, drop parameters (``; charset=...``) and resolve aliases."""
    value = (mime_type or "").split(";", 1)[0].strip().lower()
    return MIME_ALIASES.get(value, value)


def validate_upload(
    data: bytes,
    mime_type: Optional[str],
    size: Optional[int] = None,
    max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
) -> EncodedImage:
    """Validate an uploaded image and return it base64-encoded.

    `size` is the declared byte length; when omitted the length of `data`
    is used. Type is checked before size so a wrong format is always
    reported as such.
    """
    normalized = normalize_mime_type(mime_type)
    if normalized not in ALLOWED_MIME_TYPES:
        raise InvalidMediaType(mime_type or "", ALLOWED_MIME_TYPES)

    length = len(data) if size is None else max(size, len(data))
    if length > max_bytes:
        raise PayloadTooLarge(length, max_bytes)
    if length == 0:
        raise EmptyPayload()

    encoded = base64.b64encode(data).decode("utf-8")
    return EncodedImage(data=encoded, mime_type=normalized, size=length)
