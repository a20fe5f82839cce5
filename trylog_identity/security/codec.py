"""URL-safe transport encoding for confirmation and reset tokens."""

from __future__ import annotations

import binascii
import re
from base64 import urlsafe_b64decode, urlsafe_b64encode

from ..domain.exceptions import TokenFormatError

_TRANSPORT_ALPHABET = re.compile(r"[A-Za-z0-9_-]*")


def encode_for_transport(raw: bytes) -> str:
    """Encode ``raw`` as unpadded URL-safe base64."""
    return urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_from_transport(value: str) -> bytes:
    """Reverse :func:`encode_for_transport`, restoring stripped padding."""
    if not _TRANSPORT_ALPHABET.fullmatch(value):
        raise TokenFormatError("invalid token character")
    if len(value) % 4 == 1:
        raise TokenFormatError("invalid token length")
    padded = value + "=" * (-len(value) % 4)
    try:
        return urlsafe_b64decode(padded.encode("ascii"))
    except binascii.Error as exc:
        raise TokenFormatError("invalid token encoding") from exc
