"""Text extraction for uploaded files.

Only text-based payloads are decoded; binary formats come through as
whatever UTF-8 survives lenient decoding, and an empty result is rejected
by the caller.
"""

import hashlib
import re

_WHITESPACE = re.compile(r"\s+")


def decode_to_text(data: bytes) -> str:
    """Decode raw bytes as UTF-8, replacing undecodable sequences."""
    return data.decode("utf-8", errors="replace")


def normalize_text(text: str) -> str:
    """Replace NUL bytes, collapse whitespace runs to one space, strip."""
    return _WHITESPACE.sub(" ", text.replace("\x00", " ")).strip()


def extract_text(data: bytes) -> str:
    """Decode and normalize an uploaded file."""
    return normalize_text(decode_to_text(data))


def checksum(data: bytes) -> str:
    """SHA-256 hex digest of the raw bytes."""
    return hashlib.sha256(data).hexdigest()
