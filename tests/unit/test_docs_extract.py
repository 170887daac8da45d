"""Unit tests for text extraction and normalization."""

import hashlib

from policyrag.docs.extract import checksum, decode_to_text, extract_text, normalize_text


def test_normalize_collapses_whitespace_and_strips() -> None:
    """Test that whitespace runs collapse to one space and ends are stripped."""
    assert normalize_text("  Policy\n\n  Section 1\t\tCover  ") == "Policy Section 1 Cover"


def test_normalize_replaces_nul_bytes() -> None:
    """Test that NUL characters become spaces before collapsing."""
    assert normalize_text("a\x00\x00b") == "a b"


def test_decode_replaces_invalid_utf8() -> None:
    """Test that undecodable bytes do not raise."""
    text = decode_to_text(b"ok \xff\xfe end")

    assert text.startswith("ok ")
    assert text.endswith(" end")


def test_extract_binary_noise_only_is_empty() -> None:
    """Test that NUL-only payloads normalize to empty text."""
    assert extract_text(b"\x00\x00\n\x00 ") == ""


def test_checksum_is_sha256_hex() -> None:
    """Test that checksum matches hashlib's SHA-256."""
    data = b"policy bytes"

    assert checksum(data) == hashlib.sha256(data).hexdigest()
