"""Canonical JSON and hashing helpers.

Envelopes go over the wire as canonical JSON so the same message always
serializes to the same bytes; scorecard uploads are fingerprinted with the
same SHA-256 helpers to make re-uploads idempotent.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes: sorted keys, compact, ASCII, UTF-8."""
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def content_address(obj: Any) -> str:
    """Content-address a JSON-serializable object as ``sha256:<hex>``."""
    return f"sha256:{sha256_hex(canonical_json_bytes(obj))}"


def file_checksum(data: bytes) -> str:
    """Checksum of raw file bytes, ``sha256:<hex>``."""
    return f"sha256:{sha256_hex(data)}"
