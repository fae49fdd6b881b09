"""
SHA-256 fingerprints for audit payloads and stored artifacts.

Audit payloads are hashed over a canonical JSON encoding (sorted keys, no
whitespace) so the same event always yields the same digest regardless of
dict ordering. Signature PNGs and generated PDFs are hashed as raw bytes.
"""

import hashlib
import json
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def _encode_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        # 1450.00 and 1450.0 must hash alike
        return str(value.normalize())
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.hex()
    raise TypeError(f"Cannot encode {type(value).__name__} in an audit payload")


def canonicalize_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_encode_value)


def to_json_safe(data: dict) -> dict:
    """Plain-JSON copy of ``data`` for storage in a JSON column."""
    return json.loads(canonicalize_json(data))


def hash_payload(payload: dict) -> str:
    """Hex SHA-256 of the canonical encoding of ``payload``."""
    return hash_bytes(canonicalize_json(payload).encode("utf-8"))


def hash_bytes(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()
