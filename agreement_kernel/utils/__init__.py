"""Utility modules for the agreement kernel."""

from agreement_kernel.utils.hashing import (
    canonicalize_json,
    hash_bytes,
    hash_payload,
    to_json_safe,
)
from agreement_kernel.utils.locks import BookingLockRegistry

__all__ = [
    "BookingLockRegistry",
    "canonicalize_json",
    "hash_bytes",
    "hash_payload",
    "to_json_safe",
]
