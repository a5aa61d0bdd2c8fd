"""Utility functions for the institute kernel."""

from institute_kernel.utils.hashing import (
    canonicalize_json,
    hash_audit_event,
    hash_payload,
    normalize_payload,
)

__all__ = [
    "canonicalize_json",
    "hash_audit_event",
    "hash_payload",
    "normalize_payload",
]
