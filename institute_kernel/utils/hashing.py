"""
Canonical JSON and SHA-256 helpers for the audit chain.

An audit link is reproducible from the stored row alone: the payload is
stored in its canonical form, and the event hash covers the identifying
columns plus the hash of the event before it.
"""

import hashlib
import json
from datetime import date
from enum import Enum
from typing import Any
from uuid import UUID

GENESIS = "GENESIS"
_LINK_SEPARATOR = "|"


def _encode(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(str(item) for item in value)
    raise TypeError(f"{type(value).__name__} has no canonical JSON form")


def canonicalize_json(data: Any) -> str:
    """Sorted keys, no whitespace, and a fixed rendering for UUIDs, dates and sets."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_encode)


def normalize_payload(payload: dict | None) -> dict:
    """Return the plain-JSON form of ``payload``, which is what gets stored and hashed."""
    return json.loads(canonicalize_json(payload or {}))


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def hash_payload(payload: dict) -> str:
    return _sha256(canonicalize_json(payload))


def hash_audit_event(
    *,
    entity_type: str,
    entity_id: str,
    action: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """Hash one chain link. The first event links to ``GENESIS``."""
    return _sha256(
        _LINK_SEPARATOR.join(
            (entity_type, str(entity_id), action, payload_hash, prev_hash or GENESIS)
        )
    )
