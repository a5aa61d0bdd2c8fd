"""Database layer - engine, base classes, and portable column types."""

from institute_kernel.db.base import UUID, Base, TrackedBase
from institute_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)
from institute_kernel.db.types import UTCDateTime, UUIDString

__all__ = [
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UTCDateTime",
    "UUID",
]
