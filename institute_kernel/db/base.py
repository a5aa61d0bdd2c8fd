"""
Declarative bases for the kernel's ORM models.

Every table gets a uuid4 primary key stored as a 36-character string, and
every ``datetime`` column is a timezone-aware UTC column. Reference tables
(branches, accounts) extend :class:`TrackedBase`, which also records who
created and last changed the row.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, Numeric, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from institute_kernel.db.types import UTCDateTime, UUIDString

__all__ = ["Base", "TrackedBase", "UUID", "UUIDString", "UTCDateTime"]


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        UUID: UUIDString(),
        datetime: UTCDateTime(),
        Decimal: Numeric(12, 2),
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """Adds server-side created/updated stamps and the acting account ids."""

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(server_default=func.now(), onupdate=func.now())
    created_by_id: Mapped[UUID]
    updated_by_id: Mapped[UUID | None]
