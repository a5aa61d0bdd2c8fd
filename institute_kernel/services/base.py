"""
Common base for the kernel's write-side services.

A service works inside the caller's transaction: it adds and flushes,
and isolates partial work with ``session.begin_nested()``, but it never
commits or rolls back the outer transaction. Reads that return DTOs
belong in ``institute_kernel.selectors``.
"""

from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from institute_kernel.db.base import Base

ModelT = TypeVar("ModelT", bound=Base)


class BaseService(Generic[ModelT]):
    """Parameterized by the ORM model the service primarily writes."""

    def __init__(self, session: Session):
        self.session = session
