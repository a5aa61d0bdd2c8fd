"""
Common base for read-side selectors.

Selectors only run SELECTs on the caller's session and hand back frozen
DTOs, never ORM rows. Any selector method that takes an ``Actor`` filters
through ``AccessGuard`` rather than doing its own role checks.
"""

from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from institute_kernel.db.base import Base

ModelT = TypeVar("ModelT", bound=Base)


class BaseSelector(Generic[ModelT]):

    def __init__(self, session: Session):
        self.session = session
