"""
Module: institute_kernel.models.branch
Responsibility: ORM persistence for branches, the organizational units that
    scope every employee-class query.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Branch code is unique and is the external lookup key.
    - An inactive branch accepts no new employment records and no new
      requests (enforced by IdentityService and RequestWorkflowService).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from institute_kernel.db.base import TrackedBase

if TYPE_CHECKING:
    from institute_kernel.domain.identity import BranchInfo


class BranchModel(TrackedBase):
    """A physical location of the institute."""

    __tablename__ = "branches"

    code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[str | None] = mapped_column(String(100), nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Branch {self.code}: {self.name}>"

    def to_dto(self) -> BranchInfo:
        from institute_kernel.domain.identity import BranchInfo

        return BranchInfo(
            branch_id=self.id,
            code=self.code,
            name=self.name,
            city=self.city,
            is_active=self.is_active,
        )
