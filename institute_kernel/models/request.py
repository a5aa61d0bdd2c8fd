"""
Module: institute_kernel.models.request
Responsibility: ORM persistence for employee requests and their two-tier
    approval trail.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Status values are limited by a check constraint; transitions are
      enforced by RequestWorkflowService with compare-and-set updates.
    - rejection_reason is present iff status is 'rejected' (check constraint).
    - branch_id is a snapshot of the requester's branch at submission.
    - Terminal requests (admin_approved, rejected) cannot be modified or
      deleted through the ORM.

Failure modes:
    - IntegrityError if a write would break the rejection-reason pairing.
    - ImmutabilityViolationError on ORM UPDATE/DELETE of a terminal request.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    event,
    inspect,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.orm.attributes import get_history

from institute_kernel.db.base import Base, UUIDString
from institute_kernel.db.types import UTCDateTime
from institute_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from institute_kernel.domain.requests import RequestSnapshot

_TERMINAL = ("admin_approved", "rejected")


class RequestModel(Base):
    """Persistent employee request.

    Contract:
        Status changes go through conditional UPDATEs issued by
        RequestWorkflowService, never through attribute assignment.

    Guarantees:
        - rejection_reason IS NOT NULL exactly when status = 'rejected'.
        - Each approval tier records who acted and when.
    """

    __tablename__ = "employee_requests"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'branch_approved', 'admin_approved', 'rejected')",
            name="ck_employee_requests_valid_status",
        ),
        CheckConstraint(
            "request_type IN ('leave', 'problem', 'resource', 'other')",
            name="ck_employee_requests_valid_type",
        ),
        CheckConstraint(
            "(status = 'rejected' AND rejection_reason IS NOT NULL) "
            "OR (status <> 'rejected' AND rejection_reason IS NULL)",
            name="ck_employee_requests_rejection_reason",
        ),
        Index("idx_employee_requests_branch_status", "branch_id", "status"),
        Index("idx_employee_requests_requester", "requester_id", "created_at"),
    )

    requester_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )
    request_type: Mapped[str] = mapped_column(String(20), nullable=False)
    subject: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    branch_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("branches.id"),
        nullable=True,
    )
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="pending")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    branch_approved_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    branch_approved_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    admin_approved_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    admin_approved_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    rejected_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Request {self.id} {self.request_type} status={self.status}>"

    def to_dto(self) -> RequestSnapshot:
        """Convert ORM model to frozen domain DTO."""
        from institute_kernel.domain.requests import (
            RequestSnapshot,
            RequestStatus,
            RequestType,
        )

        return RequestSnapshot(
            request_id=self.id,
            requester_id=self.requester_id,
            request_type=RequestType(self.request_type),
            subject=self.subject,
            description=self.description,
            status=RequestStatus(self.status),
            branch_id=self.branch_id,
            created_at=self.created_at,
            branch_approved_by=self.branch_approved_by,
            branch_approved_at=self.branch_approved_at,
            admin_approved_by=self.admin_approved_by,
            admin_approved_at=self.admin_approved_at,
            rejected_by=self.rejected_by,
            rejected_at=self.rejected_at,
            rejection_reason=self.rejection_reason,
        )


# =============================================================================
# ORM-Level Immutability for Terminal Requests
# =============================================================================


@event.listens_for(RequestModel, "before_update")
def prevent_terminal_request_update(mapper, connection, target):
    """Block attribute changes on a request that was already terminal."""
    history = get_history(target, "status")
    if history.deleted:
        was_terminal = history.deleted[0] in _TERMINAL
    else:
        was_terminal = target.status in _TERMINAL
    if not was_terminal:
        return

    for attr in inspect(target).attrs:
        if attr.key == "updated_at":
            continue
        if attr.history.has_changes():
            raise ImmutabilityViolationError(
                entity_type="Request",
                entity_id=str(target.id),
                reason=f"Cannot modify field '{attr.key}' on a finalized request",
            )


@event.listens_for(RequestModel, "before_delete")
def prevent_request_delete(mapper, connection, target):
    """Requests are never deleted; rejection is the only way out."""
    raise ImmutabilityViolationError(
        entity_type="Request",
        entity_id=str(target.id),
        reason="Requests cannot be deleted",
    )
