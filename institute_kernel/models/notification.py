"""
Module: institute_kernel.models.notification
Responsibility: ORM persistence for notifications and per-account read state.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - A notification stores its targeting specification, never a recipient
      list.  Audience is evaluated at read time.
    - target_type limits which qualifier column is populated (check
      constraint mirrors NotificationTarget validation).
    - Read state is per (notification, account): UNIQUE(notification_id,
      account_id).  Reading never mutates the notification row.
    - Notification rows are immutable once written.
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
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from institute_kernel.db.base import Base, UUIDString
from institute_kernel.db.types import UTCDateTime
from institute_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from institute_kernel.domain.targeting import NotificationRecord, NotificationTarget


class NotificationModel(Base):
    """Persistent notification with its declarative target."""

    __tablename__ = "notifications"

    __table_args__ = (
        CheckConstraint(
            "target_type IN ('all', 'branch', 'department', 'role', 'user')",
            name="ck_notifications_valid_target_type",
        ),
        CheckConstraint(
            "(target_type = 'branch') = (target_branch_id IS NOT NULL) "
            "AND (target_type = 'department') = (target_department IS NOT NULL) "
            "AND (target_type = 'role') = (target_role IS NOT NULL) "
            "AND (target_type = 'user') = (target_user_id IS NOT NULL)",
            name="ck_notifications_target_qualifier",
        ),
        Index("idx_notifications_created", "created_at"),
        Index("idx_notifications_target", "target_type"),
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False, default="general")
    sent_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    target_type: Mapped[str] = mapped_column(String(20), nullable=False)
    target_branch_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("branches.id"),
        nullable=True,
    )
    target_department: Mapped[str | None] = mapped_column(String(100), nullable=True)
    target_role: Mapped[str | None] = mapped_column(String(30), nullable=True)
    target_user_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<Notification {self.id} target={self.target_type}>"

    def to_target(self) -> NotificationTarget:
        from institute_kernel.domain.targeting import parse_target

        return parse_target(
            self.target_type,
            branch_id=self.target_branch_id,
            department=self.target_department,
            role=self.target_role,
            user_id=self.target_user_id,
        )

    def to_dto(self) -> NotificationRecord:
        """Convert ORM model to frozen domain DTO."""
        from institute_kernel.domain.targeting import NotificationKind, NotificationRecord

        return NotificationRecord(
            notification_id=self.id,
            title=self.title,
            message=self.message,
            kind=NotificationKind(self.kind),
            target=self.to_target(),
            sent_by=self.sent_by,
            created_at=self.created_at,
        )

    @classmethod
    def from_target(
        cls,
        target: NotificationTarget,
        *,
        title: str,
        message: str,
        kind: str,
        sent_by: UUID | None,
        created_at: datetime,
    ) -> NotificationModel:
        return cls(
            title=title,
            message=message,
            kind=kind,
            sent_by=sent_by,
            target_type=target.target_type.value,
            target_branch_id=target.branch_id,
            target_department=target.department,
            target_role=target.role.value if target.role is not None else None,
            target_user_id=target.user_id,
            created_at=created_at,
        )


class NotificationReadModel(Base):
    """First-view receipt for one account on one notification."""

    __tablename__ = "notification_reads"

    __table_args__ = (
        UniqueConstraint(
            "notification_id", "account_id",
            name="uq_notification_reads_account",
        ),
        Index("idx_notification_reads_account", "account_id"),
    )

    notification_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("notifications.id"),
        nullable=False,
    )
    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )
    read_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<NotificationRead {self.notification_id} by {self.account_id}>"


# =============================================================================
# ORM-Level Immutability for Notifications
# =============================================================================


@event.listens_for(NotificationModel, "before_update")
def prevent_notification_update(mapper, connection, target):
    """Notifications are immutable once sent."""
    raise ImmutabilityViolationError(
        entity_type="Notification",
        entity_id=str(target.id),
        reason="notifications are immutable once sent",
    )


@event.listens_for(NotificationReadModel, "before_update")
def prevent_read_receipt_update(mapper, connection, target):
    """read_at records the first view only."""
    raise ImmutabilityViolationError(
        entity_type="NotificationRead",
        entity_id=str(target.id),
        reason="Read receipts record the first view and cannot be modified",
    )
