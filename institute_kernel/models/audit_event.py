"""
Audit events: the append-only, hash-chained record of every kernel mutation.

``hash`` covers ``entity_type | entity_id | action | payload_hash |
prev_hash`` and is computed by ``AuditorService``; this module only stores
it. Rows are never updated or deleted through the ORM; the mapper
listeners below refuse both.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, Index, String, event
from sqlalchemy.orm import Mapped, mapped_column

from institute_kernel.db.base import Base
from institute_kernel.exceptions import ImmutabilityViolationError


class AuditAction(str, Enum):
    ACCOUNT_PROVISIONED = "account_provisioned"
    PROFILE_UPDATED = "profile_updated"
    ROLES_REPLACED = "roles_replaced"
    ACCOUNT_BLOCKED = "account_blocked"
    EMPLOYMENT_ASSIGNED = "employment_assigned"

    BRANCH_CREATED = "branch_created"
    BRANCH_ACTIVATED = "branch_activated"
    BRANCH_DEACTIVATED = "branch_deactivated"

    REQUEST_SUBMITTED = "request_submitted"
    REQUEST_BRANCH_APPROVED = "request_branch_approved"
    REQUEST_ADMIN_APPROVED = "request_admin_approved"
    REQUEST_REJECTED = "request_rejected"

    NOTIFICATION_SENT = "notification_sent"


class AuditEvent(Base):
    __tablename__ = "audit_events"
    __table_args__ = (
        Index("idx_audit_events_entity", "entity_type", "entity_id"),
        Index("idx_audit_events_action", "action"),
        Index("idx_audit_events_occurred_at", "occurred_at"),
    )

    seq: Mapped[int] = mapped_column(unique=True)
    # "Account", "Branch", "Request" or "Notification"
    entity_type: Mapped[str] = mapped_column(String(50))
    entity_id: Mapped[UUID]
    action: Mapped[str] = mapped_column(String(50))
    actor_id: Mapped[UUID]
    occurred_at: Mapped[datetime]
    payload: Mapped[dict | None] = mapped_column(JSON)
    payload_hash: Mapped[str] = mapped_column(String(64))
    # None only for the first event ever written
    prev_hash: Mapped[str | None] = mapped_column(String(64))
    hash: Mapped[str] = mapped_column(String(64))

    def __repr__(self) -> str:
        return f"<AuditEvent #{self.seq} {self.action} {self.entity_type}:{self.entity_id}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None


def _refuse(operation: str):
    def listener(mapper, connection, target: AuditEvent) -> None:
        raise ImmutabilityViolationError(
            entity_type="AuditEvent",
            entity_id=str(target.id),
            reason=f"audit events cannot be {operation}",
        )

    return listener


event.listen(AuditEvent, "before_update", _refuse("modified"))
event.listen(AuditEvent, "before_delete", _refuse("deleted"))
