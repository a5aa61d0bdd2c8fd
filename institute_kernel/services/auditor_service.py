"""
AuditorService: the append-only, hash-chained audit trail.

Every kernel mutation (provisioning, role changes, branch registry edits,
request submission and decisions, notification sends) appends one
``AuditEvent`` in the same transaction as the change itself. Each event's
hash covers its identifying columns, its payload hash and the previous
event's hash, so any edit made behind the ORM's back shows up in
:meth:`AuditorService.validate_chain`.

Sequence numbers come from ``SequenceService``, never from ``max(seq) + 1``.
The service flushes and never commits.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from institute_kernel.domain.clock import Clock, SystemClock
from institute_kernel.domain.identity import Role
from institute_kernel.exceptions import AuditChainBrokenError
from institute_kernel.logging_config import get_logger
from institute_kernel.models.audit_event import AuditAction, AuditEvent
from institute_kernel.services.sequence_service import SequenceService
from institute_kernel.utils.hashing import hash_audit_event, hash_payload, normalize_payload

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditTraceEntry:
    seq: int
    action: AuditAction
    occurred_at: datetime
    actor_id: UUID
    payload: dict[str, Any]
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """Audit history of one entity, oldest first."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return not self.entries

    @property
    def actions(self) -> tuple[AuditAction, ...]:
        return tuple(entry.action for entry in self.entries)

    @property
    def last_action(self) -> AuditAction | None:
        return self.entries[-1].action if self.entries else None


def _role_names(roles: Iterable[Role]) -> list[str]:
    return sorted(role.value for role in roles)


def _expected_hash(event: AuditEvent) -> str:
    return hash_audit_event(
        entity_type=event.entity_type,
        entity_id=str(event.entity_id),
        action=event.action,
        payload_hash=event.payload_hash,
        prev_hash=event.prev_hash,
    )


class AuditorService:

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)

    def _chain_head(self) -> str | None:
        return self._session.execute(
            select(AuditEvent.hash).order_by(AuditEvent.seq.desc()).limit(1)
        ).scalar_one_or_none()

    def _append(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        seq = self._sequences.next_value(SequenceService.AUDIT_EVENT)
        prev_hash = self._chain_head()
        stored_payload = normalize_payload(payload)
        payload_hash = hash_payload(stored_payload)

        event = AuditEvent(
            seq=seq,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action.value,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            payload=stored_payload,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
            hash=hash_audit_event(
                entity_type=entity_type,
                entity_id=str(entity_id),
                action=action.value,
                payload_hash=payload_hash,
                prev_hash=prev_hash,
            ),
        )
        self._session.add(event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "audit_action": action.value,
                "seq": seq,
            },
        )
        return event

    # -- accounts ---------------------------------------------------------

    def record_account_provisioned(self, account_id: UUID, roles: frozenset, actor_id: UUID) -> AuditEvent:
        return self._append(
            "Account", account_id, AuditAction.ACCOUNT_PROVISIONED, actor_id, {"roles": _role_names(roles)}
        )

    def record_profile_updated(self, account_id: UUID, fields: list[str], actor_id: UUID) -> AuditEvent:
        return self._append(
            "Account", account_id, AuditAction.PROFILE_UPDATED, actor_id, {"fields": sorted(fields)}
        )

    def record_roles_replaced(
        self,
        account_id: UUID,
        previous: frozenset,
        current: frozenset,
        actor_id: UUID,
    ) -> AuditEvent:
        """Replacing the role set with nothing is recorded as a block."""
        action = AuditAction.ROLES_REPLACED if current else AuditAction.ACCOUNT_BLOCKED
        return self._append(
            "Account",
            account_id,
            action,
            actor_id,
            {"previous": _role_names(previous), "current": _role_names(current)},
        )

    def record_employment_assigned(
        self,
        account_id: UUID,
        branch_id: UUID,
        department: str,
        actor_id: UUID,
    ) -> AuditEvent:
        return self._append(
            "Account",
            account_id,
            AuditAction.EMPLOYMENT_ASSIGNED,
            actor_id,
            {"branch_id": branch_id, "department": department},
        )

    # -- branches ---------------------------------------------------------

    def record_branch_created(self, branch_id: UUID, code: str, actor_id: UUID) -> AuditEvent:
        return self._append("Branch", branch_id, AuditAction.BRANCH_CREATED, actor_id, {"code": code})

    def record_branch_active_changed(self, branch_id: UUID, is_active: bool, actor_id: UUID) -> AuditEvent:
        action = AuditAction.BRANCH_ACTIVATED if is_active else AuditAction.BRANCH_DEACTIVATED
        return self._append("Branch", branch_id, action, actor_id)

    # -- requests ---------------------------------------------------------

    def record_request_submitted(
        self,
        request_id: UUID,
        request_type: str,
        branch_id: UUID | None,
        actor_id: UUID,
    ) -> AuditEvent:
        return self._append(
            "Request",
            request_id,
            AuditAction.REQUEST_SUBMITTED,
            actor_id,
            {"request_type": request_type, "branch_id": branch_id},
        )

    def record_request_transition(
        self,
        request_id: UUID,
        action: AuditAction,
        from_status: str,
        to_status: str,
        actor_id: UUID,
        reason: str | None = None,
    ) -> AuditEvent:
        payload: dict[str, Any] = {"from_status": from_status, "to_status": to_status}
        if reason is not None:
            payload["reason"] = reason
        return self._append("Request", request_id, action, actor_id, payload)

    # -- notifications ----------------------------------------------------

    def record_notification_sent(self, notification_id: UUID, target_type: str, actor_id: UUID) -> AuditEvent:
        return self._append(
            "Notification",
            notification_id,
            AuditAction.NOTIFICATION_SENT,
            actor_id,
            {"target_type": target_type},
        )

    # -- verification -----------------------------------------------------

    def validate_chain(self) -> bool:
        """
        Walk the whole chain in ``seq`` order and recompute every link.

        Returns True for an intact (or empty) chain. Raises
        ``AuditChainBrokenError`` at the first event whose hash, payload
        hash or back-link does not match.
        """
        events = self._session.execute(select(AuditEvent).order_by(AuditEvent.seq)).scalars().all()

        previous_hash: str | None = None
        for event in events:
            expected = _expected_hash(event)
            if event.hash != expected or hash_payload(event.payload or {}) != event.payload_hash:
                self._broken(event, expected, event.hash)
            if event.prev_hash != previous_hash:
                self._broken(event, str(previous_hash), str(event.prev_hash))
            previous_hash = event.hash

        logger.info("audit_chain_valid", extra={"event_count": len(events)})
        return True

    def _broken(self, event: AuditEvent, expected: str, actual: str) -> None:
        logger.critical("audit_chain_broken", extra={"seq": event.seq, "entity_type": event.entity_type})
        raise AuditChainBrokenError(str(event.id), expected, actual)

    def get_trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        events = self._session.execute(
            select(AuditEvent)
            .where(AuditEvent.entity_type == entity_type, AuditEvent.entity_id == entity_id)
            .order_by(AuditEvent.seq)
        ).scalars()
        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=tuple(
                AuditTraceEntry(
                    seq=event.seq,
                    action=AuditAction(event.action),
                    occurred_at=event.occurred_at,
                    actor_id=event.actor_id,
                    payload=event.payload or {},
                    hash=event.hash,
                )
                for event in events
            ),
        )
