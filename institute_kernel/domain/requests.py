"""
Request workflow domain types (``institute_kernel.domain.requests``).

Responsibility
--------------
Pure value objects for the two-tier request approval workflow: the status
lifecycle, the transition table, and the immutable request snapshot
returned by services and selectors.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``REQUEST_TRANSITIONS`` defines the only legal status changes:

      pending ---------> branch_approved ---------> admin_approved
         |                      |
         +------> rejected <----+

  Terminal statuses (``admin_approved``, ``rejected``) have no outgoing
  edges.  An institute admin cannot skip the branch tier.
* ``rejection_reason`` is set if and only if ``status == rejected``.
* ``branch_id`` is a snapshot of the requester's branch at submission,
  not a live join.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from institute_kernel.exceptions import (
    InvalidTransitionError,
    RequestAlreadyFinalizedError,
)


class RequestStatus(str, Enum):
    """Request lifecycle states."""

    PENDING = "pending"
    BRANCH_APPROVED = "branch_approved"
    ADMIN_APPROVED = "admin_approved"
    REJECTED = "rejected"


REQUEST_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.PENDING: frozenset({
        RequestStatus.BRANCH_APPROVED,
        RequestStatus.REJECTED,
    }),
    RequestStatus.BRANCH_APPROVED: frozenset({
        RequestStatus.ADMIN_APPROVED,
        RequestStatus.REJECTED,
    }),
    RequestStatus.ADMIN_APPROVED: frozenset(),
    RequestStatus.REJECTED: frozenset(),
}

TERMINAL_REQUEST_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.ADMIN_APPROVED,
    RequestStatus.REJECTED,
})


class RequestType(str, Enum):
    """What the employee is asking for."""

    LEAVE = "leave"
    PROBLEM = "problem"
    RESOURCE = "resource"
    OTHER = "other"


def is_legal_transition(current: RequestStatus, target: RequestStatus) -> bool:
    return target in REQUEST_TRANSITIONS.get(current, frozenset())


def transition_error(
    request_id: UUID | str,
    current: RequestStatus,
    target: RequestStatus,
) -> InvalidTransitionError | None:
    """
    Check one edge of the state machine.

    Returns None for a legal edge, ``RequestAlreadyFinalizedError`` when
    ``current`` is terminal, otherwise ``InvalidTransitionError``.
    """
    if current in TERMINAL_REQUEST_STATUSES:
        return RequestAlreadyFinalizedError(str(request_id), current.value, target.value)
    if not is_legal_transition(current, target):
        return InvalidTransitionError(str(request_id), current.value, target.value)
    return None


@dataclass(frozen=True)
class RequestSnapshot:
    """Immutable view of a request row."""

    request_id: UUID
    requester_id: UUID
    request_type: RequestType
    subject: str
    description: str
    status: RequestStatus
    branch_id: UUID | None
    created_at: datetime | None = None
    branch_approved_by: UUID | None = None
    branch_approved_at: datetime | None = None
    admin_approved_by: UUID | None = None
    admin_approved_at: datetime | None = None
    rejected_by: UUID | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_REQUEST_STATUSES
