"""
RequestWorkflowService -- two-tier approval of employee requests.

Responsibility:
    Submission, branch-tier approval, institute-tier approval and
    rejection of employee requests.  Each operation checks the access
    guard, checks the state machine, then applies the status change with
    a compare-and-set UPDATE so that concurrent deciders cannot both win.

Architecture position:
    Kernel > Services.  May import from domain/, models/, selectors/, db/.

Invariants enforced:
    - Only edges of ``REQUEST_TRANSITIONS`` are applied.  An institute
      admin cannot skip the branch tier.
    - Terminal requests are never re-transitioned.  Re-approving at the
      same tier is an idempotent no-op (``Outcome.changed`` is False).
    - ``UPDATE ... WHERE id = :id AND status = :expected``: exactly one of
      two racing deciders changes the row.  The loser gets a no-op (same
      target, idempotent operation) or ``ConflictError``.
    - rejection_reason is stored verbatim and only with status 'rejected'.
    - branch_id is copied from the requester's employment record at
      submission and never follows later branch moves.

Failure modes:
    All business declines are returned as ``Outcome.failure``:
    UnauthorizedError, RequestNotFoundError, InvalidTransitionError,
    RequestAlreadyFinalizedError, MissingRejectionReasonError,
    ValidationError, BranchRequiredError, InactiveBranchError,
    ConflictError.  Store faults propagate.

Audit relevance:
    Every applied transition records an AuditEvent in the same
    transaction.  Idempotent no-ops and declines record none.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from institute_kernel.domain.access import AccessGuard, Action
from institute_kernel.domain.clock import Clock, SystemClock
from institute_kernel.domain.identity import Role, is_employee
from institute_kernel.domain.outcomes import Outcome
from institute_kernel.domain.requests import (
    RequestSnapshot,
    RequestStatus,
    RequestType,
    transition_error,
)
from institute_kernel.domain.scope import Actor
from institute_kernel.exceptions import (
    BranchRequiredError,
    ConflictError,
    InactiveBranchError,
    InstituteKernelError,
    MissingRejectionReasonError,
    RequestNotFoundError,
    UnauthorizedError,
    ValidationError,
)
from institute_kernel.logging_config import LogContext, get_logger
from institute_kernel.models.account import EmploymentModel
from institute_kernel.models.audit_event import AuditAction
from institute_kernel.models.branch import BranchModel
from institute_kernel.models.request import RequestModel
from institute_kernel.selectors.request_selector import request_resource
from institute_kernel.services.auditor_service import AuditorService
from institute_kernel.services.base import BaseService

logger = get_logger("services.request_workflow")


class RequestWorkflowService(BaseService[RequestModel]):
    """Applies request lifecycle operations on behalf of an explicit actor."""

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        guard: AccessGuard | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._auditor = auditor
        self._guard = guard if guard is not None else AccessGuard()
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(
        self,
        actor: Actor,
        request_type: RequestType | str,
        subject: str,
        description: str,
    ) -> Outcome[RequestSnapshot]:
        """
        Create a pending request for an employee-class actor.

        The request's branch is the actor's employment branch right now.
        """
        with LogContext.bind(actor_id=str(actor.account_id)):
            if actor.is_blocked or not is_employee(actor.roles):
                return self._decline(UnauthorizedError(
                    str(actor.account_id),
                    Action.WRITE.value,
                    "request",
                    "only employees submit requests",
                ))

            try:
                parsed_type = RequestType(request_type)
            except ValueError:
                return self._decline(ValidationError("request_type", f"unknown type {request_type!r}"))
            if not subject or not subject.strip():
                return self._decline(ValidationError("subject", "must not be blank"))
            if not description or not description.strip():
                return self._decline(ValidationError("description", "must not be blank"))

            employment = self.session.execute(
                select(EmploymentModel).where(EmploymentModel.account_id == actor.account_id)
            ).scalar_one_or_none()
            if employment is None:
                return self._decline(BranchRequiredError(
                    str(actor.account_id),
                    tuple(sorted(r.value for r in actor.roles)),
                ))
            branch = self.session.get(BranchModel, employment.branch_id)
            if branch is None or not branch.is_active:
                return self._decline(InactiveBranchError(str(employment.branch_id)))

            row = RequestModel(
                requester_id=actor.account_id,
                request_type=parsed_type.value,
                subject=subject.strip(),
                description=description,
                branch_id=employment.branch_id,
                status=RequestStatus.PENDING.value,
            )
            denied = self._guard.check(actor, Action.WRITE, request_resource(row))
            if denied is not None:
                return self._decline(denied)

            now = self._clock.now()
            row.created_at = now
            row.updated_at = now
            self.session.add(row)
            self.session.flush()

            self._auditor.record_request_submitted(
                row.id, parsed_type.value, row.branch_id, actor.account_id
            )
            logger.info(
                "request_submitted",
                extra={
                    "request_id": str(row.id),
                    "request_type": parsed_type.value,
                    "branch_id": str(row.branch_id),
                },
            )
            return Outcome.success(row.to_dto())

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def branch_approve(self, actor: Actor, request_id: UUID) -> Outcome[RequestSnapshot]:
        """pending -> branch_approved, by an approver scoped to the request's branch."""
        with LogContext.bind(actor_id=str(actor.account_id), request_id=str(request_id)):
            row = self._load(request_id)
            if row is None:
                return self._decline(RequestNotFoundError(str(request_id)))

            denied = self._guard.check(actor, Action.APPROVE, request_resource(row))
            if denied is not None:
                return self._decline(denied)

            current = RequestStatus(row.status)
            if current == RequestStatus.BRANCH_APPROVED:
                return self._replay(row)
            error = transition_error(request_id, current, RequestStatus.BRANCH_APPROVED)
            if error is not None:
                return self._decline(error)

            now = self._clock.now()
            return self._compare_and_set(
                actor,
                row,
                expected=current,
                target=RequestStatus.BRANCH_APPROVED,
                values={"branch_approved_by": actor.account_id, "branch_approved_at": now},
                audit_action=AuditAction.REQUEST_BRANCH_APPROVED,
                idempotent=True,
            )

    def admin_approve(self, actor: Actor, request_id: UUID) -> Outcome[RequestSnapshot]:
        """branch_approved -> admin_approved, by an institute admin only."""
        with LogContext.bind(actor_id=str(actor.account_id), request_id=str(request_id)):
            row = self._load(request_id)
            if row is None:
                return self._decline(RequestNotFoundError(str(request_id)))

            denied = self._guard.check(actor, Action.APPROVE, request_resource(row))
            if denied is None and not actor.has_role(Role.INSTITUTE_ADMIN):
                denied = UnauthorizedError(
                    str(actor.account_id),
                    Action.APPROVE.value,
                    "request",
                    "final approval requires institute_admin",
                )
            if denied is not None:
                return self._decline(denied)

            current = RequestStatus(row.status)
            if current == RequestStatus.ADMIN_APPROVED:
                return self._replay(row)
            error = transition_error(request_id, current, RequestStatus.ADMIN_APPROVED)
            if error is not None:
                return self._decline(error)

            now = self._clock.now()
            return self._compare_and_set(
                actor,
                row,
                expected=current,
                target=RequestStatus.ADMIN_APPROVED,
                values={"admin_approved_by": actor.account_id, "admin_approved_at": now},
                audit_action=AuditAction.REQUEST_ADMIN_APPROVED,
                idempotent=True,
            )

    def reject(self, actor: Actor, request_id: UUID, reason: str) -> Outcome[RequestSnapshot]:
        """pending | branch_approved -> rejected, with a mandatory reason."""
        with LogContext.bind(actor_id=str(actor.account_id), request_id=str(request_id)):
            if reason is None or not reason.strip():
                return self._decline(MissingRejectionReasonError(str(request_id)))

            row = self._load(request_id)
            if row is None:
                return self._decline(RequestNotFoundError(str(request_id)))

            denied = self._guard.check(actor, Action.APPROVE, request_resource(row))
            if denied is not None:
                return self._decline(denied)

            current = RequestStatus(row.status)
            error = transition_error(request_id, current, RequestStatus.REJECTED)
            if error is not None:
                return self._decline(error)

            now = self._clock.now()
            return self._compare_and_set(
                actor,
                row,
                expected=current,
                target=RequestStatus.REJECTED,
                values={
                    "rejected_by": actor.account_id,
                    "rejected_at": now,
                    "rejection_reason": reason,
                },
                audit_action=AuditAction.REQUEST_REJECTED,
                idempotent=False,
                reason=reason,
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load(self, request_id: UUID, *, fresh: bool = False) -> RequestModel | None:
        query = select(RequestModel).where(RequestModel.id == request_id)
        if fresh:
            query = query.execution_options(populate_existing=True)
        return self.session.execute(query).scalar_one_or_none()

    def _compare_and_set(
        self,
        actor: Actor,
        row: RequestModel,
        *,
        expected: RequestStatus,
        target: RequestStatus,
        values: dict[str, Any],
        audit_action: AuditAction,
        idempotent: bool,
        reason: str | None = None,
    ) -> Outcome[RequestSnapshot]:
        request_id = row.id
        result = self.session.execute(
            update(RequestModel)
            .where(
                RequestModel.id == request_id,
                RequestModel.status == expected.value,
            )
            .values(status=target.value, updated_at=self._clock.now(), **values)
            .execution_options(synchronize_session=False)
        )

        fresh = self._load(request_id, fresh=True)
        if result.rowcount != 1:
            actual = RequestStatus(fresh.status)
            if idempotent and actual == target:
                return self._replay(fresh)
            logger.warning(
                "request_transition_conflict",
                extra={
                    "expected_status": expected.value,
                    "actual_status": actual.value,
                    "target_status": target.value,
                },
            )
            return Outcome.failure(ConflictError(str(request_id), expected.value, actual.value))

        self._auditor.record_request_transition(
            request_id,
            audit_action,
            expected.value,
            target.value,
            actor.account_id,
            reason=reason,
        )
        logger.info(
            "request_transitioned",
            extra={"from_status": expected.value, "to_status": target.value},
        )
        return Outcome.success(fresh.to_dto())

    def _replay(self, row: RequestModel) -> Outcome[RequestSnapshot]:
        logger.info("request_transition_replayed", extra={"status": row.status})
        return Outcome.success(row.to_dto(), changed=False)

    def _decline(self, error: InstituteKernelError) -> Outcome[RequestSnapshot]:
        logger.warning(
            "request_action_declined",
            extra={"error_code": error.code, "detail": str(error)},
        )
        return Outcome.failure(error)
