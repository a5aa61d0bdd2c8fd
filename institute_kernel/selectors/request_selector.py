"""
Module: institute_kernel.selectors.request_selector
Responsibility: Read-only, guard-filtered access to employee requests.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Every returned request passed ``AccessGuard`` for READ.  A branch
      admin sees its branch; an employee sees its own requests; an
      institute admin sees everything.
    - Results are newest first.
"""

from collections import Counter
from uuid import UUID

from sqlalchemy import or_, select

from institute_kernel.domain.access import AccessGuard, Action, Resource, ResourceKind
from institute_kernel.domain.identity import Role
from institute_kernel.domain.outcomes import Outcome
from institute_kernel.domain.requests import RequestSnapshot, RequestStatus
from institute_kernel.domain.scope import Actor
from institute_kernel.exceptions import RequestNotFoundError
from institute_kernel.models.request import RequestModel
from institute_kernel.selectors.base import BaseSelector


def request_resource(row: RequestModel | RequestSnapshot) -> Resource:
    """The guard's view of a request: its snapshotted branch and requester."""
    return Resource(ResourceKind.REQUEST, branch_id=row.branch_id, owner_id=row.requester_id)


class RequestSelector(BaseSelector[RequestModel]):
    """Queries over employee requests, filtered by the access guard."""

    def __init__(self, session, guard: AccessGuard | None = None):
        super().__init__(session)
        self._guard = guard if guard is not None else AccessGuard()

    def get(self, actor: Actor, request_id: UUID) -> Outcome[RequestSnapshot]:
        """Single request, or NotFound / Unauthorized."""
        row = self.session.get(RequestModel, request_id)
        if row is None:
            return Outcome.failure(RequestNotFoundError(str(request_id)))
        denied = self._guard.check(actor, Action.READ, request_resource(row))
        if denied is not None:
            return Outcome.failure(denied)
        return Outcome.success(row.to_dto(), changed=False)

    def visible_to(
        self,
        actor: Actor,
        status: RequestStatus | None = None,
        limit: int | None = None,
    ) -> list[RequestSnapshot]:
        """All requests the actor may read, newest first."""
        if actor.is_blocked:
            return []

        query = select(RequestModel).order_by(
            RequestModel.created_at.desc(), RequestModel.id
        )
        if not actor.scope.is_global:
            candidates = [RequestModel.requester_id == actor.account_id]
            if actor.scope.branch_id is not None:
                candidates.append(RequestModel.branch_id == actor.scope.branch_id)
            query = query.where(or_(*candidates))
        if status is not None:
            query = query.where(RequestModel.status == status.value)

        rows = self.session.execute(query).scalars().all()
        visible = [
            row.to_dto()
            for row in rows
            if self._guard.can(actor, Action.READ, request_resource(row))
        ]
        return visible[:limit] if limit is not None else visible

    def counts_by_status(self, actor: Actor) -> dict[RequestStatus, int]:
        """Dashboard tallies over the actor's visible requests."""
        counts = Counter(r.status for r in self.visible_to(actor))
        return {status: counts.get(status, 0) for status in RequestStatus}

    def awaiting_action(self, actor: Actor) -> list[RequestSnapshot]:
        """Requests the actor can move forward right now."""
        if actor.is_blocked:
            return []
        if actor.has_role(Role.INSTITUTE_ADMIN):
            return self.visible_to(actor, RequestStatus.BRANCH_APPROVED)
        return [
            r for r in self.visible_to(actor, RequestStatus.PENDING)
            if self._guard.can(actor, Action.APPROVE, request_resource(r))
        ]
