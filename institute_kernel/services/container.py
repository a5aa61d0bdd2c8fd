"""
KernelServices -- one session's worth of wired services.

The kernel never reads configuration.  Callers (normally
``institute_config.bridges.build_kernel_services``) pass in the compiled
access matrix, code prefixes, departments and notification kinds.
Everything here shares one session, one clock and one auditor so a single
commit covers state and audit trail.
"""

from __future__ import annotations

from collections.abc import Collection, Mapping
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from institute_kernel.domain.access import AccessGuard, AccessMatrix
from institute_kernel.domain.clock import Clock, SystemClock
from institute_kernel.domain.identity import Role
from institute_kernel.domain.scope import Actor
from institute_kernel.domain.targeting import NotificationKind
from institute_kernel.selectors.account_selector import AccountSelector
from institute_kernel.selectors.notification_selector import NotificationSelector
from institute_kernel.selectors.request_selector import RequestSelector
from institute_kernel.selectors.scope_resolver import ScopeResolver
from institute_kernel.services.auditor_service import AuditorService
from institute_kernel.services.identity_service import IdentityService
from institute_kernel.services.notification_service import NotificationService
from institute_kernel.services.request_workflow import RequestWorkflowService


@dataclass(frozen=True)
class KernelServices:
    session: Session
    clock: Clock
    guard: AccessGuard
    auditor: AuditorService
    identity: IdentityService
    requests: RequestWorkflowService
    notifications: NotificationService
    accounts: AccountSelector
    scopes: ScopeResolver
    request_reads: RequestSelector
    inbox: NotificationSelector

    @classmethod
    def create(
        cls,
        session: Session,
        *,
        matrix: AccessMatrix | None = None,
        clock: Clock | None = None,
        employee_code_prefix: str = "EMP-",
        student_code_prefix: str = "STU-",
        role_departments: Mapping[Role, str] | None = None,
        departments: Collection[str] | None = None,
        notification_kinds: Collection[NotificationKind] | None = None,
    ) -> KernelServices:
        clock = clock or SystemClock()
        guard = AccessGuard(matrix)
        auditor = AuditorService(session, clock)
        return cls(
            session=session,
            clock=clock,
            guard=guard,
            auditor=auditor,
            identity=IdentityService(
                session,
                auditor,
                guard,
                clock,
                employee_code_prefix=employee_code_prefix,
                student_code_prefix=student_code_prefix,
                role_departments=role_departments,
                departments=departments,
            ),
            requests=RequestWorkflowService(session, auditor, guard, clock),
            notifications=NotificationService(session, auditor, guard, clock, kinds=notification_kinds),
            accounts=AccountSelector(session, guard),
            scopes=ScopeResolver(session),
            request_reads=RequestSelector(session, guard),
            inbox=NotificationSelector(session),
        )

    def actor(self, account_id: UUID) -> Actor:
        """Resolve a fresh actor for one incoming call."""
        return self.scopes.actor_for(account_id)
