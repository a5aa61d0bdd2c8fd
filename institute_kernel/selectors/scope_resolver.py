"""
Module: institute_kernel.selectors.scope_resolver
Responsibility: Derive an account's scope (and the ``Actor`` value passed to
    every guarded operation) from its roles and records.
Architecture position: Kernel > Selectors.

Rules:
    - Blocked account -> unscoped.  The guard denies it anyway.
    - institute_admin -> global.
    - Any employee-class role -> the employment record's branch and
      department.  A missing or inactive employment record yields an
      unscoped actor (fail closed) and a warning.
    - student -> the student record's branch, which may be absent.

Nothing is cached: every call reads the store, so role or branch changes
take effect on the next call.
"""

from uuid import UUID

from institute_kernel.domain.identity import Role, is_employee
from institute_kernel.domain.scope import Actor, Scope
from institute_kernel.logging_config import get_logger
from institute_kernel.selectors.account_selector import AccountSelector
from institute_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.scope")


class ScopeResolver(BaseSelector):
    """Computes a fresh ``Scope``/``Actor`` for an account on every call."""

    def __init__(self, session):
        super().__init__(session)
        self._accounts = AccountSelector(session)

    def scope_of(self, account_id: UUID) -> Scope:
        """
        Raises:
            AccountNotFoundError: unknown account.
        """
        return self._scope_for(account_id, self._accounts.get_roles(account_id))

    def actor_for(self, account_id: UUID) -> Actor:
        """Build the explicit caller value for one incoming operation."""
        status = self._accounts.get_status(account_id)
        return Actor(
            account_id=account_id,
            status=status,
            scope=self._scope_for(account_id, status.roles),
        )

    def _scope_for(self, account_id: UUID, roles: frozenset[Role]) -> Scope:
        if not roles:
            return Scope.unscoped()
        if Role.INSTITUTE_ADMIN in roles:
            return Scope.global_scope()

        if is_employee(roles):
            employment = self._accounts.get_employment(account_id)
            if employment is None or not employment.is_active:
                logger.warning(
                    "scope_missing_employment",
                    extra={
                        "account_id": str(account_id),
                        "roles": sorted(r.value for r in roles),
                    },
                )
                return Scope.unscoped()
            return Scope.for_branch(employment.branch_id, employment.department)

        student = self._accounts.get_student_record(account_id)
        if student is None or student.branch_id is None:
            return Scope.unscoped()
        return Scope.for_branch(student.branch_id)
