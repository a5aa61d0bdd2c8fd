"""
Module: institute_kernel.selectors.account_selector
Responsibility: Read-only access to accounts, role sets, employment and
    student records, and branches.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Role sets are read fresh from role_assignments on every call.  An
      account with zero role rows is reported as ``Blocked``.
    - Unknown ids raise the matching NotFoundError; callers fail closed.
"""

from uuid import UUID

from sqlalchemy import select

from institute_kernel.domain.access import AccessGuard, Action, Resource, ResourceKind
from institute_kernel.domain.identity import (
    AccountStatus,
    BranchInfo,
    EmploymentRecord,
    Profile,
    Role,
    StudentRecord,
    parse_roles,
    status_from_roles,
)
from institute_kernel.domain.scope import Actor
from institute_kernel.domain.targeting import AudienceMember
from institute_kernel.exceptions import AccountNotFoundError, BranchNotFoundError
from institute_kernel.models.account import (
    AccountModel,
    EmploymentModel,
    RoleAssignmentModel,
    StudentRecordModel,
)
from institute_kernel.models.branch import BranchModel
from institute_kernel.selectors.base import BaseSelector


class AccountSelector(BaseSelector[AccountModel]):
    """Identity lookups used by the resolver, services and callers."""

    def __init__(self, session, guard: AccessGuard | None = None):
        super().__init__(session)
        self._guard = guard if guard is not None else AccessGuard()

    def _account(self, account_id: UUID) -> AccountModel:
        account = self.session.get(AccountModel, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def exists(self, account_id: UUID) -> bool:
        return self.session.get(AccountModel, account_id) is not None

    def get_profile(self, account_id: UUID) -> Profile:
        return self._account(account_id).to_dto()

    def find_by_email(self, email: str) -> Profile | None:
        account = self.session.execute(
            select(AccountModel).where(AccountModel.email == email.strip().lower())
        ).scalar_one_or_none()
        return account.to_dto() if account else None

    def get_roles(self, account_id: UUID) -> frozenset[Role]:
        self._account(account_id)
        rows = self.session.execute(
            select(RoleAssignmentModel.role)
            .where(RoleAssignmentModel.account_id == account_id)
        ).scalars().all()
        return parse_roles(rows)

    def get_status(self, account_id: UUID) -> AccountStatus:
        return status_from_roles(self.get_roles(account_id))

    def get_employment(self, account_id: UUID) -> EmploymentRecord | None:
        row = self.session.execute(
            select(EmploymentModel).where(EmploymentModel.account_id == account_id)
        ).scalar_one_or_none()
        return row.to_dto() if row else None

    def get_student_record(self, account_id: UUID) -> StudentRecord | None:
        row = self.session.execute(
            select(StudentRecordModel).where(StudentRecordModel.account_id == account_id)
        ).scalar_one_or_none()
        return row.to_dto() if row else None

    def branch_of(self, account_id: UUID) -> UUID | None:
        """Current branch: employment first, then student record."""
        employment = self.get_employment(account_id)
        if employment is not None:
            return employment.branch_id
        student = self.get_student_record(account_id)
        return student.branch_id if student else None

    def audience_member(self, account_id: UUID) -> AudienceMember:
        """Live attributes used to decide notification visibility."""
        roles = self.get_roles(account_id)
        employment = self.get_employment(account_id)
        if employment is not None:
            return AudienceMember(
                account_id=account_id,
                roles=roles,
                branch_id=employment.branch_id,
                department=employment.department,
            )
        student = self.get_student_record(account_id)
        return AudienceMember(
            account_id=account_id,
            roles=roles,
            branch_id=student.branch_id if student else None,
        )

    # Branches

    def get_branch(self, branch_id: UUID) -> BranchInfo:
        branch = self.session.get(BranchModel, branch_id)
        if branch is None:
            raise BranchNotFoundError(str(branch_id))
        return branch.to_dto()

    def get_branch_by_code(self, code: str) -> BranchInfo:
        branch = self.session.execute(
            select(BranchModel).where(BranchModel.code == code)
        ).scalar_one_or_none()
        if branch is None:
            raise BranchNotFoundError(code)
        return branch.to_dto()

    def list_branches(self, active_only: bool = False) -> list[BranchInfo]:
        query = select(BranchModel).order_by(BranchModel.code)
        if active_only:
            query = query.where(BranchModel.is_active.is_(True))
        return [b.to_dto() for b in self.session.execute(query).scalars().all()]

    # Guarded listings

    def employees_visible_to(
        self,
        actor: Actor,
        branch_id: UUID | None = None,
    ) -> list[EmploymentRecord]:
        """Employment records the actor may read, optionally narrowed to a branch."""
        if actor.is_blocked:
            return []
        query = select(EmploymentModel).order_by(EmploymentModel.employee_code)
        if branch_id is not None:
            query = query.where(EmploymentModel.branch_id == branch_id)
        elif not actor.scope.is_global:
            query = query.where(EmploymentModel.branch_id == actor.scope.branch_id)
        rows = self.session.execute(query).scalars().all()
        return [
            row.to_dto()
            for row in rows
            if self._guard.can(
                actor,
                Action.READ,
                Resource(ResourceKind.EMPLOYEE, branch_id=row.branch_id, owner_id=row.account_id),
            )
        ]
