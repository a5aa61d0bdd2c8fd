"""
IdentityService -- accounts, role sets, employment records and branches.

Responsibility:
    The write side of the identity store.  Provisions accounts with their
    initial role and branch/student record, replaces role sets atomically,
    blocks accounts, moves employees between branches, and maintains the
    branch registry.  Reads are delegated to AccountSelector.

Architecture position:
    Kernel > Services.  May import from domain/, models/, selectors/, db/.

Invariants enforced:
    - Role replacement is atomic: the old set is removed and the new set
      inserted inside one savepoint.  A concurrent reader never sees a
      partial set from this session.
    - An account holding any employee-class role has an employment record
      (and therefore a branch).  ``set_roles`` refuses otherwise.
    - Only institute admins provision accounts, edit role sets and edit the
      branch registry.  Every decision goes through ``AccessGuard``.
    - Inactive branches take no new employees or students.

Failure modes:
    - UnauthorizedError when the guard denies the actor.
    - AccountNotFoundError / BranchNotFoundError on unknown ids.
    - InvalidRoleError, BranchRequiredError, InactiveBranchError,
      ValidationError on bad input.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable, Mapping
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from institute_kernel.domain.access import AccessGuard, Action, Resource, ResourceKind
from institute_kernel.domain.clock import Clock, SystemClock
from institute_kernel.domain.identity import (
    AccountStatus,
    BranchInfo,
    EmploymentRecord,
    Profile,
    Role,
    is_employee,
    parse_role,
    parse_roles,
)
from institute_kernel.domain.scope import Actor
from institute_kernel.exceptions import (
    AccountNotFoundError,
    BranchNotFoundError,
    BranchRequiredError,
    InactiveBranchError,
    ValidationError,
)
from institute_kernel.logging_config import get_logger
from institute_kernel.models.account import (
    AccountModel,
    EmploymentModel,
    RoleAssignmentModel,
    StudentRecordModel,
)
from institute_kernel.models.branch import BranchModel
from institute_kernel.selectors.account_selector import AccountSelector
from institute_kernel.services.auditor_service import AuditorService
from institute_kernel.services.base import BaseService
from institute_kernel.services.sequence_service import SequenceService

logger = get_logger("services.identity")

DEFAULT_ROLE_DEPARTMENTS: Mapping[Role, str] = {
    Role.BRANCH_ADMIN: "Administration",
    Role.TEACHER: "Teaching",
    Role.SALES: "Sales",
    Role.SUPPORT: "Support",
}


def _required_text(field: str, value: str | None) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(field, "must not be blank")
    return text


def _normalize_email(email: str | None) -> str:
    normalized = _required_text("email", email).lower()
    if "@" not in normalized:
        raise ValidationError("email", "must be an email address")
    return normalized


class IdentityService(BaseService[AccountModel]):
    """Write operations on accounts, roles, employment and branches."""

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        guard: AccessGuard | None = None,
        clock: Clock | None = None,
        employee_code_prefix: str = "EMP-",
        student_code_prefix: str = "STU-",
        role_departments: Mapping[Role, str] | None = None,
        departments: Collection[str] | None = None,
    ):
        super().__init__(session)
        self._auditor = auditor
        self._guard = guard if guard is not None else AccessGuard()
        self._clock = clock or SystemClock()
        self._accounts = AccountSelector(session, self._guard)
        self._sequences = SequenceService(session)
        self._employee_prefix = employee_code_prefix
        self._student_prefix = student_code_prefix
        self._role_departments = dict(role_departments or DEFAULT_ROLE_DEPARTMENTS)
        # None accepts any department name
        self._departments = frozenset(departments) if departments is not None else None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_roles(self, account_id: UUID) -> frozenset[Role]:
        return self._accounts.get_roles(account_id)

    def get_profile(self, account_id: UUID) -> Profile:
        return self._accounts.get_profile(account_id)

    def get_status(self, account_id: UUID) -> AccountStatus:
        return self._accounts.get_status(account_id)

    # ------------------------------------------------------------------
    # Guard helpers
    # ------------------------------------------------------------------

    def _require(self, actor: Actor, action: Action, resource: Resource) -> None:
        denied = self._guard.check(actor, action, resource)
        if denied is not None:
            logger.warning(
                "identity_action_denied",
                extra={
                    "actor_id": str(actor.account_id),
                    "resource_kind": resource.kind.value,
                    "reason": denied.reason,
                },
            )
            raise denied

    def _branch_model(self, branch_id: UUID, *, require_active: bool = True) -> BranchModel:
        branch = self.session.get(BranchModel, branch_id)
        if branch is None:
            raise BranchNotFoundError(str(branch_id))
        if require_active and not branch.is_active:
            raise InactiveBranchError(str(branch_id))
        return branch

    def _next_code(self, prefix: str, sequence_name: str) -> str:
        return f"{prefix}{self._sequences.next_value(sequence_name):05d}"

    def _department(self, requested: str | None, role: Role | None) -> str:
        """Explicit department, else the role's default; checked against the configured list."""
        department = (requested or "").strip()
        if not department:
            department = self._role_departments.get(role, "General") if role else "General"
        if self._departments is not None and department not in self._departments:
            raise ValidationError("department", f"unknown department {department!r}")
        return department

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def bootstrap_institute_admin(self, *, full_name: str, email: str) -> Profile:
        """
        Create the first institute admin.  There is no actor yet, so the
        account records itself as creator.

        Raises:
            ValidationError: an institute admin already exists.
        """
        existing = self.session.execute(
            select(RoleAssignmentModel.id)
            .where(RoleAssignmentModel.role == Role.INSTITUTE_ADMIN.value)
            .limit(1)
        ).scalar_one_or_none()
        if existing is not None:
            raise ValidationError("role", "an institute admin already exists")

        account_id = uuid4()
        account = AccountModel(
            id=account_id,
            full_name=_required_text("full_name", full_name),
            email=_normalize_email(email),
            created_by_id=account_id,
        )
        self.session.add(account)
        self.session.flush()
        self._insert_roles(account_id, frozenset({Role.INSTITUTE_ADMIN}), account_id)
        self._auditor.record_account_provisioned(
            account_id, frozenset({Role.INSTITUTE_ADMIN}), account_id
        )
        logger.info("institute_admin_bootstrapped", extra={"account_id": str(account_id)})
        return account.to_dto()

    def provision_account(
        self,
        actor: Actor,
        *,
        full_name: str,
        email: str,
        role: Role | str,
        branch_id: UUID | None = None,
        department: str | None = None,
        designation: str | None = None,
        salary: Decimal | None = None,
        phone: str | None = None,
        city: str | None = None,
    ) -> Profile:
        """
        Create an account with a single initial role.

        Employee-class roles get an employment record in ``branch_id``;
        ``department`` defaults from the role.  Students get a student record
        with an optional branch.

        Raises:
            UnauthorizedError: actor may not create accounts.
            BranchRequiredError: employee role without a branch.
            ValidationError: blank name, malformed or duplicate email, or a
                department outside the configured list.
        """
        self._require(actor, Action.WRITE, Resource(ResourceKind.ACCOUNT, branch_id=branch_id))

        parsed_role = parse_role(role)
        name = _required_text("full_name", full_name)
        normalized_email = _normalize_email(email)
        if self._accounts.find_by_email(normalized_email) is not None:
            raise ValidationError("email", "an account with this email already exists")

        employee = is_employee({parsed_role})
        if employee and branch_id is None:
            raise BranchRequiredError(normalized_email, (parsed_role.value,))
        if branch_id is not None:
            self._branch_model(branch_id)
        department = self._department(department, parsed_role) if employee else None

        account = AccountModel(
            full_name=name,
            email=normalized_email,
            phone=(phone or "").strip() or None,
            city=(city or "").strip() or None,
            created_by_id=actor.account_id,
        )
        self.session.add(account)
        self.session.flush()

        if employee:
            self.session.add(EmploymentModel(
                account_id=account.id,
                employee_code=self._next_code(self._employee_prefix, SequenceService.EMPLOYEE_CODE),
                branch_id=branch_id,
                department=department,
                designation=designation,
                salary=salary,
                joined_at=self._clock.now(),
                created_by_id=actor.account_id,
            ))
        elif parsed_role == Role.STUDENT:
            self.session.add(StudentRecordModel(
                account_id=account.id,
                student_code=self._next_code(self._student_prefix, SequenceService.STUDENT_CODE),
                branch_id=branch_id,
                created_by_id=actor.account_id,
            ))
        self.session.flush()

        self._insert_roles(account.id, frozenset({parsed_role}), actor.account_id)
        self._auditor.record_account_provisioned(account.id, frozenset({parsed_role}), actor.account_id)

        logger.info(
            "account_provisioned",
            extra={
                "account_id": str(account.id),
                "role": parsed_role.value,
                "branch_id": str(branch_id) if branch_id else None,
                "provisioned_by": str(actor.account_id),
            },
        )
        return account.to_dto()

    def update_profile(
        self,
        actor: Actor,
        account_id: UUID,
        *,
        full_name: str | None = None,
        phone: str | None = None,
        city: str | None = None,
    ) -> Profile:
        """Edit profile fields.  Accounts edit their own; admins edit any."""
        account = self.session.get(AccountModel, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        self._require(
            actor,
            Action.WRITE,
            Resource(
                ResourceKind.PROFILE,
                branch_id=self._accounts.branch_of(account_id),
                owner_id=account_id,
            ),
        )

        changed: list[str] = []
        if full_name is not None:
            account.full_name = _required_text("full_name", full_name)
            changed.append("full_name")
        if phone is not None:
            account.phone = phone.strip() or None
            changed.append("phone")
        if city is not None:
            account.city = city.strip() or None
            changed.append("city")
        if not changed:
            return account.to_dto()

        account.updated_by_id = actor.account_id
        self.session.flush()
        self._auditor.record_profile_updated(account_id, changed, actor.account_id)
        logger.info(
            "profile_updated",
            extra={"account_id": str(account_id), "fields": changed},
        )
        return account.to_dto()

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def _insert_roles(self, account_id: UUID, roles: frozenset[Role], actor_id: UUID) -> None:
        now = self._clock.now()
        for role in sorted(roles, key=lambda r: r.value):
            self.session.add(RoleAssignmentModel(
                account_id=account_id,
                role=role.value,
                assigned_at=now,
                assigned_by_id=actor_id,
            ))
        self.session.flush()

    def set_roles(
        self,
        actor: Actor,
        account_id: UUID,
        roles: Iterable[Role | str],
    ) -> frozenset[Role]:
        """
        Replace the account's role set atomically.

        An empty set blocks the account.

        Raises:
            InvalidRoleError: a role outside the closed set.
            BranchRequiredError: employee-class role and no employment record.
        """
        new_roles = parse_roles(roles)
        previous = self._accounts.get_roles(account_id)
        self._require(
            actor,
            Action.WRITE,
            Resource(ResourceKind.ACCOUNT, branch_id=self._accounts.branch_of(account_id)),
        )

        if is_employee(new_roles) and self._accounts.get_employment(account_id) is None:
            raise BranchRequiredError(
                str(account_id),
                tuple(sorted(r.value for r in new_roles)),
            )

        savepoint = self.session.begin_nested()
        try:
            self.session.execute(
                delete(RoleAssignmentModel)
                .where(RoleAssignmentModel.account_id == account_id)
            )
            self._insert_roles(account_id, new_roles, actor.account_id)
            savepoint.commit()
        except Exception:
            savepoint.rollback()
            logger.warning(
                "roles_replace_rolled_back",
                extra={"account_id": str(account_id)},
                exc_info=True,
            )
            raise

        self._auditor.record_roles_replaced(account_id, previous, new_roles, actor.account_id)
        logger.info(
            "roles_replaced",
            extra={
                "account_id": str(account_id),
                "previous": sorted(r.value for r in previous),
                "current": sorted(r.value for r in new_roles),
            },
        )
        return new_roles

    def block_account(self, actor: Actor, account_id: UUID) -> AccountStatus:
        """Remove every role.  The account stays; the guard denies it everything."""
        self.set_roles(actor, account_id, ())
        return self._accounts.get_status(account_id)

    # ------------------------------------------------------------------
    # Employment
    # ------------------------------------------------------------------

    def assign_employment(
        self,
        actor: Actor,
        account_id: UUID,
        *,
        branch_id: UUID,
        department: str | None = None,
        designation: str | None = None,
        salary: Decimal | None = None,
    ) -> EmploymentRecord:
        """
        Create or move an employment record.

        The actor needs WRITE on employees in the destination branch and,
        for a move, in the current branch too.  Scope follows on the next
        resolver call; requests keep the branch they were submitted under.
        """
        roles = self._accounts.get_roles(account_id)
        current = self.session.execute(
            select(EmploymentModel).where(EmploymentModel.account_id == account_id)
        ).scalar_one_or_none()

        if current is not None:
            self._require(
                actor,
                Action.WRITE,
                Resource(ResourceKind.EMPLOYEE, branch_id=current.branch_id, owner_id=account_id),
            )
        self._require(
            actor,
            Action.WRITE,
            Resource(ResourceKind.EMPLOYEE, branch_id=branch_id, owner_id=account_id),
        )
        self._branch_model(branch_id)

        if (department is None or not department.strip()) and current is not None:
            dept = current.department
        else:
            dept = self._department(department, primary_employee_role(roles))

        if current is None:
            current = EmploymentModel(
                account_id=account_id,
                employee_code=self._next_code(self._employee_prefix, SequenceService.EMPLOYEE_CODE),
                branch_id=branch_id,
                department=dept,
                designation=designation,
                salary=salary,
                joined_at=self._clock.now(),
                created_by_id=actor.account_id,
            )
            self.session.add(current)
        else:
            current.branch_id = branch_id
            current.department = dept
            if designation is not None:
                current.designation = designation
            if salary is not None:
                current.salary = salary
            current.is_active = True
            current.updated_by_id = actor.account_id
        self.session.flush()

        self._auditor.record_employment_assigned(account_id, branch_id, dept, actor.account_id)
        logger.info(
            "employment_assigned",
            extra={
                "account_id": str(account_id),
                "branch_id": str(branch_id),
                "department": dept,
            },
        )
        return current.to_dto()

    # ------------------------------------------------------------------
    # Branch registry
    # ------------------------------------------------------------------

    def create_branch(
        self,
        actor: Actor,
        *,
        code: str,
        name: str,
        city: str,
        state: str | None = None,
        address: str | None = None,
        phone: str | None = None,
        email: str | None = None,
    ) -> BranchInfo:
        self._require(actor, Action.WRITE, Resource(ResourceKind.BRANCH))

        normalized_code = _required_text("code", code).upper()
        duplicate = self.session.execute(
            select(BranchModel.id).where(BranchModel.code == normalized_code)
        ).scalar_one_or_none()
        if duplicate is not None:
            raise ValidationError("code", f"branch code {normalized_code} already exists")

        branch = BranchModel(
            code=normalized_code,
            name=_required_text("name", name),
            city=_required_text("city", city),
            state=state,
            address=address,
            phone=phone,
            email=email.strip().lower() if email else None,
            is_active=True,
            created_by_id=actor.account_id,
        )
        self.session.add(branch)
        self.session.flush()

        self._auditor.record_branch_created(branch.id, normalized_code, actor.account_id)
        logger.info("branch_created", extra={"branch_id": str(branch.id), "code": normalized_code})
        return branch.to_dto()

    def set_branch_active(self, actor: Actor, branch_id: UUID, is_active: bool) -> BranchInfo:
        self._require(actor, Action.WRITE, Resource(ResourceKind.BRANCH, branch_id=branch_id))
        branch = self._branch_model(branch_id, require_active=False)
        if branch.is_active == is_active:
            return branch.to_dto()

        branch.is_active = is_active
        branch.updated_by_id = actor.account_id
        self.session.flush()
        self._auditor.record_branch_active_changed(branch_id, is_active, actor.account_id)
        logger.info(
            "branch_active_changed",
            extra={"branch_id": str(branch_id), "is_active": is_active},
        )
        return branch.to_dto()


def primary_employee_role(roles: Iterable[Role]) -> Role | None:
    """Highest-priority employee-class role, used to default a department."""
    for role in (Role.BRANCH_ADMIN, Role.TEACHER, Role.SALES, Role.SUPPORT):
        if role in roles:
            return role
    return None
