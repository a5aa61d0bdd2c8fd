"""
Identity domain types (``institute_kernel.domain.identity``).

Responsibility
--------------
Pure value objects for accounts and their roles: the closed role set, the
explicit ``Active | Blocked`` account status, and the primary-role rule
used for dashboard routing.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports from
``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Roles are drawn from a fixed closed set (``Role``).  Unknown role names
  raise ``InvalidRoleError`` at the parsing boundary.
* ``Active.roles`` is never empty.  An account with zero roles is
  ``Blocked`` -- a first-class variant, not an empty collection.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from institute_kernel.exceptions import InvalidRoleError


class Role(str, Enum):
    """The closed set of roles an account may hold."""

    INSTITUTE_ADMIN = "institute_admin"
    BRANCH_ADMIN = "branch_admin"
    TEACHER = "teacher"
    SALES = "sales"
    SUPPORT = "support"
    STUDENT = "student"


EMPLOYEE_ROLES: frozenset[Role] = frozenset({
    Role.BRANCH_ADMIN,
    Role.TEACHER,
    Role.SALES,
    Role.SUPPORT,
})

# Dashboard routing order: the first held role wins.
ROLE_PRIORITY: tuple[Role, ...] = (
    Role.INSTITUTE_ADMIN,
    Role.BRANCH_ADMIN,
    Role.TEACHER,
    Role.SALES,
    Role.SUPPORT,
    Role.STUDENT,
)


def parse_role(value: str | Role) -> Role:
    """Parse a role name, raising ``InvalidRoleError`` outside the closed set."""
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        raise InvalidRoleError(str(value)) from None


def parse_roles(values: Iterable[str | Role]) -> frozenset[Role]:
    """Parse a collection of role names into a frozenset of ``Role``."""
    return frozenset(parse_role(v) for v in values)


def is_employee(roles: Iterable[Role]) -> bool:
    """True when any held role is employee-class."""
    return any(r in EMPLOYEE_ROLES for r in roles)


def primary_role(roles: Iterable[Role]) -> Role | None:
    """Return the highest-priority held role, or None for a blocked account."""
    held = set(roles)
    for role in ROLE_PRIORITY:
        if role in held:
            return role
    return None


# =========================================================================
# Account status
# =========================================================================


@dataclass(frozen=True)
class Active:
    """An account holding at least one role."""

    roles: frozenset[Role]

    def __post_init__(self) -> None:
        if not self.roles:
            raise ValueError("Active status requires at least one role; use Blocked")

    @property
    def is_blocked(self) -> bool:
        return False


@dataclass(frozen=True)
class Blocked:
    """An account with no roles.  Denied everything by the access guard."""

    @property
    def roles(self) -> frozenset[Role]:
        return frozenset()

    @property
    def is_blocked(self) -> bool:
        return True


AccountStatus = Active | Blocked


def status_from_roles(roles: Iterable[Role]) -> AccountStatus:
    """Build the tagged status for a role collection."""
    held = frozenset(roles)
    return Active(held) if held else Blocked()


# =========================================================================
# Profiles and records
# =========================================================================


@dataclass(frozen=True)
class Profile:
    """Account profile as seen by callers of the identity store."""

    account_id: UUID
    full_name: str
    email: str
    phone: str | None = None
    city: str | None = None


@dataclass(frozen=True)
class EmploymentRecord:
    """Links an employee-class account to its branch and department."""

    account_id: UUID
    employee_code: str
    branch_id: UUID
    department: str
    designation: str | None = None
    is_active: bool = True


@dataclass(frozen=True)
class StudentRecord:
    """Enrollment record for a student account.  Branch is optional."""

    account_id: UUID
    student_code: str
    branch_id: UUID | None = None


@dataclass(frozen=True)
class BranchInfo:
    """Organizational unit that scopes employee-class queries."""

    branch_id: UUID
    code: str
    name: str
    city: str
    is_active: bool = True
