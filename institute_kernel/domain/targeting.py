"""
Notification targeting (``institute_kernel.domain.targeting``).

Responsibility
--------------
Turns a declarative notification target into a predicate over accounts.
The audience is never materialized at send time: each reader asks "is
this notification for me?" with their *current* roles, branch and
department, so accounts created or reassigned after the send are handled
correctly.

Architecture position
---------------------
**Kernel domain layer** -- pure.  ``NotificationSelector`` expresses the
same rules as a SQL predicate; the two are kept in agreement by tests.

Targeting rules
---------------
* ``all``        -- every account.
* ``branch``     -- accounts whose current branch equals the stored branch.
* ``department`` -- accounts whose current department equals the stored
  string (case-sensitive exact match).
* ``role``       -- accounts currently holding the stored role.
* ``user``       -- exactly the stored account.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from institute_kernel.domain.identity import Role, parse_role
from institute_kernel.exceptions import InvalidRoleError, InvalidTargetError


class TargetType(str, Enum):
    ALL = "all"
    BRANCH = "branch"
    DEPARTMENT = "department"
    ROLE = "role"
    USER = "user"


class NotificationKind(str, Enum):
    INFO = "info"
    WARNING = "warning"
    SUCCESS = "success"
    ERROR = "error"
    GENERAL = "general"


@dataclass(frozen=True)
class NotificationTarget:
    """
    Target discriminator plus exactly one matching qualifier.

    Construct through the classmethods or ``parse_target``; a qualifier
    that does not match the discriminator raises ``InvalidTargetError``.
    """

    target_type: TargetType
    branch_id: UUID | None = None
    department: str | None = None
    role: Role | None = None
    user_id: UUID | None = None

    def __post_init__(self) -> None:
        expected = {
            TargetType.ALL: None,
            TargetType.BRANCH: "branch_id",
            TargetType.DEPARTMENT: "department",
            TargetType.ROLE: "role",
            TargetType.USER: "user_id",
        }[self.target_type]
        for name in ("branch_id", "department", "role", "user_id"):
            value = getattr(self, name)
            if name == expected:
                if value is None or (isinstance(value, str) and not value.strip()):
                    raise InvalidTargetError(self.target_type.value, f"{name} is required")
            elif value is not None:
                raise InvalidTargetError(
                    self.target_type.value, f"{name} must not be set for this target"
                )

    @classmethod
    def everyone(cls) -> NotificationTarget:
        return cls(TargetType.ALL)

    @classmethod
    def for_branch(cls, branch_id: UUID) -> NotificationTarget:
        return cls(TargetType.BRANCH, branch_id=branch_id)

    @classmethod
    def for_department(cls, department: str) -> NotificationTarget:
        return cls(TargetType.DEPARTMENT, department=department)

    @classmethod
    def for_role(cls, role: Role) -> NotificationTarget:
        return cls(TargetType.ROLE, role=role)

    @classmethod
    def for_user(cls, user_id: UUID) -> NotificationTarget:
        return cls(TargetType.USER, user_id=user_id)


def parse_target(
    target_type: str,
    *,
    branch_id: UUID | None = None,
    department: str | None = None,
    role: str | None = None,
    user_id: UUID | None = None,
) -> NotificationTarget:
    """Build a target from raw fields, rejecting malformed specifications."""
    try:
        kind = TargetType(target_type)
    except ValueError:
        raise InvalidTargetError(str(target_type), "unknown target type") from None
    parsed_role: Role | None = None
    if role is not None:
        try:
            parsed_role = parse_role(role)
        except InvalidRoleError:
            raise InvalidTargetError(kind.value, f"unknown role {role!r}") from None
    return NotificationTarget(
        kind,
        branch_id=branch_id,
        department=department,
        role=parsed_role,
        user_id=user_id,
    )


@dataclass(frozen=True)
class AudienceMember:
    """An account's live attributes at read time."""

    account_id: UUID
    roles: frozenset[Role]
    branch_id: UUID | None = None
    department: str | None = None


@dataclass(frozen=True)
class NotificationRecord:
    """Immutable view of a stored notification."""

    notification_id: UUID
    title: str
    message: str
    kind: NotificationKind
    target: NotificationTarget
    sent_by: UUID | None = None
    created_at: datetime | None = None


def is_recipient(target: NotificationTarget, member: AudienceMember) -> bool:
    match target.target_type:
        case TargetType.ALL:
            return True
        case TargetType.BRANCH:
            return member.branch_id is not None and member.branch_id == target.branch_id
        case TargetType.DEPARTMENT:
            return member.department is not None and member.department == target.department
        case TargetType.ROLE:
            return target.role in member.roles
        case TargetType.USER:
            return member.account_id == target.user_id
    return False


def recipients_of(
    notification: NotificationRecord | NotificationTarget,
) -> Callable[[AudienceMember], bool]:
    """Return the audience predicate for a notification."""
    target = notification.target if isinstance(notification, NotificationRecord) else notification

    def _matches(member: AudienceMember) -> bool:
        return is_recipient(target, member)

    return _matches
