"""
Pure domain layer.

This module contains value objects and decision functions with NO
dependencies on:
- ORM (SQLAlchemy)
- Database
- Wall-clock time (see ``clock``)
- I/O

All domain objects are immutable and deterministic.
"""

from institute_kernel.domain.access import (
    DEFAULT_ACCESS_MATRIX,
    AccessDecision,
    AccessGrant,
    AccessGuard,
    AccessMatrix,
    Action,
    Resource,
    ResourceKind,
    can,
)
from institute_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from institute_kernel.domain.identity import (
    EMPLOYEE_ROLES,
    ROLE_PRIORITY,
    AccountStatus,
    Active,
    Blocked,
    BranchInfo,
    EmploymentRecord,
    Profile,
    Role,
    StudentRecord,
    is_employee,
    parse_role,
    parse_roles,
    primary_role,
    status_from_roles,
)
from institute_kernel.domain.outcomes import Outcome
from institute_kernel.domain.requests import (
    REQUEST_TRANSITIONS,
    TERMINAL_REQUEST_STATUSES,
    RequestSnapshot,
    RequestStatus,
    RequestType,
    transition_error,
)
from institute_kernel.domain.scope import Actor, Scope
from institute_kernel.domain.targeting import (
    AudienceMember,
    NotificationKind,
    NotificationRecord,
    NotificationTarget,
    TargetType,
    is_recipient,
    parse_target,
    recipients_of,
)

__all__ = [
    # Access
    "AccessDecision",
    "AccessGrant",
    "AccessGuard",
    "AccessMatrix",
    "Action",
    "DEFAULT_ACCESS_MATRIX",
    "Resource",
    "ResourceKind",
    "can",
    # Clock
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # Identity
    "AccountStatus",
    "Active",
    "Blocked",
    "BranchInfo",
    "EMPLOYEE_ROLES",
    "EmploymentRecord",
    "Profile",
    "ROLE_PRIORITY",
    "Role",
    "StudentRecord",
    "is_employee",
    "parse_role",
    "parse_roles",
    "primary_role",
    "status_from_roles",
    # Scope
    "Actor",
    "Scope",
    # Requests
    "Outcome",
    "REQUEST_TRANSITIONS",
    "RequestSnapshot",
    "RequestStatus",
    "RequestType",
    "TERMINAL_REQUEST_STATUSES",
    "transition_error",
    # Targeting
    "AudienceMember",
    "NotificationKind",
    "NotificationRecord",
    "NotificationTarget",
    "TargetType",
    "is_recipient",
    "parse_target",
    "recipients_of",
]
