"""
Access control guard (``institute_kernel.domain.access``).

Responsibility
--------------
The single decision function for "may this actor perform this action on
this resource".  Every selector and service in the kernel goes through
``AccessGuard.decide``; no call site carries its own role conditionals.

Architecture position
---------------------
**Kernel domain layer** -- pure, deterministic, side-effect free.  The
grant table is data (``AccessMatrix``) so it can be compiled from
configuration by ``institute_config.bridges`` without the kernel importing
the config package.

Rules, evaluated in order, first match wins
-------------------------------------------
0. Blocked account -> deny.
1. ``institute_admin`` -> allow.
2. Resource branch differs from the actor's branch -> deny.  No
   employee-class or student account reads or writes outside its branch.
3. Role/action grant for the resource kind within the branch.  Grants
   marked ``own_only`` additionally require ``resource.owner_id`` to be
   the actor.  An actor without a branch only reaches ``own_only`` grants.
4. Default -> deny.

The function is total: every combination of inputs yields a decision.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from institute_kernel.domain.identity import Role
from institute_kernel.domain.scope import Actor
from institute_kernel.exceptions import UnauthorizedError


class Action(str, Enum):
    """What an actor wants to do."""

    READ = "read"
    WRITE = "write"
    APPROVE = "approve"
    SEND = "send"


class ResourceKind(str, Enum):
    """Kinds of records the guard knows how to scope."""

    EMPLOYEE = "employee"
    STUDENT = "student"
    REQUEST = "request"
    REPORT = "report"
    STUDY_MATERIAL = "study_material"
    LEAD = "lead"
    ENROLLMENT = "enrollment"
    TICKET = "ticket"
    PROFILE = "profile"
    PAYMENT = "payment"
    NOTIFICATION = "notification"
    ACCOUNT = "account"
    BRANCH = "branch"


@dataclass(frozen=True)
class Resource:
    """
    The target of an action.

    ``branch_id`` is the owning branch (None for institute-wide records).
    ``owner_id`` is the account the record belongs to, when it has one.
    """

    kind: ResourceKind
    branch_id: UUID | None = None
    owner_id: UUID | None = None


@dataclass(frozen=True)
class AccessGrant:
    """One row of the role/action matrix."""

    role: Role
    kind: ResourceKind
    actions: frozenset[Action]
    own_only: bool = False

    def permits(self, action: Action) -> bool:
        return action in self.actions


@dataclass(frozen=True)
class AccessMatrix:
    """Within-branch grants, indexed by role."""

    grants: tuple[AccessGrant, ...] = ()

    def grants_for(self, role: Role) -> tuple[AccessGrant, ...]:
        return tuple(g for g in self.grants if g.role == role)

    def __len__(self) -> int:
        return len(self.grants)


def _grant(role: Role, kind: ResourceKind, *actions: Action, own_only: bool = False) -> AccessGrant:
    return AccessGrant(role=role, kind=kind, actions=frozenset(actions), own_only=own_only)


_R, _W, _A, _S = Action.READ, Action.WRITE, Action.APPROVE, Action.SEND

DEFAULT_ACCESS_MATRIX = AccessMatrix(grants=(
    # Branch admin: runs the branch
    _grant(Role.BRANCH_ADMIN, ResourceKind.EMPLOYEE, _R, _W),
    _grant(Role.BRANCH_ADMIN, ResourceKind.STUDENT, _R, _W),
    _grant(Role.BRANCH_ADMIN, ResourceKind.REQUEST, _R, _W, _A),
    _grant(Role.BRANCH_ADMIN, ResourceKind.REPORT, _R, _W),
    _grant(Role.BRANCH_ADMIN, ResourceKind.NOTIFICATION, _R, _S),
    _grant(Role.BRANCH_ADMIN, ResourceKind.PROFILE, _R, _W, own_only=True),
    # Teacher
    _grant(Role.TEACHER, ResourceKind.STUDY_MATERIAL, _R, _W),
    _grant(Role.TEACHER, ResourceKind.STUDENT, _R),
    _grant(Role.TEACHER, ResourceKind.REQUEST, _R, _W, own_only=True),
    _grant(Role.TEACHER, ResourceKind.PROFILE, _R, _W, own_only=True),
    # Sales
    _grant(Role.SALES, ResourceKind.LEAD, _R, _W),
    _grant(Role.SALES, ResourceKind.ENROLLMENT, _R, _W),
    _grant(Role.SALES, ResourceKind.REQUEST, _R, _W, own_only=True),
    _grant(Role.SALES, ResourceKind.PROFILE, _R, _W, own_only=True),
    # Support
    _grant(Role.SUPPORT, ResourceKind.TICKET, _R, _W),
    _grant(Role.SUPPORT, ResourceKind.REQUEST, _R, _W, own_only=True),
    _grant(Role.SUPPORT, ResourceKind.PROFILE, _R, _W, own_only=True),
    # Student: own records only
    _grant(Role.STUDENT, ResourceKind.PROFILE, _R, _W, own_only=True),
    _grant(Role.STUDENT, ResourceKind.ENROLLMENT, _R, _W, own_only=True),
    _grant(Role.STUDENT, ResourceKind.PAYMENT, _R, _W, own_only=True),
))


@dataclass(frozen=True)
class AccessDecision:
    """Result of a guard evaluation.  ``reason`` is set on both outcomes."""

    allowed: bool
    reason: str

    def __bool__(self) -> bool:
        return self.allowed


class AccessGuard:
    """
    Evaluates actions against the access rules.

    Contract:
        ``decide`` is deterministic and side-effect free for a given
        matrix.  Nothing is cached between calls.
    """

    def __init__(self, matrix: AccessMatrix | None = None) -> None:
        self._matrix = DEFAULT_ACCESS_MATRIX if matrix is None else matrix

    @property
    def matrix(self) -> AccessMatrix:
        return self._matrix

    def decide(self, actor: Actor, action: Action, resource: Resource) -> AccessDecision:
        if actor.is_blocked:
            return AccessDecision(False, "account is blocked")

        if actor.has_role(Role.INSTITUTE_ADMIN):
            return AccessDecision(True, "institute_admin")

        scope = actor.scope
        if resource.branch_id != scope.branch_id:
            return AccessDecision(False, "resource is outside the actor's branch")

        is_owner = resource.owner_id is not None and resource.owner_id == actor.account_id
        for role in _ordered(actor.roles):
            for grant in self._matrix.grants_for(role):
                if grant.kind != resource.kind or not grant.permits(action):
                    continue
                if grant.own_only and not is_owner:
                    continue
                if scope.branch_id is None and not grant.own_only:
                    continue
                return AccessDecision(True, f"granted to {role.value}")

        return AccessDecision(False, f"no grant for {action.value} on {resource.kind.value}")

    def can(self, actor: Actor, action: Action, resource: Resource) -> bool:
        return self.decide(actor, action, resource).allowed

    def check(self, actor: Actor, action: Action, resource: Resource) -> UnauthorizedError | None:
        """Return the ``UnauthorizedError`` for a denial, or None when allowed."""
        decision = self.decide(actor, action, resource)
        if decision.allowed:
            return None
        return UnauthorizedError(
            str(actor.account_id),
            action.value,
            resource.kind.value,
            decision.reason,
        )


def _ordered(roles: Iterable[Role]) -> list[Role]:
    # Stable iteration so the reported granting role is deterministic.
    return sorted(roles, key=lambda r: r.value)


_default_guard = AccessGuard()


def can(actor: Actor, action: Action, resource: Resource) -> bool:
    """Module-level shortcut against the default matrix."""
    return _default_guard.can(actor, action, resource)
