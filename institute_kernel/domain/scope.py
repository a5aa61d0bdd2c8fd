"""
Scope value object (``institute_kernel.domain.scope``).

A scope is the organizational boundary that confines an actor's authority
and visibility.  An institute-admin is global; everyone else is bounded by
a branch (and, for employees, a department).

Scopes are values, never cached by the kernel: the resolver computes a
fresh one per call so role or branch edits take effect immediately.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from institute_kernel.domain.identity import AccountStatus, Blocked, Role


@dataclass(frozen=True)
class Scope:
    """Branch/department boundary, or global."""

    branch_id: UUID | None = None
    department: str | None = None
    is_global: bool = False

    @classmethod
    def global_scope(cls) -> Scope:
        return cls(is_global=True)

    @classmethod
    def for_branch(cls, branch_id: UUID | None, department: str | None = None) -> Scope:
        return cls(branch_id=branch_id, department=department)

    @classmethod
    def unscoped(cls) -> Scope:
        """No branch and not global.  Grants nothing beyond own records."""
        return cls()

    def contains_branch(self, branch_id: UUID | None) -> bool:
        return self.is_global or (branch_id is not None and branch_id == self.branch_id)


@dataclass(frozen=True)
class Actor:
    """
    The explicit caller of every guard and workflow operation.

    Replaces any ambient "current user": the transport layer resolves one
    per incoming call from the authenticated account id and passes it in.
    """

    account_id: UUID
    status: AccountStatus
    scope: Scope

    @property
    def roles(self) -> frozenset[Role]:
        return self.status.roles

    @property
    def is_blocked(self) -> bool:
        return isinstance(self.status, Blocked)

    def has_role(self, role: Role) -> bool:
        return role in self.status.roles
