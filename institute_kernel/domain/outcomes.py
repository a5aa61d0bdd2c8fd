"""
Typed operation outcomes.

Business declines (a denied action, an illegal transition, a blank reason)
are expected results, not faults.  Services return them in an ``Outcome``
so that the decline path is part of the return type and cannot be
skipped by accident.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from institute_kernel.exceptions import InstituteKernelError

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """
    Either a value or a typed error.

    ``changed`` is False for idempotent no-ops (the request was already in
    the target state) so callers can tell a replay from a fresh transition.
    """

    value: T | None = None
    error: InstituteKernelError | None = None
    changed: bool = False

    @classmethod
    def success(cls, value: T, *, changed: bool = True) -> Outcome[T]:
        return cls(value=value, error=None, changed=changed)

    @classmethod
    def failure(cls, error: InstituteKernelError) -> Outcome[T]:
        return cls(value=None, error=error, changed=False)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def code(self) -> str | None:
        return self.error.code if self.error is not None else None

    @property
    def user_message(self) -> str | None:
        return self.error.user_message if self.error is not None else None

    def unwrap(self) -> T:
        """Return the value, or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
