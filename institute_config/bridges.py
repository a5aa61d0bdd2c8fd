"""
Config -> Kernel Bridges.

Functions that convert an ``InstituteConfig`` into kernel inputs.  These
live in institute_config (the producer) because the kernel must NEVER
import institute_config.

Usage:
    from institute_config import get_active_config
    from institute_config.bridges import build_kernel_services, init_engine_from_config

    config = get_active_config()
    init_engine_from_config(config)
    with session_scope() as session:
        services = build_kernel_services(session, config)
"""

from __future__ import annotations

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from institute_config.schema import InstituteConfig
from institute_kernel.db.engine import init_engine_from_url
from institute_kernel.domain.access import AccessGrant, AccessMatrix, Action, ResourceKind
from institute_kernel.domain.clock import Clock
from institute_kernel.domain.identity import Role
from institute_kernel.domain.targeting import NotificationKind
from institute_kernel.services.container import KernelServices


def _enum_value(enum_cls, value: str, what: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise ValueError(f"Unknown {what} {value!r} in configuration") from None


def build_access_matrix(config: InstituteConfig) -> AccessMatrix:
    """
    Compile the access-grant table into the kernel's ``AccessMatrix``.

    Raises:
        ValueError: a role, resource or action name outside the kernel's
            closed sets.
    """
    grants = tuple(
        AccessGrant(
            role=_enum_value(Role, g.role, "role"),
            kind=_enum_value(ResourceKind, g.resource, "resource"),
            actions=frozenset(_enum_value(Action, a, "action") for a in g.actions),
            own_only=g.own_only,
        )
        for g in config.access_grants
    )
    return AccessMatrix(grants=grants)


def build_role_departments(config: InstituteConfig) -> dict[Role, str]:
    """Default department per employee-class role."""
    return {
        _enum_value(Role, role, "role"): department
        for role, department in config.role_departments
    }


def build_notification_kinds(config: InstituteConfig) -> frozenset[NotificationKind]:
    """Kinds a notification may carry; an unknown name is a ValueError."""
    return frozenset(
        _enum_value(NotificationKind, kind, "notification kind") for kind in config.notification_kinds
    )


def build_kernel_services(
    session: Session,
    config: InstituteConfig,
    clock: Clock | None = None,
) -> KernelServices:
    """Wire one session's services from configuration."""
    return KernelServices.create(
        session,
        matrix=build_access_matrix(config),
        clock=clock,
        employee_code_prefix=config.codes.employee,
        student_code_prefix=config.codes.student,
        role_departments=build_role_departments(config),
        departments=config.departments,
        notification_kinds=build_notification_kinds(config),
    )


def init_engine_from_config(config: InstituteConfig) -> Engine:
    return init_engine_from_url(
        config.database.url,
        echo=config.database.echo,
        pool_size=config.database.pool_size,
        max_overflow=config.database.max_overflow,
    )
