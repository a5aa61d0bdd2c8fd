"""
InstituteConfig schema.

The human-authored configuration (``sets/*.yaml``) is parsed by the loader
into these frozen dataclasses.  Names are kept as plain strings here; the
bridges translate them into kernel enums and reject unknown values.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection settings handed to ``init_engine_from_url``."""

    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10


@dataclass(frozen=True)
class CodePrefixes:
    """Prefixes for generated employee and student codes."""

    employee: str = "EMP-"
    student: str = "STU-"


@dataclass(frozen=True)
class AccessGrantDef:
    """One row of the within-branch role/action table."""

    role: str
    resource: str
    actions: tuple[str, ...]
    own_only: bool = False


@dataclass(frozen=True)
class InstituteConfig:
    """The runtime configuration artifact returned by ``get_active_config``."""

    name: str
    version: int
    database: DatabaseSettings
    codes: CodePrefixes
    departments: tuple[str, ...]
    role_departments: tuple[tuple[str, str], ...]
    notification_kinds: tuple[str, ...]
    access_grants: tuple[AccessGrantDef, ...]
    checksum: str = ""
    source: str | None = field(default=None, compare=False)
