"""
Configuration Loader (``institute_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the typed, frozen
``institute_config.schema`` dataclasses.  Runtime callers go through
``institute_config.get_active_config()``; this module is the tooling it
is built on.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; there are no silent defaults for required keys.
* ``compute_checksum`` produces a deterministic SHA-256 hash used to
  identify the active grant table in logs.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, replace
from pathlib import Path
from typing import Any

import yaml

from institute_config.schema import (
    AccessGrantDef,
    CodePrefixes,
    DatabaseSettings,
    InstituteConfig,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    return DatabaseSettings(
        url=data["url"],
        echo=bool(data.get("echo", False)),
        pool_size=int(data.get("pool_size", 20)),
        max_overflow=int(data.get("max_overflow", 10)),
    )


def parse_codes(data: dict[str, Any] | None) -> CodePrefixes:
    data = data or {}
    return CodePrefixes(
        employee=data.get("employee_prefix", "EMP-"),
        student=data.get("student_prefix", "STU-"),
    )


def parse_access_grant(data: dict[str, Any]) -> AccessGrantDef:
    actions = data["actions"]
    if not isinstance(actions, list) or not actions:
        raise ValueError(
            f"access grant {data.get('role')}/{data.get('resource')}: "
            f"'actions' must be a non-empty list"
        )
    return AccessGrantDef(
        role=data["role"],
        resource=data["resource"],
        actions=tuple(str(a) for a in actions),
        own_only=bool(data.get("own_only", False)),
    )


def parse_config(data: dict[str, Any], source: str | None = None) -> InstituteConfig:
    """
    Build an ``InstituteConfig`` from a parsed YAML mapping.

    Raises:
        KeyError: required key missing.
        ValueError: structurally invalid content.
    """
    departments = tuple(data["departments"])
    if not departments:
        raise ValueError("'departments' must list at least one department")

    role_departments = tuple(sorted((data.get("role_departments") or {}).items()))
    for role, department in role_departments:
        if department not in departments:
            raise ValueError(
                f"role_departments: {role} maps to unknown department {department!r}"
            )

    grants = tuple(parse_access_grant(g) for g in data["access_grants"])
    config = InstituteConfig(
        name=data["name"],
        version=int(data["version"]),
        database=parse_database(data["database"]),
        codes=parse_codes(data.get("codes")),
        departments=departments,
        role_departments=role_departments,
        notification_kinds=tuple(data["notification_kinds"]),
        access_grants=grants,
        source=source,
    )
    return replace(config, checksum=compute_checksum({
        "access_grants": [asdict(g) for g in grants],
        "role_departments": role_departments,
        "codes": asdict(config.codes),
    }))


def load_config_file(path: Path) -> InstituteConfig:
    return parse_config(load_yaml_file(path), source=str(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
