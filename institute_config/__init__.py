"""
institute_config -- single public entrypoint for institute configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``InstituteConfig``.

Architecture position:
    This package sits above ``institute_kernel``.  The kernel MUST NEVER
    import from ``institute_config``; ``bridges`` translates the config
    into kernel inputs (access matrix, code prefixes, engine settings).

Invariants enforced:
    - Single entrypoint: runtime config flows through ``get_active_config()``.
    - Validation: every role, resource and action name in the grant table
      must exist in the kernel's closed sets, or loading fails.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``KeyError`` / ``ValueError`` -- missing or invalid content.

Audit relevance:
    Every successful ``get_active_config()`` call emits an
    ``INSTITUTE_CONFIG_TRACE`` log entry with the name, version and grant
    table checksum, tying access decisions to the configuration in force.
"""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from pathlib import Path

from institute_config.bridges import build_access_matrix, build_notification_kinds
from institute_config.loader import load_config_file
from institute_config.schema import InstituteConfig

_logger = logging.getLogger("institute_kernel.config")

CONFIG_PATH_ENV = "INSTITUTE_CONFIG"
DATABASE_URL_ENV = "INSTITUTE_DATABASE_URL"

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(path: Path | str | None = None) -> InstituteConfig:
    """The ONLY public configuration entrypoint.

    Resolution order for the file: ``path`` argument, then the
    ``INSTITUTE_CONFIG`` environment variable, then the bundled default.
    ``INSTITUTE_DATABASE_URL`` overrides the database URL.

    Raises:
        FileNotFoundError: the configuration file does not exist.
        KeyError: a required key is missing.
        ValueError: the content is invalid.
    """
    config_path = Path(path or os.environ.get(CONFIG_PATH_ENV) or _DEFAULT_CONFIG_PATH)
    config = load_config_file(config_path)

    # Compiling validates every name against the kernel enums.
    matrix = build_access_matrix(config)
    build_notification_kinds(config)

    database_url = os.environ.get(DATABASE_URL_ENV)
    if database_url:
        config = replace(config, database=replace(config.database, url=database_url))

    _logger.info(
        "INSTITUTE_CONFIG_TRACE",
        extra={
            "trace_type": "INSTITUTE_CONFIG_TRACE",
            "config_name": config.name,
            "config_version": config.version,
            "checksum": config.checksum,
            "grant_count": len(matrix),
            "source": config.source,
        },
    )
    return config


__all__ = ["InstituteConfig", "get_active_config"]
