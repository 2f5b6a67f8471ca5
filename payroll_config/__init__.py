"""
payroll_config -- single public entrypoint for payroll configuration.

Responsibility:
    ``get_runtime_config()`` returns the process configuration (database
    URL, SQL echo, pool size, log level) from YAML plus environment
    overrides.  ``load_default_settings()`` returns the default
    ``PayrollSettings`` used to seed an empty settings table.

Architecture position:
    Configuration -- sits above ``payroll_kernel``.  The kernel MUST NEVER
    import from ``payroll_config``.

Environment overrides:
    PAYROLL_CONFIG        path of the runtime YAML file
    PAYROLL_DATABASE_URL  replaces ``database_url``
    PAYROLL_LOG_LEVEL     replaces ``log_level``

``initialize()`` applies a runtime config: structured logging at the
configured level, then the database engine.

Failure modes:
    - ``FileNotFoundError`` when an explicit path does not exist.
    - ``ValueError`` for unknown keys or invalid values.
"""

from __future__ import annotations

import os
from pathlib import Path

from payroll_config.loader import (
    PayrollRuntimeConfig,
    load_yaml_file,
    parse_default_settings,
)
from payroll_kernel.db.engine import init_engine_from_url
from payroll_kernel.domain.dtos import PayrollSettings
from payroll_kernel.logging_config import configure_logging, get_logger

_logger = get_logger("config")

_CONFIG_DIR = Path(__file__).parent
DEFAULT_RUNTIME_PATH = _CONFIG_DIR / "runtime.yaml"
DEFAULT_SETTINGS_PATH = _CONFIG_DIR / "defaults.yaml"


def get_runtime_config(path: str | Path | None = None) -> PayrollRuntimeConfig:
    """Load runtime configuration, applying environment overrides last."""
    if path is None:
        path = os.environ.get("PAYROLL_CONFIG") or DEFAULT_RUNTIME_PATH
    path = Path(path)

    data = load_yaml_file(path).get("runtime", {})

    env_url = os.environ.get("PAYROLL_DATABASE_URL")
    if env_url:
        data["database_url"] = env_url
    env_level = os.environ.get("PAYROLL_LOG_LEVEL")
    if env_level:
        data["log_level"] = env_level

    config = PayrollRuntimeConfig.from_dict(data)
    _logger.info(
        "runtime_config_loaded",
        extra={
            "config_path": str(path),
            "log_level": config.log_level,
            "pool_size": config.pool_size,
            "database_overridden": bool(env_url),
        },
    )
    return config


def initialize(path: str | Path | None = None) -> PayrollRuntimeConfig:
    """Load the runtime config and bring up logging and the engine from it."""
    config = get_runtime_config(path)
    configure_logging(level=config.logging_level)
    init_engine_from_url(
        config.database_url,
        echo=config.echo,
        pool_size=config.pool_size,
    )
    return config


def load_default_settings(path: str | Path | None = None) -> PayrollSettings:
    """Default payroll settings: PF 12%, ESI 1.75%, PT 200, TDS off, 50/20/30 split."""
    return parse_default_settings(load_yaml_file(Path(path or DEFAULT_SETTINGS_PATH)))


__all__ = [
    "PayrollRuntimeConfig",
    "get_runtime_config",
    "initialize",
    "load_default_settings",
    "DEFAULT_RUNTIME_PATH",
    "DEFAULT_SETTINGS_PATH",
]
