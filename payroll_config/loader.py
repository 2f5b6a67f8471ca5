"""
Configuration Loader (``payroll_config.loader``).

Responsibility
--------------
Loads YAML files and parses them into typed frozen dataclasses: the
runtime configuration (database, logging) and the default payroll
settings used to seed a fresh database.

Architecture position
---------------------
**Config layer**.  Imports kernel DTOs so that default settings are
validated by ``PayrollSettings`` itself.  The kernel never imports
``payroll_config``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown or invalid keys  -> ``ValueError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from decimal import Decimal
from pathlib import Path
from typing import Any, Self

import yaml

from payroll_kernel.domain.dtos import PayrollSettings

_logger = logging.getLogger("payroll_kernel.config")

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path, encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at top level")
    return data


@dataclass(frozen=True)
class PayrollRuntimeConfig:
    """Process-level settings: where the database is and how loud to log."""

    database_url: str = "sqlite:///payroll.db"
    echo: bool = False
    pool_size: int = 10
    log_level: str = "INFO"

    def __post_init__(self):
        if not self.database_url:
            raise ValueError("database_url must not be empty")
        if self.pool_size <= 0:
            raise ValueError("pool_size must be positive")
        if self.log_level.upper() not in VALID_LOG_LEVELS:
            raise ValueError(
                f"log_level must be one of {VALID_LOG_LEVELS}, got '{self.log_level}'"
            )
        object.__setattr__(self, "log_level", self.log_level.upper())

    @property
    def logging_level(self) -> int:
        return logging.getLevelName(self.log_level)

    @classmethod
    def with_defaults(cls) -> Self:
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from a mapping; unknown keys are rejected."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown runtime config keys: {sorted(unknown)}")
        return cls(**data)


def parse_default_settings(data: dict[str, Any]) -> PayrollSettings:
    """
    Parse the ``payroll_settings`` section into ``PayrollSettings``.

    Numbers are routed through ``str`` so YAML floats such as 1.75 become
    exact Decimals.
    """
    section = data.get("payroll_settings")
    if not isinstance(section, dict):
        raise ValueError("defaults file must contain a 'payroll_settings' mapping")

    parsed: dict[str, Any] = {}
    for key, value in section.items():
        if isinstance(value, bool) or value is None or isinstance(value, str):
            parsed[key] = value
        else:
            parsed[key] = Decimal(str(value))
    return PayrollSettings.from_dict(parsed)
