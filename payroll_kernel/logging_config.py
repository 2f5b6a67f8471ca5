"""
Structured JSON logging for the payroll kernel.

Every logger lives under the ``payroll_kernel`` namespace.  Records are
rendered as one JSON object per line carrying the envelope (ts, level,
logger, message), the bound LogContext fields, any ``extra=`` fields and,
for exceptions, the error code and structured attributes of
PayrollKernelError subclasses.

Log messages are snake_case event names (``payroll_run_started``,
``advance_deducted``) so they can be filtered without parsing prose.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Mapping
from uuid import UUID

_EMPTY: Mapping[str, str] = MappingProxyType({})

_context: ContextVar[Mapping[str, str]] = ContextVar(
    "payroll_log_context", default=_EMPTY
)


class LogContext:
    """
    Request-scoped fields merged into every record.

    The whole context is one immutable mapping held in a ContextVar, so a
    bind() block restores exactly what was there before, including absence.
    """

    FIELDS = (
        "correlation_id",
        "actor_id",
        "payroll_month",
        "operation",
        "employee_id",
    )

    @classmethod
    def _merged(cls, fields: dict[str, Any]) -> Mapping[str, str]:
        current = dict(_context.get())
        for name, value in fields.items():
            if name not in cls.FIELDS:
                raise TypeError(f"Unknown log context field: {name}")
            if value is not None:
                current[name] = str(value)
        return MappingProxyType(current)

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Set context fields. None values leave the field untouched."""
        _context.set(cls._merged(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set(_EMPTY)

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[type["LogContext"]]:
        """Set fields for the duration of a block."""
        token = _context.set(cls._merged(fields))
        try:
            yield cls
        finally:
            _context.reset(token)


# ---------------------------------------------------------------------------
# JSON formatter
# ---------------------------------------------------------------------------

_RESERVED: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    return str(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if name.startswith("_") or name == "code":
            continue
        fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }

        for name, value in vars(record).items():
            if name not in _RESERVED:
                payload.setdefault(name, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


# ---------------------------------------------------------------------------
# Logger factory and setup
# ---------------------------------------------------------------------------

_ROOT_NAME = "payroll_kernel"

_setup_lock = threading.Lock()
_handler: logging.Handler | None = None


def get_logger(name: str) -> logging.Logger:
    """Return ``payroll_kernel.<name>``."""
    return logging.getLogger(f"{_ROOT_NAME}.{name}")


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one structured handler to the payroll_kernel logger.

    Idempotent: once a handler is installed, later calls do nothing until
    reset_logging() runs.  ``level`` accepts a number or a level name
    such as the ``log_level`` of the runtime config.
    """
    global _handler
    with _setup_lock:
        if _handler is not None:
            return
        _handler = handler or logging.StreamHandler(stream or sys.stderr)
        _handler.setFormatter(StructuredFormatter())

        root = logging.getLogger(_ROOT_NAME)
        root.setLevel(level.upper() if isinstance(level, str) else level)
        root.propagate = False
        root.addHandler(_handler)


def reset_logging() -> None:
    """Remove the installed handler. For tests."""
    global _handler
    with _setup_lock:
        root = logging.getLogger(_ROOT_NAME)
        root.handlers.clear()
        root.setLevel(logging.WARNING)
        _handler = None
