"""Database layer - engine, base classes, money types, and immutability."""

from payroll_kernel.db.base import Base, Money, Rate, TrackedBase, UUIDString
from payroll_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)
from payroll_kernel.db.types import ZERO, round_money

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "Money",
    "Rate",
    "ZERO",
    "round_money",
]
