"""
Module: payroll_kernel.db.base
Responsibility: Declarative base classes and shared column types for the
    payroll tables.
Architecture position: Kernel > DB.  Lowest-level import target within the
    kernel; every model file imports from here.  This module MUST NOT import
    from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - UUID primary keys, generated with uuid4 and stored as String(36).
    - Pay amounts are ``Money`` (Numeric(18, 2)); statutory percentages are
      ``Rate`` (Numeric(9, 4)).  NEVER use float for pay or balances.
    - TrackedBase rows always carry the actor that created them.

Audit relevance:
    created_by_id answers who processed a payroll record or issued an
    advance.  updated_at/updated_by_id are audit metadata and may change on
    advances whose ledger lines are otherwise append-only.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

Money = Numeric(18, 2)
Rate = Numeric(9, 4)


class UUIDString(TypeDecorator):
    """UUID stored as String(36) so SQLite and PostgreSQL share one schema."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    """
    Declarative base for all payroll models.

    Annotated columns default to: Decimal -> Money, datetime -> timezone-aware
    DateTime, UUID -> UUIDString, int -> Integer.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Money,
        datetime: DateTime(timezone=True),
        UUID: UUIDString(),
        int: Integer,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Abstract base adding creation and modification audit columns.

    created_at is set by the database on INSERT; updated_at is refreshed on
    every UPDATE.  created_by_id is NOT NULL.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
    created_by_id: Mapped[UUID] = mapped_column(nullable=False)
    updated_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
