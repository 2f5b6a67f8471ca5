"""
Advance ledger ORM models.

Responsibility:
    Persist advance payments and their append-only transaction history.

Architecture position:
    Kernel > Models.  Written only through ``BatchWriter``; read through
    ``PayrollSelector``.

Invariants enforced:
    - ``version`` is the mapper's version_id_col: every UPDATE of an advance
      is a compare-and-set on the version read, and a concurrent change
      surfaces as StaleDataError at flush.
    - Transactions are ordered by ``sequence`` within an advance and are
      never updated or deleted (see db/immutability.py).
    - ``related_record_id`` has no foreign key: the payroll record it names
      is deleted on revert while the ledger entry stays.

Audit relevance:
    The transaction table is the evidence behind every balance; the
    invariant checker rebuilds balances from it.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_kernel.db.base import Money, TrackedBase, UUIDString
from payroll_kernel.db.types import as_utc, round_money


class AdvancePaymentModel(TrackedBase):
    """
    ORM model for ``AdvancePayment``.

    Contract:
        One row per advance lineage.  Balance and status change on every
        deduction, revert and top-up; the row itself is never deleted.

    Guarantees:
        - ``transactions`` loads in ``sequence`` order.
        - ``to_dto()`` carries the stored ``version`` for later comparison.
    """

    __tablename__ = "payroll_advance_payments"

    __table_args__ = (
        Index("idx_advance_employee_status", "employee_id", "status"),
    )

    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_employees.id"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    balance_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    date_given: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    notes: Mapped[str] = mapped_column(String(1000), nullable=False, default="")
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    transactions: Mapped[list["AdvanceTransactionModel"]] = relationship(
        back_populates="advance",
        order_by="AdvanceTransactionModel.sequence",
        cascade="save-update, merge",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def to_dto(self):
        from payroll_kernel.domain.dtos import AdvancePayment, AdvanceStatus

        return AdvancePayment(
            id=self.id,
            employee_id=self.employee_id,
            amount=round_money(self.amount),
            balance_amount=round_money(self.balance_amount),
            status=AdvanceStatus(self.status),
            date_given=as_utc(self.date_given),
            notes=self.notes,
            transactions=tuple(t.to_dto() for t in self.transactions),
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "AdvancePaymentModel":
        model = cls(
            id=dto.id,
            employee_id=dto.employee_id,
            amount=dto.amount,
            balance_amount=dto.balance_amount,
            status=dto.status.value,
            date_given=dto.date_given,
            notes=dto.notes,
            created_by_id=created_by_id,
        )
        model.transactions = [
            AdvanceTransactionModel.from_dto(txn, sequence, created_by_id)
            for sequence, txn in enumerate(dto.transactions)
        ]
        return model

    def __repr__(self) -> str:
        return (
            f"<AdvancePaymentModel {self.id} employee={self.employee_id} "
            f"balance={self.balance_amount} ({self.status})>"
        )


class AdvanceTransactionModel(TrackedBase):
    """ORM model for ``AdvanceTransaction``.  Append-only."""

    __tablename__ = "payroll_advance_transactions"

    __table_args__ = (
        UniqueConstraint(
            "advance_payment_id", "sequence", name="uq_advance_txn_sequence"
        ),
        Index("idx_advance_txn_related_record", "related_record_id"),
    )

    advance_payment_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_advance_payments.id"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    notes: Mapped[str] = mapped_column(String(1000), nullable=False, default="")
    related_record_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    advance: Mapped["AdvancePaymentModel"] = relationship(back_populates="transactions")

    def to_dto(self):
        from payroll_kernel.domain.dtos import AdvanceTransaction, AdvanceTransactionType

        return AdvanceTransaction(
            id=self.id,
            date=as_utc(self.date),
            type=AdvanceTransactionType(self.type),
            amount=round_money(self.amount),
            notes=self.notes,
            related_record_id=self.related_record_id,
        )

    @classmethod
    def from_dto(cls, dto, sequence: int, created_by_id: UUID) -> "AdvanceTransactionModel":
        return cls(
            id=dto.id,
            sequence=sequence,
            date=dto.date,
            type=dto.type.value,
            amount=dto.amount,
            notes=dto.notes,
            related_record_id=dto.related_record_id,
            created_by_id=created_by_id,
        )
