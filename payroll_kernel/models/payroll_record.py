"""
Payroll record ORM model.

One row per (employee, payroll month).  Created only by a payroll run,
deleted only by revert or delete-run, never updated.  The remittance bank
account is copied onto the row so later edits to the employee's accounts
do not change what was paid.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import Money, TrackedBase, UUIDString
from payroll_kernel.db.types import as_utc, round_money

_MONEY_FIELDS = (
    "basic",
    "hra",
    "special_allowance",
    "overtime",
    "gross",
    "pf",
    "esi",
    "pt",
    "tds",
    "advance_deduction",
    "total_deductions",
    "net_pay",
)


class PayrollRecordModel(TrackedBase):
    """
    ORM model for ``PayrollRecord``.

    Guarantees:
        - (employee_id, payroll_month) is unique (uq_payroll_record_employee_month).
        - Money columns round-trip as 2-decimal Decimals.
    """

    __tablename__ = "payroll_records"

    __table_args__ = (
        UniqueConstraint(
            "employee_id", "payroll_month", name="uq_payroll_record_employee_month"
        ),
        Index("idx_payroll_record_month", "payroll_month"),
    )

    # No FK to employees: the record is a snapshot and outlives employee edits.
    employee_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    employee_name: Mapped[str] = mapped_column(String(255), nullable=False)
    employee_code: Mapped[str] = mapped_column(String(50), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    payroll_month: Mapped[str] = mapped_column(String(7), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)

    days_present: Mapped[Decimal] = mapped_column(Numeric(9, 2), nullable=False)
    overtime_hours: Mapped[Decimal] = mapped_column(Numeric(9, 2), nullable=False)
    overtime_days: Mapped[Decimal] = mapped_column(Numeric(9, 2), nullable=False)
    overtime_details: Mapped[str | None] = mapped_column(String(50))

    basic: Mapped[Decimal] = mapped_column(Money, nullable=False)
    hra: Mapped[Decimal] = mapped_column(Money, nullable=False)
    special_allowance: Mapped[Decimal] = mapped_column(Money, nullable=False)
    overtime: Mapped[Decimal] = mapped_column(Money, nullable=False)
    gross: Mapped[Decimal] = mapped_column(Money, nullable=False)
    pf: Mapped[Decimal] = mapped_column(Money, nullable=False)
    esi: Mapped[Decimal] = mapped_column(Money, nullable=False)
    pt: Mapped[Decimal] = mapped_column(Money, nullable=False)
    tds: Mapped[Decimal] = mapped_column(Money, nullable=False)
    advance_deduction: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total_deductions: Mapped[Decimal] = mapped_column(Money, nullable=False)
    net_pay: Mapped[Decimal] = mapped_column(Money, nullable=False)

    advance_payment_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    remittance_account_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    remittance_bank_name: Mapped[str | None] = mapped_column(String(100))
    remittance_account_number: Mapped[str | None] = mapped_column(String(50))
    remittance_ifsc: Mapped[str | None] = mapped_column(String(20))

    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    def to_dto(self):
        from payroll_kernel.domain.dtos import (
            BankAccount,
            EmployeeCategory,
            PayrollRecord,
            PayrollRecordStatus,
        )

        remittance = None
        if self.remittance_account_id is not None:
            remittance = BankAccount(
                id=self.remittance_account_id,
                bank_name=self.remittance_bank_name or "",
                account_number=self.remittance_account_number or "",
                ifsc=self.remittance_ifsc or "",
            )

        return PayrollRecord(
            id=self.id,
            employee_id=self.employee_id,
            employee_name=self.employee_name,
            employee_code=self.employee_code,
            category=EmployeeCategory(self.category),
            payroll_month=self.payroll_month,
            days_present=round_money(self.days_present),
            overtime_hours=round_money(self.overtime_hours),
            overtime_days=round_money(self.overtime_days),
            status=PayrollRecordStatus(self.status),
            overtime_details=self.overtime_details,
            advance_payment_id=self.advance_payment_id,
            remittance_account=remittance,
            processed_at=as_utc(self.processed_at),
            **{name: round_money(getattr(self, name)) for name in _MONEY_FIELDS},
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "PayrollRecordModel":
        account = dto.remittance_account
        return cls(
            id=dto.id,
            employee_id=dto.employee_id,
            employee_name=dto.employee_name,
            employee_code=dto.employee_code,
            category=dto.category.value,
            payroll_month=dto.payroll_month,
            status=dto.status.value,
            days_present=dto.days_present,
            overtime_hours=dto.overtime_hours,
            overtime_days=dto.overtime_days,
            overtime_details=dto.overtime_details,
            advance_payment_id=dto.advance_payment_id,
            remittance_account_id=account.id if account else None,
            remittance_bank_name=account.bank_name if account else None,
            remittance_account_number=account.account_number if account else None,
            remittance_ifsc=account.ifsc if account else None,
            processed_at=dto.processed_at,
            created_by_id=created_by_id,
            **{name: getattr(dto, name) for name in _MONEY_FIELDS},
        )

    def __repr__(self) -> str:
        return (
            f"<PayrollRecordModel {self.employee_code} {self.payroll_month} "
            f"net={self.net_pay}>"
        )
