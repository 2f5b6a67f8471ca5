"""
DTOs -- Pure payroll data transfer objects.

Responsibility:
    Immutable data structures that flow between the store, the salary engine,
    the advance ledger and the payroll run orchestrator: employees and their
    bank accounts, payroll settings, monthly inputs, salary breakdowns,
    advance payments with their ledger transactions, and payroll records.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Free of ORM dependencies.  ORM models convert to and from these objects
    at the persistence boundary (``to_dto`` / ``from_dto``).

Invariants enforced:
    - All monetary fields are ``Decimal`` -- NEVER ``float``.
    - Numeric inputs and settings rates are non-negative at construction.
    - Every dataclass is ``frozen=True``; ledger operations return new
      instances instead of mutating.

Failure modes:
    - ValueError on negative monthly_ctc, negative settings rates or
      amounts, and negative monthly inputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from payroll_kernel.db.types import ZERO, round_money, to_decimal


class EmployeeCategory(str, Enum):
    """Employee categories; each has its own attendance and overtime policy."""

    IN_OFFICE = "In-office Employee"
    FACTORY = "Factory Worker"
    ON_SITE = "On-site Personnel"


class EmployeeStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"


class AdvanceStatus(str, Enum):
    ACTIVE = "Active"
    FULLY_DEDUCTED = "Fully Deducted"


class AdvanceTransactionType(str, Enum):
    """Ledger entry kinds and the sign each contributes to the balance."""

    ISSUED = "issued"
    TOPPED_UP = "topped-up"
    DEDUCTED = "deducted"
    REVERTED = "reverted"

    @property
    def sign(self) -> int:
        return -1 if self is AdvanceTransactionType.DEDUCTED else 1


class PayrollRecordStatus(str, Enum):
    DRAFT = "Draft"
    PROCESSED = "Processed"
    PAID = "Paid"


# ---------------------------------------------------------------------------
# Employee store
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BankAccount:
    """A remittance account held by an employee."""

    id: UUID
    bank_name: str
    account_number: str
    ifsc: str
    is_default: bool = False


@dataclass(frozen=True)
class Employee:
    """
    Employee as seen by payroll.

    Owned by the employee store; payroll never writes it.
    """

    id: UUID
    employee_code: str
    name: str
    category: EmployeeCategory
    monthly_ctc: Decimal
    status: EmployeeStatus = EmployeeStatus.ACTIVE
    department: str | None = None
    bank_accounts: tuple[BankAccount, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "monthly_ctc", to_decimal(self.monthly_ctc))
        if self.monthly_ctc < 0:
            raise ValueError("monthly_ctc cannot be negative")

    @property
    def is_active(self) -> bool:
        return self.status == EmployeeStatus.ACTIVE

    def default_bank_account(self) -> BankAccount | None:
        """The account marked default, else the first, else None."""
        for account in self.bank_accounts:
            if account.is_default:
                return account
        return self.bank_accounts[0] if self.bank_accounts else None

    def find_bank_account(self, account_id: UUID | None) -> BankAccount | None:
        if account_id is None:
            return None
        for account in self.bank_accounts:
            if account.id == account_id:
                return account
        return None


# ---------------------------------------------------------------------------
# Settings and inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PayrollSettings:
    """
    Process-wide payroll configuration.

    The three split percentages are applied independently to the attendance
    adjusted pay; they are not required to sum to 100.
    """

    basic_pay_percentage: Decimal
    hra_percentage: Decimal
    special_allowance_percentage: Decimal
    pf_enabled: bool
    pf_percentage: Decimal
    esi_enabled: bool
    esi_percentage: Decimal
    pt_enabled: bool
    pt_amount: Decimal
    tds_enabled: bool
    tds_percentage: Decimal
    company_name: str | None = None

    _NUMERIC_FIELDS = (
        "basic_pay_percentage",
        "hra_percentage",
        "special_allowance_percentage",
        "pf_percentage",
        "esi_percentage",
        "pt_amount",
        "tds_percentage",
    )

    def __post_init__(self):
        for name in self._NUMERIC_FIELDS:
            value = to_decimal(getattr(self, name))
            if value < 0:
                raise ValueError(f"{name} cannot be negative")
            object.__setattr__(self, name, round_money(value))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PayrollSettings:
        """Build settings from a plain mapping; unknown keys are rejected."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown payroll settings keys: {sorted(unknown)}")
        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class MonthlyInputs:
    """
    Per-employee inputs for one payroll month.

    Quantities and the deduction are held at 2 decimal places, the precision
    the payroll record stores, so pay is computed from the stored values.
    """

    days_present: Decimal = Decimal("30")
    overtime_hours: Decimal = ZERO
    overtime_days: Decimal = ZERO
    advance_deduction: Decimal = ZERO
    remittance_account_id: UUID | None = None

    def __post_init__(self):
        for name in ("days_present", "overtime_hours", "overtime_days", "advance_deduction"):
            value = to_decimal(getattr(self, name))
            if value < 0:
                raise ValueError(f"{name} cannot be negative")
            object.__setattr__(self, name, round_money(value))


@dataclass(frozen=True)
class SalaryBreakdown:
    """Computed pay components, each rounded to 2 decimal places."""

    basic: Decimal
    hra: Decimal
    special_allowance: Decimal
    overtime: Decimal
    gross: Decimal
    pf: Decimal
    esi: Decimal
    pt: Decimal
    tds: Decimal

    @property
    def statutory_deductions(self) -> Decimal:
        return self.pf + self.esi + self.pt + self.tds


# ---------------------------------------------------------------------------
# Advance ledger
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AdvanceTransaction:
    """Immutable ledger entry; ``amount`` is always a positive magnitude."""

    id: UUID
    date: datetime
    type: AdvanceTransactionType
    amount: Decimal
    notes: str = ""
    related_record_id: UUID | None = None

    @property
    def signed_amount(self) -> Decimal:
        return self.amount * self.type.sign


@dataclass(frozen=True)
class AdvancePayment:
    """
    One advance lineage for an employee.

    ``version`` is the optimistic concurrency token read from the store;
    ledger operations carry it through unchanged so the writer can detect
    a concurrent modification.  New, unpersisted advances have version 0.
    """

    id: UUID
    employee_id: UUID
    amount: Decimal
    balance_amount: Decimal
    status: AdvanceStatus
    date_given: datetime
    notes: str = ""
    transactions: tuple[AdvanceTransaction, ...] = ()
    version: int = 0

    @property
    def is_active(self) -> bool:
        return self.status == AdvanceStatus.ACTIVE

    def deductions_for(self, record_id: UUID) -> tuple[AdvanceTransaction, ...]:
        return tuple(
            t
            for t in self.transactions
            if t.type == AdvanceTransactionType.DEDUCTED
            and t.related_record_id == record_id
        )


# ---------------------------------------------------------------------------
# Payroll records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PayrollRecord:
    """Snapshot of one employee's processed pay for one month."""

    id: UUID
    employee_id: UUID
    employee_name: str
    employee_code: str
    category: EmployeeCategory
    payroll_month: str
    days_present: Decimal
    overtime_hours: Decimal
    overtime_days: Decimal
    basic: Decimal
    hra: Decimal
    special_allowance: Decimal
    overtime: Decimal
    gross: Decimal
    pf: Decimal
    esi: Decimal
    pt: Decimal
    tds: Decimal
    advance_deduction: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    status: PayrollRecordStatus = PayrollRecordStatus.PROCESSED
    overtime_details: str | None = None
    advance_payment_id: UUID | None = None
    remittance_account: BankAccount | None = None
    processed_at: datetime | None = None


@dataclass(frozen=True)
class MonthSummary:
    """Totals across all records of one payroll month."""

    payroll_month: str
    record_count: int
    total_gross: Decimal = ZERO
    total_statutory_deductions: Decimal = ZERO
    total_advance_deductions: Decimal = ZERO
    total_net_pay: Decimal = ZERO
    by_category: dict[str, int] = field(default_factory=dict)
