"""
Advance Ledger -- pure operations over AdvancePayment DTOs.

Responsibility:
    Issue and top up salary advances, suggest a monthly deduction, record
    deductions made by a payroll run, record reverts when a run is undone,
    and find the advance a payroll record's deduction belongs to.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Timestamps are passed
    in by the caller.  Persistence happens through
    the batch writer; this module never touches a session.

Invariants enforced:
    - balance_amount == sum of signed transaction amounts after every
      operation (issued +, topped-up +, deducted -, reverted +).
    - Transactions are only appended; earlier entries are carried over
      unchanged into the returned DTO.
    - A deduction only applies to an Active advance.
    - A revert always leaves the advance Active.

Failure modes:
    - InvalidAdvanceAmountError for zero or negative amounts.
    - AdvanceNotActiveError when deducting from a Fully Deducted advance.

Audit relevance:
    Every deduction and revert transaction carries the payroll record id
    that caused it, so a revert can find its advance through history even
    when the record's own link is missing.
"""

from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable, Sequence
from uuid import UUID, uuid4

from payroll_kernel.db.types import ZERO, round_money, to_decimal
from payroll_kernel.domain.dtos import (
    AdvancePayment,
    AdvanceStatus,
    AdvanceTransaction,
    AdvanceTransactionType,
    Employee,
    PayrollRecord,
    PayrollSettings,
)
from payroll_kernel.exceptions import AdvanceNotActiveError, InvalidAdvanceAmountError

# Suggested monthly recovery is capped at this share of monthly CTC.
SUGGESTED_DEDUCTION_CAP = Decimal("0.30")

INITIAL_ADVANCE_NOTE = "Initial advance"
TOP_UP_NOTE = "Additional advance given"


class LocateMethod(str, Enum):
    """How locate_for_revert resolved a record's advance."""

    BY_ID = "by_id"
    BY_HISTORY = "by_history"
    BY_EMPLOYEE = "by_employee"
    NOT_FOUND = "not_found"


def _require_positive(amount: Decimal, operation: str) -> None:
    if amount <= 0:
        raise InvalidAdvanceAmountError(amount=str(amount), operation=operation)


def _append(
    advance: AdvancePayment,
    txn_type: AdvanceTransactionType,
    amount: Decimal,
    notes: str,
    at: datetime,
    related_record_id: UUID | None = None,
) -> tuple[AdvanceTransaction, ...]:
    txn = AdvanceTransaction(
        id=uuid4(),
        date=at,
        type=txn_type,
        amount=amount,
        notes=notes,
        related_record_id=related_record_id,
    )
    return advance.transactions + (txn,)


def issue_or_top_up(
    existing_active: AdvancePayment | None,
    employee_id: UUID,
    amount: Decimal,
    notes: str | None,
    at: datetime,
    advance_id: UUID | None = None,
) -> AdvancePayment:
    """
    Give an employee an advance.

    With an Active advance the amount is added to it (topped-up entry);
    otherwise a new advance starts with a single issued entry.
    """
    amount = round_money(to_decimal(amount))
    _require_positive(amount, "issue")

    if existing_active is not None and existing_active.is_active:
        return replace(
            existing_active,
            amount=existing_active.amount + amount,
            balance_amount=existing_active.balance_amount + amount,
            notes=notes or existing_active.notes,
            transactions=_append(
                existing_active,
                AdvanceTransactionType.TOPPED_UP,
                amount,
                notes or TOP_UP_NOTE,
                at,
            ),
        )

    advance = AdvancePayment(
        id=advance_id or uuid4(),
        employee_id=employee_id,
        amount=amount,
        balance_amount=amount,
        status=AdvanceStatus.ACTIVE,
        date_given=at,
        notes=notes or "",
    )
    return replace(
        advance,
        transactions=_append(
            advance,
            AdvanceTransactionType.ISSUED,
            amount,
            notes or INITIAL_ADVANCE_NOTE,
            at,
        ),
    )


def suggest_deduction(
    employee: Employee,
    active_advance: AdvancePayment | None,
    settings: PayrollSettings | None,
) -> Decimal:
    """min(balance, 30% of monthly CTC), rounded half-up to a whole unit."""
    if settings is None or active_advance is None or not active_advance.is_active:
        return ZERO
    if active_advance.balance_amount <= 0:
        return ZERO
    cap = employee.monthly_ctc * SUGGESTED_DEDUCTION_CAP
    return round_money(min(active_advance.balance_amount, cap), decimal_places=0)


def deduct(
    advance: AdvancePayment,
    amount: Decimal,
    payroll_record_id: UUID,
    payroll_month: str,
    at: datetime,
) -> AdvancePayment:
    """
    Recover part of an advance through payroll.

    The balance is not clamped; an over-deduction leaves it negative and
    the advance Fully Deducted.
    """
    if not advance.is_active:
        raise AdvanceNotActiveError(
            advance_id=str(advance.id), status=advance.status.value
        )
    _require_positive(amount, "deduct")

    new_balance = advance.balance_amount - amount
    return replace(
        advance,
        balance_amount=new_balance,
        status=AdvanceStatus.FULLY_DEDUCTED if new_balance <= 0 else AdvanceStatus.ACTIVE,
        transactions=_append(
            advance,
            AdvanceTransactionType.DEDUCTED,
            amount,
            f"Deducted in payroll for {payroll_month}",
            at,
            related_record_id=payroll_record_id,
        ),
    )


def revert(
    advance: AdvancePayment,
    amount: Decimal,
    payroll_record_id: UUID,
    payroll_month: str,
    at: datetime,
    deleted_run: bool = False,
) -> AdvancePayment:
    """Give a payroll deduction back to the advance and reopen it."""
    _require_positive(amount, "revert")

    if deleted_run:
        note = f"Reverted from deleted payroll for {payroll_month}"
    else:
        note = f"Reverted from payroll for {payroll_month}"

    return replace(
        advance,
        balance_amount=advance.balance_amount + amount,
        status=AdvanceStatus.ACTIVE,
        transactions=_append(
            advance,
            AdvanceTransactionType.REVERTED,
            amount,
            note,
            at,
            related_record_id=payroll_record_id,
        ),
    )


def _revert_order(advance: AdvancePayment) -> tuple[int, float]:
    # Active before Fully Deducted, then newest date_given first
    return (0 if advance.is_active else 1, -advance.date_given.timestamp())


def locate_for_revert(
    record: PayrollRecord,
    candidates: Iterable[AdvancePayment],
) -> tuple[AdvancePayment | None, LocateMethod]:
    """
    Find the advance a record's deduction should be returned to.

    Order of preference: the record's own advance link, an advance whose
    history holds a deduction referencing the record, then the employee's
    advances in deterministic order.
    """
    candidates = list(candidates)

    if record.advance_payment_id is not None:
        for advance in candidates:
            if advance.id == record.advance_payment_id:
                return advance, LocateMethod.BY_ID

    pool = [a for a in candidates if a.employee_id == record.employee_id]

    for advance in sorted(pool, key=_revert_order):
        if advance.deductions_for(record.id):
            return advance, LocateMethod.BY_HISTORY

    if pool:
        return sorted(pool, key=_revert_order)[0], LocateMethod.BY_EMPLOYEE

    return None, LocateMethod.NOT_FOUND


def find_active(
    advances: Sequence[AdvancePayment],
    employee_id: UUID,
) -> AdvancePayment | None:
    """The employee's Active advance; the oldest one if several exist."""
    active = [a for a in advances if a.employee_id == employee_id and a.is_active]
    if not active:
        return None
    return min(active, key=lambda a: (a.date_given, str(a.id)))
