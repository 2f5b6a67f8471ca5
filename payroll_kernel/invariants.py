"""
Payroll Ledger Invariants.

These invariants are structural law for the advance ledger and payroll
records.  No settings record or operator input may override them.

The enforcement is distributed across the pure ledger operations, the
batch writer, the ORM immutability listeners and the payroll_records
unique constraint.  The checking functions below recompute each property
from scratch so tests and audits do not trust the incremental updates.
"""

from collections import defaultdict
from decimal import Decimal
from enum import Enum, unique
from typing import Iterable
from uuid import UUID

from payroll_kernel.db.types import ZERO
from payroll_kernel.domain.dtos import AdvancePayment
from payroll_kernel.exceptions import LedgerInvariantViolationError
from payroll_kernel.logging_config import get_logger

logger = get_logger("invariants")


@unique
class PayrollInvariant(str, Enum):
    """Non-configurable invariants enforced by the payroll kernel."""

    BALANCE_RECONSTRUCTION = "balance_reconstruction"
    """An advance's balance equals the signed sum of its transactions.
    Enforced by the ledger operations and re-checked by BatchWriter."""

    SINGLE_ACTIVE_ADVANCE = "single_active_advance"
    """At most one Active advance per employee.  Issue tops up instead of
    creating a second record; the only breach (reopen on revert) is
    reported as a run warning."""

    LEDGER_APPEND_ONLY = "ledger_append_only"
    """Advance transactions are never updated or deleted.  Enforced by ORM
    listeners and by BatchWriter's prefix check."""

    RECORD_SNAPSHOT = "record_snapshot"
    """Payroll records are never updated; they are reverted and processed
    again.  Enforced by ORM listeners."""

    ONE_RECORD_PER_EMPLOYEE_MONTH = "one_record_per_employee_month"
    """At most one payroll record per (employee, month).  Enforced by the
    run's precondition check and a unique constraint."""

    ATOMIC_RUN = "atomic_run"
    """A run, revert or delete-run persists all of its writes or none."""


ALL_PAYROLL_INVARIANTS: frozenset[PayrollInvariant] = frozenset(PayrollInvariant)


def reconstruct_balance(advance: AdvancePayment) -> Decimal:
    """Signed sum of the advance's transactions."""
    return sum((t.signed_amount for t in advance.transactions), ZERO)


def check_balance_invariant(advance: AdvancePayment) -> bool:
    return reconstruct_balance(advance) == advance.balance_amount


def assert_balance_invariant(advance: AdvancePayment) -> None:
    """Raise LedgerInvariantViolationError if the stored balance has drifted."""
    reconstructed = reconstruct_balance(advance)
    if reconstructed != advance.balance_amount:
        logger.error(
            "ledger_invariant_violation",
            extra={
                "invariant": PayrollInvariant.BALANCE_RECONSTRUCTION.value,
                "advance_id": str(advance.id),
                "balance_amount": str(advance.balance_amount),
                "reconstructed": str(reconstructed),
            },
        )
        raise LedgerInvariantViolationError(
            advance_id=str(advance.id),
            balance_amount=str(advance.balance_amount),
            reconstructed=str(reconstructed),
        )


def find_multiple_active(
    advances: Iterable[AdvancePayment],
) -> dict[UUID, list[AdvancePayment]]:
    """Employees holding more than one Active advance, with those advances."""
    by_employee: dict[UUID, list[AdvancePayment]] = defaultdict(list)
    for advance in advances:
        if advance.is_active:
            by_employee[advance.employee_id].append(advance)
    return {emp: items for emp, items in by_employee.items() if len(items) > 1}


def check_single_active(advances: Iterable[AdvancePayment]) -> bool:
    return not find_multiple_active(advances)
