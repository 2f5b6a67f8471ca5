"""
AdvanceService -- issue, top up and inspect salary advances.

Responsibility:
    Persist advances given outside a payroll run.  An employee with an
    Active advance gets a top-up; otherwise a new advance is created.  Also
    lists advances and their ledger history for display.

Architecture position:
    Kernel > Services.  Computes with the pure ledger in
    ``payroll_kernel.domain.advance_ledger`` and writes through
    ``BatchWriter`` so every advance write shares one code path.

Invariants enforced:
    - Single Active advance per employee (issue tops up).
    - Balance reconstruction (checked by BatchWriter before flush).
    - One issue is one transaction: commit on success, rollback on failure
      (when auto_commit=True).

Failure modes:
    - InvalidAdvanceAmountError for a non-positive amount.
    - RecordNotFoundError-family errors for unknown employees/advances.
    - OptimisticLockError when the Active advance changed concurrently.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from payroll_kernel.domain import advance_ledger
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.dtos import AdvancePayment, AdvanceTransaction
from payroll_kernel.exceptions import AdvanceNotFoundError, EmployeeNotFoundError
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_kernel.models.advance import AdvancePaymentModel
from payroll_kernel.selectors.payroll_selector import PayrollSelector
from payroll_kernel.services.base import BaseService
from payroll_kernel.services.batch_writer import BatchWriter, PayrollBatch

logger = get_logger("services.advance")


class AdvanceService(BaseService[AdvancePaymentModel]):
    """
    Issue and query salary advances.

    Contract:
        ``issue_advance`` returns the stored advance (new or topped up).

    Non-goals:
        - Does NOT deduct or revert; that is the payroll run's job.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auto_commit: bool = True,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._auto_commit = auto_commit
        self._selector = PayrollSelector(session)
        self._writer = BatchWriter(session)

    def issue_advance(
        self,
        employee_id: UUID,
        amount: Decimal,
        notes: str | None,
        actor_id: UUID,
    ) -> AdvancePayment:
        with LogContext.bind(actor_id=str(actor_id), operation="issue_advance"):
            try:
                if self._selector.get_employee(employee_id) is None:
                    raise EmployeeNotFoundError(str(employee_id))

                existing = advance_ledger.find_active(
                    self._selector.get_advances_for_employee(employee_id), employee_id
                )
                advance = advance_ledger.issue_or_top_up(
                    existing, employee_id, amount, notes, self._clock.now()
                )

                if existing is None:
                    batch = PayrollBatch(advance_creates=(advance,))
                else:
                    batch = PayrollBatch(advance_updates=(advance,))
                self._writer.apply(batch, actor_id)

                if self._auto_commit:
                    self.session.commit()
            except Exception:
                if self._auto_commit:
                    self.session.rollback()
                raise

            logger.info(
                "advance_topped_up" if existing is not None else "advance_issued",
                extra={
                    "advance_id": str(advance.id),
                    "employee_id": str(employee_id),
                    "amount": str(advance.transactions[-1].amount),
                    "balance_amount": str(advance.balance_amount),
                },
            )
            return self._selector.get_advance(advance.id)

    def get_history(self, advance_id: UUID) -> list[AdvanceTransaction]:
        """The advance's ledger entries, oldest first."""
        advance = self._selector.get_advance(advance_id)
        if advance is None:
            raise AdvanceNotFoundError(str(advance_id))
        # Stable sort: entries sharing a timestamp keep ledger order.
        return sorted(advance.transactions, key=lambda t: t.date)

    def list_advances(self) -> list[AdvancePayment]:
        """Active advances first, then newest date_given first."""
        advances = self._selector.get_all_advances()
        return sorted(
            advances,
            key=lambda a: (0 if a.is_active else 1, -a.date_given.timestamp()),
        )
