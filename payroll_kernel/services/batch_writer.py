"""
BatchWriter -- the single write path for payroll records and advances.

Responsibility:
    Apply a ``PayrollBatch`` (record creates, advance creates, advance
    updates, record deletes) to the session and flush it as one unit.

Architecture position:
    Kernel > Services.  Used by the payroll run orchestrator and by
    AdvanceService.  Flushes only; the caller commits or rolls back, which
    is what makes the batch atomic.

Invariants enforced:
    - Every advance written satisfies balance == sum of signed transactions
      (checked before any SQL is issued).
    - Advance updates are compare-and-set: the DTO's version must match the
      stored version, and the mapper's version_id_col re-checks at flush.
    - Ledger history is only extended: stored transactions must be a prefix
      of the DTO's transactions; only the new tail is inserted.

Failure modes:
    - OptimisticLockError when an advance changed since it was read.
    - ImmutabilityViolationError when a DTO drops or reorders stored
      transactions.
    - LedgerInvariantViolationError when a DTO's balance disagrees with its
      transactions.
    - AdvanceNotFoundError / PayrollRecordNotFoundError for missing targets.
    - BatchCommitError wrapping driver errors (unique constraint, etc.).

Audit relevance:
    Nothing reaches the payroll tables except through this class, so every
    write is logged with its batch counts.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from payroll_kernel.domain.dtos import AdvancePayment, PayrollRecord
from payroll_kernel.exceptions import (
    AdvanceNotFoundError,
    BatchCommitError,
    ImmutabilityViolationError,
    OptimisticLockError,
    PayrollRecordNotFoundError,
)
from payroll_kernel.invariants import assert_balance_invariant
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.advance import AdvancePaymentModel, AdvanceTransactionModel
from payroll_kernel.models.payroll_record import PayrollRecordModel
from payroll_kernel.services.base import BaseService

logger = get_logger("services.batch_writer")


@dataclass(frozen=True)
class PayrollBatch:
    """All writes of one payroll operation."""

    record_creates: tuple[PayrollRecord, ...] = ()
    advance_creates: tuple[AdvancePayment, ...] = ()
    advance_updates: tuple[AdvancePayment, ...] = ()
    record_deletes: tuple[UUID, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (
            self.record_creates
            or self.advance_creates
            or self.advance_updates
            or self.record_deletes
        )


class BatchWriter(BaseService[AdvancePaymentModel]):
    """
    Applies payroll batches within the caller's transaction.

    Contract:
        ``apply`` either flushes the whole batch or raises; on raise the
        caller must roll back the session.

    Non-goals:
        - Does NOT commit.
        - Does NOT compute anything; DTOs arrive fully formed.
    """

    def apply(self, batch: PayrollBatch, actor_id: UUID) -> None:
        for advance in batch.advance_creates + batch.advance_updates:
            assert_balance_invariant(advance)

        try:
            for advance in batch.advance_creates:
                self.session.add(AdvancePaymentModel.from_dto(advance, actor_id))

            for advance in batch.advance_updates:
                self._apply_advance_update(advance, actor_id)

            for record in batch.record_creates:
                self.session.add(PayrollRecordModel.from_dto(record, actor_id))

            for record_id in batch.record_deletes:
                model = self.session.get(PayrollRecordModel, record_id)
                if model is None:
                    raise PayrollRecordNotFoundError(str(record_id))
                self.session.delete(model)

            self.session.flush()
        except StaleDataError as exc:
            logger.warning("batch_version_conflict", extra={"detail": str(exc)})
            entity_id = batch.advance_updates[0].id if batch.advance_updates else "unknown"
            raise OptimisticLockError("AdvancePayment", str(entity_id)) from exc
        except IntegrityError as exc:
            logger.error("batch_integrity_error", extra={"detail": str(exc.orig)})
            raise BatchCommitError("payroll", str(exc.orig)) from exc
        except SQLAlchemyError as exc:
            logger.error("batch_store_error", extra={"detail": str(exc)})
            raise BatchCommitError("payroll", str(exc)) from exc

        logger.info(
            "batch_applied",
            extra={
                "records_created": len(batch.record_creates),
                "advances_created": len(batch.advance_creates),
                "advances_updated": len(batch.advance_updates),
                "records_deleted": len(batch.record_deletes),
            },
        )

    def _apply_advance_update(self, advance: AdvancePayment, actor_id: UUID) -> None:
        model = self.session.get(AdvancePaymentModel, advance.id)
        if model is None:
            raise AdvanceNotFoundError(str(advance.id))

        if model.version != advance.version:
            logger.warning(
                "advance_version_mismatch",
                extra={
                    "advance_id": str(advance.id),
                    "stored_version": model.version,
                    "read_version": advance.version,
                },
            )
            raise OptimisticLockError("AdvancePayment", str(advance.id))

        stored_ids = [t.id for t in model.transactions]
        incoming_ids = [t.id for t in advance.transactions]
        if incoming_ids[: len(stored_ids)] != stored_ids:
            raise ImmutabilityViolationError(
                entity_type="AdvanceTransaction",
                entity_id=str(advance.id),
                reason="ledger history may only be extended, not rewritten",
            )

        model.amount = advance.amount
        model.balance_amount = advance.balance_amount
        model.status = advance.status.value
        model.notes = advance.notes
        model.updated_by_id = actor_id

        for sequence, txn in enumerate(
            advance.transactions[len(stored_ids):], start=len(stored_ids)
        ):
            model.transactions.append(
                AdvanceTransactionModel.from_dto(txn, sequence, actor_id)
            )
