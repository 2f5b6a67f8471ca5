"""
PayrollRunOrchestrator -- process, revert and delete monthly payroll.

Responsibility:
    Coordinate the salary engine and the advance ledger across a batch of
    employees for one payroll month, persist the resulting payroll records
    and ledger updates in one atomic batch, and undo them again either one
    record at a time or for a whole month.

Architecture position:
    Kernel > Services.  Top of the kernel: reads through PayrollSelector,
    computes with payroll_engines.salary and domain.advance_ledger, writes
    through BatchWriter.  This class alone commits or rolls back.

State machine per (employee, month):
    Not Processed --process--> Processed --revert_one/delete_run--> Not Processed
    ``Paid`` exists on records but no operation here moves a record to it.

Invariants enforced:
    - All-or-nothing: a call either commits every record and ledger update
      it built, or none of them.
    - One record per (employee, month): checked before any write and backed
      by a unique constraint.
    - Deductions and reverts go through the pure ledger, so every advance
      written still reconstructs from its transactions.

Failure modes:
    - VALIDATION_FAILED: bad month, empty selection, missing settings,
      duplicate (employee, month).  Nothing is written.
    - NOT_FOUND: revert of an unknown record.
    - COMMIT_FAILED: any kernel or store error while building or writing
      the batch; the session is rolled back.
    - Any other exception rolls back and propagates.

Audit relevance:
    Every run logs payroll_run_started / batch_committed with the month,
    actor and a correlation id.  Every deduction and revert leaves a ledger
    entry naming the payroll record that caused it.
"""

import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from payroll_engines.salary import SalaryCalculator, overtime_details
from payroll_kernel.db.types import round_money
from payroll_kernel.domain import advance_ledger
from payroll_kernel.domain.advance_ledger import LocateMethod
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.dtos import (
    AdvancePayment,
    Employee,
    MonthlyInputs,
    PayrollRecord,
    PayrollRecordStatus,
    PayrollSettings,
)
from payroll_kernel.exceptions import (
    BatchCommitError,
    DuplicatePayrollRecordError,
    EmptySelectionError,
    InvalidPayrollMonthError,
    PayrollKernelError,
    PayrollRecordNotFoundError,
    PayrollValidationError,
    SettingsNotConfiguredError,
)
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_kernel.models.payroll_record import PayrollRecordModel
from payroll_kernel.selectors.payroll_selector import PayrollSelector
from payroll_kernel.services.base import BaseService
from payroll_kernel.services.batch_writer import BatchWriter, PayrollBatch

logger = get_logger("services.payroll_run")

_MONTH_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

DEFAULT_DAYS_PRESENT = Decimal("30")


class PayrollRunStatus(str, Enum):
    """Outcome of a payroll run operation."""

    COMPLETED = "completed"
    COMPLETED_WITH_WARNINGS = "completed_with_warnings"
    VALIDATION_FAILED = "validation_failed"
    NOT_FOUND = "not_found"
    COMMIT_FAILED = "commit_failed"


class WarningCode(str, Enum):
    DEDUCTION_EXCEEDS_BALANCE = "deduction_exceeds_balance"
    DEDUCTION_WITHOUT_ADVANCE = "deduction_without_advance"
    NEGATIVE_NET_PAY = "negative_net_pay"
    ADVANCE_NOT_FOUND = "advance_not_found"
    ADVANCE_LOCATED_BY_EMPLOYEE = "advance_located_by_employee"
    MULTIPLE_ACTIVE_ADVANCES = "multiple_active_advances"


@dataclass(frozen=True)
class RunWarning:
    """Something the operator should look at; the run still committed."""

    code: WarningCode
    message: str
    employee_id: UUID | None = None
    payroll_record_id: UUID | None = None
    advance_payment_id: UUID | None = None


@dataclass(frozen=True)
class ProcessedPay:
    employee_id: UUID
    employee_name: str
    net_pay: Decimal


@dataclass(frozen=True)
class PayrollRunResult:
    """
    Result of process, revert_one or delete_run.

    On failure only ``status``, ``error_code`` and ``message`` are set;
    there is never a partial success.
    """

    status: PayrollRunStatus
    payroll_month: str | None = None
    processed: tuple[ProcessedPay, ...] = ()
    records: tuple[PayrollRecord, ...] = ()
    reverted_record_ids: tuple[UUID, ...] = ()
    skipped_employee_ids: tuple[UUID, ...] = ()
    warnings: tuple[RunWarning, ...] = ()
    error_code: str | None = None
    message: str | None = None

    @property
    def is_success(self) -> bool:
        return self.status in (
            PayrollRunStatus.COMPLETED,
            PayrollRunStatus.COMPLETED_WITH_WARNINGS,
        )

    @classmethod
    def failure(
        cls,
        status: PayrollRunStatus,
        payroll_month: str | None,
        error: PayrollKernelError,
    ) -> "PayrollRunResult":
        return cls(
            status=status,
            payroll_month=payroll_month,
            error_code=error.code,
            message=str(error),
        )


def validate_payroll_month(payroll_month: str) -> str:
    """Return the month unchanged if it is YYYY-MM with a month of 01-12."""
    if not isinstance(payroll_month, str) or not _MONTH_PATTERN.match(payroll_month):
        raise InvalidPayrollMonthError(str(payroll_month))
    return payroll_month


def _completed_status(warnings: Sequence[RunWarning]) -> PayrollRunStatus:
    if warnings:
        return PayrollRunStatus.COMPLETED_WITH_WARNINGS
    return PayrollRunStatus.COMPLETED


class PayrollRunOrchestrator(BaseService[PayrollRecordModel]):
    """
    Runs, reverts and deletes monthly payroll.

    Contract:
        Each public write method is one unit of work on the injected
        session and returns a ``PayrollRunResult``; kernel and store errors
        become failure results, anything else propagates after rollback.

    Guarantees:
        - Validation happens before any write.
        - A failed batch leaves no records and no ledger changes.

    Non-goals:
        - Does NOT mark records Paid.
        - Does NOT retry on OptimisticLockError; the caller may.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        calculator: SalaryCalculator | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._calculator = calculator or SalaryCalculator()
        self._selector = PayrollSelector(session)
        self._writer = BatchWriter(session)

    # ------------------------------------------------------------------
    # Unit-of-work wrapper
    # ------------------------------------------------------------------

    def _run(
        self,
        operation: str,
        payroll_month: str | None,
        actor_id: UUID,
        body: Callable[[], PayrollRunResult],
    ) -> PayrollRunResult:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=str(actor_id),
            payroll_month=payroll_month,
            operation=operation,
        ):
            logger.info("payroll_run_started")
            try:
                result = body()
            except PayrollValidationError as exc:
                self.session.rollback()
                logger.warning(
                    "payroll_run_rejected",
                    extra={"error_code": exc.code, "detail": str(exc)},
                )
                return PayrollRunResult.failure(
                    PayrollRunStatus.VALIDATION_FAILED, payroll_month, exc
                )
            except PayrollRecordNotFoundError as exc:
                self.session.rollback()
                logger.warning("payroll_record_not_found", extra={"record_id": exc.record_id})
                return PayrollRunResult.failure(
                    PayrollRunStatus.NOT_FOUND, payroll_month, exc
                )
            except PayrollKernelError as exc:
                self.session.rollback()
                logger.error(
                    "payroll_run_failed",
                    extra={"error_code": exc.code, "detail": str(exc)},
                )
                return PayrollRunResult.failure(
                    PayrollRunStatus.COMMIT_FAILED, payroll_month, exc
                )
            except SQLAlchemyError as exc:
                self.session.rollback()
                wrapped = BatchCommitError(operation, str(exc))
                logger.error(
                    "payroll_run_failed",
                    extra={"error_code": wrapped.code, "detail": str(exc)},
                )
                return PayrollRunResult.failure(
                    PayrollRunStatus.COMMIT_FAILED, payroll_month, wrapped
                )
            except Exception:
                self.session.rollback()
                logger.exception("payroll_run_unexpected_error")
                raise

            logger.info(
                "payroll_run_finished",
                extra={
                    "status": result.status.value,
                    "warning_count": len(result.warnings),
                },
            )
            return result

    def _commit(self, batch: PayrollBatch, actor_id: UUID) -> None:
        if not batch.is_empty:
            self._writer.apply(batch, actor_id)
        self.session.commit()
        logger.info(
            "batch_committed",
            extra={
                "records_created": len(batch.record_creates),
                "advances_updated": len(batch.advance_updates),
                "records_deleted": len(batch.record_deletes),
            },
        )

    # ------------------------------------------------------------------
    # Process
    # ------------------------------------------------------------------

    def process(
        self,
        payroll_month: str,
        selected_employee_ids: Sequence[UUID],
        inputs: Mapping[UUID, MonthlyInputs],
        actor_id: UUID,
    ) -> PayrollRunResult:
        """Compute, deduct and persist payroll for the selected employees."""
        return self._run(
            "process",
            payroll_month,
            actor_id,
            lambda: self._process(payroll_month, selected_employee_ids, inputs, actor_id),
        )

    def _validate_process(
        self, payroll_month: str, selected_employee_ids: Sequence[UUID]
    ) -> tuple[list[UUID], PayrollSettings]:
        validate_payroll_month(payroll_month)

        # De-duplicate, keeping selection order.
        employee_ids = list(dict.fromkeys(selected_employee_ids))
        if not employee_ids:
            raise EmptySelectionError(payroll_month)

        settings = self._selector.get_settings()
        if settings is None:
            raise SettingsNotConfiguredError()

        already = self._selector.get_processed_employee_ids(payroll_month, employee_ids)
        if already:
            raise DuplicatePayrollRecordError(
                payroll_month, [str(emp_id) for emp_id in employee_ids if emp_id in already]
            )
        return employee_ids, settings

    def _process(
        self,
        payroll_month: str,
        selected_employee_ids: Sequence[UUID],
        inputs: Mapping[UUID, MonthlyInputs],
        actor_id: UUID,
    ) -> PayrollRunResult:
        employee_ids, settings = self._validate_process(payroll_month, selected_employee_ids)
        now = self._clock.now()

        records: list[PayrollRecord] = []
        processed: list[ProcessedPay] = []
        skipped: list[UUID] = []
        warnings: list[RunWarning] = []
        advance_updates: dict[UUID, AdvancePayment] = {}

        for employee_id in employee_ids:
            employee = self._selector.get_employee(employee_id)
            employee_inputs = inputs.get(employee_id)
            if employee is None or not employee.is_active or employee_inputs is None:
                reason = (
                    "missing_inputs"
                    if employee is not None and employee.is_active
                    else "employee_not_active"
                )
                logger.warning(
                    "payroll_employee_skipped",
                    extra={"employee_id": str(employee_id), "reason": reason},
                )
                skipped.append(employee_id)
                continue

            breakdown = self._calculator.calculate(employee, employee_inputs, settings)
            if breakdown is None:
                skipped.append(employee_id)
                continue

            record_id = uuid4()
            advance_deduction = round_money(employee_inputs.advance_deduction)
            advance_payment_id = None

            if advance_deduction > 0:
                updated = self._deduct_advance(
                    employee, advance_deduction, record_id, payroll_month, now, warnings
                )
                if updated is not None:
                    advance_updates[updated.id] = updated
                    advance_payment_id = updated.id

            total_deductions = breakdown.statutory_deductions + advance_deduction
            net_pay = breakdown.gross - total_deductions
            if net_pay < 0:
                warnings.append(
                    RunWarning(
                        code=WarningCode.NEGATIVE_NET_PAY,
                        message=f"{employee.name}: net pay {net_pay} is negative",
                        employee_id=employee.id,
                        payroll_record_id=record_id,
                    )
                )

            record = PayrollRecord(
                id=record_id,
                employee_id=employee.id,
                employee_name=employee.name,
                employee_code=employee.employee_code,
                category=employee.category,
                payroll_month=payroll_month,
                days_present=employee_inputs.days_present,
                overtime_hours=employee_inputs.overtime_hours,
                overtime_days=employee_inputs.overtime_days,
                overtime_details=overtime_details(employee.category, employee_inputs),
                basic=breakdown.basic,
                hra=breakdown.hra,
                special_allowance=breakdown.special_allowance,
                overtime=breakdown.overtime,
                gross=breakdown.gross,
                pf=breakdown.pf,
                esi=breakdown.esi,
                pt=breakdown.pt,
                tds=breakdown.tds,
                advance_deduction=advance_deduction,
                total_deductions=total_deductions,
                net_pay=net_pay,
                status=PayrollRecordStatus.PROCESSED,
                advance_payment_id=advance_payment_id,
                remittance_account=employee.find_bank_account(
                    employee_inputs.remittance_account_id
                ),
                processed_at=now,
            )
            records.append(record)
            processed.append(ProcessedPay(employee.id, employee.name, net_pay))

        self._commit(
            PayrollBatch(
                record_creates=tuple(records),
                advance_updates=tuple(advance_updates.values()),
            ),
            actor_id,
        )

        return PayrollRunResult(
            status=_completed_status(warnings),
            payroll_month=payroll_month,
            processed=tuple(processed),
            records=tuple(records),
            skipped_employee_ids=tuple(skipped),
            warnings=tuple(warnings),
        )

    def _deduct_advance(
        self,
        employee: Employee,
        amount: Decimal,
        record_id: UUID,
        payroll_month: str,
        now: datetime,
        warnings: list[RunWarning],
    ) -> AdvancePayment | None:
        active = advance_ledger.find_active(
            self._selector.get_advances_for_employee(employee.id), employee.id
        )
        if active is None:
            warnings.append(
                RunWarning(
                    code=WarningCode.DEDUCTION_WITHOUT_ADVANCE,
                    message=(
                        f"{employee.name}: advance deduction {amount} recorded "
                        "but no active advance exists"
                    ),
                    employee_id=employee.id,
                    payroll_record_id=record_id,
                )
            )
            return None

        if amount > active.balance_amount:
            warnings.append(
                RunWarning(
                    code=WarningCode.DEDUCTION_EXCEEDS_BALANCE,
                    message=(
                        f"{employee.name}: deduction {amount} exceeds advance "
                        f"balance {active.balance_amount}"
                    ),
                    employee_id=employee.id,
                    payroll_record_id=record_id,
                    advance_payment_id=active.id,
                )
            )

        updated = advance_ledger.deduct(active, amount, record_id, payroll_month, now)
        logger.info(
            "advance_deducted",
            extra={
                "advance_id": str(active.id),
                "employee_id": str(employee.id),
                "payroll_record_id": str(record_id),
                "amount": str(amount),
                "balance_amount": str(updated.balance_amount),
                "advance_status": updated.status.value,
            },
        )
        return updated

    # ------------------------------------------------------------------
    # Revert and delete
    # ------------------------------------------------------------------

    def revert_one(self, record_id: UUID, actor_id: UUID) -> PayrollRunResult:
        """Delete one payroll record and give its deduction back to the advance."""
        return self._run(
            "revert_one", None, actor_id, lambda: self._revert_one(record_id, actor_id)
        )

    def _revert_one(self, record_id: UUID, actor_id: UUID) -> PayrollRunResult:
        record = self._selector.get_record(record_id)
        if record is None:
            raise PayrollRecordNotFoundError(str(record_id))

        advance_updates, warnings = self._plan_reverts([record], deleted_run=False)
        self._commit(
            PayrollBatch(
                advance_updates=tuple(advance_updates.values()),
                record_deletes=(record.id,),
            ),
            actor_id,
        )
        return PayrollRunResult(
            status=_completed_status(warnings),
            payroll_month=record.payroll_month,
            reverted_record_ids=(record.id,),
            warnings=tuple(warnings),
        )

    def delete_run(self, payroll_month: str, actor_id: UUID) -> PayrollRunResult:
        """Delete every record of the month, reverting each deduction."""
        return self._run(
            "delete_run",
            payroll_month,
            actor_id,
            lambda: self._delete_run(payroll_month, actor_id),
        )

    def _delete_run(self, payroll_month: str, actor_id: UUID) -> PayrollRunResult:
        validate_payroll_month(payroll_month)
        records = self._selector.get_records_for_month(payroll_month)
        if not records:
            logger.info("payroll_delete_run_empty")
            return PayrollRunResult(
                status=PayrollRunStatus.COMPLETED, payroll_month=payroll_month
            )

        advance_updates, warnings = self._plan_reverts(records, deleted_run=True)
        self._commit(
            PayrollBatch(
                advance_updates=tuple(advance_updates.values()),
                record_deletes=tuple(record.id for record in records),
            ),
            actor_id,
        )
        return PayrollRunResult(
            status=_completed_status(warnings),
            payroll_month=payroll_month,
            reverted_record_ids=tuple(record.id for record in records),
            warnings=tuple(warnings),
        )

    def _revert_candidates(
        self, record: PayrollRecord, working: Mapping[UUID, AdvancePayment]
    ) -> list[AdvancePayment]:
        candidates = self._selector.get_advances_for_employee(record.employee_id)
        known = {advance.id for advance in candidates}
        if record.advance_payment_id is not None and record.advance_payment_id not in known:
            linked = self._selector.get_advance(record.advance_payment_id)
            if linked is not None:
                candidates.append(linked)
        # Earlier reverts in this call must compose.
        return [working.get(advance.id, advance) for advance in candidates]

    def _plan_reverts(
        self, records: Sequence[PayrollRecord], deleted_run: bool
    ) -> tuple[dict[UUID, AdvancePayment], list[RunWarning]]:
        now = self._clock.now()
        working: dict[UUID, AdvancePayment] = {}
        warnings: list[RunWarning] = []

        for record in records:
            if record.advance_deduction <= 0:
                continue

            candidates = self._revert_candidates(record, working)
            advance, method = advance_ledger.locate_for_revert(record, candidates)

            if advance is None:
                logger.warning(
                    "advance_not_found_for_revert",
                    extra={"payroll_record_id": str(record.id)},
                )
                warnings.append(
                    RunWarning(
                        code=WarningCode.ADVANCE_NOT_FOUND,
                        message=(
                            f"{record.employee_name}: no advance found to return "
                            f"{record.advance_deduction}; record deleted anyway"
                        ),
                        employee_id=record.employee_id,
                        payroll_record_id=record.id,
                    )
                )
                continue

            if method == LocateMethod.BY_EMPLOYEE:
                warnings.append(
                    RunWarning(
                        code=WarningCode.ADVANCE_LOCATED_BY_EMPLOYEE,
                        message=(
                            f"{record.employee_name}: record had no advance link; "
                            f"returned deduction to advance {advance.id}"
                        ),
                        employee_id=record.employee_id,
                        payroll_record_id=record.id,
                        advance_payment_id=advance.id,
                    )
                )

            reverted = advance_ledger.revert(
                advance,
                record.advance_deduction,
                record.id,
                record.payroll_month,
                now,
                deleted_run=deleted_run,
            )
            working[reverted.id] = reverted

            logger.info(
                "advance_reverted",
                extra={
                    "advance_id": str(advance.id),
                    "payroll_record_id": str(record.id),
                    "amount": str(record.advance_deduction),
                    "balance_amount": str(reverted.balance_amount),
                    "locate_method": method.value,
                },
            )

            if not advance.is_active:
                others = [
                    a
                    for a in candidates
                    if a.id != advance.id
                    and a.employee_id == record.employee_id
                    and a.is_active
                ]
                if others:
                    warnings.append(
                        RunWarning(
                            code=WarningCode.MULTIPLE_ACTIVE_ADVANCES,
                            message=(
                                f"{record.employee_name}: reopening advance "
                                f"{advance.id} leaves {len(others) + 1} active advances"
                            ),
                            employee_id=record.employee_id,
                            payroll_record_id=record.id,
                            advance_payment_id=advance.id,
                        )
                    )

        return working, warnings

    # ------------------------------------------------------------------
    # Preparation queries
    # ------------------------------------------------------------------

    def pending_employees(self, payroll_month: str) -> list[Employee]:
        """Active employees with no record for the month, ordered by name."""
        validate_payroll_month(payroll_month)
        processed = self._selector.get_processed_employee_ids(payroll_month)
        return [
            employee
            for employee in self._selector.get_active_employees()
            if employee.id not in processed
        ]

    def prepare_inputs(self, payroll_month: str) -> dict[UUID, MonthlyInputs]:
        """
        Default inputs for every pending employee: full attendance, no
        overtime, the suggested advance deduction and the default account.
        """
        settings = self._selector.get_settings()
        active_advances = self._selector.get_active_advances()
        prepared: dict[UUID, MonthlyInputs] = {}
        for employee in self.pending_employees(payroll_month):
            active = advance_ledger.find_active(active_advances, employee.id)
            account = employee.default_bank_account()
            prepared[employee.id] = MonthlyInputs(
                days_present=DEFAULT_DAYS_PRESENT,
                advance_deduction=advance_ledger.suggest_deduction(
                    employee, active, settings
                ),
                remittance_account_id=account.id if account else None,
            )
        return prepared
