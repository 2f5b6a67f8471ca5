"""
Tests for PayrollRunOrchestrator (payroll_kernel/services/payroll_run.py).

Process, revert_one and delete_run against a real session: records and
ledger entries are read back through PayrollSelector after each commit.
"""

from dataclasses import replace
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from payroll_kernel.domain.dtos import (
    AdvanceStatus,
    AdvanceTransactionType,
    BankAccount,
    EmployeeCategory,
    EmployeeStatus,
    MonthlyInputs,
    PayrollRecordStatus,
)
from payroll_kernel.invariants import check_balance_invariant
from payroll_kernel.selectors.payroll_selector import PayrollSelector
from payroll_kernel.services.batch_writer import BatchWriter
from payroll_kernel.services.payroll_run import (
    PayrollRunStatus,
    WarningCode,
    validate_payroll_month,
)
from payroll_kernel.exceptions import InvalidPayrollMonthError
from tests.conftest import TEST_ACTOR_ID

MONTH = "2024-02"


@pytest.fixture
def selector(session) -> PayrollSelector:
    return PayrollSelector(session)


def _deduct(amount: str, days: str = "30") -> MonthlyInputs:
    return MonthlyInputs(days_present=Decimal(days), advance_deduction=Decimal(amount))


def _codes(result) -> list[WarningCode]:
    return [w.code for w in result.warnings]


# =============================================================================
# Month validation
# =============================================================================


class TestValidatePayrollMonth:

    @pytest.mark.parametrize("month", ["2024-01", "2024-12", "1999-09"])
    def test_valid(self, month):
        assert validate_payroll_month(month) == month

    @pytest.mark.parametrize("month", ["2024-13", "2024-00", "24-01", "2024-1", "2024/01", "", None])
    def test_invalid(self, month):
        with pytest.raises(InvalidPayrollMonthError):
            validate_payroll_month(month)


# =============================================================================
# Process
# =============================================================================


class TestProcess:

    def test_single_employee_with_deduction(
        self, orchestrator, advance_service, create_employee, seeded_settings,
        selector, deterministic_clock,
    ):
        employee = create_employee(monthly_ctc="30000")
        advance = advance_service.issue_advance(
            employee.id, Decimal("10000"), None, TEST_ACTOR_ID
        )

        result = orchestrator.process(
            MONTH, [employee.id], {employee.id: _deduct("3000")}, TEST_ACTOR_ID
        )

        assert result.status == PayrollRunStatus.COMPLETED
        assert result.is_success
        assert len(result.processed) == 1
        assert result.processed[0].net_pay == Decimal("25000.00")

        records = selector.get_records_for_month(MONTH)
        assert len(records) == 1
        record = records[0]
        assert record.gross == Decimal("30000.00")
        assert record.pf == Decimal("1800.00")
        assert record.esi == Decimal("0.00")
        assert record.pt == Decimal("200.00")
        assert record.advance_deduction == Decimal("3000.00")
        assert record.total_deductions == Decimal("5000.00")
        assert record.net_pay == Decimal("25000.00")
        assert record.status == PayrollRecordStatus.PROCESSED
        assert record.advance_payment_id == advance.id
        assert record.processed_at == deterministic_clock.now()

        stored = selector.get_advance(advance.id)
        assert stored.balance_amount == Decimal("7000.00")
        assert stored.status == AdvanceStatus.ACTIVE
        assert [t.type for t in stored.transactions] == [
            AdvanceTransactionType.ISSUED,
            AdvanceTransactionType.DEDUCTED,
        ]
        assert stored.transactions[-1].related_record_id == record.id
        assert check_balance_invariant(stored)

    def test_category_snapshot_and_overtime_text(
        self, orchestrator, create_employee, seeded_settings, selector
    ):
        employee = create_employee(category=EmployeeCategory.FACTORY, monthly_ctc="30000")
        inputs = MonthlyInputs(days_present=Decimal("26"), overtime_hours=Decimal("10"))

        orchestrator.process(MONTH, [employee.id], {employee.id: inputs}, TEST_ACTOR_ID)

        record = selector.get_records_for_month(MONTH)[0]
        assert record.category == EmployeeCategory.FACTORY
        assert record.employee_code == employee.employee_code
        assert record.overtime == Decimal("1250.00")
        assert record.overtime_details == "10 hrs"
        assert record.days_present == Decimal("26")

    def test_fractional_attendance_paid_as_stored(
        self, orchestrator, create_employee, seeded_settings, selector
    ):
        employee = create_employee(category=EmployeeCategory.IN_OFFICE, monthly_ctc="30000")
        inputs = MonthlyInputs(days_present=Decimal("27.333"))

        result = orchestrator.process(
            MONTH, [employee.id], {employee.id: inputs}, TEST_ACTOR_ID
        )

        stored = selector.get_record(result.records[0].id)
        assert stored.days_present == Decimal("27.33")
        # 0.67 deducted days on 27.33 present, not 0.667 on 27.333
        assert stored.gross == Decimal("29330.00")

    def test_remittance_account_snapshot(
        self, orchestrator, create_employee, seeded_settings, selector
    ):
        account = BankAccount(uuid4(), "State Bank", "0042", "SBIN0000042", is_default=True)
        employee = create_employee(bank_accounts=(account,))
        inputs = MonthlyInputs(remittance_account_id=account.id)

        orchestrator.process(MONTH, [employee.id], {employee.id: inputs}, TEST_ACTOR_ID)

        snapshot = selector.get_records_for_month(MONTH)[0].remittance_account
        assert snapshot.id == account.id
        assert snapshot.account_number == "0042"
        assert snapshot.ifsc == "SBIN0000042"

    def test_selection_deduplicated(
        self, orchestrator, create_employee, seeded_settings, selector
    ):
        employee = create_employee()

        result = orchestrator.process(
            MONTH, [employee.id, employee.id], {employee.id: MonthlyInputs()}, TEST_ACTOR_ID
        )

        assert result.status == PayrollRunStatus.COMPLETED
        assert len(selector.get_records_for_month(MONTH)) == 1

    def test_inactive_unknown_and_missing_inputs_skipped(
        self, orchestrator, create_employee, seeded_settings, selector
    ):
        active = create_employee(name="Active")
        inactive = create_employee(name="Gone", status=EmployeeStatus.INACTIVE)
        no_inputs = create_employee(name="No Inputs")
        unknown_id = uuid4()

        result = orchestrator.process(
            MONTH,
            [active.id, inactive.id, no_inputs.id, unknown_id],
            {
                active.id: MonthlyInputs(),
                inactive.id: MonthlyInputs(),
                unknown_id: MonthlyInputs(),
            },
            TEST_ACTOR_ID,
        )

        assert result.status == PayrollRunStatus.COMPLETED
        assert [p.employee_id for p in result.processed] == [active.id]
        assert set(result.skipped_employee_ids) == {inactive.id, no_inputs.id, unknown_id}
        assert len(selector.get_records_for_month(MONTH)) == 1

    def test_run_logs_carry_context(
        self, orchestrator, create_employee, seeded_settings, captured_logs
    ):
        employee = create_employee()

        orchestrator.process(MONTH, [employee.id], {employee.id: MonthlyInputs()}, TEST_ACTOR_ID)

        logs = captured_logs()
        committed = [r for r in logs if r["message"] == "batch_committed"]
        assert len(committed) == 1
        assert committed[0]["payroll_month"] == MONTH
        assert committed[0]["operation"] == "process"
        assert committed[0]["actor_id"] == str(TEST_ACTOR_ID)
        assert committed[0]["records_created"] == 1
        started = next(r for r in logs if r["message"] == "payroll_run_started")
        assert started["correlation_id"] == committed[0]["correlation_id"]


class TestProcessWarnings:

    def test_deduction_exceeds_balance(
        self, orchestrator, advance_service, create_employee, seeded_settings, selector
    ):
        employee = create_employee()
        advance = advance_service.issue_advance(
            employee.id, Decimal("2000"), None, TEST_ACTOR_ID
        )

        result = orchestrator.process(
            MONTH, [employee.id], {employee.id: _deduct("3000")}, TEST_ACTOR_ID
        )

        assert result.status == PayrollRunStatus.COMPLETED_WITH_WARNINGS
        assert _codes(result) == [WarningCode.DEDUCTION_EXCEEDS_BALANCE]
        stored = selector.get_advance(advance.id)
        assert stored.balance_amount == Decimal("-1000.00")
        assert stored.status == AdvanceStatus.FULLY_DEDUCTED
        assert check_balance_invariant(stored)

    def test_deduction_without_advance(
        self, orchestrator, create_employee, seeded_settings, selector
    ):
        employee = create_employee()

        result = orchestrator.process(
            MONTH, [employee.id], {employee.id: _deduct("500")}, TEST_ACTOR_ID
        )

        assert _codes(result) == [WarningCode.DEDUCTION_WITHOUT_ADVANCE]
        record = selector.get_records_for_month(MONTH)[0]
        assert record.advance_deduction == Decimal("500.00")
        assert record.advance_payment_id is None
        assert selector.get_all_advances() == []

    def test_negative_net_pay(
        self, orchestrator, advance_service, create_employee, seeded_settings, selector
    ):
        employee = create_employee(monthly_ctc="1000")
        advance_service.issue_advance(employee.id, Decimal("10000"), None, TEST_ACTOR_ID)

        result = orchestrator.process(
            MONTH, [employee.id], {employee.id: _deduct("5000")}, TEST_ACTOR_ID
        )

        assert _codes(result) == [WarningCode.NEGATIVE_NET_PAY]
        record = selector.get_records_for_month(MONTH)[0]
        # 1000 gross - (60 PF + 17.50 ESI + 200 PT + 5000 advance)
        assert record.net_pay == Decimal("-4277.50")


class TestProcessValidation:

    @pytest.mark.parametrize("month", ["2024-13", "02-2024", "2024-2"])
    def test_invalid_month(self, orchestrator, create_employee, seeded_settings, month):
        employee = create_employee()

        result = orchestrator.process(
            month, [employee.id], {employee.id: MonthlyInputs()}, TEST_ACTOR_ID
        )

        assert result.status == PayrollRunStatus.VALIDATION_FAILED
        assert result.error_code == "INVALID_PAYROLL_MONTH"
        assert not result.is_success

    def test_empty_selection(self, orchestrator, seeded_settings):
        result = orchestrator.process(MONTH, [], {}, TEST_ACTOR_ID)

        assert result.status == PayrollRunStatus.VALIDATION_FAILED
        assert result.error_code == "EMPTY_SELECTION"

    def test_settings_missing(self, orchestrator, create_employee, selector):
        employee = create_employee()

        result = orchestrator.process(
            MONTH, [employee.id], {employee.id: MonthlyInputs()}, TEST_ACTOR_ID
        )

        assert result.status == PayrollRunStatus.VALIDATION_FAILED
        assert result.error_code == "SETTINGS_NOT_CONFIGURED"
        assert selector.get_records_for_month(MONTH) == []

    def test_duplicate_rejects_whole_call(
        self, orchestrator, create_employee, seeded_settings, selector
    ):
        first = create_employee(name="First")
        second = create_employee(name="Second")
        orchestrator.process(MONTH, [first.id], {first.id: MonthlyInputs()}, TEST_ACTOR_ID)

        result = orchestrator.process(
            MONTH,
            [second.id, first.id],
            {first.id: MonthlyInputs(), second.id: MonthlyInputs()},
            TEST_ACTOR_ID,
        )

        assert result.status == PayrollRunStatus.VALIDATION_FAILED
        assert result.error_code == "DUPLICATE_PAYROLL_RECORD"
        assert str(first.id) in result.message
        assert [r.employee_id for r in selector.get_records_for_month(MONTH)] == [first.id]

    def test_same_employee_other_month_allowed(
        self, orchestrator, create_employee, seeded_settings
    ):
        employee = create_employee()
        orchestrator.process(MONTH, [employee.id], {employee.id: MonthlyInputs()}, TEST_ACTOR_ID)

        result = orchestrator.process(
            "2024-03", [employee.id], {employee.id: MonthlyInputs()}, TEST_ACTOR_ID
        )

        assert result.status == PayrollRunStatus.COMPLETED


class TestProcessAtomicity:

    def test_store_failure_leaves_nothing(
        self, orchestrator, advance_service, create_employee, seeded_settings,
        selector, monkeypatch,
    ):
        first = create_employee(name="First")
        second = create_employee(name="Second")
        advance = advance_service.issue_advance(
            first.id, Decimal("5000"), None, TEST_ACTOR_ID
        )
        original_apply = BatchWriter.apply

        def apply_then_fail(self, batch, actor_id):
            original_apply(self, batch, actor_id)
            raise OperationalError("COMMIT", {}, Exception("connection lost"))

        monkeypatch.setattr(BatchWriter, "apply", apply_then_fail)

        result = orchestrator.process(
            MONTH,
            [first.id, second.id],
            {first.id: _deduct("1000"), second.id: MonthlyInputs()},
            TEST_ACTOR_ID,
        )

        assert result.status == PayrollRunStatus.COMMIT_FAILED
        assert result.error_code == "BATCH_COMMIT_FAILED"
        assert selector.get_records_for_month(MONTH) == []
        stored = selector.get_advance(advance.id)
        assert stored.balance_amount == Decimal("5000.00")
        assert len(stored.transactions) == 1

    def test_unexpected_error_propagates_after_rollback(
        self, session, create_employee, seeded_settings, selector, deterministic_clock
    ):
        from payroll_kernel.services.payroll_run import PayrollRunOrchestrator

        class ExplodingCalculator:
            def calculate(self, employee, inputs, settings):
                raise RuntimeError("engine crashed")

        orchestrator = PayrollRunOrchestrator(
            session, clock=deterministic_clock, calculator=ExplodingCalculator()
        )
        employee = create_employee()

        with pytest.raises(RuntimeError, match="engine crashed"):
            orchestrator.process(
                MONTH, [employee.id], {employee.id: MonthlyInputs()}, TEST_ACTOR_ID
            )

        assert selector.get_records_for_month(MONTH) == []


# =============================================================================
# Revert and delete
# =============================================================================


class TestRevertOne:

    def test_revert_restores_advance(
        self, orchestrator, advance_service, create_employee, seeded_settings, selector
    ):
        employee = create_employee()
        advance = advance_service.issue_advance(
            employee.id, Decimal("10000"), None, TEST_ACTOR_ID
        )
        processed = orchestrator.process(
            MONTH, [employee.id], {employee.id: _deduct("3000")}, TEST_ACTOR_ID
        )
        record_id = processed.records[0].id

        result = orchestrator.revert_one(record_id, TEST_ACTOR_ID)

        assert result.status == PayrollRunStatus.COMPLETED
        assert result.reverted_record_ids == (record_id,)
        assert result.payroll_month == MONTH
        assert selector.get_record(record_id) is None
        stored = selector.get_advance(advance.id)
        assert stored.balance_amount == Decimal("10000.00")
        assert stored.transactions[-1].type == AdvanceTransactionType.REVERTED
        assert stored.transactions[-1].related_record_id == record_id
        assert stored.transactions[-1].notes == f"Reverted from payroll for {MONTH}"
        assert check_balance_invariant(stored)

    def test_revert_reopens_fully_deducted_advance(
        self, orchestrator, advance_service, create_employee, seeded_settings, selector
    ):
        employee = create_employee()
        advance = advance_service.issue_advance(
            employee.id, Decimal("3000"), None, TEST_ACTOR_ID
        )
        processed = orchestrator.process(
            MONTH, [employee.id], {employee.id: _deduct("3000")}, TEST_ACTOR_ID
        )
        assert selector.get_advance(advance.id).status == AdvanceStatus.FULLY_DEDUCTED

        orchestrator.revert_one(processed.records[0].id, TEST_ACTOR_ID)

        stored = selector.get_advance(advance.id)
        assert stored.status == AdvanceStatus.ACTIVE
        assert stored.balance_amount == Decimal("3000.00")

    def test_second_revert_is_not_found_and_changes_nothing(
        self, orchestrator, advance_service, create_employee, seeded_settings, selector
    ):
        employee = create_employee()
        advance = advance_service.issue_advance(
            employee.id, Decimal("10000"), None, TEST_ACTOR_ID
        )
        processed = orchestrator.process(
            MONTH, [employee.id], {employee.id: _deduct("3000")}, TEST_ACTOR_ID
        )
        record_id = processed.records[0].id
        orchestrator.revert_one(record_id, TEST_ACTOR_ID)

        result = orchestrator.revert_one(record_id, TEST_ACTOR_ID)

        assert result.status == PayrollRunStatus.NOT_FOUND
        assert result.error_code == "PAYROLL_RECORD_NOT_FOUND"
        stored = selector.get_advance(advance.id)
        assert stored.balance_amount == Decimal("10000.00")
        assert len(stored.transactions) == 3

    def test_revert_without_deduction(
        self, orchestrator, create_employee, seeded_settings, selector
    ):
        employee = create_employee()
        processed = orchestrator.process(
            MONTH, [employee.id], {employee.id: MonthlyInputs()}, TEST_ACTOR_ID
        )

        result = orchestrator.revert_one(processed.records[0].id, TEST_ACTOR_ID)

        assert result.status == PayrollRunStatus.COMPLETED
        assert result.warnings == ()
        assert selector.get_records_for_month(MONTH) == []

    def test_process_revert_process_is_reproducible(
        self, orchestrator, advance_service, create_employee, seeded_settings, selector
    ):
        employee = create_employee(category=EmployeeCategory.ON_SITE, monthly_ctc="41000")
        advance = advance_service.issue_advance(
            employee.id, Decimal("8000"), None, TEST_ACTOR_ID
        )
        inputs = {
            employee.id: MonthlyInputs(
                days_present=Decimal("24"),
                overtime_days=Decimal("2"),
                advance_deduction=Decimal("2500"),
            )
        }

        first = orchestrator.process(MONTH, [employee.id], inputs, TEST_ACTOR_ID)
        first_record = selector.get_records_for_month(MONTH)[0]
        orchestrator.revert_one(first.records[0].id, TEST_ACTOR_ID)
        restored = selector.get_advance(advance.id)
        orchestrator.process(MONTH, [employee.id], inputs, TEST_ACTOR_ID)
        second_record = selector.get_records_for_month(MONTH)[0]

        assert restored.balance_amount == Decimal("8000.00")
        assert restored.status == AdvanceStatus.ACTIVE
        assert replace(second_record, id=first_record.id) == first_record
        assert selector.get_advance(advance.id).balance_amount == Decimal("5500.00")

    def test_reprocess_after_revert(
        self, orchestrator, create_employee, seeded_settings
    ):
        employee = create_employee()
        processed = orchestrator.process(
            MONTH, [employee.id], {employee.id: MonthlyInputs()}, TEST_ACTOR_ID
        )
        orchestrator.revert_one(processed.records[0].id, TEST_ACTOR_ID)

        again = orchestrator.process(
            MONTH, [employee.id], {employee.id: MonthlyInputs()}, TEST_ACTOR_ID
        )

        assert again.status == PayrollRunStatus.COMPLETED


class TestRevertFallbacks:

    def test_reopen_with_newer_active_advance_warns(
        self, orchestrator, advance_service, create_employee, seeded_settings, selector
    ):
        employee = create_employee()
        first = advance_service.issue_advance(
            employee.id, Decimal("1000"), None, TEST_ACTOR_ID
        )
        processed = orchestrator.process(
            MONTH, [employee.id], {employee.id: _deduct("1000")}, TEST_ACTOR_ID
        )
        second = advance_service.issue_advance(
            employee.id, Decimal("500"), None, TEST_ACTOR_ID
        )
        assert second.id != first.id

        result = orchestrator.revert_one(processed.records[0].id, TEST_ACTOR_ID)

        assert result.status == PayrollRunStatus.COMPLETED_WITH_WARNINGS
        assert _codes(result) == [WarningCode.MULTIPLE_ACTIVE_ADVANCES]
        assert selector.get_advance(first.id).balance_amount == Decimal("1000.00")
        assert selector.get_advance(first.id).status == AdvanceStatus.ACTIVE
        assert selector.get_advance(second.id).balance_amount == Decimal("500.00")

    def test_unlinked_record_located_by_employee(
        self, orchestrator, advance_service, create_employee, seeded_settings, selector
    ):
        employee = create_employee()
        processed = orchestrator.process(
            MONTH, [employee.id], {employee.id: _deduct("500")}, TEST_ACTOR_ID
        )
        advance = advance_service.issue_advance(
            employee.id, Decimal("1000"), None, TEST_ACTOR_ID
        )

        result = orchestrator.revert_one(processed.records[0].id, TEST_ACTOR_ID)

        assert _codes(result) == [WarningCode.ADVANCE_LOCATED_BY_EMPLOYEE]
        assert result.warnings[0].advance_payment_id == advance.id
        assert selector.get_advance(advance.id).balance_amount == Decimal("1500.00")

    def test_no_advance_anywhere(
        self, orchestrator, create_employee, seeded_settings, selector
    ):
        employee = create_employee()
        processed = orchestrator.process(
            MONTH, [employee.id], {employee.id: _deduct("500")}, TEST_ACTOR_ID
        )

        result = orchestrator.revert_one(processed.records[0].id, TEST_ACTOR_ID)

        assert result.status == PayrollRunStatus.COMPLETED_WITH_WARNINGS
        assert _codes(result) == [WarningCode.ADVANCE_NOT_FOUND]
        assert selector.get_records_for_month(MONTH) == []


class TestDeleteRun:

    def test_delete_run_round_trip(
        self, orchestrator, advance_service, create_employee, seeded_settings, selector
    ):
        first = create_employee(name="First")
        second = create_employee(name="Second")
        advance = advance_service.issue_advance(
            first.id, Decimal("4000"), None, TEST_ACTOR_ID
        )
        orchestrator.process(
            MONTH,
            [first.id, second.id],
            {first.id: _deduct("4000"), second.id: MonthlyInputs()},
            TEST_ACTOR_ID,
        )
        assert selector.get_advance(advance.id).status == AdvanceStatus.FULLY_DEDUCTED

        result = orchestrator.delete_run(MONTH, TEST_ACTOR_ID)

        assert result.status == PayrollRunStatus.COMPLETED
        assert len(result.reverted_record_ids) == 2
        assert selector.get_records_for_month(MONTH) == []
        stored = selector.get_advance(advance.id)
        assert stored.balance_amount == Decimal("4000.00")
        assert stored.status == AdvanceStatus.ACTIVE
        assert stored.transactions[-1].notes == (
            f"Reverted from deleted payroll for {MONTH}"
        )
        assert check_balance_invariant(stored)

    def test_other_months_untouched(
        self, orchestrator, create_employee, seeded_settings, selector
    ):
        employee = create_employee()
        orchestrator.process(MONTH, [employee.id], {employee.id: MonthlyInputs()}, TEST_ACTOR_ID)
        orchestrator.process(
            "2024-03", [employee.id], {employee.id: MonthlyInputs()}, TEST_ACTOR_ID
        )

        orchestrator.delete_run(MONTH, TEST_ACTOR_ID)

        assert len(selector.get_records_for_month("2024-03")) == 1

    def test_empty_month_completes(self, orchestrator, seeded_settings):
        result = orchestrator.delete_run(MONTH, TEST_ACTOR_ID)

        assert result.status == PayrollRunStatus.COMPLETED
        assert result.reverted_record_ids == ()

    def test_invalid_month(self, orchestrator):
        result = orchestrator.delete_run("2024-13", TEST_ACTOR_ID)

        assert result.status == PayrollRunStatus.VALIDATION_FAILED
        assert result.error_code == "INVALID_PAYROLL_MONTH"


# =============================================================================
# Preparation
# =============================================================================


class TestPreparation:

    def test_pending_excludes_processed_and_inactive(
        self, orchestrator, create_employee, seeded_settings
    ):
        done = create_employee(name="Done")
        pending = create_employee(name="Pending")
        create_employee(name="Left", status=EmployeeStatus.INACTIVE)
        orchestrator.process(MONTH, [done.id], {done.id: MonthlyInputs()}, TEST_ACTOR_ID)

        assert [e.id for e in orchestrator.pending_employees(MONTH)] == [pending.id]

    def test_pending_ordered_by_name(self, orchestrator, create_employee, seeded_settings):
        zed = create_employee(name="Zed")
        amal = create_employee(name="Amal")

        assert [e.id for e in orchestrator.pending_employees(MONTH)] == [amal.id, zed.id]

    def test_pending_rejects_bad_month(self, orchestrator):
        with pytest.raises(InvalidPayrollMonthError):
            orchestrator.pending_employees("2024-1")

    def test_prepare_inputs_defaults(
        self, orchestrator, advance_service, create_employee, seeded_settings
    ):
        account = BankAccount(uuid4(), "HDFC", "9", "HDFC0000009", is_default=True)
        borrower = create_employee(name="Borrower", monthly_ctc="20000", bank_accounts=(account,))
        plain = create_employee(name="Plain")
        advance_service.issue_advance(borrower.id, Decimal("10000"), None, TEST_ACTOR_ID)

        prepared = orchestrator.prepare_inputs(MONTH)

        assert set(prepared) == {borrower.id, plain.id}
        assert prepared[borrower.id].days_present == Decimal("30")
        assert prepared[borrower.id].advance_deduction == Decimal("6000")
        assert prepared[borrower.id].remittance_account_id == account.id
        assert prepared[plain.id].advance_deduction == Decimal("0")
        assert prepared[plain.id].remittance_account_id is None

    def test_prepared_inputs_process_cleanly(
        self, orchestrator, advance_service, create_employee, seeded_settings, selector
    ):
        employee = create_employee(monthly_ctc="20000")
        advance = advance_service.issue_advance(
            employee.id, Decimal("10000"), None, TEST_ACTOR_ID
        )

        prepared = orchestrator.prepare_inputs(MONTH)
        result = orchestrator.process(MONTH, list(prepared), prepared, TEST_ACTOR_ID)

        assert result.status == PayrollRunStatus.COMPLETED
        assert selector.get_advance(advance.id).balance_amount == Decimal("4000.00")


# =============================================================================
# Store failures during revert and delete
# =============================================================================


def _fail_after_apply(monkeypatch) -> None:
    """Make BatchWriter.apply write its rows, then fail as the store would."""
    original_apply = BatchWriter.apply

    def apply_then_fail(self, batch, actor_id):
        original_apply(self, batch, actor_id)
        raise OperationalError("COMMIT", {}, Exception("connection lost"))

    monkeypatch.setattr(BatchWriter, "apply", apply_then_fail)


def _ledger_state(selector, advance_ids) -> dict:
    state = {}
    for advance_id in advance_ids:
        advance = selector.get_advance(advance_id)
        state[advance_id] = (
            advance.balance_amount,
            advance.status,
            len(advance.transactions),
            advance.version,
        )
    return state


class TestRevertAndDeleteAtomicity:

    @pytest.fixture
    def processed_month(
        self, orchestrator, advance_service, create_employee, seeded_settings
    ):
        """Two employees with advances, both deducted in MONTH."""
        first = create_employee(name="First")
        second = create_employee(name="Second")
        first_advance = advance_service.issue_advance(
            first.id, Decimal("5000"), None, TEST_ACTOR_ID
        )
        second_advance = advance_service.issue_advance(
            second.id, Decimal("3000"), None, TEST_ACTOR_ID
        )
        result = orchestrator.process(
            MONTH,
            [first.id, second.id],
            {first.id: _deduct("1000"), second.id: _deduct("3000")},
            TEST_ACTOR_ID,
        )
        assert result.status == PayrollRunStatus.COMPLETED
        return result, (first_advance.id, second_advance.id)

    def test_delete_run_failure_changes_nothing(
        self, orchestrator, processed_month, selector, monkeypatch
    ):
        processed, advance_ids = processed_month
        before = _ledger_state(selector, advance_ids)
        _fail_after_apply(monkeypatch)

        result = orchestrator.delete_run(MONTH, TEST_ACTOR_ID)

        assert result.status == PayrollRunStatus.COMMIT_FAILED
        assert result.error_code == "BATCH_COMMIT_FAILED"
        assert result.reverted_record_ids == ()
        remaining = {r.id for r in selector.get_records_for_month(MONTH)}
        assert remaining == {r.id for r in processed.records}
        assert _ledger_state(selector, advance_ids) == before
        assert selector.get_advance(advance_ids[1]).status == AdvanceStatus.FULLY_DEDUCTED

    def test_revert_one_failure_changes_nothing(
        self, orchestrator, processed_month, selector, monkeypatch
    ):
        processed, advance_ids = processed_month
        before = _ledger_state(selector, advance_ids)
        target = processed.records[0]
        _fail_after_apply(monkeypatch)

        result = orchestrator.revert_one(target.id, TEST_ACTOR_ID)

        assert result.status == PayrollRunStatus.COMMIT_FAILED
        assert selector.get_record(target.id) is not None
        assert len(selector.get_records_for_month(MONTH)) == 2
        assert _ledger_state(selector, advance_ids) == before

    def test_delete_succeeds_after_failed_attempt(
        self, orchestrator, processed_month, selector, monkeypatch
    ):
        _, advance_ids = processed_month
        _fail_after_apply(monkeypatch)
        orchestrator.delete_run(MONTH, TEST_ACTOR_ID)
        monkeypatch.undo()

        result = orchestrator.delete_run(MONTH, TEST_ACTOR_ID)

        assert result.status == PayrollRunStatus.COMPLETED
        assert selector.get_records_for_month(MONTH) == []
        first, second = (selector.get_advance(i) for i in advance_ids)
        assert first.balance_amount == Decimal("5000.00")
        assert second.balance_amount == Decimal("3000.00")
        assert second.status == AdvanceStatus.ACTIVE
        assert check_balance_invariant(first) and check_balance_invariant(second)

    def test_delete_later_month_of_chained_deductions(
        self, orchestrator, advance_service, create_employee, seeded_settings, selector
    ):
        employee = create_employee()
        advance = advance_service.issue_advance(
            employee.id, Decimal("3000"), None, TEST_ACTOR_ID
        )
        for month in ("2024-01", MONTH):
            orchestrator.process(
                month, [employee.id], {employee.id: _deduct("1000")}, TEST_ACTOR_ID
            )

        result = orchestrator.delete_run(MONTH, TEST_ACTOR_ID)

        assert result.status == PayrollRunStatus.COMPLETED
        stored = selector.get_advance(advance.id)
        assert stored.balance_amount == Decimal("2000.00")
        assert len(selector.get_records_for_month("2024-01")) == 1
        assert check_balance_invariant(stored)
