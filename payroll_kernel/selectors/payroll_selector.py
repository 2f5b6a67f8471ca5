"""
Module: payroll_kernel.selectors.payroll_selector
Responsibility: Read path for the payroll run: employees, the settings
    singleton, advances, and payroll records by id, month or year.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Returns DTOs only; never flushes or writes.
    - Month filters are plain equality on the YYYY-MM string.
    - Ordering is deterministic (name, code or date plus id) so payroll
      runs and reports see the same sequence on every backend.
"""

from uuid import UUID

from sqlalchemy import select

from payroll_kernel.db.types import ZERO
from payroll_kernel.domain.dtos import (
    AdvancePayment,
    AdvanceStatus,
    Employee,
    EmployeeStatus,
    MonthSummary,
    PayrollRecord,
    PayrollSettings,
)
from payroll_kernel.models.advance import AdvancePaymentModel
from payroll_kernel.models.employee import EmployeeModel
from payroll_kernel.models.payroll_record import PayrollRecordModel
from payroll_kernel.models.settings import GLOBAL_SETTINGS_KEY, PayrollSettingsModel
from payroll_kernel.selectors.base import BaseSelector


class PayrollSelector(BaseSelector[PayrollRecordModel]):
    """
    Read-only queries used by the payroll run, advance service and reports.

    Non-goals:
        - Does NOT cache; each call reads the current transaction's view.
    """

    # Employees

    def get_active_employees(self) -> list[Employee]:
        rows = self.session.scalars(
            select(EmployeeModel)
            .where(EmployeeModel.status == EmployeeStatus.ACTIVE.value)
            .order_by(EmployeeModel.name, EmployeeModel.employee_code)
        ).all()
        return [row.to_dto() for row in rows]

    def get_employee(self, employee_id: UUID) -> Employee | None:
        row = self.session.get(EmployeeModel, employee_id)
        return row.to_dto() if row is not None else None

    # Settings

    def get_settings(self) -> PayrollSettings | None:
        row = self.session.scalars(
            select(PayrollSettingsModel).where(
                PayrollSettingsModel.settings_key == GLOBAL_SETTINGS_KEY
            )
        ).one_or_none()
        return row.to_dto() if row is not None else None

    # Advances

    def get_active_advances(self) -> list[AdvancePayment]:
        rows = self.session.scalars(
            select(AdvancePaymentModel)
            .where(AdvancePaymentModel.status == AdvanceStatus.ACTIVE.value)
            .order_by(AdvancePaymentModel.date_given, AdvancePaymentModel.id)
        ).all()
        return [row.to_dto() for row in rows]

    def get_advances_for_employee(self, employee_id: UUID) -> list[AdvancePayment]:
        rows = self.session.scalars(
            select(AdvancePaymentModel)
            .where(AdvancePaymentModel.employee_id == employee_id)
            .order_by(AdvancePaymentModel.date_given, AdvancePaymentModel.id)
        ).all()
        return [row.to_dto() for row in rows]

    def get_all_advances(self) -> list[AdvancePayment]:
        rows = self.session.scalars(
            select(AdvancePaymentModel).order_by(
                AdvancePaymentModel.date_given, AdvancePaymentModel.id
            )
        ).all()
        return [row.to_dto() for row in rows]

    def get_advance(self, advance_id: UUID) -> AdvancePayment | None:
        row = self.session.get(AdvancePaymentModel, advance_id)
        return row.to_dto() if row is not None else None

    # Payroll records

    def get_records_for_month(self, payroll_month: str) -> list[PayrollRecord]:
        rows = self.session.scalars(
            select(PayrollRecordModel)
            .where(PayrollRecordModel.payroll_month == payroll_month)
            .order_by(PayrollRecordModel.employee_name, PayrollRecordModel.employee_code)
        ).all()
        return [row.to_dto() for row in rows]

    def get_record(self, record_id: UUID) -> PayrollRecord | None:
        row = self.session.get(PayrollRecordModel, record_id)
        return row.to_dto() if row is not None else None

    def get_records_for_year(self, year: int) -> list[PayrollRecord]:
        """All records whose month falls in ``year``, by month then name."""
        rows = self.session.scalars(
            select(PayrollRecordModel)
            .where(PayrollRecordModel.payroll_month.like(f"{year:04d}-%"))
            .order_by(
                PayrollRecordModel.payroll_month,
                PayrollRecordModel.employee_name,
                PayrollRecordModel.employee_code,
            )
        ).all()
        return [row.to_dto() for row in rows]

    def get_processed_employee_ids(
        self, payroll_month: str, employee_ids: list[UUID] | None = None
    ) -> set[UUID]:
        stmt = select(PayrollRecordModel.employee_id).where(
            PayrollRecordModel.payroll_month == payroll_month
        )
        if employee_ids is not None:
            stmt = stmt.where(PayrollRecordModel.employee_id.in_(employee_ids))
        return set(self.session.scalars(stmt).all())

    def summarize_month(self, payroll_month: str) -> MonthSummary:
        """Totals over the month's records, computed from the stored snapshots."""
        records = self.get_records_for_month(payroll_month)
        by_category: dict[str, int] = {}
        gross = statutory = advances = net = ZERO
        for record in records:
            gross += record.gross
            statutory += record.pf + record.esi + record.pt + record.tds
            advances += record.advance_deduction
            net += record.net_pay
            key = record.category.value
            by_category[key] = by_category.get(key, 0) + 1
        return MonthSummary(
            payroll_month=payroll_month,
            record_count=len(records),
            total_gross=gross,
            total_statutory_deductions=statutory,
            total_advance_deductions=advances,
            total_net_pay=net,
            by_category=by_category,
        )
