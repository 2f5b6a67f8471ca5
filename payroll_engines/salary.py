"""
Salary Calculator -- pure monthly pay computation.

Responsibility:
    Turn an employee, their monthly inputs and the payroll settings into a
    ``SalaryBreakdown``: attendance-adjusted pay split into basic, HRA and
    special allowance, overtime, gross, and the four statutory deductions.

Architecture position:
    Engines -- pure calculation layer, zero I/O apart from the trace record.
    Called by the payroll run orchestrator once per selected employee.

Invariants enforced:
    - Decimal-only arithmetic; each component is rounded to 2 places with
      ROUND_HALF_UP via ``round_money`` before gross is summed.
    - Identical inputs always produce identical outputs.
    - Split percentages are applied independently; nothing requires them to
      sum to 100.

Failure modes:
    - Returns None when settings are absent; the caller skips the employee.

Category policy:
    In-office: up to 2 days of absence are paid; each further absent day
        removes 1/30 of monthly CTC.  No overtime.
    Factory: paid per day present at CTC/30; overtime per hour at 1/8 of
        the daily rate.
    On-site: paid per day present at CTC/30; overtime per extra day at the
        daily rate.

Usage:
    from payroll_engines.salary import calculate_salary

    breakdown = calculate_salary(employee, inputs, settings)
"""

from decimal import Decimal

from payroll_engines.tracer import traced_engine
from payroll_kernel.db.types import ZERO, round_money
from payroll_kernel.domain.dtos import (
    Employee,
    EmployeeCategory,
    MonthlyInputs,
    PayrollSettings,
    SalaryBreakdown,
)
from payroll_kernel.logging_config import get_logger

logger = get_logger("engines.salary")

DAYS_IN_PAY_MONTH = Decimal("30")
HOURS_PER_DAY = Decimal("8")
PAID_ABSENCE_DAYS = Decimal("2")
HUNDRED = Decimal("100")

# ESI applies only while gross pay is at or below this amount.
ESI_GROSS_THRESHOLD = Decimal("21000")


def _percent(base: Decimal, rate: Decimal) -> Decimal:
    return round_money(base * rate / HUNDRED)


def _format_quantity(value: Decimal) -> str:
    normalized = value.normalize()
    return format(normalized, "f")


def overtime_details(category: EmployeeCategory, inputs: MonthlyInputs) -> str | None:
    """Payslip text for the overtime line; None for in-office staff."""
    if category == EmployeeCategory.FACTORY:
        return f"{_format_quantity(inputs.overtime_hours)} hrs"
    if category == EmployeeCategory.ON_SITE:
        return f"{_format_quantity(inputs.overtime_days)} days"
    return None


class SalaryCalculator:
    """
    Stateless salary engine.

    Contract:
        ``calculate`` is a pure function of its three arguments.

    Non-goals:
        - No tax-law modelling beyond the configured flat rates.
        - No annual TDS limit or proration across months.
    """

    def _attendance_pay(
        self, employee: Employee, inputs: MonthlyInputs
    ) -> tuple[Decimal, Decimal]:
        ctc = employee.monthly_ctc

        if employee.category == EmployeeCategory.IN_OFFICE:
            absence = DAYS_IN_PAY_MONTH - inputs.days_present
            deduction_days = max(ZERO, absence - PAID_ABSENCE_DAYS)
            return ctc * (DAYS_IN_PAY_MONTH - deduction_days) / DAYS_IN_PAY_MONTH, ZERO

        if employee.category == EmployeeCategory.FACTORY:
            base = ctc * inputs.days_present / DAYS_IN_PAY_MONTH
            overtime = ctc * inputs.overtime_hours / (DAYS_IN_PAY_MONTH * HOURS_PER_DAY)
            return base, overtime

        # On-site
        base = ctc * inputs.days_present / DAYS_IN_PAY_MONTH
        overtime = ctc * inputs.overtime_days / DAYS_IN_PAY_MONTH
        return base, overtime

    @traced_engine(
        "salary", "1.0", fingerprint_fields=("employee", "inputs", "settings")
    )
    def calculate(
        self,
        employee: Employee,
        inputs: MonthlyInputs,
        settings: PayrollSettings | None,
    ) -> SalaryBreakdown | None:
        if settings is None:
            logger.warning(
                "salary_settings_missing",
                extra={"employee_id": str(employee.id)},
            )
            return None

        base_pay, overtime_pay = self._attendance_pay(employee, inputs)

        basic = _percent(base_pay, settings.basic_pay_percentage)
        hra = _percent(base_pay, settings.hra_percentage)
        special = _percent(base_pay, settings.special_allowance_percentage)
        overtime = round_money(overtime_pay)
        gross = basic + hra + special + overtime

        pf = _percent(basic, settings.pf_percentage) if settings.pf_enabled else ZERO
        if settings.esi_enabled and gross <= ESI_GROSS_THRESHOLD:
            esi = _percent(gross, settings.esi_percentage)
        else:
            esi = ZERO
        pt = round_money(settings.pt_amount) if settings.pt_enabled else ZERO
        tds = _percent(gross, settings.tds_percentage) if settings.tds_enabled else ZERO

        breakdown = SalaryBreakdown(
            basic=basic,
            hra=hra,
            special_allowance=special,
            overtime=overtime,
            gross=gross,
            pf=pf,
            esi=esi,
            pt=pt,
            tds=tds,
        )

        logger.debug(
            "salary_calculated",
            extra={
                "employee_id": str(employee.id),
                "category": employee.category.value,
                "gross": str(gross),
                "statutory_deductions": str(breakdown.statutory_deductions),
            },
        )
        return breakdown


_default_calculator = SalaryCalculator()


def calculate_salary(
    employee: Employee,
    inputs: MonthlyInputs,
    settings: PayrollSettings | None,
) -> SalaryBreakdown | None:
    """Module-level convenience over ``SalaryCalculator.calculate``."""
    return _default_calculator.calculate(employee, inputs, settings)
