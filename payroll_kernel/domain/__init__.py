"""Payroll domain layer - DTOs, clock, and the pure advance ledger."""

from payroll_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from payroll_kernel.domain.dtos import (
    AdvancePayment,
    AdvanceStatus,
    AdvanceTransaction,
    AdvanceTransactionType,
    BankAccount,
    Employee,
    EmployeeCategory,
    EmployeeStatus,
    MonthlyInputs,
    MonthSummary,
    PayrollRecord,
    PayrollRecordStatus,
    PayrollSettings,
    SalaryBreakdown,
)

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "AdvancePayment",
    "AdvanceStatus",
    "AdvanceTransaction",
    "AdvanceTransactionType",
    "BankAccount",
    "Employee",
    "EmployeeCategory",
    "EmployeeStatus",
    "MonthlyInputs",
    "MonthSummary",
    "PayrollRecord",
    "PayrollRecordStatus",
    "PayrollSettings",
    "SalaryBreakdown",
]
