"""Payroll kernel services - batch writer, advances, settings, payroll runs."""

from payroll_kernel.services.advance_service import AdvanceService
from payroll_kernel.services.batch_writer import BatchWriter, PayrollBatch
from payroll_kernel.services.payroll_run import (
    PayrollRunOrchestrator,
    PayrollRunResult,
    PayrollRunStatus,
    ProcessedPay,
    RunWarning,
    WarningCode,
    validate_payroll_month,
)
from payroll_kernel.services.settings_service import SettingsService

__all__ = [
    "AdvanceService",
    "BatchWriter",
    "PayrollBatch",
    "PayrollRunOrchestrator",
    "PayrollRunResult",
    "PayrollRunStatus",
    "ProcessedPay",
    "RunWarning",
    "WarningCode",
    "SettingsService",
    "validate_payroll_month",
]
