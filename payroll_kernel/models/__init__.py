"""ORM models; importing this package registers every table on Base.metadata."""

from payroll_kernel.models.advance import AdvancePaymentModel, AdvanceTransactionModel
from payroll_kernel.models.employee import BankAccountModel, EmployeeModel
from payroll_kernel.models.payroll_record import PayrollRecordModel
from payroll_kernel.models.settings import GLOBAL_SETTINGS_KEY, PayrollSettingsModel

__all__ = [
    "AdvancePaymentModel",
    "AdvanceTransactionModel",
    "BankAccountModel",
    "EmployeeModel",
    "GLOBAL_SETTINGS_KEY",
    "PayrollRecordModel",
    "PayrollSettingsModel",
]
