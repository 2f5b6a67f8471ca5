"""
Typed Exception Hierarchy for the Payroll Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of a payroll run must tell apart a rejected selection, a missing
settings record, a stale advance balance and a store-level failure without
parsing message strings. Every error therefore has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA as instance attributes

Example:
    try:
        writer.apply(batch)
    except OptimisticLockError as e:
        log.warning("retrying", extra={"advance_id": e.entity_id})

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PayrollKernelError (base)
    |
    +-- PayrollValidationError
    |   +-- InvalidPayrollMonthError
    |   +-- EmptySelectionError
    |   +-- SettingsNotConfiguredError
    |   +-- DuplicatePayrollRecordError
    |   +-- InvalidAdvanceAmountError
    |
    +-- RecordNotFoundError
    |   +-- PayrollRecordNotFoundError
    |   +-- AdvanceNotFoundError
    |   +-- EmployeeNotFoundError
    |
    +-- LedgerError
    |   +-- AdvanceNotActiveError
    |   +-- LedgerInvariantViolationError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- BatchCommitError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | INVALID_PAYROLL_MONTH       | Month is not YYYY-MM (01-12)
                | EMPTY_SELECTION             | Process called with no employees
                | SETTINGS_NOT_CONFIGURED     | No payroll settings row exists
                | DUPLICATE_PAYROLL_RECORD    | Employee already processed for month
                | INVALID_ADVANCE_AMOUNT      | Advance amount is zero or negative
----------------|-----------------------------|-----------------------------------------
Not found       | PAYROLL_RECORD_NOT_FOUND    | Revert target does not exist
                | ADVANCE_NOT_FOUND           | Advance id does not exist
                | EMPLOYEE_NOT_FOUND          | Employee id does not exist
----------------|-----------------------------|-----------------------------------------
Ledger          | ADVANCE_NOT_ACTIVE          | Deduction against a closed advance
                | LEDGER_INVARIANT_VIOLATION  | Balance != sum of signed transactions
----------------|-----------------------------|-----------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Advance changed since it was read
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Update/delete of an append-only row
----------------|-----------------------------|-----------------------------------------
Store           | BATCH_COMMIT_FAILED         | Atomic batch rejected by the store

===============================================================================
"""


class PayrollKernelError(Exception):
    """
    Base exception for all payroll kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "PAYROLL_KERNEL_ERROR"


# Validation exceptions


class PayrollValidationError(PayrollKernelError):
    """Base exception for preconditions checked before any write."""

    code: str = "PAYROLL_VALIDATION_ERROR"


class InvalidPayrollMonthError(PayrollValidationError):
    """Payroll month is not a four-digit year, dash, two-digit month."""

    code: str = "INVALID_PAYROLL_MONTH"

    def __init__(self, payroll_month: str):
        self.payroll_month = payroll_month
        super().__init__(
            f"Invalid payroll month {payroll_month!r}: expected YYYY-MM"
        )


class EmptySelectionError(PayrollValidationError):
    """No employees were selected for processing."""

    code: str = "EMPTY_SELECTION"

    def __init__(self, payroll_month: str):
        self.payroll_month = payroll_month
        super().__init__(f"No employees selected for payroll {payroll_month}")


class SettingsNotConfiguredError(PayrollValidationError):
    """Payroll settings are absent; salary cannot be computed."""

    code: str = "SETTINGS_NOT_CONFIGURED"

    def __init__(self):
        super().__init__(
            "Payroll settings are not configured; configure them before running payroll"
        )


class DuplicatePayrollRecordError(PayrollValidationError):
    """One or more employees already have a record for the month."""

    code: str = "DUPLICATE_PAYROLL_RECORD"

    def __init__(self, payroll_month: str, employee_ids: list[str]):
        self.payroll_month = payroll_month
        self.employee_ids = employee_ids
        super().__init__(
            f"Payroll for {payroll_month} already processed for "
            f"{len(employee_ids)} employee(s): {', '.join(employee_ids)}"
        )


class InvalidAdvanceAmountError(PayrollValidationError):
    """Advance issue/deduct/revert amount must be strictly positive."""

    code: str = "INVALID_ADVANCE_AMOUNT"

    def __init__(self, amount: str, operation: str):
        self.amount = amount
        self.operation = operation
        super().__init__(
            f"Advance {operation} amount must be positive, got {amount}"
        )


# Lookup exceptions


class RecordNotFoundError(PayrollKernelError):
    """Base exception for missing records."""

    code: str = "RECORD_NOT_FOUND"


class PayrollRecordNotFoundError(RecordNotFoundError):
    """Payroll record with given ID was not found."""

    code: str = "PAYROLL_RECORD_NOT_FOUND"

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Payroll record not found: {record_id}")


class AdvanceNotFoundError(RecordNotFoundError):
    """Advance payment with given ID was not found."""

    code: str = "ADVANCE_NOT_FOUND"

    def __init__(self, advance_id: str):
        self.advance_id = advance_id
        super().__init__(f"Advance payment not found: {advance_id}")


class EmployeeNotFoundError(RecordNotFoundError):
    """Employee with given ID was not found."""

    code: str = "EMPLOYEE_NOT_FOUND"

    def __init__(self, employee_id: str):
        self.employee_id = employee_id
        super().__init__(f"Employee not found: {employee_id}")


# Ledger exceptions


class LedgerError(PayrollKernelError):
    """Base exception for advance ledger errors."""

    code: str = "LEDGER_ERROR"


class AdvanceNotActiveError(LedgerError):
    """A deduction was attempted against an advance that is not Active."""

    code: str = "ADVANCE_NOT_ACTIVE"

    def __init__(self, advance_id: str, status: str):
        self.advance_id = advance_id
        self.status = status
        super().__init__(
            f"Advance {advance_id} is {status}; deductions require an Active advance"
        )


class LedgerInvariantViolationError(LedgerError):
    """Stored balance disagrees with the balance rebuilt from transactions."""

    code: str = "LEDGER_INVARIANT_VIOLATION"

    def __init__(self, advance_id: str, balance_amount: str, reconstructed: str):
        self.advance_id = advance_id
        self.balance_amount = balance_amount
        self.reconstructed = reconstructed
        super().__init__(
            f"Advance {advance_id} balance {balance_amount} does not match "
            f"transaction history total {reconstructed}"
        )


# Concurrency exceptions


class ConcurrencyError(PayrollKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability exceptions


class ImmutabilityError(PayrollKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


# Store exceptions


class BatchCommitError(PayrollKernelError):
    """The store rejected an atomic batch; nothing was persisted."""

    code: str = "BATCH_COMMIT_FAILED"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"{operation} batch failed: {detail}")
