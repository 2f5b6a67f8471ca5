"""
ORM-Level Immutability Enforcement for payroll ledgers.

===============================================================================
WHY THIS EXISTS
===============================================================================

An advance balance is only trustworthy if the transaction history behind it
cannot be rewritten.  A payroll record is a snapshot of what was paid; the
only legitimate way to change it is to revert it (delete) and process again.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events:

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |
         v
    [before_delete event] --> _check_*_delete() --------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                      | Update              | Delete
----------------------------|---------------------|----------------------------
AdvanceTransactionModel     | Never               | Never
PayrollRecordModel          | Never               | Allowed (revert/delete run)

AdvancePaymentModel is deliberately absent: its balance and status move on
every deduction and revert; consistency is checked by payroll_kernel.invariants
and concurrency by its version column.

updated_at/updated_by_id are audit metadata and may change on any row.

===============================================================================
USAGE
===============================================================================

    from payroll_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

Tests that need to tamper with rows to prove detection:

    unregister_immutability_listeners()
    ...
    register_immutability_listeners()
"""

from sqlalchemy import event, inspect

from payroll_kernel.exceptions import ImmutabilityViolationError
from payroll_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})


def _changed_fields(target) -> list[str]:
    insp = inspect(target)
    return [
        attr.key
        for attr in insp.mapper.column_attrs
        if attr.key not in _AUDIT_FIELDS
        and insp.attrs[attr.key].history.has_changes()
    ]


def _block(entity_type: str, target, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_advance_transaction_immutability(mapper, connection, target):
    """Advance ledger entries are append-only."""
    changed = _changed_fields(target)
    if changed:
        _block(
            "AdvanceTransaction",
            target,
            "UPDATE",
            f"Cannot modify field '{changed[0]}' on an advance ledger entry",
            field=changed[0],
        )


def _check_advance_transaction_delete(mapper, connection, target):
    """Advance ledger entries cannot be deleted."""
    _block(
        "AdvanceTransaction",
        target,
        "DELETE",
        "Advance ledger entries cannot be deleted",
    )


def _check_payroll_record_immutability(mapper, connection, target):
    """Payroll records are snapshots; they are reverted, never edited."""
    changed = _changed_fields(target)
    if changed:
        _block(
            "PayrollRecord",
            target,
            "UPDATE",
            f"Cannot modify field '{changed[0]}' on a processed payroll record; "
            "revert and process again",
            field=changed[0],
        )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: listeners already present are not added twice.
    """
    from payroll_kernel.models.advance import AdvanceTransactionModel
    from payroll_kernel.models.payroll_record import PayrollRecordModel

    for target, event_name, fn in _listeners(
        AdvanceTransactionModel, PayrollRecordModel
    ):
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that intentionally violate immutability
    rules to verify detection.
    """
    from payroll_kernel.models.advance import AdvanceTransactionModel
    from payroll_kernel.models.payroll_record import PayrollRecordModel

    for target, event_name, fn in _listeners(
        AdvanceTransactionModel, PayrollRecordModel
    ):
        _safe_remove_listener(target, event_name, fn)


def _listeners(transaction_model, record_model):
    return (
        (transaction_model, "before_update", _check_advance_transaction_immutability),
        (transaction_model, "before_delete", _check_advance_transaction_delete),
        (record_model, "before_update", _check_payroll_record_immutability),
    )
