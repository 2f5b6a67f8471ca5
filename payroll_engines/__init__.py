"""
Module: payroll_engines
Responsibility:
    Package entrypoint for the pure payroll calculation engines.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import payroll_kernel.domain and payroll_kernel.db.types only.
    MUST NOT import payroll_kernel.services or selectors.

Invariants enforced:
    - Purity: engines never read the clock or the database.
    - Decimal-only arithmetic.
    - Every invocation is traced via ``@traced_engine``.

Usage:
    from payroll_engines import SalaryCalculator, calculate_salary
"""

from payroll_engines.salary import (
    ESI_GROSS_THRESHOLD,
    SalaryCalculator,
    calculate_salary,
    overtime_details,
)
from payroll_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "ESI_GROSS_THRESHOLD",
    "SalaryCalculator",
    "calculate_salary",
    "overtime_details",
    "compute_input_fingerprint",
    "traced_engine",
]
