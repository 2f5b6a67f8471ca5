"""
Payroll Kernel

The ledger-consistency core of the payroll subsystem:
- Category-aware salary computation (via payroll_engines)
- Append-only advance ledger with reconstructable balances
- Atomic payroll runs with compensating revert / delete-run
- Optimistic concurrency on advance balances
"""

__version__ = "0.1.0"
