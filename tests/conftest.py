"""
Pytest fixtures for the payroll kernel test suite.

Provides:
- A database session per test, on fresh tables
- Seeded payroll settings, employees and advances
- A deterministic clock and structured-log capture

Environment Variables:
- DATABASE_URL: connection URL for the store under test.
  If not set, uses an in-memory SQLite database.
"""

import json
import logging
import os
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import uuid4

import pytest
from sqlalchemy.orm import Session

from payroll_config import load_default_settings
from payroll_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from payroll_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from payroll_kernel.domain.clock import DeterministicClock
from payroll_kernel.domain.dtos import (
    BankAccount,
    Employee,
    EmployeeCategory,
    EmployeeStatus,
    MonthlyInputs,
    PayrollSettings,
)
from payroll_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from payroll_kernel.models.employee import EmployeeModel
from payroll_kernel.services.advance_service import AdvanceService
from payroll_kernel.services.payroll_run import PayrollRunOrchestrator
from payroll_kernel.services.settings_service import SettingsService

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

DEFAULT_TEST_DATABASE_URL = "sqlite:///:memory:"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture payroll_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, orchestrator):
            orchestrator.process(...)
            logs = captured_logs()
            assert any(r["message"] == "batch_committed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("payroll_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


def get_database_url() -> str:
    """Get database URL from environment, or use in-memory SQLite."""
    return os.environ.get("DATABASE_URL", DEFAULT_TEST_DATABASE_URL)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single engine for the entire test session."""
    eng = init_engine_from_url(get_database_url(), echo=False)
    register_immutability_listeners()
    yield eng
    unregister_immutability_listeners()
    reset_engine()


@pytest.fixture(scope="function")
def session(db_engine) -> Generator[Session, None, None]:
    """Provide a session on freshly created tables.

    Tables are dropped at teardown, so services under test may commit
    and roll back for real.
    """
    create_tables()
    sess = get_session()
    try:
        yield sess
    finally:
        sess.rollback()
        sess.close()
        drop_tables()


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock()


@pytest.fixture
def default_settings() -> PayrollSettings:
    """The shipped defaults: 50/20/30 split, PF 12%, ESI 1.75%, PT 200, TDS off."""
    return load_default_settings()


@pytest.fixture
def seeded_settings(session, default_settings) -> PayrollSettings:
    stored = SettingsService(session).seed_default_settings(
        default_settings, TEST_ACTOR_ID
    )
    session.commit()
    return stored


def make_employee(
    name: str = "Asha Rao",
    category: EmployeeCategory = EmployeeCategory.IN_OFFICE,
    monthly_ctc: Decimal | str = Decimal("30000"),
    status: EmployeeStatus = EmployeeStatus.ACTIVE,
    code: str | None = None,
    bank_accounts: tuple[BankAccount, ...] = (),
) -> Employee:
    return Employee(
        id=uuid4(),
        employee_code=code or f"EMP-{uuid4().hex[:8]}",
        name=name,
        category=category,
        monthly_ctc=Decimal(str(monthly_ctc)),
        status=status,
        bank_accounts=bank_accounts,
    )


@pytest.fixture
def create_employee(session):
    """Factory that persists an employee and returns its DTO."""

    def _create(**kwargs) -> Employee:
        employee = make_employee(**kwargs)
        session.add(EmployeeModel.from_dto(employee, TEST_ACTOR_ID))
        session.commit()
        return employee

    return _create


@pytest.fixture
def advance_service(session, deterministic_clock) -> AdvanceService:
    return AdvanceService(session, clock=deterministic_clock)


@pytest.fixture
def orchestrator(session, deterministic_clock) -> PayrollRunOrchestrator:
    return PayrollRunOrchestrator(session, clock=deterministic_clock)


@pytest.fixture
def full_month() -> MonthlyInputs:
    return MonthlyInputs(days_present=Decimal("30"))
