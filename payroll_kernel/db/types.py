"""
Module: payroll_kernel.db.types
Responsibility: Money precision constants and the rounding helper.
    Centralizes precision so that every model, engine and service rounds pay
    components identically.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, selectors/ and payroll_engines.  MUST NOT import from any of
    those layers.

Invariants enforced:
    - No floats anywhere in the payroll kernel.  All monetary amounts are
      Decimal with explicit precision.
    - round_money() is the ONLY sanctioned rounding function for pay
      components, deductions and advance amounts.

Failure modes:
    - decimal.InvalidOperation on non-numeric input to money_from_str().
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def money_from_str(value: str) -> Decimal:
    """Create a Money value from string, unrounded."""
    return Decimal(value)


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given decimal places.

    Pay components are rounded individually with ROUND_HALF_UP before any
    total is formed, so totals are exact sums of what is stored.

    Args:
        value: The Decimal value to round.
        decimal_places: Number of decimal places; 0 rounds to whole units.
        rounding: Rounding mode (default: ROUND_HALF_UP).

    Returns:
        Rounded Decimal value.
    """
    if decimal_places == 0:
        return value.quantize(Decimal("1"), rounding=rounding)
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def to_decimal(value) -> Decimal:
    """Coerce int/str/Decimal input to Decimal without passing through float."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from backends without zone support."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
