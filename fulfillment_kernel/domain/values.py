"""
Money and quantity helpers (``fulfillment_kernel.domain.values``).

Responsibility:
    Canonical Decimal coercion and rounding so that every engine and module
    computes line totals and header aggregates identically.

Invariants enforced:
    - No floats in monetary arithmetic.  ``to_decimal`` converts through
      ``str`` so binary float noise never leaks into a Decimal.
    - ``round_money`` is the only sanctioned rounding for stored amounts
      (ROUND_HALF_UP, two places by default).
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

ZERO = Decimal("0")
MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP


def to_decimal(value: Any, default: Decimal | None = ZERO) -> Decimal | None:
    """Coerce ``value`` to Decimal; ``None``/blank/unparseable -> ``default``."""
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value if value.is_finite() else default
    if isinstance(value, bool):
        return default
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return default
    return result if result.is_finite() else default


def round_money(value: Decimal, places: int = MONEY_DECIMAL_PLACES) -> Decimal:
    """Round a monetary amount half-up to ``places`` decimal places."""
    quantum = Decimal(1).scaleb(-places)
    return value.quantize(quantum, rounding=DEFAULT_ROUNDING)


def is_positive(value: Decimal | None) -> bool:
    return value is not None and value > ZERO
