"""
Money and percentage helpers for the pricing engine.

WHAT: Coercion of loosely-typed form input into Decimal amounts, and
rounding to the currency minor unit.

WHY: Line items are edited live in a form. Invalid numbers (blank fields,
text, negatives) must never break recomputation, so every numeric input is
coerced at the boundary instead of raising.

HOW: Everything goes through Decimal. Floats are converted via str() so
that 0.1 stays 0.1. Rounding is ROUND_HALF_UP to two decimal places, which
is the minor unit of every currency currently in use.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any


ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")


def _to_decimal(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return ZERO
        try:
            result = Decimal(text)
        except InvalidOperation:
            return ZERO
    else:
        return ZERO

    if not result.is_finite():
        return ZERO
    return result


def to_amount(value: Any) -> Decimal:
    """
    Coerce any input into a non-negative Decimal.

    WHY: Non-numeric or negative values are treated as 0 before
    computation. This is a data-entry form, not a validating API.

    Args:
        value: int, float, str, Decimal or anything else

    Returns:
        Non-negative Decimal (0 for invalid input)
    """
    result = _to_decimal(value)
    if result < ZERO:
        return ZERO
    return result


# Quantities follow the same rule as currency amounts.
to_quantity = to_amount


def to_percent(value: Any) -> Decimal:
    """Coerce input into a percentage in [0, 100]."""
    result = to_amount(value)
    if result > HUNDRED:
        return HUNDRED
    return result


def round_money(value: Decimal) -> Decimal:
    """Round to the currency minor unit (2 decimal places, half up)."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def percent_of(amount: Decimal, percent: Decimal) -> Decimal:
    """Return ``amount * percent / 100`` rounded to the minor unit."""
    return round_money(amount * percent / HUNDRED)
