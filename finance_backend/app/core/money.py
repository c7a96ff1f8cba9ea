"""
Money helpers.

Amounts are Decimal, rounded half-up to cents.
"""

from decimal import Decimal, ROUND_HALF_UP

TWOPLACES = Decimal("0.01")
ZERO = Decimal("0.00")


def quantize(value: Decimal) -> Decimal:
    return value.quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def to_money(value) -> Decimal:
    """Normalize a DB aggregate (Decimal, float, int, str or None) to a cent amount."""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return quantize(value)


def percentage(part: Decimal, whole: Decimal) -> Decimal:
    """part / whole * 100, 0 when whole is not positive."""
    if whole <= 0:
        return ZERO
    return quantize(part / whole * 100)
