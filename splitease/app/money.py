"""
money.py — Decimal helpers shared by the split allocator and the balance engine.

All monetary values are Decimal with cent precision. Rounding happens only at
the exit boundary of a computation (to_cents), never while accumulating.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def as_decimal(value) -> Decimal:
    """
    Coerces an amount to Decimal without passing through binary floating point.

    Floats are converted through their shortest repr (str(0.1) == "0.1"), so a
    float that reaches this helper keeps the value the caller wrote.
    """
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_cents(value) -> Decimal:
    """Rounds an amount to two decimal places, halves away from zero."""
    return as_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
