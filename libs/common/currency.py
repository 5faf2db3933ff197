"""Money helpers for the storefront.

Storage unit: major currency units as ``Decimal`` with two places (e.g. EUR 41.99).
Payment gateway unit: minor units as ``int`` (cents, 100 cents = EUR 1).
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

CENTS_PER_UNIT: int = 100
TWO_PLACES = Decimal("0.01")


def round_money(value: Decimal | int | float | str) -> Decimal:
    """Quantize to two decimal places, rounding half-up."""
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal | int | float | str) -> int:
    """Convert a major-unit amount to minor units. EUR 41.99 -> 4199."""
    return int(round_money(amount) * CENTS_PER_UNIT)


def from_minor_units(minor: int) -> Decimal:
    """Convert minor units back to a major-unit Decimal. 4199 -> EUR 41.99."""
    return round_money(Decimal(minor) / CENTS_PER_UNIT)
