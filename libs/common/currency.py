"""Money helpers.

Internal amounts are ``Decimal`` in major units with two decimal places.
Gateways and payment intents carry integer minor units (kobo, cents).

Conversion chain
----------------
Major × 100 → Minor
Minor ÷ 100 → Major
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

MINOR_PER_MAJOR: int = 100
CENT = Decimal("0.01")
ZERO = Decimal("0.00")

Number = Union[Decimal, int, float, str]


def to_decimal(amount: Number) -> Decimal:
    """Coerce to Decimal without float artefacts."""
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))


def quantize_money(amount: Number) -> Decimal:
    """Round to cents (round half-up)."""
    return to_decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Number) -> int:
    """Convert major units to integer minor units. 1.00 → 100."""
    return int(quantize_money(amount) * MINOR_PER_MAJOR)


def from_minor_units(minor: int) -> Decimal:
    """Convert minor units to major units. 100 → 1.00."""
    return quantize_money(Decimal(minor) / MINOR_PER_MAJOR)
