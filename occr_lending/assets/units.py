"""Conversions between human decimal amounts and integer base units."""
from __future__ import annotations

from decimal import Decimal


def to_units(value: str | int | Decimal, decimals: int = 18) -> int:
    """Convert a human amount to base units, truncating extra precision.

    Examples:
        to_units("1.5", 18) → 1500000000000000000
        to_units("0.0000001", 6) → 0
    """
    return int(Decimal(str(value)).scaleb(decimals))


def from_units(amount: int, decimals: int = 18) -> Decimal:
    """Convert base units back to a human amount."""
    return Decimal(amount).scaleb(-decimals)
