"""Conversions between human decimal amounts and integer base units."""

from decimal import Decimal, ROUND_DOWN
from typing import Union


def to_base_units(amount: Union[Decimal, str, int], decimals: int) -> int:
    """Decimal token amount -> integer smallest units (truncates dust)."""
    value = Decimal(str(amount)) * (Decimal(10) ** decimals)
    return int(value.quantize(Decimal(1), rounding=ROUND_DOWN))


def format_units(amount: int, decimals: int) -> Decimal:
    """Integer smallest units -> Decimal token amount, for display only."""
    return Decimal(int(amount)) / (Decimal(10) ** decimals)
