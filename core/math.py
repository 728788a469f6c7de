"""
Math utilities for the payment router.

Safe conversions between human token amounts and on-chain integer units.
Money is never carried as float: inputs are converted via str() into Decimal.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext
from typing import Union, Optional

Number = Union[str, int, float, Decimal]


def safe_decimal(value: Union[Number, None], default: Decimal = Decimal("0")) -> Decimal:
    """
    Safely convert value to Decimal.

    Args:
        value: Value to convert
        default: Default if conversion fails

    Returns:
        Decimal value
    """
    if value is None:
        return default

    try:
        if isinstance(value, Decimal):
            return value
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return default


def to_base_units(amount: Number, decimals: int) -> int:
    """
    Convert a human amount to the network's smallest unit.

    Computed as round(amount * 10^decimals) with ROUND_HALF_UP, always from
    the target network's own precision.

    Args:
        amount: Amount in token units (e.g. "15.00")
        decimals: Token decimals of the target network

    Returns:
        Amount in smallest units (int)
    """
    amt = safe_decimal(amount)
    # 18-decimal amounts exceed the default 28-digit context
    with localcontext() as ctx:
        ctx.prec = 80
        scaled = amt * (Decimal(10) ** decimals)
        return int(scaled.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_base_units(amount: Union[int, str, Decimal], decimals: int) -> Decimal:
    """
    Convert smallest units back to a human Decimal amount.

    Args:
        amount: Amount in smallest units
        decimals: Token decimals

    Returns:
        Amount in token units
    """
    amt = safe_decimal(amount)
    with localcontext() as ctx:
        ctx.prec = 80
        return amt / (Decimal(10) ** decimals)


def add_margin(value: int, divisor: int) -> int:
    """
    Add an integer margin of value // divisor.

    add_margin(100_000, 5) == 120_000 (a 20% gas buffer).
    """
    if divisor <= 0:
        return value
    return value + value // divisor


def net_of_fee(amount: Number, fee: Optional[Number]) -> Decimal:
    """Amount the recipient receives after the router's fee."""
    return safe_decimal(amount) - safe_decimal(fee)
