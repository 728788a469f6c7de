"""
Safe money formatting utilities.

All money values are str or Decimal. This module provides the formatting used
in user-facing messages and ledger entries.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext
from typing import Union


def format_money(value: Union[str, Decimal, int, float, None], decimals: int = 6) -> str:
    """
    Safely format a money value to string with specified decimal places.

    Handles:
    - str: parse as Decimal, format
    - Decimal: format directly
    - int: convert to Decimal, format
    - float: convert to Decimal via str, format
    - bool: True=1, False=0
    - None: return "0.000000"

    Uses ROUND_HALF_UP (0.005 -> 0.01 with 2 decimals).
    Never raises on valid numeric input.

    Example:
        >>> format_money("123.45")
        '123.450000'
        >>> format_money(Decimal("0.001"), 2)
        '0.00'
        >>> format_money(None)
        '0.000000'
    """
    if value is None:
        return f"0.{'0' * decimals}" if decimals > 0 else "0"

    try:
        if isinstance(value, str):
            if not value.strip():
                return f"0.{'0' * decimals}" if decimals > 0 else "0"
            dec_value = Decimal(value)
        elif isinstance(value, Decimal):
            dec_value = value
        elif isinstance(value, bool):
            # bool is a subclass of int
            dec_value = Decimal(1 if value else 0)
        elif isinstance(value, (int, float)):
            dec_value = Decimal(str(value))
        else:
            dec_value = Decimal(str(value))

        # 18-decimal balances need more than the default 28 digits
        with localcontext() as ctx:
            ctx.prec = 80
            quantize_str = "0." + "0" * decimals if decimals > 0 else "0"
            rounded = dec_value.quantize(Decimal(quantize_str), rounding=ROUND_HALF_UP)

        format_str = f"{{:.{decimals}f}}"
        return format_str.format(rounded)

    except (InvalidOperation, ValueError, TypeError):
        return f"0.{'0' * decimals}" if decimals > 0 else "0"


def format_amount(value: Union[str, Decimal, int, float, None]) -> str:
    """Display format for transfer amounts (2 decimals)."""
    return format_money(value, 2)


def format_fee(value: Union[str, Decimal, int, float, None]) -> str:
    """Display format for router fees (4 decimals)."""
    return format_money(value, 4)
