"""
Validation utilities for transfer inputs.

Provides validators for addresses, amounts and idempotency tokens.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Union

from core.constants import ErrorCode
from core.exceptions import ValidationError

ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")


def is_valid_address(address: str) -> bool:
    """
    Check if string is a valid EVM address.

    Args:
        address: String to validate

    Returns:
        True if valid 0x-prefixed 40-char hex address
    """
    if not isinstance(address, str):
        return False
    return bool(ADDRESS_PATTERN.match(address))


def normalize_address(address: str) -> str:
    """Lower-case an address after validating it."""
    if not is_valid_address(address):
        raise ValidationError(
            f"Invalid address: {address!r}",
            ErrorCode.INVALID_ADDRESS,
            {"address": address},
        )
    return address.lower()


def validate_amount(amount: Union[str, int, float, Decimal]) -> Decimal:
    """
    Parse and validate a transfer amount.

    Floats are converted through str() so 0.1 stays 0.1.

    Raises:
        ValidationError: If the amount is not a finite number > 0
    """
    if isinstance(amount, bool):
        raise ValidationError("Amount must be numeric", ErrorCode.INVALID_AMOUNT)

    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(
            f"Amount is not a number: {amount!r}",
            ErrorCode.INVALID_AMOUNT,
        )

    if not value.is_finite() or value <= 0:
        raise ValidationError(
            f"Amount must be greater than zero: {amount!r}",
            ErrorCode.INVALID_AMOUNT,
        )
    return value


def validate_token(token: str) -> str:
    """Idempotency tokens are opaque but must be non-empty strings."""
    if not isinstance(token, str) or not token.strip():
        raise ValidationError("Idempotency token must be a non-empty string", ErrorCode.INVALID_TOKEN)
    return token
