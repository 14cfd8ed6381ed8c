"""
Integer amount validation and checked arithmetic.

All balances are counted in the smallest indivisible unit of their asset.
Amounts are plain Python ints bounded to the unsigned 256-bit range.
"""

from typing import Any

from .errors import ArithmeticOverflow


MAX_AMOUNT = 2 ** 256 - 1


def validate_amount(amount: Any, name: str = "amount") -> int:
    """
    Validate an amount argument.

    Args:
        amount: Value to validate
        name: Argument name used in the error message

    Returns:
        The amount, unchanged

    Raises:
        ValueError: If amount is not an int or is negative
        ArithmeticOverflow: If amount exceeds MAX_AMOUNT
    """
    # bool is an int subclass; reject it explicitly
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"{name} must be an integer, got: {amount!r}")
    if amount < 0:
        raise ValueError(f"{name} must be non-negative, got: {amount}")
    if amount > MAX_AMOUNT:
        raise ArithmeticOverflow(f"{name} exceeds maximum representable amount: {amount}")
    return amount


def checked_add(a: int, b: int) -> int:
    """Add two amounts, raising ArithmeticOverflow past MAX_AMOUNT."""
    result = a + b
    if result > MAX_AMOUNT:
        raise ArithmeticOverflow(f"Amount overflow: {a} + {b}")
    return result


def checked_mul(a: int, b: int) -> int:
    """Multiply two amounts, raising ArithmeticOverflow past MAX_AMOUNT."""
    result = a * b
    if result > MAX_AMOUNT:
        raise ArithmeticOverflow(f"Amount overflow: {a} * {b}")
    return result
