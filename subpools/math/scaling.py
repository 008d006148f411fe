"""Decimal normalization and fee helpers.

Stable pool balances are normalized to TARGET_PRECISION before solving and
scaled back to asset decimals afterwards. Fees are Decimal fractions in
[0, 1) converted to Bfp at the point of use.
"""

from decimal import Decimal
from enum import Enum

from subpools.errors import InvalidConfiguration

from .fixed_point import TARGET_PRECISION, Bfp


class Rounding(Enum):
    DOWN = "down"
    UP = "up"


def validate_fee(fee: Decimal, name: str = "fee") -> Decimal:
    """Check that a fee fraction lies in [0, 1).

    Raises:
        InvalidConfiguration: If the fee is out of range
    """
    if fee < 0 or fee >= 1:
        raise InvalidConfiguration(f"{name} must be in range [0, 1), got {fee}")
    return fee


def normalize_value(
    amount: int,
    decimals: int,
    target_decimals: int = TARGET_PRECISION,
    rounding: Rounding = Rounding.DOWN,
) -> int:
    """Rescale an amount between decimal precisions.

    Args:
        amount: Amount expressed with `decimals` decimals
        decimals: Precision of the input
        target_decimals: Precision of the result
        rounding: Direction applied when precision is lost

    Returns:
        Amount expressed with `target_decimals` decimals
    """
    if decimals == target_decimals:
        return amount
    if decimals < target_decimals:
        return amount * 10 ** (target_decimals - decimals)
    factor = 10 ** (decimals - target_decimals)
    if rounding is Rounding.UP:
        return -(-amount // factor)
    return amount // factor


def fee_amount(amount: int, fee: Decimal) -> int:
    """Fee charged on `amount`, rounded up."""
    return Bfp.from_wei(amount).mul_up(Bfp.from_decimal(fee)).value


def amount_without_fee(amount: int, fee: Decimal) -> int:
    """Subtract the fee from an amount (sell side)."""
    validate_fee(fee)
    return amount - fee_amount(amount, fee)


def amount_with_fee(amount: int, fee: Decimal) -> int:
    """Gross up an amount so that removing the fee leaves `amount` (buy side).

    Formula: amount / (1 - fee), rounded up
    """
    validate_fee(fee)
    complement = Bfp.from_decimal(fee).complement()
    return Bfp.from_wei(amount).div_up(complement).value
