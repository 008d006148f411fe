"""18-decimal fixed-point arithmetic.

Prices, fees and ratios are stored as integers scaled by 10^18. Every
multiply and divide states its rounding direction so callers can round in
the pool's favour.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import ClassVar

from subpools.safe_int import DivisionByZero

__all__ = [
    "Bfp",
    "ONE_18",
    "AMP_PRECISION",
    "TARGET_PRECISION",
]

ONE_18 = 10**18

# Amplification is carried as A * AMP_PRECISION inside the Newton solvers
AMP_PRECISION = 1000

# Decimals every stable pool balance is normalized to before solving
TARGET_PRECISION = 18


class Bfp:
    """18-decimal fixed-point number stored as int.

    Example: 1.5 is stored as 1_500_000_000_000_000_000
    """

    ONE: ClassVar[int] = ONE_18

    __slots__ = ("value",)
    __hash__ = None  # type: ignore[assignment]  # Unhashable since we define __eq__

    def __init__(self, value: int) -> None:
        """Create Bfp from raw scaled value."""
        self.value = value

    @classmethod
    def from_wei(cls, wei: int) -> Bfp:
        """Create from raw value (already scaled to 18 decimals)."""
        return cls(wei)

    @classmethod
    def from_decimal(cls, d: Decimal) -> Bfp:
        """Create from decimal (will be scaled by 10^18).

        Uses ROUND_HALF_UP. Requires non-negative input.
        """
        if d < 0:
            raise ValueError(f"Bfp.from_decimal requires non-negative input, got {d}")
        scaled = (d * cls.ONE).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        return cls(int(scaled))

    @classmethod
    def from_int(cls, i: int) -> Bfp:
        """Create from integer (will be scaled by 10^18)."""
        return cls(i * cls.ONE)

    @classmethod
    def from_ratio(cls, numerator: int, denominator: int) -> Bfp:
        """Create numerator / denominator, rounded down."""
        if denominator == 0:
            raise DivisionByZero(f"Bfp ratio with zero denominator: {numerator}/0")
        return cls((numerator * cls.ONE) // denominator)

    def to_decimal(self) -> Decimal:
        """Convert to Decimal for display."""
        return Decimal(self.value) / Decimal(self.ONE)

    def mul_down(self, other: Bfp) -> Bfp:
        """Multiply with floor rounding: (a * b) // 10^18"""
        return Bfp((self.value * other.value) // self.ONE)

    def mul_up(self, other: Bfp) -> Bfp:
        """Multiply with ceiling rounding."""
        product = self.value * other.value
        if product == 0:
            return Bfp(0)
        return Bfp((product - 1) // self.ONE + 1)

    def div_down(self, other: Bfp) -> Bfp:
        """Divide with floor rounding: (a * 10^18) // b"""
        if other.value == 0:
            raise DivisionByZero("Bfp division by zero")
        return Bfp((self.value * self.ONE) // other.value)

    def div_up(self, other: Bfp) -> Bfp:
        """Divide with ceiling rounding."""
        if other.value == 0:
            raise DivisionByZero("Bfp division by zero")
        numerator = self.value * self.ONE
        if numerator == 0:
            return Bfp(0)
        return Bfp((numerator - 1) // other.value + 1)

    def complement(self) -> Bfp:
        """Return 1 - self. Clamps to 0 if self > 1."""
        return Bfp(max(0, self.ONE - self.value))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Bfp):
            return NotImplemented
        return self.value == other.value

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Bfp):
            return NotImplemented
        return self.value < other.value

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Bfp):
            return NotImplemented
        return self.value <= other.value

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Bfp):
            return NotImplemented
        return self.value > other.value

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Bfp):
            return NotImplemented
        return self.value >= other.value

    def __repr__(self) -> str:
        return f"Bfp({self.value})"

    def __str__(self) -> str:
        return str(self.to_decimal())
