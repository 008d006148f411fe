"""Numeric kernel for hub pool and stable pool calculations.

This package provides:
- Bfp: 18-decimal fixed-point arithmetic
- stable_math: stable invariant solver and share formulas
- amplification: amplification ramp
- hub_math: hub pool trade and liquidity formulas
- migration: subpool migration and position conversion
"""

from subpools.math.fixed_point import Bfp

__all__ = ["Bfp"]
