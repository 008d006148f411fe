"""Test helpers module for shared test utilities.

This module consolidates common test utilities to reduce duplication:
- constants: Asset ids, accounts and common amounts
- factories: Engine world and reserve factory functions
"""

from tests.helpers.constants import (
    ACA,
    ALICE,
    AMPLIFICATION,
    BOB,
    DAI,
    DECIMALS,
    HUB,
    INITIAL_RESERVE,
    ONE,
    PROTOCOL,
    SHARE,
    SHARE2,
    USDC,
    USDT,
    USDX,
    USER_BALANCE,
)
from tests.helpers.factories import Clock, World, make_world, reserves

__all__ = [
    # Constants
    "HUB",
    "DAI",
    "USDC",
    "USDT",
    "USDX",
    "ACA",
    "SHARE",
    "SHARE2",
    "PROTOCOL",
    "ALICE",
    "BOB",
    "DECIMALS",
    "ONE",
    "INITIAL_RESERVE",
    "USER_BALANCE",
    "AMPLIFICATION",
    # Factories
    "Clock",
    "World",
    "make_world",
    "reserves",
]
