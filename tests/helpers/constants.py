"""Shared asset and account constants for tests.

All assets use 12 decimals unless a test registers otherwise.

Usage:
    from tests.helpers import DAI, ONE
    # or
    from tests.helpers.constants import DAI, ONE
"""

from decimal import Decimal

# =============================================================================
# Assets
# =============================================================================

HUB = 1
DAI = 2
USDC = 3
USDT = 4
USDX = 5
ACA = 6

# Share assets (pool ids) of the two default subpools
SHARE = 100
SHARE2 = 101

# =============================================================================
# Accounts
# =============================================================================

PROTOCOL = "omnipool"
ALICE = "alice"
BOB = "bob"

# =============================================================================
# Amounts
# =============================================================================

DECIMALS = 12
ONE = 10**DECIMALS

INITIAL_RESERVE = 1_000_000 * ONE
USER_BALANCE = 10_000 * ONE
AMPLIFICATION = 100

# (asset, hub price) listed in the default world
HUB_LISTING = [
    (DAI, Decimal(1)),
    (USDC, Decimal(1)),
    (USDT, Decimal(1)),
    (USDX, Decimal(1)),
    (ACA, Decimal("0.5")),
]
