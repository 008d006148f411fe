"""Configuration for the hub pool and stable pools.

Defaults live in frozen dataclasses; `from_env()` reads overrides from
environment variables:

    SUBPOOLS_HUB_ASSET_ID       hub asset id (default: 1)
    SUBPOOLS_PROTOCOL_ACCOUNT   hub pool account (default: "omnipool")
    SUBPOOLS_ASSET_FEE          asset fee fraction (default: 0)
    SUBPOOLS_PROTOCOL_FEE       protocol fee fraction (default: 0)
    SUBPOOLS_MIN_AMPLIFICATION  lowest allowed amplification (default: 2)
    SUBPOOLS_MAX_AMPLIFICATION  highest allowed amplification (default: 10000)
    SUBPOOLS_MAX_ASSETS         max assets per stable pool (default: 5)
    SUBPOOLS_DEFAULT_DECIMALS   decimals of unregistered assets (default: 12)
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from subpools.errors import InvalidConfiguration
from subpools.math.amplification import MAX_AMPLIFICATION, MIN_AMPLIFICATION
from subpools.math.scaling import validate_fee


@dataclass(frozen=True)
class HubPoolConfig:
    """Hub pool parameters.

    Attributes:
        hub_asset_id: Asset every hub pool asset is priced against
        protocol_account: Account holding hub pool reserves
        asset_fee: Fee taken on the out side of every trade
        protocol_fee: Fee taken on the hub-asset leg of every trade
    """

    hub_asset_id: int = 1
    protocol_account: str = "omnipool"
    asset_fee: Decimal = Decimal(0)
    protocol_fee: Decimal = Decimal(0)

    def __post_init__(self) -> None:
        validate_fee(self.asset_fee, "asset_fee")
        validate_fee(self.protocol_fee, "protocol_fee")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "HubPoolConfig":
        env = os.environ if environ is None else environ
        return cls(
            hub_asset_id=_int(env, "SUBPOOLS_HUB_ASSET_ID", cls.hub_asset_id),
            protocol_account=env.get("SUBPOOLS_PROTOCOL_ACCOUNT", cls.protocol_account),
            asset_fee=_decimal(env, "SUBPOOLS_ASSET_FEE", cls.asset_fee),
            protocol_fee=_decimal(env, "SUBPOOLS_PROTOCOL_FEE", cls.protocol_fee),
        )


@dataclass(frozen=True)
class StableswapConfig:
    """Stable pool parameters.

    Attributes:
        min_amplification: Lowest amplification a pool may be created or ramped to
        max_amplification: Highest amplification a pool may be created or ramped to
        max_assets: Maximum number of assets in one pool
        default_decimals: Decimals assumed for assets the ledger has not registered
    """

    min_amplification: int = MIN_AMPLIFICATION
    max_amplification: int = MAX_AMPLIFICATION
    max_assets: int = 5
    default_decimals: int = 12

    def __post_init__(self) -> None:
        if not 0 < self.min_amplification <= self.max_amplification:
            raise InvalidConfiguration(
                f"Invalid amplification bounds [{self.min_amplification}, {self.max_amplification}]"
            )
        if self.max_assets < 2:
            raise InvalidConfiguration(f"max_assets must be at least 2, got {self.max_assets}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "StableswapConfig":
        env = os.environ if environ is None else environ
        return cls(
            min_amplification=_int(env, "SUBPOOLS_MIN_AMPLIFICATION", cls.min_amplification),
            max_amplification=_int(env, "SUBPOOLS_MAX_AMPLIFICATION", cls.max_amplification),
            max_assets=_int(env, "SUBPOOLS_MAX_ASSETS", cls.max_assets),
            default_decimals=_int(env, "SUBPOOLS_DEFAULT_DECIMALS", cls.default_decimals),
        )


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as err:
        raise InvalidConfiguration(f"{name} must be an integer, got {raw!r}") from err


def _decimal(env: Mapping[str, str], name: str, default: Decimal) -> Decimal:
    raw = env.get(name)
    if raw is None:
        return default
    try:
        return Decimal(raw)
    except InvalidOperation as err:
        raise InvalidConfiguration(f"{name} must be a decimal, got {raw!r}") from err


# Default configuration instances
DEFAULT_HUB_POOL_CONFIG = HubPoolConfig()
DEFAULT_STABLESWAP_CONFIG = StableswapConfig()
