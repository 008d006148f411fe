"""State snapshots.

Pydantic models describing a complete starting state (asset registry,
account balances, hub pool listing and subpools) that can be loaded from
JSON and wired into a ready-to-use SubpoolEngine.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator

from subpools.config import HubPoolConfig, StableswapConfig
from subpools.engine import SubpoolEngine
from subpools.hub_pool import Omnipool
from subpools.ledger import InMemoryLedger
from subpools.math.fixed_point import Bfp
from subpools.models.types import ALL_TRADABLE, Tradability
from subpools.safe_int import BALANCE_MAX
from subpools.stableswap import StableswapPools


def validate_balance(value: Any) -> int:
    """Validate that a value is a 128-bit unsigned balance.

    Args:
        value: Value to validate (decimal string or int)

    Returns:
        The balance as int

    Raises:
        ValueError: If value is not a non-negative integer within 128 bits
    """
    if isinstance(value, bool) or not isinstance(value, int | str):
        raise ValueError(f"Balance must be string or int, got {type(value).__name__}")

    if isinstance(value, str):
        try:
            value = int(value)
        except ValueError as err:
            raise ValueError(f"Balance must be a decimal integer string: '{value}'") from err

    if value < 0:
        raise ValueError(f"Balance cannot be negative: {value}")
    if value > BALANCE_MAX:
        raise ValueError(f"Balance overflow: {value} > 2^128-1")
    return value


# 128-bit unsigned integer, accepted as int or decimal string
Balance = Annotated[
    int,
    BeforeValidator(validate_balance),
    Field(description="128-bit unsigned integer"),
]

Fee = Annotated[Decimal, Field(ge=0, lt=1)]


class _Model(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class AssetSnapshot(_Model):
    asset_id: int
    decimals: int = Field(default=12, ge=0, le=18)


class AccountBalance(_Model):
    account: str
    asset_id: int
    amount: Balance


class HubAssetSnapshot(_Model):
    """Asset listed in the hub pool; `reserve` is credited to the protocol account."""

    asset_id: int
    reserve: Balance
    price: Decimal = Field(gt=0, description="Hub asset per unit of asset")
    weight_cap: Decimal = Field(default=Decimal(1), gt=0, le=1)
    tradable: frozenset[Tradability] = ALL_TRADABLE


class SubpoolSnapshot(_Model):
    """Subpool created from the first two assets; further assets are migrated in order."""

    share_asset: int
    assets: list[int] = Field(min_length=2)
    weight_cap: Decimal = Field(default=Decimal(1), gt=0, le=1)
    amplification: int = Field(gt=0)
    trade_fee: Fee = Decimal(0)
    withdraw_fee: Fee = Decimal(0)


class HubSnapshot(_Model):
    hub_asset_id: int = 1
    protocol_account: str = "omnipool"
    asset_fee: Fee = Decimal(0)
    protocol_fee: Fee = Decimal(0)


class StateSnapshot(_Model):
    """Complete starting state for an engine."""

    hub: HubSnapshot = HubSnapshot()
    assets: list[AssetSnapshot] = []
    balances: list[AccountBalance] = []
    hub_assets: list[HubAssetSnapshot] = []
    subpools: list[SubpoolSnapshot] = []
    block_number: int = 0

    @model_validator(mode="after")
    def _check_unique_listing(self) -> StateSnapshot:
        listed = [asset.asset_id for asset in self.hub_assets]
        if len(listed) != len(set(listed)):
            raise ValueError("Hub assets must be listed once")
        if self.hub.hub_asset_id in listed:
            raise ValueError("Hub asset cannot be listed in the hub pool")
        return self

    def build(self, stableswap_config: StableswapConfig | None = None) -> SubpoolEngine:
        """Wire a ledger, hub pool, stable pools and engine holding this state."""
        config = stableswap_config or StableswapConfig()
        ledger = InMemoryLedger(default_decimals=config.default_decimals)
        for asset in self.assets:
            ledger.register_asset(asset.asset_id, asset.decimals)

        hub = Omnipool(
            ledger,
            HubPoolConfig(
                hub_asset_id=self.hub.hub_asset_id,
                protocol_account=self.hub.protocol_account,
                asset_fee=self.hub.asset_fee,
                protocol_fee=self.hub.protocol_fee,
            ),
        )
        block_number = self.block_number
        stable = StableswapPools(ledger, config, block_number=lambda: block_number)
        engine = SubpoolEngine(ledger, hub, stable)

        for listed in self.hub_assets:
            ledger.mint(listed.asset_id, hub.protocol_account(), listed.reserve)
            hub.add_token(
                listed.asset_id,
                Bfp.from_decimal(listed.price),
                weight_cap=listed.weight_cap,
                tradable=listed.tradable,
            )

        for balance in self.balances:
            ledger.mint(balance.asset_id, balance.account, balance.amount)

        for subpool in self.subpools:
            first, second, *rest = subpool.assets
            engine.create_subpool(
                subpool.share_asset,
                first,
                second,
                subpool.weight_cap,
                subpool.amplification,
                subpool.trade_fee,
                subpool.withdraw_fee,
            )
            for asset in rest:
                engine.migrate_asset_to_subpool(subpool.share_asset, asset)

        return engine
