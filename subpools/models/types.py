"""Shared data model for hub pool and stable pool state.

All records are frozen dataclasses; state changes produce new instances.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum

from subpools.math.fixed_point import Bfp
from subpools.safe_int import S

AssetId = int
AccountId = str
Balance = int


class Tradability(Enum):
    """Capability tags an asset can carry in a pool."""

    SELL = "sell"
    BUY = "buy"
    ADD_LIQUIDITY = "add_liquidity"
    REMOVE_LIQUIDITY = "remove_liquidity"


ALL_TRADABLE: frozenset[Tradability] = frozenset(Tradability)


class Route(Enum):
    """Resolution case chosen for a trade."""

    HUB = "hub"
    STABLE = "stable"
    SUBPOOL_TO_SUBPOOL = "subpool_to_subpool"
    MIXED = "mixed"
    HUB_ASSET = "hub_asset"


@dataclass(frozen=True)
class AssetReserve:
    """Balance of one stable pool asset together with its precision."""

    amount: Balance
    decimals: int


@dataclass(frozen=True)
class AssetAmount:
    asset_id: AssetId
    amount: Balance


@dataclass(frozen=True)
class AssetStateChange:
    """Signed deltas applied to a hub asset state."""

    delta_reserve: int = 0
    delta_hub_reserve: int = 0
    delta_shares: int = 0


@dataclass(frozen=True)
class HubAssetState:
    """State of one asset inside the hub pool.

    Attributes:
        reserve: Amount of the asset held by the hub pool
        hub_reserve: Amount of hub asset backing the reserve (Q)
        shares: Total LP shares issued for the asset
        weight_cap: Maximum share of total hub reserve the asset may hold
        tradable: Allowed operations
    """

    reserve: Balance
    hub_reserve: Balance
    shares: Balance
    weight_cap: Decimal = Decimal(1)
    tradable: frozenset[Tradability] = ALL_TRADABLE

    def apply(self, change: AssetStateChange) -> HubAssetState:
        """Return the state after `change`.

        Raises:
            MathError: If any field would become negative
        """
        return replace(
            self,
            reserve=_apply_delta(self.reserve, change.delta_reserve),
            hub_reserve=_apply_delta(self.hub_reserve, change.delta_hub_reserve),
            shares=_apply_delta(self.shares, change.delta_shares),
        )

    def price(self) -> Bfp:
        """Hub asset per unit of asset (Q / R)."""
        return Bfp.from_ratio(self.hub_reserve, self.reserve)


def _apply_delta(value: int, delta: int) -> int:
    if delta >= 0:
        return (S(value) + delta).to_balance()
    return (S(value) - (-delta)).to_balance()


@dataclass(frozen=True)
class TradeStateChange:
    """Result of a hub pool trade computation between two non-hub assets.

    Deltas on the asset sides are signed; the properties below expose their
    magnitudes. `delta_imbalance` is the signed change to the hub imbalance.
    """

    asset_in: AssetStateChange
    asset_out: AssetStateChange
    delta_imbalance: int = 0
    fee: Balance = 0

    @property
    def delta_reserve_in(self) -> Balance:
        return abs(self.asset_in.delta_reserve)

    @property
    def delta_reserve_out(self) -> Balance:
        return abs(self.asset_out.delta_reserve)

    @property
    def delta_hub_reserve_in(self) -> Balance:
        return abs(self.asset_in.delta_hub_reserve)

    @property
    def delta_hub_reserve_out(self) -> Balance:
        return abs(self.asset_out.delta_hub_reserve)


@dataclass(frozen=True)
class HubTradeStateChange:
    """Result of a trade where the hub asset itself is sold or bought."""

    asset: AssetStateChange
    delta_imbalance: int = 0
    fee: Balance = 0

    @property
    def delta_reserve(self) -> Balance:
        return abs(self.asset.delta_reserve)

    @property
    def delta_hub_reserve(self) -> Balance:
        return abs(self.asset.delta_hub_reserve)


@dataclass(frozen=True)
class LiquidityStateChange:
    """Result of adding or removing hub pool liquidity for one asset."""

    asset: AssetStateChange
    delta_position_reserve: int
    delta_position_shares: int
    price: Bfp


@dataclass(frozen=True)
class Position:
    """LP position in the hub pool.

    Attributes:
        owner: Account that may remove the position
        asset_id: Asset the position provides
        amount: Amount of asset originally provided (reduced on removal)
        shares: Hub pool shares held
        price: Hub price of the asset when the position was opened
    """

    owner: AccountId
    asset_id: AssetId
    amount: Balance
    shares: Balance
    price: Bfp


@dataclass(frozen=True)
class MigrationDetail:
    """Snapshot taken when an asset moved from the hub pool into a subpool.

    Attributes:
        price: Share tokens minted per unit of the migrated asset
        shares: Hub pool shares outstanding for the asset at migration
        hub_reserve: Hub reserve the asset carried at migration
        share_tokens: Share tokens minted for the asset's reserve
    """

    price: Bfp
    shares: Balance
    hub_reserve: Balance
    share_tokens: Balance


@dataclass(frozen=True)
class StablePool:
    """Stable pool parameters. The share asset id equals the pool id.

    Balances are not stored here; they are the ledger balances of the pool
    account.
    """

    pool_id: AssetId
    assets: tuple[AssetId, ...]
    initial_amplification: int
    final_amplification: int
    initial_block: int = 0
    final_block: int = 0
    trade_fee: Decimal = Decimal(0)
    withdraw_fee: Decimal = Decimal(0)
    # (asset, flags) pairs; assets without an entry are fully tradable
    tradability: tuple[tuple[AssetId, frozenset[Tradability]], ...] = ()

    def asset_tradability(self, asset_id: AssetId) -> frozenset[Tradability]:
        return dict(self.tradability).get(asset_id, ALL_TRADABLE)

    def with_tradability(self, asset_id: AssetId, flags: frozenset[Tradability]) -> StablePool:
        others = tuple(pair for pair in self.tradability if pair[0] != asset_id)
        return replace(self, tradability=(*others, (asset_id, frozenset(flags))))

    def with_asset(self, asset_id: AssetId) -> StablePool:
        return replace(self, assets=(*self.assets, asset_id))


@dataclass(frozen=True)
class TradeResult:
    """Outcome of an engine sell or buy."""

    route: Route
    asset_in: AssetId
    asset_out: AssetId
    amount_in: Balance
    amount_out: Balance
