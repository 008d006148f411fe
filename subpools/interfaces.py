"""Collaborator interfaces consumed by the subpool engine.

These Protocol classes define the dependency-injection seams. The engine
never instantiates its collaborators; any object with the right methods
(in-memory references, adapters to real storage, test doubles) can be
injected.

Every mutating method takes an optional transaction: given one, it stages
its writes there; otherwise it runs in its own atomic scope.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from subpools.models.types import (
        AccountId,
        AssetAmount,
        AssetId,
        AssetReserve,
        AssetStateChange,
        HubAssetState,
        HubTradeStateChange,
        Position,
        StablePool,
        Tradability,
        TradeStateChange,
    )
    from subpools.transaction import Transaction


class Ledger(Protocol):
    """Fungible balances, keyed by (asset, account).

    Operations fail only on insufficient balance.
    """

    def transfer(self, asset: AssetId, source: AccountId, dest: AccountId, amount: int) -> None:
        ...

    def mint(self, asset: AssetId, dest: AccountId, amount: int) -> None:
        ...

    def burn(self, asset: AssetId, source: AccountId, amount: int) -> None:
        ...

    def total_issuance(self, asset: AssetId) -> int:
        ...

    def free_balance(self, asset: AssetId, account: AccountId) -> int:
        ...

    def decimals(self, asset: AssetId) -> int:
        ...


class HubTradeContract(Protocol):
    """Pure hub-pool trade formulas (see subpools.math.hub_math)."""

    def sell_state_change(
        self,
        asset_in: HubAssetState,
        asset_out: HubAssetState,
        amount: int,
        asset_fee: Decimal,
        protocol_fee: Decimal,
        imbalance: int,
    ) -> TradeStateChange:
        ...

    def buy_state_change(
        self,
        asset_in: HubAssetState,
        asset_out: HubAssetState,
        amount: int,
        asset_fee: Decimal,
        protocol_fee: Decimal,
        imbalance: int,
    ) -> TradeStateChange:
        ...

    def sell_hub_state_change(
        self,
        asset_out: HubAssetState,
        hub_asset_amount: int,
        asset_fee: Decimal,
        imbalance: int,
        hub_liquidity: int,
    ) -> HubTradeStateChange:
        ...

    def buy_for_hub_asset_state_change(
        self,
        asset_out: HubAssetState,
        amount: int,
        asset_fee: Decimal,
        imbalance: int,
        hub_liquidity: int,
    ) -> HubTradeStateChange:
        ...


class HubPool(Protocol):
    """Hub pool (omnipool) state and its own trade/liquidity operations."""

    @property
    def hub_asset_id(self) -> AssetId:
        ...

    @property
    def asset_fee(self) -> Decimal:
        ...

    @property
    def protocol_fee(self) -> Decimal:
        ...

    def protocol_account(self) -> AccountId:
        ...

    def contains(self, asset: AssetId, tx: Transaction | None = None) -> bool:
        ...

    def load_asset_state(self, asset: AssetId, tx: Transaction | None = None) -> HubAssetState:
        ...

    def add_asset(self, asset: AssetId, state: HubAssetState, tx: Transaction) -> None:
        ...

    def remove_asset(self, asset: AssetId, tx: Transaction) -> None:
        ...

    def update_asset_state(
        self, asset: AssetId, change: AssetStateChange, tx: Transaction
    ) -> HubAssetState:
        ...

    def apply_trade(
        self, asset_in: AssetId, asset_out: AssetId, change: TradeStateChange, tx: Transaction
    ) -> None:
        ...

    def apply_hub_asset_trade(
        self, asset: AssetId, change: HubTradeStateChange, tx: Transaction
    ) -> None:
        ...

    def current_imbalance(self, tx: Transaction | None = None) -> int:
        ...

    def hub_liquidity(self, tx: Transaction | None = None) -> int:
        ...

    def is_hub_asset_allowed(self, operation: Tradability) -> bool:
        ...

    def sell(
        self,
        who: AccountId,
        asset_in: AssetId,
        asset_out: AssetId,
        amount: int,
        min_buy_amount: int,
        tx: Transaction | None = None,
    ) -> int:
        ...

    def buy(
        self,
        who: AccountId,
        asset_out: AssetId,
        asset_in: AssetId,
        amount: int,
        max_sell_amount: int,
        tx: Transaction | None = None,
    ) -> int:
        ...

    def add_liquidity(
        self, who: AccountId, asset: AssetId, amount: int, tx: Transaction | None = None
    ) -> int:
        ...

    def remove_liquidity(
        self, who: AccountId, position_id: int, amount: int, tx: Transaction | None = None
    ) -> int:
        ...

    def load_position(
        self, position_id: int, owner: AccountId, tx: Transaction | None = None
    ) -> Position:
        ...

    def set_position(self, position_id: int, position: Position, tx: Transaction) -> None:
        ...


class StablePools(Protocol):
    """Stable pools (subpools) and their own trade/liquidity operations."""

    def get_pool(self, pool_id: AssetId, tx: Transaction | None = None) -> StablePool:
        ...

    def find_asset_index(self, pool: StablePool, asset: AssetId) -> int:
        ...

    def is_asset_allowed(
        self,
        pool_id: AssetId,
        asset: AssetId,
        operation: Tradability,
        tx: Transaction | None = None,
    ) -> bool:
        ...

    def pool_account(self, pool_id: AssetId) -> AccountId:
        ...

    def balances(self, pool: StablePool, tx: Transaction | None = None) -> list[AssetReserve]:
        ...

    def amplification(self, pool: StablePool) -> int:
        ...

    def create_pool(
        self,
        share_asset: AssetId,
        assets: Sequence[AssetId],
        amplification: int,
        trade_fee: Decimal,
        withdraw_fee: Decimal,
        tx: Transaction | None = None,
    ) -> StablePool:
        ...

    def add_asset_to_existing_pool(
        self, pool_id: AssetId, asset: AssetId, tx: Transaction | None = None
    ) -> StablePool:
        ...

    def set_asset_tradability(
        self,
        pool_id: AssetId,
        asset: AssetId,
        tradability: frozenset[Tradability],
        tx: Transaction | None = None,
    ) -> None:
        ...

    def sell(
        self,
        who: AccountId,
        pool_id: AssetId,
        asset_in: AssetId,
        asset_out: AssetId,
        amount: int,
        min_buy_amount: int,
        tx: Transaction | None = None,
    ) -> int:
        ...

    def buy(
        self,
        who: AccountId,
        pool_id: AssetId,
        asset_out: AssetId,
        asset_in: AssetId,
        amount: int,
        max_sell_amount: int,
        tx: Transaction | None = None,
    ) -> int:
        ...

    def add_liquidity(
        self,
        who: AccountId,
        pool_id: AssetId,
        assets: Sequence[AssetAmount],
        tx: Transaction | None = None,
    ) -> int:
        ...

    def remove_liquidity_one_asset(
        self,
        who: AccountId,
        pool_id: AssetId,
        asset: AssetId,
        share_amount: int,
        min_amount: int,
        tx: Transaction | None = None,
    ) -> int:
        ...
