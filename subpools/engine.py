"""Cross-pool trade resolution, liquidity routing and subpool migration.

SubpoolEngine sits on top of a hub pool and a set of stable pools sharing
one ledger. Assets migrated into a stable pool (a subpool) are represented
in the hub pool by the pool's share asset; the engine routes trades and
liquidity operations so that callers can keep addressing the underlying
assets.

Trade resolution picks one of five cases from the migration registry:

    1. both assets native in the hub pool  -> hub pool trade
    2. both assets in the same subpool     -> stable pool trade
    3. assets in different subpools        -> share asset vs share asset
    4. one native, one migrated            -> share asset vs native asset
    5. hub asset sold for a migrated asset -> hub asset vs share asset

Cases 3-5 are computed without touching state, checked against the
caller's limit, and then applied as a single transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

import structlog

from subpools.errors import (
    InvalidConfiguration,
    LimitExceeded,
    LimitNotReached,
    NotAllowed,
    NotStableAsset,
    PoolNotFound,
    WithdrawAssetNotSpecified,
)
from subpools.math import hub_math, migration, stable_math
from subpools.models.types import (
    AccountId,
    AssetAmount,
    AssetId,
    AssetReserve,
    HubAssetState,
    Position,
    Route,
    StablePool,
    Tradability,
    TradeResult,
)
from subpools.registry import MigratedAsset, SubpoolRegistry
from subpools.transaction import Transaction, transactional

if TYPE_CHECKING:
    from subpools.interfaces import HubPool, HubTradeContract, Ledger, StablePools

logger = structlog.get_logger()


@dataclass(frozen=True)
class _StableSide:
    """Stable pool view of a migrated asset at the start of a trade."""

    pool: StablePool
    index: int
    reserves: list[AssetReserve]
    amplification: int
    issuance: int
    account: AccountId


@dataclass(frozen=True)
class _Leg:
    """One side of a cross-pool trade.

    `hub_asset` is the asset traded inside the hub pool: the asset itself
    for native assets, the share asset for migrated ones.
    """

    asset: AssetId
    hub_asset: AssetId
    stable: _StableSide | None = None


class SubpoolEngine:
    """Routes trades, liquidity and migrations between the hub pool and subpools."""

    def __init__(
        self,
        ledger: Ledger,
        hub: HubPool,
        stable: StablePools,
        registry: SubpoolRegistry | None = None,
        trade_math: HubTradeContract = hub_math,
    ) -> None:
        self._ledger = ledger
        self._hub = hub
        self._stable = stable
        self._registry = registry if registry is not None else SubpoolRegistry()
        self._math = trade_math

    @property
    def registry(self) -> SubpoolRegistry:
        return self._registry

    @property
    def hub(self) -> HubPool:
        return self._hub

    @property
    def stable(self) -> StablePools:
        return self._stable

    # =========================================================================
    # Subpool migration
    # =========================================================================

    def create_subpool(
        self,
        share_asset: AssetId,
        asset_a: AssetId,
        asset_b: AssetId,
        share_asset_weight_cap: Decimal,
        amplification: int,
        trade_fee: Decimal,
        withdraw_fee: Decimal,
    ) -> StablePool:
        """Move two hub pool assets into a new stable pool.

        The assets' reserves move from the hub pool account to the stable
        pool account. The share asset replaces them in the hub pool with
        reserve = shares = hub_reserve = Q_a + Q_b, all of it minted to the
        hub pool account.

        Raises:
            AssetNotFound: If either asset is not a native hub pool asset
            InvalidConfiguration: If the share asset id is taken or parameters are invalid
        """
        hub = self._hub
        protocol = hub.protocol_account()

        with transactional(self._ledger) as tx:
            if hub.contains(share_asset, tx) or share_asset == hub.hub_asset_id:
                raise InvalidConfiguration(f"Share asset {share_asset} is already a hub pool asset")
            states = [hub.load_asset_state(asset, tx) for asset in (asset_a, asset_b)]

            pool = self._stable.create_pool(
                share_asset, [asset_a, asset_b], amplification, trade_fee, withdraw_fee, tx
            )
            pool_account = self._stable.pool_account(share_asset)
            share_state = migration.initial_share_asset_state(states, share_asset_weight_cap)

            for asset, state in zip((asset_a, asset_b), states, strict=True):
                tx.transfer(asset, protocol, pool_account, state.reserve)
                hub.remove_asset(asset, tx)
                self._stable.set_asset_tradability(share_asset, asset, state.tradable, tx)
                self._registry.record_migration(
                    asset, share_asset, migration.initial_migration_detail(state), tx
                )

            tx.mint(share_asset, protocol, share_state.reserve)
            hub.add_asset(share_asset, share_state, tx)
            self._registry.register_subpool(share_asset, tx)

        logger.info(
            "subpool_created",
            pool_id=share_asset,
            assets=[asset_a, asset_b],
            hub_reserve=share_state.hub_reserve,
        )
        return pool

    def migrate_asset_to_subpool(self, pool_id: AssetId, asset: AssetId) -> None:
        """Move a hub pool asset into an existing subpool.

        Share tokens worth the asset's hub reserve at the current share price
        are minted to the hub pool account.

        Raises:
            PoolNotFound: If pool_id is not a subpool
            AssetNotFound: If the asset is not a native hub pool asset
        """
        hub = self._hub
        protocol = hub.protocol_account()

        with transactional(self._ledger) as tx:
            if not self._registry.is_subpool(pool_id, tx):
                raise PoolNotFound(f"Subpool {pool_id} does not exist")
            state = hub.load_asset_state(asset, tx)
            share_state = hub.load_asset_state(pool_id, tx)
            detail, share_change = migration.asset_migration_details(state, share_state)

            self._stable.add_asset_to_existing_pool(pool_id, asset, tx)
            self._stable.set_asset_tradability(pool_id, asset, state.tradable, tx)
            tx.transfer(asset, protocol, self._stable.pool_account(pool_id), state.reserve)
            tx.mint(pool_id, protocol, detail.share_tokens)

            hub.update_asset_state(pool_id, share_change, tx)
            hub.remove_asset(asset, tx)
            self._registry.record_migration(asset, pool_id, detail, tx)

        logger.info(
            "asset_migrated",
            asset=asset,
            pool_id=pool_id,
            price=detail.price.to_decimal(),
            share_tokens=detail.share_tokens,
            hub_reserve=detail.hub_reserve,
        )

    # =========================================================================
    # Liquidity
    # =========================================================================

    def add_liquidity(self, who: AccountId, asset: AssetId, amount: int) -> int:
        """Provide liquidity for any asset and receive a hub pool position.

        A migrated asset is deposited into its subpool and the minted share
        tokens are provided to the hub pool.

        Returns:
            The new position id
        """
        with transactional(self._ledger) as tx:
            migrated = self._registry.migrated_asset(asset, tx)
            if migrated is None:
                return self._hub.add_liquidity(who, asset, amount, tx)
            shares = self._stable.add_liquidity(
                who, migrated.pool_id, [AssetAmount(asset, amount)], tx
            )
            return self._hub.add_liquidity(who, migrated.pool_id, shares, tx)

    def add_liquidity_stable(
        self, who: AccountId, asset: AssetId, amount: int, mint_position: bool
    ) -> int:
        """Provide liquidity to the subpool of a migrated asset.

        Returns:
            The new hub position id when `mint_position` is set, otherwise
            the number of pool shares credited to `who`

        Raises:
            NotStableAsset: If the asset has not been migrated
        """
        with transactional(self._ledger) as tx:
            migrated = self._registry.migrated_asset(asset, tx)
            if migrated is None:
                raise NotStableAsset(f"Asset {asset} is not in a subpool")
            shares = self._stable.add_liquidity(
                who, migrated.pool_id, [AssetAmount(asset, amount)], tx
            )
            if mint_position:
                return self._hub.add_liquidity(who, migrated.pool_id, shares, tx)
            return shares

    def remove_liquidity(
        self,
        who: AccountId,
        position_id: int,
        share_amount: int,
        withdraw_asset: AssetId | None = None,
    ) -> int:
        """Redeem shares of a hub pool position.

        A position opened before its asset was migrated is converted to a
        share-asset position first; `share_amount` is rescaled with it. A
        share-asset position is paid out in `withdraw_asset` from the subpool.

        Returns:
            Amount paid out (of the position's asset, or of withdraw_asset)

        Raises:
            WithdrawAssetNotSpecified: For a share-asset position without withdraw_asset
        """
        with transactional(self._ledger) as tx:
            position = self._hub.load_position(position_id, who, tx)
            migrated = self._registry.migrated_asset(position.asset_id, tx)
            pool_id = migrated.pool_id if migrated is not None else position.asset_id
            if self._registry.is_subpool(pool_id, tx) and withdraw_asset is None:
                raise WithdrawAssetNotSpecified(
                    f"Position {position_id} is held in subpool {pool_id}; specify an asset"
                )

            if migrated is not None:
                share_amount = self._convert_position(
                    position_id, position, migrated, share_amount, tx
                )

            amount = self._hub.remove_liquidity(who, position_id, share_amount, tx)
            if withdraw_asset is None or not self._registry.is_subpool(pool_id, tx):
                return amount
            return self._stable.remove_liquidity_one_asset(
                who, pool_id, withdraw_asset, amount, 0, tx
            )

    def _convert_position(
        self,
        position_id: int,
        position: Position,
        migrated: MigratedAsset,
        share_amount: int,
        tx: Transaction,
    ) -> int:
        converted = migration.convert_position(position, migrated.detail, migrated.pool_id)
        self._hub.set_position(position_id, converted, tx)
        logger.info(
            "position_converted",
            position_id=position_id,
            asset=position.asset_id,
            pool_id=migrated.pool_id,
            shares=converted.shares,
        )
        if share_amount == position.shares:
            return converted.shares
        return share_amount * migrated.detail.share_tokens // migrated.detail.shares

    # =========================================================================
    # Trades
    # =========================================================================

    def _classify(
        self,
        asset_in: AssetId,
        migrated_in: MigratedAsset | None,
        migrated_out: MigratedAsset | None,
    ) -> Route:
        if migrated_in is None and migrated_out is None:
            return Route.HUB
        if migrated_in is not None and migrated_out is not None:
            if migrated_in.pool_id == migrated_out.pool_id:
                return Route.STABLE
            return Route.SUBPOOL_TO_SUBPOOL
        if asset_in == self._hub.hub_asset_id:
            return Route.HUB_ASSET
        return Route.MIXED

    def _check_pair(self, asset_in: AssetId, asset_out: AssetId) -> None:
        if asset_in == asset_out:
            raise NotAllowed("Cannot trade an asset for itself")
        if asset_out == self._hub.hub_asset_id:
            raise NotAllowed("Hub asset cannot be bought")

    def sell(
        self,
        who: AccountId,
        asset_in: AssetId,
        asset_out: AssetId,
        amount: int,
        min_buy_amount: int,
    ) -> TradeResult:
        """Sell exactly `amount` of asset_in for at least `min_buy_amount` of asset_out.

        Raises:
            NotAllowed: Tradability flags forbid the trade, or asset_out is the hub asset
            LimitNotReached: If the output is below min_buy_amount
            MathError: If any computation fails
        """
        self._check_pair(asset_in, asset_out)

        with transactional(self._ledger) as tx:
            migrated_in = self._registry.migrated_asset(asset_in, tx)
            migrated_out = self._registry.migrated_asset(asset_out, tx)
            route = self._classify(asset_in, migrated_in, migrated_out)

            if route is Route.HUB:
                amount_out = self._hub.sell(who, asset_in, asset_out, amount, min_buy_amount, tx)
            elif route is Route.STABLE:
                amount_out = self._stable.sell(
                    who, migrated_in.pool_id, asset_in, asset_out, amount, min_buy_amount, tx
                )
            else:
                amount_out = self._sell_across(
                    who, asset_in, migrated_in, asset_out, migrated_out, amount, min_buy_amount, tx
                )

        logger.debug(
            "trade_resolved",
            side="sell",
            route=route.value,
            asset_in=asset_in,
            asset_out=asset_out,
            amount_in=amount,
            amount_out=amount_out,
        )
        return TradeResult(route, asset_in, asset_out, amount, amount_out)

    def buy(
        self,
        who: AccountId,
        asset_out: AssetId,
        asset_in: AssetId,
        amount: int,
        max_sell_amount: int,
    ) -> TradeResult:
        """Buy exactly `amount` of asset_out for at most `max_sell_amount` of asset_in.

        Raises:
            NotAllowed: Tradability flags forbid the trade, or asset_out is the hub asset
            LimitExceeded: If the input exceeds max_sell_amount
            MathError: If any computation fails
        """
        self._check_pair(asset_in, asset_out)

        with transactional(self._ledger) as tx:
            migrated_in = self._registry.migrated_asset(asset_in, tx)
            migrated_out = self._registry.migrated_asset(asset_out, tx)
            route = self._classify(asset_in, migrated_in, migrated_out)

            if route is Route.HUB:
                amount_in = self._hub.buy(who, asset_out, asset_in, amount, max_sell_amount, tx)
            elif route is Route.STABLE:
                amount_in = self._stable.buy(
                    who, migrated_in.pool_id, asset_out, asset_in, amount, max_sell_amount, tx
                )
            else:
                amount_in = self._buy_across(
                    who, asset_in, migrated_in, asset_out, migrated_out, amount, max_sell_amount, tx
                )

        logger.debug(
            "trade_resolved",
            side="buy",
            route=route.value,
            asset_in=asset_in,
            asset_out=asset_out,
            amount_in=amount_in,
            amount_out=amount,
        )
        return TradeResult(route, asset_in, asset_out, amount_in, amount)

    def _sell_across(
        self,
        who: AccountId,
        asset_in: AssetId,
        migrated_in: MigratedAsset | None,
        asset_out: AssetId,
        migrated_out: MigratedAsset | None,
        amount: int,
        min_buy_amount: int,
        tx: Transaction,
    ) -> int:
        hub = self._hub
        leg_in = self._leg(asset_in, migrated_in, Tradability.SELL, tx)
        leg_out = self._leg(asset_out, migrated_out, Tradability.BUY, tx)
        out_state = self._hub_state(leg_out.hub_asset, Tradability.BUY, tx)

        if asset_in == hub.hub_asset_id:
            self._check_hub_asset_sellable()
            hub_in = amount
            hub_change = self._math.sell_hub_state_change(
                out_state, amount, hub.asset_fee, hub.current_imbalance(tx), hub.hub_liquidity(tx)
            )
            hub_out = hub_change.delta_reserve
        else:
            in_state = self._hub_state(leg_in.hub_asset, Tradability.SELL, tx)
            hub_in = self._deposit_for_amount(leg_in, amount)
            change = self._math.sell_state_change(
                in_state,
                out_state,
                hub_in,
                hub.asset_fee,
                hub.protocol_fee,
                hub.current_imbalance(tx),
            )
            hub_out = change.delta_reserve_out

        amount_out = self._amount_for_withdrawal(leg_out, hub_out)
        if amount_out < min_buy_amount:
            raise LimitNotReached(f"Sell returns {amount_out}, minimum is {min_buy_amount}")

        self._settle_in(who, leg_in, amount, hub_in, tx)
        self._settle_out(who, leg_out, amount_out, hub_out, tx)
        if asset_in == hub.hub_asset_id:
            hub.apply_hub_asset_trade(leg_out.hub_asset, hub_change, tx)
        else:
            hub.apply_trade(leg_in.hub_asset, leg_out.hub_asset, change, tx)
        return amount_out

    def _buy_across(
        self,
        who: AccountId,
        asset_in: AssetId,
        migrated_in: MigratedAsset | None,
        asset_out: AssetId,
        migrated_out: MigratedAsset | None,
        amount: int,
        max_sell_amount: int,
        tx: Transaction,
    ) -> int:
        hub = self._hub
        leg_in = self._leg(asset_in, migrated_in, Tradability.SELL, tx)
        leg_out = self._leg(asset_out, migrated_out, Tradability.BUY, tx)
        out_state = self._hub_state(leg_out.hub_asset, Tradability.BUY, tx)
        hub_out = self._withdrawal_for_amount(leg_out, amount)

        if asset_in == hub.hub_asset_id:
            self._check_hub_asset_sellable()
            hub_change = self._math.buy_for_hub_asset_state_change(
                out_state, hub_out, hub.asset_fee, hub.current_imbalance(tx), hub.hub_liquidity(tx)
            )
            hub_in = hub_change.delta_hub_reserve
        else:
            in_state = self._hub_state(leg_in.hub_asset, Tradability.SELL, tx)
            change = self._math.buy_state_change(
                in_state,
                out_state,
                hub_out,
                hub.asset_fee,
                hub.protocol_fee,
                hub.current_imbalance(tx),
            )
            hub_in = change.delta_reserve_in

        amount_in = self._amount_for_deposit(leg_in, hub_in)
        if amount_in > max_sell_amount:
            raise LimitExceeded(f"Buy costs {amount_in}, maximum is {max_sell_amount}")

        self._settle_in(who, leg_in, amount_in, hub_in, tx)
        self._settle_out(who, leg_out, amount, hub_out, tx)
        if asset_in == hub.hub_asset_id:
            hub.apply_hub_asset_trade(leg_out.hub_asset, hub_change, tx)
        else:
            hub.apply_trade(leg_in.hub_asset, leg_out.hub_asset, change, tx)
        return amount_in

    # =========================================================================
    # Trade legs
    # =========================================================================

    def _leg(
        self,
        asset: AssetId,
        migrated: MigratedAsset | None,
        operation: Tradability,
        tx: Transaction,
    ) -> _Leg:
        if migrated is None:
            return _Leg(asset=asset, hub_asset=asset)

        pool = self._stable.get_pool(migrated.pool_id, tx)
        if not self._stable.is_asset_allowed(pool.pool_id, asset, operation, tx):
            raise NotAllowed(f"Asset {asset} does not allow {operation.value} in subpool {pool.pool_id}")
        side = _StableSide(
            pool=pool,
            index=self._stable.find_asset_index(pool, asset),
            reserves=self._stable.balances(pool, tx),
            amplification=self._stable.amplification(pool),
            issuance=tx.total_issuance(pool.pool_id),
            account=self._stable.pool_account(pool.pool_id),
        )
        return _Leg(asset=asset, hub_asset=pool.pool_id, stable=side)

    def _hub_state(self, asset: AssetId, operation: Tradability, tx: Transaction) -> HubAssetState:
        state = self._hub.load_asset_state(asset, tx)
        if operation not in state.tradable:
            raise NotAllowed(f"Asset {asset} does not allow {operation.value} in the hub pool")
        return state

    def _check_hub_asset_sellable(self) -> None:
        if not self._hub.is_hub_asset_allowed(Tradability.SELL):
            raise NotAllowed("Hub asset cannot be sold")

    @staticmethod
    def _deposit_for_amount(leg: _Leg, amount: int) -> int:
        """Hub-side amount entering the hub pool when `amount` of leg.asset is sold."""
        side = leg.stable
        if side is None:
            return amount
        return stable_math.shares_for_deposit(
            side.reserves, side.index, amount, side.amplification, side.issuance
        )

    @staticmethod
    def _amount_for_deposit(leg: _Leg, hub_amount: int) -> int:
        """Amount of leg.asset the caller pays for `hub_amount` to enter the hub pool."""
        side = leg.stable
        if side is None:
            return hub_amount
        return stable_math.amount_for_shares(
            side.reserves, side.index, hub_amount, side.amplification, side.issuance
        )

    @staticmethod
    def _amount_for_withdrawal(leg: _Leg, hub_amount: int) -> int:
        """Amount of leg.asset the caller receives when `hub_amount` leaves the hub pool."""
        side = leg.stable
        if side is None:
            return hub_amount
        amount, _fee = stable_math.withdraw_one_asset(
            side.reserves,
            hub_amount,
            side.index,
            side.issuance,
            side.amplification,
            side.pool.withdraw_fee,
        )
        return amount

    @staticmethod
    def _withdrawal_for_amount(leg: _Leg, amount: int) -> int:
        """Hub-side amount that must leave the hub pool to pay out `amount` of leg.asset."""
        side = leg.stable
        if side is None:
            return amount
        return stable_math.shares_removed_for_withdrawal(
            side.reserves,
            side.index,
            amount,
            side.amplification,
            side.issuance,
            side.pool.withdraw_fee,
        )

    def _settle_in(
        self, who: AccountId, leg: _Leg, amount: int, hub_amount: int, tx: Transaction
    ) -> None:
        protocol = self._hub.protocol_account()
        if leg.stable is None:
            tx.transfer(leg.asset, who, protocol, amount)
            return
        tx.transfer(leg.asset, who, leg.stable.account, amount)
        tx.mint(leg.hub_asset, protocol, hub_amount)

    def _settle_out(
        self, who: AccountId, leg: _Leg, amount: int, hub_amount: int, tx: Transaction
    ) -> None:
        protocol = self._hub.protocol_account()
        if leg.stable is None:
            tx.transfer(leg.asset, protocol, who, amount)
            return
        tx.burn(leg.hub_asset, protocol, hub_amount)
        tx.transfer(leg.asset, leg.stable.account, who, amount)
