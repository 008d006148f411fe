"""In-memory stable pools.

Reference implementation of the StablePools interface. Pool parameters are
kept in a Store; balances are the ledger balances of each pool's account and
pool shares are the ledger issuance of the pool's share asset.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import replace
from decimal import Decimal
from typing import TYPE_CHECKING

import structlog

from subpools.config import DEFAULT_STABLESWAP_CONFIG, StableswapConfig
from subpools.errors import (
    AssetNotInPool,
    InvalidConfiguration,
    LimitExceeded,
    LimitNotReached,
    MathError,
    NotAllowed,
    PoolNotFound,
)
from subpools.math import stable_math
from subpools.math.amplification import effective_amplification, validate_amplification
from subpools.math.scaling import amount_with_fee, fee_amount, validate_fee
from subpools.models.types import (
    AccountId,
    AssetAmount,
    AssetId,
    AssetReserve,
    StablePool,
    Tradability,
)
from subpools.transaction import Store, Transaction, transactional

if TYPE_CHECKING:
    from subpools.interfaces import Ledger

logger = structlog.get_logger()


class StableswapPools:
    """Registry and operations of stable pools."""

    def __init__(
        self,
        ledger: Ledger,
        config: StableswapConfig = DEFAULT_STABLESWAP_CONFIG,
        block_number: Callable[[], int] = lambda: 0,
    ) -> None:
        self._ledger = ledger
        self._config = config
        self._block_number = block_number
        self._pools: Store[AssetId, StablePool] = Store("stable_pools")

    # =========================================================================
    # Queries
    # =========================================================================

    def pool_account(self, pool_id: AssetId) -> AccountId:
        return f"stableswap/{pool_id}"

    def pool_ids(self) -> list[AssetId]:
        return [pool_id for pool_id, _ in self._pools.items()]

    def get_pool(self, pool_id: AssetId, tx: Transaction | None = None) -> StablePool:
        pool = tx.read(self._pools, pool_id) if tx is not None else self._pools.get(pool_id)
        if pool is None:
            raise PoolNotFound(f"Stable pool {pool_id} does not exist")
        return pool

    def find_asset_index(self, pool: StablePool, asset: AssetId) -> int:
        try:
            return pool.assets.index(asset)
        except ValueError as err:
            raise AssetNotInPool(f"Asset {asset} is not in pool {pool.pool_id}") from err

    def is_asset_allowed(
        self,
        pool_id: AssetId,
        asset: AssetId,
        operation: Tradability,
        tx: Transaction | None = None,
    ) -> bool:
        pool = self.get_pool(pool_id, tx)
        self.find_asset_index(pool, asset)
        return operation in pool.asset_tradability(asset)

    def balances(self, pool: StablePool, tx: Transaction | None = None) -> list[AssetReserve]:
        view = tx if tx is not None else self._ledger
        account = self.pool_account(pool.pool_id)
        return [
            AssetReserve(view.free_balance(asset, account), view.decimals(asset))
            for asset in pool.assets
        ]

    def amplification(self, pool: StablePool) -> int:
        return effective_amplification(pool, self._block_number())

    # =========================================================================
    # Pool management
    # =========================================================================

    def create_pool(
        self,
        share_asset: AssetId,
        assets: Sequence[AssetId],
        amplification: int,
        trade_fee: Decimal,
        withdraw_fee: Decimal,
        tx: Transaction | None = None,
    ) -> StablePool:
        """Create an empty pool whose share asset id is `share_asset`.

        Raises:
            InvalidConfiguration: Duplicate pool or assets, bad size, fees or amplification
        """
        if len(set(assets)) != len(assets):
            raise InvalidConfiguration("Pool assets must be unique")
        if share_asset in assets:
            raise InvalidConfiguration("Share asset cannot be a pool asset")
        if not 2 <= len(assets) <= self._config.max_assets:
            raise InvalidConfiguration(
                f"Pool must have between 2 and {self._config.max_assets} assets"
            )
        validate_amplification(
            amplification, self._config.min_amplification, self._config.max_amplification
        )
        validate_fee(trade_fee, "trade_fee")
        validate_fee(withdraw_fee, "withdraw_fee")

        with transactional(self._ledger, tx) as scope:
            if scope.contains(self._pools, share_asset):
                raise InvalidConfiguration(f"Pool {share_asset} already exists")
            block = self._block_number()
            pool = StablePool(
                pool_id=share_asset,
                assets=tuple(assets),
                initial_amplification=amplification,
                final_amplification=amplification,
                initial_block=block,
                final_block=block,
                trade_fee=trade_fee,
                withdraw_fee=withdraw_fee,
            )
            scope.write(self._pools, share_asset, pool)

        logger.info("stable_pool_created", pool_id=share_asset, assets=list(assets))
        return pool

    def add_asset_to_existing_pool(
        self, pool_id: AssetId, asset: AssetId, tx: Transaction | None = None
    ) -> StablePool:
        with transactional(self._ledger, tx) as scope:
            pool = self.get_pool(pool_id, scope)
            if asset in pool.assets or asset == pool_id:
                raise InvalidConfiguration(f"Asset {asset} cannot be added to pool {pool_id}")
            if len(pool.assets) >= self._config.max_assets:
                raise InvalidConfiguration(f"Pool {pool_id} already holds the maximum number of assets")
            updated = pool.with_asset(asset)
            scope.write(self._pools, pool_id, updated)
        return updated

    def set_asset_tradability(
        self,
        pool_id: AssetId,
        asset: AssetId,
        tradability: frozenset[Tradability],
        tx: Transaction | None = None,
    ) -> None:
        with transactional(self._ledger, tx) as scope:
            pool = self.get_pool(pool_id, scope)
            self.find_asset_index(pool, asset)
            scope.write(self._pools, pool_id, pool.with_tradability(asset, tradability))

    def update_amplification(
        self,
        pool_id: AssetId,
        final_amplification: int,
        start_block: int,
        end_block: int,
        tx: Transaction | None = None,
    ) -> StablePool:
        """Schedule a linear ramp from the current amplification to `final_amplification`.

        Raises:
            InvalidConfiguration: If the window is not in the future or the target is out of range
        """
        current_block = self._block_number()
        if start_block < current_block or end_block <= start_block:
            raise InvalidConfiguration(
                f"Invalid ramp window [{start_block}, {end_block}] at block {current_block}"
            )
        validate_amplification(
            final_amplification, self._config.min_amplification, self._config.max_amplification
        )
        with transactional(self._ledger, tx) as scope:
            pool = self.get_pool(pool_id, scope)
            updated = replace(
                pool,
                initial_amplification=effective_amplification(pool, current_block),
                final_amplification=final_amplification,
                initial_block=start_block,
                final_block=end_block,
            )
            scope.write(self._pools, pool_id, updated)

        logger.info(
            "stable_amplification_ramp_scheduled",
            pool_id=pool_id,
            initial=updated.initial_amplification,
            final=final_amplification,
            start_block=start_block,
            end_block=end_block,
        )
        return updated

    # =========================================================================
    # Trades
    # =========================================================================

    def _trade_indices(
        self, pool: StablePool, asset_in: AssetId, asset_out: AssetId
    ) -> tuple[int, int]:
        if asset_in == asset_out:
            raise NotAllowed("Cannot trade an asset for itself")
        index_in = self.find_asset_index(pool, asset_in)
        index_out = self.find_asset_index(pool, asset_out)
        if Tradability.SELL not in pool.asset_tradability(asset_in):
            raise NotAllowed(f"Asset {asset_in} cannot be sold in pool {pool.pool_id}")
        if Tradability.BUY not in pool.asset_tradability(asset_out):
            raise NotAllowed(f"Asset {asset_out} cannot be bought in pool {pool.pool_id}")
        return index_in, index_out

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
        """Sell `amount` of asset_in for asset_out. The trade fee is taken from the output.

        Returns:
            Amount of asset_out received
        """
        account = self.pool_account(pool_id)
        with transactional(self._ledger, tx) as scope:
            pool = self.get_pool(pool_id, scope)
            index_in, index_out = self._trade_indices(pool, asset_in, asset_out)
            reserves = self.balances(pool, scope)

            gross_out = stable_math.out_given_in(
                reserves, index_in, index_out, amount, self.amplification(pool)
            )
            amount_out = gross_out - fee_amount(gross_out, pool.trade_fee)
            if amount_out < min_buy_amount:
                raise LimitNotReached(f"Sell returns {amount_out}, minimum is {min_buy_amount}")

            scope.transfer(asset_in, who, account, amount)
            scope.transfer(asset_out, account, who, amount_out)

        logger.debug(
            "stable_sell",
            pool_id=pool_id,
            asset_in=asset_in,
            asset_out=asset_out,
            amount_in=amount,
            amount_out=amount_out,
        )
        return amount_out

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
        """Buy `amount` of asset_out paying asset_in. The trade fee is added to the input.

        Returns:
            Amount of asset_in paid
        """
        account = self.pool_account(pool_id)
        with transactional(self._ledger, tx) as scope:
            pool = self.get_pool(pool_id, scope)
            index_in, index_out = self._trade_indices(pool, asset_in, asset_out)
            reserves = self.balances(pool, scope)

            raw_in = stable_math.in_given_out(
                reserves, index_in, index_out, amount, self.amplification(pool)
            )
            amount_in = amount_with_fee(raw_in, pool.trade_fee)
            if amount_in > max_sell_amount:
                raise LimitExceeded(f"Buy costs {amount_in}, maximum is {max_sell_amount}")

            scope.transfer(asset_in, who, account, amount_in)
            scope.transfer(asset_out, account, who, amount)

        logger.debug(
            "stable_buy",
            pool_id=pool_id,
            asset_in=asset_in,
            asset_out=asset_out,
            amount_in=amount_in,
            amount_out=amount,
        )
        return amount_in

    # =========================================================================
    # Liquidity
    # =========================================================================

    def add_liquidity(
        self,
        who: AccountId,
        pool_id: AssetId,
        assets: Sequence[AssetAmount],
        tx: Transaction | None = None,
    ) -> int:
        """Deposit one or more assets and mint pool shares to `who`.

        The first deposit into an empty pool must include every asset.

        Returns:
            Shares minted

        Raises:
            NotAllowed: If an asset forbids adding liquidity
            MathError: If the deposit mints no shares
        """
        if not assets:
            raise NotAllowed("No assets to deposit")
        account = self.pool_account(pool_id)
        with transactional(self._ledger, tx) as scope:
            pool = self.get_pool(pool_id, scope)
            initial = self.balances(pool, scope)
            updated = list(initial)
            for deposit in assets:
                index = self.find_asset_index(pool, deposit.asset_id)
                if Tradability.ADD_LIQUIDITY not in pool.asset_tradability(deposit.asset_id):
                    raise NotAllowed(f"Asset {deposit.asset_id} does not allow adding liquidity")
                current = updated[index]
                updated[index] = AssetReserve(current.amount + deposit.amount, current.decimals)

            shares = stable_math.calculate_shares(
                initial, updated, self.amplification(pool), scope.total_issuance(pool_id)
            )
            if shares == 0:
                raise MathError("Deposit is too small to mint shares")

            for deposit in assets:
                scope.transfer(deposit.asset_id, who, account, deposit.amount)
            scope.mint(pool_id, who, shares)

        logger.debug("stable_liquidity_added", pool_id=pool_id, shares=shares)
        return shares

    def remove_liquidity_one_asset(
        self,
        who: AccountId,
        pool_id: AssetId,
        asset: AssetId,
        share_amount: int,
        min_amount: int,
        tx: Transaction | None = None,
    ) -> int:
        """Burn `share_amount` shares of `who` and pay out a single asset.

        Returns:
            Net amount of `asset` paid out (withdraw fee retained by the pool)
        """
        account = self.pool_account(pool_id)
        with transactional(self._ledger, tx) as scope:
            pool = self.get_pool(pool_id, scope)
            index = self.find_asset_index(pool, asset)
            if Tradability.REMOVE_LIQUIDITY not in pool.asset_tradability(asset):
                raise NotAllowed(f"Asset {asset} does not allow removing liquidity")

            amount, fee = stable_math.withdraw_one_asset(
                self.balances(pool, scope),
                share_amount,
                index,
                scope.total_issuance(pool_id),
                self.amplification(pool),
                pool.withdraw_fee,
            )
            if amount < min_amount:
                raise LimitNotReached(f"Withdrawal returns {amount}, minimum is {min_amount}")

            scope.burn(pool_id, who, share_amount)
            scope.transfer(asset, account, who, amount)

        logger.debug(
            "stable_liquidity_removed",
            pool_id=pool_id,
            asset=asset,
            shares=share_amount,
            amount=amount,
            fee=fee,
        )
        return amount
