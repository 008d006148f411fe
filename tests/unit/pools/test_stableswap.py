"""Tests for the in-memory stable pools."""

from decimal import Decimal

import pytest

from subpools.errors import (
    AssetNotInPool,
    InvalidConfiguration,
    LimitExceeded,
    LimitNotReached,
    NotAllowed,
    PoolNotFound,
)
from subpools.ledger import InMemoryLedger
from subpools.models.types import ALL_TRADABLE, AssetAmount, Tradability
from subpools.stableswap import StableswapPools
from tests.helpers import ALICE, DAI, ONE, USDC, USDT, Clock

POOL = 100
LIQUIDITY = 100_000 * ONE


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def ledger() -> InMemoryLedger:
    ledger = InMemoryLedger()
    for asset in (DAI, USDC, USDT):
        ledger.mint(asset, ALICE, 1_000_000 * ONE)
    return ledger


@pytest.fixture
def pools(ledger, clock) -> StableswapPools:
    return StableswapPools(ledger, block_number=clock)


@pytest.fixture
def funded(pools) -> StableswapPools:
    """DAI/USDC pool holding LIQUIDITY of each, all shares held by ALICE."""
    pools.create_pool(POOL, [DAI, USDC], 100, Decimal(0), Decimal(0))
    pools.add_liquidity(ALICE, POOL, [AssetAmount(DAI, LIQUIDITY), AssetAmount(USDC, LIQUIDITY)])
    return pools


class TestCreatePool:
    @pytest.mark.parametrize(
        "assets,amplification,fee",
        [
            ([DAI, DAI], 100, Decimal(0)),
            ([DAI, POOL], 100, Decimal(0)),
            ([DAI], 100, Decimal(0)),
            ([DAI, USDC, USDT, 7, 8, 9], 100, Decimal(0)),
            ([DAI, USDC], 1, Decimal(0)),
            ([DAI, USDC], 100, Decimal(1)),
        ],
    )
    def test_invalid_parameters(self, pools, assets, amplification, fee):
        with pytest.raises(InvalidConfiguration):
            pools.create_pool(POOL, assets, amplification, fee, Decimal(0))

    def test_duplicate_pool(self, pools):
        pools.create_pool(POOL, [DAI, USDC], 100, Decimal(0), Decimal(0))
        with pytest.raises(InvalidConfiguration):
            pools.create_pool(POOL, [DAI, USDT], 100, Decimal(0), Decimal(0))

    def test_lookup_errors(self, pools):
        with pytest.raises(PoolNotFound):
            pools.get_pool(POOL)
        pool = pools.create_pool(POOL, [DAI, USDC], 100, Decimal(0), Decimal(0))
        with pytest.raises(AssetNotInPool):
            pools.find_asset_index(pool, USDT)

    def test_add_asset_to_existing_pool(self, pools):
        pools.create_pool(POOL, [DAI, USDC], 100, Decimal(0), Decimal(0))
        pool = pools.add_asset_to_existing_pool(POOL, USDT)

        assert pool.assets == (DAI, USDC, USDT)
        with pytest.raises(InvalidConfiguration):
            pools.add_asset_to_existing_pool(POOL, USDT)


class TestLiquidity:
    def test_first_deposit_mints_invariant(self, funded, ledger):
        """Balanced first deposit of 100k + 100k mints D = 2e23 shares."""
        assert ledger.total_issuance(POOL) == 2 * 10**23
        assert ledger.free_balance(POOL, ALICE) == 2 * 10**23
        assert funded.balances(funded.get_pool(POOL))[0].amount == LIQUIDITY

    def test_remove_one_asset(self, funded, ledger):
        before = ledger.free_balance(DAI, ALICE)
        amount = funded.remove_liquidity_one_asset(ALICE, POOL, DAI, 1000 * 10**18, 0)

        assert 990 * ONE < amount < 1000 * ONE
        assert ledger.free_balance(DAI, ALICE) == before + amount
        assert ledger.total_issuance(POOL) == 2 * 10**23 - 1000 * 10**18

    def test_remove_below_minimum(self, funded):
        with pytest.raises(LimitNotReached):
            funded.remove_liquidity_one_asset(ALICE, POOL, DAI, 1000 * 10**18, 1000 * ONE)

    def test_add_liquidity_forbidden(self, funded):
        funded.set_asset_tradability(POOL, DAI, frozenset({Tradability.SELL}))
        with pytest.raises(NotAllowed):
            funded.add_liquidity(ALICE, POOL, [AssetAmount(DAI, ONE)])


class TestTrades:
    def test_sell(self, funded, ledger):
        amount_out = funded.sell(ALICE, POOL, DAI, USDC, 100 * ONE, 0)

        assert 99 * ONE < amount_out < 100 * ONE
        account = funded.pool_account(POOL)
        assert ledger.free_balance(DAI, account) == LIQUIDITY + 100 * ONE
        assert ledger.free_balance(USDC, account) == LIQUIDITY - amount_out

    def test_trade_fee_reduces_output(self, pools):
        pools.create_pool(POOL, [DAI, USDC], 100, Decimal("0.01"), Decimal(0))
        pools.add_liquidity(
            ALICE, POOL, [AssetAmount(DAI, LIQUIDITY), AssetAmount(USDC, LIQUIDITY)]
        )
        amount_out = pools.sell(ALICE, POOL, DAI, USDC, 100 * ONE, 0)
        assert 98 * ONE < amount_out < 99 * ONE

    def test_sell_limit(self, funded, ledger):
        before = ledger.free_balance(DAI, ALICE)
        with pytest.raises(LimitNotReached):
            funded.sell(ALICE, POOL, DAI, USDC, 100 * ONE, 100 * ONE)
        assert ledger.free_balance(DAI, ALICE) == before

    def test_buy(self, funded):
        amount_in = funded.buy(ALICE, POOL, USDC, DAI, 100 * ONE, 101 * ONE)
        assert 100 * ONE < amount_in < 101 * ONE

    def test_buy_limit(self, funded):
        with pytest.raises(LimitExceeded):
            funded.buy(ALICE, POOL, USDC, DAI, 100 * ONE, 100 * ONE)

    def test_tradability(self, funded):
        funded.set_asset_tradability(POOL, DAI, frozenset({Tradability.BUY}))

        assert not funded.is_asset_allowed(POOL, DAI, Tradability.SELL)
        with pytest.raises(NotAllowed):
            funded.sell(ALICE, POOL, DAI, USDC, ONE, 0)
        funded.sell(ALICE, POOL, USDC, DAI, ONE, 0)

    def test_flag_updates_produce_new_pool(self, funded):
        """Pools are hashable values; changing flags replaces the stored pool."""
        before = funded.get_pool(POOL)
        funded.set_asset_tradability(POOL, DAI, frozenset({Tradability.BUY}))
        funded.set_asset_tradability(POOL, DAI, frozenset({Tradability.SELL}))
        after = funded.get_pool(POOL)

        assert len({before, after}) == 2
        assert before.asset_tradability(DAI) == ALL_TRADABLE
        assert after.asset_tradability(DAI) == frozenset({Tradability.SELL})
        assert after.tradability == ((DAI, frozenset({Tradability.SELL})),)

    def test_same_asset(self, funded):
        with pytest.raises(NotAllowed):
            funded.sell(ALICE, POOL, DAI, DAI, ONE, 0)


class TestAmplificationRamp:
    def test_ramp_is_evaluated_at_current_block(self, funded, clock):
        funded.update_amplification(POOL, 200, 10, 20)

        clock.block = 15
        assert funded.amplification(funded.get_pool(POOL)) == 150
        clock.block = 30
        assert funded.amplification(funded.get_pool(POOL)) == 200

    def test_new_ramp_starts_from_current_value(self, funded, clock):
        funded.update_amplification(POOL, 200, 10, 20)
        clock.block = 15
        pool = funded.update_amplification(POOL, 100, 15, 25)

        assert pool.initial_amplification == 150
        clock.block = 20
        assert funded.amplification(pool) == 125

    @pytest.mark.parametrize("start,end", [(-1, 10), (10, 10)])
    def test_invalid_window(self, funded, start, end):
        with pytest.raises(InvalidConfiguration):
            funded.update_amplification(POOL, 200, start, end)

    def test_target_out_of_range(self, funded):
        with pytest.raises(InvalidConfiguration):
            funded.update_amplification(POOL, 20_000, 10, 20)
