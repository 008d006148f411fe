"""Tests for the stable pool invariant solver and share formulas."""

from decimal import Decimal

import pytest

from subpools.errors import MathError, ZeroBalanceError
from subpools.math import stable_math
from subpools.math.fixed_point import AMP_PRECISION, Bfp
from subpools.models.types import AssetReserve
from tests.helpers import ONE, reserves

AMP = 100
BALANCED = reserves(1_000_000 * ONE, 1_000_000 * ONE)
IMBALANCED = reserves(1_000_000 * ONE, 2_000_000 * ONE)


class TestComputeInvariant:
    """D of a pool."""

    def test_balanced_pool_invariant_equals_sum(self):
        """For equal balances the invariant is exactly the normalized sum."""
        assert stable_math.compute_invariant(BALANCED, AMP) == 2 * 10**24

    def test_empty_pool_is_zero(self):
        assert stable_math.compute_invariant([], AMP) == 0
        assert stable_math.compute_invariant(reserves(0, 0), AMP) == 0

    def test_partial_zero_balance_raises(self):
        with pytest.raises(ZeroBalanceError):
            stable_math.compute_invariant(reserves(0, ONE), AMP)

    def test_zero_balance_error_is_math_error(self):
        assert issubclass(ZeroBalanceError, MathError)

    def test_imbalanced_invariant_grows_with_amplification(self):
        """Higher amplification pushes D towards the sum of balances."""
        low = stable_math.compute_invariant(IMBALANCED, 10)
        high = stable_math.compute_invariant(IMBALANCED, 1000)
        assert low < high <= 3 * 10**24

    def test_mixed_decimals_are_normalized(self):
        """The same value held at 6 and 12 decimals gives the balanced invariant."""
        pool = [AssetReserve(1_000_000 * 10**6, 6), AssetReserve(1_000_000 * ONE, 12)]
        assert stable_math.compute_invariant(pool, AMP) == 2 * 10**24


class TestSolveBalanceGivenD:
    def test_recovers_current_balance(self):
        """Solving for a balance at the current D gives back that balance.

        The solver rounds its constant term up, so the result can overshoot
        by a few thousand units at 18 decimals, always upward and well below
        one unit of a 12-decimal asset.
        """
        d = stable_math.compute_invariant(IMBALANCED, AMP)
        for index, balance in enumerate((1_000_000 * 10**18, 2_000_000 * 10**18)):
            y = stable_math.solve_balance_given_d(IMBALANCED, d, index, AMP)
            assert 0 <= y - balance < 10**4

    def test_index_out_of_range(self):
        with pytest.raises(MathError):
            stable_math.solve_balance_given_d(BALANCED, 10**24, 2, AMP)

    def test_raw_solver_takes_scaled_amplification(self):
        d = stable_math.calculate_invariant(AMP * AMP_PRECISION, [10**24, 10**24])
        y = stable_math.get_token_balance_given_invariant_and_all_other_balances(
            AMP * AMP_PRECISION, [10**24, 10**24], d, 0
        )
        assert abs(y - 10**24) <= 2


class TestTrades:
    """out_given_in and in_given_out."""

    def test_sell_keeps_invariant_and_loses_to_slippage(self):
        """Selling 1000 into a 1M/1M pool returns slightly less than 1000."""
        amount_in = 1000 * ONE
        amount_out = stable_math.out_given_in(BALANCED, 0, 1, amount_in, AMP)

        assert 999 * ONE < amount_out < amount_in
        after = reserves(1_000_000 * ONE + amount_in, 1_000_000 * ONE - amount_out)
        assert stable_math.compute_invariant(after, AMP) >= stable_math.compute_invariant(
            BALANCED, AMP
        )

    def test_buy_costs_slightly_more(self):
        amount_in = stable_math.in_given_out(BALANCED, 0, 1, 1000 * ONE, AMP)
        assert 1000 * ONE < amount_in < 1001 * ONE

    def test_buy_then_invariant_not_decreasing(self):
        amount_out = 5000 * ONE
        amount_in = stable_math.in_given_out(IMBALANCED, 1, 0, amount_out, AMP)
        after = reserves(1_000_000 * ONE - amount_out, 2_000_000 * ONE + amount_in)
        assert stable_math.compute_invariant(after, AMP) >= stable_math.compute_invariant(
            IMBALANCED, AMP
        )

    def test_buy_entire_balance_raises(self):
        with pytest.raises(ZeroBalanceError):
            stable_math.in_given_out(BALANCED, 0, 1, 1_000_000 * ONE, AMP)

    def test_same_index_raises(self):
        with pytest.raises(MathError):
            stable_math.out_given_in(BALANCED, 0, 0, ONE, AMP)

    def test_dust_sell_returns_zero(self):
        assert stable_math.out_given_in(BALANCED, 0, 1, 0, AMP) == 0


class TestShares:
    """Deposit and withdrawal share formulas."""

    total_shares = 2 * 10**24

    def test_first_deposit_mints_invariant(self):
        shares = stable_math.calculate_shares(reserves(0, 0), BALANCED, AMP, 0)
        assert shares == 2 * 10**24

    def test_deposit_mints_at_most_proportional_shares(self):
        shares = stable_math.shares_for_deposit(BALANCED, 0, 1000 * ONE, AMP, self.total_shares)
        assert 0 < shares <= 1000 * 10**18

    def test_amount_for_shares_inverts_deposit(self):
        """Depositing for the shares a deposit minted costs that deposit."""
        shares = stable_math.shares_for_deposit(BALANCED, 0, 1000 * ONE, AMP, self.total_shares)
        amount = stable_math.amount_for_shares(BALANCED, 0, shares, AMP, self.total_shares)
        assert abs(amount - 1000 * ONE) <= 1

    def test_amount_for_shares_of_empty_pool_raises(self):
        with pytest.raises(MathError):
            stable_math.amount_for_shares(BALANCED, 0, 10, AMP, 0)

    def test_withdraw_returns_no_more_than_deposit(self):
        deposit = 1000 * ONE
        shares = stable_math.shares_for_deposit(BALANCED, 0, deposit, AMP, self.total_shares)
        after = reserves(1_000_000 * ONE + deposit, 1_000_000 * ONE)

        amount, fee = stable_math.withdraw_one_asset(
            after, shares, 0, self.total_shares + shares, AMP, Decimal(0)
        )
        assert fee == 0
        assert 999 * ONE < amount <= deposit

    def test_withdraw_fee_reduces_payout(self):
        without_fee, _ = stable_math.withdraw_one_asset(
            BALANCED, 10**21, 0, self.total_shares, AMP, Decimal(0)
        )
        with_fee, fee = stable_math.withdraw_one_asset(
            BALANCED, 10**21, 0, self.total_shares, AMP, Decimal("0.01")
        )
        assert with_fee < without_fee
        assert fee > 0

    def test_withdraw_all_shares_raises(self):
        with pytest.raises(MathError):
            stable_math.withdraw_one_asset(
                BALANCED, self.total_shares, 0, self.total_shares, AMP, Decimal(0)
            )

    def test_shares_removed_grow_with_fee(self):
        no_fee = stable_math.shares_removed_for_withdrawal(
            BALANCED, 0, 1000 * ONE, AMP, self.total_shares, Decimal(0)
        )
        fee = stable_math.shares_removed_for_withdrawal(
            BALANCED, 0, 1000 * ONE, AMP, self.total_shares, Decimal("0.01")
        )
        assert 0 < no_fee < fee

    @pytest.mark.parametrize("fee", [Decimal(0), Decimal("0.0001"), Decimal("0.01"), Decimal("0.1")])
    @pytest.mark.parametrize("index,amount", [(0, 1000 * ONE), (1, 2000 * ONE), (0, 250_000 * ONE)])
    def test_shares_removed_pay_for_withdrawal(self, fee, index, amount):
        """Burning the shares quoted for an amount pays out at least that amount."""
        shares = stable_math.shares_removed_for_withdrawal(
            IMBALANCED, index, amount, AMP, self.total_shares, fee
        )
        paid, _ = stable_math.withdraw_one_asset(
            IMBALANCED, shares, index, self.total_shares, AMP, fee
        )
        assert paid >= amount

    def test_shares_removed_are_tight(self):
        """The quoted shares overpay by less than a hundredth of a unit."""
        fee = Decimal("0.01")
        shares = stable_math.shares_removed_for_withdrawal(
            IMBALANCED, 0, 1000 * ONE, AMP, self.total_shares, fee
        )
        paid, _ = stable_math.withdraw_one_asset(
            IMBALANCED, shares, 0, self.total_shares, AMP, fee
        )
        assert paid - 1000 * ONE < ONE // 100


class TestSpotPrice:
    def test_balanced_pool_price_is_one(self):
        assert stable_math.spot_price(BALANCED, AMP, 0, 1) == Bfp.from_int(1)

    def test_scarce_asset_is_more_expensive(self):
        """Asset 1 is scarcer than asset 0, so it costs more than one unit of asset 0."""
        pool = reserves(1_100_000 * ONE, 900_000 * ONE)
        assert stable_math.spot_price(pool, AMP, 0, 1) > Bfp.from_int(1)
        assert stable_math.spot_price(pool, AMP, 1, 0) < Bfp.from_int(1)

    def test_price_respects_decimals(self):
        """Asset held at 6 decimals: one unit costs 10^6 raw units of a 12-decimal asset."""
        pool = [AssetReserve(1_000_000 * ONE, 12), AssetReserve(1_000_000 * 10**6, 6)]
        price = stable_math.spot_price(pool, AMP, 0, 1)
        assert price == Bfp.from_int(10**6)
