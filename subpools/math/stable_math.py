"""Stable pool invariant math.

Core math for stable (StableSwap/Curve-style) pools. The invariant D and
single balances given D are found by Newton-Raphson iteration; the share
and withdrawal formulas are built on those two solvers.

Amplification uses the Balancer parameterization: the Newton formulas take
A*n (not A*n^n) with A scaled by AMP_PRECISION. Public functions take the
plain amplification and AssetReserve balances, normalize every balance to
TARGET_PRECISION, and round results in the pool's favour when scaling back.

IMPORTANT: All intermediate arithmetic goes through SafeInt so that an
underflow or division by zero surfaces as MathError instead of a bad number.
"""

from collections.abc import Sequence
from decimal import Decimal

import structlog

from subpools.errors import (
    MathError,
    StableGetBalanceDidNotConverge,
    StableInvariantDidNotConverge,
    ZeroBalanceError,
)
from subpools.models.types import AssetReserve
from subpools.safe_int import S

from .fixed_point import AMP_PRECISION, TARGET_PRECISION, Bfp
from .scaling import Rounding, normalize_value

logger = structlog.get_logger()

MAX_D_ITERATIONS = 128
MAX_Y_ITERATIONS = 255
MAX_FEE_ITERATIONS = 32


# =============================================================================
# Newton-Raphson solvers (normalized balances, amp scaled by AMP_PRECISION)
# =============================================================================


def calculate_invariant(amp: int, balances: Sequence[int]) -> int:
    """Calculate StableSwap invariant D using Newton-Raphson iteration.

    Algorithm:
        1. Initial guess: D = sum(balances)
        2. Iterate until |D_new - D_old| <= 1
        3. Max iterations: MAX_D_ITERATIONS

    Args:
        amp: Amplification parameter (scaled by AMP_PRECISION)
        balances: Balances normalized to 18 decimals

    Returns:
        The invariant D (0 for an empty or all-zero pool)

    Raises:
        ZeroBalanceError: If some but not all balances are zero
        StableInvariantDidNotConverge: If iteration doesn't converge
    """
    n_coins = len(balances)
    sum_balances = S(sum(balances))
    if n_coins == 0 or sum_balances == 0:
        return 0

    for i, bal in enumerate(balances):
        if bal <= 0:
            raise ZeroBalanceError(f"Balance at index {i} must be positive")

    d_prev = sum_balances
    amp_times_n = S(amp) * n_coins

    for _ in range(MAX_D_ITERATIONS):
        # d_p = D^(n+1) / (n^n * prod(balances))
        d_p = d_prev
        for bal in balances:
            d_p = (d_p * d_prev) // (S(n_coins) * bal)

        numerator = ((amp_times_n * sum_balances) // AMP_PRECISION + d_p * n_coins) * d_prev
        denominator = ((amp_times_n - AMP_PRECISION) * d_prev) // AMP_PRECISION + d_p * (
            n_coins + 1
        )
        d_new = numerator // denominator

        if d_new.abs_diff(d_prev) <= 1:
            return d_new.value

        d_prev = d_new

    raise StableInvariantDidNotConverge(
        f"Stable invariant did not converge after {MAX_D_ITERATIONS} iterations"
    )


def get_token_balance_given_invariant_and_all_other_balances(
    amp: int,
    balances: Sequence[int],
    invariant: int,
    token_index: int,
) -> int:
    """Solve for balances[token_index] given D and all other balances.

    The current value at token_index only enters through P_D and cancels
    out, but it must be positive.

    Args:
        amp: Amplification parameter (scaled by AMP_PRECISION)
        balances: Balances normalized to 18 decimals
        invariant: The invariant D to preserve
        token_index: Index of the balance to solve for

    Returns:
        The balance, rounded up

    Raises:
        StableGetBalanceDidNotConverge: If iteration doesn't converge
        MathError: If the inputs make the iteration undefined
    """
    n_coins = len(balances)
    if token_index < 0 or token_index >= n_coins:
        raise MathError(f"token_index {token_index} out of range for {n_coins} tokens")

    d = S(invariant)
    amp_times_total = S(amp) * n_coins

    sum_balances = S(balances[0])
    p_d = S(balances[0]) * n_coins
    for j in range(1, n_coins):
        p_d = (p_d * balances[j] * n_coins) // d
        sum_balances = sum_balances + balances[j]

    sum_others = sum_balances - balances[token_index]
    inv2 = d * d

    # c = ceil(D^2 / (ampTimesTotal * P_D)) * AMP_PRECISION * balances[token_index]
    c = inv2.ceiling_div(amp_times_total * p_d) * AMP_PRECISION * balances[token_index]
    b = sum_others + (d // amp_times_total) * AMP_PRECISION

    token_balance = (inv2 + c).ceiling_div(d + b)

    for _ in range(MAX_Y_ITERATIONS):
        prev_token_balance = token_balance

        # y = (y^2 + c) / (2y + b - D)
        denominator = token_balance * 2 + b
        if denominator <= d:
            raise StableGetBalanceDidNotConverge("Denominator became non-positive")
        token_balance = (token_balance * token_balance + c).ceiling_div(denominator - d)

        if token_balance.abs_diff(prev_token_balance) <= 1:
            return token_balance.value

    raise StableGetBalanceDidNotConverge(
        f"Stable get_balance did not converge after {MAX_Y_ITERATIONS} iterations"
    )


# =============================================================================
# Pool-level operations on AssetReserve balances
# =============================================================================


def _normalized(reserves: Sequence[AssetReserve]) -> list[int]:
    return [normalize_value(r.amount, r.decimals) for r in reserves]


def _scaled_amp(amplification: int) -> int:
    return amplification * AMP_PRECISION


def _check_index(reserves: Sequence[AssetReserve], index: int) -> None:
    if index < 0 or index >= len(reserves):
        raise MathError(f"asset index {index} out of range for {len(reserves)} assets")


def compute_invariant(reserves: Sequence[AssetReserve], amplification: int) -> int:
    """Invariant D of a pool, in 18-decimal units."""
    return calculate_invariant(_scaled_amp(amplification), _normalized(reserves))


def solve_balance_given_d(
    reserves: Sequence[AssetReserve], d: int, target_index: int, amplification: int
) -> int:
    """Balance of reserves[target_index] that yields invariant `d`, in 18-decimal units."""
    _check_index(reserves, target_index)
    return get_token_balance_given_invariant_and_all_other_balances(
        _scaled_amp(amplification), _normalized(reserves), d, target_index
    )


def out_given_in(
    reserves: Sequence[AssetReserve],
    index_in: int,
    index_out: int,
    amount_in: int,
    amplification: int,
) -> int:
    """Amount of asset `index_out` received for `amount_in`, before fees.

    Result is rounded down and reduced by one unit of 18-decimal precision.
    Returns 0 when the trade is too small to move the balance.
    """
    _check_index(reserves, index_in)
    _check_index(reserves, index_out)
    if index_in == index_out:
        raise MathError("Cannot swap asset with itself")

    amp = _scaled_amp(amplification)
    balances = _normalized(reserves)
    d = calculate_invariant(amp, balances)

    updated = list(balances)
    updated[index_in] = balances[index_in] + normalize_value(
        amount_in, reserves[index_in].decimals
    )
    new_out = get_token_balance_given_invariant_and_all_other_balances(
        amp, updated, d, index_out
    )
    # One unit of precision is kept back from the payout
    out = S(balances[index_out]).checked_sub(S(new_out) + 1)
    if out is None:
        return 0
    return normalize_value(out.value, TARGET_PRECISION, reserves[index_out].decimals, Rounding.DOWN)


def in_given_out(
    reserves: Sequence[AssetReserve],
    index_in: int,
    index_out: int,
    amount_out: int,
    amplification: int,
) -> int:
    """Amount of asset `index_in` required to receive `amount_out`, before fees.

    Result is rounded up.

    Raises:
        ZeroBalanceError: If amount_out would drain the out balance
    """
    _check_index(reserves, index_in)
    _check_index(reserves, index_out)
    if index_in == index_out:
        raise MathError("Cannot swap asset with itself")
    if amount_out >= reserves[index_out].amount:
        raise ZeroBalanceError("amount_out must be less than balance_out")

    amp = _scaled_amp(amplification)
    balances = _normalized(reserves)
    d = calculate_invariant(amp, balances)

    updated = list(balances)
    updated[index_out] = balances[index_out] - normalize_value(
        amount_out, reserves[index_out].decimals
    )
    new_in = get_token_balance_given_invariant_and_all_other_balances(amp, updated, d, index_in)
    amount_in = (S(new_in) - balances[index_in] + 1).value
    return normalize_value(amount_in, TARGET_PRECISION, reserves[index_in].decimals, Rounding.UP)


def calculate_shares(
    initial: Sequence[AssetReserve],
    updated: Sequence[AssetReserve],
    amplification: int,
    total_shares: int,
) -> int:
    """Shares minted when pool balances move from `initial` to `updated`.

    shares = total_shares * (D1 - D0) / D0, rounded down. An empty pool
    (no shares issued) mints D1 shares.
    """
    amp = _scaled_amp(amplification)
    d1 = calculate_invariant(amp, _normalized(updated))
    if total_shares == 0:
        return d1

    d0 = calculate_invariant(amp, _normalized(initial))
    return ((S(total_shares) * (S(d1) - d0)) // d0).to_balance()


def shares_for_deposit(
    reserves: Sequence[AssetReserve],
    asset_index: int,
    amount_in: int,
    amplification: int,
    total_shares: int,
) -> int:
    """Shares minted for depositing `amount_in` of a single asset."""
    _check_index(reserves, asset_index)
    updated = list(reserves)
    current = reserves[asset_index]
    updated[asset_index] = AssetReserve(current.amount + amount_in, current.decimals)
    return calculate_shares(reserves, updated, amplification, total_shares)


def amount_for_shares(
    reserves: Sequence[AssetReserve],
    asset_index: int,
    delta_shares: int,
    amplification: int,
    total_shares: int,
) -> int:
    """Amount of one asset that must be deposited to mint exactly `delta_shares`.

    Rounded up.
    """
    _check_index(reserves, asset_index)
    if total_shares == 0:
        raise MathError("Cannot price shares of an empty pool")

    amp = _scaled_amp(amplification)
    balances = _normalized(reserves)
    d0 = S(calculate_invariant(amp, balances))
    d_target = (d0 * (S(total_shares) + delta_shares)).ceiling_div(total_shares)

    new_balance = get_token_balance_given_invariant_and_all_other_balances(
        amp, balances, d_target.value, asset_index
    )
    amount = (S(new_balance) - balances[asset_index]).value
    return normalize_value(
        amount, TARGET_PRECISION, reserves[asset_index].decimals, Rounding.UP
    )


def _fee_on(amount: int, fee: Bfp) -> int:
    return Bfp.from_wei(amount).mul_up(fee).value


def _withdrawal_payout(
    amp: int,
    balances: Sequence[int],
    d0: int,
    d1: int,
    asset_index: int,
    fee: Bfp,
) -> tuple[int, int]:
    """Net and gross payout of one asset when the invariant falls from d0 to d1.

    The withdraw fee is charged on each balance's distance from its
    proportional share of d1; the net payout is solved against the reduced
    balances. Both values are in 18-decimal units.

    Returns:
        (net, gross)
    """
    new_y = get_token_balance_given_invariant_and_all_other_balances(
        amp, balances, d1, asset_index
    )
    gross = (S(balances[asset_index]) - new_y).value
    if fee.value == 0:
        return gross, gross

    reduced = []
    for j, balance in enumerate(balances):
        proportional = (S(balance) * d1) // d0
        if j == asset_index:
            expected = proportional.abs_diff(new_y)
        else:
            expected = S(balance).abs_diff(proportional)
        reduced.append((S(balance) - _fee_on(expected.value, fee)).value)
    reduced_y = get_token_balance_given_invariant_and_all_other_balances(
        amp, reduced, d1, asset_index
    )
    net = S(reduced[asset_index]).saturating_sub(reduced_y)
    return net.value, gross


def _invariant_after_burn(d0: int, delta_shares: int, total_shares: int) -> int:
    return (S(d0) - (S(d0) * delta_shares) // total_shares).value


def shares_removed_for_withdrawal(
    reserves: Sequence[AssetReserve],
    asset_index: int,
    amount_out: int,
    amplification: int,
    total_shares: int,
    withdraw_fee: Decimal,
) -> int:
    """Shares that must be burned to withdraw exactly `amount_out` of one asset.

    Starts from the fee-free share cost and raises the gross withdrawal by
    the shortfall until burning the quoted shares through withdraw_one_asset
    pays at least `amount_out`. Rounded up.

    Raises:
        MathError: If the withdrawal would drain the balance or does not settle
    """
    _check_index(reserves, asset_index)
    amp = _scaled_amp(amplification)
    balances = _normalized(reserves)
    d0 = calculate_invariant(amp, balances)
    target = normalize_value(amount_out, reserves[asset_index].decimals)
    fee = Bfp.from_decimal(withdraw_fee)

    gross = target
    for _ in range(MAX_FEE_ITERATIONS):
        updated = list(balances)
        updated[asset_index] = (S(balances[asset_index]) - gross).value
        d1 = calculate_invariant(amp, updated)
        shares = (S(total_shares) * (S(d0) - d1)).ceiling_div(d0).to_balance()
        if shares >= total_shares:
            raise MathError("Withdrawal would remove the entire pool liquidity")

        net, _gross = _withdrawal_payout(
            amp, balances, d0, _invariant_after_burn(d0, shares, total_shares), asset_index, fee
        )
        if net >= target:
            logger.debug(
                "stable_shares_for_withdrawal",
                amount_out=amount_out,
                shares=shares,
                d0=d0,
                d1=d1,
            )
            return shares
        gross += target - net

    raise MathError(f"Withdrawal share cost did not settle after {MAX_FEE_ITERATIONS} rounds")


def withdraw_one_asset(
    reserves: Sequence[AssetReserve],
    delta_shares: int,
    asset_index: int,
    total_shares: int,
    amplification: int,
    withdraw_fee: Decimal,
) -> tuple[int, int]:
    """Amount of one asset paid out for burning `delta_shares`.

    Returns:
        (amount_out, fee): the net payout and the fee retained by the pool,
        both in asset decimals

    Raises:
        MathError: If the burn would remove all pool liquidity
    """
    _check_index(reserves, asset_index)
    if delta_shares >= total_shares:
        raise MathError("Cannot withdraw the entire pool liquidity with a single asset")

    amp = _scaled_amp(amplification)
    balances = _normalized(reserves)
    d0 = calculate_invariant(amp, balances)
    d1 = _invariant_after_burn(d0, delta_shares, total_shares)
    net, gross = _withdrawal_payout(
        amp, balances, d0, d1, asset_index, Bfp.from_decimal(withdraw_fee)
    )

    decimals = reserves[asset_index].decimals
    amount_out = normalize_value(net, TARGET_PRECISION, decimals, Rounding.DOWN)
    gross_out = normalize_value(gross, TARGET_PRECISION, decimals, Rounding.DOWN)
    return amount_out, S(gross_out).saturating_sub(amount_out).value


def spot_price(
    reserves: Sequence[AssetReserve],
    amplification: int,
    index_in: int,
    index_out: int,
) -> Bfp:
    """Marginal price of asset `index_out` in units of asset `index_in`.

    Derived from the partial derivatives of the invariant:
        price = (A*n + c/x_out) / (A*n + c/x_in),  c = D^(n+1) / (n^n * prod(x))
    """
    _check_index(reserves, index_in)
    _check_index(reserves, index_out)
    amp = _scaled_amp(amplification)
    balances = _normalized(reserves)
    n_coins = len(balances)
    d = calculate_invariant(amp, balances)

    c = S(d)
    for bal in balances:
        c = (c * d) // (S(n_coins) * bal)

    x_in, x_out = balances[index_in], balances[index_out]
    ann = S(amp) * n_coins
    numerator = ann * x_in * x_out + c * AMP_PRECISION * x_in
    denominator = ann * x_in * x_out + c * AMP_PRECISION * x_out

    # Rescale from normalized units to asset units
    numerator = numerator * 10 ** (TARGET_PRECISION - reserves[index_out].decimals)
    denominator = denominator * 10 ** (TARGET_PRECISION - reserves[index_in].decimals)
    return Bfp.from_ratio(numerator.value, denominator.value)
