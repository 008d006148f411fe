"""Hub pool (omnipool) trade and liquidity math.

Reference implementation of the hub-pool trade contract. Every asset is
priced against the hub asset: a trade between two assets sells the first
for hub asset and buys the second with it. The asset fee is taken on the
out side, the protocol fee on the hub leg. The imbalance is a non-positive
number; protocol fees pay it down, hub-asset sells grow it.

All functions are pure: they read states and return signed deltas.
"""

from decimal import Decimal

from subpools.models.types import (
    AssetStateChange,
    HubAssetState,
    HubTradeStateChange,
    LiquidityStateChange,
    Position,
    TradeStateChange,
)
from subpools.safe_int import S

from .fixed_point import Bfp
from .scaling import amount_with_fee, amount_without_fee


def _imbalance_paid_down(protocol_fee_amount: int, imbalance: int) -> int:
    if imbalance >= 0:
        return 0
    return S(protocol_fee_amount).min(-imbalance).value


def _imbalance_growth(
    delta_reserve: int, state: HubAssetState, imbalance: int, hub_liquidity: int
) -> int:
    """delta_L = delta_R * Q/R * (H + L)/H, with L <= 0."""
    value_in_hub = (S(delta_reserve) * state.hub_reserve) // state.reserve
    return ((value_in_hub * (S(hub_liquidity) + min(imbalance, 0))) // hub_liquidity).value


def sell_state_change(
    asset_in: HubAssetState,
    asset_out: HubAssetState,
    amount: int,
    asset_fee: Decimal,
    protocol_fee: Decimal,
    imbalance: int,
) -> TradeStateChange:
    """Deltas for selling `amount` of asset_in for asset_out.

    Formulas:
        dQ_in = amount * Q_in / (R_in + amount)
        dQ_out = dQ_in - protocol_fee(dQ_in)
        dR_out = R_out * dQ_out / (Q_out + dQ_out) * (1 - asset_fee)

    Raises:
        MathError: On underflow or division by zero
    """
    delta_hub_in = (S(asset_in.hub_reserve) * amount) // (S(asset_in.reserve) + amount)
    delta_hub_out = S(amount_without_fee(delta_hub_in.value, protocol_fee))
    protocol_fee_amount = delta_hub_in - delta_hub_out

    gross_out = (S(asset_out.reserve) * delta_hub_out) // (S(asset_out.hub_reserve) + delta_hub_out)
    delta_out = amount_without_fee(gross_out.value, asset_fee)

    return TradeStateChange(
        asset_in=AssetStateChange(delta_reserve=amount, delta_hub_reserve=-delta_hub_in.value),
        asset_out=AssetStateChange(delta_reserve=-delta_out, delta_hub_reserve=delta_hub_out.value),
        delta_imbalance=_imbalance_paid_down(protocol_fee_amount.value, imbalance),
        fee=(gross_out - delta_out).value,
    )


def buy_state_change(
    asset_in: HubAssetState,
    asset_out: HubAssetState,
    amount: int,
    asset_fee: Decimal,
    protocol_fee: Decimal,
    imbalance: int,
) -> TradeStateChange:
    """Deltas for buying `amount` of asset_out with asset_in.

    Formulas (all rounded up):
        dQ_out = Q_out * amount / (R_out * (1 - asset_fee) - amount)
        dQ_in = dQ_out / (1 - protocol_fee)
        dR_in = R_in * dQ_in / (Q_in - dQ_in)

    Raises:
        MathError: If the pool cannot supply `amount` or the hub leg drains asset_in
    """
    reserve_after_fee = Bfp.from_wei(asset_out.reserve).mul_down(
        Bfp.from_decimal(asset_fee).complement()
    )
    delta_hub_out = (S(asset_out.hub_reserve) * amount).ceiling_div(
        S(reserve_after_fee.value) - amount
    )
    delta_hub_in = S(amount_with_fee(delta_hub_out.value, protocol_fee))
    protocol_fee_amount = delta_hub_in - delta_hub_out

    delta_in = (S(asset_in.reserve) * delta_hub_in).ceiling_div(
        S(asset_in.hub_reserve) - delta_hub_in
    )

    return TradeStateChange(
        asset_in=AssetStateChange(delta_reserve=delta_in.value, delta_hub_reserve=-delta_hub_in.value),
        asset_out=AssetStateChange(delta_reserve=-amount, delta_hub_reserve=delta_hub_out.value),
        delta_imbalance=_imbalance_paid_down(protocol_fee_amount.value, imbalance),
        fee=amount_with_fee(amount, asset_fee) - amount,
    )


def sell_hub_state_change(
    asset_out: HubAssetState,
    hub_asset_amount: int,
    asset_fee: Decimal,
    imbalance: int,
    hub_liquidity: int,
) -> HubTradeStateChange:
    """Deltas for selling `hub_asset_amount` of the hub asset for asset_out.

    dR_out = R * dQ / (Q + dQ) * (1 - asset_fee)
    """
    gross_out = (S(asset_out.reserve) * hub_asset_amount) // (
        S(asset_out.hub_reserve) + hub_asset_amount
    )
    delta_out = amount_without_fee(gross_out.value, asset_fee)

    return HubTradeStateChange(
        asset=AssetStateChange(delta_reserve=-delta_out, delta_hub_reserve=hub_asset_amount),
        delta_imbalance=-_imbalance_growth(delta_out, asset_out, imbalance, hub_liquidity),
        fee=(gross_out - delta_out).value,
    )


def buy_for_hub_asset_state_change(
    asset_out: HubAssetState,
    amount: int,
    asset_fee: Decimal,
    imbalance: int,
    hub_liquidity: int,
) -> HubTradeStateChange:
    """Deltas for buying `amount` of asset_out with the hub asset.

    dQ = Q * amount / (R * (1 - asset_fee) - amount), rounded up
    """
    reserve_after_fee = Bfp.from_wei(asset_out.reserve).mul_down(
        Bfp.from_decimal(asset_fee).complement()
    )
    delta_hub_in = (S(asset_out.hub_reserve) * amount).ceiling_div(
        S(reserve_after_fee.value) - amount
    )

    return HubTradeStateChange(
        asset=AssetStateChange(delta_reserve=-amount, delta_hub_reserve=delta_hub_in.value),
        delta_imbalance=-_imbalance_growth(amount, asset_out, imbalance, hub_liquidity),
        fee=amount_with_fee(amount, asset_fee) - amount,
    )


# =============================================================================
# Liquidity
# =============================================================================


def add_liquidity_state_change(state: HubAssetState, amount: int) -> LiquidityStateChange:
    """Deltas for providing `amount` of an asset at the current hub price.

    Hub reserve and shares grow pro rata with the reserve.
    """
    delta_hub_reserve = (S(state.hub_reserve) * amount) // state.reserve
    delta_shares = (S(state.shares) * amount) // state.reserve

    return LiquidityStateChange(
        asset=AssetStateChange(
            delta_reserve=amount,
            delta_hub_reserve=delta_hub_reserve.value,
            delta_shares=delta_shares.value,
        ),
        delta_position_reserve=amount,
        delta_position_shares=delta_shares.value,
        price=state.price(),
    )


def remove_liquidity_state_change(
    state: HubAssetState, position: Position, shares_removed: int
) -> LiquidityStateChange:
    """Deltas for redeeming `shares_removed` of a position, pro rata."""
    delta_reserve = (S(state.reserve) * shares_removed) // state.shares
    delta_hub_reserve = (S(state.hub_reserve) * shares_removed) // state.shares
    delta_position_reserve = (S(position.amount) * shares_removed) // position.shares

    return LiquidityStateChange(
        asset=AssetStateChange(
            delta_reserve=-delta_reserve.value,
            delta_hub_reserve=-delta_hub_reserve.value,
            delta_shares=-shares_removed,
        ),
        delta_position_reserve=-delta_position_reserve.value,
        delta_position_shares=-shares_removed,
        price=state.price(),
    )
