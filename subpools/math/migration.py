"""Migration of hub pool assets into subpools.

When assets move into a stable pool, their hub reserve is taken over by the
pool's share asset. The share asset is minted so that its hub price is
preserved, and a MigrationDetail is recorded for each asset so that old LP
positions can later be converted into share-asset positions.
"""

from decimal import Decimal

from subpools.models.types import (
    ALL_TRADABLE,
    AssetId,
    AssetStateChange,
    HubAssetState,
    MigrationDetail,
    Position,
)
from subpools.safe_int import S

from .fixed_point import Bfp


def initial_share_asset_state(
    states: list[HubAssetState], weight_cap: Decimal
) -> HubAssetState:
    """Hub state of a freshly created share asset.

    reserve = shares = hub_reserve = sum of the migrated hub reserves, so the
    share asset starts at a hub price of exactly one.
    """
    hub_reserve = S.zero()
    for state in states:
        hub_reserve = hub_reserve + state.hub_reserve
    total = hub_reserve.to_balance()
    return HubAssetState(
        reserve=total,
        hub_reserve=total,
        shares=total,
        weight_cap=weight_cap,
        tradable=ALL_TRADABLE,
    )


def initial_migration_detail(state: HubAssetState) -> MigrationDetail:
    """Detail for an asset that founds a subpool (share price of one)."""
    return MigrationDetail(
        price=state.price(),
        shares=state.shares,
        hub_reserve=state.hub_reserve,
        share_tokens=state.hub_reserve,
    )


def asset_migration_details(
    asset_state: HubAssetState, share_state: HubAssetState
) -> tuple[MigrationDetail, AssetStateChange]:
    """Detail and share-asset change for migrating into an existing subpool.

    delta_u = Q_i * R_s / Q_s share tokens are minted, keeping the share
    asset's hub price and its reserve - shares difference unchanged.

    Returns:
        (detail, share_state_change)
    """
    delta_u = ((S(asset_state.hub_reserve) * share_state.reserve) // share_state.hub_reserve).to_balance()
    detail = MigrationDetail(
        price=Bfp.from_ratio(delta_u, asset_state.reserve),
        shares=asset_state.shares,
        hub_reserve=asset_state.hub_reserve,
        share_tokens=delta_u,
    )
    change = AssetStateChange(
        delta_reserve=delta_u,
        delta_hub_reserve=asset_state.hub_reserve,
        delta_shares=delta_u,
    )
    return detail, change


def convert_position(position: Position, detail: MigrationDetail, share_asset: AssetId) -> Position:
    """Re-express an LP position of a migrated asset in the share asset.

    amount' = amount * price
    shares' = shares * share_tokens / detail.shares
    price'  = price / detail.price
    """
    return Position(
        owner=position.owner,
        asset_id=share_asset,
        amount=Bfp.from_wei(position.amount).mul_down(detail.price).value,
        shares=((S(position.shares) * detail.share_tokens) // detail.shares).to_balance(),
        price=position.price.div_down(detail.price),
    )
