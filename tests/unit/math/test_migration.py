"""Tests for subpool migration math and position conversion."""

from decimal import Decimal

from subpools.math import migration
from subpools.math.fixed_point import Bfp
from subpools.models.types import AssetStateChange, HubAssetState, MigrationDetail, Position


class TestInitialShareAssetState:
    def test_share_asset_starts_at_price_one(self):
        states = [
            HubAssetState(reserve=500, hub_reserve=1000, shares=500),
            HubAssetState(reserve=300, hub_reserve=600, shares=300),
        ]
        state = migration.initial_share_asset_state(states, Decimal("0.5"))

        assert (state.reserve, state.hub_reserve, state.shares) == (1600, 1600, 1600)
        assert state.weight_cap == Decimal("0.5")
        assert state.price() == Bfp.from_int(1)

    def test_founding_detail(self):
        """Founding assets get share tokens equal to their hub reserve."""
        state = HubAssetState(reserve=500, hub_reserve=1000, shares=400)
        detail = migration.initial_migration_detail(state)

        assert detail == MigrationDetail(
            price=Bfp.from_int(2), shares=400, hub_reserve=1000, share_tokens=1000
        )


class TestAssetMigrationDetails:
    asset_state = HubAssetState(reserve=500, hub_reserve=1000, shares=500)
    share_state = HubAssetState(reserve=3000, hub_reserve=2000, shares=3000)

    def test_share_tokens_keep_share_price(self):
        """delta_u = Q_i * R_s / Q_s = 1000 * 3000 / 2000 = 1500."""
        detail, change = migration.asset_migration_details(self.asset_state, self.share_state)

        assert detail.share_tokens == 1500
        assert detail.price == Bfp.from_int(3)
        assert change == AssetStateChange(
            delta_reserve=1500, delta_hub_reserve=1000, delta_shares=1500
        )

        after = self.share_state.apply(change)
        assert after.price() == self.share_state.price()
        assert after.reserve - after.shares == self.share_state.reserve - self.share_state.shares


class TestConvertPosition:
    def test_conversion(self):
        """amount * 3, shares * 1500/500, price / 3."""
        detail = MigrationDetail(
            price=Bfp.from_int(3), shares=500, hub_reserve=1000, share_tokens=1500
        )
        position = Position(owner="alice", asset_id=2, amount=100, shares=50, price=Bfp.from_int(2))

        converted = migration.convert_position(position, detail, 100)

        assert converted.owner == "alice"
        assert converted.asset_id == 100
        assert converted.amount == 300
        assert converted.shares == 150
        assert converted.price == Bfp(666_666_666_666_666_666)
