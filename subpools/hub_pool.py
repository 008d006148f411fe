"""In-memory hub pool (omnipool).

Reference implementation of the HubPool interface. Each asset carries a
reserve (held by the protocol account on the ledger) and a hub reserve of
the hub asset. The protocol account's hub-asset balance always equals the
sum of all hub reserves: liquidity adds mint hub asset, removals and
protocol fees burn it.
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from typing import TYPE_CHECKING

import structlog

from subpools.config import DEFAULT_HUB_POOL_CONFIG, HubPoolConfig
from subpools.errors import (
    AssetNotFound,
    LimitExceeded,
    LimitNotReached,
    NotAllowed,
    PositionNotFound,
)
from subpools.math import hub_math
from subpools.math.fixed_point import Bfp
from subpools.models.types import (
    ALL_TRADABLE,
    AccountId,
    AssetId,
    AssetStateChange,
    HubAssetState,
    HubTradeStateChange,
    Position,
    Tradability,
    TradeStateChange,
)
from subpools.transaction import Store, Transaction, transactional

if TYPE_CHECKING:
    from subpools.interfaces import HubTradeContract, Ledger

logger = structlog.get_logger()

_IMBALANCE = "imbalance"
_NEXT_POSITION_ID = "next_position_id"


class Omnipool:
    """Hub pool holding every asset against a single hub asset."""

    def __init__(
        self,
        ledger: Ledger,
        config: HubPoolConfig = DEFAULT_HUB_POOL_CONFIG,
        trade_math: HubTradeContract = hub_math,
    ) -> None:
        self._ledger = ledger
        self._config = config
        self._math = trade_math
        self._assets: Store[AssetId, HubAssetState] = Store("hub_assets")
        self._positions: Store[int, Position] = Store("hub_positions")
        self._meta: Store[str, int] = Store("hub_meta")
        self._hub_asset_tradable: frozenset[Tradability] = ALL_TRADABLE

    # =========================================================================
    # Configuration
    # =========================================================================

    @property
    def hub_asset_id(self) -> AssetId:
        return self._config.hub_asset_id

    @property
    def asset_fee(self) -> Decimal:
        return self._config.asset_fee

    @property
    def protocol_fee(self) -> Decimal:
        return self._config.protocol_fee

    def protocol_account(self) -> AccountId:
        return self._config.protocol_account

    def is_hub_asset_allowed(self, operation: Tradability) -> bool:
        return operation in self._hub_asset_tradable

    def set_hub_asset_tradability(self, tradable: frozenset[Tradability]) -> None:
        self._hub_asset_tradable = frozenset(tradable)

    # =========================================================================
    # Asset state
    # =========================================================================

    def add_token(
        self,
        asset: AssetId,
        initial_price: Bfp,
        weight_cap: Decimal = Decimal(1),
        tradable: frozenset[Tradability] = ALL_TRADABLE,
        tx: Transaction | None = None,
    ) -> HubAssetState:
        """List an asset whose reserve is already held by the protocol account.

        The hub reserve is `reserve * initial_price`, minted to the protocol
        account; initial shares equal the reserve.
        """
        if asset == self.hub_asset_id:
            raise NotAllowed("Hub asset cannot be listed in the hub pool")
        with transactional(self._ledger, tx) as scope:
            if self.contains(asset, scope):
                raise NotAllowed(f"Asset {asset} is already listed")
            reserve = scope.free_balance(asset, self.protocol_account())
            hub_reserve = Bfp.from_wei(reserve).mul_down(initial_price).value
            state = HubAssetState(
                reserve=reserve,
                hub_reserve=hub_reserve,
                shares=reserve,
                weight_cap=weight_cap,
                tradable=tradable,
            )
            scope.mint(self.hub_asset_id, self.protocol_account(), hub_reserve)
            self.add_asset(asset, state, scope)
        logger.info("hub_token_added", asset=asset, reserve=reserve, hub_reserve=hub_reserve)
        return state

    def asset_ids(self) -> list[AssetId]:
        return [asset for asset, _ in self._assets.items()]

    def contains(self, asset: AssetId, tx: Transaction | None = None) -> bool:
        if tx is not None:
            return tx.contains(self._assets, asset)
        return asset in self._assets

    def load_asset_state(self, asset: AssetId, tx: Transaction | None = None) -> HubAssetState:
        state = tx.read(self._assets, asset) if tx is not None else self._assets.get(asset)
        if state is None:
            raise AssetNotFound(f"Asset {asset} is not in the hub pool")
        return state

    def add_asset(self, asset: AssetId, state: HubAssetState, tx: Transaction) -> None:
        tx.write(self._assets, asset, state)

    def remove_asset(self, asset: AssetId, tx: Transaction) -> None:
        self.load_asset_state(asset, tx)
        tx.delete(self._assets, asset)

    def set_asset_tradability(
        self, asset: AssetId, tradable: frozenset[Tradability], tx: Transaction | None = None
    ) -> None:
        with transactional(self._ledger, tx) as scope:
            state = self.load_asset_state(asset, scope)
            scope.write(self._assets, asset, replace(state, tradable=frozenset(tradable)))

    def update_asset_state(
        self, asset: AssetId, change: AssetStateChange, tx: Transaction
    ) -> HubAssetState:
        """Apply signed deltas to an asset's state.

        Raises:
            AssetNotFound: If the asset is not listed
            MathError: If a field would become negative
        """
        updated = self.load_asset_state(asset, tx).apply(change)
        tx.write(self._assets, asset, updated)
        return updated

    def current_imbalance(self, tx: Transaction | None = None) -> int:
        value = tx.read(self._meta, _IMBALANCE) if tx is not None else self._meta.get(_IMBALANCE)
        return value or 0

    def set_imbalance(self, imbalance: int, tx: Transaction | None = None) -> None:
        with transactional(self._ledger, tx) as scope:
            scope.write(self._meta, _IMBALANCE, imbalance)

    def hub_liquidity(self, tx: Transaction | None = None) -> int:
        """Hub asset held by the protocol account."""
        view = tx if tx is not None else self._ledger
        return view.free_balance(self.hub_asset_id, self.protocol_account())

    def apply_trade(
        self, asset_in: AssetId, asset_out: AssetId, change: TradeStateChange, tx: Transaction
    ) -> None:
        """Update both asset states and the imbalance after a trade.

        The hub asset leaving asset_in but not reaching asset_out (the
        protocol fee) is burned from the protocol account.
        """
        self.update_asset_state(asset_in, change.asset_in, tx)
        self.update_asset_state(asset_out, change.asset_out, tx)
        tx.burn(
            self.hub_asset_id,
            self.protocol_account(),
            change.delta_hub_reserve_in - change.delta_hub_reserve_out,
        )
        self.set_imbalance(self.current_imbalance(tx) + change.delta_imbalance, tx)

    def apply_hub_asset_trade(
        self, asset: AssetId, change: HubTradeStateChange, tx: Transaction
    ) -> None:
        self.update_asset_state(asset, change.asset, tx)
        self.set_imbalance(self.current_imbalance(tx) + change.delta_imbalance, tx)

    # =========================================================================
    # Trades
    # =========================================================================

    def _check_tradable(self, state: HubAssetState, asset: AssetId, operation: Tradability) -> None:
        if operation not in state.tradable:
            raise NotAllowed(f"Asset {asset} does not allow {operation.value}")

    def sell(
        self,
        who: AccountId,
        asset_in: AssetId,
        asset_out: AssetId,
        amount: int,
        min_buy_amount: int,
        tx: Transaction | None = None,
    ) -> int:
        """Sell `amount` of asset_in for asset_out.

        Returns:
            Amount of asset_out received

        Raises:
            NotAllowed: Same asset, hub asset as output, or tradability forbids it
            LimitNotReached: If the output is below min_buy_amount
        """
        _check_pair(asset_in, asset_out, self.hub_asset_id)
        protocol = self.protocol_account()

        with transactional(self._ledger, tx) as scope:
            out_state = self.load_asset_state(asset_out, scope)
            self._check_tradable(out_state, asset_out, Tradability.BUY)

            if asset_in == self.hub_asset_id:
                if not self.is_hub_asset_allowed(Tradability.SELL):
                    raise NotAllowed("Hub asset cannot be sold")
                hub_change = self._math.sell_hub_state_change(
                    out_state,
                    amount,
                    self.asset_fee,
                    self.current_imbalance(scope),
                    self.hub_liquidity(scope),
                )
                amount_out = hub_change.delta_reserve
                if amount_out < min_buy_amount:
                    raise LimitNotReached(f"Sell returns {amount_out}, minimum is {min_buy_amount}")
                scope.transfer(asset_in, who, protocol, amount)
                scope.transfer(asset_out, protocol, who, amount_out)
                self.apply_hub_asset_trade(asset_out, hub_change, scope)
            else:
                in_state = self.load_asset_state(asset_in, scope)
                self._check_tradable(in_state, asset_in, Tradability.SELL)
                change = self._math.sell_state_change(
                    in_state,
                    out_state,
                    amount,
                    self.asset_fee,
                    self.protocol_fee,
                    self.current_imbalance(scope),
                )
                amount_out = change.delta_reserve_out
                if amount_out < min_buy_amount:
                    raise LimitNotReached(f"Sell returns {amount_out}, minimum is {min_buy_amount}")
                scope.transfer(asset_in, who, protocol, amount)
                scope.transfer(asset_out, protocol, who, amount_out)
                self.apply_trade(asset_in, asset_out, change, scope)

        logger.debug(
            "hub_sell", asset_in=asset_in, asset_out=asset_out, amount_in=amount, amount_out=amount_out
        )
        return amount_out

    def buy(
        self,
        who: AccountId,
        asset_out: AssetId,
        asset_in: AssetId,
        amount: int,
        max_sell_amount: int,
        tx: Transaction | None = None,
    ) -> int:
        """Buy `amount` of asset_out paying with asset_in.

        Returns:
            Amount of asset_in paid

        Raises:
            NotAllowed: Same asset, hub asset as output, or tradability forbids it
            LimitExceeded: If the input exceeds max_sell_amount
        """
        _check_pair(asset_in, asset_out, self.hub_asset_id)
        protocol = self.protocol_account()

        with transactional(self._ledger, tx) as scope:
            out_state = self.load_asset_state(asset_out, scope)
            self._check_tradable(out_state, asset_out, Tradability.BUY)

            if asset_in == self.hub_asset_id:
                if not self.is_hub_asset_allowed(Tradability.SELL):
                    raise NotAllowed("Hub asset cannot be sold")
                hub_change = self._math.buy_for_hub_asset_state_change(
                    out_state,
                    amount,
                    self.asset_fee,
                    self.current_imbalance(scope),
                    self.hub_liquidity(scope),
                )
                amount_in = hub_change.delta_hub_reserve
                if amount_in > max_sell_amount:
                    raise LimitExceeded(f"Buy costs {amount_in}, maximum is {max_sell_amount}")
                scope.transfer(asset_in, who, protocol, amount_in)
                scope.transfer(asset_out, protocol, who, amount)
                self.apply_hub_asset_trade(asset_out, hub_change, scope)
            else:
                in_state = self.load_asset_state(asset_in, scope)
                self._check_tradable(in_state, asset_in, Tradability.SELL)
                change = self._math.buy_state_change(
                    in_state,
                    out_state,
                    amount,
                    self.asset_fee,
                    self.protocol_fee,
                    self.current_imbalance(scope),
                )
                amount_in = change.delta_reserve_in
                if amount_in > max_sell_amount:
                    raise LimitExceeded(f"Buy costs {amount_in}, maximum is {max_sell_amount}")
                scope.transfer(asset_in, who, protocol, amount_in)
                scope.transfer(asset_out, protocol, who, amount)
                self.apply_trade(asset_in, asset_out, change, scope)

        logger.debug(
            "hub_buy", asset_in=asset_in, asset_out=asset_out, amount_in=amount_in, amount_out=amount
        )
        return amount_in

    # =========================================================================
    # Liquidity
    # =========================================================================

    def add_liquidity(
        self, who: AccountId, asset: AssetId, amount: int, tx: Transaction | None = None
    ) -> int:
        """Provide `amount` of an asset and open a new position.

        Returns:
            The new position id

        Raises:
            NotAllowed: If the asset forbids adding liquidity or its weight cap would be exceeded
        """
        protocol = self.protocol_account()
        with transactional(self._ledger, tx) as scope:
            state = self.load_asset_state(asset, scope)
            self._check_tradable(state, asset, Tradability.ADD_LIQUIDITY)

            change = hub_math.add_liquidity_state_change(state, amount)
            new_hub_reserve = state.hub_reserve + change.asset.delta_hub_reserve
            total_hub_reserve = self.hub_liquidity(scope) + change.asset.delta_hub_reserve
            if Bfp.from_ratio(new_hub_reserve, total_hub_reserve) > Bfp.from_decimal(state.weight_cap):
                raise NotAllowed(f"Asset {asset} weight cap {state.weight_cap} exceeded")

            scope.transfer(asset, who, protocol, amount)
            scope.mint(self.hub_asset_id, protocol, change.asset.delta_hub_reserve)
            self.update_asset_state(asset, change.asset, scope)

            position_id = self._next_position_id(scope)
            position = Position(
                owner=who,
                asset_id=asset,
                amount=change.delta_position_reserve,
                shares=change.delta_position_shares,
                price=change.price,
            )
            self.set_position(position_id, position, scope)

        logger.debug("hub_liquidity_added", asset=asset, amount=amount, position_id=position_id)
        return position_id

    def remove_liquidity(
        self, who: AccountId, position_id: int, amount: int, tx: Transaction | None = None
    ) -> int:
        """Redeem `amount` shares of a position.

        Returns:
            Amount of the position's asset paid out

        Raises:
            PositionNotFound: If the position does not exist or is not owned by who
            NotAllowed: If the asset forbids removal or the position holds fewer shares
        """
        protocol = self.protocol_account()
        with transactional(self._ledger, tx) as scope:
            position = self.load_position(position_id, who, scope)
            if amount > position.shares:
                raise NotAllowed(
                    f"Position {position_id} holds {position.shares} shares, cannot remove {amount}"
                )
            state = self.load_asset_state(position.asset_id, scope)
            self._check_tradable(state, position.asset_id, Tradability.REMOVE_LIQUIDITY)

            change = hub_math.remove_liquidity_state_change(state, position, amount)
            amount_out = -change.asset.delta_reserve
            self.update_asset_state(position.asset_id, change.asset, scope)
            scope.transfer(position.asset_id, protocol, who, amount_out)
            scope.burn(self.hub_asset_id, protocol, -change.asset.delta_hub_reserve)

            remaining_shares = position.shares + change.delta_position_shares
            if remaining_shares == 0:
                scope.delete(self._positions, position_id)
            else:
                self.set_position(
                    position_id,
                    Position(
                        owner=position.owner,
                        asset_id=position.asset_id,
                        amount=position.amount + change.delta_position_reserve,
                        shares=remaining_shares,
                        price=position.price,
                    ),
                    scope,
                )

        logger.debug(
            "hub_liquidity_removed", position_id=position_id, shares=amount, amount_out=amount_out
        )
        return amount_out

    def load_position(
        self, position_id: int, owner: AccountId, tx: Transaction | None = None
    ) -> Position:
        position = (
            tx.read(self._positions, position_id)
            if tx is not None
            else self._positions.get(position_id)
        )
        if position is None or position.owner != owner:
            raise PositionNotFound(f"Position {position_id} not found for {owner}")
        return position

    def set_position(self, position_id: int, position: Position, tx: Transaction) -> None:
        tx.write(self._positions, position_id, position)

    def _next_position_id(self, tx: Transaction) -> int:
        position_id = tx.read(self._meta, _NEXT_POSITION_ID) or 0
        tx.write(self._meta, _NEXT_POSITION_ID, position_id + 1)
        return position_id


def _check_pair(asset_in: AssetId, asset_out: AssetId, hub_asset: AssetId) -> None:
    if asset_in == asset_out:
        raise NotAllowed("Cannot trade an asset for itself")
    if asset_out == hub_asset:
        raise NotAllowed("Hub asset cannot be bought")
