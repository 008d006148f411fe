"""Data models for hub pool and stable pool state."""

from subpools.models.types import (
    ALL_TRADABLE,
    AccountId,
    AssetAmount,
    AssetId,
    AssetReserve,
    AssetStateChange,
    Balance,
    HubAssetState,
    HubTradeStateChange,
    LiquidityStateChange,
    MigrationDetail,
    Position,
    Route,
    StablePool,
    Tradability,
    TradeResult,
    TradeStateChange,
)

__all__ = [
    "ALL_TRADABLE",
    "AccountId",
    "AssetAmount",
    "AssetId",
    "AssetReserve",
    "AssetStateChange",
    "Balance",
    "HubAssetState",
    "HubTradeStateChange",
    "LiquidityStateChange",
    "MigrationDetail",
    "Position",
    "Route",
    "StablePool",
    "Tradability",
    "TradeResult",
    "TradeStateChange",
]
