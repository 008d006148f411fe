"""Registry of subpools and migrated assets.

Maps each migrated asset to the subpool it moved into and the
MigrationDetail recorded at that moment, and records which share assets
are subpools. Writes go through a Transaction.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from subpools.models.types import AssetId, MigrationDetail
from subpools.transaction import Store, Transaction

logger = structlog.get_logger()


@dataclass(frozen=True)
class MigratedAsset:
    pool_id: AssetId
    detail: MigrationDetail


class SubpoolRegistry:
    """Subpool ids and migrated-asset records."""

    def __init__(self) -> None:
        self._migrated: Store[AssetId, MigratedAsset] = Store("migrated_assets")
        self._subpools: Store[AssetId, bool] = Store("subpools")

    def migrated_asset(
        self, asset: AssetId, tx: Transaction | None = None
    ) -> MigratedAsset | None:
        """Subpool and detail for a migrated asset, or None for a native hub asset."""
        if tx is not None:
            return tx.read(self._migrated, asset)
        return self._migrated.get(asset)

    def is_subpool(self, pool_id: AssetId, tx: Transaction | None = None) -> bool:
        if tx is not None:
            return tx.contains(self._subpools, pool_id)
        return pool_id in self._subpools

    def register_subpool(self, pool_id: AssetId, tx: Transaction) -> None:
        tx.write(self._subpools, pool_id, True)

    def record_migration(
        self, asset: AssetId, pool_id: AssetId, detail: MigrationDetail, tx: Transaction
    ) -> None:
        tx.write(self._migrated, asset, MigratedAsset(pool_id=pool_id, detail=detail))
        logger.debug(
            "migration_recorded",
            asset=asset,
            pool_id=pool_id,
            share_tokens=detail.share_tokens,
        )

    def subpools(self) -> list[AssetId]:
        return [pool_id for pool_id, _ in self._subpools.items()]

    def migrated_assets(self) -> dict[AssetId, MigratedAsset]:
        return dict(self._migrated.items())
