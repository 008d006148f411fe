"""Hub pool / stable subpool engine."""

from subpools.engine import SubpoolEngine
from subpools.hub_pool import Omnipool
from subpools.ledger import InMemoryLedger
from subpools.stableswap import StableswapPools

__version__ = "0.1.0"
__all__ = ["InMemoryLedger", "Omnipool", "StableswapPools", "SubpoolEngine", "__version__"]
