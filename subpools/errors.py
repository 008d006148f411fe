"""Error classes for the subpool engine.

Every failure surfaced by the engine or its reference collaborators is a
SubpoolError. Errors propagate unmodified; the enclosing transaction scope
discards any staged writes.
"""


class SubpoolError(Exception):
    """Base error for subpool engine operations."""

    pass


class NotFound(SubpoolError):
    """Referenced pool, asset or position does not exist."""

    pass


class AssetNotFound(NotFound):
    """Asset is not registered in the hub pool."""

    pass


class PoolNotFound(NotFound):
    """Stable pool (subpool) does not exist."""

    pass


class PositionNotFound(NotFound):
    """Liquidity position does not exist or is not owned by the caller."""

    pass


class AssetNotInPool(NotFound):
    """Asset is not a member of the stable pool."""

    pass


class MathError(SubpoolError, ArithmeticError):
    """Arithmetic failed: underflow, overflow, division by zero or non-convergence."""

    pass


class ZeroBalanceError(MathError):
    """Stable pool balance must be positive for invariant calculation."""

    pass


class StableInvariantDidNotConverge(MathError):
    """Newton-Raphson iteration for stable invariant D did not converge."""

    pass


class StableGetBalanceDidNotConverge(MathError):
    """Newton-Raphson iteration for stable balance Y did not converge."""

    pass


class LimitExceeded(SubpoolError):
    """Buy would require more than the caller's maximum input."""

    pass


class LimitNotReached(SubpoolError):
    """Sell would return less than the caller's minimum output."""

    pass


class NotAllowed(SubpoolError):
    """Operation is forbidden by tradability flags or trade direction."""

    pass


class WithdrawAssetNotSpecified(SubpoolError):
    """Removing liquidity from a subpool position requires a withdraw asset."""

    pass


class NotStableAsset(SubpoolError):
    """Asset has not been migrated to a subpool."""

    pass


class InsufficientBalance(SubpoolError):
    """Account balance is too low for a transfer or burn."""

    pass


class InvalidConfiguration(SubpoolError):
    """Fee, amplification or pool parameters are out of range."""

    pass
