"""Amplification ramp for stable pools.

A pool's amplification moves linearly from `initial_amplification` at
`initial_block` to `final_amplification` at `final_block` and is evaluated
on every operation at the current block.
"""

from subpools.errors import InvalidConfiguration
from subpools.models.types import StablePool

MIN_AMPLIFICATION = 2
MAX_AMPLIFICATION = 10_000


def effective_amplification(pool: StablePool, current_block: int) -> int:
    """Amplification in force at `current_block`.

    Integer linear interpolation (floor), clamped to the initial value
    before the ramp starts and to the final value once it ends.
    """
    initial, final = pool.initial_amplification, pool.final_amplification
    if current_block <= pool.initial_block or initial == final:
        return initial
    if current_block >= pool.final_block:
        return final

    elapsed = current_block - pool.initial_block
    duration = pool.final_block - pool.initial_block
    if final > initial:
        return initial + (final - initial) * elapsed // duration
    return initial - (initial - final) * elapsed // duration


def validate_amplification(
    amplification: int,
    min_amplification: int = MIN_AMPLIFICATION,
    max_amplification: int = MAX_AMPLIFICATION,
) -> int:
    """Raises InvalidConfiguration if amplification is outside the allowed range."""
    if not min_amplification <= amplification <= max_amplification:
        raise InvalidConfiguration(
            f"Amplification must be in [{min_amplification}, {max_amplification}], "
            f"got {amplification}"
        )
    return amplification
