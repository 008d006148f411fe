"""Pytest configuration and fixtures."""

import json
from decimal import Decimal
from pathlib import Path

import pytest

from subpools.ledger import InMemoryLedger
from subpools.models.snapshot import StateSnapshot
from tests.helpers.factories import World, make_world

FIXTURES_DIR = Path(__file__).parent / "fixtures"
STATES_DIR = FIXTURES_DIR / "states"


@pytest.fixture
def fixtures_dir() -> Path:
    """Return the fixtures directory path."""
    return FIXTURES_DIR


def load_state_fixture(name: str) -> StateSnapshot:
    """Load a state snapshot fixture by name.

    Args:
        name: Fixture name (e.g., "two_subpools")

    Returns:
        Parsed StateSnapshot
    """
    path = STATES_DIR / f"{name}.json"
    with open(path) as f:
        data = json.load(f)
    return StateSnapshot.model_validate(data)


@pytest.fixture
def world() -> World:
    """Default world: DAI/USDC in SHARE, USDT/USDX in SHARE2, ACA native."""
    return make_world()


@pytest.fixture
def native_world() -> World:
    """Every asset listed natively in the hub pool, no subpools."""
    return make_world(subpools=False)


@pytest.fixture
def fee_world() -> World:
    """Default world with hub and stable fees switched on."""
    return make_world(
        asset_fee=Decimal("0.0025"),
        protocol_fee=Decimal("0.0005"),
        trade_fee=Decimal("0.0004"),
        withdraw_fee=Decimal("0.0001"),
    )


# =============================================================================
# Mock classes for dependency injection
# =============================================================================


class FlakyLedger(InMemoryLedger):
    """InMemoryLedger that fails one chosen operation.

    Usage:
        # Fail the first burn applied after arming
        ledger = FlakyLedger()
        ledger.fail_on("burn")
    """

    def __init__(self, default_decimals: int = 12) -> None:
        super().__init__(default_decimals)
        self._fail_op: str | None = None
        self._fail_after = 0
        self.calls: list[str] = []  # Track applied operations for assertions

    def fail_on(self, operation: str, after: int = 0) -> None:
        """Raise on the call to `operation` that follows `after` successful ones."""
        self._fail_op = operation
        self._fail_after = after

    def _maybe_fail(self, operation: str) -> None:
        self.calls.append(operation)
        if operation != self._fail_op:
            return
        if self._fail_after > 0:
            self._fail_after -= 1
            return
        self._fail_op = None
        raise RuntimeError(f"ledger {operation} failed")

    def transfer(self, asset: int, source: str, dest: str, amount: int) -> None:
        self._maybe_fail("transfer")
        super().transfer(asset, source, dest, amount)

    def mint(self, asset: int, dest: str, amount: int) -> None:
        self._maybe_fail("mint")
        super().mint(asset, dest, amount)

    def burn(self, asset: int, source: str, amount: int) -> None:
        self._maybe_fail("burn")
        super().burn(asset, source, amount)


@pytest.fixture
def flaky_ledger() -> FlakyLedger:
    return FlakyLedger()
