"""Tests for the in-memory ledger."""

import pytest

from subpools.errors import InsufficientBalance, MathError
from subpools.ledger import InMemoryLedger


class TestInMemoryLedger:
    def test_mint_credits_and_issues(self):
        ledger = InMemoryLedger()
        ledger.mint(2, "alice", 100)

        assert ledger.free_balance(2, "alice") == 100
        assert ledger.total_issuance(2) == 100

    def test_transfer_keeps_issuance(self):
        ledger = InMemoryLedger()
        ledger.mint(2, "alice", 100)
        ledger.transfer(2, "alice", "bob", 30)

        assert ledger.free_balance(2, "alice") == 70
        assert ledger.free_balance(2, "bob") == 30
        assert ledger.total_issuance(2) == 100

    def test_burn_reduces_issuance(self):
        ledger = InMemoryLedger()
        ledger.mint(2, "alice", 100)
        ledger.burn(2, "alice", 40)

        assert ledger.free_balance(2, "alice") == 60
        assert ledger.total_issuance(2) == 60

    def test_overdraft_raises(self):
        ledger = InMemoryLedger()
        ledger.mint(2, "alice", 10)
        with pytest.raises(InsufficientBalance):
            ledger.transfer(2, "alice", "bob", 11)
        with pytest.raises(InsufficientBalance):
            ledger.burn(2, "alice", 11)
        assert ledger.free_balance(2, "alice") == 10

    def test_negative_amounts_raise(self):
        ledger = InMemoryLedger()
        with pytest.raises(MathError):
            ledger.mint(2, "alice", -1)

    def test_decimals_registry(self):
        ledger = InMemoryLedger(default_decimals=12)
        ledger.register_asset(3, 6)

        assert ledger.decimals(3) == 6
        assert ledger.decimals(4) == 12
