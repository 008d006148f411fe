"""Tests for the transaction arena: staging, views, commit and rollback."""

import pytest

from subpools.errors import InsufficientBalance, MathError
from subpools.ledger import InMemoryLedger
from subpools.transaction import Store, Transaction, transactional
from tests.conftest import FlakyLedger

DAI = 2
USDC = 3


@pytest.fixture
def ledger() -> InMemoryLedger:
    ledger = InMemoryLedger()
    ledger.mint(DAI, "alice", 1000)
    return ledger


class TestStagedView:
    """Reads through a transaction see staged writes; the ledger does not."""

    def test_transfer_visible_only_in_view(self, ledger):
        tx = Transaction(ledger)
        tx.transfer(DAI, "alice", "bob", 400)

        assert tx.free_balance(DAI, "alice") == 600
        assert tx.free_balance(DAI, "bob") == 400
        assert ledger.free_balance(DAI, "bob") == 0

    def test_mint_and_burn_move_issuance(self, ledger):
        tx = Transaction(ledger)
        tx.mint(USDC, "bob", 50)
        tx.burn(DAI, "alice", 100)

        assert tx.total_issuance(USDC) == 50
        assert tx.total_issuance(DAI) == 900
        assert ledger.total_issuance(DAI) == 1000

    def test_store_overlay(self):
        store: Store[str, int] = Store("test")
        store.set("a", 1)
        tx = Transaction(InMemoryLedger())

        tx.write(store, "a", 2)
        tx.write(store, "b", 3)
        tx.delete(store, "a")

        assert tx.read(store, "a") is None
        assert tx.read(store, "b") == 3
        assert not tx.contains(store, "a")
        assert store.get("a") == 1
        assert "b" not in store

    def test_zero_amounts_are_not_staged(self, ledger):
        tx = Transaction(ledger)
        tx.transfer(DAI, "alice", "bob", 0)
        tx.mint(DAI, "alice", 0)
        tx.burn(DAI, "alice", 0)
        assert tx.pending == 0


class TestStagingValidation:
    def test_overdraft_raises_when_staged(self, ledger):
        """A transfer the view cannot fund fails immediately."""
        tx = Transaction(ledger)
        tx.transfer(DAI, "alice", "bob", 600)

        with pytest.raises(InsufficientBalance):
            tx.transfer(DAI, "alice", "bob", 600)

    def test_staged_credit_funds_later_debit(self, ledger):
        tx = Transaction(ledger)
        tx.transfer(DAI, "alice", "bob", 500)
        tx.transfer(DAI, "bob", "carol", 500)
        tx.commit()

        assert ledger.free_balance(DAI, "carol") == 500

    def test_negative_amount_raises(self, ledger):
        tx = Transaction(ledger)
        with pytest.raises(MathError):
            tx.transfer(DAI, "alice", "bob", -1)


class TestCommit:
    def test_commit_applies_in_order(self, ledger):
        store: Store[str, int] = Store("test")
        tx = Transaction(ledger)
        tx.transfer(DAI, "alice", "bob", 100)
        tx.write(store, "k", 7)
        tx.commit()

        assert ledger.free_balance(DAI, "bob") == 100
        assert store.get("k") == 7

    def test_commit_twice_raises(self, ledger):
        tx = Transaction(ledger)
        tx.commit()
        with pytest.raises(RuntimeError):
            tx.commit()
        with pytest.raises(RuntimeError):
            tx.mint(DAI, "alice", 1)

    def test_failing_write_rolls_back_applied_prefix(self):
        """If the second transfer fails at commit, the first and the store write are undone."""
        ledger = FlakyLedger()
        ledger.mint(DAI, "alice", 1000)
        store: Store[str, int] = Store("test")
        store.set("k", 1)

        tx = Transaction(ledger)
        tx.transfer(DAI, "alice", "bob", 100)
        tx.write(store, "k", 2)
        tx.write(store, "new", 3)
        tx.transfer(DAI, "alice", "carol", 100)
        ledger.fail_on("transfer", after=1)

        with pytest.raises(RuntimeError, match="transfer failed"):
            tx.commit()

        assert ledger.free_balance(DAI, "alice") == 1000
        assert ledger.free_balance(DAI, "bob") == 0
        assert ledger.free_balance(DAI, "carol") == 0
        assert store.get("k") == 1
        assert "new" not in store


class TestTransactional:
    def test_commits_on_success(self, ledger):
        with transactional(ledger) as tx:
            tx.transfer(DAI, "alice", "bob", 10)
        assert ledger.free_balance(DAI, "bob") == 10

    def test_exception_discards_everything(self, ledger):
        with pytest.raises(ValueError), transactional(ledger) as tx:
            tx.transfer(DAI, "alice", "bob", 10)
            raise ValueError("abort")
        assert ledger.free_balance(DAI, "bob") == 0

    def test_joins_outer_transaction(self, ledger):
        """An inner scope joined to an outer one does not commit on its own."""
        with transactional(ledger) as outer:
            with transactional(ledger, outer) as inner:
                assert inner is outer
                inner.transfer(DAI, "alice", "bob", 10)
            assert ledger.free_balance(DAI, "bob") == 0
        assert ledger.free_balance(DAI, "bob") == 10
