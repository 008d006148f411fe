"""Atomic scope for multi-step operations.

A Transaction is an arena of pending writes. Operations compute their
results against the transaction's view (committed state plus everything
staged so far) and stage ledger movements and storage writes into it.
Nothing touches committed state until commit(), which applies the writes in
order and undoes the applied prefix if any write fails.

Usage pattern:
    with transactional(ledger) as tx:
        tx.transfer(asset, who, pool_account, amount)
        tx.write(pools, pool_id, updated_pool)
    # committed here; an exception inside the block discards everything
"""

from __future__ import annotations

from collections.abc import Callable, Hashable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

import structlog

from subpools.errors import InsufficientBalance, MathError

if TYPE_CHECKING:
    from subpools.interfaces import Ledger
    from subpools.models.types import AccountId, AssetId

logger = structlog.get_logger()

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

_DELETED: Any = object()


class Store(Generic[K, V]):
    """Named key/value table holding committed state.

    Collaborators keep their state in Stores so that a Transaction can stage
    writes to them and roll them back.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._data: dict[K, V] = {}

    def get(self, key: K, default: V | None = None) -> V | None:
        return self._data.get(key, default)

    def set(self, key: K, value: V) -> None:
        self._data[key] = value

    def delete(self, key: K) -> None:
        self._data.pop(key, None)

    def items(self) -> list[tuple[K, V]]:
        return list(self._data.items())

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"Store({self.name!r}, {len(self._data)} entries)"


@dataclass(frozen=True)
class _PendingWrite:
    description: str
    apply: Callable[[], Callable[[], None]]


class Transaction:
    """Pending writes plus a read view that includes them.

    Ledger operations are validated when staged: a transfer or burn that the
    staged view cannot fund raises InsufficientBalance immediately, so
    commit() only replays operations that are known to succeed.
    """

    def __init__(self, ledger: Ledger) -> None:
        self._ledger = ledger
        self._writes: list[_PendingWrite] = []
        self._balance_deltas: dict[tuple[AssetId, AccountId], int] = {}
        self._issuance_deltas: dict[AssetId, int] = {}
        self._overlay: dict[tuple[int, Hashable], Any] = {}
        self._closed = False

    @property
    def pending(self) -> int:
        """Number of staged writes."""
        return len(self._writes)

    # =========================================================================
    # Ledger view
    # =========================================================================

    def free_balance(self, asset: AssetId, account: AccountId) -> int:
        return self._ledger.free_balance(asset, account) + self._balance_deltas.get(
            (asset, account), 0
        )

    def total_issuance(self, asset: AssetId) -> int:
        return self._ledger.total_issuance(asset) + self._issuance_deltas.get(asset, 0)

    def decimals(self, asset: AssetId) -> int:
        return self._ledger.decimals(asset)

    def _debit(self, asset: AssetId, account: AccountId, amount: int) -> None:
        available = self.free_balance(asset, account)
        if available < amount:
            raise InsufficientBalance(
                f"Account {account} holds {available} of asset {asset}, needs {amount}"
            )
        key = (asset, account)
        self._balance_deltas[key] = self._balance_deltas.get(key, 0) - amount

    def _credit(self, asset: AssetId, account: AccountId, amount: int) -> None:
        key = (asset, account)
        self._balance_deltas[key] = self._balance_deltas.get(key, 0) + amount

    def transfer(self, asset: AssetId, source: AccountId, dest: AccountId, amount: int) -> None:
        """Stage a transfer of `amount` from source to dest."""
        _check_amount(amount)
        if amount == 0 or source == dest:
            return
        self._debit(asset, source, amount)
        self._credit(asset, dest, amount)
        ledger = self._ledger

        def apply() -> Callable[[], None]:
            ledger.transfer(asset, source, dest, amount)
            return lambda: ledger.transfer(asset, dest, source, amount)

        self._stage(f"transfer {amount} of {asset} {source}->{dest}", apply)

    def mint(self, asset: AssetId, dest: AccountId, amount: int) -> None:
        """Stage issuance of `amount` new units to dest."""
        _check_amount(amount)
        if amount == 0:
            return
        self._credit(asset, dest, amount)
        self._issuance_deltas[asset] = self._issuance_deltas.get(asset, 0) + amount
        ledger = self._ledger

        def apply() -> Callable[[], None]:
            ledger.mint(asset, dest, amount)
            return lambda: ledger.burn(asset, dest, amount)

        self._stage(f"mint {amount} of {asset} to {dest}", apply)

    def burn(self, asset: AssetId, source: AccountId, amount: int) -> None:
        """Stage destruction of `amount` units held by source."""
        _check_amount(amount)
        if amount == 0:
            return
        self._debit(asset, source, amount)
        self._issuance_deltas[asset] = self._issuance_deltas.get(asset, 0) - amount
        ledger = self._ledger

        def apply() -> Callable[[], None]:
            ledger.burn(asset, source, amount)
            return lambda: ledger.mint(asset, source, amount)

        self._stage(f"burn {amount} of {asset} from {source}", apply)

    # =========================================================================
    # Storage
    # =========================================================================

    def read(self, store: Store[K, V], key: K) -> V | None:
        """Value of `key` as seen by this transaction (None if absent)."""
        staged = self._overlay.get((id(store), key), None)
        if staged is _DELETED:
            return None
        if staged is not None:
            return staged
        return store.get(key)

    def contains(self, store: Store[K, V], key: K) -> bool:
        return self.read(store, key) is not None

    def write(self, store: Store[K, V], key: K, value: V) -> None:
        """Stage `store[key] = value`."""
        self._overlay[(id(store), key)] = value

        def apply() -> Callable[[], None]:
            previous = store.get(key)
            store.set(key, value)
            return lambda: _restore(store, key, previous)

        self._stage(f"write {store.name}[{key!r}]", apply)

    def delete(self, store: Store[K, V], key: K) -> None:
        """Stage removal of `key` from store."""
        self._overlay[(id(store), key)] = _DELETED

        def apply() -> Callable[[], None]:
            previous = store.get(key)
            store.delete(key)
            return lambda: _restore(store, key, previous)

        self._stage(f"delete {store.name}[{key!r}]", apply)

    # =========================================================================
    # Commit
    # =========================================================================

    def _stage(self, description: str, apply: Callable[[], Callable[[], None]]) -> None:
        if self._closed:
            raise RuntimeError("Transaction already committed")
        self._writes.append(_PendingWrite(description, apply))

    def commit(self) -> None:
        """Apply every staged write, or none of them.

        Raises:
            Whatever the failing write raised, after undoing the applied ones
        """
        if self._closed:
            raise RuntimeError("Transaction already committed")
        self._closed = True

        undo_log: list[Callable[[], None]] = []
        try:
            for write in self._writes:
                undo_log.append(write.apply())
        except Exception:
            logger.warning(
                "transaction_rolled_back",
                applied=len(undo_log),
                pending=len(self._writes),
                failed=self._writes[len(undo_log)].description,
            )
            for undo in reversed(undo_log):
                undo()
            raise

        logger.debug("transaction_committed", writes=len(self._writes))


def _check_amount(amount: int) -> None:
    if amount < 0:
        raise MathError(f"Ledger amount cannot be negative: {amount}")


def _restore(store: Store[K, V], key: K, previous: V | None) -> None:
    if previous is None:
        store.delete(key)
    else:
        store.set(key, previous)


@contextmanager
def transactional(ledger: Ledger, tx: Transaction | None = None) -> Iterator[Transaction]:
    """Join `tx` if given, otherwise open a new scope and commit it on success.

    An exception raised inside the block propagates and the new scope's
    staged writes are discarded.
    """
    if tx is not None:
        yield tx
        return

    scope = Transaction(ledger)
    yield scope
    scope.commit()
