"""In-memory fungible-asset ledger.

Reference implementation of the Ledger interface: balances keyed by
(asset, account), per-asset total issuance, and a small asset registry
holding each asset's decimals.
"""

from collections import defaultdict

import structlog

from subpools.errors import InsufficientBalance, MathError
from subpools.models.types import AccountId, AssetId

logger = structlog.get_logger()


class InMemoryLedger:
    """Balances and issuance held in dicts."""

    def __init__(self, default_decimals: int = 12) -> None:
        self._balances: dict[tuple[AssetId, AccountId], int] = defaultdict(int)
        self._issuance: dict[AssetId, int] = defaultdict(int)
        self._decimals: dict[AssetId, int] = {}
        self._default_decimals = default_decimals

    def register_asset(self, asset: AssetId, decimals: int) -> None:
        self._decimals[asset] = decimals

    def decimals(self, asset: AssetId) -> int:
        return self._decimals.get(asset, self._default_decimals)

    def free_balance(self, asset: AssetId, account: AccountId) -> int:
        return self._balances.get((asset, account), 0)

    def total_issuance(self, asset: AssetId) -> int:
        return self._issuance.get(asset, 0)

    def transfer(self, asset: AssetId, source: AccountId, dest: AccountId, amount: int) -> None:
        self._withdraw(asset, source, amount)
        self._balances[(asset, dest)] += amount

    def mint(self, asset: AssetId, dest: AccountId, amount: int) -> None:
        _check_amount(amount)
        self._balances[(asset, dest)] += amount
        self._issuance[asset] += amount

    def burn(self, asset: AssetId, source: AccountId, amount: int) -> None:
        self._withdraw(asset, source, amount)
        self._issuance[asset] -= amount

    def _withdraw(self, asset: AssetId, account: AccountId, amount: int) -> None:
        _check_amount(amount)
        balance = self.free_balance(asset, account)
        if balance < amount:
            logger.debug(
                "ledger_insufficient_balance",
                asset=asset,
                account=account,
                balance=balance,
                amount=amount,
            )
            raise InsufficientBalance(
                f"Account {account} holds {balance} of asset {asset}, needs {amount}"
            )
        self._balances[(asset, account)] = balance - amount


def _check_amount(amount: int) -> None:
    if amount < 0:
        raise MathError(f"Ledger amount cannot be negative: {amount}")
