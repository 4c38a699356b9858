"""
Ledger Store

Typed persistence for the credit ledger on top of the key-value storage.

Persisted layout:
- userCredits: balance as decimal text
- creditTransactions: JSON list of transactions, creation order
- creditOpeningBalance: balance implied before the oldest kept transaction
"""

import json
from typing import Optional

from pydantic import ValidationError

from getanswer.models.ledger import Transaction
from getanswer.services.storage import (
    KeyValueStorageInterface,
    StorageError,
)

BALANCE_KEY = "userCredits"
TRANSACTIONS_KEY = "creditTransactions"
OPENING_BALANCE_KEY = "creditOpeningBalance"


class CorruptLedgerDataError(StorageError):
    """A stored ledger value could not be parsed."""
    pass


def _parse_amount(key: str, value: str, allow_negative: bool = False) -> int:
    """Parse a stored decimal integer."""
    try:
        amount = int(value.strip())
    except ValueError:
        raise CorruptLedgerDataError(f"{key} is not a valid integer: {value!r}")
    if amount < 0 and not allow_negative:
        raise CorruptLedgerDataError(f"{key} is negative: {value!r}")
    return amount


class LedgerStore:
    """
    Reads and writes ledger state.

    Every write of balance, log and opening balance goes out as one
    multi-key write, so storage never holds a balance without the
    transaction that produced it.
    """

    def __init__(self, storage: KeyValueStorageInterface):
        self._storage = storage

    async def read_balance(self) -> Optional[int]:
        """
        Read the stored balance.

        Returns:
            The balance, or None if none has been stored yet

        Raises:
            StorageUnavailableError: If storage cannot be read
            CorruptLedgerDataError: If the stored value is not a valid balance
        """
        value = await self._storage.get_item(BALANCE_KEY)
        if value is None:
            return None
        return _parse_amount(BALANCE_KEY, value)

    async def read_opening_balance(self) -> Optional[int]:
        """
        Read the stored opening balance (None if absent).

        May be negative when it was derived from inconsistent legacy data.
        """
        value = await self._storage.get_item(OPENING_BALANCE_KEY)
        if value is None:
            return None
        return _parse_amount(OPENING_BALANCE_KEY, value, allow_negative=True)

    async def read_transactions(self) -> list[Transaction]:
        """
        Read the transaction log in creation order.

        Raises:
            StorageUnavailableError: If storage cannot be read
            CorruptLedgerDataError: If the log is not a list of transactions
        """
        value = await self._storage.get_item(TRANSACTIONS_KEY)
        if not value:
            return []
        try:
            items = json.loads(value)
            if not isinstance(items, list):
                raise CorruptLedgerDataError(f"{TRANSACTIONS_KEY} is not a list")
            return [Transaction.model_validate(item) for item in items]
        except (json.JSONDecodeError, ValidationError) as e:
            raise CorruptLedgerDataError(f"Unreadable {TRANSACTIONS_KEY}: {e}")

    async def write_state(
        self,
        balance: int,
        transactions: list[Transaction],
        opening_balance: int,
    ) -> None:
        """
        Persist balance, transaction log and opening balance together.

        Raises:
            StorageUnavailableError: If the write fails (nothing is written)
        """
        await self._storage.set_items({
            BALANCE_KEY: str(balance),
            TRANSACTIONS_KEY: json.dumps([tx.to_storage_dict() for tx in transactions]),
            OPENING_BALANCE_KEY: str(opening_balance),
        })
