"""
Credit Ledger Models

The ledger keeps one balance and an append-only log of the transactions
that produced it. These models define the shape of both.

DESIGN DECISION: Transactions are frozen. The only change a transaction
ever sees is a deduct being marked FAILED when its charge is reversed,
and that is done by storing a copy (see Transaction.reversed()).
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from getanswer.models.ids import new_monotonic_id

MAX_REASON_LENGTH = 200


class TransactionKind(str, Enum):
    """What a transaction did to the balance."""
    DEDUCT = "deduct"
    ADD = "add"
    RESTORE = "restore"


class TransactionStatus(str, Enum):
    """
    Transaction status.

    A deduct is FAILED once its charge has been restored.
    ADD and RESTORE records are always SUCCESS.
    """
    SUCCESS = "success"
    FAILED = "failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Transaction(BaseModel):
    """
    Immutable audit record of one balance mutation.

    Every ledger operation that changes the balance creates exactly one.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str = Field(
        default_factory=new_monotonic_id,
        min_length=1,
        description="Unique, monotonic-time-derived identifier"
    )
    kind: TransactionKind
    amount: int = Field(
        ...,
        gt=0,
        description="Credits moved (always positive; kind gives the direction)"
    )
    reason: str = Field(
        default="",
        max_length=MAX_REASON_LENGTH,
        description="Free-text tag, e.g. 'inference' or 'purchase:credits_50'"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the transaction was created (UTC)"
    )
    status: TransactionStatus = TransactionStatus.SUCCESS
    reverses_id: Optional[str] = Field(
        default=None,
        description="For RESTORE records: the deduct this one reverses"
    )

    @property
    def is_reversible(self) -> bool:
        """Only a successful deduct can be restored."""
        return (
            self.kind == TransactionKind.DEDUCT
            and self.status == TransactionStatus.SUCCESS
        )

    @property
    def balance_effect(self) -> int:
        """
        Contribution of this record to the replayed balance.

        A failed deduct and its restore record both contribute zero.
        """
        if self.kind == TransactionKind.ADD:
            return self.amount
        if self.kind == TransactionKind.DEDUCT and self.status == TransactionStatus.SUCCESS:
            return -self.amount
        return 0

    def reversed(self) -> "Transaction":
        """Copy of this deduct, marked FAILED."""
        return self.model_copy(update={"status": TransactionStatus.FAILED})

    def to_storage_dict(self) -> dict:
        """JSON-compatible dict for the transaction log."""
        return self.model_dump(mode="json")


def replay_balance(opening_balance: int, transactions: list[Transaction]) -> int:
    """
    Balance implied by an opening balance and a transaction log.

    opening + sum(add) - sum(deduct whose status is still SUCCESS)
    """
    return opening_balance + sum(tx.balance_effect for tx in transactions)
