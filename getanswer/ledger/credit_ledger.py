"""
Credit Ledger

Owns the spendable credit balance and the transaction log behind it.

GUARANTEES:
1. The balance is never negative
2. Every balance change has exactly one transaction record
3. balance == opening balance + sum(add) - sum(deduct still SUCCESS)
4. Nothing is reported as done before it is durable

DESIGN DECISION: Operations return Success/Failure outcomes instead of
raising. The in-memory balance is only updated after the durable write
has succeeded, so a failed write leaves memory exactly as it was.

CONCURRENCY: All mutations run one at a time under an asyncio.Lock,
and each mutation is shielded from cancellation once it starts, so a
caller that gives up cannot leave storage and memory disagreeing.
"""

import asyncio
from typing import Optional
from uuid import UUID

import structlog

from getanswer.audit import AuditLogger
from getanswer.config import CreditSettings, get_settings
from getanswer.ledger.store import LedgerStore
from getanswer.models.audit import AuditEventBuilder
from getanswer.models.ids import advance_id_floor
from getanswer.models.ledger import (
    MAX_REASON_LENGTH,
    Transaction,
    TransactionKind,
    replay_balance,
)
from getanswer.models.result import Failure, Result, Success
from getanswer.services.storage import StorageError

logger = structlog.get_logger(__name__)


# =============================================================================
# ERRORS
# =============================================================================

class LedgerError(Exception):
    """Base exception for ledger outcomes."""
    pass


class InsufficientCreditsError(LedgerError):
    """Balance is lower than the amount requested."""

    def __init__(self, required: int, balance: int):
        self.required = required
        self.balance = balance
        super().__init__(
            f"Insufficient credits: {required} required, {balance} available"
        )


class InvalidTransactionError(LedgerError):
    """Restore target is missing, not a deduct, or already restored."""

    def __init__(self, transaction_id: str, reason: str):
        self.transaction_id = transaction_id
        self.reason = reason
        super().__init__(f"Cannot restore transaction {transaction_id}: {reason}")


class LedgerUnavailableError(LedgerError):
    """Ledger state could not be written to storage."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Ledger unavailable during {operation}: {cause}")


# =============================================================================
# LEDGER
# =============================================================================

class CreditLedger:
    """
    Client-local credit ledger.

    Usage:
        ledger = CreditLedger(LedgerStore(storage))
        await ledger.load()
        outcome = await ledger.deduct(2, "inference")
        if outcome.ok:
            ...
            await ledger.restore(outcome.value)
    """

    def __init__(
        self,
        store: LedgerStore,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[CreditSettings] = None,
    ):
        self._store = store
        self._audit_logger = audit_logger or AuditLogger()
        self._settings = settings or get_settings().credits
        self._lock = asyncio.Lock()

        self._balance: int = 0
        self._opening_balance: int = 0
        self._transactions: list[Transaction] = []
        self._loaded = False

    # -------------------------------------------------------------------------
    # Read access
    # -------------------------------------------------------------------------

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def balance(self) -> int:
        """Current balance. Call load() first."""
        if not self._loaded:
            raise RuntimeError("Ledger not loaded; call load() first")
        return self._balance

    @property
    def opening_balance(self) -> int:
        return self._opening_balance

    def transactions(self) -> list[Transaction]:
        """Transaction log in creation order."""
        return list(self._transactions)

    def find_transaction(self, transaction_id: str) -> Optional[Transaction]:
        for tx in self._transactions:
            if tx.id == transaction_id:
                return tx
        return None

    def expected_balance(self) -> int:
        """Balance obtained by replaying the log from the opening balance."""
        return replay_balance(self._opening_balance, self._transactions)

    def is_reconciled(self) -> bool:
        return self.expected_balance() == self._balance

    def can_afford(self, amount: int) -> bool:
        return self._loaded and self._balance >= amount

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    async def load(self) -> int:
        """
        Load the balance and transaction log from storage.

        If no balance is stored, the default starting balance is used and
        persisted. Never fails: unreadable storage falls back to the
        default balance and the condition is logged.

        Returns:
            The loaded balance
        """
        async with self._lock:
            return await self._load_locked()

    async def _load_locked(self) -> int:
        default = self._settings.default_balance

        try:
            transactions = await self._store.read_transactions()
        except StorageError as e:
            logger.warning("ledger_transactions_unreadable", error=str(e))
            transactions = []

        for tx in transactions:
            advance_id_floor(tx.id)

        try:
            balance = await self._store.read_balance()
        except StorageError as e:
            await self._audit_logger.log(
                AuditEventBuilder.ledger_load_fallback(default, str(e))
            )
            # Keep the log; the opening balance absorbs the difference
            self._set_state(default, transactions, default - replay_balance(0, transactions))
            return default

        needs_write = False
        if balance is None:
            balance = default
            needs_write = True

        try:
            opening = await self._store.read_opening_balance()
        except StorageError as e:
            logger.warning("ledger_opening_balance_unreadable", error=str(e))
            opening = None

        if opening is None or replay_balance(opening, transactions) != balance:
            # Derive the opening balance so the kept log replays to the balance
            opening = balance - replay_balance(0, transactions)
            needs_write = True

        if needs_write:
            try:
                await self._store.write_state(balance, transactions, opening)
            except StorageError as e:
                logger.warning("ledger_initial_write_failed", error=str(e))

        self._set_state(balance, transactions, opening)
        await self._audit_logger.log(
            AuditEventBuilder.ledger_loaded(balance, len(transactions))
        )
        return balance

    def _set_state(
        self,
        balance: int,
        transactions: list[Transaction],
        opening_balance: int,
    ) -> None:
        self._balance = balance
        self._transactions = transactions
        self._opening_balance = opening_balance
        self._loaded = True

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    @staticmethod
    def _check_arguments(amount: int, reason: str) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValueError(f"Amount must be a positive integer, got {amount!r}")
        if len(reason) > MAX_REASON_LENGTH:
            raise ValueError(f"Reason is longer than {MAX_REASON_LENGTH} characters")

    def _apply_retention(
        self,
        transactions: list[Transaction],
    ) -> tuple[list[Transaction], int]:
        """
        Trim the log to max_transactions, oldest first.

        The balance effect of dropped records is folded into the opening
        balance, so the kept log still replays to the current balance.
        """
        overflow = len(transactions) - self._settings.max_transactions
        if overflow <= 0:
            return transactions, self._opening_balance
        dropped, kept = transactions[:overflow], transactions[overflow:]
        return kept, replay_balance(self._opening_balance, dropped)

    async def _persist(
        self,
        operation: str,
        balance: int,
        transactions: list[Transaction],
        correlation_id: Optional[UUID],
    ) -> Optional[LedgerUnavailableError]:
        """Write new state, then commit it to memory. Returns the error on failure."""
        kept, opening = self._apply_retention(transactions)
        try:
            await self._store.write_state(balance, kept, opening)
        except StorageError as e:
            await self._audit_logger.log(
                AuditEventBuilder.ledger_unavailable(operation, str(e), correlation_id)
            )
            return LedgerUnavailableError(operation, e)
        self._set_state(balance, kept, opening)
        return None

    async def deduct(
        self,
        amount: int,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> Result[str, LedgerError]:
        """
        Charge credits.

        Args:
            amount: Credits to charge (positive)
            reason: Free-text tag recorded on the transaction
            correlation_id: Pipeline run this charge belongs to

        Returns:
            Success(transaction_id), or Failure with InsufficientCreditsError
            (nothing recorded) or LedgerUnavailableError (nothing changed)

        Raises:
            ValueError: If amount is not positive or reason is too long
        """
        self._check_arguments(amount, reason)
        return await asyncio.shield(self._deduct(amount, reason, correlation_id))

    async def _deduct(
        self,
        amount: int,
        reason: str,
        correlation_id: Optional[UUID],
    ) -> Result[str, LedgerError]:
        async with self._lock:
            if not self._loaded:
                await self._load_locked()

            if self._balance < amount:
                await self._audit_logger.log(
                    AuditEventBuilder.insufficient_credits(amount, self._balance, correlation_id)
                )
                return Failure(InsufficientCreditsError(amount, self._balance))

            tx = Transaction(kind=TransactionKind.DEDUCT, amount=amount, reason=reason)
            new_balance = self._balance - amount
            error = await self._persist(
                "deduct", new_balance, [*self._transactions, tx], correlation_id
            )
            if error:
                return Failure(error)

            await self._audit_logger.log(
                AuditEventBuilder.credits_deducted(
                    tx.id, amount, reason, new_balance, correlation_id
                )
            )
            return Success(tx.id)

    async def add(
        self,
        amount: int,
        reason: str,
    ) -> Result[str, LedgerError]:
        """
        Credit the balance (purchases, ad rewards).

        Returns:
            Success(transaction_id), or Failure(LedgerUnavailableError)
        """
        self._check_arguments(amount, reason)
        return await asyncio.shield(self._add(amount, reason))

    async def _add(self, amount: int, reason: str) -> Result[str, LedgerError]:
        async with self._lock:
            if not self._loaded:
                await self._load_locked()

            tx = Transaction(kind=TransactionKind.ADD, amount=amount, reason=reason)
            new_balance = self._balance + amount
            error = await self._persist(
                "add", new_balance, [*self._transactions, tx], None
            )
            if error:
                return Failure(error)

            await self._audit_logger.log(
                AuditEventBuilder.credits_added(tx.id, amount, reason, new_balance)
            )
            return Success(tx.id)

    async def restore(
        self,
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> Result[Transaction, LedgerError]:
        """
        Reverse a deduct.

        Credits the amount back, marks the original deduct FAILED and
        records a RESTORE transaction pointing at it.

        Returns:
            Success(restore_transaction), or Failure with
            InvalidTransactionError (unknown id, not a deduct, or already
            restored) or LedgerUnavailableError
        """
        return await asyncio.shield(self._restore(transaction_id, correlation_id))

    async def _restore(
        self,
        transaction_id: str,
        correlation_id: Optional[UUID],
    ) -> Result[Transaction, LedgerError]:
        async with self._lock:
            if not self._loaded:
                await self._load_locked()

            index = next(
                (i for i, tx in enumerate(self._transactions) if tx.id == transaction_id),
                None,
            )
            if index is None:
                return Failure(InvalidTransactionError(transaction_id, "no such transaction"))

            original = self._transactions[index]
            if original.kind != TransactionKind.DEDUCT:
                return Failure(InvalidTransactionError(
                    transaction_id, f"{original.kind.value} transactions cannot be restored"
                ))
            if not original.is_reversible:
                return Failure(InvalidTransactionError(transaction_id, "already restored"))

            restore_tx = Transaction(
                kind=TransactionKind.RESTORE,
                amount=original.amount,
                reason=f"restore:{original.reason}"[:MAX_REASON_LENGTH],
                reverses_id=original.id,
            )
            updated = list(self._transactions)
            updated[index] = original.reversed()
            updated.append(restore_tx)

            new_balance = self._balance + original.amount
            error = await self._persist("restore", new_balance, updated, correlation_id)
            if error:
                return Failure(error)

            await self._audit_logger.log(
                AuditEventBuilder.credits_restored(
                    restore_tx.id, original.id, original.amount, new_balance, correlation_id
                )
            )
            return Success(restore_tx)
