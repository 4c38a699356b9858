"""
Tests for the credit ledger.

Every test checks the two ledger guarantees as well as its own case:
the balance is never negative, and replaying the log from the opening
balance gives the current balance.
"""

import asyncio
import json

import pytest

from fakes import FailingStorage
from getanswer.audit import AuditLogger
from getanswer.config import CreditSettings
from getanswer.ledger import (
    BALANCE_KEY,
    OPENING_BALANCE_KEY,
    TRANSACTIONS_KEY,
    CreditLedger,
    InsufficientCreditsError,
    InvalidTransactionError,
    LedgerStore,
    LedgerUnavailableError,
)
from getanswer.models.audit import AuditEventType
from getanswer.models.ledger import Transaction, TransactionKind, TransactionStatus


def make_ledger(storage, **overrides) -> CreditLedger:
    settings = CreditSettings(**{
        "default_balance": 10,
        "inference_cost": 2,
        "max_transactions": 500,
        **overrides,
    })
    return CreditLedger(LedgerStore(storage), audit_logger=AuditLogger(), settings=settings)


class SlowStorage(FailingStorage):
    """Suspends on every write so concurrent operations interleave."""

    async def set_items(self, items: dict[str, str]) -> None:
        await asyncio.sleep(0.001)
        await super().set_items(items)


class TestLoad:
    """Tests for CreditLedger.load()."""

    def test_load_initializes_default_balance(self):
        """Test that an empty store starts at the default balance and persists it."""
        storage = FailingStorage()
        ledger = make_ledger(storage)

        assert asyncio.run(ledger.load()) == 10
        assert ledger.balance == 10
        assert storage.snapshot()[BALANCE_KEY] == "10"
        assert storage.snapshot()[OPENING_BALANCE_KEY] == "10"
        assert json.loads(storage.snapshot()[TRANSACTIONS_KEY]) == []

    def test_load_existing_balance(self):
        """Test that a stored balance is used as-is."""
        storage = FailingStorage({BALANCE_KEY: "7"})
        ledger = make_ledger(storage)

        assert asyncio.run(ledger.load()) == 7
        assert ledger.is_reconciled()

    def test_load_unparsable_balance_falls_back_to_default(self):
        """Test that a corrupt balance falls back to the default without overwriting it."""
        storage = FailingStorage({BALANCE_KEY: "not-a-number"})
        ledger = make_ledger(storage)

        assert asyncio.run(ledger.load()) == 10
        assert storage.snapshot()[BALANCE_KEY] == "not-a-number"
        types = [e.event_type for e in ledger._audit_logger.recent_events()]
        assert AuditEventType.LEDGER_LOAD_FALLBACK in types

    @pytest.mark.parametrize("stored", ["²", "1.5", "-4", ""])
    def test_load_odd_balance_text_falls_back_to_default(self, stored):
        """Test that any balance that is not a non-negative integer is treated as corrupt."""
        ledger = make_ledger(FailingStorage({BALANCE_KEY: stored}))

        assert asyncio.run(ledger.load()) == 10
        assert ledger.is_reconciled()

    def test_load_unparsable_balance_keeps_transaction_log(self):
        """Test that a corrupt balance does not cost the stored history of transactions."""
        storage = FailingStorage()

        async def scenario():
            first = make_ledger(storage)
            await first.load()
            await first.add(5, "ad_reward")
            await first.deduct(2, "inference")
            await storage.set_item(BALANCE_KEY, "garbage")

            second = make_ledger(storage)
            await second.load()
            await second.add(1, "ad_reward")
            return second

        ledger = asyncio.run(scenario())

        stored = json.loads(storage.snapshot()[TRANSACTIONS_KEY])
        assert [tx["kind"] for tx in stored] == ["add", "deduct", "add"]
        assert ledger.balance == 11
        assert ledger.is_reconciled()

    def test_load_read_failure_falls_back_to_default(self):
        """Test that unreadable storage never makes load() fail."""
        storage = FailingStorage({BALANCE_KEY: "3"})
        storage.fail_reads = True
        ledger = make_ledger(storage)

        assert asyncio.run(ledger.load()) == 10
        assert ledger.is_loaded

    def test_load_corrupt_log_is_treated_as_empty(self):
        """Test that an unreadable transaction log loads as an empty log."""
        storage = FailingStorage({BALANCE_KEY: "6", TRANSACTIONS_KEY: "{oops"})
        ledger = make_ledger(storage)

        assert asyncio.run(ledger.load()) == 6
        assert ledger.transactions() == []
        assert ledger.is_reconciled()

    def test_load_derives_opening_balance_for_legacy_data(self):
        """Test that a log without an opening balance still replays to the balance."""
        deduct = Transaction(kind=TransactionKind.DEDUCT, amount=2, reason="inference")
        storage = FailingStorage({
            BALANCE_KEY: "8",
            TRANSACTIONS_KEY: json.dumps([deduct.to_storage_dict()]),
        })
        ledger = make_ledger(storage)

        asyncio.run(ledger.load())

        assert ledger.opening_balance == 10
        assert ledger.expected_balance() == 8
        assert storage.snapshot()[OPENING_BALANCE_KEY] == "10"

    def test_balance_before_load_raises(self):
        """Test that reading the balance of an unloaded ledger is a programming error."""
        ledger = make_ledger(FailingStorage())
        with pytest.raises(RuntimeError):
            ledger.balance

    def test_reload_restores_state(self):
        """Test that a second ledger on the same storage sees the same state."""
        storage = FailingStorage()

        async def scenario():
            first = make_ledger(storage)
            await first.load()
            await first.deduct(2, "inference")
            await first.add(5, "ad_reward")

            second = make_ledger(storage)
            await second.load()
            return first, second

        first, second = asyncio.run(scenario())
        assert second.balance == first.balance == 13
        assert [tx.id for tx in second.transactions()] == [tx.id for tx in first.transactions()]
        assert second.is_reconciled()


class TestDeduct:
    """Tests for CreditLedger.deduct()."""

    def test_deduct_success(self):
        """Test that a deduct lowers the balance and records one transaction."""
        storage = FailingStorage()
        ledger = make_ledger(storage)

        async def scenario():
            await ledger.load()
            return await ledger.deduct(2, "inference")

        outcome = asyncio.run(scenario())

        assert outcome.ok
        assert ledger.balance == 8
        [tx] = ledger.transactions()
        assert tx.id == outcome.value
        assert tx.kind == TransactionKind.DEDUCT
        assert tx.amount == 2
        assert tx.status == TransactionStatus.SUCCESS
        assert storage.snapshot()[BALANCE_KEY] == "8"

    def test_deduct_insufficient_credits(self):
        """Test that an unaffordable deduct changes nothing."""
        storage = FailingStorage({BALANCE_KEY: "1"})
        ledger = make_ledger(storage)

        async def scenario():
            await ledger.load()
            writes_before = storage.writes
            outcome = await ledger.deduct(2, "inference")
            return outcome, writes_before

        outcome, writes_before = asyncio.run(scenario())

        assert not outcome.ok
        assert isinstance(outcome.error, InsufficientCreditsError)
        assert outcome.error.required == 2
        assert outcome.error.balance == 1
        assert ledger.balance == 1
        assert ledger.transactions() == []
        assert storage.writes == writes_before

    def test_deduct_exact_balance_reaches_zero(self):
        """Test that spending the whole balance is allowed."""
        ledger = make_ledger(FailingStorage({BALANCE_KEY: "2"}))

        outcome = asyncio.run(ledger.deduct(2, "inference"))

        assert outcome.ok
        assert ledger.balance == 0

    def test_deduct_loads_on_first_use(self):
        """Test that mutating an unloaded ledger loads it first."""
        ledger = make_ledger(FailingStorage())

        outcome = asyncio.run(ledger.deduct(2, "inference"))

        assert outcome.ok
        assert ledger.balance == 8

    @pytest.mark.parametrize("amount", [0, -1, -10])
    def test_non_positive_amount_raises(self, amount):
        """Test that non-positive amounts are rejected as argument errors."""
        ledger = make_ledger(FailingStorage())
        with pytest.raises(ValueError):
            asyncio.run(ledger.deduct(amount, "inference"))
        with pytest.raises(ValueError):
            asyncio.run(ledger.add(amount, "ad_reward"))

    def test_overlong_reason_raises(self):
        """Test that a reason over the stored limit is rejected before charging."""
        storage = FailingStorage()
        ledger = make_ledger(storage)
        with pytest.raises(ValueError):
            asyncio.run(ledger.deduct(2, "r" * 201))
        with pytest.raises(ValueError):
            asyncio.run(ledger.add(2, "r" * 201))
        assert storage.writes == 0

    def test_write_failure_leaves_state_unchanged(self):
        """Test that a failed write reports LedgerUnavailable and keeps the old state."""
        storage = FailingStorage()
        ledger = make_ledger(storage)

        async def scenario():
            await ledger.load()
            await ledger.add(5, "ad_reward")
            snapshot = storage.snapshot()
            storage.fail_writes = True
            outcome = await ledger.deduct(2, "inference")
            return outcome, snapshot

        outcome, snapshot = asyncio.run(scenario())

        assert not outcome.ok
        assert isinstance(outcome.error, LedgerUnavailableError)
        assert ledger.balance == 15
        assert len(ledger.transactions()) == 1
        assert storage.snapshot() == snapshot
        assert ledger.is_reconciled()

    def test_cancelled_caller_does_not_tear_the_write(self):
        """Test that a deduct finishes consistently even if its caller is cancelled."""
        storage = SlowStorage()
        ledger = make_ledger(storage)

        async def scenario():
            await ledger.load()
            task = asyncio.ensure_future(ledger.deduct(2, "inference"))
            await asyncio.sleep(0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            await asyncio.sleep(0.05)

        asyncio.run(scenario())

        assert ledger.balance == 8
        assert storage.snapshot()[BALANCE_KEY] == "8"
        assert ledger.is_reconciled()


class TestAdd:
    """Tests for CreditLedger.add()."""

    def test_add_success(self):
        """Test that add raises the balance and records one transaction."""
        ledger = make_ledger(FailingStorage())

        outcome = asyncio.run(ledger.add(50, "purchase:credits_50"))

        assert outcome.ok
        assert ledger.balance == 60
        [tx] = ledger.transactions()
        assert tx.kind == TransactionKind.ADD
        assert tx.reason == "purchase:credits_50"

    def test_add_then_deduct_returns_to_initial_balance(self):
        """Test that add(n) followed by deduct(n) is a round trip."""
        ledger = make_ledger(FailingStorage())

        async def scenario():
            await ledger.load()
            await ledger.add(7, "ad_reward")
            await ledger.deduct(7, "inference")

        asyncio.run(scenario())

        assert ledger.balance == 10
        assert ledger.is_reconciled()

    def test_add_write_failure(self):
        """Test that add reports LedgerUnavailable when storage is read-only."""
        storage = FailingStorage()
        ledger = make_ledger(storage)

        async def scenario():
            await ledger.load()
            storage.fail_writes = True
            return await ledger.add(10, "ad_reward")

        outcome = asyncio.run(scenario())

        assert isinstance(outcome.error, LedgerUnavailableError)
        assert ledger.balance == 10


class TestRestore:
    """Tests for CreditLedger.restore()."""

    def test_restore_reverses_deduct(self):
        """Test that restore credits back and links the records."""
        ledger = make_ledger(FailingStorage())

        async def scenario():
            await ledger.load()
            charged = await ledger.deduct(2, "inference")
            restored = await ledger.restore(charged.value)
            return charged, restored

        charged, restored = asyncio.run(scenario())

        assert restored.ok
        assert ledger.balance == 10
        original, restore_tx = ledger.transactions()
        assert original.id == charged.value
        assert original.status == TransactionStatus.FAILED
        assert restore_tx.kind == TransactionKind.RESTORE
        assert restore_tx.reverses_id == charged.value
        assert restore_tx.amount == 2
        assert restored.value == restore_tx
        assert ledger.is_reconciled()

    def test_restore_twice_credits_once(self):
        """Test that restore is idempotent per transaction."""
        ledger = make_ledger(FailingStorage())

        async def scenario():
            await ledger.load()
            charged = await ledger.deduct(2, "inference")
            await ledger.restore(charged.value)
            return await ledger.restore(charged.value)

        second = asyncio.run(scenario())

        assert not second.ok
        assert isinstance(second.error, InvalidTransactionError)
        assert ledger.balance == 10
        assert len(ledger.transactions()) == 2

    def test_restore_with_long_reason(self):
        """Test that a charge with a reason at the length limit can still be refunded."""
        ledger = make_ledger(FailingStorage())

        async def scenario():
            await ledger.load()
            charged = await ledger.deduct(2, "r" * 195)
            return await ledger.restore(charged.value)

        restored = asyncio.run(scenario())

        assert restored.ok
        assert restored.value.reason.startswith("restore:rrr")
        assert len(restored.value.reason) == 200
        assert ledger.balance == 10

    def test_restore_unknown_transaction(self):
        """Test that restoring an unknown id fails."""
        ledger = make_ledger(FailingStorage())

        outcome = asyncio.run(ledger.restore("123"))

        assert isinstance(outcome.error, InvalidTransactionError)
        assert outcome.error.transaction_id == "123"
        assert ledger.balance == 10

    def test_restore_rejects_add(self):
        """Test that only deducts can be restored."""
        ledger = make_ledger(FailingStorage())

        async def scenario():
            added = await ledger.add(5, "ad_reward")
            return await ledger.restore(added.value)

        outcome = asyncio.run(scenario())

        assert isinstance(outcome.error, InvalidTransactionError)
        assert ledger.balance == 15

    def test_restore_write_failure_keeps_charge(self):
        """Test that a failed refund write leaves the deduct restorable."""
        storage = FailingStorage()
        ledger = make_ledger(storage)

        async def scenario():
            charged = await ledger.deduct(2, "inference")
            storage.fail_writes = True
            failed = await ledger.restore(charged.value)
            storage.fail_writes = False
            retried = await ledger.restore(charged.value)
            return failed, retried

        failed, retried = asyncio.run(scenario())

        assert isinstance(failed.error, LedgerUnavailableError)
        assert retried.ok
        assert ledger.balance == 10


class TestInvariants:
    """Tests for the replay invariant, retention and concurrency."""

    def test_replay_holds_after_every_operation(self):
        """Test that balance == opening + adds - successful deducts throughout."""
        ledger = make_ledger(FailingStorage())

        async def scenario():
            await ledger.load()
            charged = []
            steps = [
                ("deduct", 2), ("deduct", 2), ("add", 10), ("deduct", 3),
                ("restore", 0), ("deduct", 50), ("add", 1), ("restore", 2),
                ("deduct", 4), ("restore", 0),
            ]
            for op, value in steps:
                if op == "deduct":
                    outcome = await ledger.deduct(value, "inference")
                    if outcome.ok:
                        charged.append(outcome.value)
                elif op == "add":
                    await ledger.add(value, "ad_reward")
                else:
                    await ledger.restore(charged[value])
                assert ledger.balance >= 0
                assert ledger.is_reconciled()

        asyncio.run(scenario())

        # 10 -2 -2 +10 -3 +2(restore first) +1 +3(restore third) -4 = 15
        assert ledger.balance == 15

    def test_retention_folds_dropped_records_into_opening_balance(self):
        """Test that the log is capped and the replay invariant survives trimming."""
        storage = FailingStorage()
        ledger = make_ledger(storage, max_transactions=10)

        async def scenario():
            for _ in range(15):
                await ledger.add(1, "ad_reward")

        asyncio.run(scenario())

        assert len(ledger.transactions()) == 10
        assert ledger.balance == 25
        assert ledger.opening_balance == 15
        assert ledger.is_reconciled()
        assert storage.snapshot()[OPENING_BALANCE_KEY] == "15"
        assert len(json.loads(storage.snapshot()[TRANSACTIONS_KEY])) == 10

    def test_concurrent_deducts_never_overdraw(self):
        """Test that interleaved charges cannot take the balance below zero."""
        ledger = make_ledger(SlowStorage())

        async def scenario():
            await ledger.load()
            return await asyncio.gather(*(ledger.deduct(2, "inference") for _ in range(10)))

        outcomes = asyncio.run(scenario())

        assert sum(1 for o in outcomes if o.ok) == 5
        assert ledger.balance == 0
        assert len(ledger.transactions()) == 5
        assert ledger.is_reconciled()

    def test_transaction_ids_are_unique_and_increasing(self):
        """Test that ids issued in quick succession never collide."""
        ledger = make_ledger(FailingStorage())

        async def scenario():
            for _ in range(20):
                await ledger.add(1, "ad_reward")

        asyncio.run(scenario())

        ids = [int(tx.id) for tx in ledger.transactions()]
        assert ids == sorted(ids)
        assert len(set(ids)) == len(ids)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
