# _test/test_ledger.py
import asyncio

import pytest

from core.errors import InsufficientBalance, InvalidAmount, InvalidStatusTransition
from core.ledger import TransactionRecorder, WalletLedger
from core.storage import WriteBatch
from data.repositories import TransactionRepository, WalletRepository


async def _transactions(store, user_id):
    return await TransactionRepository(store).find([("user_id", "==", user_id)], [("created_at", "asc")])


async def test_wallet_is_created_lazily(store, clock):
    ledger = WalletLedger(store, clock)
    assert await WalletRepository(store).get("u1") is None

    summary = await ledger.balance("u1")
    assert summary == {
        "id": "u1", "userId": "u1", "balance": 0, "totalEarnings": 0,
        "totalWithdrawals": 0, "isActive": True,
    }


async def test_concurrent_wallet_creation_yields_one_wallet(store, clock):
    ledger = WalletLedger(store, clock)
    first, second = await asyncio.gather(
        ledger.get_or_create_wallet("u1"), ledger.get_or_create_wallet("u1")
    )
    assert first.id == second.id == "u1"
    assert await store.count("wallets") == 1


async def test_credit_then_debit_restores_balance(store, clock):
    ledger = WalletLedger(store, clock)
    await ledger.credit("u1", 70, "Seed")
    await ledger.credit("u1", 30, "Bonus")
    wallet, _ = await ledger.debit("u1", 30, "Spend")

    assert wallet.balance == 70
    assert wallet.total_earnings == 100
    assert wallet.total_withdrawals == 0


async def test_every_mutation_records_one_transaction(store, clock):
    ledger = WalletLedger(store, clock)
    await ledger.credit("u1", 50, "Seed", reference="ref-1")
    await ledger.debit("u1", 20, "Spend", reference="ref-2")

    transactions = await _transactions(store, "u1")
    assert [(t.type, t.amount, t.status) for t in transactions] == [
        ("credit", 50, "completed"),
        ("debit", 20, "completed"),
    ]
    found = await ledger.recorder.find_by_reference("u1", "ref-2")
    assert [t.amount for t in found] == [20]


async def test_overdraft_leaves_wallet_untouched(store, clock):
    ledger = WalletLedger(store, clock)
    await ledger.credit("u1", 30, "Seed")

    with pytest.raises(InsufficientBalance):
        await ledger.debit("u1", 31, "Too much")

    wallet = await WalletRepository(store).get("u1")
    assert wallet.balance == 30
    assert wallet.version == 2
    assert len(await _transactions(store, "u1")) == 1


async def test_withdrawal_debit_counts_towards_total_withdrawals(store, clock):
    ledger = WalletLedger(store, clock)
    await ledger.credit("u1", 100, "Seed")
    wallet, transaction = await ledger.debit("u1", 40, "Payout", type="withdrawal", withdrawal=True)
    assert wallet.balance == 60
    assert wallet.total_withdrawals == 40
    assert transaction.type == "withdrawal"


@pytest.mark.parametrize("amount", [0, -5, 1.5])
async def test_invalid_amounts(store, clock, amount):
    ledger = WalletLedger(store, clock)
    with pytest.raises(InvalidAmount):
        await ledger.credit("u1", amount, "Bad")
    with pytest.raises(InvalidAmount):
        await ledger.debit("u1", amount, "Bad")


async def test_concurrent_credits_are_both_applied(store, clock):
    ledger = WalletLedger(store, clock)
    await ledger.get_or_create_wallet("u1")
    await asyncio.gather(*(ledger.credit("u1", 10, "Parallel") for _ in range(4)))

    wallet = await WalletRepository(store).get("u1")
    assert wallet.balance == 40
    assert len(await _transactions(store, "u1")) == 4


async def test_transaction_status_only_leaves_pending(store, clock):
    recorder = TransactionRecorder(store, clock)
    pending = recorder.build("u1", "withdrawal", 10, "Payout", reference="w1", status="pending")
    batch = WriteBatch()
    recorder.stage_record(batch, pending)
    await store.commit(batch)

    updated = await recorder.update_status(pending.id, "completed")
    assert updated.status == "completed"

    with pytest.raises(InvalidStatusTransition):
        await recorder.update_status(pending.id, "cancelled")


async def test_history_is_newest_first_and_filtered(store, clock):
    ledger = WalletLedger(store, clock)
    await ledger.credit("u1", 10, "First")
    clock.advance(minutes=1)
    await ledger.credit("u1", 20, "Second")
    clock.advance(minutes=1)
    await ledger.debit("u1", 5, "Third")

    history = await ledger.recorder.history("u1", page=1, limit=2)
    assert [t["amount"] for t in history["items"]] == [5, 20]
    assert history["pagination"]["total"] == 3
    assert history["pagination"]["hasNext"] is True

    credits = await ledger.recorder.history("u1", type="credit")
    assert [t["amount"] for t in credits["items"]] == [20, 10]
