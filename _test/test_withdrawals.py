# _test/test_withdrawals.py
import pytest

from core.errors import AccessDenied, InsufficientBalance, InvalidAmount, InvalidStatusTransition, NotFound
from core.withdrawals import WithdrawalService
from data.repositories import TransactionRepository, WalletRepository


@pytest.fixture
def withdrawals(store, clock):
    return WithdrawalService(store, clock)


async def _withdrawal_transaction(store, user_id, withdrawal_id):
    [transaction] = await TransactionRepository(store).by_reference(user_id, withdrawal_id)
    return transaction


async def test_request_leaves_balance_until_approval(store, withdrawals, fund):
    await fund("u1", 100)
    result = await withdrawals.request("u1", 60, "upi", {"vpa": "u1@bank"})

    withdrawal = result["withdrawal"]
    assert withdrawal["status"] == "pending"
    assert "paymentDetails" not in withdrawal
    assert (await WalletRepository(store).get("u1")).balance == 100

    transaction = await _withdrawal_transaction(store, "u1", withdrawal["id"])
    assert transaction.id == result["transactionId"]
    assert (transaction.type, transaction.status, transaction.amount) == ("withdrawal", "pending", 60)


async def test_approve_then_complete(store, withdrawals, fund):
    await fund("u1", 100)
    withdrawal_id = (await withdrawals.request("u1", 60, "upi"))["withdrawal"]["id"]

    approved = await withdrawals.process(withdrawal_id, "approved", admin_notes="ok")
    assert approved["status"] == "approved"
    assert approved["adminNotes"] == "ok"

    wallet = await WalletRepository(store).get("u1")
    assert wallet.balance == 40
    assert wallet.total_withdrawals == 60
    assert (await _withdrawal_transaction(store, "u1", withdrawal_id)).status == "completed"

    completed = await withdrawals.process(withdrawal_id, "completed")
    assert completed["status"] == "completed"
    assert completed["processedDate"] is not None
    # Completing does not debit a second time
    assert (await WalletRepository(store).get("u1")).balance == 40


async def test_reject_cancels_the_transaction(store, withdrawals, fund):
    await fund("u1", 100)
    withdrawal_id = (await withdrawals.request("u1", 60, "upi"))["withdrawal"]["id"]

    rejected = await withdrawals.process(withdrawal_id, "rejected", rejection_reason="Bad details")
    assert rejected["status"] == "rejected"
    assert rejected["rejectionReason"] == "Bad details"
    assert (await WalletRepository(store).get("u1")).balance == 100
    assert (await _withdrawal_transaction(store, "u1", withdrawal_id)).status == "cancelled"

    with pytest.raises(InvalidStatusTransition):
        await withdrawals.process(withdrawal_id, "approved")


@pytest.mark.parametrize("status", ["completed", "processing", "pending", "bogus"])
async def test_invalid_transitions_from_pending(withdrawals, fund, status):
    await fund("u1", 100)
    withdrawal_id = (await withdrawals.request("u1", 10, "upi"))["withdrawal"]["id"]
    with pytest.raises(InvalidStatusTransition):
        await withdrawals.process(withdrawal_id, status)


async def test_request_needs_balance(store, withdrawals, fund):
    await fund("u1", 50)
    with pytest.raises(InsufficientBalance):
        await withdrawals.request("u1", 51, "upi")
    with pytest.raises(InvalidAmount):
        await withdrawals.request("u1", 0, "upi")
    assert await TransactionRepository(store).count([("type", "==", "withdrawal")]) == 0


async def test_approval_rechecks_balance(store, withdrawals, fund):
    await fund("u1", 100)
    first = (await withdrawals.request("u1", 80, "upi"))["withdrawal"]["id"]
    second = (await withdrawals.request("u1", 80, "upi"))["withdrawal"]["id"]

    await withdrawals.process(first, "approved")
    with pytest.raises(InsufficientBalance):
        await withdrawals.process(second, "approved")

    assert (await WalletRepository(store).get("u1")).balance == 20
    assert (await withdrawals.get("u1", second))["status"] == "pending"


async def test_owner_only_reads(withdrawals, fund):
    await fund("u1", 100)
    withdrawal_id = (await withdrawals.request("u1", 10, "upi"))["withdrawal"]["id"]
    assert (await withdrawals.get("u1", withdrawal_id))["amount"] == 10
    with pytest.raises(AccessDenied):
        await withdrawals.get("u2", withdrawal_id)
    with pytest.raises(NotFound):
        await withdrawals.process("missing", "approved")


async def test_history_and_admin_listing(clock, withdrawals, fund):
    await fund("u1", 100)
    await fund("u2", 100)
    await withdrawals.request("u1", 10, "upi")
    clock.advance(minutes=1)
    second = (await withdrawals.request("u1", 20, "bank_transfer"))["withdrawal"]["id"]
    await withdrawals.request("u2", 30, "upi")
    await withdrawals.process(second, "approved")

    mine = await withdrawals.history("u1")
    assert [w["amount"] for w in mine["items"]] == [20, 10]
    pending = await withdrawals.history("u1", status="pending")
    assert [w["amount"] for w in pending["items"]] == [10]

    everyone = await withdrawals.all_requests(status="pending")
    assert everyone["pagination"]["total"] == 2
