# _test/test_investments.py
import asyncio

import pytest

from core.errors import (
    AccessDenied, AlreadyClaimedToday, DuplicateActiveInvestment, InsufficientBalance,
    InvestmentNotActive, NotFound,
)
from core.investments import InvestmentScheduler
from data.repositories import InvestmentRepository, TransactionRepository, WalletRepository


@pytest.fixture
def scheduler(store, clock, config):
    return InvestmentScheduler(store, clock, config)


async def _buy_bass(scheduler, fund, user_id="u1"):
    await fund(user_id, 2000)
    return await scheduler.purchase(user_id, "bass")


def test_plans_sorted_by_joining_amount(scheduler):
    plans = scheduler.list_plans()
    amounts = [p["joiningAmount"] for p in plans]
    assert amounts == sorted(amounts)
    assert plans[0]["id"] == "bass"
    assert [t["level"] for t in scheduler.level_structure()][:3] == [1, 2, 3]


async def test_purchase_debits_joining_amount(store, clock, scheduler, fund):
    result = await _buy_bass(scheduler, fund)

    investment = result["investment"]
    assert investment["status"] == "active"
    assert investment["currentLevel"] == 1
    assert investment["totalReferrals"] == 0
    assert investment["investmentAmount"] == 1499
    assert result["wallet"]["balance"] == 501

    stored = await InvestmentRepository(store).get(investment["id"])
    assert (stored.expiry_date - stored.start_date).days == 750
    debits = await TransactionRepository(store).by_reference("u1", investment["id"])
    assert [(t.type, t.amount) for t in debits] == [("debit", 1499)]


async def test_purchase_without_funds(store, scheduler, fund):
    await fund("u1", 100)
    with pytest.raises(InsufficientBalance):
        await scheduler.purchase("u1", "bass")
    assert (await WalletRepository(store).get("u1")).balance == 100
    assert await InvestmentRepository(store).count() == 0


async def test_second_active_purchase_is_rejected(store, scheduler, fund):
    await _buy_bass(scheduler, fund)
    with pytest.raises(DuplicateActiveInvestment):
        await scheduler.purchase("u1", "bass")
    assert (await WalletRepository(store).get("u1")).balance == 501


async def test_unknown_plan(scheduler):
    with pytest.raises(NotFound):
        await scheduler.purchase("u1", "ruby")


async def test_claim_once_per_calendar_day(store, clock, scheduler, fund):
    investment_id = (await _buy_bass(scheduler, fund))["investment"]["id"]

    # The purchase day counts as already paid out
    with pytest.raises(AlreadyClaimedToday):
        await scheduler.claim_daily_earning("u1", investment_id)

    clock.advance(days=1)
    result = await scheduler.claim_daily_earning("u1", investment_id)
    assert result["amount"] == 25
    assert result["wallet"]["balance"] == 526
    assert result["investment"]["totalEarnings"] == 25

    clock.advance(hours=10)
    with pytest.raises(AlreadyClaimedToday):
        await scheduler.claim_daily_earning("u1", investment_id)

    earnings = await TransactionRepository(store).history("u1", "earning", None, 1, 10)
    assert [t["amount"] for t in earnings["items"]] == [25]


async def test_concurrent_claims_pay_once(store, clock, scheduler, fund):
    investment_id = (await _buy_bass(scheduler, fund))["investment"]["id"]
    clock.advance(days=1)

    results = await asyncio.gather(
        scheduler.claim_daily_earning("u1", investment_id),
        scheduler.claim_daily_earning("u1", investment_id),
        return_exceptions=True,
    )
    assert sum(isinstance(r, dict) for r in results) == 1
    assert sum(isinstance(r, AlreadyClaimedToday) for r in results) == 1
    assert (await WalletRepository(store).get("u1")).balance == 526


async def test_claim_on_someone_elses_investment(scheduler, fund, clock):
    investment_id = (await _buy_bass(scheduler, fund))["investment"]["id"]
    clock.advance(days=1)
    with pytest.raises(AccessDenied):
        await scheduler.claim_daily_earning("u2", investment_id)


async def test_expired_investment_cannot_be_claimed(store, clock, scheduler, fund):
    investment_id = (await _buy_bass(scheduler, fund))["investment"]["id"]
    clock.advance(days=751)

    with pytest.raises(InvestmentNotActive):
        await scheduler.claim_daily_earning("u1", investment_id)
    assert (await InvestmentRepository(store).get(investment_id)).status == "expired"
    assert await scheduler.get_active_investment("u1") is None


async def test_purchase_replaces_an_expired_investment(store, clock, scheduler, fund):
    old_id = (await _buy_bass(scheduler, fund))["investment"]["id"]
    clock.advance(days=751)
    await fund("u1", 1000)

    result = await scheduler.purchase("u1", "bass")
    assert (await InvestmentRepository(store).get(old_id)).status == "expired"
    assert result["investment"]["id"] != old_id
    assert len(await scheduler.history("u1")) == 2


async def test_cancel(store, clock, scheduler, fund):
    investment_id = (await _buy_bass(scheduler, fund))["investment"]["id"]
    cancelled = await scheduler.cancel("u1", investment_id)
    assert cancelled["status"] == "cancelled"

    clock.advance(days=1)
    with pytest.raises(InvestmentNotActive):
        await scheduler.claim_daily_earning("u1", investment_id)
    with pytest.raises(InvestmentNotActive):
        await scheduler.cancel("u1", investment_id)


async def test_level_stays_one_without_referrals(scheduler, fund, clock):
    investment_id = (await _buy_bass(scheduler, fund))["investment"]["id"]
    clock.advance(days=100)
    result = await scheduler.claim_daily_earning("u1", investment_id)
    assert result["investment"]["currentLevel"] == 1
    assert result["levelIncreased"] is False


async def test_referrals_and_days_raise_level(scheduler, fund, clock):
    await _buy_bass(scheduler, fund)
    for _ in range(6):
        await scheduler.register_referral("u1")

    active = await scheduler.get_active_investment("u1")
    assert active["investment"]["currentLevel"] == 1
    assert active["investment"]["totalReferrals"] == 6

    clock.advance(days=30)
    active = await scheduler.get_active_investment("u1")
    assert active["investment"]["currentLevel"] == 2
    assert active["daysSinceStart"] == 30
    assert [t["level"] for t in active["availableLevels"]] == [1, 2]
    assert active["nextLevel"]["level"] == 3


async def test_a_started_day_counts_towards_the_day_gate(scheduler, fund, clock):
    await _buy_bass(scheduler, fund)
    for _ in range(6):
        await scheduler.register_referral("u1")

    clock.advance(days=21)
    active = await scheduler.get_active_investment("u1")
    assert active["daysSinceStart"] == 21
    assert active["investment"]["currentLevel"] == 1

    clock.advance(hours=1)
    active = await scheduler.get_active_investment("u1")
    assert active["daysSinceStart"] == 22
    assert active["investment"]["currentLevel"] == 2


def test_elapsed_days_rounds_partial_days_up(clock):
    start = clock.now()
    assert clock.elapsed_days(start, start) == 0
    assert clock.elapsed_days(start, clock.advance(minutes=1)) == 1
    assert clock.elapsed_days(start, clock.advance(days=1)) == 2
    assert clock.elapsed_days(clock.now(), start) == 0
    assert clock.elapsed_days(start.replace(tzinfo=None), start) == 0
    assert active["canClaimToday"] is True


async def test_active_investment_reports_claim_state(scheduler, fund, clock):
    assert await scheduler.get_active_investment("u1") is None
    investment_id = (await _buy_bass(scheduler, fund))["investment"]["id"]

    active = await scheduler.get_active_investment("u1")
    assert active["plan"]["id"] == "bass"
    assert active["canClaimToday"] is False

    clock.advance(days=1)
    assert (await scheduler.get_active_investment("u1"))["canClaimToday"] is True
    await scheduler.claim_daily_earning("u1", investment_id)
    assert (await scheduler.get_active_investment("u1"))["canClaimToday"] is False


async def test_referral_without_investment(scheduler):
    with pytest.raises(NotFound):
        await scheduler.register_referral("u1")
