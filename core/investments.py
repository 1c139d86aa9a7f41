# core/investments.py
"""
Investment plans: purchase, once-per-day payout claims and the
referral-gated level tiers.

An investment moves active -> expired (past its expiry date) or
active -> cancelled; both are terminal. Payouts are pulled by the user,
there is no background payout job.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from data.models import UserInvestment
from data.repositories import InvestmentRepository

from .clock import Clock
from .config import EngineConfig, InvestmentPlan
from .errors import (
    AccessDenied, AlreadyClaimedToday, DuplicateActiveInvestment, InvestmentNotActive, NotFound,
)
from .game_logic import available_tiers, compute_investment_level
from .ledger import WalletLedger
from .notifications import NotificationService
from .storage import DocumentStore, WriteBatch, new_document_id, run_atomic

logger = logging.getLogger(__name__)


class InvestmentScheduler:
    def __init__(self, store: DocumentStore, clock: Optional[Clock] = None,
                 config: Optional[EngineConfig] = None):
        self.store = store
        self.clock = clock or Clock()
        self.config = config or EngineConfig()
        self.investments = InvestmentRepository(store)
        self.ledger = WalletLedger(store, self.clock)
        self.notifier = NotificationService(store, self.clock)

    # --- Static tables ---

    def list_plans(self) -> List[Dict[str, Any]]:
        plans = [p for p in self.config.investment_plans if p.is_active]
        return [p.summary() for p in sorted(plans, key=lambda p: p.joining_amount)]

    def level_structure(self) -> List[Dict[str, Any]]:
        return [t.summary() for t in sorted(self.config.level_structure, key=lambda t: t.level)]

    def _plan(self, plan_id: str) -> InvestmentPlan:
        plan = self.config.get_plan(plan_id)
        if plan is None or not plan.is_active:
            raise NotFound("Investment plan not found")
        return plan

    # --- State helpers ---

    def _is_past_expiry(self, investment: UserInvestment, now: datetime) -> bool:
        return investment.status == "active" and now >= investment.expiry_date

    def _stage_expire(self, batch: WriteBatch, investment: UserInvestment, now: datetime) -> None:
        investment.status = "expired"
        investment.updated_at = now
        self.investments.stage_save(batch, investment, "status", "updated_at")

    def _raise_level(self, investment: UserInvestment, now: datetime) -> bool:
        """Recompute the tier; only ever moves it up. Returns True when it moved."""
        elapsed = self.clock.elapsed_days(investment.start_date, now)
        level = compute_investment_level(
            self.config.level_structure, elapsed, investment.total_referrals
        )
        if level > investment.current_level:
            logger.info(f"[INVESTMENT] {investment.id} level {investment.current_level} -> {level}")
            investment.current_level = level
            return True
        return False

    async def _expire_if_due(self, investment: UserInvestment, now: datetime) -> UserInvestment:
        if self._is_past_expiry(investment, now):
            batch = WriteBatch()
            self._stage_expire(batch, investment, now)
            await self.store.commit(batch)
            investment.version += 1
            logger.info(f"[INVESTMENT] {investment.id} expired")
        return investment

    async def _owned(self, user_id: str, investment_id: str) -> UserInvestment:
        investment = await self.investments.require(investment_id, "Investment")
        if investment.user_id != user_id:
            raise AccessDenied()
        return investment

    # --- Operations ---

    async def purchase(self, user_id: str, plan_id: str) -> Dict[str, Any]:
        plan = self._plan(plan_id)

        async def operation():
            now = self.clock.now()
            batch = WriteBatch()

            current = await self.investments.active_for_user(user_id)
            if current is not None:
                if not self._is_past_expiry(current, now):
                    raise DuplicateActiveInvestment()
                self._stage_expire(batch, current, now)

            wallet = await self.ledger.get_or_create_wallet(user_id)
            investment = UserInvestment(
                id=new_document_id(),
                user_id=user_id,
                plan_id=plan.id,
                plan_name=plan.name,
                investment_amount=plan.joining_amount,
                start_date=now,
                expiry_date=now + timedelta(days=plan.validity),
                current_level=1,
                last_payout_date=now,
                status="active",
                created_at=now,
                updated_at=now,
            )
            # Raises InsufficientBalance before anything is committed
            self.ledger.stage_debit(
                batch, wallet, plan.joining_amount, f"Investment purchase: {plan.name}",
                reference=investment.id, metadata={"planId": plan.id}, now=now,
            )
            self.investments.stage_add(batch, investment)
            self.notifier.stage(
                batch, user_id, "system", "Investment Activated",
                f"Your {plan.name} plan is active until {investment.expiry_date.date().isoformat()}",
                {"investmentId": investment.id, "planId": plan.id},
            )
            await self.store.commit(batch)
            investment.version = 1
            return investment, wallet

        investment, wallet = await run_atomic(operation, tag="INVESTMENT")
        logger.info(f"[INVESTMENT] {user_id} purchased {plan.id} ({investment.id}) for {plan.joining_amount}")
        return {
            "investment": investment.summary(),
            "plan": plan.summary(),
            "wallet": wallet.summary(),
        }

    async def claim_daily_earning(self, user_id: str, investment_id: str) -> Dict[str, Any]:
        async def operation():
            investment = await self._owned(user_id, investment_id)
            now = self.clock.now()

            investment = await self._expire_if_due(investment, now)
            if investment.status != "active":
                raise InvestmentNotActive(f"Investment is {investment.status}")

            if investment.last_payout_date and self.clock.same_calendar_day(investment.last_payout_date, now):
                raise AlreadyClaimedToday("Daily earning already claimed today")

            plan = self.config.get_plan(investment.plan_id)
            if plan is None:
                raise NotFound("Investment plan not found")
            amount = plan.daily_return

            wallet = await self.ledger.get_or_create_wallet(user_id)
            investment.total_earnings += amount
            investment.last_payout_date = now
            investment.updated_at = now
            leveled = self._raise_level(investment, now)

            batch = WriteBatch()
            self.investments.stage_save(
                batch, investment, "total_earnings", "last_payout_date", "current_level", "updated_at"
            )
            self.ledger.stage_credit(
                batch, wallet, amount, f"Daily earning: {investment.plan_name}",
                reference=investment.id, type="earning",
                metadata={"planId": investment.plan_id, "level": investment.current_level}, now=now,
            )
            self.notifier.stage_earnings(batch, user_id, amount, "investment")
            await self.store.commit(batch)
            investment.version += 1
            return investment, wallet, amount, leveled

        investment, wallet, amount, leveled = await run_atomic(operation, tag="INVESTMENT")
        logger.info(f"[INVESTMENT] {user_id} claimed {amount} from {investment_id}")
        return {
            "amount": amount,
            "investment": investment.summary(),
            "wallet": wallet.summary(),
            "levelIncreased": leveled,
        }

    async def get_active_investment(self, user_id: str) -> Optional[Dict[str, Any]]:
        async def operation():
            investment = await self.investments.active_for_user(user_id)
            if investment is None:
                return None
            now = self.clock.now()
            investment = await self._expire_if_due(investment, now)
            if investment.status != "active":
                return None
            if self._raise_level(investment, now):
                investment.updated_at = now
                batch = WriteBatch()
                self.investments.stage_save(batch, investment, "current_level", "updated_at")
                await self.store.commit(batch)
                investment.version += 1
            return investment, now

        found = await run_atomic(operation, tag="INVESTMENT")
        if found is None:
            return None

        investment, now = found
        elapsed = self.clock.elapsed_days(investment.start_date, now)
        plan = self.config.get_plan(investment.plan_id)
        tiers = available_tiers(self.config.level_structure, elapsed, investment.total_referrals)
        upcoming = [t for t in self.config.level_structure if t.level > investment.current_level]
        claimed_today = bool(
            investment.last_payout_date and self.clock.same_calendar_day(investment.last_payout_date, now)
        )
        return {
            "investment": investment.summary(),
            "plan": plan.summary() if plan else None,
            "daysSinceStart": elapsed,
            "availableLevels": [t.summary() for t in tiers],
            "nextLevel": min(upcoming, key=lambda t: t.level).summary() if upcoming else None,
            "canClaimToday": not claimed_today,
        }

    async def register_referral(self, user_id: str) -> Dict[str, Any]:
        """Count a new referral against the user's active investment."""
        async def operation():
            investment = await self.investments.active_for_user(user_id)
            if investment is None:
                raise NotFound("No active investment")
            now = self.clock.now()
            investment.total_referrals += 1
            investment.updated_at = now
            self._raise_level(investment, now)
            batch = WriteBatch()
            self.investments.stage_save(batch, investment, "total_referrals", "current_level", "updated_at")
            await self.store.commit(batch)
            investment.version += 1
            return investment

        investment = await run_atomic(operation, tag="INVESTMENT")
        logger.info(f"[INVESTMENT] Referral registered for {user_id} ({investment.total_referrals} total)")
        return investment.summary()

    async def cancel(self, user_id: str, investment_id: str) -> Dict[str, Any]:
        async def operation():
            investment = await self._owned(user_id, investment_id)
            if investment.status != "active":
                raise InvestmentNotActive(f"Investment is {investment.status}")
            investment.status = "cancelled"
            investment.updated_at = self.clock.now()
            batch = WriteBatch()
            self.investments.stage_save(batch, investment, "status", "updated_at")
            await self.store.commit(batch)
            investment.version += 1
            return investment

        investment = await run_atomic(operation, tag="INVESTMENT")
        logger.info(f"[INVESTMENT] {user_id} cancelled {investment_id}")
        return investment.summary()

    async def history(self, user_id: str) -> List[Dict[str, Any]]:
        return [i.summary() for i in await self.investments.for_user(user_id)]
