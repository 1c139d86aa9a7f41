# core/earnings.py
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from data.models import DailyEarning
from data.repositories import DailyEarningRepository

from .clock import Clock
from .config import EngineConfig, settings
from .errors import AlreadyClaimedToday
from .game_logic import daily_login_reward
from .ledger import WalletLedger
from .levels import LevelService
from .notifications import NotificationService
from .storage import DocumentStore, WriteBatch, new_document_id, run_atomic

logger = logging.getLogger(__name__)

DAILY_LOGIN = "daily_login"


class EarningsService:
    def __init__(self, store: DocumentStore, clock: Optional[Clock] = None,
                 config: Optional[EngineConfig] = None):
        self.store = store
        self.clock = clock or Clock()
        self.earnings = DailyEarningRepository(store)
        self.ledger = WalletLedger(store, self.clock)
        self.levels = LevelService(store, self.clock, config)
        self.notifier = NotificationService(store, self.clock)

    async def claimed_today(self, user_id: str, source: str, now: datetime) -> bool:
        start, end = self.clock.day_bounds(self.clock.local_date(now))
        return bool(await self.earnings.between(user_id, start, end, source))

    async def claim_daily_login(self, user_id: str) -> Dict[str, Any]:
        async def operation():
            now = self.clock.now()
            if await self.claimed_today(user_id, DAILY_LOGIN, now):
                raise AlreadyClaimedToday("Daily login reward already claimed today")

            user_level = await self.levels.get_user_level(user_id)
            wallet = await self.ledger.get_or_create_wallet(user_id)
            reward = daily_login_reward(
                user_level.current_level,
                settings.DAILY_LOGIN_BASE_REWARD,
                settings.DAILY_LOGIN_LEVEL_MULTIPLIER,
            )

            earning = DailyEarning(
                user_id=user_id,
                date=now,
                amount=reward["total"],
                source=DAILY_LOGIN,
                description="Daily login reward",
                status="credited",
                metadata={"baseReward": reward["base_reward"], "levelBonus": reward["level_bonus"]},
                created_at=now,
                updated_at=now,
            )

            batch = WriteBatch()
            earning.id = new_document_id()
            self.ledger.stage_credit(
                batch, wallet, reward["total"], "Daily login reward",
                reference=earning.id, metadata={"source": DAILY_LOGIN}, now=now,
            )
            self.earnings.stage_add(batch, earning)
            change = self.levels.stage_experience(batch, user_level, settings.DAILY_LOGIN_EXP, now)
            self.notifier.stage_earnings(batch, user_id, reward["total"], DAILY_LOGIN)
            await self.store.commit(batch)
            return earning, wallet, user_level, change, reward

        earning, wallet, user_level, change, reward = await run_atomic(operation, tag="DAILY_LOGIN")
        logger.info(f"[DAILY_LOGIN] {user_id} claimed {earning.amount} coins")
        return {
            "earning": earning.summary(),
            "reward": {
                "baseReward": reward["base_reward"],
                "levelBonus": reward["level_bonus"],
                "total": reward["total"],
            },
            "expGained": settings.DAILY_LOGIN_EXP,
            "leveledUp": change.leveled_up,
            "wallet": wallet.summary(),
            "userLevel": self.levels.summarize(user_level),
        }

    async def total_between(self, user_id: str, start: datetime, end: datetime) -> int:
        earnings = await self.earnings.between(user_id, start, end)
        return sum(e.amount for e in earnings if e.status == "credited")

    async def today_total(self, user_id: str) -> Dict[str, Any]:
        today = self.clock.today()
        start, end = self.clock.day_bounds(today)
        earnings = await self.earnings.between(user_id, start, end)
        credited = [e for e in earnings if e.status == "credited"]
        return {
            "date": today.isoformat(),
            "total": sum(e.amount for e in credited),
            "count": len(credited),
            "earnings": [e.summary() for e in credited],
            "dailyLoginClaimed": any(e.source == DAILY_LOGIN for e in credited),
        }

    async def stats(self, user_id: str) -> Dict[str, Any]:
        today = self.clock.today()
        _, end = self.clock.day_bounds(today)
        stats = {}
        for key, days in (("today", 1), ("week", 7), ("month", 30)):
            start, _ = self.clock.day_bounds(today - timedelta(days=days - 1))
            stats[key] = await self.total_between(user_id, start, end)
        wallet = await self.ledger.get_or_create_wallet(user_id)
        stats["totalEarnings"] = wallet.total_earnings
        return stats

    async def history(self, user_id: str, source: Optional[str] = None,
                      page: int = 1, limit: int = 20) -> Dict[str, Any]:
        return await self.earnings.history(user_id, source, page, limit)
