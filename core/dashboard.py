# core/dashboard.py
import asyncio
from typing import Any, Dict, Optional

from data.repositories import TransactionRepository, WithdrawalRepository

from .cache import SimpleCache
from .clock import Clock
from .config import EngineConfig
from .earnings import EarningsService
from .investments import InvestmentScheduler
from .labels import LabelService
from .levels import LevelService
from .notifications import NotificationService
from .storage import DocumentStore


class DashboardService:
    """Read-only aggregate of everything the home screen shows."""

    def __init__(self, store: DocumentStore, clock: Optional[Clock] = None,
                 config: Optional[EngineConfig] = None, catalog_cache: Optional[SimpleCache] = None):
        clock = clock or Clock()
        self.earnings = EarningsService(store, clock, config)
        self.levels = LevelService(store, clock, config)
        self.labels = LabelService(store, clock, catalog_cache)
        self.investments = InvestmentScheduler(store, clock, config)
        self.notifications = NotificationService(store, clock)
        self.transactions = TransactionRepository(store)
        self.withdrawals = WithdrawalRepository(store)

    async def overview(self, user_id: str) -> Dict[str, Any]:
        wallet = await self.earnings.ledger.get_or_create_wallet(user_id)
        user_level = await self.levels.get_user_level(user_id)

        today, pending, recent, labels, unread, investment = await asyncio.gather(
            self.earnings.today_total(user_id),
            self.withdrawals.pending_total(user_id),
            self.transactions.recent(user_id, limit=5),
            self.labels.active_labels(user_id),
            self.notifications.unread_count(user_id),
            self.investments.get_active_investment(user_id),
        )
        return {
            "wallet": wallet.summary(),
            "level": self.levels.summarize(user_level),
            "todayEarnings": today["total"],
            "dailyLoginClaimed": today["dailyLoginClaimed"],
            "pendingWithdrawals": pending,
            "recentTransactions": [t.summary() for t in recent],
            "activeLabels": len(labels),
            "claimableLabels": sum(1 for label in labels if not label["claimed"]),
            "unreadNotifications": unread,
            "currentPlan": investment,
        }
