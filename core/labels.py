# core/labels.py
"""
Achievement labels: metric snapshots, claiming, and label administration.

Which labels are unlocked is never stored; it is evaluated against a fresh
`UserMetrics` snapshot every time labels are read or claimed.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from data.models import Achievement, Label, UserMetrics
from data.repositories import (
    DailyEarningRepository, InvestmentRepository, LabelRepository, UserLevelRepository,
    UserStatsRepository, WalletRepository,
)

from .cache import SimpleCache
from .clock import Clock
from .errors import AlreadyClaimed, ConditionsNotMet, DuplicateLabel, InvalidAmount, InvalidRequest, NotFound
from .game_logic import is_unlocked, label_progress
from .ledger import WalletLedger
from .notifications import NotificationService
from .storage import DocumentStore, WriteBatch, run_atomic

logger = logging.getLogger(__name__)

# Active label catalog shared across requests; admin writes invalidate it
label_catalog_cache = SimpleCache[List[Label]](ttl_seconds=60)

STREAK_PAGE_SIZE = 100

IMMUTABLE_LABEL_FIELDS = {"id", "version", "created_at", "createdAt", "updated_at", "updatedAt"}
STORED_LABEL_FIELDS = set(Label.model_fields) - {"id", "version", "created_at"}


class MetricsProvider:
    """Builds the snapshot label conditions are evaluated against."""

    def __init__(self, store: DocumentStore, clock: Optional[Clock] = None):
        self.clock = clock or Clock()
        self.wallets = WalletRepository(store)
        self.levels = UserLevelRepository(store)
        self.earnings = DailyEarningRepository(store)
        self.investments = InvestmentRepository(store)
        self.user_stats = UserStatsRepository(store)

    async def login_streak(self, user_id: str, page_size: int = STREAK_PAGE_SIZE) -> int:
        """Consecutive days with a daily login, ending today or yesterday."""
        today = self.clock.today()
        expected = None
        streak = 0
        offset = 0
        while True:
            logins = await self.earnings.recent_by_source(user_id, "daily_login", offset, page_size)
            for login in logins:
                day = self.clock.local_date(login.date)
                if day > today:
                    continue
                if expected is None:
                    if day < today - timedelta(days=1):
                        return 0
                    expected = day
                if day > expected:
                    # Second login on a day already counted
                    continue
                if day < expected:
                    return streak
                streak += 1
                expected -= timedelta(days=1)
            if len(logins) < page_size:
                return streak
            offset += page_size

    async def snapshot(self, user_id: str) -> UserMetrics:
        wallet = await self.wallets.get(user_id)
        user_level = await self.levels.get(user_id)
        investment = await self.investments.active_for_user(user_id)
        return UserMetrics(
            login_streak=await self.login_streak(user_id),
            total_earnings=wallet.total_earnings if wallet else 0,
            current_level=user_level.current_level if user_level else 1,
            total_referrals=investment.total_referrals if investment else 0,
            news_read_count=await self.user_stats.news_read_count(user_id),
        )


class LabelService:
    def __init__(self, store: DocumentStore, clock: Optional[Clock] = None,
                 catalog_cache: Optional[SimpleCache] = None):
        self.store = store
        self.clock = clock or Clock()
        self.catalog_cache = catalog_cache
        self.labels = LabelRepository(store)
        self.levels = UserLevelRepository(store)
        self.ledger = WalletLedger(store, self.clock)
        self.metrics = MetricsProvider(store, self.clock)
        self.notifier = NotificationService(store, self.clock)

    async def _catalog(self) -> List[Label]:
        if self.catalog_cache is None:
            return await self.labels.active()
        return await self.catalog_cache.get_or_fetch(self.labels.active)

    async def _invalidate_catalog(self) -> None:
        if self.catalog_cache is not None:
            await self.catalog_cache.invalidate()

    # --- User side ---

    async def active_labels(self, user_id: str) -> List[Dict[str, Any]]:
        """Labels the user currently satisfies, with their claim state."""
        metrics = await self.metrics.snapshot(user_id)
        user_level = await self.levels.get(user_id)
        result = []
        for label in await self._catalog():
            if not is_unlocked(label, metrics):
                continue
            summary = label.summary()
            summary["claimed"] = bool(user_level and user_level.has_achievement(label.id))
            result.append(summary)
        return result

    async def label_details(self, user_id: str, label_id: str) -> Dict[str, Any]:
        label = await self.labels.get(label_id)
        if label is None or not label.is_active:
            raise NotFound("Label not found")

        metrics = await self.metrics.snapshot(user_id)
        user_level = await self.levels.get(user_id)
        summary = label.summary()
        summary["isUnlocked"] = is_unlocked(label, metrics)
        summary["claimed"] = bool(user_level and user_level.has_achievement(label.id))
        summary["progress"] = label_progress(label, metrics)
        return summary

    async def claim(self, user_id: str, label_id: str) -> Dict[str, Any]:
        async def operation():
            label = await self.labels.get(label_id)
            if label is None or not label.is_active:
                raise NotFound("Label not found")

            now = self.clock.now()
            user_level = await self.levels.get_or_create(user_id, now)
            if user_level.has_achievement(label.id):
                raise AlreadyClaimed()

            metrics = await self.metrics.snapshot(user_id)
            if not is_unlocked(label, metrics):
                raise ConditionsNotMet()

            achievement = Achievement(
                label_id=label.id,
                name=label.name,
                description=label.description,
                reward=label.reward,
                unlocked_at=now,
            )
            user_level.achievements.append(achievement)
            user_level.updated_at = now

            batch = WriteBatch()
            self.levels.stage_save(batch, user_level, "achievements", "updated_at")
            wallet = None
            if label.reward > 0:
                wallet = await self.ledger.get_or_create_wallet(user_id)
                self.ledger.stage_credit(
                    batch, wallet, label.reward, f"Label reward: {label.name}",
                    reference=label.id, metadata={"source": "label"}, now=now,
                )
            self.notifier.stage_reward(batch, user_id, label.name, label.reward)
            await self.store.commit(batch)
            return achievement, wallet

        achievement, wallet = await run_atomic(operation, tag="LABEL")
        logger.info(f"[LABEL] {user_id} claimed label {label_id} (reward {achievement.reward})")
        return {
            "achievement": achievement.model_dump(mode="json", by_alias=True),
            "reward": achievement.reward,
            "wallet": wallet.summary() if wallet else None,
        }

    async def achievements_summary(self, user_id: str) -> Dict[str, Any]:
        user_level = await self.levels.get(user_id)
        achievements = user_level.achievements if user_level else []
        return {
            "totalAchievements": len(achievements),
            "totalRewards": sum(a.reward for a in achievements),
            "achievements": [a.model_dump(mode="json", by_alias=True) for a in achievements],
        }

    # --- Administration ---

    async def create_label(self, data: Dict[str, Any]) -> Label:
        if not data.get("name") or not data.get("description"):
            raise InvalidRequest("Name and description are required")
        if await self.labels.by_name(data["name"]):
            raise DuplicateLabel()

        now = self.clock.now()
        fields = {k: v for k, v in data.items() if k not in IMMUTABLE_LABEL_FIELDS}
        label = Label.model_validate({**fields, "created_at": now, "updated_at": now})
        if label.reward < 0:
            raise InvalidAmount("Reward cannot be negative")
        await self.labels.create(label)
        await self._invalidate_catalog()
        logger.info(f"[LABEL] Created label {label.id} ({label.name})")
        return label

    async def update_label(self, label_id: str, data: Dict[str, Any]) -> Label:
        async def operation():
            label = await self.labels.require(label_id, "Label")
            changes = {k: v for k, v in data.items() if k not in IMMUTABLE_LABEL_FIELDS}
            if "name" in changes and changes["name"] != label.name:
                existing = await self.labels.by_name(changes["name"])
                if existing and existing.id != label.id:
                    raise DuplicateLabel()

            updated = Label.model_validate({
                **label.model_dump(), **changes, "updated_at": self.clock.now(),
            })
            if updated.reward < 0:
                raise InvalidAmount("Reward cannot be negative")
            batch = WriteBatch()
            self.labels.stage_save(batch, updated, *STORED_LABEL_FIELDS)
            await self.store.commit(batch)
            updated.version += 1
            return updated

        label = await run_atomic(operation, tag="LABEL")
        await self._invalidate_catalog()
        logger.info(f"[LABEL] Updated label {label_id}")
        return label

    async def list_labels(self, page: int = 1, limit: int = 20,
                          category: Optional[str] = None) -> Dict[str, Any]:
        filters = [("category", "==", category)] if category else []
        return await self.labels.page(filters, [("created_at", "desc")], page, limit)

    async def seed_labels(self, seeds: List[Dict[str, Any]]) -> int:
        """Create any seed label whose name is not taken yet. Returns how many were created."""
        created = 0
        for data in seeds:
            if await self.labels.by_name(data["name"]):
                logger.info(f"[LABEL] Seed label already exists: {data['name']}")
                continue
            await self.create_label(data)
            created += 1
        return created


DEFAULT_LABELS = [
    {
        "name": "First Steps",
        "description": "Complete your first daily login",
        "icon": "🎯",
        "color": "#4CAF50",
        "reward": 10,
        "unlock_conditions": [{"type": "daily_login_streak", "value": 1, "operator": "gte"}],
        "category": "achievement",
    },
    {
        "name": "Earning Master",
        "description": "Earn your first 100 coins",
        "icon": "💰",
        "color": "#FF9800",
        "reward": 25,
        "unlock_conditions": [{"type": "total_earnings", "value": 100, "operator": "gte"}],
        "category": "milestone",
    },
    {
        "name": "Level Up",
        "description": "Reach level 5",
        "icon": "⭐",
        "color": "#9C27B0",
        "reward": 50,
        "unlock_conditions": [{"type": "level", "value": 5, "operator": "gte"}],
        "category": "achievement",
    },
    {
        "name": "News Reader",
        "description": "Read 10 news articles",
        "icon": "📰",
        "color": "#2196F3",
        "reward": 15,
        "unlock_conditions": [{"type": "news_read", "value": 10, "operator": "gte"}],
        "category": "achievement",
    },
]
