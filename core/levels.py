# core/levels.py
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from data.models import UserLevel
from data.repositories import UserLevelRepository

from .clock import Clock
from .config import EngineConfig
from .game_logic import LevelChange, add_experience, calculate_level_progress, exp_for_next_level
from .notifications import NotificationService
from .storage import DocumentStore, WriteBatch, run_atomic

logger = logging.getLogger(__name__)

LEVEL_FIELDS = ("current_level", "current_exp", "total_exp", "level_progress", "last_level_up", "updated_at")


class LevelService:
    def __init__(self, store: DocumentStore, clock: Optional[Clock] = None,
                 config: Optional[EngineConfig] = None):
        self.store = store
        self.clock = clock or Clock()
        self.config = config or EngineConfig()
        self.levels = UserLevelRepository(store)
        self.notifier = NotificationService(store, self.clock)

    async def get_user_level(self, user_id: str) -> UserLevel:
        return await self.levels.get_or_create(user_id, self.clock.now())

    def summarize(self, user_level: UserLevel) -> Dict[str, Any]:
        return user_level.summary(self.config.max_level, self.config.exp_per_level_unit)

    def stage_experience(self, batch: WriteBatch, user_level: UserLevel, amount: int,
                         now: Optional[datetime] = None) -> LevelChange:
        """Add experience in memory and stage the level update (and a level-up notice)."""
        change = add_experience(
            user_level, amount, now or self.clock.now(), self.config.max_level, self.config.exp_per_level_unit
        )
        self.levels.stage_save(batch, user_level, *LEVEL_FIELDS)
        if change.leveled_up:
            reward = self.config.get_level_reward(change.new_level)
            title = reward.title if reward else f"Level {change.new_level}"
            self.notifier.stage_level_up(batch, user_level.user_id, change.new_level, title)
        return change

    async def add_experience(self, user_id: str, amount: int, source: str = "") -> Dict[str, Any]:
        async def operation():
            user_level = await self.get_user_level(user_id)
            batch = WriteBatch()
            change = self.stage_experience(batch, user_level, amount)
            await self.store.commit(batch)
            return user_level, change

        user_level, change = await run_atomic(operation, tag="LEVEL")
        if change.leveled_up:
            logger.info(f"[LEVEL] {user_id} leveled up {change.previous_level} -> {change.new_level} ({source})")
        return {
            "userLevel": self.summarize(user_level),
            "expAdded": amount,
            "leveledUp": change.leveled_up,
            "previousLevel": change.previous_level,
            "newLevel": change.new_level,
        }

    async def level_rewards(self, user_id: str) -> Dict[str, Any]:
        user_level = await self.get_user_level(user_id)
        level = user_level.current_level
        max_level, exp_unit = self.config.max_level, self.config.exp_per_level_unit
        current = self.config.get_level_reward(level)
        following = self.config.get_level_reward(level + 1) if level < max_level else None
        return {
            "currentLevel": level,
            "currentExp": user_level.current_exp,
            "levelProgress": calculate_level_progress(user_level.current_exp, max_level, exp_unit),
            "expForNextLevel": exp_for_next_level(level, user_level.current_exp, max_level, exp_unit),
            "currentReward": current.model_dump() if current else None,
            "nextReward": following.model_dump() if following else None,
            "allRewards": [
                {**r.model_dump(), "unlocked": r.level <= level} for r in self.config.level_rewards
            ],
        }
