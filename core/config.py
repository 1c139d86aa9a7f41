# core/config.py
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings
from typing import Dict, List, Optional
import json
import logging

# Configure logging
logger = logging.getLogger("config")


class Settings(BaseSettings):
    # Storage backend: "mongo" in production, "memory" for local runs and tests
    STORAGE_BACKEND: str = "mongo"
    MONGO_DETAILS: str = "mongodb://localhost:27017/?replicaSet=rs0"
    MONGO_DB_NAME: str = "newsearn_db"
    STORAGE_TIMEOUT_SECONDS: float = 10.0
    MAX_WRITE_RETRIES: int = 5

    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"

    # Redis configuration for rate limiting
    REDIS_URL: Optional[str] = None
    RATE_LIMIT_STORAGE_URI: str = "memory://"
    RATE_LIMIT_ENABLED: bool = True

    # Every "already claimed today" check uses the calendar day in this zone
    BUSINESS_TIMEZONE: str = "UTC"

    # Daily login reward: base + floor(level * multiplier) and a fixed exp grant
    DAILY_LOGIN_BASE_REWARD: int = 5
    DAILY_LOGIN_LEVEL_MULTIPLIER: float = 0.5
    DAILY_LOGIN_EXP: int = 10

    MINIMUM_WITHDRAWAL: int = 1

    # Optional JSON file overriding the static reward/plan/level tables
    ENGINE_CONFIG_PATH: Optional[str] = None

    class Config:
        env_file = ".env"

settings = Settings()


# ===== ENGINE TABLES =====

class LevelReward(BaseModel):
    level: int
    reward: int
    title: str


class InvestmentPlan(BaseModel):
    id: str
    name: str
    joining_amount: int
    levels: int = 13
    validity: int  # days
    daily_return: int
    weekly_return: int = 0
    monthly_return: int = 0
    is_active: bool = True

    def summary(self) -> Dict:
        return {
            "id": self.id,
            "name": self.name,
            "joiningAmount": self.joining_amount,
            "levels": self.levels,
            "validity": self.validity,
            "dailyReturn": self.daily_return,
            "weeklyReturn": self.weekly_return,
            "monthlyReturn": self.monthly_return,
            "isActive": self.is_active,
        }


class LevelTier(BaseModel):
    """One row of the referral-gated investment level structure."""
    level: int
    open_after_days: int
    required_referrals: int
    chain_level: str
    payouts: Dict[str, int] = Field(default_factory=dict)

    def summary(self) -> Dict:
        return {
            "level": self.level,
            "openAfterDays": self.open_after_days,
            "requiredReferrals": self.required_referrals,
            "chainLevel": self.chain_level,
            "payouts": dict(self.payouts),
        }


DEFAULT_LEVEL_REWARDS = [
    LevelReward(level=1, reward=10, title="Beginner"),
    LevelReward(level=2, reward=25, title="Novice"),
    LevelReward(level=3, reward=50, title="Apprentice"),
    LevelReward(level=4, reward=100, title="Explorer"),
    LevelReward(level=5, reward=200, title="Adventurer"),
    LevelReward(level=6, reward=350, title="Veteran"),
    LevelReward(level=7, reward=500, title="Expert"),
    LevelReward(level=8, reward=750, title="Master"),
    LevelReward(level=9, reward=1000, title="Grandmaster"),
    LevelReward(level=10, reward=1500, title="Legend"),
    LevelReward(level=11, reward=2500, title="Mythic"),
    LevelReward(level=12, reward=5000, title="Divine"),
]

DEFAULT_INVESTMENT_PLANS = [
    InvestmentPlan(id="bass", name="Bass", joining_amount=1499, validity=750,
                   daily_return=25, weekly_return=149, monthly_return=699),
    InvestmentPlan(id="silver", name="Silver", joining_amount=2499, validity=750,
                   daily_return=50, weekly_return=349, monthly_return=1499),
    InvestmentPlan(id="gold", name="Gold", joining_amount=3499, validity=750,
                   daily_return=100, weekly_return=699, monthly_return=2999),
    InvestmentPlan(id="diamond", name="Diamond", joining_amount=3999, validity=750,
                   daily_return=200, weekly_return=1399, monthly_return=5999),
    InvestmentPlan(id="platinum", name="Platinum", joining_amount=4999, validity=750,
                   daily_return=300, weekly_return=1999, monthly_return=8999),
    InvestmentPlan(id="eight", name="Eight", joining_amount=6999, validity=750,
                   daily_return=500, weekly_return=2999, monthly_return=12999),
]


def _tier(level, days, referrals, payouts):
    names = ["bass", "silver", "gold", "diamond", "platinum", "eight"]
    return LevelTier(
        level=level,
        open_after_days=days,
        required_referrals=referrals,
        chain_level=f"c{level}",
        payouts=dict(zip(names, payouts)),
    )

# Referral requirement triples every tier (3^level)
DEFAULT_LEVEL_STRUCTURE = [
    _tier(1, 7, 3, [300, 400, 500, 600, 700, 800]),
    _tier(2, 22, 6, [150, 200, 250, 300, 350, 400]),
    _tier(3, 52, 27, [75, 100, 125, 150, 175, 200]),
    _tier(4, 100, 81, [50, 75, 100, 125, 150, 175]),
    _tier(5, 160, 243, [25, 50, 75, 100, 125, 150]),
    _tier(6, 220, 729, [0, 25, 50, 75, 100, 125]),
    _tier(7, 280, 2187, [0, 0, 25, 50, 75, 100]),
    _tier(8, 340, 6561, [0, 0, 10, 25, 50, 75]),
    _tier(9, 400, 19683, [0, 0, 0, 10, 25, 50]),
    _tier(10, 460, 59049, [0, 0, 0, 5, 10, 25]),
    _tier(11, 520, 177147, [0, 0, 0, 0, 5, 10]),
    _tier(12, 600, 531441, [0, 0, 0, 0, 0, 5]),
    _tier(13, 750, 1594323, [0, 0, 0, 0, 0, 0]),
    _tier(14, 875, 4782969, [0, 0, 0, 0, 0, 0]),
    _tier(15, 1000, 14348907, [0, 0, 0, 0, 0, 0]),
]


class EngineConfig(BaseModel):
    """
    Static reward and level tables handed to the engine at construction.
    Keeping them here (instead of inline in the services) lets tests build
    an engine with any table they like.
    """
    max_level: int = 12
    exp_per_level_unit: int = 100
    level_rewards: List[LevelReward] = Field(default_factory=lambda: list(DEFAULT_LEVEL_REWARDS))
    investment_plans: List[InvestmentPlan] = Field(default_factory=lambda: list(DEFAULT_INVESTMENT_PLANS))
    level_structure: List[LevelTier] = Field(default_factory=lambda: list(DEFAULT_LEVEL_STRUCTURE))

    def get_plan(self, plan_id: str) -> Optional[InvestmentPlan]:
        for plan in self.investment_plans:
            if plan.id == plan_id:
                return plan
        return None

    def get_level_reward(self, level: int) -> Optional[LevelReward]:
        for reward in self.level_rewards:
            if reward.level == level:
                return reward
        return None


def load_engine_config(path: Optional[str] = None) -> EngineConfig:
    """
    Load the engine tables. A JSON file (ENGINE_CONFIG_PATH) may override any
    of the defaults; missing keys keep their default values.
    """
    path = path or settings.ENGINE_CONFIG_PATH
    if not path:
        return EngineConfig()

    with open(path, "r") as f:
        data = json.load(f)
    config = EngineConfig.model_validate(data)
    logger.info(
        f"Loaded engine config from {path}: {len(config.investment_plans)} plans, "
        f"{len(config.level_structure)} level tiers"
    )
    return config
