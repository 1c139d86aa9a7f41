# core/game_logic.py
"""
Pure game rules: the experience-to-level formula, label unlock evaluation
and the investment tier lookup. Nothing in here touches storage, so every
rule can be unit-tested with plain values.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from math import isqrt
from typing import TYPE_CHECKING, Dict, Iterable, Optional

from .errors import InvalidAmount

# Use TYPE_CHECKING to prevent circular import at runtime
if TYPE_CHECKING:
    from data.models import Label, UnlockCondition, UserLevel, UserMetrics
    from .config import LevelTier

MAX_LEVEL = 12
EXP_UNIT = 100


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


# ===== EXPERIENCE / LEVEL =====

def calculate_level(exp: int, max_level: int = MAX_LEVEL, exp_unit: int = EXP_UNIT) -> int:
    """level = min(floor(sqrt(exp / exp_unit)) + 1, max_level)"""
    if exp <= 0:
        return 1
    return min(isqrt(exp // exp_unit) + 1, max_level)


def level_threshold(level: int, exp_unit: int = EXP_UNIT) -> int:
    """Experience at which `level` is reached."""
    return (level - 1) ** 2 * exp_unit


def calculate_level_progress(exp: int, max_level: int = MAX_LEVEL, exp_unit: int = EXP_UNIT) -> int:
    level = calculate_level(exp, max_level, exp_unit)
    if level >= max_level:
        return 100

    exp_for_current = level_threshold(level, exp_unit)
    exp_for_next = level_threshold(level + 1, exp_unit)
    ratio = Decimal(100 * (exp - exp_for_current)) / Decimal(exp_for_next - exp_for_current)
    return min(max(round_half_up(ratio), 0), 100)


def exp_for_next_level(current_level: int, current_exp: int, max_level: int = MAX_LEVEL,
                       exp_unit: int = EXP_UNIT) -> int:
    if current_level >= max_level:
        return 0
    return level_threshold(current_level + 1, exp_unit) - current_exp


@dataclass
class LevelChange:
    previous_level: int
    new_level: int
    exp_added: int

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.previous_level


def add_experience(user_level: "UserLevel", amount: int, now: datetime,
                   max_level: int = MAX_LEVEL, exp_unit: int = EXP_UNIT) -> LevelChange:
    """
    Apply an experience grant to a UserLevel in place. The level is always
    recomputed from current_exp; last_level_up moves only on an increase.
    """
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise InvalidAmount("Invalid experience amount")

    previous_level = user_level.current_level
    user_level.current_exp += amount
    user_level.total_exp += amount

    new_level = calculate_level(user_level.current_exp, max_level, exp_unit)
    user_level.current_level = new_level
    if new_level > previous_level:
        user_level.last_level_up = now

    user_level.level_progress = calculate_level_progress(user_level.current_exp, max_level, exp_unit)
    user_level.updated_at = now
    return LevelChange(previous_level=previous_level, new_level=new_level, exp_added=amount)


# ===== LABEL UNLOCK CONDITIONS =====

# Condition type -> UserMetrics attribute. Both the stored snake_case names and
# the camelCase metric names are accepted.
CONDITION_METRICS: Dict[str, str] = {
    "daily_login_streak": "login_streak",
    "loginStreak": "login_streak",
    "total_earnings": "total_earnings",
    "totalEarnings": "total_earnings",
    "level": "current_level",
    "currentLevel": "current_level",
    "referrals": "total_referrals",
    "totalReferrals": "total_referrals",
    "news_read": "news_read_count",
    "newsReadCount": "news_read_count",
}

OPERATORS = {
    "gte": lambda current, target: current >= target,
    "lte": lambda current, target: current <= target,
    "eq": lambda current, target: current == target,
    "gt": lambda current, target: current > target,
    "lt": lambda current, target: current < target,
}


def metric_value(condition_type: str, metrics: "UserMetrics") -> int:
    attribute = CONDITION_METRICS.get(condition_type)
    if attribute is None:
        return 0
    return getattr(metrics, attribute)


def condition_met(condition: "UnlockCondition", metrics: "UserMetrics") -> bool:
    compare = OPERATORS.get(condition.operator or "gte", OPERATORS["gte"])
    return compare(metric_value(condition.type, metrics), condition.value)


def is_unlocked(label: "Label", metrics: "UserMetrics") -> bool:
    """A label with no conditions is always unlocked; otherwise all must hold."""
    results = [condition_met(c, metrics) for c in label.unlock_conditions]
    return all(results)


def label_progress(label: "Label", metrics: "UserMetrics") -> Dict[str, Dict]:
    progress = {}
    for condition in label.unlock_conditions:
        current = metric_value(condition.type, metrics)
        target = condition.value
        if target:
            percentage = min(round_half_up(Decimal(current) * 100 / Decimal(str(target))), 100)
        else:
            percentage = 100
        progress[condition.type] = {
            "current": current,
            "target": target,
            "percentage": max(percentage, 0),
        }
    return progress


# ===== INVESTMENT TIERS =====

def compute_investment_level(tiers: Iterable["LevelTier"], elapsed_days: int,
                             total_referrals: int) -> int:
    """Highest tier whose day and referral gates are both open; 1 when none are."""
    open_levels = [
        tier.level for tier in tiers
        if elapsed_days >= tier.open_after_days and total_referrals >= tier.required_referrals
    ]
    return max(open_levels, default=1)


def available_tiers(tiers: Iterable["LevelTier"], elapsed_days: int,
                    total_referrals: int) -> list:
    return sorted(
        (
            tier for tier in tiers
            if elapsed_days >= tier.open_after_days and total_referrals >= tier.required_referrals
        ),
        key=lambda tier: tier.level,
    )


def daily_login_reward(level: Optional[int], base_reward: int, multiplier: float) -> Dict[str, int]:
    """base + floor(level * multiplier); no level bonus before a level record exists."""
    level_bonus = int(Decimal(str(multiplier)) * level) if level else 0
    return {
        "base_reward": base_reward,
        "level_bonus": level_bonus,
        "total": base_reward + level_bonus,
    }
