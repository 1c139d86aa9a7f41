# _test/test_game_logic.py
from datetime import timedelta

import pytest

from core.config import DEFAULT_LEVEL_STRUCTURE
from core.errors import InvalidAmount
from core.game_logic import (
    add_experience, available_tiers, calculate_level, calculate_level_progress,
    compute_investment_level, daily_login_reward, exp_for_next_level, is_unlocked, label_progress,
)
from data.models import Label, UnlockCondition, UserLevel, UserMetrics

from conftest import START


# ===== LEVEL FORMULA =====

@pytest.mark.parametrize("exp, level, progress", [
    (0, 1, 0),
    (50, 1, 50),
    (100, 2, 0),
    (399, 2, 100),  # 99.67 rounds half up
    (400, 3, 0),
    (12100, 12, 100),
    (10 ** 9, 12, 100),
])
def test_level_and_progress(exp, level, progress):
    assert calculate_level(exp) == level
    assert calculate_level_progress(exp) == progress


def test_progress_rounds_to_nearest():
    # Level 2 spans 100..400
    assert calculate_level_progress(149) == 16  # 16.33
    assert calculate_level_progress(102) == 1  # 0.67
    # Level 3 spans 400..900
    assert calculate_level_progress(648) == 50  # 49.6


def test_exp_for_next_level():
    assert exp_for_next_level(1, 0) == 100
    assert exp_for_next_level(2, 399) == 1
    assert exp_for_next_level(12, 50000) == 0


def test_level_formula_with_a_smaller_exp_unit():
    assert calculate_level(49, exp_unit=50) == 1
    assert calculate_level(50, exp_unit=50) == 2
    assert calculate_level(200, exp_unit=50) == 3
    assert calculate_level_progress(125, exp_unit=50) == 50
    assert exp_for_next_level(2, 50, exp_unit=50) == 150
    assert exp_for_next_level(2, 50, max_level=2, exp_unit=50) == 0

    user_level = UserLevel(user_id="u1")
    change = add_experience(user_level, 60, START, exp_unit=50)
    assert change.leveled_up
    assert user_level.current_level == 2
    assert user_level.level_progress == 7  # 10 of 150


def test_add_experience_moves_level_up_timestamp_only_on_level_up():
    user_level = UserLevel(user_id="u1", last_level_up=START)

    change = add_experience(user_level, 50, START + timedelta(hours=1))
    assert not change.leveled_up
    assert user_level.current_level == 1
    assert user_level.level_progress == 50
    assert user_level.last_level_up == START

    later = START + timedelta(hours=2)
    change = add_experience(user_level, 50, later)
    assert change.leveled_up
    assert (change.previous_level, change.new_level) == (1, 2)
    assert user_level.current_exp == 100
    assert user_level.total_exp == 100
    assert user_level.last_level_up == later


def test_add_experience_caps_at_max_level():
    user_level = UserLevel(user_id="u1")
    add_experience(user_level, 50000, START)
    add_experience(user_level, 50000, START)
    assert user_level.current_level == 12
    assert user_level.level_progress == 100
    assert user_level.total_exp == 100000


@pytest.mark.parametrize("amount", [0, -10, 2.5, True])
def test_add_experience_rejects_invalid_amounts(amount):
    user_level = UserLevel(user_id="u1")
    with pytest.raises(InvalidAmount):
        add_experience(user_level, amount, START)
    assert user_level.current_exp == 0


# ===== LABEL CONDITIONS =====

def _label(*conditions):
    return Label(name="Test", unlock_conditions=[UnlockCondition(**c) for c in conditions])


def test_label_without_conditions_is_unlocked():
    assert is_unlocked(_label(), UserMetrics())


def test_level_condition():
    label = _label({"type": "level", "value": 5, "operator": "gte"})
    assert is_unlocked(label, UserMetrics(current_level=5))
    assert is_unlocked(label, UserMetrics(current_level=7))
    assert not is_unlocked(label, UserMetrics(current_level=4))


def test_all_conditions_must_hold():
    label = _label(
        {"type": "total_earnings", "value": 100},
        {"type": "daily_login_streak", "value": 3},
    )
    assert not is_unlocked(label, UserMetrics(total_earnings=150, login_streak=2))
    assert is_unlocked(label, UserMetrics(total_earnings=150, login_streak=3))


def test_camel_case_condition_types():
    label = _label({"type": "totalReferrals", "value": 2}, {"type": "newsReadCount", "value": 10})
    assert is_unlocked(label, UserMetrics(total_referrals=2, news_read_count=10))


@pytest.mark.parametrize("operator, level, expected", [
    ("lte", 3, True),
    ("lte", 4, False),
    ("eq", 3, True),
    ("gt", 3, False),
    ("lt", 2, True),
    ("bogus", 3, True),  # unknown operators behave as gte
    ("bogus", 2, False),
])
def test_operators(operator, level, expected):
    label = _label({"type": "level", "value": 3, "operator": operator})
    assert is_unlocked(label, UserMetrics(current_level=level)) is expected


def test_unknown_condition_type_reads_zero():
    assert not is_unlocked(_label({"type": "followers", "value": 1}), UserMetrics(current_level=12))
    assert is_unlocked(_label({"type": "followers", "value": 0}), UserMetrics())


def test_label_progress():
    label = _label({"type": "total_earnings", "value": 100}, {"type": "level", "value": 2})
    progress = label_progress(label, UserMetrics(total_earnings=50, current_level=5))
    assert progress["total_earnings"] == {"current": 50, "target": 100, "percentage": 50}
    assert progress["level"]["percentage"] == 100


# ===== INVESTMENT TIERS =====

def test_investment_level_stays_one_without_referrals():
    for days in (0, 7, 100, 1000):
        assert compute_investment_level(DEFAULT_LEVEL_STRUCTURE, days, 0) == 1


def test_investment_level_needs_days_and_referrals():
    assert compute_investment_level(DEFAULT_LEVEL_STRUCTURE, 30, 6) == 2
    assert compute_investment_level(DEFAULT_LEVEL_STRUCTURE, 10, 6) == 1
    assert compute_investment_level(DEFAULT_LEVEL_STRUCTURE, 60, 27) == 3


def test_available_tiers_sorted():
    tiers = available_tiers(DEFAULT_LEVEL_STRUCTURE, 60, 27)
    assert [t.level for t in tiers] == [1, 2, 3]
    assert available_tiers(DEFAULT_LEVEL_STRUCTURE, 60, 0) == []


def test_daily_login_reward():
    assert daily_login_reward(1, 5, 0.5)["total"] == 5
    assert daily_login_reward(4, 5, 0.5) == {"base_reward": 5, "level_bonus": 2, "total": 7}
    assert daily_login_reward(None, 5, 0.5)["total"] == 5
