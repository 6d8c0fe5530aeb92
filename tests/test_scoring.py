import pytest

from libris.models import Level
from libris.scoring import (
    borrow_reward,
    default_borrow_days,
    level_for,
    max_total_borrow_days,
    return_score_delta,
)


@pytest.mark.parametrize("score, level", [
    (-50, Level.NOVICE),
    (0, Level.NOVICE),
    (49, Level.NOVICE),
    (50, Level.READER),
    (99, Level.READER),
    (100, Level.BOOKWORM),
    (199, Level.BOOKWORM),
    (200, Level.BIBLIOPHILE),
    (10_000, Level.BIBLIOPHILE),
])
def test_level_boundaries(score, level):
    assert level_for(score) is level


def test_level_is_monotonic():
    order = list(Level)
    levels = [order.index(level_for(score)) for score in range(-100, 400)]
    assert levels == sorted(levels)


@pytest.mark.parametrize("level, max_days, default_days", [
    (Level.NOVICE, 15, 5),
    (Level.READER, 30, 7),
    (Level.BOOKWORM, 45, 10),
    (Level.BIBLIOPHILE, 60, 14),
])
def test_tier_parameters(level, max_days, default_days):
    assert max_total_borrow_days(level) == max_days
    assert default_borrow_days(level) == default_days


def test_borrow_reward_favours_first_loan():
    assert borrow_reward(1) == 3
    assert borrow_reward(2) == 1
    assert borrow_reward(40) == 1


def test_return_score_delta_table():
    assert return_score_delta(0, is_early=False, streak=1) == 5
    assert return_score_delta(-2, is_early=True, streak=1) == 7
    assert return_score_delta(3, is_early=False, streak=0) == -3
    assert return_score_delta(7, is_early=False, streak=0) == -3
    assert return_score_delta(8, is_early=False, streak=0) == -6


def test_streak_bonus_every_fifth_timely_return():
    assert return_score_delta(0, is_early=False, streak=5) == 15
    assert return_score_delta(-3, is_early=True, streak=10) == 17
    assert return_score_delta(0, is_early=False, streak=6) == 5
