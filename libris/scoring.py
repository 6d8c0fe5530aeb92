"""Reader standing: score to level mapping and the numeric scoring tables.

Everything here is pure and side-effect free.
"""
from typing import Dict

from libris.models import Level

# Readers below this score may not borrow. Scores themselves are not clamped.
MIN_BORROW_SCORE = -20

FIRST_LOAN_REWARD = 3
LOAN_REWARD = 1

TIMELY_RETURN_REWARD = 5
EARLY_RETURN_BONUS = 2
STREAK_LENGTH = 5
STREAK_BONUS = 10
LATE_RETURN_PENALTY = -3
SEVERE_LATE_RETURN_PENALTY = -6
SEVERE_LATE_AFTER_DAYS = 7

_MAX_TOTAL_BORROW_DAYS: Dict[Level, int] = {
    Level.NOVICE: 15,
    Level.READER: 30,
    Level.BOOKWORM: 45,
    Level.BIBLIOPHILE: 60,
}

_DEFAULT_BORROW_DAYS: Dict[Level, int] = {
    Level.NOVICE: 5,
    Level.READER: 7,
    Level.BOOKWORM: 10,
    Level.BIBLIOPHILE: 14,
}


def level_for(score: int) -> Level:
    """Map a score to its level. Boundary values belong to the higher level."""
    if score < 50:
        return Level.NOVICE
    if score < 100:
        return Level.READER
    if score < 200:
        return Level.BOOKWORM
    return Level.BIBLIOPHILE


def max_total_borrow_days(level: Level) -> int:
    """Ceiling on the summed borrow spans of a reader's active loans."""
    return _MAX_TOTAL_BORROW_DAYS[level]


def default_borrow_days(level: Level) -> int:
    """Loan span used when a request carries no due date."""
    return _DEFAULT_BORROW_DAYS[level]


def borrow_reward(total_borrowed_books: int) -> int:
    """Score reward for a loan, given the reader's loan count including it."""
    return FIRST_LOAN_REWARD if total_borrowed_books == 1 else LOAN_REWARD


def return_score_delta(delay_days: int, is_early: bool, streak: int) -> int:
    """Score delta for a return.

    ``streak`` is the reader's timely-return streak after this return has
    been counted; it is ignored for late returns.
    """
    if delay_days > 0:
        if delay_days > SEVERE_LATE_AFTER_DAYS:
            return SEVERE_LATE_RETURN_PENALTY
        return LATE_RETURN_PENALTY

    delta = TIMELY_RETURN_REWARD
    if is_early:
        delta += EARLY_RETURN_BONUS
    if streak % STREAK_LENGTH == 0:
        delta += STREAK_BONUS
    return delta
