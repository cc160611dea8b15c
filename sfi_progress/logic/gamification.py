"""
Gamification rules shared by the progress store, badges and notifications

Implements:
- Score percentage and XP per quiz
- Streak day-gap rule
- XP milestone crossing
"""
import math
from datetime import date, timedelta
from typing import Iterable, Optional

XP_PER_CORRECT_ANSWER = 10


def round_half_up(value: float) -> int:
    """Round .5 upwards (2.5 -> 3), unlike the built-in banker's rounding"""
    return int(math.floor(value + 0.5))


def score_percentage(score: int, total: int) -> int:
    """
    Percentage of correct answers, rounded half up.

    Raises:
        ValueError: total <= 0 or score outside 0..total
    """
    if total <= 0:
        raise ValueError(f"total must be > 0, got {total}")
    if score < 0 or score > total:
        raise ValueError(f"score must be within 0..{total}, got {score}")
    return round_half_up(score / total * 100)


def xp_for_score(score: int) -> int:
    """XP awarded for a quiz attempt (every attempt, including repeats)"""
    return score * XP_PER_CORRECT_ANSWER


def next_streak(current: int, last_day: Optional[date], today: date) -> int:
    """
    Streak after recording activity on `today`.

    Same day keeps the streak, yesterday extends it, anything else
    (including no recorded activity) restarts at 1.
    """
    if last_day == today:
        return current
    if last_day == today - timedelta(days=1):
        return current + 1
    return 1


def crossed_milestone(previous_xp: int, current_xp: int, milestones: Iterable[int]) -> Optional[int]:
    """First milestone m with previous_xp < m <= current_xp, if any"""
    for milestone in sorted(milestones):
        if previous_xp < milestone <= current_xp:
            return milestone
    return None
