"""
Weekly Goals - XP and topic targets per Monday-to-Sunday week

Pure helpers (week boundaries, labels, encouragement) plus a small
service over the remote goal rows.
"""
from datetime import date, datetime, timedelta
from typing import List, Optional
import logging

from sfi_progress.schemas_goals import (
    WeeklyGoal,
    GoalPreset,
    Encouragement,
    WeeklyGoalResponse,
)

logger = logging.getLogger(__name__)

DEFAULT_XP_TARGET = 100
DEFAULT_TOPICS_TARGET = 3
HISTORY_LIMIT = 8

GOAL_PRESETS: List[GoalPreset] = [
    GoalPreset(label="Lätt (Easy)", xp=50, topics=2, desc="Perfekt för att börja"),
    GoalPreset(label="Lagom (Moderate)", xp=100, topics=3, desc="Bra balans"),
    GoalPreset(label="Ambitiös (Ambitious)", xp=200, topics=5, desc="Utmana dig själv"),
    GoalPreset(label="Intensiv (Intense)", xp=500, topics=10, desc="Maximalt lärande"),
]

SWEDISH_MONTHS = ["jan.", "feb.", "mars", "apr.", "maj", "juni", "juli", "aug.", "sep.", "okt.", "nov.", "dec."]


def get_week_start(today: date) -> date:
    """Monday of the week containing `today`"""
    return today - timedelta(days=today.weekday())


def get_days_remaining(today: date) -> int:
    """Days left after today: Monday 6, Saturday 1, Sunday 0"""
    return 6 - today.weekday()


def get_week_label(week_start: date) -> str:
    """e.g. '6 okt. – 12 okt.'"""
    end = week_start + timedelta(days=6)
    return f"{week_start.day} {SWEDISH_MONTHS[week_start.month - 1]} – {end.day} {SWEDISH_MONTHS[end.month - 1]}"


def default_goal(week_start: date) -> WeeklyGoal:
    return WeeklyGoal(
        weekStart=week_start,
        xpTarget=DEFAULT_XP_TARGET,
        topicsTarget=DEFAULT_TOPICS_TARGET,
    )


def get_encouragement(goal: WeeklyGoal, days_left: int) -> Encouragement:
    xp_pct = goal.xpEarned / goal.xpTarget if goal.xpTarget > 0 else 0
    topics_pct = goal.topicsCompleted / goal.topicsTarget if goal.topicsTarget > 0 else 0
    avg_pct = (xp_pct + topics_pct) / 2

    if xp_pct >= 1 and topics_pct >= 1:
        return Encouragement(message="Du nådde ditt mål! Fantastiskt! 🎉", emoji="🏆", tone="success")
    if avg_pct >= 0.75:
        return Encouragement(message="Nästan framme! Du klarar det!", emoji="💪", tone="success")
    if avg_pct >= 0.5:
        return Encouragement(message="Bra tempo! Halvvägs redan.", emoji="📈", tone="info")
    if avg_pct >= 0.25:
        return Encouragement(message=f"Bra start! {days_left} dagar kvar.", emoji="🌱", tone="growth")
    if avg_pct > 0:
        return Encouragement(
            message=f"Du har börjat! {days_left} dagar kvar att nå målet.", emoji="🚀", tone="info"
        )
    return Encouragement(message="Ny vecka! Börja med en lektion idag.", emoji="📅", tone="muted")


class WeeklyGoalService:
    """Load, save and advance the learner's weekly goal"""

    def __init__(self, repository, clock):
        self.repository = repository
        self.clock = clock

    def _today(self) -> date:
        return self.clock().date()

    def current_week_start(self) -> date:
        return get_week_start(self._today())

    async def load_current_goal(self, user_id: str) -> WeeklyGoal:
        """Current week's goal, or the default goal when none is stored"""
        week_start = self.current_week_start()
        goal = await self.repository.fetch_weekly_goal(user_id, week_start)
        return goal or default_goal(week_start)

    async def save_goal(self, user_id: str, xp_target: int, topics_target: int) -> WeeklyGoal:
        """Set targets for the current week, keeping the earned aggregates"""
        current = await self.load_current_goal(user_id)
        goal = current.model_copy(update={"xpTarget": xp_target, "topicsTarget": topics_target})
        await self.repository.upsert_weekly_goal(user_id, goal)
        return goal

    async def load_history(self, user_id: str, limit: int = HISTORY_LIMIT) -> List[WeeklyGoal]:
        return await self.repository.fetch_goal_history(user_id, limit=limit)

    def describe(self, goal: WeeklyGoal, now: Optional[datetime] = None) -> WeeklyGoalResponse:
        today = (now or self.clock()).date()
        days_left = get_days_remaining(today)
        return WeeklyGoalResponse(
            goal=goal,
            daysRemaining=days_left,
            weekLabel=get_week_label(goal.weekStart),
            encouragement=get_encouragement(goal, days_left),
        )
