"""
Shared fixtures: virtual clocks and in-memory stand-ins for the remote store
"""
import pytest
from datetime import datetime, timedelta, date, timezone
from typing import Dict, List, Optional, Set
from zoneinfo import ZoneInfo

from sfi_progress.exceptions import RemoteStoreError
from sfi_progress.logic.progress_store import ProgressStore
from sfi_progress.schemas import ProfileRow, TopicScoreRow
from sfi_progress.schemas_badges import BadgeMetadata, UserBadgeRow
from sfi_progress.schemas_goals import WeeklyGoal
from sfi_progress.tasks import BackgroundTasks

STOCKHOLM = ZoneInfo("Europe/Stockholm")


class VirtualClock:
    """Callable clock returning a controllable local time"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class VirtualMonotonic:
    """Monotonic seconds under test control"""

    def __init__(self, start: float = 1000.0):
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> float:
        self.value += seconds
        return self.value


class FakeProfileRepository:
    """In-memory remote store with switchable failures"""

    def __init__(self):
        self.profiles: Dict[str, ProfileRow] = {}
        self.topics: Dict[str, Dict[str, TopicScoreRow]] = {}
        self.badges: Dict[str, Dict[str, datetime]] = {}
        self.goals: Dict[str, Dict[date, WeeklyGoal]] = {}
        self.catalog: List[BadgeMetadata] = []
        self.topic_levels: Dict[str, List[str]] = {"A": [], "B": [], "C": [], "D": []}

        self.fail_reads = False
        self.fail_writes = False
        self.fail_catalog = False
        self.unpersistable_badges: Set[str] = set()

        self.profile_writes: List[dict] = []
        self.award_calls: List[List[str]] = []
        self.catalog_calls = 0

    def _check_read(self, operation: str):
        if self.fail_reads:
            raise RemoteStoreError(operation, "remote unavailable")

    def _check_write(self, operation: str):
        if self.fail_writes:
            raise RemoteStoreError(operation, "remote unavailable")

    async def fetch_profile(self, user_id: str) -> Optional[ProfileRow]:
        self._check_read("fetch_profile")
        return self.profiles.get(user_id)

    async def upsert_profile(self, user_id, xp, streak, last_activity=None):
        self._check_write("upsert_profile")
        self.profile_writes.append({"user_id": user_id, "xp": xp, "streak": streak, "last_activity": last_activity})
        self.profiles[user_id] = ProfileRow(user_id=user_id, xp=xp, streak=streak, last_activity=last_activity)

    async def fetch_topic_scores(self, user_id: str) -> List[TopicScoreRow]:
        self._check_read("fetch_topic_scores")
        return list(self.topics.get(user_id, {}).values())

    async def upsert_topic_score(self, user_id: str, row: TopicScoreRow):
        self._check_write("upsert_topic_score")
        self.topics.setdefault(user_id, {})[row.topic_id] = row

    async def fetch_all_badges(self) -> List[BadgeMetadata]:
        self.catalog_calls += 1
        if self.fail_catalog:
            raise RemoteStoreError("fetch_all_badges", "catalog unavailable")
        return list(self.catalog)

    async def fetch_topic_ids_by_level(self, level: str) -> List[str]:
        if self.fail_catalog:
            raise RemoteStoreError("fetch_topic_ids_by_level", "catalog unavailable")
        return list(self.topic_levels.get(level, []))

    async def fetch_user_badges(self, user_id: str) -> List[UserBadgeRow]:
        self._check_read("fetch_user_badges")
        return [UserBadgeRow(badge_id=k, unlocked_at=v) for k, v in self.badges.get(user_id, {}).items()]

    async def award_badges(self, user_id: str, badge_ids) -> List[str]:
        self._check_write("award_badges")
        ids = list(badge_ids)
        self.award_calls.append(ids)
        awarded = self.badges.setdefault(user_id, {})
        inserted = []
        for badge_id in ids:
            if badge_id in awarded or badge_id in self.unpersistable_badges:
                continue
            awarded[badge_id] = datetime(2026, 10, 14, 12, 0, tzinfo=timezone.utc)
            inserted.append(badge_id)
        return inserted

    async def fetch_weekly_goal(self, user_id: str, week_start: date) -> Optional[WeeklyGoal]:
        self._check_read("fetch_weekly_goal")
        return self.goals.get(user_id, {}).get(week_start)

    async def upsert_weekly_goal(self, user_id: str, goal: WeeklyGoal):
        self._check_write("upsert_weekly_goal")
        self.goals.setdefault(user_id, {})[goal.weekStart] = goal

    async def increment_weekly_goal(self, user_id, week_start, xp_delta, topics_delta) -> bool:
        self._check_write("increment_weekly_goal")
        goal = self.goals.get(user_id, {}).get(week_start)
        if goal is None:
            return False
        self.goals[user_id][week_start] = goal.model_copy(update={
            "xpEarned": goal.xpEarned + xp_delta,
            "topicsCompleted": goal.topicsCompleted + topics_delta,
        })
        return True

    async def fetch_goal_history(self, user_id: str, limit: int = 8) -> List[WeeklyGoal]:
        self._check_read("fetch_goal_history")
        goals = sorted(self.goals.get(user_id, {}).values(), key=lambda g: g.weekStart, reverse=True)
        return goals[:limit]


class FakeAWSClient:
    """Records in-app notifications instead of publishing to SNS"""

    def __init__(self):
        self.sent: List[dict] = []

    async def notify_in_app(self, user_id, title, body, tag, url="/"):
        self.sent.append({"user_id": user_id, "title": title, "body": body, "tag": tag, "url": url})
        return f"msg-{len(self.sent)}"


def make_badge(badge_id: str, category: str = "beginner", sort_order: int = 0, **kwargs) -> BadgeMetadata:
    return BadgeMetadata(
        id=badge_id,
        icon=kwargs.get("icon", "🏅"),
        name=kwargs.get("name", badge_id),
        name_sv=kwargs.get("name_sv", badge_id),
        description=kwargs.get("description", f"Badge {badge_id}"),
        category=category,
        sort_order=sort_order,
    )


@pytest.fixture
def clock():
    """Tuesday 2026-10-13 10:00 in Stockholm"""
    return VirtualClock(datetime(2026, 10, 13, 10, 0, tzinfo=STOCKHOLM))


@pytest.fixture
def monotonic():
    return VirtualMonotonic()


@pytest.fixture
def repository():
    return FakeProfileRepository()


@pytest.fixture
def aws():
    return FakeAWSClient()


@pytest.fixture
def tasks():
    return BackgroundTasks()


@pytest.fixture
def store(clock, repository, tasks):
    """Store without device persistence"""
    return ProgressStore(clock=clock, repository=repository, tasks=tasks)
