"""
Progress Store - single owner of the learner's ProgressState

Every mutation follows the same order:
1. persist to the device record (best-effort)
2. notify subscribers synchronously
3. mirror to the remote store in the background (attached user only)

Remote failures never reach the caller.
"""
from datetime import datetime
from typing import Callable, Optional, Dict, Any
import logging

from sfi_progress.clock import Clock, local_day
from sfi_progress.events import ChangeNotifier
from sfi_progress.exceptions import ProgressServiceError
from sfi_progress.logic.gamification import next_streak, score_percentage, xp_for_score
from sfi_progress.logic.weekly_goals import get_week_start
from sfi_progress.schemas import ProgressState, TopicRecord, WordRecord, TopicScoreRow, TRANSIENT_FIELDS
from sfi_progress.storage import LocalProgressStorage
from sfi_progress.tasks import BackgroundTasks

logger = logging.getLogger(__name__)


class ProgressStore:
    """
    Local progress cache.

    Args:
        clock: returns the current local time (timezone-aware)
        storage: device record, None keeps progress in memory only
        repository: remote profile store used for background mirrors
        tasks: background task tracker shared with other services
    """

    def __init__(
        self,
        clock: Clock,
        storage: Optional[LocalProgressStorage] = None,
        repository=None,
        tasks: Optional[BackgroundTasks] = None,
    ):
        self.clock = clock
        self.storage = storage
        self.repository = repository
        self.tasks = tasks or BackgroundTasks()
        self._notifier = ChangeNotifier()
        self._state = self._load_initial()

    def _load_initial(self) -> ProgressState:
        if self.storage is None:
            return ProgressState()
        saved = self.storage.load()
        if saved is None:
            return ProgressState()
        logger.info(f"Loaded device progress: xp={saved.xp}, streak={saved.streak}, topics={len(saved.completedTopics)}")
        return saved

    # ============= READ / SUBSCRIBE =============

    def get_progress(self) -> ProgressState:
        """The live state; callers must treat it as read-only"""
        return self._state

    @property
    def user_id(self) -> Optional[str]:
        return self._state.userId

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        return self._notifier.subscribe(listener)

    async def drain(self) -> None:
        await self.tasks.drain()

    # ============= SIDE EFFECTS =============

    def _persist(self) -> None:
        if self.storage is not None:
            self.storage.save(self._state)

    def _commit(self) -> None:
        self._persist()
        self._notifier.notify()

    def _mirror_profile(self) -> None:
        user_id = self._state.userId
        if not user_id or self.repository is None:
            return
        self.tasks.spawn(
            self._upsert_profile(user_id, self._state.xp, self._state.streak, self._state.lastActivity),
            name=f"mirror-profile-{user_id}",
        )

    async def _upsert_profile(self, user_id: str, xp: int, streak: int, last_activity: Optional[datetime]) -> None:
        try:
            await self.repository.upsert_profile(user_id, xp=xp, streak=streak, last_activity=last_activity)
        except ProgressServiceError as e:
            logger.error(f"Profile mirror failed for user {user_id}: {str(e)}")

    async def _mirror_topic_completion(
        self,
        user_id: str,
        row: TopicScoreRow,
        first_completion: bool,
        now: datetime,
    ) -> None:
        try:
            await self.repository.upsert_topic_score(user_id, row)
        except ProgressServiceError as e:
            logger.error(f"Topic score mirror failed for user {user_id}, topic {row.topic_id}: {str(e)}")

        if not first_completion:
            return
        try:
            await self.repository.increment_weekly_goal(
                user_id, get_week_start(now.date()), row.xp_earned, 1
            )
        except ProgressServiceError as e:
            logger.error(f"Weekly goal update failed for user {user_id}: {str(e)}")

    # ============= MUTATIONS =============

    def add_xp(self, amount: int) -> ProgressState:
        """Award XP; amount must be > 0"""
        if amount <= 0:
            raise ValueError(f"XP amount must be > 0, got {amount}")

        self._state.xp += amount
        self._state.lastActivity = self.clock()
        self._commit()
        self._mirror_profile()
        return self._state

    def increment_streak(self) -> ProgressState:
        """
        Record today's activity for the streak.

        No-op (no persist, no notification) when today was already recorded.
        """
        now = self.clock()
        today = now.date()
        last = self._state.lastActivity
        last_day = local_day(last, now) if last is not None else None

        if last_day == today:
            return self._state

        self._state.streak = next_streak(self._state.streak, last_day, today)
        self._state.lastActivity = now
        self._commit()
        self._mirror_profile()
        logger.debug(f"Streak is now {self._state.streak}")
        return self._state

    def mark_topic_complete(self, topic_id: str, score: int, total: int) -> ProgressState:
        """
        Record a finished quiz.

        XP (score * 10) is awarded on every attempt. bestScore only goes up
        and completedAt keeps the first completion time.
        """
        pct = score_percentage(score, total)
        now = self.clock()
        existing = self._state.completedTopics.get(topic_id)
        xp_earned = xp_for_score(score)

        record = TopicRecord(
            score=pct,
            bestScore=max(existing.bestScore, pct) if existing else pct,
            attempts=existing.attempts + 1 if existing else 1,
            completedAt=existing.completedAt if existing else now,
        )
        self._state.completedTopics[topic_id] = record
        self._state.xp += xp_earned
        self._state.lastActivity = now
        self._state.lastStudyHour = now.hour
        self._commit()

        user_id = self._state.userId
        if user_id and self.repository is not None:
            row = TopicScoreRow(
                topic_id=topic_id,
                score=record.score,
                best_score=record.bestScore,
                attempts=record.attempts,
                xp_earned=xp_earned,
                completed=True,
                last_attempted=now,
            )
            self.tasks.spawn(
                self._mirror_topic_completion(user_id, row, existing is None, now),
                name=f"mirror-topic-{user_id}-{topic_id}",
            )
            self._mirror_profile()

        return self._state

    def record_word_attempt(self, word: str, correct: bool) -> ProgressState:
        """Count a vocabulary review; kept on the device only"""
        now = self.clock()
        existing = self._state.wordHistory.get(word) or WordRecord()
        self._state.wordHistory[word] = WordRecord(
            correct=existing.correct + (1 if correct else 0),
            wrong=existing.wrong + (0 if correct else 1),
            lastSeen=now,
        )
        self._state.lastActivity = now
        self._commit()
        return self._state

    def set_user_id(self, user_id: Optional[str]) -> None:
        """
        Attach or detach the remote user.

        Attaching does not merge (see ProgressReconciler). Detaching resets
        progress to defaults, persists the reset and notifies.
        """
        if user_id:
            if self._state.userId != user_id:
                logger.info(f"Attached user {user_id}")
            self._state.userId = user_id
            return

        previous = self._state.userId
        self._state = ProgressState()
        self._commit()
        logger.info(f"Detached user {previous}, progress reset")

    def save_progress(self, **fields: Any) -> ProgressState:
        """
        Overwrite the given fields (bulk restore, merges).

        Values are validated as a whole ProgressState before replacing it.
        """
        unknown = set(fields) - set(ProgressState.model_fields) - TRANSIENT_FIELDS
        if unknown:
            raise ValueError(f"Unknown progress fields: {sorted(unknown)}")

        data: Dict[str, Any] = self._state.model_dump()
        data.update({k: v for k, v in fields.items() if k not in TRANSIENT_FIELDS})
        data["userId"] = self._state.userId
        self._state = ProgressState.model_validate(data)
        self._commit()
        return self._state
