"""
Progress Reconciler - best-of merge of cloud progress at sign-in

xp and streak take the larger value; a remote topic replaces the local
record when the local one is missing or has a lower best score. Local
progress never regresses, and merging the same snapshot twice changes
nothing.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sfi_progress.exceptions import ProgressServiceError
from sfi_progress.logic.progress_store import ProgressStore
from sfi_progress.schemas import ProfileRow, TopicRecord, TopicScoreRow

logger = logging.getLogger(__name__)


def merge_topics(
    local: Dict[str, TopicRecord],
    remote: List[TopicScoreRow],
    now,
) -> Dict[str, TopicRecord]:
    """Local topics overlaid with every remote row that beats them"""
    merged = dict(local)
    for row in remote:
        current = merged.get(row.topic_id)
        if current is not None and row.best_score <= current.bestScore:
            continue
        try:
            merged[row.topic_id] = TopicRecord(
                score=row.score,
                bestScore=row.best_score,
                attempts=max(row.attempts, 1),
                completedAt=row.last_attempted or now,
            )
        except ValueError as e:
            logger.warning(f"Skipping invalid remote topic {row.topic_id}: {str(e)}")
    return merged


def _latest(local: Optional[datetime], remote: Optional[datetime]) -> Optional[datetime]:
    if remote is None:
        return local
    if remote.tzinfo is None:
        remote = remote.replace(tzinfo=timezone.utc)
    if local is None:
        return remote
    if local.tzinfo is None:
        local = local.replace(tzinfo=timezone.utc)
    return max(local, remote)


class ProgressReconciler:
    """Merges the remote snapshot into the store for a signing-in user"""

    def __init__(self, store: ProgressStore, repository):
        self.store = store
        self.repository = repository

    async def load_cloud_progress(self, user_id: str) -> bool:
        """
        Attach `user_id` and merge its cloud progress.

        Returns:
            True when a merge was applied, False when the remote fetch
            failed or the user signed out while it was in flight
        """
        self.store.set_user_id(user_id)

        try:
            profile, topics = await asyncio.gather(
                self.repository.fetch_profile(user_id),
                self.repository.fetch_topic_scores(user_id),
            )
        except ProgressServiceError as e:
            logger.error(f"Cloud progress unavailable for user {user_id}, keeping local progress: {str(e)}")
            return False

        if self.store.user_id != user_id:
            logger.info(f"User {user_id} no longer attached, discarding cloud progress")
            return False

        self._apply(profile, topics)
        return True

    def _apply(self, profile: Optional[ProfileRow], topics: List[TopicScoreRow]) -> None:
        state = self.store.get_progress()
        xp = max(state.xp, profile.xp) if profile else state.xp
        streak = max(state.streak, profile.streak) if profile else state.streak
        completed = merge_topics(state.completedTopics, topics, self.store.clock())

        # A streak adopted from the cloud keeps the activity date it was earned on
        last_activity = state.lastActivity
        if profile and profile.streak > state.streak:
            last_activity = _latest(last_activity, profile.last_activity)

        logger.info(
            f"Merged cloud progress for user {state.userId}: xp {state.xp}->{xp}, "
            f"streak {state.streak}->{streak}, topics {len(state.completedTopics)}->{len(completed)}"
        )
        # One persist and one notification for the whole merge
        self.store.save_progress(xp=xp, streak=streak, completedTopics=completed, lastActivity=last_activity)
