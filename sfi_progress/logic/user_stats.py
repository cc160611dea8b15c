"""User stats summary built from the remote profile and topic scores"""
import asyncio
import logging

from sfi_progress.logic.gamification import round_half_up
from sfi_progress.schemas import UserStats

logger = logging.getLogger(__name__)


async def get_user_stats(repository, user_id: str) -> UserStats:
    """
    Summary of a user's synced progress.

    Raises:
        RemoteStoreError: profile or topic scores could not be read
    """
    profile, topics = await asyncio.gather(
        repository.fetch_profile(user_id),
        repository.fetch_topic_scores(user_id),
    )

    average = round_half_up(sum(t.best_score for t in topics) / len(topics)) if topics else 0
    stats = UserStats(
        xp=profile.xp if profile else 0,
        streak=profile.streak if profile else 0,
        topicsCompleted=len(topics),
        totalAttempts=sum(t.attempts for t in topics),
        averageScore=average,
    )
    logger.debug(f"Stats for user {user_id}: {stats.model_dump()}")
    return stats
