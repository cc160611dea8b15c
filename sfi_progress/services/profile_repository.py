"""
Remote Profile Store - Data Access Layer

Profiles, topic scores, awarded badges and weekly goals live in one
DynamoDB table (see sfi_progress.dynamo for the key layout). The badge
catalog and topic membership come from the Content Service.

Every failure is raised as RemoteStoreError; callers decide whether to
swallow it.
"""
import asyncio
from typing import Optional, Dict, Any, List, Iterable
from datetime import datetime, date, timezone
import logging

from boto3.dynamodb.conditions import Key
from botocore.exceptions import BotoCoreError, ClientError

from sfi_progress.content_client import ContentClient
from sfi_progress.dynamo import (
    PROFILE_SK,
    TOPIC_SK_PREFIX,
    BADGE_SK_PREFIX,
    GOAL_SK_PREFIX,
    build_user_pk,
    build_topic_sk,
    build_badge_sk,
    build_goal_sk,
    strip_sk_prefix,
    dynamodb_dict,
    python_dict,
    get_db_client,
)
from sfi_progress.exceptions import RemoteStoreError
from sfi_progress.schemas import ProfileRow, TopicScoreRow
from sfi_progress.schemas_badges import BadgeMetadata, UserBadgeRow
from sfi_progress.schemas_goals import WeeklyGoal

logger = logging.getLogger(__name__)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_ts(value: Any) -> Optional[datetime]:
    """Parse a stored timestamp (ISO string or unix seconds)"""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        logger.warning(f"Invalid timestamp in progress table: {value!r}")
        return None


def _is_conditional_failure(error: ClientError) -> bool:
    return error.response.get('Error', {}).get('Code') == 'ConditionalCheckFailedException'


class ProfileRepository:
    """Repository for remote progress operations"""

    def __init__(self, table=None, content_client: Optional[ContentClient] = None):
        """
        Args:
            table: boto3 DynamoDB Table (defaults to the configured progress table)
            content_client: Content Service client for catalog lookups
        """
        self._table = table
        self.content = content_client or ContentClient()

    @property
    def table(self):
        if self._table is None:
            self._table = get_db_client().progress_table
        return self._table

    async def _query_prefix(self, user_id: str, prefix: str) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        kwargs = {
            'KeyConditionExpression': Key('PK').eq(build_user_pk(user_id)) & Key('SK').begins_with(prefix)
        }
        while True:
            response = await asyncio.to_thread(self.table.query, **kwargs)
            items.extend(python_dict(item) for item in response.get('Items', []))
            last_key = response.get('LastEvaluatedKey')
            if not last_key:
                return items
            kwargs['ExclusiveStartKey'] = last_key

    # ============= PROFILE =============

    async def fetch_profile(self, user_id: str) -> Optional[ProfileRow]:
        """Get the profile row, or None if the user has never synced"""
        try:
            response = await asyncio.to_thread(
                self.table.get_item, Key={'PK': build_user_pk(user_id), 'SK': PROFILE_SK}
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Error fetching profile for user {user_id}: {str(e)}")
            raise RemoteStoreError("fetch_profile", str(e)) from e

        item = response.get('Item')
        if not item:
            return None

        item = python_dict(item)
        return ProfileRow(
            user_id=user_id,
            xp=int(item.get('xp', 0)),
            streak=int(item.get('streak', 0)),
            last_activity=_parse_ts(item.get('last_activity')),
            display_name=item.get('display_name'),
            updated_at=_parse_ts(item.get('updated_at')),
        )

    async def upsert_profile(
        self,
        user_id: str,
        xp: int,
        streak: int,
        last_activity: Optional[datetime] = None,
    ) -> None:
        """
        Write xp, streak and last_activity onto the profile row.

        Uses SET so attributes owned by other writers (display_name) survive.
        """
        now = datetime.now(timezone.utc).isoformat()
        values = {
            ':xp': xp,
            ':streak': streak,
            ':now': now,
        }
        expression = "SET xp = :xp, streak = :streak, updated_at = :now"
        if last_activity is not None:
            expression += ", last_activity = :last_activity"
            values[':last_activity'] = _iso(last_activity)

        try:
            await asyncio.to_thread(
                self.table.update_item,
                Key={'PK': build_user_pk(user_id), 'SK': PROFILE_SK},
                UpdateExpression=expression,
                ExpressionAttributeValues=values,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Error upserting profile for user {user_id}: {str(e)}")
            raise RemoteStoreError("upsert_profile", str(e)) from e

        logger.info(f"Upserted profile for user {user_id}: xp={xp}, streak={streak}")

    # ============= TOPIC SCORES =============

    async def fetch_topic_scores(self, user_id: str) -> List[TopicScoreRow]:
        try:
            items = await self._query_prefix(user_id, TOPIC_SK_PREFIX)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Error fetching topic scores for user {user_id}: {str(e)}")
            raise RemoteStoreError("fetch_topic_scores", str(e)) from e

        rows: List[TopicScoreRow] = []
        for item in items:
            try:
                rows.append(TopicScoreRow(
                    topic_id=strip_sk_prefix(item['SK'], TOPIC_SK_PREFIX),
                    score=item.get('score', 0),
                    best_score=item.get('best_score', 0),
                    attempts=item.get('attempts', 1),
                    xp_earned=item.get('xp_earned', 0),
                    completed=item.get('completed', True),
                    last_attempted=_parse_ts(item.get('last_attempted')),
                ))
            except ValueError as e:
                logger.warning(f"Skipping invalid topic score {item.get('SK')} for user {user_id}: {str(e)}")

        return rows

    async def upsert_topic_score(self, user_id: str, row: TopicScoreRow) -> None:
        item = {
            'PK': build_user_pk(user_id),
            'SK': build_topic_sk(row.topic_id),
            'score': row.score,
            'best_score': row.best_score,
            'attempts': row.attempts,
            'xp_earned': row.xp_earned,
            'completed': row.completed,
            'last_attempted': _iso(row.last_attempted),
        }
        try:
            await asyncio.to_thread(self.table.put_item, Item=dynamodb_dict(item))
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Error upserting topic {row.topic_id} for user {user_id}: {str(e)}")
            raise RemoteStoreError("upsert_topic_score", str(e)) from e

        logger.info(
            f"Upserted topic score for user {user_id}: topic={row.topic_id}, "
            f"score={row.score}, best={row.best_score}, attempts={row.attempts}"
        )

    # ============= BADGES =============

    async def fetch_all_badges(self) -> List[BadgeMetadata]:
        """Badge catalog from the Content Service, ordered by sort_order"""
        return await self.content.fetch_all_badges()

    async def fetch_topic_ids_by_level(self, level: str) -> List[str]:
        return await self.content.fetch_topic_ids_by_level(level)

    async def fetch_user_badges(self, user_id: str) -> List[UserBadgeRow]:
        try:
            items = await self._query_prefix(user_id, BADGE_SK_PREFIX)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Error fetching badges for user {user_id}: {str(e)}")
            raise RemoteStoreError("fetch_user_badges", str(e)) from e

        badges = [
            UserBadgeRow(
                badge_id=strip_sk_prefix(item['SK'], BADGE_SK_PREFIX),
                unlocked_at=_parse_ts(item.get('unlocked_at')),
            )
            for item in items
        ]
        logger.debug(f"Retrieved {len(badges)} badges for user {user_id}")
        return badges

    async def award_badges(self, user_id: str, badge_ids: Iterable[str]) -> List[str]:
        """
        Persist badge awards, one item per badge.

        Already-awarded badges are left untouched (conditional put).

        Returns:
            Ids of the badges that were newly persisted by this call
        """
        pk = build_user_pk(user_id)
        inserted: List[str] = []
        failures: List[str] = []

        for badge_id in dict.fromkeys(badge_ids):
            now = datetime.now(timezone.utc).isoformat()
            try:
                await asyncio.to_thread(
                    self.table.put_item,
                    Item={
                        'PK': pk,
                        'SK': build_badge_sk(badge_id),
                        'badge_id': badge_id,
                        'unlocked_at': now,
                    },
                    ConditionExpression="attribute_not_exists(SK)",
                )
                inserted.append(badge_id)
            except ClientError as e:
                if _is_conditional_failure(e):
                    logger.debug(f"Badge {badge_id} already awarded to user {user_id}")
                    continue
                logger.error(f"Error awarding badge {badge_id} to user {user_id}: {str(e)}")
                failures.append(badge_id)
            except BotoCoreError as e:
                logger.error(f"Error awarding badge {badge_id} to user {user_id}: {str(e)}")
                failures.append(badge_id)

        if failures and not inserted:
            raise RemoteStoreError("award_badges", f"no badges persisted, failed: {failures}")

        if inserted:
            logger.info(f"Awarded {len(inserted)} badges to user {user_id}: {inserted}")
        return inserted

    # ============= WEEKLY GOALS =============

    @staticmethod
    def _goal_from_item(item: Dict[str, Any]) -> WeeklyGoal:
        return WeeklyGoal(
            weekStart=date.fromisoformat(strip_sk_prefix(item['SK'], GOAL_SK_PREFIX)),
            xpTarget=item.get('xp_target', 100),
            xpEarned=item.get('xp_earned', 0),
            topicsTarget=item.get('topics_target', 3),
            topicsCompleted=item.get('topics_completed', 0),
        )

    async def fetch_weekly_goal(self, user_id: str, week_start: date) -> Optional[WeeklyGoal]:
        try:
            response = await asyncio.to_thread(
                self.table.get_item,
                Key={'PK': build_user_pk(user_id), 'SK': build_goal_sk(week_start.isoformat())}
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Error fetching weekly goal for user {user_id}: {str(e)}")
            raise RemoteStoreError("fetch_weekly_goal", str(e)) from e

        item = response.get('Item')
        return self._goal_from_item(python_dict(item)) if item else None

    async def upsert_weekly_goal(self, user_id: str, goal: WeeklyGoal) -> None:
        item = {
            'PK': build_user_pk(user_id),
            'SK': build_goal_sk(goal.weekStart.isoformat()),
            'xp_target': goal.xpTarget,
            'xp_earned': goal.xpEarned,
            'topics_target': goal.topicsTarget,
            'topics_completed': goal.topicsCompleted,
            'updated_at': datetime.now(timezone.utc).isoformat(),
        }
        try:
            await asyncio.to_thread(self.table.put_item, Item=item)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Error saving weekly goal for user {user_id}: {str(e)}")
            raise RemoteStoreError("upsert_weekly_goal", str(e)) from e

        logger.info(
            f"Saved weekly goal for user {user_id}: week={goal.weekStart}, "
            f"xp={goal.xpTarget}, topics={goal.topicsTarget}"
        )

    async def increment_weekly_goal(
        self,
        user_id: str,
        week_start: date,
        xp_delta: int,
        topics_delta: int,
    ) -> bool:
        """
        Add to the aggregates of an existing goal.

        Returns:
            False when the user has no goal for that week
        """
        try:
            await asyncio.to_thread(
                self.table.update_item,
                Key={'PK': build_user_pk(user_id), 'SK': build_goal_sk(week_start.isoformat())},
                UpdateExpression="ADD xp_earned :xp, topics_completed :topics SET updated_at = :now",
                ExpressionAttributeValues={
                    ':xp': xp_delta,
                    ':topics': topics_delta,
                    ':now': datetime.now(timezone.utc).isoformat(),
                },
                ConditionExpression="attribute_exists(PK)",
            )
        except ClientError as e:
            if _is_conditional_failure(e):
                logger.debug(f"No weekly goal for user {user_id} week {week_start}, skipping")
                return False
            logger.error(f"Error updating weekly goal for user {user_id}: {str(e)}")
            raise RemoteStoreError("increment_weekly_goal", str(e)) from e
        except BotoCoreError as e:
            logger.error(f"Error updating weekly goal for user {user_id}: {str(e)}")
            raise RemoteStoreError("increment_weekly_goal", str(e)) from e

        return True

    async def fetch_goal_history(self, user_id: str, limit: int = 8) -> List[WeeklyGoal]:
        """Latest goals first"""
        try:
            response = await asyncio.to_thread(
                self.table.query,
                KeyConditionExpression=Key('PK').eq(build_user_pk(user_id)) & Key('SK').begins_with(GOAL_SK_PREFIX),
                ScanIndexForward=False,
                Limit=limit,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Error fetching goal history for user {user_id}: {str(e)}")
            raise RemoteStoreError("fetch_goal_history", str(e)) from e

        return [self._goal_from_item(python_dict(item)) for item in response.get('Items', [])]
