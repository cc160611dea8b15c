"""
Badge Synchronizer - Business Logic

Bridges rule evaluation with persisted awards:
1. Catalog and topic map are loaded once per session (cached on success only)
2. Awarded badges are read from the remote store
3. Badges unlocked locally but not awarded yet are awarded (idempotent put)
4. Badges the store confirms as newly persisted are surfaced exactly once

Failures are logged and leave the previous status in place; the next
progress change triggers another pass.
"""
import asyncio
from typing import Awaitable, Callable, Dict, List, Optional, Set
from datetime import datetime
import logging

from sfi_progress.exceptions import ProgressServiceError
from sfi_progress.logic.badge_rules import evaluate_badges, merge_badge_status, next_badges
from sfi_progress.logic.progress_store import ProgressStore
from sfi_progress.schemas_badges import BadgeMetadata, BadgeStatus, BadgeWithStatus
from sfi_progress.tasks import BackgroundTasks

logger = logging.getLogger(__name__)

UnlockListener = Callable[[List[BadgeWithStatus]], Awaitable[None]]

ALL_LEVELS_KEY = "all"


class BadgeSynchronizer:
    """Keeps remote badge awards in step with local progress"""

    def __init__(
        self,
        store: ProgressStore,
        repository,
        tasks: Optional[BackgroundTasks] = None,
        levels: Optional[List[str]] = None,
        next_count: int = 3,
    ):
        self.store = store
        self.repository = repository
        self.tasks = tasks or store.tasks
        self.levels = list(levels or ["A", "B", "C", "D"])
        self.next_count = next_count

        self._catalog: Optional[List[BadgeMetadata]] = None
        self._topic_map: Optional[Dict[str, List[str]]] = None

        self._user_id: Optional[str] = None
        self._awarded: Dict[str, Optional[datetime]] = {}
        self._previous_unlocked: Set[str] = set()
        self._newly_unlocked: List[BadgeWithStatus] = []

        self._listeners: List[UnlockListener] = []
        self._unsubscribe: Optional[Callable[[], None]] = None

    # ============= WIRING =============

    def start(self) -> None:
        """Re-run refresh in the background on every progress change"""
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(self._on_progress_change)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_progress_change(self) -> None:
        self.tasks.spawn(self.refresh(), name="badge-refresh")

    def add_unlock_listener(self, listener: UnlockListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # ============= SESSION CACHE =============

    @property
    def loading(self) -> bool:
        return self._catalog is None or self._topic_map is None

    async def _ensure_catalog(self) -> None:
        if self._catalog is None:
            catalog = await self.repository.fetch_all_badges()
            self._catalog = sorted(catalog, key=lambda b: b.sort_order)
            logger.info(f"Badge catalog loaded: {len(self._catalog)} badges")

        if self._topic_map is None:
            per_level = await asyncio.gather(
                *(self.repository.fetch_topic_ids_by_level(level) for level in self.levels)
            )
            topic_map = dict(zip(self.levels, per_level))
            topic_map[ALL_LEVELS_KEY] = [topic_id for ids in per_level for topic_id in ids]
            self._topic_map = topic_map
            logger.info(f"Topic map loaded: { {k: len(v) for k, v in topic_map.items()} }")

    def _track_user(self, user_id: Optional[str]) -> None:
        """Drop per-user state when the attached user changes"""
        if user_id == self._user_id:
            return
        logger.debug(f"Badge state reset: {self._user_id} -> {user_id}")
        self._user_id = user_id
        self._awarded = {}
        self._previous_unlocked = set()
        self._newly_unlocked = []

    # ============= SYNC =============

    async def refresh(self) -> List[BadgeWithStatus]:
        """
        Run one evaluate-and-award pass for the attached user.

        Returns:
            Badges newly unlocked by this pass (empty when nothing new,
            for anonymous users, or when the remote store failed)
        """
        user_id = self.store.user_id
        self._track_user(user_id)

        try:
            await self._ensure_catalog()
        except ProgressServiceError as e:
            logger.error(f"Badge catalog unavailable: {str(e)}")
            return []

        if not user_id:
            return []

        try:
            rows = await self.repository.fetch_user_badges(user_id)
        except ProgressServiceError as e:
            logger.error(f"Could not load badges for user {user_id}: {str(e)}")
            return []

        if self.store.user_id != user_id:
            logger.info(f"User {user_id} signed out during badge refresh, discarding result")
            return []

        for row in rows:
            self._awarded.setdefault(row.badge_id, row.unlocked_at)

        evaluated = evaluate_badges(self._catalog, self.store.get_progress(), self._topic_map)
        to_award = [b.id for b in evaluated if b.unlocked and b.id not in self._awarded]

        if not to_award:
            self._previous_unlocked = set(self._awarded)
            return []

        logger.debug(f"Awarding {to_award} to user {user_id}")
        try:
            inserted = await self.repository.award_badges(user_id, to_award)
        except ProgressServiceError as e:
            logger.error(f"Badge award failed for user {user_id}: {str(e)}")
            return []

        if self.store.user_id != user_id:
            logger.info(f"User {user_id} signed out during badge award, discarding result")
            return []

        now = self.store.clock()
        for badge_id in inserted:
            self._awarded.setdefault(badge_id, now)

        fresh_ids = {badge_id for badge_id in inserted if badge_id not in self._previous_unlocked}
        self._previous_unlocked = set(self._awarded)

        batch = [
            BadgeWithStatus(
                **badge.model_dump(),
                unlocked=True,
                unlockedAt=self._awarded.get(badge.id),
                progressPct=100,
            )
            for badge in self._catalog
            if badge.id in fresh_ids
        ]
        if not batch:
            return []

        surfaced = {b.id for b in self._newly_unlocked}
        self._newly_unlocked.extend(b for b in batch if b.id not in surfaced)
        logger.info(f"User {user_id} unlocked {len(batch)} new badges: {[b.id for b in batch]}")

        await self._notify_unlocked(batch)
        return batch

    async def _notify_unlocked(self, batch: List[BadgeWithStatus]) -> None:
        for listener in list(self._listeners):
            try:
                await listener(batch)
            except Exception as e:
                logger.error(f"Badge unlock listener failed: {str(e)}", exc_info=True)

    # ============= STATUS =============

    def status(self) -> BadgeStatus:
        """Badge overview for the current user (evaluation only when anonymous)"""
        user_id = self.store.user_id
        if self._catalog is None or self._topic_map is None:
            return BadgeStatus(loading=True)

        evaluated = evaluate_badges(self._catalog, self.store.get_progress(), self._topic_map)
        awarded = self._awarded if user_id and user_id == self._user_id else {}
        all_badges = merge_badge_status(evaluated, awarded)

        return BadgeStatus(
            allBadges=all_badges,
            unlockedBadges=[b for b in all_badges if b.unlocked],
            lockedBadges=[b for b in all_badges if not b.unlocked],
            nextBadges=next_badges(all_badges, self.next_count),
            newlyUnlocked=list(self._newly_unlocked) if user_id == self._user_id else [],
            loading=False,
        )

    def clear_newly_unlocked(self) -> None:
        self._newly_unlocked = []

    @property
    def total_awarded(self) -> int:
        return len(self._awarded)
