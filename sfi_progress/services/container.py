"""
Service Container - Dependency Injection Container

Holds the single ProgressStore of the process and the services built on
top of it. Services are lazy-loaded on first access via properties.
"""

from dataclasses import dataclass, field
from typing import Optional
import logging

from sfi_progress.clock import Clock
from sfi_progress.config import Settings
from sfi_progress.storage import LocalProgressStorage
from sfi_progress.tasks import BackgroundTasks

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """
    Dependency injection container for the progress services.

    Infrastructure dependencies (repository, aws_client, storage, clock)
    are injected; tests pass fakes here.
    """

    settings: Settings
    repository: object  # ProfileRepository or a test double
    aws_client: object  # AWSClient or a test double
    clock: Clock
    storage: Optional[LocalProgressStorage] = None
    tasks: BackgroundTasks = field(default_factory=BackgroundTasks)
    schedule_timers: bool = True

    _store: Optional[object] = field(default=None, init=False, repr=False)
    _reconciler: Optional[object] = field(default=None, init=False, repr=False)
    _badges: Optional[object] = field(default=None, init=False, repr=False)
    _notifier: Optional[object] = field(default=None, init=False, repr=False)
    _goals: Optional[object] = field(default=None, init=False, repr=False)
    _started: bool = field(default=False, init=False, repr=False)

    @property
    def store(self):
        """Get ProgressStore instance (lazy-loaded)"""
        if self._store is None:
            from sfi_progress.logic.progress_store import ProgressStore
            self._store = ProgressStore(
                clock=self.clock,
                storage=self.storage,
                repository=self.repository,
                tasks=self.tasks,
            )
            logger.debug("ProgressStore instantiated")
        return self._store

    @property
    def reconciler(self):
        if self._reconciler is None:
            from sfi_progress.logic.reconciler import ProgressReconciler
            self._reconciler = ProgressReconciler(self.store, self.repository)
        return self._reconciler

    @property
    def badges(self):
        """Get BadgeSynchronizer instance (lazy-loaded)"""
        if self._badges is None:
            from sfi_progress.logic.badge_service import BadgeSynchronizer
            self._badges = BadgeSynchronizer(
                self.store,
                self.repository,
                tasks=self.tasks,
                levels=self.settings.COURSE_LEVELS,
                next_count=self.settings.NEXT_BADGES_COUNT,
            )
            logger.debug("BadgeSynchronizer instantiated")
        return self._badges

    @property
    def notifier(self):
        """Get InAppNotifier instance (lazy-loaded)"""
        if self._notifier is None:
            from sfi_progress.logic.notifications import InAppNotifier
            self._notifier = InAppNotifier(
                self.store,
                self.aws_client,
                tasks=self.tasks,
                warmup=self.settings.NOTIFICATION_WARMUP_SECONDS,
                debounce=self.settings.NOTIFICATION_DEBOUNCE_SECONDS,
                milestones=self.settings.XP_MILESTONES,
                schedule_timers=self.schedule_timers,
            )
            logger.debug("InAppNotifier instantiated")
        return self._notifier

    @property
    def goals(self):
        if self._goals is None:
            from sfi_progress.logic.weekly_goals import WeeklyGoalService
            self._goals = WeeklyGoalService(self.repository, self.clock)
        return self._goals

    def start(self) -> None:
        """Subscribe the synchronizer and notifier to store changes"""
        if self._started:
            return
        self.badges.start()
        self.notifier.start()
        self.badges.add_unlock_listener(self.notifier.on_badges_unlocked)
        self._started = True
        logger.info("Progress services started")

    async def shutdown(self) -> None:
        if self._started:
            self.badges.stop()
            self.notifier.stop()
            self._started = False
        await self.tasks.drain()
        logger.info("Progress services stopped")


# Global container instance (initialized in main.py)
_container: Optional[ServiceContainer] = None


def get_container() -> ServiceContainer:
    """
    Get the global service container.

    Raises:
        RuntimeError: If container not initialized (call init_container first)
    """
    if _container is None:
        raise RuntimeError(
            "Service container not initialized. "
            "Call init_container() before using services."
        )
    return _container


def init_container(settings: Settings, **overrides) -> ServiceContainer:
    """
    Build the global container from settings.

    Keyword overrides replace the default infrastructure (repository,
    aws_client, clock, storage, schedule_timers).
    """
    global _container

    if "repository" not in overrides:
        from sfi_progress.services.profile_repository import ProfileRepository
        from sfi_progress.content_client import ContentClient
        overrides["repository"] = ProfileRepository(
            content_client=ContentClient(settings.CONTENT_SERVICE_URL, settings.CONTENT_SERVICE_TIMEOUT)
        )
    if "aws_client" not in overrides:
        from sfi_progress.aws_client import AWSClient
        overrides["aws_client"] = AWSClient(settings)
    if "clock" not in overrides:
        from sfi_progress.clock import make_clock
        overrides["clock"] = make_clock(settings.TIMEZONE)
    if "storage" not in overrides:
        overrides["storage"] = LocalProgressStorage(settings.LOCAL_PROGRESS_PATH)

    _container = ServiceContainer(settings=settings, **overrides)
    logger.info("Service container initialized")
    return _container


def set_container(container: Optional[ServiceContainer]) -> None:
    global _container
    _container = container
