"""
In-app notifications for progress events

Handles:
- Settle window after start-up (NotificationGate), so restoring cached
  state is not mistaken for new achievements
- Diffing progress snapshots into notifications (streak, XP milestone,
  good or perfect quiz result)
- Badge unlock notifications fed by the badge synchronizer
- Delivery through SNS (AWSClient.notify_in_app)
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Tuple

from pydantic import BaseModel

from sfi_progress.logic.gamification import crossed_milestone
from sfi_progress.logic.progress_store import ProgressStore
from sfi_progress.schemas import ProgressState
from sfi_progress.schemas_badges import BadgeWithStatus
from sfi_progress.tasks import BackgroundTasks

logger = logging.getLogger(__name__)

DEFAULT_XP_MILESTONES = [50, 100, 250, 500, 1000, 2000, 5000]
GOOD_RESULT_PCT = 80
PERFECT_RESULT_PCT = 100


class InAppNotification(BaseModel):
    title: str
    body: str
    tag: str
    url: str = "/"


# ============= GATE =============

WARMING = "warming"
ARMED = "armed"
PENDING = "pending"


class NotificationGate:
    """
    Settle-then-debounce state machine driven by an explicit clock.

    WARMING(until) -> ARMED -> PENDING(fires_at) -> ARMED

    Events while warming are dropped. Each accepted event (re)sets the
    deadline, so a burst yields one firing `debounce` seconds after the
    last event.
    """

    def __init__(self, now: float, warmup: float = 2.0, debounce: float = 0.3):
        self.warmup = warmup
        self.debounce = debounce
        self.state = WARMING
        self.until: Optional[float] = now + warmup
        self.fires_at: Optional[float] = None

    def _advance(self, now: float) -> None:
        if self.state == WARMING and now >= self.until:
            self.state = ARMED
            self.until = None

    def on_event(self, now: float) -> bool:
        """Register a change event; False when it was dropped during warm-up"""
        self._advance(now)
        if self.state == WARMING:
            return False
        self.state = PENDING
        self.fires_at = now + self.debounce
        return True

    def poll(self, now: float) -> bool:
        """True exactly once per settled burst, when its deadline has passed"""
        self._advance(now)
        if self.state == PENDING and now >= self.fires_at:
            self.state = ARMED
            self.fires_at = None
            return True
        return False

    def seconds_until_due(self, now: float) -> Optional[float]:
        if self.state != PENDING:
            return None
        return max(0.0, self.fires_at - now)


# ============= MESSAGES =============

@dataclass(frozen=True)
class ProgressSnapshot:
    xp: int
    streak: int
    topic_ids: Tuple[str, ...]

    @classmethod
    def capture(cls, progress: ProgressState) -> "ProgressSnapshot":
        return cls(xp=progress.xp, streak=progress.streak, topic_ids=tuple(progress.completedTopics))


def streak_notification(streak: int) -> InAppNotification:
    if streak >= 30:
        emoji = "🏆"
    elif streak >= 14:
        emoji = "🔥"
    elif streak >= 7:
        emoji = "⚡"
    else:
        emoji = "🔥"
    body = "Bra start — kom tillbaka imorgon!" if streak == 1 else f"Imponerande! {streak} dagar i rad. Fortsätt så!"
    return InAppNotification(title=f"{emoji} {streak} dagars streak!", body=body, tag="streak", url="/daily")


def milestone_notification(milestone: int) -> InAppNotification:
    return InAppNotification(
        title=f"⭐ {milestone} XP uppnått!",
        body=f"Du har tjänat {milestone} XP. Fortsätt öva för att nå nästa nivå!",
        tag="xp-milestone",
        url="/profile",
    )


def quiz_notification(best_pct: int) -> Optional[InAppNotification]:
    """Only good (>= 80%) and perfect results get a notification"""
    if best_pct >= PERFECT_RESULT_PCT:
        return InAppNotification(
            title="💯 Perfekt resultat!",
            body="Du fick 100% på övningen — fantastiskt jobbat!",
            tag="quiz-perfect",
            url="/review",
        )
    if best_pct >= GOOD_RESULT_PCT:
        return InAppNotification(
            title="🎉 Bra jobbat!",
            body=f"Du fick {best_pct}% — ett starkt resultat!",
            tag="quiz-done",
            url="/review",
        )
    return None


def badge_notification(badge: BadgeWithStatus) -> InAppNotification:
    name = badge.name_sv or badge.name
    return InAppNotification(
        title=f"{badge.icon} Nytt märke upplåst!",
        body=f"{name} — {badge.description}",
        tag=f"badge-{badge.id}",
        url="/profile",
    )


def build_progress_notifications(
    previous: ProgressSnapshot,
    progress: ProgressState,
    milestones: Iterable[int] = DEFAULT_XP_MILESTONES,
) -> List[InAppNotification]:
    """Notifications for what changed between `previous` and `progress`"""
    notes: List[InAppNotification] = []

    if progress.streak > previous.streak:
        notes.append(streak_notification(progress.streak))

    milestone = crossed_milestone(previous.xp, progress.xp, milestones)
    if milestone is not None:
        notes.append(milestone_notification(milestone))

    known = set(previous.topic_ids)
    new_topics = [topic_id for topic_id in progress.completedTopics if topic_id not in known]
    if new_topics:
        record = progress.completedTopics[new_topics[-1]]
        note = quiz_notification(record.bestScore)
        if note is not None:
            notes.append(note)

    return notes


# ============= NOTIFIER =============

class InAppNotifier:
    """
    Watches the progress store and publishes in-app notifications.

    With schedule_timers=False nothing fires on its own; call poll() to
    drive the gate (tests use this with a virtual clock).
    """

    def __init__(
        self,
        store: ProgressStore,
        aws_client,
        tasks: Optional[BackgroundTasks] = None,
        warmup: float = 2.0,
        debounce: float = 0.3,
        milestones: Optional[List[int]] = None,
        monotonic: Callable[[], float] = time.monotonic,
        schedule_timers: bool = True,
    ):
        self.store = store
        self.aws_client = aws_client
        self.tasks = tasks or store.tasks
        self.milestones = list(milestones or DEFAULT_XP_MILESTONES)
        self.monotonic = monotonic
        self.schedule_timers = schedule_timers
        self.gate = NotificationGate(monotonic(), warmup=warmup, debounce=debounce)
        self._snapshot = ProgressSnapshot.capture(store.get_progress())
        self._timer: Optional[asyncio.TimerHandle] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(self._on_change)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_change(self) -> None:
        now = self.monotonic()
        if not self.gate.on_event(now):
            # Still settling: whatever is loaded now becomes the baseline
            self._snapshot = ProgressSnapshot.capture(self.store.get_progress())
            return
        if self.schedule_timers:
            self._schedule(self.gate.seconds_until_due(now))

    def _schedule(self, delay: Optional[float]) -> None:
        if delay is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, notification evaluation waits for poll()")
            return
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(delay, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        now = self.monotonic()
        if self.gate.poll(now):
            self.tasks.spawn(self.evaluate(), name="in-app-notifications")
        else:
            self._schedule(self.gate.seconds_until_due(now))

    async def poll(self) -> List[InAppNotification]:
        """Evaluate if the debounce deadline has passed"""
        if self.gate.poll(self.monotonic()):
            return await self.evaluate()
        return []

    async def evaluate(self) -> List[InAppNotification]:
        progress = self.store.get_progress()
        notes = build_progress_notifications(self._snapshot, progress, self.milestones)
        self._snapshot = ProgressSnapshot.capture(progress)
        for note in notes:
            await self._deliver(note)
        return notes

    async def on_badges_unlocked(self, badges: List[BadgeWithStatus]) -> None:
        """Unlock listener for BadgeSynchronizer: one notification per badge"""
        for badge in badges:
            await self._deliver(badge_notification(badge))

    async def _deliver(self, note: InAppNotification) -> None:
        logger.info(f"In-app notification [{note.tag}]: {note.title}")
        await self.aws_client.notify_in_app(
            self.store.user_id, title=note.title, body=note.body, tag=note.tag, url=note.url
        )
