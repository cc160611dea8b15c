"""
Badge Rule Engine

Closed table of rule variants keyed by badge id, evaluated by a single
dispatch function. Evaluation is pure: catalog + progress + topic map in,
BadgeWithStatus out. A catalog id without a rule evaluates as locked at 0%.

Topic map: {"A": [...], "B": [...], "C": [...], "D": [...], "all": [...]}
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union
from datetime import datetime
import logging

from sfi_progress.logic.gamification import round_half_up
from sfi_progress.schemas import ProgressState
from sfi_progress.schemas_badges import BadgeMetadata, BadgeWithStatus

logger = logging.getLogger(__name__)

TopicMap = Mapping[str, List[str]]

DAILY_TOPIC_PREFIX = "daily-"
PERFECT_SCORE = 100


# ============= RULE VARIANTS =============

@dataclass(frozen=True)
class Threshold:
    """metric >= minimum; metric is xp, streak, words, topics or daily_topics"""
    metric: str
    minimum: int


@dataclass(frozen=True)
class BestScore:
    """Any topic with bestScore >= target; progress is the best score so far"""
    target: int = PERFECT_SCORE


@dataclass(frozen=True)
class PerfectCount:
    """At least `minimum` topics with a perfect best score"""
    minimum: int


@dataclass(frozen=True)
class AllPerfect:
    """Every completed topic perfect, with at least `min_topics` completed"""
    min_topics: int


@dataclass(frozen=True)
class AverageScore:
    """Mean best score >= min_average over at least `min_topics` topics"""
    min_average: int
    min_topics: int


@dataclass(frozen=True)
class LevelComplete:
    """Every topic of a course level completed ("all" for the whole course)"""
    level: str


@dataclass(frozen=True)
class TimeOfDay:
    """
    Last study hour inside [start_hour, end_hour).

    end_hour may be 24, or lower than start_hour for bands across midnight.
    """
    start_hour: int
    end_hour: int


@dataclass(frozen=True)
class UnknownRule:
    badge_id: str


BadgeRule = Union[Threshold, BestScore, PerfectCount, AllPerfect, AverageScore, LevelComplete, TimeOfDay, UnknownRule]


BADGE_RULES: Dict[str, BadgeRule] = {
    # beginner
    "first-quiz": Threshold("topics", 1),
    "first-perfect": BestScore(PERFECT_SCORE),
    "word-learner": Threshold("words", 10),
    "first-steps": Threshold("xp", 50),
    # progress
    "half-century": Threshold("xp", 500),
    "century": Threshold("xp", 1000),
    "xp-100": Threshold("xp", 100),
    "xp-500": Threshold("xp", 500),
    "xp-1000": Threshold("xp", 1000),
    "xp-5000": Threshold("xp", 5000),
    "xp-10000": Threshold("xp", 10000),
    "five-topics": Threshold("topics", 5),
    "ten-topics": Threshold("topics", 10),
    "twenty-topics": Threshold("topics", 20),
    "twenty-five-topics": Threshold("topics", 25),
    "fifty-topics": Threshold("topics", 50),
    # mastery
    "course-a-complete": LevelComplete("A"),
    "course-b-complete": LevelComplete("B"),
    "course-c-complete": LevelComplete("C"),
    "course-d-complete": LevelComplete("D"),
    "all-courses": LevelComplete("all"),
    "vocab-50": Threshold("words", 50),
    "vocab-100": Threshold("words", 100),
    "word-master": Threshold("words", 100),
    "vocab-500": Threshold("words", 500),
    "accuracy-90": AverageScore(min_average=90, min_topics=5),
    "perfect-streak": PerfectCount(5),
    "all-perfect": AllPerfect(min_topics=10),
    # streak
    "streak-3": Threshold("streak", 3),
    "streak-7": Threshold("streak", 7),
    "streak-14": Threshold("streak", 14),
    "streak-30": Threshold("streak", 30),
    "streak-100": Threshold("streak", 100),
    # special
    "daily-champion": Threshold("daily_topics", 5),
    "daily-legend": Threshold("daily_topics", 30),
    "early-bird": TimeOfDay(5, 9),
    "night-owl": TimeOfDay(22, 24),
}


def rule_for(badge_id: str) -> BadgeRule:
    return BADGE_RULES.get(badge_id) or UnknownRule(badge_id)


# ============= EVALUATION =============

def _metric(progress: ProgressState, metric: str) -> int:
    if metric == "xp":
        return progress.xp
    if metric == "streak":
        return progress.streak
    if metric == "words":
        return len(progress.wordHistory)
    if metric == "topics":
        return len(progress.completedTopics)
    if metric == "daily_topics":
        return sum(1 for topic_id in progress.completedTopics if topic_id.startswith(DAILY_TOPIC_PREFIX))
    raise ValueError(f"Unknown badge metric: {metric}")


def _ratio(value: float, required: float) -> float:
    if required <= 0:
        return 1.0
    return value / required


def _clamp(fraction: float) -> float:
    return max(0.0, min(fraction, 1.0))


def _in_band(hour: Optional[int], start: int, end: int) -> bool:
    if hour is None:
        return False
    if start <= end:
        return start <= hour < end
    return hour >= start or hour < end


def evaluate_rule(rule: BadgeRule, progress: ProgressState, topic_map: TopicMap) -> Tuple[bool, float]:
    """(unlocked, fraction in [0, 1]) for one rule"""
    best_scores = [t.bestScore for t in progress.completedTopics.values()]

    if isinstance(rule, Threshold):
        value = _metric(progress, rule.metric)
        return value >= rule.minimum, _clamp(_ratio(value, rule.minimum))

    if isinstance(rule, BestScore):
        best = max(best_scores, default=0)
        return best >= rule.target, _clamp(_ratio(best, rule.target))

    if isinstance(rule, PerfectCount):
        perfect = sum(1 for s in best_scores if s == PERFECT_SCORE)
        return perfect >= rule.minimum, _clamp(_ratio(perfect, rule.minimum))

    if isinstance(rule, AllPerfect):
        total = len(best_scores)
        perfect = sum(1 for s in best_scores if s == PERFECT_SCORE)
        unlocked = total >= rule.min_topics and perfect == total
        return unlocked, _clamp(perfect / max(1, total))

    if isinstance(rule, AverageScore):
        count = len(best_scores)
        if count == 0:
            return False, 0.0
        average = sum(best_scores) / count
        unlocked = count >= rule.min_topics and average >= rule.min_average
        fraction = 0.5 * min(count / rule.min_topics, 1) + 0.5 * (average / rule.min_average)
        return unlocked, _clamp(fraction)

    if isinstance(rule, LevelComplete):
        members = topic_map.get(rule.level) or []
        if not members:
            return False, 0.0
        done = sum(1 for topic_id in members if topic_id in progress.completedTopics)
        return done == len(members), _clamp(done / len(members))

    if isinstance(rule, TimeOfDay):
        hit = _in_band(progress.lastStudyHour, rule.start_hour, rule.end_hour)
        return hit, 1.0 if hit else 0.0

    return False, 0.0


def evaluate_badges(
    catalog: Iterable[BadgeMetadata],
    progress: ProgressState,
    topic_map: TopicMap,
) -> List[BadgeWithStatus]:
    """Unlock status and progress for every catalog entry, in catalog order"""
    results: List[BadgeWithStatus] = []
    for badge in catalog:
        rule = rule_for(badge.id)
        if isinstance(rule, UnknownRule):
            logger.debug(f"No rule registered for badge {badge.id}, treating as locked")
        unlocked, fraction = evaluate_rule(rule, progress, topic_map)
        results.append(BadgeWithStatus(
            **badge.model_dump(),
            unlocked=unlocked,
            progressPct=round_half_up(fraction * 100),
        ))
    return results


def merge_badge_status(
    evaluated: Iterable[BadgeWithStatus],
    awarded: Mapping[str, Optional[datetime]],
) -> List[BadgeWithStatus]:
    """
    Overlay persisted awards onto an evaluation pass.

    A badge stays unlocked once awarded, even if the local predicate no
    longer holds (e.g. after a sign-out reset and partial restore).
    """
    merged = []
    for badge in evaluated:
        if badge.id in awarded:
            merged.append(badge.model_copy(update={
                "unlocked": True,
                "unlockedAt": awarded[badge.id],
                "progressPct": 100,
            }))
        else:
            merged.append(badge)
    return sorted(merged, key=lambda b: b.sort_order)


def next_badges(badges: Iterable[BadgeWithStatus], count: int = 3) -> List[BadgeWithStatus]:
    """Locked badges closest to unlocking (stable for ties)"""
    locked = [b for b in badges if not b.unlocked]
    return sorted(locked, key=lambda b: -b.progressPct)[:count]
