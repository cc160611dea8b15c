"""
Tests for the badge rule engine (pure evaluation)
"""
import pytest
from datetime import datetime, timezone

from sfi_progress.logic.badge_rules import (
    BADGE_RULES,
    AverageScore,
    LevelComplete,
    Threshold,
    TimeOfDay,
    UnknownRule,
    evaluate_badges,
    evaluate_rule,
    merge_badge_status,
    next_badges,
    rule_for,
)
from sfi_progress.logic.progress_store import ProgressStore
from sfi_progress.schemas import ProgressState, TopicRecord, WordRecord

from conftest import make_badge

NOW = datetime(2026, 10, 13, 8, 0, tzinfo=timezone.utc)
EMPTY_MAP = {"A": [], "B": [], "C": [], "D": [], "all": []}


def progress_with(xp=0, streak=0, scores=None, words=0, hour=None):
    topics = {
        topic_id: TopicRecord(score=s, bestScore=s, attempts=1, completedAt=NOW)
        for topic_id, s in (scores or {}).items()
    }
    history = {f"word-{i}": WordRecord(correct=1) for i in range(words)}
    return ProgressState(
        xp=xp, streak=streak, completedTopics=topics, wordHistory=history, lastStudyHour=hour,
    )


def evaluate_one(badge_id, progress, topic_map=EMPTY_MAP):
    [status] = evaluate_badges([make_badge(badge_id)], progress, topic_map)
    return status


class TestThresholdRules:

    def test_progress_clamped_at_100(self):
        status = evaluate_one("xp-500", progress_with(xp=2000))
        assert status.unlocked is True
        assert status.progressPct == 100

    def test_partial_progress(self):
        status = evaluate_one("xp-500", progress_with(xp=125))
        assert status.unlocked is False
        assert status.progressPct == 25

    def test_streak_threshold(self):
        assert evaluate_one("streak-7", progress_with(streak=7)).unlocked is True
        assert evaluate_one("streak-14", progress_with(streak=7)).progressPct == 50

    def test_daily_topics_count_prefix_only(self):
        scores = {f"daily-{i}": 50 for i in range(5)}
        scores["a1"] = 50
        status = evaluate_one("daily-champion", progress_with(scores=scores))
        assert status.unlocked is True
        assert evaluate_one("daily-legend", progress_with(scores=scores)).progressPct == 17

    def test_word_learner_scenario(self, clock):
        store = ProgressStore(clock=clock)
        for i in range(10):
            store.record_word_attempt(f"ord-{i}", True)
        status = evaluate_one("word-learner", store.get_progress())
        assert status.unlocked is True
        assert status.progressPct == 100


class TestPerfectScoreRules:

    def test_first_perfect_progress_is_best_score(self):
        status = evaluate_one("first-perfect", progress_with(scores={"a1": 70, "a2": 85}))
        assert status.unlocked is False
        assert status.progressPct == 85
        assert evaluate_one("first-perfect", progress_with(scores={"a1": 100})).unlocked is True

    def test_perfect_streak_counts_perfect_topics(self):
        scores = {f"t{i}": 100 for i in range(3)}
        scores["t9"] = 90
        status = evaluate_one("perfect-streak", progress_with(scores=scores))
        assert status.unlocked is False
        assert status.progressPct == 60

    def test_all_perfect_needs_minimum_topics(self):
        nine = {f"t{i}": 100 for i in range(9)}
        assert evaluate_one("all-perfect", progress_with(scores=nine)).unlocked is False
        ten = {f"t{i}": 100 for i in range(10)}
        assert evaluate_one("all-perfect", progress_with(scores=ten)).unlocked is True

    def test_all_perfect_progress_is_ratio_of_completed(self):
        scores = {f"t{i}": 100 for i in range(3)}
        scores["t3"] = 40
        assert evaluate_one("all-perfect", progress_with(scores=scores)).progressPct == 75

    def test_all_perfect_empty_is_zero(self):
        status = evaluate_one("all-perfect", progress_with())
        assert (status.unlocked, status.progressPct) == (False, 0)


class TestAverageScore:

    def test_unlocks_with_enough_topics(self):
        scores = {f"t{i}": 92 for i in range(5)}
        assert evaluate_one("accuracy-90", progress_with(scores=scores)).unlocked is True

    def test_needs_minimum_topics(self):
        scores = {f"t{i}": 100 for i in range(4)}
        status = evaluate_one("accuracy-90", progress_with(scores=scores))
        assert status.unlocked is False
        # 0.5 * 4/5 + 0.5 * 100/90
        assert status.progressPct == 96

    def test_half_weighting(self):
        unlocked, fraction = evaluate_rule(
            AverageScore(min_average=90, min_topics=5),
            progress_with(scores={"t0": 45}),
            EMPTY_MAP,
        )
        assert unlocked is False
        assert fraction == pytest.approx(0.5 * 0.2 + 0.5 * 0.5)


class TestLevelComplete:

    def test_complete_level(self):
        topic_map = dict(EMPTY_MAP, A=["a1", "a2"])
        status = evaluate_one("course-a-complete", progress_with(scores={"a1": 50, "a2": 10}), topic_map)
        assert status.unlocked is True

    def test_partial_level(self):
        topic_map = dict(EMPTY_MAP, B=["b1", "b2", "b3"])
        status = evaluate_one("course-b-complete", progress_with(scores={"b1": 50}), topic_map)
        assert (status.unlocked, status.progressPct) == (False, 33)

    def test_empty_level_never_unlocks(self):
        status = evaluate_one("course-c-complete", progress_with(scores={"c1": 100}))
        assert (status.unlocked, status.progressPct) == (False, 0)

    def test_all_courses_uses_all_key(self):
        topic_map = dict(EMPTY_MAP, A=["a1"], all=["a1", "b1"])
        status = evaluate_one("all-courses", progress_with(scores={"a1": 80}), topic_map)
        assert status.progressPct == 50


class TestTimeOfDay:

    @pytest.mark.parametrize("hour,unlocked", [(4, False), (5, True), (8, True), (9, False), (None, False)])
    def test_early_bird_band(self, hour, unlocked):
        status = evaluate_one("early-bird", progress_with(hour=hour))
        assert status.unlocked is unlocked
        assert status.progressPct == (100 if unlocked else 0)

    @pytest.mark.parametrize("hour,unlocked", [(21, False), (22, True), (23, True), (0, False)])
    def test_night_owl_band(self, hour, unlocked):
        assert evaluate_one("night-owl", progress_with(hour=hour)).unlocked is unlocked

    def test_band_across_midnight(self):
        rule = TimeOfDay(23, 4)
        assert evaluate_rule(rule, progress_with(hour=1), EMPTY_MAP)[0] is True
        assert evaluate_rule(rule, progress_with(hour=12), EMPTY_MAP)[0] is False


class TestUnknownBadge:

    def test_unknown_id_is_locked_not_raised(self):
        status = evaluate_one("does-not-exist", progress_with(xp=99999, streak=999))
        assert status.unlocked is False
        assert status.progressPct == 0

    def test_rule_lookup(self):
        assert rule_for("streak-3") == Threshold("streak", 3)
        assert rule_for("nope") == UnknownRule("nope")
        assert isinstance(BADGE_RULES["course-d-complete"], LevelComplete)


class TestStatusHelpers:

    def test_evaluation_keeps_catalog_order_and_metadata(self):
        catalog = [make_badge("xp-100", "progress", 2, icon="⭐"), make_badge("first-quiz", "beginner", 1)]
        statuses = evaluate_badges(catalog, progress_with(xp=100), EMPTY_MAP)
        assert [s.id for s in statuses] == ["xp-100", "first-quiz"]
        assert statuses[0].icon == "⭐"
        assert statuses[0].category == "progress"

    def test_merge_marks_awarded_as_unlocked(self):
        awarded_at = datetime(2026, 10, 1, tzinfo=timezone.utc)
        catalog = [make_badge("xp-1000", "progress", 2), make_badge("first-quiz", "beginner", 1)]
        evaluated = evaluate_badges(catalog, progress_with(xp=10), EMPTY_MAP)

        merged = merge_badge_status(evaluated, {"xp-1000": awarded_at})

        assert [b.id for b in merged] == ["first-quiz", "xp-1000"]
        assert merged[1].unlocked is True
        assert merged[1].unlockedAt == awarded_at
        assert merged[1].progressPct == 100
        assert merged[0].unlocked is False

    def test_next_badges_closest_first_and_capped(self):
        catalog = [
            make_badge("xp-100", "progress", 1),
            make_badge("xp-500", "progress", 2),
            make_badge("xp-1000", "progress", 3),
            make_badge("first-steps", "beginner", 4),
            make_badge("xp-5000", "progress", 5),
        ]
        evaluated = evaluate_badges(catalog, progress_with(xp=60), EMPTY_MAP)
        closest = next_badges(evaluated, 3)
        assert [b.id for b in closest] == ["xp-100", "xp-500", "xp-1000"]
        assert all(not b.unlocked for b in closest)
