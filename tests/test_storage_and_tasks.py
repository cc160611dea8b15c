"""
Tests for the device record, change notifier, background tasks and clock helpers
"""
import asyncio
import json
import pytest
from datetime import datetime, date, timezone

from sfi_progress.clock import get_zone, local_day, make_clock
from sfi_progress.events import ChangeNotifier
from sfi_progress.schemas import ProgressState, TopicRecord
from sfi_progress.storage import STORAGE_KEY, LocalProgressStorage
from sfi_progress.tasks import BackgroundTasks

from conftest import STOCKHOLM


class TestLocalProgressStorage:

    def test_missing_file_is_none(self, tmp_path):
        assert LocalProgressStorage(tmp_path / "none.json").load() is None

    def test_save_excludes_user_id(self, tmp_path):
        path = tmp_path / "progress.json"
        storage = LocalProgressStorage(path)
        state = ProgressState(
            xp=120,
            streak=3,
            completedTopics={"a1": TopicRecord(
                score=80, bestScore=90, attempts=2, completedAt=datetime(2026, 10, 12, 9, 0, tzinfo=timezone.utc),
            )},
            userId="user-1",
        )

        assert storage.save(state) is True

        raw = json.loads(path.read_text(encoding="utf-8"))
        assert "userId" not in raw
        loaded = storage.load()
        assert loaded.xp == 120
        assert loaded.completedTopics["a1"].bestScore == 90
        assert loaded.userId is None

    def test_wrapped_record_accepted(self, tmp_path):
        path = tmp_path / "progress.json"
        path.write_text(json.dumps({STORAGE_KEY: {"xp": 7, "streak": 1, "userId": "leaked"}}), encoding="utf-8")
        loaded = LocalProgressStorage(path).load()
        assert (loaded.xp, loaded.userId) == (7, None)

    @pytest.mark.parametrize("content", ["{not json", json.dumps({"xp": -5}), json.dumps([1, 2])])
    def test_corrupt_record_is_none(self, tmp_path, content):
        path = tmp_path / "progress.json"
        path.write_text(content, encoding="utf-8")
        assert LocalProgressStorage(path).load() is None


class TestChangeNotifier:

    def test_subscribe_and_unsubscribe(self):
        notifier = ChangeNotifier()
        calls = []
        unsubscribe = notifier.subscribe(lambda: calls.append("a"))
        notifier.notify()
        unsubscribe()
        unsubscribe()
        notifier.notify()
        assert calls == ["a"]

    def test_failing_listener_does_not_block_others(self):
        notifier = ChangeNotifier()
        calls = []

        def broken():
            raise RuntimeError("boom")

        notifier.subscribe(broken)
        notifier.subscribe(lambda: calls.append("ok"))
        notifier.notify()
        assert calls == ["ok"]


class TestBackgroundTasks:

    def test_without_loop_work_is_skipped(self):
        ran = []

        async def work():
            ran.append(True)

        assert BackgroundTasks().spawn(work()) is None
        assert ran == []

    @pytest.mark.asyncio
    async def test_drain_waits_for_nested_tasks(self, tasks):
        order = []

        async def child():
            await asyncio.sleep(0)
            order.append("child")

        async def parent():
            order.append("parent")
            tasks.spawn(child(), name="child")

        tasks.spawn(parent(), name="parent")
        await tasks.drain()

        assert order == ["parent", "child"]

    @pytest.mark.asyncio
    async def test_failed_task_is_dropped(self, tasks):
        async def failing():
            raise RuntimeError("remote down")

        task = tasks.spawn(failing(), name="failing")
        await tasks.drain()
        assert task.done()
        assert isinstance(task.exception(), RuntimeError)


class TestClock:

    def test_invalid_zone_falls_back_to_utc(self):
        assert get_zone("Mars/Olympus").key == "UTC"

    def test_make_clock_is_aware(self):
        assert make_clock("Europe/Stockholm")().tzinfo is not None

    def test_local_day_uses_reference_zone(self):
        late_utc = datetime(2026, 10, 12, 22, 30, tzinfo=timezone.utc)
        reference = datetime(2026, 10, 13, 10, 0, tzinfo=STOCKHOLM)
        assert local_day(late_utc, reference) == date(2026, 10, 13)
        assert local_day(late_utc) == date(2026, 10, 12)

    def test_naive_is_utc(self):
        reference = datetime(2026, 10, 13, 10, 0, tzinfo=STOCKHOLM)
        assert local_day(datetime(2026, 10, 12, 23, 0), reference) == date(2026, 10, 13)
