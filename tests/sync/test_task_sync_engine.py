"""Tests for TaskSyncEngine.

Uses in-memory port implementations and short timing intervals so the
fallback timer, polling loop and grace-period removal run for real.
"""

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from src.wardops.api.exceptions import InvalidTransitionError
from src.wardops.sync.adapters.field_mapper import ACTIVE_STORE_STATUSES
from src.wardops.sync.domain.entities import (
    ChangeKind,
    ChannelStatus,
    NewTask,
    TaskChangeEvent,
    TaskStatus,
    TaskType,
)
from src.wardops.sync.domain.ports import ITaskChangeFeed, ITaskRepository
from src.wardops.sync.use_cases.source_selector import SyncSource
from src.wardops.sync.use_cases.task_sync import TaskSyncConfig, TaskSyncEngine

FAST = TaskSyncConfig(
    fallback_timeout=0.05,
    poll_interval=0.02,
    tick_interval=10.0,
    grace_period=0.05,
)
RESUBSCRIBING = replace(FAST, resubscribe_delay=0.01, resubscribe_max_delay=0.02)


def row(task_id: str, status: str = "pending", **overrides) -> dict[str, Any]:
    data = {
        "id": task_id,
        "title": f"Task {task_id}",
        "reason": None,
        "priority": "medium",
        "action": "deliver_food",
        "status": status,
        "room_id": "room-101",
        "source_room_id": None,
        "assigned_to_id": None,
        "created_at": "2026-03-01T12:00:00+00:00",
        "updated_at": "2026-03-01T12:00:00+00:00",
        "started_at": None,
        "completed_at": None,
    }
    data.update(overrides)
    return data


async def wait_for(predicate, timeout: float = 1.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


# ============================================
# In-memory ports
# ============================================

class InMemoryTaskRepository(ITaskRepository):
    """Task store double that records every poll."""

    def __init__(self, rows=None):
        self.rows: list[dict[str, Any]] = list(rows or [])
        self.fetch_calls: list[tuple[datetime, list[str]]] = []
        self.inserted: list[dict[str, Any]] = []
        self._next_id = 100

    async def fetch_active_since(self, since, statuses):
        self.fetch_calls.append((since, list(statuses)))
        return [dict(r) for r in self.rows]

    async def insert_task(self, record):
        self._next_id += 1
        self.inserted.append(record)
        stored = row(str(self._next_id), **record)
        self.rows.append(stored)
        return dict(stored)

    async def update_status(self, task_id, status, started_at=None, completed_at=None):
        for stored in self.rows:
            if stored["id"] == task_id:
                stored["status"] = status
                if started_at is not None and stored["started_at"] is None:
                    stored["started_at"] = started_at
                if completed_at is not None:
                    stored["completed_at"] = completed_at
                return dict(stored)
        return None


class FakeChangeFeed(ITaskChangeFeed):
    """Push channel double driven by the test."""

    def __init__(self, confirm_on_subscribe: bool = False, fail: bool = False, fail_times: int = 0):
        self.confirm_on_subscribe = confirm_on_subscribe
        self.fail = fail
        self.fail_times = fail_times
        self.subscribe_calls = 0
        self.unsubscribe_calls = 0
        self.on_change = None
        self.on_status = None
        self.unsubscribed = False

    async def subscribe(self, on_change, on_status):
        self.subscribe_calls += 1
        if self.fail or self.subscribe_calls <= self.fail_times:
            on_status(ChannelStatus.CHANNEL_ERROR)
            raise ConnectionError("listener unavailable")
        self.on_change = on_change
        self.on_status = on_status
        if self.confirm_on_subscribe:
            on_status(ChannelStatus.SUBSCRIBED)

    async def unsubscribe(self):
        self.unsubscribed = True
        self.unsubscribe_calls += 1

    def push(self, kind: ChangeKind, record=None, old_record=None):
        self.on_change(TaskChangeEvent(kind=kind, record=record, old_record=old_record))

    def report(self, status: ChannelStatus):
        self.on_status(status)


def make_engine(repo=None, feed=None, config=FAST, **kwargs):
    repo = repo or InMemoryTaskRepository()
    feed = feed or FakeChangeFeed()
    engine = TaskSyncEngine(task_repo=repo, change_feed=feed, config=config, **kwargs)
    return engine, repo, feed


# ============================================
# Source selection
# ============================================

class TestSourceSelection:
    """Tests for push confirmation and the polling fallback."""

    @pytest.mark.asyncio
    async def test_polls_after_fallback_timeout(self):
        """Without push confirmation the engine polls from the session start."""
        engine, repo, _ = make_engine(repo=InMemoryTaskRepository([row("1")]))
        await engine.start()
        try:
            await wait_for(lambda: "1" in engine.tasks)

            assert engine.source is SyncSource.POLLING
            assert engine.is_connected
            since, statuses = repo.fetch_calls[0]
            assert since == engine.session_start
            assert statuses == ACTIVE_STORE_STATUSES
        finally:
            await engine.stop()

    @pytest.mark.asyncio
    async def test_no_polling_when_push_confirmed(self):
        engine, repo, _ = make_engine(feed=FakeChangeFeed(confirm_on_subscribe=True))
        await engine.start()
        try:
            await asyncio.sleep(FAST.fallback_timeout * 3)

            assert engine.source is SyncSource.PUSH
            assert repo.fetch_calls == []
        finally:
            await engine.stop()

    @pytest.mark.asyncio
    async def test_push_confirmation_stops_polling(self):
        engine, repo, feed = make_engine()
        await engine.start()
        try:
            await wait_for(lambda: len(repo.fetch_calls) >= 2)
            feed.report(ChannelStatus.SUBSCRIBED)
            polls = len(repo.fetch_calls)

            await asyncio.sleep(FAST.poll_interval * 4)

            assert engine.source is SyncSource.PUSH
            assert len(repo.fetch_calls) == polls
        finally:
            await engine.stop()

    @pytest.mark.asyncio
    async def test_push_events_ignored_while_polling(self):
        engine, repo, feed = make_engine()
        await engine.start()
        try:
            await wait_for(lambda: engine.source is SyncSource.POLLING)
            feed.push(ChangeKind.INSERT, row("7"))

            assert "7" not in engine.tasks
        finally:
            await engine.stop()

    @pytest.mark.asyncio
    async def test_subscription_failure_falls_back_to_polling(self):
        engine, repo, _ = make_engine(feed=FakeChangeFeed(fail=True))
        await engine.start()
        try:
            await wait_for(lambda: len(repo.fetch_calls) >= 1)
            assert engine.source is SyncSource.POLLING
        finally:
            await engine.stop()

    @pytest.mark.asyncio
    async def test_lost_channel_rearms_fallback(self):
        engine, repo, feed = make_engine(feed=FakeChangeFeed(confirm_on_subscribe=True))
        await engine.start()
        try:
            feed.report(ChannelStatus.CLOSED)
            assert engine.source is SyncSource.AWAITING_PUSH

            await wait_for(lambda: len(repo.fetch_calls) >= 1)
            assert engine.source is SyncSource.POLLING
        finally:
            await engine.stop()


class TestResubscription:
    """Tests for re-establishing a failed or lost push channel."""

    @pytest.mark.asyncio
    async def test_failed_subscription_retried_until_push(self):
        feed = FakeChangeFeed(confirm_on_subscribe=True, fail_times=1)
        engine, repo, _ = make_engine(feed=feed, config=RESUBSCRIBING)
        await engine.start()
        try:
            await wait_for(lambda: engine.source is SyncSource.PUSH)
            polls = len(repo.fetch_calls)

            await asyncio.sleep(FAST.poll_interval * 4)

            assert feed.subscribe_calls == 2
            assert len(repo.fetch_calls) == polls
        finally:
            await engine.stop()

    @pytest.mark.asyncio
    async def test_attempts_within_a_round_back_off(self):
        feed = FakeChangeFeed(confirm_on_subscribe=True, fail_times=3)
        engine, _, _ = make_engine(feed=feed, config=RESUBSCRIBING)
        await engine.start()
        try:
            await wait_for(lambda: engine.source is SyncSource.PUSH)
            assert feed.subscribe_calls == 4
        finally:
            await engine.stop()

    @pytest.mark.asyncio
    async def test_lost_channel_resubscribed(self):
        feed = FakeChangeFeed(confirm_on_subscribe=True)
        engine, _, _ = make_engine(feed=feed, config=RESUBSCRIBING)
        await engine.start()
        try:
            feed.report(ChannelStatus.CLOSED)
            assert engine.source is SyncSource.AWAITING_PUSH

            await wait_for(lambda: feed.subscribe_calls == 2)

            assert engine.source is SyncSource.PUSH
            assert feed.unsubscribe_calls == 1
        finally:
            await engine.stop()

    @pytest.mark.asyncio
    async def test_polling_serves_while_channel_down(self):
        engine, repo, feed = make_engine(feed=FakeChangeFeed(fail=True), config=RESUBSCRIBING)
        await engine.start()
        try:
            await wait_for(lambda: feed.subscribe_calls >= 3 and len(repo.fetch_calls) >= 1)
            assert engine.source is SyncSource.POLLING
        finally:
            await engine.stop()

    @pytest.mark.asyncio
    async def test_stop_cancels_resubscription(self):
        engine, _, feed = make_engine(feed=FakeChangeFeed(fail=True), config=RESUBSCRIBING)
        await engine.start()
        await wait_for(lambda: feed.subscribe_calls >= 2)

        await engine.stop()
        calls = feed.subscribe_calls
        await asyncio.sleep(RESUBSCRIBING.resubscribe_max_delay * 4)

        assert feed.subscribe_calls == calls


# ============================================
# Push events
# ============================================

class TestPushEvents:
    """Tests for applying push change events."""

    @pytest.mark.asyncio
    async def test_insert_then_update(self):
        engine, _, feed = make_engine(feed=FakeChangeFeed(confirm_on_subscribe=True))
        snapshots = []
        engine.add_listener(snapshots.append)
        await engine.start()
        try:
            feed.push(ChangeKind.INSERT, row("1"))
            feed.push(ChangeKind.UPDATE, row("1", "in_progress"))

            assert engine.tasks["1"].status is TaskStatus.IN_PROGRESS
            assert len(snapshots) == 2
        finally:
            await engine.stop()

    @pytest.mark.asyncio
    async def test_stale_regression_ignored(self):
        engine, _, feed = make_engine(feed=FakeChangeFeed(confirm_on_subscribe=True))
        await engine.start()
        try:
            feed.push(ChangeKind.UPDATE, row("1", "in_progress"))
            feed.push(ChangeKind.UPDATE, row("1", "pending"))

            assert engine.tasks["1"].status is TaskStatus.IN_PROGRESS
        finally:
            await engine.stop()

    @pytest.mark.asyncio
    async def test_repeated_event_is_idempotent(self):
        engine, _, feed = make_engine(feed=FakeChangeFeed(confirm_on_subscribe=True))
        snapshots = []
        engine.add_listener(snapshots.append)
        await engine.start()
        try:
            feed.push(ChangeKind.UPDATE, row("1", "in_progress"))
            feed.push(ChangeKind.UPDATE, row("1", "in_progress"))

            assert len(snapshots) == 1
            assert len(engine.tasks) == 1
        finally:
            await engine.stop()

    @pytest.mark.asyncio
    async def test_delete_removes_immediately(self):
        engine, _, feed = make_engine(feed=FakeChangeFeed(confirm_on_subscribe=True))
        await engine.start()
        try:
            feed.push(ChangeKind.INSERT, row("1"))
            feed.push(ChangeKind.DELETE, old_record={"id": "1"})

            assert "1" not in engine.tasks
        finally:
            await engine.stop()

    @pytest.mark.asyncio
    async def test_completed_task_removed_after_grace_period(self):
        engine, _, feed = make_engine(feed=FakeChangeFeed(confirm_on_subscribe=True))
        await engine.start()
        try:
            feed.push(ChangeKind.INSERT, row("1", "in_progress"))
            feed.push(ChangeKind.UPDATE, row("1", "completed"))

            # Still visible during the grace period
            assert engine.tasks["1"].status is TaskStatus.COMPLETED
            assert engine.tasks["1"].progress == 100.0

            await wait_for(lambda: "1" not in engine.tasks)
        finally:
            await engine.stop()

    @pytest.mark.asyncio
    async def test_unreadable_record_skipped(self):
        engine, _, feed = make_engine(feed=FakeChangeFeed(confirm_on_subscribe=True))
        await engine.start()
        try:
            feed.push(ChangeKind.INSERT, row("1", "exploded"))
            assert len(engine.tasks) == 0
        finally:
            await engine.stop()


# ============================================
# Polling
# ============================================

class TestPolling:
    """Tests for poll results."""

    @pytest.mark.asyncio
    async def test_missing_task_removed_after_grace_period(self):
        repo = InMemoryTaskRepository([row("1"), row("2")])
        engine, _, _ = make_engine(repo=repo)
        await engine.start()
        try:
            await wait_for(lambda: len(engine.tasks) == 2)
            repo.rows = [r for r in repo.rows if r["id"] != "2"]

            await wait_for(lambda: "2" not in engine.tasks)
            assert "1" in engine.tasks
        finally:
            await engine.stop()


# ============================================
# Progress projection
# ============================================

class TestProgressProjection:
    """Tests for elapsed-time progress."""

    @pytest.mark.asyncio
    async def test_progress_follows_elapsed_time(self):
        engine, _, feed = make_engine(feed=FakeChangeFeed(confirm_on_subscribe=True))
        await engine.start()
        try:
            started = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
            feed.push(
                ChangeKind.UPDATE,
                row("1", "in_progress", started_at=started.isoformat()),
            )

            changed = engine.project_progress(now=started + timedelta(seconds=15))
            assert [t.id for t in changed] == ["1"]
            assert engine.tasks["1"].progress == pytest.approx(50.0)

            engine.project_progress(now=started + timedelta(seconds=90))
            assert engine.tasks["1"].progress == 100.0
        finally:
            await engine.stop()

    @pytest.mark.asyncio
    async def test_progress_never_decreases_on_update(self):
        engine, _, feed = make_engine(feed=FakeChangeFeed(confirm_on_subscribe=True))
        await engine.start()
        try:
            started = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
            feed.push(ChangeKind.UPDATE, row("1", "in_progress", started_at=started.isoformat()))
            engine.project_progress(now=started + timedelta(seconds=15))

            feed.push(ChangeKind.UPDATE, row("1", "in_progress", started_at=started.isoformat()))

            assert engine.tasks["1"].progress == pytest.approx(50.0)
        finally:
            await engine.stop()

    @pytest.mark.asyncio
    async def test_tick_projects_offset_less_timestamps(self):
        now = datetime(2026, 3, 1, 12, 0, 15, tzinfo=timezone.utc)
        engine, _, feed = make_engine(
            feed=FakeChangeFeed(confirm_on_subscribe=True),
            config=replace(FAST, tick_interval=0.01),
            clock=lambda: now,
        )
        await engine.start()
        try:
            feed.push(
                ChangeKind.UPDATE,
                row("1", "in_progress", created_at="2026-03-01T12:00:00", started_at="2026-03-01T12:00:00"),
            )

            await wait_for(lambda: engine.tasks["1"].progress > 0)

            assert engine.tasks["1"].progress == pytest.approx(50.0)
        finally:
            await engine.stop()

    @pytest.mark.asyncio
    async def test_tick_loop_survives_projection_error(self):
        engine, _, _ = make_engine(
            feed=FakeChangeFeed(confirm_on_subscribe=True),
            config=replace(FAST, tick_interval=0.01),
        )
        calls = []

        def flaky_projection(now=None):
            calls.append(now)
            if len(calls) == 1:
                raise TypeError("can't subtract offset-naive and offset-aware datetimes")
            return []

        engine.project_progress = flaky_projection
        await engine.start()
        try:
            await wait_for(lambda: len(calls) >= 3)
        finally:
            await engine.stop()


# ============================================
# Commands and lifecycle
# ============================================

class TestCommands:
    """Tests for local task creation and status changes."""

    @pytest.mark.asyncio
    async def test_create_task_shown_immediately(self):
        engine, repo, _ = make_engine(feed=FakeChangeFeed(confirm_on_subscribe=True))
        await engine.start()
        try:
            task = await engine.create_task(
                NewTask(type=TaskType.CLEANING_REQUEST, target_location_id="room-7")
            )

            assert engine.tasks[task.id].type is TaskType.CLEANING_REQUEST
            assert repo.inserted[0]["action"] == "clean_asset"
        finally:
            await engine.stop()

    @pytest.mark.asyncio
    async def test_update_status_rejects_regression(self):
        engine, _, _ = make_engine(feed=FakeChangeFeed(confirm_on_subscribe=True))
        await engine.start()
        try:
            task = await engine.create_task(
                NewTask(type=TaskType.FOOD_DELIVERY, target_location_id="room-101")
            )
            updated = await engine.update_status(task.id, TaskStatus.IN_PROGRESS)
            assert updated.started_at is not None

            with pytest.raises(InvalidTransitionError):
                await engine.update_status(task.id, TaskStatus.PENDING)
        finally:
            await engine.stop()

    @pytest.mark.asyncio
    async def test_update_status_unknown_task(self):
        engine, _, _ = make_engine(feed=FakeChangeFeed(confirm_on_subscribe=True))
        await engine.start()
        try:
            assert await engine.update_status("missing", TaskStatus.COMPLETED) is None
        finally:
            await engine.stop()


class TestLifecycle:
    """Tests for start/stop."""

    @pytest.mark.asyncio
    async def test_stop_cancels_everything(self):
        engine, repo, feed = make_engine()
        await engine.start()
        await wait_for(lambda: len(repo.fetch_calls) >= 1)

        await engine.stop()
        polls = len(repo.fetch_calls)
        await asyncio.sleep(FAST.poll_interval * 4)

        assert feed.unsubscribed
        assert len(repo.fetch_calls) == polls

    @pytest.mark.asyncio
    async def test_events_after_stop_ignored(self):
        engine, _, feed = make_engine(feed=FakeChangeFeed(confirm_on_subscribe=True))
        await engine.start()
        await engine.stop()

        feed.push(ChangeKind.INSERT, row("1"))
        assert len(engine.tasks) == 0

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self):
        engine, _, _ = make_engine()
        await engine.start()
        await engine.stop()
        await engine.stop()

    @pytest.mark.asyncio
    async def test_cannot_restart(self):
        engine, _, _ = make_engine()
        await engine.start()
        await engine.stop()
        with pytest.raises(RuntimeError):
            await engine.start()

    @pytest.mark.asyncio
    async def test_snapshot(self):
        engine, _, feed = make_engine(feed=FakeChangeFeed(confirm_on_subscribe=True))
        await engine.start()
        try:
            feed.push(ChangeKind.INSERT, row("1"))
            snapshot = engine.snapshot()
            assert snapshot.source == "push"
            assert snapshot.task_count == 1
        finally:
            await engine.stop()
