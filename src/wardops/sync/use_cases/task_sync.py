"""Task Sync Use Case - Keeps a live, client-side view of in-flight ward tasks.

The engine owns the only mutable task map. It is fed by a push channel
(row change events) and, when push does not come up in time, by a polling
fallback. It also projects task progress from elapsed time so the view
advances between updates.

Workflow:
1. start(): record the session start, subscribe to the push channel,
   arm the fallback timer, start the progress tick
2. Push confirmed -> push is authoritative; polling (if any) stops
3. Fallback timer fires first -> poll the store every poll_interval
4. A failed or lost channel is re-subscribed with exponential backoff
5. Terminal tasks leave the map after a grace period; deletes leave at once
6. stop(): cancel every timer and loop; late results are ignored
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Mapping

from ...api.exceptions import InvalidTransitionError, SubscriptionError
from ...api.resilience import DEFAULT_RETRYABLE_EXCEPTIONS, BackoffPolicy, retry_async
from ..adapters.field_mapper import ACTIVE_STORE_STATUSES, TaskFieldMapper
from ..domain.entities import (
    ChangeKind,
    ChannelStatus,
    NewTask,
    SyncSnapshot,
    Task,
    TaskChangeEvent,
    TaskStatus,
)
from ..domain.ports import ITaskChangeFeed, ITaskRepository
from .source_selector import SyncSource, SyncSourceSelector, UpdateOrigin

logger = logging.getLogger(__name__)

TaskListener = Callable[[list[Task]], Any]

RESUBSCRIBE_ERRORS = (SubscriptionError,) + DEFAULT_RETRYABLE_EXCEPTIONS


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TaskSyncConfig:
    """Timing configuration for the synchronization engine (seconds).

    Attributes:
        fallback_timeout: Wait for push confirmation before polling
        poll_interval: Delay between polls while polling is authoritative
        tick_interval: Progress projection period
        grace_period: How long completed/cancelled tasks stay visible
        resubscribe_delay: First wait before re-establishing a lost channel
        resubscribe_max_delay: Upper bound for the resubscribe backoff
        resubscribe_attempts: Subscribe attempts per resubscribe round
    """

    fallback_timeout: float = 5.0
    poll_interval: float = 3.0
    tick_interval: float = 1.0
    grace_period: float = 2.0
    resubscribe_delay: float = 5.0
    resubscribe_max_delay: float = 60.0
    resubscribe_attempts: int = 3


class TaskSyncEngine:
    """Synchronizes ward tasks from the store into a live in-memory map.

    Consumers read ``tasks`` / ``active_tasks`` and may register listeners;
    only the engine mutates the map.

    Example:
        engine = TaskSyncEngine(
            task_repo=PostgresTaskRepository(pool),
            change_feed=PostgresTaskChangeFeed(database_url),
        )
        await engine.start()
        task = await engine.create_task(NewTask(TaskType.FOOD_DELIVERY, "room-101"))
        ...
        await engine.stop()
    """

    def __init__(
        self,
        task_repo: ITaskRepository,
        change_feed: ITaskChangeFeed,
        field_mapper: TaskFieldMapper | None = None,
        config: TaskSyncConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize the engine with its dependencies.

        Args:
            task_repo: Port for reading and writing persisted tasks
            change_feed: Port for the push channel
            field_mapper: Row <-> Task translation
            config: Timing configuration
            clock: Returns the current time (timezone-aware)
        """
        self.repo = task_repo
        self.feed = change_feed
        self.mapper = field_mapper or TaskFieldMapper()
        self.config = config or TaskSyncConfig()
        self._clock = clock

        self._selector = SyncSourceSelector()
        self._tasks: dict[str, Task] = {}
        self._listeners: list[TaskListener] = []
        self._removal_handles: dict[str, asyncio.TimerHandle] = {}
        self._fallback_handle: asyncio.TimerHandle | None = None
        self._poll_task: asyncio.Task | None = None
        self._tick_task: asyncio.Task | None = None
        self._resubscribe_task: asyncio.Task | None = None
        self._session_start: datetime | None = None
        self._started = False
        self._closed = False

    # ============================================
    # Read-only view
    # ============================================

    @property
    def tasks(self) -> Mapping[str, Task]:
        return MappingProxyType(self._tasks)

    @property
    def active_tasks(self) -> list[Task]:
        """Tasks currently shown, newest first."""
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        return sorted(
            self._tasks.values(),
            key=lambda t: t.created_at or epoch,
            reverse=True,
        )

    @property
    def source(self) -> SyncSource:
        return self._selector.state

    @property
    def is_connected(self) -> bool:
        return self._selector.is_connected

    @property
    def session_start(self) -> datetime | None:
        return self._session_start

    def add_listener(self, listener: TaskListener) -> Callable[[], None]:
        """Call ``listener`` with the task list after every effective change.

        Returns:
            Function that removes the listener
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def snapshot(self) -> SyncSnapshot:
        return SyncSnapshot(
            source=self._selector.state.value,
            task_count=len(self._tasks),
            session_start=self._session_start or self._clock(),
            pending_removals=len(self._removal_handles),
            tasks=self.active_tasks,
        )

    # ============================================
    # Lifecycle
    # ============================================

    async def start(self) -> None:
        """Begin the session and subscribe to the push channel.

        A failed subscription is logged and leaves the fallback timer armed,
        so polling takes over when it fires. The channel is then retried in
        the background with exponential backoff until push is confirmed.
        """
        if self._closed:
            raise RuntimeError("TaskSyncEngine cannot be restarted after stop()")
        if self._started:
            return

        self._started = True
        self._session_start = self._clock()
        logger.info(f"Starting task sync session at {self._session_start.isoformat()}")

        self._arm_fallback()
        self._tick_task = asyncio.create_task(self._tick_loop())

        try:
            await self.feed.subscribe(self._on_change, self._on_status)
        except Exception as e:
            error = SubscriptionError(f"Push channel subscription failed: {e}", cause=e)
            logger.warning(f"{error}; polling starts if push is not confirmed")
            self._ensure_resubscribing()

    async def stop(self) -> None:
        """Cancel all timers and loops and unsubscribe. Idempotent."""
        if self._closed:
            return
        self._closed = True

        if self._fallback_handle is not None:
            self._fallback_handle.cancel()
            self._fallback_handle = None

        for handle in self._removal_handles.values():
            handle.cancel()
        self._removal_handles.clear()

        loops = [
            t
            for t in (self._poll_task, self._tick_task, self._resubscribe_task)
            if t is not None
        ]
        for task in loops:
            task.cancel()
        if loops:
            await asyncio.gather(*loops, return_exceptions=True)
        self._poll_task = None
        self._tick_task = None
        self._resubscribe_task = None

        try:
            await self.feed.unsubscribe()
        except Exception as e:
            logger.warning(f"Error unsubscribing from task changes: {e}")

        self._listeners.clear()
        logger.info("Task sync stopped")

    # ============================================
    # Commands
    # ============================================

    async def create_task(self, new_task: NewTask) -> Task:
        """Persist a new task and show it immediately.

        Returns:
            The stored task
        """
        record = self.mapper.map_new_task(new_task)
        row = await self.repo.insert_task(record)
        task = self.mapper.map_to_entity(row)
        logger.info(f"Created task {task.id} ({task.type.value}) for {task.target_location_id}")
        if not self._closed:
            self._apply(task, UpdateOrigin.LOCAL)
        return task

    async def update_status(self, task_id: str, status: TaskStatus) -> Task | None:
        """Move a task forward in its lifecycle.

        Returns:
            The stored task, or None if the store has no such task

        Raises:
            InvalidTransitionError: If the move would go backward
        """
        existing = self._tasks.get(task_id)
        if existing is not None and not existing.status.can_transition_to(status):
            raise InvalidTransitionError(task_id, existing.status.value, status.value)

        now = self._clock()
        started_at = None
        if status is TaskStatus.IN_PROGRESS and (existing is None or existing.started_at is None):
            started_at = now
        completed_at = now if status is TaskStatus.COMPLETED else None

        row = await self.repo.update_status(
            task_id,
            status.value,
            started_at=started_at,
            completed_at=completed_at,
        )
        if row is None:
            logger.warning(f"Task {task_id} not found while updating status")
            return None

        task = self.mapper.map_to_entity(row)
        if not self._closed:
            self._apply(task, UpdateOrigin.LOCAL)
        return task

    def project_progress(self, now: datetime | None = None) -> list[Task]:
        """Advance progress of in-progress tasks from elapsed time.

        Returns:
            Tasks whose progress changed
        """
        if self._closed:
            return []
        now = now or self._clock()
        changed = []
        for task_id, task in list(self._tasks.items()):
            progress = task.projected_progress(now)
            if progress != task.progress:
                updated = task.with_changes(progress=progress)
                self._tasks[task_id] = updated
                changed.append(updated)
        if changed:
            self._notify()
        return changed

    # ============================================
    # Push channel
    # ============================================

    def _on_change(self, event: TaskChangeEvent) -> None:
        if self._closed:
            return
        if not self._selector.accepts(UpdateOrigin.PUSH):
            logger.debug(f"Ignoring push event while {self._selector.state.value}")
            return

        if event.kind is ChangeKind.DELETE:
            task_id = event.task_id
            if task_id:
                self._remove(task_id)
            return

        if not event.record:
            logger.warning(f"Push {event.kind.value} event without a record")
            return

        try:
            task = self.mapper.map_to_entity(event.record)
        except (KeyError, ValueError) as e:
            logger.warning(f"Skipping unreadable task change: {e}")
            return

        self._apply(task, UpdateOrigin.PUSH)

    def _on_status(self, status: ChannelStatus) -> None:
        if self._closed:
            return

        if status is ChannelStatus.SUBSCRIBED:
            if self._fallback_handle is not None:
                self._fallback_handle.cancel()
                self._fallback_handle = None
            if self._selector.push_confirmed():
                self._stop_polling()
            return

        error = SubscriptionError(f"Push channel reported {status.value}")
        logger.warning(str(error))
        if self._selector.push_lost():
            self._arm_fallback()
        self._ensure_resubscribing()

    def _ensure_resubscribing(self) -> None:
        if self._closed:
            return
        if self._resubscribe_task is not None and not self._resubscribe_task.done():
            return
        self._resubscribe_task = asyncio.create_task(self._resubscribe_loop())

    async def _resubscribe_loop(self) -> None:
        """Re-establish the push channel until it is confirmed again.

        Each round waits, then makes up to resubscribe_attempts subscribe
        calls through retry_async. Rounds back off on the same policy.
        """
        policy = BackoffPolicy(
            initial_delay=self.config.resubscribe_delay,
            max_delay=self.config.resubscribe_max_delay,
        )
        rounds = 0
        while not self._closed and self._selector.state is not SyncSource.PUSH:
            await asyncio.sleep(policy.delay_for(rounds))
            if self._closed or self._selector.state is SyncSource.PUSH:
                return
            try:
                await retry_async(
                    self._resubscribe,
                    max_attempts=self.config.resubscribe_attempts,
                    policy=policy,
                    retryable_exceptions=RESUBSCRIBE_ERRORS,
                )
            except RESUBSCRIBE_ERRORS as e:
                rounds += 1
                logger.warning(f"Push channel still unavailable: {e}")
            else:
                logger.info("Push channel re-subscribed")
                return

    async def _resubscribe(self) -> None:
        # Release the dead listener before opening a new one
        await self.feed.unsubscribe()
        await self.feed.subscribe(self._on_change, self._on_status)

    # ============================================
    # Polling fallback
    # ============================================

    def _arm_fallback(self) -> None:
        if self._fallback_handle is not None:
            self._fallback_handle.cancel()
        loop = asyncio.get_running_loop()
        self._fallback_handle = loop.call_later(
            self.config.fallback_timeout, self._on_fallback_timeout
        )

    def _on_fallback_timeout(self) -> None:
        self._fallback_handle = None
        if self._closed:
            return
        if self._selector.fallback_elapsed():
            logger.info(
                f"Push not confirmed within {self.config.fallback_timeout}s; "
                f"polling every {self.config.poll_interval}s"
            )
            self._poll_task = asyncio.create_task(self._poll_loop())

    def _stop_polling(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None

    async def _poll_loop(self) -> None:
        while not self._closed and self._selector.is_polling:
            generation = self._selector.generation
            try:
                rows = await self.repo.fetch_active_since(
                    self._session_start, ACTIVE_STORE_STATUSES
                )
            except Exception as e:
                logger.warning(f"Task poll failed: {e}")
            else:
                self._apply_poll_result(rows, generation)
            await asyncio.sleep(self.config.poll_interval)

    def _apply_poll_result(self, rows: list[dict[str, Any]], generation: int) -> None:
        if self._closed or generation != self._selector.generation:
            logger.debug("Discarding poll result from a superseded source")
            return
        if not self._selector.accepts(UpdateOrigin.POLL):
            return

        seen: set[str] = set()
        for row in rows:
            try:
                task = self.mapper.map_to_entity(row)
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping unreadable task row: {e}")
                continue
            seen.add(task.id)
            self._apply(task, UpdateOrigin.POLL)

        # Tasks that dropped out of the active set finished or were removed
        for task_id, task in list(self._tasks.items()):
            if task_id not in seen and not task.status.is_terminal:
                self._schedule_removal(task_id)

    # ============================================
    # Map mutation
    # ============================================

    def _apply(self, task: Task, origin: UpdateOrigin) -> bool:
        """Upsert ``task`` unless it is stale. Returns True if the map changed."""
        existing = self._tasks.get(task.id)
        if existing is not None:
            if not existing.status.can_transition_to(task.status):
                logger.debug(
                    f"Ignoring stale {origin.value} update for task {task.id}: "
                    f"{existing.status.value} -> {task.status.value}"
                )
                return False
            task = task.with_changes(
                progress=max(existing.progress, task.progress),
                started_at=task.started_at or existing.started_at,
            )
            if not task.status.is_terminal:
                self._cancel_removal(task.id)
            if task == existing:
                return False

        self._tasks[task.id] = task
        if task.status.is_terminal:
            self._schedule_removal(task.id)
        self._notify()
        return True

    def _schedule_removal(self, task_id: str) -> None:
        if task_id in self._removal_handles or self._closed:
            return
        loop = asyncio.get_running_loop()
        self._removal_handles[task_id] = loop.call_later(
            self.config.grace_period, self._remove, task_id
        )

    def _cancel_removal(self, task_id: str) -> None:
        handle = self._removal_handles.pop(task_id, None)
        if handle is not None:
            handle.cancel()

    def _remove(self, task_id: str) -> None:
        self._cancel_removal(task_id)
        if self._closed:
            return
        if self._tasks.pop(task_id, None) is not None:
            logger.debug(f"Task {task_id} removed from live view")
            self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.active_tasks
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.warning(f"Task listener failed: {e}")

    async def _tick_loop(self) -> None:
        while not self._closed:
            await asyncio.sleep(self.config.tick_interval)
            try:
                self.project_progress()
            except Exception as e:
                logger.exception(f"Progress projection failed: {e}")
