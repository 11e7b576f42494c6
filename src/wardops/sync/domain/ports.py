"""Port interfaces for task synchronization.

Ports define the contracts between the synchronization engine and the
infrastructure.

Following the Hexagonal Architecture (Ports and Adapters) pattern:
- Ports are interfaces defined in the domain layer
- Adapters implement these ports in the adapters layer
- Use cases depend only on ports, not concrete implementations
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from typing import Any

from .entities import ChannelStatus, Task, TaskChangeEvent, TaskStatus


class ITaskRepository(ABC):
    """Port for persisted task records.

    Rows are returned as raw dictionaries; ITaskFieldMapper turns them into
    Task entities.
    """

    @abstractmethod
    async def fetch_active_since(
        self,
        since: datetime,
        statuses: list[str],
    ) -> list[dict[str, Any]]:
        """Fetch tasks created at or after ``since`` with a status in ``statuses``.

        Args:
            since: Inclusive lower bound on created_at
            statuses: Persisted status values to include

        Returns:
            Rows ordered by created_at, newest first
        """
        ...

    @abstractmethod
    async def insert_task(self, record: dict[str, Any]) -> dict[str, Any]:
        """Insert a task record and return the stored row."""
        ...

    @abstractmethod
    async def update_status(
        self,
        task_id: str,
        status: str,
        started_at: datetime | None = None,
        completed_at: datetime | None = None,
    ) -> dict[str, Any] | None:
        """Update a task's status and return the stored row (None if missing)."""
        ...


class ITaskChangeFeed(ABC):
    """Port for the push channel delivering task row changes.

    ``subscribe`` registers both callbacks and starts delivery. The feed
    reports ChannelStatus.SUBSCRIBED once delivery is confirmed and
    CHANNEL_ERROR / TIMED_OUT / CLOSED when it is lost.
    """

    @abstractmethod
    async def subscribe(
        self,
        on_change: Callable[[TaskChangeEvent], None],
        on_status: Callable[[ChannelStatus], None],
    ) -> None:
        ...

    @abstractmethod
    async def unsubscribe(self) -> None:
        ...


class ITaskFieldMapper(ABC):
    """Port for converting between persisted rows and Task entities."""

    @abstractmethod
    def map_to_entity(self, raw: dict[str, Any]) -> Task:
        ...

    @abstractmethod
    def map_to_record(self, task: Task) -> dict[str, Any]:
        ...

    @abstractmethod
    def parse_status(self, raw_status: str | None) -> TaskStatus | None:
        """Map a persisted status value to TaskStatus (None if unknown)."""
        ...
