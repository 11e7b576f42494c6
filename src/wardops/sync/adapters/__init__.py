"""Adapters layer - Infrastructure implementations for task sync.

- PostgresTaskRepository: PostgreSQL implementation of ITaskRepository
- PostgresTaskChangeFeed: LISTEN/NOTIFY implementation of ITaskChangeFeed
- TaskFieldMapper: Row <-> Task translation (ITaskFieldMapper)
"""

from .field_mapper import ACTIVE_STORE_STATUSES, TaskFieldMapper
from .postgres_change_feed import PostgresTaskChangeFeed, install_trigger
from .postgres_task_repo import PostgresTaskRepository

__all__ = [
    "ACTIVE_STORE_STATUSES",
    "PostgresTaskChangeFeed",
    "PostgresTaskRepository",
    "TaskFieldMapper",
    "install_trigger",
]
