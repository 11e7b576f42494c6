"""Use cases layer - Task synchronization.

Use cases depend only on ports, not concrete implementations.
"""

from .source_selector import SyncSource, SyncSourceSelector, UpdateOrigin
from .task_sync import TaskSyncConfig, TaskSyncEngine

__all__ = [
    "SyncSource",
    "SyncSourceSelector",
    "TaskSyncConfig",
    "TaskSyncEngine",
    "UpdateOrigin",
]
