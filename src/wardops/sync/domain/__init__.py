"""Domain layer - Pure task entities and port interfaces.

No infrastructure dependencies allowed in this layer.
"""

from .entities import (
    TASK_TYPE_PROFILES,
    ChangeKind,
    ChannelStatus,
    NewTask,
    SyncSnapshot,
    Task,
    TaskChangeEvent,
    TaskPriority,
    TaskStatus,
    TaskType,
    TaskTypeProfile,
)
from .ports import ITaskChangeFeed, ITaskFieldMapper, ITaskRepository

__all__ = [
    # Entities
    "TASK_TYPE_PROFILES",
    "ChangeKind",
    "ChannelStatus",
    "NewTask",
    "SyncSnapshot",
    "Task",
    "TaskChangeEvent",
    "TaskPriority",
    "TaskStatus",
    "TaskType",
    "TaskTypeProfile",
    # Ports
    "ITaskChangeFeed",
    "ITaskFieldMapper",
    "ITaskRepository",
]
