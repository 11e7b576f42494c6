"""Sync module - Live view of in-flight ward tasks.

Architecture:
    domain/     - Task entities and port interfaces
    use_cases/  - Source selection and the synchronization engine
    adapters/   - PostgreSQL repository, change feed and field mapping
"""

from .domain.entities import NewTask, Task, TaskPriority, TaskStatus, TaskType
from .use_cases import SyncSource, TaskSyncConfig, TaskSyncEngine
from .visual_params import VisualParams, VisualParamsCache, fallback_visuals

__all__ = [
    "NewTask",
    "SyncSource",
    "Task",
    "TaskPriority",
    "TaskStatus",
    "TaskSyncConfig",
    "TaskSyncEngine",
    "TaskType",
    "VisualParams",
    "VisualParamsCache",
    "fallback_visuals",
]
