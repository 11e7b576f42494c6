"""Field mapper adapter for transforming between persisted task rows and Task entities.

This adapter implements ITaskFieldMapper and encapsulates the naming
differences between the task store (``action``, ``reason``, ``room_id``)
and the domain (``type``, ``description``, ``target_location_id``).
"""

from datetime import datetime, timezone
from typing import Any

from ..domain.entities import (
    DEFAULT_ESTIMATED_DURATION_SECONDS,
    TASK_TYPE_PROFILES,
    NewTask,
    Task,
    TaskPriority,
    TaskStatus,
    TaskType,
)
from ..domain.ports import ITaskFieldMapper

# Action written to the store for each task type
TASK_TYPE_TO_ACTION: dict[TaskType, str] = {
    TaskType.FOOD_DELIVERY: "deliver_food",
    TaskType.PATIENT_TRANSFER: "transfer_patient",
    TaskType.PATIENT_ONBOARDING: "onboard_patient",
    TaskType.PATIENT_DISCHARGE: "discharge_patient",
    TaskType.CLEANING_REQUEST: "clean_asset",
    TaskType.EQUIPMENT_TRANSFER: "move_asset",
    TaskType.STAFF_ASSIGNMENT: "assign_staff",
    TaskType.LINEN_RESTOCKING: "restock_linen",
    TaskType.MEDICATION_DELIVERY: "deliver_medication",
    TaskType.MAINTENANCE_REQUEST: "repair_asset",
}

# Every action name seen in the store, plus the type names themselves
ACTION_TO_TASK_TYPE: dict[str, TaskType] = {
    **{action: task_type for task_type, action in TASK_TYPE_TO_ACTION.items()},
    **{task_type.value: task_type for task_type in TaskType},
    "clean_room": TaskType.CLEANING_REQUEST,
    "transfer_equipment": TaskType.EQUIPMENT_TRANSFER,
    "maintenance": TaskType.MAINTENANCE_REQUEST,
}

UNKNOWN_ACTION_TASK_TYPE = TaskType.STAFF_ASSIGNMENT

# "active" is a legacy spelling of in_progress
_STATUS_ALIASES = {
    "pending": TaskStatus.PENDING,
    "in_progress": TaskStatus.IN_PROGRESS,
    "active": TaskStatus.IN_PROGRESS,
    "completed": TaskStatus.COMPLETED,
    "cancelled": TaskStatus.CANCELLED,
    "canceled": TaskStatus.CANCELLED,
}

ACTIVE_STORE_STATUSES = ["pending", "in_progress", "active"]


def task_type_for_action(action: str | None) -> TaskType:
    """Resolve a persisted action name; unknown actions become staff assignments."""
    if not action:
        return UNKNOWN_ACTION_TASK_TYPE
    return ACTION_TO_TASK_TYPE.get(action.strip().lower(), UNKNOWN_ACTION_TASK_TYPE)


def estimated_duration_for_action(action: str | None) -> int:
    """Expected task length in seconds for a persisted action name."""
    task_type = ACTION_TO_TASK_TYPE.get((action or "").strip().lower())
    if task_type is None:
        return DEFAULT_ESTIMATED_DURATION_SECONDS
    return TASK_TYPE_PROFILES[task_type].estimated_duration_seconds


def default_title(task_type: TaskType, room_label: str | None = None) -> str:
    """Title used when a task is created without one, e.g. 'Food Delivery - Room 101'."""
    label = task_type.value.replace("_", " ").title()
    return f"{label} - Room {room_label}" if room_label else label


class TaskFieldMapper(ITaskFieldMapper):
    """Maps task store rows to Task entities and back.

    This class handles:
    - action <-> TaskType translation (including legacy action names)
    - status normalization ("active" is treated as in_progress)
    - start time inference (updated_at for in-progress rows without started_at)
    - Timestamp parsing (datetime objects or ISO 8601 strings)
    """

    def map_to_entity(self, raw: dict[str, Any]) -> Task:
        """Transform a persisted row into a Task entity.

        Args:
            raw: Row from the task store or a push-channel payload

        Returns:
            Task entity

        Raises:
            ValueError: If the row has no id or an unknown status
        """
        status = self.parse_status(raw.get("status"))
        if status is None:
            raise ValueError(f"Unknown task status: {raw.get('status')!r}")

        action = raw.get("action")
        created_at = self._parse_timestamp(raw.get("created_at"))
        started_at = self._parse_timestamp(raw.get("started_at"))
        if started_at is None and status is TaskStatus.IN_PROGRESS:
            started_at = self._parse_timestamp(raw.get("updated_at")) or created_at

        progress = raw.get("progress")
        if status is TaskStatus.COMPLETED:
            progress = 100.0

        return Task(
            id=str(raw["id"]),
            type=task_type_for_action(action),
            title=raw.get("title") or default_title(task_type_for_action(action)),
            status=status,
            target_location_id=str(raw.get("room_id") or ""),
            priority=self._parse_priority(raw.get("priority")),
            progress=min(100.0, max(0.0, float(progress or 0.0))),
            created_at=created_at,
            started_at=started_at,
            completed_at=self._parse_timestamp(raw.get("completed_at")),
            estimated_duration_seconds=estimated_duration_for_action(action),
            source_location_id=self._optional_str(raw.get("source_room_id")),
            description=raw.get("reason"),
            assigned_to_id=self._optional_str(raw.get("assigned_to_id")),
        )

    def map_to_record(self, task: Task) -> dict[str, Any]:
        """Transform a Task entity into a task store row (without id)."""
        return {
            "title": task.title,
            "reason": task.description,
            "priority": task.priority.value,
            "action": TASK_TYPE_TO_ACTION[task.type],
            "status": task.status.value,
            "room_id": task.target_location_id,
            "source_room_id": task.source_location_id,
            "assigned_to_id": task.assigned_to_id,
        }

    def map_new_task(self, new_task: NewTask, room_label: str | None = None) -> dict[str, Any]:
        """Build the insert record for a task creation request."""
        return {
            "title": new_task.title or default_title(new_task.type, room_label),
            "reason": new_task.description or f"{new_task.type.value} requested",
            "priority": new_task.priority.value,
            "action": TASK_TYPE_TO_ACTION[new_task.type],
            "status": TaskStatus.PENDING.value,
            "room_id": new_task.target_location_id,
            "source_room_id": new_task.source_location_id,
            "assigned_to_id": new_task.assigned_to_id,
            "equipment_id": new_task.equipment_id,
        }

    def parse_status(self, raw_status: str | None) -> TaskStatus | None:
        if not raw_status:
            return None
        return _STATUS_ALIASES.get(str(raw_status).strip().lower())

    @staticmethod
    def _parse_priority(raw_priority: str | None) -> TaskPriority:
        try:
            return TaskPriority(str(raw_priority).lower())
        except ValueError:
            return TaskPriority.MEDIUM

    @staticmethod
    def _optional_str(value: Any) -> str | None:
        return str(value) if value is not None else None

    @staticmethod
    def _parse_timestamp(value: datetime | str | None) -> datetime | None:
        """Parse a timestamp from the store.

        asyncpg returns datetime objects; push payloads carry ISO 8601
        strings, possibly with a 'Z' suffix. Values without an offset are
        taken as UTC.
        """
        if value is None or value == "":
            return None
        if not isinstance(value, datetime):
            value = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value
