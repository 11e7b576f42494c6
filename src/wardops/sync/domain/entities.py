"""Domain entities for task synchronization.

These are pure data structures with no infrastructure dependencies.
They represent the ward tasks tracked by the synchronization engine and
the change events delivered by the push channel.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any


class TaskType(str, Enum):
    """Kinds of ward task."""

    FOOD_DELIVERY = "food_delivery"
    PATIENT_TRANSFER = "patient_transfer"
    PATIENT_ONBOARDING = "patient_onboarding"
    PATIENT_DISCHARGE = "patient_discharge"
    CLEANING_REQUEST = "cleaning_request"
    EQUIPMENT_TRANSFER = "equipment_transfer"
    STAFF_ASSIGNMENT = "staff_assignment"
    LINEN_RESTOCKING = "linen_restocking"
    MEDICATION_DELIVERY = "medication_delivery"
    MAINTENANCE_REQUEST = "maintenance_request"


class TaskStatus(str, Enum):
    """Lifecycle of a task. Only ever moves forward."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.CANCELLED)

    @property
    def is_active(self) -> bool:
        return not self.is_terminal

    def can_transition_to(self, new_status: "TaskStatus") -> bool:
        """True if moving to ``new_status`` is not a regression.

        Re-applying the same status is allowed. A terminal status never
        changes.
        """
        if self is new_status:
            return True
        if self.is_terminal:
            return False
        return new_status.rank > self.rank


_STATUS_RANK = {
    TaskStatus.PENDING: 0,
    TaskStatus.IN_PROGRESS: 1,
    TaskStatus.COMPLETED: 2,
    TaskStatus.CANCELLED: 2,
}


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


@dataclass(frozen=True)
class TaskTypeProfile:
    """Static presentation and timing data per task type."""

    label: str
    icon: str
    color: str
    estimated_duration_seconds: int
    requires_source_room: bool = False


TASK_TYPE_PROFILES: dict[TaskType, TaskTypeProfile] = {
    TaskType.FOOD_DELIVERY: TaskTypeProfile("Food Delivery", "utensils", "#F59E0B", 30),
    TaskType.PATIENT_TRANSFER: TaskTypeProfile("Patient Transfer", "ambulance", "#3B82F6", 45, True),
    TaskType.PATIENT_ONBOARDING: TaskTypeProfile("Patient Onboarding", "user-plus", "#10B981", 60),
    TaskType.PATIENT_DISCHARGE: TaskTypeProfile("Patient Discharge", "user-minus", "#6366F1", 45),
    TaskType.CLEANING_REQUEST: TaskTypeProfile("Cleaning Request", "sparkles", "#06B6D4", 20),
    TaskType.EQUIPMENT_TRANSFER: TaskTypeProfile("Equipment Transfer", "package", "#8B5CF6", 25, True),
    TaskType.STAFF_ASSIGNMENT: TaskTypeProfile("Staff Assignment", "users", "#EC4899", 15),
    TaskType.LINEN_RESTOCKING: TaskTypeProfile("Linen Restocking", "bed", "#22C55E", 20),
    TaskType.MEDICATION_DELIVERY: TaskTypeProfile("Medication Delivery", "pill", "#EF4444", 15),
    TaskType.MAINTENANCE_REQUEST: TaskTypeProfile("Maintenance Request", "wrench", "#F97316", 40),
}

DEFAULT_ESTIMATED_DURATION_SECONDS = 30


@dataclass(frozen=True)
class Task:
    """A ward task as tracked by the client.

    Records are immutable; every change produces a new record via
    ``with_changes``.
    """

    id: str
    type: TaskType
    title: str
    status: TaskStatus
    target_location_id: str
    priority: TaskPriority = TaskPriority.MEDIUM
    progress: float = 0.0
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    estimated_duration_seconds: int = DEFAULT_ESTIMATED_DURATION_SECONDS
    source_location_id: str | None = None
    description: str | None = None
    assigned_to_id: str | None = None

    def __post_init__(self):
        if not self.id:
            raise ValueError("Task id is required")
        if self.estimated_duration_seconds <= 0:
            raise ValueError("estimated_duration_seconds must be positive")

    def with_changes(self, **changes: Any) -> "Task":
        return replace(self, **changes)

    def projected_progress(self, now: datetime) -> float:
        """Progress implied by elapsed time, clamped to [0, 100].

        Only in-progress tasks with a start time advance, and the result is
        never lower than the current progress.
        """
        if self.status is not TaskStatus.IN_PROGRESS or self.started_at is None:
            return self.progress
        elapsed = (now - self.started_at).total_seconds()
        projected = 100.0 * elapsed / self.estimated_duration_seconds
        return max(self.progress, min(100.0, max(0.0, projected)))


@dataclass
class NewTask:
    """Request to create a task.

    Attributes:
        type: Task kind
        target_location_id: Destination room id
        title: Display title; derived from the type when omitted
        priority: Task priority
        source_location_id: Origin room for transfers
        description: Free-text reason
        assigned_to_id: Staff member the task is assigned to
        equipment_id: Equipment involved, if any
    """

    type: TaskType
    target_location_id: str
    title: str | None = None
    priority: TaskPriority = TaskPriority.MEDIUM
    source_location_id: str | None = None
    description: str | None = None
    assigned_to_id: str | None = None
    equipment_id: str | None = None


class ChangeKind(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChannelStatus(str, Enum):
    """Push channel lifecycle notifications."""

    SUBSCRIBED = "SUBSCRIBED"
    CHANNEL_ERROR = "CHANNEL_ERROR"
    TIMED_OUT = "TIMED_OUT"
    CLOSED = "CLOSED"


@dataclass
class TaskChangeEvent:
    """One row change delivered by the push channel.

    ``record`` is the new row for INSERT/UPDATE, ``old_record`` the previous
    row for UPDATE/DELETE. Rows are raw persisted task records.
    """

    kind: ChangeKind
    record: dict[str, Any] | None = None
    old_record: dict[str, Any] | None = None
    received_at: datetime | None = None

    @property
    def task_id(self) -> str | None:
        row = self.record or self.old_record or {}
        task_id = row.get("id")
        return str(task_id) if task_id is not None else None


@dataclass
class SyncSnapshot:
    """Summary of the engine's state, for logging and diagnostics."""

    source: str
    task_count: int
    session_start: datetime
    pending_removals: int = 0
    tasks: list[Task] = field(default_factory=list)
