"""Visual parameters for task rendering.

The rendering layer animates each task. Parameters may come from an
external generator (e.g. a model prompted for styling); anything it
returns is validated and clamped, and a deterministic fallback is used
when no generator is available or it fails. Results are cached per
(task type, priority) in an explicit cache owned by the caller.
"""

import logging
import re
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from typing import Any, Literal

from pydantic import BaseModel, ValidationInfo, field_validator

from .domain.entities import TASK_TYPE_PROFILES, Task, TaskPriority, TaskType

logger = logging.getLogger(__name__)

_HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")

VisualGenerator = Callable[[Task], Awaitable[dict[str, Any] | None]]


def _clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


class VisualParams(BaseModel):
    """Animation parameters for one task, always within renderable ranges."""

    primary_color: str = "#3B82F6"
    secondary_color: str = "#60A5FA"
    glow_intensity: float = 1.0
    animation_speed: float = 1.0
    animation_style: Literal["smooth", "bouncy", "urgent", "gentle", "pulsing"] = "smooth"
    path_curvature: float = 0.3
    path_thickness: float = 3.0
    particle_count: int = 10
    particle_style: Literal["sparkles", "smoke", "dots", "trail", "none"] = "sparkles"
    icon: str = "sparkles"
    icon_size: float = 1.0
    rotation_speed: float = 0.5
    has_trail: bool = True
    has_pulse: bool = True
    has_glow: bool = True
    urgency_level: int = 5

    @field_validator("primary_color", "secondary_color", mode="before")
    @classmethod
    def _hex_color(cls, value: Any, info: ValidationInfo) -> str:
        if isinstance(value, str) and _HEX_COLOR.match(value):
            return value
        return cls.model_fields[info.field_name].default

    @field_validator("glow_intensity")
    @classmethod
    def _glow(cls, value: float) -> float:
        return _clamp(value, 0.0, 2.0)

    @field_validator("animation_speed")
    @classmethod
    def _speed(cls, value: float) -> float:
        return _clamp(value, 0.5, 3.0)

    @field_validator("path_curvature")
    @classmethod
    def _curvature(cls, value: float) -> float:
        return _clamp(value, 0.0, 1.0)

    @field_validator("path_thickness")
    @classmethod
    def _thickness(cls, value: float) -> float:
        return _clamp(value, 1.0, 5.0)

    @field_validator("particle_count", "urgency_level", mode="before")
    @classmethod
    def _whole_number(cls, value: Any, info: ValidationInfo) -> int:
        high = 50 if info.field_name == "particle_count" else 10
        return int(_clamp(float(value), 0, high))

    @field_validator("icon_size")
    @classmethod
    def _icon_size(cls, value: float) -> float:
        return _clamp(value, 0.5, 2.0)

    @field_validator("rotation_speed")
    @classmethod
    def _rotation(cls, value: float) -> float:
        return _clamp(value, 0.0, 2.0)


_PRIORITY_STYLE = {
    TaskPriority.URGENT: {"speed": 2.5, "intensity": 2.0, "urgency": 10, "particles": 40},
    TaskPriority.HIGH: {"speed": 1.8, "intensity": 1.5, "urgency": 7, "particles": 25},
    TaskPriority.MEDIUM: {"speed": 1.2, "intensity": 1.0, "urgency": 5, "particles": 15},
    TaskPriority.LOW: {"speed": 0.8, "intensity": 0.6, "urgency": 2, "particles": 5},
}


def fallback_visuals(task_type: TaskType, priority: TaskPriority) -> VisualParams:
    """Deterministic parameters derived from the task type profile and priority."""
    profile = TASK_TYPE_PROFILES[task_type]
    style = _PRIORITY_STYLE[priority]
    if priority is TaskPriority.URGENT:
        animation_style = "urgent"
    elif priority is TaskPriority.HIGH:
        animation_style = "bouncy"
    else:
        animation_style = "smooth"

    return VisualParams(
        primary_color=profile.color,
        secondary_color=profile.color,
        glow_intensity=style["intensity"],
        animation_speed=style["speed"],
        animation_style=animation_style,
        particle_count=style["particles"],
        particle_style="sparkles" if task_type is TaskType.CLEANING_REQUEST else "trail",
        icon=profile.icon,
        icon_size=1.2,
        rotation_speed=style["speed"] * 0.3,
        has_pulse=priority is not TaskPriority.LOW,
        urgency_level=style["urgency"],
    )


class VisualParamsCache:
    """Bounded LRU cache of visual parameters keyed by (task type, priority).

    Example:
        cache = VisualParamsCache(generator=my_generator)
        params = await cache.get_or_create(task)
    """

    def __init__(self, generator: VisualGenerator | None = None, max_entries: int = 64):
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.generator = generator
        self.max_entries = max_entries
        self._entries: OrderedDict[tuple[TaskType, TaskPriority], VisualParams] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, task_type: TaskType, priority: TaskPriority) -> VisualParams | None:
        key = (task_type, priority)
        params = self._entries.get(key)
        if params is not None:
            self._entries.move_to_end(key)
        return params

    def put(self, task_type: TaskType, priority: TaskPriority, params: VisualParams) -> None:
        key = (task_type, priority)
        self._entries[key] = params
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    async def get_or_create(self, task: Task) -> VisualParams:
        """Cached parameters for the task's (type, priority), generating on a miss.

        Generator failures fall back to deterministic parameters, which are
        not cached so a later call can still use the generator.
        """
        cached = self.get(task.type, task.priority)
        if cached is not None:
            return cached

        if self.generator is None:
            return fallback_visuals(task.type, task.priority)

        try:
            raw = await self.generator(task)
            if raw is None:
                return fallback_visuals(task.type, task.priority)
            params = VisualParams.model_validate(raw)
        except Exception as e:
            logger.warning(f"Visual generation failed for {task.type.value}: {e}")
            return fallback_visuals(task.type, task.priority)

        self.put(task.type, task.priority, params)
        return params

    def clear(self) -> None:
        self._entries.clear()
