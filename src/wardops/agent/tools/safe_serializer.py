"""
Safe serialization of tool results.

Tool results are fed back to the model as text, so anything a domain
operation returns must become JSON without ever raising: cycles, deep
nesting, exceptions and arbitrary objects are replaced by stable markers
or plain structures.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import math
from collections.abc import Mapping
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 10
CIRCULAR_MARKER = "[Circular Reference]"
MAX_DEPTH_MARKER = "[Max Depth Reached]"
FUNCTION_MARKER = "[Function]"


def to_safe(value: Any, max_depth: int = DEFAULT_MAX_DEPTH) -> Any:
    """Convert ``value`` into JSON-compatible data.

    Objects deeper than ``max_depth`` become "[Max Depth Reached]", objects
    that contain themselves become "[Circular Reference]" at the point of
    recursion. Shared (non-cyclic) references are serialized normally.
    NaN and infinite floats become None so the result is strict JSON.
    """
    return _convert(value, 0, max_depth, set())


def _convert(value: Any, depth: int, max_depth: int, path: set[int]) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        if isinstance(value, Enum):
            return _convert(value.value, depth, max_depth, path)
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return value

    if isinstance(value, Enum):
        return _convert(value.value, depth, max_depth, path)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, BaseException):
        return {"type": type(value).__name__, "message": str(value)}
    if isinstance(value, type) or callable(value) and not _is_container(value):
        return FUNCTION_MARKER

    if depth >= max_depth:
        return MAX_DEPTH_MARKER

    marker = id(value)
    if marker in path:
        return CIRCULAR_MARKER
    path.add(marker)
    try:
        if isinstance(value, BaseModel):
            items = value.model_dump()
            return {str(k): _convert(v, depth + 1, max_depth, path) for k, v in items.items()}
        if dataclasses.is_dataclass(value):
            return {
                f.name: _convert(getattr(value, f.name), depth + 1, max_depth, path)
                for f in dataclasses.fields(value)
            }
        if isinstance(value, Mapping):
            return {str(k): _convert(v, depth + 1, max_depth, path) for k, v in value.items()}
        if isinstance(value, (list, tuple, set, frozenset)):
            return [_convert(v, depth + 1, max_depth, path) for v in value]
        if hasattr(value, "__dict__"):
            return {
                str(k): _convert(v, depth + 1, max_depth, path)
                for k, v in vars(value).items()
                if not k.startswith("_")
            }
        return str(value)
    finally:
        path.discard(marker)


def _is_container(value: Any) -> bool:
    return isinstance(value, (Mapping, list, tuple, set, frozenset, BaseModel)) or (
        dataclasses.is_dataclass(value)
    )


def safe_dumps(value: Any, max_depth: int = DEFAULT_MAX_DEPTH) -> str:
    """Serialize ``value`` to a JSON string; never raises."""
    try:
        return json.dumps(
            to_safe(value, max_depth=max_depth), ensure_ascii=False, allow_nan=False
        )
    except (TypeError, ValueError, RecursionError) as e:
        logger.error(f"Tool result serialization failed: {e}")
        return json.dumps({"error": "Serialization failed", "message": str(e)})
