"""Agent tools: registry, argument models, serialization and the ward adapter."""

from .registry import ARGUMENT_MODELS, TOOL_DEFINITIONS, ToolKind, ToolRegistry
from .safe_serializer import safe_dumps, to_safe
from .ward_operations import PostgresWardOperations

__all__ = [
    "ARGUMENT_MODELS",
    "TOOL_DEFINITIONS",
    "ToolKind",
    "ToolRegistry",
    "safe_dumps",
    "to_safe",
    "PostgresWardOperations",
]
