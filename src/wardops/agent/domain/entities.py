"""
Domain entities for the ward operations agent.

These are pure domain objects with no infrastructure dependencies.
They define the conversation, tool and response structures used
throughout the agent module.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

# ============================================
# Message Types
# ============================================


class MessageRole(str, Enum):
    """Role of a message in a conversation."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


@dataclass(frozen=True)
class ToolCall:
    """A tool call requested by the model.

    Attributes:
        id: Tool call identifier assigned by the provider (for correlation)
        name: Tool name being called
        arguments: Raw argument text, expected to be a JSON object
    """

    id: str
    name: str
    arguments: str = ""

    def to_openai_format(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass
class ConversationMessage:
    """A single message in a conversation.

    Attributes:
        role: Message role (system, user, assistant, tool)
        content: Message text content
        tool_calls: Tool calls requested by an assistant message
        tool_call_id: ID of the call a tool message answers
        name: Tool name for tool messages
    """

    role: MessageRole
    content: str
    tool_calls: Optional[list[ToolCall]] = None
    tool_call_id: Optional[str] = None
    name: Optional[str] = None

    def to_openai_format(self) -> dict[str, Any]:
        """Convert to the chat-completions wire format."""
        payload: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            payload["tool_calls"] = [call.to_openai_format() for call in self.tool_calls]
        if self.tool_call_id:
            payload["tool_call_id"] = self.tool_call_id
        if self.name:
            payload["name"] = self.name
        return payload

    def to_dict(self) -> dict[str, Any]:
        return self.to_openai_format()


# ============================================
# Tool Types
# ============================================


@dataclass
class ToolDefinition:
    """Definition of an available tool.

    Attributes:
        name: Tool name (e.g., 'create_task')
        description: Human-readable description shown to the model
        parameters: JSON Schema for parameters
        is_read_only: True if tool only reads data
    """

    name: str
    description: str
    parameters: dict[str, Any]
    is_read_only: bool = True

    def to_openai_format(self) -> dict[str, Any]:
        """Convert to OpenAI function calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


@dataclass
class ToolResult:
    """Outcome of one domain action.

    Attributes:
        success: Whether the action succeeded
        message: Human-readable summary fed back to the model
        data: Optional structured payload (made JSON-safe by the executor)
        visualization: Optional hint for the rendering layer, e.g.
            {"task_type": ..., "source_room_id": ..., "target_room_id": ..., "task_id": ...}
    """

    success: bool
    message: str
    data: Optional[Any] = None
    visualization: Optional[dict[str, Any]] = None

    @classmethod
    def ok(cls, message: str, data: Any = None, visualization: Optional[dict[str, Any]] = None) -> ToolResult:
        return cls(success=True, message=message, data=data, visualization=visualization)

    @classmethod
    def fail(cls, message: str, data: Any = None) -> ToolResult:
        return cls(success=False, message=message, data=data)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success, "message": self.message}
        if self.data is not None:
            payload["data"] = self.data
        if self.visualization is not None:
            payload["visualization"] = self.visualization
        return payload


@dataclass
class ToolInvocation:
    """Record of one executed tool call within a run."""

    tool_call_id: str
    tool_name: str
    arguments: Optional[dict[str, Any]]
    result: ToolResult


# ============================================
# Completion Types
# ============================================


@dataclass
class CompletionResponse:
    """Decoded assistant turn returned by the completion provider."""

    content: Optional[str]
    tool_calls: list[ToolCall] = field(default_factory=list)
    model: Optional[str] = None

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


# ============================================
# Agent Events & Responses
# ============================================


class AgentEventType(str, Enum):
    """Progress events emitted while a request is processed."""

    PROGRESS = "progress"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    MESSAGE = "message"
    COMPLETE = "complete"


@dataclass
class AgentEvent:
    type: AgentEventType
    content: str
    data: Optional[dict[str, Any]] = None


@dataclass
class AgentResponse:
    """Result of one orchestrator run.

    Attributes:
        reply: Final natural-language reply
        tool_results: Every tool invocation made during the run, in order
        history: Updated conversation (without the system prompt)
        model_used: Model that produced the final reply
        iterations: Number of tool-calling rounds executed
        failed: True when the run ended in a terminal error
    """

    reply: str
    tool_results: list[ToolInvocation] = field(default_factory=list)
    history: list[ConversationMessage] = field(default_factory=list)
    model_used: Optional[str] = None
    iterations: int = 0
    failed: bool = False

    @property
    def visualization_data(self) -> Optional[dict[str, Any]]:
        """Visualization hint of the most recent tool result that carries one."""
        for invocation in reversed(self.tool_results):
            if invocation.result.visualization:
                return invocation.result.visualization
        return None

    @property
    def requires_visualization(self) -> bool:
        return self.visualization_data is not None


# ============================================
# Intent Extraction
# ============================================


@dataclass(frozen=True)
class StructuredCommand:
    """Command produced by a rule-based intent extractor.

    Attributes:
        task_type: Task kind value (e.g., 'food_delivery')
        target_location_id: Destination room
        source_location_id: Origin room for transfers
        priority: Priority value (low, medium, high, urgent)
        confidence: Extractor confidence in [0, 1]
    """

    task_type: str
    target_location_id: str
    source_location_id: Optional[str] = None
    priority: str = "medium"
    confidence: float = 1.0

    def to_json(self) -> str:
        return json.dumps(
            {
                "task_type": self.task_type,
                "target_location_id": self.target_location_id,
                "source_location_id": self.source_location_id,
                "priority": self.priority,
                "confidence": self.confidence,
            }
        )
