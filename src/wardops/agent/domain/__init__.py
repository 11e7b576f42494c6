"""Domain entities and port interfaces for the agent module."""

from .entities import (
    AgentEvent,
    AgentEventType,
    AgentResponse,
    CompletionResponse,
    ConversationMessage,
    MessageRole,
    StructuredCommand,
    ToolCall,
    ToolDefinition,
    ToolInvocation,
    ToolResult,
)
from .ports import ICompletionProvider, IIntentExtractor, IWardOperations

__all__ = [
    # Entities
    "AgentEvent",
    "AgentEventType",
    "AgentResponse",
    "CompletionResponse",
    "ConversationMessage",
    "MessageRole",
    "StructuredCommand",
    "ToolCall",
    "ToolDefinition",
    "ToolInvocation",
    "ToolResult",
    # Ports
    "ICompletionProvider",
    "IIntentExtractor",
    "IWardOperations",
]
