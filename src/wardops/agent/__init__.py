"""
WardOps Conversational Agent Module.

Turns free-text requests from ward staff into domain actions.

Architecture:
- Domain: Core entities and port interfaces
- Providers: Completion provider implementations (OpenRouter)
- Tools: Tool schemas, argument validation and the PostgreSQL ward adapter
- Orchestrator: Model ladder, tool loop and message hygiene
"""

from .domain.entities import (
    AgentEvent,
    AgentEventType,
    AgentResponse,
    ConversationMessage,
    MessageRole,
    ToolCall,
    ToolDefinition,
    ToolResult,
)
from .orchestrator import AgentConfig, AgentOrchestrator, ToolExecutor
from .providers import CompletionProviderConfig, OpenRouterProvider
from .tools import PostgresWardOperations, ToolRegistry

__all__ = [
    # Entities
    "AgentEvent",
    "AgentEventType",
    "AgentResponse",
    "ConversationMessage",
    "MessageRole",
    "ToolCall",
    "ToolDefinition",
    "ToolResult",
    # Orchestrator
    "AgentConfig",
    "AgentOrchestrator",
    "ToolExecutor",
    # Providers
    "CompletionProviderConfig",
    "OpenRouterProvider",
    # Tools
    "PostgresWardOperations",
    "ToolRegistry",
]
