"""Agent Orchestrator.

Coordinates one conversational run:
- Message sanitization and history trimming
- Model ladder fallback (retry, drop tools, next model)
- Tool execution against the ward operations adapter
- Progress events for the caller
"""

from .agent import DEFAULT_MODEL_LADDER, AgentConfig, AgentOrchestrator
from .model_ladder import (
    AttemptOutcome,
    LadderDone,
    LadderPolicy,
    LadderResult,
    ModelAttempt,
    first_attempt,
    next_attempt,
)
from .prompt_builder import DEFAULT_SYSTEM_PROMPT, PromptBuilder
from .tool_executor import ToolExecutor

__all__ = [
    # Main orchestrator
    "AgentConfig",
    "AgentOrchestrator",
    "DEFAULT_MODEL_LADDER",
    # Model ladder
    "AttemptOutcome",
    "LadderDone",
    "LadderPolicy",
    "LadderResult",
    "ModelAttempt",
    "first_attempt",
    "next_attempt",
    # Components
    "DEFAULT_SYSTEM_PROMPT",
    "PromptBuilder",
    "ToolExecutor",
]
