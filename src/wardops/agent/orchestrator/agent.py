"""
Agent Orchestrator.

Main orchestration logic for the ward operations agent. Coordinates:
- Sanitization and validation of conversation history
- Completion requests through the model fallback ladder
- Tool execution and feeding results back to the model
- Progress events for interactive clients
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

from ...api.exceptions import (
    CompletionError,
    ModelLadderExhaustedError,
    OrchestratorClosedError,
    RequestRejectedError,
    AgentRunError,
)
from ...api.resilience import BackoffPolicy, interruptible_sleep
from ..domain.entities import (
    AgentEvent,
    AgentEventType,
    AgentResponse,
    CompletionResponse,
    ConversationMessage,
    MessageRole,
    ToolDefinition,
    ToolInvocation,
)
from ..domain.ports import ICompletionProvider
from ..tools.safe_serializer import safe_dumps
from .message_sanitizer import (
    DEFAULT_HISTORY_LIMIT,
    MAX_CONTENT_LENGTH,
    MessageLike,
    sanitize_content,
    sanitize_history,
    validate_messages,
)
from .model_ladder import (
    AttemptOutcome,
    LadderDone,
    LadderPolicy,
    LadderResult,
    ModelAttempt,
    first_attempt,
    next_attempt,
)
from .prompt_builder import PromptBuilder
from .tool_executor import ToolExecutor

logger = logging.getLogger(__name__)

DEFAULT_MODEL_LADDER = (
    "anthropic/claude-3.5-sonnet",
    "openai/gpt-4o-mini",
    "meta-llama/llama-3.1-70b-instruct",
)
DEFAULT_REPLY = "Action completed successfully."

EventCallback = Callable[[AgentEvent], Any]


@dataclass
class AgentConfig:
    """Configuration for the agent orchestrator.

    Attributes:
        models: Fallback ladder, most preferred first
        max_retries: Same-model retries on server/network errors
        retry_base_delay: Backoff before the first retry (doubles after)
        retry_max_delay: Upper bound on a single backoff
        history_limit: Prior messages kept per request
        max_content_length: Per-message content cap
        max_tool_iterations: Tool-calling rounds before giving up on tools
        temperature: Sampling temperature
        max_tokens: Maximum tokens per response
        default_reply: Reply used when the final response has no text
    """

    models: tuple[str, ...] = DEFAULT_MODEL_LADDER
    max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0
    history_limit: int = DEFAULT_HISTORY_LIMIT
    max_content_length: int = MAX_CONTENT_LENGTH
    max_tool_iterations: int = 10
    temperature: float = 0.7
    max_tokens: Optional[int] = 2000
    default_reply: str = DEFAULT_REPLY
    extra: dict[str, Any] = field(default_factory=dict)

    def ladder_policy(self) -> LadderPolicy:
        return LadderPolicy(
            models=tuple(self.models),
            max_retries=self.max_retries,
            backoff=BackoffPolicy(
                initial_delay=self.retry_base_delay,
                backoff_factor=2.0,
                max_delay=self.retry_max_delay,
            ),
        )


class AgentOrchestrator:
    """Turns one utterance into a reply, executing tools along the way.

    Manages the request loop:
    1. Sanitize, trim and validate prior history
    2. Ask the model ladder for a completion (with tool schemas)
    3. Execute any requested tool calls, append their results
    4. Ask again until the model answers without tool calls
       or the iteration cap is reached

    Each tool call runs exactly once. Only completion requests are retried.

    Usage:
        orchestrator = AgentOrchestrator(
            provider=OpenRouterProvider(provider_config),
            tool_executor=ToolExecutor(ToolRegistry(ward_operations)),
        )

        response = await orchestrator.run("send food to room 101", history)
        history = response.history
    """

    def __init__(
        self,
        provider: ICompletionProvider,
        tool_executor: ToolExecutor,
        config: Optional[AgentConfig] = None,
        prompt_builder: Optional[PromptBuilder] = None,
        on_event: Optional[EventCallback] = None,
    ):
        """Initialize the orchestrator.

        Args:
            provider: Completion provider client
            tool_executor: Executor bound to the domain operations
            config: Orchestrator configuration
            prompt_builder: System prompt builder
            on_event: Optional progress callback
        """
        self.provider = provider
        self.tool_executor = tool_executor
        self.config = config or AgentConfig()
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.on_event = on_event
        self._policy = self.config.ladder_policy()
        self._closing = asyncio.Event()

    @property
    def is_closed(self) -> bool:
        return self._closing.is_set()

    # ============================================
    # Public API
    # ============================================

    async def run(
        self,
        utterance: str,
        prior_history: Optional[Iterable[MessageLike]] = None,
    ) -> AgentResponse:
        """Process one user utterance.

        Args:
            utterance: New user message
            prior_history: Earlier conversation (dicts or ConversationMessage)

        Returns:
            AgentResponse with the reply, every tool invocation and the
            updated history (system prompt excluded)

        Raises:
            MessageValidationError: History is malformed (before any request)
            RequestRejectedError: Provider rejected the request (4xx)
            ModelLadderExhaustedError: Every model failed
            OrchestratorClosedError: close() was called during the run
        """
        self._ensure_open()

        conversation = sanitize_history(
            prior_history,
            limit=self.config.history_limit,
            max_length=self.config.max_content_length,
        )
        conversation.append(
            ConversationMessage(
                role=MessageRole.USER,
                content=sanitize_content(utterance, self.config.max_content_length),
            )
        )
        validate_messages(self.prompt_builder.build_messages(conversation))

        tools = self.tool_executor.tools.get_tool_definitions()
        invocations: list[ToolInvocation] = []

        self._emit(AgentEventType.PROGRESS, "Analyzing request...")
        response, ladder_index = await self._complete(conversation, tools, start_index=0)

        iterations = 0
        while response.has_tool_calls and iterations < self.config.max_tool_iterations:
            iterations += 1
            conversation.append(
                ConversationMessage(
                    role=MessageRole.ASSISTANT,
                    content=sanitize_content(response.content, self.config.max_content_length),
                    tool_calls=list(response.tool_calls),
                )
            )

            for call in response.tool_calls:
                self._emit(AgentEventType.TOOL_CALL, f"Executing: {call.name}", {"tool": call.name})

            batch = await self.tool_executor.execute_tool_calls(response.tool_calls)
            self._ensure_open()

            for invocation in batch:
                invocations.append(invocation)
                conversation.append(
                    ConversationMessage(
                        role=MessageRole.TOOL,
                        content=sanitize_content(
                            safe_dumps(invocation.result.to_dict()),
                            self.config.max_content_length,
                        ),
                        tool_call_id=invocation.tool_call_id,
                        name=invocation.tool_name,
                    )
                )
                self._emit(
                    AgentEventType.TOOL_RESULT,
                    f"Completed: {invocation.tool_name}",
                    {"tool": invocation.tool_name, "success": invocation.result.success},
                )

            response, ladder_index = await self._complete(
                conversation, tools, start_index=ladder_index
            )

        if response.has_tool_calls:
            logger.warning(
                f"Tool iteration cap ({self.config.max_tool_iterations}) reached; "
                f"{len(response.tool_calls)} tool call(s) not executed"
            )

        reply = sanitize_content(response.content, self.config.max_content_length).strip()
        reply = reply or self.config.default_reply
        conversation.append(ConversationMessage(role=MessageRole.ASSISTANT, content=reply))

        self._emit(AgentEventType.MESSAGE, reply)
        self._emit(AgentEventType.COMPLETE, "Done")

        return AgentResponse(
            reply=reply,
            tool_results=invocations,
            history=conversation,
            model_used=response.model,
            iterations=iterations,
        )

    async def chat(
        self,
        utterance: str,
        prior_history: Optional[Iterable[MessageLike]] = None,
    ) -> AgentResponse:
        """Like run(), but terminal provider failures become a failed response.

        The returned history is everything collected before the failure.
        """
        try:
            return await self.run(utterance, prior_history)
        except AgentRunError as e:
            logger.error(f"Agent run failed: {e}")
            return AgentResponse(reply=e.user_message, history=e.history, failed=True)

    async def close(self) -> None:
        """Stop pending backoff waits and discard in-flight results."""
        if self._closing.is_set():
            return
        self._closing.set()
        await self.provider.close()
        logger.info("Agent orchestrator closed")

    # ============================================
    # Completion with fallback ladder
    # ============================================

    async def _complete(
        self,
        conversation: list[ConversationMessage],
        tools: list[ToolDefinition],
        start_index: int,
    ) -> tuple[CompletionResponse, int]:
        """Walk the model ladder until one attempt succeeds.

        Returns:
            The response and the ladder index of the model that produced it
        """
        messages = self.prompt_builder.build_messages(conversation)
        state: ModelAttempt = first_attempt(self._policy, bool(tools), start_index)
        attempted: list[str] = []
        last_error: Optional[CompletionError] = None

        while True:
            if state.delay > 0:
                logger.info(f"Retrying {state.model} in {state.delay:.1f}s")
                if not await interruptible_sleep(state.delay, self._closing):
                    raise OrchestratorClosedError("Orchestrator closed during retry backoff")
            self._ensure_open()

            if not attempted or attempted[-1] != state.model:
                attempted.append(state.model)

            try:
                response = await self.provider.complete(
                    state.model,
                    messages,
                    tools=tools if state.with_tools else None,
                    temperature=self.config.temperature,
                    max_tokens=self.config.max_tokens,
                )
            except CompletionError as e:
                self._ensure_open()
                last_error = e
                outcome = AttemptOutcome.from_error(e)
                logger.warning(
                    f"Completion attempt on {state.model} failed "
                    f"({outcome.value}, tools={state.with_tools}): {e.message}"
                )
            else:
                self._ensure_open()
                if not state.with_tools and tools:
                    logger.info(f"{state.model} answered without tool schemas")
                return response, state.ladder_index

            transition = next_attempt(state, outcome, self._policy, tools_requested=bool(tools))
            if isinstance(transition, LadderDone):
                raise self._terminal_error(transition, attempted, conversation, last_error)
            if transition.model != state.model:
                self._emit(AgentEventType.PROGRESS, f"Falling back to {transition.model}")
            state = transition

    def _terminal_error(
        self,
        done: LadderDone,
        attempted: list[str],
        conversation: list[ConversationMessage],
        cause: Optional[CompletionError],
    ) -> AgentRunError:
        if done.result is LadderResult.ABORTED:
            logger.error(f"Completion request rejected by {done.last_model}; not falling back")
            return RequestRejectedError(
                f"Completion request rejected by {done.last_model}",
                history=conversation,
                cause=cause,
            )
        logger.error(f"All models failed: {', '.join(attempted)}")
        return ModelLadderExhaustedError(
            attempted_models=attempted,
            history=conversation,
            cause=cause,
        )

    # ============================================
    # Helpers
    # ============================================

    def _ensure_open(self) -> None:
        if self._closing.is_set():
            raise OrchestratorClosedError()

    def _emit(self, event_type: AgentEventType, content: str, data: Optional[dict[str, Any]] = None) -> None:
        if self.on_event is None:
            return
        try:
            self.on_event(AgentEvent(type=event_type, content=content, data=data))
        except Exception as e:
            logger.warning(f"Event callback failed: {e}")
