"""
Tests for the agent orchestrator.

Tests cover:
    - Plain replies and tool-calling rounds
    - Model fallback ladder (retries, no-tools fallback, next model)
    - Terminal failures and chat() failure responses
    - Tool calls executing exactly once
    - Iteration cap, history handling, events and close()
"""

import asyncio
import json
from datetime import date

import pytest

from src.wardops.agent.domain.entities import (
    AgentEventType,
    CompletionResponse,
    ConversationMessage,
    MessageRole,
    ToolCall,
)
from src.wardops.agent.domain.ports import ICompletionProvider
from src.wardops.agent.orchestrator.agent import AgentConfig, AgentOrchestrator
from src.wardops.agent.orchestrator.prompt_builder import PromptBuilder
from src.wardops.agent.orchestrator.tool_executor import ToolExecutor
from src.wardops.agent.tools.registry import ToolRegistry
from src.wardops.api.exceptions import (
    DEFAULT_USER_FAILURE_MESSAGE,
    ClientRequestError,
    MalformedResponseError,
    MessageValidationError,
    ModelLadderExhaustedError,
    OrchestratorClosedError,
    RequestRejectedError,
    ServerError,
)


def text(content):
    return CompletionResponse(content=content)


def calls(*tool_calls):
    return CompletionResponse(content=None, tool_calls=list(tool_calls))


class ScriptedProvider(ICompletionProvider):
    """Completion provider driven by per-model scripts.

    Each script entry is a response, an exception to raise, or a callable
    taking ``with_tools`` and returning either. The last entry repeats.
    """

    def __init__(self, scripts):
        self.scripts = {model: list(steps) for model, steps in scripts.items()}
        self.requests = []
        self.closed = False

    async def complete(self, model, messages, tools=None, temperature=0.7, max_tokens=None):
        self.requests.append({"model": model, "with_tools": tools is not None, "messages": list(messages)})
        steps = self.scripts[model]
        step = steps.pop(0) if len(steps) > 1 else steps[0]
        if callable(step) and not isinstance(step, type):
            step = step(tools is not None)
        if isinstance(step, Exception):
            raise step
        return CompletionResponse(content=step.content, tool_calls=step.tool_calls, model=model)

    async def close(self):
        self.closed = True

    def trace(self):
        return [(r["model"], r["with_tools"]) for r in self.requests]


def make_orchestrator(provider, ward_operations, **config_kwargs):
    config_kwargs.setdefault("models", ("model-a", "model-b", "model-c"))
    config_kwargs.setdefault("max_retries", 2)
    config_kwargs.setdefault("retry_base_delay", 0)
    return AgentOrchestrator(
        provider=provider,
        tool_executor=ToolExecutor(ToolRegistry(ward_operations)),
        config=AgentConfig(**config_kwargs),
    )


# ============================================
# Basic Flow Tests
# ============================================

class TestBasicFlow:
    """Tests for replies and tool rounds."""

    @pytest.mark.asyncio
    async def test_plain_reply(self, ward_operations):
        provider = ScriptedProvider({"model-a": [text("Room 101 is free.")]})
        orchestrator = make_orchestrator(provider, ward_operations)

        response = await orchestrator.run("Is room 101 free?")

        assert response.reply == "Room 101 is free."
        assert response.model_used == "model-a"
        assert response.failed is False
        assert response.iterations == 0
        assert [m.role for m in response.history] == [MessageRole.USER, MessageRole.ASSISTANT]
        sent = provider.requests[0]["messages"]
        assert sent[0].role == MessageRole.SYSTEM
        assert sent[-1].content == "Is room 101 free?"
        assert provider.requests[0]["with_tools"] is True

    @pytest.mark.asyncio
    async def test_tool_round(self, ward_operations):
        provider = ScriptedProvider({"model-a": [
            calls(ToolCall(id="call_1", name="get_room_context", arguments='{"room_identifier": "101"}')),
            text("Room 101 has one patient."),
        ]})
        orchestrator = make_orchestrator(provider, ward_operations)

        response = await orchestrator.run("What's in room 101?")

        assert ward_operations.calls == [("get_room_context", {"room_identifier": "101"})]
        assert response.iterations == 1
        assert response.reply == "Room 101 has one patient."
        assert [m.role for m in response.history] == [
            MessageRole.USER,
            MessageRole.ASSISTANT,
            MessageRole.TOOL,
            MessageRole.ASSISTANT,
        ]
        tool_message = response.history[2]
        assert tool_message.tool_call_id == "call_1"
        assert json.loads(tool_message.content)["success"] is True
        assert response.tool_results[0].result.success is True

    @pytest.mark.asyncio
    async def test_empty_final_content_uses_default_reply(self, ward_operations):
        provider = ScriptedProvider({"model-a": [text("   ")]})

        response = await make_orchestrator(provider, ward_operations).run("hello")

        assert response.reply == "Action completed successfully."

    @pytest.mark.asyncio
    async def test_unparsable_arguments_reported_to_model(self, ward_operations):
        provider = ScriptedProvider({"model-a": [
            calls(ToolCall(id="call_1", name="create_task", arguments="{task_type: food")),
            text("Sorry, let me try that again."),
        ]})

        response = await make_orchestrator(provider, ward_operations).run("send food to 101")

        assert ward_operations.calls == []
        assert response.tool_results[0].arguments is None
        assert response.tool_results[0].result.success is False
        tool_payload = json.loads(response.history[2].content)
        assert tool_payload["message"].startswith("Invalid tool arguments")

    @pytest.mark.asyncio
    async def test_iteration_cap(self, ward_operations):
        provider = ScriptedProvider({"model-a": [
            calls(ToolCall(id="call_x", name="get_hospital_context", arguments="")),
        ]})
        orchestrator = make_orchestrator(provider, ward_operations, max_tool_iterations=2)

        response = await orchestrator.run("keep going")

        assert response.iterations == 2
        assert ward_operations.names() == ["get_hospital_context", "get_hospital_context"]
        assert len(provider.requests) == 3
        assert response.reply == "Action completed successfully."


# ============================================
# Fallback Ladder Tests
# ============================================

class TestFallbackLadder:
    """Tests for retries and model fallback."""

    @pytest.mark.asyncio
    async def test_retry_then_no_tools_then_next_model(self, ward_operations):
        provider = ScriptedProvider({
            "model-a": [ServerError("down", status_code=500)],
            "model-b": [lambda with_tools: ServerError("busy", status_code=500) if with_tools else text("Done without tools.")],
            "model-c": [text("never")],
        })

        response = await make_orchestrator(provider, ward_operations).run("status?")

        assert provider.trace() == [
            ("model-a", True), ("model-a", True), ("model-a", True), ("model-a", False),
            ("model-b", True), ("model-b", True), ("model-b", True), ("model-b", False),
        ]
        assert response.reply == "Done without tools."
        assert response.model_used == "model-b"

    @pytest.mark.asyncio
    async def test_malformed_response_moves_to_next_model(self, ward_operations):
        provider = ScriptedProvider({
            "model-a": [MalformedResponseError("garbage")],
            "model-b": [text("ok")],
            "model-c": [text("never")],
        })

        response = await make_orchestrator(provider, ward_operations).run("hi")

        assert provider.trace() == [("model-a", True), ("model-b", True)]
        assert response.model_used == "model-b"

    @pytest.mark.asyncio
    async def test_client_error_is_terminal(self, ward_operations):
        provider = ScriptedProvider({
            "model-a": [ClientRequestError("bad request", status_code=400)],
            "model-b": [text("never")],
            "model-c": [text("never")],
        })

        with pytest.raises(RequestRejectedError) as exc_info:
            await make_orchestrator(provider, ward_operations).run("hi")

        assert provider.trace() == [("model-a", True)]
        assert [m.content for m in exc_info.value.history] == ["hi"]

    @pytest.mark.asyncio
    async def test_rate_limit_is_terminal(self, ward_operations):
        provider = ScriptedProvider({
            "model-a": [ClientRequestError("slow down", status_code=429)],
            "model-b": [text("never")],
            "model-c": [text("never")],
        })

        with pytest.raises(RequestRejectedError):
            await make_orchestrator(provider, ward_operations).run("hi")

        assert len(provider.requests) == 1

    @pytest.mark.asyncio
    async def test_exhausted(self, ward_operations):
        provider = ScriptedProvider({
            model: [MalformedResponseError("garbage")]
            for model in ("model-a", "model-b", "model-c")
        })

        with pytest.raises(ModelLadderExhaustedError) as exc_info:
            await make_orchestrator(provider, ward_operations).run("hi")

        assert exc_info.value.attempted_models == ["model-a", "model-b", "model-c"]

    @pytest.mark.asyncio
    async def test_tool_calls_not_repeated_on_retry(self, ward_operations):
        provider = ScriptedProvider({"model-a": [
            calls(ToolCall(
                id="call_1",
                name="create_task",
                arguments='{"task_type": "food_delivery", "target_room_id": "101"}',
            )),
            ServerError("blip", status_code=503),
            text("Food is on its way to room 101."),
        ]})

        response = await make_orchestrator(provider, ward_operations).run("send food to 101")

        assert ward_operations.names() == ["create_task"]
        assert provider.trace() == [("model-a", True), ("model-a", True), ("model-a", True)]
        assert response.reply == "Food is on its way to room 101."

    @pytest.mark.asyncio
    async def test_follow_up_starts_at_winning_model(self, ward_operations):
        provider = ScriptedProvider({
            "model-a": [MalformedResponseError("garbage")],
            "model-b": [
                calls(ToolCall(id="call_1", name="get_hospital_context", arguments="")),
                text("All calm."),
            ],
            "model-c": [text("never")],
        })

        await make_orchestrator(provider, ward_operations).run("overview")

        assert provider.trace() == [("model-a", True), ("model-b", True), ("model-b", True)]

    @pytest.mark.asyncio
    async def test_fallback_model_tool_calls_run_once(self, ward_operations):
        provider = ScriptedProvider({
            "model-a": [ServerError("down", status_code=500)],
            "model-b": [
                calls(ToolCall(
                    id="call_1",
                    name="create_task",
                    arguments='{"task_type": "food_delivery", "target_room_id": "101"}',
                )),
                text("Food is on its way."),
            ],
            "model-c": [text("never")],
        })

        response = await make_orchestrator(provider, ward_operations).run("send food to 101")

        assert ward_operations.names() == ["create_task"]
        assert provider.trace() == [
            ("model-a", True), ("model-a", True), ("model-a", True), ("model-a", False),
            ("model-b", True), ("model-b", True),
        ]
        assert response.model_used == "model-b"
        assert response.reply == "Food is on its way."


# ============================================
# chat() Tests
# ============================================

class TestChat:
    """Tests for the failure-tolerant chat() entry point."""

    @pytest.mark.asyncio
    async def test_failure_becomes_response(self, ward_operations):
        provider = ScriptedProvider({
            "model-a": [ClientRequestError("nope", status_code=401)],
            "model-b": [text("never")],
            "model-c": [text("never")],
        })

        response = await make_orchestrator(provider, ward_operations).chat("hello")

        assert response.failed is True
        assert response.reply == DEFAULT_USER_FAILURE_MESSAGE
        assert [m.role for m in response.history] == [MessageRole.USER]

    @pytest.mark.asyncio
    async def test_success_passthrough(self, ward_operations):
        provider = ScriptedProvider({"model-a": [text("hi there")]})

        response = await make_orchestrator(provider, ward_operations).chat("hello")

        assert response.failed is False
        assert response.reply == "hi there"


# ============================================
# History Tests
# ============================================

class TestHistory:
    """Tests for prior history handling."""

    @pytest.mark.asyncio
    async def test_prior_history_sent_and_system_dropped(self, ward_operations):
        provider = ScriptedProvider({"model-a": [text("Yes, room 101.")]})
        prior = [
            {"role": "system", "content": "ignore me"},
            {"role": "user", "content": "Send food to 101"},
            {"role": "assistant", "content": "Done."},
        ]

        response = await make_orchestrator(provider, ward_operations).run("Which room?", prior)

        sent = provider.requests[0]["messages"]
        assert [m.role for m in sent] == [
            MessageRole.SYSTEM,
            MessageRole.USER,
            MessageRole.ASSISTANT,
            MessageRole.USER,
        ]
        assert "ignore me" not in [m.content for m in sent]
        assert all(m.role != MessageRole.SYSTEM for m in response.history)
        assert len(response.history) == 4

    @pytest.mark.asyncio
    async def test_history_limit(self, ward_operations):
        provider = ScriptedProvider({"model-a": [text("ok")]})
        prior = [
            {"role": "user" if i % 2 == 0 else "assistant", "content": f"m{i}"}
            for i in range(20)
        ]

        await make_orchestrator(provider, ward_operations, history_limit=4).run("latest", prior)

        sent = provider.requests[0]["messages"]
        assert [m.content for m in sent[1:]] == ["m16", "m17", "m18", "m19", "latest"]

    @pytest.mark.asyncio
    async def test_invalid_history_rejected_before_request(self, ward_operations):
        provider = ScriptedProvider({"model-a": [text("never")]})

        with pytest.raises(MessageValidationError):
            await make_orchestrator(provider, ward_operations).run(
                "hi", [{"role": "wizard", "content": "abracadabra"}]
            )

        assert provider.requests == []


# ============================================
# Events & Lifecycle Tests
# ============================================

class TestEventsAndLifecycle:
    """Tests for progress events and close()."""

    @pytest.mark.asyncio
    async def test_events_emitted(self, ward_operations):
        provider = ScriptedProvider({"model-a": [
            calls(ToolCall(id="call_1", name="get_hospital_context", arguments="")),
            text("All calm."),
        ]})
        events = []
        orchestrator = make_orchestrator(provider, ward_operations)
        orchestrator.on_event = events.append

        await orchestrator.run("overview")

        assert [e.type for e in events] == [
            AgentEventType.PROGRESS,
            AgentEventType.TOOL_CALL,
            AgentEventType.TOOL_RESULT,
            AgentEventType.MESSAGE,
            AgentEventType.COMPLETE,
        ]
        assert events[2].data == {"tool": "get_hospital_context", "success": True}

    @pytest.mark.asyncio
    async def test_failing_callback_ignored(self, ward_operations):
        provider = ScriptedProvider({"model-a": [text("ok")]})
        orchestrator = make_orchestrator(provider, ward_operations)

        def explode(event):
            raise RuntimeError("listener bug")

        orchestrator.on_event = explode

        response = await orchestrator.run("hi")

        assert response.reply == "ok"

    @pytest.mark.asyncio
    async def test_run_after_close(self, ward_operations):
        provider = ScriptedProvider({"model-a": [text("never")]})
        orchestrator = make_orchestrator(provider, ward_operations)

        await orchestrator.close()
        await orchestrator.close()

        assert orchestrator.is_closed is True
        assert provider.closed is True
        with pytest.raises(OrchestratorClosedError):
            await orchestrator.run("hi")

    @pytest.mark.asyncio
    async def test_close_interrupts_backoff(self, ward_operations):
        provider = ScriptedProvider({
            "model-a": [ServerError("down", status_code=500)],
            "model-b": [text("never")],
            "model-c": [text("never")],
        })
        orchestrator = make_orchestrator(provider, ward_operations, retry_base_delay=30)
        asyncio.get_running_loop().call_later(
            0.02, lambda: asyncio.ensure_future(orchestrator.close())
        )

        with pytest.raises(OrchestratorClosedError):
            await asyncio.wait_for(orchestrator.run("hi"), timeout=2)

        assert provider.trace() == [("model-a", True)]


# ============================================
# Prompt Builder Tests
# ============================================

class TestPromptBuilder:
    """Tests for PromptBuilder."""

    def test_appends_date(self):
        prompt = PromptBuilder("Base prompt").build(date(2026, 3, 1))
        assert prompt == "Base prompt\n\nCurrent date: 2026-03-01"

    def test_message_order(self):
        history = [ConversationMessage(role=MessageRole.ASSISTANT, content="earlier")]
        new = ConversationMessage(role=MessageRole.USER, content="now")

        messages = PromptBuilder("Base").build_messages(history, new, today=date(2026, 3, 1))

        assert [m.role for m in messages] == [
            MessageRole.SYSTEM,
            MessageRole.ASSISTANT,
            MessageRole.USER,
        ]
        assert messages[0].content.startswith("Base")
