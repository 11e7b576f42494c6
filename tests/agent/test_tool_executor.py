"""
Tests for the tool registry and tool executor.

Tests cover:
    - Registry completeness checks
    - Name resolution and unknown tools
    - Argument parsing and validation failures
    - Handler failures reported as failed results
    - Concurrent execution preserving request order
"""

import asyncio
from datetime import datetime, timezone

import pytest

from src.wardops.agent.domain.entities import ToolCall, ToolResult
from src.wardops.agent.orchestrator.tool_executor import ToolExecutor
from src.wardops.agent.tools import registry as registry_module
from src.wardops.agent.tools.registry import ToolKind, ToolRegistry
from src.wardops.api.exceptions import ToolArgumentError


# ============================================
# Registry Tests
# ============================================

class TestToolRegistry:
    """Tests for ToolRegistry."""

    def test_exposes_every_callable_kind(self, ward_operations):
        registry = ToolRegistry(ward_operations)
        names = [tool.name for tool in registry.get_tool_definitions()]

        assert len(names) == 13
        assert names == [kind.value for kind in ToolKind.callable_kinds()]
        assert "unknown" not in names

    def test_read_only_flags(self, ward_operations):
        definitions = {t.name: t for t in ToolRegistry(ward_operations).get_tool_definitions()}

        assert definitions["get_room_context"].is_read_only is True
        assert definitions["find_available_room"].is_read_only is True
        assert definitions["create_task"].is_read_only is False
        assert definitions["discharge_patient"].is_read_only is False

    def test_schema_is_openai_function(self, ward_operations):
        definition = ToolRegistry(ward_operations).get_tool_definitions()[0]
        payload = definition.to_openai_format()

        assert payload["type"] == "function"
        assert payload["function"]["name"] == definition.name
        assert payload["function"]["parameters"]["type"] == "object"

    def test_missing_schema_rejected(self, ward_operations, monkeypatch):
        monkeypatch.delitem(registry_module.TOOL_DEFINITIONS, ToolKind.CREATE_ALERT)

        with pytest.raises(ValueError, match="create_alert"):
            ToolRegistry(ward_operations)

    def test_from_name(self):
        assert ToolKind.from_name("create_task") is ToolKind.CREATE_TASK
        assert ToolKind.from_name(" create_task ") is ToolKind.CREATE_TASK
        assert ToolKind.from_name("launch_rocket") is ToolKind.UNKNOWN
        assert ToolKind.from_name("") is ToolKind.UNKNOWN


# ============================================
# Executor Tests
# ============================================

class TestToolExecutor:
    """Tests for ToolExecutor."""

    @pytest.fixture
    def executor(self, ward_operations):
        return ToolExecutor(ToolRegistry(ward_operations))

    @pytest.mark.asyncio
    async def test_routes_to_operation(self, executor, ward_operations):
        result = await executor.execute("create_task", {
            "task_type": "food_delivery",
            "target_room_id": "101",
        })

        assert result.success is True
        assert ward_operations.calls == [("create_task", {
            "task_type": "food_delivery",
            "target_room_id": "101",
            "source_room_id": None,
            "priority": "medium",
            "title": None,
            "assigned_to_id": None,
            "equipment_id": None,
        })]

    @pytest.mark.asyncio
    async def test_unknown_tool(self, executor, ward_operations):
        result = await executor.execute("launch_rocket", {})

        assert result.success is False
        assert result.message == "Unknown tool: launch_rocket"
        assert ward_operations.calls == []

    @pytest.mark.asyncio
    async def test_invalid_arguments(self, executor, ward_operations):
        result = await executor.execute("create_task", {"task_type": "teleport"})

        assert result.success is False
        assert result.message.startswith("Invalid arguments for create_task")
        assert "target_room_id" in result.message
        assert result.data["error"]["code"] == "TOOL_ARGUMENT_ERROR"
        assert ward_operations.calls == []

    @pytest.mark.asyncio
    async def test_handler_exception_becomes_failure(self, executor, ward_operations):
        ward_operations.failures["discharge_patient"] = RuntimeError("db went away")

        result = await executor.execute("discharge_patient", {"patient_id": "p-1"})

        assert result.success is False
        assert result.message == "Tool discharge_patient failed: db went away"
        assert result.data["error"]["code"] == "TOOL_EXECUTION_ERROR"

    @pytest.mark.asyncio
    async def test_result_data_made_json_safe(self, ward_operations):
        stamp = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

        async def handler(arguments):
            return ToolResult.ok("summary", data={"at": stamp})

        registry = ToolRegistry(ward_operations, overrides={ToolKind.GET_HOSPITAL_CONTEXT: handler})
        result = await ToolExecutor(registry).execute("get_hospital_context", None)

        assert result.data == {"at": "2026-03-01T12:00:00+00:00"}

    @pytest.mark.asyncio
    async def test_plain_return_value_wrapped(self, ward_operations):
        async def handler(arguments):
            return {"rooms": 3}

        registry = ToolRegistry(ward_operations, overrides={ToolKind.GET_HOSPITAL_CONTEXT: handler})
        result = await ToolExecutor(registry).execute("get_hospital_context", {})

        assert result.success is True
        assert result.message == "get_hospital_context completed"
        assert result.data == {"rooms": 3}


class TestParseArguments:
    """Tests for argument text decoding."""

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_empty_is_empty_object(self, raw):
        assert ToolExecutor.parse_arguments(raw) == {}

    def test_object(self):
        assert ToolExecutor.parse_arguments('{"room_identifier": "101"}') == {"room_identifier": "101"}

    @pytest.mark.parametrize("raw", ["{not json", "[1, 2]", '"text"'])
    def test_rejected(self, raw):
        with pytest.raises(ToolArgumentError):
            ToolExecutor.parse_arguments(raw, "create_task")


class TestExecuteToolCalls:
    """Tests for executing model-issued tool calls."""

    @pytest.fixture
    def executor(self, ward_operations):
        return ToolExecutor(ToolRegistry(ward_operations))

    @pytest.mark.asyncio
    async def test_unparsable_arguments_not_executed(self, executor, ward_operations):
        invocation = await executor.execute_tool_call(
            ToolCall(id="call_1", name="get_room_context", arguments="{room: 101")
        )

        assert invocation.arguments is None
        assert invocation.result.success is False
        assert invocation.result.message.startswith("Invalid tool arguments")
        assert ward_operations.calls == []

    @pytest.mark.asyncio
    async def test_results_keep_request_order(self, ward_operations):
        async def slow_room(arguments):
            await asyncio.sleep(0.02)
            return ToolResult.ok(f"room {arguments.room_identifier}")

        registry = ToolRegistry(ward_operations, overrides={ToolKind.GET_ROOM_CONTEXT: slow_room})
        executor = ToolExecutor(registry)

        invocations = await executor.execute_tool_calls([
            ToolCall(id="a", name="get_room_context", arguments='{"room_identifier": "101"}'),
            ToolCall(id="b", name="get_hospital_context", arguments=""),
            ToolCall(id="c", name="nope", arguments="{}"),
        ])

        assert [i.tool_call_id for i in invocations] == ["a", "b", "c"]
        assert invocations[0].result.message == "room 101"
        assert invocations[1].result.success is True
        assert invocations[2].result.success is False
