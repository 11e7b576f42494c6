"""
Tool Executor.

Handles execution of tool calls with error handling and result processing.
Coordinates with ToolRegistry to route tool calls to domain operations.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional

from pydantic import ValidationError

from ...api.exceptions import ToolArgumentError, ToolExecutionError
from ..domain.entities import ToolCall, ToolInvocation, ToolResult
from ..tools.registry import ToolKind, ToolRegistry
from ..tools.safe_serializer import DEFAULT_MAX_DEPTH, to_safe

logger = logging.getLogger(__name__)


class ToolExecutor:
    """Executes tool calls with error handling.

    Never raises: unknown tools, unparsable or invalid arguments and
    failing domain operations all come back as a ToolResult with
    ``success=False`` so the model can see what went wrong and recover.

    Usage:
        executor = ToolExecutor(tool_registry)

        result = await executor.execute("create_task", {"task_type": ..., ...})
        invocations = await executor.execute_tool_calls(response.tool_calls)

    Architecture:
        - Resolves names into ToolKind, UNKNOWN for anything else
        - Validates arguments with the kind's pydantic model
        - Delegates to the handler bound in ToolRegistry
        - Passes result data through the safe serializer
    """

    def __init__(self, tool_registry: ToolRegistry, max_depth: int = DEFAULT_MAX_DEPTH):
        """Initialize the tool executor.

        Args:
            tool_registry: Registry binding tool kinds to domain handlers
            max_depth: Nesting limit for serialized result data
        """
        self.tools = tool_registry
        self.max_depth = max_depth

    @staticmethod
    def parse_arguments(raw: Optional[str], tool_name: Optional[str] = None) -> dict[str, Any]:
        """Decode tool-call argument text into a dict.

        Raises:
            ToolArgumentError: If the text is not a JSON object
        """
        if raw is None or not raw.strip():
            return {}
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ToolArgumentError(
                f"Invalid tool arguments: {e.msg} at position {e.pos}",
                tool_name=tool_name,
                cause=e,
            )
        if not isinstance(parsed, dict):
            raise ToolArgumentError(
                f"Invalid tool arguments: expected a JSON object, got {type(parsed).__name__}",
                tool_name=tool_name,
            )
        return parsed

    async def execute(self, name: str, arguments: Optional[dict[str, Any]]) -> ToolResult:
        """Execute one tool by name with decoded arguments."""
        kind = ToolKind.from_name(name)
        if kind is ToolKind.UNKNOWN:
            logger.warning(f"Model requested unknown tool: {name!r}")
            return ToolResult.fail(f"Unknown tool: {name}")

        logger.info(f"Executing tool: {kind.value}")

        try:
            validated = self._validate(kind, arguments or {})
            result = await self.tools.handler_for(kind)(validated)
        except ToolArgumentError as e:
            logger.warning(f"Tool {kind.value} rejected arguments: {e.message}")
            return ToolResult.fail(e.message, data={"error": e.to_dict()})
        except Exception as e:
            error = ToolExecutionError(
                f"Tool {kind.value} failed: {e}",
                tool_name=kind.value,
                cause=e,
            )
            logger.error(str(error))
            return ToolResult.fail(error.message, data={"error": error.to_dict()})

        if not isinstance(result, ToolResult):
            result = ToolResult.ok(f"{kind.value} completed", data=result)

        return ToolResult(
            success=result.success,
            message=str(result.message),
            data=to_safe(result.data, max_depth=self.max_depth),
            visualization=to_safe(result.visualization, max_depth=self.max_depth),
        )

    def _validate(self, kind: ToolKind, arguments: dict[str, Any]):
        model = self.tools.argument_model_for(kind)
        try:
            return model.model_validate(arguments)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}"
                for err in e.errors()
            )
            raise ToolArgumentError(
                f"Invalid arguments for {kind.value}: {problems}",
                tool_name=kind.value,
                cause=e,
            )

    async def execute_tool_call(self, tool_call: ToolCall) -> ToolInvocation:
        """Parse and execute a single model-issued tool call."""
        try:
            arguments = self.parse_arguments(tool_call.arguments, tool_call.name)
        except ToolArgumentError as e:
            logger.warning(f"Unparsable arguments for {tool_call.name}: {e.message}")
            return ToolInvocation(
                tool_call_id=tool_call.id,
                tool_name=tool_call.name,
                arguments=None,
                result=ToolResult.fail(e.message),
            )

        result = await self.execute(tool_call.name, arguments)
        return ToolInvocation(
            tool_call_id=tool_call.id,
            tool_name=tool_call.name,
            arguments=arguments,
            result=result,
        )

    async def execute_tool_calls(self, tool_calls: list[ToolCall]) -> list[ToolInvocation]:
        """Execute sibling tool calls concurrently.

        Results are returned in request order. A failed call does not stop
        the others.
        """
        return list(
            await asyncio.gather(*(self.execute_tool_call(call) for call in tool_calls))
        )
