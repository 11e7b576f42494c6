"""
Message sanitization and validation.

Prepares conversation history before it is sent to the completion
provider: content is coerced to bounded, printable text, history is
trimmed to the most recent messages, and malformed messages are rejected
before any network request is made.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from typing import Any, Iterable, Optional, Union

from ...api.exceptions import MessageValidationError
from ..domain.entities import ConversationMessage, MessageRole, ToolCall

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 100_000
DEFAULT_HISTORY_LIMIT = 10
TRUNCATION_MARKER = "\n...[truncated]"

# C0 controls except \t \n \r, DEL, and C1 controls
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")

MessageLike = Union[ConversationMessage, Mapping[str, Any]]


def sanitize_content(content: Any, max_length: int = MAX_CONTENT_LENGTH) -> str:
    """Coerce message content to bounded text without control characters."""
    if content is None:
        text = ""
    elif isinstance(content, str):
        text = content
    else:
        try:
            text = json.dumps(content, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            text = str(content)

    text = _CONTROL_CHARS.sub("", text)
    if len(text) > max_length:
        text = text[:max_length] + TRUNCATION_MARKER
    return text


def _coerce_role(raw: Any, index: int) -> MessageRole:
    if isinstance(raw, MessageRole):
        return raw
    try:
        return MessageRole(raw)
    except ValueError:
        raise MessageValidationError(
            f"Message {index} has unrecognized role {raw!r}",
            index=index,
            role=str(raw),
        )


def _coerce_tool_calls(raw: Any) -> Optional[list[ToolCall]]:
    if not raw:
        return None
    calls = []
    for item in raw:
        if isinstance(item, ToolCall):
            calls.append(item)
            continue
        function = item.get("function") or {}
        arguments = function.get("arguments", item.get("arguments", ""))
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments)
        calls.append(
            ToolCall(
                id=str(item.get("id", "")),
                name=str(function.get("name", item.get("name", ""))),
                arguments=arguments,
            )
        )
    return calls


def sanitize_message(
    message: MessageLike,
    index: int = 0,
    max_length: int = MAX_CONTENT_LENGTH,
) -> ConversationMessage:
    """Validate and sanitize a single message.

    Raises:
        MessageValidationError: If the role is not recognized
    """
    if isinstance(message, ConversationMessage):
        role = _coerce_role(message.role, index)
        return ConversationMessage(
            role=role,
            content=sanitize_content(message.content, max_length),
            tool_calls=message.tool_calls,
            tool_call_id=message.tool_call_id,
            name=message.name,
        )

    if not isinstance(message, Mapping):
        raise MessageValidationError(
            f"Message {index} is not a message object",
            index=index,
        )

    role = _coerce_role(message.get("role"), index)
    return ConversationMessage(
        role=role,
        content=sanitize_content(message.get("content"), max_length),
        tool_calls=_coerce_tool_calls(message.get("tool_calls")),
        tool_call_id=message.get("tool_call_id"),
        name=message.get("name"),
    )


def trim_history(
    messages: list[ConversationMessage],
    limit: int = DEFAULT_HISTORY_LIMIT,
) -> list[ConversationMessage]:
    """Keep the most recent ``limit`` messages.

    Leading tool messages whose assistant turn was cut off are dropped as
    well, since providers reject tool results without the matching call.
    """
    if limit <= 0:
        return []
    trimmed = list(messages[-limit:])
    while trimmed and trimmed[0].role == MessageRole.TOOL:
        trimmed.pop(0)
    return trimmed


def sanitize_history(
    messages: Optional[Iterable[MessageLike]],
    limit: int = DEFAULT_HISTORY_LIMIT,
    max_length: int = MAX_CONTENT_LENGTH,
) -> list[ConversationMessage]:
    """Validate, sanitize and trim prior conversation history.

    System messages in prior history are dropped; the orchestrator always
    supplies its own.

    Raises:
        MessageValidationError: If any message is malformed
    """
    sanitized = [
        sanitize_message(message, index, max_length)
        for index, message in enumerate(messages or [])
    ]
    conversation = [m for m in sanitized if m.role != MessageRole.SYSTEM]
    trimmed = trim_history(conversation, limit)
    if len(trimmed) < len(conversation):
        logger.debug(f"Trimmed history from {len(conversation)} to {len(trimmed)} messages")
    return trimmed


def validate_messages(messages: list[ConversationMessage]) -> None:
    """Check a fully assembled request before it is sent.

    Raises:
        MessageValidationError: If any message has an unknown role or
            non-text content
    """
    for index, message in enumerate(messages):
        _coerce_role(message.role, index)
        if not isinstance(message.content, str):
            raise MessageValidationError(
                f"Message {index} content must be text",
                index=index,
                role=str(message.role),
            )
