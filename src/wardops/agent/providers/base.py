"""
Base Completion Provider Implementation.

Provides the configuration and shared helpers for completion providers.
"""

from __future__ import annotations

import logging
from abc import ABC
from dataclasses import dataclass, field
from typing import Any, Optional

from ..domain.entities import ConversationMessage, ToolDefinition
from ..domain.ports import ICompletionProvider

logger = logging.getLogger(__name__)


@dataclass
class CompletionProviderConfig:
    """Configuration for completion providers.

    Attributes:
        api_key: API key for the provider
        base_url: Base URL of the chat-completions API
        timeout: Request timeout in seconds
        app_url: Sent as HTTP-Referer for provider attribution
        app_name: Sent as X-Title for provider attribution
        extra_headers: Additional headers sent with every request
    """

    api_key: str
    base_url: str = "https://openrouter.ai/api/v1"
    timeout: float = 60.0
    app_url: Optional[str] = None
    app_name: str = "WardOps"
    extra_headers: dict[str, str] = field(default_factory=dict)

    def __repr__(self) -> str:
        return (
            f"CompletionProviderConfig(base_url={self.base_url!r}, "
            f"timeout={self.timeout}, app_name={self.app_name!r})"
        )


class BaseCompletionProvider(ICompletionProvider, ABC):
    """Base class for completion provider implementations.

    Subclasses implement ``complete`` for a specific API.
    """

    def __init__(self, config: CompletionProviderConfig):
        self.config = config

    def _format_messages_for_api(
        self, messages: list[ConversationMessage]
    ) -> list[dict[str, Any]]:
        return [message.to_openai_format() for message in messages]

    def _format_tools_for_api(
        self, tools: list[ToolDefinition]
    ) -> list[dict[str, Any]]:
        return [tool.to_openai_format() for tool in tools]
