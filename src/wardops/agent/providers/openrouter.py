"""
OpenRouter Completion Provider.

Implements the ICompletionProvider interface for OpenRouter's
OpenAI-compatible chat-completions API. One call is one HTTP round-trip;
retries and model fallback belong to the orchestrator.

Failure classification:
    4xx                         -> ClientRequestError
    5xx                         -> ServerError
    timeout / connection error  -> NetworkError
    undecodable or incomplete   -> MalformedResponseError
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import httpx

from ...api.exceptions import (
    ClientRequestError,
    MalformedResponseError,
    NetworkError,
    ServerError,
)
from ..domain.entities import (
    CompletionResponse,
    ConversationMessage,
    ToolCall,
    ToolDefinition,
)
from .base import BaseCompletionProvider, CompletionProviderConfig

logger = logging.getLogger(__name__)


class OpenRouterProvider(BaseCompletionProvider):
    """OpenRouter chat-completions client.

    Usage:
        config = CompletionProviderConfig(api_key="sk-or-...")
        provider = OpenRouterProvider(config)

        response = await provider.complete(
            "anthropic/claude-3.5-sonnet",
            messages,
            tools=registry.get_tool_definitions(),
        )
    """

    CHAT_COMPLETIONS_PATH = "/chat/completions"

    def __init__(
        self,
        config: CompletionProviderConfig,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the provider.

        Args:
            config: Provider configuration
            client: Pre-built HTTP client (tests pass one with a MockTransport)
        """
        super().__init__(config)
        self.client = client or httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.timeout,
        )

    def _headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
            "X-Title": self.config.app_name,
        }
        if self.config.app_url:
            headers["HTTP-Referer"] = self.config.app_url
        headers.update(self.config.extra_headers)
        return headers

    def _build_payload(
        self,
        model: str,
        messages: list[ConversationMessage],
        tools: Optional[list[ToolDefinition]],
        temperature: float,
        max_tokens: Optional[int],
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": model,
            "messages": self._format_messages_for_api(messages),
            "temperature": temperature,
        }
        if max_tokens:
            payload["max_tokens"] = max_tokens
        if tools:
            payload["tools"] = self._format_tools_for_api(tools)
            payload["tool_choice"] = "auto"
        return payload

    async def complete(
        self,
        model: str,
        messages: list[ConversationMessage],
        tools: Optional[list[ToolDefinition]] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
    ) -> CompletionResponse:
        """Send one chat-completions request.

        Raises:
            ClientRequestError: Provider answered 4xx
            ServerError: Provider answered 5xx
            NetworkError: No HTTP response was received
            MalformedResponseError: 2xx body missing required structure
        """
        payload = self._build_payload(model, messages, tools, temperature, max_tokens)

        try:
            response = await self.client.post(
                self.CHAT_COMPLETIONS_PATH,
                json=payload,
                headers=self._headers(),
            )
            response.raise_for_status()

        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            body = e.response.text
            if 400 <= status < 500:
                logger.error(f"Completion request rejected by {model}: {status}")
                raise ClientRequestError(
                    f"Completion request rejected: HTTP {status}",
                    status_code=status,
                    response_body=body,
                    model=model,
                    cause=e,
                )
            logger.warning(f"Completion provider error from {model}: {status}")
            raise ServerError(
                f"Completion provider error: HTTP {status}",
                status_code=status,
                response_body=body,
                model=model,
                cause=e,
            )

        except httpx.TimeoutException as e:
            logger.warning(f"Completion request to {model} timed out: {e}")
            raise NetworkError(
                f"Completion request timed out: {e}",
                timeout_seconds=self.config.timeout,
                model=model,
                cause=e,
            )

        except httpx.RequestError as e:
            logger.warning(f"Completion request to {model} failed: {e}")
            raise NetworkError(
                f"Completion connection error: {e}",
                model=model,
                cause=e,
            )

        return self._parse_response(response, model)

    def _parse_response(self, response: httpx.Response, model: str) -> CompletionResponse:
        try:
            data = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedResponseError(
                f"Completion response is not valid JSON: {e}",
                model=model,
                cause=e,
            )

        if not isinstance(data, dict):
            raise MalformedResponseError("Completion response is not an object", model=model)

        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            raise MalformedResponseError("Completion response has no choices", model=model)

        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        if not isinstance(message, dict):
            raise MalformedResponseError("Completion choice has no message", model=model)

        content = message.get("content")
        if content is not None and not isinstance(content, str):
            raise MalformedResponseError("Completion content is not text", model=model)

        tool_calls = []
        for index, raw_call in enumerate(message.get("tool_calls") or []):
            function = raw_call.get("function") if isinstance(raw_call, dict) else None
            name = function.get("name") if isinstance(function, dict) else None
            if not name:
                raise MalformedResponseError(
                    f"Tool call {index} has no function name",
                    model=model,
                )
            arguments = function.get("arguments")
            if arguments is None:
                arguments = ""
            elif not isinstance(arguments, str):
                # Some upstreams return the argument object already decoded
                arguments = json.dumps(arguments)
            tool_calls.append(
                ToolCall(
                    id=raw_call.get("id") or f"call_{index}",
                    name=name,
                    arguments=arguments,
                )
            )

        return CompletionResponse(
            content=content,
            tool_calls=tool_calls,
            model=model,
        )

    async def close(self) -> None:
        await self.client.aclose()
