"""
Prompt Builder for Agent Orchestrator.

Builds the system prompt and assembles the full request message list.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from ..domain.entities import ConversationMessage, MessageRole

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = """You are a hospital ward operations assistant with access to live ward data and the ability to perform actions.

Capabilities:
1. Context gathering: query rooms, patients, equipment and the ward overview. Gather relevant context before acting.
2. Actions: check in, discharge and transfer patients; create tasks (food delivery, cleaning, equipment transfer, linen restocking, medication delivery, maintenance); update vitals; assign staff; raise alerts.
3. Live task board: tasks you create appear on the staff task board and are tracked until completed.

Workflow:
- For requests about a specific room (e.g. "room 102"), call get_room_context first.
- When details are missing (for example patient details for a check-in), ask one specific question.
- After acting, confirm what was done in one or two sentences.

Response formatting:
- Never show raw JSON to the user; describe data in plain language.
- Format clinical values clearly (e.g. "98.6 F", "120/80").
- Explain errors in plain language.

Conversation awareness:
- The conversation so far is included above the latest message.
- Never ask for information the user already gave; use it directly."""


class PromptBuilder:
    """Builds the messages sent with each completion request.

    Usage:
        builder = PromptBuilder()
        messages = builder.build_messages(history, "send food to room 101")
    """

    def __init__(self, base_prompt: str = DEFAULT_SYSTEM_PROMPT):
        self.base_prompt = base_prompt

    def build(self, today: Optional[date] = None) -> str:
        """System prompt with the current date appended."""
        today = today or date.today()
        return f"{self.base_prompt}\n\nCurrent date: {today.isoformat()}"

    def build_messages(
        self,
        history: list[ConversationMessage],
        user_message: Optional[ConversationMessage] = None,
        today: Optional[date] = None,
    ) -> list[ConversationMessage]:
        """System prompt, then history, then the new user message."""
        messages = [ConversationMessage(role=MessageRole.SYSTEM, content=self.build(today))]
        messages.extend(history)
        if user_message is not None:
            messages.append(user_message)
        return messages
