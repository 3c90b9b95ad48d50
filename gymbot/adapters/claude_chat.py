"""
ClaudeChatResponder — open-ended replies for messages no rule claimed.

The persona and the list of things the bot can do live in the
general_chat prompt; the user's name and availability are sent with each
message so the reply can refer to them.
"""

import logging
import os

import anthropic

from gymbot.domain.availability import format_availability
from gymbot.domain.chat import ChatContext, ChatResponder
from gymbot.prompts import load_prompt

log = logging.getLogger(__name__)


class ClaudeChatResponder(ChatResponder):
    """Chat responder backed by Claude."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "claude-haiku-4-5-20251001",
        max_tokens: int = 1000,
        temperature: float = 0.7,
    ):
        self._client = anthropic.AsyncAnthropic(api_key=api_key or os.environ["ANTHROPIC_API_KEY"])
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._system = load_prompt("general_chat")

    async def reply(self, message: str, context: ChatContext) -> str:
        availability = format_availability(context.availability) or "No availability set yet."
        user_content = (
            f"User: {context.user_name}\n"
            f"Current availability:\n{availability}\n"
            f"\nMessage:\n{message}"
        )

        response = await self._client.messages.create(
            model=self._model,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
            system=self._system,
            messages=[{"role": "user", "content": user_content}],
        )
        log.debug("claude usage in=%d out=%d",
                  response.usage.input_tokens, response.usage.output_tokens)
        return response.content[0].text.strip()
