"""
ChatResponder port — open-ended conversation for messages no rule claimed.

AI is used here only: everything the bot can do itself (availability,
sessions, partners) is routed before a message reaches the responder.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from gymbot.domain.availability import AvailabilitySlot


@dataclass
class ChatContext:
    """What the responder knows about the person it is talking to."""
    user_name: str
    availability: list[AvailabilitySlot] = field(default_factory=list)


class ChatResponder(ABC):
    """
    Port: produce a chat reply.

    Implementations may call an LLM (ClaudeChatResponder) or return canned
    text (SimulatorChatResponder). Both must satisfy the same contract.
    """

    @abstractmethod
    async def reply(self, message: str, context: ChatContext) -> str:
        """Return the text to send back. Raises on transport failure."""
        ...
