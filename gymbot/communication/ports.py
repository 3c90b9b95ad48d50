from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class InlineButton:
    """One button of an inline keyboard; callback_data comes back on press."""

    text: str
    callback_data: str


# Rows of buttons, top to bottom
Keyboard = list[list[InlineButton]]


class Messenger(ABC):
    """
    Port: how the bot talks to people.

    The pipeline depends ONLY on this interface. Chat ids are the
    transport's ids; for private chats they equal the user's id.
    """

    @abstractmethod
    async def send_message(self, chat_id: int, text: str, keyboard: Keyboard | None = None) -> int:
        """Send text (optionally with buttons). Returns the message id."""
        ...

    @abstractmethod
    async def edit_message(self, chat_id: int, message_id: int, text: str) -> None:
        """Replace the text of a message we sent, removing its buttons."""
        ...

    @abstractmethod
    async def answer_callback(self, callback_id: str, text: str | None = None) -> None:
        """Acknowledge a button press so the client stops its spinner."""
        ...

    @abstractmethod
    async def send_typing(self, chat_id: int) -> None:
        ...
