from dataclasses import dataclass

from .ports import Keyboard, Messenger


@dataclass
class SentMessage:
    chat_id: int
    message_id: int
    text: str
    keyboard: Keyboard | None = None


class ConsoleMessenger(Messenger):
    """Adapter: print to console and keep everything in memory. For dev/testing."""

    def __init__(self, echo: bool = True):
        self.echo = echo
        self.sent: list[SentMessage] = []
        self.edits: list[tuple[int, int, str]] = []
        self.callback_answers: list[tuple[str, str | None]] = []
        self._next_id = 1

    async def send_message(self, chat_id: int, text: str, keyboard: Keyboard | None = None) -> int:
        message_id = self._next_id
        self._next_id += 1
        self.sent.append(SentMessage(chat_id, message_id, text, keyboard))

        if self.echo:
            print(f"\n{'=' * 60}")
            print(f"  TO CHAT: {chat_id}   (message {message_id})")
            print(f"{'=' * 60}")
            print(text)
            for row in keyboard or []:
                print("  " + "  ".join(f"[{b.text} → {b.callback_data}]" for b in row))
            print(f"{'=' * 60}\n")

        return message_id

    async def edit_message(self, chat_id: int, message_id: int, text: str) -> None:
        self.edits.append((chat_id, message_id, text))
        if self.echo:
            print(f"\n  EDIT {chat_id}/{message_id}: {text}\n")

    async def answer_callback(self, callback_id: str, text: str | None = None) -> None:
        self.callback_answers.append((callback_id, text))

    async def send_typing(self, chat_id: int) -> None:
        pass

    def texts_to(self, chat_id: int) -> list[str]:
        """Everything sent to one chat, oldest first."""
        return [m.text for m in self.sent if m.chat_id == chat_id]
