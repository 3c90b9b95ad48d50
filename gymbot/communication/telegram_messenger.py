from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.constants import ChatAction

from .ports import Keyboard, Messenger


def _markup(keyboard: Keyboard | None) -> InlineKeyboardMarkup | None:
    if not keyboard:
        return None
    return InlineKeyboardMarkup(
        [[InlineKeyboardButton(b.text, callback_data=b.callback_data) for b in row] for row in keyboard]
    )


class TelegramMessenger(Messenger):
    """Adapter: talk to people through the Telegram Bot API."""

    def __init__(self, bot: Bot):
        self.bot = bot

    async def send_message(self, chat_id: int, text: str, keyboard: Keyboard | None = None) -> int:
        message = await self.bot.send_message(chat_id=chat_id, text=text, reply_markup=_markup(keyboard))
        return message.message_id

    async def edit_message(self, chat_id: int, message_id: int, text: str) -> None:
        await self.bot.edit_message_text(text=text, chat_id=chat_id, message_id=message_id)

    async def answer_callback(self, callback_id: str, text: str | None = None) -> None:
        await self.bot.answer_callback_query(callback_query_id=callback_id, text=text)

    async def send_typing(self, chat_id: int) -> None:
        await self.bot.send_chat_action(chat_id=chat_id, action=ChatAction.TYPING)
