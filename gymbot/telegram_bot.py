"""
Telegram wiring — turns python-telegram-bot updates into Pipeline calls.

All text (commands included) goes to Pipeline.process_message(); inline
keyboard presses go to Pipeline.process_callback(). The pipeline replies
through the TelegramMessenger it was built with.
"""

import logging

from telegram import Update
from telegram.ext import Application, CallbackQueryHandler, ContextTypes, MessageHandler, filters

from gymbot.pipeline import Pipeline

log = logging.getLogger(__name__)


def register_handlers(application: Application, pipeline: Pipeline) -> None:

    async def on_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        message = update.effective_message
        user = update.effective_user
        if message is None or user is None or not message.text:
            return
        result = await pipeline.process_message(
            telegram_id=user.id,
            chat_id=message.chat_id,
            message_id=message.message_id,
            text=message.text,
            first_name=user.first_name or "",
        )
        log.info("chat=%d msg=%d → %s", message.chat_id, message.message_id, result.action)

    async def on_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        query = update.callback_query
        if query is None or query.message is None:
            return
        result = await pipeline.process_callback(
            telegram_id=query.from_user.id,
            chat_id=query.message.chat.id,
            message_id=query.message.message_id,
            callback_id=query.id,
            data=query.data or "",
        )
        log.info("callback %r → %s", query.data, result.details)

    async def on_error(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        log.error("telegram update failed: %s", context.error)

    application.add_handler(MessageHandler(filters.TEXT, on_text))
    application.add_handler(CallbackQueryHandler(on_callback))
    application.add_error_handler(on_error)
