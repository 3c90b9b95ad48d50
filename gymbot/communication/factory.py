import os

from .ports import Messenger


def create_messenger(channel: str | None = None, bot=None) -> Messenger:
    """
    Factory: create the right adapter based on config.

    The channel can be passed explicitly or read from the
    GYMBOT_CHANNEL env var. Defaults to "telegram", which needs the
    python-telegram-bot Bot instance the application was built with.
    """
    channel = channel or os.environ.get("GYMBOT_CHANNEL", "telegram")

    if channel == "telegram":
        if bot is None:
            raise ValueError("The telegram channel needs a Bot instance")
        from .telegram_messenger import TelegramMessenger

        return TelegramMessenger(bot)

    if channel == "console":
        from .console_messenger import ConsoleMessenger

        return ConsoleMessenger()

    raise ValueError(f"Unknown messenger channel: {channel!r}")
