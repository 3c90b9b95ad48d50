"""
Local process runner for the GymBuddy Telegram bot.

Long-polls Telegram for updates and feeds them through the pipeline. With
GYMBOT_CHANNEL=console it reads messages from stdin instead and prints the
replies, which is handy for trying the bot against a real API without a
Telegram client.

Usage:
    source .env && python scripts/run.py

Environment variables (all required unless noted):
    TELEGRAM_BOT_TOKEN      - Telegram bot token (not needed for console)
    ANTHROPIC_API_KEY       - Anthropic/Claude API key
    GYMBOT_USER_MAP         - "<telegram_id>:<email>,..." account mapping
    GYMBUDDY_API_URL        - GymBuddy API base URL (default: http://localhost:3001)
    GYMBUDDY_API_TIMEOUT    - HTTP timeout in seconds (default: 10)
    ANTHROPIC_MODEL         - model for general chat (default: claude-haiku-4-5-20251001)
    GYMBOT_CHANNEL          - "telegram" or "console" (default: telegram)
    CONSOLE_TELEGRAM_ID     - Telegram id to impersonate on the console
    BOT_DEBUG_MODE          - "true" for DEBUG logging (default: false)
"""

import asyncio
import logging
import os
import sys

# Make sure project root is on sys.path when run as a script
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from telegram.ext import ApplicationBuilder

from gymbot.adapters.claude_chat import ClaudeChatResponder
from gymbot.adapters.gymbuddy_client import DEFAULT_BASE_URL, GymBuddyClient
from gymbot.communication.factory import create_messenger
from gymbot.communication.ports import Messenger
from gymbot.coordination import PROPOSAL_TTL, PartnerCoordinator
from gymbot.domain.state import ExpiringStore
from gymbot.domain.users import StaticUserDirectory
from gymbot.pipeline import Pipeline, PipelineConfig
from gymbot.telegram_bot import register_handlers

DEBUG = os.environ.get("BOT_DEBUG_MODE", "").lower() == "true"

logging.basicConfig(
    level=logging.DEBUG if DEBUG else logging.INFO,
    format="%(asctime)s  %(levelname)-7s  %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
# python-telegram-bot logs every long-poll request through httpx
logging.getLogger("httpx").setLevel(logging.WARNING)
log = logging.getLogger(__name__)


def _require_env(name: str) -> str:
    value = os.environ.get(name)
    if not value:
        print(f"ERROR: environment variable {name!r} is not set.", file=sys.stderr)
        sys.exit(1)
    return value


def build_pipeline(messenger: Messenger) -> Pipeline:
    directory = StaticUserDirectory.from_string(_require_env("GYMBOT_USER_MAP"))
    gateway = GymBuddyClient(
        base_url=os.environ.get("GYMBUDDY_API_URL", DEFAULT_BASE_URL),
        timeout=float(os.environ.get("GYMBUDDY_API_TIMEOUT", "10")),
    )
    chat = ClaudeChatResponder(
        api_key=_require_env("ANTHROPIC_API_KEY"),
        model=os.environ.get("ANTHROPIC_MODEL", "claude-haiku-4-5-20251001"),
    )
    coordinator = PartnerCoordinator(
        gateway=gateway,
        messenger=messenger,
        directory=directory,
        states=ExpiringStore(ttl_seconds=PROPOSAL_TTL),
    )
    return Pipeline(PipelineConfig(
        gateway=gateway,
        messenger=messenger,
        chat=chat,
        directory=directory,
        coordinator=coordinator,
    ))


def run_telegram() -> None:
    application = ApplicationBuilder().token(_require_env("TELEGRAM_BOT_TOKEN")).build()
    pipeline = build_pipeline(create_messenger("telegram", bot=application.bot))
    register_handlers(application, pipeline)

    log.info("Bot started, api=%s", os.environ.get("GYMBUDDY_API_URL", DEFAULT_BASE_URL))
    application.run_polling()


async def run_console() -> None:
    telegram_id = int(_require_env("CONSOLE_TELEGRAM_ID"))
    pipeline = build_pipeline(create_messenger("console"))

    log.info("Console chat started as telegram_id=%d (Ctrl-D to quit)", telegram_id)
    message_id = 0
    while True:
        try:
            text = await asyncio.to_thread(input, "you> ")
        except EOFError:
            break
        if not text.strip():
            continue
        message_id += 1
        result = await pipeline.process_message(telegram_id, telegram_id, message_id, text, "Console")
        log.info("→ %s %s", result.action, result.details[:60])


def main() -> None:
    if os.environ.get("GYMBOT_CHANNEL", "telegram") == "console":
        asyncio.run(run_console())
    else:
        run_telegram()


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        log.info("Bot stopped.")
