"""
Main message pipeline.

Turns one incoming chat message into API calls and replies:

  1. Guard: drop duplicate deliveries of the same message
  2. Commands (/start, /help, ...) are answered directly
  3. Identify the sender: Telegram id → email → GymBuddy account
  4. A pending "which session?" question gets the reply first
  5. Code: classify intent with the rule-based classifier
  6. Route: parser + API for availability and sessions, coordinator for
     partner talk, LLM for everything else

Every reply goes through the Messenger port, so the pipeline runs the same
against Telegram and against the console simulator. Failures of the API or
the LLM are logged and turned into an apology; they never propagate.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Literal

from gymbot.adapters.ports import GymBuddyGateway, User
from gymbot.communication.ports import Messenger
from gymbot.coordination import PartnerCoordinator
from gymbot.domain.availability import (
    AvailabilitySlot,
    Session,
    format_availability,
    format_session,
    format_slot,
)
from gymbot.domain.chat import ChatContext, ChatResponder
from gymbot.domain.intent import Intent, IntentClassifier
from gymbot.domain.session_matcher import match_sessions
from gymbot.domain.state import ConversationStats, ExpiringStore, RecentMessages
from gymbot.domain.text_parser import parse_availability, parse_session_criteria
from gymbot.domain.users import UserDirectory

log = logging.getLogger(__name__)

PENDING_CHOICE_TTL = 600

UNREGISTERED_TEXT = (
    "⚠️ I don't recognize you in the system. "
    "Please register on the GymBuddy website first!"
)
API_ERROR_TEXT = "❌ Sorry, something went wrong talking to GymBuddy. Please try again in a moment."
LLM_ERROR_TEXT = "❌ Sorry, I had trouble coming up with an answer. Please try again!"
REPHRASE_TEXT = (
    "🤔 I didn't quite catch the day and time. "
    "Try something like \"Monday 9am-11am\", \"Tuesday 6-8pm\" or \"Wednesday morning\"."
)
HELP_TEXT = """🏋️ GymBuddy bot — here's what I understand:

📅 Availability
• "I'm available Monday 6-8pm"
• "Tuesday 14:00 to 16:00", "Wednesday morning"
• "What's my availability?"
• "Clear my availability"

❌ Sessions
• "Cancel my Tuesday 7-9 session"

🤝 Partners
• "Pair with alex"
• "Accept partner request"
• "When can we work out?"

Commands: /availability /clear /status /help"""


@dataclass
class PendingSessionChoice:
    """The numbered list we showed when asking which session to cancel."""
    sessions: list[Session]
    request_text: str


@dataclass
class PipelineConfig:
    gateway: GymBuddyGateway
    messenger: Messenger
    chat: ChatResponder
    directory: UserDirectory
    coordinator: PartnerCoordinator
    classifier: IntentClassifier = field(default_factory=IntentClassifier)
    seen_messages: RecentMessages = field(default_factory=RecentMessages)
    pending_choices: ExpiringStore = field(
        default_factory=lambda: ExpiringStore(ttl_seconds=PENDING_CHOICE_TTL)
    )
    stats: ConversationStats = field(default_factory=ConversationStats)
    today: Callable[[], date] = date.today


@dataclass
class PipelineResult:
    action: Literal[
        "duplicate",             # same chat/message id already handled
        "command",               # /start, /help, ...
        "unregistered",          # sender has no GymBuddy account
        "session_choice",        # reply to "which session?"
        "availability_update",
        "availability_query",
        "availability_clear",
        "session_deletion",
        "partner_coordination",
        "general_chat",
        "callback",              # inline button press
        "failed",                # API or transport error, apology sent
    ]
    details: str = ""
    intent: Intent | None = None


class Pipeline:
    """
    Process one message or one button press at a time.

    Call process_message() for every incoming text message and
    process_callback() for every inline keyboard press.
    """

    def __init__(self, config: PipelineConfig):
        self._cfg = config

    # -- entry points --------------------------------------------------------

    async def process_message(
        self,
        telegram_id: int,
        chat_id: int,
        message_id: int,
        text: str,
        first_name: str = "",
    ) -> PipelineResult:
        key = f"{chat_id}_{message_id}"
        if self._cfg.seen_messages.seen(key):
            log.info("msg=%s skip: already seen", key)
            return PipelineResult(action="duplicate")

        self._cfg.stats.total_messages += 1
        text = text.strip()
        log.debug("msg=%s from=%d text=%.60r", key, telegram_id, text)

        try:
            if text.startswith("/"):
                return await self._handle_command(telegram_id, chat_id, text, first_name)

            user = await self._resolve_user(telegram_id)
            if user is None:
                log.info("msg=%s from=%d: unregistered sender", key, telegram_id)
                await self._cfg.messenger.send_message(chat_id, UNREGISTERED_TEXT)
                return PipelineResult(action="unregistered")

            pending = self._cfg.pending_choices.get(telegram_id)
            if pending is not None:
                result = await self._handle_session_choice(user, telegram_id, chat_id, text, pending)
                if result is not None:
                    return result

            await self._cfg.messenger.send_typing(chat_id)
            availability = await self._cfg.gateway.get_availability(user.email)
            intent = self._cfg.classifier.classify(text, availability)
            self._cfg.stats.record(intent.type)
            log.info("msg=%s user=%s classified → %s (%s)", key, user.email, intent.type, intent.confidence)

            result = await self._route(intent, user, telegram_id, chat_id, text, first_name, availability)
            result.intent = intent
            return result

        except Exception as exc:
            log.exception("msg=%s from=%d failed: %s", key, telegram_id, exc)
            await self._send_quietly(chat_id, API_ERROR_TEXT)
            return PipelineResult(action="failed", details=str(exc))

    async def process_callback(
        self,
        telegram_id: int,
        chat_id: int,
        message_id: int,
        callback_id: str,
        data: str,
    ) -> PipelineResult:
        log.debug("callback from=%d data=%r", telegram_id, data)
        try:
            answer = await self._cfg.coordinator.handle_callback(telegram_id, chat_id, message_id, data)
            await self._cfg.messenger.answer_callback(callback_id, answer)
            return PipelineResult(action="callback", details=answer)
        except Exception as exc:
            log.exception("callback %r from=%d failed: %s", data, telegram_id, exc)
            try:
                await self._cfg.messenger.answer_callback(callback_id, "❌ Something went wrong, please try again.")
            except Exception as answer_exc:
                log.error("could not answer callback %s: %s", callback_id, answer_exc)
            return PipelineResult(action="failed", details=str(exc))

    # -- routing -------------------------------------------------------------

    async def _route(
        self,
        intent: Intent,
        user: User,
        telegram_id: int,
        chat_id: int,
        text: str,
        first_name: str,
        availability: list[AvailabilitySlot],
    ) -> PipelineResult:
        if intent.type == "availability_update":
            return await self._update_availability(user, chat_id, text)
        if intent.type == "availability_query":
            return await self._show_availability(chat_id, availability)
        if intent.type == "availability_clear":
            return await self._clear_availability(user, chat_id)
        if intent.type == "session_deletion":
            return await self._start_session_deletion(user, telegram_id, chat_id, text)
        if intent.type == "partner_coordination":
            reply = await self._cfg.coordinator.process_request(user.email, first_name or user.name, text)
            if reply:
                await self._cfg.messenger.send_message(chat_id, reply)
            return PipelineResult(action="partner_coordination", details=reply or "")
        return await self._general_chat(user, chat_id, text, first_name, availability)

    async def _update_availability(self, user: User, chat_id: int, text: str) -> PipelineResult:
        slots = parse_availability(text, today=self._cfg.today())
        if not slots:
            await self._cfg.messenger.send_message(chat_id, REPHRASE_TEXT)
            return PipelineResult(action="availability_update", details="not understood")

        await self._cfg.gateway.set_availability(user.email, slots)
        added = ", ".join(format_slot(s) for s in slots)
        log.info("user=%s added availability %s", user.email, added)
        await self._cfg.messenger.send_message(chat_id, f"✅ Got it! Added {added} to your schedule.")

        await self._cfg.coordinator.check_for_coordination_trigger(user.email)
        return PipelineResult(action="availability_update", details=added)

    async def _show_availability(self, chat_id: int, availability: list[AvailabilitySlot]) -> PipelineResult:
        if not availability:
            text = "📭 You haven't set any availability yet. Try \"I'm available Monday 6-8pm\"."
        else:
            text = "📅 Your availability:\n\n" + format_availability(availability)
        await self._cfg.messenger.send_message(chat_id, text)
        return PipelineResult(action="availability_query", details=f"{len(availability)} slot(s)")

    async def _clear_availability(self, user: User, chat_id: int) -> PipelineResult:
        deleted = await self._cfg.gateway.clear_availability(user.email)
        if deleted:
            text = f"🗑️ Cleared {deleted} availability slot(s). Tell me when you're free again!"
        else:
            text = "📭 You didn't have any availability to clear."
        await self._cfg.messenger.send_message(chat_id, text)
        return PipelineResult(action="availability_clear", details=str(deleted))

    async def _start_session_deletion(
        self, user: User, telegram_id: int, chat_id: int, text: str
    ) -> PipelineResult:
        sessions = [
            s for s in await self._cfg.gateway.get_sessions(user.email)
            if s.status != "cancelled"
        ]
        if not sessions:
            await self._cfg.messenger.send_message(chat_id, "📭 You don't have any booked sessions to cancel.")
            return PipelineResult(action="session_deletion", details="no sessions")

        criteria = parse_session_criteria(text, today=self._cfg.today())
        matches = match_sessions(criteria, sessions)

        if matches.exact_matches:
            candidates, header = matches.exact_matches, "I found these sessions:"
        elif matches.partial_matches:
            candidates, header = matches.partial_matches, "No exact match, but these are close:"
        elif criteria is not None:
            candidates, header = sessions, "I couldn't find a session like that. Here are all your sessions:"
        else:
            candidates, header = sessions, "Which session do you want to cancel?"

        self._cfg.pending_choices.set(telegram_id, PendingSessionChoice(candidates, text))
        listing = "\n".join(f"{i}. {format_session(s)}" for i, s in enumerate(candidates, start=1))
        await self._cfg.messenger.send_message(
            chat_id,
            f"{header}\n\n{listing}\n\nReply with the number of the session to cancel.",
        )
        return PipelineResult(action="session_deletion", details=f"{len(candidates)} candidate(s)")

    async def _handle_session_choice(
        self,
        user: User,
        telegram_id: int,
        chat_id: int,
        text: str,
        pending: PendingSessionChoice,
    ) -> PipelineResult | None:
        """Resolve the answer to "which session?". None means the message is
        about something else and should be handled normally.

        Only a number deletes. Text naming exactly one listed session narrows
        the question to that session and asks for "1" to confirm.
        """
        sessions = pending.sessions

        if not text.isdigit():
            matches = match_sessions(parse_session_criteria(text, today=self._cfg.today()), sessions)
            if len(matches.exact_matches) != 1:
                self._cfg.pending_choices.pop(telegram_id)
                return None
            named = matches.exact_matches[0]
            self._cfg.pending_choices.set(telegram_id, PendingSessionChoice([named], text))
            await self._cfg.messenger.send_message(
                chat_id, f"Cancel your {format_session(named)} session? Reply 1 to confirm."
            )
            return PipelineResult(action="session_choice", details="confirm")

        number = int(text)
        if not 1 <= number <= len(sessions):
            await self._cfg.messenger.send_message(
                chat_id, f"Please enter a number between 1 and {len(sessions)}."
            )
            return PipelineResult(action="session_choice", details="out of range")
        chosen = sessions[number - 1]

        self._cfg.pending_choices.pop(telegram_id)
        await self._cfg.gateway.delete_session(user.email, chosen.id)
        log.info("user=%s cancelled session %s", user.email, chosen.id)
        await self._cfg.messenger.send_message(chat_id, f"✅ Cancelled your {format_session(chosen)} session.")
        return PipelineResult(action="session_choice", details=chosen.id)

    async def _general_chat(
        self,
        user: User,
        chat_id: int,
        text: str,
        first_name: str,
        availability: list[AvailabilitySlot],
    ) -> PipelineResult:
        context = ChatContext(user_name=first_name or user.name, availability=availability)
        try:
            reply = await self._cfg.chat.reply(text, context)
        except Exception as exc:
            log.error("user=%s LLM reply failed: %s", user.email, exc)
            reply = LLM_ERROR_TEXT
        await self._cfg.messenger.send_message(chat_id, reply)
        return PipelineResult(action="general_chat", details=reply[:60])

    # -- commands ------------------------------------------------------------

    async def _handle_command(
        self, telegram_id: int, chat_id: int, text: str, first_name: str
    ) -> PipelineResult:
        # "/start@GymBuddyBot extra words" → "/start"
        command = text.split()[0].split("@")[0].lower()
        messenger = self._cfg.messenger

        if command == "/help":
            await messenger.send_message(chat_id, HELP_TEXT)
            return PipelineResult(action="command", details=command)

        if command == "/debug":
            await messenger.send_message(chat_id, self._stats_text())
            return PipelineResult(action="command", details=command)

        user = await self._resolve_user(telegram_id)

        if command == "/start":
            if user is None:
                await messenger.send_message(chat_id, f"👋 Hi {first_name or 'there'}!\n\n{UNREGISTERED_TEXT}")
            else:
                await messenger.send_message(
                    chat_id,
                    f"👋 Welcome back, {first_name or user.name}! I'm your GymBuddy assistant.\n\n{HELP_TEXT}",
                )
            return PipelineResult(action="command", details=command)

        if command in ("/availability", "/clear", "/status") and user is None:
            await messenger.send_message(chat_id, UNREGISTERED_TEXT)
            return PipelineResult(action="unregistered", details=command)

        if command == "/availability":
            availability = await self._cfg.gateway.get_availability(user.email)
            await self._show_availability(chat_id, availability)
        elif command == "/clear":
            await self._clear_availability(user, chat_id)
        elif command == "/status":
            health = await self._cfg.gateway.health_check()
            availability = await self._cfg.gateway.get_availability(user.email)
            await messenger.send_message(
                chat_id,
                f"🟢 GymBuddy API: {health.status} {health.version}\n"
                f"👤 {user.name} ({user.email})\n"
                f"📅 {len(availability)} availability slot(s)",
            )
        else:
            await messenger.send_message(chat_id, "🤔 I don't know that command. Try /help.")
        return PipelineResult(action="command", details=command)

    def _stats_text(self) -> str:
        stats = self._cfg.stats
        intents = "\n".join(f"• {name}: {count}" for name, count in stats.intents.most_common()) or "• none yet"
        return (
            f"🔧 Conversation stats\n"
            f"Messages: {stats.total_messages}\n"
            f"Answered directly: {stats.direct_replies}\n"
            f"Answered by AI: {stats.llm_replies}\n"
            f"Intents:\n{intents}"
        )

    # -- helpers -------------------------------------------------------------

    async def _resolve_user(self, telegram_id: int) -> User | None:
        email = self._cfg.directory.email_for(telegram_id)
        if email is None:
            return None
        return await self._cfg.gateway.get_user(email)

    async def _send_quietly(self, chat_id: int, text: str) -> None:
        try:
            await self._cfg.messenger.send_message(chat_id, text)
        except Exception as exc:
            log.error("could not deliver apology to chat %d: %s", chat_id, exc)
