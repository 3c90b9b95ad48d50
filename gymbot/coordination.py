"""
Partner coordination — get two gym partners to agree on a joint session.

Flow:
  1. A user updates availability (or asks to coordinate).
  2. If they have a partner and both have availability, the API suggests
     overlapping slots; both partners get the top options as buttons.
  3. Each partner picks an option (button, "option 2", or "I prefer the
     Tuesday session").
  4. Same pick → the session is booked. Different picks → both are told and
     the proposal expires after a short negotiation window.

Proposals live in an injected ExpiringStore; nothing survives a restart.
Partner requests ("pair with alex") and their accept/decline buttons are
handled here too.
"""

import asyncio
import logging
import re
import time
import uuid
from dataclasses import dataclass, field

from gymbot.adapters.ports import GymBuddyGateway, SessionSuggestion, User
from gymbot.communication.ports import InlineButton, Keyboard, Messenger
from gymbot.domain.availability import Session
from gymbot.domain.session_matcher import match_sessions
from gymbot.domain.state import ExpiringStore
from gymbot.domain.text_parser import parse_session_criteria
from gymbot.domain.users import UserDirectory

log = logging.getLogger(__name__)

PROPOSAL_TTL = 24 * 3600
NEGOTIATION_TTL = 300
MAX_OPTIONS = 3

_PARTNER_REQUEST_PATTERNS = [
    re.compile(p) for p in (
        r"\bpair with\s+(\w+)",
        r"\bpartner with\s+(\w+)",
        r"\badd\s+(\w+)\s+as\s+partner",
        r"\bwant\s+to\s+pair\s+with\s+(\w+)",
        r"\bsend\s+partner\s+request\s+to\s+(\w+)",
        r"\bgym\s+buddy\s+(\w+)",
    )
]
_NOT_A_NAME = {
    "me", "my", "a", "someone", "somebody", "anyone", "you", "the",
    "for", "to", "with", "on", "at", "this", "next",
}

_ACCEPT_REQUEST = re.compile(r"accept.*partner.*request")
_DECLINE_REQUEST = re.compile(r"(?:decline|reject).*partner.*request")

_SESSION_PREFERENCE = [
    re.compile(p) for p in (
        r"prefer.*session",
        r"like.*session",
        r"choose.*session",
        r"pick.*session",
        r"(?:monday|tuesday|wednesday|thursday|friday|saturday|sunday).*session",
        r"option\s+\d",
    )
]
_OPTION_NUMBER = re.compile(r"option\s+(\d)")


@dataclass
class CoordinationState:
    coordination_id: str
    user1: User
    user2: User
    suggestions: list[SessionSuggestion]
    responses: dict[str, int] = field(default_factory=dict)   # email -> option index
    created_at: float = field(default_factory=time.time)

    def includes(self, email: str) -> bool:
        return email.lower() in (self.user1.email.lower(), self.user2.email.lower())

    def partner_of(self, email: str) -> User:
        return self.user2 if email.lower() == self.user1.email.lower() else self.user1

    def user(self, email: str) -> User:
        return self.user1 if email.lower() == self.user1.email.lower() else self.user2


def find_partner_name(text: str) -> str | None:
    """Who the user wants to pair with, from "pair with alex" and friends."""
    lower = text.lower()
    for pattern in _PARTNER_REQUEST_PATTERNS:
        m = pattern.search(lower)
        if m and m.group(1) not in _NOT_A_NAME:
            return m.group(1)
    return None


def is_session_preference(text: str) -> bool:
    lower = text.lower()
    return any(p.search(lower) for p in _SESSION_PREFERENCE)


class PartnerCoordinator:

    def __init__(
        self,
        gateway: GymBuddyGateway,
        messenger: Messenger,
        directory: UserDirectory,
        states: ExpiringStore[str, CoordinationState] | None = None,
    ):
        self.gateway = gateway
        self.messenger = messenger
        self.directory = directory
        self.states = states if states is not None else ExpiringStore(ttl_seconds=PROPOSAL_TTL)

    # -- triggering ----------------------------------------------------------

    def active_for(self, email: str) -> CoordinationState | None:
        return next((s for s in self.states.values() if s.includes(email)), None)

    async def check_for_coordination_trigger(self, email: str) -> bool:
        """Propose joint sessions if the user has a partner and both have
        availability. Returns True when suggestions were fetched."""
        try:
            status = await self.gateway.get_partner_status(email)
            if not status.has_partner:
                return False
            if self.active_for(email) is not None:
                log.info("coordination for %s already in progress", email)
                return False

            mine, theirs = await asyncio.gather(
                self.gateway.get_availability(email),
                self.gateway.get_availability(status.partner.email),
            )
            if not mine or not theirs:
                log.info("no coordination for %s: mine=%d theirs=%d", email, len(mine), len(theirs))
                return False

            await self.trigger_automatic_coordination(email, status.partner.email)
            return True
        except Exception as exc:
            log.error("coordination check failed for %s: %s", email, exc)
            return False

    async def trigger_automatic_coordination(self, email1: str, email2: str) -> bool:
        """Send both partners the best overlapping slots. True if any exist."""
        result = await self.gateway.get_session_suggestions(email1, email2)

        if not result.suggestions:
            for user, partner in ((result.user1, result.user2), (result.user2, result.user1)):
                await self._notify(
                    user.email,
                    f"📅 You and {partner.name} don't have overlapping times yet. "
                    f"Try adding a few more slots to your availability!",
                )
            return False

        state = CoordinationState(
            coordination_id=uuid.uuid4().hex[:10],
            user1=result.user1,
            user2=result.user2,
            suggestions=result.suggestions[:MAX_OPTIONS],
        )
        self.states.set(state.coordination_id, state)
        log.info("coordination %s created for %s + %s with %d option(s)",
                 state.coordination_id, email1, email2, len(state.suggestions))

        for user, partner in ((state.user1, state.user2), (state.user2, state.user1)):
            await self._notify(
                user.email,
                f"🏋️ Good news! You and {partner.name} are both free at these times:\n\n"
                + self._options_text(state)
                + "\n\nWhich one works for you?",
                self._options_keyboard(state),
            )
        return True

    # -- callbacks -----------------------------------------------------------

    async def handle_callback(self, telegram_id: int, chat_id: int, message_id: int, data: str) -> str:
        """Handle an inline button press. Returns the short toast text."""
        email = self.directory.email_for(telegram_id)
        if email is None:
            return "I don't recognize you in the system."

        if data.startswith("coord_select_"):
            coordination_id, _, index = data[len("coord_select_"):].rpartition("_")
            if not index.isdigit():
                return "Unknown option"
            return await self._select(email, chat_id, message_id, coordination_id, int(index))

        if data.startswith("coord_decline_"):
            return await self._decline(email, chat_id, message_id, data[len("coord_decline_"):])

        if data.startswith("partner_accept_"):
            request_id = data[len("partner_accept_"):]
            await self.gateway.respond_to_partner_request(request_id, email, "accepted")
            await self.messenger.edit_message(
                chat_id, message_id, "🤝 You're now gym partners! Set your availability and I'll find times for you both."
            )
            return "Partner request accepted"

        if data.startswith("partner_decline_"):
            request_id = data[len("partner_decline_"):]
            await self.gateway.respond_to_partner_request(request_id, email, "rejected")
            await self.messenger.edit_message(chat_id, message_id, "👋 Partner request declined.")
            return "Partner request declined"

        log.warning("unknown callback data %r from %d", data, telegram_id)
        return "Unknown action"

    async def _select(self, email: str, chat_id: int, message_id: int, coordination_id: str, index: int) -> str:
        state = self.states.get(coordination_id)
        if state is None:
            await self.messenger.edit_message(
                chat_id, message_id, "⏰ This session proposal has expired. Update your availability to get new options."
            )
            return "Expired"
        if not state.includes(email) or not 0 <= index < len(state.suggestions):
            return "Unknown option"
        return await self.record_choice(state, email, index, chat_id, message_id)

    async def _decline(self, email: str, chat_id: int, message_id: int, coordination_id: str) -> str:
        state = self.states.get(coordination_id)
        if state is None:
            await self.messenger.edit_message(chat_id, message_id, "⏰ This session proposal has already expired.")
            return "Expired"
        if not state.includes(email):
            return "Unknown option"

        self.states.pop(coordination_id)
        await self.messenger.edit_message(chat_id, message_id, "❌ You declined these options. No session was booked.")
        await self._notify(
            state.partner_of(email).email,
            f"😕 {state.user(email).name} declined the suggested sessions. "
            f"Update your availability and I'll look again!",
        )
        return "Declined"

    # -- choices -------------------------------------------------------------

    async def record_choice(
        self,
        state: CoordinationState,
        email: str,
        index: int,
        chat_id: int | None = None,
        message_id: int | None = None,
    ) -> str:
        state.responses[email.lower()] = index
        chosen = state.suggestions[index]
        me, partner = state.user(email), state.partner_of(email)

        if len(state.responses) < 2:
            await self._reply(
                email, chat_id, message_id,
                f"✅ You picked {chosen.label()}. Waiting for {partner.name} to choose…",
            )
            await self._notify(partner.email, f"💬 {me.name} picked {chosen.label()}. Which option works for you?")
            return "Choice recorded"

        if len(set(state.responses.values())) == 1:
            await self._book(state, chosen)
            return "Session booked"

        await self._reply(email, chat_id, message_id, f"✅ You picked {chosen.label()}.")
        await self._negotiate(state)
        return "Choices differ"

    async def _book(self, state: CoordinationState, chosen: SessionSuggestion) -> None:
        await self.gateway.book_session(
            state.user1.email, state.user2.email, chosen.date, chosen.start_hour, chosen.end_hour
        )
        self.states.pop(state.coordination_id)
        log.info("coordination %s booked %s", state.coordination_id, chosen.label())

        for user, partner in ((state.user1, state.user2), (state.user2, state.user1)):
            await self._notify(
                user.email,
                f"🎉 Session booked! {chosen.label()} ({chosen.date}) with {partner.name}. See you there! 💪",
            )

    async def _negotiate(self, state: CoordinationState) -> None:
        picks = "\n".join(
            f"• {state.user(email).name}: {state.suggestions[index].label()}"
            for email, index in state.responses.items()
        )
        text = (
            f"🤔 You picked different times:\n{picks}\n\n"
            f"Pick the same option within {NEGOTIATION_TTL // 60} minutes to book it."
        )
        self.states.expire_in(state.coordination_id, NEGOTIATION_TTL)
        for user in (state.user1, state.user2):
            await self._notify(user.email, text, self._options_keyboard(state))

    # -- text requests -------------------------------------------------------

    async def process_request(self, email: str, user_name: str, text: str) -> str | None:
        """Handle a partner-related message. Returns the reply for the sender,
        or None when the reply was already sent."""
        lower = text.lower()

        if _DECLINE_REQUEST.search(lower):
            return await self._respond_by_text(email, "rejected")
        if _ACCEPT_REQUEST.search(lower):
            return await self._respond_by_text(email, "accepted")

        target = find_partner_name(text)
        if target is not None:
            return await self._request_partner(email, user_name, target)

        if is_session_preference(text):
            return await self._preference(email, text)

        return await self._coordinate(email)

    async def _respond_by_text(self, email: str, response: str) -> str:
        status = await self.gateway.get_partner_status(email)
        if not status.pending_requests:
            return "📭 You don't have any pending partner requests."

        request = status.pending_requests[0]
        await self.gateway.respond_to_partner_request(request.request_id, email, response)
        if response == "accepted":
            return f"🤝 You and {request.requester.name} are now gym partners!"
        return f"👋 Declined the partner request from {request.requester.name}."

    async def _request_partner(self, email: str, user_name: str, target: str) -> str:
        partner = await self.gateway.find_partner(target)
        if partner is None:
            return f"❓ I couldn't find anyone called {target!r}. Are they registered on GymBuddy?"
        if partner.email.lower() == email.lower():
            return "😄 You can't be your own gym partner!"

        request_id = await self.gateway.send_partner_request(
            email, partner.email, message=f"{user_name} wants to be your gym partner"
        )
        delivered = await self._notify(
            partner.email,
            f"👋 {user_name} wants to be your gym partner!",
            [[
                InlineButton("✅ Accept", f"partner_accept_{request_id}"),
                InlineButton("❌ Decline", f"partner_decline_{request_id}"),
            ]],
        )
        if delivered:
            return f"📨 Partner request sent to {partner.name}!"
        return f"📨 Partner request sent to {partner.name}. They'll see it on the GymBuddy website."

    async def _preference(self, email: str, text: str) -> str | None:
        state = self.active_for(email)
        if state is None:
            return "There's no session proposal waiting for you right now. Update your availability and I'll find times with your partner."

        m = _OPTION_NUMBER.search(text.lower())
        if m:
            index = int(m.group(1)) - 1
            if not 0 <= index < len(state.suggestions):
                return f"Please pick an option between 1 and {len(state.suggestions)}."
        else:
            candidates = [
                Session(id=str(i), day=s.day, start_hour=s.start_hour, end_hour=s.end_hour, date=s.date)
                for i, s in enumerate(state.suggestions)
            ]
            matches = match_sessions(parse_session_criteria(text), candidates)
            if len(matches.exact_matches) != 1:
                return "Which one do you mean? Reply \"option 1\", \"option 2\"…\n\n" + self._options_text(state)
            index = int(matches.exact_matches[0].id)

        await self.record_choice(state, email, index)
        return None

    async def _coordinate(self, email: str) -> str | None:
        if self.active_for(email) is not None:
            return "📋 You already have session options waiting. Pick one from the buttons above!"

        status = await self.gateway.get_partner_status(email)
        if not status.has_partner:
            if status.pending_requests:
                name = status.pending_requests[0].requester.name
                return f"📨 {name} wants to be your gym partner. Reply \"accept partner request\" to pair up!"
            return "🤝 You don't have a gym partner yet. Say \"pair with <name>\" to send a request."

        if await self.check_for_coordination_trigger(email):
            return None
        return f"📅 To find times with {status.partner.name}, you both need to set some availability first."

    # -- helpers -------------------------------------------------------------

    @staticmethod
    def _options_text(state: CoordinationState) -> str:
        return "\n".join(
            f"{i}. {s.label()} ({s.date})" for i, s in enumerate(state.suggestions, start=1)
        )

    @staticmethod
    def _options_keyboard(state: CoordinationState) -> Keyboard:
        rows = [
            [InlineButton(f"{i}. {s.label()}", f"coord_select_{state.coordination_id}_{i - 1}")]
            for i, s in enumerate(state.suggestions, start=1)
        ]
        rows.append([InlineButton("❌ None of these", f"coord_decline_{state.coordination_id}")])
        return rows

    async def _notify(self, email: str, text: str, keyboard: Keyboard | None = None) -> bool:
        telegram_id = self.directory.telegram_id_for(email)
        if telegram_id is None:
            log.warning("cannot notify %s: no Telegram account mapped", email)
            return False
        await self.messenger.send_message(telegram_id, text, keyboard)
        return True

    async def _reply(self, email: str, chat_id: int | None, message_id: int | None, text: str) -> None:
        if chat_id is not None and message_id is not None:
            await self.messenger.edit_message(chat_id, message_id, text)
        else:
            await self._notify(email, text)
