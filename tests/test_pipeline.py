"""
Full pipeline tests using all simulators.

No network, no credentials, no LLM API calls.
Alice (Telegram 111) and Bob (Telegram 222) are registered; "today" is
Sunday 2026-10-18 so "tomorrow" is Monday.
"""

from datetime import date

import pytest

from gymbot.adapters.simulator_chat import SimulatorChatResponder
from gymbot.adapters.simulator_gymbuddy import SimulatorGymBuddyGateway
from gymbot.communication.console_messenger import ConsoleMessenger
from gymbot.coordination import PartnerCoordinator
from gymbot.domain.availability import AvailabilitySlot, Session
from gymbot.domain.users import StaticUserDirectory
from gymbot.pipeline import (
    API_ERROR_TEXT,
    HELP_TEXT,
    LLM_ERROR_TEXT,
    REPHRASE_TEXT,
    UNREGISTERED_TEXT,
    Pipeline,
    PipelineConfig,
)

ALICE, BOB, STRANGER = 111, 222, 999
ALICE_EMAIL, BOB_EMAIL = "alice@example.com", "bob@example.com"
SUNDAY = date(2026, 10, 18)


@pytest.fixture
def gateway():
    gw = SimulatorGymBuddyGateway(today=SUNDAY)
    gw.inject_user(ALICE_EMAIL, "Alice")
    gw.inject_user(BOB_EMAIL, "Bob")
    return gw


@pytest.fixture
def messenger():
    return ConsoleMessenger(echo=False)


@pytest.fixture
def chat():
    return SimulatorChatResponder()


@pytest.fixture
def config(gateway, messenger, chat):
    directory = StaticUserDirectory({ALICE: ALICE_EMAIL, BOB: BOB_EMAIL})
    return PipelineConfig(
        gateway=gateway,
        messenger=messenger,
        chat=chat,
        directory=directory,
        coordinator=PartnerCoordinator(gateway, messenger, directory),
        today=lambda: SUNDAY,
    )


@pytest.fixture
def pipeline(config):
    return Pipeline(config)


class Conversation:
    """Send messages as one user with increasing message ids."""

    def __init__(self, pipeline, telegram_id, first_name=""):
        self.pipeline = pipeline
        self.telegram_id = telegram_id
        self.first_name = first_name
        self.message_id = 0

    async def say(self, text):
        self.message_id += 1
        return await self.pipeline.process_message(
            self.telegram_id, self.telegram_id, self.message_id, text, self.first_name
        )


@pytest.fixture
def alice(pipeline):
    return Conversation(pipeline, ALICE)


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_duplicate_delivery_is_processed_once(pipeline, chat, messenger):
    first = await pipeline.process_message(ALICE, ALICE, 1, "Hello there!")
    second = await pipeline.process_message(ALICE, ALICE, 1, "Hello there!")

    assert first.action == "general_chat"
    assert second.action == "duplicate"
    assert len(chat.prompts) == 1
    assert len(messenger.texts_to(ALICE)) == 1


@pytest.mark.asyncio
async def test_same_message_id_in_another_chat_is_not_a_duplicate(pipeline):
    await pipeline.process_message(ALICE, ALICE, 1, "Hello there!")
    result = await pipeline.process_message(BOB, BOB, 1, "Hello there!")
    assert result.action == "general_chat"


@pytest.mark.asyncio
async def test_unmapped_telegram_user_is_told_to_register(pipeline, messenger, chat):
    result = await pipeline.process_message(STRANGER, STRANGER, 1, "Hello there!")

    assert result.action == "unregistered"
    assert messenger.texts_to(STRANGER) == [UNREGISTERED_TEXT]
    assert chat.prompts == []


@pytest.mark.asyncio
async def test_mapped_user_without_account_is_told_to_register(config, messenger):
    config.directory = StaticUserDirectory({333: "carol@example.com"})
    result = await Pipeline(config).process_message(333, 333, 1, "What's my availability?")

    assert result.action == "unregistered"
    assert messenger.texts_to(333) == [UNREGISTERED_TEXT]


# ---------------------------------------------------------------------------
# Availability
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_update_availability(alice, gateway, messenger):
    result = await alice.say("I'm available Monday 6-8pm")

    assert result.action == "availability_update"
    assert result.intent.type == "availability_update"
    assert await gateway.get_availability(ALICE_EMAIL) == [AvailabilitySlot("monday", 18, 20)]
    assert messenger.texts_to(ALICE) == ["✅ Got it! Added Monday 18:00-20:00 to your schedule."]


@pytest.mark.asyncio
async def test_update_with_relative_day(alice, gateway):
    await alice.say("gym at 7am tomorrow")
    assert await gateway.get_availability(ALICE_EMAIL) == [AvailabilitySlot("monday", 7, 9)]


@pytest.mark.asyncio
async def test_unparseable_update_asks_to_rephrase(alice, gateway, messenger):
    result = await alice.say("I'm available sometime next week")

    assert result.action == "availability_update"
    assert messenger.texts_to(ALICE) == [REPHRASE_TEXT]
    assert await gateway.get_availability(ALICE_EMAIL) == []


@pytest.mark.asyncio
async def test_query_lists_days_in_week_order(alice, gateway, messenger):
    gateway.inject_availability(ALICE_EMAIL, [
        AvailabilitySlot("wednesday", 9, 11),
        AvailabilitySlot("monday", 18, 20),
        AvailabilitySlot("monday", 7, 9),
    ])

    result = await alice.say("What's my availability?")

    assert result.action == "availability_query"
    assert messenger.texts_to(ALICE) == [
        "📅 Your availability:\n\nMonday: 7:00-9:00, 18:00-20:00\nWednesday: 9:00-11:00"
    ]


@pytest.mark.asyncio
async def test_query_with_nothing_set(alice, messenger):
    await alice.say("When am I free?")
    assert messenger.texts_to(ALICE)[0].startswith("📭")


@pytest.mark.asyncio
async def test_clear_availability(alice, gateway, messenger):
    gateway.inject_availability(ALICE_EMAIL, [
        AvailabilitySlot("monday", 18, 20),
        AvailabilitySlot("tuesday", 18, 20),
    ])

    result = await alice.say("Clear my availability")

    assert result.action == "availability_clear"
    assert messenger.texts_to(ALICE)[0].startswith("🗑️ Cleared 2 availability slot(s)")
    assert await gateway.get_availability(ALICE_EMAIL) == []


@pytest.mark.asyncio
async def test_clear_when_nothing_set(alice, messenger):
    await alice.say("reset my schedule")
    assert messenger.texts_to(ALICE) == ["📭 You didn't have any availability to clear."]


@pytest.mark.asyncio
async def test_contextual_clear_needs_existing_availability(alice, gateway, chat):
    first = await alice.say("clear this")
    assert first.action == "general_chat"

    gateway.inject_availability(ALICE_EMAIL, [AvailabilitySlot("monday", 18, 20)])
    second = await alice.say("clear this")
    assert second.action == "availability_clear"
    assert second.intent.contextual


# ---------------------------------------------------------------------------
# Session deletion
# ---------------------------------------------------------------------------


@pytest.fixture
def booked(gateway):
    gateway.inject_session(ALICE_EMAIL, Session("s1", "monday", 7, 9, date="2026-10-19"))
    gateway.inject_session(ALICE_EMAIL, Session("s2", "monday", 19, 21))
    gateway.inject_session(ALICE_EMAIL, Session("s3", "tuesday", 9, 11))
    return gateway


@pytest.mark.asyncio
async def test_deletion_lists_matches_then_deletes_chosen_number(alice, booked, messenger, config):
    listed = await alice.say("cancel my Monday session")

    assert listed.action == "session_deletion"
    assert messenger.texts_to(ALICE)[-1] == (
        "I found these sessions:\n\n"
        "1. Monday (2026-10-19) 7:00-9:00\n"
        "2. Monday 19:00-21:00\n\n"
        "Reply with the number of the session to cancel."
    )
    assert booked.deleted_sessions == []

    chosen = await alice.say("2")

    assert chosen.action == "session_choice"
    assert booked.deleted_sessions == [(ALICE_EMAIL, "s2")]
    assert messenger.texts_to(ALICE)[-1] == "✅ Cancelled your Monday 19:00-21:00 session."
    assert ALICE not in config.pending_choices


@pytest.mark.asyncio
async def test_out_of_range_number_keeps_the_question_open(alice, booked, messenger):
    await alice.say("cancel my Monday session")

    result = await alice.say("5")
    assert result.action == "session_choice"
    assert messenger.texts_to(ALICE)[-1] == "Please enter a number between 1 and 2."
    assert booked.deleted_sessions == []

    await alice.say("1")
    assert booked.deleted_sessions == [(ALICE_EMAIL, "s1")]


@pytest.mark.asyncio
async def test_description_asks_for_confirmation_before_deleting(alice, booked, messenger):
    await alice.say("cancel my session")
    assert messenger.texts_to(ALICE)[-1].startswith("Which session do you want to cancel?")

    result = await alice.say("the tuesday one")

    assert result.action == "session_choice"
    assert booked.deleted_sessions == []
    assert messenger.texts_to(ALICE)[-1] == "Cancel your Tuesday 9:00-11:00 session? Reply 1 to confirm."

    await alice.say("1")
    assert booked.deleted_sessions == [(ALICE_EMAIL, "s3")]


@pytest.mark.asyncio
async def test_reply_naming_a_session_to_keep_deletes_nothing(alice, booked, config):
    await alice.say("cancel my session")

    await alice.say("wait, don't touch tuesday")
    assert booked.deleted_sessions == []

    result = await alice.say("no, keep it")
    assert result.action != "session_choice"
    assert booked.deleted_sessions == []
    assert ALICE not in config.pending_choices


@pytest.mark.asyncio
async def test_unrelated_reply_drops_pending_choice(alice, booked, config):
    await alice.say("cancel my session")

    result = await alice.say("What's my availability?")

    assert result.action == "availability_query"
    assert ALICE not in config.pending_choices
    assert booked.deleted_sessions == []


@pytest.mark.asyncio
async def test_partial_matches_are_offered(alice, booked, messenger):
    await alice.say("cancel my Monday 14-16 session")

    text = messenger.texts_to(ALICE)[-1]
    assert text.startswith("No exact match, but these are close:")
    assert "1. Monday (2026-10-19) 7:00-9:00" in text
    assert "2. Monday 19:00-21:00" in text


@pytest.mark.asyncio
async def test_no_match_lists_every_session(alice, booked, messenger):
    await alice.say("cancel my Saturday session")

    text = messenger.texts_to(ALICE)[-1]
    assert text.startswith("I couldn't find a session like that.")
    assert "3. Tuesday 9:00-11:00" in text


@pytest.mark.asyncio
async def test_low_confidence_deletion_still_asks(alice, booked, config):
    result = await alice.say("remove gym from my week")

    assert result.intent.confidence == "low"
    assert booked.deleted_sessions == []
    assert ALICE in config.pending_choices


@pytest.mark.asyncio
async def test_cancelled_sessions_are_not_offered(alice, gateway, messenger):
    gateway.inject_session(ALICE_EMAIL, Session("s1", "monday", 7, 9))
    gateway.inject_session(ALICE_EMAIL, Session("s9", "friday", 7, 9, status="cancelled"))

    await alice.say("cancel my session")

    text = messenger.texts_to(ALICE)[-1]
    assert "1. Monday 7:00-9:00" in text
    assert "Friday" not in text


@pytest.mark.asyncio
async def test_nothing_to_cancel(alice, messenger, config):
    await alice.say("cancel my session")
    assert messenger.texts_to(ALICE) == ["📭 You don't have any booked sessions to cancel."]
    assert ALICE not in config.pending_choices


# ---------------------------------------------------------------------------
# General chat and failures
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_general_chat_goes_to_llm_with_context(alice, gateway, chat, messenger):
    gateway.inject_availability(ALICE_EMAIL, [AvailabilitySlot("monday", 18, 20)])

    result = await alice.say("What's the best exercise for arms?")

    assert result.action == "general_chat"
    message, context = chat.prompts[0]
    assert message == "What's the best exercise for arms?"
    assert context.user_name == "Alice"
    assert context.availability == [AvailabilitySlot("monday", 18, 20)]
    assert messenger.texts_to(ALICE)[0].startswith("Hey Alice!")


@pytest.mark.asyncio
async def test_telegram_first_name_is_preferred(pipeline, chat):
    await Conversation(pipeline, ALICE, first_name="Ally").say("Hello there!")
    assert chat.prompts[0][1].user_name == "Ally"


@pytest.mark.asyncio
async def test_llm_failure_sends_apology(config, messenger):
    config.chat = SimulatorChatResponder(fail_with=TimeoutError("LLM timeout"))

    result = await Conversation(Pipeline(config), ALICE).say("Hello there!")

    assert result.action == "general_chat"
    assert messenger.texts_to(ALICE) == [LLM_ERROR_TEXT]


@pytest.mark.asyncio
async def test_api_failure_sends_apology(alice, gateway, messenger):
    gateway.fail_next(RuntimeError("API down"))

    result = await alice.say("What's my availability?")

    assert result.action == "failed"
    assert "API down" in result.details
    assert messenger.texts_to(ALICE) == [API_ERROR_TEXT]


@pytest.mark.asyncio
async def test_next_message_works_after_failure(alice, gateway):
    gateway.fail_next(RuntimeError("API down"))
    await alice.say("What's my availability?")

    result = await alice.say("What's my availability?")
    assert result.action == "availability_query"


# ---------------------------------------------------------------------------
# Partners through the pipeline
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_update_proposes_sessions_to_partners(alice, gateway, messenger):
    gateway.link_partners(ALICE_EMAIL, BOB_EMAIL)
    gateway.inject_availability(BOB_EMAIL, [AvailabilitySlot("monday", 17, 21)])

    await alice.say("I'm available Monday 6-8pm")

    to_alice = [m for m in messenger.sent if m.chat_id == ALICE]
    to_bob = [m for m in messenger.sent if m.chat_id == BOB]
    assert to_alice[0].text.startswith("✅ Got it!")
    assert "Monday 18:00-20:00 (2026-10-19)" in to_alice[1].text
    assert to_alice[1].keyboard is not None
    assert "Alice" in to_bob[0].text


@pytest.mark.asyncio
async def test_option_reply_reaches_the_open_proposal(alice, config, gateway, messenger, chat):
    gateway.link_partners(ALICE_EMAIL, BOB_EMAIL)
    gateway.inject_availability(ALICE_EMAIL, [
        AvailabilitySlot("monday", 18, 20),
        AvailabilitySlot("tuesday", 7, 9),
    ])
    gateway.inject_availability(BOB_EMAIL, [
        AvailabilitySlot("monday", 17, 21),
        AvailabilitySlot("tuesday", 8, 10),
    ])
    assert await config.coordinator.check_for_coordination_trigger(ALICE_EMAIL)

    result = await alice.say("option 2")

    assert result.action == "partner_coordination"
    assert chat.prompts == []
    state = config.coordinator.active_for(ALICE_EMAIL)
    assert state.responses == {ALICE_EMAIL: 1}
    assert messenger.texts_to(ALICE)[-1] == "✅ You picked Tuesday 8:00-9:00. Waiting for Bob to choose…"


@pytest.mark.asyncio
async def test_pair_request_and_accept_button(pipeline, alice, gateway, messenger):
    result = await alice.say("pair with bob")

    assert result.action == "partner_coordination"
    assert messenger.texts_to(ALICE) == ["📨 Partner request sent to Bob!"]
    [request] = [m for m in messenger.sent if m.chat_id == BOB]
    accept = request.keyboard[0][0].callback_data
    assert accept == "partner_accept_req-1"

    pressed = await pipeline.process_callback(BOB, BOB, request.message_id, "cb-1", accept)

    assert pressed.action == "callback"
    assert messenger.callback_answers == [("cb-1", "Partner request accepted")]
    assert (await gateway.get_partner_status(ALICE_EMAIL)).has_partner


@pytest.mark.asyncio
async def test_failing_callback_is_answered(pipeline, messenger):
    result = await pipeline.process_callback(BOB, BOB, 1, "cb-1", "partner_accept_req-404")

    assert result.action == "failed"
    assert messenger.callback_answers[0][0] == "cb-1"
    assert messenger.callback_answers[0][1].startswith("❌")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_help_works_for_anyone(pipeline, messenger):
    result = await pipeline.process_message(STRANGER, STRANGER, 1, "/help")
    assert result.action == "command"
    assert messenger.texts_to(STRANGER) == [HELP_TEXT]


@pytest.mark.asyncio
async def test_start_greets_registered_and_unregistered(pipeline, messenger):
    await pipeline.process_message(STRANGER, STRANGER, 1, "/start", "Zed")
    await pipeline.process_message(ALICE, ALICE, 1, "/start@GymBuddyBot")

    assert messenger.texts_to(STRANGER)[0].startswith("👋 Hi Zed!")
    assert UNREGISTERED_TEXT in messenger.texts_to(STRANGER)[0]
    assert messenger.texts_to(ALICE)[0].startswith("👋 Welcome back, Alice!")


@pytest.mark.asyncio
async def test_account_commands_need_registration(pipeline, messenger):
    result = await pipeline.process_message(STRANGER, STRANGER, 1, "/availability")
    assert result.action == "unregistered"
    assert messenger.texts_to(STRANGER) == [UNREGISTERED_TEXT]


@pytest.mark.asyncio
async def test_availability_and_clear_commands(alice, gateway, messenger):
    gateway.inject_availability(ALICE_EMAIL, [AvailabilitySlot("friday", 7, 9)])

    await alice.say("/availability")
    await alice.say("/clear")

    assert messenger.texts_to(ALICE)[0] == "📅 Your availability:\n\nFriday: 7:00-9:00"
    assert messenger.texts_to(ALICE)[1].startswith("🗑️ Cleared 1 availability slot(s)")


@pytest.mark.asyncio
async def test_status_command(alice, messenger):
    await alice.say("/status")
    text = messenger.texts_to(ALICE)[0]
    assert "healthy" in text
    assert ALICE_EMAIL in text


@pytest.mark.asyncio
async def test_unknown_command(alice, messenger):
    await alice.say("/dance")
    assert messenger.texts_to(ALICE) == ["🤔 I don't know that command. Try /help."]


@pytest.mark.asyncio
async def test_debug_shows_stats(alice, messenger):
    await alice.say("Hello there!")
    await alice.say("What's my availability?")
    await alice.say("/debug")

    text = messenger.texts_to(ALICE)[-1]
    assert "Messages: 3" in text
    assert "Answered directly: 1" in text
    assert "Answered by AI: 1" in text
    assert "• general_chat: 1" in text
