"""
Intent classifier — decides what an incoming chat message is asking for.

Rule-based, pure and synchronous: no LLM call is needed to route a message.
The LLM only ever sees messages that fall through to GeneralChat.

Each intent kind is its own dataclass carrying only the fields that matter
for it; `Intent` is the union of all of them. Precedence is declared once, in
IntentClassifier.rules: the first rule that returns an intent wins.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, ClassVar, Union

from gymbot.domain.availability import AvailabilitySlot
from gymbot.domain.text_parser import Confidence, detect_availability_update

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class AvailabilityUpdate:
    type: ClassVar[str] = "availability_update"
    confidence: Confidence


@dataclass(frozen=True)
class AvailabilityQuery:
    type: ClassVar[str] = "availability_query"
    confidence: Confidence


@dataclass(frozen=True)
class AvailabilityClear:
    type: ClassVar[str] = "availability_clear"
    confidence: Confidence
    contextual: bool = False    # "clear this" rather than "clear my availability"


@dataclass(frozen=True)
class SessionDeletion:
    type: ClassVar[str] = "session_deletion"
    confidence: Confidence
    rule: str = ""              # the phrase or pattern that fired


@dataclass(frozen=True)
class PartnerCoordination:
    type: ClassVar[str] = "partner_coordination"
    confidence: Confidence
    keyword: str = ""


@dataclass(frozen=True)
class GeneralChat:
    type: ClassVar[str] = "general_chat"
    confidence: Confidence = "medium"


Intent = Union[
    AvailabilityUpdate,
    AvailabilityQuery,
    AvailabilityClear,
    SessionDeletion,
    PartnerCoordination,
    GeneralChat,
]

IntentRule = Callable[[str, list[AvailabilitySlot]], Union[Intent, None]]


# ---------------------------------------------------------------------------
# Session deletion
# ---------------------------------------------------------------------------

_DELETION_PHRASES = [
    f"{verb} {target}"
    for verb in ("cancel", "delete", "remove")
    for target in (
        "my session", "the session", "my confirmed session",
        "my gym session", "my workout session",
    )
]

# "it" is matched as a whole word so "availability" does not count as "it".
# A bare substring "it" (the looser /cancel.*it/ form) would turn "delete my
# availability" into a session deletion and leave the explicit clear phrases
# unreachable.
_DELETION_PATTERNS = [
    re.compile(p) for p in (
        r"cancel.*\bit\b.*session",
        r"want.*cancel.*\bit\b",
        r"please.*delete.*\bit\b",
        r"cancel.*confirmed",
        r"delete.*confirmed",
        r"cancel.*session",
        r"delete.*session",
        r"remove.*session",
        r"cancel.*workout",
        r"delete.*workout",
        r"cancel.*gym.*session",
        r"delete.*gym.*session",
        r"cancel.*\bit\b",
        r"delete.*\bit\b",
        r"remove.*\bit\b",
    )
]

_SESSION_WORDS = ["session", "workout", "gym", "confirmed", "scheduled"]
_ACTION_WORDS = ["cancel", "delete", "remove", "clear"]


def session_deletion_rule(text: str, availability: list[AvailabilitySlot]) -> SessionDeletion | None:
    for phrase in _DELETION_PHRASES:
        if phrase in text:
            return SessionDeletion(confidence="high", rule=phrase)

    for pattern in _DELETION_PATTERNS:
        if pattern.search(text):
            return SessionDeletion(confidence="medium", rule=pattern.pattern)

    # Loose co-occurrence; catches "clear the gym thing" but also false positives
    session_word = next((w for w in _SESSION_WORDS if w in text), None)
    action_word = next((w for w in _ACTION_WORDS if w in text), None)
    if session_word and action_word:
        return SessionDeletion(confidence="low", rule=f"{action_word}+{session_word}")
    return None


# ---------------------------------------------------------------------------
# Clear availability
# ---------------------------------------------------------------------------

_CONTEXTUAL_CLEAR_PHRASES = [
    "clear this", "clear it", "delete this", "delete it",
    "remove this", "remove it", "cancel this", "cancel it",
    "cancel all", "clear all",
]

_EXPLICIT_CLEAR_PHRASES = [
    "clear my availability", "clear availability",
    "delete my availability", "remove my availability",
    "cancel my availability", "reset my schedule",
]


def availability_clear_rule(text: str, availability: list[AvailabilitySlot]) -> AvailabilityClear | None:
    if availability and any(p in text for p in _CONTEXTUAL_CLEAR_PHRASES):
        return AvailabilityClear(confidence="high", contextual=True)
    if any(p in text for p in _EXPLICIT_CLEAR_PHRASES):
        return AvailabilityClear(confidence="high")
    return None


# ---------------------------------------------------------------------------
# Update availability
# ---------------------------------------------------------------------------

def availability_update_rule(text: str, availability: list[AvailabilitySlot]) -> AvailabilityUpdate | None:
    confidence = detect_availability_update(text)
    if confidence is None:
        return None
    return AvailabilityUpdate(confidence=confidence)


# ---------------------------------------------------------------------------
# Partner coordination
# ---------------------------------------------------------------------------

_PARTNER_KEYWORDS = [
    # pairing
    "pair with", "partner with", "gym buddy", "workout partner",
    "want to pair", "add as partner",
    # partner requests
    "send partner request", "accept partner request", "decline partner request",
    "reject partner request", "accept partner", "decline partner", "reject partner",
    # coordination
    "coordinate", "schedule together", "workout with", "when can we",
    "book together", "let's workout", "find a time", "schedule session",
    # preferences
    "prefer", "i like", "better", "instead",
    "monday session", "tuesday session", "wednesday session",
    "thursday session", "friday session", "weekend session",
    # relationship
    "my partner", "gym partner", "workout buddy",
]

# The reply format the coordinator asks for: "option 2"
_OPTION_REPLY = re.compile(r"\boption\s+\d\b")


def partner_coordination_rule(text: str, availability: list[AvailabilitySlot]) -> PartnerCoordination | None:
    keyword = next((k for k in _PARTNER_KEYWORDS if k in text), None)
    if keyword is None:
        m = _OPTION_REPLY.search(text)
        if m is None:
            return None
        keyword = m.group(0)
    return PartnerCoordination(confidence="medium", keyword=keyword)


# ---------------------------------------------------------------------------
# Query availability
# ---------------------------------------------------------------------------

_QUERY_PHRASES = [
    "what's my availability", "whats my availability", "show my availability",
    "my schedule", "when am i available", "what's my schedule", "whats my schedule",
    "check my availability", "view my availability", "see my availability",
    "give me my availability", "tell me my availability",
    "exact dates", "exact times", "exact dates and times",
    "give me the exact", "tell me the exact",
    "when am i free", "when can i work out", "my available times", "my free times",
    "available this week", "free this week",
    "show me when", "tell me when", "list my availability", "display my schedule",
]


def availability_query_rule(text: str, availability: list[AvailabilitySlot]) -> AvailabilityQuery | None:
    if any(p in text for p in _QUERY_PHRASES):
        return AvailabilityQuery(confidence="high")
    return None


# ---------------------------------------------------------------------------
# Classifier
# ---------------------------------------------------------------------------

DEFAULT_RULES: list[IntentRule] = [
    session_deletion_rule,
    availability_clear_rule,
    availability_update_rule,
    partner_coordination_rule,
    availability_query_rule,
]


class IntentClassifier:
    """
    Route a message to an intent with an ordered list of rules.

    Rules receive the lowercased, stripped text and the sender's current
    availability. Anything no rule claims is GeneralChat at medium confidence.
    No confidence threshold is applied: any detection is acted on.
    """

    def __init__(self, rules: list[IntentRule] | None = None):
        self.rules = list(rules) if rules is not None else list(DEFAULT_RULES)

    def classify(
        self, text: str, current_availability: list[AvailabilitySlot] | None = None
    ) -> Intent:
        lower = text.lower().strip()
        availability = current_availability or []

        for rule in self.rules:
            intent = rule(lower, availability)
            if intent is not None:
                log.debug("classified %.60r → %s (%s) by %s",
                          text, intent.type, intent.confidence, rule.__name__)
                return intent

        return GeneralChat()
