"""
Text parser — turns free text into weekdays, hour ranges and session criteria.

Everything here is pure and synchronous. Time expressions are recognised by an
ordered rule table: the first rule whose extractor yields an hour pair wins,
so the order of _TIME_RULES is the precedence. A rule that matches but carries
a malformed hour ("13pm") is skipped and the next rule is tried.

Also hosts the detection helpers the intent classifier uses to decide whether
a message looks like an availability update at all.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, Literal

from gymbot.domain.availability import WEEKDAYS, AvailabilitySlot, SessionCriteria

log = logging.getLogger(__name__)

Confidence = Literal["low", "medium", "high"]

# ---------------------------------------------------------------------------
# Days
# ---------------------------------------------------------------------------

# Checked in this order; the first alias present anywhere in the text wins.
_DAY_ALIASES = [
    ("monday", "monday"), ("mon", "monday"),
    ("tuesday", "tuesday"), ("tue", "tuesday"), ("tues", "tuesday"),
    ("wednesday", "wednesday"), ("wed", "wednesday"),
    ("thursday", "thursday"), ("thu", "thursday"), ("thurs", "thursday"),
    ("friday", "friday"), ("fri", "friday"),
    ("saturday", "saturday"), ("sat", "saturday"),
    ("sunday", "sunday"), ("sun", "sunday"),
]
_DAY_PATTERNS = [(re.compile(rf"\b{alias}\b"), day) for alias, day in _DAY_ALIASES]


def resolve_day(text: str, today: date | None = None) -> str | None:
    """Return the canonical weekday named in the text, or None.

    Explicit weekday names win over "tomorrow"/"today", which are resolved
    against the local date.
    """
    lower = text.lower().strip()
    for pattern, day in _DAY_PATTERNS:
        if pattern.search(lower):
            return day

    today = today or date.today()
    if "tomorrow" in lower:
        return WEEKDAYS[(today + timedelta(days=1)).weekday()]
    if "today" in lower:
        return WEEKDAYS[today.weekday()]
    return None


# ---------------------------------------------------------------------------
# Hours
# ---------------------------------------------------------------------------

def to_24h(hour: int, period: str) -> int | None:
    """Convert a 12-hour clock hour to 24-hour. None if the hour is not 1–12."""
    if not 1 <= hour <= 12:
        return None
    if period == "pm" and hour != 12:
        return hour + 12
    if period == "am" and hour == 12:
        return 0
    return hour


def _pair(start: int | None, end: int | None) -> tuple[int, int] | None:
    if start is None or end is None:
        return None
    return start, end


def _shared_period(m: re.Match) -> tuple[int, int] | None:
    period = m.group(3)
    return _pair(to_24h(int(m.group(1)), period), to_24h(int(m.group(2)), period))


def _own_periods(m: re.Match) -> tuple[int, int] | None:
    return _pair(
        to_24h(int(m.group(1)), m.group(2)),
        to_24h(int(m.group(3)), m.group(4)),
    )


def _clock_range(m: re.Match) -> tuple[int, int] | None:
    start, end = int(m.group(1)), int(m.group(3))
    if 0 <= start <= 23 and 0 <= end <= 23 and start < end:
        return start, end
    return None


def _single_time(m: re.Match) -> tuple[int, int] | None:
    start = to_24h(int(m.group(1)), m.group(2))
    if start is None:
        return None
    return start, min(start + 2, 23)


def _bare_range(m: re.Match) -> tuple[int, int] | None:
    # Without am/pm only plausible gym hours count, "cancel 1-3" is not a time
    start, end = int(m.group(1)), int(m.group(2))
    if 6 <= start <= 23 and 6 <= end <= 23 and start < end:
        return start, end
    return None


_PERIODS = {
    "morning": (9, 12),
    "afternoon": (14, 17),
    "evening": (18, 21),
}


def _named_period(m: re.Match) -> tuple[int, int] | None:
    return _PERIODS[m.group(1)]


@dataclass(frozen=True)
class TimeRule:
    name: str
    pattern: re.Pattern
    extract: Callable[[re.Match], tuple[int, int] | None]


_TIME_RULES = [
    TimeRule(
        "shared_period",     # 6-8pm, 6 to 8 pm
        re.compile(r"(\d{1,2})\s*(?:to|-|until|and)\s*(\d{1,2})\s*(am|pm)\b"),
        _shared_period,
    ),
    TimeRule(
        "own_periods",       # 9am-11am, 11am until 1pm
        re.compile(r"(\d{1,2})\s*(am|pm)\s*(?:to|-|until|and)\s*(\d{1,2})\s*(am|pm)\b"),
        _own_periods,
    ),
    TimeRule(
        "clock_range",       # 14:00 to 16:00
        re.compile(r"(\d{1,2}):(\d{2})\s*(?:to|-|until)\s*(\d{1,2}):(\d{2})"),
        _clock_range,
    ),
    TimeRule(
        "from_to",           # from 9 am to 11 am
        re.compile(r"\bfrom\s+(\d{1,2})\s*(am|pm)\s+to\s+(\d{1,2})\s*(am|pm)\b"),
        _own_periods,
    ),
    TimeRule(
        "single_time",       # at 6pm, 7am
        re.compile(r"(?:\bat\s+)?\b(\d{1,2})\s*(am|pm)\b"),
        _single_time,
    ),
    TimeRule(
        "bare_range",        # 7-9
        re.compile(r"\b(\d{1,2})\s*-\s*(\d{1,2})\b(?!\s*(?:am|pm))"),
        _bare_range,
    ),
    TimeRule(
        "named_period",      # morning, afternoon, evening
        re.compile(r"\b(morning|afternoon|evening)\b"),
        _named_period,
    ),
]


def parse_time_range(text: str, rules: list[TimeRule] | None = None) -> tuple[int, int] | None:
    """Return (start_hour, end_hour) in 24-hour time, or None.

    The first rule that yields a pair decides; a pair that breaks
    0 <= start <= 23, 1 <= end <= 24, start < end is discarded.
    """
    lower = text.lower()
    for rule in rules or _TIME_RULES:
        m = rule.pattern.search(lower)
        if not m:
            continue
        hours = rule.extract(m)
        if hours is None:
            log.debug("time rule %s matched %r but hours were malformed", rule.name, m.group(0))
            continue
        start, end = hours
        if 0 <= start <= 23 and 1 <= end <= 24 and start < end:
            log.debug("time rule %s → %d-%d", rule.name, start, end)
            return start, end
        log.debug("time rule %s → %d-%d discarded", rule.name, start, end)
        return None
    return None


# ---------------------------------------------------------------------------
# Public parsers
# ---------------------------------------------------------------------------

def parse_availability(text: str, today: date | None = None) -> list[AvailabilitySlot] | None:
    """Parse an availability update. Needs both a day and a valid hour range."""
    day = resolve_day(text, today)
    if day is None:
        return None
    hours = parse_time_range(text)
    if hours is None:
        return None
    return [AvailabilitySlot(day=day, start_hour=hours[0], end_hour=hours[1])]


def parse_session_criteria(text: str, today: date | None = None) -> SessionCriteria | None:
    """Parse whatever the user said about a session: day, hours, or both.

    A bare number is a menu choice, not a criterion.
    """
    if text.strip().isdigit():
        return None

    day = resolve_day(text, today)
    hours = parse_time_range(text)
    if day is None and hours is None:
        return None

    start, end = hours if hours else (None, None)
    return SessionCriteria(day=day, start_hour=start, end_hour=end)


# ---------------------------------------------------------------------------
# Detection helpers (used by the intent classifier)
# ---------------------------------------------------------------------------

_STRONG_UPDATE_PHRASES = [
    "update my availability", "set my availability", "availability for",
    "available on", "available for", "free on", "free for",
    "schedule me", "book me", "add availability",
    "i'm available", "i am available",
    "can work out", "can gym", "gym at", "workout at",
]

_DAY_KEYWORD = re.compile(
    r"\b(?:monday|tuesday|wednesday|thursday|friday|saturday|sunday"
    r"|mon|tue|tues|wed|thu|thurs|fri|sat|sun"
    r"|tomorrow|today|next week|this week)\b"
)

_TIME_CUES = [
    re.compile(r"\d{1,2}\s*(?:am|pm|:\d{2})"),
    re.compile(r"\d{1,2}\s*(?:to|-|until)\s*\d{1,2}"),
    re.compile(r"\bfrom\s+\d{1,2}"),
    re.compile(r"\bat\s+\d{1,2}"),
    re.compile(r"\b(?:morning|afternoon|evening|night)\b"),
    re.compile(r"\bo'?clock\b"),
]

_UPDATE_VERB = re.compile(r"\b(?:update|set|add)\b")


def has_day_keyword(text: str) -> bool:
    return bool(_DAY_KEYWORD.search(text.lower()))


def has_time_cue(text: str) -> bool:
    lower = text.lower()
    return any(p.search(lower) for p in _TIME_CUES)


def detect_availability_update(text: str) -> Confidence | None:
    """How strongly the text looks like the user is reporting free time."""
    lower = text.lower()
    if any(phrase in lower for phrase in _STRONG_UPDATE_PHRASES):
        return "high"

    day = has_day_keyword(lower)
    time = has_time_cue(lower)
    if day and time:
        return "medium"
    if (day or time) and _UPDATE_VERB.search(lower):
        return "medium"
    return None
