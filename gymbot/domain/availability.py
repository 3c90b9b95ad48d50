"""
Availability and session value types.

These are transient shapes: the GymBuddy API owns persistence, the bot only
parses free text into slots, reads sessions back, and formats both for chat.
"""

from dataclasses import dataclass

WEEKDAYS = [
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
]


@dataclass(frozen=True)
class AvailabilitySlot:
    """One contiguous block of free time on a weekday, whole hours."""
    day: str          # lowercase weekday name
    start_hour: int   # 0–23
    end_hour: int     # 1–24

    def __post_init__(self):
        if self.day not in WEEKDAYS:
            raise ValueError(f"Unknown weekday: {self.day!r}")
        if not (0 <= self.start_hour <= 23 and 1 <= self.end_hour <= 24):
            raise ValueError(f"Hours out of range: {self.start_hour}-{self.end_hour}")
        if self.start_hour >= self.end_hour:
            raise ValueError(f"Start must be before end: {self.start_hour}-{self.end_hour}")


@dataclass(frozen=True)
class SessionCriteria:
    """What the user said about a session they want to pick or cancel."""
    day: str | None = None
    start_hour: int | None = None
    end_hour: int | None = None

    @property
    def has_time(self) -> bool:
        return self.start_hour is not None and self.end_hour is not None


@dataclass
class Session:
    """A booked workout session, as returned by the API."""
    id: str
    day: str
    start_hour: int
    end_hour: int
    status: str = "confirmed"
    date: str | None = None   # ISO "2026-10-19" when the API provides one


def format_hours(start_hour: int, end_hour: int) -> str:
    return f"{start_hour}:00-{end_hour}:00"


def format_slot(slot: AvailabilitySlot) -> str:
    """'Monday 9:00-11:00'; parse_availability() reads this back unchanged."""
    return f"{slot.day.capitalize()} {format_hours(slot.start_hour, slot.end_hour)}"


def format_availability(slots: list[AvailabilitySlot]) -> str:
    """Group slots by weekday, in week order, one line per day."""
    by_day: dict[str, list[AvailabilitySlot]] = {}
    for slot in slots:
        by_day.setdefault(slot.day, []).append(slot)

    lines = []
    for day in WEEKDAYS:
        if day not in by_day:
            continue
        ranges = ", ".join(
            format_hours(s.start_hour, s.end_hour)
            for s in sorted(by_day[day], key=lambda s: s.start_hour)
        )
        lines.append(f"{day.capitalize()}: {ranges}")
    return "\n".join(lines)


def format_session(session: Session) -> str:
    when = f" ({session.date})" if session.date else ""
    return f"{session.day.capitalize()}{when} {format_hours(session.start_hour, session.end_hour)}"
