"""
Session matcher — which existing sessions does the user's description fit?

A session is an exact match when every criterion the user gave (day, hours)
fits it, and a partial match when one criterion fits and the other doesn't.
Hours fit when they are equal, or when the overlap covers at least half of
either the session or the requested range.
"""

from dataclasses import dataclass, field

from gymbot.domain.availability import Session, SessionCriteria

OVERLAP_THRESHOLD = 0.5


@dataclass
class SessionMatches:
    exact_matches: list[Session] = field(default_factory=list)
    partial_matches: list[Session] = field(default_factory=list)


def time_ranges_match(session_start: int, session_end: int, start: int, end: int) -> bool:
    if session_start == start and session_end == end:
        return True

    overlap = max(0, min(session_end, end) - max(session_start, start))
    if overlap == 0:
        return False
    session_duration = session_end - session_start
    criteria_duration = end - start
    return (
        overlap >= OVERLAP_THRESHOLD * session_duration
        or overlap >= OVERLAP_THRESHOLD * criteria_duration
    )


def match_sessions(criteria: SessionCriteria | None, sessions: list[Session]) -> SessionMatches:
    result = SessionMatches()
    if criteria is None:
        return result

    for session in sessions:
        # None means the user said nothing about that part
        day_match = None
        if criteria.day is not None:
            day_match = session.day.lower() == criteria.day.lower()

        time_match = None
        if criteria.has_time:
            time_match = time_ranges_match(
                session.start_hour, session.end_hour,
                criteria.start_hour, criteria.end_hour,
            )

        if day_match is not False and time_match is not False and (day_match or time_match):
            result.exact_matches.append(session)
        elif (day_match and time_match is False) or (day_match is False and time_match):
            result.partial_matches.append(session)

    return result
