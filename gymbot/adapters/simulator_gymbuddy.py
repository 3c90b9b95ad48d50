from datetime import date, timedelta
from typing import Literal

from gymbot.domain.availability import WEEKDAYS, AvailabilitySlot, Session

from .ports import (
    ApiHealth,
    GymBuddyGateway,
    PartnerRequest,
    PartnerStatus,
    SessionSuggestion,
    SuggestionSet,
    User,
)


class SimulatorGymBuddyGateway(GymBuddyGateway):
    """
    In-memory fake for testing. No mocking framework needed.

    Test helpers:
        inject_user()           — register an account (enables get_user())
        inject_availability()   — give a user some slots
        inject_session()        — give a user a booked session
        link_partners()         — make two users partners
        fail_next()             — make the next call raise the given exception
        deleted_sessions        — list of (email, session_id) recorded by delete_session()
        bookings                — list of dicts recorded by book_session()
        responses               — list of (request_id, email, response) recorded
                                  by respond_to_partner_request()
    """

    def __init__(self, today: date | None = None):
        self._today = today
        self._users: dict[str, User] = {}
        self._availability: dict[str, list[AvailabilitySlot]] = {}
        self._sessions: dict[str, list[Session]] = {}
        self._partners: dict[str, str] = {}
        self._requests: dict[str, tuple[str, str]] = {}   # id -> (requester, target)
        self._failure: Exception | None = None
        self._next_id = 1
        self.deleted_sessions: list[tuple[str, str]] = []
        self.bookings: list[dict] = []
        self.responses: list[tuple[str, str, str]] = []

    # -- test helpers --------------------------------------------------------

    def inject_user(self, email: str, name: str = "") -> User:
        user = User(id=f"user-{len(self._users) + 1}", name=name or email.split("@")[0], email=email)
        self._users[email.lower()] = user
        return user

    def inject_availability(self, email: str, slots: list[AvailabilitySlot]) -> None:
        self._availability.setdefault(email.lower(), []).extend(slots)

    def inject_session(self, email: str, session: Session) -> None:
        self._sessions.setdefault(email.lower(), []).append(session)

    def link_partners(self, email1: str, email2: str) -> None:
        self._partners[email1.lower()] = email2.lower()
        self._partners[email2.lower()] = email1.lower()

    def fail_next(self, exc: Exception) -> None:
        self._failure = exc

    def _check(self) -> None:
        if self._failure is not None:
            exc, self._failure = self._failure, None
            raise exc

    def _new_id(self, prefix: str) -> str:
        value = f"{prefix}-{self._next_id}"
        self._next_id += 1
        return value

    # -- users & availability ------------------------------------------------

    async def get_user(self, email: str) -> User | None:
        self._check()
        return self._users.get(email.lower())

    async def get_availability(self, email: str) -> list[AvailabilitySlot]:
        self._check()
        return list(self._availability.get(email.lower(), []))

    async def set_availability(self, email: str, slots: list[AvailabilitySlot]) -> None:
        self._check()
        self._availability.setdefault(email.lower(), []).extend(slots)

    async def clear_availability(self, email: str) -> int:
        self._check()
        return len(self._availability.pop(email.lower(), []))

    # -- sessions ------------------------------------------------------------

    async def get_sessions(self, email: str) -> list[Session]:
        self._check()
        return list(self._sessions.get(email.lower(), []))

    async def delete_session(self, email: str, session_id: str) -> None:
        self._check()
        sessions = self._sessions.get(email.lower(), [])
        self._sessions[email.lower()] = [s for s in sessions if s.id != session_id]
        self.deleted_sessions.append((email, session_id))

    async def health_check(self) -> ApiHealth:
        self._check()
        return ApiHealth(status="healthy", version="simulator")

    # -- partners ------------------------------------------------------------

    async def find_partner(self, identifier: str) -> User | None:
        self._check()
        needle = identifier.lower()
        for user in self._users.values():
            if needle in (user.email.lower(), user.name.lower(), user.email.split("@")[0].lower()):
                return user
        return None

    async def get_partner_status(self, email: str) -> PartnerStatus:
        self._check()
        partner_email = self._partners.get(email.lower())
        pending = [
            PartnerRequest(request_id=rid, requester=self._users[requester])
            for rid, (requester, target) in self._requests.items()
            if target == email.lower() and requester in self._users
        ]
        if partner_email:
            return PartnerStatus("has_partner", self._users.get(partner_email), pending)
        return PartnerStatus("pending" if pending else "no_partner", None, pending)

    async def send_partner_request(
        self, requester_email: str, target_identifier: str, message: str = ""
    ) -> str:
        self._check()
        target = await self.find_partner(target_identifier)
        if target is None:
            raise LookupError(f"No user matches {target_identifier!r}")
        request_id = self._new_id("req")
        self._requests[request_id] = (requester_email.lower(), target.email.lower())
        return request_id

    async def respond_to_partner_request(
        self,
        request_id: str,
        email: str,
        response: Literal["accepted", "rejected"],
        message: str = "",
    ) -> None:
        self._check()
        requester, target = self._requests.pop(request_id)
        self.responses.append((request_id, email, response))
        if response == "accepted":
            self.link_partners(requester, target)

    async def get_session_suggestions(self, email1: str, email2: str) -> SuggestionSet:
        self._check()
        today = self._today or date.today()
        suggestions = []
        for a in self._availability.get(email1.lower(), []):
            for b in self._availability.get(email2.lower(), []):
                start, end = max(a.start_hour, b.start_hour), min(a.end_hour, b.end_hour)
                if a.day != b.day or end <= start:
                    continue
                ahead = (WEEKDAYS.index(a.day) - today.weekday()) % 7 or 7
                suggestions.append(SessionSuggestion(
                    day=a.day,
                    date=(today + timedelta(days=ahead)).isoformat(),
                    start_hour=start,
                    end_hour=end,
                ))
        suggestions.sort(key=lambda s: (s.date, s.start_hour))
        return SuggestionSet(
            user1=self._users.get(email1.lower()) or User("", email1, email1),
            user2=self._users.get(email2.lower()) or User("", email2, email2),
            suggestions=suggestions,
        )

    async def book_session(
        self, email1: str, email2: str, date: str, start_hour: int, end_hour: int
    ) -> str:
        self._check()
        session_id = self._new_id("session")
        self.bookings.append({
            "id": session_id, "user1": email1, "user2": email2,
            "date": date, "start_hour": start_hour, "end_hour": end_hour,
        })
        return session_id
