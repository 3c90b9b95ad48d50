from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Literal

from gymbot.domain.availability import AvailabilitySlot, Session


@dataclass
class User:
    id: str
    name: str
    email: str


@dataclass
class PartnerRequest:
    request_id: str
    requester: User
    status: str = "pending"


@dataclass
class PartnerStatus:
    relationship_status: str            # "has_partner", "pending", "no_partner"
    partner: User | None = None
    pending_requests: list[PartnerRequest] = field(default_factory=list)

    @property
    def has_partner(self) -> bool:
        return self.relationship_status == "has_partner" and self.partner is not None


@dataclass
class SessionSuggestion:
    day: str
    date: str                 # ISO "2026-10-20"
    start_hour: int
    end_hour: int
    display_start: str = ""   # "6:00 PM"
    display_end: str = ""

    def label(self) -> str:
        start = self.display_start or f"{self.start_hour}:00"
        end = self.display_end or f"{self.end_hour}:00"
        return f"{self.day.capitalize()} {start}-{end}"


@dataclass
class SuggestionSet:
    user1: User
    user2: User
    suggestions: list[SessionSuggestion] = field(default_factory=list)


@dataclass
class ApiHealth:
    status: str
    version: str = ""


class GymBuddyGateway(ABC):
    """
    Port: the GymBuddy scheduling API.

    Users are identified by email. All persistence lives behind this port;
    the bot only reads and requests changes.
    """

    @abstractmethod
    async def get_user(self, email: str) -> User | None:
        """Return the user, or None if the email is not registered."""
        ...

    @abstractmethod
    async def get_availability(self, email: str) -> list[AvailabilitySlot]:
        ...

    @abstractmethod
    async def set_availability(self, email: str, slots: list[AvailabilitySlot]) -> None:
        """Add slots to the user's availability."""
        ...

    @abstractmethod
    async def clear_availability(self, email: str) -> int:
        """Remove every slot. Returns how many were deleted."""
        ...

    @abstractmethod
    async def get_sessions(self, email: str) -> list[Session]:
        ...

    @abstractmethod
    async def delete_session(self, email: str, session_id: str) -> None:
        ...

    @abstractmethod
    async def health_check(self) -> ApiHealth:
        ...

    @abstractmethod
    async def find_partner(self, identifier: str) -> User | None:
        """Look a user up by name, username or email."""
        ...

    @abstractmethod
    async def get_partner_status(self, email: str) -> PartnerStatus:
        ...

    @abstractmethod
    async def send_partner_request(
        self, requester_email: str, target_identifier: str, message: str = ""
    ) -> str:
        """Returns the new request id."""
        ...

    @abstractmethod
    async def respond_to_partner_request(
        self,
        request_id: str,
        email: str,
        response: Literal["accepted", "rejected"],
        message: str = "",
    ) -> None:
        ...

    @abstractmethod
    async def get_session_suggestions(self, email1: str, email2: str) -> SuggestionSet:
        """Overlapping slots of two partners, best first."""
        ...

    @abstractmethod
    async def book_session(
        self, email1: str, email2: str, date: str, start_hour: int, end_hour: int
    ) -> str:
        """Book a joint session. Returns the session id."""
        ...
