import asyncio
import logging
import time
import uuid
from datetime import date as date_cls
from typing import Literal
from urllib.parse import quote

import requests

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

log = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:3001"
DEFAULT_TIMEOUT = 10


def _q(value: str) -> str:
    return quote(str(value), safe="")


def _user(data: dict | None) -> User | None:
    if not data:
        return None
    return User(
        id=str(data.get("id", "")),
        name=data.get("name", ""),
        email=data.get("email", ""),
    )


def _day_from_date(iso_date: str) -> str:
    try:
        return WEEKDAYS[date_cls.fromisoformat(iso_date[:10]).weekday()]
    except ValueError:
        return "unknown"


class GymBuddyClient(GymBuddyGateway):
    """Adapter: real GymBuddy HTTP client."""

    def __init__(self, base_url: str = DEFAULT_BASE_URL, timeout: float = DEFAULT_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update(
            {
                "Content-Type": "application/json",
                "User-Agent": "GymBuddy-Bot/1.0",
                "Cache-Control": "no-cache, no-store, must-revalidate",
                "Pragma": "no-cache",
                "Expires": "0",
            }
        )

    def _request_sync(self, method: str, path: str, json: dict | None = None) -> requests.Response:
        request_id = uuid.uuid4().hex[:12]
        started = time.monotonic()
        resp = self.session.request(
            method,
            f"{self.base_url}{path}",
            json=json,
            headers={"X-Request-ID": request_id, "X-Timestamp": str(int(time.time() * 1000))},
            timeout=self.timeout,
        )
        log.debug(
            "%s %s → %d in %.0fms [%s]",
            method, path, resp.status_code, (time.monotonic() - started) * 1000, request_id,
        )
        return resp

    async def _request(
        self, method: str, path: str, json: dict | None = None, allow_404: bool = False
    ) -> dict | None:
        resp = await asyncio.to_thread(self._request_sync, method, path, json)
        if allow_404 and resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()

    # -- users & availability ------------------------------------------------

    async def get_user(self, email: str) -> User | None:
        data = await self._request("GET", f"/user/by-email/{_q(email)}", allow_404=True)
        if data is None:
            return None
        return _user(data.get("user"))

    async def get_availability(self, email: str) -> list[AvailabilitySlot]:
        data = await self._request("GET", f"/availability/by-email/{_q(email)}")
        slots = []
        for raw in data.get("slots", []):
            try:
                slots.append(AvailabilitySlot(
                    day=str(raw["day"]).lower(),
                    start_hour=int(raw["startTime"]),
                    end_hour=int(raw["endTime"]),
                ))
            except (KeyError, TypeError, ValueError) as exc:
                log.warning("skipping malformed slot %r for %s: %s", raw, email, exc)
        return slots

    async def set_availability(self, email: str, slots: list[AvailabilitySlot]) -> None:
        payload = {
            "slots": [
                {"day": s.day, "start_time": s.start_hour, "end_time": s.end_hour}
                for s in slots
            ]
        }
        await self._request("POST", f"/availability/by-email/{_q(email)}", json=payload)

    async def clear_availability(self, email: str) -> int:
        data = await self._request("DELETE", f"/availability/by-email/{_q(email)}")
        return int(data.get("deletedCount", 0))

    # -- sessions ------------------------------------------------------------

    async def get_sessions(self, email: str) -> list[Session]:
        data = await self._request("GET", f"/sessions/by-email/{_q(email)}")
        sessions = []
        for raw in data.get("sessions", []):
            session_date = raw.get("date")
            try:
                session = Session(
                    id=str(raw["id"]),
                    day=_day_from_date(session_date) if session_date else str(raw.get("day", "unknown")),
                    start_hour=int(raw["start_time"]),
                    end_hour=int(raw["end_time"]),
                    status=raw.get("status") or "confirmed",
                    date=session_date,
                )
            except (KeyError, TypeError, ValueError) as exc:
                log.warning("skipping malformed session %r for %s: %s", raw, email, exc)
                continue
            if session.start_hour >= session.end_hour:
                log.warning("skipping session %s for %s: empty hours %d-%d",
                            session.id, email, session.start_hour, session.end_hour)
                continue
            sessions.append(session)
        return sessions

    async def delete_session(self, email: str, session_id: str) -> None:
        await self._request("DELETE", f"/sessions/{_q(session_id)}/by-email/{_q(email)}")

    async def health_check(self) -> ApiHealth:
        data = await self._request("GET", "/")
        return ApiHealth(status=data.get("status", "unknown"), version=data.get("version", ""))

    # -- partners ------------------------------------------------------------

    async def find_partner(self, identifier: str) -> User | None:
        data = await self._request("GET", f"/partners/find/{_q(identifier)}", allow_404=True)
        if data is None:
            return None
        return _user(data.get("partner"))

    async def get_partner_status(self, email: str) -> PartnerStatus:
        data = await self._request("GET", f"/partners/status/{_q(email)}")
        pending = [
            PartnerRequest(
                request_id=str(r.get("id", "")),
                requester=_user(r.get("requester")) or User(id="", name="someone", email=""),
                status=r.get("status", "pending"),
            )
            for r in data.get("pendingRequests") or []
        ]
        return PartnerStatus(
            relationship_status=data.get("relationshipStatus", "no_partner"),
            partner=_user(data.get("partner")),
            pending_requests=pending,
        )

    async def send_partner_request(
        self, requester_email: str, target_identifier: str, message: str = ""
    ) -> str:
        data = await self._request(
            "POST",
            "/partners/request",
            json={
                "requesterIdentifier": requester_email,
                "targetIdentifier": target_identifier,
                "message": message,
            },
        )
        return str((data.get("request") or {}).get("id", ""))

    async def respond_to_partner_request(
        self,
        request_id: str,
        email: str,
        response: Literal["accepted", "rejected"],
        message: str = "",
    ) -> None:
        await self._request(
            "PUT",
            f"/partners/requests/{_q(request_id)}/respond",
            json={"userEmail": email, "response": response, "message": message},
        )

    async def get_session_suggestions(self, email1: str, email2: str) -> SuggestionSet:
        data = await self._request("GET", f"/sessions/suggestions/{_q(email1)}/{_q(email2)}")
        suggestions = [
            SessionSuggestion(
                day=str(s.get("day", "")).lower(),
                date=s.get("date", ""),
                start_hour=int(s["startTime"]),
                end_hour=int(s["endTime"]),
                display_start=s.get("displayStart", ""),
                display_end=s.get("displayEnd", ""),
            )
            for s in data.get("suggestions") or []
        ]
        return SuggestionSet(
            user1=_user(data.get("user1")) or User(id="", name=email1, email=email1),
            user2=_user(data.get("user2")) or User(id="", name=email2, email=email2),
            suggestions=suggestions,
        )

    async def book_session(
        self, email1: str, email2: str, date: str, start_hour: int, end_hour: int
    ) -> str:
        data = await self._request(
            "POST",
            "/sessions/book",
            json={
                "user1": email1,
                "user2": email2,
                "date": date,
                "startTime": start_hour,
                "endTime": end_hour,
            },
        )
        return str((data.get("session") or {}).get("id", ""))
