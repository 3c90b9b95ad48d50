"""
Adapter contract for GymBuddyGateway.

Any implementation of GymBuddyGateway (real HTTP client, in-memory simulator, ...)
must pass these tests.  Subclass this and provide create_gateway() and
get_test_email() to run the contract against your adapter.

The write tests clear the test account's availability: point the real
adapter at a throwaway account only.
"""

import uuid
from abc import ABC, abstractmethod

import pytest

from gymbot.adapters.ports import GymBuddyGateway
from gymbot.domain.availability import AvailabilitySlot


class GymBuddyGatewayContract(ABC):
    """Contract tests that every GymBuddyGateway implementation must satisfy."""

    @abstractmethod
    def create_gateway(self) -> GymBuddyGateway:
        """Return a fresh instance of the adapter under test."""
        ...

    @abstractmethod
    def get_test_email(self) -> str:
        """Return the email of a registered account usable for testing."""
        ...

    @pytest.mark.asyncio
    async def test_registered_user_is_found(self):
        gw = self.create_gateway()
        user = await gw.get_user(self.get_test_email())
        assert user is not None
        assert user.email.lower() == self.get_test_email().lower()

    @pytest.mark.asyncio
    async def test_unknown_user_returns_none(self):
        gw = self.create_gateway()
        user = await gw.get_user(f"nobody-{uuid.uuid4().hex[:8]}@example.invalid")
        assert user is None

    @pytest.mark.asyncio
    async def test_set_then_get_contains_slot(self):
        gw = self.create_gateway()
        email = self.get_test_email()
        slot = AvailabilitySlot(day="saturday", start_hour=6, end_hour=7)

        await gw.set_availability(email, [slot])
        slots = await gw.get_availability(email)

        assert slot in slots

    @pytest.mark.asyncio
    async def test_clear_empties_availability(self):
        gw = self.create_gateway()
        email = self.get_test_email()
        await gw.set_availability(email, [AvailabilitySlot("sunday", 8, 9)])

        deleted = await gw.clear_availability(email)

        assert deleted >= 1
        assert await gw.get_availability(email) == []

    @pytest.mark.asyncio
    async def test_get_sessions_returns_list(self):
        gw = self.create_gateway()
        sessions = await gw.get_sessions(self.get_test_email())
        assert isinstance(sessions, list)
        for s in sessions:
            assert s.id
            assert s.start_hour < s.end_hour

    @pytest.mark.asyncio
    async def test_health_check_reports_status(self):
        gw = self.create_gateway()
        health = await gw.health_check()
        assert health.status

    @pytest.mark.asyncio
    async def test_partner_status_has_relationship(self):
        gw = self.create_gateway()
        status = await gw.get_partner_status(self.get_test_email())
        assert status.relationship_status
        assert isinstance(status.pending_requests, list)
