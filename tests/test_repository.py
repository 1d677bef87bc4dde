"""
Tests for In-Memory Repository
==============================

Tests for:
- Guarded transitions
- Device acquisition for sessions
- Pending subscription replacement
- Artifact transition rules
- Statistics
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from phonepool.domain.models import (
    ArtifactStatus,
    CaptureArtifact,
    Customer,
    DeviceStatus,
    RentalSession,
    SessionStatus,
    Subscription,
    SubscriptionStatus,
    utcnow,
)


class TestCustomers:
    @pytest.mark.asyncio
    async def test_get_or_create_is_idempotent(self, repo):
        first, created = await repo.get_or_create_customer(Customer(external_id="1", username="a"))
        second, created_again = await repo.get_or_create_customer(Customer(external_id="1", username="b"))

        assert created is True
        assert created_again is False
        assert second.id == first.id
        assert second.username == "a"

    @pytest.mark.asyncio
    async def test_increment_sessions(self, repo, customer):
        await repo.increment_customer_sessions(customer.id)
        updated = await repo.increment_customer_sessions(customer.id)
        assert updated.total_sessions == 2

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_fields(self, repo, customer):
        with pytest.raises(AttributeError):
            await repo.update_customer(customer.id, favourite_colour="blue")

    @pytest.mark.asyncio
    async def test_returned_records_are_copies(self, repo, customer):
        customer.is_blocked = True
        assert (await repo.get_customer(customer.id)).is_blocked is False


class TestDeviceTransitions:
    @pytest.mark.asyncio
    async def test_guarded_transition(self, repo, device):
        claimed = await repo.transition_device(device.id, {DeviceStatus.AVAILABLE}, DeviceStatus.IN_USE)
        again = await repo.transition_device(device.id, {DeviceStatus.AVAILABLE}, DeviceStatus.IN_USE)

        assert claimed.status == DeviceStatus.IN_USE
        assert again is None


class TestAcquireDeviceForSession:
    """The device may be held by at most one live session."""

    async def _session(self, repo, customer, device) -> RentalSession:
        return await repo.add_session(RentalSession(customer_id=customer.id, device_id=device.id))

    @pytest.mark.asyncio
    async def test_acquires_available_device(self, repo, customer, device):
        session = await self._session(repo, customer, device)
        start = utcnow()

        started = await repo.acquire_device_for_session(device.id, session.id, start, start + timedelta(minutes=5))

        assert started.status == SessionStatus.ACTIVE
        assert started.expires_at == start + timedelta(minutes=5)
        assert (await repo.get_device(device.id)).status == DeviceStatus.IN_USE

    @pytest.mark.asyncio
    async def test_in_use_device_without_live_session(self, repo, customer, device):
        await repo.update_device(device.id, status=DeviceStatus.IN_USE)
        session = await self._session(repo, customer, device)
        start = utcnow()

        assert await repo.acquire_device_for_session(device.id, session.id, start, start + timedelta(minutes=5))

    @pytest.mark.asyncio
    async def test_rejects_second_live_session(self, repo, customer, device):
        first = await self._session(repo, customer, device)
        second = await self._session(repo, customer, device)
        start = utcnow()

        assert await repo.acquire_device_for_session(device.id, first.id, start, start + timedelta(minutes=5))
        assert await repo.acquire_device_for_session(device.id, second.id, start, start + timedelta(minutes=5)) is None
        assert (await repo.get_session(second.id)).status == SessionStatus.PENDING

    @pytest.mark.asyncio
    async def test_expired_holder_does_not_block(self, repo, customer, device):
        first = await self._session(repo, customer, device)
        past = utcnow() - timedelta(minutes=10)
        await repo.acquire_device_for_session(device.id, first.id, past, past + timedelta(minutes=5))
        second = await self._session(repo, customer, device)
        start = utcnow()

        assert await repo.acquire_device_for_session(device.id, second.id, start, start + timedelta(minutes=5))

    @pytest.mark.asyncio
    async def test_rejects_maintenance_device(self, repo, customer, device):
        await repo.update_device(device.id, status=DeviceStatus.MAINTENANCE)
        session = await self._session(repo, customer, device)
        start = utcnow()

        assert await repo.acquire_device_for_session(device.id, session.id, start, start + timedelta(minutes=5)) is None


class TestSubscriptions:
    def _pending(self, customer_id: str, invoice_id: str) -> Subscription:
        return Subscription(
            customer_id=customer_id,
            plan_id="1week",
            plan_label="1 Week",
            duration_days=7,
            price=Decimal("15.00"),
            invoice_id=invoice_id,
        )

    @pytest.mark.asyncio
    async def test_replace_pending_cancels_previous(self, repo, customer):
        first = self._pending(customer.id, "1")
        second = self._pending(customer.id, "2")
        await repo.replace_pending_subscription(first)

        cancelled = await repo.replace_pending_subscription(second)

        assert cancelled == [first.id]
        assert (await repo.get_subscription(first.id)).status == SubscriptionStatus.CANCELLED
        assert (await repo.get_pending_subscription(customer.id)).id == second.id

    @pytest.mark.asyncio
    async def test_lookup_by_invoice(self, repo, customer):
        await repo.replace_pending_subscription(self._pending(customer.id, "77"))
        assert (await repo.get_subscription_by_invoice("77")).invoice_id == "77"
        assert await repo.get_subscription_by_invoice("78") is None

    @pytest.mark.asyncio
    async def test_valid_subscription_respects_expiry(self, repo, customer, active_subscription):
        now = utcnow()
        assert (await repo.get_valid_subscription(customer.id, now)).id == active_subscription.id
        assert await repo.get_valid_subscription(customer.id, now + timedelta(days=8)) is None

    @pytest.mark.asyncio
    async def test_guarded_activation_happens_once(self, repo, customer):
        sub = self._pending(customer.id, "5")
        await repo.replace_pending_subscription(sub)
        expected = {SubscriptionStatus.PENDING_PAYMENT}

        assert await repo.transition_subscription(sub.id, expected, SubscriptionStatus.ACTIVE)
        assert await repo.transition_subscription(sub.id, expected, SubscriptionStatus.ACTIVE) is None


class TestArtifacts:
    @pytest.mark.asyncio
    async def test_terminal_state_is_final(self, repo):
        artifact = await repo.add_artifact(CaptureArtifact(session_id="s"))
        await repo.transition_artifact(artifact.id, {ArtifactStatus.PENDING}, ArtifactStatus.CAPTURED)
        await repo.transition_artifact(artifact.id, {ArtifactStatus.CAPTURED}, ArtifactStatus.DELIVERED)

        moved = await repo.transition_artifact(
            artifact.id,
            {ArtifactStatus.DELIVERED},
            ArtifactStatus.FAILED,
        )

        assert moved is None
        assert (await repo.get_artifact(artifact.id)).status == ArtifactStatus.DELIVERED

    @pytest.mark.asyncio
    async def test_pending_cannot_skip_to_delivered(self, repo):
        artifact = await repo.add_artifact(CaptureArtifact(session_id="s"))
        assert await repo.transition_artifact(
            artifact.id,
            {ArtifactStatus.PENDING},
            ArtifactStatus.DELIVERED,
        ) is None

    @pytest.mark.asyncio
    async def test_list_by_session(self, repo):
        await repo.add_artifact(CaptureArtifact(session_id="a"))
        await repo.add_artifact(CaptureArtifact(session_id="b"))
        assert [a.session_id for a in await repo.list_artifacts("a")] == ["a"]
        assert len(await repo.list_artifacts()) == 2


class TestStats:
    @pytest.mark.asyncio
    async def test_counts(self, repo, customer, device, active_subscription):
        session = await repo.add_session(RentalSession(customer_id=customer.id, device_id=device.id))
        start = utcnow()
        await repo.acquire_device_for_session(device.id, session.id, start, start + timedelta(minutes=5))

        stats = await repo.stats(utcnow())

        assert stats.total_devices == 1
        assert stats.devices_in_use == 1
        assert stats.total_customers == 1
        assert stats.active_sessions == 1
        assert stats.total_sessions == 1
        assert stats.active_subscriptions == 1
