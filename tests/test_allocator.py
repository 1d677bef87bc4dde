"""
Tests for Device Pool Allocator
===============================
"""

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from phonepool.domain.models import (
    Customer,
    Device,
    DeviceStatus,
    RentalSession,
    SessionStatus,
    Subscription,
    utcnow,
)
from phonepool.errors import DeviceNotFoundError, SubscriptionNotFoundError
from phonepool.pool.allocator import order_candidates


async def _pending(repo, customer_id: str) -> Subscription:
    sub = Subscription(
        customer_id=customer_id,
        plan_id="1week",
        plan_label="1 Week",
        duration_days=7,
        price=Decimal("15.00"),
    )
    await repo.replace_pending_subscription(sub)
    return sub


class TestOrderCandidates:
    def test_delivery_identity_first(self):
        plain = Device(name="a", provider="DuoPlus", provider_device_id="1")
        named = Device(name="b", provider="DuoPlus", provider_device_id="2", delivery_name="X", locker_code="9")
        half = Device(name="c", provider="DuoPlus", provider_device_id="3", delivery_name="Y")

        assert order_candidates([plain, named, half]) == [named, plain, half]


class TestDevicePoolAllocator:
    """Tests for DevicePoolAllocator."""

    @pytest.mark.asyncio
    async def test_assign_prefers_delivery_identity(self, repo, allocator, customer):
        await repo.add_device(Device(name="plain", provider="DuoPlus", provider_device_id="1"))
        named = await repo.add_device(
            Device(name="named", provider="DuoPlus", provider_device_id="2", delivery_name="X", locker_code="9")
        )
        sub = await _pending(repo, customer.id)

        device = await allocator.assign(sub.id)

        assert device.id == named.id
        assert device.status == DeviceStatus.IN_USE
        assert (await repo.get_subscription(sub.id)).assigned_device_id == named.id

    @pytest.mark.asyncio
    async def test_assign_empty_pool(self, repo, allocator, customer):
        await repo.add_device(
            Device(name="busy", provider="DuoPlus", provider_device_id="1", status=DeviceStatus.MAINTENANCE)
        )
        sub = await _pending(repo, customer.id)

        assert await allocator.assign(sub.id) is None
        assert (await repo.get_subscription(sub.id)).assigned_device_id is None

    @pytest.mark.asyncio
    async def test_assign_unknown_subscription(self, allocator):
        with pytest.raises(SubscriptionNotFoundError):
            await allocator.assign("missing")

    @pytest.mark.asyncio
    async def test_concurrent_assign_never_shares_a_device(self, repo, allocator):
        for i in range(2):
            await repo.add_device(Device(name=f"p{i}", provider="DuoPlus", provider_device_id=str(i)))
        subs = []
        for i in range(3):
            cust, _ = await repo.get_or_create_customer(Customer(external_id=f"c{i}"))
            subs.append(await _pending(repo, cust.id))

        results = await asyncio.gather(*(allocator.assign(s.id) for s in subs))

        assigned = [d.id for d in results if d is not None]
        assert len(assigned) == 2
        assert len(set(assigned)) == 2
        assert results.count(None) == 1

    @pytest.mark.asyncio
    async def test_release(self, repo, allocator, device):
        await repo.update_device(device.id, status=DeviceStatus.IN_USE)

        released = await allocator.release(device.id)

        assert released.status == DeviceStatus.AVAILABLE
        assert released.last_used_at is not None

    @pytest.mark.asyncio
    async def test_release_unknown_is_none(self, allocator):
        assert await allocator.release("missing") is None

    @pytest.mark.asyncio
    async def test_mark_status(self, allocator, device):
        updated = await allocator.mark_status(device.id, DeviceStatus.OFFLINE)
        assert updated.status == DeviceStatus.OFFLINE

        with pytest.raises(DeviceNotFoundError):
            await allocator.mark_status("missing", DeviceStatus.OFFLINE)


async def _live_session(repo, customer_id: str, device_id: str) -> RentalSession:
    session = await repo.add_session(RentalSession(customer_id=customer_id, device_id=device_id))
    start = utcnow()
    return await repo.acquire_device_for_session(device_id, session.id, start, start + timedelta(minutes=5))


class TestReleaseWithLiveSession:
    """A phone held by a live session is never handed out again."""

    @pytest.mark.asyncio
    async def test_release_then_assign_skips_live_device(self, repo, allocator, customer, device):
        await _live_session(repo, customer.id, device.id)
        sub = await _pending(repo, customer.id)

        released = await allocator.release(device.id)

        assert released.status == DeviceStatus.IN_USE
        assert await allocator.assign(sub.id) is None

    @pytest.mark.asyncio
    async def test_holder_can_release_its_own_device(self, repo, allocator, customer, device):
        live = await _live_session(repo, customer.id, device.id)

        released = await allocator.release(device.id, session_id=live.id)

        assert released.status == DeviceStatus.AVAILABLE

    @pytest.mark.asyncio
    async def test_stale_release_after_handover(self, repo, allocator, customer, device):
        first = await _live_session(repo, customer.id, device.id)
        await repo.transition_session(first.id, {SessionStatus.ACTIVE}, SessionStatus.COMPLETED)
        other, _ = await repo.get_or_create_customer(Customer(external_id="777"))
        second = await _live_session(repo, other.id, device.id)
        assert second is not None

        released = await allocator.release(device.id, session_id=first.id)

        assert released.status == DeviceStatus.IN_USE

    @pytest.mark.asyncio
    async def test_assign_skips_available_device_with_live_session(self, repo, allocator, customer, device):
        await _live_session(repo, customer.id, device.id)
        await allocator.mark_status(device.id, DeviceStatus.AVAILABLE)
        sub = await _pending(repo, customer.id)

        assert await allocator.assign(sub.id) is None
        assert (await repo.get_device(device.id)).status == DeviceStatus.AVAILABLE
