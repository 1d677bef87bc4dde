"""
Device Pool Allocator
=====================

Hands out phones from the pool to subscriptions.

Assignment never reads a status and writes it back separately: each
candidate is claimed with a guarded ``available -> in_use`` update, so
two concurrent activations can never end up on the same phone. A lost
race just moves on to the next candidate.

Usage:
    allocator = DevicePoolAllocator(repo)
    device = await allocator.assign(subscription.id)
    ...
    await allocator.release(device.id)
"""

from typing import Optional

from phonepool.domain.models import Device, DeviceStatus, utcnow
from phonepool.errors import DeviceNotFoundError, SubscriptionNotFoundError
from phonepool.storage.repository import Repository
from phonepool.utils.logger import get_logger

logger = get_logger(__name__)

# Full passes over the pool before giving up on a contended assignment
MAX_ASSIGN_ROUNDS = 3


def order_candidates(devices: list[Device]) -> list[Device]:
    """Phones with a delivery identity first, store order otherwise."""
    with_identity = [d for d in devices if d.has_delivery_identity]
    without = [d for d in devices if not d.has_delivery_identity]
    return with_identity + without


class DevicePoolAllocator:
    """Assigns, releases and overrides pool devices."""

    def __init__(self, repository: Repository, max_rounds: int = MAX_ASSIGN_ROUNDS) -> None:
        self.repository = repository
        self.max_rounds = max_rounds

    async def list_available(self) -> list[Device]:
        return await self.repository.list_devices(DeviceStatus.AVAILABLE)

    async def assign(self, subscription_id: str) -> Optional[Device]:
        """
        Claim an available phone for a subscription.

        Args:
            subscription_id: Subscription to bind the phone to.

        Returns:
            The claimed device, or None when the pool is empty.

        Raises:
            SubscriptionNotFoundError: If the subscription does not exist.
        """
        subscription = await self.repository.get_subscription(subscription_id)
        if subscription is None:
            raise SubscriptionNotFoundError(f"Subscription {subscription_id} not found")

        for round_number in range(1, self.max_rounds + 1):
            candidates = order_candidates(await self.list_available())
            if not candidates:
                break

            for candidate in candidates:
                claimed = await self.repository.transition_device(
                    candidate.id,
                    {DeviceStatus.AVAILABLE},
                    DeviceStatus.IN_USE,
                )
                if claimed is None:
                    logger.debug("Lost race for device", device_id=candidate.id, round=round_number)
                    continue

                await self.repository.update_subscription(subscription_id, assigned_device_id=claimed.id)
                logger.info(
                    "Device assigned",
                    subscription_id=subscription_id,
                    device_id=claimed.id,
                    provider=claimed.provider,
                    has_delivery_identity=claimed.has_delivery_identity,
                )
                return claimed

        logger.warning("No available device to assign", subscription_id=subscription_id)
        return None

    async def release(self, device_id: str, session_id: Optional[str] = None) -> Optional[Device]:
        """
        Return a phone to the pool.

        Leaves the phone alone while a live session other than
        ``session_id`` holds it, so a late release from a finished session
        cannot free a phone someone else is using.
        """
        device = await self.repository.release_device(device_id, utcnow(), session_id=session_id)
        if device is None:
            logger.warning("Release of unknown device", device_id=device_id)
        elif device.status == DeviceStatus.AVAILABLE:
            logger.info("Device released", device_id=device_id)
        return device

    async def mark_status(self, device_id: str, status: DeviceStatus) -> Device:
        """
        Administrative status override.

        Raises:
            DeviceNotFoundError: If the device does not exist.
        """
        device = await self.repository.update_device(device_id, status=status)
        if device is None:
            raise DeviceNotFoundError(f"Device {device_id} not found")
        logger.info("Device status set", device_id=device_id, status=status.value)
        return device
