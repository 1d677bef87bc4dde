"""
Repository Interface
====================

Abstract persistence boundary for the service core.

Every state change that other workers could race on is expressed as a
single guarded update: the caller names the statuses it expects the
record to be in, and the store applies the change only if that still
holds. A ``None`` return means the precondition no longer held.

Usage:
    device = await repo.transition_device(
        device_id, {DeviceStatus.AVAILABLE}, DeviceStatus.IN_USE
    )
    if device is None:
        ...  # someone else took it
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Iterable, Optional

from phonepool.domain.models import (
    ArtifactStatus,
    CaptureArtifact,
    Customer,
    Device,
    DeviceStatus,
    PoolStats,
    RentalSession,
    SessionStatus,
    Subscription,
    SubscriptionStatus,
)


class Repository(ABC):
    """Async store for devices, customers, subscriptions, sessions and artifacts."""

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    @abstractmethod
    async def list_devices(self, status: Optional[DeviceStatus] = None) -> list[Device]:
        """List devices in insertion order, optionally filtered by status."""

    @abstractmethod
    async def get_device(self, device_id: str) -> Optional[Device]:
        pass

    @abstractmethod
    async def find_device(self, provider: str, provider_device_id: str) -> Optional[Device]:
        pass

    @abstractmethod
    async def add_device(self, device: Device) -> Device:
        pass

    @abstractmethod
    async def update_device(self, device_id: str, **fields: Any) -> Optional[Device]:
        """Unconditional field update. Returns None for unknown ids."""

    @abstractmethod
    async def delete_device(self, device_id: str) -> bool:
        pass

    @abstractmethod
    async def transition_device(
        self,
        device_id: str,
        expected: Iterable[DeviceStatus],
        new: DeviceStatus,
        **fields: Any,
    ) -> Optional[Device]:
        """
        Set ``status=new`` only if the current status is in ``expected``.

        A move to ``in_use`` is also refused while another live session
        holds the device.
        """

    @abstractmethod
    async def release_device(
        self,
        device_id: str,
        now: datetime,
        session_id: Optional[str] = None,
    ) -> Optional[Device]:
        """
        Return a device to ``available`` and stamp ``last_used_at``.

        A no-op while a live session other than ``session_id`` holds the
        device; the unchanged device is returned in that case.

        Returns:
            The device, or None if it does not exist.
        """

    @abstractmethod
    async def acquire_device_for_session(
        self,
        device_id: str,
        session_id: str,
        started_at: datetime,
        expires_at: datetime,
    ) -> Optional[RentalSession]:
        """
        Bind a device to a pending session and activate the session.

        Succeeds only if the device is ``available``, or ``in_use`` with no
        other live session bound to it. On success the device becomes
        ``in_use`` and the session ``active`` with the given window.

        Returns:
            The activated session, or None if the precondition failed.
        """

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------

    @abstractmethod
    async def list_customers(self) -> list[Customer]:
        pass

    @abstractmethod
    async def get_customer(self, customer_id: str) -> Optional[Customer]:
        pass

    @abstractmethod
    async def get_customer_by_external_id(self, external_id: str) -> Optional[Customer]:
        pass

    @abstractmethod
    async def get_or_create_customer(self, customer: Customer) -> tuple[Customer, bool]:
        """Insert unless a customer with the same external id exists."""

    @abstractmethod
    async def update_customer(self, customer_id: str, **fields: Any) -> Optional[Customer]:
        pass

    @abstractmethod
    async def increment_customer_sessions(self, customer_id: str) -> Optional[Customer]:
        pass

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    @abstractmethod
    async def list_subscriptions(self) -> list[Subscription]:
        pass

    @abstractmethod
    async def get_subscription(self, subscription_id: str) -> Optional[Subscription]:
        pass

    @abstractmethod
    async def get_subscription_by_invoice(self, invoice_id: str) -> Optional[Subscription]:
        pass

    @abstractmethod
    async def get_valid_subscription(self, customer_id: str, now: datetime) -> Optional[Subscription]:
        """Latest active subscription whose expiry is after ``now``."""

    @abstractmethod
    async def get_pending_subscription(self, customer_id: str) -> Optional[Subscription]:
        pass

    @abstractmethod
    async def replace_pending_subscription(self, subscription: Subscription) -> list[str]:
        """
        Insert a pending subscription, cancelling the customer's other pending ones.

        Returns:
            Ids of the subscriptions that were cancelled.
        """

    @abstractmethod
    async def transition_subscription(
        self,
        subscription_id: str,
        expected: Iterable[SubscriptionStatus],
        new: SubscriptionStatus,
        **fields: Any,
    ) -> Optional[Subscription]:
        pass

    @abstractmethod
    async def update_subscription(self, subscription_id: str, **fields: Any) -> Optional[Subscription]:
        pass

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    @abstractmethod
    async def list_sessions(self) -> list[RentalSession]:
        pass

    @abstractmethod
    async def add_session(self, session: RentalSession) -> RentalSession:
        pass

    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[RentalSession]:
        pass

    @abstractmethod
    async def get_open_session_for_customer(self, customer_id: str, now: datetime) -> Optional[RentalSession]:
        """A pending session, or an active one that has not expired."""

    @abstractmethod
    async def transition_session(
        self,
        session_id: str,
        expected: Iterable[SessionStatus],
        new: SessionStatus,
        **fields: Any,
    ) -> Optional[RentalSession]:
        pass

    # ------------------------------------------------------------------
    # Capture artifacts
    # ------------------------------------------------------------------

    @abstractmethod
    async def list_artifacts(self, session_id: Optional[str] = None) -> list[CaptureArtifact]:
        pass

    @abstractmethod
    async def add_artifact(self, artifact: CaptureArtifact) -> CaptureArtifact:
        pass

    @abstractmethod
    async def get_artifact(self, artifact_id: str) -> Optional[CaptureArtifact]:
        pass

    @abstractmethod
    async def transition_artifact(
        self,
        artifact_id: str,
        expected: Iterable[ArtifactStatus],
        new: ArtifactStatus,
        **fields: Any,
    ) -> Optional[CaptureArtifact]:
        """Guarded move that also refuses transitions out of terminal states."""

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    @abstractmethod
    async def stats(self, now: datetime) -> PoolStats:
        pass
