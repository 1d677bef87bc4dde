"""
In-Memory Repository
====================

Process-local implementation of :class:`Repository`.

All records live in insertion-ordered dicts behind one ``asyncio.Lock``,
so every guarded update is atomic with respect to other coroutines.
Records are copied on the way in and out; callers never hold a
reference to the stored object.
"""

import asyncio
import copy
from dataclasses import fields as dataclass_fields
from datetime import datetime
from typing import Any, Iterable, Optional, TypeVar

from phonepool.domain.models import (
    ARTIFACT_TRANSITIONS,
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
    utcnow,
)
from phonepool.storage.repository import Repository
from phonepool.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def _apply(record: T, values: dict[str, Any]) -> T:
    """Set fields on a record, rejecting names the record does not have."""
    known = {f.name for f in dataclass_fields(record)}
    unknown = set(values) - known
    if unknown:
        raise AttributeError(f"{type(record).__name__} has no field(s) {sorted(unknown)}")
    for name, value in values.items():
        setattr(record, name, value)
    return record


class InMemoryRepository(Repository):
    """Dict-backed repository for a single service process."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._devices: dict[str, Device] = {}
        self._customers: dict[str, Customer] = {}
        self._subscriptions: dict[str, Subscription] = {}
        self._sessions: dict[str, RentalSession] = {}
        self._artifacts: dict[str, CaptureArtifact] = {}

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    async def list_devices(self, status: Optional[DeviceStatus] = None) -> list[Device]:
        async with self._lock:
            return [
                copy.copy(d) for d in self._devices.values()
                if status is None or d.status == status
            ]

    async def get_device(self, device_id: str) -> Optional[Device]:
        async with self._lock:
            device = self._devices.get(device_id)
            return copy.copy(device) if device else None

    async def find_device(self, provider: str, provider_device_id: str) -> Optional[Device]:
        async with self._lock:
            for device in self._devices.values():
                if device.provider == provider and device.provider_device_id == provider_device_id:
                    return copy.copy(device)
            return None

    async def add_device(self, device: Device) -> Device:
        async with self._lock:
            self._devices[device.id] = copy.copy(device)
            return copy.copy(device)

    async def update_device(self, device_id: str, **fields: Any) -> Optional[Device]:
        async with self._lock:
            device = self._devices.get(device_id)
            if device is None:
                return None
            return copy.copy(_apply(device, fields))

    async def delete_device(self, device_id: str) -> bool:
        async with self._lock:
            return self._devices.pop(device_id, None) is not None

    async def transition_device(
        self,
        device_id: str,
        expected: Iterable[DeviceStatus],
        new: DeviceStatus,
        **fields: Any,
    ) -> Optional[Device]:
        async with self._lock:
            device = self._devices.get(device_id)
            if device is None or device.status not in set(expected):
                return None
            if new == DeviceStatus.IN_USE and self._live_holders(device_id, utcnow()):
                return None
            return copy.copy(_apply(device, {**fields, "status": new}))

    async def release_device(
        self,
        device_id: str,
        now: datetime,
        session_id: Optional[str] = None,
    ) -> Optional[Device]:
        async with self._lock:
            device = self._devices.get(device_id)
            if device is None:
                return None
            holders = self._live_holders(device_id, now, exclude=session_id)
            if holders:
                logger.info(
                    "Release skipped, device held by live session",
                    device_id=device_id,
                    holder_session_id=holders[0].id,
                )
                return copy.copy(device)
            return copy.copy(_apply(device, {"status": DeviceStatus.AVAILABLE, "last_used_at": now}))

    def _live_holders(
        self,
        device_id: str,
        now: datetime,
        exclude: Optional[str] = None,
    ) -> list[RentalSession]:
        return [
            s for s in self._sessions.values()
            if s.device_id == device_id and s.id != exclude and s.is_live(now)
        ]

    async def acquire_device_for_session(
        self,
        device_id: str,
        session_id: str,
        started_at: datetime,
        expires_at: datetime,
    ) -> Optional[RentalSession]:
        async with self._lock:
            device = self._devices.get(device_id)
            session = self._sessions.get(session_id)
            if device is None or session is None:
                return None
            if session.status != SessionStatus.PENDING or session.device_id != device_id:
                return None

            if device.status == DeviceStatus.IN_USE:
                holders = self._live_holders(device_id, started_at, exclude=session_id)
                if holders:
                    logger.info(
                        "Device held by another live session",
                        device_id=device_id,
                        holder_session_id=holders[0].id,
                    )
                    return None
            elif device.status != DeviceStatus.AVAILABLE:
                return None

            device.status = DeviceStatus.IN_USE
            session.status = SessionStatus.ACTIVE
            session.started_at = started_at
            session.expires_at = expires_at
            return copy.copy(session)

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------

    async def list_customers(self) -> list[Customer]:
        async with self._lock:
            return [copy.copy(c) for c in self._customers.values()]

    async def get_customer(self, customer_id: str) -> Optional[Customer]:
        async with self._lock:
            customer = self._customers.get(customer_id)
            return copy.copy(customer) if customer else None

    async def get_customer_by_external_id(self, external_id: str) -> Optional[Customer]:
        async with self._lock:
            return self._by_external_id(external_id)

    def _by_external_id(self, external_id: str) -> Optional[Customer]:
        for customer in self._customers.values():
            if customer.external_id == external_id:
                return copy.copy(customer)
        return None

    async def get_or_create_customer(self, customer: Customer) -> tuple[Customer, bool]:
        async with self._lock:
            existing = self._by_external_id(customer.external_id)
            if existing is not None:
                return existing, False
            self._customers[customer.id] = copy.copy(customer)
            return copy.copy(customer), True

    async def update_customer(self, customer_id: str, **fields: Any) -> Optional[Customer]:
        async with self._lock:
            customer = self._customers.get(customer_id)
            if customer is None:
                return None
            return copy.copy(_apply(customer, fields))

    async def increment_customer_sessions(self, customer_id: str) -> Optional[Customer]:
        async with self._lock:
            customer = self._customers.get(customer_id)
            if customer is None:
                return None
            customer.total_sessions += 1
            return copy.copy(customer)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def list_subscriptions(self) -> list[Subscription]:
        async with self._lock:
            return [copy.copy(s) for s in reversed(self._subscriptions.values())]

    async def get_subscription(self, subscription_id: str) -> Optional[Subscription]:
        async with self._lock:
            sub = self._subscriptions.get(subscription_id)
            return copy.copy(sub) if sub else None

    async def get_subscription_by_invoice(self, invoice_id: str) -> Optional[Subscription]:
        async with self._lock:
            for sub in self._subscriptions.values():
                if sub.invoice_id == invoice_id:
                    return copy.copy(sub)
            return None

    async def get_valid_subscription(self, customer_id: str, now: datetime) -> Optional[Subscription]:
        async with self._lock:
            for sub in reversed(self._subscriptions.values()):
                if sub.customer_id == customer_id and sub.is_valid(now):
                    return copy.copy(sub)
            return None

    async def get_pending_subscription(self, customer_id: str) -> Optional[Subscription]:
        async with self._lock:
            for sub in reversed(self._subscriptions.values()):
                if sub.customer_id == customer_id and sub.status == SubscriptionStatus.PENDING_PAYMENT:
                    return copy.copy(sub)
            return None

    async def replace_pending_subscription(self, subscription: Subscription) -> list[str]:
        async with self._lock:
            cancelled: list[str] = []
            for sub in self._subscriptions.values():
                if (
                    sub.customer_id == subscription.customer_id
                    and sub.status == SubscriptionStatus.PENDING_PAYMENT
                    and sub.id != subscription.id
                ):
                    sub.status = SubscriptionStatus.CANCELLED
                    cancelled.append(sub.id)
            self._subscriptions[subscription.id] = copy.copy(subscription)
            if cancelled:
                logger.info(
                    "Superseded pending subscriptions",
                    customer_id=subscription.customer_id,
                    cancelled=cancelled,
                )
            return cancelled

    async def transition_subscription(
        self,
        subscription_id: str,
        expected: Iterable[SubscriptionStatus],
        new: SubscriptionStatus,
        **fields: Any,
    ) -> Optional[Subscription]:
        async with self._lock:
            sub = self._subscriptions.get(subscription_id)
            if sub is None or sub.status not in set(expected):
                return None
            return copy.copy(_apply(sub, {**fields, "status": new}))

    async def update_subscription(self, subscription_id: str, **fields: Any) -> Optional[Subscription]:
        async with self._lock:
            sub = self._subscriptions.get(subscription_id)
            if sub is None:
                return None
            return copy.copy(_apply(sub, fields))

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def list_sessions(self) -> list[RentalSession]:
        async with self._lock:
            return [copy.copy(s) for s in reversed(self._sessions.values())]

    async def add_session(self, session: RentalSession) -> RentalSession:
        async with self._lock:
            self._sessions[session.id] = copy.copy(session)
            return copy.copy(session)

    async def get_session(self, session_id: str) -> Optional[RentalSession]:
        async with self._lock:
            session = self._sessions.get(session_id)
            return copy.copy(session) if session else None

    async def get_open_session_for_customer(self, customer_id: str, now: datetime) -> Optional[RentalSession]:
        async with self._lock:
            for session in reversed(self._sessions.values()):
                if session.customer_id != customer_id:
                    continue
                if session.status == SessionStatus.PENDING or session.is_live(now):
                    return copy.copy(session)
            return None

    async def transition_session(
        self,
        session_id: str,
        expected: Iterable[SessionStatus],
        new: SessionStatus,
        **fields: Any,
    ) -> Optional[RentalSession]:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.status not in set(expected):
                return None
            return copy.copy(_apply(session, {**fields, "status": new}))

    # ------------------------------------------------------------------
    # Capture artifacts
    # ------------------------------------------------------------------

    async def list_artifacts(self, session_id: Optional[str] = None) -> list[CaptureArtifact]:
        async with self._lock:
            return [
                copy.copy(a) for a in reversed(self._artifacts.values())
                if session_id is None or a.session_id == session_id
            ]

    async def add_artifact(self, artifact: CaptureArtifact) -> CaptureArtifact:
        async with self._lock:
            self._artifacts[artifact.id] = copy.copy(artifact)
            return copy.copy(artifact)

    async def get_artifact(self, artifact_id: str) -> Optional[CaptureArtifact]:
        async with self._lock:
            artifact = self._artifacts.get(artifact_id)
            return copy.copy(artifact) if artifact else None

    async def transition_artifact(
        self,
        artifact_id: str,
        expected: Iterable[ArtifactStatus],
        new: ArtifactStatus,
        **fields: Any,
    ) -> Optional[CaptureArtifact]:
        async with self._lock:
            artifact = self._artifacts.get(artifact_id)
            if artifact is None or artifact.status not in set(expected):
                return None
            if new not in ARTIFACT_TRANSITIONS[artifact.status]:
                return None
            return copy.copy(_apply(artifact, {**fields, "status": new}))

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    async def stats(self, now: Optional[datetime] = None) -> PoolStats:
        now = now or utcnow()
        async with self._lock:
            return PoolStats(
                total_devices=len(self._devices),
                devices_in_use=sum(1 for d in self._devices.values() if d.status == DeviceStatus.IN_USE),
                total_customers=len(self._customers),
                active_sessions=sum(1 for s in self._sessions.values() if s.is_live(now)),
                total_sessions=len(self._sessions),
                total_artifacts=len(self._artifacts),
                active_subscriptions=sum(1 for s in self._subscriptions.values() if s.is_valid(now)),
            )
