"""
Domain Models
=============

Records held by the repository and passed between the service modules.

Includes:
- Status vocabularies for devices, subscriptions, sessions and artifacts
- The fixed plan catalogue
- Device, Customer, Subscription, RentalSession and CaptureArtifact records
- Pool statistics
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class DeviceStatus(str, Enum):
    """Pool status of a rentable phone."""

    AVAILABLE = "available"
    IN_USE = "in_use"
    MAINTENANCE = "maintenance"
    OFFLINE = "offline"


class SubscriptionStatus(str, Enum):
    PENDING_PAYMENT = "pending_payment"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class SessionStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class ArtifactStatus(str, Enum):
    """Lifecycle of one pickup-code screenshot."""

    PENDING = "pending"
    CAPTURED = "captured"
    DELIVERED = "delivered"
    FAILED = "failed"


# Allowed artifact moves; delivered and failed are terminal
ARTIFACT_TRANSITIONS: dict[ArtifactStatus, frozenset[ArtifactStatus]] = {
    ArtifactStatus.PENDING: frozenset({ArtifactStatus.CAPTURED, ArtifactStatus.FAILED}),
    ArtifactStatus.CAPTURED: frozenset({ArtifactStatus.DELIVERED, ArtifactStatus.FAILED}),
    ArtifactStatus.DELIVERED: frozenset(),
    ArtifactStatus.FAILED: frozenset(),
}


class PaymentMethod(str, Enum):
    BITCOIN = "bitcoin"
    USDT_TRC20 = "usdt_trc20"
    USDT_ERC20 = "usdt_erc20"
    LITECOIN = "litecoin"
    OTHER = "other"

    @classmethod
    def from_asset(cls, asset: str) -> "PaymentMethod":
        """Map a crypto asset ticker to the recorded payment method."""
        return {
            "BTC": cls.BITCOIN,
            "USDT": cls.USDT_TRC20,
            "LTC": cls.LITECOIN,
        }.get(asset.upper(), cls.OTHER)


class AwaitingInput(str, Enum):
    """Which free-form reply the messaging front-end is waiting for."""

    NONE = "none"
    ASSET_SELECTION = "asset_selection"
    TRACKING_NUMBER = "tracking_number"


@dataclass(frozen=True)
class Plan:
    """A purchasable subscription plan priced in the settlement currency."""

    id: str
    label: str
    duration_days: int
    price: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "duration_days": self.duration_days,
            "price": str(self.price),
        }


PLANS: dict[str, Plan] = {
    "1week": Plan(id="1week", label="1 Week", duration_days=7, price=Decimal("15.00")),
    "2weeks": Plan(id="2weeks", label="2 Weeks", duration_days=14, price=Decimal("25.00")),
    "1month": Plan(id="1month", label="1 Month", duration_days=30, price=Decimal("45.00")),
}


def get_plan(plan_id: str) -> Optional[Plan]:
    return PLANS.get(plan_id)


@dataclass(frozen=True)
class DeviceRef:
    """Enough to address a phone at its provider."""

    provider: str
    provider_device_id: str
    name: str = ""


@dataclass
class Device:
    """
    A rentable cloud phone.

    Attributes:
        id: Internal identifier.
        name: Display name.
        provider: Provider name ("GeeLark", "DuoPlus", "VMOS Cloud").
        provider_device_id: The provider's own id for the phone.
        status: Pool status.
        delivery_name: Name registered for parcel pickup on this phone.
        locker_code: Parcel-locker customer number for this phone.
        account_email: Shipping-app account on the phone (admin only).
        last_used_at: When the phone was last released.
    """

    name: str
    provider: str
    provider_device_id: str
    status: DeviceStatus = DeviceStatus.AVAILABLE
    delivery_name: Optional[str] = None
    locker_code: Optional[str] = None
    account_email: Optional[str] = None
    last_used_at: Optional[datetime] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    @property
    def has_delivery_identity(self) -> bool:
        return bool(self.delivery_name and self.locker_code)

    def ref(self) -> DeviceRef:
        return DeviceRef(provider=self.provider, provider_device_id=self.provider_device_id, name=self.name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "provider": self.provider,
            "provider_device_id": self.provider_device_id,
            "status": self.status.value,
            "delivery_name": self.delivery_name,
            "locker_code": self.locker_code,
            "account_email": self.account_email,
            "has_delivery_identity": self.has_delivery_identity,
            "last_used_at": _iso(self.last_used_at),
            "created_at": _iso(self.created_at),
        }


@dataclass
class Customer:
    """A messaging-platform user. ``external_id`` is unique."""

    external_id: str
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_blocked: bool = False
    total_sessions: int = 0
    awaiting_input: AwaitingInput = AwaitingInput.NONE
    pending_plan_id: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "external_id": self.external_id,
            "username": self.username,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "is_blocked": self.is_blocked,
            "total_sessions": self.total_sessions,
            "awaiting_input": self.awaiting_input.value,
            "pending_plan_id": self.pending_plan_id,
            "created_at": _iso(self.created_at),
        }


@dataclass
class Subscription:
    """
    Paid, time-bounded entitlement to request captures.

    Only ``active`` subscriptions whose ``expires_at`` lies in the future
    grant access. Expiry is time-driven: nothing ever writes ``expired``,
    it is derived from ``expires_at`` by :meth:`effective_status`.
    """

    customer_id: str
    plan_id: str
    plan_label: str
    duration_days: int
    price: Decimal
    status: SubscriptionStatus = SubscriptionStatus.PENDING_PAYMENT
    assigned_device_id: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    invoice_id: Optional[str] = None
    invoice_url: Optional[str] = None
    crypto_asset: Optional[str] = None
    crypto_amount: Optional[str] = None
    paid_at: Optional[datetime] = None
    starts_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        return (
            self.status == SubscriptionStatus.ACTIVE
            and self.expires_at is not None
            and self.expires_at > now
        )

    def effective_status(self, now: Optional[datetime] = None) -> SubscriptionStatus:
        if self.status == SubscriptionStatus.ACTIVE and not self.is_valid(now):
            return SubscriptionStatus.EXPIRED
        return self.status

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "plan_id": self.plan_id,
            "plan_label": self.plan_label,
            "duration_days": self.duration_days,
            "price": str(self.price),
            "status": self.effective_status().value,
            "assigned_device_id": self.assigned_device_id,
            "payment_method": self.payment_method.value if self.payment_method else None,
            "invoice_id": self.invoice_id,
            "invoice_url": self.invoice_url,
            "crypto_asset": self.crypto_asset,
            "crypto_amount": self.crypto_amount,
            "paid_at": _iso(self.paid_at),
            "starts_at": _iso(self.starts_at),
            "expires_at": _iso(self.expires_at),
            "created_at": _iso(self.created_at),
        }


@dataclass
class RentalSession:
    """One capture attempt window on a bound device."""

    customer_id: str
    device_id: str
    subscription_id: Optional[str] = None
    status: SessionStatus = SessionStatus.PENDING
    duration_minutes: int = 5
    started_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    def is_live(self, now: Optional[datetime] = None) -> bool:
        """Active and not yet past its expiry."""
        now = now or utcnow()
        return (
            self.status == SessionStatus.ACTIVE
            and self.expires_at is not None
            and self.expires_at > now
        )

    def effective_status(self, now: Optional[datetime] = None) -> SessionStatus:
        if self.status == SessionStatus.ACTIVE and not self.is_live(now):
            return SessionStatus.EXPIRED
        return self.status

    def window(self, started_at: datetime) -> tuple[datetime, datetime]:
        return started_at, started_at + timedelta(minutes=self.duration_minutes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "device_id": self.device_id,
            "subscription_id": self.subscription_id,
            "status": self.effective_status().value,
            "duration_minutes": self.duration_minutes,
            "started_at": _iso(self.started_at),
            "expires_at": _iso(self.expires_at),
            "completed_at": _iso(self.completed_at),
            "created_at": _iso(self.created_at),
        }


@dataclass
class CaptureArtifact:
    """A pickup-code screenshot produced by a session."""

    session_id: str
    tracking_number: Optional[str] = None
    status: ArtifactStatus = ArtifactStatus.PENDING
    image_ref: Optional[str] = None
    error: Optional[str] = None
    captured_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "tracking_number": self.tracking_number,
            "status": self.status.value,
            "image_ref": self.image_ref,
            "error": self.error,
            "captured_at": _iso(self.captured_at),
            "delivered_at": _iso(self.delivered_at),
            "created_at": _iso(self.created_at),
        }


@dataclass
class PoolStats:
    total_devices: int = 0
    devices_in_use: int = 0
    total_customers: int = 0
    active_sessions: int = 0
    total_sessions: int = 0
    total_artifacts: int = 0
    active_subscriptions: int = 0

    def to_dict(self) -> dict[str, int]:
        return dict(self.__dict__)
