"""
Domain Package
==============

Records, status vocabularies and the plan catalogue.
"""

from phonepool.domain.models import (
    PLANS,
    ArtifactStatus,
    AwaitingInput,
    CaptureArtifact,
    Customer,
    Device,
    DeviceRef,
    DeviceStatus,
    PaymentMethod,
    Plan,
    PoolStats,
    RentalSession,
    SessionStatus,
    Subscription,
    SubscriptionStatus,
    get_plan,
    utcnow,
)

__all__ = [
    "PLANS",
    "ArtifactStatus",
    "AwaitingInput",
    "CaptureArtifact",
    "Customer",
    "Device",
    "DeviceRef",
    "DeviceStatus",
    "PaymentMethod",
    "Plan",
    "PoolStats",
    "RentalSession",
    "SessionStatus",
    "Subscription",
    "SubscriptionStatus",
    "get_plan",
    "utcnow",
]
