"""
Services Package
================

Application façade used by the HTTP layer.
"""

from phonepool.services.rental import (
    AccountView,
    CaptureTicket,
    RentalService,
    SubscriptionOverview,
    SyncResult,
)

__all__ = [
    "AccountView",
    "CaptureTicket",
    "RentalService",
    "SubscriptionOverview",
    "SyncResult",
]
