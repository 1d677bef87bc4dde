"""
Subscription Routes
===================

Admin view of subscriptions, with manual activation and cancellation.

Manual activation goes through the same guarded transition as a paid
invoice, so activating an already active subscription changes nothing.
"""

from typing import Any

from fastapi import APIRouter, Depends

from phonepool.api.dependencies import get_rental_service
from phonepool.services.rental import RentalService

router = APIRouter(prefix="/api/subscriptions", tags=["Subscriptions"])


@router.get("", summary="List subscriptions")
async def list_subscriptions(rental: RentalService = Depends(get_rental_service)) -> list[dict[str, Any]]:
    return [sub.to_dict() for sub in await rental.list_subscriptions()]


@router.patch("/{subscription_id}/activate", summary="Activate a subscription")
async def activate_subscription(
    subscription_id: str,
    rental: RentalService = Depends(get_rental_service),
) -> dict[str, Any]:
    return (await rental.activate_subscription(subscription_id)).to_dict()


@router.patch("/{subscription_id}/cancel", summary="Cancel a subscription")
async def cancel_subscription(
    subscription_id: str,
    rental: RentalService = Depends(get_rental_service),
) -> dict[str, Any]:
    return (await rental.cancel_subscription_by_id(subscription_id)).to_dict()
