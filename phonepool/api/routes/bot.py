"""
Messaging Front-end Routes
==========================

Endpoints the chat bot calls on behalf of a customer.

Customers are addressed by their messaging-platform id. Responses are
structured data only; the bot renders them in the customer's language.

Flows:
- Subscribe: ``plan`` -> ``asset`` (invoice link) -> ``payment/check`` or webhook
- Capture: ``captures`` directly, or ``tracking/begin`` then ``tracking``
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from phonepool.api.dependencies import get_rental_service
from phonepool.billing.crypto_pay import SUPPORTED_ASSETS
from phonepool.domain.models import PLANS, AwaitingInput, Customer
from phonepool.services.rental import RentalService

router = APIRouter(prefix="/api/bot", tags=["Messaging"])


# Request Models
class ResolveCustomerRequest(BaseModel):
    """Identify the customer behind an incoming message."""

    external_id: str = Field(..., min_length=1, description="Messaging-platform user id")
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class SelectPlanRequest(BaseModel):
    plan_id: str = Field(..., description="Plan id, e.g. '1week'")


class SelectAssetRequest(BaseModel):
    asset: str = Field(..., description="Crypto asset ticker, e.g. 'USDT'")


class TrackingInputRequest(BaseModel):
    text: str = Field(..., description="Free-form reply containing the tracking number")


class CaptureRequest(BaseModel):
    tracking_id: Optional[str] = Field(
        default=None,
        description="Tracking number; omit to capture whatever the app shows",
    )


async def get_customer(
    external_id: str,
    rental: RentalService = Depends(get_rental_service),
) -> Customer:
    return await rental.get_customer(external_id)


@router.get("/plans", summary="Plan catalogue and payment assets")
async def list_plans() -> dict[str, Any]:
    return {
        "plans": [plan.to_dict() for plan in PLANS.values()],
        "assets": list(SUPPORTED_ASSETS),
    }


@router.post("/customers/resolve", summary="Register or look up a customer")
async def resolve_customer(
    request: ResolveCustomerRequest,
    rental: RentalService = Depends(get_rental_service),
) -> dict[str, Any]:
    customer = await rental.resolve_customer(
        request.external_id,
        username=request.username,
        first_name=request.first_name,
        last_name=request.last_name,
    )
    return customer.to_dict()


@router.get("/customers/{external_id}/subscriptions", summary="Active and pending subscription")
async def get_subscriptions(
    customer: Customer = Depends(get_customer),
    rental: RentalService = Depends(get_rental_service),
) -> dict[str, Any]:
    return (await rental.get_subscriptions(customer)).to_dict()


@router.get("/customers/{external_id}/account", summary="Delivery identity of the assigned phone")
async def get_account(
    customer: Customer = Depends(get_customer),
    rental: RentalService = Depends(get_rental_service),
) -> dict[str, Any]:
    return (await rental.get_account(customer)).to_dict()


@router.post("/customers/{external_id}/plan", summary="Choose a plan")
async def select_plan(
    request: SelectPlanRequest,
    customer: Customer = Depends(get_customer),
    rental: RentalService = Depends(get_rental_service),
) -> dict[str, Any]:
    plan = await rental.select_plan(customer, request.plan_id)
    return {
        "plan": plan.to_dict(),
        "assets": list(SUPPORTED_ASSETS),
        "awaiting_input": AwaitingInput.ASSET_SELECTION.value,
    }


@router.post(
    "/customers/{external_id}/asset",
    status_code=status.HTTP_201_CREATED,
    summary="Choose the payment asset and create the invoice",
)
async def select_asset(
    request: SelectAssetRequest,
    customer: Customer = Depends(get_customer),
    rental: RentalService = Depends(get_rental_service),
) -> dict[str, Any]:
    subscription = await rental.select_asset(customer, request.asset)
    return subscription.to_dict()


@router.post("/customers/{external_id}/payment/check", summary="Poll the pending invoice")
async def check_payment(
    customer: Customer = Depends(get_customer),
    rental: RentalService = Depends(get_rental_service),
) -> dict[str, Any]:
    return (await rental.check_payment(customer)).to_dict()


@router.post("/customers/{external_id}/subscription/cancel", summary="Cancel the pending subscription")
async def cancel_subscription(
    customer: Customer = Depends(get_customer),
    rental: RentalService = Depends(get_rental_service),
) -> dict[str, Any]:
    return (await rental.cancel_subscription(customer)).to_dict()


@router.post("/customers/{external_id}/tracking/begin", summary="Ask for a tracking number")
async def begin_tracking_input(
    customer: Customer = Depends(get_customer),
    rental: RentalService = Depends(get_rental_service),
) -> dict[str, str]:
    await rental.begin_tracking_input(customer)
    return {"awaiting_input": AwaitingInput.TRACKING_NUMBER.value}


@router.post(
    "/customers/{external_id}/tracking",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Submit the awaited tracking number",
)
async def submit_tracking_input(
    request: TrackingInputRequest,
    customer: Customer = Depends(get_customer),
    rental: RentalService = Depends(get_rental_service),
) -> dict[str, Any]:
    return (await rental.submit_tracking_input(customer, request.text)).to_dict()


@router.post(
    "/customers/{external_id}/captures",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Request a pickup-code capture",
)
async def request_capture(
    request: CaptureRequest,
    customer: Customer = Depends(get_customer),
    rental: RentalService = Depends(get_rental_service),
) -> dict[str, Any]:
    """
    Start a capture session.

    Returns as soon as the session is running. The screenshot, or the
    failure, is pushed to the customer when the capture finishes.
    """
    return (await rental.request_capture(customer, request.tracking_id)).to_dict()


@router.post("/customers/{external_id}/session/cancel", summary="Cancel the open session")
async def cancel_session(
    customer: Customer = Depends(get_customer),
    rental: RentalService = Depends(get_rental_service),
) -> dict[str, Any]:
    return (await rental.cancel_active_session(customer)).to_dict()
