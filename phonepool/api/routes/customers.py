"""
Customer Routes
===============

Admin view of customers and the block flag.
"""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from phonepool.api.dependencies import get_rental_service
from phonepool.services.rental import RentalService

router = APIRouter(prefix="/api/customers", tags=["Customers"])


class BlockRequest(BaseModel):
    blocked: bool


@router.get("", summary="List customers")
async def list_customers(rental: RentalService = Depends(get_rental_service)) -> list[dict[str, Any]]:
    return [customer.to_dict() for customer in await rental.list_customers()]


@router.patch("/{customer_id}/block", summary="Block or unblock a customer")
async def set_blocked(
    customer_id: str,
    request: BlockRequest,
    rental: RentalService = Depends(get_rental_service),
) -> dict[str, Any]:
    return (await rental.set_customer_blocked(customer_id, request.blocked)).to_dict()
