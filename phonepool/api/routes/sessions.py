"""
Session Routes
==============

Admin view of rental sessions.

Cancelling a session stops its in-flight capture, returns the phone to
the pool and tells the customer.
"""

from typing import Any

from fastapi import APIRouter, Depends

from phonepool.api.dependencies import get_rental_service
from phonepool.services.rental import RentalService

router = APIRouter(prefix="/api/sessions", tags=["Sessions"])


@router.get("", summary="List sessions")
async def list_sessions(rental: RentalService = Depends(get_rental_service)) -> list[dict[str, Any]]:
    return [session.to_dict() for session in await rental.list_sessions()]


@router.patch("/{session_id}/cancel", summary="Cancel a session")
async def cancel_session(
    session_id: str,
    rental: RentalService = Depends(get_rental_service),
) -> dict[str, Any]:
    return (await rental.cancel_session(session_id)).to_dict()
