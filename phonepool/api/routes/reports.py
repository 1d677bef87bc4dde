"""
Reporting Routes
================

Pool statistics and capture artifacts.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query

from phonepool.api.dependencies import Services, get_rental_service, get_services
from phonepool.services.rental import RentalService

router = APIRouter(prefix="/api", tags=["Reports"])


@router.get("/stats", summary="Pool statistics")
async def get_stats(services: Services = Depends(get_services)) -> dict[str, Any]:
    stats = (await services.rental.stats()).to_dict()
    stats["captures_in_flight"] = len(services.supervisor.running())
    return stats


@router.get("/artifacts", summary="List capture artifacts")
async def list_artifacts(
    session_id: Optional[str] = Query(default=None, description="Only artifacts of this session"),
    rental: RentalService = Depends(get_rental_service),
) -> list[dict[str, Any]]:
    return [artifact.to_dict() for artifact in await rental.list_artifacts(session_id)]
