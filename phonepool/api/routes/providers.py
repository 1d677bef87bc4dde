"""
Provider Routes
===============

Admin tooling for the cloud phone providers: connectivity test, device
import, raw shell commands and ad-hoc screenshots.
"""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from phonepool.api.dependencies import get_rental_service
from phonepool.services.rental import RentalService

router = APIRouter(prefix="/api/providers", tags=["Providers"])


class CommandRequest(BaseModel):
    device_id: str = Field(..., min_length=1, description="The provider's id for the phone")
    command: str = Field(..., min_length=1, description="Shell command to run on the phone")


class ScreenshotRequest(BaseModel):
    device_id: str = Field(..., min_length=1, description="The provider's id for the phone")


@router.get("", summary="Known providers and whether they are configured")
async def list_providers(rental: RentalService = Depends(get_rental_service)) -> list[dict[str, Any]]:
    return rental.list_providers()


@router.post("/{name}/test", summary="Test provider connectivity")
async def test_provider(name: str, rental: RentalService = Depends(get_rental_service)) -> dict[str, Any]:
    return (await rental.test_provider(name)).to_dict()


@router.post("/{name}/sync", summary="Import the provider's devices into the pool")
async def sync_provider(name: str, rental: RentalService = Depends(get_rental_service)) -> dict[str, Any]:
    return (await rental.sync_provider(name)).to_dict()


@router.post("/{name}/command", summary="Run a shell command on a phone")
async def run_command(
    name: str,
    request: CommandRequest,
    rental: RentalService = Depends(get_rental_service),
) -> dict[str, Any]:
    result = await rental.run_provider_command(name, request.device_id, request.command)
    return {"success": result.success, "output": result.output, "error": result.error}


@router.post("/{name}/screenshot", summary="Capture a phone's screen outside any session")
async def take_screenshot(
    name: str,
    request: ScreenshotRequest,
    rental: RentalService = Depends(get_rental_service),
) -> dict[str, Any]:
    return await rental.provider_screenshot(name, request.device_id)
