"""
Device Routes
=============

Admin management of the cloud phone pool.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from phonepool.api.dependencies import get_rental_service
from phonepool.domain.models import DeviceStatus
from phonepool.services.rental import RentalService

router = APIRouter(prefix="/api/devices", tags=["Devices"])


class CreateDeviceRequest(BaseModel):
    """A phone to add to the pool."""

    name: str = Field(..., min_length=1)
    provider: str = Field(..., description="Provider name, e.g. 'DuoPlus'")
    provider_device_id: str = Field(..., min_length=1, description="The provider's id for the phone")
    status: DeviceStatus = DeviceStatus.AVAILABLE
    delivery_name: Optional[str] = None
    locker_code: Optional[str] = None
    account_email: Optional[str] = None


class UpdateDeviceRequest(BaseModel):
    name: Optional[str] = None
    provider: Optional[str] = None
    provider_device_id: Optional[str] = None
    status: Optional[DeviceStatus] = None
    delivery_name: Optional[str] = None
    locker_code: Optional[str] = None
    account_email: Optional[str] = None


class DeviceStatusRequest(BaseModel):
    status: DeviceStatus


@router.get("", summary="List devices")
async def list_devices(rental: RentalService = Depends(get_rental_service)) -> list[dict[str, Any]]:
    return [device.to_dict() for device in await rental.list_devices()]


@router.post("", status_code=status.HTTP_201_CREATED, summary="Add a device")
async def create_device(
    request: CreateDeviceRequest,
    rental: RentalService = Depends(get_rental_service),
) -> dict[str, Any]:
    device = await rental.create_device(**request.model_dump())
    return device.to_dict()


@router.patch("/{device_id}/status", summary="Override device status")
async def set_device_status(
    device_id: str,
    request: DeviceStatusRequest,
    rental: RentalService = Depends(get_rental_service),
) -> dict[str, Any]:
    return (await rental.set_device_status(device_id, request.status)).to_dict()


@router.patch("/{device_id}", summary="Edit a device")
async def update_device(
    device_id: str,
    request: UpdateDeviceRequest,
    rental: RentalService = Depends(get_rental_service),
) -> dict[str, Any]:
    device = await rental.update_device(device_id, **request.model_dump(exclude_unset=True))
    return device.to_dict()


@router.delete("/{device_id}", summary="Remove a device")
async def delete_device(
    device_id: str,
    rental: RentalService = Depends(get_rental_service),
) -> dict[str, str]:
    await rental.delete_device(device_id)
    return {"message": "Device deleted"}
