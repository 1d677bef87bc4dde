"""
Screenshot Routes
=================

Serves stored screenshots by content hash.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import FileResponse

from phonepool.api.dependencies import Services, get_services

router = APIRouter(prefix="/api/screenshots", tags=["Screenshots"])


@router.get("/{filename}", summary="Fetch a stored screenshot")
async def get_screenshot(filename: str, services: Services = Depends(get_services)) -> FileResponse:
    path = services.store.resolve(filename)
    if path is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Screenshot not found")
    return FileResponse(path, media_type="image/png")
