"""
Health Check Routes
===================

Endpoints for health monitoring and service status.

Includes:
- Basic health check
- Readiness probe
- Detailed status information
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from phonepool.api.dependencies import Services, get_services
from phonepool.domain.models import utcnow
from phonepool.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])


@router.get(
    "",
    summary="Basic health check",
    response_description="Service health status",
)
async def health_check() -> dict[str, str]:
    """
    Basic health check endpoint.

    Returns:
        Simple status message indicating service is running.
    """
    return {"status": "healthy", "timestamp": utcnow().isoformat()}


@router.get(
    "/ready",
    summary="Readiness probe",
    response_description="Service readiness status",
)
async def readiness_check(
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """
    Readiness probe for container orchestration.

    The service is ready when at least one cloud phone provider and the
    payment processor are configured.

    Raises:
        HTTPException: 503 if a required dependency is missing.
    """
    checks = {
        "providers_configured": len(services.registry) > 0,
        "payments_configured": services.crypto_pay.enabled,
    }

    if not all(checks.values()):
        missing = [name for name, ok in checks.items() if not ok]
        logger.warning("Service not ready", missing=missing)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "not_ready", "checks": checks},
        )

    return {"status": "ready", "checks": checks, "timestamp": utcnow().isoformat()}


@router.get(
    "/live",
    summary="Liveness probe",
    response_description="Service liveness status",
)
async def liveness_check() -> dict[str, str]:
    """Liveness probe. Returns immediately while the process is alive."""
    return {"status": "alive"}


@router.get(
    "/info",
    summary="Service information",
    response_description="Detailed service information",
)
async def service_info(
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Service version, providers and capture activity."""
    from phonepool import __version__

    settings = services.settings
    return {
        "service": "phonepool",
        "version": __version__,
        "environment": settings.server.environment,
        "providers": services.registry.configured(),
        "captures_in_flight": len(services.supervisor.running()),
        "config": {
            "target_package": settings.capture.target_package,
            "session_minutes": settings.capture.session_minutes,
            "capture_deadline_seconds": settings.capture.capture_deadline_seconds,
            "payments_testnet": settings.payment.crypto_pay_testnet,
            "debug_mode": settings.server.debug,
        },
        "timestamp": utcnow().isoformat(),
    }
