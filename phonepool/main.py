"""
PhonePool - Main Application
============================

FastAPI application entry point for the cloud phone rental service.

This module sets up:
- FastAPI application with CORS
- Route registration
- Middleware (logging, error handling)
- Lifespan management (service graph startup/shutdown)

Usage:
    # Development
    uvicorn phonepool.main:app --reload --host 0.0.0.0 --port 8000

    # Production (single worker: pool state and capture tasks live in-process)
    uvicorn phonepool.main:app --host 0.0.0.0 --port 8000
"""

import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from phonepool import __version__
from phonepool.api.dependencies import Services
from phonepool.api.routes import (
    bot_router,
    customers_router,
    devices_router,
    health_router,
    providers_router,
    reports_router,
    screenshots_router,
    sessions_router,
    subscriptions_router,
    webhooks_router,
)
from phonepool.config import get_settings
from phonepool.errors import PhonePoolError
from phonepool.utils.logger import LogContext, get_logger, setup_logging

# Setup logging
settings = get_settings()
setup_logging()

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Builds the service graph on startup and closes it on shutdown.
    """
    logger.info(
        "Starting PhonePool",
        version=__version__,
        environment=settings.server.environment,
    )

    services = Services.build(settings)
    app.state.services = services

    yield

    logger.info("Shutting down PhonePool")
    await services.close()


# Create FastAPI application
app = FastAPI(
    title="PhonePool",
    description=(
        "Rents time-boxed access to cloud phones so customers can obtain "
        "parcel pickup codes for their tracking numbers."
    ),
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if settings.server.debug else None,
    redoc_url="/redoc" if settings.server.debug else None,
    openapi_url="/openapi.json" if settings.server.debug else None,
)


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.server.get_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all HTTP requests with timing."""
    start_time = time.time()

    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

    with LogContext(request_id=request_id):
        logger.info(
            "Request started",
            method=request.method,
            path=request.url.path,
            client=request.client.host if request.client else "unknown",
        )

        response = await call_next(request)

        duration_ms = (time.time() - start_time) * 1000

        logger.info(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )

    response.headers["X-Request-ID"] = request_id
    response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

    return response


# Domain errors carry their own status and code
@app.exception_handler(PhonePoolError)
async def domain_error_handler(request: Request, exc: PhonePoolError) -> JSONResponse:
    logger.info(
        "Request rejected",
        path=request.url.path,
        method=request.method,
        error=exc.code,
        status_code=exc.status_code,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle uncaught exceptions."""
    logger.exception(
        "Unhandled exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if settings.server.debug else "An unexpected error occurred",
        },
    )


# Register routers
app.include_router(health_router)
app.include_router(bot_router)
app.include_router(devices_router)
app.include_router(customers_router)
app.include_router(sessions_router)
app.include_router(subscriptions_router)
app.include_router(reports_router)
app.include_router(providers_router)
app.include_router(screenshots_router)
app.include_router(webhooks_router)


# Root endpoint
@app.get("/", include_in_schema=False)
async def root() -> dict[str, Any]:
    """Root endpoint with service information."""
    return {
        "service": "PhonePool",
        "version": __version__,
        "docs": "/docs" if settings.server.debug else None,
        "health": "/health",
    }


# Run directly (for development)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "phonepool.main:app",
        host=settings.server.server_host,
        port=settings.server.server_port,
        reload=settings.server.debug,
        log_level=settings.server.log_level.lower(),
    )
