"""
API Module
==========

FastAPI routes for the phone pool service.

This package contains:
    - routes/: REST API endpoints (messaging front-end, admin, webhooks)
    - dependencies: Service graph wiring and dependency providers
"""

from phonepool.api.dependencies import Services, get_services

__all__ = [
    "Services",
    "get_services",
]
