"""
API Routes Package
==================

REST API route definitions.
"""

from phonepool.api.routes.bot import router as bot_router
from phonepool.api.routes.customers import router as customers_router
from phonepool.api.routes.devices import router as devices_router
from phonepool.api.routes.health import router as health_router
from phonepool.api.routes.providers import router as providers_router
from phonepool.api.routes.reports import router as reports_router
from phonepool.api.routes.screenshots import router as screenshots_router
from phonepool.api.routes.sessions import router as sessions_router
from phonepool.api.routes.subscriptions import router as subscriptions_router
from phonepool.api.routes.webhooks import router as webhooks_router

__all__ = [
    "bot_router",
    "customers_router",
    "devices_router",
    "health_router",
    "providers_router",
    "reports_router",
    "screenshots_router",
    "sessions_router",
    "subscriptions_router",
    "webhooks_router",
]
