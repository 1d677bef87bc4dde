"""
API Dependencies
================

Wiring of the service graph and FastAPI dependency providers.

The graph is built once in the application lifespan and kept on
``app.state.services``; routes reach it through :func:`get_services`.
Tests override that dependency with a graph built on fakes.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request

from phonepool.billing.crypto_pay import CryptoPayClient
from phonepool.billing.subscriptions import SubscriptionService
from phonepool.capture.orchestrator import CaptureOrchestrator
from phonepool.capture.store import ScreenshotStore
from phonepool.capture.supervisor import CaptureSupervisor
from phonepool.config import Settings
from phonepool.messaging.notifier import Notifier, create_notifier
from phonepool.pool.allocator import DevicePoolAllocator
from phonepool.providers.registry import ProviderRegistry
from phonepool.services.rental import RentalService
from phonepool.sessions.tracker import SessionTracker
from phonepool.storage.memory import InMemoryRepository
from phonepool.storage.repository import Repository
from phonepool.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class Services:
    """Everything the routes need, built from one settings object."""

    settings: Settings
    repository: Repository
    registry: ProviderRegistry
    crypto_pay: CryptoPayClient
    notifier: Notifier
    supervisor: CaptureSupervisor
    store: ScreenshotStore
    subscriptions: SubscriptionService
    rental: RentalService

    @classmethod
    def build(
        cls,
        settings: Settings,
        repository: Optional[Repository] = None,
        registry: Optional[ProviderRegistry] = None,
        crypto_pay: Optional[CryptoPayClient] = None,
        notifier: Optional[Notifier] = None,
        orchestrator: Optional[CaptureOrchestrator] = None,
    ) -> "Services":
        """
        Assemble the service graph.

        Any collaborator can be passed in; the rest are built from settings.
        """
        repository = repository or InMemoryRepository()
        registry = registry or ProviderRegistry.from_settings(settings.providers)
        crypto_pay = crypto_pay or CryptoPayClient(
            token=settings.payment.crypto_pay_api_token,
            testnet=settings.payment.crypto_pay_testnet,
            bot_username=settings.payment.bot_username,
        )
        notifier = notifier or create_notifier(
            url=settings.messaging.messaging_callback_url,
            secret=settings.messaging.messaging_callback_secret,
            timeout=settings.messaging.messaging_timeout,
        )
        orchestrator = orchestrator or CaptureOrchestrator(registry, settings.capture)
        supervisor = CaptureSupervisor(deadline_seconds=settings.capture.capture_deadline_seconds)
        store = ScreenshotStore(settings.capture.screenshot_dir)
        allocator = DevicePoolAllocator(repository)
        subscriptions = SubscriptionService(repository, crypto_pay, allocator, notifier, settings.payment)
        rental = RentalService(
            repository=repository,
            registry=registry,
            orchestrator=orchestrator,
            supervisor=supervisor,
            store=store,
            allocator=allocator,
            tracker=SessionTracker(repository),
            subscriptions=subscriptions,
            notifier=notifier,
            settings=settings.capture,
        )
        return cls(
            settings=settings,
            repository=repository,
            registry=registry,
            crypto_pay=crypto_pay,
            notifier=notifier,
            supervisor=supervisor,
            store=store,
            subscriptions=subscriptions,
            rental=rental,
        )

    async def close(self) -> None:
        """Stop running captures, then release every HTTP session."""
        await self.supervisor.shutdown()
        await self.registry.close()
        await self.crypto_pay.close()
        await self.notifier.close()
        logger.info("Services closed")


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_rental_service(services: Services = Depends(get_services)) -> RentalService:
    return services.rental


def get_subscription_service(services: Services = Depends(get_services)) -> SubscriptionService:
    return services.subscriptions
