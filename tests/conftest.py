"""
Shared Test Fixtures
====================

Pytest fixtures used across all test modules.
Provides an in-memory store, a mocked cloud phone provider and a fully
wired service graph on top of them.
"""

import io
import os

# Set env vars BEFORE any phonepool.* imports so settings load predictably
os.environ.setdefault("CRYPTO_PAY_API_TOKEN", "test-crypto-pay-token")
os.environ.setdefault("DEBUG", "true")

import pytest
import pytest_asyncio
from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

from PIL import Image

from phonepool.billing.crypto_pay import CryptoPayClient, ExchangeRate, Invoice
from phonepool.billing.subscriptions import SubscriptionService
from phonepool.capture.orchestrator import CaptureOrchestrator
from phonepool.capture.store import ScreenshotStore
from phonepool.capture.supervisor import CaptureSupervisor
from phonepool.config import CaptureSettings, PaymentSettings
from phonepool.domain.models import (
    Customer,
    Device,
    Subscription,
    SubscriptionStatus,
    utcnow,
)
from phonepool.messaging.notifier import Notifier
from phonepool.pool.allocator import DevicePoolAllocator
from phonepool.providers.base import (
    CloudPhoneProvider,
    CommandResult,
    DeviceState,
    ProviderDevice,
    ProviderStatus,
    ScreenshotResult,
)
from phonepool.providers.registry import ProviderRegistry
from phonepool.services.rental import RentalService
from phonepool.sessions.tracker import SessionTracker
from phonepool.storage.memory import InMemoryRepository

CRYPTO_PAY_TOKEN = "test-crypto-pay-token"


def make_png(color: str = "white", size: tuple[int, int] = (8, 8)) -> bytes:
    """Small real PNG image."""
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------

@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@pytest.fixture
def capture_settings(tmp_path) -> CaptureSettings:
    """Capture settings with no settle delays and a temp screenshot dir."""
    return CaptureSettings(
        boot_settle_seconds=0,
        launch_settle_seconds=0,
        capture_deadline_seconds=5,
        screenshot_dir=tmp_path / "screenshots",
    )


@pytest.fixture
def payment_settings() -> PaymentSettings:
    return PaymentSettings(crypto_pay_api_token=CRYPTO_PAY_TOKEN, invoice_expires_in=3600)


# ---------------------------------------------------------------------------
# Provider mock
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_provider(png_bytes) -> MagicMock:
    """Create a mock CloudPhoneProvider with all abstract methods mocked."""
    provider = MagicMock(spec=CloudPhoneProvider)
    provider.name = "DuoPlus"

    provider.list_devices = AsyncMock(return_value=[
        ProviderDevice(id="dp-1", name="Phone 1", status=DeviceState.ONLINE),
        ProviderDevice(id="dp-2", name="Phone 2", status=DeviceState.OFFLINE),
    ])
    provider.get_device_status = AsyncMock(
        return_value=ProviderStatus(online=True, status="online"),
    )
    provider.start_device = AsyncMock(return_value=True)
    provider.stop_device = AsyncMock(return_value=True)
    provider.launch_app = AsyncMock(return_value=True)
    provider.take_screenshot = AsyncMock(
        return_value=ScreenshotResult(success=True, image_data=png_bytes),
    )
    provider.execute_command = AsyncMock(return_value=CommandResult(success=True, output=""))
    provider.close = AsyncMock()

    return provider


@pytest.fixture
def registry(mock_provider) -> ProviderRegistry:
    return ProviderRegistry([mock_provider])


# ---------------------------------------------------------------------------
# Payment processor
# ---------------------------------------------------------------------------

@pytest.fixture
def crypto_pay() -> CryptoPayClient:
    """Real client (real signature check) with its network calls mocked."""
    client = CryptoPayClient(token=CRYPTO_PAY_TOKEN, testnet=True)
    client.get_exchange_rates = AsyncMock(return_value=[
        ExchangeRate(source="USDT", target="EUR", rate="0.92", is_valid=True),
        ExchangeRate(source="BTC", target="USD", rate="60000", is_valid=True),
        ExchangeRate(source="EUR", target="USD", rate="1.08", is_valid=True),
    ])
    client.create_invoice = AsyncMock(return_value=Invoice(
        invoice_id="1001",
        status="active",
        asset="USDT",
        amount="16.30",
        pay_url="https://t.me/CryptoTestnetBot?start=IVtest1001",
    ))
    client.get_invoice = AsyncMock(return_value=None)
    client.close = AsyncMock()
    return client


@pytest.fixture
def notifier() -> MagicMock:
    notifier = MagicMock(spec=Notifier)
    notifier.notify = AsyncMock(return_value=True)
    notifier.close = AsyncMock()
    return notifier


# ---------------------------------------------------------------------------
# Service graph
# ---------------------------------------------------------------------------

@pytest.fixture
def repo() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def allocator(repo) -> DevicePoolAllocator:
    return DevicePoolAllocator(repo)


@pytest.fixture
def subscription_service(repo, crypto_pay, allocator, notifier, payment_settings) -> SubscriptionService:
    return SubscriptionService(repo, crypto_pay, allocator, notifier, payment_settings)


@pytest.fixture
def orchestrator(registry, capture_settings) -> CaptureOrchestrator:
    return CaptureOrchestrator(registry, capture_settings, sleep=AsyncMock())


@pytest.fixture
def supervisor() -> CaptureSupervisor:
    return CaptureSupervisor(deadline_seconds=5)


@pytest.fixture
def store(capture_settings) -> ScreenshotStore:
    return ScreenshotStore(capture_settings.screenshot_dir)


@pytest.fixture
def rental(
    repo,
    registry,
    orchestrator,
    supervisor,
    store,
    allocator,
    subscription_service,
    notifier,
    capture_settings,
) -> RentalService:
    return RentalService(
        repository=repo,
        registry=registry,
        orchestrator=orchestrator,
        supervisor=supervisor,
        store=store,
        allocator=allocator,
        tracker=SessionTracker(repo),
        subscriptions=subscription_service,
        notifier=notifier,
        settings=capture_settings,
    )


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def customer(repo) -> Customer:
    created, _ = await repo.get_or_create_customer(
        Customer(external_id="424242", username="alice", first_name="Alice")
    )
    return created


@pytest_asyncio.fixture
async def device(repo) -> Device:
    return await repo.add_device(
        Device(
            name="Phone 1",
            provider="DuoPlus",
            provider_device_id="dp-1",
            delivery_name="Alice Example",
            locker_code="123456789",
        )
    )


@pytest_asyncio.fixture
async def active_subscription(repo, customer) -> Subscription:
    """A paid one-week subscription with no phone bound yet."""
    now = utcnow()
    pending = Subscription(
        customer_id=customer.id,
        plan_id="1week",
        plan_label="1 Week",
        duration_days=7,
        price=Decimal("15.00"),
        invoice_id="1000",
    )
    await repo.replace_pending_subscription(pending)
    return await repo.transition_subscription(
        pending.id,
        {SubscriptionStatus.PENDING_PAYMENT},
        SubscriptionStatus.ACTIVE,
        paid_at=now,
        starts_at=now,
        expires_at=now + timedelta(days=7),
    )
