"""
Rental Service
==============

Application façade over the pool, billing, sessions and capture layers.

The HTTP layer calls into this class for both the messaging front-end
(customer flows) and the admin surface. Everything returned is structured
data; wording is left to the front-end.

A capture request returns as soon as the session is running. The capture
itself runs under the supervisor, and its completion callback always
stores the result, pushes it to the customer, closes the session and
releases the phone.

Usage:
    service = RentalService(repo, registry, orchestrator, supervisor, store,
                            allocator, tracker, subscriptions, notifier, settings.capture)
    customer = await service.resolve_customer("123456789", username="alice")
    ticket = await service.request_capture(customer, "00340434161234567890")
"""

from dataclasses import dataclass, field
from functools import partial
from typing import Any, Optional

from phonepool.billing.subscriptions import PaymentCheck, SubscriptionService
from phonepool.capture.orchestrator import CaptureErrorCode, CaptureOrchestrator, CaptureResult
from phonepool.capture.store import ScreenshotStore, UnreadableImageError
from phonepool.capture.supervisor import CaptureSupervisor
from phonepool.config import CaptureSettings
from phonepool.domain.models import (
    ArtifactStatus,
    AwaitingInput,
    CaptureArtifact,
    Customer,
    Device,
    DeviceRef,
    DeviceStatus,
    Plan,
    PoolStats,
    RentalSession,
    Subscription,
    get_plan,
    utcnow,
)
from phonepool.errors import (
    ConflictError,
    CustomerNotFoundError,
    DeviceNotFoundError,
    InvalidRequestError,
    ProviderNotConfiguredError,
    SessionNotFoundError,
)
from phonepool.messaging.notifier import CustomerEvent, EventKind, Notifier
from phonepool.pool.allocator import DevicePoolAllocator
from phonepool.providers.base import CommandResult, DeviceState, ProviderDevice
from phonepool.providers.registry import ProviderRegistry, ProviderTestResult
from phonepool.sessions.tracker import SessionTracker
from phonepool.storage.repository import Repository
from phonepool.utils.logger import get_logger

logger = get_logger(__name__)

EDITABLE_DEVICE_FIELDS = frozenset(
    {"name", "provider", "provider_device_id", "status", "delivery_name", "locker_code", "account_email"}
)


@dataclass
class CaptureTicket:
    """Acknowledgement for an accepted capture request."""

    session_id: str
    artifact_id: str
    device_name: str
    provider: str
    expires_at: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "artifact_id": self.artifact_id,
            "device_name": self.device_name,
            "provider": self.provider,
            "expires_at": self.expires_at,
        }


@dataclass
class SubscriptionOverview:
    active: Optional[Subscription] = None
    pending: Optional[Subscription] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "active": self.active.to_dict() if self.active else None,
            "pending": self.pending.to_dict() if self.pending else None,
        }


@dataclass
class AccountView:
    """Delivery identity of the phone bound to a customer's subscription."""

    subscription: Subscription
    device: Device

    def to_dict(self) -> dict[str, Any]:
        return {
            "plan": self.subscription.plan_label,
            "expires_at": self.subscription.to_dict()["expires_at"],
            "device_name": self.device.name,
            "delivery_name": self.device.delivery_name,
            "locker_code": self.device.locker_code,
            "account_email": self.device.account_email,
        }


@dataclass
class SyncResult:
    provider: str
    devices: list[ProviderDevice] = field(default_factory=list)
    imported: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "provider": self.provider,
            "devices": [d.to_dict() for d in self.devices],
            "imported": self.imported,
        }


class RentalService:
    """Customer and admin operations of the phone pool."""

    def __init__(
        self,
        repository: Repository,
        registry: ProviderRegistry,
        orchestrator: CaptureOrchestrator,
        supervisor: CaptureSupervisor,
        store: ScreenshotStore,
        allocator: DevicePoolAllocator,
        tracker: SessionTracker,
        subscriptions: SubscriptionService,
        notifier: Notifier,
        settings: CaptureSettings,
    ) -> None:
        self.repository = repository
        self.registry = registry
        self.orchestrator = orchestrator
        self.supervisor = supervisor
        self.store = store
        self.allocator = allocator
        self.tracker = tracker
        self.subscriptions = subscriptions
        self.notifier = notifier
        self.settings = settings

    # ------------------------------------------------------------------
    # Customers (messaging front-end)
    # ------------------------------------------------------------------

    async def resolve_customer(
        self,
        external_id: str,
        username: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> Customer:
        """Find a customer by messaging id, registering them on first contact."""
        customer, created = await self.repository.get_or_create_customer(
            Customer(
                external_id=str(external_id),
                username=username,
                first_name=first_name,
                last_name=last_name,
            )
        )
        if created:
            logger.info("Customer registered", customer_id=customer.id, external_id=customer.external_id)
        return customer

    async def get_customer(self, external_id: str) -> Customer:
        customer = await self.repository.get_customer_by_external_id(str(external_id))
        if customer is None:
            raise CustomerNotFoundError(f"Customer {external_id} not found")
        return customer

    async def get_subscriptions(self, customer: Customer) -> SubscriptionOverview:
        return SubscriptionOverview(
            active=await self.repository.get_valid_subscription(customer.id, utcnow()),
            pending=await self.repository.get_pending_subscription(customer.id),
        )

    async def get_account(self, customer: Customer) -> AccountView:
        """
        The delivery identity customers give the sender.

        Raises:
            ConflictError: No valid subscription, or no phone bound to it yet.
        """
        subscription = await self._require_subscription(customer)
        device = None
        if subscription.assigned_device_id:
            device = await self.repository.get_device(subscription.assigned_device_id)
        if device is None:
            raise ConflictError("No phone assigned yet", code="no_device_assigned")
        return AccountView(subscription=subscription, device=device)

    async def select_plan(self, customer: Customer, plan_id: str) -> Plan:
        """Remember the chosen plan until the customer picks an asset."""
        self._ensure_not_blocked(customer)
        plan = get_plan(plan_id)
        if plan is None:
            raise InvalidRequestError(f"Unknown plan {plan_id}", code="unknown_plan")
        if await self.repository.get_valid_subscription(customer.id, utcnow()):
            raise ConflictError("Customer already has an active subscription", code="already_subscribed")

        await self.repository.update_customer(
            customer.id,
            awaiting_input=AwaitingInput.ASSET_SELECTION,
            pending_plan_id=plan.id,
        )
        logger.info("Plan selected", customer_id=customer.id, plan=plan.id)
        return plan

    async def select_asset(self, customer: Customer, asset: str) -> Subscription:
        """Consume the stored plan choice and open an invoice in ``asset``."""
        if customer.awaiting_input != AwaitingInput.ASSET_SELECTION or not customer.pending_plan_id:
            raise InvalidRequestError("No plan selected", code="no_plan_selected")

        plan_id = customer.pending_plan_id
        await self.repository.update_customer(
            customer.id,
            awaiting_input=AwaitingInput.NONE,
            pending_plan_id=None,
        )
        return await self.subscriptions.create_pending(customer, plan_id, asset)

    async def check_payment(self, customer: Customer) -> PaymentCheck:
        return await self.subscriptions.check_payment(customer)

    async def cancel_subscription(self, customer: Customer) -> Subscription:
        return await self.subscriptions.cancel_pending_for(customer)

    async def begin_tracking_input(self, customer: Customer) -> None:
        """Flag that the customer's next free-form message is a tracking number."""
        self._ensure_not_blocked(customer)
        await self._require_subscription(customer)
        await self.repository.update_customer(customer.id, awaiting_input=AwaitingInput.TRACKING_NUMBER)

    async def submit_tracking_input(self, customer: Customer, text: str) -> CaptureTicket:
        if customer.awaiting_input != AwaitingInput.TRACKING_NUMBER:
            raise InvalidRequestError("Not waiting for a tracking number", code="not_awaiting_tracking_number")
        await self.repository.update_customer(customer.id, awaiting_input=AwaitingInput.NONE)
        return await self.request_capture(customer, text)

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    async def request_capture(self, customer: Customer, tracking_id: Optional[str] = None) -> CaptureTicket:
        """
        Start a capture session on the customer's phone.

        Returns once the session is running; the result is pushed to the
        customer when the capture finishes.

        Raises:
            InvalidRequestError: ``blocked`` or ``invalid_tracking_id``.
            ConflictError: ``no_active_subscription``, ``pool_empty`` or ``device_busy``.
        """
        self._ensure_not_blocked(customer)
        if tracking_id is not None:
            tracking_id = tracking_id.strip()
            if len(tracking_id) < self.settings.min_tracking_length:
                raise InvalidRequestError(
                    "Tracking number too short",
                    code="invalid_tracking_id",
                    min_length=self.settings.min_tracking_length,
                )

        subscription = await self._require_subscription(customer)
        device = await self._device_for(subscription)

        session = await self.tracker.open(customer, subscription, device, self.settings.session_minutes)
        started = await self.tracker.start(session)
        if started is None:
            await self.tracker.cancel(session)
            raise ConflictError("Phone is busy with another session", code="device_busy", device_id=device.id)

        artifact = await self.repository.add_artifact(
            CaptureArtifact(session_id=started.id, tracking_number=tracking_id)
        )
        ref = device.ref()
        self.supervisor.submit(
            started.id,
            partial(self.orchestrator.capture, ref, tracking_id),
            partial(self._finish_capture, customer.external_id, started, artifact),
        )
        logger.info(
            "Capture requested",
            session_id=started.id,
            customer_id=customer.id,
            device_id=device.id,
            provider=device.provider,
            has_tracking_id=tracking_id is not None,
        )
        return CaptureTicket(
            session_id=started.id,
            artifact_id=artifact.id,
            device_name=device.name,
            provider=device.provider,
            expires_at=started.to_dict()["expires_at"],
        )

    async def _device_for(self, subscription: Subscription) -> Device:
        """The subscription's bound phone, assigning one lazily."""
        if subscription.assigned_device_id:
            device = await self.repository.get_device(subscription.assigned_device_id)
            if device is not None:
                return device
            logger.warning(
                "Assigned device no longer exists",
                subscription_id=subscription.id,
                device_id=subscription.assigned_device_id,
            )

        device = await self.allocator.assign(subscription.id)
        if device is None:
            raise ConflictError("All phones are busy", code="pool_empty")
        return device

    async def _finish_capture(
        self,
        external_id: str,
        session: RentalSession,
        artifact: CaptureArtifact,
        result: CaptureResult,
    ) -> None:
        try:
            if result.success:
                await self._deliver(external_id, artifact, result)
            else:
                await self._record_failure(external_id, artifact, result)
        finally:
            # A cancel can land mid-delivery; the artifact must still end terminal
            await self.repository.transition_artifact(
                artifact.id,
                {ArtifactStatus.PENDING, ArtifactStatus.CAPTURED},
                ArtifactStatus.FAILED,
                error="Capture interrupted before delivery",
            )
            # Only an active session completes; a cancelled one stays cancelled
            await self.tracker.complete(session)
            await self.allocator.release(session.device_id, session_id=session.id)

    async def _deliver(self, external_id: str, artifact: CaptureArtifact, result: CaptureResult) -> None:
        image_ref = result.image_url
        if result.image_data:
            try:
                image_ref = self.store.public_path(await self.store.save(result.image_data))
            except UnreadableImageError as e:
                logger.warning("Provider returned an unreadable image", artifact_id=artifact.id, error=str(e))
                if not image_ref:
                    await self._record_failure(
                        external_id,
                        artifact,
                        CaptureResult.failure(CaptureErrorCode.SCREENSHOT_FAILED, str(e)),
                    )
                    return

        captured = await self.repository.transition_artifact(
            artifact.id,
            {ArtifactStatus.PENDING},
            ArtifactStatus.CAPTURED,
            image_ref=image_ref,
            captured_at=utcnow(),
        )
        if captured is None:
            logger.warning("Artifact no longer pending", artifact_id=artifact.id)
            return

        delivered = await self.notifier.notify(
            external_id,
            CustomerEvent(
                EventKind.CAPTURE_SUCCEEDED,
                {
                    "session_id": artifact.session_id,
                    "artifact_id": artifact.id,
                    "tracking_number": artifact.tracking_number,
                    "image_ref": image_ref,
                },
            ),
        )
        if delivered:
            await self.repository.transition_artifact(
                artifact.id,
                {ArtifactStatus.CAPTURED},
                ArtifactStatus.DELIVERED,
                delivered_at=utcnow(),
            )
            logger.info("Capture delivered", artifact_id=artifact.id)
        else:
            await self.repository.transition_artifact(
                artifact.id,
                {ArtifactStatus.CAPTURED},
                ArtifactStatus.FAILED,
                error="Delivery to customer failed",
            )
            logger.warning("Capture could not be delivered", artifact_id=artifact.id)

    async def _record_failure(self, external_id: str, artifact: CaptureArtifact, result: CaptureResult) -> None:
        code = result.error_code or CaptureErrorCode.UNEXPECTED
        await self.repository.transition_artifact(
            artifact.id,
            {ArtifactStatus.PENDING},
            ArtifactStatus.FAILED,
            error=result.error,
        )
        logger.warning("Capture failed", artifact_id=artifact.id, error_code=code.value, error=result.error)

        # The cancel path notifies on its own
        if code == CaptureErrorCode.CANCELLED:
            return
        await self.notifier.notify(
            external_id,
            CustomerEvent(
                EventKind.CAPTURE_FAILED,
                {
                    "session_id": artifact.session_id,
                    "artifact_id": artifact.id,
                    "tracking_number": artifact.tracking_number,
                    "error": result.error,
                    "error_code": code.value,
                    "retryable": code.retryable,
                },
            ),
        )

    async def cancel_active_session(self, customer: Customer) -> RentalSession:
        """Cancel the customer's open session and free its phone."""
        session = await self.repository.get_open_session_for_customer(customer.id, utcnow())
        if session is None:
            raise SessionNotFoundError("No open session")
        return await self._cancel_session(session, notify=False)

    async def _cancel_session(self, session: RentalSession, notify: bool) -> RentalSession:
        cancelled = await self.tracker.cancel(session)
        if cancelled is None:
            current = await self.repository.get_session(session.id) or session
            raise ConflictError(
                f"Session is {current.status.value}",
                code="not_cancellable",
                status=current.status.value,
            )

        await self.supervisor.cancel(session.id)
        await self.allocator.release(session.device_id, session_id=session.id)

        if notify:
            customer = await self.repository.get_customer(session.customer_id)
            if customer is not None:
                await self.notifier.notify(
                    customer.external_id,
                    CustomerEvent(EventKind.SESSION_CANCELLED, {"session_id": session.id}),
                )
        return cancelled

    # ------------------------------------------------------------------
    # Admin: devices
    # ------------------------------------------------------------------

    async def list_devices(self) -> list[Device]:
        return await self.repository.list_devices()

    async def create_device(self, **fields: Any) -> Device:
        device = await self.repository.add_device(Device(**fields))
        logger.info("Device added", device_id=device.id, provider=device.provider)
        return device

    async def update_device(self, device_id: str, **fields: Any) -> Device:
        unknown = set(fields) - EDITABLE_DEVICE_FIELDS
        if unknown:
            raise InvalidRequestError("Unknown device fields", fields=sorted(unknown))
        device = await self.repository.update_device(device_id, **fields)
        if device is None:
            raise DeviceNotFoundError(f"Device {device_id} not found")
        return device

    async def delete_device(self, device_id: str) -> None:
        if not await self.repository.delete_device(device_id):
            raise DeviceNotFoundError(f"Device {device_id} not found")
        logger.info("Device deleted", device_id=device_id)

    async def set_device_status(self, device_id: str, status: DeviceStatus) -> Device:
        return await self.allocator.mark_status(device_id, status)

    # ------------------------------------------------------------------
    # Admin: providers
    # ------------------------------------------------------------------

    def list_providers(self) -> list[dict[str, Any]]:
        return self.registry.configured()

    async def test_provider(self, name: str) -> ProviderTestResult:
        return await self.registry.test(name)

    async def sync_provider(self, name: str) -> SyncResult:
        """Import devices the pool has not seen yet; online ones go straight into service."""
        devices = await self.registry.sync(name)
        if devices is None:
            raise ProviderNotConfiguredError(f'Provider "{name}" not configured')

        imported = 0
        for listed in devices:
            if await self.repository.find_device(name, listed.id) is not None:
                continue
            await self.repository.add_device(
                Device(
                    name=listed.name,
                    provider=name,
                    provider_device_id=listed.id,
                    status=(
                        DeviceStatus.AVAILABLE
                        if listed.status == DeviceState.ONLINE
                        else DeviceStatus.MAINTENANCE
                    ),
                )
            )
            imported += 1

        logger.info("Provider devices imported", provider=name, listed=len(devices), imported=imported)
        return SyncResult(provider=name, devices=devices, imported=imported)

    async def run_provider_command(self, name: str, provider_device_id: str, command: str) -> CommandResult:
        provider = self.registry.get(name)
        if provider is None:
            raise ProviderNotConfiguredError(f'Provider "{name}" not configured')
        return await provider.execute_command(provider_device_id, command)

    async def provider_screenshot(self, name: str, provider_device_id: str) -> dict[str, Any]:
        """Ad-hoc capture of whatever the shipping app shows, outside any session."""
        if name not in self.registry:
            raise ProviderNotConfiguredError(f'Provider "{name}" not configured')

        ref = DeviceRef(provider=name, provider_device_id=provider_device_id, name=provider_device_id)
        result = await self.supervisor.run_with_deadline(partial(self.orchestrator.capture, ref, None))
        if result.success and result.image_data:
            try:
                filename = await self.store.save(result.image_data)
            except UnreadableImageError as e:
                return {"success": False, "error": str(e), "error_code": CaptureErrorCode.SCREENSHOT_FAILED.value}
            return {
                "success": True,
                "has_image": True,
                "image_size": len(result.image_data),
                "image_url": self.store.public_path(filename),
            }
        return {
            "success": result.success,
            "image_url": result.image_url,
            "error": result.error,
            "error_code": result.error_code.value if result.error_code else None,
        }

    # ------------------------------------------------------------------
    # Admin: customers, sessions, subscriptions, artifacts
    # ------------------------------------------------------------------

    async def list_customers(self) -> list[Customer]:
        return await self.repository.list_customers()

    async def set_customer_blocked(self, customer_id: str, blocked: bool) -> Customer:
        customer = await self.repository.update_customer(customer_id, is_blocked=blocked)
        if customer is None:
            raise CustomerNotFoundError(f"Customer {customer_id} not found")
        logger.info("Customer block flag set", customer_id=customer_id, blocked=blocked)
        return customer

    async def list_sessions(self) -> list[RentalSession]:
        return await self.repository.list_sessions()

    async def cancel_session(self, session_id: str) -> RentalSession:
        """Admin cancel: stops the capture, frees the phone and tells the customer."""
        session = await self.repository.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        return await self._cancel_session(session, notify=True)

    async def list_subscriptions(self) -> list[Subscription]:
        return await self.repository.list_subscriptions()

    async def activate_subscription(self, subscription_id: str) -> Subscription:
        return (await self.subscriptions.activate(subscription_id)).subscription

    async def cancel_subscription_by_id(self, subscription_id: str) -> Subscription:
        return await self.subscriptions.cancel(subscription_id)

    async def list_artifacts(self, session_id: Optional[str] = None) -> list[CaptureArtifact]:
        return await self.repository.list_artifacts(session_id)

    async def stats(self) -> PoolStats:
        return await self.repository.stats(utcnow())

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _ensure_not_blocked(customer: Customer) -> None:
        if customer.is_blocked:
            raise InvalidRequestError("Customer is blocked", code="blocked")

    async def _require_subscription(self, customer: Customer) -> Subscription:
        subscription = await self.repository.get_valid_subscription(customer.id, utcnow())
        if subscription is None:
            raise ConflictError("No active subscription", code="no_active_subscription")
        return subscription
