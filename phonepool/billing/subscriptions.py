"""
Subscription State Machine
==========================

Moves subscriptions through ``pending_payment -> active`` and
``pending_payment|active -> cancelled``. Expiry is time-driven and never
written.

Payment confirmation can arrive several times and from several places
(processor webhook, customer polling, admin override). Activation is a
guarded ``pending_payment -> active`` update, so only the first arrival
performs it, and only that arrival assigns a device and notifies the
customer. Every later arrival is a no-op that returns the current record.

Usage:
    service = SubscriptionService(repo, crypto_pay, allocator, notifier, settings.payment)
    sub = await service.create_pending(customer, "1week", "USDT")
    outcome = await service.activate(sub.id)
"""

import json
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional

from phonepool.billing.conversion import convert_amount
from phonepool.billing.crypto_pay import SUPPORTED_ASSETS, CryptoPayClient
from phonepool.config import PaymentSettings
from phonepool.domain.models import (
    Customer,
    PaymentMethod,
    Subscription,
    SubscriptionStatus,
    get_plan,
    utcnow,
)
from phonepool.errors import (
    ConflictError,
    InvalidRequestError,
    InvalidSignatureError,
    SubscriptionNotFoundError,
)
from phonepool.messaging.notifier import CustomerEvent, EventKind, Notifier
from phonepool.pool.allocator import DevicePoolAllocator
from phonepool.storage.repository import Repository
from phonepool.utils.logger import get_logger

logger = get_logger(__name__)

INVOICE_PAID = "invoice_paid"


@dataclass
class ActivationOutcome:
    """
    Result of an activation request.

    Attributes:
        subscription: The subscription as it is now.
        activated: True only for the call that performed the transition.
    """

    subscription: Subscription
    activated: bool


@dataclass
class PaymentCheck:
    """Result of polling the processor for a pending invoice."""

    status: str
    subscription: Optional[Subscription] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "subscription": self.subscription.to_dict() if self.subscription else None,
        }


class SubscriptionService:
    """Creates, activates and cancels subscriptions."""

    def __init__(
        self,
        repository: Repository,
        crypto_pay: CryptoPayClient,
        allocator: DevicePoolAllocator,
        notifier: Notifier,
        settings: PaymentSettings,
    ) -> None:
        self.repository = repository
        self.crypto_pay = crypto_pay
        self.allocator = allocator
        self.notifier = notifier
        self.settings = settings

    async def create_pending(self, customer: Customer, plan_id: str, asset: str) -> Subscription:
        """
        Quote a plan in a crypto asset, create the invoice and record a pending subscription.

        Any earlier pending subscription of the customer is cancelled.

        Raises:
            InvalidRequestError: Blocked customer, unknown plan or unsupported asset.
            ConflictError: The customer already has a valid subscription.
            ExchangeRateError: No usable rate for the asset.
            PaymentError: The processor rejected the invoice.
        """
        if customer.is_blocked:
            raise InvalidRequestError("Customer is blocked", code="blocked")
        plan = get_plan(plan_id)
        if plan is None:
            raise InvalidRequestError(f"Unknown plan {plan_id}", code="unknown_plan")
        asset = asset.upper()
        if asset not in SUPPORTED_ASSETS:
            raise InvalidRequestError(f"Unsupported asset {asset}", code="unsupported_asset")
        if await self.repository.get_valid_subscription(customer.id, utcnow()):
            raise ConflictError("Customer already has an active subscription", code="already_subscribed")

        rates = await self.crypto_pay.get_exchange_rates()
        amount = convert_amount(plan.price, asset, rates, self.settings.settlement_currency)

        payload = json.dumps(
            {"customerId": customer.id, "planId": plan.id, "externalId": customer.external_id}
        )
        invoice = await self.crypto_pay.create_invoice(
            asset=asset,
            amount=amount,
            description=f"Pickup code service - {plan.label} subscription",
            payload=payload,
            expires_in=self.settings.invoice_expires_in,
        )

        subscription = Subscription(
            customer_id=customer.id,
            plan_id=plan.id,
            plan_label=plan.label,
            duration_days=plan.duration_days,
            price=plan.price,
            payment_method=PaymentMethod.from_asset(asset),
            invoice_id=invoice.invoice_id,
            invoice_url=invoice.pay_url,
            crypto_asset=asset,
            crypto_amount=amount,
        )
        await self.repository.replace_pending_subscription(subscription)
        logger.info(
            "Pending subscription created",
            subscription_id=subscription.id,
            customer_id=customer.id,
            plan=plan.id,
            invoice_id=invoice.invoice_id,
            amount=amount,
            asset=asset,
        )
        return subscription

    async def activate(self, subscription_id: str) -> ActivationOutcome:
        """
        Activate a paid subscription. Safe to call any number of times.

        Only the call that performs ``pending_payment -> active`` assigns a
        device and notifies the customer. An empty pool does not undo the
        activation; the device is assigned lazily on first request.

        Raises:
            SubscriptionNotFoundError: If the subscription does not exist.
        """
        now = utcnow()
        current = await self.repository.get_subscription(subscription_id)
        if current is None:
            raise SubscriptionNotFoundError(f"Subscription {subscription_id} not found")

        activated = await self.repository.transition_subscription(
            subscription_id,
            {SubscriptionStatus.PENDING_PAYMENT},
            SubscriptionStatus.ACTIVE,
            paid_at=now,
            starts_at=now,
            expires_at=now + timedelta(days=current.duration_days),
        )
        if activated is None:
            latest = await self.repository.get_subscription(subscription_id) or current
            logger.info(
                "Activation ignored",
                subscription_id=subscription_id,
                status=latest.status.value,
            )
            return ActivationOutcome(subscription=latest, activated=False)

        logger.info("Subscription activated", subscription_id=subscription_id, expires_at=activated.expires_at)

        device = await self.allocator.assign(subscription_id)
        if device is not None:
            activated = await self.repository.get_subscription(subscription_id) or activated

        data: dict[str, Any] = {
            "subscription_id": activated.id,
            "plan": activated.plan_label,
            "expires_at": activated.expires_at.isoformat() if activated.expires_at else None,
            "device_assigned": device is not None,
        }
        if device is not None and device.has_delivery_identity:
            data["delivery_name"] = device.delivery_name
            data["locker_code"] = device.locker_code
        await self._notify(activated.customer_id, CustomerEvent(EventKind.SUBSCRIPTION_ACTIVATED, data))

        return ActivationOutcome(subscription=activated, activated=True)

    async def cancel(self, subscription_id: str, notify: bool = True) -> Subscription:
        """
        Cancel a pending or active subscription.

        The assigned device stays bound; a cancelled subscription simply
        stops granting access.

        Raises:
            SubscriptionNotFoundError: If the subscription does not exist.
            ConflictError: If it is already cancelled.
        """
        cancelled = await self.repository.transition_subscription(
            subscription_id,
            {SubscriptionStatus.PENDING_PAYMENT, SubscriptionStatus.ACTIVE},
            SubscriptionStatus.CANCELLED,
        )
        if cancelled is None:
            current = await self.repository.get_subscription(subscription_id)
            if current is None:
                raise SubscriptionNotFoundError(f"Subscription {subscription_id} not found")
            raise ConflictError(
                f"Subscription is {current.status.value}",
                code="not_cancellable",
                status=current.status.value,
            )

        logger.info("Subscription cancelled", subscription_id=subscription_id)
        if notify:
            await self._notify(
                cancelled.customer_id,
                CustomerEvent(
                    EventKind.SUBSCRIPTION_CANCELLED,
                    {"subscription_id": cancelled.id, "plan": cancelled.plan_label},
                ),
            )
        return cancelled

    async def cancel_pending_for(self, customer: Customer) -> Subscription:
        """
        Customer-initiated cancel of the pending subscription.

        Raises:
            SubscriptionNotFoundError: If there is no pending subscription.
        """
        pending = await self.repository.get_pending_subscription(customer.id)
        if pending is None:
            raise SubscriptionNotFoundError("No pending subscription")
        return await self.cancel(pending.id, notify=False)

    async def check_payment(self, customer: Customer) -> PaymentCheck:
        """
        Poll the processor for the customer's pending invoice.

        Returns:
            ``paid`` (and activates), ``expired`` (and cancels), ``pending``,
            or ``none`` if there is nothing to check.
        """
        pending = await self.repository.get_pending_subscription(customer.id)
        if pending is None or not pending.invoice_id:
            return PaymentCheck(status="none")

        invoice = await self.crypto_pay.get_invoice(pending.invoice_id)
        if invoice is None:
            return PaymentCheck(status="pending", subscription=pending)

        if invoice.status == "paid":
            outcome = await self.activate(pending.id)
            return PaymentCheck(status="paid", subscription=outcome.subscription)
        if invoice.status == "expired":
            cancelled = await self.repository.transition_subscription(
                pending.id,
                {SubscriptionStatus.PENDING_PAYMENT},
                SubscriptionStatus.CANCELLED,
            )
            return PaymentCheck(status="expired", subscription=cancelled or pending)
        return PaymentCheck(status="pending", subscription=pending)

    async def handle_webhook(self, raw_body: bytes, signature: Optional[str]) -> Optional[ActivationOutcome]:
        """
        Process a processor webhook.

        The signature is checked before the body is even parsed.

        Returns:
            The activation outcome for a known ``invoice_paid`` update, else None.

        Raises:
            InvalidSignatureError: If the signature does not match.
            InvalidRequestError: If the body is not a JSON object.
        """
        if not self.crypto_pay.verify_signature(raw_body, signature):
            logger.warning("Invalid payment webhook signature")
            raise InvalidSignatureError("Invalid webhook signature")

        try:
            update = json.loads(raw_body)
        except ValueError as e:
            raise InvalidRequestError("Webhook body is not JSON", code="invalid_body") from e
        if not isinstance(update, dict):
            raise InvalidRequestError("Webhook body is not an object", code="invalid_body")

        update_type = update.get("update_type")
        if update_type != INVOICE_PAID:
            logger.info("Ignoring payment webhook", update_type=update_type)
            return None

        payload = update.get("payload")
        invoice_id = payload.get("invoice_id") if isinstance(payload, dict) else None
        if invoice_id is None:
            logger.warning("Paid update without invoice id")
            return None
        logger.info("Invoice paid", invoice_id=invoice_id)

        subscription = await self.repository.get_subscription_by_invoice(str(invoice_id))
        if subscription is None:
            logger.warning("No subscription for invoice", invoice_id=invoice_id)
            return None
        return await self.activate(subscription.id)

    async def _notify(self, customer_id: str, event: CustomerEvent) -> bool:
        customer = await self.repository.get_customer(customer_id)
        if customer is None:
            logger.warning("Cannot notify unknown customer", customer_id=customer_id, kind=event.kind.value)
            return False
        return await self.notifier.notify(customer.external_id, event)
