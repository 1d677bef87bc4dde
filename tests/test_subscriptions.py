"""
Tests for Subscription State Machine
====================================

Tests for:
- Pending subscription creation and invoice parameters
- Idempotent activation with device assignment
- Cancellation
- Payment polling
- Webhook verification and dispatch
"""

import asyncio
import json

import pytest

from phonepool.billing.crypto_pay import Invoice, compute_signature
from phonepool.domain.models import Device, DeviceStatus, PaymentMethod, SubscriptionStatus
from phonepool.errors import (
    ConflictError,
    InvalidRequestError,
    InvalidSignatureError,
    SubscriptionNotFoundError,
)
from phonepool.messaging.notifier import EventKind

from tests.conftest import CRYPTO_PAY_TOKEN


def signed(update: dict) -> tuple[bytes, str]:
    body = json.dumps(update).encode()
    return body, compute_signature(CRYPTO_PAY_TOKEN, body)


class TestCreatePending:
    """Tests for SubscriptionService.create_pending."""

    @pytest.mark.asyncio
    async def test_creates_invoice_and_pending_record(self, subscription_service, crypto_pay, repo, customer):
        sub = await subscription_service.create_pending(customer, "1week", "usdt")

        assert sub.status == SubscriptionStatus.PENDING_PAYMENT
        assert sub.crypto_asset == "USDT"
        assert sub.crypto_amount == "16.30"
        assert sub.payment_method == PaymentMethod.USDT_TRC20
        assert sub.invoice_id == "1001"
        assert sub.invoice_url.startswith("https://t.me/")

        kwargs = crypto_pay.create_invoice.await_args.kwargs
        assert kwargs["asset"] == "USDT"
        assert kwargs["amount"] == "16.30"
        assert kwargs["expires_in"] == 3600
        assert json.loads(kwargs["payload"]) == {
            "customerId": customer.id,
            "planId": "1week",
            "externalId": "424242",
        }
        assert (await repo.get_pending_subscription(customer.id)).id == sub.id

    @pytest.mark.asyncio
    async def test_replaces_earlier_pending(self, subscription_service, repo, customer):
        first = await subscription_service.create_pending(customer, "1week", "USDT")
        second = await subscription_service.create_pending(customer, "1month", "BTC")

        assert (await repo.get_subscription(first.id)).status == SubscriptionStatus.CANCELLED
        assert second.crypto_amount == "0.00081000"

    @pytest.mark.asyncio
    async def test_rejects_unknown_plan(self, subscription_service, customer):
        with pytest.raises(InvalidRequestError) as exc_info:
            await subscription_service.create_pending(customer, "1year", "USDT")
        assert exc_info.value.code == "unknown_plan"

    @pytest.mark.asyncio
    async def test_rejects_unsupported_asset(self, subscription_service, customer):
        with pytest.raises(InvalidRequestError) as exc_info:
            await subscription_service.create_pending(customer, "1week", "DOGE")
        assert exc_info.value.code == "unsupported_asset"

    @pytest.mark.asyncio
    async def test_rejects_blocked_customer(self, subscription_service, repo, customer):
        blocked = await repo.update_customer(customer.id, is_blocked=True)
        with pytest.raises(InvalidRequestError) as exc_info:
            await subscription_service.create_pending(blocked, "1week", "USDT")
        assert exc_info.value.code == "blocked"

    @pytest.mark.asyncio
    async def test_rejects_when_already_subscribed(self, subscription_service, customer, active_subscription):
        with pytest.raises(ConflictError) as exc_info:
            await subscription_service.create_pending(customer, "1week", "USDT")
        assert exc_info.value.code == "already_subscribed"


class TestActivate:
    """Activation happens once no matter how often it is requested."""

    @pytest.mark.asyncio
    async def test_activates_and_assigns_device(self, subscription_service, notifier, customer, device):
        sub = await subscription_service.create_pending(customer, "1week", "USDT")

        outcome = await subscription_service.activate(sub.id)

        assert outcome.activated is True
        assert outcome.subscription.status == SubscriptionStatus.ACTIVE
        assert outcome.subscription.assigned_device_id == device.id
        assert (outcome.subscription.expires_at - outcome.subscription.starts_at).days == 7

        external_id, event = notifier.notify.await_args.args
        assert external_id == "424242"
        assert event.kind == EventKind.SUBSCRIPTION_ACTIVATED
        assert event.data["device_assigned"] is True
        assert event.data["locker_code"] == "123456789"

    @pytest.mark.asyncio
    async def test_repeated_activation_is_a_noop(self, subscription_service, notifier, repo, customer, device):
        await repo.add_device(Device(name="Phone 2", provider="DuoPlus", provider_device_id="dp-2"))
        sub = await subscription_service.create_pending(customer, "1week", "USDT")

        outcomes = await asyncio.gather(*(subscription_service.activate(sub.id) for _ in range(3)))

        assert [o.activated for o in outcomes].count(True) == 1
        assert notifier.notify.await_count == 1
        assert len(await repo.list_devices(DeviceStatus.IN_USE)) == 1

    @pytest.mark.asyncio
    async def test_activation_with_empty_pool(self, subscription_service, notifier, customer):
        sub = await subscription_service.create_pending(customer, "1week", "USDT")

        outcome = await subscription_service.activate(sub.id)

        assert outcome.activated is True
        assert outcome.subscription.assigned_device_id is None
        assert notifier.notify.await_args.args[1].data["device_assigned"] is False

    @pytest.mark.asyncio
    async def test_cancelled_subscription_is_not_activated(self, subscription_service, repo, customer):
        sub = await subscription_service.create_pending(customer, "1week", "USDT")
        await subscription_service.cancel(sub.id, notify=False)

        outcome = await subscription_service.activate(sub.id)

        assert outcome.activated is False
        assert outcome.subscription.status == SubscriptionStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_unknown_subscription(self, subscription_service):
        with pytest.raises(SubscriptionNotFoundError):
            await subscription_service.activate("missing")


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_active_notifies(self, subscription_service, notifier, active_subscription):
        cancelled = await subscription_service.cancel(active_subscription.id)

        assert cancelled.status == SubscriptionStatus.CANCELLED
        assert notifier.notify.await_args.args[1].kind == EventKind.SUBSCRIPTION_CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_twice_conflicts(self, subscription_service, active_subscription):
        await subscription_service.cancel(active_subscription.id)
        with pytest.raises(ConflictError) as exc_info:
            await subscription_service.cancel(active_subscription.id)
        assert exc_info.value.code == "not_cancellable"

    @pytest.mark.asyncio
    async def test_cancel_pending_for_customer(self, subscription_service, notifier, customer):
        await subscription_service.create_pending(customer, "1week", "USDT")

        cancelled = await subscription_service.cancel_pending_for(customer)

        assert cancelled.status == SubscriptionStatus.CANCELLED
        notifier.notify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancel_pending_without_pending(self, subscription_service, customer):
        with pytest.raises(SubscriptionNotFoundError):
            await subscription_service.cancel_pending_for(customer)


class TestCheckPayment:
    """Tests for polling the processor."""

    @pytest.mark.asyncio
    async def test_nothing_pending(self, subscription_service, customer):
        assert (await subscription_service.check_payment(customer)).status == "none"

    @pytest.mark.asyncio
    async def test_still_pending(self, subscription_service, crypto_pay, customer):
        await subscription_service.create_pending(customer, "1week", "USDT")
        crypto_pay.get_invoice.return_value = Invoice(invoice_id="1001", status="active", asset="USDT", amount="16.30")

        check = await subscription_service.check_payment(customer)

        assert check.status == "pending"
        crypto_pay.get_invoice.assert_awaited_with("1001")

    @pytest.mark.asyncio
    async def test_paid_activates(self, subscription_service, crypto_pay, customer):
        await subscription_service.create_pending(customer, "1week", "USDT")
        crypto_pay.get_invoice.return_value = Invoice(invoice_id="1001", status="paid", asset="USDT", amount="16.30")

        check = await subscription_service.check_payment(customer)

        assert check.status == "paid"
        assert check.subscription.status == SubscriptionStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_unreachable_processor_reads_as_pending(self, subscription_service, crypto_pay, customer):
        await subscription_service.create_pending(customer, "1week", "USDT")
        crypto_pay.get_invoice.return_value = None

        check = await subscription_service.check_payment(customer)

        assert check.status == "pending"
        assert check.subscription.status == SubscriptionStatus.PENDING_PAYMENT

    @pytest.mark.asyncio
    async def test_expired_cancels_silently(self, subscription_service, crypto_pay, notifier, customer):
        sub = await subscription_service.create_pending(customer, "1week", "USDT")
        crypto_pay.get_invoice.return_value = Invoice(invoice_id="1001", status="expired", asset="USDT", amount="16.30")

        check = await subscription_service.check_payment(customer)

        assert check.status == "expired"
        assert check.subscription.id == sub.id
        assert check.subscription.status == SubscriptionStatus.CANCELLED
        notifier.notify.assert_not_awaited()


class TestHandleWebhook:
    """Tests for processor webhooks."""

    @pytest.mark.asyncio
    async def test_bad_signature(self, subscription_service, repo, customer):
        sub = await subscription_service.create_pending(customer, "1week", "USDT")
        body, _ = signed({"update_type": "invoice_paid", "payload": {"invoice_id": 1001}})

        with pytest.raises(InvalidSignatureError):
            await subscription_service.handle_webhook(body, "deadbeef")

        assert (await repo.get_subscription(sub.id)).status == SubscriptionStatus.PENDING_PAYMENT

    @pytest.mark.asyncio
    async def test_paid_invoice_activates(self, subscription_service, repo, customer, device):
        sub = await subscription_service.create_pending(customer, "1week", "USDT")
        body, signature = signed({"update_type": "invoice_paid", "payload": {"invoice_id": 1001}})

        outcome = await subscription_service.handle_webhook(body, signature)

        assert outcome.activated is True
        stored = await repo.get_subscription(sub.id)
        assert stored.status == SubscriptionStatus.ACTIVE
        assert stored.assigned_device_id == device.id

    @pytest.mark.asyncio
    async def test_redelivery_is_harmless(self, subscription_service, notifier, customer):
        await subscription_service.create_pending(customer, "1week", "USDT")
        body, signature = signed({"update_type": "invoice_paid", "payload": {"invoice_id": 1001}})

        first = await subscription_service.handle_webhook(body, signature)
        second = await subscription_service.handle_webhook(body, signature)

        assert first.activated is True
        assert second.activated is False
        assert notifier.notify.await_count == 1

    @pytest.mark.asyncio
    async def test_unknown_invoice(self, subscription_service):
        body, signature = signed({"update_type": "invoice_paid", "payload": {"invoice_id": 9999}})
        assert await subscription_service.handle_webhook(body, signature) is None

    @pytest.mark.asyncio
    async def test_other_update_types_ignored(self, subscription_service):
        body, signature = signed({"update_type": "invoice_expired", "payload": {"invoice_id": 1001}})
        assert await subscription_service.handle_webhook(body, signature) is None

    @pytest.mark.asyncio
    async def test_non_json_body(self, subscription_service):
        body = b"not json"
        with pytest.raises(InvalidRequestError) as exc_info:
            await subscription_service.handle_webhook(body, compute_signature(CRYPTO_PAY_TOKEN, body))
        assert exc_info.value.code == "invalid_body"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [[1001], "1001", None, {}])
    async def test_paid_update_without_usable_payload(self, subscription_service, customer, payload):
        await subscription_service.create_pending(customer, "1week", "USDT")
        body, signature = signed({"update_type": "invoice_paid", "payload": payload})

        assert await subscription_service.handle_webhook(body, signature) is None

    @pytest.mark.asyncio
    async def test_paid_webhook_after_cancel(self, subscription_service, notifier, repo, customer, device):
        sub = await subscription_service.create_pending(customer, "1week", "USDT")
        await subscription_service.cancel_pending_for(customer)
        body, signature = signed({"update_type": "invoice_paid", "payload": {"invoice_id": 1001}})

        outcome = await subscription_service.handle_webhook(body, signature)

        assert outcome.activated is False
        stored = await repo.get_subscription(sub.id)
        assert stored.status == SubscriptionStatus.CANCELLED
        assert stored.assigned_device_id is None
        assert (await repo.get_device(device.id)).status == DeviceStatus.AVAILABLE
        notifier.notify.assert_not_awaited()
