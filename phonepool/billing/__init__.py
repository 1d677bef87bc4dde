"""
Billing Package
===============

Crypto payments and the subscription lifecycle.

This package contains:
    - crypto_pay: Crypto Pay API client and webhook signature check
    - conversion: Price quoting from the processor's rate table
    - subscriptions: Subscription state machine
"""

from phonepool.billing.conversion import convert_amount
from phonepool.billing.crypto_pay import (
    SIGNATURE_HEADER,
    SUPPORTED_ASSETS,
    CryptoPayClient,
    ExchangeRate,
    Invoice,
    compute_signature,
)
from phonepool.billing.subscriptions import ActivationOutcome, PaymentCheck, SubscriptionService

__all__ = [
    "convert_amount",
    "SIGNATURE_HEADER",
    "SUPPORTED_ASSETS",
    "CryptoPayClient",
    "ExchangeRate",
    "Invoice",
    "compute_signature",
    "ActivationOutcome",
    "PaymentCheck",
    "SubscriptionService",
]
