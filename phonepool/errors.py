"""
Domain Errors
=============

Exceptions raised by the service layer. Each carries a stable ``code``
that the HTTP layer and the messaging front-end key on.

Provider adapters and the capture orchestrator never raise these; they
return typed failure results instead.
"""

from typing import Any, Optional


class PhonePoolError(Exception):
    """Base class for all domain errors."""

    code = "error"
    status_code = 400

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, **self.details}


class NotFoundError(PhonePoolError):
    code = "not_found"
    status_code = 404


class CustomerNotFoundError(NotFoundError):
    code = "customer_not_found"


class DeviceNotFoundError(NotFoundError):
    code = "device_not_found"


class SessionNotFoundError(NotFoundError):
    code = "session_not_found"


class SubscriptionNotFoundError(NotFoundError):
    code = "subscription_not_found"


class ProviderNotConfiguredError(NotFoundError):
    code = "provider_not_configured"


class InvalidRequestError(PhonePoolError):
    """Caller supplied something the service cannot act on."""

    code = "invalid_request"
    status_code = 400

    def __init__(self, message: str, code: Optional[str] = None, **details: Any) -> None:
        super().__init__(message, details)
        if code:
            self.code = code


class ConflictError(PhonePoolError):
    """The requested transition is not allowed from the current state."""

    code = "conflict"
    status_code = 409

    def __init__(self, message: str, code: Optional[str] = None, **details: Any) -> None:
        super().__init__(message, details)
        if code:
            self.code = code


class PaymentError(PhonePoolError):
    """The payment processor rejected or failed a call."""

    code = "payment_error"
    status_code = 502


class ExchangeRateError(PaymentError):
    """No usable exchange rate for the requested asset."""

    code = "exchange_rate_unavailable"


class InvalidSignatureError(PhonePoolError):
    """Webhook body does not match its signature."""

    code = "invalid_signature"
    status_code = 401
