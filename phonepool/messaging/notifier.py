"""
Customer Notifications
======================

Out-of-band push of structured events to the messaging front-end.

The core never formats prose; it emits :class:`CustomerEvent` objects and
the front-end renders them in the customer's language. Delivery failures
are logged and reported as ``False``; they never raise.

Usage:
    notifier = WebhookNotifier(url="https://bot.internal/events", secret="s3cret")
    await notifier.notify("123456789", CustomerEvent(EventKind.CAPTURE_SUCCEEDED, {...}))
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import aiohttp

from phonepool.utils.logger import get_logger
from phonepool.utils.security import SecureString

logger = get_logger(__name__)


class EventKind(str, Enum):
    SUBSCRIPTION_ACTIVATED = "subscription_activated"
    SUBSCRIPTION_CANCELLED = "subscription_cancelled"
    SESSION_CANCELLED = "session_cancelled"
    CAPTURE_SUCCEEDED = "capture_succeeded"
    CAPTURE_FAILED = "capture_failed"


@dataclass
class CustomerEvent:
    kind: EventKind
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self, external_id: str) -> dict[str, Any]:
        return {"external_id": external_id, "kind": self.kind.value, "data": self.data}


class Notifier(ABC):
    """Port for pushing events to a customer."""

    @abstractmethod
    async def notify(self, external_id: str, event: CustomerEvent) -> bool:
        """
        Push an event to a customer.

        Returns:
            True if the front-end accepted the event.
        """

    async def close(self) -> None:
        pass


class LoggingNotifier(Notifier):
    """Logs events instead of pushing them. Used when no callback URL is set."""

    async def notify(self, external_id: str, event: CustomerEvent) -> bool:
        logger.info("Customer event", external_id=external_id, kind=event.kind.value, data=event.data)
        return True


class WebhookNotifier(Notifier):
    """POSTs events as JSON to the messaging front-end."""

    def __init__(self, url: str, secret: str = "", timeout: float = 10.0) -> None:
        self.url = url
        self._secret = SecureString(secret)
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            headers = {"Content-Type": "application/json"}
            if self._secret:
                headers["X-PhonePool-Secret"] = self._secret.get_secret()
            self._session = aiohttp.ClientSession(
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def notify(self, external_id: str, event: CustomerEvent) -> bool:
        session = await self._get_session()
        try:
            async with session.post(self.url, json=event.to_dict(external_id)) as response:
                if 200 <= response.status < 300:
                    logger.debug("Customer event delivered", external_id=external_id, kind=event.kind.value)
                    return True
                logger.warning(
                    "Customer event rejected",
                    external_id=external_id,
                    kind=event.kind.value,
                    status=response.status,
                )
                return False
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("Customer event delivery failed", external_id=external_id, kind=event.kind.value, error=str(e))
            return False

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None


def create_notifier(url: str, secret: str = "", timeout: float = 10.0) -> Notifier:
    """Webhook notifier when a URL is configured, logging notifier otherwise."""
    if url:
        return WebhookNotifier(url=url, secret=secret, timeout=timeout)
    logger.warning("Messaging callback URL not configured, customer events will only be logged")
    return LoggingNotifier()
