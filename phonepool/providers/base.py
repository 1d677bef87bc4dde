"""
Cloud Phone Provider Abstraction
================================

Abstract base class defining the uniform interface over cloud phone vendors.
Every vendor quirk (auth scheme, envelope shape, status vocabulary,
endpoint fallbacks) stays inside its adapter.

Adapters never raise to their callers: transport and semantic failures
are logged and returned as typed failure values. Task cancellation is the
one exception and always propagates.

Usage:
    from phonepool.providers import GeeLarkProvider

    provider = GeeLarkProvider(api_token="...")
    status = await provider.get_device_status("abc")
    if not status.online:
        await provider.start_device("abc")
    shot = await provider.take_screenshot("abc")
    await provider.close()
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import aiohttp

from phonepool.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60.0


class DeviceState(str, Enum):
    """Normalized power state of a provider device."""

    ONLINE = "online"
    OFFLINE = "offline"
    STARTING = "starting"
    STOPPING = "stopping"
    UNKNOWN = "unknown"


@dataclass
class ProviderDevice:
    """
    A phone as reported by a provider listing.

    Attributes:
        id: The provider's device id.
        name: Display name.
        status: Normalized power state.
        os: Android version string, if reported.
        ip: Device IP, if reported.
    """

    id: str
    name: str
    status: DeviceState = DeviceState.UNKNOWN
    os: Optional[str] = None
    ip: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "status": self.status.value, "os": self.os, "ip": self.ip}


@dataclass
class ProviderStatus:
    """
    Power status of a single device.

    Attributes:
        online: Whether the phone is running and reachable.
        status: Raw provider status (or "error"/"not_found").
        details: Raw provider payload, for diagnostics.
    """

    online: bool
    status: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class ScreenshotResult:
    """
    Result of a screenshot request.

    At most one of ``image_data``/``image_url`` is required for success;
    VMOS returns both when the image download worked.
    """

    success: bool
    image_data: Optional[bytes] = None
    image_url: Optional[str] = None
    error: Optional[str] = None


@dataclass
class CommandResult:
    """Result of a shell command run on the phone."""

    success: bool
    output: Optional[str] = None
    error: Optional[str] = None


class ProviderError(Exception):
    """Semantic failure reported inside a provider envelope."""

    def __init__(self, message: str, code: Any = None) -> None:
        super().__init__(message)
        self.code = code


# Failures an adapter turns into typed results. CancelledError is not among them.
PROVIDER_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, ProviderError, ValueError, KeyError, TypeError)


def as_mapping(value: Any) -> dict[str, Any]:
    """A reply member as a dict; any other shape reads as empty."""
    return value if isinstance(value, dict) else {}


def mapping_items(value: Any) -> list[dict[str, Any]]:
    """The dict entries of a reply list, skipping anything else."""
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


class CloudPhoneProvider(ABC):
    """
    Abstract base class for cloud phone providers.

    Subclasses implement the seven device operations and supply their
    authentication headers through :meth:`_headers`.
    """

    name: str = ""

    def __init__(self, base_url: str, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    def _headers(self) -> dict[str, str]:
        """Static headers sent with every request."""
        return {"Content-Type": "application/json"}

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    @abstractmethod
    async def list_devices(self) -> list[ProviderDevice]:
        """
        List the account's phones.

        Returns:
            Devices with normalized status; empty list on failure.
        """

    @abstractmethod
    async def get_device_status(self, device_id: str) -> ProviderStatus:
        """
        Get the power status of one phone.

        Returns:
            ProviderStatus; ``online=False, status="error"`` on failure.
        """

    @abstractmethod
    async def start_device(self, device_id: str) -> bool:
        """Power the phone on. Returns True if the provider accepted it."""

    @abstractmethod
    async def stop_device(self, device_id: str) -> bool:
        """Power the phone off. Returns True if the provider accepted it."""

    @abstractmethod
    async def launch_app(self, device_id: str, package_name: str) -> bool:
        """Bring an installed Android app to the foreground."""

    @abstractmethod
    async def take_screenshot(self, device_id: str) -> ScreenshotResult:
        """Capture the current screen."""

    @abstractmethod
    async def execute_command(self, device_id: str, command: str) -> CommandResult:
        """Run a shell command on the phone."""

    async def __aenter__(self) -> "CloudPhoneProvider":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
