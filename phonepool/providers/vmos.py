"""
VMOS Cloud Provider
===================

Adapter for the VMOS Cloud (ArmCloud) open API.

VMOS authenticates with an access key / secret key pair exchanged for a
short-lived STS token. The token is cached and refreshed ahead of its
expiry; concurrent callers share a single refresh.

Replies use a ``{code, msg, data}`` envelope; ``code != 200`` is a failure.
"""

import asyncio
import json
import time
from typing import Any, Callable, Optional

import aiohttp

from phonepool.providers.base import (
    DEFAULT_TIMEOUT_SECONDS,
    PROVIDER_ERRORS,
    CloudPhoneProvider,
    CommandResult,
    DeviceState,
    ProviderDevice,
    ProviderError,
    ProviderStatus,
    ScreenshotResult,
    as_mapping,
    mapping_items,
)
from phonepool.utils.logger import get_logger
from phonepool.utils.security import SecureString, mask_sensitive

logger = get_logger(__name__)

VMOS_API_URL = "https://openapi-hk.armcloud.net"

# Tokens live 60 minutes; refresh after 55
TOKEN_TTL_SECONDS = 55 * 60

PAD_STATUS_ONLINE = 10

_STATUS_MAP = {
    10: DeviceState.ONLINE,
    20: DeviceState.OFFLINE,
    0: DeviceState.OFFLINE,
    5: DeviceState.STARTING,
    15: DeviceState.STOPPING,
}

SCREENSHOT_OPTIONS = {
    "rotation": 0,
    "broadcast": False,
    "definition": 80,
    "resolutionHeight": 1920,
    "resolutionWidth": 1080,
}


def map_status(status: Any) -> DeviceState:
    """Map a VMOS ``padStatus`` to the normalized state. Non-numeric values are unknown."""
    if isinstance(status, bool) or not isinstance(status, int):
        return DeviceState.UNKNOWN
    return _STATUS_MAP.get(status, DeviceState.UNKNOWN)


class VMOSProvider(CloudPhoneProvider):
    """VMOS Cloud adapter with cached STS token."""

    name = "VMOS Cloud"

    def __init__(
        self,
        access_key: str,
        secret_key: str,
        api_url: str = VMOS_API_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(api_url, timeout)
        self._access_key = SecureString(access_key)
        self._secret_key = SecureString(secret_key)
        self._clock = clock
        self._token: Optional[SecureString] = None
        self._token_expires_at = 0.0
        self._token_lock = asyncio.Lock()
        if not (self._access_key and self._secret_key):
            logger.warning("VMOS access key or secret key not configured")

    def _token_valid(self) -> bool:
        return self._token is not None and self._clock() < self._token_expires_at

    async def _ensure_token(self) -> str:
        """
        Return a valid STS token, refreshing it if needed.

        Raises:
            ProviderError: If the token exchange fails.
        """
        if self._token_valid():
            return self._token.get_secret()

        async with self._token_lock:
            # Another caller may have refreshed while we waited
            if self._token_valid():
                return self._token.get_secret()

            data = await self._fetch_token()
            token = data.get("token") if isinstance(data, dict) else data
            if not token:
                raise ProviderError("Token error: empty token")
            self._token = SecureString(str(token))
            self._token_expires_at = self._clock() + TOKEN_TTL_SECONDS
            logger.info("VMOS STS token refreshed", access_key=mask_sensitive(self._access_key.get_secret()))
            return self._token.get_secret()

    async def _fetch_token(self) -> Any:
        session = await self._get_session()
        body = {
            "accessKey": self._access_key.get_secret(),
            "secretKey": self._secret_key.get_secret(),
        }
        async with session.post(f"{self.base_url}/openapi/open/token/stsToken", json=body) as response:
            if response.status >= 400:
                text = await response.text()
                raise ProviderError(f"Token request failed: {response.status} {text}", code=response.status)
            payload = await response.json(content_type=None)

        if not isinstance(payload, dict) or payload.get("code") != 200:
            message = payload.get("msg") if isinstance(payload, dict) else payload
            logger.error("VMOS token refresh failed", message=message)
            raise ProviderError(f"Token error: {message}")
        return payload.get("data")

    async def _request(self, path: str, body: Optional[dict[str, Any]] = None) -> Any:
        """
        POST to the API with the bearer token and unwrap the envelope.

        Raises:
            ProviderError: On a non-2xx response or an envelope code other than 200.
        """
        token = await self._ensure_token()
        session = await self._get_session()
        async with session.post(
            f"{self.base_url}{path}",
            json=body or {},
            headers={"Authorization": f"Bearer {token}"},
        ) as response:
            if response.status >= 400:
                text = await response.text()
                logger.error("VMOS API error", path=path, status=response.status, error=text[:500])
                raise ProviderError(f"VMOS API error: {response.status} {text}", code=response.status)
            payload = await response.json(content_type=None)

        if not isinstance(payload, dict) or payload.get("code") != 200:
            code = payload.get("code") if isinstance(payload, dict) else None
            message = payload.get("msg") if isinstance(payload, dict) else payload
            logger.warning("VMOS response code", path=path, code=code, message=message)
            raise ProviderError(f"VMOS error: {message}", code=code)
        return payload.get("data")

    async def _download(self, url: str) -> Optional[bytes]:
        """Fetch image bytes from a pre-signed URL. None if the download failed."""
        session = await self._get_session()
        try:
            async with session.get(url) as response:
                if response.status != 200:
                    logger.warning("VMOS screenshot download failed", status=response.status)
                    return None
                return await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("VMOS screenshot download failed", error=str(e))
            return None

    async def list_devices(self) -> list[ProviderDevice]:
        try:
            data = await self._request("/openapi/open/instance/list", {"page": 1, "size": 100})
        except PROVIDER_ERRORS as e:
            logger.error("Failed to list VMOS devices", error=str(e))
            return []

        data = as_mapping(data)
        items = mapping_items(data.get("list") or data.get("records"))
        devices = []
        for item in items:
            pad_code = str(item.get("padCode") or item.get("id"))
            status = item.get("padStatus")
            if status is None:
                status = item.get("status")
            devices.append(
                ProviderDevice(
                    id=pad_code,
                    name=item.get("padName") or item.get("name") or f"VMOS-{pad_code}",
                    status=map_status(status),
                    os=item.get("androidVersion") or item.get("os"),
                    ip=item.get("deviceIp") or item.get("padIp"),
                )
            )
        return devices

    async def get_device_status(self, device_id: str) -> ProviderStatus:
        try:
            data = await self._request("/openapi/open/instance/detail", {"padCode": device_id})
        except PROVIDER_ERRORS as e:
            return ProviderStatus(online=False, status="error", details={"error": str(e)})

        data = as_mapping(data)
        raw = data.get("padStatus")
        if raw is None:
            raw = data.get("status", "unknown")
        online = data.get("padStatus") == PAD_STATUS_ONLINE or data.get("status") == "online"
        return ProviderStatus(online=online, status=str(raw), details=data)

    async def start_device(self, device_id: str) -> bool:
        try:
            await self._request("/openapi/open/instance/start", {"padCodes": [device_id]})
        except PROVIDER_ERRORS as e:
            logger.error("Failed to start VMOS instance", device_id=device_id, error=str(e))
            return False
        logger.info("VMOS instance start requested", device_id=device_id)
        return True

    async def stop_device(self, device_id: str) -> bool:
        try:
            await self._request("/openapi/open/instance/stop", {"padCodes": [device_id]})
        except PROVIDER_ERRORS as e:
            logger.error("Failed to stop VMOS instance", device_id=device_id, error=str(e))
            return False
        logger.info("VMOS instance stop requested", device_id=device_id)
        return True

    async def launch_app(self, device_id: str, package_name: str) -> bool:
        try:
            await self._request(
                "/openapi/open/instance/app/start",
                {"padCode": device_id, "packageName": package_name},
            )
        except PROVIDER_ERRORS as e:
            logger.error("Failed to launch app on VMOS instance", device_id=device_id, error=str(e))
            return False
        logger.info("Launched app on VMOS instance", device_id=device_id, package=package_name)
        return True

    async def take_screenshot(self, device_id: str) -> ScreenshotResult:
        try:
            data = await self._request(
                "/openapi/open/instance/screenshot",
                {"padCodes": [device_id], **SCREENSHOT_OPTIONS},
            )
        except PROVIDER_ERRORS as e:
            return ScreenshotResult(success=False, error=str(e))

        result = data[0] if isinstance(data, list) and data else data
        if not isinstance(result, dict):
            return ScreenshotResult(success=False, error="No screenshot data returned")

        image_url = result.get("imageUrl") or result.get("url")
        if image_url:
            image_data = await self._download(image_url)
            return ScreenshotResult(success=True, image_data=image_data, image_url=image_url)

        if result.get("taskId"):
            # Asynchronous capture, the image is not ready yet
            return ScreenshotResult(success=True, image_url=f"pending:taskId={result['taskId']}")

        return ScreenshotResult(success=False, error="No screenshot data returned")

    async def execute_command(self, device_id: str, command: str) -> CommandResult:
        try:
            data = await self._request(
                "/openapi/open/instance/adb/command",
                {"padCode": device_id, "command": command},
            )
        except PROVIDER_ERRORS as e:
            return CommandResult(success=False, error=str(e))

        if isinstance(data, dict) and data.get("output"):
            return CommandResult(success=True, output=str(data["output"]))
        return CommandResult(success=True, output=_as_text(data))


def _as_text(data: Any) -> str:
    return data if isinstance(data, str) else json.dumps(data)
