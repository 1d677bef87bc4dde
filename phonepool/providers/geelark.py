"""
GeeLark Provider
================

Adapter for the GeeLark cloud phone REST API.

GeeLark uses a static bearer token and plain REST verbs. The screenshot
endpoint answers either with raw image bytes or with a JSON body that
carries an image URL.

Usage:
    provider = GeeLarkProvider(api_token="token")
    devices = await provider.list_devices()
"""

import json
from typing import Any, Optional, Union

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
from phonepool.utils.security import SecureString

logger = get_logger(__name__)

GEELARK_API_URL = "https://api.geelark.com"

_STATUS_MAP = {
    "running": DeviceState.ONLINE,
    "online": DeviceState.ONLINE,
    "on": DeviceState.ONLINE,
    "stopped": DeviceState.OFFLINE,
    "offline": DeviceState.OFFLINE,
    "off": DeviceState.OFFLINE,
    "starting": DeviceState.STARTING,
    "booting": DeviceState.STARTING,
    "stopping": DeviceState.STOPPING,
}


def map_status(status: Any) -> DeviceState:
    """Map a GeeLark status string to the normalized state (case-insensitive)."""
    if not isinstance(status, str):
        return DeviceState.UNKNOWN
    return _STATUS_MAP.get(status.lower(), DeviceState.UNKNOWN)


class GeeLarkProvider(CloudPhoneProvider):
    """GeeLark cloud phone adapter."""

    name = "GeeLark"

    def __init__(
        self,
        api_token: str,
        api_url: str = GEELARK_API_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        super().__init__(api_url, timeout)
        self._token = SecureString(api_token)
        if not self._token:
            logger.warning("GeeLark API token not configured")

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token.get_secret()}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        body: Optional[dict[str, Any]] = None,
    ) -> Union[dict[str, Any], list[Any], bytes]:
        """
        Send a request and decode the reply.

        Returns:
            Parsed JSON, or raw bytes when the reply is not JSON.

        Raises:
            ProviderError: On a non-2xx response.
            aiohttp.ClientError: On transport failure.
        """
        session = await self._get_session()
        async with session.request(method, f"{self.base_url}{path}", json=body) as response:
            if response.status >= 400:
                text = await response.text()
                logger.error("GeeLark API error", path=path, status=response.status, error=text[:500])
                raise ProviderError(f"GeeLark API error: {response.status} {text}", code=response.status)

            if "application/json" in response.headers.get("Content-Type", ""):
                return await response.json()
            return await response.read()

    async def list_devices(self) -> list[ProviderDevice]:
        try:
            data = await self._request("GET", "/devices")
        except PROVIDER_ERRORS as e:
            logger.error("Failed to list GeeLark devices", error=str(e))
            return []

        if isinstance(data, list):
            items = mapping_items(data)
        else:
            payload = as_mapping(data)
            items = mapping_items(payload.get("devices") or payload.get("data"))

        devices = []
        for item in items:
            device_id = str(item.get("id") or item.get("device_id") or "")
            devices.append(
                ProviderDevice(
                    id=device_id,
                    name=item.get("name") or item.get("profile_name") or f"GeeLark-{device_id}",
                    status=map_status(item.get("status")),
                    os=item.get("os") or item.get("android_version"),
                    ip=item.get("ip"),
                )
            )
        return devices

    async def get_device_status(self, device_id: str) -> ProviderStatus:
        try:
            data = await self._request("GET", f"/devices/{device_id}")
        except PROVIDER_ERRORS as e:
            return ProviderStatus(online=False, status="error", details={"error": str(e)})

        if not isinstance(data, dict):
            return ProviderStatus(online=False, status="unknown")
        status = data.get("status") or "unknown"
        return ProviderStatus(online=status in ("running", "online"), status=str(status), details=data)

    async def start_device(self, device_id: str) -> bool:
        try:
            await self._request("POST", f"/devices/{device_id}/start")
        except PROVIDER_ERRORS as e:
            logger.error("Failed to start GeeLark device", device_id=device_id, error=str(e))
            return False
        logger.info("GeeLark device started", device_id=device_id)
        return True

    async def stop_device(self, device_id: str) -> bool:
        try:
            await self._request("POST", f"/devices/{device_id}/stop")
        except PROVIDER_ERRORS as e:
            logger.error("Failed to stop GeeLark device", device_id=device_id, error=str(e))
            return False
        logger.info("GeeLark device stopped", device_id=device_id)
        return True

    async def launch_app(self, device_id: str, package_name: str) -> bool:
        try:
            await self._request("POST", f"/devices/{device_id}/launch-app", {"package_name": package_name})
        except PROVIDER_ERRORS as e:
            logger.error("Failed to launch app on GeeLark device", device_id=device_id, error=str(e))
            return False
        logger.info("Launched app on GeeLark device", device_id=device_id, package=package_name)
        return True

    async def take_screenshot(self, device_id: str) -> ScreenshotResult:
        try:
            data = await self._request("GET", f"/devices/{device_id}/screenshot")
        except PROVIDER_ERRORS as e:
            return ScreenshotResult(success=False, error=str(e))

        if isinstance(data, bytes):
            return ScreenshotResult(success=True, image_data=data)
        if isinstance(data, dict) and (data.get("url") or data.get("image_url")):
            return ScreenshotResult(success=True, image_url=data.get("url") or data.get("image_url"))
        return ScreenshotResult(success=False, error="Unexpected response format")

    async def execute_command(self, device_id: str, command: str) -> CommandResult:
        try:
            data = await self._request("POST", f"/devices/{device_id}/command", {"command": command})
        except PROVIDER_ERRORS as e:
            return CommandResult(success=False, error=str(e))

        if isinstance(data, dict) and data.get("output"):
            return CommandResult(success=True, output=str(data["output"]))
        if isinstance(data, bytes):
            return CommandResult(success=True, output=data.decode("utf-8", errors="replace"))
        return CommandResult(success=True, output=json.dumps(data))

