"""
DuoPlus Provider
================

Adapter for the DuoPlus cloud phone open API.

Every DuoPlus call is a JSON POST authenticated with a static
``DuoPlus-API-Key`` header. Replies arrive in a ``{code, message, data}``
envelope where any ``code`` other than 200 is a failure, even on HTTP 200.

DuoPlus has no screenshot or app-launch endpoint, so both are built on
top of the shell command endpoint.
"""

import asyncio
import base64
import binascii
import json
import time
from typing import Any, Optional

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

DUOPLUS_API_URL = "https://openapi.duoplus.net"

# Base64 output shorter than this cannot be a real screenshot
MIN_SCREENSHOT_B64_LENGTH = 100

# Power-on endpoints in the order they are tried
_POWER_ON_ATTEMPTS: tuple[tuple[str, str], ...] = (
    ("/api/v1/cloudPhone/batchPowerOn", "image_ids"),
    ("/api/v1/cloudPhone/powerOn", "image_ids"),
    ("/api/v1/cloudPhone/powerOn", "ids"),
    ("/api/v1/cloudPhone/powerOn", "cloud_phone_ids"),
)

_STATUS_MAP = {
    1: DeviceState.ONLINE,
    0: DeviceState.OFFLINE,
    2: DeviceState.OFFLINE,
    3: DeviceState.OFFLINE,
    4: DeviceState.OFFLINE,
    10: DeviceState.STARTING,
    11: DeviceState.STARTING,
}


def map_status(status: Any) -> DeviceState:
    """Map a DuoPlus numeric status to the normalized state."""
    if isinstance(status, bool) or not isinstance(status, int):
        return DeviceState.UNKNOWN
    return _STATUS_MAP.get(status, DeviceState.UNKNOWN)


def _is_retryable_power_on_error(message: str) -> bool:
    """Errors that mean 'wrong endpoint or body shape', not 'device refused'."""
    lowered = message.lower()
    return "permission" in lowered or "required" in lowered


class DuoPlusProvider(CloudPhoneProvider):
    """DuoPlus cloud phone adapter."""

    name = "DuoPlus"

    def __init__(
        self,
        api_key: str,
        api_url: str = DUOPLUS_API_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        screencap_settle_seconds: float = 2.0,
    ) -> None:
        super().__init__(api_url, timeout)
        self._api_key = SecureString(api_key)
        self.screencap_settle_seconds = screencap_settle_seconds
        self._cleanup_tasks: set[asyncio.Task] = set()
        if not self._api_key:
            logger.warning("DuoPlus API key not configured")

    def _headers(self) -> dict[str, str]:
        return {
            "DuoPlus-API-Key": self._api_key.get_secret(),
            "Content-Type": "application/json",
        }

    async def _request(self, path: str, body: Optional[dict[str, Any]] = None) -> Any:
        """
        POST to the API and unwrap the envelope.

        Returns:
            The envelope's ``data`` member.

        Raises:
            ProviderError: On a non-2xx response or an envelope code other than 200.
        """
        session = await self._get_session()
        async with session.post(f"{self.base_url}{path}", json=body or {}) as response:
            if response.status >= 400:
                text = await response.text()
                logger.error("DuoPlus API error", path=path, status=response.status, error=text[:500])
                raise ProviderError(f"DuoPlus API error: {response.status} {text}", code=response.status)
            payload = await response.json(content_type=None)

        if not isinstance(payload, dict) or payload.get("code") != 200:
            code = payload.get("code") if isinstance(payload, dict) else None
            message = payload.get("message", "") if isinstance(payload, dict) else str(payload)
            logger.warning("DuoPlus API response code", path=path, code=code, message=message)
            raise ProviderError(f"DuoPlus error: {message}", code=code)
        return payload.get("data")

    async def list_devices(self) -> list[ProviderDevice]:
        try:
            return await self._list_devices()
        except PROVIDER_ERRORS as e:
            logger.error("Failed to list DuoPlus devices", error=str(e))
            return []

    async def _list_devices(self) -> list[ProviderDevice]:
        data = await self._request("/api/v1/cloudPhone/list", {"page": 1, "pagesize": 100})
        items = mapping_items(as_mapping(data).get("list"))
        return [
            ProviderDevice(
                id=str(item.get("id")),
                name=item.get("name") or f"DuoPlus-{item.get('id')}",
                status=map_status(item.get("status")),
                os=item.get("os"),
                ip=item.get("ip"),
            )
            for item in items
        ]

    async def get_device_status(self, device_id: str) -> ProviderStatus:
        # No detail endpoint; derive status from the listing
        try:
            devices = await self._list_devices()
        except PROVIDER_ERRORS as e:
            return ProviderStatus(online=False, status="error", details={"error": str(e)})

        for device in devices:
            if device.id == device_id:
                return ProviderStatus(
                    online=device.status == DeviceState.ONLINE,
                    status=device.status.value,
                    details=device.to_dict(),
                )
        return ProviderStatus(online=False, status="not_found")

    async def start_device(self, device_id: str) -> bool:
        for path, id_field in _POWER_ON_ATTEMPTS:
            try:
                await self._request(path, {id_field: [device_id]})
            except PROVIDER_ERRORS as e:
                logger.warning("DuoPlus power on attempt failed", path=path, id_field=id_field, error=str(e))
                if _is_retryable_power_on_error(str(e)):
                    continue
                return False
            logger.info("DuoPlus power on requested", device_id=device_id, path=path)
            return True

        logger.error("All DuoPlus power on attempts failed", device_id=device_id)
        return False

    async def stop_device(self, device_id: str) -> bool:
        try:
            await self._request("/api/v1/cloudPhone/batchPowerOff", {"image_ids": [device_id]})
        except PROVIDER_ERRORS as e:
            logger.error("Failed to stop DuoPlus device", device_id=device_id, error=str(e))
            return False
        logger.info("DuoPlus power off requested", device_id=device_id)
        return True

    async def launch_app(self, device_id: str, package_name: str) -> bool:
        """
        Launch via ``monkey``.

        The command endpoint reports odd output for successful launches, so
        anything short of a transport failure counts as launched.
        """
        result = await self.execute_command(
            device_id, f"monkey -p {package_name} -c android.intent.category.LAUNCHER 1"
        )
        if not result.success:
            logger.error("Failed to launch app on DuoPlus device", device_id=device_id, error=result.error)
            return False
        logger.info("Launched app on DuoPlus device", device_id=device_id, package=package_name)
        return True

    async def take_screenshot(self, device_id: str) -> ScreenshotResult:
        path = f"/sdcard/screenshot_{int(time.time() * 1000)}.png"

        cap = await self.execute_command(device_id, f"screencap -p {path}")
        logger.debug("DuoPlus screencap issued", device_id=device_id, success=cap.success)

        await asyncio.sleep(self.screencap_settle_seconds)

        read_back = await self.execute_command(device_id, f"cat {path} | base64 -w 0")
        output = read_back.output or ""
        if not read_back.success or len(output) <= MIN_SCREENSHOT_B64_LENGTH:
            logger.warning(
                "DuoPlus screenshot data insufficient",
                device_id=device_id,
                output_length=len(output),
                preview=output[:200],
            )
            return ScreenshotResult(success=False, error="Could not retrieve screenshot data")

        try:
            image_data = base64.b64decode("".join(output.split()))
        except (binascii.Error, ValueError) as e:
            return ScreenshotResult(success=False, error=f"Invalid screenshot data: {e}")

        self._schedule_cleanup(device_id, path)
        logger.info("DuoPlus screenshot captured", device_id=device_id, size_bytes=len(image_data))
        return ScreenshotResult(success=True, image_data=image_data)

    def _schedule_cleanup(self, device_id: str, path: str) -> None:
        """Remove the temp file in the background; failures are only logged."""
        task = asyncio.create_task(self.execute_command(device_id, f"rm {path}"))
        self._cleanup_tasks.add(task)
        task.add_done_callback(self._cleanup_tasks.discard)

    async def execute_command(self, device_id: str, command: str) -> CommandResult:
        try:
            data = await self._request(
                "/api/v1/cloudPhone/command",
                {"image_id": device_id, "command": command},
            )
        except PROVIDER_ERRORS as e:
            return CommandResult(success=False, error=str(e))

        logger.debug("DuoPlus command response", command=command[:50], response=json.dumps(data)[:500])
        return CommandResult(success=True, output=_extract_output(data, device_id))

    async def close(self) -> None:
        if self._cleanup_tasks:
            await asyncio.gather(*self._cleanup_tasks, return_exceptions=True)
        await super().close()


def _extract_output(data: Any, device_id: str) -> str:
    """Pull command output out of the several reply shapes DuoPlus uses."""
    if isinstance(data, dict):
        if device_id in data:
            per_device = data[device_id]
            if isinstance(per_device, str):
                return per_device
            per_device = as_mapping(per_device)
            return per_device.get("content") or per_device.get("output") or ""
        if data.get("content") is not None:
            return str(data["content"])
        if data.get("output") is not None:
            return str(data["output"])
        if data.get("result") is not None:
            result = data["result"]
            return result if isinstance(result, str) else json.dumps(result)
    if isinstance(data, str):
        return data
    return json.dumps(data)
