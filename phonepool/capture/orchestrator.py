"""
Capture Orchestrator
====================

Drives one pickup-code capture on a cloud phone:

1. Make sure the phone is online, powering it on and waiting for boot
   if it is not.
2. Launch the shipping app and let it settle.
3. If a tracking number was given, run the navigation script.
4. Take the screenshot.

Every outcome is a :class:`CaptureResult`; nothing is raised except task
cancellation, so a supervising deadline can stop an attempt at any await.

Usage:
    orchestrator = CaptureOrchestrator(registry, settings.capture)
    result = await orchestrator.capture(device.ref(), "00340434161234567890")
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from phonepool.capture.navigation import NavigationScript, NavigationScriptBook
from phonepool.config import CaptureSettings
from phonepool.domain.models import DeviceRef
from phonepool.providers.base import CloudPhoneProvider
from phonepool.providers.registry import ProviderRegistry
from phonepool.utils.logger import get_logger

logger = get_logger(__name__)

MSG_START_FAILED = (
    "Device is offline and could not be started. "
    "Please power on the device manually from your provider console first."
)
MSG_NOT_READY = "Device was started but is not online yet. Please wait a moment and try again."
MSG_LAUNCH_FAILED = "Failed to launch DHL Paket app"


class CaptureErrorCode(str, Enum):
    """Why a capture failed."""

    PROVIDER_NOT_FOUND = "provider_not_found"
    DEVICE_OFFLINE = "device_offline"
    DEVICE_NOT_READY = "device_not_ready"
    LAUNCH_FAILED = "launch_failed"
    SCREENSHOT_FAILED = "screenshot_failed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    UNEXPECTED = "unexpected"

    @property
    def retryable(self) -> bool:
        """Whether asking again later has a fair chance of succeeding."""
        return self not in (CaptureErrorCode.PROVIDER_NOT_FOUND, CaptureErrorCode.CANCELLED)


@dataclass
class CaptureResult:
    """
    Outcome of one capture attempt.

    Attributes:
        success: Whether a screenshot was obtained.
        image_data: Screenshot bytes, if the provider returned them.
        image_url: Screenshot URL, if the provider returned one.
        error: Human-readable failure reason.
        error_code: Machine-readable failure reason.
    """

    success: bool
    image_data: Optional[bytes] = None
    image_url: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[CaptureErrorCode] = None

    @classmethod
    def failure(cls, code: CaptureErrorCode, error: str) -> "CaptureResult":
        return cls(success=False, error=error, error_code=code)


Sleep = Callable[[float], Awaitable[None]]


class CaptureOrchestrator:
    """Runs the capture sequence against whichever provider owns the device."""

    def __init__(
        self,
        registry: ProviderRegistry,
        settings: CaptureSettings,
        scripts: Optional[NavigationScriptBook] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.registry = registry
        self.settings = settings
        self.scripts = scripts or NavigationScriptBook.default()
        self._sleep = sleep

    async def capture(self, device: DeviceRef, tracking_id: Optional[str] = None) -> CaptureResult:
        """
        Capture the shipping app screen on a device.

        Args:
            device: Provider name and provider device id.
            tracking_id: Tracking number to navigate to; None captures
                whatever the app shows after launch.

        Returns:
            CaptureResult with the image or a typed error.
        """
        provider = self.registry.get(device.provider)
        if provider is None:
            return CaptureResult.failure(
                CaptureErrorCode.PROVIDER_NOT_FOUND,
                f'Provider "{device.provider}" not found or not configured',
            )

        device_id = device.provider_device_id
        logger.info(
            "Starting capture",
            provider=device.provider,
            device_id=device_id,
            with_tracking=tracking_id is not None,
        )

        try:
            offline = await self._ensure_online(provider, device_id)
            if offline is not None:
                return offline

            package = self.settings.target_package
            if not await provider.launch_app(device_id, package):
                return CaptureResult.failure(CaptureErrorCode.LAUNCH_FAILED, MSG_LAUNCH_FAILED)
            await self._sleep(self.settings.launch_settle_seconds)

            if tracking_id is not None:
                script = self.scripts.lookup(device.provider, package)
                if script is None:
                    logger.warning("No navigation script", provider=device.provider, package=package)
                else:
                    await self._navigate(provider, device_id, script, tracking_id)

            shot = await provider.take_screenshot(device_id)
        except Exception as e:
            logger.exception("Capture failed unexpectedly", provider=device.provider, device_id=device_id)
            return CaptureResult.failure(CaptureErrorCode.UNEXPECTED, str(e))

        if not shot.success:
            logger.warning("Screenshot failed", provider=device.provider, device_id=device_id, error=shot.error)
            return CaptureResult.failure(
                CaptureErrorCode.SCREENSHOT_FAILED,
                shot.error or "Screenshot failed",
            )

        logger.info(
            "Capture succeeded",
            provider=device.provider,
            device_id=device_id,
            has_bytes=shot.image_data is not None,
            has_url=shot.image_url is not None,
        )
        return CaptureResult(success=True, image_data=shot.image_data, image_url=shot.image_url)

    async def _ensure_online(self, provider: CloudPhoneProvider, device_id: str) -> Optional[CaptureResult]:
        """Power on an offline device and wait for it. Returns a failure result or None."""
        status = await provider.get_device_status(device_id)
        logger.debug("Device status", device_id=device_id, online=status.online, status=status.status)
        if status.online:
            return None

        logger.info("Device offline, attempting to start", device_id=device_id)
        if not await provider.start_device(device_id):
            return CaptureResult.failure(CaptureErrorCode.DEVICE_OFFLINE, MSG_START_FAILED)

        await self._sleep(self.settings.boot_settle_seconds)

        recheck = await provider.get_device_status(device_id)
        if not recheck.online:
            return CaptureResult.failure(CaptureErrorCode.DEVICE_NOT_READY, MSG_NOT_READY)
        return None

    async def _navigate(
        self,
        provider: CloudPhoneProvider,
        device_id: str,
        script: NavigationScript,
        tracking_id: str,
    ) -> None:
        """Run a navigation script. Step failures are logged, not fatal."""
        for command, delay in script.render(tracking_id):
            result = await provider.execute_command(device_id, command)
            if not result.success:
                logger.warning(
                    "Navigation step failed",
                    device_id=device_id,
                    script=script.name,
                    command=command.split(" ", 2)[1] if " " in command else command,
                    error=result.error,
                )
            await self._sleep(delay)
