"""
Tests for Capture Orchestrator
==============================

Tests for:
- Online check and power-on with boot settle
- App launch failure
- Navigation only when a tracking number is given
- Screenshot failures and unexpected errors
"""

from unittest.mock import AsyncMock

import pytest

from phonepool.capture.orchestrator import (
    MSG_LAUNCH_FAILED,
    MSG_NOT_READY,
    MSG_START_FAILED,
    CaptureErrorCode,
    CaptureOrchestrator,
)
from phonepool.domain.models import DeviceRef
from phonepool.providers.base import CommandResult, ProviderStatus, ScreenshotResult

REF = DeviceRef(provider="DuoPlus", provider_device_id="dp-1", name="Phone 1")


class TestCaptureOrchestrator:
    """Tests for CaptureOrchestrator.capture."""

    @pytest.fixture
    def sleep(self) -> AsyncMock:
        return AsyncMock()

    @pytest.fixture
    def orchestrator(self, registry, capture_settings, sleep) -> CaptureOrchestrator:
        capture_settings.boot_settle_seconds = 15
        capture_settings.launch_settle_seconds = 5
        return CaptureOrchestrator(registry, capture_settings, sleep=sleep)

    @pytest.mark.asyncio
    async def test_success_without_tracking(self, orchestrator, mock_provider, png_bytes, sleep):
        result = await orchestrator.capture(REF)

        assert result.success is True
        assert result.image_data == png_bytes
        mock_provider.start_device.assert_not_awaited()
        mock_provider.launch_app.assert_awaited_once_with("dp-1", "de.dhl.paket")
        mock_provider.execute_command.assert_not_awaited()
        sleep.assert_awaited_once_with(5)

    @pytest.mark.asyncio
    async def test_navigates_with_tracking(self, orchestrator, mock_provider):
        result = await orchestrator.capture(REF, "00340434161234567890")

        assert result.success is True
        commands = [call.args[1] for call in mock_provider.execute_command.await_args_list]
        assert commands[0] == "input tap 70 1850"
        assert "input text '00340434161234567890'" in commands
        assert commands[-1] == "input tap 540 500"

    @pytest.mark.asyncio
    async def test_navigation_failures_are_not_fatal(self, orchestrator, mock_provider):
        mock_provider.execute_command.return_value = CommandResult(success=False, error="adb offline")

        result = await orchestrator.capture(REF, "00340434161234567890")

        assert result.success is True
        mock_provider.take_screenshot.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unknown_provider(self, orchestrator):
        result = await orchestrator.capture(DeviceRef(provider="Nope", provider_device_id="x"))

        assert result.success is False
        assert result.error_code == CaptureErrorCode.PROVIDER_NOT_FOUND
        assert result.error_code.retryable is False

    @pytest.mark.asyncio
    async def test_boots_offline_device(self, orchestrator, mock_provider, sleep):
        mock_provider.get_device_status.side_effect = [
            ProviderStatus(online=False, status="offline"),
            ProviderStatus(online=True, status="online"),
        ]

        result = await orchestrator.capture(REF)

        assert result.success is True
        mock_provider.start_device.assert_awaited_once_with("dp-1")
        assert sleep.await_args_list[0].args == (15,)

    @pytest.mark.asyncio
    async def test_start_failure(self, orchestrator, mock_provider):
        mock_provider.get_device_status.return_value = ProviderStatus(online=False, status="offline")
        mock_provider.start_device.return_value = False

        result = await orchestrator.capture(REF)

        assert result.error_code == CaptureErrorCode.DEVICE_OFFLINE
        assert result.error == MSG_START_FAILED
        mock_provider.launch_app.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_not_ready_after_boot(self, orchestrator, mock_provider):
        mock_provider.get_device_status.return_value = ProviderStatus(online=False, status="starting")

        result = await orchestrator.capture(REF)

        assert result.error_code == CaptureErrorCode.DEVICE_NOT_READY
        assert result.error == MSG_NOT_READY

    @pytest.mark.asyncio
    async def test_launch_failure(self, orchestrator, mock_provider):
        mock_provider.launch_app.return_value = False

        result = await orchestrator.capture(REF, "00340434161234567890")

        assert result.error_code == CaptureErrorCode.LAUNCH_FAILED
        assert result.error == MSG_LAUNCH_FAILED
        mock_provider.take_screenshot.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_screenshot_failure(self, orchestrator, mock_provider):
        mock_provider.take_screenshot.return_value = ScreenshotResult(success=False, error="no data")

        result = await orchestrator.capture(REF)

        assert result.error_code == CaptureErrorCode.SCREENSHOT_FAILED
        assert result.error == "no data"
        assert result.error_code.retryable is True

    @pytest.mark.asyncio
    async def test_unexpected_exception(self, orchestrator, mock_provider):
        mock_provider.launch_app.side_effect = RuntimeError("kaboom")

        result = await orchestrator.capture(REF)

        assert result.error_code == CaptureErrorCode.UNEXPECTED
        assert "kaboom" in result.error
