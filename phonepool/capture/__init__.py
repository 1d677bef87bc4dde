"""
Capture Package
===============

Pickup-code capture on cloud phones.

This package contains:
    - navigation: Data-driven UI navigation scripts
    - orchestrator: Online check, app launch, navigation, screenshot
    - supervisor: Background capture tasks with deadline and cancellation
    - store: Content-addressed screenshot storage
"""

from phonepool.capture.navigation import (
    DHL_PAKET_PACKAGE,
    DHL_TRACKING_SCRIPT,
    NavigationScript,
    NavigationScriptBook,
)
from phonepool.capture.orchestrator import CaptureErrorCode, CaptureOrchestrator, CaptureResult
from phonepool.capture.store import ScreenshotStore, UnreadableImageError
from phonepool.capture.supervisor import CaptureSupervisor

__all__ = [
    "DHL_PAKET_PACKAGE",
    "DHL_TRACKING_SCRIPT",
    "NavigationScript",
    "NavigationScriptBook",
    "CaptureErrorCode",
    "CaptureOrchestrator",
    "CaptureResult",
    "ScreenshotStore",
    "UnreadableImageError",
    "CaptureSupervisor",
]
