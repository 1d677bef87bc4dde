"""
Cloud Phone Providers
=====================

Uniform adapters over the supported cloud phone vendors.

This package contains:
    - base: Abstract provider interface and result types
    - geelark: GeeLark REST adapter (bearer token)
    - duoplus: DuoPlus adapter (API-key header, command-based screenshots)
    - vmos: VMOS Cloud adapter (STS token exchange)
    - registry: Configuration-driven provider lookup
"""

from phonepool.providers.base import (
    CloudPhoneProvider,
    CommandResult,
    DeviceState,
    ProviderDevice,
    ProviderStatus,
    ScreenshotResult,
)
from phonepool.providers.duoplus import DuoPlusProvider
from phonepool.providers.geelark import GeeLarkProvider
from phonepool.providers.registry import KNOWN_PROVIDERS, ProviderRegistry
from phonepool.providers.vmos import VMOSProvider

__all__ = [
    "CloudPhoneProvider",
    "CommandResult",
    "DeviceState",
    "ProviderDevice",
    "ProviderStatus",
    "ScreenshotResult",
    "DuoPlusProvider",
    "GeeLarkProvider",
    "VMOSProvider",
    "KNOWN_PROVIDERS",
    "ProviderRegistry",
]
