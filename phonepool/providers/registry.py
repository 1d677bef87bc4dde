"""
Provider Registry
=================

Builds the set of active provider adapters from configuration and gives
the rest of the service a name-keyed lookup. Providers whose credentials
are absent are simply not registered.

Usage:
    registry = ProviderRegistry.from_settings(settings.providers)
    provider = registry.get("DuoPlus")
"""

from dataclasses import dataclass
from typing import Any, Optional

from phonepool.config import ProviderSettings
from phonepool.providers.base import CloudPhoneProvider, ProviderDevice
from phonepool.providers.duoplus import DuoPlusProvider
from phonepool.providers.geelark import GeeLarkProvider
from phonepool.providers.vmos import VMOSProvider
from phonepool.utils.logger import get_logger

logger = get_logger(__name__)

KNOWN_PROVIDERS: tuple[str, ...] = (
    GeeLarkProvider.name,
    DuoPlusProvider.name,
    VMOSProvider.name,
)


@dataclass
class ProviderTestResult:
    success: bool
    message: str
    devices: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success, "message": self.message, "devices": self.devices}


class ProviderRegistry:
    """Name-keyed set of configured provider adapters."""

    def __init__(self, providers: Optional[list[CloudPhoneProvider]] = None) -> None:
        self._providers: dict[str, CloudPhoneProvider] = {}
        for provider in providers or []:
            self.register(provider)

    @classmethod
    def from_settings(cls, settings: ProviderSettings) -> "ProviderRegistry":
        """Register every provider whose credentials are configured."""
        registry = cls()
        if settings.geelark_configured:
            registry.register(
                GeeLarkProvider(
                    api_token=settings.geelark_api_token,
                    api_url=settings.geelark_api_url,
                    timeout=settings.provider_http_timeout,
                )
            )
        if settings.duoplus_configured:
            registry.register(
                DuoPlusProvider(
                    api_key=settings.duoplus_api_key,
                    api_url=settings.duoplus_api_url,
                    timeout=settings.provider_http_timeout,
                )
            )
        if settings.vmos_configured:
            registry.register(
                VMOSProvider(
                    access_key=settings.vmos_access_key,
                    secret_key=settings.vmos_secret_key,
                    api_url=settings.vmos_api_url,
                    timeout=settings.provider_http_timeout,
                )
            )
        logger.info("Cloud phone providers active", count=len(registry), providers=registry.names())
        return registry

    def register(self, provider: CloudPhoneProvider) -> None:
        self._providers[provider.name] = provider
        logger.info("Provider registered", provider=provider.name)

    def get(self, name: str) -> Optional[CloudPhoneProvider]:
        return self._providers.get(name)

    def names(self) -> list[str]:
        return list(self._providers)

    def configured(self) -> list[dict[str, Any]]:
        """All known provider names with a configured flag, for the admin surface."""
        names = list(KNOWN_PROVIDERS) + [n for n in self._providers if n not in KNOWN_PROVIDERS]
        return [{"name": name, "configured": name in self._providers} for name in names]

    async def test(self, name: str) -> ProviderTestResult:
        """Check connectivity by listing the provider's devices."""
        provider = self.get(name)
        if provider is None:
            return ProviderTestResult(success=False, message=f'Provider "{name}" not configured. Missing API key.')

        devices = await provider.list_devices()
        return ProviderTestResult(
            success=True,
            message=f"Connected to {name}. Found {len(devices)} device(s).",
            devices=len(devices),
        )

    async def sync(self, name: str) -> Optional[list[ProviderDevice]]:
        """
        List a provider's devices for import into the pool.

        Returns:
            The provider listing, or None if the provider is not configured.
        """
        provider = self.get(name)
        if provider is None:
            return None
        devices = await provider.list_devices()
        logger.info("Synced devices from provider", provider=name, count=len(devices))
        return devices

    async def close(self) -> None:
        for provider in self._providers.values():
            await provider.close()

    def __len__(self) -> int:
        return len(self._providers)

    def __contains__(self, name: object) -> bool:
        return name in self._providers
