"""
Configuration Management
========================

Centralized configuration using Pydantic Settings.
Loads from environment variables and .env file.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Shared config that all settings classes use to load .env
_shared_config = SettingsConfigDict(
    env_file=".env",
    env_file_encoding="utf-8",
    env_prefix="",
    extra="ignore",
)


class ProviderSettings(BaseSettings):
    """Cloud phone provider credentials and endpoints."""

    model_config = _shared_config

    # GeeLark
    geelark_api_token: str = Field(default="", description="GeeLark bearer token")
    geelark_api_url: str = Field(default="https://api.geelark.com", description="GeeLark API base URL")

    # DuoPlus
    duoplus_api_key: str = Field(default="", description="DuoPlus API key")
    duoplus_api_url: str = Field(default="https://openapi.duoplus.net", description="DuoPlus API base URL")

    # VMOS Cloud
    vmos_access_key: str = Field(default="", description="VMOS Cloud access key")
    vmos_secret_key: str = Field(default="", description="VMOS Cloud secret key")
    vmos_api_url: str = Field(
        default="https://openapi-hk.armcloud.net",
        description="VMOS Cloud API base URL",
    )

    provider_http_timeout: float = Field(default=60.0, description="Provider HTTP timeout in seconds")

    @property
    def geelark_configured(self) -> bool:
        return bool(self.geelark_api_token)

    @property
    def duoplus_configured(self) -> bool:
        return bool(self.duoplus_api_key)

    @property
    def vmos_configured(self) -> bool:
        return bool(self.vmos_access_key and self.vmos_secret_key)


class PaymentSettings(BaseSettings):
    """Crypto Pay configuration."""

    model_config = _shared_config

    crypto_pay_api_token: str = Field(default="", description="Crypto Pay API token")
    crypto_pay_testnet: bool = Field(default=False, description="Use the Crypto Pay testnet")
    bot_username: str = Field(
        default="",
        description="Messaging bot username, used for the invoice 'paid' button link",
    )
    invoice_expires_in: int = Field(default=3600, description="Invoice lifetime in seconds")
    settlement_currency: str = Field(default="EUR", description="Currency plan prices are quoted in")

    @property
    def configured(self) -> bool:
        return bool(self.crypto_pay_api_token)


class CaptureSettings(BaseSettings):
    """Pickup-code capture behaviour."""

    model_config = _shared_config

    target_package: str = Field(default="de.dhl.paket", description="Android package of the shipping app")
    boot_settle_seconds: float = Field(
        default=15.0,
        description="Wait after powering on an offline device before re-checking its status",
    )
    launch_settle_seconds: float = Field(
        default=5.0,
        description="Wait after launching the target app before navigating",
    )
    capture_deadline_seconds: float = Field(
        default=120.0,
        description="Overall deadline for one capture attempt",
    )
    session_minutes: int = Field(default=5, description="Rental session length in minutes")
    min_tracking_length: int = Field(default=10, description="Minimum tracking number length")
    screenshot_dir: Path = Field(default=Path("screenshots"), description="Where captured images are stored")


class MessagingSettings(BaseSettings):
    """Customer notification channel."""

    model_config = _shared_config

    messaging_callback_url: str = Field(
        default="",
        description="Messaging front-end endpoint receiving customer events (empty = log only)",
    )
    messaging_callback_secret: str = Field(
        default="",
        description="Shared secret sent with every customer event",
    )
    messaging_timeout: float = Field(default=10.0, description="Notification HTTP timeout in seconds")


class ServerSettings(BaseSettings):
    """Server configuration settings."""

    model_config = _shared_config

    server_host: str = Field(default="0.0.0.0", description="Server host")
    server_port: int = Field(default=8000, description="Server port")
    debug: bool = Field(default=True, description="Debug mode")
    environment: str = Field(default="development", description="Environment name (development, staging, production)")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Log level",
    )
    cors_origins: str = Field(default="*", description="CORS origins")

    @field_validator("cors_origins")
    @classmethod
    def parse_cors_origins(cls, v: str) -> str:
        """Keep CORS origins as string, parse when needed."""
        return v

    def get_cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",")]


class Settings(BaseSettings):
    """
    Main settings class combining all configuration sections.

    Usage:
        from phonepool.config import get_settings
        settings = get_settings()
        print(settings.providers.geelark_api_url)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Nested settings
    providers: ProviderSettings = Field(default_factory=ProviderSettings)
    payment: PaymentSettings = Field(default_factory=PaymentSettings)
    capture: CaptureSettings = Field(default_factory=CaptureSettings)
    messaging: MessagingSettings = Field(default_factory=MessagingSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)

    def __init__(self, **kwargs):
        """Initialize settings with nested configuration."""
        super().__init__(**kwargs)
        # Re-initialize nested settings to pick up env vars
        self.providers = kwargs.get("providers") or ProviderSettings()
        self.payment = kwargs.get("payment") or PaymentSettings()
        self.capture = kwargs.get("capture") or CaptureSettings()
        self.messaging = kwargs.get("messaging") or MessagingSettings()
        self.server = kwargs.get("server") or ServerSettings()


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings loaded from environment.
    """
    return Settings()


# Convenience alias
settings = get_settings()
