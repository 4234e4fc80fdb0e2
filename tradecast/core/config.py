"""
Configuration Management
========================
Centralized settings management using Pydantic Settings.
All configuration is loaded from environment variables with validation.
"""

from functools import lru_cache
from typing import List, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from enum import Enum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings are validated on startup. Invalid configuration
    will prevent the application from starting.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------
    app_name: str = "Tradecast"
    app_env: Environment = Environment.DEVELOPMENT
    debug: bool = False
    log_level: str = "INFO"
    log_file: Optional[str] = "logs/tradecast.log"

    # -------------------------------------------------------------------------
    # Database Configuration
    # -------------------------------------------------------------------------
    postgres_user: str = "tradecast"
    postgres_password: str = "tradecast"
    postgres_db: str = "tradecast"
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    database_url: Optional[str] = None

    # -------------------------------------------------------------------------
    # Telegram Delivery
    # -------------------------------------------------------------------------
    telegram_bot_token: str = ""
    telegram_enabled: bool = False
    telegram_caption_limit: int = Field(
        default=1024,
        ge=1,
        description="Maximum photo caption length accepted by Telegram"
    )

    # -------------------------------------------------------------------------
    # Media
    # -------------------------------------------------------------------------
    public_base_url: Optional[str] = Field(
        default=None,
        description="HTTPS base URL used to absolutize relative template images"
    )

    # -------------------------------------------------------------------------
    # Time & Scheduling
    # -------------------------------------------------------------------------
    timezone: str = "Asia/Kolkata"
    scheduler_tick_seconds: float = Field(default=60.0, gt=0)
    wallet_refresh_every_ticks: int = Field(default=1, ge=1)
    pnl_refresh_every_ticks: int = Field(default=5, ge=1)

    # -------------------------------------------------------------------------
    # Risk Sizing (single-exchange conventions)
    # -------------------------------------------------------------------------
    min_leverage: float = Field(default=1.0, ge=1.0)
    max_leverage: float = Field(default=50.0, ge=1.0, le=125.0)
    min_order_notional: float = Field(
        default=5.0,
        ge=0,
        description="Minimum order notional in quote currency"
    )
    min_order_quantity: float = Field(
        default=0.000001,
        gt=0,
        description="Exchange quantity precision floor"
    )
    quote_currency: str = "USDT"

    # -------------------------------------------------------------------------
    # Computed Properties
    # -------------------------------------------------------------------------
    @property
    def db_url(self) -> str:
        """Get the database URL, constructing it if not provided."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def async_db_url(self) -> str:
        """Get async database URL for asyncpg."""
        return self.db_url.replace("postgresql://", "postgresql+asyncpg://")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == Environment.PRODUCTION

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v = v.upper()
        if v not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject zone names the renderer and scheduler could not load."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @field_validator("public_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: Optional[str]) -> Optional[str]:
        if v:
            return v.rstrip("/")
        return v

    def validate_runtime_config(self) -> List[str]:
        """
        Validate runtime configuration and return list of warnings.
        Call this after loading settings to check for potential issues.
        """
        warnings = []

        if self.max_leverage < self.min_leverage:
            warnings.append(
                f"max_leverage ({self.max_leverage}) < min_leverage ({self.min_leverage})"
            )

        if self.is_production and self.debug:
            warnings.append("Debug mode is enabled in production")

        if not self.telegram_enabled and self.is_production:
            warnings.append("Telegram delivery is disabled in production")

        if self.telegram_enabled and not self.telegram_bot_token:
            warnings.append("Telegram enabled but bot token not configured")

        if not self.public_base_url:
            warnings.append(
                "PUBLIC_BASE_URL not set - relative template images will be sent as text only"
            )
        elif not self.public_base_url.startswith("https://"):
            warnings.append("PUBLIC_BASE_URL is not HTTPS and will be ignored for images")

        return warnings


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache ensures settings are only loaded once.
    """
    return Settings()


# Create a global settings instance for easy import
settings = get_settings()
