"""
Configuration Module
Version: 2.0.0

Centralized configuration with validation.
NO HARDCODED SECRETS - script URLs and keys come from the environment.
"""
import logging
from functools import lru_cache
from typing import Dict, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("configuration")


class Settings(BaseSettings):

    # =========================================================================
    # APPLICATION
    # =========================================================================

    APP_ENV: str = Field(default="development")
    APP_NAME: str = Field(default="CreativeFuel Booking")
    APP_VERSION: str = Field(default="2.0.0")
    LOG_LEVEL: str = Field(default="INFO")
    PORT: int = Field(default=3000)

    # =========================================================================
    # UPSTREAM INTEGRATIONS (proxy side)
    # Optional at load time: each endpoint reports its own missing variable.
    # =========================================================================
    N8N_WEBHOOK_URL: Optional[str] = Field(default=None, description="n8n webhook receiving gateway actions")
    APP_KEY: Optional[str] = Field(default=None, description="Shared secret sent as x-app-key")

    GOOGLE_AUTH_SCRIPT_URL: Optional[str] = Field(default=None)
    GOOGLE_CREATORS_SCRIPT_URL: Optional[str] = Field(default=None)
    GOOGLE_MYDAY_SCRIPT_URL: Optional[str] = Field(default=None)
    GOOGLE_BRANDIP_SCRIPT_URL: Optional[str] = Field(default=None)
    GOOGLE_ATTENDANCE_SCRIPT_URL: Optional[str] = Field(default=None)

    WEBHOOK_TIMEOUT: float = Field(default=30.0)
    SCRIPT_TIMEOUT: float = Field(default=30.0)

    # =========================================================================
    # CLIENT
    # =========================================================================
    PROXY_BASE_URL: str = Field(default="http://localhost:3000")
    GATEWAY_TIMEOUT: float = Field(default=60.0)
    READ_TIMEOUT: float = Field(default=10.0)

    LOCK_HOLD_SECONDS: float = Field(default=90.0)
    CONFLICT_RETRY_SECONDS: float = Field(default=90.0)
    SUCCESS_RESET_SECONDS: float = Field(default=3.0)

    BOOKING_TIMEZONE: str = Field(default="Asia/Kolkata")
    BOOKING_API_KEY: str = Field(default="bookingkey")

    # =========================================================================
    # REDIS (client local store)
    # =========================================================================
    REDIS_URL: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection string"
    )
    LOCAL_STORE_TTL: Optional[int] = Field(
        default=None,
        description="Expiry in seconds for local-store keys; unset keeps them until logout"
    )

    # =========================================================================
    # RATE LIMITING (/api/login)
    # =========================================================================
    RATE_LIMIT_PER_MINUTE: int = Field(default=10)
    RATE_LIMIT_WINDOW: int = Field(default=60)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    # =========================================================================
    # COMPUTED PROPERTIES
    # =========================================================================
    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def DEBUG(self) -> bool:
        return self.APP_ENV == "development"

    @property
    def client_script_urls(self) -> Dict[str, Optional[str]]:
        """Script URLs handed to clients by GET /api/config."""
        return {
            "google_creators_script_url": self.GOOGLE_CREATORS_SCRIPT_URL,
            "google_myday_script_url": self.GOOGLE_MYDAY_SCRIPT_URL,
            "google_brandip_script_url": self.GOOGLE_BRANDIP_SCRIPT_URL,
            "google_attendance_script_url": self.GOOGLE_ATTENDANCE_SCRIPT_URL,
        }

    # =========================================================================
    # VALIDATORS
    # =========================================================================
    @field_validator(
        'N8N_WEBHOOK_URL',
        'GOOGLE_AUTH_SCRIPT_URL',
        'GOOGLE_CREATORS_SCRIPT_URL',
        'GOOGLE_MYDAY_SCRIPT_URL',
        'GOOGLE_BRANDIP_SCRIPT_URL',
        'GOOGLE_ATTENDANCE_SCRIPT_URL',
        'PROXY_BASE_URL',
    )
    @classmethod
    def validate_url(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        if not v.startswith(('http://', 'https://')):
            raise ValueError(f"URL must start with http or https: {v}")
        return v.rstrip('/')


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Fails loudly if a configured URL is malformed.
    """
    try:
        return Settings()
    except Exception as e:
        logger.error(f"FATAL CONFIG ERROR: Could not load settings: {e}")
        raise
