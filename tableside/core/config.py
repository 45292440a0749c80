"""
Application Configuration Module

Centralizes all configuration using environment variables with Pydantic Settings.
Supports three modes:
    - DEVELOPMENT: Local SQLite database, permissive defaults
    - STAGING: Real database, production-like secrets
    - PRODUCTION: Real database, secrets must be configured

The same settings object drives both the API server and the kitchen
display runtime (poll interval, request timeout, timing policy), so a
single .env file configures a whole restaurant deployment.

Usage:
    from tableside.core.config import get_settings

    settings = get_settings()
    print(settings.kitchen_poll_interval_seconds)

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
import sys
from enum import Enum
from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_JWT_SECRET = "change-me-in-production"


class EnvironmentMode(str, Enum):
    """
    Application environment modes.

    Attributes:
        DEVELOPMENT: Local testing with SQLite and dev secrets
        PRODUCTION: Live environment
        STAGING: Pre-production environment
    """
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    STAGING = "staging"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables or .env file.
    Sensitive values (JWT secret) should NEVER be committed to version control.

    Attributes:
        env_mode: Current environment (development/production/staging)
        debug: Enable verbose logging and error details

        # Database
        database_url: SQLAlchemy async connection string

        # Kitchen timing policy
        prep_base_minutes: Fixed preparation time per order
        prep_minutes_per_item: Additional minutes per item unit
        aging_after_minutes: Elapsed minutes before an order is "aging"
        stale_after_minutes: Elapsed minutes before an order is "stale"

        # Kitchen display
        kitchen_poll_interval_seconds: Network poll period
        kitchen_clock_interval_seconds: Local re-annotation period
        kitchen_request_timeout_seconds: Per-request timeout for the display
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # ENVIRONMENT
    # ==========================================================================

    env_mode: EnvironmentMode = Field(
        default=EnvironmentMode.DEVELOPMENT,
        description="Application environment mode"
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode with verbose logging"
    )

    # ==========================================================================
    # APPLICATION
    # ==========================================================================

    app_name: str = Field(
        default="Tableside Ordering Platform",
        description="Application display name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host"
    )
    api_port: int = Field(
        default=8001,
        description="API server port"
    )
    cors_origins: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins"
    )

    # ==========================================================================
    # DATABASE
    # ==========================================================================

    database_url: str = Field(
        default="sqlite+aiosqlite:///./tableside.db",
        description="SQLAlchemy async database URL"
    )
    database_echo: bool = Field(
        default=False,
        description="Log every SQL statement"
    )

    # ==========================================================================
    # AUTHENTICATION
    # ==========================================================================

    jwt_secret_key: str = Field(
        default=DEFAULT_JWT_SECRET,
        description="Shared secret used to verify bearer tokens"
    )
    jwt_algorithm: str = Field(
        default="HS256",
        description="JWT signing algorithm"
    )
    jwt_access_token_expire_minutes: int = Field(
        default=720,
        description="Lifetime of tokens minted by create_access_token"
    )

    # ==========================================================================
    # KITCHEN TIMING POLICY
    # ==========================================================================

    prep_base_minutes: int = Field(
        default=15,
        ge=0,
        description="Base preparation minutes for every order"
    )
    prep_minutes_per_item: int = Field(
        default=3,
        ge=0,
        description="Extra preparation minutes per item unit"
    )
    aging_after_minutes: int = Field(
        default=10,
        ge=0,
        description="Elapsed minutes after which an order is aging"
    )
    stale_after_minutes: int = Field(
        default=20,
        ge=0,
        description="Elapsed minutes after which an order is stale"
    )

    # ==========================================================================
    # KITCHEN DISPLAY
    # ==========================================================================

    kitchen_api_base_url: str = Field(
        default="http://localhost:8001",
        description="Base URL the kitchen display polls"
    )
    kitchen_poll_interval_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Seconds between order polls"
    )
    kitchen_clock_interval_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Seconds between local clock re-renders"
    )
    kitchen_request_timeout_seconds: float = Field(
        default=8.0,
        gt=0,
        description="Abort a display request after this many seconds"
    )
    kitchen_audio_enabled: bool = Field(
        default=True,
        description="Play an audible alert on new orders"
    )
    kitchen_flash_enabled: bool = Field(
        default=True,
        description="Flash the display on new orders"
    )

    # ==========================================================================
    # VALIDATORS
    # ==========================================================================

    @field_validator("env_mode", mode="before")
    @classmethod
    def validate_env_mode(cls, v: str) -> EnvironmentMode:
        """Convert string to EnvironmentMode enum."""
        if isinstance(v, EnvironmentMode):
            return v
        try:
            return EnvironmentMode(v.lower())
        except ValueError:
            valid = [e.value for e in EnvironmentMode]
            raise ValueError(f"Invalid env_mode. Must be one of: {valid}")

    @model_validator(mode="after")
    def validate_kitchen_intervals(self) -> "Settings":
        """A hung request must be aborted before the next poll fires."""
        if self.kitchen_request_timeout_seconds >= self.kitchen_poll_interval_seconds:
            raise ValueError(
                "kitchen_request_timeout_seconds must be lower than "
                "kitchen_poll_interval_seconds"
            )
        if self.aging_after_minutes > self.stale_after_minutes:
            raise ValueError("aging_after_minutes must not exceed stale_after_minutes")
        return self

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.env_mode == EnvironmentMode.DEVELOPMENT

    @property
    def cors_origins_list(self) -> list[str]:
        """Get allowed CORS origins as a list."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    # ==========================================================================
    # VALIDATION METHODS
    # ==========================================================================

    def validate_production_config(self) -> list[str]:
        """
        Validate that all required production settings are configured.

        Returns:
            List of missing or unsafe configuration keys (empty if all good)
        """
        missing = []

        if not self.is_development:
            if self.jwt_secret_key == DEFAULT_JWT_SECRET:
                missing.append("JWT_SECRET_KEY")
            if self.database_url.startswith("sqlite"):
                missing.append("DATABASE_URL")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are loaded only once and
    stay consistent across the application lifecycle.

    Returns:
        Settings: Configured application settings
    """
    return Settings()


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """
    Configure application-wide logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Configured package logger
    """
    settings = get_settings()

    if settings.debug:
        level = logging.DEBUG

    log_format = "%(asctime)s │ %(levelname)-8s │ %(name)-25s │ %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    logging.basicConfig(
        level=level,
        format=log_format,
        datefmt=date_format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    return logging.getLogger("tableside")
