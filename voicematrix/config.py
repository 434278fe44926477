"""
Centralized configuration management for Voice Matrix.

This module provides a Pydantic Settings-based configuration system that:
- Validates environment variables at startup
- Provides type coercion (strings to ints, bools, etc.)
- Groups related settings for better organization
- Exposes properties to check which backends are configured
- Supports .env file loading

Usage:
    from voicematrix.config import get_settings

    settings = get_settings()
    if settings.is_postgres_configured:
        # Use the Postgres storage backend
        ...
"""

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


# =============================================================================
# Database Settings (Postgres / Supabase)
# =============================================================================


class DatabaseSettings(BaseSettings):
    """Configuration for the Postgres datastore and Supabase Auth."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: Optional[SecretStr] = Field(
        default=None,
        description="Postgres connection string (Supabase pooled URL works)",
    )
    db_pool_min_size: int = Field(
        default=1,
        ge=1,
        description="Minimum asyncpg pool size",
    )
    db_pool_max_size: int = Field(
        default=10,
        ge=1,
        description="Maximum asyncpg pool size",
    )

    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL",
    )
    supabase_anon_key: Optional[SecretStr] = Field(
        default=None,
        description="Supabase anon/public key",
    )
    supabase_service_role_key: Optional[SecretStr] = Field(
        default=None,
        description="Supabase service role key (for admin operations)",
    )

    @property
    def is_postgres_configured(self) -> bool:
        """Check if a Postgres connection string is available."""
        return bool(self.database_url)

    @property
    def is_supabase_configured(self) -> bool:
        """Check if Supabase Auth is properly configured."""
        return bool(
            self.supabase_url
            and (self.supabase_service_role_key or self.supabase_anon_key)
        )


# =============================================================================
# Voice Provider Settings (Vapi)
# =============================================================================


class VapiSettings(BaseSettings):
    """Configuration for the Vapi voice assistant API."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    vapi_base_url: str = Field(
        default="https://api.vapi.ai",
        description="Vapi REST API base URL",
    )
    vapi_api_token: Optional[SecretStr] = Field(
        default=None,
        description="Vapi private API token",
    )
    vapi_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Timeout in seconds for each Vapi request",
    )
    vapi_max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retries for network errors and 5xx responses",
    )
    vapi_retry_base_delay: float = Field(
        default=0.5,
        ge=0,
        description="Base delay in seconds for exponential backoff",
    )
    vapi_webhook_secret: Optional[SecretStr] = Field(
        default=None,
        description="Shared secret expected in the x-vapi-secret header",
    )

    # Make.com server webhook attached to every assistant
    make_webhook_url: Optional[str] = Field(
        default=None,
        description="Server URL Vapi posts call events to",
    )
    make_webhook_secret: Optional[SecretStr] = Field(
        default=None,
        description="Secret sent with server webhook calls",
    )

    @property
    def is_configured(self) -> bool:
        """Check if Vapi credentials are available."""
        return bool(self.vapi_api_token)


# =============================================================================
# Security Settings
# =============================================================================


class SecuritySettings(BaseSettings):
    """Configuration for security features."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    dev_mode: bool = Field(
        default=False,
        description="Enable development mode (in-memory backends allowed)",
    )

    allowed_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000",
        description="Comma-separated list of allowed CORS origins",
    )

    encryption_key: Optional[SecretStr] = Field(
        default=None,
        description="Fernet key used to encrypt stored Twilio auth tokens",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def origins_list(self) -> List[str]:
        """Get parsed list of allowed origins."""
        return [
            origin.strip()
            for origin in self.allowed_origins.split(",")
            if origin.strip()
        ]


# =============================================================================
# Demo Account Settings
# =============================================================================


class DemoSettings(BaseSettings):
    """Configuration for time-limited demo accounts."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    demo_duration_days: int = Field(
        default=7,
        ge=1,
        description="Lifetime of a demo account in days",
    )
    analytics_cache_ttl_seconds: int = Field(
        default=300,
        ge=0,
        description="How long dashboard analytics are cached per account",
    )


# =============================================================================
# Logging Settings
# =============================================================================


class LoggingSettings(BaseSettings):
    """Configuration for logging."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_format_json: bool = Field(
        default=False,
        description="Force JSON log format in development",
    )
    request_logging_enabled: bool = Field(
        default=True,
        description="Enable request logging middleware",
    )


# =============================================================================
# Monitoring Settings (Sentry)
# =============================================================================


class SentrySettings(BaseSettings):
    """Configuration for Sentry error tracking."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    sentry_dsn: Optional[str] = Field(
        default=None,
        description="Sentry DSN for error tracking",
    )
    sentry_environment: str = Field(
        default="development",
        description="Sentry environment name",
    )
    sentry_traces_sample_rate: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Sentry transaction sample rate (0.0 to 1.0)",
    )
    sentry_release: Optional[str] = Field(
        default="voice-matrix@1.0.0",
        description="Sentry release version",
    )

    @property
    def is_configured(self) -> bool:
        """Check if Sentry is configured."""
        return bool(self.sentry_dsn)


# =============================================================================
# Main Settings Class
# =============================================================================


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration groups.

    This class provides a single entry point for all application configuration
    with validation, type coercion, and backend detection.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    vapi: VapiSettings = Field(default_factory=VapiSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    demo: DemoSettings = Field(default_factory=DemoSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    sentry: SentrySettings = Field(default_factory=SentrySettings)

    @property
    def is_postgres_configured(self) -> bool:
        return self.database.is_postgres_configured

    @property
    def is_supabase_configured(self) -> bool:
        return self.database.is_supabase_configured

    @property
    def is_vapi_configured(self) -> bool:
        return self.vapi.is_configured

    @property
    def is_sentry_configured(self) -> bool:
        return self.sentry.is_configured

    @property
    def is_production(self) -> bool:
        return self.security.is_production

    @property
    def is_dev_mode(self) -> bool:
        return self.security.dev_mode

    def get_config_summary(self) -> dict:
        """
        Get a summary of configuration status for logging.

        Secrets are never included, only whether they are present.
        """
        return {
            "environment": self.security.environment,
            "dev_mode": self.is_dev_mode,
            "postgres_configured": self.is_postgres_configured,
            "supabase_configured": self.is_supabase_configured,
            "vapi_configured": self.is_vapi_configured,
            "vapi_timeout_seconds": self.vapi.vapi_timeout_seconds,
            "vapi_max_retries": self.vapi.vapi_max_retries,
            "make_webhook_configured": bool(self.vapi.make_webhook_url),
            "encryption_configured": bool(self.security.encryption_key),
            "sentry_configured": self.is_sentry_configured,
            "allowed_origins": self.security.origins_list,
            "log_level": self.logging.log_level,
        }

    def validate_for_startup(self) -> List[str]:
        """
        Return a list of configuration problems that must block startup.

        Outside dev mode the service refuses to run on in-memory backends or
        to accept unauthenticated Vapi webhooks.
        """
        problems: List[str] = []
        if self.is_dev_mode:
            return problems
        if not self.is_postgres_configured:
            problems.append("DATABASE_URL is not set")
        if not self.is_supabase_configured:
            problems.append("SUPABASE_URL and a Supabase key are not set")
        if not self.is_vapi_configured:
            problems.append("VAPI_API_TOKEN is not set")
        if not self.vapi.vapi_webhook_secret:
            problems.append("VAPI_WEBHOOK_SECRET is not set")
        if not self.security.encryption_key:
            problems.append("ENCRYPTION_KEY is not set")
        return problems


@lru_cache()
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload settings.
    """
    return Settings()


def reload_settings() -> Settings:
    """Clear the cache and return freshly loaded settings."""
    get_settings.cache_clear()
    return get_settings()
