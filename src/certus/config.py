"""Application configuration using Pydantic Settings.

This module provides centralized configuration management with environment
variable validation, type coercion, and default values.
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Log level options."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log format options."""

    JSON = "json"
    CONSOLE = "console"


class Settings(BaseSettings):
    """Application settings with environment variable validation.

    All settings can be overridden via environment variables.
    The openFDA API key should be provided via OPENFDA_API_KEY or a .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Application
    # ========================================
    app_env: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    app_name: str = Field(
        default="Certus",
        description="Application name",
    )
    app_version: str = Field(
        default="0.1.0",
        description="Application version",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level",
    )
    log_format: LogFormat = Field(
        default=LogFormat.CONSOLE,
        description="Log output format (json for production, console for dev)",
    )

    # ========================================
    # Server
    # ========================================
    host: str = Field(
        default="0.0.0.0",
        description="Server host",
    )
    port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Server port",
    )

    # ========================================
    # openFDA
    # ========================================
    openfda_api_key: SecretStr | None = Field(
        default=None,
        description="openFDA API key (optional, raises the daily request cap)",
    )
    openfda_base_url: str = Field(
        default="https://api.fda.gov",
        description="openFDA API base URL",
    )
    openfda_timeout: float = Field(
        default=15.0,
        gt=0,
        description="openFDA request timeout in seconds",
    )

    # ========================================
    # Cache (TTL values in minutes)
    # ========================================
    cache_ttl_drug_label: int = Field(
        default=1440,
        ge=1,
        description="TTL for drug label responses (minutes)",
    )
    cache_ttl_shortage: int = Field(
        default=30,
        ge=1,
        description="TTL for drug shortage responses (minutes)",
    )
    cache_ttl_adverse_event: int = Field(
        default=60,
        ge=1,
        description="TTL for adverse event responses (minutes)",
    )
    cache_cleanup_interval: int = Field(
        default=3600,
        ge=1,
        description="Seconds between expired-entry sweeps",
    )

    # ========================================
    # Batch analysis
    # ========================================
    batch_max_concurrency: int = Field(
        default=4,
        ge=1,
        le=25,
        description="Maximum per-drug pipelines running at once in a batch",
    )

    # ========================================
    # Trend analysis (events per month)
    # ========================================
    trend_high_frequency_threshold: float = Field(
        default=0.5,
        gt=0,
        description="Events per month above which shortage frequency is High",
    )
    trend_moderate_frequency_threshold: float = Field(
        default=0.2,
        gt=0,
        description="Events per month above which shortage frequency is Moderate",
    )

    # ========================================
    # Derived Properties
    # ========================================
    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == Environment.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == Environment.PRODUCTION

    @property
    def use_json_logs(self) -> bool:
        """Check if JSON logging should be used."""
        return self.log_format == LogFormat.JSON or self.is_production

    @property
    def api_key_configured(self) -> bool:
        """Check if a non-empty openFDA API key is available."""
        return bool(
            self.openfda_api_key and self.openfda_api_key.get_secret_value()
        )

    @model_validator(mode="after")
    def validate_trend_thresholds(self) -> "Settings":
        """Ensure the Moderate band sits below the High band."""
        if self.trend_moderate_frequency_threshold >= self.trend_high_frequency_threshold:
            raise ValueError(
                "trend_moderate_frequency_threshold must be lower than "
                "trend_high_frequency_threshold"
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    This function is cached to avoid re-reading environment variables
    on every access. Use dependency injection in FastAPI routes.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
