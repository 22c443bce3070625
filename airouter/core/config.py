"""
Configuration management using Pydantic Settings.
"""
from typing import Literal
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True
    )

    # Application Configuration
    app_name: str = Field(default="airouter", alias="APP_NAME")
    app_host: str = Field(default="0.0.0.0", alias="APP_HOST")
    app_port: int = Field(default=8000, alias="APP_PORT")
    app_env: Literal["development", "production", "testing"] = Field(
        default="development", alias="APP_ENV"
    )
    app_debug: bool = Field(default=False, alias="APP_DEBUG")

    # Admin surface
    admin_key: str = Field(
        default="admin-secret-key-change-this",
        alias="ADMIN_KEY",
        description="Admin API key for management endpoints"
    )

    # Database Configuration
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/airouter.db",
        alias="DATABASE_URL"
    )

    # Redis Configuration
    redis_enabled: bool = Field(default=False, alias="REDIS_ENABLED")
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")

    # Logging Configuration
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_file: str = Field(default="", alias="LOG_FILE")
    log_format: Literal["json", "text"] = Field(default="json", alias="LOG_FORMAT")

    # Active health probing
    health_check_enabled: bool = Field(default=True, alias="HEALTH_CHECK_ENABLED")
    health_check_poll_seconds: int = Field(default=10, alias="HEALTH_CHECK_POLL_SECONDS")
    health_check_timeout: int = Field(default=30, alias="HEALTH_CHECK_TIMEOUT")

    # Health bookkeeping
    unhealthy_threshold: int = Field(
        default=5,
        ge=1,
        alias="UNHEALTHY_THRESHOLD",
        description="Consecutive failures before a provider is flagged unhealthy"
    )
    health_window_size: int = Field(default=20, ge=1, alias="HEALTH_WINDOW_SIZE")
    latency_ema_alpha: float = Field(default=0.3, gt=0, le=1, alias="LATENCY_EMA_ALPHA")

    # Routing
    default_routing_strategy: Literal[
        "round-robin", "least-latency", "cost-optimized", "capability-based"
    ] = Field(default="round-robin", alias="DEFAULT_ROUTING_STRATEGY")
    backoff_multiplier: float = Field(default=2.0, ge=1, alias="BACKOFF_MULTIPLIER")
    max_retry_delay_ms: int = Field(default=10000, ge=0, alias="MAX_RETRY_DELAY_MS")
    request_timeout: int = Field(default=60, alias="REQUEST_TIMEOUT")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == "development"

    @property
    def host(self) -> str:
        return self.app_host

    @property
    def port(self) -> int:
        return self.app_port

    @property
    def debug(self) -> bool:
        return self.app_debug


# Global settings instance
settings = Settings()

