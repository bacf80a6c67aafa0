"""
Configuration management for the document change monitor.

Handles environment variables, configuration file loading, and provides
default settings with validation for all system components.
"""

from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from doc_change_monitor.models.exceptions import ConfigurationError


class LogLevel(str, Enum):
    """Logging level enumeration."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class MonitorConfig(BaseSettings):
    """
    Central configuration class for the document change monitor.

    Handles all configuration options with environment variable support,
    validation, and sensible defaults for development and production use.
    """

    model_config = SettingsConfigDict(
        env_prefix="DOC_CHANGE_MONITOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        use_enum_values=True,
    )

    # === Upstream API Configuration ===
    api_base_url: str = Field(default="https://open.feishu.cn", description="Base URL of the document API")
    api_access_token: str | None = Field(default=None, description="Bearer token sent to the document API")
    api_timeout_seconds: float = Field(default=10.0, gt=0, le=120, description="Per-request timeout")

    # === Metadata Cache Configuration ===
    metadata_cache_ttl_seconds: float = Field(
        default=30.0, ge=0.0, le=3600.0, description="How long fetched metadata is reused (0 disables)"
    )

    # === Retry Configuration ===
    fetch_max_retries: int = Field(default=3, ge=0, le=10, description="Retries after a transient fetch failure")
    fetch_backoff_base_seconds: float = Field(default=0.2, ge=0.0, le=10.0, description="First backoff delay")
    fetch_backoff_factor: float = Field(default=2.0, ge=1.0, le=10.0, description="Backoff growth factor")
    fetch_backoff_max_seconds: float = Field(default=5.0, ge=0.0, le=60.0, description="Largest backoff delay")

    # === State Store Configuration ===
    database_url: str = Field(
        default="sqlite:///doc_change_monitor.db", description="SQLAlchemy URL of the state database"
    )
    store_timeout_seconds: float = Field(default=15.0, gt=0, le=300, description="Storage operation timeout")

    # === Polling Configuration ===
    poll_interval_seconds: float = Field(default=30.0, gt=0, le=3600, description="Time between poll cycles")
    poll_batch_size: int = Field(default=200, ge=1, le=200, description="Documents per batch (API limit 200)")
    max_concurrent_fetches: int = Field(default=10, ge=1, le=100, description="Worker slots per batch")
    debounce_window_seconds: float = Field(
        default=5.0, ge=0.0, le=86400.0, description="Minimum time between two notifications for a document"
    )
    auto_pause_threshold: int = Field(
        default=5, ge=1, le=100, description="Consecutive permanent errors before a document is paused"
    )

    # === Notification Configuration ===
    notifier_webhook_url: str | None = Field(default=None, description="Webhook receiving notification events")
    notification_timeout_seconds: float = Field(default=10.0, gt=0, le=120, description="Notifier send timeout")

    # === Health Configuration ===
    degraded_error_rate: float = Field(default=0.1, ge=0.0, le=1.0, description="Error rate marking degraded")
    unhealthy_error_rate: float = Field(default=0.5, ge=0.0, le=1.0, description="Error rate marking unhealthy")
    store_recovery_max_backoff_seconds: float = Field(
        default=300.0, gt=0, le=3600, description="Longest wait between store recovery probes"
    )

    # === Logging Configuration ===
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    log_file: Path | None = Field(default=None, description="Log file path (stderr if None)")
    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s", description="Log message format"
    )

    @field_validator('api_base_url')
    @classmethod
    def validate_api_base_url(cls, v):
        """Strip trailing slashes so paths can be appended safely."""
        v = v.rstrip('/')
        if not v.startswith(('http://', 'https://')):
            raise ValueError("api_base_url must be an http(s) URL")
        return v

    @model_validator(mode='after')
    def validate_health_thresholds(self):
        """Ensure the unhealthy threshold sits above the degraded one."""
        if self.unhealthy_error_rate <= self.degraded_error_rate:
            raise ConfigurationError(
                "unhealthy_error_rate must be greater than degraded_error_rate",
                config_key="unhealthy_error_rate",
                expected_type="float > degraded_error_rate",
                actual_value=self.unhealthy_error_rate,
            )
        return self

    @model_validator(mode='after')
    def validate_backoff(self):
        """Ensure the backoff cap is not below the first delay."""
        if self.fetch_backoff_max_seconds < self.fetch_backoff_base_seconds:
            raise ConfigurationError(
                "fetch_backoff_max_seconds cannot be lower than fetch_backoff_base_seconds",
                config_key="fetch_backoff_max_seconds",
                expected_type="float >= fetch_backoff_base_seconds",
                actual_value=self.fetch_backoff_max_seconds,
            )
        return self

    @property
    def debounce_window(self) -> timedelta:
        """Debounce window as a timedelta."""
        return timedelta(seconds=self.debounce_window_seconds)

    def get_http_headers(self) -> dict[str, str]:
        """Get headers sent with every upstream API request."""
        headers = {"Content-Type": "application/json; charset=utf-8"}
        if self.api_access_token:
            headers["Authorization"] = f"Bearer {self.api_access_token}"
        return headers

    def get_engine_options(self) -> dict[str, Any]:
        """Get keyword arguments for ``sqlalchemy.create_engine``."""
        options: dict[str, Any] = {"pool_pre_ping": True}
        if self.database_url.startswith("sqlite"):
            # sqlite3 waits this long for a competing writer's lock
            options["connect_args"] = {"timeout": self.store_timeout_seconds, "check_same_thread": False}
        return options

    def get_log_config(self) -> dict[str, Any]:
        """Get logging configuration dictionary."""
        config = {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"standard": {"format": self.log_format}},
            "handlers": {
                "default": {
                    "level": self.log_level,
                    "formatter": "standard",
                    "class": "logging.StreamHandler" if not self.log_file else "logging.FileHandler",
                }
            },
            "loggers": {
                "doc_change_monitor": {"handlers": ["default"], "level": self.log_level, "propagate": False}
            },
        }

        if self.log_file:
            config["handlers"]["default"]["filename"] = str(self.log_file)

        return config


# Global configuration instance
_config: MonitorConfig | None = None


def get_config() -> MonitorConfig:
    """
    Get the global configuration instance.

    Creates a new instance on first call and reuses it for subsequent calls.
    """
    global _config
    if _config is None:
        _config = MonitorConfig()
    return _config


def reload_config() -> MonitorConfig:
    """
    Force reload the configuration from environment/files.

    Useful for testing or when configuration needs to be updated at runtime.
    """
    global _config
    _config = MonitorConfig()
    return _config


def set_config(config: MonitorConfig) -> None:
    """Set a custom configuration instance, mainly for tests."""
    global _config
    _config = config
