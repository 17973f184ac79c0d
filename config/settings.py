"""
Settings Module for Status Monitor

Configuration management using Pydantic Settings.
Supports environment variables, .env files, and runtime configuration.
Includes validation, type checking, and sensible defaults.

Runtime settings that operators change while the process is running
(retry count, check timeout, SMTP, email policy) live in the database
and are served by ``config.site_settings``.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional
from enum import Enum

from pydantic import (
    Field,
    SecretStr,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment enumeration."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging level enumeration."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class DatabaseType(str, Enum):
    """Supported database types."""
    POSTGRESQL = "postgresql"
    SQLITE = "sqlite"


class BaseSettingsConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_default=True
    )


class DatabaseSettings(BaseSettingsConfig):
    """
    Database Configuration Settings

    PostgreSQL in production, SQLite for local development.
    Includes connection pooling and table bootstrap options.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        extra="ignore"
    )

    # Database type and connection
    type: DatabaseType = Field(
        default=DatabaseType.POSTGRESQL,
        description="Database type: postgresql or sqlite"
    )

    # PostgreSQL settings
    host: str = Field(
        default="localhost",
        description="Database host address"
    )
    port: int = Field(
        default=5432,
        ge=1,
        le=65535,
        description="Database port number"
    )
    name: str = Field(
        default="status",
        min_length=1,
        max_length=64,
        description="Database name"
    )
    user: str = Field(
        default="postgres",
        min_length=1,
        max_length=64,
        description="Database username"
    )
    password: SecretStr = Field(
        default=SecretStr(""),
        description="Database password"
    )

    # SQLite settings
    sqlite_path: Path = Field(
        default=Path("data/status.db"),
        description="Path to SQLite database file"
    )

    # Connection pool settings
    pool_size: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Connection pool size"
    )
    max_overflow: int = Field(
        default=20,
        ge=0,
        le=100,
        description="Maximum overflow connections"
    )
    pool_timeout: int = Field(
        default=30,
        ge=1,
        le=300,
        description="Pool connection timeout in seconds"
    )
    pool_recycle: int = Field(
        default=1800,
        ge=60,
        le=7200,
        description="Connection recycle time in seconds"
    )
    pool_pre_ping: bool = Field(
        default=True,
        description="Enable connection health check before use"
    )

    # Query settings
    echo: bool = Field(
        default=False,
        description="Echo SQL queries (debug mode)"
    )

    # Bootstrap
    auto_create_tables: bool = Field(
        default=False,
        description="Create missing tables on startup (development only)"
    )

    @property
    def url(self) -> str:
        """Generate database URL based on configuration."""
        if self.type == DatabaseType.SQLITE:
            # Ensure directory exists
            self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
            return f"sqlite+aiosqlite:///{self.sqlite_path}"

        elif self.type == DatabaseType.POSTGRESQL:
            password = self.password.get_secret_value()
            return (
                f"postgresql+asyncpg://{self.user}:{password}"
                f"@{self.host}:{self.port}/{self.name}"
            )

        raise ValueError(f"Unsupported database type: {self.type}")

    @field_validator("sqlite_path")
    @classmethod
    def validate_sqlite_path(cls, v: Path) -> Path:
        """Validate and normalize SQLite path."""
        if not v.suffix:
            v = v.with_suffix(".db")
        return v


class MonitoringSettings(BaseSettingsConfig):
    """
    Monitoring Configuration Settings

    Static knobs of the health-check scheduler. The retry count and the
    per-request timeout are runtime settings stored in the database.
    """

    model_config = SettingsConfigDict(
        env_prefix="MONITOR_",
        env_file=".env",
        extra="ignore"
    )

    # Intervals
    min_check_interval: int = Field(
        default=10,
        ge=1,
        le=3600,
        description="Floor applied to every service's check interval (seconds)"
    )

    # HTTP probe settings
    default_check_timeout_ms: int = Field(
        default=30000,
        ge=1000,
        le=300000,
        description="Probe timeout used when the check_timeout setting is absent"
    )
    user_agent: str = Field(
        default="status-monitor/1.0",
        description="User agent string sent with every probe"
    )
    follow_redirects: bool = Field(
        default=True,
        description="Follow HTTP redirects while probing"
    )
    verify_ssl: bool = Field(
        default=True,
        description="Verify TLS certificates while probing"
    )

    # Retry settings
    retry_delay: float = Field(
        default=1.0,
        ge=0.0,
        le=60.0,
        description="Delay before the single retry of a timed-out probe (seconds)"
    )

    # Scheduling policy
    skip_overlapping_checks: bool = Field(
        default=False,
        description="Skip a timer firing while the previous cycle is still running"
    )
    settings_cache_ttl: float = Field(
        default=30.0,
        ge=0.0,
        le=3600.0,
        description="Cache lifetime of database settings (0 = re-read every cycle)"
    )


class NotificationSettings(BaseSettingsConfig):
    """
    Notification Delivery Settings

    Transport timeouts for the webhook and email channels. Recipients,
    SMTP credentials and templates are runtime settings.
    """

    model_config = SettingsConfigDict(
        env_prefix="NOTIFY_",
        env_file=".env",
        extra="ignore"
    )

    webhook_timeout: float = Field(
        default=10.0,
        ge=1.0,
        le=120.0,
        description="Timeout for a single webhook POST (seconds)"
    )
    smtp_timeout: float = Field(
        default=30.0,
        ge=1.0,
        le=300.0,
        description="Timeout for SMTP connections (seconds)"
    )


class ApiSettings(BaseSettingsConfig):
    """
    HTTP API Settings

    The aiohttp server exposing check history, the scheduler control
    surface and the live check stream.
    """

    model_config = SettingsConfigDict(
        env_prefix="API_",
        env_file=".env",
        extra="ignore"
    )

    enabled: bool = Field(
        default=True,
        description="Start the HTTP API server"
    )
    host: str = Field(
        default="0.0.0.0",
        description="API bind address"
    )
    port: int = Field(
        default=3001,
        ge=1,
        le=65535,
        description="API port"
    )
    token: Optional[SecretStr] = Field(
        default=None,
        description="Bearer token required by mutating routes (unset = open)"
    )
    sse_keepalive_interval: float = Field(
        default=30.0,
        ge=1.0,
        le=300.0,
        description="Seconds between keepalive comments on the live stream"
    )
    sse_queue_size: int = Field(
        default=256,
        ge=1,
        le=10000,
        description="Buffered messages per live client before it is dropped"
    )
    cors_origin: str = Field(
        default="*",
        description="Access-Control-Allow-Origin value for the live stream"
    )


class LoggingSettings(BaseSettingsConfig):
    """
    Logging Configuration Settings

    Console and file sinks, rotation, and structured output.
    """

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        extra="ignore"
    )

    # General settings
    level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Minimum logging level"
    )

    # Console logging
    console_enabled: bool = Field(
        default=True,
        description="Enable console logging"
    )
    console_colored: bool = Field(
        default=True,
        description="Enable colored console output"
    )

    # File logging
    file_enabled: bool = Field(
        default=True,
        description="Enable file logging"
    )
    file_path: Path = Field(
        default=Path("logs/status.log"),
        description="Log file path"
    )
    file_rotation: str = Field(
        default="10 MB",
        description="Log rotation size (e.g., '10 MB', '1 day')"
    )
    file_retention: str = Field(
        default="30 days",
        description="Log retention period"
    )
    file_compression: str = Field(
        default="gz",
        description="Compression format for rotated logs"
    )

    # Error logging (separate file for errors)
    error_file_enabled: bool = Field(
        default=True,
        description="Enable separate error log file"
    )
    error_file_path: Path = Field(
        default=Path("logs/errors.log"),
        description="Error log file path"
    )

    # JSON logging
    json_enabled: bool = Field(
        default=False,
        description="Enable JSON formatted logging"
    )
    json_file_path: Path = Field(
        default=Path("logs/status.json"),
        description="JSON log file path"
    )


class Settings(BaseSettingsConfig):
    """
    Main Settings Class

    Aggregates all settings sections and provides the main
    configuration interface for the application.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment"
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Application info
    app_name: str = Field(
        default="Status Monitor",
        description="Application name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )

    # Nested settings
    database: DatabaseSettings = Field(
        default_factory=DatabaseSettings
    )
    monitoring: MonitoringSettings = Field(
        default_factory=MonitoringSettings
    )
    notifications: NotificationSettings = Field(
        default_factory=NotificationSettings
    )
    api: ApiSettings = Field(
        default_factory=ApiSettings
    )
    logging: LoggingSettings = Field(
        default_factory=LoggingSettings
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == Environment.DEVELOPMENT

    @model_validator(mode="after")
    def configure_for_environment(self) -> "Settings":
        """Apply environment-specific configuration."""
        if self.is_production:
            # Force secure defaults in production
            self.debug = False
            self.database.echo = False
            self.database.auto_create_tables = False

        elif self.is_development:
            # Development defaults
            if self.logging.level == LogLevel.INFO:
                self.logging.level = LogLevel.DEBUG

        return self


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    This function is cached to ensure a single settings instance
    is used throughout the application lifecycle.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
