"""
Configuration Package for Status Monitor

This package contains all configuration-related modules including:
- Settings management with environment variable support
- Constants and enums used throughout the application
- Runtime settings stored in the database (``config.site_settings``)
"""

from config.settings import (
    Settings,
    DatabaseSettings,
    MonitoringSettings,
    NotificationSettings,
    ApiSettings,
    LoggingSettings,
    get_settings
)

from config.constants import (
    SettingKeys,
    WebhookType,
    TransitionType,
    Colors,
    Limits,
    Defaults
)

__all__ = [
    # Settings
    "Settings",
    "DatabaseSettings",
    "MonitoringSettings",
    "NotificationSettings",
    "ApiSettings",
    "LoggingSettings",
    "get_settings",

    # Constants
    "SettingKeys",
    "WebhookType",
    "TransitionType",
    "Colors",
    "Limits",
    "Defaults"
]
