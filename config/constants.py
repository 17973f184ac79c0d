"""
Constants Module for Status Monitor

Contains constant values, enumerations, and static configuration
used throughout the application.
"""

from __future__ import annotations

from enum import Enum
from typing import Final


class SettingKeys(str, Enum):
    """
    Runtime Setting Keys

    Keys of the ``settings`` table read by the scheduler and the
    notification channels.
    """

    # Site
    SITE_NAME = "site_name"
    SITE_URL = "site_url"

    # Check cycle
    RETRY_COUNT = "retry_count"
    CHECK_TIMEOUT = "check_timeout"

    # SMTP
    SMTP_ENABLED = "smtp_enabled"
    SMTP_HOST = "smtp_host"
    SMTP_PORT = "smtp_port"
    SMTP_USER = "smtp_user"
    SMTP_PASS = "smtp_pass"
    SMTP_FROM = "smtp_from"
    SMTP_SECURE = "smtp_secure"

    # Email policy
    EMAIL_TO = "email_to"
    EMAIL_IS_GLOBAL = "email_is_global"
    EMAIL_GROUPS = "email_groups"


class WebhookType(str, Enum):
    """Supported outbound webhook flavours."""
    DISCORD = "discord"
    WEBHOOK = "webhook"


class TransitionType(str, Enum):
    """
    Notification Episode Type

    Emitted by the runtime-state bookkeeping when a service crosses
    between healthy and unhealthy.
    """
    NONE = "none"
    DOWN = "down"
    UP = "up"

    @property
    def event_name(self) -> str:
        """Event name used in generic webhook payloads."""
        return f"service.{self.value}"


class Colors:
    """Discord embed colors."""

    ERROR: Final[int] = 0xEF4444
    SUCCESS: Final[int] = 0x22C55E


class Limits:
    """
    Application Limits and Constraints
    """

    MIN_RETRY_COUNT: Final[int] = 0
    MAX_RETRY_COUNT: Final[int] = 10

    # Check history
    DEFAULT_HISTORY_LIMIT: Final[int] = 100
    MAX_HISTORY_LIMIT: Final[int] = 1000
    STATS_WINDOW_HOURS: Final[int] = 24

    # Error messages stored with a check
    MAX_ERROR_MESSAGE_LENGTH: Final[int] = 1000


class Defaults:
    """
    Default Values
    """

    # Probe
    EXPECTED_STATUS: Final[int] = 200
    CHECK_INTERVAL: Final[int] = 60
    CHECK_TIMEOUT_MS: Final[int] = 30000
    TIMEOUT_MESSAGE: Final[str] = "Request timed out"

    # Site
    SITE_NAME: Final[str] = "Status Monitor"
    FOOTER_TEXT: Final[str] = "Status Monitor"

    # SMTP
    SMTP_PORT: Final[int] = 587

    # Webhook templates
    MESSAGE_DOWN: Final[str] = "{service} is down"
    MESSAGE_UP: Final[str] = "{service} is back up"
