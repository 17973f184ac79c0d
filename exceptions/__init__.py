"""
Exceptions Package for Status Monitor

Provides the exception hierarchy used for error handling
throughout the application.
"""

from exceptions.base import (
    StatusMonitorException,
    ConfigurationError,
    InitializationError,
    ShutdownError,
    AuthenticationError,
    AccessDeniedError
)

from exceptions.database import (
    DatabaseException,
    DatabaseConnectionError,
    DatabaseQueryError,
    DatabaseNotFoundError
)

from exceptions.monitoring import (
    MonitoringException,
    ServiceNotFoundError,
    ServiceDisabledError,
    NotificationError,
    WebhookDeliveryError,
    EmailDeliveryError,
    EmailNotConfiguredError
)

__all__ = [
    # Base exceptions
    "StatusMonitorException",
    "ConfigurationError",
    "InitializationError",
    "ShutdownError",
    "AuthenticationError",
    "AccessDeniedError",

    # Database exceptions
    "DatabaseException",
    "DatabaseConnectionError",
    "DatabaseQueryError",
    "DatabaseNotFoundError",

    # Monitoring exceptions
    "MonitoringException",
    "ServiceNotFoundError",
    "ServiceDisabledError",
    "NotificationError",
    "WebhookDeliveryError",
    "EmailDeliveryError",
    "EmailNotConfiguredError"
]
