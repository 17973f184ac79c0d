"""
Monitoring Exception Classes for Status Monitor

Errors raised by the scheduler control surface and the notification
channels. Probe failures are never exceptions; they are recorded as
unsuccessful check results.
"""

from __future__ import annotations

from typing import Any, Optional

from exceptions.base import StatusMonitorException
from exceptions.database import DatabaseNotFoundError


class MonitoringException(StatusMonitorException):
    """
    Base Monitoring Exception

    Parent class for scheduler-related errors.
    """

    default_error_code = 3000

    def __init__(
        self,
        message: str,
        service_id: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if service_id:
            self.details["service_id"] = service_id


class ServiceNotFoundError(DatabaseNotFoundError):
    """
    Raised by ``start`` and ``run_once`` when the service row is missing.
    """

    default_error_code = 3001

    def __init__(self, service_id: str, **kwargs: Any) -> None:
        super().__init__(
            message=f"Service not found: {service_id}",
            entity_type="Service",
            entity_id=service_id,
            **kwargs
        )
        self.service_id = service_id


class ServiceDisabledError(MonitoringException):
    """
    Raised when a disabled service is asked to be scheduled.
    """

    default_error_code = 3002
    http_status = 409

    def __init__(self, service_id: str, **kwargs: Any) -> None:
        super().__init__(
            f"Service is disabled: {service_id}",
            service_id=service_id,
            **kwargs
        )

    def user_message(self) -> str:
        """Get user-friendly error message."""
        return "Service is disabled"


class NotificationError(StatusMonitorException):
    """
    Base Notification Exception

    Delivery failures are logged by the dispatcher and never reach the
    check cycle.
    """

    default_error_code = 4000

    def __init__(
        self,
        message: str,
        channel: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if channel:
            self.details["channel"] = channel


class WebhookDeliveryError(NotificationError):
    """
    A webhook endpoint rejected the payload or was unreachable.
    """

    default_error_code = 4001

    def __init__(
        self,
        message: str,
        webhook_name: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, channel="webhook", **kwargs)

        if webhook_name:
            self.details["webhook"] = webhook_name

        if status_code is not None:
            self.details["status_code"] = status_code


class EmailDeliveryError(NotificationError):
    """
    The SMTP server refused the message or the connection failed.
    """

    default_error_code = 4002

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(message, channel="email", **kwargs)


class EmailNotConfiguredError(NotificationError):
    """
    SMTP is disabled or missing host, user or recipients.
    """

    default_error_code = 4003
    default_recoverable = True
    http_status = 400

    def __init__(self, message: str = "SMTP is not configured", **kwargs: Any) -> None:
        super().__init__(message, channel="email", **kwargs)
