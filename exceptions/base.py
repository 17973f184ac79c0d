"""
Base Exception Classes for Status Monitor

Provides the foundation exception hierarchy from which all
other exceptions inherit.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Type
from datetime import datetime, timezone
import traceback
import sys


class StatusMonitorException(Exception):
    """
    Base Exception Class

    All custom exceptions in the application inherit from this class.
    Provides common functionality for error handling, logging, and
    serialization.

    Attributes:
        message: Human-readable error message
        error_code: Numeric error code for categorization
        details: Additional error details as dictionary
        timestamp: When the exception occurred
        traceback_str: String representation of the traceback
        recoverable: Whether the error is recoverable
        notify_admin: Whether an operator should be alerted
    """

    # Default error code
    default_error_code: int = 1000

    # Default recoverability
    default_recoverable: bool = True

    # Default operator notification
    default_notify_admin: bool = False

    # HTTP status used when the error crosses the API boundary
    http_status: int = 500

    def __init__(
        self,
        message: str = "An error occurred",
        error_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: Optional[bool] = None,
        notify_admin: Optional[bool] = None
    ) -> None:
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            error_code: Numeric error code
            details: Additional error details
            cause: The underlying exception that caused this one
            recoverable: Whether the error is recoverable
            notify_admin: Whether an operator should be alerted
        """
        super().__init__(message)

        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        self.cause = cause
        self.recoverable = recoverable if recoverable is not None else self.default_recoverable
        self.notify_admin = notify_admin if notify_admin is not None else self.default_notify_admin
        self.timestamp = datetime.now(timezone.utc)

        # Capture traceback
        self.traceback_str = self._capture_traceback()

    def _capture_traceback(self) -> str:
        """Capture the current traceback as a string."""
        exc_info = sys.exc_info()
        if exc_info[0] is None:
            return ""
        return "".join(traceback.format_exception(*exc_info))

    @property
    def full_message(self) -> str:
        """Get full error message with code."""
        return f"[{self.error_code}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for logging/serialization.

        Returns:
            Dictionary representation of the exception
        """
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "recoverable": self.recoverable,
            "notify_admin": self.notify_admin,
            "cause": str(self.cause) if self.cause else None,
            "traceback": self.traceback_str if not self.recoverable else None
        }

    def log_format(self) -> str:
        """
        Format exception for logging.

        Returns:
            Formatted string for logging
        """
        parts = [
            f"Exception: {self.__class__.__name__}",
            f"Code: {self.error_code}",
            f"Message: {self.message}"
        ]

        if self.details:
            parts.append(f"Details: {self.details}")

        if self.cause:
            parts.append(f"Cause: {self.cause}")

        return " | ".join(parts)

    def user_message(self) -> str:
        """
        Get user-friendly error message.

        Returns:
            Message suitable for API responses
        """
        return self.message

    @classmethod
    def from_exception(
        cls,
        exception: Exception,
        message: Optional[str] = None,
        **kwargs: Any
    ) -> "StatusMonitorException":
        """
        Create from another exception.

        Args:
            exception: The original exception
            message: Override message (uses original if not provided)
            **kwargs: Additional arguments for the exception

        Returns:
            New exception instance
        """
        return cls(
            message=message or str(exception),
            cause=exception,
            **kwargs
        )

    def __str__(self) -> str:
        """String representation."""
        return self.full_message

    def __repr__(self) -> str:
        """Detailed string representation."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code}, "
            f"details={self.details})"
        )


class ConfigurationError(StatusMonitorException):
    """
    Configuration Error

    Raised when there are issues with application configuration,
    environment variables, or runtime settings.
    """

    default_error_code = 1100
    default_recoverable = False
    default_notify_admin = True

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected_type: Optional[Type] = None,
        **kwargs: Any
    ) -> None:
        """
        Initialize configuration error.

        Args:
            message: Error message
            config_key: The configuration key that caused the error
            expected_type: The expected type for the configuration value
            **kwargs: Additional arguments
        """
        super().__init__(message, **kwargs)

        if config_key:
            self.details["config_key"] = config_key

        if expected_type:
            self.details["expected_type"] = expected_type.__name__


class InitializationError(StatusMonitorException):
    """
    Initialization Error

    Raised when the application fails to initialize properly.
    This includes database connections, scheduler seeding, etc.
    """

    default_error_code = 1200
    default_recoverable = False
    default_notify_admin = True

    def __init__(
        self,
        message: str,
        component: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        """
        Initialize initialization error.

        Args:
            message: Error message
            component: The component that failed to initialize
            **kwargs: Additional arguments
        """
        super().__init__(message, **kwargs)

        if component:
            self.details["component"] = component


class ShutdownError(StatusMonitorException):
    """
    Shutdown Error

    Raised when the application fails to shut down gracefully.
    """

    default_error_code = 1300
    default_recoverable = False

    def __init__(
        self,
        message: str,
        component: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        """
        Initialize shutdown error.

        Args:
            message: Error message
            component: The component that failed to shutdown
            **kwargs: Additional arguments
        """
        super().__init__(message, **kwargs)

        if component:
            self.details["component"] = component


class AuthenticationError(StatusMonitorException):
    """
    Authentication Error

    Raised when a protected API route is called without credentials.
    """

    default_error_code = 1400
    http_status = 401

    def __init__(self, message: str = "Authentication required", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class AccessDeniedError(StatusMonitorException):
    """
    Access Denied Error

    Raised when the supplied credentials do not grant the action.
    """

    default_error_code = 1401
    http_status = 403

    def __init__(
        self,
        message: str = "Access denied",
        action: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        """
        Initialize access denied error.

        Args:
            message: Error message
            action: The action that was denied
            **kwargs: Additional arguments
        """
        super().__init__(message, **kwargs)

        if action:
            self.details["action"] = action

    def user_message(self) -> str:
        """Get user-friendly error message."""
        return "You don't have permission to perform this action."
