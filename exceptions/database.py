"""
Database Exception Classes for Status Monitor

Storage failures raised by the session context manager and the
repositories. Check-result persistence is the only write the scheduler
performs, so these surface mostly from ``CheckRecorder.record``.
"""

from __future__ import annotations

import re
from typing import Any, Optional

from exceptions.base import StatusMonitorException


class DatabaseException(StatusMonitorException):
    """
    Base Database Exception

    Parent class for all storage-related exceptions.
    """

    default_error_code = 2000
    default_recoverable = False
    default_notify_admin = True

    def __init__(
        self,
        message: str,
        query: Optional[str] = None,
        table: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        """
        Initialize database exception.

        Args:
            message: Error message
            query: The SQL statement that failed (values are masked)
            table: The database table involved
            **kwargs: Additional arguments
        """
        super().__init__(message, **kwargs)

        if query:
            self.details["query"] = self._sanitize_query(query)

        if table:
            self.details["table"] = table

    @staticmethod
    def _sanitize_query(query: str) -> str:
        """
        Mask literal values in a SQL statement.

        Args:
            query: The original SQL statement

        Returns:
            Statement with string and numeric literals replaced
        """
        query = re.sub(r"'[^']*'", "'***'", query)
        query = re.sub(r"= \d+", "= ***", query)

        if len(query) > 500:
            query = query[:500] + "..."

        return query


class DatabaseConnectionError(DatabaseException):
    """
    Database Connection Error

    Raised when the engine cannot be created, the connection test fails,
    or a session is requested before ``connect()``.
    """

    default_error_code = 2001

    def __init__(
        self,
        message: str = "Unable to connect to database",
        host: Optional[str] = None,
        port: Optional[int] = None,
        database: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        """
        Initialize connection error.

        Args:
            message: Error message
            host: Database host
            port: Database port
            database: Database name
            **kwargs: Additional arguments
        """
        super().__init__(message, **kwargs)

        if host:
            self.details["host"] = host

        if port:
            self.details["port"] = port

        if database:
            self.details["database"] = database

    def user_message(self) -> str:
        """Get user-friendly error message."""
        return "The database is unavailable. Please try again later."


class DatabaseQueryError(DatabaseException):
    """
    Database Query Error

    Raised when a statement fails inside a session; wraps the
    originating ``SQLAlchemyError``.
    """

    default_error_code = 2002

    def __init__(
        self,
        message: str = "Database query failed",
        operation: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if operation:
            self.details["operation"] = operation

    def user_message(self) -> str:
        """Get user-friendly error message."""
        return "Failed to read or write check data."


class DatabaseNotFoundError(DatabaseException):
    """
    Database Not Found Error

    Raised when a requested row does not exist.
    """

    default_error_code = 2003
    default_recoverable = True
    default_notify_admin = False
    http_status = 404

    def __init__(
        self,
        message: str = "Record not found",
        entity_type: Optional[str] = None,
        entity_id: Optional[Any] = None,
        **kwargs: Any
    ) -> None:
        """
        Initialize not found error.

        Args:
            message: Error message
            entity_type: Type of entity not found (Service, Group, ...)
            entity_id: ID of the entity
            **kwargs: Additional arguments
        """
        super().__init__(message, **kwargs)

        if entity_type:
            self.details["entity_type"] = entity_type

        if entity_id is not None:
            self.details["entity_id"] = str(entity_id)

    def user_message(self) -> str:
        """Get user-friendly error message."""
        entity = self.details.get("entity_type", "Record")
        return f"{entity} not found"
