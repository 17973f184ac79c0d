"""
Database Connection Module for Status Monitor

Manages database connections, session factories, and connection pooling
using SQLAlchemy's async engine and session maker.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine
)
from sqlalchemy.pool import NullPool
from sqlalchemy.exc import SQLAlchemyError

from config.settings import DatabaseSettings, DatabaseType
from database.models import Base
from exceptions import (
    ConfigurationError,
    DatabaseConnectionError,
    DatabaseQueryError
)
from utils.logger import get_logger


logger = get_logger("Database")


class DatabaseManager:
    """
    Database Manager Class

    Manages database connections, engines, and session factories.
    One instance is created by the application and shared by every
    repository.

    Attributes:
        engine: SQLAlchemy async engine
        session_factory: Async session maker
        is_connected: Connection status flag
    """

    def __init__(self, settings: DatabaseSettings) -> None:
        """
        Initialize database manager.

        Args:
            settings: Database section of the application settings
        """
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self.is_connected: bool = False
        self._settings = settings
        self._lock = asyncio.Lock()

    async def connect(self) -> None:
        """
        Establish database connection.

        Creates the async engine and session factory.

        Raises:
            ConfigurationError: If the async driver for DB_TYPE is missing
            DatabaseConnectionError: If connection fails
        """
        async with self._lock:
            if self.is_connected:
                logger.warning("Database already connected")
                return

            try:
                logger.info(f"Connecting to {self._settings.type.value} database...")

                self.engine = create_async_engine(
                    self._settings.url,
                    **self._get_engine_kwargs()
                )

                self.session_factory = async_sessionmaker(
                    bind=self.engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                    autoflush=False
                )

                await self._test_connection()
                self._setup_event_listeners()

                self.is_connected = True
                logger.info("✓ Database connection established")

            except ImportError as e:
                raise ConfigurationError(
                    message=f"Database driver for {self._settings.type.value} is not installed: {e}",
                    config_key="DB_TYPE",
                    cause=e
                )
            except (SQLAlchemyError, OSError) as e:
                error_msg = f"Failed to connect to database: {e}"
                logger.error(error_msg)
                raise DatabaseConnectionError(
                    message=error_msg,
                    host=self._settings.host,
                    port=self._settings.port,
                    database=self._settings.name,
                    cause=e
                )

    def _get_engine_kwargs(self) -> Dict[str, Any]:
        """
        Get engine configuration kwargs based on settings.

        Returns:
            Dictionary of engine configuration options
        """
        kwargs: Dict[str, Any] = {"echo": self._settings.echo}

        # SQLite gets a fresh connection per checkout; pooling is for Postgres
        if self._settings.type == DatabaseType.SQLITE:
            kwargs["poolclass"] = NullPool
        else:
            kwargs["pool_size"] = self._settings.pool_size
            kwargs["max_overflow"] = self._settings.max_overflow
            kwargs["pool_timeout"] = self._settings.pool_timeout
            kwargs["pool_recycle"] = self._settings.pool_recycle
            kwargs["pool_pre_ping"] = self._settings.pool_pre_ping

        return kwargs

    async def _test_connection(self) -> None:
        """
        Test database connection.

        Raises:
            DatabaseConnectionError: If connection test fails
        """
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))

        except SQLAlchemyError as e:
            raise DatabaseConnectionError(
                message=f"Connection test failed: {e}",
                cause=e
            )

    def _setup_event_listeners(self) -> None:
        """Set up SQLAlchemy event listeners for pool diagnostics."""

        @event.listens_for(self.engine.sync_engine, "connect")
        def on_connect(dbapi_connection, connection_record):
            logger.debug("New database connection established")

        @event.listens_for(self.engine.sync_engine, "checkin")
        def on_checkin(dbapi_connection, connection_record):
            logger.debug("Connection returned to pool")

    async def create_tables(self) -> None:
        """
        Create all tables that do not exist yet.

        Development and test helper; production schemas come from
        migrations.
        """
        if not self.engine:
            raise DatabaseConnectionError("Database not connected")

        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("✓ Database tables created")
        except SQLAlchemyError as e:
            logger.error(f"Failed to create tables: {e}")
            raise DatabaseQueryError(message=str(e), operation="CREATE", cause=e)

    async def check_connection(self) -> bool:
        """Return True when a trivial query succeeds."""
        if not self.engine:
            return False
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.warning(f"Database health check failed: {e}")
            return False

    async def disconnect(self) -> None:
        """
        Close database connection.

        Disposes of the engine and cleans up resources.
        """
        async with self._lock:
            if not self.is_connected:
                logger.warning("Database not connected")
                return

            logger.info("Disconnecting from database...")

            if self.engine:
                await self.engine.dispose()
                self.engine = None

            self.session_factory = None
            self.is_connected = False

            logger.info("✓ Database disconnected")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Context manager for database sessions.

        Provides a session that is automatically committed on success
        or rolled back on failure.

        Yields:
            AsyncSession: Database session

        Raises:
            DatabaseConnectionError: If not connected
            DatabaseQueryError: If query fails
        """
        if not self.is_connected or not self.session_factory:
            raise DatabaseConnectionError("Database not connected")

        session = self.session_factory()

        try:
            yield session
            await session.commit()

        except SQLAlchemyError as e:
            await session.rollback()
            error = DatabaseQueryError(
                message=str(getattr(e, "orig", None) or e),
                query=getattr(e, "statement", None),
                cause=e
            )
            logger.error(f"Database session error: {error.log_format()}")
            raise error

        finally:
            await session.close()
