"""
============================================================================
STATUS MONITOR - LOGGING UTILITY
============================================================================
loguru-based logging with console, rotating file, error-only file and
optional JSON sinks. Every module obtains a named logger through
``get_logger(name)``; sinks are installed once by ``setup_logging()``
from the application entry point.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

from __future__ import annotations

import asyncio
import sys
import time
from functools import wraps
from typing import TYPE_CHECKING, Optional

from loguru import logger

if TYPE_CHECKING:
    from config.settings import LoggingSettings


CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[name]}:{function}:{line} - {message}"


# ============================================================================
# LOGGER CONFIGURATION
# ============================================================================

def setup_logging(settings: "LoggingSettings") -> None:
    """
    Configure logging system with multiple handlers.
    Sets up both file and console logging.

    Args:
        settings: Logging section of the application settings
    """
    # Remove default loguru handler
    logger.remove()
    logger.configure(extra={"name": "root"})

    log_level = settings.level.value

    # Console Handler
    if settings.console_enabled:
        logger.add(
            sys.stdout,
            format=CONSOLE_FORMAT,
            level=log_level,
            colorize=settings.console_colored,
            backtrace=True,
            diagnose=False,
        )

    # File Handler
    if settings.file_enabled:
        settings.file_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            settings.file_path,
            format=FILE_FORMAT,
            level=log_level,
            rotation=settings.file_rotation,
            retention=settings.file_retention,
            compression=settings.file_compression,
            backtrace=True,
            diagnose=False,
        )

    # JSON Handler
    if settings.json_enabled:
        settings.json_file_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            settings.json_file_path,
            level=log_level,
            rotation=settings.file_rotation,
            retention=settings.file_retention,
            compression=settings.file_compression,
            serialize=True,
        )

    # Error log file (separate file for errors)
    if settings.error_file_enabled:
        settings.error_file_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            settings.error_file_path,
            format=FILE_FORMAT,
            level="ERROR",
            rotation="1 day",
            retention="7 days",
            compression=settings.file_compression,
            backtrace=True,
            diagnose=False,
        )

    logger.info("Logging system initialized")
    logger.info(f"Log level: {log_level}")
    logger.info(f"Console logging: {settings.console_enabled}")
    logger.info(f"File logging: {settings.file_enabled}")


def get_logger(name: Optional[str] = None):
    """
    Get logger instance with optional name.

    Args:
        name: Logger name (usually the component name)

    Returns:
        Logger instance
    """
    if name:
        return logger.bind(name=name)
    return logger


# ============================================================================
# LOG DECORATORS
# ============================================================================

def log_execution_time(func):
    """
    Decorator to log coroutine execution time at DEBUG level.

    Args:
        func: Coroutine function to decorate

    Returns:
        Decorated function
    """
    bound = get_logger(func.__module__)

    @wraps(func)
    async def async_wrapper(*args, **kwargs):
        start_time = time.perf_counter()
        try:
            result = await func(*args, **kwargs)
            execution_time = time.perf_counter() - start_time
            bound.debug(
                f"Function {func.__name__} executed in {execution_time:.4f} seconds"
            )
            return result
        except Exception as e:
            execution_time = time.perf_counter() - start_time
            bound.error(
                f"Function {func.__name__} failed after {execution_time:.4f} seconds: {e}"
            )
            raise

    if not asyncio.iscoroutinefunction(func):
        raise TypeError("log_execution_time only decorates coroutine functions")
    return async_wrapper
