"""
============================================================================
STATUS MONITOR - HELPERS UTILITY
============================================================================
Collection of helper functions and utilities shared by the monitoring,
notification and API layers.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Optional, Set

from utils.logger import get_logger


logger = get_logger("Helpers")


# ============================================================================
# TIME UTILITIES
# ============================================================================

class TimeHelper:
    """
    Time and date manipulation utilities.
    """

    @staticmethod
    def get_utc_now() -> datetime:
        """Get current timezone-aware UTC datetime."""
        return datetime.now(timezone.utc)

    @staticmethod
    def ensure_utc(dt: datetime) -> datetime:
        """
        Attach UTC to naive datetimes (SQLite drops tzinfo on the way back).

        Args:
            dt: Datetime to normalize

        Returns:
            Timezone-aware datetime in UTC
        """
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)

    @staticmethod
    def to_iso(dt: datetime) -> str:
        """
        Format a datetime as ISO-8601 UTC with a trailing ``Z``.

        Args:
            dt: Datetime to format

        Returns:
            e.g. ``2026-01-01T12:00:00.000Z``
        """
        dt = TimeHelper.ensure_utc(dt)
        return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


# ============================================================================
# STRING UTILITIES
# ============================================================================

class StringHelper:
    """
    String manipulation utilities.
    """

    @staticmethod
    def truncate(text: str, max_length: int = 100, suffix: str = "...") -> str:
        """
        Truncate string to maximum length.

        Args:
            text: Text to truncate
            max_length: Maximum length
            suffix: Suffix to add if truncated

        Returns:
            Truncated string
        """
        if len(text) <= max_length:
            return text

        return text[:max_length - len(suffix)] + suffix

    @staticmethod
    def escape_html(text: str) -> str:
        """
        Escape HTML special characters.

        Args:
            text: Text to escape

        Returns:
            Escaped text
        """
        return (
            text.replace("&", "&amp;")
            .replace("<", "&lt;")
            .replace(">", "&gt;")
            .replace('"', "&quot;")
        )


# ============================================================================
# BACKGROUND TASKS
# ============================================================================

class BackgroundTasks:
    """
    Owner of detached best-effort tasks.

    Holds a strong reference to each task until it finishes (the event
    loop only keeps weak ones) and logs any exception at the task
    boundary instead of letting it surface as "exception was never
    retrieved".
    """

    def __init__(self, name: str = "background"):
        self._name = name
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro: Awaitable[Any], label: Optional[str] = None) -> asyncio.Task:
        """Schedule *coro* and return its task."""
        task = asyncio.ensure_future(self._guard(coro, label or self._name))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @staticmethod
    async def _guard(coro: Awaitable[Any], label: str) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.opt(exception=e).error(f"[{label}] Best-effort task failed: {e}")

    def __len__(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every task currently pending (new ones included)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_all(self) -> None:
        """Cancel every pending task and wait for them to unwind."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
