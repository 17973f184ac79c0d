"""
============================================================================
STATUS MONITOR - REPOSITORIES
============================================================================
Narrow data-access objects used by the scheduler, the check recorder and
the notification channels. Each repository borrows sessions from the
shared ``DatabaseManager``; failures surface as ``DatabaseQueryError``
from the session context manager and are left to the caller.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import case, func, select

from database.connection import DatabaseManager
from database.models import Group, Service, ServiceCheck, Setting, Webhook
from utils.logger import get_logger


# ============================================================================
# BASE REPOSITORY
# ============================================================================

class BaseRepository:
    """
    Base repository class for database operations.
    """

    model = None

    def __init__(self, db_manager: DatabaseManager):
        """
        Initialize repository.

        Args:
            db_manager: DatabaseManager instance
        """
        self.db = db_manager
        self.logger = get_logger(self.__class__.__name__)

    async def get_by_id(self, record_id: Any):
        """
        Get record by primary key.

        Args:
            record_id: Primary key value

        Returns:
            Model instance or None
        """
        async with self.db.session() as session:
            return await session.get(self.model, record_id)

    async def create(self, instance):
        """
        Insert a new record.

        Args:
            instance: Model instance to persist

        Returns:
            The persisted instance
        """
        async with self.db.session() as session:
            session.add(instance)
        return instance


# ============================================================================
# SERVICE REPOSITORY
# ============================================================================

class ServiceRepository(BaseRepository):
    """Repository for monitored services."""

    model = Service

    async def get_service(self, service_id: str) -> Optional[Service]:
        """Get a service by id, or None."""
        return await self.get_by_id(service_id)

    async def list_enabled_services(self) -> List[Service]:
        """All services with ``enabled = true``, in display order."""
        async with self.db.session() as session:
            result = await session.execute(
                select(Service)
                .where(Service.enabled.is_(True))
                .order_by(Service.position.asc(), Service.name.asc())
            )
            return list(result.scalars().all())


# ============================================================================
# CHECK REPOSITORY
# ============================================================================

class CheckRepository(BaseRepository):
    """Repository for the append-only check history."""

    model = ServiceCheck

    async def insert_check(self, check: ServiceCheck) -> ServiceCheck:
        """Persist one check row."""
        async with self.db.session() as session:
            session.add(check)
        self.logger.debug(f"Check {check.id} recorded for service {check.service_id}")
        return check

    async def history(self, service_id: str, limit: int) -> List[ServiceCheck]:
        """Most recent checks for a service, newest first."""
        async with self.db.session() as session:
            result = await session.execute(
                select(ServiceCheck)
                .where(ServiceCheck.service_id == service_id)
                .order_by(ServiceCheck.checked_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def latest(self, service_id: str) -> Optional[ServiceCheck]:
        """The newest check for a service, or None."""
        rows = await self.history(service_id, 1)
        return rows[0] if rows else None

    async def latest_batch(self, service_ids: Sequence[str]) -> Dict[str, Optional[ServiceCheck]]:
        """Newest check per service id; None for services with no history."""
        latest: Dict[str, Optional[ServiceCheck]] = {}
        for service_id in service_ids:
            latest[service_id] = await self.latest(service_id)
        return latest

    async def aggregate_since(self, service_id: str, since: datetime) -> Dict[str, Any]:
        """
        Raw aggregates over checks newer than *since*.

        Returns:
            Dict with ``total``, ``successful``, ``avg``, ``min`` and
            ``max`` (the last three None when there are no rows)
        """
        async with self.db.session() as session:
            result = await session.execute(
                select(
                    func.count(ServiceCheck.id),
                    func.sum(case((ServiceCheck.success.is_(True), 1), else_=0)),
                    func.avg(ServiceCheck.response_time),
                    func.min(ServiceCheck.response_time),
                    func.max(ServiceCheck.response_time),
                ).where(
                    ServiceCheck.service_id == service_id,
                    ServiceCheck.checked_at > since,
                )
            )
            total, successful, avg, minimum, maximum = result.one()

        return {
            "total": total or 0,
            "successful": successful or 0,
            "avg": avg,
            "min": minimum,
            "max": maximum,
        }


# ============================================================================
# SETTINGS REPOSITORY
# ============================================================================

class SettingsRepository(BaseRepository):
    """Repository for the runtime key/value settings table."""

    model = Setting

    async def read_setting(self, key: str) -> Optional[str]:
        """Raw value for *key*, or None when unset."""
        row = await self.get_by_id(key)
        return row.value if row else None

    async def read_all(self) -> Dict[str, Optional[str]]:
        """Every stored setting as a plain dict."""
        async with self.db.session() as session:
            result = await session.execute(select(Setting))
            return {row.key: row.value for row in result.scalars().all()}

    async def write_setting(self, key: str, value: Optional[str]) -> None:
        """Insert or replace a setting."""
        async with self.db.session() as session:
            await session.merge(Setting(key=key, value=value))


# ============================================================================
# GROUP REPOSITORY
# ============================================================================

class GroupRepository(BaseRepository):
    """Repository for service groups."""

    model = Group

    async def get_by_name(self, name: str) -> Optional[Group]:
        """Group with the given name, or None."""
        async with self.db.session() as session:
            result = await session.execute(select(Group).where(Group.name == name))
            return result.scalars().first()


# ============================================================================
# WEBHOOK REPOSITORY
# ============================================================================

class WebhookRepository(BaseRepository):
    """Repository for outbound webhooks."""

    model = Webhook

    async def get_webhooks_for_group(self, group_name: Optional[str]) -> List[Webhook]:
        """
        Enabled webhooks that fire for a service in *group_name*.

        Global webhooks always match; group-scoped ones match when their
        group list contains the name. With no group only global webhooks
        are returned.
        """
        async with self.db.session() as session:
            result = await session.execute(
                select(Webhook)
                .where(Webhook.enabled.is_(True))
                .order_by(Webhook.created_at.asc())
            )
            webhooks = result.scalars().all()

        return [webhook for webhook in webhooks if webhook.targets_group(group_name)]
