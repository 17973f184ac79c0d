"""
============================================================================
STATUS MONITOR - DATABASE MODELS
============================================================================
SQLAlchemy ORM models for the status page: monitored services, their
check history, groups, outbound webhooks and the runtime settings table.

The schema itself is owned by external migrations; ``create_all`` is
only used for local development and tests.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text, JSON,
    ForeignKey, Index, func
)
from sqlalchemy.orm import declarative_base

from config.constants import Defaults, WebhookType


# ============================================================================
# BASE MODEL CONFIGURATION
# ============================================================================

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class TimestampMixin:
    """
    Mixin to add created_at and updated_at timestamps to models.
    """
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now()
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now()
    )


# ============================================================================
# SERVICE MODEL
# ============================================================================

class Service(Base, TimestampMixin):
    """
    A monitored target.

    ``url`` is what gets probed; ``display_url`` is what users see and
    what notifications link to.
    """
    __tablename__ = "services"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # Probe target and expectations
    url = Column(Text, nullable=False)
    display_url = Column(Text, nullable=True)
    expected_status = Column(Integer, nullable=False, default=Defaults.EXPECTED_STATUS)
    expected_content_type = Column(String(255), nullable=True)
    expected_body = Column(Text, nullable=True)
    check_interval = Column(Integer, nullable=False, default=Defaults.CHECK_INTERVAL)

    # Flags
    enabled = Column(Boolean, nullable=False, default=True, index=True)
    is_public = Column(Boolean, nullable=False, default=True)
    email_notifications = Column(Boolean, nullable=False, default=False)

    # Grouping and ordering
    group_name = Column(String(255), nullable=True, index=True)
    position = Column(Integer, nullable=False, default=0)

    created_by = Column(String(36), nullable=True)

    @property
    def public_url(self) -> str:
        """URL shown to users: display URL when set, else the probe URL."""
        return self.display_url or self.url

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, name={self.name!r}, enabled={self.enabled})>"


# ============================================================================
# SERVICE CHECK MODEL
# ============================================================================

class ServiceCheck(Base):
    """
    One persisted probe outcome. Rows are append-only.
    """
    __tablename__ = "service_checks"
    __table_args__ = (
        Index("ix_service_checks_service_checked", "service_id", "checked_at"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    service_id = Column(
        String(36),
        ForeignKey("services.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    status_code = Column(Integer, nullable=True)
    response_time = Column(Integer, nullable=False, default=0)
    success = Column(Boolean, nullable=False)
    error_message = Column(Text, nullable=True)
    checked_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)

    def __repr__(self) -> str:
        return (
            f"<ServiceCheck(service_id={self.service_id}, success={self.success}, "
            f"status_code={self.status_code})>"
        )


# ============================================================================
# GROUP MODEL
# ============================================================================

class Group(Base):
    """
    Named group of services. Carries its own email-notification flag
    used by the group-scoped email policy.
    """
    __tablename__ = "groups"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False, unique=True)
    position = Column(Integer, nullable=False, default=0)
    email_notifications = Column(Boolean, nullable=False, default=False)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Group(name={self.name!r}, email_notifications={self.email_notifications})>"


# ============================================================================
# WEBHOOK MODEL
# ============================================================================

class Webhook(Base, TimestampMixin):
    """
    Outbound notification endpoint, either a Discord webhook or a
    generic JSON receiver.
    """
    __tablename__ = "webhooks"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    url = Column(Text, nullable=False)
    type = Column(String(32), nullable=False, default=WebhookType.DISCORD.value)
    is_global = Column(Boolean, nullable=False, default=True)
    groups = Column(JSON, nullable=False, default=list)
    enabled = Column(Boolean, nullable=False, default=True, index=True)
    message_down = Column(Text, nullable=False, default=Defaults.MESSAGE_DOWN)
    message_up = Column(Text, nullable=False, default=Defaults.MESSAGE_UP)
    avatar_url = Column(Text, nullable=True)

    def targets_group(self, group_name) -> bool:
        """True when this webhook should fire for services in *group_name*."""
        if self.is_global:
            return True
        if not group_name:
            return False
        return group_name in (self.groups or [])

    def __repr__(self) -> str:
        return f"<Webhook(name={self.name!r}, type={self.type}, enabled={self.enabled})>"


# ============================================================================
# SETTINGS MODEL
# ============================================================================

class Setting(Base):
    """
    Runtime key/value setting.
    """
    __tablename__ = "settings"

    key = Column(String(128), primary_key=True)
    value = Column(Text, nullable=True)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Setting(key={self.key!r})>"
