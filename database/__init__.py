"""
Database Package for Status Monitor

Provides database connectivity, models, and repository patterns
for data persistence using SQLAlchemy with async support.
"""

from database.connection import DatabaseManager

from database.models import (
    Base,
    Service,
    ServiceCheck,
    Group,
    Webhook,
    Setting
)

from database.repositories import (
    BaseRepository,
    ServiceRepository,
    CheckRepository,
    SettingsRepository,
    GroupRepository,
    WebhookRepository
)

__all__ = [
    # Connection
    "DatabaseManager",

    # Models
    "Base",
    "Service",
    "ServiceCheck",
    "Group",
    "Webhook",
    "Setting",

    # Repositories
    "BaseRepository",
    "ServiceRepository",
    "CheckRepository",
    "SettingsRepository",
    "GroupRepository",
    "WebhookRepository"
]
