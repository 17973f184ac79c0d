"""
============================================================================
STATUS MONITOR - CHECK RECORDER
============================================================================
Turns probe outcomes into immutable ``CheckResult`` records, persists
them, and answers the history / latest / statistics queries used by the
API.

``CheckResult.to_dict()`` is the wire shape shared by persistence, the
live stream and API responses:

    {id, serviceId, statusCode, responseTime, success, errorMessage,
     checkedAt}

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from config.constants import Limits
from database.models import ServiceCheck
from database.repositories import CheckRepository
from monitoring.probe import ProbeOutcome
from utils.helpers import StringHelper, TimeHelper
from utils.logger import get_logger


logger = get_logger("Recorder")


# ============================================================================
# CHECK RESULT
# ============================================================================

@dataclass(frozen=True)
class CheckResult:
    """
    One immutable, persisted probe outcome.
    """
    id: str
    service_id: str
    status_code: Optional[int]
    response_time: int
    success: bool
    error_message: Optional[str]
    checked_at: datetime

    @classmethod
    def from_outcome(cls, service_id: str, outcome: ProbeOutcome) -> "CheckResult":
        error_message = outcome.error_message
        if error_message:
            error_message = StringHelper.truncate(error_message, Limits.MAX_ERROR_MESSAGE_LENGTH)
        return cls(
            id=str(uuid.uuid4()),
            service_id=service_id,
            status_code=outcome.status_code,
            response_time=outcome.response_time_ms,
            success=outcome.success,
            error_message=error_message,
            checked_at=TimeHelper.get_utc_now(),
        )

    @classmethod
    def from_row(cls, row: ServiceCheck) -> "CheckResult":
        return cls(
            id=row.id,
            service_id=row.service_id,
            status_code=row.status_code,
            response_time=row.response_time,
            success=row.success,
            error_message=row.error_message,
            checked_at=TimeHelper.ensure_utc(row.checked_at),
        )

    def to_row(self) -> ServiceCheck:
        return ServiceCheck(
            id=self.id,
            service_id=self.service_id,
            status_code=self.status_code,
            response_time=self.response_time,
            success=self.success,
            error_message=self.error_message,
            checked_at=self.checked_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "serviceId": self.service_id,
            "statusCode": self.status_code,
            "responseTime": self.response_time,
            "success": self.success,
            "errorMessage": self.error_message,
            "checkedAt": TimeHelper.to_iso(self.checked_at),
        }


# ============================================================================
# CHECK RECORDER
# ============================================================================

class CheckRecorder:
    """
    Persistence and queries for check results.

    Parameters
    ----------
    checks : CheckRepository
        Storage for the ``service_checks`` table.
    """

    def __init__(self, checks: CheckRepository):
        self.checks = checks

    async def record(self, service_id: str, outcome: ProbeOutcome) -> CheckResult:
        """
        Persist *outcome* as a new CheckResult.

        Raises
        ------
        DatabaseQueryError
            When the insert fails. The caller decides what to skip.
        """
        result = CheckResult.from_outcome(service_id, outcome)
        await self.checks.insert_check(result.to_row())
        return result

    async def history(self, service_id: str, limit: int = Limits.DEFAULT_HISTORY_LIMIT) -> List[CheckResult]:
        """Newest-first check history, *limit* clamped to 1..MAX_HISTORY_LIMIT."""
        limit = max(1, min(limit, Limits.MAX_HISTORY_LIMIT))
        rows = await self.checks.history(service_id, limit)
        return [CheckResult.from_row(row) for row in rows]

    async def latest(self, service_id: str) -> Optional[CheckResult]:
        row = await self.checks.latest(service_id)
        return CheckResult.from_row(row) if row else None

    async def latest_batch(self, service_ids: Sequence[str]) -> Dict[str, Optional[CheckResult]]:
        rows = await self.checks.latest_batch(service_ids)
        return {
            service_id: CheckResult.from_row(row) if row else None
            for service_id, row in rows.items()
        }

    async def stats(self, service_id: str, hours: int = Limits.STATS_WINDOW_HOURS) -> Dict[str, Any]:
        """
        Uptime statistics over the trailing window.

        Returns
        -------
        dict
            ``totalChecks``, ``successfulChecks``, ``uptimePercent``
            (two decimals, 0 with no checks), ``avgResponseTime``
            (rounded), ``minResponseTime``, ``maxResponseTime``.
        """
        since = TimeHelper.get_utc_now() - timedelta(hours=hours)
        agg = await self.checks.aggregate_since(service_id, since)

        total = int(agg["total"])
        successful = int(agg["successful"])
        uptime = (successful / total) * 100 if total > 0 else 0.0

        return {
            "totalChecks": total,
            "successfulChecks": successful,
            "uptimePercent": round(uptime, 2),
            "avgResponseTime": int(round(float(agg["avg"] or 0))),
            "minResponseTime": int(agg["min"] or 0),
            "maxResponseTime": int(agg["max"] or 0),
        }

    async def stats_batch(self, service_ids: Sequence[str]) -> Dict[str, Dict[str, Any]]:
        return {service_id: await self.stats(service_id) for service_id in service_ids}
