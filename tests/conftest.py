"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import uuid
from typing import Dict, Iterable, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from config.constants import Defaults
from config.site_settings import SiteSettingsProvider
from database.models import Service
from exceptions.database import DatabaseQueryError
from monitoring.broadcast import LiveBroadcaster
from monitoring.probe import ProbeOutcome
from monitoring.recorder import CheckResult
from monitoring.scheduler import ServiceScheduler


# ── Builders ─────────────────────────────────────────────────────────────────


def make_service(**overrides) -> Service:
    """A transient Service row with every column populated."""
    fields = {
        "id": str(uuid.uuid4()),
        "name": "API",
        "description": None,
        "url": "https://api.example.com/health",
        "display_url": None,
        "expected_status": 200,
        "expected_content_type": None,
        "expected_body": None,
        "check_interval": 60,
        "enabled": True,
        "is_public": True,
        "email_notifications": False,
        "group_name": None,
        "position": 0,
        "created_by": None,
    }
    fields.update(overrides)
    return Service(**fields)


def ok(status_code: int = 200, response_time_ms: int = 42) -> ProbeOutcome:
    return ProbeOutcome(success=True, status_code=status_code, response_time_ms=response_time_ms)


def fail(status_code: Optional[int] = 503, message: str = "Expected status 200, got 503") -> ProbeOutcome:
    return ProbeOutcome(success=False, status_code=status_code, error_message=message, response_time_ms=10)


def timeout() -> ProbeOutcome:
    return ProbeOutcome(success=False, error_message=Defaults.TIMEOUT_MESSAGE, response_time_ms=5000)


def site_settings(raw: Optional[Dict[str, str]] = None) -> SiteSettingsProvider:
    """Provider over a fixed key/value map, re-read on every call."""
    data = dict(raw or {})

    async def loader() -> Dict[str, str]:
        return data

    return SiteSettingsProvider(loader, ttl=0)


# ── Fakes ────────────────────────────────────────────────────────────────────


class FakeServices:
    """In-memory stand-in for ServiceRepository."""

    def __init__(self, services: Iterable[Service] = ()):
        self.rows = {service.id: service for service in services}

    async def get_service(self, service_id: str) -> Optional[Service]:
        return self.rows.get(service_id)

    async def list_enabled_services(self) -> List[Service]:
        return [service for service in self.rows.values() if service.enabled]


class ScriptedProbe:
    """Returns queued outcomes in order; repeats the last one when exhausted."""

    def __init__(self, outcomes: Iterable[ProbeOutcome] = (), gate: Optional[asyncio.Event] = None):
        self.outcomes = list(outcomes) or [ok()]
        self.gate = gate
        self.calls: List[str] = []

    async def probe(self, service: Service, timeout_ms: int) -> ProbeOutcome:
        self.calls.append(service.id)
        if self.gate is not None:
            await self.gate.wait()
        if len(self.outcomes) > 1:
            return self.outcomes.pop(0)
        return self.outcomes[0]


class FakeRecorder:
    """Keeps recorded results in memory; optionally fails every insert."""

    def __init__(self, fail_inserts: bool = False):
        self.fail_inserts = fail_inserts
        self.results: List[CheckResult] = []

    async def record(self, service_id: str, outcome: ProbeOutcome) -> CheckResult:
        if self.fail_inserts:
            raise DatabaseQueryError("insert failed", operation="insert_check")
        result = CheckResult.from_outcome(service_id, outcome)
        self.results.append(result)
        return result


class ManualTicker:
    """
    Controllable replacement for the timer's sleep.

    Every sleeper blocks until ``tick()`` releases all current waiters.
    """

    def __init__(self):
        self._waiters: List[asyncio.Future] = []
        self.intervals: List[float] = []

    async def sleep(self, seconds: float) -> None:
        self.intervals.append(seconds)
        future = asyncio.get_running_loop().create_future()
        self._waiters.append(future)
        await future

    @property
    def pending(self) -> int:
        return sum(1 for future in self._waiters if not future.done())

    async def settle(self) -> None:
        for _ in range(5):
            await asyncio.sleep(0)

    async def tick(self) -> None:
        await self.settle()
        waiters, self._waiters = self._waiters, []
        for future in waiters:
            if not future.done():
                future.set_result(None)
        await self.settle()


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def ticker() -> ManualTicker:
    return ManualTicker()


@pytest.fixture
def dispatcher() -> MagicMock:
    mock = MagicMock()
    mock.notify_down = AsyncMock()
    mock.notify_up = AsyncMock()
    return mock


@pytest.fixture
def broadcaster() -> MagicMock:
    return MagicMock(spec=LiveBroadcaster)


@pytest.fixture
async def build_scheduler(ticker, dispatcher, broadcaster):
    """Factory for a ServiceScheduler wired to fakes."""
    created: List[ServiceScheduler] = []

    def _build(
        services: Iterable[Service] = (),
        probe: Optional[ScriptedProbe] = None,
        recorder: Optional[FakeRecorder] = None,
        retry_count: int = 0,
        **kwargs,
    ) -> ServiceScheduler:
        scheduler = ServiceScheduler(
            services=FakeServices(services),
            recorder=recorder or FakeRecorder(),
            probe=probe or ScriptedProbe(),
            site_settings=site_settings({"retry_count": str(retry_count)}),
            dispatcher=dispatcher,
            broadcaster=broadcaster,
            retry_delay=kwargs.pop("retry_delay", 0),
            sleep=ticker.sleep,
            **kwargs,
        )
        created.append(scheduler)
        return scheduler

    yield _build

    for scheduler in created:
        await scheduler.shutdown()
