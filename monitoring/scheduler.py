"""
============================================================================
STATUS MONITOR - SERVICE SCHEDULER
============================================================================
An asyncio-native registry of per-service polling timers. Every enabled
service gets exactly one timer task; each firing spawns a detached check
cycle:

    Probe (one retry on timeout) → Record → Bookkeeping → Notify → Broadcast

Lifecycle per service
---------------------
    Unscheduled ──schedule()──▶ Scheduled      immediate check + timer
    Scheduled   ──schedule()──▶ Scheduled      old timer cancelled first
    Scheduled   ──stop()──────▶ Unscheduled    state discarded

Timers, runtime state and in-flight bookkeeping are attributes of the
scheduler instance. Nothing is module-global, so several schedulers can
coexist.

Overlap
-------
By default a timer firing starts a new cycle even when the previous one
for the same service is still running. With ``skip_overlapping=True`` the
firing is skipped instead.

Failure handling
----------------
Probe failures are check results, never exceptions. A storage failure
while recording aborts the rest of a timer-driven cycle and is logged;
``run_once`` lets it propagate to the caller. Notifications run as
detached best-effort tasks whose errors are logged at the task boundary.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

from config.constants import TransitionType
from config.site_settings import SiteSettingsProvider
from database.models import Service
from database.repositories import ServiceRepository
from exceptions.base import StatusMonitorException
from exceptions.monitoring import ServiceNotFoundError
from monitoring.alerts import NotificationDispatcher
from monitoring.broadcast import LiveBroadcaster
from monitoring.probe import ProbeExecutor, ProbeOutcome
from monitoring.recorder import CheckRecorder, CheckResult
from monitoring.state import ServiceRuntimeState
from utils.helpers import BackgroundTasks
from utils.logger import get_logger, log_execution_time


logger = get_logger("Scheduler")


class ServiceScheduler:
    """
    Owns the polled services and runs their check cycles.

    Parameters
    ----------
    services : ServiceRepository
        Source of service rows for ``start``, ``run_once`` and
        ``initialize_all``.
    recorder : CheckRecorder
        Persists each cycle's final outcome.
    probe : ProbeExecutor
        Performs the HTTP probe.
    site_settings : SiteSettingsProvider
        Live ``retry_count`` and ``check_timeout`` values.
    dispatcher : NotificationDispatcher
        Receives down / up episodes.
    broadcaster : LiveBroadcaster
        Receives every recorded result.
    min_check_interval : int
        Floor applied to ``Service.check_interval`` (seconds).
    retry_delay : float
        Pause before the single retry of a timed-out probe (seconds).
    skip_overlapping : bool
        Skip a timer firing while a cycle for that service is running.
    sleep : Callable[[float], Awaitable[Any]]
        Wait used by the timer between firings and before a retry.
    """

    def __init__(
        self,
        services: ServiceRepository,
        recorder: CheckRecorder,
        probe: ProbeExecutor,
        site_settings: SiteSettingsProvider,
        dispatcher: NotificationDispatcher,
        broadcaster: LiveBroadcaster,
        min_check_interval: int = 10,
        retry_delay: float = 1.0,
        skip_overlapping: bool = False,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.services = services
        self.recorder = recorder
        self.probe = probe
        self.site_settings = site_settings
        self.dispatcher = dispatcher
        self.broadcaster = broadcaster

        self.min_check_interval = min_check_interval
        self.retry_delay = retry_delay
        self.skip_overlapping = skip_overlapping
        self._sleep = sleep

        # --- service_id → timer task / runtime state / running cycles ---
        self._timers: Dict[str, asyncio.Task] = {}
        self._states: Dict[str, ServiceRuntimeState] = {}
        self._in_flight: Dict[str, int] = {}

        # --- detached work ---
        self._cycles = BackgroundTasks("CheckCycle")
        self._notifications = BackgroundTasks("Notify")

        logger.info(
            f"ServiceScheduler created — min_interval={min_check_interval}s, "
            f"retry_delay={retry_delay}s, skip_overlapping={skip_overlapping}"
        )

    # ------------------------------------------------------------------
    # CONTROL SURFACE
    # ------------------------------------------------------------------

    def schedule(self, service: Service) -> bool:
        """
        Start polling *service*, replacing any existing timer.

        One check fires immediately without the caller waiting for it,
        then the timer fires every ``check_interval`` seconds. Runtime
        state starts fresh.

        Returns
        -------
        bool
            False when the service is disabled; nothing is scheduled and
            any existing timer is stopped.
        """
        self._cancel_timer(service.id)

        if not service.enabled:
            self._states.pop(service.id, None)
            logger.info(f"[Scheduler] {service.name} is disabled, not scheduling")
            return False

        interval = self._effective_interval(service)
        self._states[service.id] = ServiceRuntimeState()

        self._spawn_cycle(service)
        self._timers[service.id] = asyncio.create_task(
            self._timer_loop(service, interval),
            name=f"timer:{service.id}",
        )

        logger.info(f"[Scheduler] ✓ Scheduled {service.name} every {interval}s")
        return True

    async def start(self, service_id: str) -> bool:
        """
        Load *service_id* from storage and ``schedule`` it.

        Raises
        ------
        ServiceNotFoundError
            No such service.
        """
        service = await self.services.get_service(service_id)
        if service is None:
            raise ServiceNotFoundError(service_id)
        return self.schedule(service)

    def stop(self, service_id: str) -> bool:
        """
        Stop polling *service_id* and forget its runtime state.

        A cycle already running is left to finish. Idempotent.

        Returns
        -------
        bool
            True if a timer was cancelled.
        """
        cancelled = self._cancel_timer(service_id)
        self._states.pop(service_id, None)
        if cancelled:
            logger.info(f"[Scheduler] Stopped {service_id}")
        return cancelled

    @log_execution_time
    async def initialize_all(self) -> int:
        """
        Schedule every enabled service.

        Returns
        -------
        int
            Number of services scheduled.
        """
        services = await self.services.list_enabled_services()
        scheduled = sum(1 for service in services if self.schedule(service))
        logger.info(f"[Scheduler] ✓ Initialized {scheduled} service check(s)")
        return scheduled

    async def run_once(self, service_id: str) -> CheckResult:
        """
        Run one full check cycle for *service_id* and wait for it.

        No timer is created or touched.

        Raises
        ------
        ServiceNotFoundError
            No such service.
        DatabaseQueryError
            Settings could not be read or the result could not be stored.
        """
        service = await self.services.get_service(service_id)
        if service is None:
            raise ServiceNotFoundError(service_id)

        self._enter(service.id)
        try:
            return await self._run_cycle(service)
        finally:
            self._leave(service.id)

    async def shutdown(self) -> None:
        """Cancel every timer and every running cycle, then clear all state."""
        timers = list(self._timers.values())
        self._timers.clear()
        for task in timers:
            task.cancel()
        if timers:
            await asyncio.gather(*timers, return_exceptions=True)

        await self._cycles.cancel_all()
        self._states.clear()
        self._in_flight.clear()
        logger.info(f"[Scheduler] ✓ Shut down ({len(timers)} timer(s) cancelled)")

    async def drain(self) -> None:
        """Wait for every running cycle and pending notification."""
        while len(self._cycles) or len(self._notifications):
            await self._cycles.drain()
            await self._notifications.drain()

    # ------------------------------------------------------------------
    # INTROSPECTION
    # ------------------------------------------------------------------

    def is_scheduled(self, service_id: str) -> bool:
        return service_id in self._timers

    @property
    def scheduled_ids(self) -> List[str]:
        return list(self._timers)

    def get_state(self, service_id: str) -> Optional[ServiceRuntimeState]:
        return self._states.get(service_id)

    def is_running(self, service_id: str) -> bool:
        """True while a check cycle for *service_id* is in progress."""
        return self._in_flight.get(service_id, 0) > 0

    # ------------------------------------------------------------------
    # TIMER
    # ------------------------------------------------------------------

    def _effective_interval(self, service: Service) -> int:
        interval = service.check_interval or self.min_check_interval
        if interval < self.min_check_interval:
            logger.warning(
                f"[Scheduler] {service.name} interval {interval}s is below the "
                f"minimum, using {self.min_check_interval}s"
            )
            return self.min_check_interval
        return interval

    def _cancel_timer(self, service_id: str) -> bool:
        task = self._timers.pop(service_id, None)
        if task is None:
            return False
        task.cancel()
        return True

    async def _timer_loop(self, service: Service, interval: int) -> None:
        while True:
            await self._sleep(interval)
            if self.skip_overlapping and self.is_running(service.id):
                logger.debug(f"[Scheduler] {service.name} still checking, skipping this tick")
                continue
            self._spawn_cycle(service)

    def _spawn_cycle(self, service: Service) -> None:
        self._cycles.spawn(self._timed_cycle(service), label=f"Check {service.name}")

    async def _timed_cycle(self, service: Service) -> None:
        self._enter(service.id)
        try:
            await self._run_cycle(service)
        except StatusMonitorException as e:
            logger.error(f"[Scheduler] Check cycle for {service.name} aborted: {e.log_format()}")
        finally:
            self._leave(service.id)

    def _enter(self, service_id: str) -> None:
        self._in_flight[service_id] = self._in_flight.get(service_id, 0) + 1

    def _leave(self, service_id: str) -> None:
        remaining = self._in_flight.get(service_id, 0) - 1
        if remaining > 0:
            self._in_flight[service_id] = remaining
        else:
            self._in_flight.pop(service_id, None)

    # ------------------------------------------------------------------
    # CHECK CYCLE
    # ------------------------------------------------------------------

    async def _run_cycle(self, service: Service) -> CheckResult:
        """
        Probe, record, update state, notify and broadcast.

        The runtime state object is captured before the first await. A
        ``stop`` during the cycle drops it from the map and the late
        updates land on the orphaned object. A service without a timer
        gets a throwaway state, so manual checks leave nothing behind.
        """
        state = self._states.get(service.id) or ServiceRuntimeState()

        retry_count = await self.site_settings.retry_count()
        timeout_ms = await self.site_settings.check_timeout_ms()

        outcome = await self._probe_with_retry(service, timeout_ms)
        result = await self.recorder.record(service.id, outcome)

        transition = state.apply(result.success, retry_count)
        if transition is TransitionType.DOWN:
            self._notifications.spawn(
                self.dispatcher.notify_down(service, result),
                label=f"Notify DOWN {service.name}",
            )
        elif transition is TransitionType.UP:
            self._notifications.spawn(
                self.dispatcher.notify_up(service, result),
                label=f"Notify UP {service.name}",
            )

        self.broadcaster.broadcast_check(service.id, result)

        logger.debug(
            f"[Scheduler] {service.name}: success={result.success} "
            f"in {result.response_time}ms (failures={state.consecutive_failures})"
        )
        return result

    async def _probe_with_retry(self, service: Service, timeout_ms: int) -> ProbeOutcome:
        outcome = await self.probe.probe(service, timeout_ms)
        if outcome.timed_out:
            logger.info(f"[Scheduler] {service.name} timed out, retrying in {self.retry_delay}s")
            await self._sleep(self.retry_delay)
            outcome = await self.probe.probe(service, timeout_ms)
        return outcome
