"""
============================================================================
STATUS MONITOR - MAIN APPLICATION
============================================================================
Entry point that wires every layer of the status monitor together:

    Layer 1 — Core & Database
        • Settings (pydantic-settings)
        • SQLAlchemy async engine + models
        • DatabaseManager + Repositories
        • Runtime site settings (TTL cached)

    Layer 2 — Monitoring
        • ProbeExecutor        — httpx health probes
        • CheckRecorder        — history and uptime statistics
        • NotificationDispatcher + webhook / email channels
        • LiveBroadcaster      — SSE fan-out
        • ServiceScheduler     — per-service timers

    Layer 3 — HTTP API
        • ApiServer            — aiohttp, history / control / live stream

Startup Order
-------------
1.  Load settings & configure logging
2.  Connect the database (create tables when enabled)
3.  Build repositories, site settings, channels and the scheduler
4.  Start the API server
5.  Schedule every enabled service
6.  Wait for SIGINT / SIGTERM

Shutdown Order (reverse)
-------------------------
    Stop scheduler → stop API server → close DB → exit

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
import signal
import sys
from typing import Optional

from api.server import ApiServer
from config.settings import Settings, get_settings
from config.site_settings import SiteSettingsProvider
from database.connection import DatabaseManager
from database.repositories import (
    CheckRepository,
    GroupRepository,
    ServiceRepository,
    SettingsRepository,
    WebhookRepository,
)
from exceptions.base import InitializationError, ShutdownError, StatusMonitorException
from monitoring.alerts import NotificationDispatcher
from monitoring.broadcast import LiveBroadcaster
from monitoring.probe import ProbeExecutor
from monitoring.recorder import CheckRecorder
from monitoring.scheduler import ServiceScheduler
from notifications.mailer import EmailNotifier
from notifications.webhooks import WebhookNotifier
from utils.logger import get_logger, setup_logging


logger = get_logger("Main")


def _log_shutdown_error(component: str, e: Exception) -> None:
    error = ShutdownError.from_exception(e, component=component)
    logger.opt(exception=e).error(f"  ✗ {component} stop error: {error.log_format()}")


# ============================================================================
# APPLICATION CLASS
# ============================================================================

class StatusMonitorApplication:
    """
    Top-level application orchestrator.

    Owns every subsystem and is the single place that knows the startup /
    shutdown order. Subsystems receive their collaborators explicitly;
    only ``Settings`` is cached process-wide.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

        # --- subsystems (populated during startup) ---
        self.db_manager: Optional[DatabaseManager] = None
        self.site_settings: Optional[SiteSettingsProvider] = None
        self.recorder: Optional[CheckRecorder] = None
        self.broadcaster: Optional[LiveBroadcaster] = None
        self.email_notifier: Optional[EmailNotifier] = None
        self.scheduler: Optional[ServiceScheduler] = None
        self.api_server: Optional[ApiServer] = None

        # --- lifecycle ---
        self._stop_event = asyncio.Event()
        self._is_running = False

    # ==================================================================
    # PHASE 1 — DATABASE
    # ==================================================================

    async def _init_database(self) -> bool:
        """Connect to the database and verify connectivity."""
        logger.info("── Phase 1: Database ─────────────────────────────")
        try:
            self.db_manager = DatabaseManager(self.settings.database)
            await self.db_manager.connect()

            if self.settings.database.auto_create_tables:
                await self.db_manager.create_tables()

            logger.info(f"  ✓ Connected to {self.settings.database.type.value}")
            return True

        except StatusMonitorException as e:
            error = InitializationError.from_exception(e, message=e.message, component="database")
            logger.error(f"  ✗ Database init failed: {error.log_format()}")
            return False

    # ==================================================================
    # PHASE 2 — MONITORING
    # ==================================================================

    def _init_monitoring(self) -> None:
        """Build the repositories, channels and the scheduler."""
        logger.info("── Phase 2: Monitoring ───────────────────────────")
        monitoring = self.settings.monitoring
        notifications = self.settings.notifications

        services = ServiceRepository(self.db_manager)
        checks = CheckRepository(self.db_manager)
        settings_repo = SettingsRepository(self.db_manager)
        groups = GroupRepository(self.db_manager)
        webhooks = WebhookRepository(self.db_manager)

        self.site_settings = SiteSettingsProvider(
            settings_repo.read_all,
            ttl=monitoring.settings_cache_ttl,
            default_timeout_ms=monitoring.default_check_timeout_ms,
        )
        self.recorder = CheckRecorder(checks)
        self.broadcaster = LiveBroadcaster(queue_size=self.settings.api.sse_queue_size)
        self.email_notifier = EmailNotifier(self.site_settings, timeout=notifications.smtp_timeout)

        dispatcher = NotificationDispatcher(
            site_settings=self.site_settings,
            groups=groups,
            webhook_notifier=WebhookNotifier(
                webhooks, self.site_settings, timeout=notifications.webhook_timeout
            ),
            email_notifier=self.email_notifier,
        )

        self.scheduler = ServiceScheduler(
            services=services,
            recorder=self.recorder,
            probe=ProbeExecutor(
                user_agent=monitoring.user_agent,
                follow_redirects=monitoring.follow_redirects,
                verify_ssl=monitoring.verify_ssl,
            ),
            site_settings=self.site_settings,
            dispatcher=dispatcher,
            broadcaster=self.broadcaster,
            min_check_interval=monitoring.min_check_interval,
            retry_delay=monitoring.retry_delay,
            skip_overlapping=monitoring.skip_overlapping_checks,
        )
        logger.info("  ✓ Scheduler, dispatcher and broadcaster created")

    # ==================================================================
    # PHASE 3 — HTTP API
    # ==================================================================

    def _init_api(self) -> None:
        logger.info("── Phase 3: HTTP API ─────────────────────────────")
        if not self.settings.api.enabled:
            logger.info("  API disabled by configuration")
            return

        self.api_server = ApiServer(
            scheduler=self.scheduler,
            recorder=self.recorder,
            broadcaster=self.broadcaster,
            site_settings=self.site_settings,
            email_notifier=self.email_notifier,
            settings=self.settings.api,
            app_name=self.settings.app_name,
            app_version=self.settings.app_version,
        )
        logger.info("  ✓ API server created")

    # ==================================================================
    # FULL STARTUP SEQUENCE
    # ==================================================================

    async def startup(self) -> bool:
        """
        Execute the complete startup sequence.
        Returns False (and logs errors) if any critical phase fails.
        """
        logger.info("=" * 74)
        logger.info(f"  STARTING {self.settings.app_name} v{self.settings.app_version} …")
        logger.info("=" * 74)

        if not await self._init_database():
            return False

        self._init_monitoring()
        self._init_api()

        logger.info("── Starting services ──────────────────────────────")
        if self.api_server:
            try:
                await self.api_server.start()
            except OSError as e:
                error = InitializationError.from_exception(e, component="api")
                logger.error(f"  ✗ Could not bind the API server: {error.log_format()}")
                return False

        try:
            await self.scheduler.initialize_all()
        except StatusMonitorException as e:
            error = InitializationError.from_exception(e, message=e.message, component="scheduler")
            logger.error(f"  ✗ Could not load services: {error.log_format()}")
            return False

        self._is_running = True

        logger.info("=" * 74)
        logger.info("  ✓ ALL SYSTEMS OPERATIONAL")
        logger.info("=" * 74)
        if self.api_server:
            logger.info(
                f"  Health endpoint: http://{self.settings.api.host}:{self.settings.api.port}/health"
            )
        logger.info(
            f"  Monitoring: {len(self.scheduler.scheduled_ids)} service(s), "
            f"min interval {self.settings.monitoring.min_check_interval}s"
        )
        logger.info("=" * 74)

        return True

    # ==================================================================
    # SHUTDOWN SEQUENCE
    # ==================================================================

    async def shutdown(self) -> None:
        """
        Graceful shutdown in reverse order.
        Each step is wrapped in try/except so a failure in one subsystem
        doesn't prevent the others from cleaning up.
        """
        logger.info("=" * 74)
        logger.info("  SHUTTING DOWN …")
        logger.info("=" * 74)

        self._is_running = False

        # 1. Stop scheduler (timers and in-flight cycles), then let
        #    already-dispatched notifications finish while the DB is open
        if self.scheduler:
            try:
                await self.scheduler.shutdown()
                await asyncio.wait_for(
                    self.scheduler.drain(),
                    timeout=self.settings.notifications.smtp_timeout,
                )
                logger.info("  ✓ Scheduler stopped")
            except asyncio.TimeoutError:
                logger.warning("  ⚠ Pending notifications abandoned at shutdown")
            except Exception as e:
                _log_shutdown_error("scheduler", e)

        # 2. Stop API server (closes live streams)
        if self.api_server:
            try:
                await self.api_server.stop()
            except Exception as e:
                _log_shutdown_error("api", e)

        # 3. Close database connections
        if self.db_manager:
            try:
                await self.db_manager.disconnect()
                logger.info("  ✓ Database connections closed")
            except Exception as e:
                _log_shutdown_error("database", e)

        logger.info("=" * 74)
        logger.info("  ✓ SHUTDOWN COMPLETE")
        logger.info("=" * 74)

    # ==================================================================
    # RUN
    # ==================================================================

    def request_stop(self) -> None:
        """Ask ``run`` to return; safe to call from a signal handler."""
        logger.info("  ⚡ Signal received — initiating graceful shutdown…")
        self._stop_event.set()

    async def run(self) -> None:
        """Block until ``request_stop`` is called."""
        await self._stop_event.wait()


# ============================================================================
# SIGNAL HANDLER SETUP
# ============================================================================

def _install_signal_handlers(app: StatusMonitorApplication) -> None:
    """
    Install SIGTERM / SIGINT handlers so the monitor shuts down gracefully
    even when killed by the OS.
    """
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, app.request_stop)
        except (NotImplementedError, OSError):
            # Signal handlers aren't supported on Windows, fall back to KeyboardInterrupt
            pass


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

async def main() -> int:
    """
    Async main — creates the app, starts it, and runs until shutdown.
    """
    settings = get_settings()
    setup_logging(settings.logging)

    app = StatusMonitorApplication(settings)
    _install_signal_handlers(app)

    try:
        if not await app.startup():
            logger.error("  ✗ Startup failed — exiting")
            return 1
        await app.run()
        return 0
    finally:
        await app.shutdown()


# ============================================================================
# SCRIPT ENTRY POINT
# ============================================================================

def cli() -> None:
    """Console-script entry point."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    cli()
