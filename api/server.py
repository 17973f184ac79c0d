"""
============================================================================
STATUS MONITOR - HTTP API SERVER
============================================================================
aiohttp server exposing check history, uptime statistics, the scheduler
control surface and the live check stream.

Routes
------
GET  /health                         liveness + scheduler summary
GET  /events/stream                  Server-Sent Events live check feed
GET  /checks/service/{id}?limit=N    newest-first history
POST /checks/service/{id}            run one check now          (token)
GET  /checks/service/{id}/latest     newest check or null
GET  /checks/service/{id}/stats      24h uptime statistics
POST /checks/batch                   latest check per id
POST /checks/stats/batch             statistics per id
POST /checker/start/{id}             (re)start polling          (token)
POST /checker/stop/{id}              stop polling               (token)
POST /settings/invalidate            drop cached site settings  (token)
POST /notifications/test-email       send the SMTP test email   (token)

Routes marked (token) require ``Authorization: Bearer <API_TOKEN>`` when
a token is configured. Errors are JSON: ``{"error": "..."}``.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
import hmac
import time
from typing import Any, List, Optional

from aiohttp import web

from config.constants import Limits
from config.settings import ApiSettings
from config.site_settings import SiteSettingsProvider
from exceptions.base import AccessDeniedError, AuthenticationError, StatusMonitorException
from exceptions.monitoring import ServiceDisabledError
from monitoring.broadcast import KEEPALIVE_FRAME, LiveBroadcaster
from monitoring.recorder import CheckRecorder
from monitoring.scheduler import ServiceScheduler
from notifications.mailer import EmailNotifier
from utils.helpers import TimeHelper
from utils.logger import get_logger


logger = get_logger("API")


def _json_error(message: str, status: int) -> web.Response:
    return web.json_response({"error": message}, status=status)


def _seconds_to_human(seconds: int) -> str:
    """Convert seconds → '2d 5h 13m 7s'."""
    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)
    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    parts.append(f"{seconds}s")
    return " ".join(parts)


class ApiServer:
    """
    HTTP front of the monitoring core.

    Attributes
    ----------
    app : aiohttp.web.Application
        The routed application (usable directly with aiohttp's test
        server).
    """

    def __init__(
        self,
        scheduler: ServiceScheduler,
        recorder: CheckRecorder,
        broadcaster: LiveBroadcaster,
        site_settings: SiteSettingsProvider,
        email_notifier: EmailNotifier,
        settings: ApiSettings,
        app_name: str = "Status Monitor",
        app_version: str = "1.0.0",
    ):
        self.scheduler = scheduler
        self.recorder = recorder
        self.broadcaster = broadcaster
        self.site_settings = site_settings
        self.email_notifier = email_notifier
        self.settings = settings
        self.app_name = app_name
        self.app_version = app_version

        self._token: Optional[str] = settings.token.get_secret_value() if settings.token else None
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._start_time: float = time.time()

        self._app = web.Application(middlewares=[self._cors_middleware, self._error_middleware])
        self._app.on_shutdown.append(self._on_shutdown)

        # Register routes
        router = self._app.router
        router.add_get("/health", self._handle_health)
        router.add_get("/events/stream", self._handle_stream)
        router.add_get("/checks/service/{service_id}", self._handle_history)
        router.add_post("/checks/service/{service_id}", self._handle_run_now)
        router.add_get("/checks/service/{service_id}/latest", self._handle_latest)
        router.add_get("/checks/service/{service_id}/stats", self._handle_stats)
        router.add_post("/checks/batch", self._handle_latest_batch)
        router.add_post("/checks/stats/batch", self._handle_stats_batch)
        router.add_post("/checker/start/{service_id}", self._handle_start)
        router.add_post("/checker/stop/{service_id}", self._handle_stop)
        router.add_post("/settings/invalidate", self._handle_invalidate)
        router.add_post("/notifications/test-email", self._handle_test_email)

    @property
    def app(self) -> web.Application:
        return self._app

    # ------------------------------------------------------------------
    # LIFECYCLE
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Bind and start serving."""
        self._start_time = time.time()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self.settings.host, self.settings.port)
        await self._site.start()
        logger.info(f"✓ API listening on {self.settings.host}:{self.settings.port}")

    async def stop(self) -> None:
        """Gracefully shut down the server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
        logger.info("✓ API stopped")

    async def _on_shutdown(self, app: web.Application) -> None:
        self.broadcaster.close_all()

    # ------------------------------------------------------------------
    # MIDDLEWARE
    # ------------------------------------------------------------------

    @web.middleware
    async def _error_middleware(self, request: web.Request, handler):
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except StatusMonitorException as e:
            if e.http_status >= 500:
                logger.error(f"[API] {request.method} {request.path} failed: {e.log_format()}")
            return _json_error(e.user_message(), e.http_status)
        except Exception as e:
            logger.opt(exception=e).error(f"[API] Unhandled error on {request.method} {request.path}: {e}")
            return _json_error("Internal server error", 500)

    @web.middleware
    async def _cors_middleware(self, request: web.Request, handler):
        response = await handler(request)
        if not response.prepared:
            response.headers["Access-Control-Allow-Origin"] = self.settings.cors_origin
        return response

    def _require_token(self, request: web.Request) -> None:
        """
        Enforce the bearer token on mutating routes.

        Raises:
            AuthenticationError: Header missing or not a bearer token
            AccessDeniedError: Token does not match
        """
        if not self._token:
            return

        header = request.headers.get("Authorization", "")
        scheme, _, supplied = header.partition(" ")
        if scheme.lower() != "bearer" or not supplied:
            raise AuthenticationError()
        if not hmac.compare_digest(supplied.strip().encode(), self._token.encode()):
            raise AccessDeniedError(action=f"{request.method} {request.path}")

    # ------------------------------------------------------------------
    # HEALTH & LIVE STREAM
    # ------------------------------------------------------------------

    async def _handle_health(self, request: web.Request) -> web.Response:
        """GET /health — detailed health JSON."""
        uptime_seconds = time.time() - self._start_time
        return web.json_response({
            "status": "healthy",
            "app": self.app_name,
            "version": self.app_version,
            "uptime_seconds": round(uptime_seconds, 1),
            "uptime_human": _seconds_to_human(int(uptime_seconds)),
            "scheduled_services": len(self.scheduler.scheduled_ids),
            "live_clients": self.broadcaster.client_count,
            "timestamp": TimeHelper.to_iso(TimeHelper.get_utc_now()),
        })

    async def _handle_stream(self, request: web.Request) -> web.StreamResponse:
        """
        GET /events/stream — one SSE subscriber.

        The first frame is ``connected`` with the client id. Check frames
        follow as they are broadcast; a keepalive comment is written
        whenever the queue stays empty for the keepalive interval.
        """
        response = web.StreamResponse(headers={
            "Content-Type": "text/event-stream",
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "Access-Control-Allow-Origin": self.settings.cors_origin,
        })
        await response.prepare(request)

        client_id, queue = self.broadcaster.add_client()
        try:
            while self.broadcaster.has_client(client_id):
                try:
                    frame = await asyncio.wait_for(queue.get(), timeout=self.settings.sse_keepalive_interval)
                except asyncio.TimeoutError:
                    frame = KEEPALIVE_FRAME
                await response.write(frame.encode("utf-8"))
        except ConnectionResetError:
            logger.debug(f"[SSE] Client {client_id} went away")
        finally:
            self.broadcaster.remove_client(client_id)

        return response

    # ------------------------------------------------------------------
    # CHECK QUERIES
    # ------------------------------------------------------------------

    async def _handle_history(self, request: web.Request) -> web.Response:
        service_id = request.match_info["service_id"]
        raw_limit = request.query.get("limit")
        limit = Limits.DEFAULT_HISTORY_LIMIT
        if raw_limit is not None:
            try:
                limit = int(raw_limit)
            except ValueError:
                return _json_error("limit must be an integer", 400)

        checks = await self.recorder.history(service_id, limit)
        return web.json_response([check.to_dict() for check in checks])

    async def _handle_latest(self, request: web.Request) -> web.Response:
        check = await self.recorder.latest(request.match_info["service_id"])
        return web.json_response(check.to_dict() if check else None)

    async def _handle_stats(self, request: web.Request) -> web.Response:
        stats = await self.recorder.stats(request.match_info["service_id"])
        return web.json_response(stats)

    async def _handle_latest_batch(self, request: web.Request) -> web.Response:
        service_ids = await self._read_service_ids(request)
        latest = await self.recorder.latest_batch(service_ids)
        return web.json_response({
            service_id: check.to_dict() if check else None
            for service_id, check in latest.items()
        })

    async def _handle_stats_batch(self, request: web.Request) -> web.Response:
        service_ids = await self._read_service_ids(request)
        return web.json_response(await self.recorder.stats_batch(service_ids))

    @staticmethod
    async def _read_service_ids(request: web.Request) -> List[str]:
        """Parse ``{"serviceIds": [...]}``; 400 on anything else."""
        try:
            body: Any = await request.json()
        except ValueError:
            raise web.HTTPBadRequest(
                text='{"error": "Body must be JSON"}', content_type="application/json"
            )

        service_ids = body.get("serviceIds") if isinstance(body, dict) else None
        if not isinstance(service_ids, list) or not all(isinstance(i, str) for i in service_ids):
            raise web.HTTPBadRequest(
                text='{"error": "serviceIds must be an array of strings"}',
                content_type="application/json",
            )
        return service_ids

    # ------------------------------------------------------------------
    # SCHEDULER CONTROL
    # ------------------------------------------------------------------

    async def _handle_run_now(self, request: web.Request) -> web.Response:
        self._require_token(request)
        result = await self.scheduler.run_once(request.match_info["service_id"])
        return web.json_response(result.to_dict())

    async def _handle_start(self, request: web.Request) -> web.Response:
        self._require_token(request)
        service_id = request.match_info["service_id"]
        if not await self.scheduler.start(service_id):
            raise ServiceDisabledError(service_id)
        return web.json_response({"success": True, "serviceId": service_id, "scheduled": True})

    async def _handle_stop(self, request: web.Request) -> web.Response:
        self._require_token(request)
        service_id = request.match_info["service_id"]
        stopped = self.scheduler.stop(service_id)
        return web.json_response({"success": True, "serviceId": service_id, "stopped": stopped})

    # ------------------------------------------------------------------
    # SETTINGS & NOTIFICATIONS
    # ------------------------------------------------------------------

    async def _handle_invalidate(self, request: web.Request) -> web.Response:
        self._require_token(request)
        self.site_settings.invalidate()
        return web.json_response({"success": True})

    async def _handle_test_email(self, request: web.Request) -> web.Response:
        self._require_token(request)
        await self.email_notifier.send_test_email()
        return web.json_response({"success": True})

