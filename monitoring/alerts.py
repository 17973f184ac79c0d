"""
============================================================================
STATUS MONITOR - NOTIFICATION DISPATCHER
============================================================================
Decides which channels hear about a down / up episode and invokes them.

Channels
--------
Webhooks are always invoked; the webhook notifier itself picks the
webhooks that target the service's group.

Email is invoked only when the service is eligible:

    service.email_notifications                       → always
    otherwise all of
        smtp_enabled
        email_is_global  or  group in email_groups
        the owning group's email_notifications flag

A service without a group is never eligible through the group policy.

Both channels run concurrently. A failing channel is logged and never
cancels or delays the other.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
from typing import Any, Awaitable, List, Tuple

from config.constants import TransitionType
from config.site_settings import SiteSettingsProvider
from database.models import Service
from database.repositories import GroupRepository
from exceptions.base import StatusMonitorException
from monitoring.recorder import CheckResult
from notifications.mailer import EmailNotifier
from notifications.webhooks import WebhookNotifier
from utils.logger import get_logger


logger = get_logger("Dispatcher")


class NotificationDispatcher:
    """
    Fan-out of one notification episode to the webhook and email channels.

    Parameters
    ----------
    site_settings : SiteSettingsProvider
        Live source of the email policy flags.
    groups : GroupRepository
        Lookup of the owning group's own email flag.
    webhook_notifier : WebhookNotifier
        Webhook channel.
    email_notifier : EmailNotifier
        Email channel.
    """

    def __init__(
        self,
        site_settings: SiteSettingsProvider,
        groups: GroupRepository,
        webhook_notifier: WebhookNotifier,
        email_notifier: EmailNotifier,
    ):
        self.site_settings = site_settings
        self.groups = groups
        self.webhook_notifier = webhook_notifier
        self.email_notifier = email_notifier

    # ------------------------------------------------------------------
    # PUBLIC API
    # ------------------------------------------------------------------

    async def notify_down(self, service: Service, result: CheckResult) -> None:
        """Announce that *service* went down with *result* as the evidence."""
        logger.warning(
            f"[Dispatcher] DOWN: {service.name} "
            f"(status={result.status_code}, error={result.error_message})"
        )
        send_email = await self.should_email(service)
        channels: List[Tuple[str, Awaitable[Any]]] = [
            ("webhook", self.webhook_notifier.send_service_down(
                service.name,
                service.public_url,
                service.group_name,
                result.status_code,
                result.error_message,
            )),
        ]
        if send_email:
            channels.append(("email", self.email_notifier.send_service_down(
                service.name,
                service.url,
                service.display_url,
                service.group_name,
                result.status_code,
                result.error_message,
            )))
        await self._run(TransitionType.DOWN, service, channels)

    async def notify_up(self, service: Service, result: CheckResult) -> None:
        """Announce that *service* recovered."""
        logger.info(f"[Dispatcher] UP: {service.name} ({result.response_time}ms)")
        send_email = await self.should_email(service)
        channels: List[Tuple[str, Awaitable[Any]]] = [
            ("webhook", self.webhook_notifier.send_service_up(
                service.name,
                service.public_url,
                service.group_name,
                result.response_time,
            )),
        ]
        if send_email:
            channels.append(("email", self.email_notifier.send_service_up(
                service.name,
                service.url,
                service.display_url,
                service.group_name,
                result.response_time,
            )))
        await self._run(TransitionType.UP, service, channels)

    async def should_email(self, service: Service) -> bool:
        """
        Email eligibility for *service* under the current settings.

        A settings or group lookup failure is logged and treated as not
        eligible, so the webhook channel still runs.
        """
        if service.email_notifications:
            return True

        if not service.group_name:
            return False

        try:
            settings = await self.site_settings.load()
            if not settings.smtp_enabled:
                return False
            if not settings.email_is_global and service.group_name not in settings.email_groups:
                return False
            group = await self.groups.get_by_name(service.group_name)
        except StatusMonitorException as e:
            logger.error(f"[Dispatcher] Email policy lookup failed for {service.name}: {e.log_format()}")
            return False

        return bool(group and group.email_notifications)

    # ------------------------------------------------------------------
    # INTERNALS
    # ------------------------------------------------------------------

    @staticmethod
    async def _run(
        transition: TransitionType,
        service: Service,
        channels: List[Tuple[str, Awaitable[Any]]],
    ) -> None:
        results = await asyncio.gather(
            *[call for _, call in channels],
            return_exceptions=True,
        )
        for (channel, _), result in zip(channels, results):
            if isinstance(result, StatusMonitorException):
                logger.error(
                    f"[Dispatcher] {transition.value.upper()} {channel} notification "
                    f"for {service.name} failed: {result.log_format()}"
                )
            elif isinstance(result, BaseException):
                logger.opt(exception=result).error(
                    f"[Dispatcher] {transition.value.upper()} {channel} notification "
                    f"for {service.name} failed: {result}"
                )
