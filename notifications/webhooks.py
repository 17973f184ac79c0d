"""
============================================================================
STATUS MONITOR - WEBHOOK NOTIFIER
============================================================================
Delivers service down / up notifications to every enabled webhook that
targets the service's group.

Two payload flavours are supported:

    discord  - a single embed (title, URL, colour, fields, footer)
    webhook  - a flat JSON document for generic receivers:
               {event, service: {name, url, group}, status,
                statusCode, errorMessage | responseTime, timestamp}

Webhooks are delivered concurrently and independently. A non-2xx answer
or a transport error is logged for that webhook only.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
from typing import Any, Dict, List, Optional

import httpx

from config.constants import Colors, Defaults, TransitionType, WebhookType
from config.site_settings import SiteSettingsProvider
from database.models import Webhook
from database.repositories import WebhookRepository
from exceptions.monitoring import WebhookDeliveryError
from utils.helpers import StringHelper, TimeHelper
from utils.logger import get_logger


logger = get_logger("Webhooks")


def format_message(template: Optional[str], service_name: str, fallback: str) -> str:
    """Substitute every ``{service}`` placeholder in *template*."""
    return (template or fallback).replace("{service}", service_name)


# ============================================================================
# PAYLOAD BUILDERS
# ============================================================================

def build_discord_payload(
    webhook: Webhook,
    transition: TransitionType,
    service_name: str,
    service_url: str,
    footer: str,
    timestamp: str,
    status_code: Optional[int] = None,
    error_message: Optional[str] = None,
    response_time_ms: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Discord embed payload for one webhook.

    Parameters
    ----------
    webhook : Webhook
        Supplies the message templates and optional avatar.
    transition : TransitionType
        DOWN or UP.
    footer : str
        Site URL, or the default footer text.
    """
    fields: List[Dict[str, Any]] = []

    if transition is TransitionType.DOWN:
        title = format_message(webhook.message_down, service_name, Defaults.MESSAGE_DOWN)
        color = Colors.ERROR
        if status_code:
            fields.append({"name": "Status Code", "value": str(status_code), "inline": True})
        if error_message:
            # Discord caps field values at 1024 characters
            fields.append({
                "name": "Error",
                "value": StringHelper.truncate(error_message, 1024),
                "inline": False,
            })
    else:
        title = format_message(webhook.message_up, service_name, Defaults.MESSAGE_UP)
        color = Colors.SUCCESS
        fields.append({"name": "Response Time", "value": f"{response_time_ms or 0}ms", "inline": True})

    payload: Dict[str, Any] = {
        "embeds": [
            {
                "title": title,
                "description": service_url,
                "color": color,
                "fields": fields,
                "timestamp": timestamp,
                "footer": {"text": footer},
            }
        ]
    }
    if webhook.avatar_url:
        payload["avatar_url"] = webhook.avatar_url
    return payload


def build_generic_payload(
    transition: TransitionType,
    service_name: str,
    service_url: str,
    group_name: Optional[str],
    timestamp: str,
    status_code: Optional[int] = None,
    error_message: Optional[str] = None,
    response_time_ms: Optional[int] = None,
) -> Dict[str, Any]:
    """Flat JSON payload for generic webhook receivers."""
    payload: Dict[str, Any] = {
        "event": transition.event_name,
        "service": {"name": service_name, "url": service_url, "group": group_name},
        "status": transition.value,
    }
    if transition is TransitionType.DOWN:
        payload["statusCode"] = status_code
        payload["errorMessage"] = error_message
    else:
        payload["responseTime"] = response_time_ms
    payload["timestamp"] = timestamp
    return payload


# ============================================================================
# WEBHOOK NOTIFIER
# ============================================================================

class WebhookNotifier:
    """
    Webhook notification channel.

    Parameters
    ----------
    webhooks : WebhookRepository
        Source of the enabled webhooks per group.
    site_settings : SiteSettingsProvider
        Supplies ``site_url`` for the Discord footer.
    timeout : float
        Per-request timeout in seconds.
    transport : httpx.AsyncBaseTransport | None
        Optional transport override (``httpx.MockTransport`` in tests).
    """

    def __init__(
        self,
        webhooks: WebhookRepository,
        site_settings: SiteSettingsProvider,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.webhooks = webhooks
        self.site_settings = site_settings
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        kwargs: Dict[str, Any] = {"timeout": httpx.Timeout(self.timeout)}
        if self._transport is not None:
            kwargs["transport"] = self._transport
        return httpx.AsyncClient(**kwargs)

    # ------------------------------------------------------------------
    # PUBLIC API
    # ------------------------------------------------------------------

    async def send_service_down(
        self,
        service_name: str,
        service_url: str,
        group_name: Optional[str],
        status_code: Optional[int],
        error_message: Optional[str],
    ) -> int:
        """
        Notify every targeted webhook that *service_name* went down.

        Returns
        -------
        int
            Number of webhooks that accepted the payload.
        """
        return await self._send(
            TransitionType.DOWN,
            service_name,
            service_url,
            group_name,
            status_code=status_code,
            error_message=error_message,
        )

    async def send_service_up(
        self,
        service_name: str,
        service_url: str,
        group_name: Optional[str],
        response_time_ms: int,
    ) -> int:
        """
        Notify every targeted webhook that *service_name* recovered.

        Returns
        -------
        int
            Number of webhooks that accepted the payload.
        """
        return await self._send(
            TransitionType.UP,
            service_name,
            service_url,
            group_name,
            response_time_ms=response_time_ms,
        )

    # ------------------------------------------------------------------
    # DELIVERY
    # ------------------------------------------------------------------

    async def _send(
        self,
        transition: TransitionType,
        service_name: str,
        service_url: str,
        group_name: Optional[str],
        **details: Any,
    ) -> int:
        webhooks = await self.webhooks.get_webhooks_for_group(group_name)
        if not webhooks:
            logger.debug(f"[Webhook] No webhooks target group {group_name!r}")
            return 0

        settings = await self.site_settings.load()
        footer = settings.site_url or Defaults.FOOTER_TEXT
        timestamp = TimeHelper.to_iso(TimeHelper.get_utc_now())

        logger.info(
            f"[Webhook] Sending {transition.value.upper()} notification for "
            f"\"{service_name}\" to {len(webhooks)} webhook(s)"
        )

        async with self._client() as client:
            results = await asyncio.gather(
                *[
                    self._deliver(
                        client,
                        webhook,
                        self._payload_for(
                            webhook, transition, service_name, service_url,
                            group_name, footer, timestamp, details,
                        ),
                    )
                    for webhook in webhooks
                ],
                return_exceptions=True,
            )

        delivered = 0
        for webhook, result in zip(webhooks, results):
            if isinstance(result, WebhookDeliveryError):
                logger.error(f"[Webhook] {result.log_format()}")
            elif isinstance(result, BaseException):
                logger.opt(exception=result).error(
                    f"[Webhook] Unexpected failure delivering to {webhook.name}: {result}"
                )
            else:
                delivered += 1
        return delivered

    @staticmethod
    def _payload_for(
        webhook: Webhook,
        transition: TransitionType,
        service_name: str,
        service_url: str,
        group_name: Optional[str],
        footer: str,
        timestamp: str,
        details: Dict[str, Any],
    ) -> Dict[str, Any]:
        if webhook.type == WebhookType.DISCORD.value:
            return build_discord_payload(
                webhook, transition, service_name, service_url, footer, timestamp, **details
            )
        return build_generic_payload(
            transition, service_name, service_url, group_name, timestamp, **details
        )

    async def _deliver(self, client: httpx.AsyncClient, webhook: Webhook, payload: Dict[str, Any]) -> None:
        """
        POST *payload* to one webhook.

        Raises
        ------
        WebhookDeliveryError
            On a non-2xx answer or a transport error.
        """
        try:
            response = await client.post(webhook.url, json=payload)
        except httpx.HTTPError as e:
            raise WebhookDeliveryError(
                f"Failed to send webhook to {webhook.name}: {str(e) or type(e).__name__}",
                webhook_name=webhook.name,
                cause=e,
            )

        if not response.is_success:
            raise WebhookDeliveryError(
                f"Webhook {webhook.name} returned {response.status_code}: "
                f"{StringHelper.truncate(response.text, 200)}",
                webhook_name=webhook.name,
                status_code=response.status_code,
            )

        logger.debug(f"[Webhook] ✓ {webhook.name} accepted {response.status_code}")
