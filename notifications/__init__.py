"""
Notifications Package for Status Monitor

Outbound notification channels used by the dispatcher when a service
goes down or recovers: webhooks (Discord embeds or generic JSON) and
SMTP email.
"""

from notifications.webhooks import (
    WebhookNotifier,
    build_discord_payload,
    build_generic_payload,
    format_message
)

from notifications.mailer import (
    EmailNotifier,
    build_service_down_message,
    build_service_up_message,
    build_test_message
)

__all__ = [
    # Webhooks
    "WebhookNotifier",
    "build_discord_payload",
    "build_generic_payload",
    "format_message",

    # Email
    "EmailNotifier",
    "build_service_down_message",
    "build_service_up_message",
    "build_test_message"
]
