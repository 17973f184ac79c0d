"""
============================================================================
STATUS MONITOR - EMAIL NOTIFIER
============================================================================
SMTP delivery of service down / up notifications and of the operator's
test email.

Connection settings come from the runtime settings table on every send,
so SMTP changes apply without a restart. ``smtplib`` is blocking and
runs in a worker thread through ``asyncio.to_thread``.

Transport selection:

    smtp_secure = true or port 465 → implicit TLS (SMTP_SSL)
    otherwise                      → plain connect, STARTTLS when offered

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
import smtplib
import ssl
from email.message import EmailMessage
from typing import List, Optional

from config.site_settings import SiteSettings, SiteSettingsProvider
from exceptions.monitoring import EmailDeliveryError, EmailNotConfiguredError
from utils.helpers import StringHelper, TimeHelper
from utils.logger import get_logger


logger = get_logger("Email")

SMTPS_PORT = 465


# ============================================================================
# MESSAGE BUILDING
# ============================================================================

def _detail_lines(
    check_url: str,
    display_url: Optional[str],
    group_name: Optional[str],
) -> List[tuple]:
    shown_url = display_url or check_url
    rows = [("URL", shown_url)]
    if display_url and display_url != check_url:
        rows.append(("Check URL", check_url))
    if group_name:
        rows.append(("Group", group_name))
    return rows


def _render(
    settings: SiteSettings,
    subject: str,
    headline: str,
    heading_color: str,
    rows: List[tuple],
    link_labels: tuple = ("URL", "Check URL"),
) -> EmailMessage:
    """
    Assemble a multipart/alternative message from labelled rows.

    The plain-text part lists ``Label: value`` lines; the HTML part
    renders the same rows, linking the URL rows.
    """
    timestamp = TimeHelper.to_iso(TimeHelper.get_utc_now())
    rows = rows + [("Time", timestamp)]

    text_lines = [headline, ""]
    html_rows = []
    for label, value in rows:
        if label == "Time":
            text_lines.append("")
        text_lines.append(f"{label}: {value}")

        escaped = StringHelper.escape_html(str(value))
        if label in link_labels:
            escaped = f'<a href="{escaped}">{escaped}</a>'
        html_rows.append(f"<p><strong>{label}:</strong> {escaped}</p>")

    site_name = StringHelper.escape_html(settings.site_name)
    html = (
        f'<h2 style="color: {heading_color};">{StringHelper.escape_html(subject.split("] ", 1)[-1])}</h2>\n'
        + "\n".join(html_rows)
        + f'\n<hr>\n<p style="color: #666; font-size: 12px;">Sent by {site_name}</p>\n'
    )

    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = settings.smtp_from or settings.smtp_user or ""
    message["To"] = settings.email_to or ""
    message.set_content("\n".join(text_lines))
    message.add_alternative(html, subtype="html")
    return message


def build_service_down_message(
    settings: SiteSettings,
    service_name: str,
    check_url: str,
    display_url: Optional[str],
    group_name: Optional[str],
    status_code: Optional[int],
    error_message: Optional[str],
) -> EmailMessage:
    """Down notification: subject ``[{site}] Service Down: {name}``."""
    rows = _detail_lines(check_url, display_url, group_name)
    if status_code:
        rows.append(("Status Code", status_code))
    if error_message:
        rows.append(("Error", error_message))

    return _render(
        settings,
        subject=f"[{settings.site_name}] Service Down: {service_name}",
        headline=f'Service "{service_name}" is DOWN',
        heading_color="#ef4444",
        rows=rows,
    )


def build_service_up_message(
    settings: SiteSettings,
    service_name: str,
    check_url: str,
    display_url: Optional[str],
    group_name: Optional[str],
    response_time_ms: int,
) -> EmailMessage:
    """Recovery notification: subject ``[{site}] Service Up: {name}``."""
    rows = _detail_lines(check_url, display_url, group_name)
    rows.append(("Response Time", f"{response_time_ms}ms"))

    return _render(
        settings,
        subject=f"[{settings.site_name}] Service Up: {service_name}",
        headline=f'Service "{service_name}" is UP',
        heading_color="#22c55e",
        rows=rows,
    )


def build_test_message(settings: SiteSettings) -> EmailMessage:
    return _render(
        settings,
        subject=f"[{settings.site_name}] Test Email",
        headline="This is a test email from your status monitor.",
        heading_color="#3b82f6",
        rows=[("Result", "If you received this email, your SMTP settings are configured correctly.")],
    )


# ============================================================================
# EMAIL NOTIFIER
# ============================================================================

class EmailNotifier:
    """
    Email notification channel.

    Parameters
    ----------
    site_settings : SiteSettingsProvider
        Source of SMTP credentials, recipients and site name.
    timeout : float
        SMTP socket timeout in seconds.
    """

    def __init__(self, site_settings: SiteSettingsProvider, timeout: float = 30.0):
        self.site_settings = site_settings
        self.timeout = timeout

    # ------------------------------------------------------------------
    # PUBLIC API
    # ------------------------------------------------------------------

    async def send_service_down(
        self,
        service_name: str,
        check_url: str,
        display_url: Optional[str],
        group_name: Optional[str],
        status_code: Optional[int],
        error_message: Optional[str],
    ) -> bool:
        """
        Email a down notification.

        Returns
        -------
        bool
            False when SMTP is not configured and nothing was sent.

        Raises
        ------
        EmailDeliveryError
            When the SMTP exchange fails.
        """
        settings = await self.site_settings.load()
        if not settings.smtp_configured:
            logger.debug(f"[Email] SMTP not configured, skipping DOWN email for {service_name}")
            return False

        message = build_service_down_message(
            settings, service_name, check_url, display_url, group_name, status_code, error_message
        )
        await self._send(settings, message)
        logger.info(f"[Email] ✓ DOWN email sent for \"{service_name}\" to {settings.email_to}")
        return True

    async def send_service_up(
        self,
        service_name: str,
        check_url: str,
        display_url: Optional[str],
        group_name: Optional[str],
        response_time_ms: int,
    ) -> bool:
        """
        Email a recovery notification. Same contract as ``send_service_down``.
        """
        settings = await self.site_settings.load()
        if not settings.smtp_configured:
            logger.debug(f"[Email] SMTP not configured, skipping UP email for {service_name}")
            return False

        message = build_service_up_message(
            settings, service_name, check_url, display_url, group_name, response_time_ms
        )
        await self._send(settings, message)
        logger.info(f"[Email] ✓ UP email sent for \"{service_name}\" to {settings.email_to}")
        return True

    async def send_test_email(self) -> None:
        """
        Send a test message with the current SMTP settings.

        Raises
        ------
        EmailNotConfiguredError
            Host, user or recipient is missing.
        EmailDeliveryError
            The SMTP exchange failed.
        """
        settings = await self.site_settings.load()
        if not settings.smtp_host or not settings.smtp_user:
            raise EmailNotConfiguredError("SMTP not configured")
        if not settings.email_to:
            raise EmailNotConfiguredError("No recipient email configured")

        await self._send(settings, build_test_message(settings))
        logger.info(f"[Email] ✓ Test email sent to {settings.email_to}")

    # ------------------------------------------------------------------
    # SMTP
    # ------------------------------------------------------------------

    async def _send(self, settings: SiteSettings, message: EmailMessage) -> None:
        try:
            await asyncio.to_thread(self._deliver, settings, message)
        except (smtplib.SMTPException, OSError) as e:
            parts = [type(e).__name__]
            if str(e):
                parts.append(str(e))
            raise EmailDeliveryError(" - ".join(parts), cause=e)

    def _deliver(self, settings: SiteSettings, message: EmailMessage) -> None:
        """Blocking SMTP exchange; runs in a worker thread."""
        context = ssl.create_default_context()
        implicit_tls = settings.smtp_secure or settings.smtp_port == SMTPS_PORT

        if implicit_tls:
            smtp = smtplib.SMTP_SSL(
                settings.smtp_host, settings.smtp_port, timeout=self.timeout, context=context
            )
        else:
            smtp = smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=self.timeout)

        with smtp:
            if not implicit_tls:
                smtp.ehlo()
                if smtp.has_extn("starttls"):
                    smtp.starttls(context=context)
                    smtp.ehlo()
            if settings.smtp_user and settings.smtp_pass:
                smtp.login(settings.smtp_user, settings.smtp_pass)
            smtp.send_message(message)
