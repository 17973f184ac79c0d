"""Tests for the webhook and email notification channels."""

from __future__ import annotations

import json
import smtplib
from typing import List, Optional

import httpx
import pytest

from conftest import site_settings
from config.constants import Colors, TransitionType
from config.site_settings import SiteSettings
from database.models import Webhook
from exceptions.monitoring import EmailDeliveryError, EmailNotConfiguredError
from notifications import mailer
from notifications.mailer import (
    EmailNotifier,
    build_service_down_message,
    build_service_up_message,
)
from notifications.webhooks import (
    WebhookNotifier,
    build_discord_payload,
    build_generic_payload,
    format_message,
)


def make_webhook(**overrides) -> Webhook:
    fields = {
        "id": overrides.get("name", "hook"),
        "name": "hook",
        "url": "https://hooks.example.com/hook",
        "type": "discord",
        "is_global": True,
        "groups": [],
        "enabled": True,
        "message_down": "{service} is down",
        "message_up": "{service} is back up",
        "avatar_url": None,
    }
    fields.update(overrides)
    return Webhook(**fields)


class FakeWebhooks:
    """Applies the same targeting rule as WebhookRepository."""

    def __init__(self, webhooks: List[Webhook]):
        self.webhooks = webhooks

    async def get_webhooks_for_group(self, group_name: Optional[str]) -> List[Webhook]:
        return [w for w in self.webhooks if w.enabled and w.targets_group(group_name)]


class Capture:
    """httpx.MockTransport handler that records every POST body."""

    def __init__(self, status_for=None):
        self.requests: List[httpx.Request] = []
        self.status_for = status_for or {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_for.get(str(request.url), 204))

    def bodies(self) -> dict:
        return {str(r.url): json.loads(r.content) for r in self.requests}


def _notifier(webhooks, capture: Capture, raw=None) -> WebhookNotifier:
    return WebhookNotifier(
        FakeWebhooks(webhooks),
        site_settings(raw),
        transport=httpx.MockTransport(capture),
    )


# ── Webhook payloads ─────────────────────────────────────────────────────────


class TestPayloads:
    def test_format_message_replaces_every_placeholder(self) -> None:
        assert format_message("{service}: {service} down", "API", "x") == "API: API down"
        assert format_message(None, "API", "{service} is down") == "API is down"

    def test_discord_down(self) -> None:
        payload = build_discord_payload(
            make_webhook(avatar_url="https://img.example.com/a.png"),
            TransitionType.DOWN,
            "API",
            "https://api.example.com",
            footer="https://status.example.com",
            timestamp="2026-01-01T00:00:00.000Z",
            status_code=503,
            error_message="Expected status 200, got 503",
        )
        embed = payload["embeds"][0]

        assert embed["title"] == "API is down"
        assert embed["description"] == "https://api.example.com"
        assert embed["color"] == Colors.ERROR
        assert [f["name"] for f in embed["fields"]] == ["Status Code", "Error"]
        assert embed["fields"][0]["value"] == "503"
        assert embed["footer"] == {"text": "https://status.example.com"}
        assert payload["avatar_url"] == "https://img.example.com/a.png"

    def test_discord_down_without_status_code(self) -> None:
        payload = build_discord_payload(
            make_webhook(), TransitionType.DOWN, "API", "https://api.example.com",
            footer="Status Monitor", timestamp="t", status_code=None, error_message="Request timed out",
        )
        assert [f["name"] for f in payload["embeds"][0]["fields"]] == ["Error"]
        assert "avatar_url" not in payload

    def test_discord_error_field_is_capped(self) -> None:
        payload = build_discord_payload(
            make_webhook(), TransitionType.DOWN, "API", "u",
            footer="f", timestamp="t", status_code=500, error_message="x" * 5000,
        )
        assert len(payload["embeds"][0]["fields"][1]["value"]) <= 1024

    def test_discord_up(self) -> None:
        payload = build_discord_payload(
            make_webhook(message_up="✅ {service} recovered"), TransitionType.UP, "API", "u",
            footer="f", timestamp="t", response_time_ms=87,
        )
        embed = payload["embeds"][0]
        assert embed["title"] == "✅ API recovered"
        assert embed["color"] == Colors.SUCCESS
        assert embed["fields"] == [{"name": "Response Time", "value": "87ms", "inline": True}]

    def test_generic_down(self) -> None:
        payload = build_generic_payload(
            TransitionType.DOWN, "API", "https://api.example.com", "core", "t",
            status_code=None, error_message="Request timed out",
        )
        assert payload == {
            "event": "service.down",
            "service": {"name": "API", "url": "https://api.example.com", "group": "core"},
            "status": "down",
            "statusCode": None,
            "errorMessage": "Request timed out",
            "timestamp": "t",
        }

    def test_generic_up(self) -> None:
        payload = build_generic_payload(
            TransitionType.UP, "API", "https://api.example.com", None, "t", response_time_ms=12,
        )
        assert payload["event"] == "service.up"
        assert payload["status"] == "up"
        assert payload["responseTime"] == 12
        assert "statusCode" not in payload


# ── Webhook delivery ─────────────────────────────────────────────────────────


class TestWebhookNotifier:
    async def test_only_targeted_webhooks_receive(self) -> None:
        hooks = [
            make_webhook(name="global", url="https://hooks.example.com/global"),
            make_webhook(name="core", url="https://hooks.example.com/core", is_global=False, groups=["core"]),
            make_webhook(name="edge", url="https://hooks.example.com/edge", is_global=False, groups=["edge"]),
            make_webhook(name="off", url="https://hooks.example.com/off", enabled=False),
        ]
        capture = Capture()

        delivered = await _notifier(hooks, capture).send_service_down(
            "API", "https://api.example.com", "core", 500, "boom"
        )

        assert delivered == 2
        assert set(capture.bodies()) == {
            "https://hooks.example.com/global",
            "https://hooks.example.com/core",
        }

    async def test_ungrouped_service_reaches_global_webhooks_only(self) -> None:
        hooks = [
            make_webhook(name="global", url="https://hooks.example.com/global"),
            make_webhook(name="core", url="https://hooks.example.com/core", is_global=False, groups=["core"]),
        ]
        capture = Capture()

        await _notifier(hooks, capture).send_service_up("API", "https://api.example.com", None, 10)

        assert list(capture.bodies()) == ["https://hooks.example.com/global"]

    async def test_payload_flavour_follows_webhook_type(self) -> None:
        hooks = [
            make_webhook(name="discord", url="https://hooks.example.com/discord"),
            make_webhook(name="generic", url="https://hooks.example.com/generic", type="webhook"),
        ]
        capture = Capture()

        await _notifier(hooks, capture, raw={"site_url": "https://status.example.com"}).send_service_down(
            "API", "https://api.example.com", None, 503, "down"
        )
        bodies = capture.bodies()

        discord = bodies["https://hooks.example.com/discord"]
        assert discord["embeds"][0]["footer"] == {"text": "https://status.example.com"}
        generic = bodies["https://hooks.example.com/generic"]
        assert generic["event"] == "service.down"
        assert generic["statusCode"] == 503

    async def test_footer_defaults_without_site_url(self) -> None:
        capture = Capture()

        await _notifier([make_webhook()], capture).send_service_up("API", "u", None, 5)

        body = next(iter(capture.bodies().values()))
        assert body["embeds"][0]["footer"] == {"text": "Status Monitor"}

    async def test_rejected_webhook_does_not_affect_others(self) -> None:
        hooks = [
            make_webhook(name="bad", url="https://hooks.example.com/bad"),
            make_webhook(name="good", url="https://hooks.example.com/good"),
        ]
        capture = Capture(status_for={"https://hooks.example.com/bad": 500})

        delivered = await _notifier(hooks, capture).send_service_down("API", "u", None, 500, "boom")

        assert delivered == 1
        assert len(capture.requests) == 2

    async def test_transport_error_is_counted_as_undelivered(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        notifier = WebhookNotifier(
            FakeWebhooks([make_webhook()]), site_settings(), transport=httpx.MockTransport(handler)
        )

        assert await notifier.send_service_up("API", "u", None, 5) == 0

    async def test_no_webhooks(self) -> None:
        capture = Capture()
        assert await _notifier([], capture).send_service_down("API", "u", None, 500, "x") == 0
        assert capture.requests == []


# ── Email messages ───────────────────────────────────────────────────────────


SMTP_RAW = {
    "site_name": "Acme Status",
    "smtp_enabled": "true",
    "smtp_host": "smtp.example.com",
    "smtp_port": "587",
    "smtp_user": "monitor@example.com",
    "smtp_pass": "secret",
    "email_to": "ops@example.com",
}


def _text(message) -> str:
    return message.get_body(preferencelist=("plain",)).get_content()


class TestEmailMessages:
    def test_down_message(self) -> None:
        settings = SiteSettings.from_raw(SMTP_RAW)
        message = build_service_down_message(
            settings, "API", "https://internal/health", "https://api.example.com",
            "core", 503, "Expected status 200, got 503",
        )
        lines = _text(message).splitlines()

        assert message["Subject"] == "[Acme Status] Service Down: API"
        assert message["From"] == "monitor@example.com"
        assert message["To"] == "ops@example.com"
        assert lines[0] == 'Service "API" is DOWN'
        assert "URL: https://api.example.com" in lines
        assert "Check URL: https://internal/health" in lines
        assert "Group: core" in lines
        assert "Status Code: 503" in lines
        assert "Error: Expected status 200, got 503" in lines
        assert any(line.startswith("Time: ") for line in lines)

    def test_check_url_omitted_when_same(self) -> None:
        settings = SiteSettings.from_raw(SMTP_RAW)
        message = build_service_down_message(
            settings, "API", "https://api.example.com", None, None, None, "Request timed out",
        )
        text = _text(message)

        assert "Check URL" not in text
        assert "Status Code" not in text
        assert "Group" not in text

    def test_up_message(self) -> None:
        settings = SiteSettings.from_raw({**SMTP_RAW, "smtp_from": "Status <status@example.com>"})
        message = build_service_up_message(settings, "API", "https://api.example.com", None, None, 87)

        assert message["Subject"] == "[Acme Status] Service Up: API"
        assert "status@example.com" in message["From"]
        assert "Response Time: 87ms" in _text(message)

    def test_html_alternative_is_escaped(self) -> None:
        settings = SiteSettings.from_raw(SMTP_RAW)
        message = build_service_down_message(
            settings, "API", "https://api.example.com", None, None, 500, "<script>",
        )
        html = message.get_body(preferencelist=("html",)).get_content()

        assert "&lt;script&gt;" in html
        assert "<script>" not in html


# ── Email delivery ───────────────────────────────────────────────────────────


class FakeSMTP:
    """Records the SMTP conversation instead of opening a socket."""

    instances: List["FakeSMTP"] = []
    extensions = {"starttls"}
    fail_with: Optional[Exception] = None

    def __init__(self, host, port, timeout=None, context=None):
        self.host = host
        self.port = port
        self.calls: List[str] = []
        self.sent = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.calls.append("quit")
        return False

    def ehlo(self):
        self.calls.append("ehlo")

    def has_extn(self, name):
        return name in self.extensions

    def starttls(self, context=None):
        self.calls.append("starttls")

    def login(self, user, password):
        self.calls.append(f"login:{user}")

    def send_message(self, message):
        if self.fail_with is not None:
            raise self.fail_with
        self.calls.append("send")
        self.sent.append(message)


class FakeSMTPSSL(FakeSMTP):
    pass


@pytest.fixture
def fake_smtp(monkeypatch):
    FakeSMTP.instances = []
    FakeSMTP.fail_with = None
    monkeypatch.setattr(mailer.smtplib, "SMTP", FakeSMTP)
    monkeypatch.setattr(mailer.smtplib, "SMTP_SSL", FakeSMTPSSL)
    yield FakeSMTP
    FakeSMTP.fail_with = None


class TestEmailNotifier:
    async def test_unconfigured_smtp_sends_nothing(self, fake_smtp) -> None:
        notifier = EmailNotifier(site_settings({"smtp_enabled": "true"}))

        sent = await notifier.send_service_down("API", "u", None, None, 500, "boom")

        assert sent is False
        assert fake_smtp.instances == []

    async def test_starttls_flow(self, fake_smtp) -> None:
        notifier = EmailNotifier(site_settings(SMTP_RAW))

        assert await notifier.send_service_down("API", "u", None, None, 500, "boom") is True

        smtp = fake_smtp.instances[0]
        assert not isinstance(smtp, FakeSMTPSSL)
        assert (smtp.host, smtp.port) == ("smtp.example.com", 587)
        assert smtp.calls == ["ehlo", "starttls", "ehlo", "login:monitor@example.com", "send", "quit"]

    @pytest.mark.parametrize("overrides", [
        {"smtp_port": "465"},
        {"smtp_secure": "true", "smtp_port": "2465"},
    ])
    async def test_implicit_tls(self, fake_smtp, overrides) -> None:
        notifier = EmailNotifier(site_settings({**SMTP_RAW, **overrides}))

        await notifier.send_service_up("API", "u", None, None, 12)

        smtp = fake_smtp.instances[0]
        assert isinstance(smtp, FakeSMTPSSL)
        assert "starttls" not in smtp.calls

    async def test_smtp_failure_raises_delivery_error(self, fake_smtp) -> None:
        fake_smtp.fail_with = smtplib.SMTPRecipientsRefused({"ops@example.com": (550, b"no")})
        notifier = EmailNotifier(site_settings(SMTP_RAW))

        with pytest.raises(EmailDeliveryError) as exc_info:
            await notifier.send_service_down("API", "u", None, None, 500, "boom")

        assert exc_info.value.message.startswith("SMTPRecipientsRefused - ")
        assert isinstance(exc_info.value.cause, smtplib.SMTPRecipientsRefused)

    async def test_test_email_requires_host_and_user(self, fake_smtp) -> None:
        notifier = EmailNotifier(site_settings({"smtp_host": "smtp.example.com"}))

        with pytest.raises(EmailNotConfiguredError, match="SMTP not configured"):
            await notifier.send_test_email()

    async def test_test_email_requires_recipient(self, fake_smtp) -> None:
        raw = {k: v for k, v in SMTP_RAW.items() if k != "email_to"}
        notifier = EmailNotifier(site_settings(raw))

        with pytest.raises(EmailNotConfiguredError, match="No recipient"):
            await notifier.send_test_email()

    async def test_test_email_ignores_enabled_flag(self, fake_smtp) -> None:
        notifier = EmailNotifier(site_settings({**SMTP_RAW, "smtp_enabled": "false"}))

        await notifier.send_test_email()

        sent = fake_smtp.instances[0].sent[0]
        assert sent["Subject"] == "[Acme Status] Test Email"
