"""Tests for the notification dispatcher and its email policy."""

from __future__ import annotations

import json
from typing import Dict, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import fail, make_service, ok, site_settings
from database.models import Group
from exceptions.database import DatabaseQueryError
from exceptions.monitoring import WebhookDeliveryError
from monitoring.alerts import NotificationDispatcher
from monitoring.recorder import CheckResult


class FakeGroups:
    """In-memory stand-in for GroupRepository."""

    def __init__(self, flags: Optional[Dict[str, bool]] = None, error: Optional[Exception] = None):
        self.flags = flags or {}
        self.error = error

    async def get_by_name(self, name: str) -> Optional[Group]:
        if self.error is not None:
            raise self.error
        if name not in self.flags:
            return None
        return Group(name=name, email_notifications=self.flags[name])


def _channels():
    webhook = MagicMock()
    webhook.send_service_down = AsyncMock(return_value=1)
    webhook.send_service_up = AsyncMock(return_value=1)
    email = MagicMock()
    email.send_service_down = AsyncMock(return_value=True)
    email.send_service_up = AsyncMock(return_value=True)
    return webhook, email


def _dispatcher(raw=None, groups=None, webhook=None, email=None) -> NotificationDispatcher:
    default_webhook, default_email = _channels()
    return NotificationDispatcher(
        site_settings=site_settings(raw),
        groups=groups or FakeGroups(),
        webhook_notifier=webhook or default_webhook,
        email_notifier=email or default_email,
    )


POLICY_ON = {"smtp_enabled": "true", "email_is_global": "true"}


# ── Email eligibility ────────────────────────────────────────────────────────


class TestShouldEmail:
    async def test_service_flag_wins(self) -> None:
        dispatcher = _dispatcher(raw={})
        assert await dispatcher.should_email(make_service(email_notifications=True)) is True

    async def test_no_group_is_not_eligible(self) -> None:
        dispatcher = _dispatcher(raw=POLICY_ON, groups=FakeGroups({"core": True}))
        assert await dispatcher.should_email(make_service(group_name=None)) is False

    async def test_global_policy_with_group_flag(self) -> None:
        dispatcher = _dispatcher(raw=POLICY_ON, groups=FakeGroups({"core": True}))
        assert await dispatcher.should_email(make_service(group_name="core")) is True

    async def test_group_flag_off(self) -> None:
        dispatcher = _dispatcher(raw=POLICY_ON, groups=FakeGroups({"core": False}))
        assert await dispatcher.should_email(make_service(group_name="core")) is False

    async def test_unknown_group(self) -> None:
        dispatcher = _dispatcher(raw=POLICY_ON, groups=FakeGroups({}))
        assert await dispatcher.should_email(make_service(group_name="core")) is False

    async def test_smtp_disabled(self) -> None:
        raw = {"smtp_enabled": "false", "email_is_global": "true"}
        dispatcher = _dispatcher(raw=raw, groups=FakeGroups({"core": True}))
        assert await dispatcher.should_email(make_service(group_name="core")) is False

    @pytest.mark.parametrize("listed, expected", [
        (["core"], True),
        (["edge"], False),
        ([], False),
    ])
    async def test_scoped_policy_uses_group_list(self, listed, expected) -> None:
        raw = {
            "smtp_enabled": "true",
            "email_is_global": "false",
            "email_groups": json.dumps(listed),
        }
        dispatcher = _dispatcher(raw=raw, groups=FakeGroups({"core": True}))
        assert await dispatcher.should_email(make_service(group_name="core")) is expected

    async def test_lookup_failure_is_not_eligible(self) -> None:
        groups = FakeGroups(error=DatabaseQueryError("boom", operation="get_group"))
        dispatcher = _dispatcher(raw=POLICY_ON, groups=groups)
        assert await dispatcher.should_email(make_service(group_name="core")) is False


# ── Channel fan-out ──────────────────────────────────────────────────────────


def _result(outcome, service_id: str = "svc-1") -> CheckResult:
    return CheckResult.from_outcome(service_id, outcome)


class TestNotifyDown:
    async def test_webhook_always_fires(self) -> None:
        webhook, email = _channels()
        dispatcher = _dispatcher(raw={}, webhook=webhook, email=email)
        service = make_service(
            name="API",
            url="https://internal/health",
            display_url="https://api.example.com",
            group_name="core",
        )

        await dispatcher.notify_down(service, _result(fail(503, "Expected status 200, got 503")))

        webhook.send_service_down.assert_awaited_once_with(
            "API", "https://api.example.com", "core", 503, "Expected status 200, got 503"
        )
        email.send_service_down.assert_not_called()

    async def test_email_receives_both_urls(self) -> None:
        webhook, email = _channels()
        dispatcher = _dispatcher(webhook=webhook, email=email)
        service = make_service(
            name="API",
            url="https://internal/health",
            display_url="https://api.example.com",
            email_notifications=True,
        )

        await dispatcher.notify_down(service, _result(fail(None, "Request timed out")))

        email.send_service_down.assert_awaited_once_with(
            "API",
            "https://internal/health",
            "https://api.example.com",
            None,
            None,
            "Request timed out",
        )

    async def test_failing_webhook_does_not_block_email(self) -> None:
        webhook, email = _channels()
        webhook.send_service_down.side_effect = WebhookDeliveryError("HTTP 500", webhook_name="ops")
        dispatcher = _dispatcher(webhook=webhook, email=email)

        await dispatcher.notify_down(make_service(email_notifications=True), _result(fail()))

        email.send_service_down.assert_awaited_once()

    async def test_unexpected_channel_error_is_contained(self) -> None:
        webhook, email = _channels()
        email.send_service_down.side_effect = RuntimeError("smtp exploded")
        dispatcher = _dispatcher(webhook=webhook, email=email)

        await dispatcher.notify_down(make_service(email_notifications=True), _result(fail()))

        webhook.send_service_down.assert_awaited_once()


class TestNotifyUp:
    async def test_reports_response_time(self) -> None:
        webhook, email = _channels()
        dispatcher = _dispatcher(webhook=webhook, email=email)
        service = make_service(name="API", group_name="core", email_notifications=True)

        await dispatcher.notify_up(service, _result(ok(response_time_ms=87)))

        webhook.send_service_up.assert_awaited_once_with("API", service.url, "core", 87)
        email.send_service_up.assert_awaited_once_with("API", service.url, None, "core", 87)
