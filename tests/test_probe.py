"""Tests for the probe executor and the JSON subset matcher."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from conftest import make_service
from config.constants import Defaults
from monitoring.probe import ProbeExecutor, ProbeOutcome, body_mismatch, json_contains


def _executor(handler, **kwargs) -> ProbeExecutor:
    return ProbeExecutor(transport=httpx.MockTransport(handler), **kwargs)


# ── json_contains ────────────────────────────────────────────────────────────


class TestJsonContains:
    def test_object_subset(self) -> None:
        assert json_contains({"status": "ok"}, {"status": "ok", "uptime": 123})

    def test_object_missing_key(self) -> None:
        assert not json_contains({"status": "ok", "extra": "x"}, {"status": "ok", "uptime": 123})

    def test_nested_objects(self) -> None:
        expected = {"db": {"healthy": True}}
        assert json_contains(expected, {"db": {"healthy": True, "latency": 3}, "cache": {}})
        assert not json_contains(expected, {"db": {"healthy": False}})

    def test_arrays_compare_by_index(self) -> None:
        assert json_contains([1, 2], [1, 2, 3])
        assert not json_contains([2, 1], [1, 2, 3])
        assert not json_contains([1, 2, 3], [1, 2])

    def test_arrays_of_objects(self) -> None:
        expected = {"nodes": [{"up": True}]}
        assert json_contains(expected, {"nodes": [{"up": True, "id": "a"}, {"up": False}]})

    def test_booleans_never_equal_numbers(self) -> None:
        assert not json_contains(True, 1)
        assert not json_contains(0, False)
        assert json_contains(False, False)

    def test_numbers_compare_by_value(self) -> None:
        assert json_contains(1, 1.0)
        assert not json_contains(1, 2)

    def test_null(self) -> None:
        assert json_contains(None, None)
        assert not json_contains(None, 0)
        assert not json_contains({"a": None}, {"a": "x"})

    @pytest.mark.parametrize("expected, actual", [
        ({"a": 1}, [1]),
        ([1], {"0": 1}),
        ("1", 1),
        (1, "1"),
        ({"a": 1}, None),
        ([], "text"),
    ])
    def test_type_mismatch_is_false(self, expected, actual) -> None:
        assert json_contains(expected, actual) is False

    def test_empty_expectations_match_same_kind(self) -> None:
        assert json_contains({}, {"anything": 1})
        assert json_contains([], [1, 2])


class TestBodyMismatch:
    def test_json_match(self) -> None:
        assert body_mismatch('{"status":"ok"}', '{"status":"ok","uptime":123}') is None

    def test_json_mismatch(self) -> None:
        assert body_mismatch('{"status":"down"}', '{"status":"ok"}') == "Response body does not match expected JSON"

    def test_substring_match(self) -> None:
        assert body_mismatch("healthy", "<p>service healthy</p>") is None

    def test_substring_mismatch(self) -> None:
        assert body_mismatch("healthy", "<p>degraded</p>") == "Response body does not contain expected text"

    def test_json_expectation_against_text_falls_back_to_substring(self) -> None:
        assert body_mismatch('{"a":1}', 'prefix {"a":1} suffix') is None


# ── Classification ───────────────────────────────────────────────────────────


class TestClassification:
    async def test_healthy_response(self) -> None:
        executor = _executor(lambda request: httpx.Response(200, text="ok"))
        outcome = await executor.probe(make_service(), timeout_ms=5000)

        assert outcome.success is True
        assert outcome.status_code == 200
        assert outcome.error_message is None
        assert outcome.response_time_ms >= 0

    async def test_unexpected_status(self) -> None:
        executor = _executor(lambda request: httpx.Response(500, text="boom"))
        outcome = await executor.probe(make_service(expected_status=200), timeout_ms=5000)

        assert outcome.success is False
        assert outcome.status_code == 500
        assert "Expected status 200, got 500" in outcome.error_message

    async def test_custom_expected_status(self) -> None:
        executor = _executor(lambda request: httpx.Response(204))
        outcome = await executor.probe(make_service(expected_status=204), timeout_ms=5000)

        assert outcome.success is True

    async def test_content_type_mismatch(self) -> None:
        executor = _executor(
            lambda request: httpx.Response(200, headers={"content-type": "text/html"}, text="<html></html>")
        )
        service = make_service(expected_content_type="application/json")
        outcome = await executor.probe(service, timeout_ms=5000)

        assert outcome.success is False
        assert outcome.status_code == 200
        assert outcome.error_message == "Expected content-type 'application/json', got 'text/html'"

    async def test_content_type_substring_match(self) -> None:
        executor = _executor(lambda request: httpx.Response(200, json={"status": "ok"}))
        service = make_service(expected_content_type="application/json")
        outcome = await executor.probe(service, timeout_ms=5000)

        assert outcome.success is True

    async def test_body_subset_match(self) -> None:
        executor = _executor(lambda request: httpx.Response(200, json={"status": "ok", "uptime": 123}))

        matching = await executor.probe(make_service(expected_body='{"status":"ok"}'), timeout_ms=5000)
        missing = await executor.probe(make_service(expected_body='{"status":"ok","extra":"x"}'), timeout_ms=5000)

        assert matching.success is True
        assert missing.success is False
        assert missing.error_message == "Response body does not match expected JSON"

    async def test_all_failures_are_reported(self) -> None:
        executor = _executor(
            lambda request: httpx.Response(503, headers={"content-type": "text/plain"}, text="maintenance")
        )
        service = make_service(expected_content_type="json", expected_body="healthy")
        outcome = await executor.probe(service, timeout_ms=5000)

        assert outcome.error_message.split("; ") == [
            "Expected status 200, got 503",
            "Expected content-type 'json', got 'text/plain'",
            "Response body does not contain expected text",
        ]

    async def test_sends_user_agent(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["ua"] = request.headers.get("user-agent")
            return httpx.Response(200)

        executor = _executor(handler, user_agent="status-monitor/test")
        await executor.probe(make_service(), timeout_ms=5000)

        assert seen["ua"] == "status-monitor/test"

    async def test_follows_redirects(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/old":
                return httpx.Response(301, headers={"location": "https://api.example.com/new"})
            return httpx.Response(200)

        executor = _executor(handler)
        outcome = await executor.probe(make_service(url="https://api.example.com/old"), timeout_ms=5000)

        assert outcome.success is True
        assert outcome.status_code == 200


# ── Transport failures ───────────────────────────────────────────────────────


class TestTransportFailures:
    async def test_httpx_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("read timed out", request=request)

        outcome = await _executor(handler).probe(make_service(), timeout_ms=5000)

        assert outcome.success is False
        assert outcome.status_code is None
        assert outcome.error_message == Defaults.TIMEOUT_MESSAGE
        assert outcome.timed_out is True

    async def test_hard_deadline(self) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200)

        outcome = await _executor(handler).probe(make_service(), timeout_ms=50)

        assert outcome.timed_out is True
        assert outcome.response_time_ms < 5000

    async def test_connection_error_keeps_error_text(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        outcome = await _executor(handler).probe(make_service(), timeout_ms=5000)

        assert outcome.success is False
        assert outcome.status_code is None
        assert outcome.error_message == "Connection refused"
        assert outcome.timed_out is False

    async def test_empty_error_text_uses_class_name(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("", request=request)

        outcome = await _executor(handler).probe(make_service(), timeout_ms=5000)

        assert outcome.error_message == "ConnectError"

    @pytest.mark.parametrize("url", [
        "http://[::1",
        "http://exa\x00mple.com/",
        "http://" + "a" * 70000 + ".com/",
    ])
    async def test_malformed_url_is_a_failed_outcome(self, url: str) -> None:
        sent = []

        def handler(request: httpx.Request) -> httpx.Response:
            sent.append(request)
            return httpx.Response(200)

        outcome = await _executor(handler).probe(make_service(url=url), timeout_ms=1000)

        assert outcome.success is False
        assert outcome.status_code is None
        assert outcome.error_message
        assert outcome.timed_out is False
        assert sent == []


class TestProbeOutcome:
    def test_to_dict(self) -> None:
        outcome = ProbeOutcome(success=False, status_code=502, error_message="bad gateway", response_time_ms=12)
        assert outcome.to_dict() == {
            "status_code": 502,
            "success": False,
            "error_message": "bad gateway",
            "response_time_ms": 12,
        }
