"""
============================================================================
STATUS MONITOR - PROBE EXECUTOR
============================================================================
Performs a single HTTP health probe against a service and classifies the
response against the service's expectations:

    1. status code must equal ``expected_status``
    2. ``content-type`` must contain ``expected_content_type`` (if set)
    3. body must match ``expected_body`` (if set): a structural JSON
       subset when both sides parse as JSON, else a substring

All three checks are evaluated independently and every failure is
reported, joined with ``"; "``.

The executor never raises for target failures. Timeouts come back as
``"Request timed out"`` so the scheduler can apply its single retry;
every other transport error, a malformed URL included, carries the
underlying error text.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
import json
import time
from typing import Any, List, Optional

import httpx

from config.constants import Defaults
from utils.logger import get_logger


logger = get_logger("Probe")

_NOT_JSON = object()


# ============================================================================
# JSON SUBSET MATCH
# ============================================================================

def json_contains(expected: Any, actual: Any) -> bool:
    """
    True when *actual* structurally contains *expected*.

    Objects match when every expected key is present in the actual
    object with a contained value. Arrays are compared element-wise by
    index and the actual array may be longer. Scalars compare by value,
    except that booleans never equal numbers. Any type mismatch is a
    non-match; the function never raises.
    """
    if isinstance(expected, dict):
        if not isinstance(actual, dict):
            return False
        for key, value in expected.items():
            if key not in actual or not json_contains(value, actual[key]):
                return False
        return True

    if isinstance(expected, list):
        if not isinstance(actual, list) or len(actual) < len(expected):
            return False
        return all(json_contains(e, a) for e, a in zip(expected, actual))

    if isinstance(expected, bool) or isinstance(actual, bool):
        return isinstance(expected, bool) and isinstance(actual, bool) and expected == actual

    if isinstance(expected, (int, float)) and isinstance(actual, (int, float)):
        return expected == actual

    if type(expected) is not type(actual):
        return False

    return expected == actual


def _parse_json(text: str) -> Any:
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return _NOT_JSON


def body_mismatch(expected_body: str, actual_body: str) -> Optional[str]:
    """
    Body expectation: JSON subset when both sides are JSON, else substring.

    Returns the failure description, or None when the body matches.
    """
    expected = _parse_json(expected_body)
    actual = _parse_json(actual_body)
    if expected is not _NOT_JSON and actual is not _NOT_JSON:
        if json_contains(expected, actual):
            return None
        return "Response body does not match expected JSON"
    if expected_body in actual_body:
        return None
    return "Response body does not contain expected text"


# ============================================================================
# PROBE OUTCOME
# ============================================================================

class ProbeOutcome:
    """
    Result of one probe attempt, before it is persisted.
    """
    __slots__ = ("status_code", "success", "error_message", "response_time_ms")

    def __init__(
        self,
        success: bool,
        status_code: Optional[int] = None,
        error_message: Optional[str] = None,
        response_time_ms: int = 0,
    ):
        self.success = success
        self.status_code = status_code
        self.error_message = error_message
        self.response_time_ms = response_time_ms

    @property
    def timed_out(self) -> bool:
        """True when the attempt was aborted by the deadline."""
        return self.error_message == Defaults.TIMEOUT_MESSAGE

    def to_dict(self):
        return {slot: getattr(self, slot) for slot in self.__slots__}

    def __repr__(self) -> str:
        return (
            f"ProbeOutcome(success={self.success}, status_code={self.status_code}, "
            f"error_message={self.error_message!r}, response_time_ms={self.response_time_ms})"
        )


# ============================================================================
# PROBE EXECUTOR
# ============================================================================

class ProbeExecutor:
    """
    Issues one GET per call through httpx.

    Parameters
    ----------
    user_agent : str
        Sent as the ``User-Agent`` header on every probe.
    follow_redirects : bool
        Whether 3xx responses are followed before classification.
    verify_ssl : bool
        TLS certificate verification.
    transport : httpx.AsyncBaseTransport | None
        Optional transport override (``httpx.MockTransport`` in tests).
    """

    def __init__(
        self,
        user_agent: str = "status-monitor/1.0",
        follow_redirects: bool = True,
        verify_ssl: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.user_agent = user_agent
        self.follow_redirects = follow_redirects
        self.verify_ssl = verify_ssl
        self._transport = transport

    def _client(self, timeout_s: float) -> httpx.AsyncClient:
        kwargs = {
            "timeout": httpx.Timeout(timeout_s),
            "follow_redirects": self.follow_redirects,
            "verify": self.verify_ssl,
            "headers": {"User-Agent": self.user_agent},
        }
        if self._transport is not None:
            kwargs["transport"] = self._transport
        return httpx.AsyncClient(**kwargs)

    async def probe(self, service, timeout_ms: int) -> ProbeOutcome:
        """
        Probe *service* once.

        Parameters
        ----------
        service : Service
            Row carrying ``url`` and the expectation columns.
        timeout_ms : int
            Hard deadline for the whole request, body included.

        Returns
        -------
        ProbeOutcome
            Never raises for network or classification failures.
        """
        timeout_s = max(timeout_ms, 1) / 1000.0
        start_time = time.perf_counter()

        try:
            async with self._client(timeout_s) as client:
                response = await asyncio.wait_for(client.get(service.url), timeout=timeout_s)
            elapsed_ms = _elapsed_ms(start_time)

        except (httpx.TimeoutException, asyncio.TimeoutError):
            elapsed_ms = _elapsed_ms(start_time)
            logger.warning(f"[Probe] {service.url} → timed out after {elapsed_ms}ms")
            return ProbeOutcome(
                success=False,
                error_message=Defaults.TIMEOUT_MESSAGE,
                response_time_ms=elapsed_ms,
            )
        except (httpx.HTTPError, httpx.InvalidURL, OSError, ValueError) as e:
            elapsed_ms = _elapsed_ms(start_time)
            message = str(e) or type(e).__name__
            logger.warning(f"[Probe] {service.url} → {message}")
            return ProbeOutcome(
                success=False,
                error_message=message,
                response_time_ms=elapsed_ms,
            )

        errors = self.classify(service, response)
        outcome = ProbeOutcome(
            success=not errors,
            status_code=response.status_code,
            error_message="; ".join(errors) if errors else None,
            response_time_ms=elapsed_ms,
        )

        if outcome.success:
            logger.debug(f"[Probe] {service.url} → {response.status_code} in {elapsed_ms}ms")
        else:
            logger.warning(f"[Probe] {service.url} → {outcome.error_message}")

        return outcome

    @staticmethod
    def classify(service, response: httpx.Response) -> List[str]:
        """
        Evaluate every configured expectation against *response*.

        Returns
        -------
        list of str
            One description per failed expectation; empty on success.
        """
        errors: List[str] = []

        if response.status_code != service.expected_status:
            errors.append(
                f"Expected status {service.expected_status}, got {response.status_code}"
            )

        if service.expected_content_type:
            content_type = response.headers.get("content-type", "")
            if service.expected_content_type not in content_type:
                errors.append(
                    f"Expected content-type '{service.expected_content_type}', "
                    f"got '{content_type or 'none'}'"
                )

        if service.expected_body:
            mismatch = body_mismatch(service.expected_body, response.text)
            if mismatch:
                errors.append(mismatch)

        return errors


def _elapsed_ms(start_time: float) -> int:
    return int(round((time.perf_counter() - start_time) * 1000))
