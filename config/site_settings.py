"""
Runtime Site Settings for Status Monitor

The key/value ``settings`` table holds configuration that operators
change while the process is running: retry count, check timeout, SMTP
credentials and the group-scoped email policy. ``SiteSettings`` parses
the raw strings into typed values and ``SiteSettingsProvider`` caches
them for a short TTL so each check cycle sees live values without a
query per probe.
"""

from __future__ import annotations

import json
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from config.constants import Defaults, Limits, SettingKeys
from utils.logger import get_logger


logger = get_logger("SiteSettings")


def _parse_bool(value: Any, default: bool) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == "true"


class SiteSettings(BaseModel):
    """
    Typed view of the runtime settings table.

    Every field tolerates a missing or malformed raw value and falls
    back to its default.
    """

    site_name: str = Defaults.SITE_NAME
    site_url: Optional[str] = None

    retry_count: int = Field(default=0, ge=Limits.MIN_RETRY_COUNT, le=Limits.MAX_RETRY_COUNT)
    check_timeout_ms: int = Field(default=Defaults.CHECK_TIMEOUT_MS, gt=0)

    smtp_enabled: bool = False
    smtp_host: Optional[str] = None
    smtp_port: int = Defaults.SMTP_PORT
    smtp_user: Optional[str] = None
    smtp_pass: Optional[str] = None
    smtp_from: Optional[str] = None
    smtp_secure: bool = False

    email_to: Optional[str] = None
    email_is_global: bool = True
    email_groups: List[str] = Field(default_factory=list)

    @field_validator("retry_count", mode="before")
    @classmethod
    def clamp_retry_count(cls, v: Any) -> int:
        try:
            count = int(v)
        except (TypeError, ValueError):
            return 0
        return max(Limits.MIN_RETRY_COUNT, min(count, Limits.MAX_RETRY_COUNT))

    @field_validator("smtp_port", mode="before")
    @classmethod
    def parse_port(cls, v: Any) -> int:
        try:
            port = int(v)
        except (TypeError, ValueError):
            return Defaults.SMTP_PORT
        return port if 0 < port < 65536 else Defaults.SMTP_PORT

    @field_validator("email_groups", mode="before")
    @classmethod
    def parse_groups(cls, v: Any) -> List[str]:
        if isinstance(v, list):
            return [str(g) for g in v]
        if not v:
            return []
        try:
            parsed = json.loads(v)
        except (TypeError, ValueError):
            return []
        return [str(g) for g in parsed] if isinstance(parsed, list) else []

    @field_validator("site_name", mode="before")
    @classmethod
    def default_site_name(cls, v: Any) -> str:
        return v or Defaults.SITE_NAME

    @classmethod
    def from_raw(
        cls,
        raw: Dict[str, Optional[str]],
        default_timeout_ms: int = Defaults.CHECK_TIMEOUT_MS,
    ) -> "SiteSettings":
        """
        Build from the raw key/value map stored in the database.

        Args:
            raw: Setting key to raw string value
            default_timeout_ms: Timeout used when ``check_timeout`` is
                absent, malformed or not positive

        Returns:
            Parsed settings
        """
        timeout_ms = default_timeout_ms
        raw_timeout = raw.get(SettingKeys.CHECK_TIMEOUT.value)
        if raw_timeout:
            try:
                parsed = int(raw_timeout)
                if parsed > 0:
                    timeout_ms = parsed
            except ValueError:
                logger.warning(f"Ignoring malformed check_timeout value {raw_timeout!r}")

        return cls(
            site_name=raw.get(SettingKeys.SITE_NAME.value),
            site_url=raw.get(SettingKeys.SITE_URL.value) or None,
            retry_count=raw.get(SettingKeys.RETRY_COUNT.value, 0),
            check_timeout_ms=timeout_ms,
            smtp_enabled=_parse_bool(raw.get(SettingKeys.SMTP_ENABLED.value), False),
            smtp_host=raw.get(SettingKeys.SMTP_HOST.value) or None,
            smtp_port=raw.get(SettingKeys.SMTP_PORT.value),
            smtp_user=raw.get(SettingKeys.SMTP_USER.value) or None,
            smtp_pass=raw.get(SettingKeys.SMTP_PASS.value) or None,
            smtp_from=raw.get(SettingKeys.SMTP_FROM.value) or None,
            smtp_secure=_parse_bool(raw.get(SettingKeys.SMTP_SECURE.value), False),
            email_to=raw.get(SettingKeys.EMAIL_TO.value) or None,
            email_is_global=raw.get(SettingKeys.EMAIL_IS_GLOBAL.value) != "false",
            email_groups=raw.get(SettingKeys.EMAIL_GROUPS.value),
        )

    @property
    def smtp_configured(self) -> bool:
        """True when every field needed to send mail is present."""
        return bool(self.smtp_enabled and self.smtp_host and self.smtp_user and self.email_to)


class SiteSettingsProvider:
    """
    TTL-cached access to the runtime settings table.

    Parameters
    ----------
    loader : Callable[[], Awaitable[Dict[str, Optional[str]]]]
        Coroutine returning the full key/value map, normally
        ``SettingsRepository.read_all``.
    ttl : float
        Seconds a loaded snapshot stays valid. ``0`` re-reads on every
        call.
    default_timeout_ms : int
        Fallback probe timeout when ``check_timeout`` is unset.
    """

    def __init__(
        self,
        loader: Callable[[], Awaitable[Dict[str, Optional[str]]]],
        ttl: float = 30.0,
        default_timeout_ms: int = Defaults.CHECK_TIMEOUT_MS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._loader = loader
        self._ttl = ttl
        self._default_timeout_ms = default_timeout_ms
        self._clock = clock

        self._raw: Optional[Dict[str, Optional[str]]] = None
        self._parsed: Optional[SiteSettings] = None
        self._loaded_at: float = 0.0

    def _is_fresh(self) -> bool:
        if self._raw is None or self._ttl <= 0:
            return False
        return (self._clock() - self._loaded_at) < self._ttl

    async def _refresh(self) -> None:
        raw = await self._loader()
        self._raw = dict(raw)
        self._parsed = SiteSettings.from_raw(self._raw, self._default_timeout_ms)
        self._loaded_at = self._clock()

    async def get(self, key: str) -> Optional[str]:
        """Return the raw value for *key* or None."""
        if not self._is_fresh():
            await self._refresh()
        return self._raw.get(key)

    async def load(self) -> SiteSettings:
        """Return the parsed settings snapshot."""
        if not self._is_fresh():
            await self._refresh()
        return self._parsed

    async def retry_count(self) -> int:
        return (await self.load()).retry_count

    async def check_timeout_ms(self) -> int:
        return (await self.load()).check_timeout_ms

    def invalidate(self) -> None:
        """Drop the cached snapshot so the next read hits the database."""
        self._raw = None
        self._parsed = None
        self._loaded_at = 0.0
        logger.debug("Runtime settings cache invalidated")
