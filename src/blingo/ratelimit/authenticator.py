"""
API key authorization with a fixed per-key request quota.

Outcomes:
- valid         key found and usage < limit
- rate_limited  key found and usage >= limit
- invalid       missing key, unknown key, or the store failed (fails closed)
- unconfigured  the store has no database behind it
- bypass        development bypass enabled at startup and the key is well-formed
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from blingo.common.exceptions import StoreError, StoreNotConfiguredError
from blingo.keys.generator import DEFAULT_PREFIX, matches_key_format
from blingo.keys.store import ApiKeySnapshot, KeyStore

logger = logging.getLogger(__name__)

DEFAULT_RATE_LIMIT = 1000


class AuthStatus(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    RATE_LIMITED = "rate_limited"
    UNCONFIGURED = "unconfigured"
    BYPASS = "bypass"


@dataclass(frozen=True)
class AuthorizationOutcome:
    status: AuthStatus
    key: Optional[ApiKeySnapshot] = None
    reason: str = ""

    @property
    def allowed(self) -> bool:
        return self.status in (AuthStatus.VALID, AuthStatus.BYPASS)

    @property
    def usage(self) -> int:
        return self.key.usage if self.key else 0


@dataclass(frozen=True)
class UsageStats:
    usage: int
    limit: int
    remaining: int
    percent_used: int


@dataclass(frozen=True)
class RateLimitStatus:
    allowed: bool
    usage: int
    limit: int
    remaining: int
    error: Optional[str] = None


class RateLimitedAuthenticator:
    """Validates presented API keys against the store and the quota."""

    def __init__(
        self,
        store: KeyStore,
        limit: int = DEFAULT_RATE_LIMIT,
        dev_bypass: bool = False,
        key_prefix: str = DEFAULT_PREFIX,
    ):
        self.store = store
        self.limit = limit
        self.dev_bypass = dev_bypass
        self.key_prefix = key_prefix

    async def authorize(self, presented_key: str | None) -> AuthorizationOutcome:
        if self.dev_bypass and matches_key_format(presented_key or "", self.key_prefix):
            logger.warning("DEV MODE: bypassing API key validation and rate limit")
            return AuthorizationOutcome(AuthStatus.BYPASS)

        if not presented_key:
            return AuthorizationOutcome(AuthStatus.INVALID, reason="API key is required")

        try:
            record = await self.store.find_by_key(presented_key)
        except StoreNotConfiguredError as exc:
            return AuthorizationOutcome(AuthStatus.UNCONFIGURED, reason=exc.message)
        except StoreError as exc:
            logger.error("Store error validating API key: %s", exc.message)
            return AuthorizationOutcome(
                AuthStatus.INVALID, reason=f"Database error: {exc.message}"
            )

        if record is None:
            return AuthorizationOutcome(AuthStatus.INVALID, reason="Invalid API key")

        if record.usage >= self.limit:
            return AuthorizationOutcome(
                AuthStatus.RATE_LIMITED,
                key=record,
                reason=(
                    f"Rate limit exceeded. You have used {record.usage}/{self.limit} requests. "
                    "Please upgrade your plan or wait for the limit to reset."
                ),
            )

        return AuthorizationOutcome(AuthStatus.VALID, key=record)

    async def check_rate_limit(self, key_id: str) -> RateLimitStatus:
        """Display-only quota check; allows when the store cannot be read."""
        try:
            usage = await self.store.get_usage(key_id)
        except (StoreError, StoreNotConfiguredError) as exc:
            logger.warning("Rate limit check failed for key %s: %s", key_id, exc.message)
            return RateLimitStatus(True, 0, self.limit, self.limit)

        usage = usage or 0
        allowed = usage < self.limit
        return RateLimitStatus(
            allowed=allowed,
            usage=usage,
            limit=self.limit,
            remaining=max(0, self.limit - usage),
            error=None if allowed else f"Rate limit exceeded ({usage}/{self.limit})",
        )

    async def usage_stats(self, key_id: str) -> UsageStats | None:
        """Usage numbers for display, or None if the key or store is unavailable."""
        try:
            usage = await self.store.get_usage(key_id)
        except (StoreError, StoreNotConfiguredError):
            return None
        if usage is None:
            return None
        return UsageStats(
            usage=usage,
            limit=self.limit,
            remaining=max(0, self.limit - usage),
            percent_used=round(usage / self.limit * 100) if self.limit else 100,
        )
