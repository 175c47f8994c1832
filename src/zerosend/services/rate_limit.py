"""Fixed-window request throttling per client IP.

Login attempts are counted in their own namespace so credential stuffing
cannot hide inside generic traffic. This is independent of LockoutGuard,
which limits TOTP correctness attempts per transfer regardless of origin.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from zerosend.services.secret_cache import CacheKeys

if TYPE_CHECKING:
    from zerosend.services.secret_cache import SecretCache

logger = logging.getLogger(__name__)


class RateScope(str, Enum):
    """Counter namespace a request is charged to."""

    GENERAL = "general"
    LOGIN = "login"


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    """Outcome of charging one request.

    Attributes:
        allowed: Whether the request is within the ceiling.
        limit: Ceiling for the window.
        remaining: Requests left in the window.
        reset_seconds: Seconds until the window resets.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_seconds: int


class RateLimiter:
    """Counts requests per client IP in fixed windows."""

    def __init__(
        self,
        cache: SecretCache,
        *,
        window_seconds: int = 60,
        unauthenticated_limit: int = 100,
        authenticated_limit: int = 1000,
        login_limit: int = 10,
    ) -> None:
        self._cache = cache
        self._window_seconds = window_seconds
        self._unauthenticated_limit = unauthenticated_limit
        self._authenticated_limit = authenticated_limit
        self._login_limit = login_limit

    def _limit_for(self, scope: RateScope, *, authenticated: bool) -> int:
        if scope is RateScope.LOGIN:
            return self._login_limit
        return self._authenticated_limit if authenticated else self._unauthenticated_limit

    async def hit(
        self,
        client_ip: str,
        scope: RateScope = RateScope.GENERAL,
        *,
        authenticated: bool = False,
    ) -> RateLimitDecision:
        """Charge one request to ``client_ip`` and decide whether it may proceed.

        Args:
            client_ip: Origin address (or "unknown").
            scope: Counter namespace.
            authenticated: Whether the request carries a bearer token; only
                affects the general ceiling.

        Returns:
            RateLimitDecision for this request.
        """
        key = CacheKeys.rate_login(client_ip) if scope is RateScope.LOGIN else CacheKeys.rate(client_ip)
        limit = self._limit_for(scope, authenticated=authenticated)

        count = await self._cache.increment_with_ttl_on_first_write(key, self._window_seconds)
        ttl = await self._cache.ttl(key)
        reset_seconds = ttl if ttl is not None else self._window_seconds

        decision = RateLimitDecision(
            allowed=count <= limit,
            limit=limit,
            remaining=max(0, limit - count),
            reset_seconds=reset_seconds,
        )
        if not decision.allowed:
            logger.info(
                "Rate limit exceeded: scope=%s count=%d limit=%d",
                scope.value,
                count,
                limit,
            )
        return decision
