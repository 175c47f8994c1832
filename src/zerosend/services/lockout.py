"""Per-transfer TOTP failure lockout.

States for one urlToken:

    Open     counter absent or 0
    Failing  1 <= counter < threshold
    Locked   counter >= threshold

Failures increment the counter (created with a long TTL on the first
failure). Success does not reset it: the URL, not a login attempt sequence,
is what is being protected. The only way out of Locked is ``reset``, which
an administrator triggers and which returns the transfer to Open.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from zerosend.services.secret_cache import CacheKeys

if TYPE_CHECKING:
    from zerosend.services.secret_cache import SecretCache

logger = logging.getLogger(__name__)

DEFAULT_LOCK_THRESHOLD = 5
DEFAULT_LOCK_TTL_SECONDS = 86400


@dataclass(frozen=True, slots=True)
class LockoutState:
    """Counter snapshot after a failure was registered.

    Attributes:
        failures: Failure count including the one just registered.
        remaining_attempts: Failures left before the URL locks (never negative).
        just_locked: True when this failure is the one that reached the threshold.
    """

    failures: int
    remaining_attempts: int
    just_locked: bool


class LockoutGuard:
    """Tracks consecutive TOTP failures per transfer URL."""

    def __init__(
        self,
        cache: SecretCache,
        *,
        threshold: int = DEFAULT_LOCK_THRESHOLD,
        ttl_seconds: int = DEFAULT_LOCK_TTL_SECONDS,
    ) -> None:
        """Initialize the guard.

        Args:
            cache: Secret cache holding the counters.
            threshold: Failures after which the URL is locked.
            ttl_seconds: Counter lifetime; long on purpose so a lock cannot
                simply be waited out.
        """
        self._cache = cache
        self._threshold = threshold
        self._ttl_seconds = ttl_seconds

    @property
    def threshold(self) -> int:
        return self._threshold

    async def failures(self, url_token: str) -> int:
        """Current failure count (0 when no counter exists)."""
        raw = await self._cache.get(CacheKeys.lock(url_token))
        return int(raw) if raw is not None else 0

    async def is_locked(self, url_token: str) -> bool:
        return await self.failures(url_token) >= self._threshold

    async def remaining_attempts(self, url_token: str) -> int:
        return max(0, self._threshold - await self.failures(url_token))

    async def register_failure(self, url_token: str) -> LockoutState:
        """Count one failed TOTP check.

        Returns:
            LockoutState describing the counter after the increment.
        """
        count = await self._cache.increment_with_ttl_on_first_write(
            CacheKeys.lock(url_token), self._ttl_seconds
        )
        state = LockoutState(
            failures=count,
            remaining_attempts=max(0, self._threshold - count),
            just_locked=count == self._threshold,
        )
        if state.just_locked:
            logger.warning(
                "Transfer URL locked after %d failed TOTP attempts",
                count,
                extra={"lock_threshold": self._threshold},
            )
        return state

    async def reset(self, url_token: str) -> bool:
        """Delete the counter entirely (back to Open).

        Returns:
            True if a counter existed.
        """
        previous = await self._cache.delete_and_return_previous(CacheKeys.lock(url_token))
        return previous is not None
