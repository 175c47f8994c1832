"""Ephemeral secret cache.

Everything that must not outlive a transfer lives here, always with a TTL:

    wrapped-key:{urlToken}     sender-wrapped file key, consumed once
    auth-session:{authToken}   post-TOTP bearer bound to one urlToken
    lock:{urlToken}            consecutive TOTP failure counter
    rate:{ip} / rate:login:{ip}  fixed-window request counters

Values are opaque bytes to the cache; their meaning lives in the services
that use them. The Redis implementation relies on server-side atomic
primitives (GETDEL, MULTI/EXEC) so concurrent requests only coordinate
through Redis itself.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)


class CacheKeys:
    """Key namespace for the secret cache."""

    @staticmethod
    def wrapped_key(url_token: str) -> str:
        return f"wrapped-key:{url_token}"

    @staticmethod
    def auth_session(auth_token: str) -> str:
        return f"auth-session:{auth_token}"

    @staticmethod
    def lock(url_token: str) -> str:
        return f"lock:{url_token}"

    @staticmethod
    def rate(client_ip: str) -> str:
        return f"rate:{client_ip}"

    @staticmethod
    def rate_login(client_ip: str) -> str:
        return f"rate:login:{client_ip}"


class SecretCache(Protocol):
    """Operations the services need from the ephemeral store."""

    async def set_with_ttl(self, key: str, value: bytes, ttl_seconds: int) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        ...

    async def get(self, key: str) -> bytes | None:
        """Return the value, or None when absent or expired."""
        ...

    async def delete_and_return_previous(self, key: str) -> bytes | None:
        """Atomically delete ``key`` and return what it held.

        Deleting an absent key is not an error and returns None.
        """
        ...

    async def increment_with_ttl_on_first_write(self, key: str, ttl_seconds: int) -> int:
        """Atomically increment a counter and return the new value.

        The TTL is applied only when this call creates the counter, so
        later increments never extend the window.
        """
        ...

    async def ttl(self, key: str) -> int | None:
        """Remaining lifetime in seconds, or None if the key is absent or never expires."""
        ...


class RedisSecretCache:
    """SecretCache backed by a redis.asyncio client.

    The client is constructed by the caller (see ``from_url``) and injected,
    so tests and the application never share hidden connection state.
    """

    def __init__(self, client: Redis) -> None:
        """Initialize the cache.

        Args:
            client: Connected redis.asyncio client (``decode_responses=False``).
        """
        self._client = client

    @classmethod
    def from_url(cls, url: str, *, socket_timeout: float = 5.0) -> RedisSecretCache:
        """Create a cache with its own connection pool."""
        from redis.asyncio import Redis

        client = Redis.from_url(url, socket_timeout=socket_timeout, decode_responses=False)
        return cls(client)

    async def set_with_ttl(self, key: str, value: bytes, ttl_seconds: int) -> None:
        await self._client.set(key, value, ex=ttl_seconds)

    async def get(self, key: str) -> bytes | None:
        return await self._client.get(key)

    async def delete_and_return_previous(self, key: str) -> bytes | None:
        return await self._client.getdel(key)

    async def increment_with_ttl_on_first_write(self, key: str, ttl_seconds: int) -> int:
        # SET NX seeds the counter with its TTL only if it does not exist yet;
        # MULTI/EXEC keeps seed and increment indivisible.
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.set(key, 0, ex=ttl_seconds, nx=True)
            pipe.incr(key)
            _, count = await pipe.execute()
        return int(count)

    async def ttl(self, key: str) -> int | None:
        remaining = await self._client.ttl(key)
        # -2: key missing, -1: key without expiry; neither has a lifetime
        if remaining < 0:
            return None
        return remaining

    async def ping(self) -> bool:
        """Check connectivity for health reporting."""
        try:
            return bool(await self._client.ping())
        except Exception:
            logger.warning("Secret cache ping failed", exc_info=True)
            return False

    async def close(self) -> None:
        """Release the underlying connection pool."""
        await self._client.aclose()
