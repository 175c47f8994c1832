"""Tests for the Redis-backed secret cache.

The redis.asyncio client is replaced with AsyncMock so the exact commands
issued (SET EX, GETDEL, SET NX + INCR in MULTI/EXEC) can be asserted.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from zerosend.services.secret_cache import CacheKeys, RedisSecretCache


@pytest.fixture
def redis_client() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def pipeline() -> MagicMock:
    """Transactional pipeline usable as ``async with client.pipeline(...)``."""
    pipe = MagicMock()
    pipe.__aenter__ = AsyncMock(return_value=pipe)
    pipe.__aexit__ = AsyncMock(return_value=False)
    pipe.execute = AsyncMock(return_value=[True, 1])
    return pipe


@pytest.fixture
def cache(redis_client: AsyncMock, pipeline: MagicMock) -> RedisSecretCache:
    redis_client.pipeline = MagicMock(return_value=pipeline)
    return RedisSecretCache(redis_client)


class TestCacheKeys:
    def test_namespaces(self):
        assert CacheKeys.wrapped_key("u") == "wrapped-key:u"
        assert CacheKeys.auth_session("a") == "auth-session:a"
        assert CacheKeys.lock("u") == "lock:u"
        assert CacheKeys.rate("10.0.0.1") == "rate:10.0.0.1"
        assert CacheKeys.rate_login("10.0.0.1") == "rate:login:10.0.0.1"

    def test_wrapped_key_and_lock_do_not_collide(self):
        assert CacheKeys.wrapped_key("t") != CacheKeys.lock("t")


class TestRedisSecretCache:
    @pytest.mark.asyncio
    async def test_set_with_ttl(self, cache, redis_client):
        await cache.set_with_ttl("k", b"v", 60)

        redis_client.set.assert_awaited_once_with("k", b"v", ex=60)

    @pytest.mark.asyncio
    async def test_get(self, cache, redis_client):
        redis_client.get.return_value = b"value"

        assert await cache.get("k") == b"value"

    @pytest.mark.asyncio
    async def test_delete_uses_getdel(self, cache, redis_client):
        redis_client.getdel.return_value = b"old"

        assert await cache.delete_and_return_previous("k") == b"old"
        redis_client.getdel.assert_awaited_once_with("k")
        redis_client.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_delete_absent_key(self, cache, redis_client):
        redis_client.getdel.return_value = None

        assert await cache.delete_and_return_previous("k") is None

    @pytest.mark.asyncio
    async def test_increment_seeds_ttl_only_once(self, cache, redis_client, pipeline):
        pipeline.execute.return_value = [None, 4]

        count = await cache.increment_with_ttl_on_first_write("lock:u", 86400)

        assert count == 4
        redis_client.pipeline.assert_called_once_with(transaction=True)
        pipeline.set.assert_called_once_with("lock:u", 0, ex=86400, nx=True)
        pipeline.incr.assert_called_once_with("lock:u")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("raw", "expected"), [(-2, None), (-1, None), (0, 0), (42, 42)])
    async def test_ttl(self, cache, redis_client, raw, expected):
        redis_client.ttl.return_value = raw

        assert await cache.ttl("k") == expected

    @pytest.mark.asyncio
    async def test_ping_failure_is_reported(self, cache, redis_client):
        redis_client.ping.side_effect = ConnectionError("down")

        assert await cache.ping() is False

    @pytest.mark.asyncio
    async def test_close(self, cache, redis_client):
        await cache.close()

        redis_client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_errors_propagate(self, cache, redis_client):
        redis_client.get.side_effect = ConnectionError("down")

        with pytest.raises(ConnectionError):
            await cache.get("k")
