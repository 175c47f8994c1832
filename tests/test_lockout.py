"""Tests for the per-URL TOTP lockout guard and the request rate limiter."""

from __future__ import annotations

import pytest

from zerosend.services.lockout import LockoutGuard
from zerosend.services.rate_limit import RateLimiter, RateScope
from zerosend.services.secret_cache import CacheKeys


@pytest.fixture
def guard(cache) -> LockoutGuard:
    return LockoutGuard(cache, threshold=3, ttl_seconds=86400)


@pytest.fixture
def limiter(cache) -> RateLimiter:
    return RateLimiter(
        cache,
        window_seconds=60,
        unauthenticated_limit=3,
        authenticated_limit=5,
        login_limit=2,
    )


class TestLockoutGuard:
    @pytest.mark.asyncio
    async def test_open_by_default(self, guard):
        assert await guard.failures("u") == 0
        assert not await guard.is_locked("u")
        assert await guard.remaining_attempts("u") == 3

    @pytest.mark.asyncio
    async def test_failures_count_down(self, guard):
        states = [await guard.register_failure("u") for _ in range(4)]

        assert [s.failures for s in states] == [1, 2, 3, 4]
        assert [s.remaining_attempts for s in states] == [2, 1, 0, 0]
        assert [s.just_locked for s in states] == [False, False, True, False]
        assert await guard.is_locked("u")

    @pytest.mark.asyncio
    async def test_counters_are_per_url(self, guard):
        for _ in range(3):
            await guard.register_failure("a")

        assert await guard.is_locked("a")
        assert not await guard.is_locked("b")

    @pytest.mark.asyncio
    async def test_ttl_not_extended_by_later_failures(self, guard, cache, clock):
        await guard.register_failure("u")
        clock.advance(hours=1)
        await guard.register_failure("u")

        assert await cache.ttl(CacheKeys.lock("u")) == 86400 - 3600

    @pytest.mark.asyncio
    async def test_counter_expires(self, guard, clock):
        for _ in range(3):
            await guard.register_failure("u")
        clock.advance(days=1)

        assert not await guard.is_locked("u")

    @pytest.mark.asyncio
    async def test_reset(self, guard):
        assert await guard.reset("u") is False
        for _ in range(3):
            await guard.register_failure("u")

        assert await guard.reset("u") is True
        assert await guard.failures("u") == 0


class TestRateLimiter:
    @pytest.mark.asyncio
    async def test_allows_up_to_limit(self, limiter):
        decisions = [await limiter.hit("10.0.0.1") for _ in range(4)]

        assert [d.allowed for d in decisions] == [True, True, True, False]
        assert [d.remaining for d in decisions] == [2, 1, 0, 0]
        assert decisions[-1].limit == 3
        assert decisions[-1].reset_seconds == 60

    @pytest.mark.asyncio
    async def test_authenticated_ceiling(self, limiter):
        decisions = [await limiter.hit("10.0.0.1", authenticated=True) for _ in range(5)]

        assert all(d.allowed for d in decisions)
        assert decisions[0].limit == 5

    @pytest.mark.asyncio
    async def test_login_scope_is_separate(self, limiter):
        for _ in range(3):
            await limiter.hit("10.0.0.1")

        first = await limiter.hit("10.0.0.1", RateScope.LOGIN)
        second = await limiter.hit("10.0.0.1", RateScope.LOGIN)
        third = await limiter.hit("10.0.0.1", RateScope.LOGIN)

        assert first.allowed and second.allowed
        assert not third.allowed
        assert third.limit == 2

    @pytest.mark.asyncio
    async def test_window_resets(self, limiter, clock):
        for _ in range(4):
            await limiter.hit("10.0.0.1")
        clock.advance(seconds=61)

        assert (await limiter.hit("10.0.0.1")).allowed

    @pytest.mark.asyncio
    async def test_reset_seconds_counts_down(self, limiter, clock):
        await limiter.hit("10.0.0.1")
        clock.advance(seconds=20)

        decision = await limiter.hit("10.0.0.1")

        assert decision.reset_seconds == 40

    @pytest.mark.asyncio
    async def test_counter_without_expiry_reports_full_window(self, limiter, cache):
        cache.put_without_expiry(CacheKeys.rate("10.0.0.1"), b"1")

        decision = await limiter.hit("10.0.0.1")

        assert decision.remaining == 1
        assert decision.reset_seconds == 60

    @pytest.mark.asyncio
    async def test_clients_are_independent(self, limiter):
        for _ in range(4):
            await limiter.hit("10.0.0.1")

        assert (await limiter.hit("10.0.0.2")).allowed
