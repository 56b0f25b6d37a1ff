"""
HardbanRecords Publishing API - Rate Limit Store Tests
=======================================================

What we test:
    ✅ Memory store windows: counting, expiry, sweep, reset
    ✅ Redis store: atomic counting with an expiry set on the first hit
    ✅ Redis failures: retried, then served from the memory fallback
    ✅ Circuit breaker transitions CLOSED → OPEN → HALF_OPEN → CLOSED
    ✅ Store selection from settings
"""

from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from hardban_publishing.config import Settings
from hardban_publishing.services.rate_limit_store import (
    REDIS_KEY_PREFIX,
    CircuitBreaker,
    MemoryRateLimitStore,
    RedisRateLimitStore,
    build_rate_limit_store,
    seconds_until,
)


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestMemoryRateLimitStore:

    @pytest.mark.asyncio
    async def test_counts_within_window(self):
        """Hits in one window increase the count and share a reset time."""
        clock = FakeClock()
        store = MemoryRateLimitStore(clock=clock)

        first = await store.increment("k", 60_000)
        second = await store.increment("k", 60_000)

        assert first.count == 1
        assert second.count == 2
        assert first.reset_at == second.reset_at == 1_060.0

    @pytest.mark.asyncio
    async def test_new_window_after_expiry(self):
        """The first hit after the reset time opens a fresh window."""
        clock = FakeClock()
        store = MemoryRateLimitStore(clock=clock)
        await store.increment("k", 1_000)
        await store.increment("k", 1_000)

        clock.advance(1.0)
        hit = await store.increment("k", 1_000)

        assert hit.count == 1
        assert hit.reset_at == clock.now + 1.0

    @pytest.mark.asyncio
    async def test_keys_are_independent(self):
        store = MemoryRateLimitStore()
        await store.increment("a", 60_000)
        hit = await store.increment("b", 60_000)
        assert hit.count == 1

    @pytest.mark.asyncio
    async def test_sweep_drops_expired_windows(self):
        """Every SWEEP_INTERVAL increments, closed windows are removed."""
        clock = FakeClock()
        store = MemoryRateLimitStore(clock=clock)
        store.SWEEP_INTERVAL = 3

        await store.increment("old-1", 1_000)
        await store.increment("old-2", 1_000)
        clock.advance(5)
        await store.increment("fresh", 1_000)

        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_reset_removes_key(self):
        store = MemoryRateLimitStore()
        await store.increment("k", 60_000)
        await store.reset("k")
        hit = await store.increment("k", 60_000)
        assert hit.count == 1

    @pytest.mark.asyncio
    async def test_ping_is_always_true(self):
        assert await MemoryRateLimitStore().ping() is True


class TestCircuitBreaker:

    def test_opens_at_threshold(self):
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=10, clock=FakeClock())
        breaker.record_failure()
        assert breaker.state == CircuitBreaker.CLOSED
        breaker.record_failure()
        assert breaker.state == CircuitBreaker.OPEN
        assert breaker.allow_request() is False

    def test_half_open_after_recovery_timeout(self):
        clock = FakeClock()
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=10, clock=clock)
        breaker.record_failure()

        clock.advance(10)

        assert breaker.allow_request() is True
        assert breaker.state == CircuitBreaker.HALF_OPEN

    def test_half_open_probe_failure_reopens(self):
        clock = FakeClock()
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=10, clock=clock)
        breaker.record_failure()
        clock.advance(10)
        breaker.allow_request()

        breaker.record_failure()

        assert breaker.state == CircuitBreaker.OPEN

    def test_success_closes_and_resets_count(self):
        clock = FakeClock()
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=0, clock=clock)
        breaker.record_failure()
        breaker.allow_request()

        breaker.record_success()

        assert breaker.state == CircuitBreaker.CLOSED
        assert breaker.failure_count == 0


class TestRedisRateLimitStore:

    @pytest.mark.asyncio
    async def test_counts_and_sets_expiry_once(self, fake_redis):
        """The first hit sets PEXPIRE to the window; later hits keep it."""
        store = RedisRateLimitStore(fake_redis, clock=FakeClock())

        first = await store.increment("user:1", 60_000)
        second = await store.increment("user:1", 60_000)

        assert (first.count, second.count) == (1, 2)
        ttl = await fake_redis.pttl(REDIS_KEY_PREFIX + "user:1")
        assert 0 < ttl <= 60_000
        assert second.reset_at <= 1_000.0 + 60.0

    @pytest.mark.asyncio
    async def test_reset_deletes_key(self, fake_redis):
        store = RedisRateLimitStore(fake_redis)
        await store.increment("user:1", 60_000)

        await store.reset("user:1")

        assert await fake_redis.exists(REDIS_KEY_PREFIX + "user:1") == 0

    @pytest.mark.asyncio
    async def test_ping(self, fake_redis):
        assert await RedisRateLimitStore(fake_redis).ping() is True

    @pytest.mark.asyncio
    async def test_failure_retries_then_falls_back_to_memory(self, fake_redis):
        """Exhausted retries serve the hit from memory and count one breaker failure."""
        store = RedisRateLimitStore(fake_redis, max_attempts=3, initial_wait=0, max_wait=0)
        store._increment_once = AsyncMock(side_effect=RedisConnectionError("down"))

        hit = await store.increment("user:1", 60_000)

        assert hit.count == 1
        assert store._increment_once.await_count == 3
        assert store.circuit_breaker.failure_count == 1
        assert len(store.fallback) == 1

    @pytest.mark.asyncio
    async def test_open_circuit_skips_redis(self, fake_redis):
        """While OPEN, Redis is not called at all."""
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60, clock=FakeClock())
        breaker.record_failure()
        store = RedisRateLimitStore(fake_redis, circuit_breaker=breaker)
        store._increment_once = AsyncMock()

        hit = await store.increment("user:1", 60_000)

        assert hit.count == 1
        store._increment_once.assert_not_awaited()
        assert store.degraded is True

    @pytest.mark.asyncio
    async def test_recovers_through_half_open_probe(self, fake_redis):
        clock = FakeClock()
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=30, clock=clock)
        breaker.record_failure()
        store = RedisRateLimitStore(fake_redis, circuit_breaker=breaker, clock=clock)

        clock.advance(30)
        hit = await store.increment("user:1", 60_000)

        assert hit.count == 1
        assert breaker.state == CircuitBreaker.CLOSED
        assert await fake_redis.get(REDIS_KEY_PREFIX + "user:1") == "1"

    @pytest.mark.asyncio
    async def test_injected_fallback_is_used(self, fake_redis):
        clock = FakeClock()
        fallback = MemoryRateLimitStore(clock=clock)
        store = RedisRateLimitStore(fake_redis, fallback=fallback, max_attempts=1, clock=clock)
        store._increment_once = AsyncMock(side_effect=RedisConnectionError("down"))

        hit = await store.increment("user:1", 60_000)

        assert store.fallback is fallback
        assert len(fallback) == 1
        assert hit.reset_at == clock.now + 60

    @pytest.mark.asyncio
    async def test_ping_failure_returns_false(self):
        client = AsyncMock()
        client.ping = AsyncMock(side_effect=RedisConnectionError("down"))
        assert await RedisRateLimitStore(client).ping() is False


class TestStoreFactory:

    def test_memory_store_when_redis_disabled(self):
        app_settings = Settings(_env_file=None, NODE_ENV="development", rate_limit_redis_enabled=False)
        assert isinstance(build_rate_limit_store(app_settings), MemoryRateLimitStore)

    def test_memory_store_under_test(self):
        app_settings = Settings(_env_file=None, NODE_ENV="test", rate_limit_redis_enabled=True)
        assert build_rate_limit_store(app_settings).backend == "memory"

    def test_redis_store_when_enabled(self):
        app_settings = Settings(
            _env_file=None,
            NODE_ENV="production",
            rate_limit_redis_enabled=True,
            redis_cb_failure_threshold=7,
        )
        store = build_rate_limit_store(app_settings)
        assert isinstance(store, RedisRateLimitStore)
        assert store.circuit_breaker.failure_threshold == 7


class TestSecondsUntil:

    def test_rounds_up(self):
        assert seconds_until(100.2, now=98.0) == 3

    def test_never_below_one(self):
        assert seconds_until(50.0, now=99.0) == 1
