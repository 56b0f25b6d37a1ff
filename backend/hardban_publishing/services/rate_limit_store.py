"""
HardbanRecords Publishing API - Rate Limit Counter Stores
==========================================================

What:  Window counters behind one interface, `RateLimitStore.increment()`.
How:   Two interchangeable implementations:
         - MemoryRateLimitStore: process-local fixed windows
         - RedisRateLimitStore:  shared counters with atomic INCR + PEXPIRE
Who:   Injected into every RateLimiter by `build_rate_limiters()`.

Degradation chain for the Redis store:
    INCR fails → tenacity retries (bounded, jittered backoff)
    → retries exhausted → serve this hit from the memory store, warn,
      record a circuit breaker failure
    → threshold reached → circuit OPEN: skip Redis entirely for the
      recovery period (memory store only)
    → recovery period over → HALF_OPEN: one probe goes to Redis
    → probe succeeds → CLOSED

A Redis outage therefore never fails a request. While degraded, counters are
per process: a horizontally scaled deployment enforces limits per instance
until Redis is back.
"""

import logging
import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from hardban_publishing.config import Settings

logger = logging.getLogger(__name__)

REDIS_KEY_PREFIX = "rl:publishing:"


@dataclass(frozen=True)
class RateLimitHit:
    """Counter state right after an increment."""

    count: int
    reset_at: float  # epoch seconds when the window closes


class RateLimitStore(ABC):
    """
    Contract for window counters.

    - increment() is the only mutation; the first hit for a key opens a window
      of `window_ms`, later hits inside it add one, and the first hit after
      it closes starts a new window at 1.
    - Implementations never raise for backend outages they can absorb.
    """

    backend: str = "abstract"

    @abstractmethod
    async def increment(self, key: str, window_ms: int) -> RateLimitHit:
        ...

    @abstractmethod
    async def reset(self, key: str) -> None:
        ...

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


# ══════════════════════════════════════════════════════════════════════════
# In-memory store
# ══════════════════════════════════════════════════════════════════════════

class MemoryRateLimitStore(RateLimitStore):
    """
    Fixed-window counters in a dict, for single-process deployments, tests
    and the webhook limiter.

    Expired windows are replaced lazily on the next hit; a sweep every
    SWEEP_INTERVAL increments drops keys whose window has closed.
    """

    backend = "memory"
    SWEEP_INTERVAL = 1000

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        # key → [count, reset_at]
        self._windows: Dict[str, List[float]] = {}
        self._increments = 0

    def __len__(self) -> int:
        return len(self._windows)

    async def increment(self, key: str, window_ms: int) -> RateLimitHit:
        now = self._clock()
        window = self._windows.get(key)
        if window is None or window[1] <= now:
            window = [0, now + window_ms / 1000.0]
            self._windows[key] = window
        window[0] += 1

        self._increments += 1
        if self._increments % self.SWEEP_INTERVAL == 0:
            self._sweep_expired(now)

        return RateLimitHit(count=int(window[0]), reset_at=window[1])

    async def reset(self, key: str) -> None:
        self._windows.pop(key, None)

    def _sweep_expired(self, now: float) -> None:
        expired = [key for key, (_, reset_at) in self._windows.items() if reset_at <= now]
        for key in expired:
            del self._windows[key]
        if expired:
            logger.debug("Swept %d expired rate limit windows", len(expired))


# ══════════════════════════════════════════════════════════════════════════
# Circuit breaker around Redis
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    CLOSED → OPEN after `failure_threshold` consecutive failures;
    OPEN → HALF_OPEN once `recovery_timeout` seconds have passed;
    HALF_OPEN → CLOSED on success, back to OPEN on failure.

    allow_request() answers False while OPEN; callers then use their
    fallback path instead of raising.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 30,
        clock: Callable[[], float] = time.time,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = self.CLOSED
        self._clock = clock

    def allow_request(self) -> bool:
        if self.state != self.OPEN:
            return True
        elapsed = self._clock() - (self.last_failure_time or 0)
        if elapsed >= self.recovery_timeout:
            logger.info("Redis circuit breaker HALF_OPEN after %.1fs, probing Redis", elapsed)
            self.state = self.HALF_OPEN
            return True
        return False

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Redis circuit breaker CLOSED, Redis rate limiting restored")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = self._clock()
        if self.state == self.HALF_OPEN:
            logger.warning("Redis circuit breaker back to OPEN (probe failed)")
            self.state = self.OPEN
        elif self.state == self.CLOSED and self.failure_count >= self.failure_threshold:
            logger.warning(
                "Redis circuit breaker OPEN after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


# ══════════════════════════════════════════════════════════════════════════
# Redis store
# ══════════════════════════════════════════════════════════════════════════

class RedisRateLimitStore(RateLimitStore):
    """
    Shared counters in Redis.

    Each hit runs INCR and PTTL in one MULTI/EXEC pipeline. When the key has
    no expiry yet (first hit of a window) PEXPIRE sets it to the window, so
    Redis itself closes the window.
    """

    backend = "redis"

    def __init__(
        self,
        client: Redis,
        fallback: Optional[MemoryRateLimitStore] = None,
        prefix: str = REDIS_KEY_PREFIX,
        max_attempts: int = 3,
        initial_wait: float = 0.05,
        max_wait: float = 0.5,
        circuit_breaker: Optional[CircuitBreaker] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.client = client
        self.fallback = fallback if fallback is not None else MemoryRateLimitStore(clock=clock)
        self.prefix = prefix
        self.max_attempts = max_attempts
        self.initial_wait = initial_wait
        self.max_wait = max_wait
        self.circuit_breaker = circuit_breaker if circuit_breaker is not None else CircuitBreaker(clock=clock)
        self._clock = clock

    @property
    def degraded(self) -> bool:
        return self.circuit_breaker.state == CircuitBreaker.OPEN

    async def increment(self, key: str, window_ms: int) -> RateLimitHit:
        if not self.circuit_breaker.allow_request():
            return await self.fallback.increment(key, window_ms)

        try:
            hit = await self._increment_with_retry(self.prefix + key, window_ms)
        except (RedisError, OSError) as e:
            self.circuit_breaker.record_failure()
            logger.warning(
                "Redis unavailable for rate limiting, falling back to memory store: %s",
                str(e),
                extra={"key": key, "error_type": type(e).__name__},
            )
            return await self.fallback.increment(key, window_ms)

        self.circuit_breaker.record_success()
        return hit

    async def _increment_with_retry(self, redis_key: str, window_ms: int) -> RateLimitHit:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type((RedisError, OSError)),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential_jitter(
                initial=self.initial_wait,
                max=self.max_wait,
                jitter=self.initial_wait,
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._increment_once(redis_key, window_ms)
        raise RuntimeError("unreachable: tenacity reraises on exhaustion")

    async def _increment_once(self, redis_key: str, window_ms: int) -> RateLimitHit:
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.incr(redis_key)
            pipe.pttl(redis_key)
            count, ttl_ms = await pipe.execute()

        if ttl_ms is None or ttl_ms < 0:
            await self.client.pexpire(redis_key, window_ms)
            ttl_ms = window_ms

        return RateLimitHit(count=int(count), reset_at=self._clock() + ttl_ms / 1000.0)

    async def reset(self, key: str) -> None:
        await self.fallback.reset(key)
        try:
            await self.client.delete(self.prefix + key)
        except (RedisError, OSError) as e:
            logger.warning("Could not reset rate limit key %s in Redis: %s", key, str(e))

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except (RedisError, OSError) as e:
            logger.warning("Redis ping failed: %s", str(e))
            return False

    async def close(self) -> None:
        await self.client.aclose()


# ══════════════════════════════════════════════════════════════════════════
# Factory
# ══════════════════════════════════════════════════════════════════════════

def create_redis_client(app_settings: Settings) -> Redis:
    """Lazy client: no connection is opened until the first command."""
    return Redis.from_url(
        app_settings.redis_url,
        password=app_settings.redis_password,
        db=app_settings.redis_db,
        decode_responses=True,
        socket_connect_timeout=1,
        socket_timeout=1,
    )


def build_rate_limit_store(app_settings: Settings) -> RateLimitStore:
    """
    Redis store when enabled (and not under test), memory store otherwise.
    """
    if not app_settings.rate_limit_redis_enabled or app_settings.is_test:
        logger.info("Rate limiting uses the in-memory store (single process)")
        return MemoryRateLimitStore()

    logger.info(
        "Rate limiting uses Redis at %s (db %d)",
        app_settings.redis_url.split("@")[-1],
        app_settings.redis_db,
    )
    return RedisRateLimitStore(
        client=create_redis_client(app_settings),
        max_attempts=app_settings.redis_max_retries,
        initial_wait=app_settings.redis_retry_initial_wait,
        max_wait=app_settings.redis_retry_max_wait,
        circuit_breaker=CircuitBreaker(
            failure_threshold=app_settings.redis_cb_failure_threshold,
            recovery_timeout=app_settings.redis_cb_recovery_timeout,
        ),
    )


def seconds_until(reset_at: float, now: Optional[float] = None) -> int:
    """Whole seconds until `reset_at`, rounded up, never below 1."""
    remaining = reset_at - (time.time() if now is None else now)
    return max(1, math.ceil(remaining))
