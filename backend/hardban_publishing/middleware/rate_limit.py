"""
HardbanRecords Publishing API - Rate Limiting
==============================================

What:  Per route class request quotas, keyed by caller identity.
How:   Each route class is a `RateLimitConfig` record. `build_rate_limiters()`
       turns the table below into `RateLimiter` instances once per process and
       stores them on `app.state.rate_limiters`; routes opt in with
       `Depends(rate_limit("publishing_api"))`.
Who:   Publishing routes (rights, chapters, webhooks).
When:  After the auth context middleware (the key and the skip rule read
       `request.state.user`) and before the route's role guard.

Fixed window counter per key:
    1. increment(key) in the store; the first hit opens the window
    2. count > max → 429 with Retry-After and X-RateLimit-* headers
    3. otherwise the X-RateLimit-* headers are added to the response

Route classes:
    publishing_api     RATE_LIMIT_WINDOW_MS / RATE_LIMIT_MAX   suffix api
    file_upload        UPLOAD_RATE_LIMIT_*                     suffix upload:{file type}
    authentication     AUTH_RATE_LIMIT_*                       key publishing:auth:{ip}
    publication_ops    1h / 50                                 suffix pub-ops
    store_submission   24h / 10                                suffix store-submit
    format_conversion  1h / 20                                 suffix conversion
    collaboration      1h / 30                                 suffix collab
    sales_reports      1h / 100                                suffix sales-reports
    admin_ops          1h / 200                                key publishing:admin:{user or ip}
    webhook            60s / 60 (memory store)                 key publishing:webhook:{ip}:{channel}
    tiered             by subscription tier (TIER_LIMITS)
"""

import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import partial
from typing import Any, Callable, Dict, Mapping, Optional

from fastapi import Request, Response

from hardban_publishing import audit
from hardban_publishing.config import Settings
from hardban_publishing.exceptions import RateLimitExceededError
from hardban_publishing.middleware.client import get_client_ip
from hardban_publishing.services.rate_limit_store import (
    MemoryRateLimitStore,
    RateLimitStore,
    seconds_until,
)

logger = logging.getLogger(__name__)

HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS

DEFAULT_MESSAGE: Dict[str, Any] = {
    "error": "Too many requests",
    "message": "Rate limit exceeded",
}

# Never counted, whatever the route class
SKIP_PATHS = {"/health"}


def default_key(
    request: Request, suffix: Optional[str] = None, trust_proxy: bool = False
) -> str:
    """publishing:{user id or anonymous}:{ip}:{user agent[:50]}[:{suffix}]"""
    user = getattr(request.state, "user", None)
    user_id = getattr(user, "id", None) or "anonymous"
    ip = get_client_ip(request, trust_proxy)
    user_agent = (request.headers.get("user-agent") or "")[:50] or "unknown"
    key = f"publishing:{user_id}:{ip}:{user_agent}"
    if suffix:
        key = f"{key}:{suffix}"
    return key


@dataclass(frozen=True)
class RateLimitConfig:
    """
    Quota for one route class.

    `message` supplies the 429 body's error, message and type fields; any
    other entries (tier, upgradeAvailable) are copied into the body as-is.
    `handler` replaces the default security audit entry on rejection; the
    429 response itself is always produced.
    """

    window_ms: int = 15 * 60 * 1000
    max_requests: int = 100
    message: Mapping[str, Any] = field(default_factory=lambda: dict(DEFAULT_MESSAGE))
    suffix: Optional[str] = None
    key_generator: Optional[Callable[[Request], str]] = None
    handler: Optional[Callable[[Request, "RateLimitState"], Any]] = None
    skip: Optional[Callable[[Request], bool]] = None
    use_redis: bool = True


@dataclass
class RateLimitState:
    """What the limiter knows after counting a request."""

    limit: int
    current: int
    remaining: int
    reset_time: datetime

    @property
    def reset_iso(self) -> str:
        return self.reset_time.isoformat().replace("+00:00", "Z")

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": self.reset_iso,
        }


class RateLimiter:
    """
    FastAPI dependency enforcing one RateLimitConfig.

    Counters go to `store` (Redis when configured) unless the config sets
    use_redis=False, in which case the process-local `memory_store` is used.
    """

    def __init__(
        self,
        name: str,
        config: RateLimitConfig,
        store: RateLimitStore,
        memory_store: Optional[MemoryRateLimitStore] = None,
        environment: str = "development",
        trust_proxy: bool = False,
    ):
        self.name = name
        self.config = config
        self.store = store
        self.memory_store = memory_store if memory_store is not None else MemoryRateLimitStore()
        self.environment = environment
        self.trust_proxy = trust_proxy

    @property
    def counter_store(self) -> RateLimitStore:
        return self.store if self.config.use_redis else self.memory_store

    def key_for(self, request: Request) -> str:
        if self.config.key_generator is not None:
            return self.config.key_generator(request)
        return default_key(request, self.config.suffix, self.trust_proxy)

    def should_skip(self, request: Request) -> bool:
        if request.url.path in SKIP_PATHS:
            return True
        user = getattr(request.state, "user", None)
        if self.environment == "development" and getattr(user, "role", None) == "admin":
            return True
        if self.config.skip is not None and self.config.skip(request):
            return True
        return False

    async def hit(self, request: Request) -> Optional[RateLimitState]:
        """
        Counts the request and returns its state, or None when skipped.

        Raises:
            RateLimitExceededError: the post-increment count is over the max
        """
        if self.should_skip(request):
            return None

        key = self.key_for(request)
        result = await self.counter_store.increment(key, self.config.window_ms)
        state = RateLimitState(
            limit=self.config.max_requests,
            current=result.count,
            remaining=max(0, self.config.max_requests - result.count),
            reset_time=datetime.fromtimestamp(result.reset_at, tz=timezone.utc),
        )
        request.state.rate_limit = state

        if result.count > self.config.max_requests:
            await self._reject(request, state, seconds_until(result.reset_at))
        return state

    async def _reject(self, request: Request, state: RateLimitState, retry_after: int) -> None:
        message = dict(self.config.message)
        error_type = message.pop("type", None)

        if self.config.handler is not None:
            outcome = self.config.handler(request, state)
            if inspect.isawaitable(outcome):
                await outcome
        else:
            user = getattr(request.state, "user", None)
            audit.rate_limit_exceeded(
                get_client_ip(request, self.trust_proxy),
                request.url.path,
                state.limit,
                limiter=self.name,
                user_id=getattr(user, "id", None),
                user_agent=request.headers.get("user-agent"),
                remaining=state.remaining,
                reset_time=state.reset_iso,
                limit_type=error_type,
            )

        raise RateLimitExceededError(
            limit=state.limit,
            remaining=state.remaining,
            reset_time=state.reset_time,
            retry_after=retry_after,
            error=message.pop("error", DEFAULT_MESSAGE["error"]),
            message=message.pop("message", DEFAULT_MESSAGE["message"]),
            error_type=error_type,
            extra=message,
        )

    async def __call__(self, request: Request, response: Response) -> Optional[RateLimitState]:
        state = await self.hit(request)
        if state is not None:
            response.headers.update(state.headers())
        return state


# ══════════════════════════════════════════════════════════════════════════
# Subscription tiers
# ══════════════════════════════════════════════════════════════════════════

TIER_LIMITS: Dict[str, Dict[str, int]] = {
    "free": {"window_ms": HOUR_MS, "max_requests": 50},
    "basic": {"window_ms": HOUR_MS, "max_requests": 200},
    "premium": {"window_ms": HOUR_MS, "max_requests": 500},
    "enterprise": {"window_ms": HOUR_MS, "max_requests": 2000},
}


def tier_config(tier: str) -> RateLimitConfig:
    return RateLimitConfig(
        suffix=f"tier-{tier}",
        message={
            "error": "Tier-based rate limit exceeded",
            "message": f"You have exceeded the rate limit for your {tier} subscription tier.",
            "type": "RATE_LIMIT_TIER",
            "tier": tier,
            "upgradeAvailable": tier != "enterprise",
        },
        **TIER_LIMITS[tier],
    )


class TieredRateLimiter:
    """
    Picks the quota from `user.subscription_tier`. Absent or unknown tiers
    count as "free". One RateLimiter per tier, built up front.
    """

    name = "tiered"

    def __init__(self, limiters: Dict[str, RateLimiter]):
        self.limiters = limiters

    @classmethod
    def build(
        cls,
        store: RateLimitStore,
        memory_store: Optional[MemoryRateLimitStore] = None,
        environment: str = "development",
        trust_proxy: bool = False,
    ) -> "TieredRateLimiter":
        return cls(
            {
                tier: RateLimiter(
                    f"tier-{tier}",
                    tier_config(tier),
                    store,
                    memory_store=memory_store,
                    environment=environment,
                    trust_proxy=trust_proxy,
                )
                for tier in TIER_LIMITS
            }
        )

    def limiter_for(self, request: Request) -> RateLimiter:
        user = getattr(request.state, "user", None)
        tier = getattr(user, "subscription_tier", None) or "free"
        return self.limiters.get(tier, self.limiters["free"])

    async def __call__(self, request: Request, response: Response) -> Optional[RateLimitState]:
        return await self.limiter_for(request)(request, response)


# ══════════════════════════════════════════════════════════════════════════
# Route class registry
# ══════════════════════════════════════════════════════════════════════════

def _auth_key(request: Request, trust_proxy: bool) -> str:
    return f"publishing:auth:{get_client_ip(request, trust_proxy)}"


def _admin_key(request: Request, trust_proxy: bool) -> str:
    user = getattr(request.state, "user", None)
    return f"publishing:admin:{getattr(user, 'id', None) or get_client_ip(request, trust_proxy)}"


def _webhook_key(request: Request, trust_proxy: bool) -> str:
    channel = request.headers.get("x-store-channel") or "unknown"
    return f"publishing:webhook:{get_client_ip(request, trust_proxy)}:{channel}"


def _upload_key(request: Request, trust_proxy: bool) -> str:
    file_type = request.headers.get("x-file-type") or "unknown"
    return default_key(request, f"upload:{file_type}", trust_proxy)


def route_class_configs(app_settings: Settings) -> Dict[str, RateLimitConfig]:
    trust_proxy = app_settings.trust_proxy
    return {
        "publishing_api": RateLimitConfig(
            window_ms=app_settings.rate_limit_window_ms,
            max_requests=app_settings.rate_limit_max,
            suffix="api",
            message={
                "error": "Too many API requests",
                "message": "You have exceeded the API rate limit. Please wait before making more requests.",
                "type": "RATE_LIMIT_API",
            },
        ),
        "file_upload": RateLimitConfig(
            window_ms=app_settings.upload_rate_limit_window_ms,
            max_requests=app_settings.upload_rate_limit_max,
            key_generator=partial(_upload_key, trust_proxy=trust_proxy),
            message={
                "error": "Too many upload requests",
                "message": "You have exceeded the file upload rate limit. Please wait before uploading more files.",
                "type": "RATE_LIMIT_UPLOAD",
            },
        ),
        "authentication": RateLimitConfig(
            window_ms=app_settings.auth_rate_limit_window_ms,
            max_requests=app_settings.auth_rate_limit_max,
            key_generator=partial(_auth_key, trust_proxy=trust_proxy),
            message={
                "error": "Too many authentication attempts",
                "message": "Too many login attempts. Please wait before trying again.",
                "type": "RATE_LIMIT_AUTH",
            },
        ),
        "publication_ops": RateLimitConfig(
            window_ms=HOUR_MS,
            max_requests=50,
            suffix="pub-ops",
            message={
                "error": "Too many publication operations",
                "message": "You have exceeded the publication operations limit. Please wait before performing more operations.",
                "type": "RATE_LIMIT_PUBLICATION",
            },
        ),
        "store_submission": RateLimitConfig(
            window_ms=DAY_MS,
            max_requests=10,
            suffix="store-submit",
            message={
                "error": "Too many store submissions",
                "message": "You have exceeded the daily store submission limit. Please wait 24 hours.",
                "type": "RATE_LIMIT_STORE_SUBMISSION",
            },
        ),
        "format_conversion": RateLimitConfig(
            window_ms=HOUR_MS,
            max_requests=20,
            suffix="conversion",
            message={
                "error": "Too many format conversion requests",
                "message": "You have exceeded the format conversion limit. Please wait before converting more files.",
                "type": "RATE_LIMIT_CONVERSION",
            },
        ),
        "collaboration": RateLimitConfig(
            window_ms=HOUR_MS,
            max_requests=30,
            suffix="collab",
            message={
                "error": "Too many collaboration requests",
                "message": "You have exceeded the collaboration operations limit.",
                "type": "RATE_LIMIT_COLLABORATION",
            },
        ),
        "sales_reports": RateLimitConfig(
            window_ms=HOUR_MS,
            max_requests=100,
            suffix="sales-reports",
            message={
                "error": "Too many sales report requests",
                "message": "You have exceeded the sales report access limit.",
                "type": "RATE_LIMIT_SALES_REPORTS",
            },
        ),
        "admin_ops": RateLimitConfig(
            window_ms=HOUR_MS,
            max_requests=200,
            key_generator=partial(_admin_key, trust_proxy=trust_proxy),
            message={
                "error": "Too many admin operations",
                "message": "Admin operation rate limit exceeded.",
                "type": "RATE_LIMIT_ADMIN",
            },
        ),
        "webhook": RateLimitConfig(
            window_ms=60 * 1000,
            max_requests=60,
            key_generator=partial(_webhook_key, trust_proxy=trust_proxy),
            use_redis=False,
            message={
                "error": "Webhook rate limit exceeded",
                "message": "Too many webhook requests from this source.",
                "type": "RATE_LIMIT_WEBHOOK",
            },
        ),
    }


def build_rate_limiters(
    app_settings: Settings,
    store: RateLimitStore,
    memory_store: Optional[MemoryRateLimitStore] = None,
) -> Dict[str, Any]:
    """
    Builds every route class limiter plus the tiered limiter.

    All limiters share `store`; limiters with use_redis=False share
    `memory_store`.
    """
    if memory_store is None:
        memory_store = MemoryRateLimitStore()
    limiters: Dict[str, Any] = {
        name: RateLimiter(
            name,
            config,
            store,
            memory_store=memory_store,
            environment=app_settings.environment,
            trust_proxy=app_settings.trust_proxy,
        )
        for name, config in route_class_configs(app_settings).items()
    }
    limiters["tiered"] = TieredRateLimiter.build(
        store,
        memory_store=memory_store,
        environment=app_settings.environment,
        trust_proxy=app_settings.trust_proxy,
    )
    logger.debug("Built %d rate limiters on the %s store", len(limiters), store.backend)
    return limiters


def rate_limit(name: str) -> Callable:
    """
    Route dependency resolving a limiter from `app.state.rate_limiters`.

    Usage:
        @router.get("/rights/{id}", dependencies=[Depends(rate_limit("publishing_api"))])
    """

    async def dependency(request: Request, response: Response) -> Optional[RateLimitState]:
        limiters = request.app.state.rate_limiters
        if name not in limiters:
            raise KeyError(f"Unknown rate limiter: {name}")
        return await limiters[name](request, response)

    dependency.__name__ = f"rate_limit_{name}"
    return dependency
