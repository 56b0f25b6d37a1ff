"""
HardbanRecords Publishing API - Rate Limiter Tests
===================================================

What we test:
    ✅ Counting, X-RateLimit-* headers and request.state.rate_limit
    ✅ 429 body fields from the route class message
    ✅ Skip rules: /health, admins in development, config.skip
    ✅ Custom handler replaces the audit entry but the 429 is still raised
    ✅ Key generation per route class
    ✅ Webhook limiter always counts in the memory store
    ✅ Tier selection, unknown tiers fall back to free
"""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from starlette.requests import Request
from starlette.responses import Response

from hardban_publishing.config import Settings
from hardban_publishing.exceptions import RateLimitExceededError
from hardban_publishing.middleware.rate_limit import (
    TIER_LIMITS,
    RateLimitConfig,
    RateLimiter,
    TieredRateLimiter,
    build_rate_limiters,
    default_key,
    route_class_configs,
)
from hardban_publishing.services.rate_limit_store import MemoryRateLimitStore


def make_request(path="/api/publishing/rights", headers=None, user=None, client_ip="10.0.0.1"):
    scope = {
        "type": "http",
        "method": "GET",
        "path": path,
        "query_string": b"",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": (client_ip, 50000),
    }
    request = Request(scope)
    request.state.user = user
    return request


def make_user(user_id="user-1", role="author", tier=None):
    return SimpleNamespace(id=user_id, role=role, subscription_tier=tier)


def limiter(max_requests=2, environment="test", **config):
    return RateLimiter(
        "test",
        RateLimitConfig(window_ms=60_000, max_requests=max_requests, **config),
        MemoryRateLimitStore(),
        environment=environment,
    )


class TestRateLimiterCounting:

    @pytest.mark.asyncio
    async def test_under_limit_sets_headers_and_state(self):
        """Allowed requests carry the X-RateLimit-* headers."""
        request, response = make_request(), Response()

        state = await limiter(max_requests=5)(request, response)

        assert state.current == 1
        assert state.remaining == 4
        assert response.headers["X-RateLimit-Limit"] == "5"
        assert response.headers["X-RateLimit-Remaining"] == "4"
        assert response.headers["X-RateLimit-Reset"].endswith("Z")
        assert request.state.rate_limit is state

    @pytest.mark.asyncio
    async def test_request_over_max_is_rejected(self):
        """The (max + 1)th request in a window raises with the configured message."""
        rate_limiter = limiter(
            max_requests=2,
            message={"error": "Too many API requests", "message": "Slow down", "type": "RATE_LIMIT_API"},
        )
        for _ in range(2):
            await rate_limiter(make_request(), Response())

        with pytest.raises(RateLimitExceededError) as exc_info:
            await rate_limiter(make_request(), Response())

        body = exc_info.value.to_body()
        assert body["error"] == "Too many API requests"
        assert body["message"] == "Slow down"
        assert body["type"] == "RATE_LIMIT_API"
        assert body["limit"] == 2
        assert body["remaining"] == 0
        assert 1 <= body["retryAfter"] <= 60
        assert exc_info.value.headers()["Retry-After"] == str(body["retryAfter"])

    @pytest.mark.asyncio
    async def test_default_message(self):
        rate_limiter = limiter(max_requests=1)
        await rate_limiter(make_request(), Response())

        with pytest.raises(RateLimitExceededError) as exc_info:
            await rate_limiter(make_request(), Response())

        body = exc_info.value.to_body()
        assert body["error"] == "Too many requests"
        assert "type" not in body

    @pytest.mark.asyncio
    async def test_rejection_is_audited(self):
        rate_limiter = limiter(max_requests=1)
        await rate_limiter(make_request(), Response())

        with patch("hardban_publishing.middleware.rate_limit.audit") as mock_audit:
            with pytest.raises(RateLimitExceededError):
                await rate_limiter(make_request(), Response())

        mock_audit.rate_limit_exceeded.assert_called_once()
        args = mock_audit.rate_limit_exceeded.call_args.args
        assert args == ("10.0.0.1", "/api/publishing/rights", 1)

    @pytest.mark.asyncio
    async def test_custom_handler_still_rejects(self):
        """A handler replaces the audit entry; the request is still refused."""
        handler = MagicMock()
        rate_limiter = limiter(max_requests=1, handler=handler)
        await rate_limiter(make_request(), Response())

        with patch("hardban_publishing.middleware.rate_limit.audit") as mock_audit:
            with pytest.raises(RateLimitExceededError):
                await rate_limiter(make_request(), Response())

        handler.assert_called_once()
        mock_audit.rate_limit_exceeded.assert_not_called()

    @pytest.mark.asyncio
    async def test_users_are_counted_separately(self):
        rate_limiter = limiter(max_requests=1)
        await rate_limiter(make_request(user=make_user("a")), Response())
        state = await rate_limiter(make_request(user=make_user("b")), Response())
        assert state.current == 1


class TestRateLimiterSkip:

    @pytest.mark.asyncio
    async def test_health_is_never_counted(self):
        response = Response()
        state = await limiter(max_requests=1)(make_request(path="/health"), response)
        assert state is None
        assert "X-RateLimit-Limit" not in response.headers

    @pytest.mark.asyncio
    async def test_admin_skipped_in_development(self):
        rate_limiter = limiter(max_requests=1, environment="development")
        admin = make_user(role="admin")
        for _ in range(3):
            assert await rate_limiter(make_request(user=admin), Response()) is None

    @pytest.mark.asyncio
    async def test_admin_counted_in_production(self):
        rate_limiter = limiter(max_requests=1, environment="production")
        admin = make_user(role="admin")
        await rate_limiter(make_request(user=admin), Response())
        with pytest.raises(RateLimitExceededError):
            await rate_limiter(make_request(user=admin), Response())

    @pytest.mark.asyncio
    async def test_config_skip(self):
        rate_limiter = limiter(max_requests=1, skip=lambda request: True)
        assert await rate_limiter(make_request(), Response()) is None


class TestKeys:

    def test_default_key_anonymous(self):
        request = make_request(headers={"User-Agent": "Mozilla/5.0"})
        assert default_key(request, "api", trust_proxy=False) == "publishing:anonymous:10.0.0.1:Mozilla/5.0:api"

    def test_default_key_user_and_truncated_agent(self):
        request = make_request(headers={"User-Agent": "x" * 80}, user=make_user("u-9"))
        key = default_key(request, trust_proxy=False)
        assert key == f"publishing:u-9:10.0.0.1:{'x' * 50}"

    def test_forwarded_ip_behind_proxy(self):
        request = make_request(headers={"X-Forwarded-For": "203.0.113.5, 10.0.0.1"})
        assert default_key(request, trust_proxy=True).startswith("publishing:anonymous:203.0.113.5:")

    def test_route_class_keys(self):
        configs = route_class_configs(Settings(_env_file=None))
        request = make_request(
            headers={"X-Store-Channel": "kobo", "X-File-Type": "epub"},
            user=make_user("admin-1", role="admin"),
        )
        assert configs["authentication"].key_generator(request) == "publishing:auth:10.0.0.1"
        assert configs["admin_ops"].key_generator(request) == "publishing:admin:admin-1"
        assert configs["webhook"].key_generator(request) == "publishing:webhook:10.0.0.1:kobo"
        assert configs["file_upload"].key_generator(request).endswith(":upload:epub")


class TestRouteClasses:

    def test_registry_has_every_class(self):
        limiters = build_rate_limiters(Settings(_env_file=None), MemoryRateLimitStore())
        assert set(limiters) == {
            "publishing_api",
            "file_upload",
            "authentication",
            "publication_ops",
            "store_submission",
            "format_conversion",
            "collaboration",
            "sales_reports",
            "admin_ops",
            "webhook",
            "tiered",
        }

    def test_limits_follow_settings(self):
        app_settings = Settings(_env_file=None, rate_limit_max=7, auth_rate_limit_max=3)
        configs = route_class_configs(app_settings)
        assert configs["publishing_api"].max_requests == 7
        assert configs["authentication"].max_requests == 3
        assert configs["store_submission"].window_ms == 24 * 60 * 60 * 1000

    @pytest.mark.asyncio
    async def test_webhook_counts_in_memory_store(self):
        shared, memory = MemoryRateLimitStore(), MemoryRateLimitStore()
        limiters = build_rate_limiters(Settings(_env_file=None), shared, memory_store=memory)

        await limiters["webhook"](make_request(path="/api/publishing/webhooks/kobo"), Response())
        await limiters["publishing_api"](make_request(), Response())

        assert len(memory) == 1
        assert len(shared) == 1

    def test_empty_stores_are_kept(self):
        """An injected store is used even while it holds no counters."""
        shared, memory = MemoryRateLimitStore(), MemoryRateLimitStore()
        limiters = build_rate_limiters(Settings(_env_file=None), shared, memory_store=memory)

        assert limiters["webhook"].memory_store is memory
        assert limiters["publishing_api"].store is shared
        assert RateLimiter("test", RateLimitConfig(), shared, memory_store=memory).memory_store is memory


class TestTieredRateLimiter:

    def build(self):
        return TieredRateLimiter.build(MemoryRateLimitStore(), environment="test")

    def test_picks_limiter_by_tier(self):
        tiered = self.build()
        request = make_request(user=make_user(tier="premium"))
        assert tiered.limiter_for(request).config.max_requests == TIER_LIMITS["premium"]["max_requests"]

    def test_unknown_and_missing_tiers_use_free(self):
        tiered = self.build()
        for user in (make_user(tier="platinum"), make_user(tier=None), None):
            assert tiered.limiter_for(make_request(user=user)).config.max_requests == 50

    @pytest.mark.asyncio
    async def test_tier_rejection_body(self):
        tiered = self.build()
        tiered.limiters["basic"].config = RateLimitConfig(
            window_ms=60_000,
            max_requests=1,
            message=tiered.limiters["basic"].config.message,
        )
        user = make_user(tier="basic")
        await tiered(make_request(user=user), Response())

        with pytest.raises(RateLimitExceededError) as exc_info:
            await tiered(make_request(user=user), Response())

        body = exc_info.value.to_body()
        assert body["type"] == "RATE_LIMIT_TIER"
        assert body["tier"] == "basic"
        assert body["upgradeAvailable"] is True

    def test_enterprise_has_no_upgrade(self):
        tiered = self.build()
        assert tiered.limiters["enterprise"].config.message["upgradeAvailable"] is False
