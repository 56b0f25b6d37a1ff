"""
HardbanRecords Publishing API - CORS Policy Gate
=================================================

What:  Allows or rejects cross-origin requests and attaches the security
       headers of the publishing API.
How:   `CorsPolicy` holds the decision rules and header sets and has no I/O
       apart from the audit log entry on rejection. `CorsPolicyMiddleware`
       applies it to each request: reject with 403, answer preflights, or
       decorate the downstream response.
When:  Inside the access log middleware, before auth and route handlers. A
       rejected origin never reaches a handler.

Decision order for an Origin header:
    1. absent                                        → allow (non-browser client)
    2. exact match in the allow-list                 → allow
    3. development and http://localhost:* / 127.0.0.1 → allow
    4. production and *.hardbanrecords.com           → allow
    5. anything else                                 → 403 CORS_POLICY_VIOLATION

In the test environment the gate is switched off entirely.
"""

import logging
from typing import Dict, Iterable, List, Mapping, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from hardban_publishing import audit
from hardban_publishing.config import Settings
from hardban_publishing.exceptions import CorsPolicyViolationError
from hardban_publishing.middleware.client import get_client_ip
from hardban_publishing.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)


class CorsPolicy:
    """Origin decisions and response headers for one environment."""

    BASE_ORIGINS = (
        "http://localhost:3000",
        "http://localhost:3001",
        "https://hardbanrecords.com",
        "https://www.hardbanrecords.com",
        "https://publishing.hardbanrecords.com",
        "https://authors.hardbanrecords.com",
        "https://admin.hardbanrecords.com",
    )
    ALLOWED_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS")
    ALLOWED_HEADERS = (
        "Content-Type",
        "Authorization",
        "X-Requested-With",
        "X-Request-ID",
        "X-Publication-ID",
        "X-Author-ID",
        "X-Store-Channel",
        "X-Format-Type",
        "X-DRM-Policy",
    )
    EXPOSED_HEADERS = (
        "X-Request-ID",
        "X-RateLimit-Limit",
        "X-RateLimit-Remaining",
        "X-RateLimit-Reset",
        "X-Total-Count",
        "X-Publication-Status",
        "X-Conversion-Status",
        "X-Distribution-Status",
    )
    UPLOAD_ALLOWED_HEADERS = "Content-Type, Authorization, X-Requested-With, X-File-Type, X-File-Size"
    WEBHOOK_ORIGINS = (
        "https://kdp.amazon.com",
        "https://partner.apple.com",
        "https://books.google.com",
        "https://www.kobo.com",
        "https://partner-api.empik.com",
    )
    DEV_ORIGIN_PREFIXES = ("http://localhost:", "http://127.0.0.1:")
    PRODUCTION_DOMAIN_SUFFIX = ".hardbanrecords.com"
    MAX_AGE = 86400

    def __init__(
        self,
        environment: str = "development",
        extra_origins: Iterable[str] = (),
        credentials: bool = False,
        supabase_url: str = "",
        enable_csp: bool = True,
        enable_hsts: bool = True,
        trust_proxy: bool = False,
    ):
        self.environment = environment
        self.trust_proxy = trust_proxy
        # dict.fromkeys drops duplicates and keeps first-seen order
        self.allowed_origins: List[str] = list(dict.fromkeys([*self.BASE_ORIGINS, *extra_origins]))
        self.credentials = credentials or environment in ("development", "production")
        self.supabase_url = supabase_url
        self.enable_csp = enable_csp
        self.enable_hsts = enable_hsts

    @classmethod
    def from_settings(cls, app_settings: Settings) -> "CorsPolicy":
        return cls(
            environment=app_settings.environment,
            extra_origins=app_settings.cors_origins_list,
            credentials=app_settings.cors_credentials,
            supabase_url=app_settings.supabase_url,
            enable_csp=app_settings.enable_csp,
            enable_hsts=app_settings.enable_hsts,
            trust_proxy=app_settings.trust_proxy,
        )

    @property
    def enabled(self) -> bool:
        return self.environment != "test"

    def is_origin_allowed(self, origin: Optional[str]) -> bool:
        if not origin:
            return True
        if origin in self.allowed_origins:
            return True
        if self.environment == "development" and origin.startswith(self.DEV_ORIGIN_PREFIXES):
            return True
        if self.environment == "production" and origin.endswith(self.PRODUCTION_DOMAIN_SUFFIX):
            return True
        return False

    def check_origin(self, origin: Optional[str], client_ip: str = "unknown") -> None:
        """
        Raises:
            CorsPolicyViolationError: origin is not allowed (after an audit entry)
        """
        if self.is_origin_allowed(origin):
            return
        audit.suspicious_activity(
            None,
            "Rejected CORS origin",
            client_ip,
            origin=origin,
            allowed_origins=self.allowed_origins,
            environment=self.environment,
        )
        raise CorsPolicyViolationError(origin)

    # ── Header sets ───────────────────────────────────────────────────────

    def content_security_policy(self) -> str:
        connect_src = " ".join(
            part for part in ("'self'", self.supabase_url, "https://*.hardbanrecords.com") if part
        )
        return (
            "default-src 'self'; "
            f"connect-src {connect_src}; "
            "img-src 'self' data: https:; "
            "script-src 'self'; "
            "style-src 'self' 'unsafe-inline'"
        )

    def security_headers(self, path: str) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if path.startswith("/api/publishing"):
            if self.enable_csp:
                headers["Content-Security-Policy"] = self.content_security_policy()
            headers.update(
                {
                    "X-Frame-Options": "DENY",
                    "X-Content-Type-Options": "nosniff",
                    "X-XSS-Protection": "1; mode=block",
                    "Referrer-Policy": "strict-origin-when-cross-origin",
                }
            )
        if self.environment == "production":
            if self.enable_hsts:
                headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
            headers["Expect-CT"] = "max-age=86400, enforce"
        return headers

    def cors_headers(self, origin: Optional[str]) -> Dict[str, str]:
        """Headers for a non-preflight response to an allowed origin."""
        if not origin:
            return {}
        headers = {
            "Access-Control-Allow-Origin": origin,
            "Access-Control-Expose-Headers": ", ".join(self.EXPOSED_HEADERS),
        }
        if self.credentials:
            headers["Access-Control-Allow-Credentials"] = "true"
        return headers

    def preflight_headers(self, origin: str) -> Dict[str, str]:
        headers = {
            "Access-Control-Allow-Origin": origin,
            "Access-Control-Allow-Methods": ", ".join(self.ALLOWED_METHODS),
            "Access-Control-Allow-Headers": ", ".join(self.ALLOWED_HEADERS),
            "Access-Control-Max-Age": str(self.MAX_AGE),
        }
        if self.credentials:
            headers["Access-Control-Allow-Credentials"] = "true"
        return headers

    def route_headers(self, path: str, request_headers: Mapping[str, str]) -> Dict[str, str]:
        """Upload and webhook specific headers; applied last, so they win."""
        headers: Dict[str, str] = {}
        if "/upload" in path:
            headers["Cross-Origin-Resource-Policy"] = "cross-origin"
            headers["Access-Control-Allow-Headers"] = (
                request_headers.get("access-control-request-headers") or self.UPLOAD_ALLOWED_HEADERS
            )
        if "/webhook" in path:
            partner = request_headers.get("origin") or request_headers.get("referer")
            if partner and partner.startswith(self.WEBHOOK_ORIGINS):
                headers["Access-Control-Allow-Origin"] = partner
        return headers


class CorsPolicyMiddleware(BaseHTTPMiddleware):
    """Applies a CorsPolicy to every request."""

    def __init__(self, app, policy: CorsPolicy):
        super().__init__(app)
        self.policy = policy

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not self.policy.enabled:
            return await call_next(request)

        origin = request.headers.get("origin")
        try:
            self.policy.check_origin(origin, get_client_ip(request, self.policy.trust_proxy))
        except CorsPolicyViolationError as e:
            body = e.to_body()
            body["request_id"] = request_id_var.get("")
            return JSONResponse(status_code=e.status_code, content=body)

        path = request.url.path
        is_preflight = (
            request.method == "OPTIONS"
            and origin is not None
            and "access-control-request-method" in request.headers
        )

        if is_preflight:
            if self.policy.environment == "development":
                logger.debug(
                    "CORS preflight request",
                    extra={
                        "origin": origin,
                        "requested_method": request.headers.get("access-control-request-method"),
                        "requested_headers": request.headers.get("access-control-request-headers"),
                    },
                )
            response: Response = Response(status_code=200)
            response.headers.update(self.policy.preflight_headers(origin))
        else:
            response = await call_next(request)
            response.headers.update(self.policy.cors_headers(origin))

        response.headers.update(self.policy.security_headers(path))
        response.headers.update(self.policy.route_headers(path, request.headers))
        if "access-control-allow-origin" in response.headers:
            response.headers.add_vary_header("Origin")
        return response
