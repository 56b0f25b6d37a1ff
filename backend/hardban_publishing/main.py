"""
HardbanRecords Publishing API - FastAPI Application Factory
============================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() wires settings, the rate limit store, middleware,
       exception handlers and routers, and returns the app.
Who:   uvicorn (`uvicorn hardban_publishing.main:app`) and the test suite,
       which builds its own app with an injected store and settings.

Application Architecture:
    ┌──────────────────────────────────────────────────────────────┐
    │                        FastAPI App                           │
    │                                                              │
    │  Middleware Chain (outermost first):                         │
    │  Request ID → Access Log → CORS Gate → Auth Context → GZip   │
    │                                                              │
    │  Route dependencies:                                         │
    │  Rate Limiter (route class / tier) → Role Guard              │
    │                                                              │
    │  Routes:                                                     │
    │  /health   /api/publishing/rights...   /api/publishing/      │
    │  chapters...   /api/publishing/webhooks/{store}              │
    └──────────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Configure logging
    2. Validate required secrets (fail fast, ConfigValidationError)
    3. Log the rate limit backend and CORS allow-list size

    Shutdown:
    1. Close the rate limit store (Redis connection pool)
    2. Dispose the database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from hardban_publishing import __version__
from hardban_publishing.config import Settings, settings
from hardban_publishing.database import dispose_engine
from hardban_publishing.exceptions import (
    AuthenticationError,
    ConfigValidationError,
    CorsPolicyViolationError,
    DatabaseError,
    HardbanError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitExceededError,
    ValidationError,
)
from hardban_publishing.middleware.auth import AuthContextMiddleware
from hardban_publishing.middleware.cors import CorsPolicy, CorsPolicyMiddleware
from hardban_publishing.middleware.logging import RequestLoggingMiddleware
from hardban_publishing.middleware.rate_limit import build_rate_limiters
from hardban_publishing.middleware.request_id import RequestIDMiddleware, request_id_var
from hardban_publishing.routes import chapters, health, rights, webhooks
from hardban_publishing.services.rate_limit_store import (
    MemoryRateLimitStore,
    RateLimitStore,
    build_rate_limit_store,
)

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: Optional[str] = None) -> None:
    """
    Configures the root logger once for the whole process.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s

    The access log (`hardban_publishing.access`) and the security audit log
    (`hardban_publishing.security`) propagate to the root handler; their
    structured fields travel in `extra` for handlers that render them.
    """
    logging.basicConfig(
        level=getattr(logging, level or settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Third-party libraries are chatty at INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    app_settings: Settings = app.state.settings
    setup_logging(app_settings.log_level)

    try:
        app_settings.validate_required()
    except ConfigValidationError as e:
        logger.critical("Configuration error: %s", e.message)
        raise

    logger.info("=" * 60)
    logger.info("HardbanRecords Publishing API %s starting (%s)", __version__, app_settings.environment)
    logger.info("Rate limit store: %s", app.state.rate_limit_store.backend)
    logger.info("CORS allow-list: %d origins", len(app.state.cors_policy.allowed_origins))
    logger.info("Server ready at http://%s:%d", app_settings.backend_host, app_settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("HardbanRecords Publishing API shutting down...")
    await app.state.rate_limit_store.close()
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_body(code: str, exc: HardbanError, include_details: bool = True) -> dict:
    body = {"error": code, "message": exc.message}
    if include_details and exc.context:
        body["details"] = exc.context
    body["request_id"] = request_id_var.get("")
    return body


def register_exception_handlers(app: FastAPI) -> None:
    """
    Maps the exception hierarchy to HTTP responses.

    Handler hierarchy:
        ValidationError          → 400 validation_error
        AuthenticationError      → 401 unauthorized
        PermissionDeniedError    → 403 forbidden
        CorsPolicyViolationError → 403 CORS_POLICY_VIOLATION
        NotFoundError            → 404 not_found
        RateLimitExceededError   → 429 limiter body + Retry-After
        DatabaseError            → 500 server_error (generic message)
        HardbanError (base)      → 500 server_error
        Exception (fallback)     → 500 internal_server_error

    Responses never carry stack traces or SQL; those are logged server-side.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return JSONResponse(status_code=400, content=_error_body("validation_error", exc))

    @app.exception_handler(AuthenticationError)
    async def handle_authentication_error(request: Request, exc: AuthenticationError):
        return JSONResponse(
            status_code=401,
            content=_error_body("unauthorized", exc, include_details=False),
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(PermissionDeniedError)
    async def handle_permission_denied(request: Request, exc: PermissionDeniedError):
        return JSONResponse(
            status_code=403,
            content=_error_body("forbidden", exc, include_details=False),
        )

    @app.exception_handler(CorsPolicyViolationError)
    async def handle_cors_violation(request: Request, exc: CorsPolicyViolationError):
        body = exc.to_body()
        body["request_id"] = request_id_var.get("")
        return JSONResponse(status_code=exc.status_code, content=body)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content=_error_body("not_found", exc, include_details=False))

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return JSONResponse(status_code=429, content=exc.to_body(), headers=exc.headers())

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        rid = request_id_var.get("")
        logger.error("[%s] Database error: %s | Context: %s", rid, exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content={
                "error": "server_error",
                "message": "An internal error occurred. Please try again later.",
                "request_id": rid,
            },
        )

    @app.exception_handler(HardbanError)
    async def handle_hardban_error(request: Request, exc: HardbanError):
        rid = request_id_var.get("")
        logger.error("[%s] %s: %s | Context: %s", rid, type(exc).__name__, exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content={"error": "server_error", "message": exc.message, "request_id": rid},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred. Please try again or contact support.",
                "request_id": rid,
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    app_settings: Optional[Settings] = None,
    rate_limit_store: Optional[RateLimitStore] = None,
    cors_policy: Optional[CorsPolicy] = None,
) -> FastAPI:
    """
    Builds the application.

    Args:
        app_settings:     Defaults to the module-level settings singleton
        rate_limit_store: Counter store shared by every limiter; built from
                          settings (Redis or memory) when omitted
        cors_policy:      Defaults to CorsPolicy.from_settings(app_settings)
    """
    if app_settings is None:
        app_settings = settings
    store = rate_limit_store
    if store is None:
        store = build_rate_limit_store(app_settings)
    policy = cors_policy
    if policy is None:
        policy = CorsPolicy.from_settings(app_settings)

    app = FastAPI(
        title="HardbanRecords Publishing API",
        description=(
            "Publishing backend of HardbanRecords Lab: publication rights, "
            "chapters and store partner webhooks."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.state.settings = app_settings
    app.state.cors_policy = policy
    app.state.rate_limit_store = store
    app.state.rate_limiters = build_rate_limiters(
        app_settings, store, memory_store=MemoryRateLimitStore()
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Executed in reverse order of addition: the last one added is outermost.
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(
        AuthContextMiddleware,
        secret=app_settings.jwt_secret,
        algorithm=app_settings.jwt_algorithm,
        trust_proxy=app_settings.trust_proxy,
    )
    app.add_middleware(CorsPolicyMiddleware, policy=policy)
    app.add_middleware(RequestLoggingMiddleware, trust_proxy=app_settings.trust_proxy)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(rights.router)
    app.include_router(chapters.router)
    app.include_router(webhooks.router)

    return app


app = create_app()
