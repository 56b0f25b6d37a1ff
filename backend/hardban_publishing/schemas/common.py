"""
HardbanRecords Publishing API - Shared Response Schemas
========================================================

What:  Error, rate limit and health response shapes shared by every router.
Who:   Exception handlers in main.py and the health route; also feeds the
       OpenAPI docs through `responses=` on the routers.
"""

from typing import Iterable, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Standard error body.

    Example:
        {
            "error": "not_found",
            "message": "chapter with ID '...' was not found",
            "details": {"resource": "chapter"},
            "request_id": "3f2a9c1e77d4"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class CorsErrorResponse(BaseModel):
    """403 body written by the CORS gate."""
    error: str = Field(default="CORS_POLICY_VIOLATION")
    message: str
    statusCode: int = Field(default=403)
    request_id: Optional[str] = None


class RateLimitErrorResponse(BaseModel):
    """
    429 body. Tier limits add `tier` and `upgradeAvailable`, which the
    model lets through as extra fields.
    """
    error: str
    message: str
    type: Optional[str] = None
    retryAfter: int = Field(description="Seconds until the window resets")
    limit: int
    remaining: int
    resetTime: str = Field(description="ISO-8601 window reset time")

    model_config = {"extra": "allow"}


class HealthResponse(BaseModel):
    """Service and dependency status for probes and monitoring."""
    status: str = Field(description="Overall status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    environment: str = Field(description="Running environment")
    database: str = Field(description="connected | disconnected")
    redis: str = Field(description="connected | disconnected | circuit_open | disabled")
    rate_limit_backend: str = Field(description="Counter store in use: redis | memory")
    uptime_seconds: float = Field(description="Seconds since service started")


def reject_nulls(model: BaseModel, fields: Iterable[str]) -> None:
    """Raises ValueError when any of `fields` was sent as an explicit null."""
    cleared = [name for name in fields if name in model.model_fields_set and getattr(model, name) is None]
    if cleared:
        raise ValueError(f"{', '.join(cleared)} cannot be null")
