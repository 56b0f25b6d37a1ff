"""
HardbanRecords Publishing API - Exception Hierarchy
====================================================

What:  Application errors with the HTTP status they map to.
How:   Each exception carries a message and an optional context dict.
       `register_exception_handlers()` in main.py turns them into JSON.
Who:   Raised by middleware, rate limit dependencies, services and config.

Exception Hierarchy:
    HardbanError (base)
    ├── ValidationError            → 400 Bad Request
    ├── AuthenticationError        → 401 Unauthorized
    ├── PermissionDeniedError      → 403 Forbidden
    ├── NotFoundError              → 404 Not Found
    ├── CorsPolicyViolationError   → 403 CORS_POLICY_VIOLATION (terminal)
    ├── RateLimitExceededError     → 429 Too Many Requests (retry after reset)
    ├── DatabaseError              → 500 Internal Server Error
    ├── ConfigValidationError      → fatal at startup, never served
    └── MappingError               → local to the mapper layer, logged only
"""

from datetime import datetime
from typing import Any, Dict, List, Optional


class HardbanError(Exception):
    """
    Base exception for all publishing API errors.

    Attributes:
        message:  User-facing description (safe to return in a response)
        context:  Extra debug data (logged, only some handlers return it)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(HardbanError):
    """Client sent data that fails a business rule. HTTP 400."""

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class AuthenticationError(HardbanError):
    """Missing, malformed or expired bearer token. HTTP 401."""

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PermissionDeniedError(HardbanError):
    """
    Authenticated user lacks one of the roles a route requires. HTTP 403.
    """

    def __init__(
        self,
        required_roles: Optional[List[str]] = None,
        role: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["required_roles"] = list(required_roles or [])
        ctx["role"] = role
        super().__init__(message="You do not have permission to perform this action", context=ctx)
        self.required_roles = ctx["required_roles"]
        self.role = role


class NotFoundError(HardbanError):
    """A requested rights record or chapter does not exist. HTTP 404."""

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class CorsPolicyViolationError(HardbanError):
    """
    Raised when a browser origin is not on the allow-list.

    Terminal for the request: the CORS gate answers 403 and the handler
    never runs. Not retried.
    """

    code = "CORS_POLICY_VIOLATION"
    status_code = 403

    def __init__(self, origin: str, context: Optional[Dict[str, Any]] = None):
        ctx = context or {}
        ctx["origin"] = origin
        super().__init__(
            message=f"CORS policy violation: Origin {origin} is not allowed",
            context=ctx,
        )
        self.origin = origin

    def to_body(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "statusCode": self.status_code,
        }


class RateLimitExceededError(HardbanError):
    """
    Raised by a rate limit dependency when a key's counter passes its max.

    Carries the limiter state so the handler can render the 429 body:
        {error, message, type, retryAfter, limit, remaining, resetTime}
    plus any extra fields from the limiter's message (tier, upgradeAvailable).
    """

    def __init__(
        self,
        limit: int,
        remaining: int,
        reset_time: datetime,
        retry_after: int,
        error: str = "Too Many Requests",
        message: str = "Rate limit exceeded. Please try again later.",
        error_type: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.limit = limit
        self.remaining = remaining
        self.reset_time = reset_time
        self.retry_after = retry_after
        self.error = error
        self.error_type = error_type
        self.extra = extra or {}

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error, "message": self.message}
        if self.error_type:
            body["type"] = self.error_type
        body.update(self.extra)
        body.update(
            {
                "retryAfter": self.retry_after,
                "limit": self.limit,
                "remaining": self.remaining,
                "resetTime": self.reset_time.isoformat().replace("+00:00", "Z"),
            }
        )
        return body

    def headers(self) -> Dict[str, str]:
        return {
            "Retry-After": str(self.retry_after),
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": self.reset_time.isoformat().replace("+00:00", "Z"),
        }


class DatabaseError(HardbanError):
    """
    A query or write failed. HTTP 500 with a generic message; details are
    logged server-side only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ConfigValidationError(HardbanError):
    """Required environment variables are missing. Fatal at startup."""

    def __init__(self, missing: List[str], context: Optional[Dict[str, Any]] = None):
        ctx = context or {}
        ctx["missing"] = list(missing)
        super().__init__(
            message=f"Missing required environment variables: {', '.join(missing)}",
            context=ctx,
        )
        self.missing = list(missing)


class MappingError(HardbanError):
    """
    A row or JSON blob could not be mapped.

    Never leaves the mapper layer: mappers log it and degrade to None.
    """

    def __init__(
        self,
        entity: str,
        entity_id: Any = None,
        message: str = "Mapping failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["entity"] = entity
        ctx["entity_id"] = entity_id
        super().__init__(message=message, context=ctx)
        self.entity = entity
        self.entity_id = entity_id
