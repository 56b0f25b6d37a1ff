"""
HardbanRecords Publishing API - Auth Context & Role Guards
===========================================================

What:  Attaches the caller's identity to `request.state.user` and provides
       `require_roles()` route guards.
How:   AuthContextMiddleware decodes an `Authorization: Bearer <jwt>` header
       with PyJWT (JWT_SECRET / JWT_ALGORITHM). It never rejects a request:
       anonymous and bad-token requests continue with `user = None`, so the
       rate limiter can key them as "anonymous". Enforcement happens in the
       `require_roles()` dependency, which raises 401 / 403.
Who:   Rate limiter (user id, role, subscription tier) and write routes.

Token claims read: `id` (or `sub`), `role`, `subscriptionTier` (or
`subscription_tier`), `email`.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

import jwt
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from hardban_publishing import audit
from hardban_publishing.exceptions import AuthenticationError, PermissionDeniedError
from hardban_publishing.middleware.client import get_client_ip

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthenticatedUser:
    """Identity decoded from a bearer token."""

    id: str
    role: Optional[str] = None
    subscription_tier: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def from_claims(cls, claims: Mapping[str, Any]) -> "AuthenticatedUser":
        user_id = claims.get("id") or claims.get("sub")
        if not user_id:
            raise jwt.InvalidTokenError("Token has no subject")
        return cls(
            id=str(user_id),
            role=claims.get("role"),
            subscription_tier=claims.get("subscriptionTier") or claims.get("subscription_tier"),
            email=claims.get("email"),
        )


def decode_token(token: str, secret: str, algorithm: str = "HS256") -> Dict[str, Any]:
    """Verifies signature and expiry; raises jwt.InvalidTokenError on failure."""
    return jwt.decode(token, secret, algorithms=[algorithm])


def get_current_user(request: Request) -> Optional[AuthenticatedUser]:
    return getattr(request.state, "user", None)


class AuthContextMiddleware(BaseHTTPMiddleware):
    """Decodes the bearer token, if any, into request.state.user."""

    def __init__(self, app, secret: str, algorithm: str = "HS256", trust_proxy: bool = False):
        super().__init__(app)
        self.secret = secret
        self.algorithm = algorithm
        self.trust_proxy = trust_proxy

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request.state.user = None
        request.state.auth_error = None

        header = request.headers.get("authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() == "bearer" and token.strip() and self.secret:
            try:
                claims = decode_token(token.strip(), self.secret, self.algorithm)
                request.state.user = AuthenticatedUser.from_claims(claims)
            except jwt.ExpiredSignatureError:
                request.state.auth_error = "Token has expired"
                audit.authentication_failed(
                    get_client_ip(request, self.trust_proxy), "expired_token", path=request.url.path
                )
            except jwt.InvalidTokenError as e:
                request.state.auth_error = "Invalid token"
                audit.authentication_failed(
                    get_client_ip(request, self.trust_proxy), "invalid_token", path=request.url.path, detail=str(e)
                )

        return await call_next(request)


def require_roles(*roles: str) -> Callable:
    """
    Route dependency: the caller must be authenticated and, when roles are
    given, hold one of them.

    Usage:
        @router.post("/rights", dependencies=[Depends(require_roles("admin"))])
    """
    allowed = list(roles)

    async def guard(request: Request) -> AuthenticatedUser:
        user = get_current_user(request)
        if user is None:
            reason = getattr(request.state, "auth_error", None)
            raise AuthenticationError(message=reason or "Authentication required")
        if allowed and user.role not in allowed:
            logger.info(
                "Role check failed for user %s: role=%s required=%s",
                user.id,
                user.role,
                allowed,
            )
            raise PermissionDeniedError(required_roles=allowed, role=user.role)
        return user

    return guard
