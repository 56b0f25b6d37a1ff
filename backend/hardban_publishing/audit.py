"""
HardbanRecords Publishing API - Security Audit Log
===================================================

What:  Helpers that write security events to the `hardban_publishing.security`
       logger in one consistent shape.
How:   Every entry is a WARNING with `extra={"category": "security",
       "action": ...}` plus event fields, so log shippers can filter on them.
Who:   The CORS gate (rejected origins), the rate limiter (429s) and the
       auth context (rejected tokens).
"""

import logging
from typing import Any, Optional

security_logger = logging.getLogger("hardban_publishing.security")


def rate_limit_exceeded(ip: str, endpoint: str, limit: int, **meta: Any) -> None:
    security_logger.warning(
        "Rate limit exceeded: %s on %s (limit %d)",
        ip,
        endpoint,
        limit,
        extra={
            **meta,
            "category": "security",
            "action": "rate_limit_exceeded",
            "ip": ip,
            "endpoint": endpoint,
            "limit": limit,
        },
    )


def suspicious_activity(user_id: Optional[str], activity: str, ip: str, **meta: Any) -> None:
    security_logger.warning(
        "Suspicious activity detected: %s from %s",
        activity,
        ip,
        extra={
            **meta,
            "category": "security",
            "action": "suspicious_activity",
            "user_id": user_id,
            "activity": activity,
            "ip": ip,
        },
    )


def authentication_failed(ip: str, reason: str, **meta: Any) -> None:
    security_logger.warning(
        "Authentication failed from %s: %s",
        ip,
        reason,
        extra={
            **meta,
            "category": "security",
            "action": "authentication_failed",
            "ip": ip,
            "reason": reason,
        },
    )
