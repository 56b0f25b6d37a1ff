"""
HardbanRecords Publishing API - Store Webhooks
===============================================

What:  Receives callbacks from distribution partners (KDP, Apple Books,
       Google Play Books, Kobo, ...) and acknowledges them.
How:   The body is logged with the store, channel and event type and echoed
       back in the acknowledgement. Processing of the event itself belongs
       to the distribution workers, not to this API.

Webhook calls are limited per (client IP, X-Store-Channel) on the memory
store, and the CORS gate echoes the caller's Origin on these paths.
"""

import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Path, Request

from hardban_publishing.exceptions import ValidationError
from hardban_publishing.middleware.rate_limit import rate_limit
from hardban_publishing.schemas.common import ErrorResponse, RateLimitErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/publishing", tags=["Webhooks"])


@router.post(
    "/webhooks/{store}",
    dependencies=[Depends(rate_limit("webhook"))],
    responses={
        400: {"description": "Body is not a JSON object", "model": ErrorResponse},
        429: {"description": "Rate limit exceeded", "model": RateLimitErrorResponse},
    },
    summary="Acknowledge a store partner callback",
)
async def receive_store_webhook(
    request: Request,
    store: str = Path(pattern=r"^[a-z0-9][a-z0-9_-]{1,39}$", description="Store slug, e.g. amazon-kdp"),
) -> Dict[str, Any]:
    raw = await request.body()
    payload: Dict[str, Any] = {}
    if raw.strip():
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            raise ValidationError(message="Webhook body must be valid JSON", field="body")
        if not isinstance(payload, dict):
            raise ValidationError(message="Webhook body must be a JSON object", field="body")

    event = payload.get("event") or payload.get("type") or "unknown"
    channel = request.headers.get("x-store-channel", "unknown")
    logger.info("Webhook from %s (channel=%s): event=%s", store, channel, event)

    return {"received": True, "store": store, "channel": channel, "event": event}
