"""
Signature provider webhook.

Endpoint: POST /webhooks/signature

The provider posts multipart form data with a single 'json' field; plain
JSON bodies are accepted too. Always returns 200 with the acknowledgement
body the provider expects, even on unknown orders, stale events or
internal errors, so the provider never retries. Duplicates are handled
by the processor's idempotence guard instead.
"""
from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from fulfillment.deps import get_coordinator
from fulfillment.engine.coordinator import OrderFulfillmentCoordinator
from fulfillment.signing.providers.dropbox_sign_webhook_parser import decode_form_payload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

ACK_BODY = "Hello API Event Received"


async def _read_payload(request: Request) -> dict[str, Any]:
    content_type = request.headers.get("content-type", "")
    try:
        if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
            form = await request.form()
            return decode_form_payload(form.get("json"))
        body = await request.json()
    except Exception:
        logger.warning("signature webhook: unreadable body content_type=%s", content_type)
        return {}
    return body if isinstance(body, dict) else {}


@router.get("/signature")
async def signature_webhook_verify() -> PlainTextResponse:
    return PlainTextResponse(ACK_BODY)


@router.post("/signature", status_code=200)
async def signature_webhook(
    request: Request,
    coordinator: OrderFulfillmentCoordinator = Depends(get_coordinator),
) -> PlainTextResponse:
    payload = await _read_payload(request)
    try:
        outcome = await coordinator.handle_webhook(payload)
    except Exception:
        logger.exception("signature webhook: unhandled error")
        return PlainTextResponse(ACK_BODY)

    event = outcome.event
    logger.info(json.dumps({
        "event": "signature_webhook_received",
        "event_type": event.event_type if event else None,
        "signature_request_id": event.request_id if event else None,
        "order_id": outcome.order.id if outcome.order else None,
        "changed": outcome.changed,
        "reason": outcome.reason,
    }))
    return PlainTextResponse(ACK_BODY)
