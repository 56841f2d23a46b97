from __future__ import annotations

import hashlib
import hmac
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

# Canonical event types
ALL_SIGNED = "all_signed"
DECLINED = "declined"
SENT = "sent"
CALLBACK_TEST = "callback_test"

# Informational provider events; acknowledged without a state change
INFORMATIONAL_EVENTS: frozenset[str] = frozenset([
    "signature_request_viewed",
    "signature_request_remind",
    "signature_request_downloadable",
    "signature_request_email_bounce",
])

# Provider event name -> canonical event type
EVENT_TYPE_MAP: dict[str, str] = {
    "signature_request_all_signed": ALL_SIGNED,
    # requests carry a single signer, so one signature completes them
    "signature_request_signed": ALL_SIGNED,
    "all_signed": ALL_SIGNED,
    "signature_request_declined": DECLINED,
    "declined": DECLINED,
    "signature_request_sent": SENT,
    "sent": SENT,
    "callback_test": CALLBACK_TEST,
}


@dataclass(frozen=True)
class NormalizedSignatureEvent:
    provider: str
    event_type: str
    raw_event_type: Optional[str]
    request_id: Optional[str]
    order_id: Optional[str]
    files_url: Optional[str]
    event_time: Optional[str]
    event_hash: Optional[str]
    occurred_at: datetime
    raw_payload: dict[str, Any]


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _first_non_empty(payload: dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        val = payload.get(key)
        if isinstance(val, (int, float)) and not isinstance(val, bool):
            return str(val)
        if isinstance(val, str) and val.strip():
            return val.strip()
    return None


def _parse_event_time(value: Optional[str]) -> datetime:
    if value:
        try:
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError):
            pass
    return datetime.now(tz=timezone.utc)


def decode_form_payload(json_field: Any) -> dict[str, Any]:
    """
    The provider posts callbacks as multipart form data with a single
    'json' field. Returns {} when the field is missing or not an object.
    """
    if not isinstance(json_field, str) or not json_field.strip():
        return {}
    try:
        parsed = json.loads(json_field)
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def parse_dropbox_sign_webhook(payload: dict[str, Any]) -> NormalizedSignatureEvent:
    """
    Parse a signature callback into a provider-agnostic event.

    Accepts the documented shape, where signature_request sits inside
    event, and the provider's native shape, where it sits at top level.
    A payload with no event object is a verification ping (callback_test).
    """
    event = _as_dict(payload.get("event"))
    signature_request = (
        _as_dict(event.get("signature_request"))
        or _as_dict(payload.get("signature_request"))
    )
    metadata = _as_dict(signature_request.get("metadata"))

    raw_event_type = _first_non_empty(event, "event_type")
    if not event:
        event_type = CALLBACK_TEST
    else:
        event_type = EVENT_TYPE_MAP.get((raw_event_type or "").lower(), (raw_event_type or "").lower())

    event_time = _first_non_empty(event, "event_time")

    return NormalizedSignatureEvent(
        provider="dropbox_sign",
        event_type=event_type,
        raw_event_type=raw_event_type,
        request_id=_first_non_empty(signature_request, "signature_request_id"),
        order_id=_first_non_empty(metadata, "order_id", "orderId"),
        files_url=_first_non_empty(signature_request, "files_url"),
        event_time=event_time,
        event_hash=_first_non_empty(event, "event_hash"),
        occurred_at=_parse_event_time(event_time),
        raw_payload=payload,
    )


def verify_event_hash(event: NormalizedSignatureEvent, api_key: str) -> bool:
    """Check event_hash == HMAC-SHA256(api_key, event_time + raw event_type)."""
    if not api_key or not event.event_hash or not event.event_time or not event.raw_event_type:
        return False
    expected = hmac.new(
        api_key.encode("utf-8"),
        (event.event_time + event.raw_event_type).encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return hmac.compare_digest(expected, event.event_hash)
