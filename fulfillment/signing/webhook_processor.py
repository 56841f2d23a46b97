"""
Signature webhook processor.

Provider delivery is at-least-once and unordered. Every event is guarded
by (signature_request_id, current status): only an event for the order's
current request, arriving while the order is pending, can change state.
Re-deliveries, superseded requests, and events after a terminal status
are no-ops, so any delivery order converges to the same end state.

handle() never raises: the transport always acknowledges the provider.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from fulfillment.engine.orders import (
    TERMINAL_SIGNATURE_STATUSES,
    Order,
    OrderRepository,
    SignatureStatus,
)
from fulfillment.errors import ProviderUnavailable, UnprocessableWebhookEvent
from fulfillment.signing.gateway import SignatureProvider
from fulfillment.signing.providers.dropbox_sign_webhook_parser import (
    ALL_SIGNED,
    CALLBACK_TEST,
    DECLINED,
    INFORMATIONAL_EVENTS,
    SENT,
    NormalizedSignatureEvent,
    parse_dropbox_sign_webhook,
    verify_event_hash,
)

logger = logging.getLogger(__name__)

HANDLED_EVENT_TYPES: frozenset[str] = frozenset([ALL_SIGNED, DECLINED, SENT]) | INFORMATIONAL_EVENTS


@dataclass(frozen=True)
class WebhookOutcome:
    order: Optional[Order]
    changed: bool
    reason: str
    previous_status: Optional[SignatureStatus] = None
    event: Optional[NormalizedSignatureEvent] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SignatureWebhookProcessor:
    def __init__(
        self,
        repository: OrderRepository,
        provider: Optional[SignatureProvider] = None,
        *,
        api_key: str = "",
        verify_hash: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.repository = repository
        self.provider = provider
        self.api_key = api_key
        self.verify_hash = verify_hash
        self.clock = clock

    async def handle(self, payload: dict[str, Any]) -> WebhookOutcome:
        """Parse, route and apply one callback. Never raises."""
        event: Optional[NormalizedSignatureEvent] = None
        try:
            event = parse_dropbox_sign_webhook(payload)
            if event.event_type == CALLBACK_TEST:
                logger.info("signature webhook: callback test received")
                return WebhookOutcome(order=None, changed=False, reason="callback_test", event=event)

            if self.verify_hash and not verify_event_hash(event, self.api_key):
                raise UnprocessableWebhookEvent("invalid_event_hash", event.request_id)
            if event.event_type not in HANDLED_EVENT_TYPES:
                raise UnprocessableWebhookEvent(
                    f"unknown_event_type:{event.raw_event_type}", event.request_id
                )

            order = await self._resolve_order(event)
            return await self.process(order, event)

        except UnprocessableWebhookEvent as e:
            logger.warning(json.dumps({
                "event": "signature_webhook_unprocessable",
                "reason": e.reason,
                "signature_request_id": e.request_id,
                "event_type": event.raw_event_type if event else None,
            }))
            return WebhookOutcome(order=None, changed=False, reason="unprocessable", event=event)
        except Exception:
            logger.exception("signature webhook: processing failed")
            return WebhookOutcome(order=None, changed=False, reason="error", event=event)

    async def _resolve_order(self, event: NormalizedSignatureEvent) -> Order:
        order = None
        if event.order_id:
            order = await self.repository.load_order(event.order_id)
        if order is None and event.request_id:
            order = await self.repository.find_by_signature_request_id(event.request_id)
        if order is None:
            raise UnprocessableWebhookEvent(
                f"order_not_found:{event.order_id}", event.request_id
            )
        return order

    async def process(self, order: Order, event: NormalizedSignatureEvent) -> WebhookOutcome:
        """Apply a parsed event to order. Returns the (possibly unchanged) order."""
        previous = order.signature_status

        def _ignored(reason: str) -> WebhookOutcome:
            logger.debug(
                "signature webhook ignored order=%s request=%s type=%s reason=%s",
                order.id, event.request_id, event.event_type, reason,
            )
            return WebhookOutcome(order=order, changed=False, reason=reason,
                                  previous_status=previous, event=event)

        if event.event_type == SENT or event.event_type in INFORMATIONAL_EVENTS:
            return _ignored("noop")
        if not event.request_id:
            raise UnprocessableWebhookEvent("missing_signature_request_id")
        if previous in TERMINAL_SIGNATURE_STATUSES:
            return _ignored("terminal_state")
        if event.request_id != order.signature_request_id:
            return _ignored("stale_request")
        if previous is not SignatureStatus.PENDING:
            return _ignored("not_pending")

        if event.event_type == ALL_SIGNED:
            document_url = event.files_url or await self._signed_file_url(event.request_id)
            updated = replace(
                order,
                signature_status=SignatureStatus.SIGNED,
                signed_document_url=document_url,
                signature_completed_at=self.clock(),
            )
        elif event.event_type == DECLINED:
            updated = replace(order, signature_status=SignatureStatus.DECLINED)
        else:
            raise UnprocessableWebhookEvent(f"unknown_event_type:{event.raw_event_type}", event.request_id)

        return WebhookOutcome(order=updated, changed=True, reason="applied",
                              previous_status=previous, event=event)

    async def _signed_file_url(self, request_id: str) -> str:
        if self.provider is None:
            raise UnprocessableWebhookEvent("missing_files_url", request_id)
        try:
            return await self.provider.get_files_url(request_id)
        except ProviderUnavailable as e:
            raise UnprocessableWebhookEvent(f"signed_file_unavailable:{e}", request_id) from e
