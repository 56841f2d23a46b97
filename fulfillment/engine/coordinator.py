"""
Order fulfillment coordinator: the only component that mutates orders.

Every operation is load -> mutate -> save -> return the updated order.
Production tracks and the signature workflow are independent: neither
blocks the other, in any interleaving.
"""
from __future__ import annotations

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from typing import Any, AsyncIterator, Optional

from fulfillment.documents import DocumentLocator, SignerDirectory
from fulfillment.engine.orders import Order, OrderRepository
from fulfillment.engine.pipeline import advance_stage, production_snapshot
from fulfillment.engine.stages import Track
from fulfillment.errors import MissingSigner, OrderNotFound, ProviderUnavailable
from fulfillment.signing.gateway import (
    SendResult,
    SignatureGateway,
    check_can_send,
    is_sign_link_stale,
)
from fulfillment.signing.webhook_processor import SignatureWebhookProcessor, WebhookOutcome
from fulfillment.transition_logger import log_transition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderView:
    order: Order
    production: dict[str, Any]
    sign_link_stale: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "order": self.order.to_dict(),
            "production": self.production,
            "sign_link_stale": self.sign_link_stale,
        }


class OrderFulfillmentCoordinator:
    def __init__(
        self,
        repository: OrderRepository,
        gateway: SignatureGateway,
        webhook_processor: SignatureWebhookProcessor,
        documents: DocumentLocator,
        *,
        signers: Optional[SignerDirectory] = None,
        send_timeout: Optional[float] = 20.0,
    ):
        self.repository = repository
        self.gateway = gateway
        self.webhook_processor = webhook_processor
        self.documents = documents
        self.signers = signers
        self.send_timeout = send_timeout
        # Serializes load -> save per order within this process only.
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    @asynccontextmanager
    async def _order_lock(self, order_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(order_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[order_id] = lock
        async with lock:
            yield

    async def _load(self, order_id: str) -> Order:
        order = await self.repository.load_order(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_order(self, order_id: str) -> OrderView:
        order = await self._load(order_id)
        return OrderView(
            order=order,
            production=production_snapshot(order),
            sign_link_stale=is_sign_link_stale(order, self.gateway.clock()),
        )

    # ------------------------------------------------------------------
    # Production stages
    # ------------------------------------------------------------------

    async def _set_stage(self, order_id: str, track: Track, stage_key: Any) -> Order:
        async with self._order_lock(order_id):
            order = await self._load(order_id)
            updated = advance_stage(order, track, stage_key)
            previous = order.stage_for(track)
            if updated.stage_for(track) is previous:
                return order
            await self.repository.save_order(updated)

        log_transition(
            order_id=order_id,
            field=f"{track.value}_stage",
            from_value=previous,
            to_value=updated.stage_for(track),
            source="api",
        )
        return updated

    async def set_stone_stage(self, order_id: str, stage_key: Any) -> Order:
        return await self._set_stage(order_id, Track.STONE, stage_key)

    async def set_mounting_stage(self, order_id: str, stage_key: Any) -> Order:
        return await self._set_stage(order_id, Track.MOUNTING, stage_key)

    # ------------------------------------------------------------------
    # Signature
    # ------------------------------------------------------------------

    async def _send(self, order_id: str, document_ref: Optional[str], *, resend: bool) -> SendResult:
        async with self._order_lock(order_id):
            order = await self._load(order_id)
            check_can_send(order, resend=resend)
            ref = document_ref or await self.documents.document_ref_for(order)
            signer = None
            if self.signers is not None:
                signer = await self.signers.signer_for(order)
                if signer is None:
                    raise MissingSigner(order_id)
            try:
                result = await asyncio.wait_for(
                    self.gateway.send_for_signature(order, ref, signer=signer, resend=resend),
                    timeout=self.send_timeout,
                )
            except asyncio.TimeoutError as e:
                raise ProviderUnavailable(
                    f"Signature provider timed out after {self.send_timeout}s"
                ) from e
            await self.repository.save_order(result.order)

        log_transition(
            order_id=order_id,
            field="signature_status",
            from_value=order.signature_status,
            to_value=result.order.signature_status,
            source="resend" if resend else "request",
            signature_request_id=result.order.signature_request_id,
        )
        return result

    async def request_signature(self, order_id: str, document_ref: Optional[str] = None) -> SendResult:
        return await self._send(order_id, document_ref, resend=False)

    async def resend_signature(self, order_id: str, document_ref: Optional[str] = None) -> SendResult:
        return await self._send(order_id, document_ref, resend=True)

    async def mark_sign_url_accessed(self, sign_url: str) -> Optional[Order]:
        """Flag the embedded signing link as opened. Unknown URLs return None."""
        found = await self.repository.find_by_embedded_sign_url(sign_url)
        if found is None:
            logger.info("sign url not linked to any order")
            return None
        async with self._order_lock(found.id):
            order = await self._load(found.id)
            if order.embedded_sign_url != sign_url or order.embedded_sign_url_accessed:
                return order
            updated = replace(order, embedded_sign_url_accessed=True)
            await self.repository.save_order(updated)
        return updated

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    async def handle_webhook(self, payload: dict[str, Any]) -> WebhookOutcome:
        """Apply a provider callback; persists only when the order changed. Never raises."""
        outcome = await self.webhook_processor.handle(payload)
        if not outcome.changed or outcome.order is None:
            return outcome

        order_id = outcome.order.id
        try:
            async with self._order_lock(order_id):
                # Re-apply to the latest stored order so concurrent stage
                # edits or a resend are not overwritten. The resolved file
                # URL is carried over, so this pass makes no provider call.
                current = await self._load(order_id)
                event = outcome.event
                if event is not None and outcome.order.signed_document_url:
                    event = replace(event, files_url=outcome.order.signed_document_url)
                if event is not None:
                    outcome = await self.webhook_processor.process(current, event)
                if outcome.changed and outcome.order is not None:
                    await self.repository.save_order(outcome.order)
        except Exception:
            logger.exception("signature webhook: persisting order %s failed", order_id)
            return replace(outcome, changed=False, reason="error")

        if outcome.changed and outcome.order is not None:
            log_transition(
                order_id=order_id,
                field="signature_status",
                from_value=outcome.previous_status,
                to_value=outcome.order.signature_status,
                source="webhook",
                signature_request_id=outcome.order.signature_request_id,
            )
        return outcome
