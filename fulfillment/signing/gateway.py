"""
Signature gateway: starts an e-signature request for an order's document.

One outbound provider call per invocation, no internal retries. The order
is only changed after the provider answers successfully, so a failure or
timeout leaves it exactly as it was.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Protocol

from fulfillment.adapters.signature.dropbox_sign import ProviderSignatureRequest
from fulfillment.documents import Signer
from fulfillment.engine.orders import Order, SignatureStatus
from fulfillment.errors import InvalidDocumentReference, SignatureStateConflict

logger = logging.getLogger(__name__)


class SignatureProvider(Protocol):
    async def create_signature_request(
        self,
        document_ref: str,
        metadata: dict[str, Any],
        *,
        signers: Optional[list[dict[str, str]]] = None,
    ) -> ProviderSignatureRequest: ...

    async def get_files_url(self, request_id: str) -> str: ...


@dataclass(frozen=True)
class SendResult:
    order: Order
    signing_url: Optional[str]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def check_can_send(order: Order, *, resend: bool) -> None:
    status = order.signature_status
    if status is SignatureStatus.SIGNED:
        raise SignatureStateConflict(f"Order {order.id} is already signed")
    if status is SignatureStatus.PENDING and not resend:
        raise SignatureStateConflict(
            f"Order {order.id} already has a pending signature request; use resend"
        )


def is_sign_link_stale(order: Order, now: Optional[datetime] = None) -> bool:
    """True when a pending order's embedded link has expired or was already opened."""
    if order.signature_status is not SignatureStatus.PENDING:
        return False
    if order.embedded_sign_url_accessed:
        return True
    expires_at = order.embedded_sign_url_expires_at
    if expires_at is None:
        return False
    return (now or _utcnow()) >= expires_at


class SignatureGateway:
    def __init__(
        self,
        provider: SignatureProvider,
        *,
        sign_url_ttl: timedelta = timedelta(minutes=60),
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.provider = provider
        self.sign_url_ttl = sign_url_ttl
        self.clock = clock

    async def send_for_signature(
        self,
        order: Order,
        document_ref: Optional[str],
        *,
        signer: Optional[Signer] = None,
        resend: bool = False,
    ) -> SendResult:
        check_can_send(order, resend=resend)
        if not document_ref or not document_ref.strip():
            raise InvalidDocumentReference(document_ref, reason="empty document reference")

        created = await self.provider.create_signature_request(
            document_ref.strip(),
            {"order_id": order.id},
            signers=[signer.to_provider()] if signer else None,
        )

        now = self.clock()
        updated = replace(
            order,
            signature_status=SignatureStatus.PENDING,
            signature_request_id=created.request_id,
            signature_sent_at=now,
            signed_document_url=None,
            signature_completed_at=None,
            embedded_sign_url=created.embedded_sign_url,
            embedded_sign_url_expires_at=(now + self.sign_url_ttl) if created.embedded_sign_url else None,
            embedded_sign_url_accessed=False,
        )
        if order.signature_request_id and order.signature_request_id != created.request_id:
            logger.info(
                "signature request superseded order=%s old=%s new=%s",
                order.id,
                order.signature_request_id,
                created.request_id,
            )
        return SendResult(order=updated, signing_url=created.embedded_sign_url)
