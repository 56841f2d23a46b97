"""Process-wide wiring of the coordinator and its collaborators."""
from __future__ import annotations

from datetime import timedelta

from fulfillment.adapters.signature.dropbox_sign import DropboxSignClient
from fulfillment.config import settings
from fulfillment.documents import PostgresSignerDirectory, TemplateDocumentLocator
from fulfillment.engine.coordinator import OrderFulfillmentCoordinator
from fulfillment.engine.orders import PostgresOrderRepository
from fulfillment.signing.gateway import SignatureGateway
from fulfillment.signing.webhook_processor import SignatureWebhookProcessor

_coordinator: OrderFulfillmentCoordinator | None = None


def build_coordinator() -> OrderFulfillmentCoordinator:
    repository = PostgresOrderRepository()
    provider = DropboxSignClient.from_settings()
    return OrderFulfillmentCoordinator(
        repository,
        SignatureGateway(
            provider,
            sign_url_ttl=timedelta(minutes=settings.signature_sign_url_ttl_minutes),
        ),
        SignatureWebhookProcessor(
            repository,
            provider,
            api_key=settings.signature_api_key,
            verify_hash=settings.signature_webhook_verify,
        ),
        TemplateDocumentLocator.from_settings(),
        signers=PostgresSignerDirectory(),
        send_timeout=settings.signature_send_timeout_seconds,
    )


def get_coordinator() -> OrderFulfillmentCoordinator:
    """FastAPI dependency. Construction does no I/O; connections open on first use."""
    global _coordinator
    if _coordinator is None:
        _coordinator = build_coordinator()
    return _coordinator
