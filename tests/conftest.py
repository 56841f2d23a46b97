# tests/conftest.py
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest
from fastapi.testclient import TestClient

from fulfillment.adapters.signature.dropbox_sign import ProviderSignatureRequest
from fulfillment.deps import get_coordinator
from fulfillment.documents import Signer, TemplateDocumentLocator
from fulfillment.engine.coordinator import OrderFulfillmentCoordinator
from fulfillment.engine.orders import Order
from fulfillment.errors import ProviderUnavailable
from fulfillment.main import app
from fulfillment.signing.gateway import SignatureGateway
from fulfillment.signing.webhook_processor import SignatureWebhookProcessor

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> None:
        self.now = self.now + timedelta(**kwargs)


class InMemoryOrderRepository:
    def __init__(self) -> None:
        self.orders: dict[str, Order] = {}
        self.saves: list[Order] = []

    def add(self, order: Order) -> Order:
        self.orders[order.id] = order
        return order

    async def load_order(self, order_id: str) -> Optional[Order]:
        return self.orders.get(order_id)

    async def save_order(self, order: Order) -> None:
        self.saves.append(order)
        self.orders[order.id] = order

    async def find_by_signature_request_id(self, request_id: str) -> Optional[Order]:
        return next(
            (o for o in self.orders.values() if o.signature_request_id == request_id), None
        )

    async def find_by_embedded_sign_url(self, sign_url: str) -> Optional[Order]:
        return next(
            (o for o in self.orders.values() if o.embedded_sign_url == sign_url), None
        )


class FakeSignatureProvider:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.files_calls: list[str] = []
        self.signers: list[Optional[list[dict[str, str]]]] = []
        self.fail: Optional[Exception] = None
        self.files_fail: bool = False
        self.with_sign_url: bool = True
        self.delay: float = 0.0
        self._counter = 0

    async def create_signature_request(
        self,
        document_ref: str,
        metadata: dict[str, Any],
        *,
        signers: Optional[list[dict[str, str]]] = None,
    ) -> ProviderSignatureRequest:
        self.calls.append((document_ref, dict(metadata)))
        self.signers.append(signers)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail is not None:
            raise self.fail
        self._counter += 1
        request_id = f"req-{self._counter}"
        return ProviderSignatureRequest(
            request_id=request_id,
            embedded_sign_url=f"https://sign.example/{request_id}" if self.with_sign_url else None,
        )

    async def get_files_url(self, request_id: str) -> str:
        self.files_calls.append(request_id)
        if self.files_fail:
            raise ProviderUnavailable("files endpoint down")
        return f"https://files.example/{request_id}.pdf"


class FakeSignerDirectory:
    """Every order belongs to a client with an email, unless listed in missing."""

    def __init__(self) -> None:
        self.missing: set[str] = set()

    async def signer_for(self, order: Order) -> Optional[Signer]:
        if order.id in self.missing:
            return None
        return Signer(name=f"Client {order.id}", email_address=f"{order.id}@clients.example")


def webhook_payload(
    event_type: str,
    request_id: Optional[str],
    order_id: Optional[str] = "order-1",
    files_url: Optional[str] = None,
) -> dict[str, Any]:
    signature_request: dict[str, Any] = {"metadata": {}}
    if request_id is not None:
        signature_request["signature_request_id"] = request_id
    if order_id is not None:
        signature_request["metadata"]["order_id"] = order_id
    if files_url is not None:
        signature_request["files_url"] = files_url
    return {"event": {"event_type": event_type, "signature_request": signature_request}}


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def repo() -> InMemoryOrderRepository:
    repository = InMemoryOrderRepository()
    repository.add(Order(id="order-1"))
    return repository


@pytest.fixture
def provider() -> FakeSignatureProvider:
    return FakeSignatureProvider()


@pytest.fixture
def gateway(provider, clock) -> SignatureGateway:
    return SignatureGateway(provider, sign_url_ttl=timedelta(minutes=60), clock=clock)


@pytest.fixture
def processor(repo, provider, clock) -> SignatureWebhookProcessor:
    return SignatureWebhookProcessor(repo, provider, clock=clock)


@pytest.fixture
def signers() -> FakeSignerDirectory:
    return FakeSignerDirectory()


@pytest.fixture
def coordinator(repo, gateway, processor, signers) -> OrderFulfillmentCoordinator:
    return OrderFulfillmentCoordinator(
        repo,
        gateway,
        processor,
        TemplateDocumentLocator("https://docs.example/orders/{order_id}.pdf"),
        signers=signers,
        send_timeout=1.0,
    )


@pytest.fixture
def client(coordinator):
    app.dependency_overrides[get_coordinator] = lambda: coordinator
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
