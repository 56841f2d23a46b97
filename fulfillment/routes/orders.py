from __future__ import annotations

import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from fulfillment.deps import get_coordinator
from fulfillment.engine.coordinator import OrderFulfillmentCoordinator
from fulfillment.engine.pipeline import production_snapshot
from fulfillment.errors import (
    FulfillmentError,
    IllegalStageJump,
    InvalidDocumentReference,
    InvalidStageKey,
    MissingSigner,
    OrderNotFound,
    ProviderUnavailable,
    SignatureStateConflict,
)
from fulfillment.signing.gateway import SendResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])
sign_url_router = APIRouter(prefix="/signature", tags=["signature"])

_STATUS_BY_ERROR: list[tuple[type[FulfillmentError], int]] = [
    (OrderNotFound, 404),
    (InvalidStageKey, 400),
    (IllegalStageJump, 409),
    (SignatureStateConflict, 409),
    (InvalidDocumentReference, 422),
    (MissingSigner, 422),
    (ProviderUnavailable, 502),
]


class StageUpdate(BaseModel):
    stage: str


class SignatureRequestBody(BaseModel):
    document_ref: Optional[str] = None


class SignUrlAccessed(BaseModel):
    sign_url: str


def _http_error(e: FulfillmentError) -> HTTPException:
    status = next((s for exc_type, s in _STATUS_BY_ERROR if isinstance(e, exc_type)), 400)
    log = logger.error if status >= 500 else logger.info
    log(json.dumps({
        "event": "order_request_rejected",
        "error": type(e).__name__,
        "status": status,
        "detail": str(e),
    }))
    return HTTPException(status_code=status, detail=str(e))


def _send_response(result: SendResult) -> dict[str, Any]:
    return {"order": result.order.to_dict(), "signing_url": result.signing_url}


@router.get("/{order_id}/production")
async def get_production(
    order_id: str,
    coordinator: OrderFulfillmentCoordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    try:
        view = await coordinator.get_order(order_id)
    except FulfillmentError as e:
        raise _http_error(e)
    return view.to_dict()


@router.patch("/{order_id}/stone-stage")
async def patch_stone_stage(
    order_id: str,
    body: StageUpdate,
    coordinator: OrderFulfillmentCoordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    try:
        order = await coordinator.set_stone_stage(order_id, body.stage)
    except FulfillmentError as e:
        raise _http_error(e)
    return {"order": order.to_dict(), "production": production_snapshot(order)}


@router.patch("/{order_id}/mounting-stage")
async def patch_mounting_stage(
    order_id: str,
    body: StageUpdate,
    coordinator: OrderFulfillmentCoordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    try:
        order = await coordinator.set_mounting_stage(order_id, body.stage)
    except FulfillmentError as e:
        raise _http_error(e)
    return {"order": order.to_dict(), "production": production_snapshot(order)}


@router.post("/{order_id}/signature")
async def request_signature(
    order_id: str,
    body: Optional[SignatureRequestBody] = None,
    coordinator: OrderFulfillmentCoordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    try:
        result = await coordinator.request_signature(order_id, body.document_ref if body else None)
    except FulfillmentError as e:
        raise _http_error(e)
    return _send_response(result)


@router.post("/{order_id}/signature/resend")
async def resend_signature(
    order_id: str,
    body: Optional[SignatureRequestBody] = None,
    coordinator: OrderFulfillmentCoordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    try:
        result = await coordinator.resend_signature(order_id, body.document_ref if body else None)
    except FulfillmentError as e:
        raise _http_error(e)
    return _send_response(result)


@sign_url_router.post("/sign-url/accessed")
async def sign_url_accessed(
    body: SignUrlAccessed,
    coordinator: OrderFulfillmentCoordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    order = await coordinator.mark_sign_url_accessed(body.sign_url)
    if order is None:
        raise HTTPException(status_code=404, detail="Sign URL not linked to any order")
    return {"ok": True, "order_id": order.id}
