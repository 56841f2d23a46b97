"""
Error taxonomy for the fulfillment core.

Validation errors (stage keys, stage jumps, signature state) and
provider errors are raised to callers and never retried here.
UnprocessableWebhookEvent is raised inside webhook processing only and is
always absorbed before it reaches the transport.
"""
from __future__ import annotations

from typing import Optional


class FulfillmentError(Exception):
    """Base class for every error raised by this package."""


class OrderNotFound(FulfillmentError):
    def __init__(self, order_id: str):
        super().__init__(f"Order not found: {order_id}")
        self.order_id = order_id


class InvalidStageKey(FulfillmentError):
    def __init__(self, track: str, key: object):
        super().__init__(f"Unknown {track} stage: {key!r}")
        self.track = track
        self.key = key


class IllegalStageJump(FulfillmentError):
    def __init__(self, track: str, current: str, target: str, distance: int):
        super().__init__(
            f"Cannot move {track} stage from {current} to {target} "
            f"(jump of {distance}, at most 1 allowed)"
        )
        self.track = track
        self.current = current
        self.target = target
        self.distance = distance


class SignatureStateConflict(FulfillmentError):
    """Signature request not allowed from the order's current signature status."""


class ProviderUnavailable(FulfillmentError):
    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class InvalidDocumentReference(FulfillmentError):
    def __init__(self, document_ref: Optional[str], reason: str = "document not found"):
        super().__init__(f"Invalid document reference {document_ref!r}: {reason}")
        self.document_ref = document_ref


class UnprocessableWebhookEvent(FulfillmentError):
    def __init__(self, reason: str, request_id: Optional[str] = None):
        super().__init__(reason)
        self.reason = reason
        self.request_id = request_id


class MissingSigner(FulfillmentError):
    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} has no client email to send the signature request to")
        self.order_id = order_id
