import pytest

from fulfillment.documents import Signer, signer_from_row
from fulfillment.engine.orders import (
    LEGACY_SIGNATURE_STATUS_ALIASES,
    Order,
    SignatureStatus,
    normalize_signature_status,
)
from fulfillment.engine.stages import MountingStage, StoneStage


def _row(**overrides):
    row = {
        "id": "order-9",
        "stone_stage": "searching",
        "mounting_stage": "awaiting-start",
        "signature_status": "unsent",
        "signature_request_id": None,
        "signed_document_url": None,
        "signature_sent_at": None,
        "signature_completed_at": None,
        "embedded_sign_url": None,
        "embedded_sign_url_expires_at": None,
        "embedded_sign_url_accessed": None,
    }
    row.update(overrides)
    return row


def test_from_row_maps_awaiting_signature_to_pending():
    order = Order.from_row(_row(signature_status="awaiting_signature", signature_request_id="req-1"))
    assert order.signature_status is SignatureStatus.PENDING
    assert order.signature_request_id == "req-1"


def test_from_row_defaults():
    order = Order.from_row(_row(stone_stage=None, mounting_stage=None, signature_status=None))
    assert order.stone_stage is StoneStage.SEARCHING
    assert order.mounting_stage is MountingStage.AWAITING_START
    assert order.signature_status is SignatureStatus.UNSENT
    assert order.embedded_sign_url_accessed is False


def test_from_row_legacy_stage_keys():
    order = Order.from_row(_row(stone_stage="piedra_montada", mounting_stage="no_aplica"))
    assert order.stone_stage is StoneStage.MOUNTED
    assert order.mounting_stage is MountingStage.NOT_APPLICABLE


@pytest.mark.parametrize("raw", list(LEGACY_SIGNATURE_STATUS_ALIASES))
def test_every_legacy_status_normalizes(raw):
    assert normalize_signature_status(raw).value == LEGACY_SIGNATURE_STATUS_ALIASES[raw]


def test_normalize_signature_status():
    assert normalize_signature_status(" Signed ") is SignatureStatus.SIGNED
    assert normalize_signature_status("") is SignatureStatus.UNSENT
    with pytest.raises(ValueError):
        normalize_signature_status("shredded")


def test_signer_from_client_row():
    signer = signer_from_row({"nombre": "Ana", "apellido": " Pérez ", "email": "ana@example.com"})
    assert signer == Signer(name="Ana Pérez", email_address="ana@example.com")
    assert signer.to_provider() == {"email_address": "ana@example.com", "name": "Ana Pérez"}


def test_signer_from_client_row_without_email():
    assert signer_from_row({"nombre": "Ana", "apellido": "Pérez", "email": None}) is None
    assert signer_from_row({"nombre": None, "apellido": None, "email": "x@example.com"}).name == "x@example.com"
