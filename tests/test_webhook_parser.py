import hashlib
import hmac
import json

from fulfillment.signing.providers.dropbox_sign_webhook_parser import (
    ALL_SIGNED,
    CALLBACK_TEST,
    DECLINED,
    SENT,
    decode_form_payload,
    parse_dropbox_sign_webhook,
    verify_event_hash,
)

from conftest import webhook_payload


def test_documented_shape():
    event = parse_dropbox_sign_webhook(
        webhook_payload("all_signed", "req-9", order_id="order-7", files_url="https://doc")
    )
    assert event.event_type == ALL_SIGNED
    assert event.request_id == "req-9"
    assert event.order_id == "order-7"
    assert event.files_url == "https://doc"


def test_provider_native_shape():
    payload = {
        "event": {"event_type": "signature_request_declined", "event_time": "1700000000"},
        "signature_request": {
            "signature_request_id": "abc",
            "metadata": {"order_id": "order-3"},
        },
    }
    event = parse_dropbox_sign_webhook(payload)
    assert event.event_type == DECLINED
    assert event.raw_event_type == "signature_request_declined"
    assert event.request_id == "abc"
    assert event.order_id == "order-3"
    assert event.occurred_at.year == 2023


def test_event_name_mapping():
    for raw, expected in [
        ("signature_request_all_signed", ALL_SIGNED),
        ("signature_request_signed", ALL_SIGNED),
        ("signature_request_sent", SENT),
        ("SENT", SENT),
    ]:
        assert parse_dropbox_sign_webhook(webhook_payload(raw, "r")).event_type == expected


def test_unknown_event_type_kept_lowercased():
    event = parse_dropbox_sign_webhook(webhook_payload("Something_Else", "r"))
    assert event.event_type == "something_else"


def test_ping_without_event_is_callback_test():
    assert parse_dropbox_sign_webhook({}).event_type == CALLBACK_TEST


def test_missing_metadata():
    event = parse_dropbox_sign_webhook(webhook_payload("all_signed", "r", order_id=None))
    assert event.order_id is None


def test_decode_form_payload():
    assert decode_form_payload(json.dumps({"event": {"event_type": "sent"}})) == {
        "event": {"event_type": "sent"}
    }
    assert decode_form_payload(None) == {}
    assert decode_form_payload("not json") == {}
    assert decode_form_payload("[1, 2]") == {}


def test_verify_event_hash():
    api_key = "secret-key"
    event_time = "1700000000"
    raw_type = "signature_request_all_signed"
    digest = hmac.new(api_key.encode(), (event_time + raw_type).encode(), hashlib.sha256).hexdigest()
    payload = webhook_payload(raw_type, "r")
    payload["event"].update({"event_time": event_time, "event_hash": digest})

    event = parse_dropbox_sign_webhook(payload)
    assert verify_event_hash(event, api_key) is True
    assert verify_event_hash(event, "other-key") is False
    assert verify_event_hash(parse_dropbox_sign_webhook(webhook_payload(raw_type, "r")), api_key) is False
