from __future__ import annotations

import hashlib
import hmac
import json
import time

import pytest
from fastapi import HTTPException

from src.api.routes import webhooks
from src.api.routes.webhooks import _verify_and_parse_event, translate_event
from src.core.records import SubscriptionStatus


def _subscription_event(event_type: str = "customer.subscription.updated", status: str = "active") -> dict:
    return {
        "id": "evt_1",
        "type": event_type,
        "created": 1772366400,
        "data": {
            "object": {
                "id": "sub_1",
                "customer": "cus_bob",
                "status": status,
                "current_period_end": 1774958400,
                "items": {"data": [{"price": {"product": "prod_pro"}}]},
            }
        },
    }


def _sign(payload: bytes, secret: str) -> str:
    timestamp = int(time.time())
    signed = f"{timestamp}.{payload.decode()}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def test_translate_subscription_event() -> None:
    event = translate_event(_subscription_event())

    assert event.event_id == "evt_1"
    assert event.customer_ref == "cus_bob"
    assert event.status == SubscriptionStatus.ACTIVE
    assert event.product_ref == "prod_pro"
    assert event.subscription_ref == "sub_1"
    assert event.current_period_end.timestamp() == 1774958400
    assert event.occurred_at.timestamp() == 1772366400


def test_translate_deleted_subscription_is_cancelled() -> None:
    event = translate_event(_subscription_event("customer.subscription.deleted", status="active"))
    assert event.status == SubscriptionStatus.CANCELLED


def test_translate_checkout_links_customer() -> None:
    event = translate_event(
        {
            "id": "evt_2",
            "type": "checkout.session.completed",
            "created": 1772366400,
            "data": {"object": {"customer": "cus_new", "customer_details": {"email": "bob@example.com"}}},
        }
    )

    assert event.customer_ref == "cus_new"
    assert event.email == "bob@example.com"
    assert event.status is None
    assert event.subscription_update() is None


def test_translate_ignores_unrelated_events() -> None:
    assert translate_event({"id": "evt_3", "type": "invoice.created", "data": {"object": {}}}) is None


def test_parse_rejects_when_secret_is_unset(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(webhooks.settings, "stripe_webhook_secret", "")
    raw = json.dumps(_subscription_event()).encode()

    with pytest.raises(HTTPException) as exc:
        _verify_and_parse_event(raw, None)
    assert exc.value.status_code == 500

    with pytest.raises(HTTPException) as exc:
        _verify_and_parse_event(raw, _sign(raw, "whsec_any"))
    assert exc.value.status_code == 500


def test_parse_rejects_signed_garbage(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(webhooks.settings, "stripe_webhook_secret", "whsec_test")
    with pytest.raises(HTTPException) as exc:
        _verify_and_parse_event(b"not json", _sign(b"not json", "whsec_test"))
    assert exc.value.status_code == 400


def test_missing_signature_when_secret_configured(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(webhooks.settings, "stripe_webhook_secret", "whsec_test")
    with pytest.raises(HTTPException) as exc:
        _verify_and_parse_event(b"{}", None)
    assert exc.value.status_code == 401


def test_signed_payload_is_verified(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(webhooks.settings, "stripe_webhook_secret", "whsec_test")
    raw = json.dumps(_subscription_event()).encode()

    payload = _verify_and_parse_event(raw, _sign(raw, "whsec_test"))
    assert payload["type"] == "customer.subscription.updated"

    with pytest.raises(HTTPException) as exc:
        _verify_and_parse_event(raw, _sign(raw, "whsec_other"))
    assert exc.value.status_code == 400
