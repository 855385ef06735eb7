from __future__ import annotations

import json
import logging

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from src.core.config import settings
from src.core.entitlements import utcnow
from src.core.providers.billing import from_unix, map_provider_status, subscription_fields
from src.core.records import BillingEvent, SubscriptionStatus
from src.core.results import ErrorCode
from src.core.services import CoreServices, get_services
from src.schemas.billing import BillingWebhookResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

SUBSCRIPTION_EVENTS = {
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
    "customer.subscription.paused",
    "customer.subscription.resumed",
}
CUSTOMER_EVENTS = {"customer.created", "customer.updated", "checkout.session.completed"}


def _verify_and_parse_event(raw_body: bytes, stripe_signature: str | None) -> dict:
    if not settings.stripe_webhook_secret:
        logger.error("Rejected billing webhook: STRIPE_WEBHOOK_SECRET is not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook secret is not configured",
        )
    if not stripe_signature:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Stripe signature",
        )

    try:
        stripe.Webhook.construct_event(
            payload=raw_body,
            sig_header=stripe_signature,
            secret=settings.stripe_webhook_secret,
        )
    except (ValueError, stripe.SignatureVerificationError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid Stripe signature",
        ) from exc

    try:
        payload = json.loads(raw_body.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid webhook payload",
        ) from exc
    if not isinstance(payload, dict) or not payload.get("id"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid webhook payload",
        )
    return payload


def _customer_id(value: object) -> str | None:
    if isinstance(value, dict):
        return value.get("id")
    return value or None


def translate_event(payload: dict) -> BillingEvent | None:
    """Map a Stripe event onto the provider-neutral ``BillingEvent``."""
    event_type = payload.get("type", "unknown")
    data = (payload.get("data") or {}).get("object") or {}
    occurred_at = from_unix(payload.get("created")) or utcnow()

    if event_type in SUBSCRIPTION_EVENTS:
        product_ref, period_end = subscription_fields(data)
        subscription_status = map_provider_status(data.get("status"))
        if event_type == "customer.subscription.deleted":
            subscription_status = SubscriptionStatus.CANCELLED
        return BillingEvent(
            event_id=payload["id"],
            event_type=event_type,
            occurred_at=occurred_at,
            customer_ref=_customer_id(data.get("customer")),
            status=subscription_status,
            product_ref=product_ref,
            subscription_ref=data.get("id"),
            current_period_end=period_end,
            payload=payload,
        )

    if event_type in CUSTOMER_EVENTS:
        if event_type == "checkout.session.completed":
            customer_ref = _customer_id(data.get("customer"))
            email = (data.get("customer_details") or {}).get("email") or data.get("customer_email")
        else:
            customer_ref = data.get("id")
            email = data.get("email")
        return BillingEvent(
            event_id=payload["id"],
            event_type=event_type,
            occurred_at=occurred_at,
            customer_ref=customer_ref,
            email=email,
            payload=payload,
        )

    return None


@router.post("/billing", response_model=BillingWebhookResponse)
async def billing_webhook(
    request: Request,
    services: CoreServices = Depends(get_services),
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
) -> BillingWebhookResponse:
    raw_body = await request.body()
    payload = _verify_and_parse_event(raw_body, stripe_signature)
    event_type = payload.get("type", "unknown")

    event = translate_event(payload)
    if event is None:
        return BillingWebhookResponse(received=True, event_type=event_type, tenant_id=None, updated=False)

    result = await services.entitlements.apply_billing_event(event)
    if result.error == ErrorCode.UNKNOWN_CUSTOMER:
        return BillingWebhookResponse(received=True, event_type=event_type, tenant_id=None, updated=False)
    if not result.ok:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=result.detail or result.error.value,
        )

    application = result.value
    return BillingWebhookResponse(
        received=True,
        event_type=event_type,
        tenant_id=application.tenant_id or None,
        updated=application.changed,
    )
