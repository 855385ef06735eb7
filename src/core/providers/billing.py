from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

import requests

from src.core.providers.base import ProviderError, call_provider, error_payload
from src.core.records import SubscriptionStatus

PROVIDER = "stripe"

_STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELLED,
    "cancelled": SubscriptionStatus.CANCELLED,
}


def map_provider_status(status: str | None) -> SubscriptionStatus:
    if not status:
        return SubscriptionStatus.NONE
    return _STATUS_MAP.get(status.strip().lower(), SubscriptionStatus.INACTIVE)


def from_unix(value: object) -> datetime | None:
    if value is None or value == "":
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def subscription_fields(data: dict) -> tuple[str | None, datetime | None]:
    """Product id and period end of a subscription object.

    Newer API versions moved ``current_period_end`` onto the subscription items.
    """
    items = ((data.get("items") or {}).get("data")) or []
    first_item = items[0] if items else {}
    price = first_item.get("price") or {}
    product = price.get("product")
    if isinstance(product, dict):
        product = product.get("id")
    period_end = from_unix(data.get("current_period_end")) or from_unix(first_item.get("current_period_end"))
    return product, period_end


@dataclass(slots=True, frozen=True)
class ProviderSubscription:
    subscription_ref: str
    status: SubscriptionStatus
    product_ref: str | None
    current_period_end: datetime | None


class StripeBillingClient:
    def __init__(
        self,
        *,
        secret_key: str,
        base_url: str = "https://api.stripe.com",
        timeout_seconds: float = 8.0,
    ) -> None:
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds

    def _get(self, path: str, params: dict[str, object]) -> dict:
        if not self.secret_key:
            raise ProviderError(PROVIDER, "STRIPE_SECRET_KEY is not configured")

        response = requests.get(
            f"{self.base_url}{path}",
            headers={"Authorization": f"Bearer {self.secret_key}"},
            params=params,
            timeout=self.timeout_seconds,
        )
        if not response.ok:
            error = error_payload(response)
            raise ProviderError(
                PROVIDER,
                error.get("message") or f"GET {path} failed with status {response.status_code}",
                status_code=response.status_code,
            )
        return response.json()

    def find_customer_ref_sync(self, email: str) -> str | None:
        body = self._get("/v1/customers", {"email": email, "limit": 1})
        customers = body.get("data") or []
        return customers[0].get("id") if customers else None

    def fetch_subscription_sync(self, customer_ref: str) -> ProviderSubscription | None:
        body = self._get("/v1/subscriptions", {"customer": customer_ref, "status": "all", "limit": 10})
        subscriptions = body.get("data") or []
        if not subscriptions:
            return None

        # Newest first; prefer one that currently grants access.
        chosen = next(
            (sub for sub in subscriptions if map_provider_status(sub.get("status")) == SubscriptionStatus.ACTIVE),
            subscriptions[0],
        )
        product_ref, period_end = subscription_fields(chosen)
        return ProviderSubscription(
            subscription_ref=chosen["id"],
            status=map_provider_status(chosen.get("status")),
            product_ref=product_ref,
            current_period_end=period_end,
        )

    async def find_customer_ref(self, email: str) -> str | None:
        return await call_provider(PROVIDER, self.find_customer_ref_sync, email, timeout=self.timeout_seconds)

    async def fetch_subscription(self, customer_ref: str) -> ProviderSubscription | None:
        return await call_provider(
            PROVIDER, self.fetch_subscription_sync, customer_ref, timeout=self.timeout_seconds
        )
