from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class EntitlementResponse(BaseModel):
    tenant_id: str
    entitled: bool
    status: str
    current_period_end: datetime | None = None
    product_ref: str | None = None
    synced_at: datetime | None = None
    show_branding: bool


class BillingWebhookResponse(BaseModel):
    received: bool
    event_type: str
    tenant_id: str | None = None
    updated: bool


class BillingEventResponse(BaseModel):
    event_id: str
    event_type: str
    source: str
    subscription_status: str | None = None
    occurred_at: datetime
