from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from src.core.cache import CacheInvalidationCoordinator
from src.core.providers.base import ProviderError
from src.core.providers.billing import StripeBillingClient
from src.core.records import (
    BillingEvent,
    BillingEventRecord,
    SubscriptionStatus,
    SubscriptionUpdate,
    SubscriptionWrite,
    TenantRecord,
)
from src.core.results import ErrorCode, Outcome
from src.core.store import TenantStore

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def subscription_is_active(
    status: SubscriptionStatus | str | None,
    current_period_end: datetime | None,
    now: datetime,
) -> bool:
    # An "active" row whose period already ended came from a stale or missed
    # webhook; it does not grant access.
    if SubscriptionStatus.coerce(status) != SubscriptionStatus.ACTIVE:
        return False
    return current_period_end is not None and current_period_end > now


def is_record_entitled(tenant: TenantRecord | None, now: datetime) -> bool:
    if tenant is None:
        return False
    return subscription_is_active(tenant.subscription_status, tenant.current_period_end, now)


@dataclass(slots=True, frozen=True)
class EntitlementSummary:
    tenant_id: str
    entitled: bool
    status: SubscriptionStatus
    current_period_end: datetime | None
    product_ref: str | None
    synced_at: datetime | None
    show_branding: bool


@dataclass(slots=True, frozen=True)
class EventApplication:
    tenant_id: str
    recorded: bool
    changed: bool
    entitled: bool


class EntitlementService:
    def __init__(
        self,
        store: TenantStore,
        billing: StripeBillingClient,
        invalidator: CacheInvalidationCoordinator,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.billing = billing
        self.invalidator = invalidator
        self._now = now

    def is_record_entitled(self, tenant: TenantRecord | None) -> bool:
        return is_record_entitled(tenant, self._now())

    async def is_entitled(self, tenant_id: str) -> bool:
        tenant = await self.store.get_tenant(tenant_id)
        return self.is_record_entitled(tenant)

    def summarize(self, tenant: TenantRecord) -> EntitlementSummary:
        entitled = self.is_record_entitled(tenant)
        return EntitlementSummary(
            tenant_id=tenant.id,
            entitled=entitled,
            status=tenant.subscription_status,
            current_period_end=tenant.current_period_end,
            product_ref=tenant.subscription_product_ref,
            synced_at=tenant.subscription_synced_at,
            show_branding=not entitled,
        )

    async def summary(self, tenant_id: str) -> Outcome[EntitlementSummary]:
        tenant = await self.store.get_tenant(tenant_id)
        if tenant is None:
            return Outcome.failure(ErrorCode.UNKNOWN_TENANT, "Tenant not found")
        return Outcome.success(self.summarize(tenant))

    async def list_events(self, tenant_id: str, limit: int = 50) -> list[BillingEventRecord]:
        return await self.store.list_billing_events(tenant_id, limit=limit)

    async def apply_billing_event(self, event: BillingEvent) -> Outcome[EventApplication]:
        if await self.store.has_billing_event(event.event_id):
            logger.info("Billing event %s already processed", event.event_id)
            return Outcome.success(
                EventApplication(tenant_id="", recorded=False, changed=False, entitled=False)
            )

        tenant = None
        if event.customer_ref:
            tenant = await self.store.get_tenant_by_customer_ref(event.customer_ref)
        link_ref = None
        if tenant is None and event.email:
            # Email only links tenants that have no billing customer yet.
            candidate = await self.store.get_tenant_by_email(event.email.strip().lower())
            if candidate is not None and (
                candidate.billing_customer_ref is None or not event.customer_ref
            ):
                tenant = candidate
                if event.customer_ref:
                    link_ref = event.customer_ref
        if tenant is None:
            logger.warning(
                "Billing event %s (%s) matches no tenant", event.event_id, event.event_type
            )
            return Outcome.failure(ErrorCode.UNKNOWN_CUSTOMER, "No tenant for billing customer")

        write = await self.store.apply_subscription(
            tenant.id,
            event,
            event.subscription_update(),
            customer_ref=link_ref,
        )
        if write is None:
            return Outcome.failure(ErrorCode.UNKNOWN_TENANT, "Tenant not found")

        await self._after_write(write, operation=f"billing event {event.event_type}")
        return Outcome.success(
            EventApplication(
                tenant_id=tenant.id,
                recorded=write.recorded,
                changed=write.changed,
                entitled=self.is_record_entitled(write.after),
            )
        )

    async def reconcile(self, tenant_id: str) -> Outcome[EntitlementSummary]:
        tenant = await self.store.get_tenant(tenant_id)
        if tenant is None:
            return Outcome.failure(ErrorCode.UNKNOWN_TENANT, "Tenant not found")

        try:
            customer_ref = tenant.billing_customer_ref
            if customer_ref is None:
                customer_ref = await self.billing.find_customer_ref(tenant.email)
            subscription = (
                await self.billing.fetch_subscription(customer_ref) if customer_ref else None
            )
        except ProviderError as exc:
            logger.warning("Subscription reconcile failed for tenant=%s: %s", tenant_id, exc.message)
            return Outcome.failure(ErrorCode.PROVIDER_UNAVAILABLE, "Billing provider is unavailable")

        observed_at = self._now()
        if subscription is None:
            update = SubscriptionUpdate(status=SubscriptionStatus.NONE, observed_at=observed_at)
        else:
            update = SubscriptionUpdate(
                status=subscription.status,
                observed_at=observed_at,
                current_period_end=subscription.current_period_end,
                product_ref=subscription.product_ref,
                subscription_ref=subscription.subscription_ref,
            )

        event = BillingEvent(
            event_id=f"reconcile:{uuid.uuid4().hex}",
            event_type="manual_sync",
            occurred_at=observed_at,
            customer_ref=customer_ref,
            status=update.status,
            product_ref=update.product_ref,
            subscription_ref=update.subscription_ref,
            current_period_end=update.current_period_end,
            source="reconcile",
        )
        write = await self.store.apply_subscription(
            tenant.id,
            event,
            update,
            customer_ref=customer_ref if tenant.billing_customer_ref is None else None,
        )
        if write is None:
            return Outcome.failure(ErrorCode.UNKNOWN_TENANT, "Tenant not found")

        await self._after_write(write, operation="reconcile")
        return Outcome.success(self.summarize(write.after))

    async def _after_write(self, write: SubscriptionWrite, *, operation: str) -> None:
        if not write.changed:
            return
        was_entitled = self.is_record_entitled(write.before)
        now_entitled = self.is_record_entitled(write.after)
        logger.info(
            "Subscription updated by %s for tenant=%s status=%s entitled=%s->%s",
            operation,
            write.after.id,
            write.after.subscription_status.value,
            was_entitled,
            now_entitled,
        )
        await self.invalidator.invalidate_tenant(write.after)
