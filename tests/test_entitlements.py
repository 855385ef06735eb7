from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import pytest

from src.core.entitlements import subscription_is_active
from src.core.providers.base import ProviderError
from src.core.providers.billing import ProviderSubscription
from src.core.records import BillingEvent, SubscriptionStatus
from src.core.results import ErrorCode


def _event(clock, event_id: str = "evt_1", **values) -> BillingEvent:  # noqa: ANN001, ANN003
    values.setdefault("customer_ref", "cus_bob")
    values.setdefault("status", SubscriptionStatus.ACTIVE)
    values.setdefault("current_period_end", clock.now + timedelta(days=30))
    return BillingEvent(
        event_id=event_id,
        event_type="customer.subscription.updated",
        occurred_at=clock.now,
        **values,
    )


@pytest.mark.parametrize(
    ("status", "days", "expected"),
    [
        (SubscriptionStatus.ACTIVE, 1, True),
        (SubscriptionStatus.ACTIVE, -1, False),
        (SubscriptionStatus.ACTIVE, None, False),
        (SubscriptionStatus.PAST_DUE, 1, False),
        (SubscriptionStatus.CANCELLED, 1, False),
        ("trialing", 1, False),
        (None, 1, False),
    ],
)
def test_subscription_is_active(clock, status, days, expected) -> None:  # noqa: ANN001
    period_end = None if days is None else clock.now + timedelta(days=days)
    assert subscription_is_active(status, period_end, clock.now) is expected


@pytest.mark.asyncio
async def test_apply_billing_event_grants_entitlement(core, store, clock) -> None:  # noqa: ANN001
    store.add_tenant("bob", billing_customer_ref="cus_bob")

    result = await core.entitlements.apply_billing_event(_event(clock))

    assert result.ok
    assert result.value.changed is True
    assert result.value.entitled is True
    assert await core.entitlements.is_entitled("bob") is True


@pytest.mark.asyncio
async def test_same_event_twice_is_idempotent(core, store, notifier, clock) -> None:  # noqa: ANN001
    store.add_tenant("bob", billing_customer_ref="cus_bob")
    event = _event(clock)

    await core.entitlements.apply_billing_event(event)
    state_after_first = store.tenants["bob"]
    published = len(notifier.published)

    second = await core.entitlements.apply_billing_event(event)

    assert second.ok
    assert second.value.recorded is False
    assert store.tenants["bob"] == state_after_first
    assert len(store.events) == 1
    assert len(notifier.published) == published


@pytest.mark.asyncio
async def test_older_event_does_not_overwrite_newer_state(core, store, clock) -> None:  # noqa: ANN001
    store.add_tenant("bob", billing_customer_ref="cus_bob")
    await core.entitlements.apply_billing_event(_event(clock, "evt_new"))

    stale = replace(
        _event(clock, "evt_old", status=SubscriptionStatus.CANCELLED),
        occurred_at=clock.now - timedelta(hours=1),
    )
    result = await core.entitlements.apply_billing_event(stale)

    assert result.value.recorded is True
    assert result.value.changed is False
    assert store.tenants["bob"].subscription_status == SubscriptionStatus.ACTIVE


@pytest.mark.asyncio
async def test_event_links_tenant_with_mixed_case_stored_email(core, store, clock) -> None:  # noqa: ANN001
    store.add_tenant("bob", email="Bob.Smith@Example.com")

    result = await core.entitlements.apply_billing_event(
        _event(clock, customer_ref="cus_new", email="bob.smith@example.com")
    )

    assert result.ok
    assert store.tenants["bob"].billing_customer_ref == "cus_new"


@pytest.mark.asyncio
async def test_event_links_customer_by_email(core, store, clock) -> None:  # noqa: ANN001
    store.add_tenant("bob", email="bob@example.com")

    result = await core.entitlements.apply_billing_event(
        _event(clock, customer_ref="cus_new", email="Bob@Example.com ")
    )

    assert result.ok
    assert store.tenants["bob"].billing_customer_ref == "cus_new"
    assert store.tenants["bob"].subscription_status == SubscriptionStatus.ACTIVE


@pytest.mark.asyncio
async def test_email_does_not_relink_existing_customer(core, store, clock) -> None:  # noqa: ANN001
    store.add_tenant("bob", email="bob@example.com", billing_customer_ref="cus_old")

    result = await core.entitlements.apply_billing_event(
        _event(clock, customer_ref="cus_other", email="bob@example.com")
    )

    assert result.error == ErrorCode.UNKNOWN_CUSTOMER
    assert store.tenants["bob"].billing_customer_ref == "cus_old"


@pytest.mark.asyncio
async def test_cancellation_revokes_entitlement(core, store, pro_tenant, clock) -> None:  # noqa: ANN001
    pro_tenant("bob", billing_customer_ref="cus_bob")

    await core.entitlements.apply_billing_event(_event(clock, status=SubscriptionStatus.CANCELLED))

    assert await core.entitlements.is_entitled("bob") is False


@pytest.mark.asyncio
async def test_reconcile_pulls_provider_state(core, store, billing, clock) -> None:  # noqa: ANN001
    store.add_tenant("bob", email="bob@example.com")
    billing.customers["bob@example.com"] = "cus_bob"
    billing.subscriptions["cus_bob"] = ProviderSubscription(
        subscription_ref="sub_1",
        status=SubscriptionStatus.ACTIVE,
        product_ref="prod_pro",
        current_period_end=clock.now + timedelta(days=30),
    )

    result = await core.entitlements.reconcile("bob")

    assert result.ok
    assert result.value.entitled is True
    assert result.value.show_branding is False
    assert store.tenants["bob"].billing_customer_ref == "cus_bob"
    [ledger] = await core.entitlements.list_events("bob")
    assert ledger.source == "reconcile"
    assert ledger.event_id.startswith("reconcile:")


@pytest.mark.asyncio
async def test_reconcile_without_subscription_clears_status(core, store, pro_tenant, clock) -> None:  # noqa: ANN001
    pro_tenant("bob", billing_customer_ref="cus_bob")

    result = await core.entitlements.reconcile("bob")

    assert result.value.entitled is False
    assert store.tenants["bob"].subscription_status == SubscriptionStatus.NONE


@pytest.mark.asyncio
async def test_reconcile_provider_failure_keeps_state(core, store, billing, pro_tenant) -> None:  # noqa: ANN001
    tenant = pro_tenant("bob", billing_customer_ref="cus_bob")
    billing.fail_with = ProviderError("stripe", "request timed out")

    result = await core.entitlements.reconcile("bob")

    assert result.error == ErrorCode.PROVIDER_UNAVAILABLE
    assert store.tenants["bob"] == tenant
    assert store.events == {}


@pytest.mark.asyncio
async def test_summary_unknown_tenant(core) -> None:  # noqa: ANN001
    assert (await core.entitlements.summary("ghost")).error == ErrorCode.UNKNOWN_TENANT
