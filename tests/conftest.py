from __future__ import annotations

import asyncio
import itertools
from collections import Counter
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Sequence

import pytest

from src.core.binding import DomainBindingManager
from src.core.cache import CacheInvalidationCoordinator, InvalidationKey, ResolvedHostCache
from src.core.directory import TenantDirectory
from src.core.entitlements import EntitlementService
from src.core.providers.base import ProviderError
from src.core.providers.billing import ProviderSubscription
from src.core.providers.edge import EdgeDomainStatus, EdgeRegistration
from src.core.records import (
    BillingEvent,
    BillingEventRecord,
    BindingState,
    SubscriptionStatus,
    SubscriptionUpdate,
    SubscriptionWrite,
    TenantRecord,
    VerificationRecord,
)
from src.core.resolver import HostResolver
from src.core.services import CoreServices
from src.core.store import BindingConflictError, DomainConflictError, UsernameConflictError

PRIMARY_DOMAIN = "wrk.so"
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class Clock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class MonotonicClock:
    def __init__(self) -> None:
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class InMemoryTenantStore:
    """Dict-backed store with the same atomicity and uniqueness rules as the SQL one."""

    def __init__(self) -> None:
        self.tenants: dict[str, TenantRecord] = {}
        self.verifications: dict[str, VerificationRecord] = {}
        self.events: dict[str, BillingEventRecord] = {}
        self.queries: Counter[str] = Counter()
        self._ids = itertools.count(1)

    def add_tenant(self, tenant_id: str, **values: object) -> TenantRecord:
        values.setdefault("email", f"{tenant_id}@example.com")
        tenant = TenantRecord(id=tenant_id, **values)
        self.tenants[tenant_id] = tenant
        return tenant

    def _find(self, **criteria: object) -> TenantRecord | None:
        for tenant in self.tenants.values():
            if all(getattr(tenant, field) == value for field, value in criteria.items()):
                return tenant
        return None

    async def get_tenant(self, tenant_id: str) -> TenantRecord | None:
        self.queries["get_tenant"] += 1
        await asyncio.sleep(0)
        return self.tenants.get(tenant_id)

    async def get_tenant_by_username(self, username: str) -> TenantRecord | None:
        self.queries["get_tenant_by_username"] += 1
        await asyncio.sleep(0)
        return self._find(username=username)

    async def get_tenant_by_domain(self, domain: str) -> TenantRecord | None:
        self.queries["get_tenant_by_domain"] += 1
        await asyncio.sleep(0)
        return self._find(custom_domain=domain)

    async def get_tenant_by_customer_ref(self, customer_ref: str) -> TenantRecord | None:
        self.queries["get_tenant_by_customer_ref"] += 1
        return self._find(billing_customer_ref=customer_ref)

    async def get_tenant_by_email(self, email: str) -> TenantRecord | None:
        self.queries["get_tenant_by_email"] += 1
        wanted = email.strip().lower()
        for tenant in self.tenants.values():
            if tenant.email.lower() == wanted:
                return tenant
        return None

    async def set_username(self, tenant_id: str, username: str) -> TenantRecord | None:
        owner = self._find(username=username)
        if owner is not None and owner.id != tenant_id:
            raise UsernameConflictError(username)
        if tenant_id not in self.tenants:
            return None
        self.tenants[tenant_id] = replace(self.tenants[tenant_id], username=username)
        return self.tenants[tenant_id]

    async def set_custom_domain(
        self,
        tenant_id: str,
        domain: str | None,
        verified_at: datetime | None,
    ) -> TenantRecord | None:
        if domain is not None:
            owner = self._find(custom_domain=domain)
            if owner is not None and owner.id != tenant_id:
                raise DomainConflictError(domain)
        if tenant_id not in self.tenants:
            return None
        self.tenants[tenant_id] = replace(
            self.tenants[tenant_id], custom_domain=domain, domain_verified_at=verified_at
        )
        return self.tenants[tenant_id]

    async def delete_tenant(self, tenant_id: str) -> bool:
        if self.tenants.pop(tenant_id, None) is None:
            return False
        self.verifications = {
            key: row for key, row in self.verifications.items() if row.tenant_id != tenant_id
        }
        self.events = {key: row for key, row in self.events.items() if row.tenant_id != tenant_id}
        return True

    async def has_billing_event(self, event_id: str) -> bool:
        return event_id in self.events

    async def apply_subscription(
        self,
        tenant_id: str,
        event: BillingEvent,
        update: SubscriptionUpdate | None,
        customer_ref: str | None = None,
    ) -> SubscriptionWrite | None:
        tenant = self.tenants.get(tenant_id)
        if tenant is None:
            return None
        before = tenant
        if event.event_id in self.events:
            return SubscriptionWrite(recorded=False, before=before, after=before)

        self.events[event.event_id] = BillingEventRecord(
            event_id=event.event_id,
            tenant_id=tenant_id,
            event_type=event.event_type,
            source=event.source,
            subscription_status=event.status.value if event.status else None,
            occurred_at=event.occurred_at,
            created_at=event.occurred_at,
        )
        if customer_ref and tenant.billing_customer_ref is None:
            tenant = replace(tenant, billing_customer_ref=customer_ref)
        if update is not None and (
            tenant.subscription_synced_at is None or update.observed_at >= tenant.subscription_synced_at
        ):
            tenant = replace(
                tenant,
                subscription_status=update.status,
                current_period_end=update.current_period_end,
                subscription_product_ref=update.product_ref,
                subscription_ref=update.subscription_ref,
                subscription_synced_at=update.observed_at,
            )
        self.tenants[tenant_id] = tenant
        return SubscriptionWrite(recorded=True, before=before, after=tenant)

    async def list_billing_events(self, tenant_id: str, limit: int = 50) -> list[BillingEventRecord]:
        rows = [row for row in self.events.values() if row.tenant_id == tenant_id]
        rows.sort(key=lambda row: row.occurred_at, reverse=True)
        return rows[:limit]

    async def get_active_verification(self, tenant_id: str) -> VerificationRecord | None:
        for row in self.verifications.values():
            if row.tenant_id == tenant_id and row.state.in_flight:
                return replace(row)
        return None

    async def get_latest_verification(self, domain: str) -> VerificationRecord | None:
        latest = None
        for row in self.verifications.values():
            if row.domain == domain and (latest is None or row.requested_at >= latest.requested_at):
                latest = row
        return replace(latest) if latest is not None else None

    async def create_verification(
        self,
        tenant_id: str,
        domain: str,
        requested_at: datetime,
    ) -> VerificationRecord:
        await asyncio.sleep(0)
        in_flight = [row for row in self.verifications.values() if row.state.in_flight]
        if any(row.tenant_id == tenant_id for row in in_flight):
            raise BindingConflictError(tenant_id)
        if any(row.domain == domain for row in in_flight):
            raise DomainConflictError(domain)
        record = VerificationRecord(
            id=f"ver_{next(self._ids)}",
            tenant_id=tenant_id,
            domain=domain,
            state=BindingState.REQUESTED,
            requested_at=requested_at,
        )
        self.verifications[record.id] = record
        return replace(record)

    async def save_verification(self, record: VerificationRecord) -> VerificationRecord:
        if record.id not in self.verifications:
            raise LookupError(record.id)
        self.verifications[record.id] = replace(record)
        return replace(record)

    async def list_pending_verifications(self, limit: int = 50) -> list[VerificationRecord]:
        rows = [
            replace(row)
            for row in self.verifications.values()
            if row.state == BindingState.PENDING_VERIFICATION
        ]
        rows.sort(key=lambda row: (row.last_checked_at is not None, row.last_checked_at or row.requested_at))
        return rows[:limit]


class FakeEdge:
    def __init__(self) -> None:
        self.registration = EdgeRegistration(accepted=True)
        self.status = EdgeDomainStatus(verified=False, reason="Domain ownership is not verified yet")
        self.fail_with: ProviderError | None = None
        self.calls: list[tuple[str, str]] = []
        self.gate: asyncio.Event | None = None

    async def register_domain(self, domain: str) -> EdgeRegistration:
        self.calls.append(("register", domain))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        return self.registration

    async def get_domain_status(self, domain: str) -> EdgeDomainStatus:
        self.calls.append(("status", domain))
        if self.fail_with is not None:
            raise self.fail_with
        return self.status

    async def remove_domain(self, domain: str) -> None:
        self.calls.append(("remove", domain))
        if self.fail_with is not None:
            raise self.fail_with


class FakeBilling:
    def __init__(self) -> None:
        self.customers: dict[str, str] = {}
        self.subscriptions: dict[str, ProviderSubscription] = {}
        self.fail_with: ProviderError | None = None

    async def find_customer_ref(self, email: str) -> str | None:
        if self.fail_with is not None:
            raise self.fail_with
        return self.customers.get(email)

    async def fetch_subscription(self, customer_ref: str) -> ProviderSubscription | None:
        if self.fail_with is not None:
            raise self.fail_with
        return self.subscriptions.get(customer_ref)


class RecordingNotifier:
    def __init__(self) -> None:
        self.published: list[list[InvalidationKey]] = []

    async def publish(self, keys: Sequence[InvalidationKey]) -> None:
        self.published.append(list(keys))

    @property
    def keys(self) -> list[InvalidationKey]:
        return [key for batch in self.published for key in batch]


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def cache_clock() -> MonotonicClock:
    return MonotonicClock()


@pytest.fixture
def store() -> InMemoryTenantStore:
    return InMemoryTenantStore()


@pytest.fixture
def edge() -> FakeEdge:
    return FakeEdge()


@pytest.fixture
def billing() -> FakeBilling:
    return FakeBilling()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def core(
    store: InMemoryTenantStore,
    edge: FakeEdge,
    billing: FakeBilling,
    notifier: RecordingNotifier,
    clock: Clock,
    cache_clock: MonotonicClock,
) -> CoreServices:
    cache = ResolvedHostCache(ttl_seconds=300, negative_ttl_seconds=60, clock=cache_clock)
    invalidator = CacheInvalidationCoordinator(cache, notifier)
    entitlements = EntitlementService(store, billing, invalidator, now=clock)
    directory = TenantDirectory(store, invalidator, PRIMARY_DOMAIN, now=clock)
    bindings = DomainBindingManager(store, directory, entitlements, edge, PRIMARY_DOMAIN, now=clock)
    resolver = HostResolver(
        PRIMARY_DOMAIN, directory, entitlements, cache, dev_hosts=("localhost", "testserver")
    )
    return CoreServices(
        store=store,
        cache=cache,
        invalidator=invalidator,
        directory=directory,
        entitlements=entitlements,
        bindings=bindings,
        resolver=resolver,
        edge=edge,
        billing=billing,
    )


@pytest.fixture
def pro_tenant(store: InMemoryTenantStore, clock: Clock):
    """Add a tenant whose subscription is active until tomorrow."""

    def _add(tenant_id: str, **values: object) -> TenantRecord:
        values.setdefault("subscription_status", SubscriptionStatus.ACTIVE)
        values.setdefault("current_period_end", clock.now + timedelta(days=1))
        values.setdefault("subscription_synced_at", clock.now - timedelta(days=1))
        return store.add_tenant(tenant_id, **values)

    return _add
