from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

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
from src.core.repositories.billing_events import BillingEventRepository
from src.core.repositories.domain_verifications import DomainVerificationRepository
from src.core.repositories.tenants import TenantRepository
from src.core.store import BindingConflictError, DomainConflictError, UsernameConflictError
from src.models.billing_event import BillingEventEntry
from src.models.domain_verification import DomainVerification
from src.models.tenant import Tenant

logger = logging.getLogger(__name__)


def tenant_record(tenant: Tenant) -> TenantRecord:
    return TenantRecord(
        id=tenant.id,
        email=tenant.email,
        name=tenant.name,
        username=tenant.username,
        custom_domain=tenant.custom_domain,
        domain_verified_at=tenant.domain_verified_at,
        subscription_status=SubscriptionStatus.coerce(tenant.subscription_status),
        billing_customer_ref=tenant.billing_customer_ref,
        subscription_ref=tenant.subscription_ref,
        subscription_product_ref=tenant.subscription_product_ref,
        current_period_end=tenant.current_period_end,
        subscription_synced_at=tenant.subscription_synced_at,
    )


def verification_record(row: DomainVerification) -> VerificationRecord:
    return VerificationRecord(
        id=row.id,
        tenant_id=row.tenant_id,
        domain=row.domain,
        state=BindingState(row.state),
        requested_at=row.requested_at,
        last_checked_at=row.last_checked_at,
        completed_at=row.completed_at,
        failure_reason=row.failure_reason,
    )


def billing_event_record(row: BillingEventEntry) -> BillingEventRecord:
    return BillingEventRecord(
        event_id=row.event_id,
        tenant_id=row.tenant_id,
        event_type=row.event_type,
        source=row.source,
        subscription_status=row.subscription_status,
        occurred_at=row.occurred_at,
        created_at=row.created_at,
    )


def _conflicting_constraint(exc: IntegrityError) -> str:
    return str(getattr(exc, "orig", exc)).lower()


class SqlTenantStore:
    """PostgreSQL implementation of the core's ``TenantStore``."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def _get_tenant_where(self, lookup: str, value: str) -> TenantRecord | None:
        async with self._session_factory() as session:
            repo = TenantRepository(session)
            tenant = await getattr(repo, lookup)(value)
            return tenant_record(tenant) if tenant is not None else None

    async def get_tenant(self, tenant_id: str) -> TenantRecord | None:
        return await self._get_tenant_where("get", tenant_id)

    async def get_tenant_by_username(self, username: str) -> TenantRecord | None:
        return await self._get_tenant_where("get_by_username", username)

    async def get_tenant_by_domain(self, domain: str) -> TenantRecord | None:
        return await self._get_tenant_where("get_by_custom_domain", domain)

    async def get_tenant_by_customer_ref(self, customer_ref: str) -> TenantRecord | None:
        return await self._get_tenant_where("get_by_customer_ref", customer_ref)

    async def get_tenant_by_email(self, email: str) -> TenantRecord | None:
        return await self._get_tenant_where("get_by_email", email)

    async def set_username(self, tenant_id: str, username: str) -> TenantRecord | None:
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    tenant = await TenantRepository(session).update(tenant_id, username=username)
            except IntegrityError as exc:
                raise UsernameConflictError(username) from exc
            return tenant_record(tenant) if tenant is not None else None

    async def set_custom_domain(
        self,
        tenant_id: str,
        domain: str | None,
        verified_at: datetime | None,
    ) -> TenantRecord | None:
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    tenant = await TenantRepository(session).update(
                        tenant_id,
                        custom_domain=domain,
                        domain_verified_at=verified_at,
                    )
            except IntegrityError as exc:
                raise DomainConflictError(domain or "") from exc
            return tenant_record(tenant) if tenant is not None else None

    async def delete_tenant(self, tenant_id: str) -> bool:
        async with self._session_factory() as session:
            async with session.begin():
                return await TenantRepository(session).delete(tenant_id)

    async def has_billing_event(self, event_id: str) -> bool:
        async with self._session_factory() as session:
            return await BillingEventRepository(session).exists(event_id)

    async def apply_subscription(
        self,
        tenant_id: str,
        event: BillingEvent,
        update: SubscriptionUpdate | None,
        customer_ref: str | None = None,
    ) -> SubscriptionWrite | None:
        async with self._session_factory() as session:
            async with session.begin():
                tenant = await TenantRepository(session).get(tenant_id, for_update=True)
                if tenant is None:
                    return None
                before = tenant_record(tenant)

                recorded = await BillingEventRepository(session).record(
                    event_id=event.event_id,
                    tenant_id=tenant_id,
                    event_type=event.event_type,
                    source=event.source,
                    subscription_status=event.status.value if event.status else None,
                    payload=event.payload,
                    occurred_at=event.occurred_at,
                )
                if not recorded:
                    return SubscriptionWrite(recorded=False, before=before, after=before)

                if customer_ref and tenant.billing_customer_ref is None:
                    tenant.billing_customer_ref = customer_ref
                if update is not None and (
                    tenant.subscription_synced_at is None
                    or update.observed_at >= tenant.subscription_synced_at
                ):
                    tenant.subscription_status = update.status.value
                    tenant.current_period_end = update.current_period_end
                    tenant.subscription_product_ref = update.product_ref
                    tenant.subscription_ref = update.subscription_ref
                    tenant.subscription_synced_at = update.observed_at
                elif update is not None:
                    logger.info(
                        "Ignoring stale subscription update %s for tenant=%s", event.event_id, tenant_id
                    )
                await session.flush()
                after = tenant_record(tenant)
            return SubscriptionWrite(recorded=True, before=before, after=after)

    async def list_billing_events(self, tenant_id: str, limit: int = 50) -> list[BillingEventRecord]:
        async with self._session_factory() as session:
            rows = await BillingEventRepository(session).list_for_tenant(tenant_id, limit=limit)
            return [billing_event_record(row) for row in rows]

    async def get_active_verification(self, tenant_id: str) -> VerificationRecord | None:
        async with self._session_factory() as session:
            row = await DomainVerificationRepository(session).get_in_flight_for_tenant(tenant_id)
            return verification_record(row) if row is not None else None

    async def get_latest_verification(self, domain: str) -> VerificationRecord | None:
        async with self._session_factory() as session:
            row = await DomainVerificationRepository(session).get_latest_for_domain(domain)
            return verification_record(row) if row is not None else None

    async def create_verification(
        self,
        tenant_id: str,
        domain: str,
        requested_at: datetime,
    ) -> VerificationRecord:
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    row = await DomainVerificationRepository(session).create(
                        tenant_id=tenant_id,
                        domain=domain,
                        state=BindingState.REQUESTED.value,
                        requested_at=requested_at,
                    )
            except IntegrityError as exc:
                constraint = _conflicting_constraint(exc)
                if "uq_domain_verifications_tenant_in_flight" in constraint:
                    raise BindingConflictError(tenant_id) from exc
                if "uq_domain_verifications_domain_in_flight" in constraint:
                    raise DomainConflictError(domain) from exc
                raise
            return verification_record(row)

    async def save_verification(self, record: VerificationRecord) -> VerificationRecord:
        async with self._session_factory() as session:
            async with session.begin():
                row = await DomainVerificationRepository(session).update(
                    record.id,
                    state=record.state.value,
                    failure_reason=record.failure_reason,
                    last_checked_at=record.last_checked_at,
                    completed_at=record.completed_at,
                )
            if row is None:
                raise LookupError(f"Domain verification {record.id} no longer exists")
            return verification_record(row)

    async def list_pending_verifications(self, limit: int = 50) -> list[VerificationRecord]:
        async with self._session_factory() as session:
            rows = await DomainVerificationRepository(session).list_pending(limit=limit)
            return [verification_record(row) for row in rows]
