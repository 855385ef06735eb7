from __future__ import annotations

from datetime import datetime
from typing import Protocol

from src.core.records import (
    BillingEvent,
    BillingEventRecord,
    SubscriptionUpdate,
    SubscriptionWrite,
    TenantRecord,
    VerificationRecord,
)


class StoreConflictError(RuntimeError):
    pass


class DomainConflictError(StoreConflictError):
    pass


class UsernameConflictError(StoreConflictError):
    pass


class BindingConflictError(StoreConflictError):
    pass


class TenantStore(Protocol):
    """Persistence used by the core services.

    Every method is one atomic unit of work; returned records are snapshots.
    """

    async def get_tenant(self, tenant_id: str) -> TenantRecord | None: ...

    async def get_tenant_by_username(self, username: str) -> TenantRecord | None: ...

    async def get_tenant_by_domain(self, domain: str) -> TenantRecord | None: ...

    async def get_tenant_by_customer_ref(self, customer_ref: str) -> TenantRecord | None: ...

    async def get_tenant_by_email(self, email: str) -> TenantRecord | None: ...

    async def set_username(self, tenant_id: str, username: str) -> TenantRecord | None: ...

    async def set_custom_domain(
        self,
        tenant_id: str,
        domain: str | None,
        verified_at: datetime | None,
    ) -> TenantRecord | None: ...

    async def delete_tenant(self, tenant_id: str) -> bool: ...

    async def has_billing_event(self, event_id: str) -> bool: ...

    async def apply_subscription(
        self,
        tenant_id: str,
        event: BillingEvent,
        update: SubscriptionUpdate | None,
        customer_ref: str | None = None,
    ) -> SubscriptionWrite | None: ...

    async def list_billing_events(self, tenant_id: str, limit: int = 50) -> list[BillingEventRecord]: ...

    async def get_active_verification(self, tenant_id: str) -> VerificationRecord | None: ...

    async def get_latest_verification(self, domain: str) -> VerificationRecord | None: ...

    async def create_verification(
        self,
        tenant_id: str,
        domain: str,
        requested_at: datetime,
    ) -> VerificationRecord: ...

    async def save_verification(self, record: VerificationRecord) -> VerificationRecord: ...

    async def list_pending_verifications(self, limit: int = 50) -> list[VerificationRecord]: ...
