from __future__ import annotations

import asyncio
import logging
import weakref
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from src.core.directory import TenantDirectory
from src.core.domains import normalize_domain, validate_custom_domain
from src.core.entitlements import EntitlementService, utcnow
from src.core.providers.base import ProviderError
from src.core.providers.edge import VercelEdgeClient
from src.core.records import BindingState, VerificationRecord
from src.core.results import ErrorCode, Outcome
from src.core.store import BindingConflictError, DomainConflictError, TenantStore

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class DomainStatus:
    tenant_id: str
    domain: str | None
    state: BindingState | None
    verified_at: datetime | None
    failure_reason: str | None
    entitled: bool
    serving: bool


class DomainBindingManager:
    """Add, verify and remove a tenant's custom domain.

    Attempts for one tenant run one at a time: a per-tenant lock inside the
    process, and a unique index on in-flight attempts across processes.
    """

    def __init__(
        self,
        store: TenantStore,
        directory: TenantDirectory,
        entitlements: EntitlementService,
        edge: VercelEdgeClient,
        primary_domain: str,
        verification_expiry: timedelta = timedelta(hours=72),
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.directory = directory
        self.entitlements = entitlements
        self.edge = edge
        self.primary_domain = primary_domain
        self.verification_expiry = verification_expiry
        self._now = now
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, tenant_id: str) -> asyncio.Lock:
        lock = self._locks.get(tenant_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[tenant_id] = lock
        return lock

    async def _transition(
        self,
        record: VerificationRecord,
        state: BindingState,
        *,
        reason: str | None = None,
    ) -> VerificationRecord:
        now = self._now()
        updated = replace(
            record,
            state=state,
            failure_reason=reason,
            completed_at=now if state.terminal else None,
        )
        saved = await self.store.save_verification(updated)
        logger.info(
            "Domain %s for tenant=%s: %s -> %s",
            record.domain,
            record.tenant_id,
            record.state.value,
            state.value,
        )
        return saved

    async def request_binding(self, tenant_id: str, domain: str) -> Outcome[VerificationRecord]:
        normalized = normalize_domain(domain)
        reason = validate_custom_domain(normalized, self.primary_domain)
        if reason is not None:
            return Outcome.failure(ErrorCode.INVALID_DOMAIN_FORMAT, reason)

        tenant = await self.directory.get(tenant_id)
        if tenant is None:
            return Outcome.failure(ErrorCode.UNKNOWN_TENANT, "Tenant not found")
        if not self.entitlements.is_record_entitled(tenant):
            return Outcome.failure(
                ErrorCode.NOT_ENTITLED, "Custom domains require an active Pro subscription"
            )

        async with self._lock_for(tenant_id):
            active = await self.store.get_active_verification(tenant_id)
            if active is not None:
                return Outcome.failure(
                    ErrorCode.BINDING_IN_PROGRESS,
                    f"Domain {active.domain} is still being verified",
                    value=active,
                )

            tenant = await self.directory.get(tenant_id)
            if tenant is None:
                return Outcome.failure(ErrorCode.UNKNOWN_TENANT, "Tenant not found")
            if tenant.custom_domain == normalized:
                latest = await self.store.get_latest_verification(normalized)
                if latest is not None and latest.tenant_id == tenant_id:
                    return Outcome.success(latest)
            if tenant.custom_domain is not None and tenant.custom_domain != normalized:
                return Outcome.failure(
                    ErrorCode.TENANT_HAS_DOMAIN,
                    f"Remove {tenant.custom_domain} before adding another domain",
                )

            owner = await self.directory.find_by_custom_domain(normalized)
            if owner is not None and owner.id != tenant_id:
                return Outcome.failure(ErrorCode.DOMAIN_ALREADY_BOUND, "This domain is already in use")
            claim = await self.store.get_latest_verification(normalized)
            if claim is not None and claim.state.in_flight and claim.tenant_id != tenant_id:
                return Outcome.failure(ErrorCode.DOMAIN_ALREADY_BOUND, "This domain is already in use")

            try:
                record = await self.store.create_verification(tenant_id, normalized, self._now())
            except BindingConflictError:
                return Outcome.failure(
                    ErrorCode.BINDING_IN_PROGRESS, "Another domain request is in progress"
                )
            except DomainConflictError:
                return Outcome.failure(ErrorCode.DOMAIN_ALREADY_BOUND, "This domain is already in use")

            record = await self._transition(record, BindingState.PROVIDER_REGISTERING)
            try:
                registration = await self.edge.register_domain(normalized)
            except ProviderError as exc:
                logger.warning(
                    "Edge registration failed for %s tenant=%s: %s", normalized, tenant_id, exc.message
                )
                record = await self._transition(
                    record, BindingState.FAILED, reason="Edge provider is unavailable"
                )
                return Outcome.failure(
                    ErrorCode.PROVIDER_UNAVAILABLE,
                    "Edge provider is unavailable, try again later",
                    value=record,
                )

            if not registration.accepted:
                record = await self._transition(record, BindingState.FAILED, reason=registration.reason)
                return Outcome.failure(ErrorCode.DOMAIN_REJECTED, registration.reason, value=record)

            record = await self._transition(record, BindingState.PENDING_VERIFICATION)
            return Outcome.success(record)

    async def check_verification(
        self,
        domain: str,
        tenant_id: str | None = None,
    ) -> Outcome[VerificationRecord]:
        normalized = normalize_domain(domain)
        record = await self.store.get_latest_verification(normalized)
        if record is None or (tenant_id is not None and record.tenant_id != tenant_id):
            return Outcome.failure(ErrorCode.UNKNOWN_BINDING, "No domain request found")

        async with self._lock_for(record.tenant_id):
            record = await self.store.get_latest_verification(normalized)
            if record is None or (tenant_id is not None and record.tenant_id != tenant_id):
                return Outcome.failure(ErrorCode.UNKNOWN_BINDING, "No domain request found")
            if record.state != BindingState.PENDING_VERIFICATION:
                return Outcome.success(record)

            try:
                status = await self.edge.get_domain_status(normalized)
            except ProviderError as exc:
                logger.warning("Verification check failed for %s: %s", normalized, exc.message)
                return Outcome.failure(
                    ErrorCode.PROVIDER_UNAVAILABLE,
                    "Edge provider is unavailable, try again later",
                    value=record,
                )

            record.last_checked_at = self._now()
            if not status.verified:
                record.failure_reason = status.reason
                return Outcome.success(await self.store.save_verification(record))

            bound = await self.directory.bind_custom_domain(record.tenant_id, normalized)
            if not bound.ok:
                if bound.error == ErrorCode.NOT_ENTITLED:
                    await self._deregister(normalized, record.tenant_id)
                record = await self._transition(record, BindingState.FAILED, reason=bound.detail)
                return Outcome.failure(bound.error, bound.detail, value=record)

            record = await self._transition(record, BindingState.VERIFIED)
            return Outcome.success(record)

    async def remove_binding(self, tenant_id: str) -> Outcome[str]:
        async with self._lock_for(tenant_id):
            tenant = await self.directory.get(tenant_id)
            if tenant is None:
                return Outcome.failure(ErrorCode.UNKNOWN_TENANT, "Tenant not found")

            active = await self.store.get_active_verification(tenant_id)
            domain = tenant.custom_domain or (active.domain if active is not None else None)
            if domain is None:
                return Outcome.failure(ErrorCode.NOT_BOUND, "No custom domain is bound")

            await self._deregister(domain, tenant_id)
            if active is not None:
                await self._transition(active, BindingState.FAILED, reason="Removed by tenant")
            if tenant.custom_domain is not None:
                unbound = await self.directory.unbind_custom_domain(tenant_id)
                if not unbound.ok and unbound.error != ErrorCode.NOT_BOUND:
                    return Outcome.failure(unbound.error, unbound.detail)
            return Outcome.success(domain)

    async def status(self, tenant_id: str) -> Outcome[DomainStatus]:
        tenant = await self.directory.get(tenant_id)
        if tenant is None:
            return Outcome.failure(ErrorCode.UNKNOWN_TENANT, "Tenant not found")

        record = await self.store.get_active_verification(tenant_id)
        if record is None and tenant.custom_domain:
            record = await self.store.get_latest_verification(tenant.custom_domain)
        entitled = self.entitlements.is_record_entitled(tenant)
        return Outcome.success(
            DomainStatus(
                tenant_id=tenant_id,
                domain=tenant.custom_domain or (record.domain if record else None),
                state=record.state if record else (BindingState.VERIFIED if tenant.custom_domain else None),
                verified_at=tenant.domain_verified_at,
                failure_reason=record.failure_reason if record else None,
                entitled=entitled,
                serving=tenant.custom_domain is not None and entitled,
            )
        )

    async def poll_pending(self, limit: int = 50) -> int:
        """Re-check pending attempts and fail those past the expiry window."""
        checked = 0
        now = self._now()
        for record in await self.store.list_pending_verifications(limit=limit):
            if now - record.requested_at > self.verification_expiry:
                await self._expire(record)
                continue
            result = await self.check_verification(record.domain, record.tenant_id)
            if result.error == ErrorCode.PROVIDER_UNAVAILABLE:
                logger.warning("Edge provider unavailable, stopping poll cycle")
                break
            checked += 1
        return checked

    async def _expire(self, record: VerificationRecord) -> None:
        async with self._lock_for(record.tenant_id):
            current = await self.store.get_active_verification(record.tenant_id)
            if current is None or current.id != record.id:
                return
            await self._deregister(current.domain, current.tenant_id)
            await self._transition(current, BindingState.FAILED, reason="Verification timed out")

    async def _deregister(self, domain: str, tenant_id: str) -> None:
        """Remove the domain from the edge project unless another tenant now holds it."""
        owner = await self.directory.find_by_custom_domain(domain)
        claim = await self.store.get_latest_verification(domain)
        if (owner is not None and owner.id != tenant_id) or (
            claim is not None and claim.state.in_flight and claim.tenant_id != tenant_id
        ):
            logger.info(
                "Skipping edge deregistration of %s for tenant=%s: held by another tenant", domain, tenant_id
            )
            return
        try:
            await self.edge.remove_domain(domain)
        except ProviderError as exc:
            logger.warning(
                "Edge deregistration failed for %s tenant=%s: %s", domain, tenant_id, exc.message
            )
