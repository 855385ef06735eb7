from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from src.core.cache import CacheInvalidationCoordinator, InvalidationKey, tenant_keys
from src.core.domains import (
    is_valid_username,
    normalize_domain,
    normalize_username,
    validate_custom_domain,
)
from src.core.entitlements import is_record_entitled, utcnow
from src.core.records import TenantRecord
from src.core.results import ErrorCode, Outcome
from src.core.store import DomainConflictError, TenantStore, UsernameConflictError

logger = logging.getLogger(__name__)


class TenantDirectory:
    """Lookup of tenants by username or custom domain, and the domain binding itself.

    Mutations wait for cache invalidation before returning, so a caller that
    sees success never reads a stale resolution afterwards.
    """

    def __init__(
        self,
        store: TenantStore,
        invalidator: CacheInvalidationCoordinator,
        primary_domain: str,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.invalidator = invalidator
        self.primary_domain = primary_domain
        self._now = now

    async def get(self, tenant_id: str) -> TenantRecord | None:
        return await self.store.get_tenant(tenant_id)

    async def find_by_username(self, username: str) -> TenantRecord | None:
        if not is_valid_username(username):
            return None
        return await self.store.get_tenant_by_username(normalize_username(username))

    async def find_by_custom_domain(self, domain: str) -> TenantRecord | None:
        normalized = normalize_domain(domain)
        if not normalized:
            return None
        return await self.store.get_tenant_by_domain(normalized)

    async def is_username_available(self, username: str) -> bool:
        if not is_valid_username(username):
            return False
        return await self.store.get_tenant_by_username(normalize_username(username)) is None

    async def assign_username(self, tenant_id: str, username: str) -> Outcome[TenantRecord]:
        if not is_valid_username(username):
            return Outcome.failure(
                ErrorCode.INVALID_USERNAME,
                "Username must be 3-20 characters of letters, numbers, '_' or '-' and not reserved",
            )
        normalized = normalize_username(username)

        tenant = await self.store.get_tenant(tenant_id)
        if tenant is None:
            return Outcome.failure(ErrorCode.UNKNOWN_TENANT, "Tenant not found")
        if tenant.username == normalized:
            return Outcome.success(tenant)
        if tenant.username is not None:
            return Outcome.failure(ErrorCode.USERNAME_LOCKED, "Username can only be chosen once")

        try:
            updated = await self.store.set_username(tenant_id, normalized)
        except UsernameConflictError:
            return Outcome.failure(ErrorCode.USERNAME_TAKEN, "Username is already taken")
        if updated is None:
            return Outcome.failure(ErrorCode.UNKNOWN_TENANT, "Tenant not found")

        # The new name may sit in the cache as a negative entry.
        await self.invalidator.invalidate_tenant(updated)
        logger.info("Username %s assigned to tenant=%s", normalized, tenant_id)
        return Outcome.success(updated)

    async def bind_custom_domain(self, tenant_id: str, domain: str) -> Outcome[TenantRecord]:
        normalized = normalize_domain(domain)
        reason = validate_custom_domain(normalized, self.primary_domain)
        if reason is not None:
            return Outcome.failure(ErrorCode.INVALID_DOMAIN_FORMAT, reason)

        tenant = await self.store.get_tenant(tenant_id)
        if tenant is None:
            return Outcome.failure(ErrorCode.UNKNOWN_TENANT, "Tenant not found")
        if not is_record_entitled(tenant, self._now()):
            return Outcome.failure(
                ErrorCode.NOT_ENTITLED, "Custom domains require an active Pro subscription"
            )

        owner = await self.store.get_tenant_by_domain(normalized)
        if owner is not None and owner.id != tenant_id:
            return Outcome.failure(ErrorCode.DOMAIN_ALREADY_BOUND, "This domain is already in use")

        try:
            updated = await self.store.set_custom_domain(tenant_id, normalized, self._now())
        except DomainConflictError:
            return Outcome.failure(ErrorCode.DOMAIN_ALREADY_BOUND, "This domain is already in use")
        if updated is None:
            return Outcome.failure(ErrorCode.UNKNOWN_TENANT, "Tenant not found")

        extra = []
        if tenant.custom_domain and tenant.custom_domain != normalized:
            extra.append(InvalidationKey.domain(tenant.custom_domain))
        await self.invalidator.invalidate_tenant(updated, *extra)
        logger.info("Custom domain %s bound to tenant=%s", normalized, tenant_id)
        return Outcome.success(updated)

    async def unbind_custom_domain(self, tenant_id: str) -> Outcome[TenantRecord]:
        tenant = await self.store.get_tenant(tenant_id)
        if tenant is None:
            return Outcome.failure(ErrorCode.UNKNOWN_TENANT, "Tenant not found")
        if tenant.custom_domain is None:
            return Outcome.failure(ErrorCode.NOT_BOUND, "No custom domain is bound")

        updated = await self.store.set_custom_domain(tenant_id, None, None)
        if updated is None:
            return Outcome.failure(ErrorCode.UNKNOWN_TENANT, "Tenant not found")

        await self.invalidator.invalidate_tenant(updated, InvalidationKey.domain(tenant.custom_domain))
        logger.info("Custom domain %s unbound from tenant=%s", tenant.custom_domain, tenant_id)
        return Outcome.success(updated)

    async def delete_tenant(self, tenant_id: str) -> Outcome[TenantRecord]:
        tenant = await self.store.get_tenant(tenant_id)
        if tenant is None:
            return Outcome.failure(ErrorCode.UNKNOWN_TENANT, "Tenant not found")

        await self.store.delete_tenant(tenant_id)
        await self.invalidator.invalidate(*tenant_keys(tenant))
        logger.info("Tenant %s deleted", tenant_id)
        return Outcome.success(tenant)
