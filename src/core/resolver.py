from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass

from src.core.cache import InvalidationKey, ResolvedHostCache
from src.core.directory import TenantDirectory
from src.core.domains import is_valid_username, normalize_domain, normalize_host, normalize_username
from src.core.entitlements import EntitlementService
from src.core.records import HostClassification, TenantRecord

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ResolvedHost:
    host: str
    classification: HostClassification
    tenant: TenantRecord | None = None

    @property
    def absent(self) -> bool:
        return self.classification != HostClassification.PRIMARY and self.tenant is None

    @property
    def tenant_id(self) -> str | None:
        return self.tenant.id if self.tenant is not None else None


class HostResolver:
    """Maps an inbound Host header to the tenant whose portfolio it serves.

    Read-only. A cache hit costs a dict lookup; a miss costs one directory
    query. Entitlement for custom domains is evaluated on every call against
    the cached snapshot, so a lapsed subscription stops serving as soon as its
    period ends even without any invalidation.
    """

    def __init__(
        self,
        primary_domain: str,
        directory: TenantDirectory,
        entitlements: EntitlementService,
        cache: ResolvedHostCache,
        dev_hosts: Iterable[str] = (),
    ) -> None:
        self.primary_domain = normalize_host(primary_domain)
        self.directory = directory
        self.entitlements = entitlements
        self.cache = cache
        self.dev_hosts = frozenset(normalize_host(host) for host in dev_hosts)

    def classify(self, host: str) -> HostClassification:
        if host in (self.primary_domain, f"www.{self.primary_domain}") or host in self.dev_hosts:
            return HostClassification.PRIMARY
        if host.endswith(f".{self.primary_domain}"):
            return HostClassification.SUBDOMAIN
        return HostClassification.CUSTOM

    def classify_raw(self, host: str | None) -> HostClassification:
        normalized = normalize_host(host)
        if not normalized:
            return HostClassification.CUSTOM
        return self.classify(normalized)

    async def resolve(self, host: str | None) -> ResolvedHost:
        normalized = normalize_host(host)
        if not normalized:
            return ResolvedHost(host="", classification=HostClassification.CUSTOM)

        classification = self.classify(normalized)
        if classification == HostClassification.PRIMARY:
            return ResolvedHost(host=normalized, classification=classification)

        if classification == HostClassification.SUBDOMAIN:
            label = normalized[: -len(f".{self.primary_domain}")]
            if "." in label or not is_valid_username(label):
                return ResolvedHost(host=normalized, classification=classification)
            tenant = await self._lookup(
                InvalidationKey.username(label),
                classification,
                lambda: self.directory.find_by_username(normalize_username(label)),
            )
            return ResolvedHost(host=normalized, classification=classification, tenant=tenant)

        domain = normalize_domain(normalized)
        tenant = await self._lookup(
            InvalidationKey.domain(domain),
            classification,
            lambda: self.directory.find_by_custom_domain(domain),
        )
        if tenant is None:
            return ResolvedHost(host=normalized, classification=classification)
        if not self.entitlements.is_record_entitled(tenant):
            logger.debug("Custom domain %s masked: tenant=%s not entitled", domain, tenant.id)
            return ResolvedHost(host=normalized, classification=classification)
        return ResolvedHost(host=normalized, classification=classification, tenant=tenant)

    async def _lookup(
        self,
        key: InvalidationKey,
        classification: HostClassification,
        query: Callable[[], Awaitable[TenantRecord | None]],
    ) -> TenantRecord | None:
        entry = self.cache.get(key)
        if entry is not None:
            return entry.tenant

        epoch = self.cache.epoch
        tenant = await query()
        self.cache.put(key, classification, tenant, epoch=epoch)
        return tenant
