from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import timedelta

import redis.asyncio as redis
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine

from src.core.binding import DomainBindingManager
from src.core.cache import (
    CacheInvalidationCoordinator,
    InvalidationListener,
    RedisPageCacheNotifier,
    ResolvedHostCache,
)
from src.core.config import Settings
from src.core.db import create_engine, create_session_factory
from src.core.directory import TenantDirectory
from src.core.entitlements import EntitlementService
from src.core.providers.billing import StripeBillingClient
from src.core.providers.edge import VercelEdgeClient
from src.core.repositories.store import SqlTenantStore
from src.core.resolver import HostResolver
from src.core.store import TenantStore


@dataclass(slots=True)
class CoreServices:
    store: TenantStore
    cache: ResolvedHostCache
    invalidator: CacheInvalidationCoordinator
    directory: TenantDirectory
    entitlements: EntitlementService
    bindings: DomainBindingManager
    resolver: HostResolver
    edge: VercelEdgeClient
    billing: StripeBillingClient
    listener: InvalidationListener | None = None
    engine: AsyncEngine | None = None
    redis_client: redis.Redis | None = None

    async def aclose(self) -> None:
        if self.listener is not None:
            self.listener.stop()
        if self.redis_client is not None:
            await self.redis_client.aclose()
        if self.engine is not None:
            await self.engine.dispose()


def assemble_services(
    settings: Settings,
    *,
    store: TenantStore,
    edge: VercelEdgeClient,
    billing: StripeBillingClient,
    cache: ResolvedHostCache | None = None,
    invalidator: CacheInvalidationCoordinator | None = None,
) -> CoreServices:
    """Wire the core components around an existing store and provider clients."""
    primary_domain = settings.normalized_primary_domain()
    cache = cache or ResolvedHostCache(
        ttl_seconds=settings.host_cache_ttl_seconds,
        negative_ttl_seconds=settings.host_cache_negative_ttl_seconds,
        max_entries=settings.host_cache_max_entries,
    )
    invalidator = invalidator or CacheInvalidationCoordinator(cache)
    entitlements = EntitlementService(store, billing, invalidator)
    directory = TenantDirectory(store, invalidator, primary_domain)
    bindings = DomainBindingManager(
        store,
        directory,
        entitlements,
        edge,
        primary_domain,
        verification_expiry=timedelta(hours=settings.domain_verification_expiry_hours),
    )
    resolver = HostResolver(
        primary_domain,
        directory,
        entitlements,
        cache,
        dev_hosts=settings.dev_hosts(),
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


def build_services(settings: Settings) -> CoreServices:
    """Production wiring: PostgreSQL store, Redis fan-out, Vercel and Stripe clients.

    Nothing connects here; connections open lazily on first use.
    """
    engine = create_engine(settings.database_url)
    redis_client = redis.from_url(settings.redis_url, decode_responses=True)
    origin = uuid.uuid4().hex

    cache = ResolvedHostCache(
        ttl_seconds=settings.host_cache_ttl_seconds,
        negative_ttl_seconds=settings.host_cache_negative_ttl_seconds,
        max_entries=settings.host_cache_max_entries,
    )
    notifier = RedisPageCacheNotifier(
        redis_client,
        channel=settings.cache_invalidation_channel,
        key_prefix=settings.render_cache_key_prefix,
        origin=origin,
    )
    services = assemble_services(
        settings,
        store=SqlTenantStore(create_session_factory(engine)),
        edge=VercelEdgeClient(
            api_token=settings.vercel_api_token,
            project_id=settings.vercel_project_id,
            team_id=settings.vercel_team_id,
            base_url=settings.vercel_api_base_url,
            timeout_seconds=settings.provider_timeout_seconds,
        ),
        billing=StripeBillingClient(
            secret_key=settings.stripe_secret_key,
            base_url=settings.stripe_api_base_url,
            timeout_seconds=settings.provider_timeout_seconds,
        ),
        cache=cache,
        invalidator=CacheInvalidationCoordinator(cache, notifier),
    )
    services.listener = InvalidationListener(
        redis_client,
        cache,
        channel=settings.cache_invalidation_channel,
        origin=origin,
    )
    services.engine = engine
    services.redis_client = redis_client
    return services


def get_services(request: Request) -> CoreServices:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("Core services are not initialised; the app has not started")
    return services
