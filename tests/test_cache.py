from __future__ import annotations

import json
from unittest.mock import AsyncMock, Mock

import pytest

from src.core.cache import (
    CacheInvalidationCoordinator,
    InvalidationKey,
    InvalidationListener,
    RedisPageCacheNotifier,
    ResolvedHostCache,
    tenant_keys,
)
from src.core.records import HostClassification, TenantRecord


def _cache(clock) -> ResolvedHostCache:  # noqa: ANN001
    return ResolvedHostCache(ttl_seconds=300, negative_ttl_seconds=60, clock=clock)


def test_invalidation_key_encoding() -> None:
    key = InvalidationKey.domain("WWW.Bob.Dev")
    assert key.value == "bob.dev"
    assert InvalidationKey.decode(key.encode()) == key
    with pytest.raises(ValueError):
        InvalidationKey.decode("page:bob")


def test_negative_entries_expire_sooner(cache_clock) -> None:  # noqa: ANN001
    cache = _cache(cache_clock)
    tenant = TenantRecord(id="t1", email="t1@example.com")
    cache.put(InvalidationKey.domain("bob.dev"), HostClassification.CUSTOM, tenant)
    cache.put(InvalidationKey.domain("unknown.example"), HostClassification.CUSTOM, None)

    cache_clock.advance(61)
    assert cache.get(InvalidationKey.domain("unknown.example")) is None
    assert cache.get(InvalidationKey.domain("bob.dev")).tenant == tenant

    cache_clock.advance(240)
    assert cache.get(InvalidationKey.domain("bob.dev")) is None


def test_put_with_stale_epoch_is_dropped(cache_clock) -> None:  # noqa: ANN001
    cache = _cache(cache_clock)
    key = InvalidationKey.domain("bob.dev")
    epoch = cache.epoch
    cache.invalidate(key)

    stored = cache.put(key, HostClassification.CUSTOM, TenantRecord(id="t1", email="a@b.c"), epoch=epoch)
    assert stored is False
    assert cache.get(key) is None


def test_tenant_invalidation_evicts_every_entry_for_tenant(cache_clock) -> None:  # noqa: ANN001
    cache = _cache(cache_clock)
    tenant = TenantRecord(id="t1", email="t1@example.com", username="bob", custom_domain="bob.dev")
    cache.put(InvalidationKey.domain("bob.dev"), HostClassification.CUSTOM, tenant)
    cache.put(InvalidationKey.username("bob"), HostClassification.SUBDOMAIN, tenant)
    cache.put(InvalidationKey.domain("other.dev"), HostClassification.CUSTOM, None)

    assert cache.invalidate(InvalidationKey.tenant("t1")) == 2
    assert len(cache) == 1


def test_cache_evicts_oldest_when_full(cache_clock) -> None:  # noqa: ANN001
    cache = ResolvedHostCache(ttl_seconds=300, negative_ttl_seconds=60, max_entries=2, clock=cache_clock)
    for name in ("a.dev", "b.dev", "c.dev"):
        cache.put(InvalidationKey.domain(name), HostClassification.CUSTOM, None)

    assert len(cache) == 2
    assert cache.get(InvalidationKey.domain("a.dev")) is None


def test_cache_keeps_recently_read_entries_when_full(cache_clock) -> None:  # noqa: ANN001
    cache = ResolvedHostCache(ttl_seconds=300, negative_ttl_seconds=60, max_entries=2, clock=cache_clock)
    cache.put(InvalidationKey.domain("a.dev"), HostClassification.CUSTOM, None)
    cache.put(InvalidationKey.domain("b.dev"), HostClassification.CUSTOM, None)
    assert cache.get(InvalidationKey.domain("a.dev")) is not None

    cache.put(InvalidationKey.domain("c.dev"), HostClassification.CUSTOM, None)

    assert cache.get(InvalidationKey.domain("a.dev")) is not None
    assert cache.get(InvalidationKey.domain("b.dev")) is None
    assert cache.get(InvalidationKey.domain("c.dev")) is not None


def test_tenant_keys_cover_domain_and_username() -> None:
    tenant = TenantRecord(id="t1", email="t1@example.com", username="bob", custom_domain="bob.dev")
    assert [key.encode() for key in tenant_keys(tenant)] == ["tenant:t1", "domain:bob.dev", "username:bob"]


@pytest.mark.asyncio
async def test_coordinator_evicts_before_notifying(cache_clock, notifier) -> None:  # noqa: ANN001
    cache = _cache(cache_clock)
    key = InvalidationKey.domain("bob.dev")
    cache.put(key, HostClassification.CUSTOM, None)
    coordinator = CacheInvalidationCoordinator(cache, notifier)

    await coordinator.invalidate(key, key, InvalidationKey.username(""))

    assert cache.get(key) is None
    assert notifier.published == [[key]]


@pytest.mark.asyncio
async def test_redis_notifier_deletes_pages_and_publishes() -> None:
    redis_client = Mock()
    redis_client.delete = AsyncMock()
    redis_client.publish = AsyncMock()
    notifier = RedisPageCacheNotifier(
        redis_client, channel="cache:invalidate", key_prefix="render:pages", origin="proc-a"
    )

    await notifier.publish([InvalidationKey.username("Bob"), InvalidationKey.domain("bob.dev")])

    redis_client.delete.assert_awaited_once_with("render:pages:bob")
    channel, message = redis_client.publish.await_args.args
    assert channel == "cache:invalidate"
    assert json.loads(message) == {"origin": "proc-a", "keys": ["username:bob", "domain:bob.dev"]}


def test_listener_applies_peer_messages_only(cache_clock) -> None:  # noqa: ANN001
    cache = _cache(cache_clock)
    tenant = TenantRecord(id="t1", email="t1@example.com")
    cache.put(InvalidationKey.domain("bob.dev"), HostClassification.CUSTOM, tenant)
    listener = InvalidationListener(Mock(), cache, channel="cache:invalidate", origin="proc-a")

    own = json.dumps({"origin": "proc-a", "keys": ["domain:bob.dev"]})
    assert listener.handle_message(own) == 0
    assert listener.handle_message("not json") == 0

    peer = json.dumps({"origin": "proc-b", "keys": ["bogus", "domain:bob.dev"]})
    assert listener.handle_message(peer) == 1
    assert cache.get(InvalidationKey.domain("bob.dev")) is None
