from __future__ import annotations

import asyncio
import json
import logging
import time
from collections import OrderedDict
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Literal, Protocol

import redis.asyncio as redis

from src.core.domains import normalize_domain, normalize_username
from src.core.records import HostClassification, TenantRecord

logger = logging.getLogger(__name__)

KeyKind = Literal["username", "domain", "tenant"]


@dataclass(slots=True, frozen=True)
class InvalidationKey:
    kind: KeyKind
    value: str

    @classmethod
    def username(cls, username: str) -> "InvalidationKey":
        return cls(kind="username", value=normalize_username(username))

    @classmethod
    def domain(cls, domain: str) -> "InvalidationKey":
        return cls(kind="domain", value=normalize_domain(domain))

    @classmethod
    def tenant(cls, tenant_id: str) -> "InvalidationKey":
        return cls(kind="tenant", value=tenant_id)

    def encode(self) -> str:
        return f"{self.kind}:{self.value}"

    @classmethod
    def decode(cls, raw: str) -> "InvalidationKey":
        kind, _, value = raw.partition(":")
        if kind not in ("username", "domain", "tenant") or not value:
            raise ValueError(f"Invalid invalidation key: {raw!r}")
        return cls(kind=kind, value=value)  # type: ignore[arg-type]


@dataclass(slots=True, frozen=True)
class HostCacheEntry:
    classification: HostClassification
    tenant: TenantRecord | None
    expires_at: float

    @property
    def found(self) -> bool:
        return self.tenant is not None


class ResolvedHostCache:
    """TTL-bounded host lookups, including negative entries.

    Every eviction bumps ``epoch``. A reader that captured the epoch before its
    directory query passes it back to ``put``; the write is dropped when an
    invalidation happened in between, so an in-flight lookup can never restore
    an entry that a mutation just removed.
    """

    def __init__(
        self,
        ttl_seconds: float,
        negative_ttl_seconds: float,
        max_entries: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.negative_ttl_seconds = negative_ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[InvalidationKey, HostCacheEntry] = OrderedDict()
        self._epoch = 0

    @property
    def epoch(self) -> int:
        return self._epoch

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: InvalidationKey) -> HostCacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            self._entries.pop(key, None)
            return None
        self._entries.move_to_end(key)
        return entry

    def put(
        self,
        key: InvalidationKey,
        classification: HostClassification,
        tenant: TenantRecord | None,
        *,
        epoch: int | None = None,
    ) -> bool:
        if epoch is not None and epoch != self._epoch:
            return False

        ttl = self.ttl_seconds if tenant is not None else self.negative_ttl_seconds
        if key not in self._entries and len(self._entries) >= self.max_entries:
            self._make_room()
        self._entries[key] = HostCacheEntry(
            classification=classification,
            tenant=tenant,
            expires_at=self._clock() + ttl,
        )
        self._entries.move_to_end(key)
        return True

    def invalidate(self, key: InvalidationKey) -> int:
        self._epoch += 1
        if key.kind == "tenant":
            stale = [
                cache_key
                for cache_key, entry in self._entries.items()
                if entry.tenant is not None and entry.tenant.id == key.value
            ]
        else:
            stale = [key] if key in self._entries else []
        for cache_key in stale:
            self._entries.pop(cache_key, None)
        return len(stale)

    def clear(self) -> None:
        self._epoch += 1
        self._entries.clear()

    def _make_room(self) -> None:
        now = self._clock()
        for cache_key in [k for k, entry in self._entries.items() if entry.expires_at <= now]:
            self._entries.pop(cache_key, None)
        while len(self._entries) >= self.max_entries:
            self._entries.popitem(last=False)


class PageCacheNotifier(Protocol):
    async def publish(self, keys: Sequence[InvalidationKey]) -> None: ...


class RedisPageCacheNotifier:
    """Drops rendered pages and tells peer processes which keys changed."""

    def __init__(
        self,
        redis_client: redis.Redis,
        *,
        channel: str,
        key_prefix: str,
        origin: str,
    ) -> None:
        self._redis = redis_client
        self.channel = channel
        self.key_prefix = key_prefix
        self.origin = origin

    def page_keys(self, keys: Sequence[InvalidationKey]) -> list[str]:
        page_keys: list[str] = []
        for key in keys:
            if key.kind == "username":
                page_keys.append(f"{self.key_prefix}:{key.value}")
            elif key.kind == "tenant":
                page_keys.append(f"{self.key_prefix}:tenant:{key.value}")
        return page_keys

    async def publish(self, keys: Sequence[InvalidationKey]) -> None:
        page_keys = self.page_keys(keys)
        if page_keys:
            await self._redis.delete(*page_keys)
        message = json.dumps({"origin": self.origin, "keys": [key.encode() for key in keys]})
        await self._redis.publish(self.channel, message)


class CacheInvalidationCoordinator:
    def __init__(
        self,
        cache: ResolvedHostCache,
        notifier: PageCacheNotifier | None = None,
    ) -> None:
        self.cache = cache
        self.notifier = notifier

    async def invalidate(self, *keys: InvalidationKey) -> None:
        """Evict locally, then wait for the page cache and peers to be told."""
        unique = list(dict.fromkeys(key for key in keys if key.value))
        if not unique:
            return
        for key in unique:
            self.cache.invalidate(key)
        logger.info("Invalidated cache keys %s", ", ".join(key.encode() for key in unique))
        if self.notifier is not None:
            await self.notifier.publish(unique)

    async def invalidate_domain(self, domain: str) -> None:
        await self.invalidate(InvalidationKey.domain(domain))

    async def invalidate_username(self, username: str) -> None:
        await self.invalidate(InvalidationKey.username(username))

    async def invalidate_tenant(self, tenant: TenantRecord, *extra: InvalidationKey) -> None:
        await self.invalidate(*tenant_keys(tenant), *extra)


def tenant_keys(tenant: TenantRecord) -> list[InvalidationKey]:
    keys = [InvalidationKey.tenant(tenant.id)]
    if tenant.custom_domain:
        keys.append(InvalidationKey.domain(tenant.custom_domain))
    if tenant.username:
        keys.append(InvalidationKey.username(tenant.username))
    return keys


class InvalidationListener:
    """Applies invalidations published by other processes to the local cache."""

    def __init__(
        self,
        redis_client: redis.Redis,
        cache: ResolvedHostCache,
        *,
        channel: str,
        origin: str,
        max_retry_delay_seconds: int = 60,
    ) -> None:
        self._redis = redis_client
        self.cache = cache
        self.channel = channel
        self.origin = origin
        self.max_retry_delay_seconds = max_retry_delay_seconds
        self._stop_event = asyncio.Event()

    def stop(self) -> None:
        self._stop_event.set()

    def handle_message(self, raw: str | bytes) -> int:
        try:
            body = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed invalidation message")
            return 0
        if not isinstance(body, dict) or body.get("origin") == self.origin:
            return 0

        evicted = 0
        for raw_key in body.get("keys") or []:
            try:
                key = InvalidationKey.decode(str(raw_key))
            except ValueError:
                logger.warning("Ignoring invalid invalidation key %r", raw_key)
                continue
            evicted += self.cache.invalidate(key)
        return evicted

    async def run(self) -> None:
        retry_delay = 1
        while not self._stop_event.is_set():
            pubsub = self._redis.pubsub()
            try:
                await pubsub.subscribe(self.channel)
                retry_delay = 1
                while not self._stop_event.is_set():
                    message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                    if message and message.get("type") == "message":
                        self.handle_message(message["data"])
            except asyncio.CancelledError:
                raise
            except Exception:  # pragma: no cover - operational path
                logger.exception("Invalidation listener failed; clearing local host cache")
                # Messages may have been missed while disconnected.
                self.cache.clear()
                await asyncio.sleep(retry_delay)
                retry_delay = min(retry_delay * 2, self.max_retry_delay_seconds)
            finally:
                await pubsub.aclose()
