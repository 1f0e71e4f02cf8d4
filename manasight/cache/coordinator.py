"""
Cache Coordinator: read-through over an ordered chain of tiers.

Lookup walks the tiers fastest first. A hit back-fills every faster tier
that missed, so the next read is served closer to the caller. A tier that
raises CacheUnavailableError is logged and skipped; the coordinator never
lets a cache failure reach a request.

INVARIANTS:
- Cached and uncached paths return identical values
- A disabled coordinator always misses and never writes
- Invalidation reaches every tier, including tiers that missed on read
"""

import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from manasight.cache.edge import EdgeKVTier
from manasight.cache.images import ImageBlobTier
from manasight.cache.tiers import CacheEntry, CacheTier, CacheUnavailableError, HotCache
from manasight.config import Settings

logger = logging.getLogger(__name__)

# Invalidation tags
TAG_SEARCH = "card-search"
TAG_RECOMMENDATIONS = "card-recommendations"
TAG_PRICE_FILTERED = "price-filtered"


def card_tag(identity_key: str) -> str:
    """Tag attached to every entry that depends on one card."""
    return f"card-{identity_key}"


@dataclass(frozen=True, slots=True)
class CacheLookup:
    """Outcome of a coordinator read. `tier` names the tier that answered."""

    hit: bool
    value: Any = None
    tier: str | None = None


MISS = CacheLookup(hit=False)


class CacheCoordinator:
    """
    Walks cache tiers in order and keeps them consistent.

    Usage:
        coordinator = CacheCoordinator([HotCache(), EdgeKVTier(url)])
        lookup = await coordinator.get("recs:synergy:abc:none")
        value = await coordinator.get_or_compute(key, compute, ttl=3600, tags={"card-search"})
    """

    def __init__(
        self,
        tiers: Sequence[CacheTier],
        enabled: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._tiers = tuple(tiers)
        self.enabled = enabled
        self._clock = clock
        self._hits = 0
        self._misses = 0

    @property
    def tiers(self) -> tuple[CacheTier, ...]:
        return self._tiers

    def tier(self, name: str) -> CacheTier | None:
        return next((t for t in self._tiers if t.name == name), None)

    def _tier_failed(self, error: CacheUnavailableError, operation: str, key: str) -> None:
        logger.warning(
            "CACHE_TIER_UNAVAILABLE",
            extra={"tier": error.tier, "operation": operation, "key": key, "reason": error.reason},
        )

    async def get(self, key: str) -> CacheLookup:
        """Read `key` from the first tier holding it, back-filling faster tiers."""
        if not self.enabled:
            return MISS

        missed: list[CacheTier] = []
        for tier in self._tiers:
            if not tier.accepts(key):
                continue
            try:
                entry = await tier.get(key)
            except CacheUnavailableError as e:
                self._tier_failed(e, "get", key)
                continue
            if entry is None:
                missed.append(tier)
                continue

            await self._backfill(missed, entry)
            self._hits += 1
            return CacheLookup(hit=True, value=entry.value, tier=tier.name)

        self._misses += 1
        return MISS

    async def _backfill(self, tiers: Iterable[CacheTier], entry: CacheEntry) -> None:
        for tier in tiers:
            try:
                await tier.put(entry)
            except CacheUnavailableError as e:
                self._tier_failed(e, "backfill", entry.key)

    async def put(
        self,
        key: str,
        value: Any,
        ttl: float | None = None,
        tags: Iterable[str] = (),
    ) -> None:
        """Write `value` to every tier that accepts `key`."""
        if not self.enabled:
            return

        entry = CacheEntry(
            key=key,
            value=value,
            inserted_at=self._clock(),
            ttl=ttl,
            tags=frozenset(tags),
        )
        for tier in self._tiers:
            if not tier.accepts(key):
                continue
            try:
                await tier.put(entry)
            except CacheUnavailableError as e:
                self._tier_failed(e, "put", key)

    async def put_if_current(
        self,
        key: str,
        value: Any,
        still_current: Callable[[], bool],
        ttl: float | None = None,
        tags: Iterable[str] = (),
    ) -> bool:
        """
        Write `value`, then drop it again if it went stale meanwhile.

        `still_current` is checked once every tier has been written. An
        invalidation that ran while a slow tier was still storing the entry
        cannot have reached it, so a stale value is removed here instead.

        Returns:
            True if the entry was kept
        """
        await self.put(key, value, ttl=ttl, tags=tags)
        if still_current():
            return True

        logger.info("CACHE_WRITE_DISCARDED", extra={"key": key})
        await self.invalidate(key)
        return False

    async def invalidate(self, tag_or_key: str) -> int:
        """Drop a key, and every entry tagged with it, from every tier."""
        return await self.invalidate_many([tag_or_key])

    async def invalidate_many(self, tags_or_keys: Iterable[str]) -> int:
        """
        Drop keys and tagged entries from every tier.

        Returns the number of tagged entries purged (tiers without tag
        support contribute 0).
        """
        items = sorted(set(tags_or_keys))
        if not items:
            return 0

        purged = 0
        for tier in self._tiers:
            try:
                for item in items:
                    if tier.accepts(item):
                        await tier.delete(item)
                if tier.supports_tags:
                    purged += await tier.purge_tags(items)
            except CacheUnavailableError as e:
                self._tier_failed(e, "invalidate", ",".join(items))

        logger.info("CACHE_INVALIDATED", extra={"tags": items, "purged": purged})
        return purged

    async def get_or_compute(
        self,
        key: str,
        compute: Callable[[], Awaitable[Any]],
        ttl: float | None = None,
        tags: Iterable[str] = (),
    ) -> Any:
        """
        Return the cached value for `key`, computing and storing it on a miss.

        Every tier is populated before the computed value is returned.
        """
        lookup = await self.get(key)
        if lookup.hit:
            return lookup.value

        value = await compute()
        await self.put(key, value, ttl=ttl, tags=tags)
        return value

    def purge_expired(self) -> int:
        """Drop expired entries from in-process tiers."""
        removed = 0
        for tier in self._tiers:
            if isinstance(tier, HotCache):
                removed += tier.purge_expired()
        return removed

    def stats(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "hits": self._hits,
            "misses": self._misses,
            "tiers": {tier.name: tier.stats() for tier in self._tiers},
        }

    async def aclose(self) -> None:
        for tier in self._tiers:
            if isinstance(tier, EdgeKVTier):
                await tier.aclose()


def build_tiers(settings: Settings) -> list[CacheTier]:
    """Tier chain for the configured environment: hot, then edge, then images."""
    tiers: list[CacheTier] = [HotCache(max_entries=settings.hot_cache_max_entries)]
    if settings.edge_kv_url:
        tiers.append(
            EdgeKVTier(
                settings.edge_kv_url,
                token=settings.edge_kv_token,
                timeout=settings.edge_kv_timeout,
            )
        )
    tiers.append(ImageBlobTier(settings.image_cache_dir))
    return tiers


def build_cache_coordinator(settings: Settings) -> CacheCoordinator:
    return CacheCoordinator(build_tiers(settings), enabled=settings.cache_enabled)
