"""
Cache tiers.

Every tier implements the same async interface so the coordinator can walk
them in order. Entries are advisory: losing any of them only costs a
recomputation.

INVARIANTS:
- Writes replace the whole entry for a key (last writer wins)
- An expired entry is never returned
- Tag purges remove every entry carrying any of the tags
"""

import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from collections.abc import Callable, Iterable
from dataclasses import asdict, dataclass, field
from threading import Lock
from typing import Any


# Card art lives only in the blob tier
IMAGE_KEY_PREFIX = "image:"


def image_key(url: str) -> str:
    return f"{IMAGE_KEY_PREFIX}{url}"


def is_image_key(key: str) -> bool:
    return key.startswith(IMAGE_KEY_PREFIX)


class CacheUnavailableError(Exception):
    """
    A cache tier could not be reached or answered with an error.

    Internal only: the coordinator logs it and falls through to the next
    tier or to direct computation.
    """

    def __init__(self, tier: str, reason: str):
        self.tier = tier
        self.reason = reason
        super().__init__(f"{tier} cache unavailable: {reason}")


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """
    One cached value.

    Attributes:
        key: Cache key
        value: JSON-serialisable payload (bytes for image blobs)
        inserted_at: Epoch seconds when written
        ttl: Lifetime in seconds, None for no expiry
        tags: Invalidation tags
    """

    key: str
    value: Any
    inserted_at: float
    ttl: float | None = None
    tags: frozenset[str] = frozenset()

    def is_expired(self, now: float) -> bool:
        return self.ttl is not None and now >= self.inserted_at + self.ttl

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready form for remote tiers."""
        return {
            "key": self.key,
            "value": self.value,
            "inserted_at": self.inserted_at,
            "ttl": self.ttl,
            "tags": sorted(self.tags),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CacheEntry":
        return cls(
            key=str(data["key"]),
            value=data["value"],
            inserted_at=float(data["inserted_at"]),
            ttl=None if data.get("ttl") is None else float(data["ttl"]),
            tags=frozenset(data.get("tags", ())),
        )


@dataclass
class TierStats:
    """Hit/miss counters for one tier."""

    hits: int = 0
    misses: int = 0
    writes: int = 0
    errors: int = 0
    evictions: int = 0
    extra: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.update(data.pop("extra"))
        return data


class CacheTier(ABC):
    """Async key/value tier with optional tag purging."""

    name: str = "tier"
    supports_tags: bool = True

    def accepts(self, key: str) -> bool:
        """Whether this tier stores `key` at all."""
        return True

    @abstractmethod
    async def get(self, key: str) -> CacheEntry | None:
        """Return the live entry for `key`, or None."""

    @abstractmethod
    async def put(self, entry: CacheEntry) -> None:
        """Store `entry`, replacing any previous entry for its key."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove `key` if present."""

    @abstractmethod
    async def purge_tags(self, tags: Iterable[str]) -> int:
        """Remove every entry carrying any of `tags`. Returns the count removed."""

    @abstractmethod
    def stats(self) -> dict[str, Any]:
        """Counters for monitoring."""


class HotCache(CacheTier):
    """
    In-process LRU tier.

    Bounded by entry count; the least recently used entry is evicted first.
    The lock covers the recency bookkeeping and the replace-on-write, which
    are the only shared mutations.
    """

    name = "hot"

    def accepts(self, key: str) -> bool:
        return not is_image_key(key)

    def __init__(self, max_entries: int = 2048, clock: Callable[[], float] = time.time) -> None:
        if max_entries < 1:
            raise ValueError(f"max_entries must be positive, got {max_entries}")
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = Lock()
        self._stats = TierStats()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    async def get(self, key: str) -> CacheEntry | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats.misses += 1
                return None
            if entry.is_expired(now):
                del self._entries[key]
                self._stats.misses += 1
                return None
            self._entries.move_to_end(key)
            self._stats.hits += 1
            return entry

    async def put(self, entry: CacheEntry) -> None:
        with self._lock:
            self._entries[entry.key] = entry
            self._entries.move_to_end(entry.key)
            self._stats.writes += 1
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
                self._stats.evictions += 1

    async def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    async def purge_tags(self, tags: Iterable[str]) -> int:
        wanted = frozenset(tags)
        if not wanted:
            return 0
        with self._lock:
            doomed = [key for key, entry in self._entries.items() if entry.tags & wanted]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns the count removed."""
        now = self._clock()
        with self._lock:
            doomed = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict[str, Any]:
        data = self._stats.as_dict()
        data.update(size=len(self._entries), max_entries=self.max_entries)
        return data
