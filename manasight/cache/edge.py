"""
Edge KV tier: remote key/value store shared by every app instance.

Wire protocol (JSON over HTTP):
    GET    /values/{key}   200 -> entry object, 404 -> miss
    PUT    /values/{key}   body: entry object
    DELETE /values/{key}
    POST   /purge          body: {"tags": [...]} -> {"purged": n}

Every transport error, timeout or error status surfaces as
CacheUnavailableError; the coordinator degrades to the hot tier.
"""

import time
from collections.abc import Callable, Iterable
from typing import Any
from urllib.parse import quote

import httpx

from manasight.cache.tiers import (
    CacheEntry,
    CacheTier,
    CacheUnavailableError,
    TierStats,
    is_image_key,
)


class EdgeKVTier(CacheTier):
    """Remote cache tier backed by an HTTP key/value service."""

    name = "edge"

    def accepts(self, key: str) -> bool:
        return not is_image_key(key)

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 2.0,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
        )
        self._clock = clock
        self._stats = TierStats()

    @staticmethod
    def _path(key: str) -> str:
        return f"/values/{quote(key, safe='')}"

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            self._stats.errors += 1
            raise CacheUnavailableError(self.name, f"{method} {path}: {e!r}") from e

        if response.status_code >= 400 and response.status_code != 404:
            self._stats.errors += 1
            raise CacheUnavailableError(
                self.name, f"{method} {path} returned {response.status_code}"
            )
        return response

    async def get(self, key: str) -> CacheEntry | None:
        response = await self._request("GET", self._path(key))
        if response.status_code == 404:
            self._stats.misses += 1
            return None

        try:
            entry = CacheEntry.from_dict(response.json())
        except (ValueError, KeyError, TypeError) as e:
            self._stats.errors += 1
            raise CacheUnavailableError(self.name, f"malformed entry for {key}") from e

        if entry.key != key or entry.is_expired(self._clock()):
            self._stats.misses += 1
            return None
        self._stats.hits += 1
        return entry

    async def put(self, entry: CacheEntry) -> None:
        await self._request("PUT", self._path(entry.key), json=entry.to_dict())
        self._stats.writes += 1

    async def delete(self, key: str) -> None:
        await self._request("DELETE", self._path(key))

    async def purge_tags(self, tags: Iterable[str]) -> int:
        wanted = sorted(set(tags))
        if not wanted:
            return 0
        response = await self._request("POST", "/purge", json={"tags": wanted})
        try:
            return int(response.json().get("purged", 0))
        except (ValueError, AttributeError):
            return 0

    def stats(self) -> dict[str, Any]:
        return self._stats.as_dict()

    async def aclose(self) -> None:
        await self._client.aclose()
