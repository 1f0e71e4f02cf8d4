"""
Card art caching.

ImageBlobTier stores image bytes on disk, addressed by the sha256 of the
image URL. Card art never changes for a given URL, so blobs are never
invalidated by catalog writes.

ImagePreloader fetches art in the background so a card grid renders from
the blob tier instead of Scryfall. Preloading is best effort: no retries,
failures are logged and dropped.
"""

import asyncio
import hashlib
import logging
import os
import tempfile
from collections.abc import Iterable
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

import httpx

from manasight.cache.tiers import (
    IMAGE_KEY_PREFIX,
    CacheEntry,
    CacheTier,
    CacheUnavailableError,
    TierStats,
    image_key,
    is_image_key,
)
from manasight.models.card import CardIdentity
from manasight.parsers.scryfall import USER_AGENT

if TYPE_CHECKING:
    from manasight.cache.coordinator import CacheCoordinator

logger = logging.getLogger(__name__)


class ImageBlobTier(CacheTier):
    """Content-addressed file store for `image:` keys."""

    name = "images"
    supports_tags = False

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self._stats = TierStats()

    def accepts(self, key: str) -> bool:
        return is_image_key(key)

    def path_for(self, key: str) -> Path:
        digest = hashlib.sha256(key.removeprefix(IMAGE_KEY_PREFIX).encode("utf-8")).hexdigest()
        return self.root / digest[:2] / digest

    async def get(self, key: str) -> CacheEntry | None:
        path = self.path_for(key)
        try:
            data, inserted_at = await asyncio.to_thread(self._read, path)
        except FileNotFoundError:
            self._stats.misses += 1
            return None
        except OSError as e:
            self._stats.errors += 1
            raise CacheUnavailableError(self.name, f"read {path}: {e}") from e

        self._stats.hits += 1
        return CacheEntry(key=key, value=data, inserted_at=inserted_at)

    async def put(self, entry: CacheEntry) -> None:
        if not isinstance(entry.value, bytes):
            raise TypeError(f"Image blobs must be bytes, got {type(entry.value).__name__}")

        path = self.path_for(entry.key)
        try:
            await asyncio.to_thread(self._write, path, entry.value)
        except OSError as e:
            self._stats.errors += 1
            raise CacheUnavailableError(self.name, f"write {path}: {e}") from e
        self._stats.writes += 1

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(self.path_for(key).unlink, missing_ok=True)
        except OSError as e:
            raise CacheUnavailableError(self.name, f"delete {key}: {e}") from e

    @staticmethod
    def _read(path: Path) -> tuple[bytes, float]:
        return path.read_bytes(), path.stat().st_mtime

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        # Write then rename so readers never see a partial blob
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    async def purge_tags(self, tags: Iterable[str]) -> int:
        return 0

    def stats(self) -> dict[str, Any]:
        data = self._stats.as_dict()
        data["root"] = str(self.root)
        return data


class PreloadPriority(str, Enum):
    """When a preload fetch starts."""

    IMMEDIATE = "immediate"
    DEFERRED = "deferred"


class ImagePreloader:
    """
    Background image fetcher.

    Each URL becomes one asyncio task. Concurrency is bounded by a semaphore
    and each fetch by a timeout. Tasks are tracked so `drain()` can wait for
    them and `aclose()` can cancel them.
    """

    def __init__(
        self,
        coordinator: "CacheCoordinator",
        client: httpx.AsyncClient | None = None,
        concurrency: int = 4,
        timeout: float = 10.0,
        deferred_delay: float = 1.0,
        immediate_count: int = 8,
    ) -> None:
        self._coordinator = coordinator
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True,
        )
        self._semaphore = asyncio.Semaphore(concurrency)
        self._timeout = timeout
        self._deferred_delay = deferred_delay
        self.immediate_count = immediate_count
        self._tasks: dict[str, asyncio.Task[bool]] = {}
        self.completed = 0
        self.failed = 0

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def schedule(
        self,
        urls: Iterable[str],
        priority: PreloadPriority = PreloadPriority.DEFERRED,
    ) -> list[asyncio.Task[bool]]:
        """Start one fetch task per URL not already in flight."""
        started = []
        for url in urls:
            if not url or url in self._tasks:
                continue
            task = asyncio.create_task(self._preload(url, priority), name=f"preload:{url}")
            self._tasks[url] = task
            task.add_done_callback(lambda _t, url=url: self._tasks.pop(url, None))
            started.append(task)
        return started

    def preload_cards(self, cards: Iterable[CardIdentity]) -> list[asyncio.Task[bool]]:
        """
        Preload art for a result list.

        The first `immediate_count` cards (what a user sees first) start
        immediately; the rest are deferred.
        """
        urls = [card.image_url for card in cards if card.image_url]
        tasks = self.schedule(urls[: self.immediate_count], PreloadPriority.IMMEDIATE)
        tasks += self.schedule(urls[self.immediate_count :], PreloadPriority.DEFERRED)
        return tasks

    async def _preload(self, url: str, priority: PreloadPriority) -> bool:
        if priority == PreloadPriority.DEFERRED:
            await asyncio.sleep(self._deferred_delay)

        key = image_key(url)
        async with self._semaphore:
            try:
                if (await self._coordinator.get(key)).hit:
                    return True
                async with asyncio.timeout(self._timeout):
                    response = await self._client.get(url)
                    response.raise_for_status()
                await self._coordinator.put(key, response.content)
            except (httpx.HTTPError, TimeoutError, CacheUnavailableError) as e:
                self.failed += 1
                logger.warning(
                    "IMAGE_PRELOAD_FAILED",
                    extra={"url": url, "priority": priority.value, "error": repr(e)},
                )
                return False

        self.completed += 1
        return True

    async def drain(self) -> None:
        """Wait for every scheduled fetch to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel outstanding fetches and release the HTTP client."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        if self._owns_client:
            await self._client.aclose()

    def stats(self) -> dict[str, Any]:
        return {"pending": self.pending, "completed": self.completed, "failed": self.failed}
