"""Tests for the hot and edge cache tiers."""

import json

import httpx
import pytest
import respx

from manasight.cache.edge import EdgeKVTier
from manasight.cache.tiers import CacheEntry, CacheUnavailableError, HotCache, image_key

EDGE_URL = "https://edge.test"


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def entry(key: str, value: object = "v", ttl: float | None = None, tags=(), at: float = 1_000.0):
    return CacheEntry(key=key, value=value, inserted_at=at, ttl=ttl, tags=frozenset(tags))


class TestCacheEntry:
    def test_expiry(self) -> None:
        item = entry("k", ttl=10)

        assert not item.is_expired(1_009.9)
        assert item.is_expired(1_010.0)
        assert not entry("k", ttl=None).is_expired(10**12)

    def test_dict_form(self) -> None:
        item = entry("k", value=[1, 2], ttl=5, tags={"b", "a"})

        data = item.to_dict()

        assert data["tags"] == ["a", "b"]
        assert CacheEntry.from_dict(json.loads(json.dumps(data))) == item


class TestHotCache:
    async def test_put_and_get(self, clock: FakeClock) -> None:
        cache = HotCache(clock=clock)

        await cache.put(entry("k", value={"a": 1}))
        found = await cache.get("k")

        assert found is not None
        assert found.value == {"a": 1}

    async def test_miss(self, clock: FakeClock) -> None:
        assert await HotCache(clock=clock).get("missing") is None

    async def test_last_write_wins(self, clock: FakeClock) -> None:
        cache = HotCache(clock=clock)

        await cache.put(entry("k", value="old"))
        await cache.put(entry("k", value="new"))

        found = await cache.get("k")
        assert found is not None
        assert found.value == "new"
        assert len(cache) == 1

    async def test_evicts_least_recently_used(self, clock: FakeClock) -> None:
        cache = HotCache(max_entries=2, clock=clock)
        await cache.put(entry("a"))
        await cache.put(entry("b"))

        await cache.get("a")
        await cache.put(entry("c"))

        assert "a" in cache
        assert "b" not in cache
        assert cache.stats()["evictions"] == 1

    async def test_expired_entry_not_returned(self, clock: FakeClock) -> None:
        cache = HotCache(clock=clock)
        await cache.put(entry("k", ttl=60))

        clock.advance(61)

        assert await cache.get("k") is None
        assert "k" not in cache

    async def test_purge_expired(self, clock: FakeClock) -> None:
        cache = HotCache(clock=clock)
        await cache.put(entry("short", ttl=10))
        await cache.put(entry("long", ttl=1_000))
        await cache.put(entry("forever"))

        clock.advance(100)

        assert cache.purge_expired() == 1
        assert len(cache) == 2

    async def test_purge_tags(self, clock: FakeClock) -> None:
        cache = HotCache(clock=clock)
        await cache.put(entry("a", tags={"card-1", "card-search"}))
        await cache.put(entry("b", tags={"card-2"}))
        await cache.put(entry("c", tags={"card-3"}))

        purged = await cache.purge_tags(["card-1", "card-2"])

        assert purged == 2
        assert "c" in cache
        assert await cache.purge_tags([]) == 0

    async def test_delete(self, clock: FakeClock) -> None:
        cache = HotCache(clock=clock)
        await cache.put(entry("k"))

        await cache.delete("k")
        await cache.delete("never-there")

        assert "k" not in cache

    async def test_stats(self, clock: FakeClock) -> None:
        cache = HotCache(max_entries=10, clock=clock)
        await cache.put(entry("k"))
        await cache.get("k")
        await cache.get("missing")

        stats = cache.stats()

        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["writes"] == 1
        assert stats["size"] == 1
        assert stats["max_entries"] == 10

    def test_rejects_image_keys(self) -> None:
        cache = HotCache()

        assert cache.accepts("search:bolt:none")
        assert not cache.accepts(image_key("https://img.test/a.jpg"))

    def test_invalid_size(self) -> None:
        with pytest.raises(ValueError):
            HotCache(max_entries=0)


@pytest.fixture
def edge_mock():
    with respx.mock(base_url=EDGE_URL, assert_all_called=False) as mock:
        yield mock


@pytest.fixture
async def edge(clock: FakeClock):
    tier = EdgeKVTier(EDGE_URL, token="secret", clock=clock)
    yield tier
    await tier.aclose()


class TestEdgeKVTier:
    async def test_get_hit(self, edge: EdgeKVTier, edge_mock: respx.MockRouter) -> None:
        route = edge_mock.get("/values/search-bolt").mock(
            return_value=httpx.Response(200, json=entry("search-bolt", value=["oracle-bolt"]).to_dict())
        )

        found = await edge.get("search-bolt")

        assert found is not None
        assert found.value == ["oracle-bolt"]
        assert route.calls.last.request.headers["Authorization"] == "Bearer secret"
        assert edge.stats()["hits"] == 1

    async def test_not_found_is_miss(self, edge: EdgeKVTier, edge_mock: respx.MockRouter) -> None:
        edge_mock.get("/values/missing").mock(return_value=httpx.Response(404))

        assert await edge.get("missing") is None
        assert edge.stats()["misses"] == 1

    async def test_expired_is_miss(
        self, edge: EdgeKVTier, edge_mock: respx.MockRouter, clock: FakeClock
    ) -> None:
        edge_mock.get("/values/k").mock(
            return_value=httpx.Response(200, json=entry("k", ttl=10).to_dict())
        )
        clock.advance(11)

        assert await edge.get("k") is None

    async def test_server_error_raises(self, edge: EdgeKVTier, edge_mock: respx.MockRouter) -> None:
        edge_mock.get("/values/k").mock(return_value=httpx.Response(500))

        with pytest.raises(CacheUnavailableError) as exc_info:
            await edge.get("k")

        assert exc_info.value.tier == "edge"
        assert edge.stats()["errors"] == 1

    async def test_transport_error_raises(
        self, edge: EdgeKVTier, edge_mock: respx.MockRouter
    ) -> None:
        edge_mock.get("/values/k").mock(side_effect=httpx.ConnectTimeout("timed out"))

        with pytest.raises(CacheUnavailableError):
            await edge.get("k")

    async def test_malformed_entry_raises(
        self, edge: EdgeKVTier, edge_mock: respx.MockRouter
    ) -> None:
        edge_mock.get("/values/k").mock(return_value=httpx.Response(200, json={"nope": True}))

        with pytest.raises(CacheUnavailableError):
            await edge.get("k")

    async def test_put_sends_entry(self, edge: EdgeKVTier, edge_mock: respx.MockRouter) -> None:
        route = edge_mock.put("/values/k").mock(return_value=httpx.Response(204))

        await edge.put(entry("k", value={"x": 1}, ttl=30, tags={"card-search"}))

        body = json.loads(route.calls.last.request.content)
        assert body["value"] == {"x": 1}
        assert body["ttl"] == 30
        assert body["tags"] == ["card-search"]

    async def test_delete(self, edge: EdgeKVTier, edge_mock: respx.MockRouter) -> None:
        route = edge_mock.delete("/values/k").mock(return_value=httpx.Response(204))

        await edge.delete("k")

        assert route.called

    async def test_purge_tags(self, edge: EdgeKVTier, edge_mock: respx.MockRouter) -> None:
        route = edge_mock.post("/purge").mock(return_value=httpx.Response(200, json={"purged": 3}))

        purged = await edge.purge_tags(["card-search", "card-1", "card-search"])

        assert purged == 3
        assert json.loads(route.calls.last.request.content) == {"tags": ["card-1", "card-search"]}

    async def test_purge_nothing_skips_request(
        self, edge: EdgeKVTier, edge_mock: respx.MockRouter
    ) -> None:
        route = edge_mock.post("/purge")

        assert await edge.purge_tags([]) == 0
        assert not route.called
