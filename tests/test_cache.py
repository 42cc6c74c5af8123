"""Tests for the TTL cache backends."""

import pytest

from property_finder.storage.cache import MemoryCache, SQLiteCache


@pytest.fixture(params=["memory", "sqlite"])
def store(request, clock):
    if request.param == "memory":
        yield MemoryCache(clock=clock)
    else:
        cache = SQLiteCache(":memory:", clock=clock)
        yield cache
        cache.close()


async def test_get_returns_value_before_expiry(store, clock):
    await store.set("k", {"a": 1}, ttl_ms=1000)
    clock.advance(999)
    assert await store.get("k") == {"a": 1}


async def test_get_misses_at_expiry(store, clock):
    await store.set("k", [1, 2], ttl_ms=1000)
    clock.advance(1000)
    assert await store.get("k") is None


async def test_get_missing_key(store):
    assert await store.get("nope") is None


async def test_get_or_set_fetches_once(store):
    calls = []

    async def fetcher():
        calls.append(1)
        return {"minutes": 12}

    assert await store.get_or_set("k", fetcher, 1000) == {"minutes": 12}
    assert await store.get_or_set("k", fetcher, 1000) == {"minutes": 12}
    assert len(calls) == 1


@pytest.mark.parametrize("empty", [None, [], {}])
async def test_get_or_set_does_not_cache_empty_results(store, empty):
    calls = []

    async def fetcher():
        calls.append(1)
        return empty

    assert await store.get_or_set("k", fetcher, 1000) == empty
    assert await store.get_or_set("k", fetcher, 1000) == empty
    assert len(calls) == 2


async def test_get_or_set_caches_zero(store):
    async def fetcher():
        return 0

    await store.get_or_set("k", fetcher, 1000)
    assert await store.get("k") == 0


async def test_cleanup_removes_only_expired(store, clock):
    await store.set("old", 1, ttl_ms=100)
    await store.set("new", 2, ttl_ms=10_000)
    clock.advance(500)

    assert await store.cleanup() == 1
    assert await store.get("new") == 2
    assert await store.cleanup() == 0


async def test_memory_cache_evicts_corrupt_entry(clock):
    cache = MemoryCache(clock=clock)
    cache._items["k"] = ("{not json", clock() + 1000)

    assert await cache.get("k") is None
    assert len(cache) == 0


async def test_sqlite_cache_evicts_corrupt_entry(clock):
    with SQLiteCache(":memory:", clock=clock) as cache:
        cache.conn.execute(
            "INSERT INTO cache (key, value, expiry) VALUES (?, ?, ?)",
            ("k", "{not json", clock() + 1000),
        )
        assert await cache.get("k") is None
        row = cache.conn.execute("SELECT COUNT(*) FROM cache").fetchone()
        assert row[0] == 0


async def test_sqlite_cache_persists_to_file(tmp_path, clock):
    path = tmp_path / "nested" / "cache.db"
    with SQLiteCache(path, clock=clock) as cache:
        await cache.set("k", "v", 1000)
    with SQLiteCache(path, clock=clock) as cache:
        assert await cache.get("k") == "v"
