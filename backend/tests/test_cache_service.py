import asyncio
from datetime import date

from tripmerge.schemas.query import FlightQuery, Location, SearchOptions
from tripmerge.services.cache_service import MemoryCache, RedisCache, build_cache, query_cache_key


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_memory_cache_ttl():
    clock = FakeClock()
    cache = MemoryCache(clock=clock)

    async def run():
        await cache.set("k", {"a": 1}, ttl=60)
        assert await cache.get("k") == {"a": 1}
        clock.now += 61
        assert await cache.get("k") is None
        assert len(cache) == 0

    asyncio.run(run())


def test_memory_cache_returns_copies():
    cache = MemoryCache()

    async def run():
        await cache.set("k", [1, 2], ttl=60)
        first = await cache.get("k")
        first.append(3)
        assert await cache.get("k") == [1, 2]
        assert await cache.expire("k") is True
        assert await cache.expire("k") is False

    asyncio.run(run())


def test_query_cache_key_is_stable_and_ignores_use_cache():
    query = FlightQuery(
        origin=Location(name="New York", code="JFK"),
        destination=Location(name="London", code="LHR"),
        departure_date=date(2030, 1, 10),
    )
    a = query_cache_key("search:flight", query, SearchOptions())
    b = query_cache_key("search:flight", query, SearchOptions(use_cache=False))
    c = query_cache_key("search:flight", query, SearchOptions(max_results=5))

    assert a == b
    assert a != c
    assert a.startswith("search:flight:")


def test_build_cache():
    assert isinstance(build_cache("memory"), MemoryCache)
    assert isinstance(build_cache("redis"), RedisCache)
    assert isinstance(build_cache("bogus"), MemoryCache)


def test_redis_cache_degrades_to_miss_when_unreachable():
    cache = RedisCache(url="redis://127.0.0.1:1/0")

    async def run():
        assert await cache.get("k") is None
        assert await cache.set("k", 1, ttl=10) is False
        await cache.close()

    asyncio.run(run())
