"""Unit tests for the read-through cache."""

import pytest
from libs.common.cache import ReadCache
from pydantic import BaseModel
from tests.stubs import FakeRedis


class Stats(BaseModel):
    total: int


class Loader:
    def __init__(self, value):
        self.value = value
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        return self.value


@pytest.mark.asyncio
@pytest.mark.unit
async def test_read_through_loads_once_then_serves_cache(read_cache, fake_redis):
    loader = Loader(Stats(total=3))

    first = await read_cache.read_through("stats:a", loader, Stats)
    second = await read_cache.read_through("stats:a", loader, Stats)

    assert first == second == Stats(total=3)
    assert loader.calls == 1
    assert "stats:a" in fake_redis.store


@pytest.mark.asyncio
@pytest.mark.unit
async def test_list_schemas_round_trip(read_cache):
    loader = Loader([Stats(total=1), Stats(total=2)])

    await read_cache.read_through("stats:list", loader, list[Stats])
    cached = await read_cache.read_through("stats:list", loader, list[Stats])

    assert cached == [Stats(total=1), Stats(total=2)]
    assert loader.calls == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_broken_redis_falls_back_to_loader():
    cache = ReadCache(client=FakeRedis(broken=True), enabled=True, default_ttl=60)
    loader = Loader(Stats(total=7))

    assert await cache.read_through("stats:a", loader, Stats) == Stats(total=7)
    assert await cache.read_through("stats:a", loader, Stats) == Stats(total=7)
    assert loader.calls == 2
    assert await cache.invalidate("stats:*") == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_disabled_cache_never_touches_redis():
    redis = FakeRedis()
    cache = ReadCache(client=redis, enabled=False)
    loader = Loader(Stats(total=1))

    await cache.read_through("stats:a", loader, Stats)
    await cache.read_through("stats:a", loader, Stats)

    assert loader.calls == 2
    assert redis.store == {}


@pytest.mark.asyncio
@pytest.mark.unit
async def test_invalidate_by_pattern_and_exact_key(read_cache, fake_redis):
    fake_redis.store.update(
        {
            "orders:user:u1:all:1:20": b"{}",
            "orders:user:u1:pending:1:20": b"{}",
            "orders:user:u2:all:1:20": b"{}",
            "orders:grouped:u1": b"[]",
        }
    )

    removed = await read_cache.invalidate("orders:user:u1:*", "orders:grouped:u1")

    assert removed == 3
    assert list(fake_redis.store) == ["orders:user:u2:all:1:20"]
