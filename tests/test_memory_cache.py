import pytest

from conftest import FakeClock
from ticket_auth.infrastructure.cache.memory_cache import InMemoryCacheStore


@pytest.mark.asyncio
async def test_set_ex_expires():
    clock = FakeClock()
    cache = InMemoryCacheStore(clock=clock)
    await cache.set_ex("k", 120, "v")
    assert await cache.get("k") == "v"
    assert await cache.ttl("k") == 120

    clock.advance(120)
    assert await cache.get("k") is None
    assert await cache.ttl("k") == -2


@pytest.mark.asyncio
async def test_incr_with_ttl_keeps_first_window():
    clock = FakeClock()
    cache = InMemoryCacheStore(clock=clock)
    assert await cache.incr_with_ttl("rl", 100) == 1
    clock.advance(60)
    assert await cache.incr_with_ttl("rl", 100) == 2
    assert await cache.ttl("rl") == 40

    clock.advance(40)
    assert await cache.incr_with_ttl("rl", 100) == 1


@pytest.mark.asyncio
async def test_compare_and_delete_only_on_match():
    cache = InMemoryCacheStore()
    await cache.set_ex("otp", 60, "123456")
    assert await cache.compare_and_delete("otp", "000000") is False
    assert await cache.get("otp") == "123456"
    assert await cache.compare_and_delete("otp", "123456") is True
    assert await cache.compare_and_delete("otp", "123456") is False


@pytest.mark.asyncio
async def test_set_without_expiry_and_delete():
    cache = InMemoryCacheStore()
    await cache.set("k", "v")
    assert await cache.ttl("k") == -1
    assert await cache.delete("k") == 1
    assert await cache.delete("k") == 0
    assert await cache.ping() is True
