"""Tests for correlation-id de-duplication."""

import asyncio

from doradobet_agent.memory.dedup_cache import (
    KEY_PREFIX,
    InMemoryDedupCache,
    RedisDedupCache,
)


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class _FakeRedis:
    """Implements the ``SET NX EX`` subset used by the cache."""

    def __init__(self, fail: bool = False) -> None:
        self.keys = {}
        self.fail = fail
        self.closed = False

    async def set(self, key, value, ex=None, nx=False):
        if self.fail:
            raise ConnectionError("redis down")
        if nx and key in self.keys:
            return None
        self.keys[key] = (value, ex)
        return True

    async def aclose(self):
        self.closed = True


def test_in_memory_marks_and_expires() -> None:
    """Ids are duplicates within the TTL and fresh again after it."""

    clock = _Clock()
    cache = InMemoryDedupCache(ttl_seconds=300, clock=clock)

    assert asyncio.run(cache.check_and_mark("c1")) is False
    assert asyncio.run(cache.check_and_mark("c1")) is True
    assert asyncio.run(cache.check_and_mark("c2")) is False

    clock.now += 301
    assert asyncio.run(cache.check_and_mark("c1")) is False


def test_redis_set_nx() -> None:
    """The Redis cache uses a prefixed key with the TTL."""

    client = _FakeRedis()
    cache = RedisDedupCache(client, ttl_seconds=300)

    assert asyncio.run(cache.check_and_mark("c1")) is False
    assert asyncio.run(cache.check_and_mark("c1")) is True
    assert client.keys[KEY_PREFIX + "c1"] == ("1", 300)

    asyncio.run(cache.close())
    assert client.closed


def test_redis_fails_open() -> None:
    """Cache errors let the request through."""

    cache = RedisDedupCache(_FakeRedis(fail=True))
    assert asyncio.run(cache.check_and_mark("c1")) is False
    assert asyncio.run(cache.check_and_mark("c1")) is False
