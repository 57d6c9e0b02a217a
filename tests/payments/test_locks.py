import asyncio

import pytest

from application.ports.locks import KeyedLock
from application.utils.locks import InMemoryKeyedLock


@pytest.mark.asyncio
async def test_same_key_is_serialized():
    locks = InMemoryKeyedLock()
    active = 0
    peak = 0

    async def worker():
        nonlocal active, peak
        async with locks.hold("payment:1"):
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

    await asyncio.gather(*(worker() for _ in range(5)))
    assert peak == 1


@pytest.mark.asyncio
async def test_different_keys_run_concurrently():
    locks = InMemoryKeyedLock()
    inside = asyncio.Event()
    release = asyncio.Event()

    async def holder():
        async with locks.hold("payment:1"):
            inside.set()
            await release.wait()

    task = asyncio.create_task(holder())
    await inside.wait()
    async with locks.hold("payment:2"):
        pass
    release.set()
    await task


@pytest.mark.asyncio
async def test_idle_keys_are_dropped():
    locks = InMemoryKeyedLock()
    async with locks.hold("payment:1"):
        assert len(locks) == 1
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_lock_released_when_body_raises():
    locks = InMemoryKeyedLock()
    with pytest.raises(RuntimeError):
        async with locks.hold("payment:1"):
            raise RuntimeError("boom")
    async with locks.hold("payment:1"):
        pass
    assert len(locks) == 0


def test_in_memory_lock_satisfies_port():
    assert isinstance(InMemoryKeyedLock(), KeyedLock)


class FakeRedisLock:
    def __init__(self, client, name, acquired):
        self.client = client
        self.name = name
        self.acquired = acquired

    async def acquire(self):
        self.client.events.append(("acquire", self.name))
        return self.acquired

    async def release(self):
        self.client.events.append(("release", self.name))


class FakeRedis:
    def __init__(self, acquired=True):
        self.acquired = acquired
        self.events = []
        self.options = {}

    def lock(self, name, **options):
        self.options = options
        return FakeRedisLock(self, name, self.acquired)


@pytest.mark.asyncio
async def test_redis_lock_acquires_and_releases_namespaced_key():
    from infrastructure.locks.redis_lock import RedisKeyedLock

    client = FakeRedis()
    locks = RedisKeyedLock(client, namespace="shop", timeout=5, blocking_timeout=1)

    async with locks.hold("payment:7"):
        assert client.events == [("acquire", "shop:lock:payment:7")]

    assert client.events[-1] == ("release", "shop:lock:payment:7")
    assert client.options["timeout"] == 5
    assert client.options["blocking_timeout"] == 1
    assert isinstance(locks, KeyedLock)


@pytest.mark.asyncio
async def test_redis_lock_timeout_raises():
    from infrastructure.locks.redis_lock import RedisKeyedLock

    client = FakeRedis(acquired=False)
    with pytest.raises(TimeoutError):
        async with RedisKeyedLock(client).hold("payment:7"):
            pass
    assert client.events == [("acquire", "payments:lock:payment:7")]
