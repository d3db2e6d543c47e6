"""
TokenRegistryCache: TTL, single-flight refresh, stale-serve and persistence.
"""

import asyncio

import pytest

from fakes import OTHER_TOKEN, PROPERTY, FakeRegistrySource, token_record
from yamview.tokens.cache import EMPTY_CACHE_ERROR, TokenRegistryCache
from yamview.tokens.models import CacheSnapshot, TokenMetadata
from yamview.tokens.store import SnapshotStore

T0 = 1_700_000_000.0
HOUR = 3600


class Clock:
    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def source():
    return FakeRegistrySource([token_record(PROPERTY)])


def test_lookup_refreshes_on_first_use(source, clock):
    cache = TokenRegistryCache(source, clock=clock)
    meta = asyncio.run(cache.lookup(PROPERTY.upper().replace("0X", "0x")))
    assert meta.short_name == "RealToken 42 Main St"
    assert source.calls == 1
    assert cache.snapshot.last_updated_ms == int(T0 * 1000)


def test_unknown_address_is_none(source, clock):
    cache = TokenRegistryCache(source, clock=clock)
    assert asyncio.run(cache.lookup(OTHER_TOKEN)) is None
    assert asyncio.run(cache.lookup("")) is None


def test_fresh_snapshot_is_not_refetched(source, clock):
    cache = TokenRegistryCache(source, clock=clock)

    async def run():
        await cache.lookup(PROPERTY)
        clock.now += 23 * HOUR
        await cache.lookup(PROPERTY)

    asyncio.run(run())
    assert source.calls == 1


def test_expired_snapshot_is_refetched(source, clock):
    cache = TokenRegistryCache(source, clock=clock)

    async def run():
        await cache.lookup(PROPERTY)
        clock.now += 25 * HOUR
        await cache.lookup(PROPERTY)

    asyncio.run(run())
    assert source.calls == 2


def test_concurrent_callers_share_one_refresh(source, clock):
    cache = TokenRegistryCache(source, clock=clock)

    async def run():
        source.gate = asyncio.Event()
        tasks = [asyncio.create_task(cache.ensure_fresh()) for _ in range(10)]
        await asyncio.sleep(0)
        source.gate.set()
        return await asyncio.gather(*tasks)

    snapshots = asyncio.run(run())
    assert source.calls == 1
    assert all(s is snapshots[0] for s in snapshots)
    assert cache.metrics()["coalesced"] == 9


def test_cancelled_caller_does_not_cancel_shared_refresh(source, clock):
    cache = TokenRegistryCache(source, clock=clock)

    async def run():
        source.gate = asyncio.Event()
        first = asyncio.create_task(cache.ensure_fresh())
        second = asyncio.create_task(cache.ensure_fresh())
        await asyncio.sleep(0)
        first.cancel()
        source.gate.set()
        return await second

    snapshot = asyncio.run(run())
    assert snapshot is not None
    assert len(snapshot) == 1


def test_stale_serve_keeps_values_and_timestamp(source, clock):
    cache = TokenRegistryCache(source, clock=clock)

    async def run():
        await cache.ensure_fresh()
        before = cache.snapshot
        source.error = "community API down"
        clock.now += 25 * HOUR
        meta = await cache.lookup(PROPERTY)
        return before, meta

    before, meta = asyncio.run(run())
    assert meta.price_usd == 50.0
    assert cache.snapshot is before
    assert cache.snapshot.last_updated_ms == int(T0 * 1000)
    assert "community API down" in cache.last_error
    assert source.calls == 2


def test_failed_refresh_waits_a_ttl_window(clock):
    source = FakeRegistrySource(error="down")
    cache = TokenRegistryCache(source, clock=clock)

    async def run():
        first = await cache.ensure_fresh()
        clock.now += HOUR
        second = await cache.ensure_fresh()
        return first, second

    assert asyncio.run(run()) == (None, None)
    assert source.calls == 1


def test_force_refresh_bypasses_ttl(source, clock):
    cache = TokenRegistryCache(source, clock=clock)

    async def run():
        await cache.ensure_fresh()
        clock.now += 60
        source.records.append(token_record(OTHER_TOKEN, short_name="RealToken 7 Oak Ave"))
        return await cache.force_refresh()

    snapshot = asyncio.run(run())
    assert source.calls == 2
    assert len(snapshot) == 2
    assert snapshot.last_updated_ms == int((T0 + 60) * 1000)


def test_record_without_snapshot_carries_error(clock):
    cache = TokenRegistryCache(FakeRegistrySource(error="down"), clock=clock)
    asyncio.run(cache.ensure_fresh())
    record = cache.record()
    assert record == {"lastUpdated": int(T0 * 1000), "tokens": {}, "error": EMPTY_CACHE_ERROR}


def test_persisted_snapshot_within_ttl_skips_upstream(tmp_path, source, clock):
    store = SnapshotStore(tmp_path / "tokens-cache.json")
    meta = TokenMetadata(address=OTHER_TOKEN, short_name="RealToken 7 Oak Ave")
    persisted = CacheSnapshot(int((T0 - HOUR) * 1000), {meta.key: meta})
    asyncio.run(store.save(persisted))

    cache = TokenRegistryCache(source, store=store, clock=clock)
    found = asyncio.run(cache.lookup(OTHER_TOKEN))
    assert found.short_name == "RealToken 7 Oak Ave"
    assert source.calls == 0


def test_expired_persisted_snapshot_is_refreshed_and_saved(tmp_path, source, clock):
    store = SnapshotStore(tmp_path / "tokens-cache.json")
    asyncio.run(store.save(CacheSnapshot(int((T0 - 30 * HOUR) * 1000), {})))

    cache = TokenRegistryCache(source, store=store, clock=clock)
    asyncio.run(cache.ensure_fresh())
    assert source.calls == 1
    reloaded = asyncio.run(store.load())
    assert reloaded.get(PROPERTY) is not None
    assert reloaded.last_updated_ms == int(T0 * 1000)


def test_last_updated_never_decreases(tmp_path, source, clock):
    store = SnapshotStore(tmp_path / "tokens-cache.json")
    future_ms = int((T0 + HOUR) * 1000)
    asyncio.run(store.save(CacheSnapshot(future_ms, {})))

    cache = TokenRegistryCache(source, store=store, clock=clock)
    snapshot = asyncio.run(cache.force_refresh())
    assert snapshot.last_updated_ms == future_ms


class _ReadOnlyStore:
    async def load(self):
        return None

    async def save(self, snapshot):
        raise PermissionError("read-only filesystem")


def test_persist_failure_still_serves_fresh_data(source, clock):
    cache = TokenRegistryCache(source, store=_ReadOnlyStore(), clock=clock)
    assert asyncio.run(cache.lookup(PROPERTY)) is not None
    assert cache.last_error is None


def test_instances_are_isolated(clock):
    a = TokenRegistryCache(FakeRegistrySource([token_record(PROPERTY)]), clock=clock)
    b = TokenRegistryCache(FakeRegistrySource([]), clock=clock)
    assert asyncio.run(a.lookup(PROPERTY)) is not None
    assert asyncio.run(b.lookup(PROPERTY)) is None
