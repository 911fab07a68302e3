import asyncio

from app.core.constants import MIN_CACHE_TTL_SECONDS
from app.models.game import CacheEntry
from app.services.detail_cache import DetailCache
from tests.conftest import make_details


class TestDetailCache:
    def test_read_after_write(self, store, clock):
        cache = DetailCache(store, ttl=3600, clock=clock)
        details = make_details("RJ1")

        async def scenario():
            await cache.write("RJ1", details)
            return await cache.read("RJ1")

        assert asyncio.run(scenario()) == details
        assert store.rows["RJ1"].ts == clock.now

    def test_miss(self, store, clock):
        cache = DetailCache(store, ttl=3600, clock=clock)
        assert asyncio.run(cache.read("RJ404")) is None

    def test_expired_entry_is_a_miss(self, store, clock):
        cache = DetailCache(store, ttl=3600, clock=clock)

        asyncio.run(cache.write("RJ1", make_details("RJ1")))
        clock.advance(3600)

        assert asyncio.run(cache.read("RJ1")) is None

    def test_expired_memory_entry_is_dropped_on_read(self, store, clock):
        cache = DetailCache(store, ttl=3600, clock=clock)

        asyncio.run(cache.write("RJ1", make_details("RJ1")))
        clock.advance(3600)
        asyncio.run(cache.read("RJ1"))

        assert cache.memory_size() == 0

    def test_persistent_hit_is_promoted_with_stored_timestamp(self, store, clock):
        cache = DetailCache(store, ttl=3600, clock=clock)
        details = make_details("RJ1")
        store.rows["RJ1"] = CacheEntry(details=details, ts=clock.now - 3000)

        assert asyncio.run(cache.read("RJ1")) == details
        assert cache.memory_size() == 1

        # Still expires relative to the first write
        del store.rows["RJ1"]
        clock.advance(601)
        assert asyncio.run(cache.read("RJ1")) is None

    def test_stale_persistent_row_is_a_miss(self, store, clock):
        cache = DetailCache(store, ttl=3600, clock=clock)
        store.rows["RJ1"] = CacheEntry(details=make_details("RJ1"), ts=clock.now - 4000)

        assert asyncio.run(cache.read("RJ1")) is None
        assert cache.memory_size() == 0

    def test_store_write_failure_keeps_memory_entry(self, store, clock):
        cache = DetailCache(store, ttl=3600, clock=clock)
        store.fail_writes = True
        details = make_details("RJ1")

        async def scenario():
            await cache.write("RJ1", details)
            return await cache.read("RJ1")

        assert asyncio.run(scenario()) == details
        assert store.rows == {}

    def test_store_read_failure_is_a_miss(self, store, clock):
        cache = DetailCache(store, ttl=3600, clock=clock)
        store.fail_reads = True

        assert asyncio.run(cache.read("RJ1")) is None

    def test_ttl_has_a_minimum(self, store, clock):
        cache = DetailCache(store, ttl=5, clock=clock)
        assert cache.ttl == MIN_CACHE_TTL_SECONDS
        assert cache.set_ttl(0) == MIN_CACHE_TTL_SECONDS
        assert cache.set_ttl(120) == 120

    def test_shorter_ttl_applies_to_resident_entries(self, store, clock):
        cache = DetailCache(store, ttl=3600, clock=clock)

        asyncio.run(cache.write("RJ1", make_details("RJ1")))
        clock.advance(300)
        assert asyncio.run(cache.read("RJ1")) is not None

        cache.set_ttl(120)
        assert asyncio.run(cache.read("RJ1")) is None
