import asyncio
import time
from collections.abc import Callable
from datetime import datetime, timezone

import redis.asyncio as redis
from loguru import logger

from app.core.config import settings
from app.models.game import GCLogEntry, GCResult
from app.services.detail_cache import DetailCache
from app.services.detail_store import DetailStore


class CacheGarbageCollector:
    """
    Periodically removes persistent detail rows older than the cache TTL.

    Only the persistent tier is swept; memory entries expire lazily when read.
    Every sweep appends a GC log row, including sweeps that delete nothing.
    """

    def __init__(self, store: DetailStore, cache: DetailCache, clock: Callable[[], float] = time.time):
        self._store = store
        self._cache = cache
        self._clock = clock
        self._task: asyncio.Task | None = None
        self.interval: float | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, interval: float | None = None) -> bool:
        """Start the sweep loop. Returns False if it was already running."""
        if self.running:
            logger.debug("CacheGC already running, skipping start")
            return False
        self.interval = float(interval or settings.CACHE_GC_INTERVAL_SECONDS)
        self._task = asyncio.create_task(self._loop(self.interval), name="cache-gc")
        logger.info(f"CacheGC started with interval {self.interval:.0f}s")
        return True

    def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        self._task = None
        logger.info("CacheGC stopped")

    async def _loop(self, interval: float) -> None:
        # One sweep right away, then one per interval
        while True:
            try:
                await self.run_now()
            except Exception as e:
                logger.exception(f"CacheGC sweep failed: {e}")
            await asyncio.sleep(interval)

    async def run_now(self) -> GCResult:
        """Run one sweep and return what it deleted. Store errors propagate."""
        now = self._clock()
        cutoff = now - self._cache.ttl
        cutoff_iso = datetime.fromtimestamp(cutoff, tz=timezone.utc).isoformat()

        deleted = await self._store.delete_older_than(cutoff)
        if deleted:
            logger.info(f"CacheGC: deleted {deleted} cached details older than {cutoff_iso}")

        try:
            await self._store.append_gc_log(
                GCLogEntry(ts=datetime.fromtimestamp(now, tz=timezone.utc), deleted_count=deleted)
            )
        except (redis.RedisError, OSError) as e:
            logger.warning(f"CacheGC: failed to write GC log: {e}")

        return GCResult(deleted_count=deleted, cutoff=cutoff_iso)

    async def recent_logs(self, limit: int = 20) -> list[GCLogEntry]:
        return await self._store.recent_gc_logs(limit)
