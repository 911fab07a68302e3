import time
from collections.abc import Callable

import redis.asyncio as redis
from loguru import logger

from app.core.config import settings
from app.core.constants import MIN_CACHE_TTL_SECONDS
from app.models.game import CacheEntry, GameDetails
from app.services.detail_store import DetailStore


class DetailCache:
    """
    Two-tier TTL cache for work details: an in-process dict in front of the
    persistent DetailStore.

    The persistent tier is an optimization only. Read failures count as a
    miss and write failures are logged and dropped.
    """

    def __init__(
        self,
        store: DetailStore,
        ttl: float | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._clock = clock
        self._memory: dict[str, CacheEntry] = {}
        self._ttl = float(MIN_CACHE_TTL_SECONDS)
        self.set_ttl(settings.DETAILS_CACHE_TTL_SECONDS if ttl is None else ttl)

    @property
    def ttl(self) -> float:
        return self._ttl

    def set_ttl(self, seconds: float) -> float:
        """Change the TTL (minimum 60s). Resident entries are re-checked on their next read."""
        self._ttl = max(float(MIN_CACHE_TTL_SECONDS), float(seconds or 0))
        logger.info(f"Details cache TTL set to {self._ttl:.0f}s")
        return self._ttl

    def is_fresh(self, ts: float) -> bool:
        return self._clock() - ts < self._ttl

    async def read(self, game_id: str) -> GameDetails | None:
        entry = self._memory.get(game_id)
        if entry:
            if self.is_fresh(entry.ts):
                logger.debug(f"[{game_id}] memory cache hit")
                return entry.details
            del self._memory[game_id]

        try:
            stored = await self._store.get_detail(game_id)
        except (redis.RedisError, OSError) as e:
            logger.warning(f"[{game_id}] persistent cache read failed: {e}")
            return None

        if stored and self.is_fresh(stored.ts):
            logger.debug(f"[{game_id}] persistent cache hit")
            # Keep the stored timestamp so promotion never extends the entry's life
            self._memory[game_id] = stored
            return stored.details
        return None

    async def write(self, game_id: str, details: GameDetails) -> None:
        now = self._clock()
        self._memory[game_id] = CacheEntry(details=details, ts=now)
        try:
            await self._store.upsert_detail(game_id, details, now)
        except (redis.RedisError, OSError) as e:
            logger.warning(f"[{game_id}] persistent cache write failed: {e}")

    def memory_size(self) -> int:
        return len(self._memory)
