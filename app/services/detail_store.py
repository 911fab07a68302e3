import json
from datetime import datetime, timezone
from typing import Any

import redis.asyncio as redis
from loguru import logger
from redis.exceptions import WatchError

from app.core.config import settings
from app.core.constants import DETAIL_INDEX_KEY, DETAIL_KEY, GC_LOG_KEY, SETTINGS_KEY
from app.models.game import CacheEntry, GameDetails, GCLogEntry


class DetailStore:
    """Redis-backed persistent tier for work details, the GC audit log and runtime settings.

    Every detail is stored twice: as a JSON document under its own key and as
    a member of a sorted set scored by write time, so expired rows can be
    found with one range query.
    """

    def __init__(
        self,
        redis_url: str | None = None,
        key_prefix: str | None = None,
        client: redis.Redis | None = None,
    ) -> None:
        self._redis_url = redis_url or settings.REDIS_URL
        self._prefix = settings.REDIS_KEY_PREFIX if key_prefix is None else key_prefix
        self._client: redis.Redis | None = client
        if not self._redis_url:
            logger.warning("REDIS_URL is not set. Persistent cache operations will fail until configured.")

    async def _get_client(self) -> redis.Redis:
        if self._client is None:
            logger.info("Creating Redis client for DetailStore")
            self._client = redis.from_url(
                self._redis_url,
                decode_responses=True,
                encoding="utf-8",
                socket_connect_timeout=5,
                socket_timeout=5,
                max_connections=settings.REDIS_MAX_CONNECTIONS,
                health_check_interval=30,
                socket_keepalive=True,
            )
        return self._client

    async def close(self) -> None:
        """Close and disconnect the Redis client"""
        if self._client is not None:
            try:
                await self._client.aclose()
                logger.info("DetailStore client closed")
            except (redis.RedisError, OSError) as exc:
                logger.warning(f"Failed to close DetailStore client: {exc}")
            finally:
                self._client = None

    def _key(self, name: str) -> str:
        return f"{self._prefix}{name}"

    def _detail_key(self, game_id: str) -> str:
        return self._key(DETAIL_KEY.format(game_id=game_id))

    async def get_detail(self, game_id: str) -> CacheEntry | None:
        client = await self._get_client()
        raw = await client.get(self._detail_key(game_id))
        if not raw:
            return None
        try:
            return CacheEntry.model_validate_json(raw)
        except ValueError as e:
            logger.warning(f"Discarding unreadable cache row for {game_id}: {e}")
            return None

    async def upsert_detail(self, game_id: str, details: GameDetails, ts: float) -> None:
        client = await self._get_client()
        entry = CacheEntry(details=details, ts=ts)
        async with client.pipeline(transaction=True) as pipe:
            pipe.set(self._detail_key(game_id), entry.model_dump_json())
            pipe.zadd(self._key(DETAIL_INDEX_KEY), {game_id: ts})
            await pipe.execute()

    async def delete_older_than(self, cutoff: float) -> int:
        """Delete rows written strictly before ``cutoff``. Returns the number removed.

        The index is watched between the range query and the delete, so a row
        rewritten in between is left alone and the sweep is retried.
        """
        client = await self._get_client()
        index_key = self._key(DETAIL_INDEX_KEY)
        async with client.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(index_key)
                    expired = await pipe.zrangebyscore(index_key, "-inf", f"({cutoff}")
                    if not expired:
                        return 0
                    pipe.multi()
                    pipe.delete(*(self._detail_key(game_id) for game_id in expired))
                    pipe.zrem(index_key, *expired)
                    _, removed = await pipe.execute()
                    return int(removed)
                except WatchError:
                    logger.debug("Detail index changed during sweep, retrying")

    async def append_gc_log(self, entry: GCLogEntry) -> None:
        client = await self._get_client()
        await client.lpush(self._key(GC_LOG_KEY), entry.model_dump_json())

    async def recent_gc_logs(self, limit: int = 20) -> list[GCLogEntry]:
        """GC log rows, most recent first."""
        client = await self._get_client()
        rows = await client.lrange(self._key(GC_LOG_KEY), 0, max(0, limit - 1))
        return [GCLogEntry.model_validate_json(row) for row in rows]

    async def load_settings(self) -> dict[str, Any]:
        client = await self._get_client()
        raw = await client.hgetall(self._key(SETTINGS_KEY))
        return {key: json.loads(value) for key, value in raw.items()}

    async def save_settings(self, values: dict[str, Any]) -> None:
        client = await self._get_client()
        mapping = {key: json.dumps(value) for key, value in values.items()}
        mapping["updated_at"] = json.dumps(datetime.now(timezone.utc).isoformat())
        await client.hset(self._key(SETTINGS_KEY), mapping=mapping)
