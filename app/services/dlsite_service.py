import time
from collections.abc import Callable
from typing import Any

import redis.asyncio as redis
from loguru import logger

from app.core.config import settings
from app.models.game import GameDetails, GCLogEntry, GCResult, RankedGame, RankingStatus
from app.services.cache_gc import CacheGarbageCollector
from app.services.catalog_crawler import CrawlResult, MonthlyCatalogCrawler
from app.services.detail_cache import DetailCache
from app.services.detail_store import DetailStore
from app.services.details import DetailService
from app.services.dlsite.client import DLsiteClient
from app.services.dlsite.listing import ListingScraper
from app.services.dlsite.renderer import PageRenderer, PlaywrightRenderer
from app.services.publisher import EventPublisher, Subscription
from app.services.ranking import ProgressCallback, RankingOrchestrator
from app.services.sample_games import generate_sample_games


class DLsiteService:
    """
    Entry point for everything that reads DLsite: monthly catalogs, single
    works, the trend ranking, cache settings and cache GC.

    One instance per process owns the HTTP client, both cache tiers, the
    ranking job and the GC timer.
    """

    def __init__(
        self,
        client: DLsiteClient | None = None,
        store: DetailStore | None = None,
        renderer: PageRenderer | None = None,
        render_fallback: bool | None = None,
        detail_delay: float | None = None,
        page_delay: float | None = None,
        item_delay: float | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._client = client or DLsiteClient()
        self._store = store or DetailStore()
        if render_fallback is None:
            render_fallback = settings.RENDER_FALLBACK_ENABLED
        if not render_fallback:
            renderer = None
        elif renderer is None:
            renderer = PlaywrightRenderer()
        listing = ListingScraper(self._client, renderer)

        self._cache = DetailCache(self._store, clock=clock)
        self._details = DetailService(self._client, self._cache, request_delay=detail_delay)
        self._crawler = MonthlyCatalogCrawler(self._details, listing, page_delay=page_delay)
        self._publisher = EventPublisher()
        self._ranking = RankingOrchestrator(
            self._details, listing, self._publisher, item_delay=item_delay, clock=clock
        )
        self._gc = CacheGarbageCollector(self._store, self._cache, clock=clock)

    # Catalog

    async def crawl_month(self, year: int, month: int, force_refresh_details: bool = False) -> CrawlResult:
        return await self._crawler.crawl(year, month, force_refresh_details=force_refresh_details)

    async def fetch_catalog_by_month(
        self,
        year: int | str,
        month: int | str,
        force_refresh_details: bool = False,
        allow_sample: bool = False,
    ) -> list[GameDetails]:
        """
        Works released in the given month, newest first.

        A crawl that fails before collecting anything raises
        CrawlTerminationError, unless sample data was explicitly allowed.
        A crawl that fails later returns what it collected.
        """
        try:
            parsed_year, parsed_month = int(year), int(month)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid year/month: year={year}, month={month}")
        if not 1 <= parsed_month <= 12:
            raise ValueError(f"Invalid month: {month}")

        result = await self.crawl_month(parsed_year, parsed_month, force_refresh_details=force_refresh_details)
        if result.error is None:
            return result.games
        if result.games:
            logger.warning(f"Returning partial catalog ({len(result.games)} works): {result.error}")
            return result.games
        if allow_sample or settings.ALLOW_SAMPLE:
            logger.warning(f"Falling back to sample games for {parsed_year}-{parsed_month:02d}: {result.error}")
            return generate_sample_games(parsed_year, parsed_month)
        raise result.error

    @property
    def last_crawl_error(self) -> str | None:
        return self._crawler.last_error

    # Details

    async def fetch_details(self, game_id: str, force_refresh: bool = False) -> GameDetails:
        return await self._details.fetch_details(game_id, force_refresh=force_refresh)

    async def fetch_many_details(self, game_ids: list[str], force_refresh: bool = False) -> list[GameDetails | None]:
        return await self._details.fetch_many(game_ids, force_refresh=force_refresh)

    # Ranking

    async def fetch_ranking(self, max_items: int = 10, on_progress: ProgressCallback | None = None) -> list[RankedGame]:
        return await self._ranking.start_fetch(max_items, on_progress=on_progress)

    def cached_ranking(self, max_items: int | None = None) -> list[RankedGame]:
        return self._ranking.cached_ranking(max_items)

    def status(self) -> RankingStatus:
        return self._ranking.status()

    def subscribe(self, maxsize: int = 100) -> Subscription:
        return self._ranking.subscribe(maxsize=maxsize)

    # Runtime settings

    def set_concurrency(self, n: int) -> int:
        return self._details.set_concurrency(n)

    def set_cache_ttl(self, seconds: float) -> float:
        return self._cache.set_ttl(seconds)

    def get_settings(self) -> dict[str, Any]:
        return {"concurrency": self._details.concurrency, "details_cache_ttl": self._cache.ttl}

    async def update_settings(self, concurrency: int | None = None, ttl: float | None = None) -> dict[str, Any]:
        """Apply new settings and persist them so the next process starts with them."""
        if concurrency is not None:
            self.set_concurrency(concurrency)
        if ttl is not None:
            self.set_cache_ttl(ttl)
        current = self.get_settings()
        try:
            await self._store.save_settings(current)
        except (redis.RedisError, OSError) as e:
            logger.warning(f"Failed to persist settings: {e}")
        return current

    async def load_settings(self) -> dict[str, Any]:
        """Restore persisted settings, keeping defaults for anything missing."""
        try:
            stored = await self._store.load_settings()
        except (redis.RedisError, OSError) as e:
            logger.warning(f"Failed to load persisted settings, using defaults: {e}")
            return self.get_settings()
        if stored.get("concurrency") is not None:
            self.set_concurrency(stored["concurrency"])
        if stored.get("details_cache_ttl") is not None:
            self.set_cache_ttl(stored["details_cache_ttl"])
        return self.get_settings()

    # Cache GC

    def start_gc(self, interval: float | None = None) -> bool:
        return self._gc.start(interval)

    def stop_gc(self) -> None:
        self._gc.stop()

    async def run_gc_now(self) -> GCResult:
        return await self._gc.run_now()

    async def recent_gc_logs(self, limit: int = 20) -> list[GCLogEntry]:
        return await self._gc.recent_logs(limit)

    async def close(self) -> None:
        self.stop_gc()
        await self._client.close()
        await self._store.close()


dlsite_service = DLsiteService()
