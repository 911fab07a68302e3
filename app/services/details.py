import asyncio
import time
from collections.abc import Callable, Sequence

from loguru import logger

from app.core.config import settings
from app.models.game import GameDetails
from app.services.detail_cache import DetailCache
from app.services.dlsite.client import DLsiteClient
from app.services.dlsite.extractor import parse_game_details
from app.services.task_runner import map_with_concurrency


class DetailService:
    """Cache-then-fetch access to single work pages, plus bounded bulk fetches."""

    def __init__(
        self,
        client: DLsiteClient,
        cache: DetailCache,
        concurrency: int | None = None,
        request_delay: float | None = None,
    ):
        self.client = client
        self.cache = cache
        self._concurrency = 1
        self.set_concurrency(settings.FETCH_CONCURRENCY if concurrency is None else concurrency)
        self.request_delay = settings.DETAIL_DELAY_SECONDS if request_delay is None else request_delay

    @property
    def concurrency(self) -> int:
        return self._concurrency

    def set_concurrency(self, n: int) -> int:
        try:
            value = int(n)
        except (TypeError, ValueError):
            value = 1
        self._concurrency = max(1, value)
        logger.info(f"Detail fetch concurrency set to {self._concurrency}")
        return self._concurrency

    async def fetch_details(self, game_id: str, force_refresh: bool = False) -> GameDetails:
        if not force_refresh:
            cached = await self.cache.read(game_id)
            if cached is not None:
                return cached

        url = self.client.work_url(game_id)
        await asyncio.sleep(self.request_delay)
        started = time.monotonic()
        html = await self.client.fetch_html(url, timeout=settings.DETAIL_TIMEOUT_SECONDS)
        details = parse_game_details(html, game_id, url)
        await self.cache.write(game_id, details)
        logger.debug(f"[{game_id}] details fetched in {(time.monotonic() - started) * 1000:.0f}ms")
        return details

    async def fetch_many(
        self,
        game_ids: Sequence[str],
        force_refresh: bool = False,
        on_result: Callable[[int, GameDetails | None], None] | None = None,
    ) -> list[GameDetails | None]:
        """Details for every id, in input order; failed ids come back as None."""

        async def fetch(game_id: str) -> GameDetails:
            return await self.fetch_details(game_id, force_refresh=force_refresh)

        return await map_with_concurrency(game_ids, self.concurrency, fetch, on_result=on_result)
