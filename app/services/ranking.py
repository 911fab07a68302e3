import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from loguru import logger

from app.core.config import settings
from app.core.constants import EVENT_COMPLETE, EVENT_PROGRESS, EVENT_STATUS
from app.core.exceptions import SingleFlightError
from app.models.game import GameDetails, Progress, RankedGame, RankingSnapshot, RankingStatus, to_datetime
from app.services.details import DetailService
from app.services.dlsite.listing import ListingScraper, parse_ranking_listing
from app.services.publisher import Event, EventPublisher, Subscription
from app.services.ranking_view import completion_payload
from app.services.task_runner import map_with_concurrency

ProgressCallback = Callable[[int], None]


@dataclass
class FetchJobState:
    in_progress: bool = False
    started_at: float | None = None
    finished_at: float | None = None
    last_error: str | None = None
    progress: Progress = field(default_factory=Progress)
    # Shared outcome of the running rebuild; every concurrent caller awaits it
    task: asyncio.Task | None = None
    listeners: list[ProgressCallback] = field(default_factory=list)


class RankingOrchestrator:
    """
    Builds the trend ranking snapshot, one rebuild at a time.

    Callers arriving while a rebuild runs attach to it and receive the same
    result or the same error. A snapshot younger than the ranking TTL is
    served without touching the network.
    """

    def __init__(
        self,
        details: DetailService,
        listing: ListingScraper,
        publisher: EventPublisher,
        ttl: float | None = None,
        item_delay: float | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.details = details
        self.listing = listing
        self.publisher = publisher
        self.ttl = float(settings.RANKING_CACHE_TTL_SECONDS if ttl is None else ttl)
        self.item_delay = settings.RANKING_ITEM_DELAY_SECONDS if item_delay is None else item_delay
        self._clock = clock
        self._snapshot = RankingSnapshot()
        self._job = FetchJobState()

    def is_fresh(self) -> bool:
        fetched_at = self._snapshot.fetched_at
        return bool(self._snapshot.items) and fetched_at is not None and self._clock() - fetched_at < self.ttl

    def cached_ranking(self, max_items: int | None = None) -> list[RankedGame]:
        """Last snapshot regardless of age; empty if none was ever built."""
        items = list(self._snapshot.items)
        return items[:max_items] if max_items is not None else items

    async def start_fetch(self, target_count: int = 10, on_progress: ProgressCallback | None = None) -> list[RankedGame]:
        job = self._job
        if job.task is not None and not job.task.done():
            logger.debug("Ranking rebuild already running, attaching to it")
            if on_progress is not None:
                job.listeners.append(on_progress)
            return await asyncio.shield(job.task)

        if self.is_fresh():
            logger.debug("Serving ranking from fresh snapshot")
            return self.cached_ranking(target_count)

        # No await between the running check above and claiming the job here
        job.in_progress = True
        job.started_at = self._clock()
        job.progress = Progress(fetched=0, target=target_count)
        job.listeners = [on_progress] if on_progress is not None else []
        job.task = asyncio.create_task(self._rebuild(target_count), name="ranking-rebuild")
        self._publish_status()
        return await asyncio.shield(job.task)

    async def _rebuild(self, target_count: int) -> list[RankedGame]:
        job = self._job
        try:
            url = self.listing.client.ranking_url()
            logger.info(f"Fetching ranking listing: {url}")
            game_ids = (await self.listing.scrape(url, parse_ranking_listing))[:target_count]
            job.progress.target = len(game_ids)
            logger.info(f"Ranking listing has {len(game_ids)} works")

            fetched = 0

            def on_result(index: int, details: GameDetails | None) -> None:
                nonlocal fetched
                if details is not None:
                    fetched += 1
                job.progress.fetched = fetched
                for callback in list(job.listeners):
                    try:
                        callback(fetched)
                    except Exception as e:
                        logger.warning(f"Ranking progress callback failed: {e}")
                self.publisher.publish(EVENT_PROGRESS, self.status().model_dump(mode="json"))

            async def fetch(game_id: str) -> GameDetails:
                try:
                    return await self.details.fetch_details(game_id)
                finally:
                    await asyncio.sleep(self.item_delay)

            results = await map_with_concurrency(game_ids, self.details.concurrency, fetch, on_result=on_result)
            games = [
                RankedGame(**details.model_dump(), rank=position)
                for position, details in enumerate(results, start=1)
                if details is not None
            ]

            self._snapshot = RankingSnapshot(items=games, fetched_at=self._clock())
            job.last_error = None
            missing_images = sum(1 for g in games if not g.image_url)
            logger.info(f"Ranking rebuilt with {len(games)} works ({missing_images} without image)")

            self.publisher.publish(EVENT_COMPLETE, completion_payload(games))
            return games
        except Exception as e:
            job.last_error = str(e)
            logger.exception(f"Ranking rebuild failed: {e}")
            raise SingleFlightError(f"ranking rebuild failed: {e}") from e
        finally:
            job.in_progress = False
            job.finished_at = self._clock()
            job.listeners = []
            self._publish_status()

    def status(self) -> RankingStatus:
        fetched_at = self._snapshot.fetched_at
        return RankingStatus(
            in_progress=self._job.in_progress,
            last_started_at=to_datetime(self._job.started_at),
            last_finished_at=to_datetime(self._job.finished_at),
            last_error=self._job.last_error,
            cached_count=len(self._snapshot.items),
            cached_at=to_datetime(fetched_at),
            next_refresh_at=to_datetime(fetched_at + self.ttl) if fetched_at is not None else None,
            progress=self._job.progress.model_copy(),
        )

    def _publish_status(self) -> None:
        self.publisher.publish(EVENT_STATUS, self.status().model_dump(mode="json"))

    def subscribe(self, maxsize: int = 100) -> Subscription:
        """Attach a subscriber and bring it up to date right away."""
        subscription = self.publisher.subscribe(maxsize=maxsize)
        subscription.push(Event(EVENT_STATUS, self.status().model_dump(mode="json")))
        if self.is_fresh():
            subscription.push(Event(EVENT_COMPLETE, completion_payload(self.cached_ranking())))
        return subscription
