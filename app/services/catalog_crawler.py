"""Monthly catalog crawl over the newest-first search listing.

The listing is ordered by release date, newest first. Once a long enough run
of works older than the target month follows at least one in-range work, no
later page can hold in-range works and the crawl stops. This only holds
while the listing keeps that order.
"""

import asyncio
import calendar
from dataclasses import dataclass, field

from loguru import logger

from app.core.config import settings
from app.core.exceptions import CrawlTerminationError, TransportError
from app.models.game import GameDetails
from app.services.details import DetailService
from app.services.dlsite.listing import ListingScraper, parse_search_listing


@dataclass
class CrawlResult:
    year: int
    month: int
    games: list[GameDetails] = field(default_factory=list)
    pages: int = 0
    stop_reason: str = ""  # "empty_page", "stale_streak", "page_cap" or "page_failure"
    error: CrawlTerminationError | None = None


def month_bounds(year: int, month: int) -> tuple[str, str]:
    last_day = calendar.monthrange(year, month)[1]
    return f"{year:04d}-{month:02d}-01", f"{year:04d}-{month:02d}-{last_day:02d}"


class MonthlyCatalogCrawler:
    def __init__(
        self,
        details: DetailService,
        listing: ListingScraper,
        page_delay: float | None = None,
        max_older_streak: int | None = None,
        max_pages: int | None = None,
    ):
        self.details = details
        self.listing = listing
        self.page_delay = settings.PAGE_DELAY_SECONDS if page_delay is None else page_delay
        self.max_older_streak = max_older_streak or settings.CRAWL_MAX_OLDER_STREAK
        self.max_pages = max_pages or settings.CRAWL_MAX_PAGES
        self.last_error: str | None = None

    async def crawl(self, year: int, month: int, force_refresh_details: bool = False) -> CrawlResult:
        target_start, target_end = month_bounds(year, month)
        result = CrawlResult(year=year, month=month, stop_reason="page_cap")
        found_any_in_range = False
        older_streak = 0

        logger.info(f"Crawling {year}-{month:02d} ({target_start} .. {target_end})")

        page = 1
        while page <= self.max_pages:
            url = self.listing.client.search_url(page)
            await asyncio.sleep(self.page_delay)

            try:
                game_ids = await self.listing.scrape(url, parse_search_listing)
            except TransportError as e:
                result.error = CrawlTerminationError(page, str(e))
                result.stop_reason = "page_failure"
                logger.error(f"Page {page} failed, ending crawl with {len(result.games)} works: {e}")
                break

            result.pages = page
            if not game_ids:
                result.stop_reason = "empty_page"
                logger.info(f"Page {page} has no works, end of listing")
                break

            logger.info(f"Page {page}: {len(game_ids)} works")
            details_list = await self.details.fetch_many(game_ids, force_refresh=force_refresh_details)

            added = 0
            stale = False
            for details in details_list:
                if details is None or not details.id or not details.title:
                    continue

                release_date = details.release_date
                if release_date and target_start <= release_date <= target_end:
                    result.games.append(details)
                    added += 1
                    found_any_in_range = True
                    older_streak = 0
                    continue

                if release_date and release_date < target_start:
                    if found_any_in_range:
                        older_streak += 1
                        if older_streak >= self.max_older_streak:
                            stale = True
                            break
                    continue

                # Newer than the target month, or no date at all
                older_streak = 0

            logger.info(f"Page {page}: added {added} works (total {len(result.games)})")
            if stale:
                result.stop_reason = "stale_streak"
                logger.info(f"{older_streak} consecutive works older than {target_start}, stopping")
                break
            page += 1

        result.games.sort(key=lambda g: g.release_date or "", reverse=True)
        self.last_error = str(result.error) if result.error else None

        if result.games:
            logger.info(f"Collected {len(result.games)} works for {year}-{month:02d}")
        else:
            logger.warning(f"No works found for {year}-{month:02d}")
        return result
