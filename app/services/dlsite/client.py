import asyncio
from collections.abc import Awaitable, Callable

import httpx

from app.core.base_client import BaseClient
from app.core.config import settings
from app.core.constants import BROWSER_USER_AGENT


class DLsiteClient(BaseClient):
    """
    Client for fetching DLsite storefront pages.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        base_delay: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        headers = {
            "User-Agent": BROWSER_USER_AGENT,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
            "Accept-Language": "ja,en-US;q=0.7,en;q=0.3",
        }
        super().__init__(
            base_url=base_url or settings.DLSITE_BASE_URL,
            timeout=timeout or settings.LISTING_TIMEOUT_SECONDS,
            max_retries=settings.HTTP_MAX_RETRIES if max_retries is None else max_retries,
            base_delay=settings.HTTP_RETRY_BASE_DELAY if base_delay is None else base_delay,
            headers=headers,
            transport=transport,
            sleep=sleep,
        )

    def work_url(self, game_id: str) -> str:
        return f"{self.base_url}/maniax/work/=/product_id/{game_id}.html"

    def search_url(self, page: int) -> str:
        # Doujin games only, newest release first, 100 per page
        return (
            f"{self.base_url}/maniax/fsr/=/work_category%5B0%5D/doujin/order/release_d"
            f"/work_type_category%5B0%5D/game/options%5B0%5D/JPN/per_page/100/page/{page}"
        )

    def ranking_url(self) -> str:
        return f"{self.base_url}/maniax/works/type/=/work_type_category/game/order/trend"

    async def fetch_html(self, url: str, timeout: float | None = None) -> str:
        return await self.get_text(url, timeout=timeout)
