"""Listing pages: ordered RJ codes from search and ranking pages.

Each parser tries a primary DOM shape and then a secondary one. When both
come back empty the scraper may ask a PageRenderer for the script-rendered
page and parse that instead.
"""

import re
from collections.abc import Callable, Iterable

from bs4 import BeautifulSoup, Tag
from loguru import logger

from app.services.dlsite.client import DLsiteClient
from app.services.dlsite.renderer import PageRenderer

ListingParser = Callable[[str], list[str]]

SEARCH_ITEM_SELECTORS = (
    ".n_worklist_item",
    ".search_result_img_box_inner",
    "li[id^='search_result_']",
    "ul.n_worklist > li",
)

_WORK_ID = re.compile(r"(RJ\d+)")
_PRODUCT_LINK_ID = re.compile(r"/product_id/(RJ\d+)(?:\.html)?")


def _dedupe(ids: Iterable[str | None]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for game_id in ids:
        if game_id and game_id not in seen:
            seen.add(game_id)
            ordered.append(game_id)
    return ordered


def _work_id_from_item(item: Tag) -> str | None:
    link = item.select_one("a[href*='/work/']")
    if link is not None:
        match = _WORK_ID.search(str(link.get("href") or ""))
        if match:
            return match.group(1)
    match = _WORK_ID.search(str(item.get("id") or ""))
    return match.group(1) if match else None


def _product_link_ids(nodes: Iterable[Tag]) -> list[str | None]:
    ids = []
    for node in nodes:
        match = _PRODUCT_LINK_ID.search(str(node.get("href") or ""))
        ids.append(match.group(1) if match else None)
    return ids


def parse_search_listing(html: str) -> list[str]:
    """RJ codes of a search result page, in page order."""
    soup = BeautifulSoup(html or "", "html.parser")
    for selector in SEARCH_ITEM_SELECTORS:
        items = soup.select(selector)
        if items:
            ids = _dedupe(_work_id_from_item(item) for item in items)
            if ids:
                return ids
    return _dedupe(_product_link_ids(soup.select("a[href*='/product_id/']")))


def parse_ranking_listing(html: str) -> list[str]:
    """RJ codes of the trend ranking page, in rank order."""
    soup = BeautifulSoup(html or "", "html.parser")
    ids = _dedupe(_product_link_ids(soup.select("a[href*='/product_id/']")))
    if ids:
        return ids
    links = [dl.select_one("a[href*='/product_id/']") for dl in soup.select("dl.work_img_main")]
    return _dedupe(_product_link_ids(link for link in links if link is not None))


class ListingScraper:
    """Fetches a listing page and extracts its RJ codes."""

    def __init__(self, client: DLsiteClient, renderer: PageRenderer | None = None):
        self.client = client
        self.renderer = renderer

    async def scrape(self, url: str, parser: ListingParser, timeout: float | None = None) -> list[str]:
        """Return the ids on ``url``.

        Transport errors from the static fetch propagate. A failed render is
        logged and treated as an empty page.
        """
        html = await self.client.fetch_html(url, timeout=timeout)
        ids = parser(html)
        if ids or self.renderer is None:
            return ids

        logger.warning(f"No items found in static HTML of {url}; trying rendered page")
        try:
            rendered = await self.renderer.render(url)
        except Exception as e:
            logger.error(f"Rendering {url} failed: {e}")
            return []
        ids = parser(rendered)
        logger.info(f"Rendered page yielded {len(ids)} items")
        return ids
