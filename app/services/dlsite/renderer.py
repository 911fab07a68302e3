from typing import Protocol

from loguru import logger
from playwright.async_api import async_playwright

from app.core.config import settings
from app.core.constants import BROWSER_USER_AGENT


class PageRenderer(Protocol):
    """Strategy that returns the fully rendered HTML of a page."""

    async def render(self, url: str) -> str: ...


class PlaywrightRenderer:
    """Renders pages in headless Chromium. Expensive; used only as a last resort."""

    def __init__(self, timeout: float | None = None, user_agent: str = BROWSER_USER_AGENT):
        self.timeout = timeout or settings.RENDER_TIMEOUT_SECONDS
        self.user_agent = user_agent

    async def render(self, url: str) -> str:
        logger.info(f"Rendering {url} in headless browser")
        async with async_playwright() as p:
            browser = await p.chromium.launch(headless=True, args=["--no-sandbox", "--disable-setuid-sandbox"])
            try:
                context = await browser.new_context(user_agent=self.user_agent, locale="ja-JP")
                page = await context.new_page()
                await page.goto(url, timeout=int(self.timeout * 1000), wait_until="networkidle")
                return await page.content()
            finally:
                await browser.close()
