import asyncio
import random
from collections.abc import Awaitable, Callable

import httpx
from loguru import logger

from app.core.exceptions import TransportError


class BaseClient:
    """
    Base asynchronous HTTP client with built-in retry logic and logging.

    A call is attempted once and then retried up to ``max_retries`` times.
    The wait before retry ``n`` is ``base_delay * 2 ** (n - 1)`` plus a random
    jitter below ``min(1s, backoff)``. ``timeout`` caps each attempt as a whole,
    not just the individual connect/read phases.
    """

    def __init__(
        self,
        base_url: str = "",
        timeout: float = 15.0,
        max_retries: int = 3,
        base_delay: float = 1.0,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.headers = headers or {}
        self._transport = transport
        self._sleep = sleep
        self._client: httpx.AsyncClient | None = None

    async def get_client(self) -> httpx.AsyncClient:
        """Get or create the httpx.AsyncClient instance."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=self.headers,
                follow_redirects=True,
                max_redirects=5,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close the underlying HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def backoff_delay(self, attempt: int) -> float:
        backoff = self.base_delay * (2 ** (attempt - 1))
        jitter = random.uniform(0, min(1.0, backoff))
        return backoff + jitter

    async def _request(self, method: str, url: str, timeout: float | None = None, **kwargs) -> httpx.Response:
        """Internal request handler with retry logic."""
        client = await self.get_client()
        call_timeout = timeout or self.timeout
        tries = self.max_retries + 1
        last_exception: Exception | None = None

        for attempt in range(1, tries + 1):
            try:
                response = await asyncio.wait_for(
                    client.request(method, url, timeout=call_timeout, **kwargs), timeout=call_timeout
                )
                response.raise_for_status()
                return response
            except (httpx.HTTPStatusError, httpx.RequestError, asyncio.TimeoutError) as e:
                last_exception = e
                if attempt < tries:
                    wait_time = self.backoff_delay(attempt)
                    logger.warning(
                        f"Request failed ({method} {url}): {e!r}. "
                        f"Retrying in {wait_time:.2f}s... (Attempt {attempt}/{tries})"
                    )
                    await self._sleep(wait_time)
                else:
                    logger.error(f"Request failed after {tries} attempts ({method} {url}): {e!r}")

        raise TransportError(url, tries, repr(last_exception)) from last_exception

    async def get_text(self, url: str, timeout: float | None = None, **kwargs) -> str:
        """Perform a GET request and return the decoded body."""
        response = await self._request("GET", url, timeout=timeout, **kwargs)
        return response.text
