import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from loguru import logger

T = TypeVar("T")
R = TypeVar("R")


async def map_with_concurrency(
    items: Sequence[T],
    limit: int,
    mapper: Callable[[T], Awaitable[R]],
    on_result: Callable[[int, R | None], None] | None = None,
) -> list[R | None]:
    """
    Run ``mapper`` over ``items`` with at most ``limit`` calls in flight.

    Results keep the input order. A failing item becomes None and the rest of
    the batch carries on. ``on_result`` is called with the item index after
    every item, successful or not.
    """
    if not items:
        return []

    results: list[R | None] = [None] * len(items)
    cursor = 0

    async def worker() -> None:
        nonlocal cursor
        while cursor < len(items):
            index = cursor
            cursor += 1
            try:
                results[index] = await mapper(items[index])
            except Exception as e:
                logger.warning(f"Task {index} ({items[index]!r}) failed, skipping: {e}")
                results[index] = None
            if on_result is not None:
                try:
                    on_result(index, results[index])
                except Exception as e:
                    logger.warning(f"Result callback failed for task {index}: {e}")

    workers = max(1, min(limit, len(items)))
    await asyncio.gather(*(worker() for _ in range(workers)))
    return results
