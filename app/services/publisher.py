import asyncio
import weakref
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from loguru import logger


@dataclass(frozen=True)
class Event:
    name: str
    payload: Any


# Queued by close() so a consumer blocked in get() wakes up and stops
_CLOSED = Event(name="subscription:closed", payload=None)


class Subscription:
    """
    A subscriber's queue of events. Iterate it, and close it when done.

    The publisher only holds a weak reference, so a subscription that is
    dropped without close() stops receiving events once it is collected.
    """

    def __init__(self, publisher: "EventPublisher", maxsize: int):
        self._publisher = publisher
        self.queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    def _put(self, event: Event) -> None:
        if self.queue.full():
            # Slow consumer: drop the oldest event to make room
            self.queue.get_nowait()
            logger.debug(f"Subscriber queue full, dropped oldest event before {event.name}")
        self.queue.put_nowait(event)

    def push(self, event: Event) -> None:
        if not self.closed:
            self._put(event)

    async def get(self) -> Event | None:
        """Next event, or None once the subscription is closed."""
        event = await self.queue.get()
        if event is _CLOSED:
            # Leave the marker for the next getter
            self.queue.put_nowait(_CLOSED)
            return None
        return event

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._publisher._remove(self)
        self._put(_CLOSED)

    unsubscribe = close

    def __aiter__(self) -> AsyncIterator[Event]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Event]:
        while True:
            event = await self.get()
            if event is None:
                return
            yield event


class EventPublisher:
    """In-process publish/subscribe channel for status, progress and completion events."""

    def __init__(self) -> None:
        self._subscribers: weakref.WeakSet[Subscription] = weakref.WeakSet()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, maxsize: int = 100) -> Subscription:
        subscription = Subscription(self, maxsize=maxsize)
        self._subscribers.add(subscription)
        logger.debug(f"Subscriber attached ({len(self._subscribers)} total)")
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.discard(subscription)
            logger.debug(f"Subscriber detached ({len(self._subscribers)} total)")

    def publish(self, name: str, payload: Any) -> None:
        event = Event(name=name, payload=payload)
        for subscription in list(self._subscribers):
            subscription.push(event)
