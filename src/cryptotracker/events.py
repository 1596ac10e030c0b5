"""In-process broadcast channel with one queue per subscriber.

Every subscriber receives every value published after it subscribed, in
order, independently of how fast the other subscribers drain theirs.
Publishing never blocks and never waits on a subscriber.
"""

from __future__ import annotations

import asyncio
from typing import Generic, TypeVar

from cryptotracker.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_CLOSED = object()


class Subscription(Generic[T]):
    """One subscriber's view of a Broadcast.

    Iterate with ``async for``; leave the ``with`` block (or call ``close()``)
    to unsubscribe, which ends the iteration.
    """

    def __init__(self, channel: Broadcast[T]) -> None:
        self._channel = channel
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    def _deliver(self, value: object) -> None:
        self._queue.put_nowait(value)

    def pending(self) -> int:
        """Number of values delivered but not yet consumed."""
        return self._queue.qsize()

    async def get(self) -> T:
        """Wait for the next value. Raises StopAsyncIteration once closed."""
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item  # type: ignore[return-value]

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._channel._remove(self)
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> Subscription[T]:
        return self

    async def __anext__(self) -> T:
        return await self.get()

    def __enter__(self) -> Subscription[T]:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        self.close()


class Broadcast(Generic[T]):
    """Fan-out channel: ``publish`` pushes a value into every live subscription."""

    def __init__(self, name: str = "broadcast") -> None:
        self._name = name
        self._subscribers: list[Subscription[T]] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription[T]:
        subscription: Subscription[T] = Subscription(self)
        self._subscribers.append(subscription)
        logger.debug("channel_subscribed", channel=self._name, total=len(self._subscribers))
        return subscription

    def publish(self, value: T) -> None:
        for subscription in self._subscribers.copy():
            subscription._deliver(value)

    def close(self) -> None:
        """End every subscription."""
        for subscription in self._subscribers.copy():
            subscription.close()

    def _remove(self, subscription: Subscription[T]) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)
            logger.debug(
                "channel_unsubscribed", channel=self._name, total=len(self._subscribers)
            )
