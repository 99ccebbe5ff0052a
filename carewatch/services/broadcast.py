"""Fan-out of published items to any number of async subscribers."""

import asyncio
from typing import Generic, TypeVar

from carewatch.services.collaborators import logger

ItemT = TypeVar("ItemT")


class Subscription(Generic[ItemT]):
    """
    Async iterator over items published after the subscription was created.

    Registered on creation so nothing published in between is missed.
    Closing it (or leaving ``async with``) unsubscribes.
    """

    def __init__(self, broadcaster: "Broadcaster[ItemT]", max_queue_size: int) -> None:
        self._broadcaster = broadcaster
        self.queue: asyncio.Queue[ItemT | None] = asyncio.Queue(maxsize=max_queue_size)

    def __aiter__(self) -> "Subscription[ItemT]":
        return self

    async def __anext__(self) -> ItemT:
        item = await self.queue.get()
        if item is None:
            self.close()
            raise StopAsyncIteration
        return item

    async def __aenter__(self) -> "Subscription[ItemT]":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._broadcaster._unsubscribe(self)


class Broadcaster(Generic[ItemT]):
    """
    Push-based stream with explicit subscribe/unsubscribe.

    Each subscriber gets a bounded queue. A slow subscriber drops its oldest
    item rather than blocking the publisher.
    """

    def __init__(self, name: str, max_queue_size: int = 100) -> None:
        self.name = name
        self.max_queue_size = max_queue_size
        self._subscriptions: list[Subscription[ItemT]] = []
        self._closed = False
        self.logger = logger.bind(component="broadcaster", stream=name)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self) -> Subscription[ItemT]:
        subscription = Subscription(self, self.max_queue_size)
        if self._closed:
            subscription.queue.put_nowait(None)
        else:
            self._subscriptions.append(subscription)
        return subscription

    def _unsubscribe(self, subscription: Subscription[ItemT]) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def publish(self, item: ItemT) -> None:
        if self._closed:
            return
        for subscription in self._subscriptions:
            self._put(subscription.queue, item)

    def close(self) -> None:
        """End every subscription once its queued items are consumed."""
        self._closed = True
        for subscription in self._subscriptions:
            self._put(subscription.queue, None)

    def _put(self, queue: "asyncio.Queue[ItemT | None]", item: ItemT | None) -> None:
        if queue.full():
            queue.get_nowait()
            self.logger.warning("subscriber_lagging_item_dropped")
        queue.put_nowait(item)
