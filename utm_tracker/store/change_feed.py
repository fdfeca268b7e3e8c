"""UTM Tracker — In-Process Change Feed.

The click store publishes every committed insert/update here. Consumers
subscribe with a predicate and iterate matching events asynchronously.
A subscription that falls behind is broken rather than silently dropping
events. Reconnecting is left to the consumer.
"""

import asyncio
import threading
from dataclasses import dataclass
from typing import Callable, List

from utm_tracker.core.exceptions import ChangeFeedError
from utm_tracker.core.logging import get_logger
from utm_tracker.models.click_models import ClickRecord

logger = get_logger("store.change_feed")

Predicate = Callable[[ClickRecord], bool]

DEFAULT_QUEUE_SIZE = 1000


@dataclass(frozen=True)
class ChangeEvent:
    """A committed write on the click store."""

    operation_type: str  # "insert" | "update"
    record: ClickRecord


class Subscription:
    """Async iterator over change events that satisfy a predicate."""

    def __init__(self, feed: "ChangeFeed", predicate: Predicate, maxsize: int):
        self._feed = feed
        self.predicate = predicate
        self._loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._error: ChangeFeedError | None = None
        self.closed = False

    def _offer(self, event: ChangeEvent) -> None:
        """Runs on the subscriber's loop."""
        if self.closed or self._error is not None:
            return
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self._error = ChangeFeedError(
                f"Subscriber fell behind; dropped event for {event.record.id}"
            )

    def deliver(self, event: ChangeEvent) -> None:
        self._loop.call_soon_threadsafe(self._offer, event)

    def _wake(self) -> None:
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass  # consumer is not blocked on get()

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._feed.unsubscribe(self)
            self._loop.call_soon_threadsafe(self._wake)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> ChangeEvent:
        if self.closed:
            raise StopAsyncIteration
        if self._error is not None:
            raise self._error
        event = await self._queue.get()
        if event is None:
            raise StopAsyncIteration
        return event

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()


class ChangeFeed:
    """Fan-out of store change events to predicate-filtered subscribers."""

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE):
        self.queue_size = queue_size
        self._subscribers: List[Subscription] = []
        self._lock = threading.Lock()

    def subscribe(self, predicate: Predicate) -> Subscription:
        """Register a subscriber. Must be called from a running event loop."""
        subscription = Subscription(self, predicate, self.queue_size)
        with self._lock:
            self._subscribers.append(subscription)
        logger.info(f"Change feed subscriber added ({len(self._subscribers)} active)")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)

    def publish(self, event: ChangeEvent) -> None:
        """Deliver an event to every subscriber whose predicate matches."""
        with self._lock:
            subscribers = list(self._subscribers)
        for subscription in subscribers:
            if not subscription.predicate(event.record):
                continue
            try:
                subscription.deliver(event)
            except RuntimeError as e:
                # Subscriber's event loop is gone
                logger.warning(f"Dropping dead change feed subscriber: {e}")
                self.unsubscribe(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
