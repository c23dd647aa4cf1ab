"""
Alert Event Bus — broadcast of every Alert Store mutation.

Subscriber contract: fn(location_key: str, alert: FloodAlert | None).

Delivery is synchronous: publish() returns only after every subscriber
registered at the time of the call has run (or, for queue streams, after
the event is queued). Subscribers may subscribe/unsubscribe from inside a
callback; the set is snapshotted per publish. A failing subscriber is
logged and skipped, it never blocks the others or the store write.

Back-pressure: none. Stream queues are unbounded.
"""

import asyncio
from typing import Callable, Optional

import structlog

from floodcast.alerting.schemas import FloodAlert

logger = structlog.get_logger(__name__)

AlertSubscriber = Callable[[str, Optional[FloodAlert]], None]


class AlertEventBus:
    """Multi-subscriber broadcast. One instance per service."""

    def __init__(self):
        self._subscribers: list[AlertSubscriber] = []
        self._queues: set[asyncio.Queue] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers) + len(self._queues)

    def subscribe(self, fn: AlertSubscriber) -> AlertSubscriber:
        """Register a subscriber. Registering the same callable twice is a no-op."""
        if fn not in self._subscribers:
            self._subscribers.append(fn)
            logger.debug("alert_subscriber_added", total=self.subscriber_count)
        return fn

    def unsubscribe(self, fn: AlertSubscriber) -> None:
        """Remove a subscriber. Unknown callables are ignored."""
        try:
            self._subscribers.remove(fn)
        except ValueError:
            return
        logger.debug("alert_subscriber_removed", total=self.subscriber_count)

    def publish(self, location_key: str, alert: Optional[FloodAlert]) -> int:
        """Deliver to every current subscriber. Returns the number reached."""
        delivered = 0
        for fn in list(self._subscribers):
            try:
                fn(location_key, alert)
                delivered += 1
            except Exception as e:
                logger.error(
                    "alert_subscriber_failed",
                    location_key=location_key,
                    subscriber=getattr(fn, "__qualname__", repr(fn)),
                    error=str(e),
                )

        for queue in list(self._queues):
            queue.put_nowait((location_key, alert))
            delivered += 1

        logger.debug(
            "alert_published",
            location_key=location_key,
            alert_id=alert.id if alert else None,
            recipients=delivered,
        )
        return delivered

    def open_queue(self) -> asyncio.Queue:
        """
        Register an unbounded queue that receives (location_key, alert) for
        every publish from now on. Pair with close_queue().
        """
        queue: asyncio.Queue = asyncio.Queue()
        self._queues.add(queue)
        return queue

    def close_queue(self, queue: asyncio.Queue) -> None:
        self._queues.discard(queue)
