"""
realtime.py — In-process push hub for live dashboards.

Every alert mutation ends with ``publish_update()``: the hub computes ONE
dashboard payload and offers it to every open subscriber. Subscribers are
transport-agnostic handles with a bounded queue; the SSE endpoint drains one
handle per connected client.

═══════════════════════════════════════════════════════════════════════════
SUBSCRIBER LIFECYCLE
═══════════════════════════════════════════════════════════════════════════

    CONNECTING ──register──▶ OPEN ──close / queue full / hub stop──▶ CLOSED

    • subscribe()    registers the handle, marks it OPEN, pushes the
                     initial snapshot
    • publish        a full or closed queue closes and prunes the handle
    • unsubscribe()  idempotent; safe from a ``finally`` block

The registry lives on one event loop and is iterated over a copy, so
subscribe / unsubscribe / publish may interleave freely. It is per process:
multiple workers do not share subscribers.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from backend.app.alerts.models import utcnow
from backend.app.alerts.snapshot import SnapshotAggregator
from backend.app.core.errors import ServiceUnavailableError

logger = logging.getLogger(__name__)

_CLOSED = object()


class SubscriberState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class SubscriberClosed(Exception):
    """Raised by ``Subscriber.receive`` once the handle is closed."""


class Subscriber:
    """One live dashboard connection."""

    def __init__(self, queue_size: int = 8) -> None:
        self.id = uuid.uuid4().hex[:12]
        self.state = SubscriberState.CONNECTING
        self.connected_at: datetime = utcnow()
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(queue_size, 1))

    @property
    def is_open(self) -> bool:
        return self.state is SubscriberState.OPEN

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def push(self, payload: Dict[str, Any]) -> bool:
        """Enqueue without waiting. False if closed or the queue is full."""
        if not self.is_open:
            return False
        try:
            self._queue.put_nowait(payload)
        except asyncio.QueueFull:
            return False
        return True

    async def receive(self, timeout: Optional[float] = None) -> Optional[Dict[str, Any]]:
        """
        Next payload, or None if ``timeout`` elapses first.

        Raises
        ------
        SubscriberClosed
            Once the subscriber has been closed and its wake-up consumed.
        """
        if self.state is SubscriberState.CLOSED and self._queue.empty():
            raise SubscriberClosed(self.id)
        try:
            item = await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None
        if item is _CLOSED:
            raise SubscriberClosed(self.id)
        return item

    def close(self) -> None:
        """Stop accepting pushes and wake any pending ``receive``."""
        if self.state is SubscriberState.CLOSED:
            return
        self.state = SubscriberState.CLOSED
        # Drop undelivered payloads so the wake-up always fits
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)


class RealtimeHub:
    """
    Registry of live subscribers plus snapshot fan-out.

    Lifecycle:
        1. ``start()``         — accept subscriptions
        2. ``subscribe()`` / ``unsubscribe()`` — manage dashboards
        3. ``publish_update()`` — after every alert mutation
        4. ``stop()``          — close every subscriber
    """

    def __init__(
        self,
        aggregator: SnapshotAggregator,
        *,
        snapshot_limit: int = 20,
        max_subscribers: int = 500,
        queue_size: int = 8,
    ) -> None:
        self._aggregator = aggregator
        self._snapshot_limit = snapshot_limit
        self._max_subscribers = max_subscribers
        self._queue_size = queue_size
        self._subscribers: Dict[str, Subscriber] = {}
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def active_subscribers(self) -> int:
        """Number of currently registered subscribers."""
        return len(self._subscribers)

    def subscribers(self) -> List[Subscriber]:
        return list(self._subscribers.values())

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        logger.info(
            "RealtimeHub started (max_subscribers=%d, queue_size=%d)",
            self._max_subscribers, self._queue_size,
        )

    async def stop(self) -> None:
        """Close and forget every subscriber."""
        self._running = False
        for subscriber in list(self._subscribers.values()):
            subscriber.close()
        self._subscribers.clear()
        logger.info("RealtimeHub stopped")

    async def subscribe(self) -> Subscriber:
        """
        Register a new subscriber and push it the current snapshot.

        Raises
        ------
        ServiceUnavailableError
            Hub not running, or subscriber limit reached.
        """
        if not self._running:
            raise ServiceUnavailableError("Realtime hub", "not running")
        if len(self._subscribers) >= self._max_subscribers:
            raise ServiceUnavailableError("Realtime hub", "subscriber limit reached")

        subscriber = Subscriber(self._queue_size)
        self._subscribers[subscriber.id] = subscriber
        subscriber.state = SubscriberState.OPEN
        logger.info(
            "Subscriber %s connected (total=%d)", subscriber.id, len(self._subscribers),
            extra={"subscriber_count": len(self._subscribers)},
        )

        try:
            payload = await self._aggregator.compute_dashboard(self._snapshot_limit)
        except Exception:
            self.unsubscribe(subscriber)
            raise
        subscriber.push(payload)
        return subscriber

    def unsubscribe(self, subscriber: Subscriber) -> None:
        """Remove and close a subscriber. Safe to call more than once."""
        removed = self._subscribers.pop(subscriber.id, None)
        subscriber.close()
        if removed is not None:
            logger.info(
                "Subscriber %s disconnected (total=%d)",
                subscriber.id, len(self._subscribers),
                extra={"subscriber_count": len(self._subscribers)},
            )

    async def publish_update(self) -> int:
        """
        Recompute the dashboard payload once and push it to every subscriber.

        A subscriber that is closed or whose queue is full is closed and
        pruned. Snapshot failures are logged, never raised: the alert
        mutation that triggered the update has already succeeded.

        Returns
        -------
        int
            Number of subscribers the payload was queued for.
        """
        if not self._subscribers:
            return 0

        try:
            payload = await self._aggregator.compute_dashboard(self._snapshot_limit)
        except Exception:
            logger.exception("Snapshot computation failed; update not pushed")
            return 0

        delivered = 0
        pruned = 0
        for subscriber in list(self._subscribers.values()):
            if subscriber.push(payload):
                delivered += 1
            else:
                self.unsubscribe(subscriber)
                pruned += 1

        logger.debug(
            "Snapshot pushed to %d subscribers (%d pruned)", delivered, pruned,
            extra={"subscriber_count": delivered},
        )
        return delivered
