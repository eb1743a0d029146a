"""
Notification Broadcaster

Delivers coordinator notifications (consent detected, activated, abandoned,
expiry reminders) to the popup and any dashboard listening on the SSE
stream. Every listener reads from its own bounded queue, and the latest
notifications are remembered so a popup opened after the fact can show them.

Module-level singleton:
    notification_broadcaster        — shared instance
    get_notification_broadcaster()  — getter (dependency-injection friendly)
"""

import asyncio
import logging
from collections import deque
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)


class NotificationBroadcaster:
    """
    Copies each published notification to every open listener.

    A listener whose queue is full misses that notification; the others
    still get it, and publishing never waits on a reader.
    """

    def __init__(self, max_queue_size: int = 100, history_size: int = 20) -> None:
        self._listeners: set[asyncio.Queue] = set()
        self._lock = asyncio.Lock()
        self._max_queue_size = max_queue_size
        self._history: deque[dict[str, Any]] = deque(maxlen=history_size)

    async def subscribe(self) -> asyncio.Queue:
        """Open a listener; pair it with ``unsubscribe`` when the stream ends."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue_size)
        async with self._lock:
            self._listeners.add(queue)
            count = len(self._listeners)
        logger.debug(f"Notification stream opened ({count} listening)")
        return queue

    async def unsubscribe(self, queue: asyncio.Queue) -> None:
        async with self._lock:
            if queue not in self._listeners:
                return
            self._listeners.discard(queue)
            count = len(self._listeners)
        logger.debug(f"Notification stream closed ({count} listening)")

    async def publish(self, event_type: str, data: dict[str, Any]) -> int:
        """Record the event and queue it for every listener; returns how many got it."""
        event = {"type": event_type, "data": data, "timestamp": datetime.now(timezone.utc).isoformat()}
        self._history.append(event)

        async with self._lock:
            listeners = tuple(self._listeners)

        missed = 0
        for queue in listeners:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                missed += 1

        if missed:
            logger.warning(f"{missed} notification listener(s) behind, '{event_type}' not queued for them")
        return len(listeners) - missed

    def recent(self, limit: int | None = None) -> list[dict[str, Any]]:
        """Remembered events, oldest first."""
        events = list(self._history)
        return events[-limit:] if limit else events

    def subscriber_count(self) -> int:
        return len(self._listeners)


notification_broadcaster = NotificationBroadcaster()


def get_notification_broadcaster() -> NotificationBroadcaster:
    """Return the shared NotificationBroadcaster."""
    return notification_broadcaster
