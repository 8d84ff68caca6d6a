"""
Event Publisher

Fans a ProcessedEvent out to every configured channel:
- RedisPubSubChannel: cross-process broadcast over Redis Pub/Sub
- LocalBroadcastChannel: in-process subscribers (asyncio queues)

Channels are fired in configuration order with the same JSON payload.
A failing channel is logged and skipped. The content record has already
been written by then, so events are best-effort notifications.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from contentflow.core.config import settings
from contentflow.db.base import EventBus
from contentflow.models.content import ProcessedEvent

logger = logging.getLogger(__name__)


class EventChannel(ABC):
    """Abstract base class for event channels."""

    name: str = "channel"

    @abstractmethod
    async def send(self, payload: Dict[str, Any]) -> None:
        """Deliver one payload. Raise on failure."""
        pass


class RedisPubSubChannel(EventChannel):
    """Publishes payloads to a Redis Pub/Sub channel."""

    name = "redis_pubsub"

    def __init__(self, bus: EventBus, channel: Optional[str] = None):
        self.bus = bus
        self.channel = channel or settings.EVENTS_CHANNEL

    async def send(self, payload: Dict[str, Any]) -> None:
        receivers = await self.bus.publish(self.channel, payload)
        logger.debug(f"Published event to {self.channel} ({receivers} receivers)")


class LocalBroadcastChannel(EventChannel):
    """
    In-process broadcast to asyncio queues.

    Each subscriber gets its own bounded queue; a subscriber that falls
    behind loses events rather than blocking the pipeline.
    """

    name = "local_broadcast"

    def __init__(self, max_queue_size: Optional[int] = None):
        self.max_queue_size = max_queue_size or settings.LOCAL_EVENT_QUEUE_SIZE
        self._subscribers: List[asyncio.Queue] = []

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_queue_size)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def send(self, payload: Dict[str, Any]) -> None:
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(payload)
            except asyncio.QueueFull:
                logger.warning("Local subscriber queue full, dropping event")


class EventPublisher:
    """
    Publishes processed-content events to every channel.

    Usage:
    ------
    publisher = EventPublisher([RedisPubSubChannel(bus), LocalBroadcastChannel()])
    delivered = await publisher.publish(event)
    """

    def __init__(self, channels: Optional[List[EventChannel]] = None):
        self.channels: List[EventChannel] = list(channels or [])

    def add_channel(self, channel: EventChannel) -> None:
        self.channels.append(channel)

    async def publish(self, event: ProcessedEvent) -> int:
        """
        Send ``event`` to all channels.

        Returns:
            Number of channels that accepted the event
        """
        payload = event.to_document()
        delivered = 0
        for channel in self.channels:
            try:
                await channel.send(payload)
                delivered += 1
            except Exception as e:
                logger.error(
                    f"Event channel {channel.name} failed for content {event.content_id}: {e}"
                )
        return delivered
