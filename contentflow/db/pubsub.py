"""
Redis Pub/Sub event bus.

Publishes JSON payloads and lets subscribers iterate over decoded
messages from a channel.
"""

import json
from typing import Any, AsyncIterator, Dict

from redis.asyncio import Redis

from contentflow.core.logging import get_logger
from contentflow.db.base import EventBus
from contentflow.db.redis import translate_errors

logger = get_logger(__name__)


class RedisPubSub(EventBus):
    """PUBLISH / SUBSCRIBE with JSON payloads."""

    def __init__(self, redis: Redis):
        self.redis = redis

    async def publish(self, channel: str, payload: Dict[str, Any]) -> int:
        async with translate_errors(f"PUBLISH {channel}"):
            return int(await self.redis.publish(channel, json.dumps(payload)))

    async def subscribe(self, channel: str) -> AsyncIterator[Dict[str, Any]]:
        """
        Yield decoded payloads published on ``channel``.

        Usage:
            async for event in bus.subscribe("content:processed"):
                ...
        """
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(channel)
        logger.info("pubsub_subscribed", channel=channel)
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    yield json.loads(message["data"])
                except (TypeError, ValueError):
                    logger.warning("pubsub_invalid_payload", channel=channel)
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()
