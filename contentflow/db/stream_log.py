"""
Redis Streams implementation of the durable submission log.

Uses consumer groups so several worker processes can share one stream,
each entry being delivered to a single consumer at a time. Entries stay in
the group's pending list until explicitly acknowledged.
"""

from typing import Any, Dict, List

from redis.asyncio import Redis
from redis.exceptions import ResponseError

from contentflow.core.logging import get_logger
from contentflow.db.base import StreamLog, StreamMessage
from contentflow.db.redis import is_already_exists, translate_errors

logger = get_logger(__name__)


def _parse_entries(entries: Any) -> List[StreamMessage]:
    """Convert [(id, {field: value}), ...] into StreamMessages."""
    messages = []
    for entry_id, fields in entries or []:
        # XAUTOCLAIM reports entries deleted from the stream with no fields
        if fields is None:
            continue
        messages.append(StreamMessage(id=entry_id, fields=dict(fields)))
    return messages


class RedisStreamLog(StreamLog):
    """Stream log backed by XADD / XREADGROUP / XACK / XAUTOCLAIM."""

    def __init__(self, redis: Redis, max_length: int | None = None):
        """
        Args:
            redis: Async Redis client (decode_responses=True)
            max_length: Optional approximate MAXLEN cap applied on append
        """
        self.redis = redis
        self.max_length = max_length

    async def append(self, stream: str, fields: Dict[str, str]) -> str:
        async with translate_errors(f"XADD {stream}"):
            return await self.redis.xadd(
                stream,
                fields,
                maxlen=self.max_length,
                approximate=True,
            )

    async def create_group(self, stream: str, group: str, start_id: str = "0") -> bool:
        """
        Create the consumer group (and the stream if missing).

        Starts at "0" by default so entries appended before the first worker
        came up are still processed.
        """
        try:
            async with translate_errors(f"XGROUP CREATE {stream} {group}"):
                await self.redis.xgroup_create(stream, group, id=start_id, mkstream=True)
            logger.info("consumer_group_created", stream=stream, group=group)
            return True
        except ResponseError as e:
            if is_already_exists(e):
                logger.debug("consumer_group_exists", stream=stream, group=group)
                return True
            raise

    async def read_group(
        self,
        stream: str,
        group: str,
        consumer: str,
        count: int,
        block_ms: int
    ) -> List[StreamMessage]:
        async with translate_errors(f"XREADGROUP {stream} {group}"):
            response = await self.redis.xreadgroup(
                group,
                consumer,
                {stream: ">"},
                count=count,
                block=block_ms,
            )

        if not response:
            return []

        messages: List[StreamMessage] = []
        if isinstance(response, dict):
            # RESP3: {stream: [entries]}
            for batches in response.values():
                for entries in batches:
                    messages.extend(_parse_entries(entries))
        else:
            # RESP2: [[stream, entries], ...]
            for _stream_name, entries in response:
                messages.extend(_parse_entries(entries))
        return messages

    async def ack(self, stream: str, group: str, *message_ids: str) -> int:
        if not message_ids:
            return 0
        async with translate_errors(f"XACK {stream} {group}"):
            return await self.redis.xack(stream, group, *message_ids)

    async def claim_stale(
        self,
        stream: str,
        group: str,
        consumer: str,
        min_idle_ms: int,
        count: int
    ) -> List[StreamMessage]:
        async with translate_errors(f"XAUTOCLAIM {stream} {group}"):
            response = await self.redis.xautoclaim(
                stream,
                group,
                consumer,
                min_idle_time=min_idle_ms,
                start_id="0-0",
                count=count,
            )

        # [next_start_id, entries, deleted_ids] (deleted_ids on Redis >= 7)
        entries = response[1] if response and len(response) > 1 else []
        messages = _parse_entries(entries)
        if messages:
            logger.info(
                "stale_messages_claimed",
                stream=stream,
                group=group,
                consumer=consumer,
                count=len(messages),
            )
        return messages

    async def length(self, stream: str) -> int:
        """Number of entries in the stream."""
        async with translate_errors(f"XLEN {stream}"):
            return await self.redis.xlen(stream)
