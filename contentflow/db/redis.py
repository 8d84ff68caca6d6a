"""
Redis connection management.

Provides the async Redis client used by every Redis-backed collaborator:
- Streams (submission log, consumer groups)
- JSON documents (content records, feedback)
- RediSearch vector index
- TimeSeries metrics
- Bloom filter / HyperLogLog
- Pub/Sub

Clients are created explicitly and handed to ``PipelineContext``;
nothing here keeps module-level connection state.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from contentflow.core.config import Settings, settings as default_settings
from contentflow.core.exceptions import TransientIOError
from contentflow.core.logging import get_logger

logger = get_logger(__name__)

TRANSIENT_REDIS_ERRORS = (RedisConnectionError, RedisTimeoutError, OSError)


async def create_redis(app_settings: Optional[Settings] = None) -> Redis:
    """
    Create a Redis client backed by its own connection pool.

    Called once during worker startup.

    Raises:
        TransientIOError: If the initial ping fails
    """
    cfg = app_settings or default_settings
    logger.info("redis_connecting", url=cfg.REDIS_URL)

    pool = ConnectionPool.from_url(
        cfg.REDIS_URL,
        decode_responses=True,  # Auto-decode bytes to strings
        max_connections=cfg.REDIS_MAX_CONNECTIONS,
        socket_connect_timeout=cfg.REDIS_SOCKET_CONNECT_TIMEOUT,
        socket_keepalive=True,
    )
    client = Redis(connection_pool=pool)

    try:
        await client.ping()
    except TRANSIENT_REDIS_ERRORS as e:
        logger.error("redis_connection_failed", error=str(e))
        await client.aclose()
        await pool.disconnect()
        raise TransientIOError("redis ping", e) from e

    logger.info("redis_connected")
    return client


async def close_redis(client: Optional[Redis]) -> None:
    """
    Close a client and its pool.

    Called during worker shutdown.
    """
    if client is None:
        return
    logger.info("redis_closing")
    await client.aclose()
    await client.connection_pool.disconnect()


async def check_redis_health(client: Redis) -> bool:
    """
    Check if Redis is healthy and responsive.

    Returns:
        bool: True if Redis is healthy, False otherwise
    """
    try:
        response = await client.ping()
        return response is True
    except TRANSIENT_REDIS_ERRORS as e:
        logger.error("redis_health_check_failed", error=str(e))
        return False


@asynccontextmanager
async def translate_errors(operation: str) -> AsyncIterator[None]:
    """
    Re-raise Redis connectivity errors as TransientIOError.

    Usage:
        async with translate_errors("XADD content:stream"):
            await redis.xadd(...)
    """
    try:
        yield
    except TRANSIENT_REDIS_ERRORS as e:
        raise TransientIOError(operation, e) from e


def is_already_exists(error: ResponseError) -> bool:
    """True for the "already exists" family of Redis module errors."""
    message = str(error).lower()
    return (
        "already exists" in message
        or "busygroup" in message
        or "item exists" in message
    )
