"""Collaborator contracts and their Redis implementations."""

from contentflow.db.base import (
    CardinalityStore,
    DocumentStore,
    EventBus,
    MembershipStore,
    StreamLog,
    StreamMessage,
    TimeSeriesStore,
    VectorHit,
    VectorIndex,
)
from contentflow.db.document_store import RedisDocumentStore
from contentflow.db.probabilistic import RedisCardinalityStore, RedisMembershipStore
from contentflow.db.pubsub import RedisPubSub
from contentflow.db.redis import check_redis_health, close_redis, create_redis
from contentflow.db.stream_log import RedisStreamLog
from contentflow.db.timeseries import RedisTimeSeriesStore
from contentflow.db.vector_index import RedisVectorIndex

__all__ = [
    # Contracts
    "CardinalityStore",
    "DocumentStore",
    "EventBus",
    "MembershipStore",
    "StreamLog",
    "StreamMessage",
    "TimeSeriesStore",
    "VectorHit",
    "VectorIndex",
    # Redis implementations
    "RedisCardinalityStore",
    "RedisDocumentStore",
    "RedisMembershipStore",
    "RedisPubSub",
    "RedisStreamLog",
    "RedisTimeSeriesStore",
    "RedisVectorIndex",
    # Connection management
    "create_redis",
    "close_redis",
    "check_redis_health",
]
