"""
Pipeline context.

Single construction point for the collaborators and services of one
process. Services receive their dependencies from here instead of
module-level singletons, so tests can assemble the same graph over
in-memory stores.
"""

from dataclasses import dataclass
from typing import Optional

from redis.asyncio import Redis

from contentflow.core.config import Settings, settings as default_settings
from contentflow.db.base import (
    CardinalityStore,
    DocumentStore,
    EventBus,
    MembershipStore,
    StreamLog,
    TimeSeriesStore,
    VectorIndex,
)
from contentflow.db.document_store import RedisDocumentStore
from contentflow.db.probabilistic import RedisCardinalityStore, RedisMembershipStore
from contentflow.db.pubsub import RedisPubSub
from contentflow.db.stream_log import RedisStreamLog
from contentflow.db.timeseries import RedisTimeSeriesStore
from contentflow.db.vector_index import RedisVectorIndex
from contentflow.services.analytics import AnalyticsService
from contentflow.services.analyzer import ContentAnalyzer
from contentflow.services.duplicates import DuplicateDetector
from contentflow.services.embedder import EmbeddingGenerator
from contentflow.services.ledger import ProcessingLedger
from contentflow.services.metrics import MetricsAggregator
from contentflow.services.publisher import EventPublisher, LocalBroadcastChannel, RedisPubSubChannel
from contentflow.services.submission import ContentSubmissionService
from contentflow.services.vector_index import VectorSearchService


@dataclass
class PipelineContext:
    """Everything a worker or an API layer needs, wired together."""

    settings: Settings

    # Collaborators
    stream_log: StreamLog
    documents: DocumentStore
    vector_index: VectorIndex
    timeseries: TimeSeriesStore
    membership: MembershipStore
    cardinality: CardinalityStore
    bus: EventBus

    # Services
    analyzer: ContentAnalyzer
    embedder: EmbeddingGenerator
    duplicates: DuplicateDetector
    ledger: ProcessingLedger
    metrics: MetricsAggregator
    vector_search: VectorSearchService
    publisher: EventPublisher
    local_events: LocalBroadcastChannel
    submissions: ContentSubmissionService
    analytics: AnalyticsService

    redis: Optional[Redis] = None

    @classmethod
    def from_stores(
        cls,
        *,
        stream_log: StreamLog,
        documents: DocumentStore,
        vector_index: VectorIndex,
        timeseries: TimeSeriesStore,
        membership: MembershipStore,
        cardinality: CardinalityStore,
        bus: EventBus,
        app_settings: Optional[Settings] = None,
        redis: Optional[Redis] = None
    ) -> "PipelineContext":
        """Build the services on top of the given collaborators."""
        cfg = app_settings or default_settings

        embedder = EmbeddingGenerator(cfg.EMBEDDING_DIMENSION, cfg.EMBEDDING_FALLBACK_MODE)
        vector_search = VectorSearchService(
            vector_index,
            embedder,
            text_preview_chars=cfg.VECTOR_TEXT_PREVIEW_CHARS,
            default_threshold=cfg.SIMILARITY_THRESHOLD,
        )
        metrics = MetricsAggregator(
            timeseries,
            retention_ms=cfg.METRICS_RETENTION_MS,
            labels=cfg.metrics_labels_dict,
        )
        local_events = LocalBroadcastChannel(cfg.LOCAL_EVENT_QUEUE_SIZE)
        publisher = EventPublisher([
            RedisPubSubChannel(bus, cfg.EVENTS_CHANNEL),
            local_events,
        ])

        return cls(
            settings=cfg,
            stream_log=stream_log,
            documents=documents,
            vector_index=vector_index,
            timeseries=timeseries,
            membership=membership,
            cardinality=cardinality,
            bus=bus,
            analyzer=ContentAnalyzer(),
            embedder=embedder,
            duplicates=DuplicateDetector(
                membership,
                key=cfg.DUPLICATE_FILTER_KEY,
                error_rate=cfg.BLOOM_ERROR_RATE,
                capacity=cfg.BLOOM_CAPACITY,
            ),
            ledger=ProcessingLedger(
                documents,
                key_prefix=cfg.PROCESSED_KEY_PREFIX,
                ttl_seconds=cfg.PROCESSED_ID_TTL_SECONDS,
            ),
            metrics=metrics,
            vector_search=vector_search,
            publisher=publisher,
            local_events=local_events,
            submissions=ContentSubmissionService(
                stream_log, documents, cardinality, vector_search, cfg
            ),
            analytics=AnalyticsService(metrics, cardinality, cfg),
            redis=redis,
        )

    @classmethod
    def from_redis(cls, redis: Redis, app_settings: Optional[Settings] = None) -> "PipelineContext":
        """Build the context over Redis-backed collaborators."""
        cfg = app_settings or default_settings
        return cls.from_stores(
            stream_log=RedisStreamLog(redis),
            documents=RedisDocumentStore(redis),
            vector_index=RedisVectorIndex(redis, cfg.VECTOR_INDEX_NAME, cfg.VECTOR_KEY_PREFIX),
            timeseries=RedisTimeSeriesStore(redis),
            membership=RedisMembershipStore(redis, use_bloom=cfg.DUPLICATE_USE_BLOOM),
            cardinality=RedisCardinalityStore(redis),
            bus=RedisPubSub(redis),
            app_settings=cfg,
            redis=redis,
        )
