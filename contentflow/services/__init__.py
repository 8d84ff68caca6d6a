"""Pipeline services."""

from contentflow.services.analytics import AnalyticsService
from contentflow.services.analyzer import ContentAnalyzer
from contentflow.services.context import PipelineContext
from contentflow.services.duplicates import DuplicateDetector
from contentflow.services.embedder import EmbeddingGenerator, content_fingerprint, content_hash
from contentflow.services.ledger import LedgerClaim, ProcessingLedger
from contentflow.services.metrics import MetricsAggregator
from contentflow.services.publisher import (
    EventChannel,
    EventPublisher,
    LocalBroadcastChannel,
    RedisPubSubChannel,
)
from contentflow.services.submission import ContentSubmissionService
from contentflow.services.vector_index import VectorSearchService

__all__ = [
    "AnalyticsService",
    "ContentAnalyzer",
    "ContentSubmissionService",
    "DuplicateDetector",
    "EmbeddingGenerator",
    "EventChannel",
    "EventPublisher",
    "LedgerClaim",
    "LocalBroadcastChannel",
    "MetricsAggregator",
    "PipelineContext",
    "ProcessingLedger",
    "RedisPubSubChannel",
    "VectorSearchService",
    "content_fingerprint",
    "content_hash",
]
