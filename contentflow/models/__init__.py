"""Domain models."""

from contentflow.models.content import (
    AnalysisResult,
    ContentCategory,
    ContentItem,
    ContentStatus,
    ProcessedEvent,
    Sentiment,
)

__all__ = [
    "AnalysisResult",
    "ContentCategory",
    "ContentItem",
    "ContentStatus",
    "ProcessedEvent",
    "Sentiment",
]
