"""Request/response schemas."""

from contentflow.schemas.content import (
    BulkItemResult,
    BulkSubmissionResponse,
    ContentAnalytics,
    FeedbackInput,
    FeedbackRecord,
    MetricPoint,
    SearchFilters,
    SearchResponse,
    SimilarContent,
    SubmissionInput,
    SubmissionResponse,
    TimeSeriesResponse,
    validate_feedback,
    validate_submission,
)

__all__ = [
    "BulkItemResult",
    "BulkSubmissionResponse",
    "ContentAnalytics",
    "FeedbackInput",
    "FeedbackRecord",
    "MetricPoint",
    "SearchFilters",
    "SearchResponse",
    "SimilarContent",
    "SubmissionInput",
    "SubmissionResponse",
    "TimeSeriesResponse",
    "validate_feedback",
    "validate_submission",
]
