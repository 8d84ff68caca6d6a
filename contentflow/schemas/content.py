"""
Pydantic schemas for content submission, search and analytics payloads.

These schemas define the input/output structures exchanged with callers
(HTTP layers, dashboards, subscribers). They accept both snake_case and
camelCase keys and serialize to camelCase.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from contentflow.core.exceptions import SubmissionValidationError
from contentflow.models.content import ContentCategory, ContentStatus


class _Schema(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ========================================
# Request Schemas
# ========================================


class SubmissionInput(_Schema):
    """Request schema for submitting content for moderation."""

    text: str = Field(
        ...,
        description="Free text to moderate",
        min_length=1,
        max_length=5000,
        examples=["This product is absolutely amazing! Best purchase ever!"]
    )

    category: Optional[ContentCategory] = Field(
        None,
        description="Optional category hint"
    )

    user_id: Optional[str] = Field(
        None,
        description="Submitting user (defaults to 'anonymous')",
        max_length=200
    )

    source: Optional[str] = Field(
        None,
        description="Submission channel (defaults to 'web')",
        max_length=100
    )

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: str) -> str:
        """Reject whitespace-only text."""
        if not v.strip():
            raise ValueError("Text cannot be empty")
        return v


class FeedbackInput(_Schema):
    """Request schema for moderator/user feedback on a verdict."""

    feedback: Literal["correct", "incorrect", "spam", "not_spam"] = Field(
        ...,
        description="Feedback label"
    )

    comment: Optional[str] = Field(
        None,
        description="Optional free-text comment",
        max_length=500
    )


class SearchFilters(_Schema):
    """Attribute filters applied to similarity queries."""

    status: Optional[ContentStatus] = None
    category: Optional[ContentCategory] = None


def _validate(model: type[BaseModel], data: Any, label: str) -> Any:
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise SubmissionValidationError(
            f"{label} validation failed",
            details=e.errors(include_url=False),
        ) from e


def validate_submission(data: Any) -> SubmissionInput:
    """
    Validate raw submission data.

    Raises:
        SubmissionValidationError: With pydantic error details
    """
    return _validate(SubmissionInput, data, "Submission")


def validate_feedback(data: Any) -> FeedbackInput:
    """Validate raw feedback data."""
    return _validate(FeedbackInput, data, "Feedback")


# ========================================
# Response Schemas
# ========================================


class SubmissionResponse(_Schema):
    """Returned after a submission is appended to the stream."""

    content_id: str = Field(description="Generated content ID")
    stream_id: str = Field(description="Stream entry ID")


class BulkItemResult(_Schema):
    """Outcome of one item of a bulk submission."""

    index: int = Field(description="Position in the submitted list")
    success: bool
    content_id: Optional[str] = None
    stream_id: Optional[str] = None
    error: Optional[str] = Field(default=None, description="Why the item was rejected")
    details: List[Dict[str, Any]] = Field(default_factory=list, description="Validation details")


class BulkSubmissionResponse(_Schema):
    """Per-item results of a bulk submission, in input order."""

    total: int
    successful: int
    failed: int
    results: List[BulkItemResult]


class SimilarContent(_Schema):
    """One hit of a similarity query."""

    id: str = Field(description="Content ID")
    text: Optional[str] = Field(default=None, description="Stored text preview")
    similarity: float = Field(description="Cosine similarity (higher is closer)")
    status: Optional[str] = None
    category: Optional[str] = None
    sentiment: Optional[str] = None
    toxicity_score: Optional[float] = None


class SearchResponse(_Schema):
    """Semantic search results."""

    query: str
    total: int
    results: List[SimilarContent] = Field(default_factory=list)


class MetricPoint(_Schema):
    """A single (possibly aggregated) time-series point."""

    timestamp: int = Field(description="Epoch milliseconds (bucket start when aggregated)")
    value: float


class TimeSeriesResponse(_Schema):
    """Time series for one metric over a preset range."""

    metric: str
    time_range: str
    aggregation: Optional[str] = None
    data: List[MetricPoint] = Field(default_factory=list)


class FeedbackRecord(_Schema):
    """Stored feedback document."""

    id: str
    content_id: str
    feedback: str
    comment: Optional[str] = None
    timestamp: int


class ContentAnalytics(_Schema):
    """Distributions derived from processed content over a window."""

    time_range: str
    total: int = 0
    sentiment_distribution: Dict[str, float] = Field(default_factory=dict)
    category_distribution: Dict[str, float] = Field(default_factory=dict)
    toxicity_levels: Dict[str, float] = Field(default_factory=dict)
    average_confidence: float = 0.0
    average_processing_time_ms: float = 0.0
