"""
Content Models

Domain models for the moderation pipeline.

Models Included:
----------------
1. ContentStatus (Enum) - Lifecycle status of a submission
2. Sentiment (Enum) - Sentiment label produced by the analyzer
3. ContentCategory (Enum) - Categories accepted on submission
4. AnalysisResult - Output of ContentAnalyzer.analyze
5. ContentItem - The stored content record (one per submission)
6. ProcessedEvent - Notification fanned out after processing

Storage Format:
---------------
Models are stored in Redis as JSON with camelCase keys
(``contentId``, ``toxicityScore``...). Python code uses snake_case
attributes; ``to_document()`` / ``from_document()`` convert between the two.

Status Flow:
------------
    PENDING → APPROVED   (analysis ok, not toxic)
    PENDING → FLAGGED    (analysis ok, toxic)
    PENDING → ERROR      (processing failed)

Terminal statuses are never left again.
"""

import enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from contentflow.core.exceptions import InvalidStatusTransition


# ================================
# Enums
# ================================

class ContentStatus(str, enum.Enum):
    """Lifecycle status of a content item."""

    PENDING = "pending"
    APPROVED = "approved"
    FLAGGED = "flagged"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self is not ContentStatus.PENDING

    def __str__(self) -> str:
        """Return the string value of the enum."""
        return self.value


class Sentiment(str, enum.Enum):
    """Sentiment label."""

    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"

    def __str__(self) -> str:
        return self.value


class ContentCategory(str, enum.Enum):
    """Categories a submitter may choose."""

    REVIEW = "review"
    COMMENT = "comment"
    FEEDBACK = "feedback"
    SUPPORT = "support"
    GENERAL = "general"

    def __str__(self) -> str:
        return self.value


class CamelModel(BaseModel):
    """Base model serializing to camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )

    def to_document(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_document(cls, document: dict[str, Any]):
        """Build a model from a stored camelCase document."""
        return cls.model_validate(document)


# ================================
# Analysis
# ================================

class AnalysisResult(CamelModel):
    """
    Result of scoring a piece of text.

    Pure function of (text, category hint): analyzing the same input twice
    yields an equal result. ``error`` is only set when the analyzer fell back
    to its degraded neutral result.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    toxicity_score: float = Field(ge=0.0, le=1.0)
    positive_score: float = Field(ge=0.0, le=1.0)
    sentiment: Sentiment
    category: str
    is_toxic: bool
    confidence: float = Field(ge=0.0, le=0.95)
    keywords: list[str] = Field(default_factory=list, max_length=5)
    word_count: int = Field(ge=0)
    language: str = "en"
    error: Optional[str] = None

    @property
    def degraded(self) -> bool:
        """True when this result came from the analyzer's failure path."""
        return self.error is not None


# ================================
# Content Item
# ================================

class ContentItem(CamelModel):
    """
    A submitted piece of content and its moderation verdict.

    Created with status=pending by the submission service. The stream
    consumer writes the terminal update exactly once.
    """

    id: str
    text: str
    category: str = ContentCategory.GENERAL.value
    user_id: str = "anonymous"
    source: str = "web"
    submitted_at: int = Field(description="Submission time (epoch ms)")
    status: ContentStatus = ContentStatus.PENDING
    analysis: Optional[AnalysisResult] = None
    processed_at: Optional[int] = None
    processing_time_ms: Optional[int] = None
    stream_id: Optional[str] = None
    is_duplicate: Optional[bool] = None
    error: Optional[str] = None

    def apply_terminal(
        self,
        status: ContentStatus,
        *,
        processed_at: int,
        processing_time_ms: int,
        analysis: Optional[AnalysisResult] = None,
        is_duplicate: Optional[bool] = None,
        error: Optional[str] = None,
    ) -> "ContentItem":
        """
        Return a copy moved to a terminal status.

        Raises:
            ValueError: If ``status`` is not terminal
            InvalidStatusTransition: If this item is already terminal
        """
        if not status.is_terminal:
            raise ValueError("apply_terminal requires a terminal status")
        if self.status.is_terminal:
            raise InvalidStatusTransition(self.id, self.status.value, status.value)

        return self.model_copy(
            update={
                "status": status,
                "analysis": analysis if analysis is not None else self.analysis,
                "processed_at": processed_at,
                "processing_time_ms": processing_time_ms,
                "is_duplicate": is_duplicate,
                "error": error,
            }
        )


# ================================
# Events
# ================================

class ProcessedEvent(CamelModel):
    """Payload broadcast after a content item reaches a terminal status."""

    content_id: str
    status: ContentStatus
    analysis: Optional[AnalysisResult] = None
    processing_time_ms: int
    timestamp: int
    is_duplicate: bool = False
