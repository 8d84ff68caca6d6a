"""
Content Submission Service

Entry side of the pipeline: validates submissions, appends them to the
content stream and keeps the pending record readable until a worker writes
the verdict. Also stores feedback and exposes read/search helpers.
"""

import logging
import time
import uuid
from typing import Any, Dict, List, Optional, Sequence

from contentflow.core.config import Settings, settings as default_settings
from contentflow.core.exceptions import SubmissionValidationError, TransientIOError
from contentflow.core.retry import retry_async
from contentflow.db.base import CardinalityStore, DocumentStore, StreamLog
from contentflow.models.content import ContentCategory, ContentItem
from contentflow.schemas.content import (
    BulkItemResult,
    BulkSubmissionResponse,
    FeedbackInput,
    FeedbackRecord,
    SearchFilters,
    SearchResponse,
    SimilarContent,
    SubmissionInput,
    SubmissionResponse,
    validate_feedback,
    validate_submission,
)
from contentflow.services.vector_index import VectorSearchService

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class ContentSubmissionService:
    """
    Accepts content for moderation.

    Usage:
    ------
    service = ContentSubmissionService(stream_log, documents, cardinality, vector_search)
    response = await service.submit({"text": "Great product!", "category": "review"})
    item = await service.get_content(response.content_id)
    """

    def __init__(
        self,
        stream_log: StreamLog,
        documents: DocumentStore,
        cardinality: CardinalityStore,
        vector_search: VectorSearchService,
        app_settings: Optional[Settings] = None
    ):
        self.stream_log = stream_log
        self.documents = documents
        self.cardinality = cardinality
        self.vector_search = vector_search
        self.settings = app_settings or default_settings

    def content_key(self, content_id: str) -> str:
        return f"{self.settings.CONTENT_KEY_PREFIX}{content_id}"

    def feedback_key(self, feedback_id: str) -> str:
        return f"{self.settings.FEEDBACK_KEY_PREFIX}{feedback_id}"

    # ========================================
    # Submission
    # ========================================

    async def submit(self, data: SubmissionInput | Dict[str, Any]) -> SubmissionResponse:
        """
        Validate and enqueue a submission.

        The stream entry is appended first; the pending record is then
        written only if no worker has already stored a verdict for it.

        Raises:
            SubmissionValidationError: Invalid input (nothing is enqueued)
            TransientIOError: The stream or document store stayed unreachable
        """
        submission = validate_submission(data)

        content_id = str(uuid.uuid4())
        submitted_at = _now_ms()
        category = (submission.category or ContentCategory.GENERAL).value
        user_id = submission.user_id or "anonymous"
        source = submission.source or "web"

        fields = {
            "contentId": content_id,
            "text": submission.text,
            "category": category,
            "userId": user_id,
            "timestamp": str(submitted_at),
            "source": source,
        }
        stream_id = await retry_async(
            lambda: self.stream_log.append(self.settings.CONTENT_STREAM_KEY, fields),
            description=f"XADD {content_id}",
        )

        item = ContentItem(
            id=content_id,
            text=submission.text,
            category=category,
            user_id=user_id,
            source=source,
            submitted_at=submitted_at,
            stream_id=stream_id,
        )
        existing = await retry_async(
            lambda: self.documents.put_if_absent(self.content_key(content_id), item.to_document()),
            description=f"pending record {content_id}",
        )
        if existing is not None:
            logger.debug(f"Content {content_id} already processed before pending write")

        try:
            await self.cardinality.add(self.settings.UNIQUE_VISITORS_KEY, [user_id])
        except Exception as e:
            logger.warning(f"Unique visitor tracking failed for {user_id}: {e}")

        logger.info(f"Content submitted: {content_id} (stream {stream_id})")
        return SubmissionResponse(content_id=content_id, stream_id=stream_id)

    async def submit_bulk(
        self,
        items: Sequence[SubmissionInput | Dict[str, Any]]
    ) -> BulkSubmissionResponse:
        """
        Submit several items one by one.

        Each item is validated and enqueued on its own, so a rejected item
        does not fail the rest of the batch.

        Raises:
            SubmissionValidationError: Empty list or more than BULK_SUBMIT_MAX items
        """
        if not items:
            raise SubmissionValidationError("Bulk submission requires at least one item")
        limit = self.settings.BULK_SUBMIT_MAX
        if len(items) > limit:
            raise SubmissionValidationError(
                f"Bulk submission accepts at most {limit} items, got {len(items)}"
            )

        results: List[BulkItemResult] = []
        for index, data in enumerate(items):
            try:
                response = await self.submit(data)
            except SubmissionValidationError as e:
                results.append(BulkItemResult(
                    index=index, success=False, error=str(e), details=e.details
                ))
            except TransientIOError as e:
                logger.warning(f"Bulk item {index} could not be enqueued: {e}")
                results.append(BulkItemResult(index=index, success=False, error=str(e)))
            else:
                results.append(BulkItemResult(
                    index=index,
                    success=True,
                    content_id=response.content_id,
                    stream_id=response.stream_id,
                ))

        successful = sum(1 for result in results if result.success)
        logger.info(f"Bulk submission: {successful}/{len(results)} items enqueued")
        return BulkSubmissionResponse(
            total=len(results),
            successful=successful,
            failed=len(results) - successful,
            results=results,
        )

    async def get_content(self, content_id: str) -> Optional[ContentItem]:
        """Stored record for ``content_id`` or None."""
        document = await retry_async(
            lambda: self.documents.get(self.content_key(content_id)),
            description=f"get content {content_id}",
        )
        if document is None:
            return None
        return ContentItem.from_document(document)

    # ========================================
    # Feedback
    # ========================================

    async def submit_feedback(
        self,
        content_id: str,
        data: FeedbackInput | Dict[str, Any]
    ) -> FeedbackRecord:
        """
        Store feedback for a content item and append it to the feedback stream.

        Raises:
            SubmissionValidationError: Invalid feedback label or comment
        """
        feedback = validate_feedback(data)
        record = FeedbackRecord(
            id=str(uuid.uuid4()),
            content_id=content_id,
            feedback=feedback.feedback,
            comment=feedback.comment,
            timestamp=_now_ms(),
        )

        await retry_async(
            lambda: self.documents.put(self.feedback_key(record.id), record.model_dump(by_alias=True)),
            description=f"feedback record {record.id}",
        )

        fields = {
            "feedbackId": record.id,
            "contentId": content_id,
            "feedback": record.feedback,
            "timestamp": str(record.timestamp),
        }
        if record.comment:
            fields["comment"] = record.comment
        await retry_async(
            lambda: self.stream_log.append(self.settings.FEEDBACK_STREAM_KEY, fields),
            description=f"XADD feedback {record.id}",
        )

        logger.info(f"Feedback {record.feedback} recorded for content {content_id}")
        return record

    # ========================================
    # Search
    # ========================================

    async def search_content(
        self,
        query: str,
        filters: Optional[SearchFilters | Dict[str, Any]] = None,
        limit: Optional[int] = None
    ) -> SearchResponse:
        return await self.vector_search.semantic_search(query, filters, limit)

    async def find_similar(
        self,
        text: str,
        limit: int = 5,
        threshold: Optional[float] = None
    ) -> List[SimilarContent]:
        return await self.vector_search.find_similar(text, limit, threshold)
