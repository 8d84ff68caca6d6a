"""
Vector Search Service

Bridges the embedding generator and the similarity index:
- stores one vector per analyzed content item
- finds content similar to a piece of text (client-side threshold)
- semantic search with status/category attribute filters
"""

import logging
import time
from typing import Any, Dict, List, Optional

from contentflow.core.config import settings
from contentflow.core.retry import retry_async
from contentflow.db.base import VectorHit, VectorIndex
from contentflow.models.content import AnalysisResult, ContentStatus
from contentflow.schemas.content import SearchFilters, SearchResponse, SimilarContent
from contentflow.services.embedder import EmbeddingGenerator

logger = logging.getLogger(__name__)


def _as_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_similar(hit: VectorHit) -> SimilarContent:
    attributes = hit.attributes
    return SimilarContent(
        id=hit.id,
        text=attributes.get("text"),
        similarity=round(hit.score, 6),
        status=attributes.get("status"),
        category=attributes.get("category"),
        sentiment=attributes.get("sentiment"),
        toxicity_score=_as_float(attributes.get("toxicityScore")),
    )


class VectorSearchService:
    """
    Similarity operations over stored content vectors.

    Usage:
    ------
    service = VectorSearchService(index, embedder)
    await service.initialize()
    await service.store_content_vector(content_id, text, analysis, status)
    similar = await service.find_similar("great product", limit=5, threshold=0.7)
    """

    def __init__(
        self,
        index: VectorIndex,
        embedder: EmbeddingGenerator,
        text_preview_chars: Optional[int] = None,
        default_threshold: Optional[float] = None
    ):
        self.index = index
        self.embedder = embedder
        self.text_preview_chars = text_preview_chars or settings.VECTOR_TEXT_PREVIEW_CHARS
        self.default_threshold = (
            settings.SIMILARITY_THRESHOLD if default_threshold is None else default_threshold
        )

    async def initialize(self) -> None:
        """Create the index. Idempotent; errors propagate to the caller."""
        await self.index.create_index(
            self.embedder.get_embedding_dimension(),
            settings.VECTOR_DISTANCE_METRIC,
        )

    def build_attributes(
        self,
        text: str,
        analysis: AnalysisResult,
        status: ContentStatus,
        timestamp: Optional[int] = None
    ) -> Dict[str, Any]:
        """Attribute projection stored next to the vector."""
        return {
            "text": text[: self.text_preview_chars],
            "status": status.value,
            "category": analysis.category,
            "sentiment": analysis.sentiment.value,
            "toxicityScore": analysis.toxicity_score,
            "confidence": analysis.confidence,
            "timestamp": timestamp if timestamp is not None else int(time.time() * 1000),
        }

    async def store_content_vector(
        self,
        content_id: str,
        text: str,
        analysis: AnalysisResult,
        status: ContentStatus,
        vector: Optional[List[float]] = None,
        timestamp: Optional[int] = None
    ) -> List[float]:
        """
        Upsert the vector for a content item.

        Args:
            vector: Precomputed embedding (computed from ``text`` if omitted)

        Returns:
            The stored vector

        Raises:
            TransientIOError: If the index stays unreachable after retries
        """
        embedding = vector if vector is not None else self.embedder.embed(text)
        attributes = self.build_attributes(text, analysis, status, timestamp)

        await retry_async(
            lambda: self.index.upsert(content_id, embedding, attributes),
            description=f"vector upsert {content_id}",
        )
        logger.debug(f"Vector stored for content: {content_id}")
        return embedding

    async def find_similar(
        self,
        text: str,
        limit: int = 5,
        threshold: Optional[float] = None
    ) -> List[SimilarContent]:
        """
        Content whose cosine similarity to ``text`` is at least ``threshold``.

        Results below the threshold are dropped here, after the index query.
        """
        cutoff = self.default_threshold if threshold is None else threshold
        vector = self.embedder.embed(text)
        hits = await self.index.knn_query(vector, limit)
        return [_to_similar(hit) for hit in hits if hit.score >= cutoff]

    async def semantic_search(
        self,
        query: str,
        filters: Optional[SearchFilters | Dict[str, Any]] = None,
        limit: Optional[int] = None
    ) -> SearchResponse:
        """
        kNN search for ``query`` restricted by status and/or category.

        Both filters are combined (AND) into a single index prefilter.
        """
        if isinstance(filters, dict):
            filters = SearchFilters.model_validate(filters)
        k = limit or settings.SEARCH_DEFAULT_LIMIT

        tag_filters: Dict[str, str] = {}
        if filters is not None:
            if filters.status is not None:
                tag_filters["status"] = filters.status.value
            if filters.category is not None:
                tag_filters["category"] = filters.category.value

        vector = self.embedder.embed(query)
        hits = await self.index.knn_query(vector, k, tag_filters or None)
        results = [_to_similar(hit) for hit in hits]
        return SearchResponse(query=query, total=len(results), results=results)
