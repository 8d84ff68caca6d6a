"""
RediSearch implementation of the similarity index.

Vectors are stored as JSON documents under ``vector:{content_id}`` together
with a small attribute projection (text preview, status, category,
sentiment, scores). The index covers that prefix:

    $.vector         VECTOR FLAT FLOAT32 DIM=384 COSINE
    $.text           TEXT
    $.status         TAG
    $.category       TAG
    $.sentiment      TAG
    $.toxicityScore  NUMERIC
    $.confidence     NUMERIC

RediSearch reports cosine *distance* (0 = identical); knn_query converts it
to cosine similarity before returning.
"""

import re
from typing import Any, Dict, List, Optional

import numpy as np
from redis.asyncio import Redis
from redis.commands.search.field import NumericField, TagField, TextField, VectorField
from redis.commands.search.query import Query
from redis.exceptions import ResponseError

try:
    from redis.commands.search.index_definition import IndexDefinition, IndexType
except ImportError:  # redis-py < 6 names the module indexDefinition
    from redis.commands.search.indexDefinition import IndexDefinition, IndexType

from contentflow.core.config import settings
from contentflow.core.logging import get_logger
from contentflow.db.base import VectorHit, VectorIndex
from contentflow.db.redis import is_already_exists, translate_errors

logger = get_logger(__name__)

RETURN_FIELDS = ("score", "text", "status", "category", "sentiment", "toxicityScore", "confidence")

_TAG_ESCAPE = re.compile(r"([^A-Za-z0-9_])")


def escape_tag(value: str) -> str:
    """Escape a value for use inside a RediSearch tag query ``{...}``."""
    return _TAG_ESCAPE.sub(r"\\\1", value)


def build_filter_expression(filters: Optional[Dict[str, str]]) -> str:
    """
    Combine tag filters into one RediSearch prefilter.

    {"status": "flagged", "category": "review"} -> "@status:{flagged} @category:{review}"
    """
    if not filters:
        return "*"
    clauses = [
        f"@{name}:{{{escape_tag(str(value))}}}"
        for name, value in filters.items()
        if value is not None and value != ""
    ]
    return " ".join(clauses) if clauses else "*"


class RedisVectorIndex(VectorIndex):
    """kNN index backed by RediSearch over JSON documents."""

    def __init__(
        self,
        redis: Redis,
        index_name: Optional[str] = None,
        key_prefix: Optional[str] = None
    ):
        self.redis = redis
        self.index_name = index_name or settings.VECTOR_INDEX_NAME
        self.key_prefix = key_prefix or settings.VECTOR_KEY_PREFIX

    def _key(self, id: str) -> str:
        return f"{self.key_prefix}{id}"

    async def create_index(self, dimension: int, metric: str = "COSINE") -> bool:
        """
        Create the vector index.

        Returns:
            True when created or already present

        Raises:
            ResponseError: For any other creation failure
        """
        schema = (
            VectorField(
                "$.vector",
                "FLAT",
                {"TYPE": "FLOAT32", "DIM": dimension, "DISTANCE_METRIC": metric},
                as_name="vector",
            ),
            TextField("$.text", as_name="text"),
            TagField("$.status", as_name="status"),
            TagField("$.category", as_name="category"),
            TagField("$.sentiment", as_name="sentiment"),
            NumericField("$.toxicityScore", as_name="toxicityScore"),
            NumericField("$.confidence", as_name="confidence"),
        )
        definition = IndexDefinition(prefix=[self.key_prefix], index_type=IndexType.JSON)

        try:
            async with translate_errors(f"FT.CREATE {self.index_name}"):
                await self.redis.ft(self.index_name).create_index(schema, definition=definition)
            logger.info("vector_index_created", index=self.index_name, dimension=dimension)
            return True
        except ResponseError as e:
            if is_already_exists(e):
                logger.debug("vector_index_exists", index=self.index_name)
                return True
            raise

    async def upsert(self, id: str, vector: List[float], attributes: Dict[str, Any]) -> None:
        document = dict(attributes)
        document["vector"] = [float(x) for x in vector]
        async with translate_errors(f"JSON.SET {self._key(id)}"):
            await self.redis.json().set(self._key(id), "$", document)

    async def knn_query(
        self,
        vector: List[float],
        k: int,
        filters: Optional[Dict[str, str]] = None
    ) -> List[VectorHit]:
        prefilter = build_filter_expression(filters)
        query = (
            Query(f"({prefilter})=>[KNN {k} @vector $vec AS score]")
            .sort_by("score")
            .return_fields(*RETURN_FIELDS)
            .paging(0, k)
            .dialect(2)
        )
        blob = np.asarray(vector, dtype=np.float32).tobytes()

        async with translate_errors(f"FT.SEARCH {self.index_name}"):
            result = await self.redis.ft(self.index_name).search(
                query, query_params={"vec": blob}
            )

        hits = []
        for doc in result.docs:
            attributes = {
                name: getattr(doc, name)
                for name in RETURN_FIELDS
                if name != "score" and hasattr(doc, name)
            }
            distance = float(getattr(doc, "score", 1.0))
            doc_id = doc.id[len(self.key_prefix):] if doc.id.startswith(self.key_prefix) else doc.id
            hits.append(VectorHit(id=doc_id, score=1.0 - distance, attributes=attributes))
        return hits
