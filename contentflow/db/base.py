"""
Collaborator contracts used by the pipeline.

Each contract is a small abstract base class. The Redis-backed
implementations live next to this module; tests use in-memory fakes.
Implementations raise TransientIOError for connectivity problems so the
pipeline can retry them uniformly.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


@dataclass
class StreamMessage:
    """One entry read from a stream via a consumer group."""

    id: str
    fields: Dict[str, str]


@dataclass
class VectorHit:
    """One kNN result. ``score`` is cosine similarity (1.0 = identical)."""

    id: str
    score: float
    attributes: Dict[str, Any] = field(default_factory=dict)


class StreamLog(ABC):
    """Durable ordered log with consumer groups."""

    @abstractmethod
    async def append(self, stream: str, fields: Dict[str, str]) -> str:
        """Append an entry and return its ID."""

    @abstractmethod
    async def create_group(self, stream: str, group: str, start_id: str = "$") -> bool:
        """Create a consumer group. Idempotent: an existing group is not an error."""

    @abstractmethod
    async def read_group(
        self,
        stream: str,
        group: str,
        consumer: str,
        count: int,
        block_ms: int
    ) -> List[StreamMessage]:
        """Blocking read of up to ``count`` new entries for ``consumer``."""

    @abstractmethod
    async def ack(self, stream: str, group: str, *message_ids: str) -> int:
        """Acknowledge processed entries. Returns the number acknowledged."""

    @abstractmethod
    async def claim_stale(
        self,
        stream: str,
        group: str,
        consumer: str,
        min_idle_ms: int,
        count: int
    ) -> List[StreamMessage]:
        """Take over pending entries idle for at least ``min_idle_ms``."""


class DocumentStore(ABC):
    """Key/document store."""

    @abstractmethod
    async def put(self, key: str, document: Dict[str, Any]) -> None:
        """Insert or replace the document at ``key``."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the document at ``key`` or None."""

    @abstractmethod
    async def put_if_absent(
        self,
        key: str,
        document: Dict[str, Any],
        ttl_seconds: Optional[int] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Atomically store ``document`` unless ``key`` exists.

        Returns None when the document was stored, otherwise the existing
        document.
        """


class VectorIndex(ABC):
    """Similarity index over fixed-dimension vectors."""

    @abstractmethod
    async def create_index(self, dimension: int, metric: str = "COSINE") -> bool:
        """Create the index. Idempotent."""

    @abstractmethod
    async def upsert(self, id: str, vector: List[float], attributes: Dict[str, Any]) -> None:
        """Insert or replace a vector and its attributes."""

    @abstractmethod
    async def knn_query(
        self,
        vector: List[float],
        k: int,
        filters: Optional[Dict[str, str]] = None
    ) -> List[VectorHit]:
        """Return up to ``k`` nearest hits, best first."""


class TimeSeriesStore(ABC):
    """Append-only time series."""

    @abstractmethod
    async def create_series(
        self,
        name: str,
        retention_ms: int,
        labels: Optional[Dict[str, str]] = None,
        duplicate_policy: str = "sum"
    ) -> bool:
        """Create a series. Idempotent."""

    @abstractmethod
    async def add(self, name: str, timestamp: int, value: float) -> None:
        """Append a point (timestamp in epoch ms)."""

    @abstractmethod
    async def range(self, name: str, from_ts: int, to_ts: int) -> List[Tuple[int, float]]:
        """Raw points with from_ts <= timestamp <= to_ts."""


class MembershipStore(ABC):
    """Set membership with no false negatives."""

    @abstractmethod
    async def reserve(self, key: str, error_rate: float, capacity: int) -> bool:
        """Prepare the structure. Idempotent."""

    @abstractmethod
    async def add(self, key: str, item: str) -> bool:
        """Add ``item``. Returns True when it was (probably) not present before."""

    @abstractmethod
    async def contains(self, key: str, item: str) -> bool:
        """Membership check. Never returns False for an added item."""


class CardinalityStore(ABC):
    """Approximate distinct counting."""

    @abstractmethod
    async def add(self, key: str, elements: List[str]) -> None:
        """Record elements."""

    @abstractmethod
    async def approx_count(self, key: str) -> int:
        """Estimated number of distinct elements."""


class EventBus(ABC):
    """Cross-process publish/subscribe."""

    @abstractmethod
    async def publish(self, channel: str, payload: Dict[str, Any]) -> int:
        """Publish a JSON payload. Returns the number of receivers."""
