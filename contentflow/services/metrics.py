"""
Metrics Aggregator

Records pipeline metrics into time series and keeps in-process running
statistics for cheap stats reads.

Series:
-------
- metrics:content:{processed|approved|flagged|error}   counters (value 1)
- metrics:processing:time                             processing time (ms), summed per ms
- metrics:accuracy:rate                               confidence * 100, summed per ms
- {gauge}:{count|min|max}                             companions of the two gauges
- metrics:sentiment:{positive|neutral|negative}       distribution counters
- metrics:category:{review|comment|...}               distribution counters
- metrics:toxicity:{low|medium|high}                  distribution counters

Range queries fetch raw points and bucket them client-side into
epoch-aligned windows, so out-of-order arrivals are tolerated and an
empty window simply yields no points.

Gauges never overwrite each other: two values landing in the same
millisecond are kept as a sum plus a sample count (and a min and a max),
so a mean is always rebuilt as sum / count.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import numpy as np

from contentflow.core.config import settings
from contentflow.core.exceptions import FatalStartupError
from contentflow.core.retry import retry_async
from contentflow.db.base import TimeSeriesStore
from contentflow.models.content import AnalysisResult, ContentCategory, ContentStatus, Sentiment
from contentflow.schemas.content import MetricPoint

logger = logging.getLogger(__name__)


# ========================================
# Series Names
# ========================================

SERIES_PROCESSED = "metrics:content:processed"
SERIES_APPROVED = "metrics:content:approved"
SERIES_FLAGGED = "metrics:content:flagged"
SERIES_ERROR = "metrics:content:error"
SERIES_PROCESSING_TIME = "metrics:processing:time"
SERIES_ACCURACY = "metrics:accuracy:rate"

TOXICITY_LEVELS = ("low", "medium", "high")


def sentiment_series(sentiment: str) -> str:
    return f"metrics:sentiment:{sentiment}"


def category_series(category: str) -> str:
    return f"metrics:category:{category}"


def toxicity_series(level: str) -> str:
    return f"metrics:toxicity:{level}"


def toxicity_level(score: float) -> str:
    """Bucket a toxicity score: low < 0.3 <= medium <= 0.5 < high."""
    if score > 0.5:
        return "high"
    if score >= 0.3:
        return "medium"
    return "low"


COUNTER_SERIES = (
    [SERIES_PROCESSED, SERIES_APPROVED, SERIES_FLAGGED, SERIES_ERROR]
    + [sentiment_series(s.value) for s in Sentiment]
    + [category_series(c.value) for c in ContentCategory]
    + [toxicity_series(level) for level in TOXICITY_LEVELS]
)
GAUGE_SERIES = [SERIES_PROCESSING_TIME, SERIES_ACCURACY]


def gauge_companion(series: str, kind: str) -> str:
    """Companion series of a gauge: ``count``, ``min`` or ``max``."""
    return f"{series}:{kind}"


# Series name -> TS duplicate policy
SERIES_POLICIES: Dict[str, str] = {name: "sum" for name in COUNTER_SERIES}
for _gauge in GAUGE_SERIES:
    SERIES_POLICIES[_gauge] = "sum"
    SERIES_POLICIES[gauge_companion(_gauge, "count")] = "sum"
    SERIES_POLICIES[gauge_companion(_gauge, "min")] = "min"
    SERIES_POLICIES[gauge_companion(_gauge, "max")] = "max"

ALL_SERIES = list(SERIES_POLICIES)

AGGREGATIONS: Dict[str, Callable[[np.ndarray], float]] = {
    "sum": np.sum,
    "avg": np.mean,
    "min": np.min,
    "max": np.max,
}

DEFAULT_BUCKET_MS = 60_000


# ========================================
# Running Statistics
# ========================================

@dataclass
class RunningStat:
    """Online count / sum / mean."""

    count: int = 0
    total: float = 0.0
    mean: float = 0.0

    def update(self, value: float) -> None:
        self.count += 1
        self.total += value
        # avg' = (avg * (n - 1) + x) / n
        self.mean = (self.mean * (self.count - 1) + value) / self.count


def bucket_points(
    points: List[tuple[int, float]],
    from_ts: int,
    to_ts: int,
    aggregation: Optional[str] = None,
    bucket_ms: Optional[int] = None
) -> List[MetricPoint]:
    """
    Order points by timestamp and optionally reduce them per time bucket.

    Buckets are aligned to the epoch: a point at ``ts`` belongs to the
    bucket starting at ``ts - ts % bucket_ms``.
    """
    in_window = sorted(
        ((int(ts), float(value)) for ts, value in points if from_ts <= ts <= to_ts),
        key=lambda point: point[0],
    )
    if aggregation is None:
        return [MetricPoint(timestamp=ts, value=value) for ts, value in in_window]

    if aggregation not in AGGREGATIONS:
        raise ValueError(
            f"Unknown aggregation '{aggregation}', expected one of {sorted(AGGREGATIONS)}"
        )
    width = bucket_ms or DEFAULT_BUCKET_MS
    if width <= 0:
        raise ValueError("bucket_ms must be positive")

    buckets: Dict[int, List[float]] = {}
    for ts, value in in_window:
        buckets.setdefault(ts - ts % width, []).append(value)

    reducer = AGGREGATIONS[aggregation]
    return [
        MetricPoint(timestamp=start, value=float(reducer(np.asarray(values))))
        for start, values in buckets.items()
    ]


@dataclass
class GaugeSample:
    """All gauge values recorded in one millisecond."""

    timestamp: int
    total: float
    count: float
    low: float
    high: float

    @property
    def mean(self) -> float:
        return self.total / self.count if self.count else 0.0


@dataclass
class GaugeSummary:
    """Reduction of a gauge over a whole window."""

    count: int = 0
    mean: float = 0.0
    minimum: float = 0.0
    maximum: float = 0.0
    latest: float = 0.0


def merge_gauge_samples(
    sums: List[tuple[int, float]],
    counts: List[tuple[int, float]],
    mins: List[tuple[int, float]],
    maxs: List[tuple[int, float]],
    from_ts: int,
    to_ts: int
) -> List[GaugeSample]:
    """
    Join a gauge's sum series with its companions, ordered by timestamp.

    A millisecond with no count (a companion write that never landed, or a
    point written straight to the gauge) counts as one sample.
    """
    count_at = {int(ts): float(value) for ts, value in counts}
    min_at = {int(ts): float(value) for ts, value in mins}
    max_at = {int(ts): float(value) for ts, value in maxs}

    samples = []
    for ts, total in sorted(sums, key=lambda point: point[0]):
        ts = int(ts)
        if not from_ts <= ts <= to_ts:
            continue
        count = count_at.get(ts) or 1.0
        mean = float(total) / count
        samples.append(GaugeSample(
            timestamp=ts,
            total=float(total),
            count=count,
            low=min_at.get(ts, mean),
            high=max_at.get(ts, mean),
        ))
    return samples


def bucket_gauge_samples(
    samples: List[GaugeSample],
    aggregation: Optional[str] = None,
    bucket_ms: Optional[int] = None
) -> List[MetricPoint]:
    """
    Like ``bucket_points`` for gauges: raw points are per-millisecond means,
    ``avg`` is sum / count over the bucket, ``min``/``max`` use the
    companion extremes.
    """
    if aggregation is None:
        return [MetricPoint(timestamp=s.timestamp, value=s.mean) for s in samples]

    if aggregation not in AGGREGATIONS:
        raise ValueError(
            f"Unknown aggregation '{aggregation}', expected one of {sorted(AGGREGATIONS)}"
        )
    width = bucket_ms or DEFAULT_BUCKET_MS
    if width <= 0:
        raise ValueError("bucket_ms must be positive")

    buckets: Dict[int, List[GaugeSample]] = {}
    for sample in samples:
        buckets.setdefault(sample.timestamp - sample.timestamp % width, []).append(sample)

    points = []
    for start, members in buckets.items():
        total = sum(s.total for s in members)
        if aggregation == "sum":
            value = total
        elif aggregation == "avg":
            value = total / sum(s.count for s in members)
        elif aggregation == "min":
            value = min(s.low for s in members)
        else:
            value = max(s.high for s in members)
        points.append(MetricPoint(timestamp=start, value=float(value)))
    return points


def summarize_gauge(samples: List[GaugeSample]) -> GaugeSummary:
    if not samples:
        return GaugeSummary()
    count = sum(s.count for s in samples)
    return GaugeSummary(
        count=int(count),
        mean=sum(s.total for s in samples) / count,
        minimum=min(s.low for s in samples),
        maximum=max(s.high for s in samples),
        latest=samples[-1].mean,
    )


class MetricsAggregator:
    """
    Time-series metrics plus in-process running statistics.

    Usage:
    ------
    metrics = MetricsAggregator(store)
    await metrics.ensure_series()
    await metrics.record_processed(status, analysis, processing_time_ms, timestamp)
    points = await metrics.range(SERIES_PROCESSED, t0, t1, "sum", 60_000)
    """

    def __init__(
        self,
        store: TimeSeriesStore,
        retention_ms: Optional[int] = None,
        labels: Optional[Dict[str, str]] = None
    ):
        self.store = store
        self.retention_ms = retention_ms or settings.METRICS_RETENTION_MS
        self.labels = labels if labels is not None else settings.metrics_labels_dict

        self.processed = RunningStat()
        self.approved = RunningStat()
        self.flagged = RunningStat()
        self.errors = RunningStat()
        self.processing_time = RunningStat()

    # ========================================
    # Setup
    # ========================================

    async def ensure_series(self) -> None:
        """
        Create every known series. Idempotent.

        Raises:
            FatalStartupError: If any series could not be created (after
                attempting all of them)
        """
        failed = []
        for name, policy in SERIES_POLICIES.items():
            try:
                await self.store.create_series(name, self.retention_ms, self.labels, policy)
            except Exception as e:
                logger.error(f"Time series creation failed for {name}: {e}")
                failed.append(name)
        if failed:
            raise FatalStartupError(f"time series {', '.join(failed)}")
        logger.info(f"Time series initialized ({len(ALL_SERIES)} series)")

    # ========================================
    # Writes
    # ========================================

    async def record(self, series: str, timestamp: int, value: float) -> None:
        """Append one point, retrying transient failures."""
        await retry_async(
            lambda: self.store.add(series, timestamp, value),
            description=f"TS.ADD {series}",
        )

    async def record_gauge(self, series: str, timestamp: int, value: float) -> None:
        """Append one gauge value with its count, min and max companions."""
        await self.record(series, timestamp, value)
        await self.record(gauge_companion(series, "count"), timestamp, 1)
        await self.record(gauge_companion(series, "min"), timestamp, value)
        await self.record(gauge_companion(series, "max"), timestamp, value)

    async def record_processed(
        self,
        status: ContentStatus,
        analysis: Optional[AnalysisResult],
        processing_time_ms: int,
        timestamp: int
    ) -> None:
        """
        Emit every metric for one terminal content item and update the
        running statistics.

        Callers must invoke this at most once per content item.
        """
        await self.record(SERIES_PROCESSED, timestamp, 1)

        if status is ContentStatus.ERROR:
            await self.record(SERIES_ERROR, timestamp, 1)
        elif status is ContentStatus.FLAGGED:
            await self.record(SERIES_FLAGGED, timestamp, 1)
        else:
            await self.record(SERIES_APPROVED, timestamp, 1)

        await self.record_gauge(SERIES_PROCESSING_TIME, timestamp, processing_time_ms)

        if analysis is not None:
            await self.record_gauge(SERIES_ACCURACY, timestamp, analysis.confidence * 100)
            await self.record(sentiment_series(analysis.sentiment.value), timestamp, 1)
            if analysis.category in {c.value for c in ContentCategory}:
                await self.record(category_series(analysis.category), timestamp, 1)
            await self.record(toxicity_series(toxicity_level(analysis.toxicity_score)), timestamp, 1)

        self.observe(status, processing_time_ms)

    def observe(self, status: ContentStatus, processing_time_ms: float) -> None:
        """Update the in-process running statistics only."""
        self.processed.update(1)
        if status is ContentStatus.ERROR:
            self.errors.update(1)
        elif status is ContentStatus.FLAGGED:
            self.flagged.update(1)
        else:
            self.approved.update(1)
        self.processing_time.update(processing_time_ms)

    # ========================================
    # Reads
    # ========================================

    async def range(
        self,
        series: str,
        from_ts: int,
        to_ts: int,
        aggregation: Optional[str] = None,
        bucket_ms: Optional[int] = None
    ) -> List[MetricPoint]:
        """
        Points of ``series`` in [from_ts, to_ts], ordered by timestamp.

        Args:
            aggregation: sum / avg / min / max, or None for raw points
            bucket_ms: Bucket width when aggregating (default 60s)

        Returns:
            List of MetricPoint (empty for an empty window)
        """
        if aggregation is not None and aggregation not in AGGREGATIONS:
            raise ValueError(
                f"Unknown aggregation '{aggregation}', expected one of {sorted(AGGREGATIONS)}"
            )
        if to_ts < from_ts:
            return []
        if series in GAUGE_SERIES:
            samples = await self._gauge_samples(series, from_ts, to_ts)
            return bucket_gauge_samples(samples, aggregation, bucket_ms)
        raw = await self._raw(series, from_ts, to_ts)
        return bucket_points(raw, from_ts, to_ts, aggregation, bucket_ms)

    async def gauge_summary(self, series: str, from_ts: int, to_ts: int) -> GaugeSummary:
        """Count, mean, extremes and latest value of a gauge over a window."""
        if to_ts < from_ts:
            return GaugeSummary()
        return summarize_gauge(await self._gauge_samples(series, from_ts, to_ts))

    async def _raw(self, series: str, from_ts: int, to_ts: int) -> List[tuple[int, float]]:
        return await retry_async(
            lambda: self.store.range(series, from_ts, to_ts),
            description=f"TS.RANGE {series}",
        )

    async def _gauge_samples(self, series: str, from_ts: int, to_ts: int) -> List[GaugeSample]:
        sums = await self._raw(series, from_ts, to_ts)
        if not sums:
            return []
        counts = await self._raw(gauge_companion(series, "count"), from_ts, to_ts)
        mins = await self._raw(gauge_companion(series, "min"), from_ts, to_ts)
        maxs = await self._raw(gauge_companion(series, "max"), from_ts, to_ts)
        return merge_gauge_samples(sums, counts, mins, maxs, from_ts, to_ts)

    def snapshot(self) -> Dict[str, float]:
        """Running statistics for this worker."""
        return {
            "total_processed": self.processed.count,
            "total_approved": self.approved.count,
            "total_flagged": self.flagged.count,
            "total_errors": self.errors.count,
            "average_processing_time": round(self.processing_time.mean, 2),
        }
