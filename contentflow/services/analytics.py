"""
Analytics Service

Read side of the metrics: dashboards ask for real-time counters, bucketed
time series and content distributions. Every figure is derived from the
recorded series; an empty window yields zeros.
"""

import logging
import time
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from contentflow.core.config import Settings, settings as default_settings
from contentflow.db.base import CardinalityStore
from contentflow.models.content import ContentCategory, Sentiment
from contentflow.schemas.content import ContentAnalytics, MetricPoint, TimeSeriesResponse
from contentflow.services.metrics import (
    ALL_SERIES,
    GAUGE_SERIES,
    SERIES_ACCURACY,
    SERIES_APPROVED,
    SERIES_ERROR,
    SERIES_FLAGGED,
    SERIES_PROCESSED,
    SERIES_PROCESSING_TIME,
    TOXICITY_LEVELS,
    MetricsAggregator,
    category_series,
    sentiment_series,
    toxicity_series,
)

if TYPE_CHECKING:
    from contentflow.workers.consumer import ContentStreamConsumer

logger = logging.getLogger(__name__)


# (window, bucket) in milliseconds
TIME_RANGES: Dict[str, tuple[int, int]] = {
    "5m": (5 * 60_000, 30_000),
    "1h": (60 * 60_000, 5 * 60_000),
    "24h": (24 * 60 * 60_000, 60 * 60_000),
    "7d": (7 * 24 * 60 * 60_000, 6 * 60 * 60_000),
}

METRIC_ALIASES: Dict[str, str] = {
    "processed": SERIES_PROCESSED,
    "approved": SERIES_APPROVED,
    "flagged": SERIES_FLAGGED,
    "error": SERIES_ERROR,
    "processing_time": SERIES_PROCESSING_TIME,
    "accuracy": SERIES_ACCURACY,
}

REALTIME_WINDOW_MS = 60 * 60_000


def sum_points(points: List[MetricPoint]) -> float:
    return float(sum(point.value for point in points))


def percentage(part: float, total: float) -> float:
    if total <= 0:
        return 0.0
    return round(part / total * 100, 2)


def resolve_metric(metric: str) -> str:
    """
    Map a short metric name (``processed``) or a series name to a series.

    Raises:
        ValueError: Unknown metric
    """
    if metric in METRIC_ALIASES:
        return METRIC_ALIASES[metric]
    if metric in ALL_SERIES:
        return metric
    raise ValueError(f"Unknown metric '{metric}'")


def resolve_time_range(time_range: str) -> tuple[int, int]:
    if time_range not in TIME_RANGES:
        raise ValueError(
            f"Unknown time range '{time_range}', expected one of {list(TIME_RANGES)}"
        )
    return TIME_RANGES[time_range]


class AnalyticsService:
    """
    Aggregated views over the pipeline metrics.

    Usage:
    ------
    analytics = AnalyticsService(metrics, cardinality)
    realtime = await analytics.get_realtime_metrics()
    series = await analytics.get_time_series("processed", "1h")
    """

    def __init__(
        self,
        metrics: MetricsAggregator,
        cardinality: CardinalityStore,
        app_settings: Optional[Settings] = None
    ):
        self.metrics = metrics
        self.cardinality = cardinality
        self.settings = app_settings or default_settings

    async def _unique_visitors(self) -> int:
        try:
            return await self.cardinality.approx_count(self.settings.UNIQUE_VISITORS_KEY)
        except Exception as e:
            logger.warning(f"Unique visitor count unavailable: {e}")
            return 0

    async def get_realtime_metrics(self, now_ms: Optional[int] = None) -> Dict[str, Any]:
        """Counters and rates over the last hour."""
        to_ts = now_ms if now_ms is not None else int(time.time() * 1000)
        from_ts = to_ts - REALTIME_WINDOW_MS

        processed = sum_points(await self.metrics.range(SERIES_PROCESSED, from_ts, to_ts))
        approved = sum_points(await self.metrics.range(SERIES_APPROVED, from_ts, to_ts))
        flagged = sum_points(await self.metrics.range(SERIES_FLAGGED, from_ts, to_ts))
        errors = sum_points(await self.metrics.range(SERIES_ERROR, from_ts, to_ts))
        processing_time = await self.metrics.gauge_summary(SERIES_PROCESSING_TIME, from_ts, to_ts)
        accuracy = await self.metrics.gauge_summary(SERIES_ACCURACY, from_ts, to_ts)

        return {
            "total_processed": int(processed),
            "total_approved": int(approved),
            "total_flagged": int(flagged),
            "total_errors": int(errors),
            "approval_rate": percentage(approved, processed),
            "flag_rate": percentage(flagged, processed),
            "error_rate": percentage(errors, processed),
            "average_processing_time_ms": round(processing_time.mean, 2),
            "max_processing_time_ms": processing_time.maximum,
            "accuracy_rate": round(accuracy.latest, 2),
            "unique_visitors": await self._unique_visitors(),
            "timestamp": to_ts,
        }

    async def get_time_series(
        self,
        metric: str,
        time_range: str = "1h",
        aggregation: Optional[str] = None,
        now_ms: Optional[int] = None
    ) -> TimeSeriesResponse:
        """
        Bucketed series for a preset range.

        Args:
            metric: Short name (processed, flagged, processing_time...) or series name
            time_range: 5m / 1h / 24h / 7d
            aggregation: sum / avg / min / max (defaults to avg for gauges,
                sum for counters)

        Raises:
            ValueError: Unknown metric, range or aggregation
        """
        series = resolve_metric(metric)
        window_ms, bucket_ms = resolve_time_range(time_range)
        if aggregation is None:
            aggregation = "avg" if series in GAUGE_SERIES else "sum"

        to_ts = now_ms if now_ms is not None else int(time.time() * 1000)
        data = await self.metrics.range(
            series, to_ts - window_ms, to_ts, aggregation, bucket_ms
        )
        return TimeSeriesResponse(
            metric=metric,
            time_range=time_range,
            aggregation=aggregation,
            data=data,
        )

    async def _distribution(
        self,
        series_names: Dict[str, str],
        from_ts: int,
        to_ts: int
    ) -> Dict[str, float]:
        counts = {
            label: sum_points(await self.metrics.range(series, from_ts, to_ts))
            for label, series in series_names.items()
        }
        total = sum(counts.values())
        return {label: percentage(count, total) for label, count in counts.items()}

    async def get_content_analytics(
        self,
        time_range: str = "24h",
        now_ms: Optional[int] = None
    ) -> ContentAnalytics:
        """Sentiment, category and toxicity distributions in percent."""
        window_ms, _ = resolve_time_range(time_range)
        to_ts = now_ms if now_ms is not None else int(time.time() * 1000)
        from_ts = to_ts - window_ms

        sentiments = await self._distribution(
            {s.value: sentiment_series(s.value) for s in Sentiment}, from_ts, to_ts
        )
        categories = await self._distribution(
            {c.value: category_series(c.value) for c in ContentCategory}, from_ts, to_ts
        )
        toxicity = await self._distribution(
            {level: toxicity_series(level) for level in TOXICITY_LEVELS}, from_ts, to_ts
        )

        total = sum_points(await self.metrics.range(SERIES_PROCESSED, from_ts, to_ts))
        accuracy = await self.metrics.gauge_summary(SERIES_ACCURACY, from_ts, to_ts)
        processing_time = await self.metrics.gauge_summary(SERIES_PROCESSING_TIME, from_ts, to_ts)

        return ContentAnalytics(
            time_range=time_range,
            total=int(total),
            sentiment_distribution=sentiments,
            category_distribution=categories,
            toxicity_levels=toxicity,
            average_confidence=round(accuracy.mean / 100, 4),
            average_processing_time_ms=round(processing_time.mean, 2),
        )

    async def get_processing_stats(
        self,
        consumer: Optional["ContentStreamConsumer"] = None
    ) -> Dict[str, Any]:
        """Running statistics of this process plus the consumer's state."""
        stats: Dict[str, Any] = dict(self.metrics.snapshot())
        stats["unique_visitors"] = await self._unique_visitors()
        if consumer is not None:
            stats["consumer_name"] = consumer.consumer_name
            stats["is_processing"] = consumer.is_processing
            stats["degraded"] = consumer.degraded
        return stats
