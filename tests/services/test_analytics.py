"""
Tests for AnalyticsService.
"""

import pytest
import pytest_asyncio

from contentflow.models.content import AnalysisResult, ContentStatus, Sentiment
from contentflow.services.analytics import resolve_metric, resolve_time_range
from contentflow.services.metrics import SERIES_PROCESSED, SERIES_PROCESSING_TIME

NOW = 1_700_000_000_000


def make_analysis(sentiment: Sentiment, toxicity: float, category: str, confidence: float):
    return AnalysisResult(
        toxicity_score=toxicity,
        positive_score=0.0,
        sentiment=sentiment,
        category=category,
        is_toxic=toxicity > 0.5,
        confidence=confidence,
        keywords=[],
        word_count=3,
    )


@pytest.fixture
def analytics(context):
    return context.analytics


@pytest_asyncio.fixture
async def recorded(context):
    """Three processed items within the last hour."""
    metrics = context.metrics
    await metrics.ensure_series()
    await metrics.record_processed(
        ContentStatus.APPROVED,
        make_analysis(Sentiment.POSITIVE, 0.0, "review", 0.9),
        10,
        NOW - 60_000,
    )
    await metrics.record_processed(
        ContentStatus.FLAGGED,
        make_analysis(Sentiment.NEGATIVE, 0.6, "comment", 0.7),
        30,
        NOW - 30_000,
    )
    await metrics.record_processed(ContentStatus.ERROR, None, 20, NOW - 10_000)
    return metrics


class TestResolvers:
    def test_metric_alias(self):
        assert resolve_metric("processed") == SERIES_PROCESSED
        assert resolve_metric(SERIES_PROCESSING_TIME) == SERIES_PROCESSING_TIME

    def test_unknown_metric(self):
        with pytest.raises(ValueError):
            resolve_metric("metrics:bogus")

    def test_time_ranges(self):
        assert resolve_time_range("5m") == (300_000, 30_000)
        assert resolve_time_range("7d") == (604_800_000, 21_600_000)
        with pytest.raises(ValueError):
            resolve_time_range("2y")


@pytest.mark.asyncio
class TestAnalyticsService:
    """Test aggregated views."""

    async def test_realtime_empty_window_is_zero(self, analytics):
        realtime = await analytics.get_realtime_metrics(now_ms=NOW)
        assert realtime["total_processed"] == 0
        assert realtime["approval_rate"] == 0.0
        assert realtime["average_processing_time_ms"] == 0.0
        assert realtime["accuracy_rate"] == 0.0
        assert realtime["unique_visitors"] == 0

    async def test_realtime_metrics(self, analytics, recorded, cardinality):
        await cardinality.add("visitors:unique", ["a", "b"])
        realtime = await analytics.get_realtime_metrics(now_ms=NOW)

        assert realtime["total_processed"] == 3
        assert realtime["total_approved"] == 1
        assert realtime["total_flagged"] == 1
        assert realtime["total_errors"] == 1
        assert realtime["flag_rate"] == pytest.approx(33.33)
        assert realtime["average_processing_time_ms"] == pytest.approx(20.0)
        assert realtime["max_processing_time_ms"] == 30
        assert realtime["accuracy_rate"] == pytest.approx(70.0)
        assert realtime["unique_visitors"] == 2

    async def test_realtime_excludes_old_points(self, analytics, context):
        await context.metrics.record(SERIES_PROCESSED, NOW - 2 * 60 * 60_000, 1)
        realtime = await analytics.get_realtime_metrics(now_ms=NOW)
        assert realtime["total_processed"] == 0

    async def test_time_series_buckets(self, analytics, recorded):
        response = await analytics.get_time_series("processed", "1h", now_ms=NOW)
        assert response.aggregation == "sum"
        assert sum(point.value for point in response.data) == 3
        assert all(point.timestamp % 300_000 == 0 for point in response.data)

    async def test_time_series_gauge_defaults_to_avg(self, analytics, recorded):
        response = await analytics.get_time_series("processing_time", "5m", now_ms=NOW)
        assert response.aggregation == "avg"

    async def test_time_series_empty(self, analytics):
        response = await analytics.get_time_series("flagged", "24h", now_ms=NOW)
        assert response.data == []

    async def test_time_series_unknown_metric(self, analytics):
        with pytest.raises(ValueError):
            await analytics.get_time_series("bogus", "1h")

    async def test_content_analytics(self, analytics, recorded):
        result = await analytics.get_content_analytics("24h", now_ms=NOW)

        assert result.total == 3
        assert result.sentiment_distribution["positive"] == 50.0
        assert result.sentiment_distribution["negative"] == 50.0
        assert result.sentiment_distribution["neutral"] == 0.0
        assert result.category_distribution["review"] == 50.0
        assert result.toxicity_levels == {"low": 50.0, "medium": 0.0, "high": 50.0}
        assert result.average_confidence == pytest.approx(0.8)
        assert result.average_processing_time_ms == pytest.approx(20.0)

    async def test_content_analytics_empty(self, analytics):
        result = await analytics.get_content_analytics("1h", now_ms=NOW)
        assert result.total == 0
        assert set(result.sentiment_distribution.values()) == {0.0}

    async def test_processing_stats(self, analytics, recorded, consumer):
        stats = await analytics.get_processing_stats(consumer)
        assert stats["total_processed"] == 3
        assert stats["total_errors"] == 1
        assert stats["consumer_name"] == "processor-test"
        assert stats["is_processing"] is False
        assert stats["degraded"] is False

    async def test_same_millisecond_items_average_correctly(self, analytics, context):
        metrics = context.metrics
        await metrics.ensure_series()
        for ms, confidence in ((10, 0.6), (30, 0.8)):
            await metrics.record_processed(
                ContentStatus.FLAGGED,
                make_analysis(Sentiment.NEGATIVE, 0.6, "comment", confidence),
                ms,
                NOW - 5_000,
            )

        realtime = await analytics.get_realtime_metrics(now_ms=NOW)
        assert realtime["average_processing_time_ms"] == pytest.approx(20.0)
        assert realtime["max_processing_time_ms"] == 30

        result = await analytics.get_content_analytics("1h", now_ms=NOW)
        assert result.average_confidence == pytest.approx(0.7)
        assert result.average_processing_time_ms == pytest.approx(
            metrics.snapshot()["average_processing_time"]
        )
