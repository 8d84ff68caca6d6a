"""
RedisTimeSeries implementation of the metrics store.

Series are created up front with a retention window and a duplicate
policy so that two points landing in the same millisecond are merged
instead of rejected (TS.ADD auto-creates series with policy BLOCK).
"""

from typing import Dict, List, Optional, Tuple

from redis.asyncio import Redis
from redis.exceptions import ResponseError

from contentflow.core.logging import get_logger
from contentflow.db.base import TimeSeriesStore
from contentflow.db.redis import is_already_exists, translate_errors

logger = get_logger(__name__)


class RedisTimeSeriesStore(TimeSeriesStore):
    """Time series backed by TS.CREATE / TS.ADD / TS.RANGE."""

    def __init__(self, redis: Redis):
        self.redis = redis

    async def create_series(
        self,
        name: str,
        retention_ms: int,
        labels: Optional[Dict[str, str]] = None,
        duplicate_policy: str = "sum"
    ) -> bool:
        try:
            async with translate_errors(f"TS.CREATE {name}"):
                await self.redis.ts().create(
                    name,
                    retention_msecs=retention_ms,
                    labels=labels or {},
                    duplicate_policy=duplicate_policy,
                )
            logger.debug("time_series_created", series=name, retention_ms=retention_ms)
            return True
        except ResponseError as e:
            if is_already_exists(e):
                return True
            raise

    async def add(self, name: str, timestamp: int, value: float) -> None:
        async with translate_errors(f"TS.ADD {name}"):
            await self.redis.ts().add(name, int(timestamp), float(value))

    async def range(self, name: str, from_ts: int, to_ts: int) -> List[Tuple[int, float]]:
        try:
            async with translate_errors(f"TS.RANGE {name}"):
                points = await self.redis.ts().range(name, int(from_ts), int(to_ts))
        except ResponseError as e:
            # Querying a series that was never created is an empty window
            if "key does not exist" in str(e).lower():
                return []
            raise
        return [(int(ts), float(value)) for ts, value in points]
