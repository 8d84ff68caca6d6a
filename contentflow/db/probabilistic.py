"""
Probabilistic structures: Bloom filter membership and HyperLogLog counting.

RedisMembershipStore uses RedisBloom (BF.RESERVE / BF.ADD / BF.EXISTS) by
default. With ``use_bloom=False`` it keeps an exact Redis set instead
(SADD / SISMEMBER) under ``bloom:{key}``, trading memory for zero false
positives. Neither mode produces false negatives.
"""

from typing import List

from redis.asyncio import Redis
from redis.exceptions import ResponseError

from contentflow.core.logging import get_logger
from contentflow.db.base import CardinalityStore, MembershipStore
from contentflow.db.redis import is_already_exists, translate_errors

logger = get_logger(__name__)


class RedisMembershipStore(MembershipStore):
    """Bloom filter (or exact set) membership."""

    def __init__(self, redis: Redis, use_bloom: bool = True):
        self.redis = redis
        self.use_bloom = use_bloom

    def _set_key(self, key: str) -> str:
        return f"bloom:{key}"

    async def reserve(self, key: str, error_rate: float, capacity: int) -> bool:
        if not self.use_bloom:
            return True
        try:
            async with translate_errors(f"BF.RESERVE {key}"):
                await self.redis.bf().create(key, error_rate, capacity)
            logger.info("bloom_filter_reserved", key=key, error_rate=error_rate, capacity=capacity)
            return True
        except ResponseError as e:
            if is_already_exists(e):
                return True
            raise

    async def add(self, key: str, item: str) -> bool:
        if self.use_bloom:
            async with translate_errors(f"BF.ADD {key}"):
                return bool(await self.redis.bf().add(key, item))
        async with translate_errors(f"SADD {self._set_key(key)}"):
            return bool(await self.redis.sadd(self._set_key(key), item))

    async def contains(self, key: str, item: str) -> bool:
        if self.use_bloom:
            async with translate_errors(f"BF.EXISTS {key}"):
                return bool(await self.redis.bf().exists(key, item))
        async with translate_errors(f"SISMEMBER {self._set_key(key)}"):
            return bool(await self.redis.sismember(self._set_key(key), item))


class RedisCardinalityStore(CardinalityStore):
    """HyperLogLog distinct counting (PFADD / PFCOUNT)."""

    def __init__(self, redis: Redis):
        self.redis = redis

    async def add(self, key: str, elements: List[str]) -> None:
        if not elements:
            return
        async with translate_errors(f"PFADD {key}"):
            await self.redis.pfadd(key, *elements)

    async def approx_count(self, key: str) -> int:
        async with translate_errors(f"PFCOUNT {key}"):
            return int(await self.redis.pfcount(key))
