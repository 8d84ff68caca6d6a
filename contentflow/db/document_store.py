"""
RedisJSON implementation of the document store.

Content records live under ``content:{id}``, feedback under
``feedback:{id}`` and processed-id ledger entries under ``processed:{id}``.
"""

from typing import Any, Dict, Optional

from redis.asyncio import Redis

from contentflow.db.base import DocumentStore
from contentflow.db.redis import translate_errors


class RedisDocumentStore(DocumentStore):
    """Documents stored with JSON.SET / JSON.GET."""

    def __init__(self, redis: Redis):
        self.redis = redis

    async def put(self, key: str, document: Dict[str, Any]) -> None:
        async with translate_errors(f"JSON.SET {key}"):
            await self.redis.json().set(key, "$", document)

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        async with translate_errors(f"JSON.GET {key}"):
            document = await self.redis.json().get(key)
        return document if isinstance(document, dict) else None

    async def put_if_absent(
        self,
        key: str,
        document: Dict[str, Any],
        ttl_seconds: Optional[int] = None
    ) -> Optional[Dict[str, Any]]:
        async with translate_errors(f"JSON.SET NX {key}"):
            if ttl_seconds:
                # One MULTI/EXEC so the key never exists without its TTL.
                # EXPIRE NX leaves the TTL of an existing key untouched.
                pipe = self.redis.pipeline(transaction=True)
                pipe.json().set(key, "$", document, nx=True)
                pipe.expire(key, ttl_seconds, nx=True)
                created, _ = await pipe.execute()
            else:
                created = await self.redis.json().set(key, "$", document, nx=True)
            if created:
                return None
            existing = await self.redis.json().get(key)
        return existing if isinstance(existing, dict) else {}
