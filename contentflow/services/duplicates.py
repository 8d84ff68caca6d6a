"""
Duplicate detection over content fingerprints.

A content fingerprint is ``content_hash(text)`` rendered as a string. The
membership structure never forgets an inserted fingerprint; with a Bloom
filter backend it may occasionally report an unseen fingerprint as present.

The result is an informational signal attached to the processed event.
It never changes the moderation verdict.
"""

import logging
from typing import Optional

from contentflow.core.config import settings
from contentflow.db.base import MembershipStore
from contentflow.services.embedder import content_fingerprint

logger = logging.getLogger(__name__)


class DuplicateDetector:
    """
    Membership checks for content fingerprints.

    Usage:
    ------
    detector = DuplicateDetector(store)
    await detector.initialize()
    was_seen = await detector.check_and_add(content_fingerprint(text))
    """

    def __init__(
        self,
        store: MembershipStore,
        key: Optional[str] = None,
        error_rate: Optional[float] = None,
        capacity: Optional[int] = None
    ):
        self.store = store
        self.key = key or settings.DUPLICATE_FILTER_KEY
        self.error_rate = error_rate or settings.BLOOM_ERROR_RATE
        self.capacity = capacity or settings.BLOOM_CAPACITY

    async def initialize(self) -> None:
        """Reserve the filter. Idempotent."""
        await self.store.reserve(self.key, self.error_rate, self.capacity)

    async def contains(self, fingerprint: str) -> bool:
        return await self.store.contains(self.key, fingerprint)

    async def add(self, fingerprint: str) -> bool:
        """Record ``fingerprint``. True if it was not present before."""
        return await self.store.add(self.key, fingerprint)

    async def check_and_add(self, fingerprint: str) -> bool:
        """
        Record ``fingerprint`` and report whether it had been seen before.

        Uses the store's add result, so concurrent workers cannot both see
        the same fingerprint as new.
        """
        newly_added = await self.store.add(self.key, fingerprint)
        if not newly_added:
            logger.debug(f"Duplicate fingerprint detected: {fingerprint}")
        return not newly_added

    async def is_duplicate_text(self, text: str) -> bool:
        """Check (without recording) whether ``text`` was seen before."""
        return await self.contains(content_fingerprint(text))
