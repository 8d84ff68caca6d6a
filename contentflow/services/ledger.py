"""
Processed-id ledger.

Short-lived record of content IDs whose metrics have been emitted. A
redelivered message finds its entry and skips the metric increments,
reusing the duplicate verdict stored with the first attempt.
"""

from dataclasses import dataclass
from typing import Optional

from contentflow.core.config import settings
from contentflow.core.retry import retry_async
from contentflow.db.base import DocumentStore


@dataclass
class LedgerClaim:
    """Outcome of ProcessingLedger.claim."""

    first: bool
    is_duplicate: bool


class ProcessingLedger:
    """Atomic claim per content ID, backed by the document store with a TTL."""

    def __init__(
        self,
        store: DocumentStore,
        key_prefix: Optional[str] = None,
        ttl_seconds: Optional[int] = None
    ):
        self.store = store
        self.key_prefix = key_prefix or settings.PROCESSED_KEY_PREFIX
        self.ttl_seconds = ttl_seconds or settings.PROCESSED_ID_TTL_SECONDS

    def _key(self, content_id: str) -> str:
        return f"{self.key_prefix}{content_id}"

    async def claim(self, content_id: str, is_duplicate: bool) -> LedgerClaim:
        """
        Claim ``content_id`` for metric emission.

        Returns:
            LedgerClaim(first=True, ...) for the first caller; later callers
            get first=False and the verdict stored by the first one
        """
        existing = await retry_async(
            lambda: self.store.put_if_absent(
                self._key(content_id),
                {"isDuplicate": is_duplicate},
                self.ttl_seconds,
            ),
            description=f"ledger claim {content_id}",
        )
        if existing is None:
            return LedgerClaim(first=True, is_duplicate=is_duplicate)
        return LedgerClaim(
            first=False,
            is_duplicate=bool(existing.get("isDuplicate", is_duplicate)),
        )

    async def lookup(self, content_id: str) -> Optional[LedgerClaim]:
        """Existing claim for ``content_id``, if any."""
        existing = await retry_async(
            lambda: self.store.get(self._key(content_id)),
            description=f"ledger lookup {content_id}",
        )
        if existing is None:
            return None
        return LedgerClaim(first=False, is_duplicate=bool(existing.get("isDuplicate", False)))
