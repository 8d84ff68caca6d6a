"""
Tests for DuplicateDetector.
"""

import pytest

from contentflow.services.duplicates import DuplicateDetector
from contentflow.services.embedder import content_fingerprint
from tests.fakes import InMemoryMembershipStore


@pytest.fixture
def store() -> InMemoryMembershipStore:
    return InMemoryMembershipStore()


@pytest.fixture
def detector(store) -> DuplicateDetector:
    return DuplicateDetector(store, key="content_hashes", error_rate=0.001, capacity=1000)


@pytest.mark.asyncio
class TestDuplicateDetector:
    """Test membership semantics."""

    async def test_initialize_reserves_filter(self, detector, store):
        await detector.initialize()
        assert "content_hashes" in store.sets

    async def test_first_sighting_not_duplicate(self, detector):
        assert await detector.check_and_add(content_fingerprint("hello")) is False

    async def test_second_sighting_duplicate(self, detector):
        fingerprint = content_fingerprint("hello")
        await detector.check_and_add(fingerprint)
        assert await detector.check_and_add(fingerprint) is True

    async def test_no_false_negatives(self, detector):
        texts = [f"message number {i}" for i in range(200)]
        for text in texts:
            await detector.add(content_fingerprint(text))
        for text in texts:
            assert await detector.contains(content_fingerprint(text))

    async def test_is_duplicate_text_does_not_record(self, detector):
        assert await detector.is_duplicate_text("fresh text") is False
        assert await detector.is_duplicate_text("fresh text") is False
        await detector.add(content_fingerprint("fresh text"))
        assert await detector.is_duplicate_text("fresh text") is True

    async def test_add_reports_new_fingerprint(self, detector):
        fingerprint = content_fingerprint("only once")
        assert await detector.add(fingerprint) is True
        assert await detector.add(fingerprint) is False
