"""
Pytest configuration and fixtures.

This file is automatically discovered by pytest and provides
shared fixtures for all test modules. The pipeline is assembled over the
in-memory collaborators from ``tests/fakes.py``; nothing here needs Redis.

References:
-----------
- Pytest Fixtures: https://docs.pytest.org/en/stable/fixture.html
- pytest-asyncio: https://pytest-asyncio.readthedocs.io/
"""

import pytest
import pytest_asyncio

from contentflow.core.config import Settings, settings
from contentflow.services.context import PipelineContext
from contentflow.workers.consumer import ContentStreamConsumer
from tests.fakes import (
    InMemoryCardinalityStore,
    InMemoryDocumentStore,
    InMemoryEventBus,
    InMemoryMembershipStore,
    InMemoryStreamLog,
    InMemoryTimeSeriesStore,
    InMemoryVectorIndex,
)


# ================================
# Pytest Configuration
# ================================

@pytest.fixture(autouse=True)
def fast_retries(monkeypatch):
    """Retry without sleeping so failure paths run instantly."""
    monkeypatch.setattr(settings, "RETRY_BASE_DELAY_SECONDS", 0.0)
    monkeypatch.setattr(settings, "RETRY_MAX_DELAY_SECONDS", 0.0)
    monkeypatch.setattr(settings, "RETRY_MAX_ATTEMPTS", 3)


@pytest.fixture
def test_settings() -> Settings:
    """Settings with short sleeps for loop tests."""
    return Settings(
        _env_file=None,
        CONSUMER_BLOCK_MS=0,
        CONSUMER_IDLE_SLEEP_SECONDS=0.01,
        CONSUMER_ERROR_SLEEP_SECONDS=0.01,
        CONSUMER_CLAIM_IDLE_MS=0,
        CONSUMER_CLAIM_INTERVAL_SECONDS=3600.0,
        RETRY_BASE_DELAY_SECONDS=0.0,
        RETRY_MAX_DELAY_SECONDS=0.0,
    )


# ================================
# Collaborator Fixtures
# ================================

@pytest.fixture
def stream_log() -> InMemoryStreamLog:
    return InMemoryStreamLog()


@pytest.fixture
def documents() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def vector_index() -> InMemoryVectorIndex:
    return InMemoryVectorIndex()


@pytest.fixture
def timeseries() -> InMemoryTimeSeriesStore:
    return InMemoryTimeSeriesStore()


@pytest.fixture
def membership() -> InMemoryMembershipStore:
    return InMemoryMembershipStore()


@pytest.fixture
def cardinality() -> InMemoryCardinalityStore:
    return InMemoryCardinalityStore()


@pytest.fixture
def bus() -> InMemoryEventBus:
    return InMemoryEventBus()


# ================================
# Pipeline Fixtures
# ================================

@pytest.fixture
def context(
    test_settings,
    stream_log,
    documents,
    vector_index,
    timeseries,
    membership,
    cardinality,
    bus,
) -> PipelineContext:
    """Full pipeline wired over in-memory stores."""
    return PipelineContext.from_stores(
        stream_log=stream_log,
        documents=documents,
        vector_index=vector_index,
        timeseries=timeseries,
        membership=membership,
        cardinality=cardinality,
        bus=bus,
        app_settings=test_settings,
    )


@pytest_asyncio.fixture
async def consumer(context) -> ContentStreamConsumer:
    """Initialized consumer (group, index and series created), loop not started."""
    worker = ContentStreamConsumer(context, consumer_name="processor-test")
    await worker.initialize()
    yield worker
    if worker.is_running:
        await worker.stop()
