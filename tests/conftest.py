"""Pytest configuration and fixtures."""

import pytest
from pathlib import Path
from dotenv import load_dotenv

from repo_chat.config import IndexingSettings
from repo_chat.pipeline import BackgroundRunner, IndexingOrchestrator
from repo_chat.query import QueryGateway

from fakes import (
    FakeAnswerBackend,
    FakeClock,
    FakeVcs,
    InMemoryLockStore,
    InMemoryPayloadCache,
    InMemoryStatusStore,
    InMemorySummaryStore,
    StubPipeline,
)

# Load .env file at test collection time
load_dotenv(Path(__file__).parent.parent / ".env")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def indexing_settings() -> IndexingSettings:
    return IndexingSettings(
        index_lock_ttl_seconds=900,
        max_content_files=100,
        max_file_bytes=512 * 1024,
        max_content_chars=10_000,
        max_concurrent_requests=5,
        check_revision_on_ready=False,
        estimated_wait_seconds=30,
    )


@pytest.fixture
def status_store(clock: FakeClock) -> InMemoryStatusStore:
    return InMemoryStatusStore(clock)


@pytest.fixture
def lock_store(clock: FakeClock) -> InMemoryLockStore:
    return InMemoryLockStore(clock)


@pytest.fixture
def payload_cache() -> InMemoryPayloadCache:
    return InMemoryPayloadCache()


@pytest.fixture
def summary_store() -> InMemorySummaryStore:
    return InMemorySummaryStore()


@pytest.fixture
def pipeline() -> StubPipeline:
    return StubPipeline()


@pytest.fixture
def vcs() -> FakeVcs:
    return FakeVcs()


@pytest.fixture
def runner() -> BackgroundRunner:
    return BackgroundRunner()


@pytest.fixture
def orchestrator(
    status_store,
    lock_store,
    pipeline,
    payload_cache,
    summary_store,
    runner,
    vcs,
    indexing_settings,
    clock,
) -> IndexingOrchestrator:
    return IndexingOrchestrator(
        status_store=status_store,
        lock_manager=lock_store,
        pipeline=pipeline,
        payload_cache=payload_cache,
        summary_store=summary_store,
        runner=runner,
        vcs=vcs,
        settings=indexing_settings,
        clock=clock,
    )


@pytest.fixture
def answer_backend() -> FakeAnswerBackend:
    return FakeAnswerBackend()


@pytest.fixture
def gateway(status_store, answer_backend, payload_cache, summary_store, indexing_settings) -> QueryGateway:
    return QueryGateway(
        status_store=status_store,
        backend=answer_backend,
        payload_cache=payload_cache,
        summary_store=summary_store,
        settings=indexing_settings,
    )
