"""Tests for the indexing orchestrator."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from repo_chat.core.errors import IndexingError, LockBusyError, ValidationError
from repo_chat.core.types import IndexStatus
from repo_chat.pipeline import IndexingOrchestrator, RepositoryIndexer
from repo_chat.pipeline.orchestrator import (
    MESSAGE_ALREADY_READY,
    MESSAGE_COMPLETED,
    MESSAGE_IN_PROGRESS,
    MESSAGE_STARTED,
)
from repo_chat.repositories.ids import RepositoryId
from repo_chat.repositories.models import IndexRequest

RID = "github:acme:widgets"


def index_request(force: bool = False, branch: str | None = None, **kwargs) -> IndexRequest:
    return IndexRequest(
        repository_id=RepositoryId.parse(kwargs.pop("repository_id", RID)),
        requester_id="u1",
        branch=branch,
        force=force,
        **kwargs,
    )


def make_orchestrator(
    status_store, lock_store, pipeline, payload_cache, summary_store, runner, vcs, settings, clock
) -> IndexingOrchestrator:
    return IndexingOrchestrator(
        status_store=status_store,
        lock_manager=lock_store,
        pipeline=pipeline,
        payload_cache=payload_cache,
        summary_store=summary_store,
        runner=runner,
        vcs=vcs,
        settings=settings,
        clock=clock,
    )


class TestRequestIndex:
    @pytest.mark.asyncio
    async def test_starts_detached_run(self, orchestrator, runner, status_store, clock):
        response = await orchestrator.request_index(index_request())

        assert response.status == IndexStatus.INDEXING
        assert response.message == MESSAGE_STARTED
        assert response.started
        assert response.to_dict()["startedAt"] == clock().isoformat()

        await runner.drain(timeout=5)
        record = await status_store.get_record(RID)
        assert record.status == IndexStatus.READY
        assert record.requester_id == "u1"
        assert record.stats.total_files == 3

    @pytest.mark.asyncio
    async def test_status_moves_indexing_then_ready(self, orchestrator, runner, status_store):
        await orchestrator.request_index(index_request())
        await runner.drain(timeout=5)

        assert status_store.statuses(RID) == [IndexStatus.INDEXING, IndexStatus.READY]

    @pytest.mark.asyncio
    async def test_lock_released_after_success(self, orchestrator, runner, lock_store):
        await orchestrator.request_index(index_request())
        await runner.drain(timeout=5)

        assert not lock_store.is_locked(RID)
        assert lock_store.released == [RID]

    @pytest.mark.asyncio
    async def test_ready_repository_is_not_reindexed(self, orchestrator, runner, pipeline):
        await orchestrator.request_index(index_request())
        await runner.drain(timeout=5)

        response = await orchestrator.request_index(index_request())

        assert response.status == IndexStatus.READY
        assert response.message == MESSAGE_ALREADY_READY
        assert not response.started
        assert response.stats.total_files == 3
        assert response.indexed_at is not None
        assert pipeline.calls == 1

    @pytest.mark.asyncio
    async def test_force_reindexes_ready_repository(self, orchestrator, runner, pipeline):
        await orchestrator.request_index(index_request())
        await runner.drain(timeout=5)

        response = await orchestrator.request_index(index_request(force=True))
        await runner.drain(timeout=5)

        assert response.started
        assert pipeline.calls == 2

    @pytest.mark.asyncio
    async def test_running_index_reported_in_progress(self, orchestrator, runner, pipeline):
        pipeline.hold()
        await orchestrator.request_index(index_request())
        await pipeline.entered.wait()

        response = await orchestrator.request_index(index_request(force=True))

        assert response.status == IndexStatus.INDEXING
        assert response.message == MESSAGE_IN_PROGRESS
        assert not response.started

        pipeline.release()
        await runner.drain(timeout=5)
        assert pipeline.calls == 1

    @pytest.mark.asyncio
    async def test_concurrent_requests_start_one_run(self, orchestrator, runner, pipeline):
        pipeline.hold()

        responses = await asyncio.gather(
            *(orchestrator.request_index(index_request()) for _ in range(5))
        )

        assert sum(r.started for r in responses) == 1
        assert all(r.status == IndexStatus.INDEXING for r in responses)

        pipeline.release()
        await runner.drain(timeout=5)
        assert pipeline.calls == 1

    @pytest.mark.asyncio
    async def test_held_lock_wins_over_stale_status(self, orchestrator, lock_store, pipeline):
        # Status still idle, but another worker already holds the lock.
        await lock_store.acquire(RID, ttl_seconds=900)

        response = await orchestrator.request_index(index_request())

        assert response.status == IndexStatus.INDEXING
        assert not response.started
        assert pipeline.calls == 0

    @pytest.mark.asyncio
    async def test_failed_run_records_error(self, orchestrator, runner, pipeline, status_store, lock_store):
        pipeline.error = IndexingError("Indexing acme/widgets failed while fetching tree", stage="fetching_tree")

        await orchestrator.request_index(index_request())
        await runner.drain(timeout=5)

        record = await status_store.get_record(RID)
        assert record.status == IndexStatus.ERROR
        assert record.error == "Indexing acme/widgets failed while fetching tree"
        assert not lock_store.is_locked(RID)
        assert status_store.statuses(RID) == [IndexStatus.INDEXING, IndexStatus.ERROR]

    @pytest.mark.asyncio
    async def test_errored_repository_is_retried(self, orchestrator, runner, pipeline, status_store):
        pipeline.error = RuntimeError("network down")
        await orchestrator.request_index(index_request())
        await runner.drain(timeout=5)

        pipeline.error = None
        response = await orchestrator.request_index(index_request())
        await runner.drain(timeout=5)

        assert response.started
        record = await status_store.get_record(RID)
        assert record.status == IndexStatus.READY
        assert record.error is None

    @pytest.mark.asyncio
    async def test_crashed_run_recovers_after_lock_ttl(
        self, orchestrator, runner, lock_store, status_store, clock, pipeline
    ):
        # A worker claimed the repository and died without releasing anything.
        await lock_store.acquire(RID, ttl_seconds=orchestrator.lock_ttl_seconds)
        await status_store.merge(RID, {"status": IndexStatus.INDEXING, "started_at": clock()})

        blocked = await orchestrator.request_index(index_request())
        assert not blocked.started

        clock.advance(orchestrator.lock_ttl_seconds + 1)
        response = await orchestrator.request_index(index_request())
        await runner.drain(timeout=5)

        assert response.started
        assert pipeline.calls == 1
        assert await status_store.get_status(RID) == IndexStatus.READY

    @pytest.mark.asyncio
    async def test_cancelled_run_records_error(self, orchestrator, runner, pipeline, status_store, lock_store):
        pipeline.hold()
        await orchestrator.request_index(index_request())
        await pipeline.entered.wait()

        await runner.drain(timeout=0.01)

        record = await status_store.get_record(RID)
        assert record.status == IndexStatus.ERROR
        assert record.error == "Indexing was cancelled"
        assert not lock_store.is_locked(RID)

    @pytest.mark.asyncio
    async def test_lock_released_when_marking_fails(self, orchestrator, status_store, lock_store, pipeline):
        status_store.merge = AsyncMock(side_effect=RuntimeError("store down"))

        with pytest.raises(RuntimeError):
            await orchestrator.request_index(index_request())

        assert not lock_store.is_locked(RID)
        assert pipeline.calls == 0

    @pytest.mark.asyncio
    async def test_branch_is_kept_when_not_given(self, orchestrator, runner, status_store):
        await orchestrator.request_index(index_request(branch="dev"))
        await runner.drain(timeout=5)
        await status_store.merge(RID, {"status": IndexStatus.ERROR})

        await orchestrator.request_index(index_request())
        started = [f for _, f in status_store.merges if f.get("status") == IndexStatus.INDEXING][-1]

        assert "branch" not in started
        await runner.drain(timeout=5)

    @pytest.mark.asyncio
    async def test_unsupported_provider_rejected(self, orchestrator, status_store):
        with pytest.raises(ValidationError):
            await orchestrator.request_index(index_request(repository_id="gitlab:acme:widgets"))
        assert status_store.merges == []


class TestSummaries:
    @pytest.mark.asyncio
    async def test_summaries_saved_with_index(self, orchestrator, runner, summary_store):
        await orchestrator.request_index(index_request())
        await runner.drain(timeout=5)

        assert summary_store.summaries[RID]["summary"]["totalFiles"] == 3
        assert summary_store.metrics[RID]["totalFiles"] == 3

    @pytest.mark.asyncio
    async def test_summary_failure_keeps_index_ready(self, orchestrator, runner, summary_store, status_store):
        summary_store.save = AsyncMock(side_effect=RuntimeError("graph down"))

        await orchestrator.request_index(index_request())
        await runner.drain(timeout=5)

        assert await status_store.get_status(RID) == IndexStatus.READY
        assert status_store.statuses(RID) == [IndexStatus.INDEXING, IndexStatus.READY]


class TestRevisionCheck:
    @pytest.fixture
    def checking_orchestrator(
        self, status_store, lock_store, pipeline, payload_cache, summary_store, runner, vcs,
        indexing_settings, clock,
    ):
        settings = indexing_settings.model_copy(update={"check_revision_on_ready": True})
        return make_orchestrator(
            status_store, lock_store, pipeline, payload_cache, summary_store, runner, vcs,
            settings, clock,
        )

    @pytest.mark.asyncio
    async def test_moved_branch_is_reindexed(self, checking_orchestrator, runner, pipeline, vcs):
        await checking_orchestrator.request_index(index_request())
        await runner.drain(timeout=5)
        vcs.revision = "c" * 40

        response = await checking_orchestrator.request_index(index_request())
        await runner.drain(timeout=5)

        assert response.started
        assert pipeline.calls == 2

    @pytest.mark.asyncio
    async def test_unchanged_branch_is_ready(self, checking_orchestrator, runner, pipeline, vcs):
        await checking_orchestrator.request_index(index_request())
        await runner.drain(timeout=5)
        vcs.revision = pipeline.result.branch_revision

        response = await checking_orchestrator.request_index(index_request())

        assert response.message == MESSAGE_ALREADY_READY
        assert pipeline.calls == 1

    @pytest.mark.asyncio
    async def test_check_failure_keeps_existing_index(self, checking_orchestrator, runner, pipeline, vcs):
        await checking_orchestrator.request_index(index_request())
        await runner.drain(timeout=5)
        vcs.fail_on = "revision"

        response = await checking_orchestrator.request_index(index_request())

        assert response.status == IndexStatus.READY
        assert pipeline.calls == 1

    @pytest.mark.asyncio
    async def test_disabled_by_default(self, orchestrator, runner, pipeline, vcs):
        await orchestrator.request_index(index_request())
        await runner.drain(timeout=5)
        vcs.revision = "c" * 40

        response = await orchestrator.request_index(index_request())

        assert response.message == MESSAGE_ALREADY_READY
        assert ("resolve_revision", "main") not in vcs.calls


class TestIndexNow:
    @pytest.mark.asyncio
    async def test_indexes_inline(self, orchestrator, status_store, lock_store):
        response = await orchestrator.index_now(index_request(force=True))

        assert response.status == IndexStatus.READY
        assert response.message == MESSAGE_COMPLETED
        assert response.stats.total_files == 3
        assert await status_store.get_status(RID) == IndexStatus.READY
        assert not lock_store.is_locked(RID)

    @pytest.mark.asyncio
    async def test_busy_lock_raises(self, orchestrator, lock_store, pipeline):
        await lock_store.acquire(RID, ttl_seconds=900)

        with pytest.raises(LockBusyError) as exc_info:
            await orchestrator.index_now(index_request(force=True))

        assert exc_info.value.repository_id == RID
        assert pipeline.calls == 0

    @pytest.mark.asyncio
    async def test_failure_propagates_and_is_recorded(self, orchestrator, pipeline, status_store, lock_store):
        pipeline.error = IndexingError("Indexing acme/widgets failed while resolving", stage="resolving")

        with pytest.raises(IndexingError):
            await orchestrator.index_now(index_request(force=True))

        record = await status_store.get_record(RID)
        assert record.status == IndexStatus.ERROR
        assert not lock_store.is_locked(RID)

    @pytest.mark.asyncio
    async def test_end_to_end_with_repository_indexer(
        self, status_store, lock_store, payload_cache, summary_store, runner, vcs,
        indexing_settings, clock,
    ):
        indexer = RepositoryIndexer(vcs, indexing_settings)
        orchestrator = make_orchestrator(
            status_store, lock_store, indexer, payload_cache, summary_store, runner, vcs,
            indexing_settings, clock,
        )

        response = await orchestrator.index_now(index_request())

        assert response.stats.total_files == len(vcs.files)
        record = await status_store.get_record(RID)
        assert record.branch == "main"
        assert record.branch_revision == vcs.revision
        assert record.heavy_payload_pointer == f"memory://{RID}"
        assert record.heavy_payload_size > 0
        payload = await payload_cache.load(RID)
        assert len(payload.files) == len(vcs.files)
        assert payload.indexed_at == clock()


class TestReads:
    @pytest.mark.asyncio
    async def test_get_index_record_of_unknown_repository(self, orchestrator):
        assert await orchestrator.get_index_record(RID) is None

    @pytest.mark.asyncio
    async def test_poll_status_of_unknown_repository(self, orchestrator):
        response = await orchestrator.poll_status(RID)
        assert response["status"] == "idle"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad", ["acme/widgets", "github:acme", "github::widgets"])
    async def test_malformed_ids_rejected(self, orchestrator, bad):
        with pytest.raises(ValidationError):
            await orchestrator.poll_status(bad)
        with pytest.raises(ValidationError):
            await orchestrator.get_index_record(bad)
