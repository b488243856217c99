"""Indexing lifecycle: status checks, locking, detached runs and persistence.

Per repository the status moves ``idle -> indexing -> ready | error``. A ready
repository is indexed again only when forced (or, with the revision check
enabled, when its branch head moved); an errored one on any new request.
Only the run holding the repository's lock writes its status record and
cached payload.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from repo_chat.config import IndexingSettings, get_settings
from repo_chat.core.errors import LockBusyError
from repo_chat.core.protocols import (
    IndexPipeline,
    LockStore,
    PayloadCache,
    StatusStore,
    SummaryStore,
    VcsClient,
)
from repo_chat.core.types import IndexStatus, PipelineStage
from repo_chat.pipeline.background import BackgroundRunner
from repo_chat.pipeline.progress import ProgressTracker
from repo_chat.repositories.ids import RepositoryId
from repo_chat.repositories.lock import LockLease
from repo_chat.repositories.models import (
    HeavyPayload,
    IndexRequest,
    IndexResponse,
    IndexResult,
    StatusRecord,
    utcnow,
)
from repo_chat.repositories.status_store import poll_status
from repo_chat.repositories.summaries import build_metrics, build_project_summary

logger = logging.getLogger(__name__)

MESSAGE_IN_PROGRESS = "Indexing already in progress"
MESSAGE_ALREADY_READY = "Repository already indexed"
MESSAGE_STARTED = "Indexing started"
MESSAGE_COMPLETED = "Repository indexed successfully"


class IndexingOrchestrator:
    def __init__(
        self,
        status_store: StatusStore,
        lock_manager: LockStore,
        pipeline: IndexPipeline,
        payload_cache: PayloadCache,
        summary_store: SummaryStore,
        runner: BackgroundRunner | None = None,
        vcs: VcsClient | None = None,
        settings: IndexingSettings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._status_store = status_store
        self._lock = lock_manager
        self._pipeline = pipeline
        self._payload_cache = payload_cache
        self._summary_store = summary_store
        self._runner = runner or BackgroundRunner()
        self._vcs = vcs
        self._settings = settings or get_settings().indexing
        self._clock = clock

    @property
    def lock_ttl_seconds(self) -> float:
        return self._settings.index_lock_ttl_seconds

    async def request_index(self, request: IndexRequest) -> IndexResponse:
        """Start indexing in the background unless it is running or not needed.

        Returns as soon as the run is claimed; the run itself continues on the
        background runner independently of the caller.
        """
        request.repository_id.ensure_supported()
        repository_id = str(request.repository_id)

        status = await self._status_store.get_status(repository_id)
        if status == IndexStatus.INDEXING and not await self._is_stale_run(repository_id):
            logger.info(f"{repository_id} is already being indexed")
            return IndexResponse(repository_id, IndexStatus.INDEXING, MESSAGE_IN_PROGRESS)

        if status == IndexStatus.READY and not request.force:
            if not await self._revision_changed(request):
                return await self._ready_response(repository_id)

        lease = await self._lock.acquire(repository_id, self.lock_ttl_seconds)
        if not lease.acquired:
            # The lock is authoritative here; the status read above may be stale.
            return IndexResponse(repository_id, IndexStatus.INDEXING, MESSAGE_IN_PROGRESS)

        try:
            started_at = await self._mark_indexing(request)
        except BaseException:
            await self._release(lease)
            raise

        self._runner.spawn(self._execute(request, lease), name=f"index:{repository_id}")
        logger.info(f"Started background indexing of {repository_id}")
        return IndexResponse(
            repository_id,
            IndexStatus.INDEXING,
            MESSAGE_STARTED,
            started=True,
            started_at=started_at,
        )

    async def index_now(
        self,
        request: IndexRequest,
        tracker: ProgressTracker | None = None,
    ) -> IndexResponse:
        """Index inline for trusted callers; raises ``LockBusyError`` when busy."""
        request.repository_id.ensure_supported()
        repository_id = str(request.repository_id)

        lease = await self._lock.acquire(repository_id, self.lock_ttl_seconds)
        if not lease.acquired:
            raise LockBusyError(repository_id)

        try:
            await self._mark_indexing(request)
        except BaseException:
            await self._release(lease)
            raise

        return await self._execute(request, lease, tracker)

    async def poll_status(self, repository_id: str) -> dict:
        RepositoryId.parse(repository_id)
        return await poll_status(self._status_store, repository_id)

    async def get_index_record(self, repository_id: str) -> StatusRecord | None:
        """Internal read; ``None`` means no record exists, unlike polling."""
        RepositoryId.parse(repository_id)
        return await self._status_store.get_record(repository_id)

    async def _execute(
        self,
        request: IndexRequest,
        lease: LockLease,
        tracker: ProgressTracker | None = None,
    ) -> IndexResponse:
        repository_id = str(request.repository_id)
        tracker = tracker or ProgressTracker()
        tracker.start()

        try:
            result = await self._pipeline.run(
                request.owner,
                request.repo,
                branch=request.branch,
                credential=request.credential,
                tracker=tracker,
            )

            tracker.set_stage(PipelineStage.PERSISTING, message="Saving index...")
            indexed_at = self._clock()
            payload = result.to_payload(indexed_at)
            pointer, size = await self._payload_cache.save(repository_id, payload)

            await self._status_store.merge(
                repository_id,
                {
                    "status": IndexStatus.READY,
                    "indexed_at": indexed_at,
                    "branch": result.branch,
                    "branch_revision": result.branch_revision,
                    "stats": result.stats,
                    "heavy_payload_pointer": pointer,
                    "heavy_payload_size": size,
                    "error": None,
                },
            )
            await self._save_summaries(repository_id, payload, result)
            tracker.complete()

        except asyncio.CancelledError:
            tracker.error("Indexing was cancelled")
            await self._record_failure(repository_id, "Indexing was cancelled")
            raise
        except Exception as e:
            message = str(e)
            logger.error(f"Indexing of {repository_id} failed: {message}", exc_info=True)
            tracker.error(message)
            await self._record_failure(repository_id, message)
            raise
        finally:
            await self._release(lease)

        logger.info(
            f"Indexed {repository_id}@{result.branch} ({result.branch_revision}): "
            f"{result.stats.total_files} files"
        )
        return IndexResponse(
            repository_id,
            IndexStatus.READY,
            MESSAGE_COMPLETED,
            started=True,
            stats=result.stats,
            indexed_at=indexed_at,
        )

    async def _mark_indexing(self, request: IndexRequest) -> datetime:
        started_at = self._clock()
        fields = {
            "status": IndexStatus.INDEXING,
            "started_at": started_at,
            "owner": request.owner,
            "repo": request.repo,
            "requester_id": request.requester_id,
        }
        if request.branch:
            fields["branch"] = request.branch
        await self._status_store.merge(str(request.repository_id), fields)
        return started_at

    async def _save_summaries(
        self,
        repository_id: str,
        payload: HeavyPayload,
        result: IndexResult,
    ) -> None:
        # Summaries are derived views; the index stays ready if they fail.
        try:
            summary = build_project_summary(payload, result.stats, result.repo_info)
            metrics = build_metrics(payload, result.stats)
            await self._summary_store.save(repository_id, summary, metrics)
        except Exception as e:
            logger.warning(f"Failed to save summaries for {repository_id}: {e}", exc_info=True)

    async def _record_failure(self, repository_id: str, message: str) -> None:
        try:
            await self._status_store.merge(
                repository_id, {"status": IndexStatus.ERROR, "error": message}
            )
        except Exception as e:
            logger.error(f"Failed to record error status for {repository_id}: {e}", exc_info=True)

    async def _release(self, lease: LockLease) -> None:
        try:
            await self._lock.release(lease.repository_id, lease.token)
        except Exception as e:
            # The lease expires on its own after the TTL.
            logger.error(f"Failed to release lock for {lease.repository_id}: {e}", exc_info=True)

    async def _is_stale_run(self, repository_id: str) -> bool:
        """True when an ``indexing`` record outlived the lock TTL (crashed run)."""
        try:
            record = await self._status_store.get_record(repository_id)
        except Exception as e:
            logger.warning(f"Could not read record of {repository_id}: {e}")
            return False
        if record is None or record.started_at is None:
            return True
        age = (self._clock() - record.started_at).total_seconds()
        if age >= self.lock_ttl_seconds:
            logger.warning(f"{repository_id} has been indexing for {age:.0f}s, treating the run as stale")
            return True
        return False

    async def _revision_changed(self, request: IndexRequest) -> bool:
        if not self._settings.check_revision_on_ready or self._vcs is None:
            return False

        repository_id = str(request.repository_id)
        try:
            record = await self._status_store.get_record(repository_id)
            branch = request.branch or (record.branch if record else None)
            if record is None or not branch:
                return False
            head = await self._vcs.resolve_revision(
                request.owner, request.repo, branch, request.credential
            )
        except Exception as e:
            logger.warning(f"Revision check for {repository_id} failed: {e}")
            return False

        if head != record.branch_revision:
            logger.info(
                f"{repository_id}@{branch} moved from {record.branch_revision} to {head}, reindexing"
            )
            return True
        return False

    async def _ready_response(self, repository_id: str) -> IndexResponse:
        try:
            metadata = await self._status_store.get_metadata(repository_id)
        except Exception as e:
            logger.warning(f"Metadata read failed for {repository_id}: {e}")
            metadata = None
        return IndexResponse(
            repository_id,
            IndexStatus.READY,
            MESSAGE_ALREADY_READY,
            stats=metadata.stats if metadata else None,
            indexed_at=metadata.indexed_at if metadata else None,
        )
