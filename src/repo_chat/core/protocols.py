from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from repo_chat.core.types import IndexStatus
    from repo_chat.pipeline.progress import ProgressTracker
    from repo_chat.repositories.models import (
        HeavyPayload,
        IndexMetadata,
        IndexResult,
        StatusRecord,
    )
    from repo_chat.repositories.lock import LockLease
    from repo_chat.repositories.summaries import IndexMetrics, ProjectSummary


@runtime_checkable
class GraphClient(Protocol):
    async def connect(self) -> None: ...
    async def close(self) -> None: ...
    async def execute(self, query: str, parameters: dict[str, Any] | None = None) -> list[dict[str, Any]]: ...
    async def execute_write(self, query: str, parameters: dict[str, Any] | None = None) -> list[dict[str, Any]]: ...
    async def health_check(self) -> bool: ...


@runtime_checkable
class StatusStore(Protocol):
    async def get_status(self, repository_id: str) -> IndexStatus: ...
    async def get_metadata(self, repository_id: str) -> IndexMetadata | None: ...
    async def get_record(self, repository_id: str) -> StatusRecord | None: ...
    async def merge(self, repository_id: str, fields: dict[str, Any]) -> None: ...


@runtime_checkable
class LockStore(Protocol):
    async def acquire(self, repository_id: str, ttl_seconds: float) -> LockLease: ...
    async def release(self, repository_id: str, token: str | None = None) -> None: ...


@runtime_checkable
class PayloadCache(Protocol):
    async def save(self, repository_id: str, payload: HeavyPayload) -> tuple[str, int]: ...
    async def load(self, repository_id: str) -> HeavyPayload | None: ...


@runtime_checkable
class SummaryStore(Protocol):
    async def save(self, repository_id: str, summary: ProjectSummary, metrics: IndexMetrics) -> None: ...
    async def get_summary(self, repository_id: str) -> dict[str, Any] | None: ...
    async def get_metrics(self, repository_id: str) -> dict[str, Any] | None: ...


@runtime_checkable
class VcsClient(Protocol):
    async def get_repository(self, owner: str, repo: str, credential: str | None = None) -> dict[str, Any]: ...
    async def get_default_branch(self, owner: str, repo: str, credential: str | None = None) -> str: ...
    async def resolve_revision(self, owner: str, repo: str, branch: str, credential: str | None = None) -> str: ...
    async def get_tree(self, owner: str, repo: str, revision: str, credential: str | None = None) -> dict[str, Any]: ...
    async def get_file_content(
        self, owner: str, repo: str, path: str, revision: str, credential: str | None = None
    ) -> bytes | None: ...


@runtime_checkable
class IndexPipeline(Protocol):
    async def run(
        self,
        owner: str,
        repo: str,
        branch: str | None = None,
        credential: str | None = None,
        tracker: ProgressTracker | None = None,
    ) -> IndexResult: ...


@runtime_checkable
class AnswerBackend(Protocol):
    async def query(self, payload: dict[str, Any]) -> dict[str, Any]: ...
