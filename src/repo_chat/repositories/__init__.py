"""Repository index records: identifiers, status, locks and cached payloads."""

from repo_chat.repositories.ids import RepositoryId, is_valid_repository_id
from repo_chat.repositories.lock import LockLease, LockManager
from repo_chat.repositories.models import (
    FileEntry,
    HeavyPayload,
    IndexMetadata,
    IndexRequest,
    IndexResponse,
    IndexResult,
    IndexStats,
    RepoInfo,
    StatusRecord,
)
from repo_chat.repositories.payload_cache import FilePayloadCache
from repo_chat.repositories.status_store import GraphStatusStore, poll_status
from repo_chat.repositories.summaries import (
    GraphSummaryStore,
    IndexMetrics,
    ProjectSummary,
    build_metrics,
    build_project_summary,
)

__all__ = [
    "FileEntry",
    "FilePayloadCache",
    "GraphStatusStore",
    "GraphSummaryStore",
    "HeavyPayload",
    "IndexMetadata",
    "IndexMetrics",
    "IndexRequest",
    "IndexResponse",
    "IndexResult",
    "IndexStats",
    "LockLease",
    "LockManager",
    "ProjectSummary",
    "RepoInfo",
    "RepositoryId",
    "StatusRecord",
    "build_metrics",
    "build_project_summary",
    "is_valid_repository_id",
    "poll_status",
]
