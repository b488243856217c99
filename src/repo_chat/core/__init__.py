"""Core abstractions and shared types for repo-chat."""

from repo_chat.core.errors import (
    ConnectionError,
    GraphError,
    IndexingError,
    IndexingInProgressError,
    InternalError,
    LockBusyError,
    NotReadyError,
    QueryRejectedError,
    RepoChatError,
    StorageError,
    UpstreamError,
    ValidationError,
    VcsError,
)
from repo_chat.core.protocols import (
    AnswerBackend,
    GraphClient,
    IndexPipeline,
    LockStore,
    PayloadCache,
    StatusStore,
    SummaryStore,
    VcsClient,
)
from repo_chat.core.types import IndexStatus, PipelineStage

__all__ = [
    "AnswerBackend",
    "GraphClient",
    "IndexPipeline",
    "LockStore",
    "PayloadCache",
    "StatusStore",
    "SummaryStore",
    "VcsClient",
    "IndexStatus",
    "PipelineStage",
    "ConnectionError",
    "GraphError",
    "IndexingError",
    "IndexingInProgressError",
    "InternalError",
    "LockBusyError",
    "NotReadyError",
    "QueryRejectedError",
    "RepoChatError",
    "StorageError",
    "UpstreamError",
    "ValidationError",
    "VcsError",
]
