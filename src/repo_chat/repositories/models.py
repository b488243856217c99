"""Data models for repository indexing."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from repo_chat.core.types import IndexStatus
from repo_chat.repositories.ids import RepositoryId


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def parse_timestamp(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


@dataclass(frozen=True)
class IndexStats:
    """Aggregate statistics of one indexed branch."""

    total_files: int = 0
    total_size: int = 0
    indexed_files: int = 0
    languages: dict[str, int] = field(default_factory=dict)
    extensions: dict[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.total_files < 0:
            raise ValueError("total_files must be non-negative")
        if self.total_size < 0:
            raise ValueError("total_size must be non-negative")
        if not 0 <= self.indexed_files <= self.total_files:
            raise ValueError("indexed_files must be between 0 and total_files")

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalFiles": self.total_files,
            "totalSize": self.total_size,
            "indexedFiles": self.indexed_files,
            "languages": dict(self.languages),
            "extensions": dict(self.extensions),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "IndexStats":
        return cls(
            total_files=data.get("totalFiles", 0),
            total_size=data.get("totalSize", 0),
            indexed_files=data.get("indexedFiles", 0),
            languages=dict(data.get("languages") or {}),
            extensions=dict(data.get("extensions") or {}),
        )


@dataclass(frozen=True)
class FileEntry:
    path: str
    size: int = 0
    content_hash: str | None = None
    content: str | None = None

    @property
    def has_content(self) -> bool:
        return self.content is not None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "path": self.path,
            "size": self.size,
            "contentHash": self.content_hash,
        }
        if self.content is not None:
            data["content"] = self.content
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FileEntry":
        return cls(
            path=data["path"],
            size=data.get("size") or 0,
            content_hash=data.get("contentHash"),
            content=data.get("content"),
        )


@dataclass(frozen=True)
class RepoInfo:
    name: str | None = None
    description: str | None = None
    language: str | None = None
    default_branch: str | None = None
    stars: int = 0
    forks: int = 0
    created_at: str | None = None
    updated_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "language": self.language,
            "defaultBranch": self.default_branch,
            "stars": self.stars,
            "forks": self.forks,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_github(cls, data: dict[str, Any]) -> "RepoInfo":
        return cls(
            name=data.get("name"),
            description=data.get("description"),
            language=data.get("language"),
            default_branch=data.get("default_branch"),
            stars=data.get("stargazers_count") or 0,
            forks=data.get("forks_count") or 0,
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


@dataclass(frozen=True)
class HeavyPayload:
    """Full file listing and tree of one indexing run, kept in the cache tier."""

    files: tuple[FileEntry, ...] = field(default_factory=tuple)
    tree: dict[str, Any] = field(default_factory=dict)
    branch: str | None = None
    branch_revision: str | None = None
    indexed_at: datetime | None = None

    @property
    def content_files(self) -> list[FileEntry]:
        return [f for f in self.files if f.has_content]

    def to_dict(self) -> dict[str, Any]:
        return {
            "files": [f.to_dict() for f in self.files],
            "tree": self.tree,
            "branch": self.branch,
            "branchRevision": self.branch_revision,
            "indexedAt": format_timestamp(self.indexed_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HeavyPayload":
        return cls(
            files=tuple(FileEntry.from_dict(f) for f in data.get("files", [])),
            tree=data.get("tree") or {},
            branch=data.get("branch"),
            branch_revision=data.get("branchRevision"),
            indexed_at=parse_timestamp(data.get("indexedAt")),
        )


@dataclass(frozen=True)
class IndexResult:
    """Output of one successful pipeline run."""

    branch: str
    branch_revision: str
    files: tuple[FileEntry, ...]
    tree: dict[str, Any]
    stats: IndexStats
    repo_info: RepoInfo = field(default_factory=RepoInfo)

    def to_payload(self, indexed_at: datetime) -> HeavyPayload:
        return HeavyPayload(
            files=self.files,
            tree=self.tree,
            branch=self.branch,
            branch_revision=self.branch_revision,
            indexed_at=indexed_at,
        )


@dataclass(frozen=True)
class StatusRecord:
    """Lifecycle state and light metadata of one repository."""

    repository_id: str
    status: IndexStatus = IndexStatus.IDLE
    owner: str | None = None
    repo: str | None = None
    branch: str | None = None
    branch_revision: str | None = None
    requester_id: str | None = None
    started_at: datetime | None = None
    indexed_at: datetime | None = None
    stats: IndexStats | None = None
    error: str | None = None
    heavy_payload_pointer: str | None = None
    heavy_payload_size: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "repositoryId": self.repository_id,
            "status": self.status.value,
            "owner": self.owner,
            "repo": self.repo,
            "branch": self.branch,
            "branchRevision": self.branch_revision,
            "requesterId": self.requester_id,
            "startedAt": format_timestamp(self.started_at),
            "indexedAt": format_timestamp(self.indexed_at),
            "stats": self.stats.to_dict() if self.stats else None,
            "error": self.error,
            "heavyPayloadPointer": self.heavy_payload_pointer,
            "heavyPayloadSize": self.heavy_payload_size,
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
        }


@dataclass(frozen=True)
class IndexMetadata:
    indexed_at: datetime | None = None
    stats: IndexStats | None = None
    error: str | None = None

    @classmethod
    def from_record(cls, record: StatusRecord) -> "IndexMetadata":
        return cls(indexed_at=record.indexed_at, stats=record.stats, error=record.error)


@dataclass(frozen=True)
class IndexRequest:
    repository_id: RepositoryId
    requester_id: str
    branch: str | None = None
    credential: str | None = None
    force: bool = False

    @property
    def owner(self) -> str:
        return self.repository_id.owner

    @property
    def repo(self) -> str:
        return self.repository_id.repo

    def __repr__(self) -> str:
        # Keep credentials out of logs.
        return (
            f"IndexRequest(repository_id={str(self.repository_id)!r}, "
            f"requester_id={self.requester_id!r}, branch={self.branch!r}, "
            f"credential={'***' if self.credential else None}, force={self.force})"
        )


@dataclass(frozen=True)
class IndexResponse:
    """Answer to a start-index request."""

    repository_id: str
    status: IndexStatus
    message: str
    started: bool = False
    stats: IndexStats | None = None
    indexed_at: datetime | None = None
    started_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "repositoryId": self.repository_id,
            "status": self.status.value,
            "message": self.message,
        }
        if self.stats is not None:
            data["stats"] = self.stats.to_dict()
        if self.indexed_at is not None:
            data["indexedAt"] = format_timestamp(self.indexed_at)
        if self.started_at is not None:
            data["startedAt"] = format_timestamp(self.started_at)
        return data
