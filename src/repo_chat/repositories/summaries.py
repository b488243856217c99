"""Content-free digests derived from an index payload.

Both views are rebuilt from scratch after every successful run and replace
the previous ones wholesale.
"""

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from repo_chat.core.protocols import GraphClient
from repo_chat.graph.schema import (
    INDEX_METRICS_LABEL,
    PROJECT_SUMMARY_LABEL,
    REPOSITORY_INDEX_LABEL,
)
from repo_chat.repositories.models import (
    HeavyPayload,
    IndexStats,
    RepoInfo,
    format_timestamp,
    utcnow,
)

logger = logging.getLogger(__name__)

MAIN_FILES_LIMIT = 20
LARGEST_FILES_LIMIT = 10


@dataclass(frozen=True)
class ProjectSummary:
    description: str
    language: str
    total_files: int
    main_files: list[dict[str, Any]] = field(default_factory=list)
    languages: dict[str, int] = field(default_factory=dict)
    extensions: dict[str, int] = field(default_factory=dict)
    repo_info: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": {
                "description": self.description,
                "language": self.language,
                "totalFiles": self.total_files,
                "mainFiles": list(self.main_files),
            },
            "structure": {
                "languages": dict(self.languages),
                "extensions": dict(self.extensions),
                "topFiles": [f["path"] for f in self.main_files],
            },
            "repoInfo": dict(self.repo_info),
        }


@dataclass(frozen=True)
class IndexMetrics:
    total_files: int
    total_size: int
    indexed_files: int
    average_file_size: int
    languages: dict[str, int] = field(default_factory=dict)
    extensions: dict[str, int] = field(default_factory=dict)
    largest_files: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalFiles": self.total_files,
            "totalSize": self.total_size,
            "indexedFiles": self.indexed_files,
            "languages": dict(self.languages),
            "extensions": dict(self.extensions),
            "averageFileSize": self.average_file_size,
            "largestFiles": list(self.largest_files),
            "fileCountByExtension": dict(self.extensions),
        }


def build_project_summary(
    payload: HeavyPayload,
    stats: IndexStats,
    repo_info: RepoInfo | None = None,
) -> ProjectSummary:
    repo_info = repo_info or RepoInfo()
    main_files = [
        {"path": f.path, "size": f.size, "contentHash": f.content_hash}
        for f in sorted(payload.content_files, key=lambda f: f.path)[:MAIN_FILES_LIMIT]
    ]
    return ProjectSummary(
        description=repo_info.description or "No description",
        language=repo_info.language or "Unknown",
        total_files=stats.total_files,
        main_files=main_files,
        languages=dict(stats.languages),
        extensions=dict(stats.extensions),
        repo_info={
            "name": repo_info.name,
            "stars": repo_info.stars,
            "forks": repo_info.forks,
            "createdAt": repo_info.created_at,
            "updatedAt": repo_info.updated_at,
        },
    )


def build_metrics(payload: HeavyPayload, stats: IndexStats) -> IndexMetrics:
    largest = sorted(payload.files, key=lambda f: (-f.size, f.path))[:LARGEST_FILES_LIMIT]
    average = round(stats.total_size / stats.total_files) if stats.total_files > 0 else 0
    return IndexMetrics(
        total_files=stats.total_files,
        total_size=stats.total_size,
        indexed_files=stats.indexed_files,
        average_file_size=average,
        languages=dict(stats.languages),
        extensions=dict(stats.extensions),
        largest_files=[{"path": f.path, "size": f.size} for f in largest],
    )


class GraphSummaryStore:
    """Persists summaries and metrics as nodes hanging off the status record.

    Both documents are replaced in a single write, so a reader never sees a
    summary from one run next to metrics from another.
    """

    def __init__(self, client: GraphClient, clock: Callable[[], datetime] = utcnow):
        self._client = client
        self._clock = clock

    async def save(
        self,
        repository_id: str,
        summary: ProjectSummary,
        metrics: IndexMetrics,
    ) -> None:
        query = f"""
        MERGE (r:{REPOSITORY_INDEX_LABEL} {{repository_id: $repository_id}})
        MERGE (s:{PROJECT_SUMMARY_LABEL} {{repository_id: $repository_id}})
        ON CREATE SET s.created_at = $now
        SET s.document = $summary, s.updated_at = $now
        MERGE (r)-[:HAS_SUMMARY]->(s)
        MERGE (m:{INDEX_METRICS_LABEL} {{repository_id: $repository_id}})
        ON CREATE SET m.created_at = $now
        SET m.document = $metrics, m.updated_at = $now
        MERGE (r)-[:HAS_METRICS]->(m)
        """
        await self._client.execute_write(
            query,
            {
                "repository_id": repository_id,
                "summary": json.dumps(summary.to_dict()),
                "metrics": json.dumps(metrics.to_dict()),
                "now": format_timestamp(self._clock()),
            },
        )
        logger.info(f"Saved project summary and metrics for {repository_id}")

    async def get_summary(self, repository_id: str) -> dict[str, Any] | None:
        return await self._load(repository_id, PROJECT_SUMMARY_LABEL)

    async def get_metrics(self, repository_id: str) -> dict[str, Any] | None:
        return await self._load(repository_id, INDEX_METRICS_LABEL)

    async def _load(self, repository_id: str, label: str) -> dict[str, Any] | None:
        query = f"""
        MATCH (s:{label} {{repository_id: $repository_id}})
        RETURN s.document AS document
        """
        rows = await self._client.execute(query, {"repository_id": repository_id})
        if not rows or not rows[0].get("document"):
            return None
        return json.loads(rows[0]["document"])
