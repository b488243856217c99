"""Fetches a hosted repository's tree and contents and computes its statistics."""

import asyncio
import logging
from collections import Counter
from collections.abc import Iterable
from pathlib import PurePosixPath
from typing import Any

from repo_chat.config import IndexingSettings, get_settings
from repo_chat.core.errors import IndexingError
from repo_chat.core.protocols import VcsClient
from repo_chat.core.types import NO_EXTENSION, PipelineStage, language_for_extension
from repo_chat.pipeline.progress import ProgressTracker
from repo_chat.repositories.models import FileEntry, IndexResult, IndexStats, RepoInfo

logger = logging.getLogger(__name__)


def file_extension(path: str) -> str:
    suffix = PurePosixPath(path).suffix
    return suffix[1:].lower() if suffix else NO_EXTENSION


def compute_stats(files: Iterable[FileEntry]) -> IndexStats:
    files = list(files)
    extensions: Counter[str] = Counter()
    languages: Counter[str] = Counter()
    for f in files:
        ext = file_extension(f.path)
        extensions[ext] += 1
        languages[language_for_extension(ext)] += 1

    return IndexStats(
        total_files=len(files),
        total_size=sum(max(f.size, 0) for f in files),
        indexed_files=sum(1 for f in files if f.has_content),
        languages=dict(languages),
        extensions=dict(extensions),
    )


def decode_text(raw: bytes) -> str | None:
    """UTF-8 text, or ``None`` for content that looks binary."""
    if b"\x00" in raw:
        return None
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return None


class RepositoryIndexer:
    """The indexing pipeline for one repository branch.

    Performs no retries: any collaborator failure becomes one ``IndexingError``
    and a new index request is the way to try again.
    """

    def __init__(
        self,
        vcs: VcsClient,
        settings: IndexingSettings | None = None,
    ):
        self._vcs = vcs
        self._settings = settings or get_settings().indexing
        self._indexable = frozenset(self._settings.indexable_extensions)

    async def run(
        self,
        owner: str,
        repo: str,
        branch: str | None = None,
        credential: str | None = None,
        tracker: ProgressTracker | None = None,
    ) -> IndexResult:
        tracker = tracker or ProgressTracker()
        stage = PipelineStage.RESOLVING
        logger.info(f"Indexing {owner}/{repo} (branch: {branch or 'default'})")

        try:
            tracker.set_stage(stage, message="Resolving branch...")
            repo_data = await self._vcs.get_repository(owner, repo, credential)
            resolved_branch = await self.resolve_branch(
                owner, repo, branch, credential, repo_data=repo_data
            )
            revision = await self._vcs.resolve_revision(owner, repo, resolved_branch, credential)
            logger.info(f"Resolved {owner}/{repo}@{resolved_branch} to {revision}")

            stage = PipelineStage.FETCHING_TREE
            tracker.set_stage(stage, message="Listing repository tree...")
            tree = await self.fetch_tree(owner, repo, revision, credential)
            blobs = [item for item in tree.get("tree", []) if item.get("type") == "blob"]
            tracker.update_stats(files_listed=len(blobs))

            stage = PipelineStage.FETCHING_CONTENT
            files = await self.fetch_file_contents(
                owner, repo, revision, blobs, credential, tracker
            )

            stage = PipelineStage.COMPUTING_STATS
            tracker.set_stage(stage, message="Computing statistics...")
            stats = compute_stats(files)

        except Exception as e:
            logger.error(f"Indexing {owner}/{repo} failed during {stage.value}: {e}", exc_info=True)
            raise IndexingError(
                f"Indexing {owner}/{repo} failed while {stage.value.replace('_', ' ')}",
                stage=stage.value,
                cause=e,
            ) from e

        logger.info(
            f"Indexed {owner}/{repo}@{resolved_branch}: "
            f"{stats.total_files} files, {stats.indexed_files} with content"
        )
        return IndexResult(
            branch=resolved_branch,
            branch_revision=revision,
            files=files,
            tree=self._summarize_tree(tree),
            stats=stats,
            repo_info=RepoInfo.from_github(repo_data),
        )

    async def resolve_branch(
        self,
        owner: str,
        repo: str,
        explicit_branch: str | None = None,
        credential: str | None = None,
        repo_data: dict[str, Any] | None = None,
    ) -> str:
        if explicit_branch:
            return explicit_branch
        if repo_data and repo_data.get("default_branch"):
            return repo_data["default_branch"]
        return await self._vcs.get_default_branch(owner, repo, credential)

    async def fetch_tree(
        self,
        owner: str,
        repo: str,
        revision: str,
        credential: str | None = None,
    ) -> dict[str, Any]:
        tree = await self._vcs.get_tree(owner, repo, revision, credential)
        if tree.get("truncated"):
            logger.warning(f"Tree listing of {owner}/{repo}@{revision} was truncated by GitHub")
        return tree

    def _is_content_candidate(self, item: dict[str, Any]) -> bool:
        size = item.get("size") or 0
        return (
            file_extension(item["path"]) in self._indexable
            and size <= self._settings.max_file_bytes
        )

    async def fetch_file_contents(
        self,
        owner: str,
        repo: str,
        revision: str,
        blobs: list[dict[str, Any]],
        credential: str | None = None,
        tracker: ProgressTracker | None = None,
    ) -> tuple[FileEntry, ...]:
        """Fetch content for indexable files; every blob is listed regardless."""
        tracker = tracker or ProgressTracker()
        candidates = [b for b in blobs if self._is_content_candidate(b)]
        candidates = candidates[: self._settings.max_content_files]

        tracker.set_stage(
            PipelineStage.FETCHING_CONTENT,
            total=len(candidates),
            message=f"Fetching {len(candidates)} files...",
        )

        semaphore = asyncio.Semaphore(self._settings.max_concurrent_requests)
        contents: dict[str, str] = {}
        skipped = 0
        completed = 0

        async def fetch_one(item: dict[str, Any]) -> None:
            nonlocal skipped, completed
            async with semaphore:
                raw = await self._vcs.get_file_content(
                    owner, repo, item["path"], revision, credential
                )
            text = decode_text(raw) if raw is not None else None
            if text is None:
                skipped += 1
                logger.warning(f"Skipping content of {item['path']}: missing or binary")
            else:
                contents[item["path"]] = text[: self._settings.max_content_chars]
            completed += 1
            tracker.update_stage(completed, message=f"Fetched {item['path']}")

        # The first failure cancels the fetches still in flight.
        try:
            async with asyncio.TaskGroup() as group:
                for item in candidates:
                    group.create_task(fetch_one(item))
        except ExceptionGroup as e:
            raise e.exceptions[0]
        tracker.update_stats(files_fetched=len(contents), files_skipped=skipped)

        return tuple(
            FileEntry(
                path=b["path"],
                size=b.get("size") or 0,
                content_hash=b.get("sha"),
                content=contents.get(b["path"]),
            )
            for b in blobs
        )

    def _summarize_tree(self, tree: dict[str, Any]) -> dict[str, Any]:
        return {
            "sha": tree.get("sha"),
            "truncated": bool(tree.get("truncated")),
            "entries": [
                {
                    "path": item.get("path"),
                    "type": item.get("type"),
                    "size": item.get("size"),
                    "sha": item.get("sha"),
                }
                for item in tree.get("tree", [])
            ],
        }
