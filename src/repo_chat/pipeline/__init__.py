"""Indexing pipeline module."""

from repo_chat.core.types import PipelineStage
from repo_chat.pipeline.background import BackgroundRunner
from repo_chat.pipeline.indexer import RepositoryIndexer, compute_stats
from repo_chat.pipeline.orchestrator import IndexingOrchestrator
from repo_chat.pipeline.progress import ProgressTracker

__all__ = [
    "BackgroundRunner",
    "IndexingOrchestrator",
    "PipelineStage",
    "ProgressTracker",
    "RepositoryIndexer",
    "compute_stats",
]
