"""Wiring of the collaborators behind the HTTP API and the CLI."""

import logging
from dataclasses import dataclass

from repo_chat.config import Settings, get_settings
from repo_chat.core.protocols import GraphClient, LockStore, PayloadCache, StatusStore, SummaryStore
from repo_chat.graph import GraphSchema, MemgraphClient
from repo_chat.pipeline import BackgroundRunner, IndexingOrchestrator, RepositoryIndexer
from repo_chat.query import AnswerBackendClient, QueryGateway
from repo_chat.repositories import (
    FilePayloadCache,
    GraphStatusStore,
    GraphSummaryStore,
    LockManager,
)
from repo_chat.vcs import GitHubClient

logger = logging.getLogger(__name__)

DRAIN_TIMEOUT_SECONDS = 30.0


@dataclass
class Services:
    status_store: StatusStore
    lock_manager: LockStore
    payload_cache: PayloadCache
    summary_store: SummaryStore
    orchestrator: IndexingOrchestrator
    gateway: QueryGateway
    runner: BackgroundRunner
    graph: GraphClient | None = None
    vcs: GitHubClient | None = None
    answer_backend: AnswerBackendClient | None = None

    async def close(self) -> None:
        await self.runner.drain(timeout=DRAIN_TIMEOUT_SECONDS)
        if self.vcs is not None:
            await self.vcs.close()
        if self.answer_backend is not None:
            await self.answer_backend.close()
        if self.graph is not None:
            await self.graph.close()
        logger.info("Services closed")


async def build_services(settings: Settings | None = None) -> Services:
    """Connect to Memgraph and assemble the production services."""
    settings = settings or get_settings()

    graph = MemgraphClient(
        uri=settings.memgraph_uri,
        user=settings.memgraph_user,
        password=settings.memgraph_password,
    )
    await graph.connect()
    await GraphSchema(graph).setup()

    status_store = GraphStatusStore(graph)
    lock_manager = LockManager(graph)
    payload_cache = FilePayloadCache(settings.cache_dir)
    summary_store = GraphSummaryStore(graph)
    vcs = GitHubClient(
        base_url=settings.github.github_api_url,
        fallback_token=settings.github_token,
        timeout=settings.github.github_timeout_seconds,
    )
    answer_backend = AnswerBackendClient(settings.answer_backend)
    runner = BackgroundRunner()

    orchestrator = IndexingOrchestrator(
        status_store=status_store,
        lock_manager=lock_manager,
        pipeline=RepositoryIndexer(vcs, settings.indexing),
        payload_cache=payload_cache,
        summary_store=summary_store,
        runner=runner,
        vcs=vcs,
        settings=settings.indexing,
    )
    gateway = QueryGateway(
        status_store=status_store,
        backend=answer_backend,
        payload_cache=payload_cache,
        summary_store=summary_store,
        settings=settings.indexing,
    )

    logger.info("Services initialized")
    return Services(
        status_store=status_store,
        lock_manager=lock_manager,
        payload_cache=payload_cache,
        summary_store=summary_store,
        orchestrator=orchestrator,
        gateway=gateway,
        runner=runner,
        graph=graph,
        vcs=vcs,
        answer_backend=answer_backend,
    )
