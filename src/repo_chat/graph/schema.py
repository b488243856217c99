"""Graph schema for repository index records."""

import logging

from repo_chat.core.protocols import GraphClient

logger = logging.getLogger(__name__)

REPOSITORY_INDEX_LABEL = "RepositoryIndex"
INDEX_LOCK_LABEL = "IndexLock"
PROJECT_SUMMARY_LABEL = "ProjectSummary"
INDEX_METRICS_LABEL = "IndexMetrics"


class GraphSchema:
    """Manages indexes and uniqueness constraints."""

    UNIQUE_CONSTRAINTS = [
        (REPOSITORY_INDEX_LABEL, "repository_id"),
        (INDEX_LOCK_LABEL, "repository_id"),
        (PROJECT_SUMMARY_LABEL, "repository_id"),
        (INDEX_METRICS_LABEL, "repository_id"),
    ]

    INDEX_DEFINITIONS = [
        (REPOSITORY_INDEX_LABEL, "repository_id"),
        (REPOSITORY_INDEX_LABEL, "status"),
        (INDEX_LOCK_LABEL, "repository_id"),
        (PROJECT_SUMMARY_LABEL, "repository_id"),
        (INDEX_METRICS_LABEL, "repository_id"),
    ]

    def __init__(self, client: GraphClient):
        self.client = client

    def _generate_queries(self) -> list[str]:
        constraints = [
            f"CREATE CONSTRAINT ON (n:{label}) ASSERT n.{prop} IS UNIQUE;"
            for label, prop in self.UNIQUE_CONSTRAINTS
        ]
        indexes = [
            f"CREATE INDEX ON :{label}({prop});"
            for label, prop in self.INDEX_DEFINITIONS
        ]
        return constraints + indexes

    async def setup(self) -> None:
        """Create all indexes and constraints."""
        for query in self._generate_queries():
            try:
                await self.client.execute(query)
            except Exception as e:
                logger.warning(f"Schema statement skipped (may already exist): {e}")
