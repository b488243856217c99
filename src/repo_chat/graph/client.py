"""Memgraph client backing the status, lock and summary records."""

import logging
from contextlib import asynccontextmanager
from typing import Any

from neo4j import AsyncDriver, AsyncGraphDatabase, AsyncSession
from neo4j.exceptions import ConstraintError, Neo4jError, TransientError
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from repo_chat.config import get_settings
from repo_chat.core.errors import ConnectionError, GraphError

logger = logging.getLogger(__name__)

WRITE_RETRY_ATTEMPTS = 5
WRITE_RETRY_MULTIPLIER = 0.05
WRITE_RETRY_MAX_WAIT = 1


def is_retryable_write_error(exc: BaseException) -> bool:
    """Conflicts a re-run of the same write resolves.

    Two writers that both create a node under a unique constraint race at
    commit; the loser sees a constraint violation, and on retry its
    ``MERGE`` matches the node the winner committed.
    """
    if isinstance(exc, (TransientError, ConstraintError)):
        return True
    return isinstance(exc, Neo4jError) and "constraint violation" in str(exc).lower()


class MemgraphClient:
    """Async client for Memgraph."""

    def __init__(
        self,
        uri: str | None = None,
        user: str | None = None,
        password: str | None = None,
    ):
        """Initialize Memgraph client.

        Args:
            uri: Memgraph connection URI. Defaults to settings.
            user: Username. Defaults to settings.
            password: Password. Defaults to settings.
        """
        settings = get_settings()
        self._uri = uri or settings.memgraph_uri
        self._user = user or settings.memgraph_user
        self._password = password or settings.memgraph_password
        self._driver: AsyncDriver | None = None

    async def connect(self) -> None:
        """Establish connection to Memgraph."""
        if self._driver is None:
            try:
                self._driver = AsyncGraphDatabase.driver(
                    self._uri,
                    auth=(self._user, self._password),
                )
                await self._driver.verify_connectivity()
                logger.info(f"Connected to Memgraph at {self._uri}")
            except Exception as e:
                self._driver = None
                raise ConnectionError(
                    f"Failed to connect to Memgraph at {self._uri}",
                    cause=e,
                ) from e

    async def close(self) -> None:
        """Close the database connection."""
        if self._driver:
            try:
                await self._driver.close()
                logger.info("Closed Memgraph connection")
            except Exception as e:
                logger.warning(f"Error closing Memgraph connection: {e}")
            finally:
                self._driver = None

    @asynccontextmanager
    async def session(self):
        """Get a database session context manager."""
        if self._driver is None:
            await self.connect()
        session: AsyncSession = self._driver.session()
        try:
            yield session
        finally:
            await session.close()

    async def execute(
        self,
        query: str,
        parameters: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Execute a read query and return records as dictionaries.

        Raises:
            GraphError: If query execution fails.
        """
        try:
            async with self.session() as session:
                result = await session.run(query, parameters or {})
                return await result.data()
        except Exception as e:
            logger.error(f"Query execution failed: {e}")
            raise GraphError(f"Failed to execute query: {query[:100]}...", cause=e) from e

    async def execute_write(
        self,
        query: str,
        parameters: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Execute a write query as one transaction.

        Conflicting concurrent writers surface as transient errors or unique
        constraint violations and are retried; each retry re-evaluates the
        query against committed state.

        Raises:
            GraphError: If the write fails or keeps conflicting.
        """
        try:
            return await self._run_write(query, parameters or {})
        except Exception as e:
            logger.error(f"Write query execution failed: {e}")
            raise GraphError(f"Failed to execute write query: {query[:100]}...", cause=e) from e

    @retry(
        retry=retry_if_exception(is_retryable_write_error),
        stop=stop_after_attempt(WRITE_RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=WRITE_RETRY_MULTIPLIER, max=WRITE_RETRY_MAX_WAIT),
        reraise=True,
    )
    async def _run_write(self, query: str, parameters: dict[str, Any]) -> list[dict[str, Any]]:
        async with self.session() as session:
            result = await session.run(query, parameters)
            return await result.data()

    async def health_check(self) -> bool:
        try:
            await self.execute("RETURN 1 as n")
            return True
        except Exception as e:
            logger.warning(f"Health check failed: {e}")
            return False

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
