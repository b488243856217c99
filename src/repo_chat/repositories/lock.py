"""Time-bounded per-repository indexing locks.

A lock is an ``IndexLock`` node in the shared metadata store, so exclusivity
holds across every service instance. Claiming is a single conditional write:
the node is taken only when it is absent or its ``expires_at`` has passed.
A holder that dies without releasing blocks others for at most the TTL.
"""

import logging
import os
import socket
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass

from repo_chat.core.protocols import GraphClient
from repo_chat.graph.schema import INDEX_LOCK_LABEL

logger = logging.getLogger(__name__)


def default_holder() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


@dataclass(frozen=True)
class LockLease:
    repository_id: str
    acquired: bool
    token: str | None = None
    expires_at: float | None = None


class LockManager:
    """Lease-style mutual exclusion per repository id."""

    def __init__(
        self,
        client: GraphClient,
        clock: Callable[[], float] = time.time,
        holder: str | None = None,
    ):
        self._client = client
        self._clock = clock
        self._holder = holder or default_holder()

    async def acquire(self, repository_id: str, ttl_seconds: float) -> LockLease:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")

        now = self._clock()
        token = uuid.uuid4().hex
        expires_at = now + ttl_seconds

        query = f"""
        MERGE (l:{INDEX_LOCK_LABEL} {{repository_id: $repository_id}})
        ON CREATE SET l.expires_at = 0.0, l.token = ""
        WITH l
        WHERE l.expires_at <= $now
        SET l.token = $token, l.expires_at = $expires_at, l.holder = $holder
        RETURN l.token AS token
        """
        rows = await self._client.execute_write(
            query,
            {
                "repository_id": repository_id,
                "now": now,
                "token": token,
                "expires_at": expires_at,
                "holder": self._holder,
            },
        )

        if rows and rows[0].get("token") == token:
            logger.info(f"Lock acquired for {repository_id} (ttl={ttl_seconds}s)")
            return LockLease(
                repository_id=repository_id,
                acquired=True,
                token=token,
                expires_at=expires_at,
            )

        logger.info(f"Lock for {repository_id} is held by another run")
        return LockLease(repository_id=repository_id, acquired=False)

    async def release(self, repository_id: str, token: str | None = None) -> None:
        """Release a lock. Missing or already expired locks are a no-op.

        With a token only the matching lease is removed, so a run whose lease
        expired cannot release the lease of a newer run.
        """
        if token is None:
            query = f"""
            MATCH (l:{INDEX_LOCK_LABEL} {{repository_id: $repository_id}})
            WITH l, l.repository_id AS rid
            DELETE l
            RETURN count(rid) AS released
            """
        else:
            query = f"""
            MATCH (l:{INDEX_LOCK_LABEL} {{repository_id: $repository_id, token: $token}})
            WITH l, l.repository_id AS rid
            DELETE l
            RETURN count(rid) AS released
            """

        rows = await self._client.execute_write(
            query, {"repository_id": repository_id, "token": token}
        )
        released = rows[0].get("released", 0) if rows else 0
        if released:
            logger.info(f"Lock released for {repository_id}")
        else:
            logger.debug(f"No lock to release for {repository_id}")
