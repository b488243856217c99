"""Status records of repository indexing, persisted in Memgraph."""

import json
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from repo_chat.core.protocols import GraphClient, StatusStore
from repo_chat.core.types import IndexStatus
from repo_chat.graph.schema import REPOSITORY_INDEX_LABEL
from repo_chat.repositories.models import (
    IndexMetadata,
    IndexStats,
    StatusRecord,
    format_timestamp,
    parse_timestamp,
    utcnow,
)

logger = logging.getLogger(__name__)

MERGEABLE_FIELDS = frozenset({
    "status",
    "owner",
    "repo",
    "branch",
    "branch_revision",
    "requester_id",
    "started_at",
    "indexed_at",
    "stats",
    "error",
    "heavy_payload_pointer",
    "heavy_payload_size",
})


def to_properties(fields: dict[str, Any]) -> dict[str, Any]:
    """Convert partial record fields to storable scalar properties.

    A ``None`` value removes the property from the stored record.
    """
    unknown = set(fields) - MERGEABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown status record fields: {sorted(unknown)}")

    props: dict[str, Any] = {}
    for key, value in fields.items():
        if key == "stats":
            props["stats_json"] = json.dumps(value.to_dict()) if value is not None else None
        elif isinstance(value, IndexStatus):
            props[key] = value.value
        elif isinstance(value, datetime):
            props[key] = format_timestamp(value)
        else:
            props[key] = value
    return props


def record_from_properties(props: dict[str, Any]) -> StatusRecord:
    stats = None
    stats_json = props.get("stats_json")
    if stats_json:
        try:
            stats = IndexStats.from_dict(json.loads(stats_json))
        except (ValueError, TypeError):
            logger.warning(
                f"Discarding unreadable stats for {props.get('repository_id')}",
                exc_info=True,
            )

    return StatusRecord(
        repository_id=props["repository_id"],
        status=IndexStatus.parse(props.get("status")),
        owner=props.get("owner"),
        repo=props.get("repo"),
        branch=props.get("branch"),
        branch_revision=props.get("branch_revision"),
        requester_id=props.get("requester_id"),
        started_at=parse_timestamp(props.get("started_at")),
        indexed_at=parse_timestamp(props.get("indexed_at")),
        stats=stats,
        error=props.get("error"),
        heavy_payload_pointer=props.get("heavy_payload_pointer"),
        heavy_payload_size=props.get("heavy_payload_size"),
        created_at=parse_timestamp(props.get("created_at")),
        updated_at=parse_timestamp(props.get("updated_at")),
    )


class GraphStatusStore:
    """One ``RepositoryIndex`` node per repository id.

    ``get_status`` is the public polling read and never fails; ``get_record``
    is the internal read and returns ``None`` when no record exists.
    """

    def __init__(self, client: GraphClient, clock: Callable[[], datetime] = utcnow):
        self._client = client
        self._clock = clock

    async def get_record(self, repository_id: str) -> StatusRecord | None:
        query = f"""
        MATCH (r:{REPOSITORY_INDEX_LABEL} {{repository_id: $repository_id}})
        RETURN properties(r) AS props
        """
        rows = await self._client.execute(query, {"repository_id": repository_id})
        if not rows:
            return None
        return record_from_properties(rows[0]["props"])

    async def get_status(self, repository_id: str) -> IndexStatus:
        try:
            record = await self.get_record(repository_id)
        except Exception:
            logger.warning(
                f"Status read failed for {repository_id}, reporting idle",
                exc_info=True,
            )
            return IndexStatus.IDLE
        return record.status if record else IndexStatus.IDLE

    async def get_metadata(self, repository_id: str) -> IndexMetadata | None:
        record = await self.get_record(repository_id)
        return IndexMetadata.from_record(record) if record else None

    async def merge(self, repository_id: str, fields: dict[str, Any]) -> None:
        props = to_properties(fields)
        query = f"""
        MERGE (r:{REPOSITORY_INDEX_LABEL} {{repository_id: $repository_id}})
        ON CREATE SET r.created_at = $now
        SET r += $props, r.updated_at = $now
        """
        await self._client.execute_write(
            query,
            {
                "repository_id": repository_id,
                "props": props,
                "now": format_timestamp(self._clock()),
            },
        )
        logger.debug(f"Merged status fields {sorted(fields)} into {repository_id}")


async def poll_status(store: StatusStore, repository_id: str) -> dict[str, Any]:
    """Public status view. Always answers; a missing record reads as idle."""
    status = await store.get_status(repository_id)
    try:
        metadata = await store.get_metadata(repository_id)
    except Exception:
        logger.warning(f"Metadata read failed for {repository_id}", exc_info=True)
        metadata = None

    response: dict[str, Any] = {
        "repositoryId": repository_id,
        "status": status.value,
        "indexedAt": format_timestamp(metadata.indexed_at) if metadata else None,
        "stats": metadata.stats.to_dict() if metadata and metadata.stats else None,
    }
    if status == IndexStatus.ERROR and metadata and metadata.error:
        response["error"] = metadata.error
    return response
