"""Gates question answering on the indexing status of a repository."""

import asyncio
import logging
import secrets
import time
from typing import Any

from repo_chat.config import IndexingSettings, get_settings
from repo_chat.core.errors import (
    IndexingInProgressError,
    InternalError,
    NotReadyError,
    RepoChatError,
    ValidationError,
)
from repo_chat.core.protocols import AnswerBackend, PayloadCache, StatusStore, SummaryStore
from repo_chat.core.types import IndexStatus
from repo_chat.repositories.ids import RepositoryId

logger = logging.getLogger(__name__)

PASS_THROUGH_FIELDS = ("findings", "debug", "timestamp")


def new_conversation_id() -> str:
    return f"conv-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


def to_sources(files: list[dict[str, Any]] | None) -> list[dict[str, Any]]:
    sources = []
    for item in files or []:
        path = item.get("path")
        if not path:
            continue
        sources.append({
            "path": path,
            "name": item.get("name") or path.rsplit("/", 1)[-1],
            "lines": list(item.get("lines") or []),
        })
    return sources


class QueryGateway:
    """Forwards questions to the answer backend only for ready repositories.

    Reads status and context, never writes them.
    """

    def __init__(
        self,
        status_store: StatusStore,
        backend: AnswerBackend,
        payload_cache: PayloadCache,
        summary_store: SummaryStore | None = None,
        settings: IndexingSettings | None = None,
    ):
        self._status_store = status_store
        self._backend = backend
        self._payload_cache = payload_cache
        self._summary_store = summary_store
        self._settings = settings or get_settings().indexing

    async def handle(
        self,
        repository_id: Any,
        question: Any,
        conversation_id: Any = None,
    ) -> dict[str, Any]:
        self.validate(repository_id, question, conversation_id)

        status = await self._status_store.get_status(repository_id)
        if status != IndexStatus.READY:
            raise await self._not_ready(repository_id, status)

        try:
            return await self._ask(repository_id, question, conversation_id)
        except RepoChatError:
            raise
        except Exception as e:
            logger.error(f"Unexpected failure answering query for {repository_id}: {e}", exc_info=True)
            raise InternalError(f"Failed to process query: {e}", cause=e) from e

    @staticmethod
    def validate(repository_id: Any, question: Any, conversation_id: Any = None) -> None:
        if not repository_id or not isinstance(repository_id, str):
            raise ValidationError("repositoryId is required", field="repositoryId")
        RepositoryId.parse(repository_id)
        if not isinstance(question, str) or not question.strip():
            raise ValidationError("question is required and must not be empty", field="question")
        if conversation_id is not None and (
            not isinstance(conversation_id, str) or not conversation_id.strip()
        ):
            raise ValidationError(
                "conversationId must be a non-empty string when given",
                field="conversationId",
            )

    async def _not_ready(self, repository_id: str, status: IndexStatus) -> NotReadyError:
        logger.info(f"Rejecting query for {repository_id} in status {status.value}")
        if status == IndexStatus.INDEXING:
            return IndexingInProgressError(
                "The repository is still being indexed. Try again in a few moments.",
                estimated_wait_seconds=self._settings.estimated_wait_seconds,
            )
        if status == IndexStatus.ERROR:
            try:
                metadata = await self._status_store.get_metadata(repository_id)
            except Exception as e:
                logger.warning(f"Metadata read failed for {repository_id}: {e}")
                metadata = None
            last_error = metadata.error if metadata else None
            return NotReadyError(
                status.value,
                f"Indexing of the repository failed: {last_error or 'unknown error'}",
                last_error=last_error,
            )
        return NotReadyError(
            status.value,
            "The repository has not been indexed. Start indexing with POST /repositories/index first.",
        )

    async def _ask(
        self,
        repository_id: str,
        question: str,
        conversation_id: str | None,
    ) -> dict[str, Any]:
        conversation_id = conversation_id or new_conversation_id()
        payload = {
            "question": question,
            "repositoryId": repository_id,
            "conversationId": conversation_id,
            "context": await self._load_context(repository_id),
        }

        answer = await self._backend.query(payload)

        response: dict[str, Any] = {
            "response": answer.get("answer") or "",
            "conversationId": conversation_id,
            "sources": to_sources(answer.get("files")),
        }
        for key in PASS_THROUGH_FIELDS:
            if answer.get(key):
                response[key] = answer[key]

        logger.info(
            f"Answered query for {repository_id} "
            f"(conversation {conversation_id}, {len(response['sources'])} sources)"
        )
        return response

    async def _load_context(self, repository_id: str) -> dict[str, Any]:
        """Index, summary and metrics for the answer backend.

        The index is required; summary and metrics are left out when they
        cannot be loaded.
        """
        payload = await self._payload_cache.load(repository_id)
        if payload is None:
            logger.error(f"No cached index for {repository_id} although its status is ready")
            raise InternalError(f"Index not found for {repository_id} although its status is ready")
        context: dict[str, Any] = {"index": payload.to_dict()}

        if self._summary_store is None:
            return context

        results = await asyncio.gather(
            self._summary_store.get_summary(repository_id),
            self._summary_store.get_metrics(repository_id),
            return_exceptions=True,
        )
        for key, value in zip(("projectSummary", "metrics"), results):
            if isinstance(value, Exception):
                logger.warning(f"Could not load {key} for {repository_id}: {value}")
            elif value is not None:
                context[key] = value
        return context
