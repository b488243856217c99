"""Client for the question-answering backend.

This service does no reasoning of its own: the backend receives the question
together with the repository context and returns the answer and the files
it drew on.
"""

import logging
from typing import Any

import httpx

from repo_chat.config import AnswerBackendSettings, get_settings
from repo_chat.core.errors import QueryRejectedError, UpstreamError

logger = logging.getLogger(__name__)

QUERY_PATH = "/internal/llm/query"
SIGNATURE_HEADER = "X-Service-Signature"


def _error_text(response: httpx.Response) -> tuple[str, dict[str, Any]]:
    try:
        data = response.json()
    except ValueError:
        return response.text[:500] or "Unknown error", {}
    if not isinstance(data, dict):
        return str(data)[:500], {}
    return str(data.get("message") or data.get("error") or "Unknown error"), data


class AnswerBackendClient:
    """Posts gated queries to the answer backend over HTTP."""

    def __init__(
        self,
        settings: AnswerBackendSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._settings = settings or get_settings().answer_backend
        self._client = httpx.AsyncClient(
            timeout=self._settings.answer_backend_timeout_seconds,
            transport=transport,
        )

    @property
    def url(self) -> str:
        return self._settings.answer_backend_url.rstrip("/") + QUERY_PATH

    async def close(self) -> None:
        await self._client.aclose()

    async def query(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Send one query to the backend.

        Args:
            payload: Question, repository id, conversation id and context.

        Returns:
            The backend's answer document, unmodified.

        Raises:
            QueryRejectedError: The backend rejected the query (4xx).
            UpstreamError: The backend is not configured, unreachable, or failed.
        """
        if not self._settings.is_configured:
            raise UpstreamError("Answer backend URL is not configured")

        repository_id = payload.get("repositoryId")
        headers = {}
        signature = self._settings.answer_backend_signature.get_secret_value()
        if signature:
            headers[SIGNATURE_HEADER] = signature

        logger.info(f"Delegating query for {repository_id} to the answer backend")
        try:
            response = await self._client.post(self.url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            logger.error(f"Answer backend timed out for {repository_id}: {e}")
            raise UpstreamError(f"Answer backend timed out: {e}", cause=e) from e
        except httpx.HTTPError as e:
            logger.error(f"Could not reach the answer backend: {e}")
            raise UpstreamError(f"Could not connect to the answer backend: {e}", cause=e) from e

        if 400 <= response.status_code < 500:
            message, data = _error_text(response)
            logger.error(
                f"Answer backend rejected query for {repository_id}: "
                f"{response.status_code} {message}"
            )
            raise QueryRejectedError(
                f"Answer backend rejected the query: {message}",
                status_code=response.status_code,
                response_data=data,
            )

        if response.status_code >= 500:
            message, _ = _error_text(response)
            logger.error(
                f"Answer backend failed for {repository_id}: {response.status_code} {message}"
            )
            raise UpstreamError(
                f"Answer backend reported an internal error: {message}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError("Answer backend returned a malformed response", cause=e) from e
        if not isinstance(data, dict):
            raise UpstreamError("Answer backend returned a malformed response")
        return data
