"""GitHub REST API client used by the indexing pipeline."""

import base64
import logging
import re
from typing import Any
from urllib.parse import quote

import httpx

from repo_chat.config import get_settings
from repo_chat.core.errors import VcsError

logger = logging.getLogger(__name__)

REVISION_PATTERN = re.compile(r"^[0-9a-f]{40}$")
FALLBACK_STATUSES = frozenset({401, 403, 404})


def is_revision(ref: str | None) -> bool:
    return bool(ref and REVISION_PATTERN.match(ref))


class GitHubClient:
    """Async GitHub client.

    Requests carry the caller's credential when one is given. Without one
    they go out anonymously first and are retried once with the configured
    fallback token when GitHub answers 401, 403 or 404.
    """

    def __init__(
        self,
        base_url: str | None = None,
        fallback_token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self._base_url = (base_url or settings.github.github_api_url).rstrip("/")
        self._fallback_token = fallback_token if fallback_token is not None else settings.github_token
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout or settings.github.github_timeout_seconds,
            headers={
                "Accept": "application/vnd.github+json",
                "User-Agent": settings.github.github_user_agent,
            },
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _send(self, path: str, token: str | None, params: dict[str, Any] | None) -> httpx.Response:
        headers = {"Authorization": f"Bearer {token}"} if token else None
        try:
            return await self._client.get(path, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise VcsError(f"GitHub request {path} failed: {e}", cause=e) from e

    async def _get(
        self,
        path: str,
        credential: str | None = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        if credential:
            return await self._send(path, credential, params)

        response = await self._send(path, None, params)
        if response.status_code in FALLBACK_STATUSES and self._fallback_token:
            logger.info(
                f"Anonymous GitHub access answered {response.status_code}, "
                "retrying with the configured token"
            )
            response = await self._send(path, self._fallback_token, params)
        return response

    async def _get_json(
        self,
        path: str,
        what: str,
        credential: str | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        response = await self._get(path, credential, params)
        if response.status_code != 200:
            raise VcsError(
                f"Error fetching {what}: {response.status_code} - {response.text[:500]}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise VcsError(f"Malformed response fetching {what}", cause=e) from e

    async def get_repository(self, owner: str, repo: str, credential: str | None = None) -> dict[str, Any]:
        return await self._get_json(
            f"/repos/{owner}/{repo}", f"repository {owner}/{repo}", credential
        )

    async def get_default_branch(self, owner: str, repo: str, credential: str | None = None) -> str:
        data = await self.get_repository(owner, repo, credential)
        branch = data.get("default_branch")
        if not branch:
            raise VcsError(f"Could not determine the default branch of {owner}/{repo}")
        return branch

    async def resolve_revision(
        self,
        owner: str,
        repo: str,
        branch: str,
        credential: str | None = None,
    ) -> str:
        if is_revision(branch):
            return branch
        data = await self._get_json(
            f"/repos/{owner}/{repo}/branches/{quote(branch, safe='')}",
            f"branch {branch} of {owner}/{repo}",
            credential,
        )
        revision = (data.get("commit") or {}).get("sha")
        if not revision:
            raise VcsError(f"Branch {branch} of {owner}/{repo} has no head commit")
        return revision

    async def get_tree(
        self,
        owner: str,
        repo: str,
        revision: str,
        credential: str | None = None,
    ) -> dict[str, Any]:
        return await self._get_json(
            f"/repos/{owner}/{repo}/git/trees/{revision}",
            f"tree {revision} of {owner}/{repo}",
            credential,
            params={"recursive": "1"},
        )

    async def get_file_content(
        self,
        owner: str,
        repo: str,
        path: str,
        revision: str,
        credential: str | None = None,
    ) -> bytes | None:
        """Raw file bytes, or ``None`` when the file is gone or not a file."""
        response = await self._get(
            f"/repos/{owner}/{repo}/contents/{quote(path)}",
            credential,
            params={"ref": revision},
        )
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise VcsError(
                f"Error fetching {path}: {response.status_code} - {response.text[:500]}",
                status_code=response.status_code,
            )

        data = response.json()
        if not isinstance(data, dict) or data.get("encoding") != "base64" or not data.get("content"):
            return None
        try:
            return base64.b64decode(data["content"])
        except ValueError as e:
            raise VcsError(f"Undecodable content for {path}", cause=e) from e
