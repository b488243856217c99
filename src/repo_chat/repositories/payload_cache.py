"""Filesystem cache tier for heavy index payloads."""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path

from repo_chat.config import get_settings
from repo_chat.core.errors import StorageError
from repo_chat.repositories.ids import RepositoryId
from repo_chat.repositories.models import HeavyPayload

logger = logging.getLogger(__name__)

INDEX_FILE_NAME = "index.json"


class FilePayloadCache:
    """Stores one ``index.json`` per repository under the cache directory."""

    def __init__(self, root: str | Path | None = None):
        self.root = Path(root or get_settings().cache_dir).resolve()

    def _repository_dir(self, repository_id: str) -> Path:
        return self.root / RepositoryId.parse(repository_id).filesystem_key()

    def index_path(self, repository_id: str) -> Path:
        return self._repository_dir(repository_id) / INDEX_FILE_NAME

    async def save(self, repository_id: str, payload: HeavyPayload) -> tuple[str, int]:
        """Write the payload atomically and return ``(pointer, size_bytes)``."""
        path = self.index_path(repository_id)
        data = json.dumps(payload.to_dict(), ensure_ascii=False).encode("utf-8")

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, _write_atomic, path, data)
        except OSError as e:
            raise StorageError(f"Failed to write index payload for {repository_id}", cause=e) from e

        logger.info(f"Saved index payload for {repository_id} ({len(data)} bytes) to {path}")
        return str(path), len(data)

    async def load(self, repository_id: str) -> HeavyPayload | None:
        path = self.index_path(repository_id)
        loop = asyncio.get_running_loop()
        try:
            raw = await loop.run_in_executor(None, path.read_bytes)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read index payload for {repository_id}", cause=e) from e

        try:
            return HeavyPayload.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            raise StorageError(f"Corrupt index payload for {repository_id}", cause=e) from e


def _write_atomic(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".index-", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise
