"""repo-chat - repository indexing and gated question answering."""

__version__ = "0.1.0"

from repo_chat.config import Settings, get_settings
from repo_chat.repositories import RepositoryId

__all__ = [
    "get_settings",
    "RepositoryId",
    "Settings",
]
