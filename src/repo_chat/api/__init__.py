"""HTTP API for repository indexing and chat queries."""

from repo_chat.api.app import create_app
from repo_chat.api.services import Services, build_services

__all__ = ["Services", "build_services", "create_app"]
