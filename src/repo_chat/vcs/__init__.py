"""Version-control hosting clients."""

from repo_chat.vcs.github import GitHubClient, is_revision

__all__ = ["GitHubClient", "is_revision"]
