"""Configuration module for repo-chat."""

from repo_chat.config.settings import (
    AnswerBackendSettings,
    DatabaseSettings,
    GitHubSettings,
    IndexingSettings,
    ServerSettings,
    Settings,
    get_settings,
)

__all__ = [
    "AnswerBackendSettings",
    "DatabaseSettings",
    "GitHubSettings",
    "IndexingSettings",
    "ServerSettings",
    "Settings",
    "get_settings",
]
