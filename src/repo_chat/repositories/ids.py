"""Repository identifiers of the form ``provider:owner:repo``."""

import re
from dataclasses import dataclass

from repo_chat.core.errors import ValidationError

DEFAULT_PROVIDER = "github"
SUPPORTED_PROVIDERS = frozenset({DEFAULT_PROVIDER})

_FILESYSTEM_UNSAFE = re.compile(r'[<>:"|?*\\/]')
_WHITESPACE = re.compile(r"\s+")
_REPEATED_UNDERSCORES = re.compile(r"_{3,}")


def is_valid_repository_id(value: object) -> bool:
    """True for exactly three non-empty, colon-delimited fields."""
    if not isinstance(value, str) or not value:
        return False
    parts = value.split(":")
    return len(parts) == 3 and all(parts)


@dataclass(frozen=True)
class RepositoryId:
    provider: str
    owner: str
    repo: str

    def __post_init__(self) -> None:
        for name in ("provider", "owner", "repo"):
            value = getattr(self, name)
            if not value or ":" in value:
                raise ValidationError(
                    f"{name} must be non-empty and must not contain ':'", field=name
                )

    def __str__(self) -> str:
        return f"{self.provider}:{self.owner}:{self.repo}"

    @classmethod
    def parse(cls, value: object) -> "RepositoryId":
        if not is_valid_repository_id(value):
            raise ValidationError(
                "repositoryId must have the form provider:owner:repo",
                field="repositoryId",
            )
        provider, owner, repo = value.split(":")
        return cls(provider=provider, owner=owner, repo=repo)

    @classmethod
    def for_repository(cls, owner: str, repo: str, provider: str = DEFAULT_PROVIDER) -> "RepositoryId":
        return cls(provider=provider, owner=owner, repo=repo)

    @property
    def is_supported(self) -> bool:
        return self.provider in SUPPORTED_PROVIDERS

    def ensure_supported(self) -> None:
        if not self.is_supported:
            raise ValidationError(
                f"Unsupported repository provider '{self.provider}'. "
                f"Supported: {', '.join(sorted(SUPPORTED_PROVIDERS))}",
                field="repositoryId",
            )

    def filesystem_key(self) -> str:
        """Directory-safe rendering, e.g. ``github__acme__widgets``."""
        parts = [
            _WHITESPACE.sub("_", _FILESYSTEM_UNSAFE.sub("_", part))
            for part in (self.provider, self.owner, self.repo)
        ]
        return _REPEATED_UNDERSCORES.sub("__", "__".join(parts))
