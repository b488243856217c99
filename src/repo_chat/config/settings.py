from functools import lru_cache
from pathlib import Path

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    memgraph_host: str = Field(default="localhost")
    memgraph_port: int = Field(default=7687, ge=1, le=65535)
    memgraph_user: str = Field(default="memgraph")
    memgraph_password: str = Field(default="memgraph")

    @property
    def memgraph_uri(self) -> str:
        return f"bolt://{self.memgraph_host}:{self.memgraph_port}"


class GitHubSettings(BaseSettings):
    """Access to the GitHub REST API. The token is only a fallback credential."""

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    github_api_url: str = Field(default="https://api.github.com")
    github_token: SecretStr = Field(default=SecretStr(""))
    github_timeout_seconds: float = Field(default=30.0, gt=0)
    github_user_agent: str = Field(default="repo-chat-indexer")


class IndexingSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    index_lock_ttl_seconds: float = Field(default=900.0, gt=0)
    index_cache_dir: Path = Field(default=Path("indexes"))
    max_content_files: int = Field(default=100, ge=0)
    max_file_bytes: int = Field(default=512 * 1024, gt=0)
    max_content_chars: int = Field(default=10_000, gt=0)
    max_concurrent_requests: int = Field(default=5, gt=0, le=100)
    indexable_extensions: list[str] = Field(
        default=[
            "js", "ts", "jsx", "tsx", "py", "java", "go", "rs",
            "md", "json", "yaml", "yml", "txt",
        ]
    )
    check_revision_on_ready: bool = Field(default=False)
    estimated_wait_seconds: int = Field(default=30, ge=0)

    @field_validator("indexable_extensions")
    @classmethod
    def validate_extensions(cls, v: list[str]) -> list[str]:
        for ext in v:
            if not ext or ext.startswith("."):
                raise ValueError(f"Extension must be non-empty and without a leading '.': {ext!r}")
        return [ext.lower() for ext in v]


class AnswerBackendSettings(BaseSettings):
    """Question-answering backend that receives gated chat queries."""

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    answer_backend_url: str = Field(default="")
    answer_backend_signature: SecretStr = Field(default=SecretStr(""))
    answer_backend_timeout_seconds: float = Field(default=120.0, gt=0)

    @property
    def is_configured(self) -> bool:
        return bool(self.answer_backend_url)


class ServerSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8080, ge=1, le=65535)
    internal_signature: SecretStr = Field(default=SecretStr(""))
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level


class Settings(BaseSettings):
    """Composed settings with flat property access for the common values."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    github: GitHubSettings = Field(default_factory=GitHubSettings)
    indexing: IndexingSettings = Field(default_factory=IndexingSettings)
    answer_backend: AnswerBackendSettings = Field(default_factory=AnswerBackendSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)

    @property
    def memgraph_uri(self) -> str:
        return self.database.memgraph_uri

    @property
    def memgraph_user(self) -> str:
        return self.database.memgraph_user

    @property
    def memgraph_password(self) -> str:
        return self.database.memgraph_password

    @property
    def github_token(self) -> str:
        return self.github.github_token.get_secret_value()

    @property
    def lock_ttl_seconds(self) -> float:
        return self.indexing.index_lock_ttl_seconds

    @property
    def cache_dir(self) -> Path:
        return self.indexing.index_cache_dir

    @property
    def max_concurrent_requests(self) -> int:
        return self.indexing.max_concurrent_requests

    @property
    def internal_signature(self) -> str:
        return self.server.internal_signature.get_secret_value()


@lru_cache
def get_settings() -> Settings:
    return Settings()
