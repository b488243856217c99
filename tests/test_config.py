"""Tests for the config module."""

import pytest
from pydantic import SecretStr, ValidationError

from repo_chat.config import (
    AnswerBackendSettings,
    DatabaseSettings,
    GitHubSettings,
    IndexingSettings,
    ServerSettings,
    Settings,
    get_settings,
)


class TestDatabaseSettings:
    def test_memgraph_uri_computation(self):
        db = DatabaseSettings(memgraph_host="test-host", memgraph_port=7688)
        assert db.memgraph_uri == "bolt://test-host:7688"

    def test_port_validation(self):
        assert DatabaseSettings(memgraph_port=1).memgraph_port == 1

        with pytest.raises(ValidationError) as exc_info:
            DatabaseSettings(memgraph_port=70000)
        assert "less than or equal to 65535" in str(exc_info.value)

        with pytest.raises(ValidationError):
            DatabaseSettings(memgraph_port=0)


class TestGitHubSettings:
    def test_token_is_secret(self):
        gh = GitHubSettings(github_token=SecretStr("ghp_secret"))
        assert "ghp_secret" not in repr(gh)
        assert gh.github_token.get_secret_value() == "ghp_secret"

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            GitHubSettings(github_timeout_seconds=0)


class TestIndexingSettings:
    def test_defaults(self):
        idx = IndexingSettings(
            _env_file=None,
            index_lock_ttl_seconds=900,
            max_content_files=100,
            max_content_chars=10_000,
        )
        assert idx.index_lock_ttl_seconds == 900
        assert idx.max_content_files == 100
        assert idx.max_content_chars == 10_000
        assert "py" in idx.indexable_extensions

    def test_extensions_lowercased(self):
        idx = IndexingSettings(indexable_extensions=["PY", "Md"])
        assert idx.indexable_extensions == ["py", "md"]

    def test_extension_with_dot_rejected(self):
        with pytest.raises(ValidationError):
            IndexingSettings(indexable_extensions=[".py"])

    def test_lock_ttl_must_be_positive(self):
        with pytest.raises(ValidationError):
            IndexingSettings(index_lock_ttl_seconds=0)

    def test_concurrency_bounds(self):
        with pytest.raises(ValidationError):
            IndexingSettings(max_concurrent_requests=0)
        with pytest.raises(ValidationError):
            IndexingSettings(max_concurrent_requests=101)

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("INDEX_LOCK_TTL_SECONDS", "60")
        monkeypatch.setenv("CHECK_REVISION_ON_READY", "true")
        idx = IndexingSettings()
        assert idx.index_lock_ttl_seconds == 60
        assert idx.check_revision_on_ready is True


class TestAnswerBackendSettings:
    def test_not_configured_without_url(self):
        assert not AnswerBackendSettings(answer_backend_url="").is_configured

    def test_configured_with_url(self):
        assert AnswerBackendSettings(answer_backend_url="http://qa:9000").is_configured


class TestServerSettings:
    def test_log_level_normalized(self):
        assert ServerSettings(log_level="debug").log_level == "DEBUG"

    def test_unknown_log_level_rejected(self):
        with pytest.raises(ValidationError):
            ServerSettings(log_level="chatty")


class TestSettings:
    def test_flat_properties(self):
        settings = Settings(
            database=DatabaseSettings(memgraph_host="db", memgraph_port=7690),
            github=GitHubSettings(github_token=SecretStr("tok")),
            indexing=IndexingSettings(index_lock_ttl_seconds=30, max_concurrent_requests=7),
            server=ServerSettings(internal_signature=SecretStr("sig")),
        )
        assert settings.memgraph_uri == "bolt://db:7690"
        assert settings.github_token == "tok"
        assert settings.lock_ttl_seconds == 30
        assert settings.max_concurrent_requests == 7
        assert settings.internal_signature == "sig"

    def test_get_settings_is_cached(self):
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()
