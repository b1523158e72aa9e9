"""Tests for settings loading."""

import pytest

from grant_ingest.config import (
    ConfigLoader,
    ExtractionSettings,
    RunSettings,
    Settings,
    StorageSettings,
    load_settings,
)
from grant_ingest.config.loader import substitute_env_vars
from grant_ingest.errors import ConfigurationError


ENV_VARS = [
    "EXTRACTION_API_URL",
    "TINYFISH_API_KEY",
    "EXTRACTION_TIMEOUT",
    "GRANT_STORE_BACKEND",
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "GRANT_DB_PATH",
    "GRANT_STALE_DAYS",
    "GRANT_MAX_CONCURRENCY",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestSubstituteEnvVars:
    """Tests for substitute_env_vars function."""

    def test_set_variable(self, monkeypatch):
        """Test a set variable is substituted."""
        monkeypatch.setenv("GRANT_TEST_VAR", "value")
        assert substitute_env_vars("key: ${GRANT_TEST_VAR}") == "key: value"

    def test_default(self, monkeypatch):
        """Test the default is used when unset."""
        monkeypatch.delenv("GRANT_TEST_VAR", raising=False)
        assert substitute_env_vars("key: ${GRANT_TEST_VAR:-fallback}") == "key: fallback"

    def test_missing_required(self, monkeypatch):
        """Test a missing variable without default becomes empty."""
        monkeypatch.delenv("GRANT_TEST_VAR", raising=False)
        assert substitute_env_vars("key: ${GRANT_TEST_VAR}") == "key: "


class TestPackagedSettings:
    """Tests for the packaged settings.yml."""

    def test_defaults(self, clean_env):
        """Test defaults without any environment."""
        settings = load_settings()

        assert settings.extraction.endpoint == "https://agent.tinyfish.ai/v1/automation/run-sse"
        assert settings.extraction.api_key is None
        assert settings.extraction.timeout_seconds == 600.0
        assert settings.storage.backend == "supabase"
        assert settings.storage.database_path == "grants.db"
        assert settings.run.stale_after_days == 14
        assert settings.run.max_concurrency == 1

    def test_environment_overrides(self, clean_env):
        """Test environment variables flow into settings."""
        clean_env.setenv("TINYFISH_API_KEY", "secret")
        clean_env.setenv("GRANT_STORE_BACKEND", "SQLite")
        clean_env.setenv("GRANT_DB_PATH", "/tmp/g.db")
        clean_env.setenv("GRANT_STALE_DAYS", "30")
        clean_env.setenv("GRANT_MAX_CONCURRENCY", "4")

        settings = load_settings()

        assert settings.extraction.api_key == "secret"
        assert settings.storage.backend == "sqlite"
        assert settings.storage.database_path == "/tmp/g.db"
        assert settings.run.stale_after_days == 30
        assert settings.run.max_concurrency == 4


class TestConfigLoader:
    """Tests for ConfigLoader."""

    def test_custom_file(self, tmp_path, clean_env):
        """Test loading a settings file by path."""
        path = tmp_path / "custom.yml"
        path.write_text(
            "extraction:\n"
            "  endpoint: https://agent.test/run\n"
            "  api_key: k\n"
            "storage:\n"
            "  backend: sqlite\n"
            "  database_path: local.db\n",
            encoding="utf-8",
        )

        settings = load_settings(str(path))

        assert settings.extraction.endpoint == "https://agent.test/run"
        assert settings.storage.backend == "sqlite"
        assert settings.run.stale_after_days == 14

    def test_empty_file(self, tmp_path):
        """Test an empty file yields default settings."""
        (tmp_path / "settings.yml").write_text("", encoding="utf-8")

        settings = ConfigLoader(str(tmp_path)).load_settings()

        assert settings == Settings()

    def test_missing_file(self, tmp_path):
        """Test a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            ConfigLoader(str(tmp_path)).load_file("nope.yml")

    def test_invalid_values(self, tmp_path):
        """Test malformed values become ConfigurationError."""
        (tmp_path / "settings.yml").write_text("run:\n  stale_after_days: soon\n", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            ConfigLoader(str(tmp_path)).load_settings()

    def test_concurrency_floor(self):
        """Test concurrency is at least one."""
        assert RunSettings.from_dict({"max_concurrency": -3}).max_concurrency == 1


class TestRequirements:
    """Tests for credential checks."""

    def test_extraction_complete(self):
        """Test complete upstream settings pass."""
        Settings(extraction=ExtractionSettings(endpoint="https://x", api_key="k")).require_extraction()

    def test_extraction_missing_key(self):
        """Test a missing API key is fatal."""
        with pytest.raises(ConfigurationError, match="TINYFISH_API_KEY"):
            Settings(extraction=ExtractionSettings(endpoint="https://x")).require_extraction()

    def test_supabase_missing_credentials(self):
        """Test the hosted backend needs URL and key."""
        with pytest.raises(ConfigurationError, match="SUPABASE_SERVICE_ROLE_KEY"):
            Settings(storage=StorageSettings(supabase_url="https://p.supabase.co")).require_storage()

    def test_sqlite_needs_path(self):
        """Test the local backend needs a database path."""
        with pytest.raises(ConfigurationError):
            Settings(storage=StorageSettings(backend="sqlite")).require_storage()

    def test_unknown_backend(self):
        """Test unknown backends are rejected."""
        with pytest.raises(ConfigurationError, match="Unknown storage backend"):
            Settings(storage=StorageSettings(backend="mongo")).require_storage()
