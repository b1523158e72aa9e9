"""
YAML settings loader with environment substitution.

Loads pipeline settings from YAML files with:
- Environment variable substitution
- Typed sections with default values
- Explicit checks for required credentials
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml
import structlog

from grant_ingest.errors import ConfigurationError

logger = structlog.get_logger(__name__)


DEFAULT_SETTINGS_FILE = "settings.yml"

STORAGE_BACKENDS = ("supabase", "sqlite")


def substitute_env_vars(text: str) -> str:
    """
    Substitute environment variables in text.

    Supports formats:
    - ${VAR_NAME} - required, warns and substitutes empty if missing
    - ${VAR_NAME:-default} - optional with default

    Args:
        text: Text with env var placeholders

    Returns:
        Text with substituted values
    """
    def replace(match):
        var_expr = match.group(1)
        if ":-" in var_expr:
            var_name, default = var_expr.split(":-", 1)
            return os.getenv(var_name, default)
        else:
            value = os.getenv(var_expr)
            if value is None:
                logger.warning("env_var_not_set", var=var_expr)
                return ""
            return value

    return re.sub(r"\$\{([^}]+)\}", replace, text)


@dataclass
class ExtractionSettings:
    """Upstream extraction agent."""
    endpoint: Optional[str] = None
    api_key: Optional[str] = None
    timeout_seconds: float = 600.0
    requests_per_second: float = 1.0

    @classmethod
    def from_dict(cls, data: dict) -> "ExtractionSettings":
        return cls(
            endpoint=data.get("endpoint") or None,
            api_key=data.get("api_key") or None,
            timeout_seconds=float(data.get("timeout_seconds") or 600.0),
            requests_per_second=float(data.get("requests_per_second") or 1.0),
        )


@dataclass
class StorageSettings:
    """Persistent grant store."""
    backend: str = "supabase"
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    database_path: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "StorageSettings":
        return cls(
            backend=str(data.get("backend") or "supabase").lower(),
            supabase_url=data.get("supabase_url") or None,
            supabase_key=data.get("supabase_key") or None,
            database_path=data.get("database_path") or None,
        )


@dataclass
class RunSettings:
    """Run orchestration."""
    stale_after_days: int = 14
    max_concurrency: int = 1

    @classmethod
    def from_dict(cls, data: dict) -> "RunSettings":
        return cls(
            stale_after_days=int(data.get("stale_after_days") or 14),
            max_concurrency=max(1, int(data.get("max_concurrency") or 1)),
        )


@dataclass
class Settings:
    """All pipeline settings."""
    extraction: ExtractionSettings = field(default_factory=ExtractionSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    run: RunSettings = field(default_factory=RunSettings)

    @classmethod
    def from_dict(cls, data: dict) -> "Settings":
        return cls(
            extraction=ExtractionSettings.from_dict(data.get("extraction") or {}),
            storage=StorageSettings.from_dict(data.get("storage") or {}),
            run=RunSettings.from_dict(data.get("run") or {}),
        )

    def require_extraction(self) -> None:
        """
        Check upstream credentials.

        Raises:
            ConfigurationError: If endpoint or API key is missing
        """
        missing = []
        if not self.extraction.endpoint:
            missing.append("extraction.endpoint (EXTRACTION_API_URL)")
        if not self.extraction.api_key:
            missing.append("extraction.api_key (TINYFISH_API_KEY)")

        if missing:
            raise ConfigurationError(f"Missing upstream configuration: {', '.join(missing)}")

    def require_storage(self) -> None:
        """
        Check storage credentials for the selected backend.

        Raises:
            ConfigurationError: If the backend is unknown or incomplete
        """
        backend = self.storage.backend
        if backend not in STORAGE_BACKENDS:
            raise ConfigurationError(
                f"Unknown storage backend '{backend}' (expected one of {', '.join(STORAGE_BACKENDS)})"
            )

        missing = []
        if backend == "supabase":
            if not self.storage.supabase_url:
                missing.append("storage.supabase_url (SUPABASE_URL)")
            if not self.storage.supabase_key:
                missing.append("storage.supabase_key (SUPABASE_SERVICE_ROLE_KEY)")
        elif not self.storage.database_path:
            missing.append("storage.database_path (GRANT_DB_PATH)")

        if missing:
            raise ConfigurationError(f"Missing storage configuration: {', '.join(missing)}")


class ConfigLoader:
    """
    Settings loader.

    Loads YAML config files and maps them onto Settings.
    """

    def __init__(self, config_dir: Optional[str] = None):
        """
        Initialize config loader.

        Args:
            config_dir: Directory containing config files
                       (defaults to package config directory)
        """
        if config_dir:
            self.config_dir = Path(config_dir)
        else:
            self.config_dir = Path(__file__).parent

    def load_file(self, filename: str) -> dict:
        """
        Load YAML config file.

        Args:
            filename: Config file name (relative to config_dir)

        Returns:
            Parsed config dict
        """
        filepath = self.config_dir / filename

        if not filepath.exists():
            raise FileNotFoundError(f"Config file not found: {filepath}")

        logger.debug("loading_config", file=str(filepath))

        with open(filepath, "r", encoding="utf-8") as f:
            content = f.read()

        content = substitute_env_vars(content)
        config = yaml.safe_load(content)

        return config or {}

    def load_settings(self, filename: str = DEFAULT_SETTINGS_FILE) -> Settings:
        """
        Load pipeline settings from YAML.

        Args:
            filename: Settings file name

        Returns:
            Settings object
        """
        try:
            return Settings.from_dict(self.load_file(filename))
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid settings in {filename}: {e}") from e


def load_settings(config_path: Optional[str] = None) -> Settings:
    """
    Convenience function to load settings.

    Args:
        config_path: Optional path to a settings YAML file

    Returns:
        Settings object
    """
    if config_path:
        loader = ConfigLoader(str(Path(config_path).parent))
        return loader.load_settings(Path(config_path).name)

    return ConfigLoader().load_settings()
