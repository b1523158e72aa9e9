"""
Configuration module for the ingestion pipeline.

Provides:
- YAML settings loading with environment substitution
- Typed settings sections
- Credential checks raising ConfigurationError
"""

from .loader import (
    ConfigLoader,
    Settings,
    ExtractionSettings,
    StorageSettings,
    RunSettings,
    load_settings,
)

__all__ = [
    "ConfigLoader",
    "Settings",
    "ExtractionSettings",
    "StorageSettings",
    "RunSettings",
    "load_settings",
]
