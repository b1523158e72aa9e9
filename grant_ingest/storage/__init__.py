"""
Storage layer - dedupe & upsert of grant records.

Stores:
- SqliteGrantStore: local database file
- SupabaseGrantStore: hosted tables of the tracking application
"""

import structlog

from grant_ingest.config import Settings
from .base import (
    GrantStore,
    STALE_AFTER,
    extract_domain,
    resolve_identity,
    mark_observed,
    stale_cutoff,
    is_stale,
    utc_timestamp,
)
from .sqlite import SqliteGrantStore

logger = structlog.get_logger(__name__)


def build_store(settings: Settings) -> GrantStore:
    """
    Create the configured store.

    Raises:
        ConfigurationError: If storage credentials are missing
    """
    settings.require_storage()

    if settings.storage.backend == "sqlite":
        return SqliteGrantStore(settings.storage.database_path)

    from .supabase import SupabaseGrantStore

    logger.info("supabase_store_selected", url=settings.storage.supabase_url)
    return SupabaseGrantStore(settings.storage.supabase_url, settings.storage.supabase_key)


__all__ = [
    "GrantStore",
    "SqliteGrantStore",
    "STALE_AFTER",
    "build_store",
    "extract_domain",
    "resolve_identity",
    "mark_observed",
    "stale_cutoff",
    "is_stale",
    "utc_timestamp",
]
