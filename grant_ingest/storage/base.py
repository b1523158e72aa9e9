"""
Base class and identity helpers for grant stores.

Stores implement idempotent persistence of GrantRecords keyed by
(organization_id, source_url), the organization-scoped staleness sweep,
and run bookkeeping.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import urlparse

import structlog

from grant_ingest.core.models import GrantRecord, RunResult

logger = structlog.get_logger(__name__)


STALE_AFTER = timedelta(days=14)


def utc_timestamp(moment: datetime) -> str:
    """Fixed-width UTC ISO timestamp, comparable as text."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def extract_domain(url: str) -> str:
    """
    Hostname of a URL.

    Falls back to the raw URL string when it has no hostname, so the
    domain is never empty for a non-empty URL.
    """
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        hostname = None
    return hostname or url


def resolve_identity(record: GrantRecord, origin_url: str) -> GrantRecord:
    """
    Fix the identity URL of a record.

    The record's own source_url is preferred, then its application_url,
    then the source list URL it was discovered on.

    Args:
        record: Normalized record
        origin_url: Source URL the extraction ran against

    Returns:
        The same record with source_url and source_domain set
    """
    identity_url = record.source_url or record.application_url or origin_url
    record.source_url = identity_url
    record.source_domain = extract_domain(identity_url)
    return record


def mark_observed(record: GrantRecord, now: datetime) -> GrantRecord:
    """Stamp a freshly re-confirmed record."""
    record.last_seen_at = utc_timestamp(now)
    record.last_verified_date = now.astimezone(timezone.utc).date().isoformat()
    record.is_stale = False
    record.needs_review = False
    return record


def stale_cutoff(now: datetime, window: timedelta = STALE_AFTER) -> str:
    """Records last seen before this timestamp are stale."""
    return utc_timestamp(now - window)


def is_stale(
    last_seen_at: Optional[str],
    now: datetime,
    window: timedelta = STALE_AFTER,
) -> bool:
    """
    Staleness policy as a pure function.

    In-memory counterpart of the predicate the stores' mark_stale sweep
    applies, for checking records already loaded. A record never
    observed is not stale; the sweep only considers records with a
    last_seen_at timestamp.
    """
    if not last_seen_at:
        return False

    seen = datetime.fromisoformat(last_seen_at)
    return utc_timestamp(seen) < stale_cutoff(now, window)


class GrantStore(ABC):
    """
    Abstract base class for grant stores.

    Every method is a single, independent operation. Backend failures
    surface as StoreError.
    """

    @abstractmethod
    def upsert_grant(self, organization_id: str, record: GrantRecord) -> None:
        """
        Insert or fully replace the record for (organization_id, source_url).

        Args:
            organization_id: Owning organization
            record: Record with resolved identity and observation stamps

        Raises:
            StoreError: If the write fails
        """

    @abstractmethod
    def mark_stale(
        self,
        organization_id: str,
        now: datetime,
        window: timedelta = STALE_AFTER,
    ) -> int:
        """
        Flag the organization's records not seen within the window.

        Returns:
            Number of records newly flagged
        """

    @abstractmethod
    def get_grant(self, organization_id: str, source_url: str) -> Optional[GrantRecord]:
        """Fetch one record by its identity key."""

    @abstractmethod
    def list_grants(self, organization_id: str) -> list[GrantRecord]:
        """All records of an organization."""

    @abstractmethod
    def create_run(self, run: RunResult) -> str:
        """
        Persist a new run in `running` state.

        Returns:
            Run id assigned by the store
        """

    @abstractmethod
    def finish_run(self, run: RunResult) -> None:
        """Persist the terminal fields of a finished run."""

    @abstractmethod
    def list_active_sources(self, organization_id: str) -> list[str]:
        """URLs of the organization's active grant sources."""

    def close(self) -> None:
        """Release backend resources."""
