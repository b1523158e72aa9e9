"""
Supabase grant store.

Hosted backend used by the tracking application. Talks to the
`grants`, `agent_runs` and `grant_sources` tables through supabase-py.
"""

from datetime import datetime, timedelta
from typing import Any, Optional

import httpx
import structlog
from postgrest.exceptions import APIError
from supabase import Client, create_client

from grant_ingest.core.models import GrantRecord, RunResult
from grant_ingest.errors import StoreError
from .base import GrantStore, STALE_AFTER, stale_cutoff

logger = structlog.get_logger(__name__)


GRANTS_TABLE = "grants"
RUNS_TABLE = "agent_runs"
SOURCES_TABLE = "grant_sources"

GRANT_CONFLICT_KEY = "organization_id,source_url"


def _error_message(error: Exception) -> str:
    return getattr(error, "message", None) or str(error)


class SupabaseGrantStore(GrantStore):
    """
    Supabase-backed grant store.

    Usage:
        store = SupabaseGrantStore(url, service_role_key)
        store.upsert_grant(org_id, record)
    """

    def __init__(
        self,
        url: Optional[str] = None,
        key: Optional[str] = None,
        client: Optional[Client] = None,
    ):
        """
        Initialize store.

        Args:
            url: Supabase project URL
            key: Service role key
            client: Pre-built client (overrides url/key)
        """
        self.client = client or create_client(url, key)

    def _execute(self, query: Any, action: str) -> Any:
        """Run a query builder, mapping backend failures to StoreError."""
        try:
            return query.execute()
        except (APIError, httpx.HTTPError) as e:
            logger.error("supabase_query_failed", action=action, error=_error_message(e))
            raise StoreError(_error_message(e)) from e

    def upsert_grant(self, organization_id: str, record: GrantRecord) -> None:
        if not record.source_url:
            raise StoreError(f'Grant "{record.grant_title}" has no identity URL')

        row = record.to_row()
        row["organization_id"] = organization_id

        self._execute(
            self.client.table(GRANTS_TABLE).upsert(
                row,
                on_conflict=GRANT_CONFLICT_KEY,
                ignore_duplicates=False,
            ),
            action="upsert_grant",
        )

    def mark_stale(
        self,
        organization_id: str,
        now: datetime,
        window: timedelta = STALE_AFTER,
    ) -> int:
        response = self._execute(
            self.client.table(GRANTS_TABLE)
            .update({"is_stale": True, "needs_review": True})
            .eq("organization_id", organization_id)
            .lt("last_seen_at", stale_cutoff(now, window))
            .eq("is_stale", False),
            action="mark_stale",
        )

        flagged = len(response.data or [])
        logger.info("stale_sweep", organization_id=organization_id, flagged=flagged)
        return flagged

    def get_grant(self, organization_id: str, source_url: str) -> Optional[GrantRecord]:
        response = self._execute(
            self.client.table(GRANTS_TABLE)
            .select("*")
            .eq("organization_id", organization_id)
            .eq("source_url", source_url)
            .limit(1),
            action="get_grant",
        )

        rows = response.data or []
        return GrantRecord.from_row(rows[0]) if rows else None

    def list_grants(self, organization_id: str) -> list[GrantRecord]:
        response = self._execute(
            self.client.table(GRANTS_TABLE)
            .select("*")
            .eq("organization_id", organization_id)
            .order("source_url"),
            action="list_grants",
        )
        return [GrantRecord.from_row(row) for row in response.data or []]

    def create_run(self, run: RunResult) -> str:
        response = self._execute(
            self.client.table(RUNS_TABLE).insert(
                {
                    "organization_id": run.organization_id,
                    "run_type": run.run_type.value,
                    "sources_count": run.sources_count,
                    "status": run.status.value,
                    "started_at": run.started_at.isoformat(),
                }
            ),
            action="create_run",
        )

        rows = response.data or []
        if not rows or not rows[0].get("id"):
            raise StoreError("Run insert returned no id")
        return rows[0]["id"]

    def finish_run(self, run: RunResult) -> None:
        if not run.run_id:
            raise StoreError("Run has no id")

        self._execute(
            self.client.table(RUNS_TABLE)
            .update(
                {
                    "finished_at": run.finished_at.isoformat() if run.finished_at else None,
                    "status": run.status.value,
                    "grants_found": run.grants_found,
                    "errors_json": run.errors,
                }
            )
            .eq("id", run.run_id),
            action="finish_run",
        )

    def list_active_sources(self, organization_id: str) -> list[str]:
        response = self._execute(
            self.client.table(SOURCES_TABLE)
            .select("url")
            .eq("organization_id", organization_id)
            .eq("is_active", True)
            .order("created_at"),
            action="list_active_sources",
        )
        return [row["url"] for row in response.data or [] if row.get("url")]
