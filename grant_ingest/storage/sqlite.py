"""
SQLite grant store.

Local backend with the same table layout as the hosted store:
- grants: unique (organization_id, source_url)
- agent_runs: one row per run
- grant_sources: source list managed by the tracking application
"""

import json
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterator, Optional

import structlog

from grant_ingest.core.models import GrantRecord, RunResult
from grant_ingest.errors import StoreError
from .base import GrantStore, STALE_AFTER, stale_cutoff

logger = structlog.get_logger(__name__)


GRANT_COLUMNS = (
    "organization_id", "source_url", "source_domain", "grant_title",
    "funder_name", "program_name", "summary", "requirements", "documents",
    "focus_areas", "eligible_applicants", "geographic_eligibility",
    "funding_type", "status", "funding_amount_json", "number_of_awards",
    "open_date", "deadline_date", "deadline_time", "timezone",
    "rolling_deadline", "info_session_dates", "award_announcement_date",
    "project_start_date", "project_end_date", "date_confidence",
    "deadline_raw_text", "application_url", "last_verified_date",
    "last_seen_at", "is_stale", "needs_review",
)

JSON_COLUMNS = ("focus_areas", "eligible_applicants", "info_session_dates", "funding_amount_json")
BOOL_COLUMNS = ("rolling_deadline", "is_stale", "needs_review")
KEY_COLUMNS = ("organization_id", "source_url")

SCHEMA = """
CREATE TABLE IF NOT EXISTS grants (
    id TEXT PRIMARY KEY,
    organization_id TEXT NOT NULL,
    source_url TEXT NOT NULL,
    source_domain TEXT,
    grant_title TEXT NOT NULL,
    funder_name TEXT,
    program_name TEXT,
    summary TEXT,
    requirements TEXT,
    documents TEXT,
    focus_areas TEXT,
    eligible_applicants TEXT,
    geographic_eligibility TEXT,
    funding_type TEXT,
    status TEXT,
    funding_amount_json TEXT,
    number_of_awards INTEGER,
    open_date TEXT,
    deadline_date TEXT,
    deadline_time TEXT,
    timezone TEXT,
    rolling_deadline INTEGER NOT NULL DEFAULT 0,
    info_session_dates TEXT,
    award_announcement_date TEXT,
    project_start_date TEXT,
    project_end_date TEXT,
    date_confidence TEXT,
    deadline_raw_text TEXT,
    application_url TEXT,
    last_verified_date TEXT,
    last_seen_at TEXT,
    is_stale INTEGER NOT NULL DEFAULT 0,
    needs_review INTEGER NOT NULL DEFAULT 0,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (organization_id, source_url)
);

CREATE INDEX IF NOT EXISTS idx_grants_org_seen
ON grants(organization_id, last_seen_at);

CREATE TABLE IF NOT EXISTS agent_runs (
    id TEXT PRIMARY KEY,
    organization_id TEXT NOT NULL,
    run_type TEXT NOT NULL,
    sources_count INTEGER,
    status TEXT NOT NULL,
    grants_found INTEGER,
    errors_json TEXT,
    started_at TEXT NOT NULL,
    finished_at TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS grant_sources (
    id TEXT PRIMARY KEY,
    organization_id TEXT NOT NULL,
    name TEXT NOT NULL,
    url TEXT NOT NULL,
    category TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);
"""


def _upsert_sql() -> str:
    columns = ", ".join(("id",) + GRANT_COLUMNS)
    placeholders = ", ".join(f":{c}" for c in ("id",) + GRANT_COLUMNS)
    updates = ",\n    ".join(
        f"{c}=excluded.{c}" for c in GRANT_COLUMNS if c not in KEY_COLUMNS
    )
    # Full-row replace; an older observation never overwrites a newer one.
    return f"""
INSERT INTO grants ({columns})
VALUES ({placeholders})
ON CONFLICT(organization_id, source_url) DO UPDATE SET
    {updates},
    updated_at=CURRENT_TIMESTAMP
WHERE excluded.last_seen_at >= grants.last_seen_at OR grants.last_seen_at IS NULL;
"""


UPSERT_GRANT_SQL = _upsert_sql()


class SqliteGrantStore(GrantStore):
    """
    SQLite-backed grant store.

    Usage:
        store = SqliteGrantStore("grants.db")
        store.upsert_grant(org_id, record)
        store.mark_stale(org_id, now)
    """

    def __init__(self, path: str = "grants.db"):
        """
        Initialize store and create the schema if needed.

        Args:
            path: Path to SQLite database file
        """
        self.path = path
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)

        with self._connect() as conn:
            conn.executescript(SCHEMA)

        logger.info("sqlite_store_ready", path=self.path)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """One connection and transaction per operation."""
        try:
            conn = sqlite3.connect(self.path)
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open {self.path}: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @staticmethod
    def _encode(row: dict) -> dict:
        encoded = {c: row.get(c) for c in GRANT_COLUMNS}
        for column in JSON_COLUMNS:
            if encoded[column] is not None:
                encoded[column] = json.dumps(encoded[column], ensure_ascii=False)
        for column in BOOL_COLUMNS:
            encoded[column] = 1 if encoded[column] else 0
        return encoded

    @staticmethod
    def _decode(row: sqlite3.Row) -> GrantRecord:
        data = dict(row)
        for column in JSON_COLUMNS:
            if data.get(column) is not None:
                data[column] = json.loads(data[column])
        for column in BOOL_COLUMNS:
            data[column] = bool(data.get(column))
        return GrantRecord.from_row(data)

    def upsert_grant(self, organization_id: str, record: GrantRecord) -> None:
        if not record.source_url:
            raise StoreError(f'Grant "{record.grant_title}" has no identity URL')

        try:
            row = self._encode(record.to_row())
            row["organization_id"] = organization_id
            row["id"] = str(uuid.uuid4())

            with self._connect() as conn:
                conn.execute(UPSERT_GRANT_SQL, row)
        except (OverflowError, TypeError, ValueError) as e:
            # Values sqlite3 cannot bind, e.g. integers beyond 64 bits
            raise StoreError(str(e)) from e

        logger.debug(
            "grant_upserted",
            organization_id=organization_id,
            source_url=record.source_url,
        )

    def mark_stale(
        self,
        organization_id: str,
        now: datetime,
        window: timedelta = STALE_AFTER,
    ) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE grants
                SET is_stale = 1, needs_review = 1, updated_at = CURRENT_TIMESTAMP
                WHERE organization_id = ?
                  AND last_seen_at < ?
                  AND is_stale = 0
                """,
                (organization_id, stale_cutoff(now, window)),
            )
            flagged = cursor.rowcount

        logger.info("stale_sweep", organization_id=organization_id, flagged=flagged)
        return flagged

    def get_grant(self, organization_id: str, source_url: str) -> Optional[GrantRecord]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM grants WHERE organization_id = ? AND source_url = ?",
                (organization_id, source_url),
            ).fetchone()

        return self._decode(row) if row else None

    def list_grants(self, organization_id: str) -> list[GrantRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM grants WHERE organization_id = ? ORDER BY source_url",
                (organization_id,),
            ).fetchall()

        return [self._decode(row) for row in rows]

    # Inspection and seeding helpers for local databases; not part of GrantStore.

    def count_grants(self, organization_id: str) -> int:
        """Number of stored records of an organization."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM grants WHERE organization_id = ?",
                (organization_id,),
            ).fetchone()
        return row[0]

    def create_run(self, run: RunResult) -> str:
        run_id = str(uuid.uuid4())
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO agent_runs (
                    id, organization_id, run_type, sources_count, status, started_at
                )
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    run_id,
                    run.organization_id,
                    run.run_type.value,
                    run.sources_count,
                    run.status.value,
                    run.started_at.isoformat(),
                ),
            )
        return run_id

    def finish_run(self, run: RunResult) -> None:
        if not run.run_id:
            raise StoreError("Run has no id")

        with self._connect() as conn:
            conn.execute(
                """
                UPDATE agent_runs
                SET status = ?, grants_found = ?, errors_json = ?, finished_at = ?
                WHERE id = ?
                """,
                (
                    run.status.value,
                    run.grants_found,
                    json.dumps(run.errors, ensure_ascii=False),
                    run.finished_at.isoformat() if run.finished_at else None,
                    run.run_id,
                ),
            )

    def get_run(self, run_id: str) -> Optional[dict]:
        """Stored run row with decoded errors."""
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM agent_runs WHERE id = ?", (run_id,)).fetchone()

        if not row:
            return None
        data = dict(row)
        data["errors"] = json.loads(data.pop("errors_json") or "[]")
        return data

    def add_source(
        self,
        organization_id: str,
        url: str,
        name: Optional[str] = None,
        category: Optional[str] = None,
        is_active: bool = True,
    ) -> str:
        """Register a grant source for an organization."""
        source_id = str(uuid.uuid4())
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO grant_sources (id, organization_id, name, url, category, is_active)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (source_id, organization_id, name or url, url, category, 1 if is_active else 0),
            )
        return source_id

    def list_active_sources(self, organization_id: str) -> list[str]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT url FROM grant_sources
                WHERE organization_id = ? AND is_active = 1
                ORDER BY rowid
                """,
                (organization_id,),
            ).fetchall()

        return [row["url"] for row in rows]
