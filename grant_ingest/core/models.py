"""
Data models for the ingestion pipeline.

GrantRecord is the canonical, organization-scoped grant row. RunResult
tracks one ingestion attempt; RunOutcome is what callers receive.
"""

import json
from dataclasses import dataclass, field, asdict, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


PLACEHOLDER_TITLE = "Untitled Grant"


class GrantStatus(str, Enum):
    """Known grant status values. The record keeps any string it receives."""
    OPEN = "open"
    UPCOMING = "upcoming"
    ROLLING = "rolling"
    CLOSED = "closed"
    UNKNOWN = "unknown"


class DateConfidence(str, Enum):
    """How sure the agent was about the extracted dates."""
    EXACT = "exact"
    APPROXIMATE = "approximate"
    UNKNOWN = "unknown"


class FundingKind(str, Enum):
    """
    Shapes of the agent's funding_amount value.

    exact:   {"amount": N, "currency": "USD"}
    range:   {"min_amount": N, "max_amount": N, "currency": "USD", "type": "range"}
    cap:     {"max_amount": N, "currency": "USD", "type": "cap"}
    in_kind: {"type": "in_kind", "details": "..."}
    """
    EXACT = "exact"
    RANGE = "range"
    CAP = "cap"
    IN_KIND = "in_kind"
    UNKNOWN = "unknown"


def funding_kind(amount: Any) -> FundingKind:
    """Classify a funding_amount value without altering it."""
    if not isinstance(amount, dict):
        return FundingKind.UNKNOWN

    tag = str(amount.get("type") or "").lower()
    if tag in (FundingKind.RANGE.value, FundingKind.CAP.value, FundingKind.IN_KIND.value):
        return FundingKind(tag)
    if amount.get("amount") is not None:
        return FundingKind.EXACT
    return FundingKind.UNKNOWN


class RunType(str, Enum):
    """What started the run."""
    MANUAL = "manual"
    SCHEDULED = "scheduled"


class RunStatus(str, Enum):
    """Lifecycle of a run record."""
    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


def classify_run(errors: list[str], grants_found: int) -> RunStatus:
    """
    Classify a finished run.

    success: no errors at all
    partial: errors, but at least one grant was produced
    failed:  errors and nothing produced
    """
    if not errors:
        return RunStatus.SUCCESS
    if grants_found > 0:
        return RunStatus.PARTIAL
    return RunStatus.FAILED


@dataclass
class GrantRecord:
    """
    Normalized grant opportunity scoped to one organization.

    (organization_id, source_url) is the dedupe key.
    """

    grant_title: str = PLACEHOLDER_TITLE

    # Identity
    organization_id: Optional[str] = None
    source_url: Optional[str] = None
    source_domain: Optional[str] = None

    # Descriptive
    funder_name: Optional[str] = None
    program_name: Optional[str] = None
    summary: Optional[str] = None
    requirements: Optional[str] = None
    documents: Optional[str] = None

    # Classification
    focus_areas: list[str] = field(default_factory=list)
    eligible_applicants: list[str] = field(default_factory=list)
    geographic_eligibility: Optional[str] = None
    funding_type: Optional[str] = None
    status: str = GrantStatus.UNKNOWN.value

    # Funding shape, passed through as produced by the agent
    funding_amount: Optional[Any] = None
    number_of_awards: Optional[int] = None

    # Dates (YYYY-MM-DD or None)
    open_date: Optional[str] = None
    deadline_date: Optional[str] = None
    deadline_time: Optional[str] = None
    timezone: Optional[str] = None
    rolling_deadline: bool = False
    info_session_dates: Optional[list[str]] = None
    award_announcement_date: Optional[str] = None
    project_start_date: Optional[str] = None
    project_end_date: Optional[str] = None
    date_confidence: str = DateConfidence.UNKNOWN.value
    deadline_raw_text: Optional[str] = None

    # Links
    application_url: Optional[str] = None

    # Bookkeeping
    last_verified_date: Optional[str] = None
    last_seen_at: Optional[str] = None
    is_stale: bool = False
    needs_review: bool = False

    def __post_init__(self):
        if self.rolling_deadline:
            self.deadline_date = None

    @property
    def funding_kind(self) -> FundingKind:
        return funding_kind(self.funding_amount)

    def to_dict(self) -> dict:
        """Plain dict of all fields (API responses, JSON output)."""
        return asdict(self)

    def to_row(self) -> dict:
        """Flat storage row. Rolling deadlines never carry a deadline date."""
        row = self.to_dict()
        row["funding_amount_json"] = row.pop("funding_amount")
        if row["rolling_deadline"]:
            row["deadline_date"] = None
        return row

    @classmethod
    def from_row(cls, row: dict) -> "GrantRecord":
        """Build a record from a storage row, ignoring unknown columns."""
        data = dict(row)
        if "funding_amount_json" in data:
            data["funding_amount"] = data.pop("funding_amount_json")

        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class RunResult:
    """
    One ingestion attempt.

    Created in `running` state; immutable once finished_at is set.
    """

    organization_id: Optional[str]
    run_type: RunType = RunType.MANUAL
    sources_count: int = 0
    run_id: Optional[str] = None
    status: RunStatus = RunStatus.RUNNING
    grants_found: int = 0
    errors: list[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    @property
    def is_finished(self) -> bool:
        return self.finished_at is not None

    def finish(
        self,
        status: RunStatus,
        grants_found: int,
        errors: list[str],
        finished_at: Optional[datetime] = None,
    ) -> None:
        """Record the terminal state of the run."""
        if self.is_finished:
            raise RuntimeError(f"Run {self.run_id or '<unsaved>'} is already finished")

        self.status = status
        self.grants_found = grants_found
        self.errors = list(errors)
        self.finished_at = finished_at or datetime.now(timezone.utc)

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "organization_id": self.organization_id,
            "run_type": self.run_type.value,
            "sources_count": self.sources_count,
            "status": self.status.value,
            "grants_found": self.grants_found,
            "errors": list(self.errors),
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


@dataclass
class RunOutcome:
    """Result returned to the caller of a run."""

    success: bool
    status: RunStatus
    grants_found: int
    grants: list[GrantRecord] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    run_id: Optional[str] = None

    def to_dict(self) -> dict:
        """Response body of the inbound trigger."""
        return {
            "success": self.success,
            "run_id": self.run_id,
            "status": self.status.value,
            "grants_found": self.grants_found,
            "grants": [g.to_dict() for g in self.grants],
            "errors": list(self.errors),
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=indent, default=str)
