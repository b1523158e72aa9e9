"""
Normalization utilities for agent-extracted grant data.

Handles:
- Dates in any format the agent returns (ISO, "March 5, 2025", "5/3/2025")
- List-shaped fields (focus areas, eligible applicants, info sessions)
- Free text and structured document listings

Every function is total: bad input becomes None or an empty value,
never an exception, so one garbled field cannot sink a record.
"""

import json
import re
from datetime import date, datetime
from typing import Any, Optional

import structlog
from dateutil import parser as date_parser

from .models import FundingKind, GrantRecord, PLACEHOLDER_TITLE

logger = structlog.get_logger(__name__)


ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

DATE_FIELDS = (
    "open_date",
    "deadline_date",
    "award_announcement_date",
    "project_start_date",
    "project_end_date",
)

TEXT_FIELDS = (
    "program_name",
    "geographic_eligibility",
    "funding_type",
    "deadline_time",
    "timezone",
    "deadline_raw_text",
    "application_url",
    "source_url",
    "requirements",
)


def normalize_date(value: Any) -> Optional[str]:
    """
    Normalize a date-like value to YYYY-MM-DD.

    Supported inputs:
    - "2025-03-31" (kept as-is when it is a real calendar date)
    - date / datetime objects
    - free-form strings understood by dateutil ("March 31, 2025",
      "31 Mar 2025", "2025-03-31T17:00:00Z")

    Args:
        value: Raw field value

    Returns:
        ISO date string or None if the value is not a date
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()

    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    if ISO_DATE_RE.match(text):
        try:
            return date.fromisoformat(text).isoformat()
        except ValueError:
            logger.debug("invalid_iso_date", value=text)
            return None

    # Missing components default to January 1st, not today's day/month
    default = datetime(datetime.now().year, 1, 1)
    try:
        parsed = date_parser.parse(text, default=default)
    except (ValueError, OverflowError, TypeError):
        return None

    return parsed.date().isoformat()


def normalize_text(value: Any) -> Optional[str]:
    """Strip a scalar into text; blanks and structured values become None."""
    if value is None or isinstance(value, (dict, list)):
        return None

    text = str(value).strip()
    return text or None


def normalize_list(value: Any) -> list[str]:
    """
    Coerce a list-shaped field to an ordered list of strings.

    Non-list values yield an empty list; blank entries are dropped.
    """
    if not isinstance(value, (list, tuple)):
        return []

    items = []
    for item in value:
        text = normalize_text(item)
        if text:
            items.append(text)
    return items


def normalize_date_list(value: Any) -> Optional[list[str]]:
    """
    Normalize a list of dates, dropping entries that are not dates.

    Returns None when the value was absent entirely.
    """
    if value is None:
        return None
    if not isinstance(value, (list, tuple)):
        return []

    dates = []
    for item in value:
        normalized = normalize_date(item)
        if normalized:
            dates.append(normalized)
    return dates


def normalize_documents(value: Any) -> Optional[str]:
    """Serialize structured document listings to JSON text."""
    if value is None or value == "":
        return None
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def normalize_vocabulary(value: Any, default: str = "unknown") -> str:
    """Lower-cased vocabulary value (status, date_confidence)."""
    text = normalize_text(value)
    return text.lower() if text else default


def normalize_count(value: Any) -> Optional[int]:
    """Integral counts only; anything else is unknown."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def normalize_title(value: Any) -> str:
    """
    Normalize a grant title for display.

    - Collapses internal whitespace
    - Strips leading/trailing whitespace
    """
    text = normalize_text(value)
    if not text:
        return ""
    return re.sub(r"\s+", " ", text)


def normalize_grant(raw: dict) -> GrantRecord:
    """
    Convert one agent-extracted grant object into a GrantRecord.

    Each field is normalized independently; identity and bookkeeping
    fields are filled in later by the store layer.

    Args:
        raw: Grant object as decoded from the agent response

    Returns:
        GrantRecord with canonical field values
    """
    title = normalize_title(raw.get("grant_title")) or normalize_title(raw.get("title"))

    record = GrantRecord(
        grant_title=title or PLACEHOLDER_TITLE,
        funder_name=normalize_text(raw.get("funder_name")) or normalize_text(raw.get("funder")),
        summary=normalize_text(raw.get("summary")) or normalize_text(raw.get("description")),
        documents=normalize_documents(raw.get("documents")),
        focus_areas=normalize_list(raw.get("focus_areas")),
        eligible_applicants=normalize_list(raw.get("eligible_applicants")),
        status=normalize_vocabulary(raw.get("status")),
        date_confidence=normalize_vocabulary(raw.get("date_confidence")),
        funding_amount=raw.get("funding_amount"),
        number_of_awards=normalize_count(raw.get("number_of_awards")),
        rolling_deadline=raw.get("rolling_deadline") is True,
        info_session_dates=normalize_date_list(raw.get("info_session_dates")),
        **{name: normalize_text(raw.get(name)) for name in TEXT_FIELDS},
        **{name: normalize_date(raw.get(name)) for name in DATE_FIELDS},
    )

    if not title:
        logger.debug("grant_title_missing", source_url=record.source_url)

    if record.funding_amount is not None and record.funding_kind == FundingKind.UNKNOWN:
        logger.debug(
            "funding_amount_unrecognized",
            grant_title=record.grant_title,
            value_type=type(record.funding_amount).__name__,
        )

    return record
