"""
Core layer - stable foundation for the ingestion pipeline.

Components:
- models: GrantRecord, RunResult, RunOutcome and vocabularies
- normalizer: Date, list and text normalization of agent output
- http_client: Rate-limited, retrying streaming HTTP client
"""

from .models import (
    GrantRecord,
    GrantStatus,
    DateConfidence,
    FundingKind,
    RunType,
    RunStatus,
    RunResult,
    RunOutcome,
    PLACEHOLDER_TITLE,
    classify_run,
    funding_kind,
)
from .normalizer import (
    normalize_date,
    normalize_date_list,
    normalize_list,
    normalize_text,
    normalize_documents,
    normalize_grant,
)
from .http_client import HttpClient, StreamedResponse

__all__ = [
    "GrantRecord",
    "GrantStatus",
    "DateConfidence",
    "FundingKind",
    "RunType",
    "RunStatus",
    "RunResult",
    "RunOutcome",
    "PLACEHOLDER_TITLE",
    "classify_run",
    "funding_kind",
    "normalize_date",
    "normalize_date_list",
    "normalize_list",
    "normalize_text",
    "normalize_documents",
    "normalize_grant",
    "HttpClient",
    "StreamedResponse",
]
