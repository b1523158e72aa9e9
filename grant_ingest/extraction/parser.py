"""
Response parser for extraction agent payloads.

The agent's answer may arrive as a decoded object, wrapped under
`result` / `result.data` / `data`, or as prose with JSON embedded in it.
A fixed chain of strategies recovers a `{grants, errors}` payload:

1. Direct JSON parse of the whole text
2. First fenced code block (```json ... ```)
3. First top-level {...} span containing "grants"
4. First top-level [...] span (bare grants array)
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional

import structlog

from grant_ingest.core.models import GrantRecord
from grant_ingest.core.normalizer import normalize_grant
from grant_ingest.errors import ParseError

logger = structlog.get_logger(__name__)


FENCED_BLOCK_RE = re.compile(r"```[\w-]*\s*([\s\S]*?)```")

GRANTS_TOKEN = '"grants"'


@dataclass
class ParsedPayload:
    """Grants and agent-reported errors recovered from one response."""
    grants: list[GrantRecord] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    strategy: Optional[str] = None


def _present(value: Any) -> bool:
    return value is not None and value != ""


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)


def resolve_text(raw_payload: Any) -> str:
    """
    Pick the text blob to interpret from a raw payload.

    Order: the string itself, result.data, result, data, whole payload.
    """
    if isinstance(raw_payload, str):
        return raw_payload

    if isinstance(raw_payload, dict):
        result = raw_payload.get("result")
        if isinstance(result, dict) and _present(result.get("data")):
            return _stringify(result["data"])
        if _present(result):
            return _stringify(result)
        if _present(raw_payload.get("data")):
            return _stringify(raw_payload["data"])

    return _stringify(raw_payload)


def _loads_structured(text: str) -> Optional[Any]:
    """Decode JSON, accepting only objects and arrays."""
    try:
        value = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None
    if isinstance(value, (dict, list)):
        return value
    return None


def iter_balanced_spans(text: str, opener: str, closer: str) -> Iterator[str]:
    """
    Yield top-level balanced spans delimited by opener/closer.

    Brackets inside JSON string literals are ignored. An unterminated
    span ends the scan.
    """
    depth = 0
    start = -1
    in_string = False
    escaped = False

    for i, char in enumerate(text):
        if depth == 0:
            if char == opener:
                depth = 1
                start = i
                in_string = False
                escaped = False
            continue

        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char == opener:
            depth += 1
        elif char == closer:
            depth -= 1
            if depth == 0:
                yield text[start:i + 1]


def parse_direct_json(text: str) -> Optional[Any]:
    """Strategy 1: the whole text is JSON."""
    return _loads_structured(text.strip())


def parse_fenced_block(text: str) -> Optional[Any]:
    """Strategy 2: JSON inside the first fenced code block."""
    match = FENCED_BLOCK_RE.search(text)
    if not match:
        return None
    return _loads_structured(match.group(1).strip())


def parse_grants_object(text: str) -> Optional[Any]:
    """Strategy 3: first top-level object mentioning "grants"."""
    for span in iter_balanced_spans(text, "{", "}"):
        if GRANTS_TOKEN not in span:
            continue
        value = _loads_structured(span)
        if isinstance(value, dict):
            return value
    return None


def parse_bare_array(text: str) -> Optional[Any]:
    """Strategy 4: first top-level array, taken as the grants list."""
    for span in iter_balanced_spans(text, "[", "]"):
        value = _loads_structured(span)
        if isinstance(value, list):
            return value
    return None


# Tried in order; the first strategy returning a value wins.
PARSE_STRATEGIES: list[tuple[str, Callable[[str], Optional[Any]]]] = [
    ("direct_json", parse_direct_json),
    ("fenced_block", parse_fenced_block),
    ("grants_object", parse_grants_object),
    ("bare_array", parse_bare_array),
]


def parse_text(text: str) -> tuple[Optional[str], Optional[Any]]:
    """
    Run the strategy chain over a text blob.

    Returns:
        (strategy name, parsed value), or (None, None) if nothing matched
    """
    for name, strategy in PARSE_STRATEGIES:
        value = strategy(text)
        if value is not None:
            return name, value
    return None, None


def _split_payload(parsed: Any) -> tuple[list, list]:
    if isinstance(parsed, list):
        return parsed, []

    grants = parsed.get("grants")
    errors = parsed.get("errors")
    return (
        grants if isinstance(grants, list) else [],
        errors if isinstance(errors, list) else [],
    )


def parse_response(raw_payload: Any) -> ParsedPayload:
    """
    Recover normalized grants and agent errors from a raw payload.

    Never raises: an uninterpretable payload yields no grants and one
    diagnostic error.

    Args:
        raw_payload: Whatever the extraction client returned

    Returns:
        ParsedPayload with normalized GrantRecords
    """
    text = resolve_text(raw_payload)
    strategy, parsed = parse_text(text)

    if parsed is None:
        error = ParseError(text)
        logger.warning("response_unparseable", preview=error.excerpt)
        return ParsedPayload(errors=[str(error)])

    raw_grants, raw_errors = _split_payload(parsed)

    grants = []
    for item in raw_grants:
        if not isinstance(item, dict):
            logger.warning("grant_entry_skipped", entry_type=type(item).__name__)
            continue
        grants.append(normalize_grant(item))

    errors = [_stringify(e) for e in raw_errors if e is not None]

    logger.debug(
        "response_parsed",
        strategy=strategy,
        grants=len(grants),
        errors=len(errors),
    )

    return ParsedPayload(grants=grants, errors=errors, strategy=strategy)
