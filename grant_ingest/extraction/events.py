"""
Event-stream scanning for extraction agent responses.

The agent pushes `data: {...}` lines. Only some of them carry the final
result, and their shape varies between agent versions. Each decoded
fragment is classified into one tagged variant; the scan keeps the last
terminal one.
"""

import json
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, Union

import structlog

logger = structlog.get_logger(__name__)


EVENT_MARKER = "data:"

RESULT_EVENT_TYPES = {"RESULT", "COMPLETED"}


@dataclass(frozen=True)
class CompleteEvent:
    """Completion event carrying `resultJson`."""
    result_json: Any

    @property
    def payload(self) -> Any:
        return self.result_json


@dataclass(frozen=True)
class ResultEvent:
    """RESULT / COMPLETED event; payload picked from resultJson, result, data."""
    payload: Any


@dataclass(frozen=True)
class RawGrantsEvent:
    """Fragment that already holds a `grants` field (top level or under data)."""
    payload: Any


@dataclass(frozen=True)
class UnrecognizedEvent:
    """Progress, heartbeat or anything else without a result."""
    fragment: Any


StreamEvent = Union[CompleteEvent, ResultEvent, RawGrantsEvent, UnrecognizedEvent]
TerminalEvent = Union[CompleteEvent, ResultEvent, RawGrantsEvent]


def _as_complete(fragment: dict) -> Optional[StreamEvent]:
    if fragment.get("resultJson"):
        return CompleteEvent(result_json=fragment["resultJson"])
    return None


def _as_result(fragment: dict) -> Optional[StreamEvent]:
    event_type = str(fragment.get("type") or "").upper()
    if event_type not in RESULT_EVENT_TYPES:
        return None

    for key in ("resultJson", "result", "data"):
        if fragment.get(key):
            return ResultEvent(payload=fragment[key])
    return ResultEvent(payload=fragment)


def _as_raw_grants(fragment: dict) -> Optional[StreamEvent]:
    if fragment.get("grants"):
        return RawGrantsEvent(payload=fragment)

    data = fragment.get("data")
    if isinstance(data, dict) and data.get("grants"):
        return RawGrantsEvent(payload=fragment)
    return None


# Checked in order; the first classifier that matches wins.
CLASSIFIERS: list[Callable[[dict], Optional[StreamEvent]]] = [
    _as_complete,
    _as_result,
    _as_raw_grants,
]


def classify_fragment(fragment: Any) -> StreamEvent:
    """
    Classify one decoded event fragment.

    Args:
        fragment: JSON-decoded payload of a `data:` line

    Returns:
        The matching StreamEvent variant
    """
    if isinstance(fragment, dict):
        for classifier in CLASSIFIERS:
            event = classifier(fragment)
            if event is not None:
                return event
    return UnrecognizedEvent(fragment=fragment)


def decode_event_line(line: str) -> Optional[Any]:
    """
    Decode the JSON payload of one event line.

    Returns None for blank lines, non-data lines and malformed or
    partial fragments.
    """
    if not line.startswith(EVENT_MARKER):
        return None

    data = line[len(EVENT_MARKER):]
    if data.startswith(" "):
        data = data[1:]

    try:
        return json.loads(data)
    except json.JSONDecodeError:
        return None


def iter_events(lines: Iterable[str]) -> Iterable[StreamEvent]:
    """Yield classified events for every decodable data line, in order."""
    for line in lines:
        fragment = decode_event_line(line.rstrip("\r"))
        if fragment is None:
            continue
        yield classify_fragment(fragment)


def find_terminal_event(lines: Iterable[str]) -> Optional[TerminalEvent]:
    """
    Scan an event stream and return the last terminal event.

    Later terminal events override earlier ones.
    """
    terminal = None
    for event in iter_events(lines):
        if not isinstance(event, UnrecognizedEvent):
            terminal = event
    return terminal
