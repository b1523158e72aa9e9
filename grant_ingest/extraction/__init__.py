"""
Extraction layer - talking to the web-automation agent.

Components:
- client: ExtractionClient issuing one agent run per source URL
- events: Event-stream scan with tagged terminal-event variants
- parser: Strategy chain recovering {grants, errors} from any payload
"""

from .client import ExtractionClient, GRANT_EXTRACTION_GOAL
from .events import (
    CompleteEvent,
    ResultEvent,
    RawGrantsEvent,
    UnrecognizedEvent,
    classify_fragment,
    find_terminal_event,
)
from .parser import ParsedPayload, parse_response, PARSE_STRATEGIES

__all__ = [
    "ExtractionClient",
    "GRANT_EXTRACTION_GOAL",
    "CompleteEvent",
    "ResultEvent",
    "RawGrantsEvent",
    "UnrecognizedEvent",
    "classify_fragment",
    "find_terminal_event",
    "ParsedPayload",
    "parse_response",
    "PARSE_STRATEGIES",
]
