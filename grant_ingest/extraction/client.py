"""
Remote extraction client for the web-automation agent.

Sends one run request per source URL with a fixed extraction goal and
recovers the agent's result from its event stream.
"""

import json
from typing import Any, Optional

import structlog

from grant_ingest.config import Settings
from grant_ingest.core.http_client import HttpClient
from grant_ingest.errors import UpstreamError
from .events import find_terminal_event

logger = structlog.get_logger(__name__)


BODY_EXCERPT_LENGTH = 300

GRANT_EXTRACTION_GOAL = """Extract every grant or funding opportunity listed on this website.

Browse the site to find them:
1. Follow sections named Grants, Funding, Apply, Opportunities, RFP, Programs or similar
2. If the site has search, try queries like: grant, funding, nonprofit, education, technology
3. If the listing is paginated, load at least the first 10 opportunities (or all of them if fewer)
4. Open each opportunity's detail page before extracting it

For each grant return these fields:
- grant_title, funder_name, program_name
- status: open, upcoming, rolling or closed
- summary: short description
- focus_areas: array of strings
- eligible_applicants: array (nonprofit, school, municipality, ...)
- geographic_eligibility: country, state, region or global
- funding_amount as JSON, one of:
    {"amount": N, "currency": "USD"}
    {"min_amount": N, "max_amount": N, "currency": "USD", "type": "range"}
    {"max_amount": N, "currency": "USD", "type": "cap"}
    {"type": "in_kind", "details": "..."}
- funding_type: grant, award, in-kind, prize or matching
- number_of_awards: integer or null
- open_date, deadline_date: YYYY-MM-DD or null
- deadline_time: HH:MM when listed; timezone when listed
- rolling_deadline: boolean
- info_session_dates: array of YYYY-MM-DD
- award_announcement_date, project_start_date, project_end_date: YYYY-MM-DD or null
- date_confidence: exact, approximate or unknown
- deadline_raw_text: the deadline text exactly as written on the page
- application_url: direct application link
- source_url: URL of the page the grant was found on
- requirements: key restrictions
- documents: PDF links or required documents

Write every date as YYYY-MM-DD. For rolling deadlines set rolling_deadline=true and deadline_date=null.
When dates are unclear set date_confidence to "unknown".

Respond with JSON only: {"grants": [...], "errors": [...]}
If the page lists no grants respond with {"grants": [], "errors": ["No grants found on this page"]}"""


class ExtractionClient:
    """
    Client for the extraction agent's run-sse endpoint.

    Usage:
        async with ExtractionClient(settings) as client:
            payload = await client.extract("https://foundation.example/grants")
    """

    def __init__(
        self,
        settings: Settings,
        http_client: Optional[HttpClient] = None,
    ):
        """
        Initialize extraction client.

        Args:
            settings: Pipeline settings (endpoint, API key, rate limit)
            http_client: Shared HTTP client (creates own if not provided)
        """
        settings.require_extraction()

        self.endpoint = settings.extraction.endpoint
        self.api_key = settings.extraction.api_key
        self.http_client = http_client
        self._owns_client = http_client is None
        self._settings = settings

    async def __aenter__(self) -> "ExtractionClient":
        """Enter async context."""
        if self._owns_client:
            self.http_client = HttpClient(
                requests_per_second=self._settings.extraction.requests_per_second,
                timeout=self._settings.extraction.timeout_seconds,
            )
            await self.http_client.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context."""
        if self._owns_client and self.http_client:
            await self.http_client.__aexit__(exc_type, exc_val, exc_tb)

    async def extract(self, source_url: str) -> Any:
        """
        Run the extraction agent against one source URL.

        Args:
            source_url: Grants listing page to scan

        Returns:
            Terminal event payload, the decoded body, or the raw body text

        Raises:
            UpstreamError: If the agent answers with a non-2xx status
        """
        if self.http_client is None:
            raise RuntimeError("Client not initialized. Use 'async with' context.")

        logger.info("extraction_request", source_url=source_url)

        response = await self.http_client.post_stream(
            self.endpoint,
            json={"url": source_url, "goal": GRANT_EXTRACTION_GOAL},
            headers={
                "X-API-Key": self.api_key,
                "Accept": "text/event-stream",
            },
        )

        if not response.is_success:
            raise UpstreamError(
                "Extraction API error",
                status_code=response.status_code,
                body_excerpt=response.text[:BODY_EXCERPT_LENGTH],
            )

        return self.read_result(response.lines, source_url=source_url)

    @staticmethod
    def read_result(lines: list[str], source_url: Optional[str] = None) -> Any:
        """
        Recover the result payload from event-stream lines.

        The last terminal event wins. Without one, the whole body is
        decoded as JSON, and failing that returned as text.
        """
        event = find_terminal_event(lines)
        if event is not None:
            logger.debug(
                "terminal_event_found",
                source_url=source_url,
                event_type=type(event).__name__,
            )
            return event.payload

        text = "\n".join(lines)
        try:
            result = json.loads(text)
        except json.JSONDecodeError:
            logger.warning(
                "no_terminal_event",
                source_url=source_url,
                preview=text[:200],
            )
            return text

        logger.debug("body_decoded_as_json", source_url=source_url)
        return result
