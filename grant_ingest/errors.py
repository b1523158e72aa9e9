"""
Exception taxonomy for the ingestion pipeline.

Only InvalidInput and ConfigurationError abort a run. The rest are
recorded per source and reflected in the run status.
"""

from typing import Optional


class GrantIngestError(Exception):
    """Base class for pipeline errors."""


class InvalidInput(GrantIngestError):
    """Empty or malformed run request."""


class ConfigurationError(GrantIngestError):
    """Missing upstream or storage credentials."""


class UpstreamError(GrantIngestError):
    """Extraction agent returned a non-2xx or unusable response."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body_excerpt: str = "",
    ):
        self.status_code = status_code
        self.body_excerpt = body_excerpt
        if status_code is not None:
            message = f"{message} [{status_code}]"
        if body_excerpt:
            message = f"{message}: {body_excerpt}"
        super().__init__(message)


class ParseError(GrantIngestError):
    """Raw payload could not be interpreted by any parse strategy."""

    PREFIX_LENGTH = 200

    def __init__(self, text: str):
        self.excerpt = (text or "")[: self.PREFIX_LENGTH]
        super().__init__(f"Could not parse response: {self.excerpt}")


class StoreError(GrantIngestError):
    """A single storage operation failed."""
