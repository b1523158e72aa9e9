"""
Async HTTP client for the extraction agent.

Built on httpx with:
- Per-domain rate limiting
- Exponential backoff retry on connection failures
- Line-by-line consumption of streamed (event-stream) responses
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlparse

import httpx
import structlog
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from grant_ingest import __version__

logger = structlog.get_logger(__name__)


USER_AGENT = f"grant-ingest/{__version__}"


@dataclass
class RateLimiter:
    """Per-domain rate limiter."""
    requests_per_second: float = 1.0
    last_request: float = 0.0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    async def acquire(self) -> None:
        """Wait for rate limit slot."""
        async with self.lock:
            now = time.monotonic()
            min_interval = 1.0 / self.requests_per_second
            elapsed = now - self.last_request

            if elapsed < min_interval:
                await asyncio.sleep(min_interval - elapsed)

            self.last_request = time.monotonic()


@dataclass
class StreamedResponse:
    """Fully consumed streamed response."""
    status_code: int
    lines: list[str]

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        return "\n".join(self.lines)


class HttpClient:
    """
    Async HTTP client with rate limiting and retries.

    Usage:
        async with HttpClient() as client:
            response = await client.post_stream(url, json={...})
            for line in response.lines:
                ...
    """

    def __init__(
        self,
        requests_per_second: float = 1.0,
        timeout: float = 600.0,
        connect_timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize HTTP client.

        Args:
            requests_per_second: Rate limit per domain
            timeout: Read/write timeout in seconds
            connect_timeout: Connection timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.requests_per_second = requests_per_second
        self.timeout = timeout
        self.connect_timeout = connect_timeout
        self.transport = transport

        self._client: Optional[httpx.AsyncClient] = None
        self._rate_limiters: dict[str, RateLimiter] = {}

    async def __aenter__(self) -> "HttpClient":
        """Enter async context."""
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout, connect=self.connect_timeout),
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
            transport=self.transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _get_rate_limiter(self, url: str) -> RateLimiter:
        """Get or create rate limiter for domain."""
        domain = urlparse(url).netloc
        if domain not in self._rate_limiters:
            self._rate_limiters[domain] = RateLimiter(
                requests_per_second=self.requests_per_second
            )
        return self._rate_limiters[domain]

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type((httpx.ConnectError, httpx.ConnectTimeout)),
        reraise=True,
    )
    async def _do_stream(
        self,
        method: str,
        url: str,
        **kwargs,
    ) -> StreamedResponse:
        """Execute streamed request with retry on connection failures."""
        if not self._client:
            raise RuntimeError("Client not initialized. Use 'async with' context.")

        async with self._client.stream(method, url, **kwargs) as response:
            lines = [line async for line in response.aiter_lines()]
            return StreamedResponse(status_code=response.status_code, lines=lines)

    async def post_stream(
        self,
        url: str,
        **kwargs,
    ) -> StreamedResponse:
        """
        POST request whose body is consumed line by line.

        Non-2xx responses are returned, not raised; the caller decides.

        Args:
            url: URL to post to
            **kwargs: Additional httpx arguments (json, headers, ...)

        Returns:
            StreamedResponse with status code and body lines
        """
        limiter = self._get_rate_limiter(url)
        await limiter.acquire()

        logger.debug("http_post_stream", url=url)

        response = await self._do_stream("POST", url, **kwargs)

        logger.debug(
            "http_stream_complete",
            url=url,
            status=response.status_code,
            lines=len(response.lines),
        )
        return response
