"""
Run orchestrator for the ingestion pipeline.

Coordinates:
- Input and configuration checks
- Run record lifecycle
- Per-source extraction, parsing and storage with failure isolation
- Staleness sweep
- Run status classification
"""

import asyncio
import contextlib
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

import structlog

from .config import Settings
from .core.models import (
    GrantRecord,
    RunOutcome,
    RunResult,
    RunType,
    classify_run,
)
from .errors import ConfigurationError, InvalidInput, StoreError, UpstreamError
from .extraction.client import ExtractionClient
from .extraction.parser import parse_response
from .storage import GrantStore, build_store, mark_observed, resolve_identity

logger = structlog.get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def describe_error(error: BaseException) -> str:
    """Error text for run error entries; never empty."""
    return str(error) or type(error).__name__


@dataclass
class SourceOutcome:
    """Everything one source URL contributed to a run."""
    source_url: str
    grants: list[GrantRecord] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


class RunOrchestrator:
    """
    Top-level coordinator of ingestion runs.

    For each source URL: extraction client -> response parser ->
    identity resolution -> store upsert. Failures are contained to
    their source and reported in the run's error list.
    """

    def __init__(
        self,
        settings: Settings,
        store: Optional[GrantStore] = None,
        client: Optional[Any] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            settings: Pipeline settings
            store: Grant store (built from settings on first run if omitted)
            client: Object with `async extract(url)`; an ExtractionClient
                    is opened per run if omitted
            clock: Returns the current UTC time (tests pin it)
        """
        self.settings = settings
        self.store = store
        self.client = client
        self.clock = clock or utc_now

        self.max_concurrency = max(1, settings.run.max_concurrency)
        self.stale_window = timedelta(days=settings.run.stale_after_days)
        self.source_timeout = settings.extraction.timeout_seconds

    @staticmethod
    def validate_request(source_urls: Any, run_type: Any) -> tuple[list[str], RunType]:
        """
        Check a run request before anything touches network or storage.

        Raises:
            InvalidInput: If the source list is empty or malformed
        """
        if not isinstance(source_urls, (list, tuple)) or not source_urls:
            raise InvalidInput("source_urls[] is required")

        urls = []
        for url in source_urls:
            if not isinstance(url, str) or not url.strip():
                raise InvalidInput(f"Invalid source URL: {url!r}")
            urls.append(url.strip())

        try:
            parsed_type = RunType(run_type)
        except ValueError:
            raise InvalidInput(
                f"Invalid run_type '{run_type}' (expected manual or scheduled)"
            ) from None

        return urls, parsed_type

    def _ensure_ready(self) -> None:
        """Fatal pre-loop configuration checks."""
        self.settings.require_extraction()
        if self.store is None:
            self.store = build_store(self.settings)

    def _extraction_client(self):
        if self.client is not None:
            return contextlib.nullcontext(self.client)
        return ExtractionClient(self.settings)

    async def run(
        self,
        organization_id: Optional[str],
        source_urls: list[str],
        run_type: str = RunType.MANUAL.value,
    ) -> RunOutcome:
        """
        Run the ingestion pipeline over a batch of source URLs.

        Without an organization the run is a preview: grants are
        extracted, normalized and returned, but nothing is persisted.

        Args:
            organization_id: Owning organization, or None for preview mode
            source_urls: Grants listing pages to scan
            run_type: "manual" or "scheduled"

        Returns:
            RunOutcome with status, grants and per-source errors

        Raises:
            InvalidInput: Empty or malformed request
            ConfigurationError: Missing upstream or storage credentials
        """
        urls, parsed_type = self.validate_request(source_urls, run_type)
        self._ensure_ready()

        run = RunResult(
            organization_id=organization_id,
            run_type=parsed_type,
            sources_count=len(urls),
            started_at=self.clock(),
        )
        if organization_id:
            run.run_id = self._create_run(run)
        else:
            logger.warning("preview_mode", reason="no organization_id; grants will not be persisted")

        log = logger.bind(run_id=run.run_id, organization_id=organization_id)
        log.info("run_started", sources=len(urls), run_type=parsed_type.value)

        async with self._extraction_client() as client:
            outcomes = await self._process_sources(client, organization_id, urls)

        grants: list[GrantRecord] = []
        errors: list[str] = []
        for outcome in outcomes:
            grants.extend(outcome.grants)
            errors.extend(outcome.errors)

        if organization_id:
            sweep_error = self._sweep_stale(organization_id)
            if sweep_error:
                errors.append(sweep_error)

        status = classify_run(errors, len(grants))
        run.finish(status, grants_found=len(grants), errors=errors, finished_at=self.clock())
        if run.run_id:
            self._finish_run(run)

        log.info(
            "run_complete",
            status=status.value,
            grants_found=len(grants),
            errors=len(errors),
        )

        return RunOutcome(
            success=True,
            run_id=run.run_id,
            status=status,
            grants_found=len(grants),
            grants=grants,
            errors=errors,
        )

    async def run_for_organization(
        self,
        organization_id: str,
        run_type: str = RunType.SCHEDULED.value,
    ) -> RunOutcome:
        """
        Run over the organization's active grant sources.

        Raises:
            InvalidInput: If the organization has no active sources
            ConfigurationError: Missing credentials
        """
        if not organization_id:
            raise InvalidInput("organization_id is required to load sources")

        self._ensure_ready()
        try:
            urls = self.store.list_active_sources(organization_id)
        except StoreError as e:
            raise ConfigurationError(f"Cannot load grant sources: {e}") from e

        logger.info("sources_loaded", organization_id=organization_id, count=len(urls))
        return await self.run(organization_id, urls, run_type=run_type)

    async def _process_sources(
        self,
        client: Any,
        organization_id: Optional[str],
        urls: list[str],
    ) -> list[SourceOutcome]:
        """Process every source; outcomes come back in input order."""
        if self.max_concurrency == 1:
            return [await self._process_source(client, organization_id, url) for url in urls]

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def bounded(url: str) -> SourceOutcome:
            async with semaphore:
                return await self._process_source(client, organization_id, url)

        return list(await asyncio.gather(*(bounded(url) for url in urls)))

    async def _extract(self, client: Any, source_url: str) -> Any:
        try:
            return await asyncio.wait_for(client.extract(source_url), timeout=self.source_timeout)
        except asyncio.TimeoutError:
            raise UpstreamError(
                f"Extraction timed out after {self.source_timeout:.0f}s"
            ) from None

    async def _process_source(
        self,
        client: Any,
        organization_id: Optional[str],
        source_url: str,
    ) -> SourceOutcome:
        """
        Extract, parse and store one source.

        Never raises; every failure becomes an error entry.
        """
        outcome = SourceOutcome(source_url=source_url)
        log = logger.bind(source_url=source_url)

        try:
            raw_payload = await self._extract(client, source_url)
            parsed = parse_response(raw_payload)
            outcome.errors.extend(f"[{source_url}] {error}" for error in parsed.errors)

            for record in parsed.grants:
                resolve_identity(record, source_url)
                mark_observed(record, self.clock())
                record.organization_id = organization_id
                outcome.grants.append(record)

                if organization_id:
                    error = self._upsert(organization_id, record)
                    if error:
                        outcome.errors.append(error)

        except Exception as e:
            log.error("source_processing_failed", error=describe_error(e))
            outcome.errors.append(f"[{source_url}] {describe_error(e)}")

        log.info(
            "source_processed",
            grants=len(outcome.grants),
            errors=len(outcome.errors),
        )
        return outcome

    def _upsert(self, organization_id: str, record: GrantRecord) -> Optional[str]:
        try:
            self.store.upsert_grant(organization_id, record)
        except Exception as e:
            logger.error(
                "grant_upsert_failed",
                title=record.grant_title,
                source_url=record.source_url,
                error=describe_error(e),
            )
            return f'Upsert failed for "{record.grant_title}": {describe_error(e)}'
        return None

    def _create_run(self, run: RunResult) -> Optional[str]:
        try:
            return self.store.create_run(run)
        except StoreError as e:
            logger.warning(
                "run_record_not_created",
                organization_id=run.organization_id,
                error=describe_error(e),
            )
            return None

    def _finish_run(self, run: RunResult) -> None:
        try:
            self.store.finish_run(run)
        except StoreError as e:
            logger.error("run_record_not_finished", run_id=run.run_id, error=describe_error(e))

    def _sweep_stale(self, organization_id: str) -> Optional[str]:
        try:
            self.store.mark_stale(organization_id, self.clock(), self.stale_window)
        except StoreError as e:
            logger.error("stale_sweep_failed", organization_id=organization_id, error=describe_error(e))
            return f"Staleness sweep failed: {describe_error(e)}"
        return None


async def run_ingestion(
    source_urls: list[str],
    organization_id: Optional[str] = None,
    run_type: str = RunType.MANUAL.value,
    settings: Optional[Settings] = None,
) -> RunOutcome:
    """
    Convenience function to run the pipeline with packaged settings.

    Args:
        source_urls: Grants listing pages to scan
        organization_id: Owning organization (None = preview)
        run_type: "manual" or "scheduled"
        settings: Settings (loaded from the packaged file if omitted)

    Returns:
        RunOutcome
    """
    from .config import load_settings

    orchestrator = RunOrchestrator(settings or load_settings())
    return await orchestrator.run(organization_id, source_urls, run_type=run_type)
