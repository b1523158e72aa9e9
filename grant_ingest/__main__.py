"""
CLI entry point for grant-ingest.

Usage:
    python -m grant_ingest --url https://foundation.example/grants
    python -m grant_ingest --org 4f1c... --urls-file sources.txt
    python -m grant_ingest --org 4f1c... --from-sources --run-type scheduled
    python -m grant_ingest --serve --port 8080
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import structlog

from .core.models import RunStatus

# Log level mapping
LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID_INPUT = 2
EXIT_INTERRUPTED = 130


def setup_logging(level: str = "INFO", json_output: bool = False):
    """Configure structured logging."""
    log_level = LOG_LEVELS.get(level.upper(), logging.INFO)

    if json_output:
        processors = [
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Grant opportunity ingestion pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Preview extraction without persisting (no organization)
  python -m grant_ingest --url https://foundation.example/grants

  # Ingest for an organization
  python -m grant_ingest --org ORG_ID --url https://a.example/grants --url https://b.example/funding

  # Scheduled run over the organization's active sources
  python -m grant_ingest --org ORG_ID --from-sources --run-type scheduled

  # Start the trigger endpoint
  python -m grant_ingest --serve --port 8080
        """,
    )

    parser.add_argument(
        "--url",
        action="append",
        default=[],
        help="Source URL to scan (repeatable)",
    )

    parser.add_argument(
        "--urls-file",
        type=str,
        help="File with one source URL per line (# comments allowed)",
    )

    parser.add_argument(
        "--org",
        type=str,
        help="Organization id (omit for a preview run that persists nothing)",
    )

    parser.add_argument(
        "--from-sources",
        action="store_true",
        help="Scan the organization's active grant sources from the store",
    )

    parser.add_argument(
        "--run-type",
        choices=["manual", "scheduled"],
        default="manual",
        help="Run type recorded on the run (default: manual)",
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to a settings.yml file",
    )

    parser.add_argument(
        "--output",
        type=str,
        help="Write the run outcome as JSON to this file",
    )

    parser.add_argument(
        "--serve",
        action="store_true",
        help="Run the HTTP trigger endpoint instead of a single run",
    )

    parser.add_argument("--host", type=str, default="0.0.0.0", help="Server host")
    parser.add_argument("--port", type=int, default=8080, help="Server port")

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs as JSON (for production)",
    )

    parser.add_argument(
        "--version",
        action="store_true",
        help="Show version and exit",
    )

    return parser.parse_args(argv)


def read_urls_file(path: str) -> list[str]:
    """Source URLs from a text file, skipping blanks and comments."""
    urls = []
    for line in Path(path).read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            urls.append(line)
    return urls


async def main_async(args, orchestrator):
    """Async main function."""
    logger = structlog.get_logger(__name__)

    if args.from_sources:
        outcome = await orchestrator.run_for_organization(args.org, run_type=args.run_type)
    else:
        urls = list(args.url)
        if args.urls_file:
            urls.extend(read_urls_file(args.urls_file))
        outcome = await orchestrator.run(args.org, urls, run_type=args.run_type)

    if args.output:
        Path(args.output).write_text(outcome.to_json(), encoding="utf-8")
        logger.info("outcome_saved", path=args.output)

    for error in outcome.errors:
        logger.warning("run_error", error=error)

    logger.info(
        "ingestion_complete",
        run_id=outcome.run_id,
        status=outcome.status.value,
        grants_found=outcome.grants_found,
        errors=len(outcome.errors),
    )
    return outcome


def main(argv=None):
    """Main entry point."""
    from .config import load_settings
    from .errors import ConfigurationError, InvalidInput
    from .orchestrator import RunOrchestrator

    args = parse_args(argv)

    if args.version:
        from . import __version__
        print(f"grant-ingest {__version__}")
        sys.exit(EXIT_OK)

    setup_logging(args.log_level, args.json_logs)
    logger = structlog.get_logger(__name__)

    try:
        orchestrator = RunOrchestrator(load_settings(args.config))

        if args.serve:
            from .server import serve
            serve(orchestrator, host=args.host, port=args.port)
            sys.exit(EXIT_OK)

        outcome = asyncio.run(main_async(args, orchestrator))
        sys.exit(EXIT_FAILED if outcome.status == RunStatus.FAILED else EXIT_OK)
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        sys.exit(EXIT_INTERRUPTED)
    except InvalidInput as e:
        logger.error("invalid_input", error=str(e))
        sys.exit(EXIT_INVALID_INPUT)
    except ConfigurationError as e:
        logger.error("configuration_error", error=str(e))
        sys.exit(EXIT_FAILED)
    except Exception as e:
        logger.exception("fatal_error", error=str(e))
        sys.exit(EXIT_FAILED)


if __name__ == "__main__":
    main()
