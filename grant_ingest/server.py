"""
Inbound trigger endpoint.

Lets the tracking application start a run over HTTP:
    POST /runs  {"organization_id": ..., "source_urls": [...], "run_type": "manual"}
"""

import json
from typing import Any

import structlog
from aiohttp import web

from .errors import ConfigurationError, InvalidInput
from .orchestrator import RunOrchestrator, describe_error

logger = structlog.get_logger(__name__)


ORCHESTRATOR_KEY = web.AppKey("orchestrator", RunOrchestrator)


async def handle_trigger(payload: Any, orchestrator: RunOrchestrator) -> tuple[int, dict]:
    """
    Execute a trigger request.

    Args:
        payload: Decoded request body
        orchestrator: Orchestrator to run with

    Returns:
        (HTTP status, response body)
    """
    if not isinstance(payload, dict):
        return 400, {"success": False, "error": "Request body must be a JSON object"}

    try:
        outcome = await orchestrator.run(
            payload.get("organization_id") or None,
            payload.get("source_urls"),
            run_type=payload.get("run_type") or "manual",
        )
    except InvalidInput as e:
        return 400, {"success": False, "error": str(e)}
    except ConfigurationError as e:
        logger.error("trigger_configuration_error", error=str(e))
        return 500, {"success": False, "error": str(e)}
    except Exception as e:
        logger.exception("trigger_fatal_error", error=describe_error(e))
        return 500, {"success": False, "error": describe_error(e)}

    return 200, outcome.to_dict()


async def handle_run(request: web.Request) -> web.Response:
    """POST /runs"""
    try:
        payload = await request.json()
    except json.JSONDecodeError:
        return web.json_response(
            {"success": False, "error": "Request body is not valid JSON"},
            status=400,
        )

    status, body = await handle_trigger(payload, request.app[ORCHESTRATOR_KEY])
    return web.json_response(body, status=status, dumps=lambda d: json.dumps(d, default=str))


async def handle_health(request: web.Request) -> web.Response:
    """Health check"""
    return web.Response(text="OK", status=200)


def create_app(orchestrator: RunOrchestrator) -> web.Application:
    """Build the aiohttp application."""
    app = web.Application()
    app[ORCHESTRATOR_KEY] = orchestrator

    app.router.add_post("/runs", handle_run)
    app.router.add_post("/tinyfish-run", handle_run)
    app.router.add_get("/health", handle_health)
    return app


def serve(orchestrator: RunOrchestrator, host: str = "0.0.0.0", port: int = 8080) -> None:
    """Run the trigger server until interrupted."""
    logger.info("server_starting", host=host, port=port)
    web.run_app(create_app(orchestrator), host=host, port=port, print=None)
