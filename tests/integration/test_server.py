"""Tests for the inbound trigger endpoint."""

import pytest
from aiohttp import test_utils

from grant_ingest.config import ExtractionSettings, Settings
from grant_ingest.orchestrator import RunOrchestrator
from grant_ingest.server import create_app, handle_trigger


ORG = "org-1"
SOURCE = "https://alpha.example.org/grants"


@pytest.fixture
def orchestrator(settings, store, clock, fake_client, payload):
    client = fake_client({SOURCE: payload("A1", "A2", base_url="https://alpha.example.org")})
    return RunOrchestrator(settings, store=store, client=client, clock=clock)


class TestHandleTrigger:
    """Tests for handle_trigger function."""

    @pytest.mark.asyncio
    async def test_success(self, orchestrator):
        """Test a valid request returns the run outcome."""
        status, body = await handle_trigger(
            {"organization_id": ORG, "source_urls": [SOURCE], "run_type": "manual"},
            orchestrator,
        )

        assert status == 200
        assert body["success"] is True
        assert body["status"] == "success"
        assert body["grants_found"] == 2
        assert body["run_id"]
        assert body["errors"] == []

    @pytest.mark.asyncio
    async def test_missing_sources(self, orchestrator):
        """Test an empty source list is a client error."""
        status, body = await handle_trigger({"organization_id": ORG, "source_urls": []}, orchestrator)

        assert status == 400
        assert body["success"] is False
        assert "source_urls" in body["error"]

    @pytest.mark.asyncio
    async def test_non_object_body(self, orchestrator):
        """Test a non-object body is a client error."""
        status, body = await handle_trigger([SOURCE], orchestrator)

        assert status == 400
        assert body["success"] is False

    @pytest.mark.asyncio
    async def test_configuration_error(self, store, clock, fake_client):
        """Test missing credentials are a server error."""
        orchestrator = RunOrchestrator(
            Settings(extraction=ExtractionSettings(endpoint="https://agent.test")),
            store=store,
            client=fake_client({}),
            clock=clock,
        )

        status, body = await handle_trigger({"source_urls": [SOURCE]}, orchestrator)

        assert status == 500
        assert body["success"] is False
        assert "TINYFISH_API_KEY" in body["error"]

    @pytest.mark.asyncio
    async def test_failed_run_is_still_ok(self, settings, store, clock, fake_client):
        """Test a failed run is reported with HTTP 200."""
        client = fake_client({SOURCE: {"grants": [], "errors": ["No grants found on this page"]}})
        orchestrator = RunOrchestrator(settings, store=store, client=client, clock=clock)

        status, body = await handle_trigger({"organization_id": ORG, "source_urls": [SOURCE]}, orchestrator)

        assert status == 200
        assert body["success"] is True
        assert body["status"] == "failed"


class TestApp:
    """Tests for the aiohttp application."""

    @pytest.mark.asyncio
    async def test_post_runs(self, orchestrator):
        """Test POST /runs end to end."""
        async with test_utils.TestClient(test_utils.TestServer(create_app(orchestrator))) as client:
            response = await client.post("/runs", json={"organization_id": ORG, "source_urls": [SOURCE]})
            body = await response.json()

        assert response.status == 200
        assert body["grants_found"] == 2
        assert [g["grant_title"] for g in body["grants"]] == ["A1", "A2"]

    @pytest.mark.asyncio
    async def test_preview_route(self, orchestrator, store):
        """Test the legacy route with no organization persists nothing."""
        async with test_utils.TestClient(test_utils.TestServer(create_app(orchestrator))) as client:
            response = await client.post("/tinyfish-run", json={"source_urls": [SOURCE]})
            body = await response.json()

        assert response.status == 200
        assert body["run_id"] is None
        assert body["grants_found"] == 2
        assert store.list_grants(ORG) == []

    @pytest.mark.asyncio
    async def test_invalid_json(self, orchestrator):
        """Test a malformed body is rejected."""
        async with test_utils.TestClient(test_utils.TestServer(create_app(orchestrator))) as client:
            response = await client.post("/runs", data="{not json", headers={"Content-Type": "application/json"})
            body = await response.json()

        assert response.status == 400
        assert body["success"] is False

    @pytest.mark.asyncio
    async def test_health(self, orchestrator):
        """Test the health check."""
        async with test_utils.TestClient(test_utils.TestServer(create_app(orchestrator))) as client:
            response = await client.get("/health")
            text = await response.text()

        assert response.status == 200
        assert text == "OK"
