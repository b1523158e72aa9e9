"""Shared fixtures for the test suite."""

from datetime import datetime, timedelta, timezone

import pytest

from grant_ingest.config import ExtractionSettings, RunSettings, Settings, StorageSettings
from grant_ingest.storage import SqliteGrantStore


class FakeClock:
    """Deterministic clock; only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeExtractionClient:
    """
    Stand-in for ExtractionClient.

    `responses` maps source URL to a payload, an exception to raise,
    or a coroutine function to await.
    """

    def __init__(self, responses: dict):
        self.responses = responses
        self.calls: list[str] = []

    async def extract(self, source_url: str):
        self.calls.append(source_url)
        result = self.responses[source_url]
        if isinstance(result, BaseException):
            raise result
        if callable(result):
            return await result()
        return result


def grants_payload(*titles: str, base_url: str = "https://funder.example.org") -> dict:
    """Agent-style payload with one grant per title."""
    return {
        "grants": [
            {
                "grant_title": title,
                "source_url": f"{base_url}/grants/{i}",
                "deadline_date": "2026-12-01",
                "status": "open",
            }
            for i, title in enumerate(titles, start=1)
        ],
        "errors": [],
    }


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "grants.db")


@pytest.fixture
def settings(db_path):
    return Settings(
        extraction=ExtractionSettings(
            endpoint="https://agent.test/v1/automation/run-sse",
            api_key="test-key",
            timeout_seconds=5.0,
            requests_per_second=1000.0,
        ),
        storage=StorageSettings(backend="sqlite", database_path=db_path),
        run=RunSettings(stale_after_days=14, max_concurrency=1),
    )


@pytest.fixture
def store(db_path):
    return SqliteGrantStore(db_path)


@pytest.fixture
def fake_client():
    """Factory for FakeExtractionClient."""
    return FakeExtractionClient


@pytest.fixture
def payload():
    """Factory for agent-style grant payloads."""
    return grants_payload
