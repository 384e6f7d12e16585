"""Shared fixtures for the test suite."""

from datetime import datetime, timezone
from typing import Any, Callable, Optional

import httpx
import pytest

from beeboard.beeminder.client import BeeminderClient
from beeboard.beeminder.errors import NotFound
from beeboard.beeminder.models import Goal
from beeboard.store.database import SnapshotStore
from beeboard.store.models import Credentials

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
BASE_URL = "https://beeminder.test/api/v1"


def goal_payload(
    slug: str,
    roadstatuscolor: str = "green",
    safebuf: float = 3 * 86400,
    **overrides: Any,
) -> dict[str, Any]:
    """Build a goal dict the way the Beeminder API returns it."""
    payload = {
        "slug": slug,
        "title": slug.replace("-", " ").title(),
        "goal_type": "hustler",
        "goaldate": 1777777777.0,
        "losedate": 1772600000.0,
        "curval": 42.0,
        "currate": 1.0,
        "limsum": "+1 in 2 days",
        "roadstatuscolor": roadstatuscolor,
        "safebuf": safebuf,
        "baremin": "+1",
        "lastday": 1772400000.0,
        "thumbnail": None,
        "id": f"id-{slug}",  # extra fields are ignored
    }
    payload.update(overrides)
    return payload


def make_goal(slug: str, roadstatuscolor: str = "green", safebuf: float = 3 * 86400, **overrides) -> Goal:
    return Goal.model_validate(goal_payload(slug, roadstatuscolor, safebuf, **overrides))


@pytest.fixture()
def credentials() -> Credentials:
    return Credentials(username="alice", auth_token="s3cret")


@pytest.fixture()
def store(tmp_path) -> SnapshotStore:
    return SnapshotStore(str(tmp_path / "beeboard.db"))


@pytest.fixture()
def configured_store(store, credentials) -> SnapshotStore:
    store.put_credentials(credentials)
    return store


class RecordingTransport:
    """MockTransport wrapper that remembers every request it answered."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: list[httpx.Request] = []
        self._handler = handler
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._handler(request)


@pytest.fixture()
async def make_client():
    """Factory for a BeeminderClient backed by a mock transport."""
    opened: list[httpx.AsyncClient] = []

    def _make(
        handler: Callable[[httpx.Request], httpx.Response],
        credentials: Optional[Credentials] = Credentials("alice", "s3cret"),
    ) -> tuple[BeeminderClient, RecordingTransport]:
        recorder = RecordingTransport(handler)
        http = httpx.AsyncClient(transport=recorder.transport)
        opened.append(http)
        client = BeeminderClient(http, lambda: credentials, base_url=BASE_URL)
        return client, recorder

    yield _make

    for http in opened:
        await http.aclose()


class StubClient:
    """Stand-in for BeeminderClient used by controller and endpoint tests."""

    def __init__(self, goals: Optional[list[Goal]] = None, error: Optional[Exception] = None):
        self.goals = goals or []
        self.error = error
        self.fetch_calls = 0
        self.datapoints: list[tuple[str, float, Optional[str]]] = []

    async def fetch_goals(self) -> list[Goal]:
        self.fetch_calls += 1
        if self.error is not None:
            raise self.error
        return list(self.goals)

    async def fetch_goal(self, slug: str) -> Goal:
        if self.error is not None:
            raise self.error
        for goal in self.goals:
            if goal.slug == slug:
                return goal
        raise NotFound()

    async def add_datapoint(self, slug: str, value: float, comment: Optional[str] = None):
        if self.error is not None:
            raise self.error
        self.datapoints.append((slug, value, comment))

    def goal_url(self, slug: str) -> Optional[str]:
        return f"https://www.beeminder.com/alice/{slug}"

    def goal_url_builder(self) -> Callable[[str], str]:
        return self.goal_url
