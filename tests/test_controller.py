"""Tests for the timeline controller's cache, refresh and fallback rules."""

import asyncio
import json
from datetime import timedelta

import httpx

from beeboard.beeminder.errors import (
    InvalidConfiguration,
    MalformedPayload,
    NotFound,
    PersistenceUnavailable,
    RemoteRejection,
    TransportFailure,
)
from beeboard.store.database import SnapshotStore
from beeboard.timeline.controller import OutcomeKind, TimelineController, describe_error
from conftest import NOW, StubClient, goal_payload, make_goal


def slugs(entry):
    return [g.slug for g in entry.goals]


# ---------------------------------------------------------------------------
# Serving from cache
# ---------------------------------------------------------------------------

class TestCachedEntry:
    def test_placeholder_without_cache(self, store):
        controller = TimelineController(store, StubClient())

        entry = controller.cached_entry(NOW)

        assert entry.kind == OutcomeKind.PLACEHOLDER
        assert entry.goals == []
        assert entry.next_refresh == NOW

    def test_cached_goals_are_ranked(self, store):
        store.put_snapshot(
            [make_goal("safe", "green"), make_goal("danger", "red"), make_goal("warn", "orange")],
            now=NOW - timedelta(hours=1),
        )
        client = StubClient()
        controller = TimelineController(store, client)

        entry = controller.cached_entry(NOW)

        assert entry.kind == OutcomeKind.SUCCESS
        assert slugs(entry) == ["danger", "warn", "safe"]
        assert entry.stale
        assert entry.last_update == NOW - timedelta(hours=1)
        assert client.fetch_calls == 0


# ---------------------------------------------------------------------------
# refresh_once
# ---------------------------------------------------------------------------

class TestRefreshOnce:
    async def test_cold_start(self, store):
        fetched = [
            make_goal("warn", "orange"),
            make_goal("danger", "red"),
            make_goal("safe", "green"),
        ]
        controller = TimelineController(store, StubClient(goals=fetched))

        entry = await controller.refresh_once(NOW)

        assert entry.kind == OutcomeKind.SUCCESS
        assert slugs(entry) == ["danger", "warn", "safe"]
        assert not entry.stale
        assert entry.next_refresh == NOW + timedelta(minutes=15)
        # Store keeps source order; ranking is applied on read
        snapshot = store.get_snapshot()
        assert [g.slug for g in snapshot.goals] == ["warn", "danger", "safe"]
        assert snapshot.last_update == NOW

    async def test_failure_serves_cached_goals(self, store):
        cached = [make_goal("safe", "green"), make_goal("danger", "red")]
        store.put_snapshot(cached, now=NOW - timedelta(hours=2))
        controller = TimelineController(store, StubClient(error=TransportFailure("offline")))

        entry = await controller.refresh_once(NOW)

        assert entry.kind == OutcomeKind.SUCCESS
        assert slugs(entry) == ["danger", "safe"]
        assert entry.stale
        assert entry.message == "Could not reach Beeminder"
        assert entry.next_refresh == NOW + timedelta(minutes=5)
        # Snapshot untouched
        snapshot = store.get_snapshot()
        assert snapshot.goals == cached
        assert snapshot.last_update == NOW - timedelta(hours=2)

    async def test_failure_without_cache_is_error(self, store):
        controller = TimelineController(store, StubClient(error=RemoteRejection(500)))

        entry = await controller.refresh_once(NOW)

        assert entry.kind == OutcomeKind.ERROR
        assert entry.goals == []
        assert entry.message == "Beeminder returned HTTP 500"
        assert entry.next_refresh == NOW + timedelta(minutes=5)
        assert store.get_snapshot() is None

    async def test_missing_credentials_fails_fast(self, store):
        client = StubClient(error=InvalidConfiguration())
        controller = TimelineController(store, client)

        entry = await controller.refresh_once(NOW)

        assert entry.kind == OutcomeKind.ERROR
        assert entry.message == "Add your Beeminder username and auth token"

    async def test_timeout_treated_as_transport_failure(self, store):
        store.put_snapshot([make_goal("cached", "blue")], now=NOW)

        class SlowClient(StubClient):
            async def fetch_goals(self):
                await asyncio.sleep(10)

        controller = TimelineController(store, SlowClient(), fetch_timeout=0.01)

        entry = await controller.refresh_once(NOW)

        assert entry.kind == OutcomeKind.SUCCESS
        assert slugs(entry) == ["cached"]
        assert entry.message == "Could not reach Beeminder"
        assert entry.next_refresh == NOW + timedelta(minutes=5)

    async def test_store_write_failure_is_swallowed(self, tmp_path):
        broken = SnapshotStore(str(tmp_path))  # a directory, not a database
        controller = TimelineController(broken, StubClient(goals=[make_goal("a", "red")]))

        entry = await controller.refresh_once(NOW)

        assert entry.kind == OutcomeKind.SUCCESS
        assert slugs(entry) == ["a"]
        assert entry.next_refresh == NOW + timedelta(minutes=15)

    async def test_custom_intervals(self, store):
        controller = TimelineController(
            store,
            StubClient(goals=[make_goal("a")]),
            success_interval=timedelta(minutes=30),
            failure_interval=timedelta(minutes=1),
        )

        entry = await controller.refresh_once(NOW)

        assert entry.next_refresh == NOW + timedelta(minutes=30)

    async def test_most_urgent(self, store):
        controller = TimelineController(
            store, StubClient(goals=[make_goal("safe", "green"), make_goal("warn", "orange")])
        )

        entry = await controller.refresh_once(NOW)

        assert entry.most_urgent.slug == "warn"

    async def test_corrupt_body_serves_cached_goals(self, configured_store, make_client):
        cached = [make_goal("cached", "orange")]
        configured_store.put_snapshot(cached, now=NOW - timedelta(hours=1))
        client, _ = make_client(
            lambda request: httpx.Response(
                200, headers={"Content-Encoding": "gzip"}, content=b"not gzip"
            )
        )
        controller = TimelineController(configured_store, client)

        entry = await controller.refresh_once(NOW)

        assert entry.kind == OutcomeKind.SUCCESS
        assert entry.stale
        assert slugs(entry) == ["cached"]
        assert entry.message == "Beeminder sent data we could not read"
        assert entry.next_refresh == NOW + timedelta(minutes=5)

    async def test_nan_payload_not_stored(self, configured_store, make_client):
        cached = [make_goal("cached", "orange")]
        configured_store.put_snapshot(cached, now=NOW - timedelta(hours=1))
        body = json.dumps([goal_payload("bad", "red", safebuf=float("nan"))]).encode()
        client, _ = make_client(
            lambda request: httpx.Response(
                200, headers={"Content-Type": "application/json"}, content=body
            )
        )
        controller = TimelineController(configured_store, client)

        entry = await controller.refresh_once(NOW)

        assert entry.stale
        assert slugs(entry) == ["cached"]
        assert configured_store.get_snapshot().goals == cached
        # Cache still readable afterwards
        assert slugs(controller.cached_entry(NOW)) == ["cached"]


def test_error_descriptions():
    assert describe_error(NotFound()) == "Goal not found"
    assert describe_error(RemoteRejection(401)) == "Beeminder rejected the auth token"
    assert describe_error(MalformedPayload("bad")) == "Beeminder sent data we could not read"
    assert describe_error(PersistenceUnavailable("disk")) == "Local goal cache is unavailable"
