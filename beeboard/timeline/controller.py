"""Decides what to show now and when the next refresh is due."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from beeboard.beeminder.client import BeeminderClient
from beeboard.beeminder.errors import (
    BeeminderError,
    InvalidConfiguration,
    MalformedPayload,
    PersistenceUnavailable,
    RemoteRejection,
    TransportFailure,
)
from beeboard.beeminder.models import Goal, rank_goals
from beeboard.store.database import SnapshotStore

logger = logging.getLogger(__name__)

SUCCESS_INTERVAL = timedelta(minutes=15)
FAILURE_INTERVAL = timedelta(minutes=5)


class OutcomeKind(str, Enum):
    """What a consumer should render."""

    SUCCESS = "success"
    PLACEHOLDER = "placeholder"
    ERROR = "error"


@dataclass
class TimelineEntry:
    """One decision: what to show, and when to ask again."""

    kind: OutcomeKind
    next_refresh: datetime
    goals: list[Goal] = field(default_factory=list)
    message: Optional[str] = None
    last_update: Optional[datetime] = None
    stale: bool = False  # served from the snapshot, not a fresh fetch

    @property
    def most_urgent(self) -> Optional[Goal]:
        return self.goals[0] if self.goals else None


def describe_error(error: BeeminderError) -> str:
    """Human-readable description of a sync failure."""
    if isinstance(error, InvalidConfiguration):
        return "Add your Beeminder username and auth token"
    if isinstance(error, TransportFailure):
        return "Could not reach Beeminder"
    if isinstance(error, RemoteRejection):
        if error.is_not_found:
            return "Goal not found"
        if error.status_code in (401, 403):
            return "Beeminder rejected the auth token"
        return f"Beeminder returned HTTP {error.status_code}"
    if isinstance(error, MalformedPayload):
        return "Beeminder sent data we could not read"
    if isinstance(error, PersistenceUnavailable):
        return "Local goal cache is unavailable"
    return "Failed to load goals"


class TimelineController:
    """
    Serves cached goals instantly and refreshes them on a fixed cadence.

    The controller owns no timer. Each host (the interactive API, the TRMNL
    display endpoint) calls it and is told when it must call again.
    """

    def __init__(
        self,
        store: SnapshotStore,
        client: BeeminderClient,
        success_interval: timedelta = SUCCESS_INTERVAL,
        failure_interval: timedelta = FAILURE_INTERVAL,
        fetch_timeout: Optional[float] = None,
    ):
        """
        Initialize controller.

        Args:
            store: Snapshot store shared with other processes
            client: Beeminder API client
            success_interval: Delay before the next refresh after a good fetch
            failure_interval: Delay before retrying after a failed fetch
            fetch_timeout: Seconds before an outstanding fetch is abandoned
                and treated as a transport failure
        """
        self.store = store
        self.client = client
        self.success_interval = success_interval
        self.failure_interval = failure_interval
        self.fetch_timeout = fetch_timeout

    def cached_entry(self, now: datetime) -> TimelineEntry:
        """
        Entry built from the snapshot alone, without touching the network.

        A refresh is due immediately, so ``next_refresh`` is ``now``.
        """
        snapshot = self.store.get_snapshot()
        if snapshot is None:
            return TimelineEntry(kind=OutcomeKind.PLACEHOLDER, next_refresh=now)

        return TimelineEntry(
            kind=OutcomeKind.SUCCESS,
            next_refresh=now,
            goals=rank_goals(snapshot.goals),
            last_update=snapshot.last_update,
            stale=True,
        )

    async def refresh_once(self, now: datetime) -> TimelineEntry:
        """
        Fetch fresh goals, update the snapshot and rank the result.

        On failure the snapshot is left alone and the cached goals (if any)
        are served instead, with the error attached as ``message``.

        Args:
            now: Current instant; the next refresh is scheduled from it

        Returns:
            TimelineEntry, never raises for sync failures
        """
        try:
            goals = await self._fetch()
        except BeeminderError as e:
            return self._fallback(now, e)

        try:
            self.store.put_snapshot(goals, now=now)
        except PersistenceUnavailable as e:
            # Next successful fetch will write it again
            logger.error(f"Could not store snapshot: {e}")

        ranked = rank_goals(goals)
        logger.info(
            f"Refreshed {len(ranked)} goals; next refresh in "
            f"{int(self.success_interval.total_seconds())}s"
        )
        return TimelineEntry(
            kind=OutcomeKind.SUCCESS,
            next_refresh=now + self.success_interval,
            goals=ranked,
            last_update=now,
        )

    async def _fetch(self) -> list[Goal]:
        if self.fetch_timeout is None:
            return await self.client.fetch_goals()
        try:
            return await asyncio.wait_for(
                self.client.fetch_goals(), timeout=self.fetch_timeout
            )
        except asyncio.TimeoutError as e:
            raise TransportFailure(
                f"No response within {self.fetch_timeout}s"
            ) from e

    def _fallback(self, now: datetime, error: BeeminderError) -> TimelineEntry:
        message = describe_error(error)
        next_refresh = now + self.failure_interval
        cached = self.cached_entry(now)

        if cached.kind == OutcomeKind.SUCCESS:
            logger.warning(f"Refresh failed ({error}); serving cached goals")
            cached.next_refresh = next_refresh
            cached.message = message
            return cached

        logger.warning(f"Refresh failed ({error}); no cached goals to show")
        return TimelineEntry(
            kind=OutcomeKind.ERROR,
            next_refresh=next_refresh,
            message=message,
        )
