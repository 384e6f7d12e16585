"""Beeminder REST API client."""

import logging
from typing import Any, Callable, Optional
from urllib.parse import quote

import httpx
from pydantic import TypeAdapter, ValidationError

from beeboard.store.models import Credentials

from .errors import (
    InvalidConfiguration,
    MalformedPayload,
    NotFound,
    RemoteRejection,
    TransportFailure,
)
from .models import BeeminderUser, Goal

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://www.beeminder.com/api/v1"
WEB_URL = "https://www.beeminder.com"

_GOAL_LIST = TypeAdapter(list[Goal])


class BeeminderClient:
    """Async client for the Beeminder API."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        credentials: Callable[[], Optional[Credentials]],
        base_url: str = DEFAULT_BASE_URL,
    ):
        """
        Initialize Beeminder client.

        Args:
            http: Shared HTTP client (timeouts are configured on it)
            credentials: Called before every request; usually the snapshot
                store's ``get_credentials`` so a login saved by another
                process is picked up
            base_url: API root, e.g. https://www.beeminder.com/api/v1
        """
        self.http = http
        self.credentials = credentials
        self.base_url = base_url.rstrip("/")

    def with_credentials(self, credentials: Credentials) -> "BeeminderClient":
        """Client sharing this one's HTTP pool but using fixed credentials."""
        return BeeminderClient(self.http, lambda: credentials, self.base_url)

    def _require_credentials(self) -> Credentials:
        credentials = self.credentials()
        if credentials is None:
            raise InvalidConfiguration()
        return credentials

    def _user_url(self, username: str, path: str = "") -> str:
        return f"{self.base_url}/users/{quote(username, safe='')}{path}"

    async def _request(
        self,
        method: str,
        path: str,
        data: Optional[dict] = None,
    ) -> httpx.Response:
        """
        Send an authenticated request and validate the status code.

        Args:
            method: HTTP method
            path: Path below ``/users/{username}``, e.g. "/goals.json"
            data: Form fields for POST requests

        Returns:
            Response with a 2xx status

        Raises:
            InvalidConfiguration: no stored credentials
            TransportFailure: no response (connection error, timeout, ...)
            NotFound: status 404
            RemoteRejection: any other status outside 200-299
        """
        credentials = self._require_credentials()
        url = self._user_url(credentials.username, path)

        logger.debug(f"{method} {url}")
        try:
            response = await self.http.request(
                method,
                url,
                params={"auth_token": credentials.auth_token},
                data=data,
            )
        except httpx.DecodingError as e:
            # Body arrived but its Content-Encoding was corrupt
            logger.warning(f"{method} {url} sent an undecodable body: {e!r}")
            raise MalformedPayload(f"Could not decode response body: {e}") from e
        except httpx.RequestError as e:
            logger.warning(f"{method} {url} failed: {e!r}")
            raise TransportFailure(str(e) or type(e).__name__) from e

        if not 200 <= response.status_code <= 299:
            logger.warning(f"{method} {url} returned HTTP {response.status_code}")
            if response.status_code == 404:
                raise NotFound(response.text)
            raise RemoteRejection(response.status_code, response.text)

        return response

    def _decode(self, response: httpx.Response, adapter: Callable[[Any], Any]):
        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedPayload(f"Response is not JSON: {e}") from e

        try:
            return adapter(payload)
        except ValidationError as e:
            raise MalformedPayload(f"Unexpected response shape: {e}") from e

    async def fetch_goals(self) -> list[Goal]:
        """
        Fetch all goals for the user.

        Returns:
            Goals in the order Beeminder sent them (not ranked)
        """
        response = await self._request("GET", "/goals.json")
        goals = _drop_duplicate_slugs(self._decode(response, _GOAL_LIST.validate_python))
        logger.info(f"Fetched {len(goals)} goals from Beeminder")
        return goals

    async def fetch_goal(self, slug: str) -> Goal:
        """
        Fetch a single goal.

        Raises:
            NotFound: if the user has no goal with this slug
        """
        response = await self._request("GET", f"/goals/{quote(slug, safe='')}.json")
        return self._decode(response, Goal.model_validate)

    async def fetch_user(self) -> BeeminderUser:
        """Fetch the user record (used to check credentials)."""
        response = await self._request("GET", ".json")
        return self._decode(response, BeeminderUser.model_validate)

    async def add_datapoint(
        self, slug: str, value: float, comment: Optional[str] = None
    ):
        """
        Add a datapoint to a goal.

        Not idempotent: each call creates a new datapoint, so this is never
        retried here. The cached snapshot is left alone.

        Args:
            slug: Goal slug
            value: Datapoint value
            comment: Optional comment shown on the datapoint
        """
        data = {"value": value}
        if comment is not None:
            data["comment"] = comment

        await self._request(
            "POST", f"/goals/{quote(slug, safe='')}/datapoints.json", data=data
        )
        logger.info(f"Added datapoint {value} to {slug}")

    def goal_url(self, slug: str) -> Optional[str]:
        """Public web page for a goal, if credentials are configured."""
        build = self.goal_url_builder()
        return build(slug) if build else None

    def goal_url_builder(self) -> Optional[Callable[[str], str]]:
        """
        Resolve the username once and return a slug -> web URL function.

        Returns None when no credentials are configured.
        """
        credentials = self.credentials()
        if credentials is None:
            return None
        prefix = f"{WEB_URL}/{quote(credentials.username, safe='')}"
        return lambda slug: f"{prefix}/{quote(slug, safe='')}"


def _drop_duplicate_slugs(goals: list[Goal]) -> list[Goal]:
    """Keep the first goal for each slug; slugs identify goals in the cache."""
    seen = set()
    unique = []
    for goal in goals:
        if goal.slug in seen:
            logger.warning(f"Dropping duplicate goal slug from Beeminder: {goal.slug}")
            continue
        seen.add(goal.slug)
        unique.append(goal)
    return unique


async def demo_fetch():
    """Demo: Fetch goals and print them by urgency."""
    import os
    from dotenv import load_dotenv

    from .models import rank_goals

    load_dotenv()

    username = os.getenv("BEEMINDER_USERNAME")
    auth_token = os.getenv("BEEMINDER_AUTH_TOKEN")

    if not username or not auth_token:
        print("Error: BEEMINDER_USERNAME and BEEMINDER_AUTH_TOKEN must be set in .env file")
        return

    credentials = Credentials(username=username, auth_token=auth_token)

    async with httpx.AsyncClient(timeout=20) as http:
        client = BeeminderClient(http, lambda: credentials)
        goals = await client.fetch_goals()

    print(f"\nFound {len(goals)} goals\n")
    for goal in rank_goals(goals):
        print(f"{goal.status_emoji} {goal.display_title}")
        print(f"  Buffer: {goal.safety_buffer_days}d")
        print(f"  {goal.limsum}")
        print()


if __name__ == "__main__":
    import asyncio

    logging.basicConfig(level=logging.INFO)
    asyncio.run(demo_fetch())
