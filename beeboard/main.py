"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Request
from fastapi.staticfiles import StaticFiles

from .beeminder.client import BeeminderClient
from .beeminder.errors import (
    BeeminderError,
    InvalidConfiguration,
    NotFound,
    PersistenceUnavailable,
    TransportFailure,
)
from .config import settings
from .dashboard.renderer import DashboardRenderer
from .schemas import CredentialsRequest, DatapointRequest, GoalOut, TimelineResponse
from .store.database import SnapshotStore
from .store.models import Credentials
from .timeline.controller import TimelineController, describe_error
from .trmnl.models import DisplayResponse

VERSION = "1.0.0"

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def seed_credentials(store: SnapshotStore):
    """Copy credentials from the environment into an empty store."""
    if not (settings.beeminder_username and settings.beeminder_auth_token):
        return
    if store.get_credentials() is not None:
        return
    try:
        store.put_credentials(
            Credentials(
                username=settings.beeminder_username,
                auth_token=settings.beeminder_auth_token,
            )
        )
    except PersistenceUnavailable as e:
        logger.error(f"Could not store credentials from environment: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the shared store, HTTP client and controller."""
    http = httpx.AsyncClient(timeout=settings.http_timeout)
    store = SnapshotStore(settings.store_path)
    seed_credentials(store)

    client = BeeminderClient(http, store.get_credentials, settings.beeminder_base_url)
    app.state.store = store
    app.state.client = client
    app.state.controller = TimelineController(
        store,
        client,
        success_interval=timedelta(seconds=settings.success_refresh_interval),
        failure_interval=timedelta(seconds=settings.failure_refresh_interval),
        fetch_timeout=settings.http_timeout,
    )
    app.state.renderer = DashboardRenderer(settings.image_dir)

    try:
        yield
    finally:
        await http.aclose()


# Initialize FastAPI app
app = FastAPI(
    title="Beeminder Dashboard",
    description="Beeminder goals ranked by urgency, for the browser and TRMNL e-ink displays",
    version=VERSION,
    lifespan=lifespan,
)

# Rendered dashboards
app.mount("/images", StaticFiles(directory=settings.image_dir, check_dir=False), name="images")


def get_store(request: Request) -> SnapshotStore:
    return request.app.state.store


def get_client(request: Request) -> BeeminderClient:
    return request.app.state.client


def get_controller(request: Request) -> TimelineController:
    return request.app.state.controller


def get_renderer(request: Request) -> DashboardRenderer:
    return request.app.state.renderer


def get_base_url(request: Request) -> str:
    """Get base URL for serving images."""
    return f"{request.url.scheme}://{request.headers.get('host', 'localhost')}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_http_error(error: BeeminderError) -> HTTPException:
    """Map a sync failure to an HTTP error for the caller."""
    if isinstance(error, InvalidConfiguration):
        status_code = 400
    elif isinstance(error, NotFound):
        status_code = 404
    elif isinstance(error, (TransportFailure, PersistenceUnavailable)):
        status_code = 503
    else:
        # Rejections and unreadable payloads are upstream problems
        status_code = 502
    return HTTPException(status_code=status_code, detail=describe_error(error))


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Beeminder Dashboard",
        "version": VERSION,
        "endpoints": {
            "goals": "/api/goals",
            "refresh": "/api/refresh",
            "credentials": "/api/credentials",
            "display": "/api/display",
            "status": "/status",
        },
    }


@app.get("/status")
async def status(store: SnapshotStore = Depends(get_store)):
    """Server status endpoint."""
    last_update = store.last_update()
    return {
        "status": "running",
        "version": VERSION,
        "timestamp": utcnow().isoformat(),
        "beeminder_configured": store.get_credentials() is not None,
        "last_update": last_update.isoformat() if last_update else None,
    }


@app.get("/api/goals", response_model=TimelineResponse)
async def list_goals(
    background_tasks: BackgroundTasks,
    controller: TimelineController = Depends(get_controller),
    client: BeeminderClient = Depends(get_client),
):
    """
    Ranked goals from the local snapshot.

    Answers straight from the cache and refreshes from Beeminder after the
    response has been sent.
    """
    now = utcnow()
    entry = controller.cached_entry(now)
    background_tasks.add_task(controller.refresh_once, now)
    return TimelineResponse.from_entry(entry, client.goal_url_builder())


@app.post("/api/refresh", response_model=TimelineResponse)
async def refresh(
    controller: TimelineController = Depends(get_controller),
    client: BeeminderClient = Depends(get_client),
):
    """Refresh from Beeminder now and return the ranked result."""
    logger.info("Manual refresh requested")
    entry = await controller.refresh_once(utcnow())
    return TimelineResponse.from_entry(entry, client.goal_url_builder())


@app.get("/api/goals/{slug}", response_model=GoalOut)
async def goal_detail(slug: str, client: BeeminderClient = Depends(get_client)):
    """Fetch one goal straight from Beeminder (not cached)."""
    try:
        goal = await client.fetch_goal(slug)
    except BeeminderError as e:
        raise to_http_error(e) from e
    return GoalOut.from_goal(goal, client.goal_url(goal.slug))


@app.post("/api/goals/{slug}/datapoints", status_code=201)
async def add_datapoint(
    slug: str,
    datapoint: DatapointRequest,
    client: BeeminderClient = Depends(get_client),
):
    """
    Add a datapoint to a goal.

    The cached snapshot is not touched; the goal's new state shows up on the
    next refresh.
    """
    try:
        await client.add_datapoint(slug, datapoint.value, datapoint.comment)
    except BeeminderError as e:
        raise to_http_error(e) from e
    return {"status": "success", "slug": slug, "value": datapoint.value}


@app.put("/api/credentials")
async def save_credentials(
    body: CredentialsRequest,
    store: SnapshotStore = Depends(get_store),
    client: BeeminderClient = Depends(get_client),
):
    """Check credentials against Beeminder, then store them."""
    credentials = Credentials(username=body.username, auth_token=body.auth_token)
    try:
        user = await client.with_credentials(credentials).fetch_user()
        store.put_credentials(credentials)
    except BeeminderError as e:
        raise to_http_error(e) from e
    return {"status": "success", "username": user.username, "timezone": user.timezone}


@app.delete("/api/credentials")
async def clear_credentials(store: SnapshotStore = Depends(get_store)):
    """Forget credentials and the cached goals."""
    try:
        store.clear_all()
    except PersistenceUnavailable as e:
        raise to_http_error(e) from e
    return {"status": "success"}


@app.get("/api/display", response_model=DisplayResponse)
async def display_endpoint(
    request: Request,
    id: Optional[str] = Header(None, description="Device MAC address"),
    controller: TimelineController = Depends(get_controller),
    renderer: DashboardRenderer = Depends(get_renderer),
):
    """
    Primary device endpoint for screen content delivery.

    Called by the TRMNL device when it wakes. Waits for one refresh, renders
    the most urgent goal and tells the device when to wake again.
    """
    logger.info(f"Display request from device: {id}")

    now = utcnow()
    entry = await controller.refresh_once(now)
    filename, _ = renderer.render(entry)

    refresh_rate = max(1, int((entry.next_refresh - now).total_seconds()))
    image_url = f"{get_base_url(request)}/images/{filename}.png"

    logger.info(f"Serving dashboard: {filename} (next refresh in {refresh_rate}s)")

    return DisplayResponse(
        status=0,
        image_url=image_url,
        filename=filename,
        refresh_rate=refresh_rate,
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=settings.server_host,
        port=settings.server_port,
        log_level=settings.log_level.lower(),
    )
