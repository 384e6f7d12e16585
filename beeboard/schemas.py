"""Request and response models for the local goals API."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from beeboard.beeminder.models import Goal
from beeboard.beeminder.urgency import GoalStatus
from beeboard.timeline.controller import OutcomeKind, TimelineEntry


class GoalOut(BaseModel):
    """A goal with its derived urgency fields."""

    slug: str
    title: str
    display_title: str
    goal_type: Optional[str] = None
    limsum: str
    baremin: str
    curval: float
    currate: float
    safebuf: float
    losedate: float
    goaldate: float
    lastday: Optional[float] = None
    thumbnail: Optional[str] = None
    roadstatuscolor: str
    status: GoalStatus
    status_emoji: str
    safety_buffer_days: int
    deadline: datetime
    url: Optional[str] = None

    @classmethod
    def from_goal(cls, goal: Goal, url: Optional[str] = None) -> "GoalOut":
        return cls(
            slug=goal.slug,
            title=goal.title,
            display_title=goal.display_title,
            goal_type=goal.goal_type,
            limsum=goal.limsum,
            baremin=goal.baremin,
            curval=goal.curval,
            currate=goal.currate,
            safebuf=goal.safebuf,
            losedate=goal.losedate,
            goaldate=goal.goal_date,
            lastday=goal.lastday,
            thumbnail=goal.thumbnail,
            roadstatuscolor=goal.roadstatuscolor,
            status=goal.status,
            status_emoji=goal.status_emoji,
            safety_buffer_days=goal.safety_buffer_days,
            deadline=goal.deadline,
            url=url,
        )


class TimelineResponse(BaseModel):
    """Ranked goals plus refresh bookkeeping."""

    outcome: OutcomeKind
    goals: list[GoalOut] = []
    message: Optional[str] = None
    stale: bool = False
    last_update: Optional[datetime] = None
    next_refresh: datetime

    @classmethod
    def from_entry(cls, entry: TimelineEntry, goal_url=None) -> "TimelineResponse":
        """
        Build a response from a timeline entry.

        Args:
            entry: Controller outcome
            goal_url: Optional callable mapping a slug to its web URL
        """
        return cls(
            outcome=entry.kind,
            goals=[
                GoalOut.from_goal(goal, goal_url(goal.slug) if goal_url else None)
                for goal in entry.goals
            ],
            message=entry.message,
            stale=entry.stale,
            last_update=entry.last_update,
            next_refresh=entry.next_refresh,
        )


class DatapointRequest(BaseModel):
    """Body for adding a datapoint."""

    value: float
    comment: Optional[str] = None


class CredentialsRequest(BaseModel):
    """Body for storing Beeminder credentials."""

    username: str = Field(min_length=1)
    auth_token: str = Field(min_length=1)
