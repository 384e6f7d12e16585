"""Data models for Beeminder goals and users."""

from datetime import datetime, timezone
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from .urgency import GoalStatus, classify, priority, safety_buffer_days, status_emoji


class Goal(BaseModel):
    """A Beeminder goal as returned by the API (wire names are snake_case)."""

    slug: str = Field(min_length=1)
    title: str
    goal_type: Optional[str] = None
    goal_date: float = Field(alias="goaldate")
    losedate: float
    curval: float
    currate: float
    limsum: str
    roadstatuscolor: str
    safebuf: float
    baremin: str
    lastday: Optional[float] = None
    thumbnail: Optional[str] = None

    class Config:
        """Pydantic config."""

        populate_by_name = True
        extra = "ignore"
        frozen = True
        allow_inf_nan = False

    @property
    def status(self) -> GoalStatus:
        return classify(self.roadstatuscolor)

    @property
    def safety_buffer_days(self) -> int:
        return safety_buffer_days(self.safebuf)

    @property
    def deadline(self) -> datetime:
        """Deadline (``losedate``) as an aware UTC datetime."""
        return datetime.fromtimestamp(self.losedate, tz=timezone.utc)

    @property
    def status_emoji(self) -> str:
        return status_emoji(self.status)

    @property
    def display_title(self) -> str:
        """Title to show, falling back to the slug for untitled goals."""
        return self.title.strip() or self.slug

    def to_wire(self) -> dict:
        """Serialize using Beeminder's field names."""
        return self.model_dump(by_alias=True)


class BeeminderUser(BaseModel):
    """The authenticated Beeminder user."""

    username: str
    timezone: str = ""
    updated_at: Optional[float] = None
    goals: Optional[list[str]] = None

    class Config:
        """Pydantic config."""

        extra = "ignore"


def rank_key(goal: Goal) -> tuple[int, int]:
    """Sort key: most urgent status first, then fewest buffer days."""
    return priority(goal.status), goal.safety_buffer_days


def rank_goals(goals: Iterable[Goal]) -> list[Goal]:
    """
    Order goals by urgency.

    ``sorted`` is stable, so goals with the same status and buffer keep the
    order they arrived in.
    """
    return sorted(goals, key=rank_key)


def most_urgent(goals: Iterable[Goal]) -> Optional[Goal]:
    """Return the single most urgent goal, or None for an empty collection."""
    ranked = rank_goals(goals)
    return ranked[0] if ranked else None
