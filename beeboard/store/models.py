"""Records kept in the local snapshot store."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from beeboard.beeminder.models import Goal


@dataclass
class Snapshot:
    """The last successfully fetched goal collection, in source order."""

    goals: list[Goal] = field(default_factory=list)
    last_update: Optional[datetime] = None


@dataclass
class Credentials:
    """Beeminder login used by every API call."""

    username: str
    auth_token: str
