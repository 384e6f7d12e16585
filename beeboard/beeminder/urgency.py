"""Urgency classification for Beeminder goals.

Everything here is a pure function of its arguments so the same rules can be
applied to fresh API data and to goals read back from the snapshot store.
"""

import math
from enum import Enum
from typing import Optional

SECONDS_PER_DAY = 86400


class GoalStatus(str, Enum):
    """How close a goal is to derailing."""

    SAFE = "safe"
    GOOD = "good"
    WARNING = "warning"
    DANGER = "danger"
    UNKNOWN = "unknown"


# Beeminder's road status colours
_COLOR_STATUS = {
    "green": GoalStatus.SAFE,
    "blue": GoalStatus.GOOD,
    "orange": GoalStatus.WARNING,
    "red": GoalStatus.DANGER,
}

# Lower sorts first
_STATUS_PRIORITY = {
    GoalStatus.DANGER: 0,
    GoalStatus.WARNING: 1,
    GoalStatus.GOOD: 2,
    GoalStatus.SAFE: 3,
    GoalStatus.UNKNOWN: 4,
}

_STATUS_EMOJI = {
    GoalStatus.SAFE: "🟢",
    GoalStatus.GOOD: "🔵",
    GoalStatus.WARNING: "🟠",
    GoalStatus.DANGER: "🔴",
    GoalStatus.UNKNOWN: "⚪️",
}


def classify(raw_color: Optional[str]) -> GoalStatus:
    """
    Map a raw ``roadstatuscolor`` to a status.

    Matching is exact; anything outside the four known colours (including
    ``None``, the empty string and differently-cased values) is UNKNOWN.
    """
    if not isinstance(raw_color, str):
        return GoalStatus.UNKNOWN
    return _COLOR_STATUS.get(raw_color, GoalStatus.UNKNOWN)


def safety_buffer_days(safebuf_seconds: float) -> int:
    """
    Convert a safety buffer in seconds to whole days.

    Floors rather than truncates, so -1 second is -1 day.

    Example:
        safety_buffer_days(86399) == 0
        safety_buffer_days(86400) == 1
    """
    return math.floor(safebuf_seconds / SECONDS_PER_DAY)


def priority(status: GoalStatus) -> int:
    """Sort priority for a status (0 = most urgent)."""
    return _STATUS_PRIORITY[status]


def status_emoji(status: GoalStatus) -> str:
    return _STATUS_EMOJI[status]
