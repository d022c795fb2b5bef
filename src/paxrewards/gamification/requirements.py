"""Achievement requirements as a closed set of predicate types.

Stored rows keep the ``{"type": ..., "value": ...}`` JSON shape; parse_requirement
turns it into one of the dataclasses below and evaluate_achievement is the
single dispatch point.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, Union

from paxrewards.errors import InvalidRequirement


class ProgressSnapshot(Protocol):
    """The stats fields requirements read (UserStats satisfies this)."""

    level: int
    streak: int
    lessons_completed: int
    challenges_completed: int


@dataclass(frozen=True)
class LessonsCompletedAtLeast:
    count: int


@dataclass(frozen=True)
class DailyStreakAtLeast:
    days: int


@dataclass(frozen=True)
class LevelAtLeast:
    level: int


@dataclass(frozen=True)
class ChallengesCompletedAtLeast:
    count: int


@dataclass(frozen=True)
class AllLessonsCompleted:
    pass


Requirement = Union[
    LessonsCompletedAtLeast,
    DailyStreakAtLeast,
    LevelAtLeast,
    ChallengesCompletedAtLeast,
    AllLessonsCompleted,
]


def parse_requirement(raw: dict[str, Any]) -> Requirement:
    """Convert a stored requirement dict into a Requirement."""
    kind = raw.get("type")
    value = raw.get("value", 1)
    if kind != "all_lessons_completed" and (not isinstance(value, int) or isinstance(value, bool) or value < 0):
        raise InvalidRequirement(f"Requirement value must be a non-negative integer: {raw!r}")

    if kind == "lessons_completed":
        return LessonsCompletedAtLeast(value)
    if kind == "daily_streak":
        return DailyStreakAtLeast(value)
    if kind == "level_reached":
        return LevelAtLeast(value)
    if kind == "challenges_completed":
        return ChallengesCompletedAtLeast(value)
    if kind == "all_lessons_completed":
        return AllLessonsCompleted()
    raise InvalidRequirement(f"Unknown requirement type: {raw!r}")


def requirement_to_dict(requirement: Requirement) -> dict[str, Any]:
    """Inverse of parse_requirement, for API output and seeding."""
    match requirement:
        case LessonsCompletedAtLeast(count):
            return {"type": "lessons_completed", "value": count}
        case DailyStreakAtLeast(days):
            return {"type": "daily_streak", "value": days}
        case LevelAtLeast(level):
            return {"type": "level_reached", "value": level}
        case ChallengesCompletedAtLeast(count):
            return {"type": "challenges_completed", "value": count}
        case AllLessonsCompleted():
            return {"type": "all_lessons_completed", "value": 1}
    raise InvalidRequirement(f"Unsupported requirement: {requirement!r}")


def evaluate_achievement(requirement: Requirement, stats: ProgressSnapshot, total_lessons: int) -> bool:
    """Return True if ``stats`` satisfies ``requirement``.

    ``total_lessons`` is the size of the active lesson catalog; an empty
    catalog never satisfies AllLessonsCompleted.
    """
    match requirement:
        case LessonsCompletedAtLeast(count):
            return stats.lessons_completed >= count
        case DailyStreakAtLeast(days):
            return stats.streak >= days
        case LevelAtLeast(level):
            return stats.level >= level
        case ChallengesCompletedAtLeast(count):
            return stats.challenges_completed >= count
        case AllLessonsCompleted():
            return total_lessons > 0 and stats.lessons_completed >= total_lessons
    raise InvalidRequirement(f"Unsupported requirement: {requirement!r}")
