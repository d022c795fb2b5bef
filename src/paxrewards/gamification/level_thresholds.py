"""Level thresholds and computation.

level = floor(sqrt(xp / 100)) + 1, so level L starts at (L - 1)^2 * 100 XP.
This is the only level formula; every write path and read path uses it.
"""

from __future__ import annotations

from math import isqrt

XP_PER_LEVEL_UNIT = 100

# XP granted for completing a lesson, by catalog difficulty
LESSON_XP_BY_DIFFICULTY: dict[str, int] = {
    "beginner": 50,
    "intermediate": 75,
    "advanced": 100,
}
DEFAULT_LESSON_XP = 50


def level_from_xp(xp: int) -> int:
    """Compute the level for a total XP amount (negative XP clamps to level 1)."""
    if xp <= 0:
        return 1
    return isqrt(xp // XP_PER_LEVEL_UNIT) + 1


def xp_for_level(level: int) -> int:
    """Cumulative XP at which ``level`` starts."""
    return (max(level, 1) - 1) ** 2 * XP_PER_LEVEL_UNIT


def xp_bounds(level: int) -> tuple[int, int]:
    """Return (xp_for_level, xp_for_next_level) for a level."""
    return xp_for_level(level), xp_for_level(level + 1)


def compute_level(total_xp: int) -> dict:
    """Compute level info from total XP for progress bars."""
    level = level_from_xp(total_xp)
    floor_xp, next_xp = xp_bounds(level)
    xp_into_level = max(total_xp, 0) - floor_xp
    xp_for_level_span = next_xp - floor_xp

    return {
        "level": level,
        "xp_into_level": xp_into_level,
        "xp_for_level": xp_for_level_span,
        "xp_to_next_level": next_xp - max(total_xp, 0),
        "next_level": level + 1,
        "progress_percentage": round(xp_into_level * 100 / xp_for_level_span),
    }


def lesson_xp(difficulty: str) -> int:
    """XP reward for a lesson of the given difficulty."""
    return LESSON_XP_BY_DIFFICULTY.get(difficulty, DEFAULT_LESSON_XP)
