"""Level curve: total XP <-> level <-> title.

Cumulative XP to reach a level is the sum of floor(50 * i^1.5) for
i = 2..level, so level 1 needs 0 XP and level 4 needs 800. Levels cap at 50.
"""

from __future__ import annotations

import math
from functools import lru_cache

MAX_LEVEL = 50

LEVEL_TITLES: list[dict] = [
    {"min_level": 1, "max_level": 4, "title": "Novice"},
    {"min_level": 5, "max_level": 9, "title": "Apprentice"},
    {"min_level": 10, "max_level": 14, "title": "Scholar"},
    {"min_level": 15, "max_level": 19, "title": "Adept"},
    {"min_level": 20, "max_level": 24, "title": "Expert"},
    {"min_level": 25, "max_level": 29, "title": "Master"},
    {"min_level": 30, "max_level": 34, "title": "Grandmaster"},
    {"min_level": 35, "max_level": 39, "title": "Legend"},
    {"min_level": 40, "max_level": 44, "title": "Mythic"},
    {"min_level": 45, "max_level": 49, "title": "Transcendent"},
    {"min_level": 50, "max_level": 50, "title": "Ascended"},
]

# Base XP per task priority. Callers look the amount up here and pass it in;
# the award path never rescales it.
PRIORITY_XP: dict[str, int] = {
    "low": 5,
    "medium": 10,
    "high": 25,
}

FOCUS_XP_PER_MINUTE = 0.6

# (minutes, bonus) - the highest reached threshold applies, bonuses don't stack
FOCUS_MILESTONES: list[tuple[int, int]] = [
    (30, 5),
    (60, 10),
    (90, 15),
]


@lru_cache(maxsize=MAX_LEVEL + 1)
def xp_for_level(level: int) -> int:
    """Cumulative XP required to reach ``level``."""
    if level <= 1:
        return 0
    return sum(math.floor(50 * math.pow(i, 1.5)) for i in range(2, level + 1))


def level_from_xp(total_xp: int) -> int:
    """Highest level whose threshold is <= total_xp, capped at MAX_LEVEL."""
    level = 1
    for candidate in range(2, MAX_LEVEL + 1):
        if total_xp < xp_for_level(candidate):
            break
        level = candidate
    return level


def title_for_level(level: int) -> str:
    for tier in LEVEL_TITLES:
        if tier["min_level"] <= level <= tier["max_level"]:
            return tier["title"]
    raise ValueError(f"No title covers level {level}")


def level_progress(total_xp: int) -> dict:
    """Progress within the current level.

    Returns:
        {
            'level': int,
            'title': str,
            'xp_into_level': int,
            'xp_for_level': int,   # XP between this level and the next
            'progress': float,     # percent, 100.0 at max level
            'next_title': str | None  # only when the next level changes title
        }
    """
    level = level_from_xp(total_xp)
    current_floor = xp_for_level(level)
    next_floor = xp_for_level(min(level + 1, MAX_LEVEL))

    xp_into_level = total_xp - current_floor
    xp_for_next = next_floor - current_floor

    if level >= MAX_LEVEL:
        progress = 100.0
    else:
        progress = min(xp_into_level / xp_for_next * 100, 100.0)

    title = title_for_level(level)
    next_title = title_for_level(level + 1) if level < MAX_LEVEL else None

    return {
        "level": level,
        "title": title,
        "xp_into_level": xp_into_level,
        "xp_for_level": xp_for_next,
        "progress": progress,
        "next_title": next_title if next_title != title else None,
    }


def xp_for_priority(priority: str) -> int:
    """Base XP for a task priority (low/medium/high)."""
    try:
        return PRIORITY_XP[priority]
    except KeyError:
        raise ValueError(f"Unknown priority: {priority}") from None


def focus_xp(minutes: float) -> int:
    """XP for a focus session before milestone bonus (25 min -> 15 XP)."""
    return round(minutes * FOCUS_XP_PER_MINUTE)


def focus_milestone_bonus(minutes: float) -> int:
    bonus = 0
    for threshold, reward in FOCUS_MILESTONES:
        if minutes >= threshold:
            bonus = reward
    return bonus


def focus_total_xp(minutes: float) -> int:
    return focus_xp(minutes) + focus_milestone_bonus(minutes)
