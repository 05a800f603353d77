"""Stat keys that achievements are measured against."""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum

from questline.db.models import UserProfile


class StatKey(str, Enum):
    """Every profile statistic an achievement may track."""

    CURRENT_STREAK = "current_streak"
    TASKS_COMPLETED = "lifetime_tasks_completed"
    HIGH_PRIORITY_COMPLETED = "lifetime_high_priority_completed"
    HABITS_COMPLETED = "lifetime_habits_completed"
    QUESTS_COMPLETED = "lifetime_quests_completed"
    FOCUS_MINUTES = "lifetime_focus_minutes"
    PERFECT_WEEKS = "lifetime_perfect_weeks"
    BRAIN_DUMPS_PROCESSED = "lifetime_brain_dumps_processed"
    EARLY_BIRD_TASKS = "lifetime_early_bird_tasks"
    NIGHT_OWL_TASKS = "lifetime_night_owl_tasks"
    LONG_FOCUS_SESSIONS = "lifetime_long_focus_sessions"
    STREAK_RECOVERIES = "lifetime_streak_recoveries"


# StatKey -> UserProfile attribute
STAT_FIELDS: dict[StatKey, str] = {
    StatKey.CURRENT_STREAK: "current_streak",
    StatKey.TASKS_COMPLETED: "lifetime_tasks_completed",
    StatKey.HIGH_PRIORITY_COMPLETED: "lifetime_high_priority_completed",
    StatKey.HABITS_COMPLETED: "lifetime_habits_completed",
    StatKey.QUESTS_COMPLETED: "lifetime_quests_completed",
    StatKey.FOCUS_MINUTES: "lifetime_focus_minutes",
    StatKey.PERFECT_WEEKS: "lifetime_perfect_weeks",
    StatKey.BRAIN_DUMPS_PROCESSED: "lifetime_brain_dumps_processed",
    StatKey.EARLY_BIRD_TASKS: "lifetime_early_bird_tasks",
    StatKey.NIGHT_OWL_TASKS: "lifetime_night_owl_tasks",
    StatKey.LONG_FOCUS_SESSIONS: "lifetime_long_focus_sessions",
    StatKey.STREAK_RECOVERIES: "lifetime_streak_recoveries",
}

_unmapped = set(StatKey) - set(STAT_FIELDS)
if _unmapped:
    raise RuntimeError(f"StatKey members without a profile field: {sorted(k.value for k in _unmapped)}")

StatSnapshot = dict[StatKey, int]


def stat_snapshot(profile: UserProfile, overrides: Mapping[str, int] | None = None) -> StatSnapshot:
    """Read every stat off ``profile``, with pending field updates applied on top."""
    overrides = overrides or {}
    snapshot: StatSnapshot = {}
    for key, field in STAT_FIELDS.items():
        value = overrides.get(field, getattr(profile, field))
        snapshot[key] = value or 0
    return snapshot


def parse_stat_key(raw: str) -> StatKey:
    """Resolve a stored ``stat_key`` string. Raises ValueError for unknown keys."""
    return StatKey(raw)
