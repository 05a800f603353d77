"""Daily streak tracking and streak-freeze eligibility.

All comparisons take a ``today`` computed once per award (the user's local
calendar date, not a timestamp) so every step of one award agrees on the day.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

MAX_STREAK_FREEZES = 3
FREEZE_STREAK_THRESHOLD = 7
FREEZE_INTERVAL_DAYS = 7


@dataclass(frozen=True)
class StreakAdvance:
    new_streak: int
    is_new_day: bool
    streak_broken: bool = False


def advance_streak(last_active_date: date | None, current_streak: int, today: date) -> StreakAdvance:
    """Continue, keep or restart a streak.

    - active today already: unchanged
    - active yesterday: +1
    - anything else (gap, or never active): restart at 1, broken if there
      was a streak to lose
    """
    if last_active_date == today:
        return StreakAdvance(new_streak=current_streak, is_new_day=False)

    if last_active_date == today - timedelta(days=1):
        return StreakAdvance(new_streak=current_streak + 1, is_new_day=True)

    return StreakAdvance(new_streak=1, is_new_day=True, streak_broken=current_streak > 0)


def earned_streak_freeze(new_streak: int, last_freeze_earned: date | None, today: date) -> bool:
    """One freeze per week for holding a 7+ day streak."""
    if new_streak < FREEZE_STREAK_THRESHOLD:
        return False
    if last_freeze_earned is None:
        return True
    return (today - last_freeze_earned).days >= FREEZE_INTERVAL_DAYS


def local_today(tz_name: str, now: datetime | None = None) -> date:
    """Calendar date in ``tz_name`` at ``now`` (defaults to the current instant)."""
    if now is None:
        now = datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(ZoneInfo(tz_name)).date()


def week_start(day: date) -> date:
    """Monday of the ISO week containing ``day``."""
    return day - timedelta(days=day.weekday())
