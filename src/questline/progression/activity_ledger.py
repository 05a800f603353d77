"""Per-user per-day activity rollup."""

from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from questline.db.models import UserActivityLog


async def get_activity_log(db: AsyncSession, user_id: str, day: date) -> UserActivityLog | None:
    result = await db.execute(
        select(UserActivityLog).where(
            UserActivityLog.user_id == user_id,
            UserActivityLog.activity_date == day,
        )
    )
    return result.scalar_one_or_none()


async def get_activity_range(db: AsyncSession, user_id: str, start: date, end: date) -> list[UserActivityLog]:
    """Rows for ``start``..``end`` inclusive, oldest first. Days without activity are absent."""
    result = await db.execute(
        select(UserActivityLog)
        .where(
            UserActivityLog.user_id == user_id,
            UserActivityLog.activity_date >= start,
            UserActivityLog.activity_date <= end,
        )
        .order_by(UserActivityLog.activity_date.asc())
    )
    return list(result.scalars().all())


async def record_activity(
    db: AsyncSession,
    user_id: str,
    day: date,
    xp_earned: int = 0,
    tasks_completed: int = 0,
    focus_minutes: int = 0,
    habits_completed: int = 0,
    streak_maintained: bool = False,
    now: datetime | None = None,
) -> UserActivityLog:
    """Add to the day's counters, creating the row on first activity.

    Counters only grow; ``streak_maintained`` is set but never cleared.
    ``now`` stamps the row and defaults to the current instant.
    """
    stamp = now or datetime.now(timezone.utc)
    row = await get_activity_log(db, user_id, day)
    if row is None:
        row = UserActivityLog(
            user_id=user_id,
            activity_date=day,
            xp_earned=0,
            tasks_completed=0,
            focus_minutes=0,
            habits_completed=0,
            streak_maintained=False,
            freeze_used=False,
            created_at=stamp,
        )
        db.add(row)

    row.xp_earned += xp_earned
    row.tasks_completed += tasks_completed
    row.focus_minutes += focus_minutes
    row.habits_completed += habits_completed
    if streak_maintained:
        row.streak_maintained = True
    row.updated_at = stamp

    await db.flush()
    return row
