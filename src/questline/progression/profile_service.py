"""Profile rows, streak freezes and the progression summary read model."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from questline.db.models import UserProfile, UserStreakFreeze
from questline.progression.level_curve import level_progress
from questline.progression.stats import STAT_FIELDS, StatKey
from questline.progression.streaks import MAX_STREAK_FREEZES, earned_streak_freeze

logger = logging.getLogger(__name__)


async def get_profile(db: AsyncSession, user_id: str) -> UserProfile | None:
    return await db.get(UserProfile, user_id)


async def get_streak_freeze(db: AsyncSession, user_id: str) -> UserStreakFreeze | None:
    result = await db.execute(select(UserStreakFreeze).where(UserStreakFreeze.user_id == user_id))
    return result.scalar_one_or_none()


async def create_profile(db: AsyncSession, user_id: str, display_name: str | None = None) -> UserProfile:
    """Create a fresh level-1 profile and its freeze bank (one starting freeze).

    Returns the existing profile untouched if the user already has one.
    """
    profile = await get_profile(db, user_id)
    if profile is not None:
        return profile

    profile = UserProfile(user_id=user_id, display_name=display_name)
    db.add(profile)
    db.add(UserStreakFreeze(user_id=user_id, available_freezes=1))
    await db.flush()
    logger.info("Created progression profile for user %s", user_id)
    return profile


async def grant_streak_freeze(
    db: AsyncSession,
    user_id: str,
    new_streak: int,
    today: date,
    now: datetime | None = None,
) -> bool:
    """Bank a freeze if ``new_streak`` earns one. Returns True if granted.

    No-op without a freeze row or when the bank is already full.
    """
    freeze = await get_streak_freeze(db, user_id)
    if freeze is None:
        return False
    if freeze.available_freezes >= MAX_STREAK_FREEZES:
        return False
    if not earned_streak_freeze(new_streak, freeze.last_freeze_earned, today):
        return False

    freeze.available_freezes += 1
    freeze.last_freeze_earned = today
    freeze.updated_at = now or datetime.now(timezone.utc)
    await db.flush()
    return True


async def get_progression_summary(db: AsyncSession, user_id: str) -> dict | None:
    """Level progress, streaks, freezes and lifetime stats for one user."""
    profile = await get_profile(db, user_id)
    if profile is None:
        return None

    freeze = await get_streak_freeze(db, user_id)
    progress = level_progress(profile.xp_total)

    return {
        "user_id": profile.user_id,
        "display_name": profile.display_name,
        "xp_total": profile.xp_total,
        "level": progress["level"],
        "title": progress["title"],
        "xp_into_level": progress["xp_into_level"],
        "xp_for_next_level": progress["xp_for_level"],
        "level_progress": progress["progress"],
        "next_title": progress["next_title"],
        "current_streak": profile.current_streak,
        "longest_streak": profile.longest_streak,
        "last_active_date": profile.last_active_date,
        "available_freezes": freeze.available_freezes if freeze else 0,
        "achievements_unlocked": profile.achievements_unlocked,
        "lifetime": {
            key.value: getattr(profile, field)
            for key, field in STAT_FIELDS.items()
            if key != StatKey.CURRENT_STREAK
        },
    }
