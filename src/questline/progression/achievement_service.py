"""Tiered achievements: tier evaluation, progress upserts and the unlocked count."""

from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from questline.db.models import Achievement, UserAchievement, UserProfile
from questline.progression.schemas import AchievementTier, UnlockedAchievement, UnlockedTier
from questline.progression.stats import StatSnapshot, parse_stat_key

logger = structlog.get_logger()

TIER_ORDER: list[AchievementTier] = [AchievementTier.BRONZE, AchievementTier.SILVER, AchievementTier.GOLD]


def _threshold(achievement: Achievement, tier: AchievementTier) -> int:
    return getattr(achievement, f"{tier.value}_threshold")


def _reward(achievement: Achievement, tier: AchievementTier) -> int:
    return getattr(achievement, f"{tier.value}_xp")


def _unlocked_at(progress: UserAchievement | None, tier: AchievementTier) -> datetime | None:
    if progress is None:
        return None
    return getattr(progress, f"{tier.value}_unlocked_at")


def get_unlocked_tiers(achievement: Achievement, value: int) -> list[UnlockedTier]:
    """Every tier whose threshold ``value`` has reached, lowest first.

    A single jump can cross several thresholds, so this is not just the top one.
    """
    return [
        UnlockedTier(tier=tier, xp_reward=_reward(achievement, tier))
        for tier in TIER_ORDER
        if value >= _threshold(achievement, tier)
    ]


def highest_tier(tiers: list[UnlockedTier]) -> AchievementTier | None:
    reached = {t.tier for t in tiers}
    for tier in reversed(TIER_ORDER):
        if tier in reached:
            return tier
    return None


def check_achievement_progress(
    achievement: Achievement,
    value: int,
    prior: UserAchievement | None,
) -> tuple[list[UnlockedTier], int]:
    """Tiers reached now that were never unlocked before, and their XP total."""
    new_tiers = [
        t for t in get_unlocked_tiers(achievement, value)
        if _unlocked_at(prior, t.tier) is None
    ]
    return new_tiers, sum(t.xp_reward for t in new_tiers)


def progress_to_next_tier(
    achievement: Achievement,
    value: int,
    current_tier: AchievementTier | None,
) -> dict:
    """Next tier to aim for, with current progress and target.

    At gold there is no next tier and progress is pinned to the gold threshold.
    """
    if current_tier == AchievementTier.GOLD:
        return {"next_tier": None, "progress": achievement.gold_threshold, "target": achievement.gold_threshold}

    if current_tier == AchievementTier.SILVER or value >= achievement.silver_threshold:
        return {"next_tier": AchievementTier.GOLD, "progress": value, "target": achievement.gold_threshold}

    if current_tier == AchievementTier.BRONZE or value >= achievement.bronze_threshold:
        return {"next_tier": AchievementTier.SILVER, "progress": value, "target": achievement.silver_threshold}

    return {"next_tier": AchievementTier.BRONZE, "progress": value, "target": achievement.bronze_threshold}


async def load_achievements(db: AsyncSession) -> list[Achievement]:
    """All achievement definitions in display order; empty on lookup failure."""
    try:
        result = await db.execute(select(Achievement).order_by(Achievement.sort_order, Achievement.id))
    except SQLAlchemyError:
        logger.warning("achievement_lookup_failed", exc_info=True)
        return []
    return list(result.scalars().all())


async def load_user_achievements(db: AsyncSession, user_id: str) -> dict[int, UserAchievement]:
    result = await db.execute(select(UserAchievement).where(UserAchievement.user_id == user_id))
    return {ua.achievement_id: ua for ua in result.scalars().all()}


async def count_unlocked(db: AsyncSession, user_id: str) -> int:
    """Achievements with at least one unlocked tier."""
    result = await db.execute(
        select(func.count(UserAchievement.id)).where(
            UserAchievement.user_id == user_id,
            or_(
                UserAchievement.bronze_unlocked_at.is_not(None),
                UserAchievement.silver_unlocked_at.is_not(None),
                UserAchievement.gold_unlocked_at.is_not(None),
            ),
        )
    )
    return int(result.scalar_one())


async def check_all_achievements(
    db: AsyncSession,
    user_id: str,
    snapshot: StatSnapshot,
    now: datetime,
) -> tuple[list[UnlockedAchievement], int]:
    """Evaluate every achievement against ``snapshot`` and record new tiers.

    1. Compute newly crossed tiers per achievement
    2. Upsert the progress row (new tier timestamps, fresh progress_value)
    3. Sum XP across all achievements
    4. If any XP was awarded, recount achievements_unlocked on the profile

    The count is recomputed from the rows, never incremented.
    """
    achievements = await load_achievements(db)
    if not achievements:
        return [], 0

    prior_rows = await load_user_achievements(db, user_id)
    unlocked: list[UnlockedAchievement] = []
    total_xp = 0

    for achievement in achievements:
        try:
            stat_key = parse_stat_key(achievement.stat_key)
        except ValueError:
            logger.warning("achievement_unknown_stat_key", key=achievement.key, stat_key=achievement.stat_key)
            continue

        value = snapshot[stat_key]
        prior = prior_rows.get(achievement.id)
        new_tiers, xp = check_achievement_progress(achievement, value, prior)

        if not new_tiers:
            if prior is not None and prior.progress_value != value:
                prior.progress_value = value
            elif prior is None and value != 0:
                db.add(UserAchievement(user_id=user_id, achievement_id=achievement.id, progress_value=value))
            continue

        row = prior
        if row is None:
            row = UserAchievement(user_id=user_id, achievement_id=achievement.id, progress_value=value)
            db.add(row)

        for tier in new_tiers:
            # Timestamps are only ever set, never cleared or moved
            setattr(row, f"{tier.tier.value}_unlocked_at", now)
        row.progress_value = value
        current = highest_tier(get_unlocked_tiers(achievement, value))
        row.current_tier = current.value if current else None

        total_xp += xp
        unlocked.append(
            UnlockedAchievement(
                key=achievement.key,
                name=achievement.name,
                category=achievement.category,
                stat_key=achievement.stat_key,
                current_tier=current,
                progress_value=value,
                new_tiers=new_tiers,
                xp_awarded=xp,
            )
        )
        logger.info(
            "achievement_unlocked",
            user_id=user_id,
            achievement=achievement.key,
            tiers=[t.tier.value for t in new_tiers],
            xp=xp,
        )

    if total_xp > 0:
        await db.flush()
        profile = await db.get(UserProfile, user_id)
        if profile is not None:
            profile.achievements_unlocked = await count_unlocked(db, user_id)

    return unlocked, total_xp


async def get_achievements_with_progress(
    db: AsyncSession,
    user_id: str,
    snapshot: StatSnapshot,
) -> list[dict]:
    """Every achievement with the user's tier state and live stat value, for display."""
    achievements = await load_achievements(db)
    rows = await load_user_achievements(db, user_id)
    view = []

    for achievement in achievements:
        row = rows.get(achievement.id)
        try:
            value = snapshot[parse_stat_key(achievement.stat_key)]
        except ValueError:
            value = 0
        current = AchievementTier(row.current_tier) if row is not None and row.current_tier else None

        view.append({
            "key": achievement.key,
            "name": achievement.name,
            "description": achievement.description,
            "category": achievement.category,
            "icon_name": achievement.icon_name,
            "current_tier": current,
            "progress_value": value,
            "bronze_unlocked_at": _unlocked_at(row, AchievementTier.BRONZE),
            "silver_unlocked_at": _unlocked_at(row, AchievementTier.SILVER),
            "gold_unlocked_at": _unlocked_at(row, AchievementTier.GOLD),
            "next": progress_to_next_tier(achievement, value, current),
        })

    return view
