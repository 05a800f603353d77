"""Daily and weekly challenges: deterministic selection and progress tracking.

Progress moves in two distinct ways:

- accumulative: an action adds ``increment`` to every open challenge of the
  matching type, completing it once ``progress >= target_value``
- boolean: "complete all habits" is completed by comparing habit counts
  directly, whatever its stored progress or (sentinel) target says
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from questline.db.models import (
    DailyChallengeTemplate,
    Habit,
    HabitCompletion,
    UserDailyChallenge,
    UserWeeklyChallenge,
    WeeklyChallengeTemplate,
)
from questline.progression.schemas import ChallengeType, CompletedChallenge, Difficulty
from questline.progression.seeded_random import seeded_shuffle, string_seed

logger = logging.getLogger(__name__)

ALL_HABITS_KEY = "complete_all_habits"
DAILY_SLOTS: list[Difficulty] = [Difficulty.EASY, Difficulty.MEDIUM, Difficulty.HARD]

_SLOT_ORDER = {d.value: i for i, d in enumerate(DAILY_SLOTS)}


def _weekly_type(challenge_type: ChallengeType) -> ChallengeType:
    # Weekly goals count all tasks together
    if challenge_type == ChallengeType.HIGH_PRIORITY:
        return ChallengeType.TASKS
    return challenge_type


# ---------------------------------------------------------------------------
# Template pools
# ---------------------------------------------------------------------------


async def load_daily_pools(db: AsyncSession) -> dict[str, list[DailyChallengeTemplate]]:
    """Daily templates grouped by difficulty, each pool ordered by key."""
    try:
        result = await db.execute(select(DailyChallengeTemplate).order_by(DailyChallengeTemplate.key))
    except SQLAlchemyError:
        logger.warning("Failed to load daily challenge templates", exc_info=True)
        return {}

    pools: dict[str, list[DailyChallengeTemplate]] = {}
    for template in result.scalars().all():
        pools.setdefault(template.difficulty, []).append(template)
    return pools


async def load_weekly_pool(db: AsyncSession) -> list[WeeklyChallengeTemplate]:
    try:
        result = await db.execute(select(WeeklyChallengeTemplate).order_by(WeeklyChallengeTemplate.key))
    except SQLAlchemyError:
        logger.warning("Failed to load weekly challenge templates", exc_info=True)
        return []
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


async def get_todays_challenges(db: AsyncSession, user_id: str, day: date) -> list[UserDailyChallenge]:
    """Stored daily challenges for ``day``, easy to hard. Does not generate."""
    result = await db.execute(
        select(UserDailyChallenge).where(
            UserDailyChallenge.user_id == user_id,
            UserDailyChallenge.challenge_date == day,
        )
    )
    rows = list(result.scalars().all())
    rows.sort(key=lambda r: (_SLOT_ORDER.get(r.template.difficulty, len(_SLOT_ORDER)), r.id))
    return rows


async def get_this_weeks_challenge(
    db: AsyncSession,
    user_id: str,
    week_start: date,
) -> UserWeeklyChallenge | None:
    """Stored weekly challenge for the week starting ``week_start``. Does not generate."""
    result = await db.execute(
        select(UserWeeklyChallenge).where(
            UserWeeklyChallenge.user_id == user_id,
            UserWeeklyChallenge.week_start == week_start,
        )
    )
    return result.scalar_one_or_none()


async def generate_daily_challenges(db: AsyncSession, user_id: str, day: date) -> list[UserDailyChallenge]:
    """Ensure the user holds one challenge per difficulty for ``day``.

    Existing rows are never replaced. If an earlier attempt left only some
    slots filled, only the missing difficulties are added. Selection is a
    seeded shuffle of each pool: seed for easy, seed+1 for medium, seed+2
    for hard, where seed hashes ``day`` and ``user_id``.
    """
    existing = await get_todays_challenges(db, user_id, day)
    if len(existing) >= len(DAILY_SLOTS):
        return existing

    taken = {row.template.difficulty for row in existing}
    pools = await load_daily_pools(db)
    seed = string_seed(day.isoformat() + user_id)

    added = False
    for offset, difficulty in enumerate(DAILY_SLOTS):
        if difficulty.value in taken:
            continue
        pool = pools.get(difficulty.value)
        if not pool:
            logger.warning("No %s daily challenge templates", difficulty.value)
            continue

        template = seeded_shuffle(pool, seed + offset)[0]
        row = UserDailyChallenge(
            user_id=user_id,
            template_id=template.id,
            challenge_date=day,
            progress=0,
            completed=False,
            xp_awarded=0,
        )
        row.template = template
        db.add(row)
        existing.append(row)
        added = True

    if added:
        await db.flush()
        existing.sort(key=lambda r: _SLOT_ORDER.get(r.template.difficulty, len(_SLOT_ORDER)))
    return existing


async def generate_weekly_challenge(
    db: AsyncSession,
    user_id: str,
    week_start: date,
) -> UserWeeklyChallenge | None:
    """Ensure the user holds this week's challenge. None if there are no templates."""
    existing = await get_this_weeks_challenge(db, user_id, week_start)
    if existing is not None:
        return existing

    pool = await load_weekly_pool(db)
    if not pool:
        logger.warning("No weekly challenge templates")
        return None

    template = seeded_shuffle(pool, string_seed(week_start.isoformat() + user_id))[0]
    row = UserWeeklyChallenge(
        user_id=user_id,
        template_id=template.id,
        week_start=week_start,
        progress=0,
        completed=False,
        xp_awarded=0,
    )
    row.template = template
    db.add(row)
    await db.flush()
    return row


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------


def _is_sweep(rows: list[UserDailyChallenge]) -> bool:
    return len(rows) == len(DAILY_SLOTS) and all(r.completed for r in rows)


async def update_daily_challenge_progress(
    db: AsyncSession,
    user_id: str,
    challenge_type: ChallengeType,
    increment: int,
    day: date,
    now: datetime,
) -> tuple[list[UserDailyChallenge], bool]:
    """Add ``increment`` to every open daily challenge of ``challenge_type``.

    Returns the challenges completed by this call and whether all three of
    the day's challenges are now complete.
    """
    challenges = await generate_daily_challenges(db, user_id, day)
    completed: list[UserDailyChallenge] = []

    for challenge in challenges:
        if challenge.completed:
            continue
        template = challenge.template
        if template.challenge_type != challenge_type.value:
            continue

        challenge.progress += increment
        # target_value -1 is a sentinel for the boolean path
        if template.target_value > 0 and challenge.progress >= template.target_value:
            challenge.completed = True
            challenge.completed_at = now
            challenge.xp_awarded = template.xp_reward
            completed.append(challenge)

    if completed:
        await db.flush()
    return completed, _is_sweep(challenges)


async def check_all_habits_challenge(
    db: AsyncSession,
    user_id: str,
    day: date,
    now: datetime,
) -> UserDailyChallenge | None:
    """Complete today's "all habits" challenge if every habit is done on ``day``."""
    total = (
        await db.execute(select(func.count(Habit.id)).where(Habit.user_id == user_id))
    ).scalar_one()
    if not total:
        return None

    done = (
        await db.execute(
            select(func.count(HabitCompletion.id)).where(
                HabitCompletion.user_id == user_id,
                HabitCompletion.completed_date == day,
            )
        )
    ).scalar_one()
    if done != total:
        return None

    for challenge in await get_todays_challenges(db, user_id, day):
        if challenge.completed or challenge.template.key != ALL_HABITS_KEY:
            continue
        challenge.progress = total
        challenge.completed = True
        challenge.completed_at = now
        challenge.xp_awarded = challenge.template.xp_reward
        await db.flush()
        logger.info("All-habits challenge completed for user %s on %s", user_id, day)
        return challenge

    return None


async def update_weekly_challenge_progress(
    db: AsyncSession,
    user_id: str,
    challenge_type: ChallengeType,
    increment: int,
    week_start: date,
    now: datetime,
) -> UserWeeklyChallenge | None:
    """Advance this week's challenge. Returns it only if this call completed it."""
    challenge = await generate_weekly_challenge(db, user_id, week_start)
    if challenge is None or challenge.completed:
        return None

    template = challenge.template
    if template.challenge_type != _weekly_type(challenge_type).value:
        return None

    challenge.progress += increment
    if template.target_value > 0 and challenge.progress >= template.target_value:
        challenge.completed = True
        challenge.completed_at = now
        challenge.xp_awarded = template.xp_reward
        await db.flush()
        return challenge

    await db.flush()
    return None


# ---------------------------------------------------------------------------
# Per-action composition
# ---------------------------------------------------------------------------


@dataclass
class ChallengeProgress:
    daily: list[UserDailyChallenge] = field(default_factory=list)
    weekly: UserWeeklyChallenge | None = None
    daily_sweep: bool = False

    @property
    def xp(self) -> int:
        total = sum(c.xp_awarded for c in self.daily)
        if self.weekly is not None:
            total += self.weekly.xp_awarded
        return total


async def apply_challenge_progress(
    db: AsyncSession,
    user_id: str,
    challenge_type: ChallengeType | None,
    increment: int,
    day: date,
    week_start: date,
    now: datetime,
    is_new_day: bool = False,
) -> ChallengeProgress:
    """Run one action through the daily and weekly challenges.

    ``challenge_type`` None (schedule blocks) skips the action buckets but
    still counts a new active day toward a weekly streak goal.
    """
    progress = ChallengeProgress()
    weekly_done: list[UserWeeklyChallenge] = []

    if challenge_type is not None:
        daily, sweep = await update_daily_challenge_progress(db, user_id, challenge_type, increment, day, now)
        progress.daily.extend(daily)

        if challenge_type == ChallengeType.HABITS:
            all_habits = await check_all_habits_challenge(db, user_id, day, now)
            if all_habits is not None:
                progress.daily.append(all_habits)
                sweep = _is_sweep(await get_todays_challenges(db, user_id, day))

        # Only the call that finishes the last daily challenge reports the sweep
        progress.daily_sweep = sweep and bool(progress.daily)

        weekly = await update_weekly_challenge_progress(db, user_id, challenge_type, increment, week_start, now)
        if weekly is not None:
            weekly_done.append(weekly)

    if is_new_day:
        weekly = await update_weekly_challenge_progress(db, user_id, ChallengeType.STREAK, 1, week_start, now)
        if weekly is not None:
            weekly_done.append(weekly)

    if progress.daily_sweep:
        weekly = await update_weekly_challenge_progress(
            db, user_id, ChallengeType.DAILY_CHALLENGES, 1, week_start, now
        )
        if weekly is not None:
            weekly_done.append(weekly)

    # One weekly row per week, so at most one completion
    progress.weekly = weekly_done[0] if weekly_done else None
    return progress


def to_completed_daily(challenge: UserDailyChallenge) -> CompletedChallenge:
    template = challenge.template
    return CompletedChallenge(
        challenge_id=challenge.id,
        key=template.key,
        name=template.name,
        challenge_type=template.challenge_type,
        difficulty=Difficulty(template.difficulty),
        progress=challenge.progress,
        target_value=template.target_value,
        xp_awarded=challenge.xp_awarded,
        period=challenge.challenge_date,
    )


def to_completed_weekly(challenge: UserWeeklyChallenge) -> CompletedChallenge:
    template = challenge.template
    return CompletedChallenge(
        challenge_id=challenge.id,
        key=template.key,
        name=template.name,
        challenge_type=template.challenge_type,
        progress=challenge.progress,
        target_value=template.target_value,
        xp_awarded=challenge.xp_awarded,
        period=challenge.week_start,
    )
