"""XP award orchestration for completed actions.

One award runs in three phases:

1. The primary sequence (profile, streak, lifetime stats, challenges,
   achievements, level, activity log) inside a single UnitOfWork. It commits
   as a whole or not at all. A concurrent award for the same user surfaces as
   ``StaleDataError`` on the profile's version column, or as ``IntegrityError``
   when both awards create the same day's challenge rows. Either way the whole
   sequence is retried against fresh state.
2. Group propagation, in its own transaction. Failures are logged only.
3. Streak-freeze grant, in its own transaction. Failures are logged only.

Reversal (``revoke``) subtracts exactly the base XP and recomputes the level.
Lifetime stats, challenge completions and achievement unlocks stay put.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import TypeVar

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from questline.config import Settings, get_settings
from questline.database import UnitOfWork
from questline.progression import achievement_service, activity_ledger, challenge_service, group_service
from questline.progression.level_curve import level_from_xp, title_for_level
from questline.progression.profile_service import get_profile, grant_streak_freeze
from questline.progression.schemas import (
    ActionType,
    BonusXp,
    ChallengesCompleted,
    ChallengeType,
    XpAwardResult,
    XpBreakdown,
    XpRevokeResult,
)
from questline.progression.stats import stat_snapshot
from questline.progression.streaks import advance_streak, local_today, week_start

logger = structlog.get_logger()

T = TypeVar("T")

# Errors a concurrent award for the same user can raise; the loser retries
CONFLICT_ERRORS = (StaleDataError, IntegrityError)

EARLY_BIRD_BEFORE_HOUR = 7
NIGHT_OWL_FROM_HOUR = 22


def challenge_bucket(
    action_type: ActionType,
    is_high_priority: bool,
    focus_minutes: int,
) -> tuple[ChallengeType | None, int]:
    """Challenge type an action counts toward, and by how much.

    High-priority tasks count toward ``high_priority`` challenges instead of
    ``tasks``. Schedule blocks count toward none.
    """
    if action_type == ActionType.TASK:
        return (ChallengeType.HIGH_PRIORITY if is_high_priority else ChallengeType.TASKS), 1
    if action_type == ActionType.HABIT:
        return ChallengeType.HABITS, 1
    if action_type == ActionType.FOCUS:
        return ChallengeType.FOCUS, focus_minutes
    return None, 0


def lifetime_updates(
    action_type: ActionType,
    current: dict[str, int],
    is_high_priority: bool = False,
    focus_minutes: int = 0,
    is_long_focus_session: bool = False,
    completion_hour: int | None = None,
    streak_recovered: bool = False,
) -> dict[str, int]:
    """New values for the lifetime counters this action moves.

    ``current`` holds the counters as they were before the action.
    """
    updates: dict[str, int] = {}

    def bump(field: str, amount: int = 1) -> None:
        updates[field] = current.get(field, 0) + amount

    if action_type == ActionType.TASK:
        bump("lifetime_tasks_completed")
        if is_high_priority:
            bump("lifetime_high_priority_completed")
    elif action_type == ActionType.HABIT:
        bump("lifetime_habits_completed")
    elif action_type == ActionType.FOCUS:
        bump("lifetime_focus_minutes", focus_minutes)
        if is_long_focus_session:
            bump("lifetime_long_focus_sessions")

    if completion_hour is not None:
        if completion_hour < EARLY_BIRD_BEFORE_HOUR:
            bump("lifetime_early_bird_tasks")
        elif completion_hour >= NIGHT_OWL_FROM_HOUR:
            bump("lifetime_night_owl_tasks")

    if streak_recovered:
        bump("lifetime_streak_recoveries")

    return updates


def empty_result(base_xp: int) -> XpAwardResult:
    """Result for a user without a profile: the base award, nothing persisted."""
    return XpAwardResult(
        xp_breakdown=XpBreakdown(base_xp=base_xp, total_xp=base_xp),
        action_total_xp=base_xp,
        new_xp_total=base_xp,
        new_streak=1,
    )


@dataclass
class _AwardPlan:
    user_id: str
    base_xp: int
    action_type: ActionType
    is_high_priority: bool
    focus_minutes: int
    is_long_focus_session: bool
    completion_hour: int | None
    now: datetime
    today: date
    week_start: date
    challenge_type: ChallengeType | None
    increment: int


class XpAwardOrchestrator:
    """Turns completed actions into XP, levels, streaks, achievements and challenges.

    ``clock`` returns the current instant; the user's "today" is derived from
    it once per call using ``settings.timezone``.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or get_settings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # Award
    # ------------------------------------------------------------------

    async def award(
        self,
        user_id: str,
        base_xp: int,
        action_type: ActionType | str,
        *,
        is_high_priority: bool = False,
        focus_minutes: int = 0,
        is_long_focus_session: bool = False,
        completion_hour: int | None = None,
    ) -> XpAwardResult:
        """Award ``base_xp`` for one completed action and apply every side effect.

        Raises ValueError on invalid input before touching the store.
        """
        action_type = ActionType(action_type)
        if base_xp < 0:
            raise ValueError(f"base_xp must be non-negative, got {base_xp}")
        if focus_minutes < 0:
            raise ValueError(f"focus_minutes must be non-negative, got {focus_minutes}")
        if completion_hour is not None and not 0 <= completion_hour <= 23:
            raise ValueError(f"completion_hour must be 0-23, got {completion_hour}")

        now = self._clock()
        today = local_today(self._settings.timezone, now)
        challenge_type, increment = challenge_bucket(action_type, is_high_priority, focus_minutes)
        plan = _AwardPlan(
            user_id=user_id,
            base_xp=base_xp,
            action_type=action_type,
            is_high_priority=is_high_priority,
            focus_minutes=focus_minutes,
            is_long_focus_session=is_long_focus_session,
            completion_hour=completion_hour,
            now=now,
            today=today,
            week_start=week_start(today),
            challenge_type=challenge_type,
            increment=increment,
        )

        result = await self._with_retry(lambda db: self._apply_award(db, plan), "award", user_id)
        if result is None:
            logger.info("xp_award_no_profile", user_id=user_id, base_xp=base_xp)
            return empty_result(base_xp)

        xp_earned = result.action_total_xp + result.bonus_xp.challenge_xp + result.bonus_xp.achievement_xp
        if self._settings.group_propagation_enabled:
            await self._propagate_to_groups(plan, xp_earned)
        await self._grant_streak_freeze(user_id, result.new_streak, today, now)

        return result

    async def _apply_award(self, db: AsyncSession, plan: _AwardPlan) -> XpAwardResult | None:
        profile = await get_profile(db, plan.user_id)
        if profile is None:
            return None

        # Everything below is decided against this snapshot
        prior_xp = profile.xp_total
        prior_level = profile.level
        prior_counters = {
            field: getattr(profile, field)
            for field in (
                "lifetime_tasks_completed",
                "lifetime_high_priority_completed",
                "lifetime_habits_completed",
                "lifetime_focus_minutes",
                "lifetime_long_focus_sessions",
                "lifetime_early_bird_tasks",
                "lifetime_night_owl_tasks",
                "lifetime_streak_recoveries",
            )
        }

        streak = advance_streak(profile.last_active_date, profile.current_streak, plan.today)

        action_total_xp = plan.base_xp
        breakdown = XpBreakdown(base_xp=plan.base_xp, total_xp=action_total_xp)

        counters = lifetime_updates(
            plan.action_type,
            prior_counters,
            is_high_priority=plan.is_high_priority,
            focus_minutes=plan.focus_minutes,
            is_long_focus_session=plan.is_long_focus_session,
            completion_hour=plan.completion_hour,
            streak_recovered=streak.streak_broken and streak.new_streak == 1,
        )

        challenges = await challenge_service.apply_challenge_progress(
            db,
            plan.user_id,
            plan.challenge_type,
            plan.increment,
            plan.today,
            plan.week_start,
            plan.now,
            is_new_day=streak.is_new_day,
        )
        challenge_xp = challenges.xp

        projected = dict(counters)
        projected["current_streak"] = streak.new_streak
        projected["xp_total"] = prior_xp + action_total_xp + challenge_xp
        unlocked, achievement_xp = await achievement_service.check_all_achievements(
            db, plan.user_id, stat_snapshot(profile, projected), plan.now
        )

        final_xp = prior_xp + action_total_xp + challenge_xp + achievement_xp
        final_level = level_from_xp(final_xp)
        final_title = title_for_level(final_level)
        leveled_up = final_level > prior_level

        profile.xp_total = final_xp
        profile.level = final_level
        profile.title = final_title
        profile.current_streak = streak.new_streak
        profile.longest_streak = max(profile.longest_streak, streak.new_streak)
        profile.last_active_date = plan.today
        for field, value in counters.items():
            setattr(profile, field, value)
        profile.updated_at = plan.now
        await db.flush()

        await activity_ledger.record_activity(
            db,
            plan.user_id,
            plan.today,
            xp_earned=action_total_xp + challenge_xp + achievement_xp,
            tasks_completed=1 if plan.action_type == ActionType.TASK else 0,
            focus_minutes=plan.focus_minutes if plan.action_type == ActionType.FOCUS else 0,
            habits_completed=1 if plan.action_type == ActionType.HABIT else 0,
            streak_maintained=True,
            now=plan.now,
        )

        logger.info(
            "xp_awarded",
            user_id=plan.user_id,
            action_type=plan.action_type.value,
            base_xp=plan.base_xp,
            challenge_xp=challenge_xp,
            achievement_xp=achievement_xp,
            xp_total=final_xp,
            streak=streak.new_streak,
        )
        if leveled_up:
            logger.info("level_up", user_id=plan.user_id, old_level=prior_level, new_level=final_level)

        return XpAwardResult(
            xp_breakdown=breakdown,
            action_total_xp=action_total_xp,
            new_xp_total=final_xp,
            new_level=final_level if leveled_up else None,
            leveled_up=leveled_up,
            title=final_title,
            new_streak=streak.new_streak,
            achievements_unlocked=unlocked,
            challenges_completed=ChallengesCompleted(
                daily=[challenge_service.to_completed_daily(c) for c in challenges.daily],
                weekly=(
                    challenge_service.to_completed_weekly(challenges.weekly)
                    if challenges.weekly is not None else None
                ),
            ),
            bonus_xp=BonusXp(
                challenge_xp=challenge_xp,
                achievement_xp=achievement_xp,
                daily_sweep=challenges.daily_sweep,
            ),
        )

    async def _propagate_to_groups(self, plan: _AwardPlan, xp_earned: int) -> None:
        try:
            async with UnitOfWork(self._session_factory) as uow:
                await group_service.propagate_to_groups(
                    uow.session,
                    plan.user_id,
                    xp_earned,
                    plan.challenge_type,
                    plan.increment,
                    plan.week_start,
                    plan.now,
                )
                await uow.commit()
        except Exception:
            logger.warning("group_propagation_failed", user_id=plan.user_id, exc_info=True)

    async def _grant_streak_freeze(self, user_id: str, new_streak: int, today: date, now: datetime) -> None:
        try:
            async with UnitOfWork(self._session_factory) as uow:
                granted = await grant_streak_freeze(uow.session, user_id, new_streak, today, now)
                await uow.commit()
        except Exception:
            logger.warning("streak_freeze_grant_failed", user_id=user_id, exc_info=True)
            return
        if granted:
            logger.info("streak_freeze_granted", user_id=user_id, streak=new_streak)

    # ------------------------------------------------------------------
    # Reversal
    # ------------------------------------------------------------------

    async def revoke(self, user_id: str, base_xp: int) -> XpRevokeResult | None:
        """Take back the base XP of an un-completed action.

        XP never goes below zero. Returns None if the user has no profile.
        """
        if base_xp < 0:
            raise ValueError(f"base_xp must be non-negative, got {base_xp}")
        return await self._with_retry(lambda db: self._apply_revoke(db, user_id, base_xp), "revoke", user_id)

    async def _apply_revoke(self, db: AsyncSession, user_id: str, base_xp: int) -> XpRevokeResult | None:
        profile = await get_profile(db, user_id)
        if profile is None:
            return None

        prior_level = profile.level
        new_total = max(0, profile.xp_total - base_xp)
        removed = profile.xp_total - new_total
        new_level = level_from_xp(new_total)

        profile.xp_total = new_total
        profile.level = new_level
        profile.title = title_for_level(new_level)
        profile.updated_at = self._clock()
        await db.flush()

        logger.info("xp_revoked", user_id=user_id, xp_removed=removed, xp_total=new_total)
        return XpRevokeResult(
            xp_removed=removed,
            new_xp_total=new_total,
            level=new_level,
            title=profile.title,
            level_changed=new_level != prior_level,
        )

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def _with_retry(
        self,
        operation: Callable[[AsyncSession], Awaitable[T | None]],
        name: str,
        user_id: str,
    ) -> T | None:
        """Run ``operation`` in a fresh UnitOfWork, retrying on write conflicts."""
        attempts = max(1, self._settings.award_max_attempts)
        for attempt in range(1, attempts + 1):
            try:
                async with UnitOfWork(self._session_factory) as uow:
                    outcome = await operation(uow.session)
                    if outcome is not None:
                        await uow.commit()
                    return outcome
            except CONFLICT_ERRORS as exc:
                if attempt == attempts:
                    logger.error(
                        "xp_conflict_retries_exhausted",
                        operation=name,
                        user_id=user_id,
                        attempts=attempts,
                        error=type(exc).__name__,
                    )
                    raise
                logger.warning(
                    "xp_conflict_retry", operation=name, user_id=user_id, attempt=attempt, error=type(exc).__name__
                )
        return None
