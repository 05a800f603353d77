"""End-to-end tests for XP awards and reversal."""

from __future__ import annotations

from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from conftest import FIXED_NOW, TODAY, WEEK_START, add_templates, make_profile
from questline.db.models import (
    Group,
    GroupMember,
    Habit,
    HabitCompletion,
    UserActivityLog,
    UserDailyChallenge,
    UserProfile,
    UserWeeklyChallenge,
)
from questline.progression import achievement_service, challenge_service, group_service, xp_award
from questline.progression.challenge_service import ALL_HABITS_KEY
from questline.progression.profile_service import get_streak_freeze
from questline.progression.schemas import ActionType

FORCED_DAILY = [
    {"key": "two_tasks", "challenge_type": "tasks", "target_value": 2, "xp_reward": 15, "difficulty": "easy"},
    {"key": "one_priority", "challenge_type": "high_priority", "target_value": 1, "xp_reward": 30,
     "difficulty": "medium"},
    {"key": "focus_30", "challenge_type": "focus", "target_value": 30, "xp_reward": 40, "difficulty": "hard"},
]
FORCED_WEEKLY = [
    {"key": "weekly_3_tasks", "challenge_type": "tasks", "target_value": 3, "xp_reward": 150},
]


async def _profile(factory, user_id: str = "user-1") -> UserProfile:
    async with factory() as db:
        return await db.get(UserProfile, user_id)


async def _count(factory, model) -> int:
    async with factory() as db:
        return (await db.execute(select(func.count(model.id)))).scalar_one()


def _naive(value):
    # SQLite hands back naive datetimes
    return value.replace(tzinfo=None)


@pytest_asyncio.fixture
async def forced_factory(session_factory):
    await add_templates(session_factory, daily=FORCED_DAILY, weekly=FORCED_WEEKLY)
    return session_factory


class TestFreshProfileHighPriorityTask:
    @pytest.mark.asyncio
    async def test_with_seed_data(self, seeded_factory, make_orchestrator):
        await make_profile(seeded_factory)
        orchestrator = make_orchestrator(seeded_factory)

        result = await orchestrator.award("user-1", 25, ActionType.TASK, is_high_priority=True)

        assert result.new_streak == 1
        assert result.action_total_xp == 25
        assert result.new_xp_total == 25 + result.bonus_xp.challenge_xp + result.bonus_xp.achievement_xp
        profile = await _profile(seeded_factory)
        assert profile.xp_total == result.new_xp_total
        assert profile.lifetime_tasks_completed == 1
        assert profile.lifetime_high_priority_completed == 1
        assert profile.current_streak == 1
        assert profile.last_active_date == TODAY

        async with seeded_factory() as db:
            rows = (await db.execute(select(UserDailyChallenge))).scalars().all()
        priority_rows = [r for r in rows if r.template.key == "high_priority_task"]
        if priority_rows:
            assert priority_rows[0].completed is True
            assert "high_priority_task" in [c.key for c in result.challenges_completed.daily]

    @pytest.mark.asyncio
    async def test_with_forced_templates(self, forced_factory, make_orchestrator):
        await make_profile(forced_factory)
        orchestrator = make_orchestrator(forced_factory)

        result = await orchestrator.award("user-1", 25, ActionType.TASK, is_high_priority=True)

        assert result.xp_breakdown.base_xp == 25
        assert result.xp_breakdown.streak_multiplier == 1.0
        assert result.xp_breakdown.streak_bonus == 0
        assert result.xp_breakdown.permanent_bonus == 0
        assert result.xp_breakdown.total_xp == 25
        assert [c.key for c in result.challenges_completed.daily] == ["one_priority"]
        assert result.challenges_completed.daily[0].xp_awarded == 30
        assert result.challenges_completed.weekly is None
        assert result.bonus_xp.challenge_xp == 30
        assert result.bonus_xp.achievement_xp == 0
        assert result.new_xp_total == 55
        assert result.new_level is None
        assert result.leveled_up is False
        assert result.title == "Novice"

        async with forced_factory() as db:
            weekly = (await db.execute(select(UserWeeklyChallenge))).scalar_one()
            challenges = (await db.execute(select(UserDailyChallenge))).scalars().all()
        # High-priority tasks count toward the weekly task goal
        assert weekly.progress == 1
        # ...but not toward the daily plain-task challenge
        assert next(c for c in challenges if c.template.key == "two_tasks").progress == 0


class TestAwardPaths:
    @pytest.mark.asyncio
    async def test_missing_profile_returns_empty_result(self, forced_factory, make_orchestrator):
        orchestrator = make_orchestrator(forced_factory)

        result = await orchestrator.award("ghost", 25, ActionType.TASK)

        assert result.new_xp_total == 25
        assert result.action_total_xp == 25
        assert result.new_streak == 1
        assert await _count(forced_factory, UserDailyChallenge) == 0
        assert await _count(forced_factory, UserActivityLog) == 0

    @pytest.mark.asyncio
    async def test_level_up(self, forced_factory, make_orchestrator):
        await make_profile(forced_factory, xp_total=130, level=1)
        orchestrator = make_orchestrator(forced_factory)

        result = await orchestrator.award("user-1", 10, ActionType.HABIT)

        assert result.new_xp_total == 140
        assert result.leveled_up is False

        result = await orchestrator.award("user-1", 5, ActionType.HABIT)
        assert result.new_xp_total == 145
        assert result.leveled_up is True
        assert result.new_level == 2
        profile = await _profile(forced_factory)
        assert profile.level == 2

    @pytest.mark.asyncio
    async def test_achievement_xp_counts_toward_total(self, seeded_factory, make_orchestrator):
        await make_profile(seeded_factory, lifetime_tasks_completed=24, lifetime_high_priority_completed=9)
        orchestrator = make_orchestrator(seeded_factory)

        result = await orchestrator.award("user-1", 25, ActionType.TASK, is_high_priority=True)

        keys = {a.key for a in result.achievements_unlocked}
        assert keys == {"task_master", "priority_handler"}
        assert result.bonus_xp.achievement_xp == 25 + 30
        assert result.new_xp_total == 25 + result.bonus_xp.challenge_xp + 55
        profile = await _profile(seeded_factory)
        assert profile.achievements_unlocked == 2
        assert profile.xp_total == result.new_xp_total

    @pytest.mark.asyncio
    async def test_weekly_completion(self, forced_factory, make_orchestrator):
        await make_profile(forced_factory)
        orchestrator = make_orchestrator(forced_factory)

        await orchestrator.award("user-1", 10, ActionType.TASK)
        second = await orchestrator.award("user-1", 10, ActionType.TASK)
        third = await orchestrator.award("user-1", 10, ActionType.TASK)

        assert [c.key for c in second.challenges_completed.daily] == ["two_tasks"]
        assert third.challenges_completed.weekly is not None
        assert third.challenges_completed.weekly.key == "weekly_3_tasks"
        assert third.challenges_completed.weekly.period == WEEK_START
        assert third.bonus_xp.challenge_xp == 150

    @pytest.mark.asyncio
    async def test_daily_sweep(self, forced_factory, make_orchestrator):
        await make_profile(forced_factory)
        orchestrator = make_orchestrator(forced_factory)

        await orchestrator.award("user-1", 10, ActionType.TASK)
        await orchestrator.award("user-1", 10, ActionType.TASK)
        await orchestrator.award("user-1", 25, ActionType.TASK, is_high_priority=True)
        result = await orchestrator.award("user-1", 18, ActionType.FOCUS, focus_minutes=30)

        assert result.bonus_xp.daily_sweep is True
        assert [c.key for c in result.challenges_completed.daily] == ["focus_30"]
        profile = await _profile(forced_factory)
        assert profile.lifetime_focus_minutes == 30

    @pytest.mark.asyncio
    async def test_all_habits_completes_through_boolean_check(self, session_factory, make_orchestrator):
        await add_templates(
            session_factory,
            daily=[
                {"key": "one_habit", "challenge_type": "habits", "target_value": 1, "xp_reward": 20,
                 "difficulty": "easy"},
                {"key": ALL_HABITS_KEY, "challenge_type": "habits", "target_value": -1, "xp_reward": 50,
                 "difficulty": "medium"},
                {"key": "six_tasks", "challenge_type": "tasks", "target_value": 6, "xp_reward": 60,
                 "difficulty": "hard"},
            ],
        )
        await make_profile(session_factory)
        async with session_factory() as db:
            habits = [Habit(user_id="user-1", name="read"), Habit(user_id="user-1", name="stretch")]
            db.add_all(habits)
            await db.flush()
            db.add(HabitCompletion(habit_id=habits[0].id, user_id="user-1", completed_date=TODAY))
            await db.commit()
            second_habit_id = habits[1].id
        orchestrator = make_orchestrator(session_factory)

        first = await orchestrator.award("user-1", 10, ActionType.HABIT)
        assert [c.key for c in first.challenges_completed.daily] == ["one_habit"]

        async with session_factory() as db:
            db.add(HabitCompletion(habit_id=second_habit_id, user_id="user-1", completed_date=TODAY))
            await db.commit()

        second = await orchestrator.award("user-1", 10, ActionType.HABIT)
        assert [c.key for c in second.challenges_completed.daily] == [ALL_HABITS_KEY]
        assert second.bonus_xp.challenge_xp == 50

    @pytest.mark.asyncio
    async def test_schedule_block(self, forced_factory, make_orchestrator):
        await make_profile(forced_factory)
        orchestrator = make_orchestrator(forced_factory)

        result = await orchestrator.award("user-1", 10, ActionType.SCHEDULE_BLOCK)

        assert result.new_xp_total == 10
        assert result.new_streak == 1
        assert await _count(forced_factory, UserDailyChallenge) == 0
        profile = await _profile(forced_factory)
        assert profile.lifetime_tasks_completed == 0

    @pytest.mark.asyncio
    async def test_time_of_day_counters(self, forced_factory, make_orchestrator):
        await make_profile(forced_factory)
        orchestrator = make_orchestrator(forced_factory)

        await orchestrator.award("user-1", 10, ActionType.TASK, completion_hour=6)
        await orchestrator.award("user-1", 10, ActionType.TASK, completion_hour=23)
        await orchestrator.award("user-1", 10, ActionType.TASK, completion_hour=12)

        profile = await _profile(forced_factory)
        assert profile.lifetime_early_bird_tasks == 1
        assert profile.lifetime_night_owl_tasks == 1

    @pytest.mark.asyncio
    async def test_activity_log(self, forced_factory, make_orchestrator):
        await make_profile(forced_factory)
        orchestrator = make_orchestrator(forced_factory)

        first = await orchestrator.award("user-1", 25, ActionType.TASK, is_high_priority=True)
        second = await orchestrator.award("user-1", 18, ActionType.FOCUS, focus_minutes=30)

        async with forced_factory() as db:
            row = (await db.execute(select(UserActivityLog))).scalar_one()
        earned = [
            r.action_total_xp + r.bonus_xp.challenge_xp + r.bonus_xp.achievement_xp for r in (first, second)
        ]
        assert row.activity_date == TODAY
        assert row.xp_earned == sum(earned)
        assert row.tasks_completed == 1
        assert row.focus_minutes == 30
        assert row.habits_completed == 0
        assert row.streak_maintained is True


class TestStreaks:
    @pytest.mark.asyncio
    async def test_continues_from_yesterday(self, forced_factory, make_orchestrator):
        await make_profile(
            forced_factory, current_streak=3, longest_streak=3, last_active_date=TODAY - timedelta(days=1)
        )
        result = await make_orchestrator(forced_factory).award("user-1", 10, ActionType.HABIT)

        assert result.new_streak == 4
        profile = await _profile(forced_factory)
        assert profile.longest_streak == 4

    @pytest.mark.asyncio
    async def test_same_day_keeps_streak(self, forced_factory, make_orchestrator):
        await make_profile(forced_factory, current_streak=5, longest_streak=9, last_active_date=TODAY)
        result = await make_orchestrator(forced_factory).award("user-1", 10, ActionType.HABIT)

        assert result.new_streak == 5
        profile = await _profile(forced_factory)
        assert profile.longest_streak == 9

    @pytest.mark.asyncio
    async def test_broken_streak_counts_recovery(self, forced_factory, make_orchestrator):
        await make_profile(forced_factory, current_streak=5, last_active_date=TODAY - timedelta(days=3))
        result = await make_orchestrator(forced_factory).award("user-1", 10, ActionType.HABIT)

        assert result.new_streak == 1
        profile = await _profile(forced_factory)
        assert profile.lifetime_streak_recoveries == 1

    @pytest.mark.asyncio
    async def test_next_day_via_clock(self, forced_factory, make_orchestrator, clock):
        await make_profile(forced_factory)
        orchestrator = make_orchestrator(forced_factory)

        await orchestrator.award("user-1", 10, ActionType.HABIT)
        clock.advance(days=1)
        result = await orchestrator.award("user-1", 10, ActionType.HABIT)

        assert result.new_streak == 2

    @pytest.mark.asyncio
    async def test_seven_day_streak_grants_freeze(self, forced_factory, make_orchestrator):
        await make_profile(forced_factory, current_streak=6, last_active_date=TODAY - timedelta(days=1))
        await make_orchestrator(forced_factory).award("user-1", 10, ActionType.HABIT)

        async with forced_factory() as db:
            freeze = await get_streak_freeze(db, "user-1")
        assert freeze.available_freezes == 2
        assert freeze.last_freeze_earned == TODAY

    @pytest.mark.asyncio
    async def test_freeze_bank_capped(self, forced_factory, make_orchestrator):
        await make_profile(
            forced_factory, available_freezes=3, current_streak=6, last_active_date=TODAY - timedelta(days=1)
        )
        await make_orchestrator(forced_factory).award("user-1", 10, ActionType.HABIT)

        async with forced_factory() as db:
            freeze = await get_streak_freeze(db, "user-1")
        assert freeze.available_freezes == 3


class TestBestEffortSteps:
    @pytest.mark.asyncio
    async def test_group_failure_does_not_change_result(self, forced_factory, make_orchestrator, monkeypatch):
        async def boom(*args, **kwargs):
            raise RuntimeError("groups unavailable")

        monkeypatch.setattr(group_service, "propagate_to_groups", boom)
        await make_profile(forced_factory)

        result = await make_orchestrator(forced_factory).award("user-1", 25, ActionType.TASK, is_high_priority=True)

        assert result.new_xp_total == 55
        profile = await _profile(forced_factory)
        assert profile.xp_total == 55

    @pytest.mark.asyncio
    async def test_freeze_failure_does_not_change_result(self, forced_factory, make_orchestrator, monkeypatch):
        async def boom(*args, **kwargs):
            raise RuntimeError("freeze store unavailable")

        monkeypatch.setattr(xp_award, "grant_streak_freeze", boom)
        await make_profile(forced_factory, current_streak=6, last_active_date=TODAY - timedelta(days=1))

        result = await make_orchestrator(forced_factory).award("user-1", 10, ActionType.HABIT)

        assert result.new_streak == 7

    @pytest.mark.asyncio
    async def test_groups_receive_total_earned(self, forced_factory, make_orchestrator):
        await make_profile(forced_factory)
        async with forced_factory() as db:
            group = Group(name="Team", owner_id="user-1")
            db.add(group)
            await db.flush()
            db.add(GroupMember(group_id=group.id, user_id="user-1"))
            await db.commit()

        result = await make_orchestrator(forced_factory).award("user-1", 25, ActionType.TASK, is_high_priority=True)

        async with forced_factory() as db:
            member = (await db.execute(select(GroupMember))).scalar_one()
        assert member.weekly_xp == result.new_xp_total == 55
        assert member.group.total_xp == 55

    @pytest.mark.asyncio
    async def test_group_propagation_can_be_disabled(self, forced_factory, make_orchestrator):
        await make_profile(forced_factory)
        async with forced_factory() as db:
            group = Group(name="Team", owner_id="user-1")
            db.add(group)
            await db.flush()
            db.add(GroupMember(group_id=group.id, user_id="user-1"))
            await db.commit()

        orchestrator = make_orchestrator(forced_factory, group_propagation_enabled=False)
        await orchestrator.award("user-1", 25, ActionType.TASK)

        async with forced_factory() as db:
            member = (await db.execute(select(GroupMember))).scalar_one()
        assert member.weekly_xp == 0


class TestRetry:
    @pytest.mark.asyncio
    async def test_conflict_is_retried_from_scratch(self, forced_factory, make_orchestrator, monkeypatch):
        real = achievement_service.check_all_achievements
        calls = {"n": 0}

        async def flaky(*args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 1:
                raise StaleDataError("user_profiles version mismatch")
            return await real(*args, **kwargs)

        monkeypatch.setattr(achievement_service, "check_all_achievements", flaky)
        await make_profile(forced_factory)

        result = await make_orchestrator(forced_factory).award("user-1", 25, ActionType.TASK, is_high_priority=True)

        assert calls["n"] == 2
        assert result.new_xp_total == 55
        profile = await _profile(forced_factory)
        assert profile.xp_total == 55
        assert profile.lifetime_tasks_completed == 1
        # The first attempt's challenge rows were rolled back
        assert await _count(forced_factory, UserDailyChallenge) == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, forced_factory, make_orchestrator, monkeypatch):
        calls = {"n": 0}

        async def always_stale(*args, **kwargs):
            calls["n"] += 1
            raise StaleDataError("user_profiles version mismatch")

        monkeypatch.setattr(achievement_service, "check_all_achievements", always_stale)
        await make_profile(forced_factory)

        with pytest.raises(StaleDataError):
            await make_orchestrator(forced_factory, award_max_attempts=2).award("user-1", 25, ActionType.TASK)

        assert calls["n"] == 2
        profile = await _profile(forced_factory)
        assert profile.xp_total == 0
        assert await _count(forced_factory, UserDailyChallenge) == 0

    @pytest.mark.asyncio
    async def test_racing_first_award_of_the_day(self, forced_factory, make_orchestrator, monkeypatch):
        await make_profile(forced_factory)
        orchestrator = make_orchestrator(forced_factory)
        real = challenge_service.get_todays_challenges
        other: dict = {}

        async def racing(db, user_id, day):
            rows = await real(db, user_id, day)
            if "started" not in other:
                other["started"] = True
                # A second award for the same user commits between this read and our insert
                other["result"] = await orchestrator.award("user-1", 10, ActionType.TASK)
            return rows

        monkeypatch.setattr(challenge_service, "get_todays_challenges", racing)

        result = await orchestrator.award("user-1", 10, ActionType.TASK)

        assert other["result"].new_xp_total == 10
        # Retried on top of the other award: second task completes "two_tasks"
        assert [c.key for c in result.challenges_completed.daily] == ["two_tasks"]
        assert result.new_xp_total == 10 + 10 + 15
        profile = await _profile(forced_factory)
        assert profile.xp_total == 35
        assert profile.lifetime_tasks_completed == 2
        assert await _count(forced_factory, UserDailyChallenge) == 3
        assert await _count(forced_factory, UserWeeklyChallenge) == 1

    @pytest.mark.asyncio
    async def test_duplicate_rows_exhaust_attempts(self, forced_factory, make_orchestrator, monkeypatch):
        calls = {"n": 0}

        async def always_duplicate(*args, **kwargs):
            calls["n"] += 1
            raise IntegrityError("INSERT INTO user_daily_challenges", {}, Exception("UNIQUE constraint failed"))

        monkeypatch.setattr(challenge_service, "apply_challenge_progress", always_duplicate)
        await make_profile(forced_factory)

        with pytest.raises(IntegrityError):
            await make_orchestrator(forced_factory, award_max_attempts=2).award("user-1", 10, ActionType.TASK)

        assert calls["n"] == 2
        profile = await _profile(forced_factory)
        assert profile.xp_total == 0


class TestTimestamps:
    @pytest.mark.asyncio
    async def test_rows_carry_the_award_instant(self, forced_factory, make_orchestrator):
        await make_profile(forced_factory, current_streak=6, last_active_date=TODAY - timedelta(days=1))

        await make_orchestrator(forced_factory).award("user-1", 10, ActionType.HABIT)

        async with forced_factory() as db:
            log = (await db.execute(select(UserActivityLog))).scalar_one()
            freeze = await get_streak_freeze(db, "user-1")
            profile = await db.get(UserProfile, "user-1")
        expected = _naive(FIXED_NOW)
        assert _naive(log.created_at) == expected
        assert _naive(log.updated_at) == expected
        assert _naive(freeze.updated_at) == expected
        assert _naive(profile.updated_at) == expected

    @pytest.mark.asyncio
    async def test_follows_the_clock(self, forced_factory, make_orchestrator, clock):
        await make_profile(forced_factory)
        orchestrator = make_orchestrator(forced_factory)

        await orchestrator.award("user-1", 10, ActionType.HABIT)
        clock.now = FIXED_NOW + timedelta(hours=2)
        await orchestrator.award("user-1", 10, ActionType.HABIT)

        async with forced_factory() as db:
            log = (await db.execute(select(UserActivityLog))).scalar_one()
        assert _naive(log.created_at) == _naive(FIXED_NOW)
        assert _naive(log.updated_at) == _naive(FIXED_NOW + timedelta(hours=2))


class TestValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"base_xp": -1, "action_type": ActionType.TASK},
            {"base_xp": 10, "action_type": ActionType.FOCUS, "focus_minutes": -5},
            {"base_xp": 10, "action_type": ActionType.TASK, "completion_hour": 24},
            {"base_xp": 10, "action_type": "nap"},
        ],
    )
    async def test_invalid_input(self, forced_factory, make_orchestrator, kwargs):
        await make_profile(forced_factory)
        with pytest.raises(ValueError):
            await make_orchestrator(forced_factory).award("user-1", **kwargs)

        profile = await _profile(forced_factory)
        assert profile.xp_total == 0

    @pytest.mark.asyncio
    async def test_action_type_accepts_string(self, forced_factory, make_orchestrator):
        await make_profile(forced_factory)
        result = await make_orchestrator(forced_factory).award("user-1", 10, "habit")
        assert result.new_xp_total == 10


class TestRevoke:
    @pytest.mark.asyncio
    async def test_removes_exactly_base_xp_and_nothing_else(self, forced_factory, make_orchestrator):
        await make_profile(forced_factory)
        orchestrator = make_orchestrator(forced_factory)
        awarded = await orchestrator.award("user-1", 25, ActionType.TASK, is_high_priority=True)

        reverted = await orchestrator.revoke("user-1", 25)

        assert reverted.xp_removed == 25
        assert reverted.new_xp_total == awarded.new_xp_total - 25
        profile = await _profile(forced_factory)
        assert profile.xp_total == awarded.new_xp_total - 25
        assert profile.lifetime_tasks_completed == 1
        assert profile.lifetime_high_priority_completed == 1
        assert profile.current_streak == 1
        async with forced_factory() as db:
            completed = (
                await db.execute(select(UserDailyChallenge).where(UserDailyChallenge.completed.is_(True)))
            ).scalars().all()
        assert [c.template.key for c in completed] == ["one_priority"]

    @pytest.mark.asyncio
    async def test_level_recomputed(self, forced_factory, make_orchestrator):
        await make_profile(forced_factory, xp_total=150, level=2, title="Novice")

        reverted = await make_orchestrator(forced_factory).revoke("user-1", 25)

        assert reverted.level == 1
        assert reverted.level_changed is True
        profile = await _profile(forced_factory)
        assert profile.level == 1

    @pytest.mark.asyncio
    async def test_floors_at_zero(self, forced_factory, make_orchestrator):
        await make_profile(forced_factory, xp_total=10)

        reverted = await make_orchestrator(forced_factory).revoke("user-1", 25)

        assert reverted.new_xp_total == 0
        assert reverted.xp_removed == 10

    @pytest.mark.asyncio
    async def test_missing_profile(self, forced_factory, make_orchestrator):
        assert await make_orchestrator(forced_factory).revoke("ghost", 25) is None
