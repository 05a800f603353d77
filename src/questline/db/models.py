"""ORM models for the progression engine.

Tables map one-to-one onto alembic/versions/001_progression_tables.py.
Column defaults are Python-side; inserted rows need no refresh on the async session.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from questline.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


class UserProfile(Base):
    """Denormalized progression state, one row per user.

    ``version`` is the optimistic-lock counter: every UPDATE is issued with
    ``WHERE version = <loaded>`` so two interleaved awards cannot both write.
    """

    __tablename__ = "user_profiles"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String(64), nullable=True)

    xp_total: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    title: Mapped[str] = mapped_column(String(32), nullable=False, default="Novice")
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_active_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # --- Lifetime stats (achievement inputs) ---
    lifetime_tasks_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lifetime_high_priority_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lifetime_habits_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lifetime_focus_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lifetime_long_focus_sessions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lifetime_early_bird_tasks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lifetime_night_owl_tasks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lifetime_streak_recoveries: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lifetime_quests_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lifetime_perfect_weeks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lifetime_brain_dumps_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    achievements_unlocked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Kept for older clients; awards never apply it
    permanent_xp_bonus: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)

    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __mapper_args__ = {"version_id_col": version}  # noqa: RUF012


class UserStreakFreeze(Base):
    """Banked streak freezes (0-3)."""

    __tablename__ = "user_streak_freezes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("user_profiles.user_id", ondelete="CASCADE"), unique=True, nullable=False
    )
    available_freezes: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    last_freeze_earned: Mapped[date | None] = mapped_column(Date, nullable=True)
    last_freeze_used: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


# ---------------------------------------------------------------------------
# Achievements
# ---------------------------------------------------------------------------


class Achievement(Base):
    """Tiered achievement template, seeded once and never mutated."""

    __tablename__ = "achievements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    category: Mapped[str] = mapped_column(String(16), nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    icon_name: Mapped[str] = mapped_column(String(64), nullable=False, default="Trophy")
    stat_key: Mapped[str] = mapped_column(String(64), nullable=False)
    bronze_threshold: Mapped[int] = mapped_column(Integer, nullable=False)
    bronze_xp: Mapped[int] = mapped_column(Integer, nullable=False)
    silver_threshold: Mapped[int] = mapped_column(Integer, nullable=False)
    silver_xp: Mapped[int] = mapped_column(Integer, nullable=False)
    gold_threshold: Mapped[int] = mapped_column(Integer, nullable=False)
    gold_xp: Mapped[int] = mapped_column(Integer, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class UserAchievement(Base):
    """Per-user achievement progress. Tier timestamps are append-only."""

    __tablename__ = "user_achievements"
    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="user_achievements_user_id_achievement_id_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    achievement_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("achievements.id", ondelete="CASCADE"), nullable=False
    )
    current_tier: Mapped[str | None] = mapped_column(String(8), nullable=True)
    bronze_unlocked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    silver_unlocked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    gold_unlocked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    progress_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


# ---------------------------------------------------------------------------
# Challenges
# ---------------------------------------------------------------------------


class DailyChallengeTemplate(Base):
    """Daily challenge pool entry. ``target_value`` -1 marks a boolean-condition challenge."""

    __tablename__ = "daily_challenge_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    challenge_type: Mapped[str] = mapped_column(String(32), nullable=False)
    target_value: Mapped[int] = mapped_column(Integer, nullable=False)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False)
    difficulty: Mapped[str] = mapped_column(String(8), nullable=False)


class UserDailyChallenge(Base):
    """One of the three challenges a user holds for a calendar date."""

    __tablename__ = "user_daily_challenges"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "template_id", "challenge_date",
            name="user_daily_challenges_user_id_template_id_challenge_date_key",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    template_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("daily_challenge_templates.id", ondelete="CASCADE"), nullable=False
    )
    challenge_date: Mapped[date] = mapped_column(Date, nullable=False)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    xp_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    template: Mapped[DailyChallengeTemplate] = relationship("DailyChallengeTemplate", lazy="joined")


class WeeklyChallengeTemplate(Base):
    """Weekly challenge pool entry."""

    __tablename__ = "weekly_challenge_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    challenge_type: Mapped[str] = mapped_column(String(32), nullable=False)
    target_value: Mapped[int] = mapped_column(Integer, nullable=False)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False)


class UserWeeklyChallenge(Base):
    """The single challenge a user holds for an ISO week (keyed by its Monday)."""

    __tablename__ = "user_weekly_challenges"
    __table_args__ = (
        UniqueConstraint("user_id", "week_start", name="user_weekly_challenges_user_id_week_start_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    template_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("weekly_challenge_templates.id", ondelete="CASCADE"), nullable=False
    )
    week_start: Mapped[date] = mapped_column(Date, nullable=False)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    xp_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    template: Mapped[WeeklyChallengeTemplate] = relationship("WeeklyChallengeTemplate", lazy="joined")


# ---------------------------------------------------------------------------
# Activity ledger
# ---------------------------------------------------------------------------


class UserActivityLog(Base):
    """Per-user per-day rollup, only ever added to."""

    __tablename__ = "user_activity_log"
    __table_args__ = (
        UniqueConstraint("user_id", "activity_date", name="user_activity_log_user_id_activity_date_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    activity_date: Mapped[date] = mapped_column(Date, nullable=False)
    xp_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tasks_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    focus_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    habits_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    streak_maintained: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    freeze_used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


# ---------------------------------------------------------------------------
# Habits (read by the "complete all habits" check)
# ---------------------------------------------------------------------------


class Habit(Base):
    __tablename__ = "habits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class HabitCompletion(Base):
    __tablename__ = "habit_completions"
    __table_args__ = (
        UniqueConstraint("habit_id", "completed_date", name="habit_completions_habit_id_completed_date_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    habit_id: Mapped[int] = mapped_column(Integer, ForeignKey("habits.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    completed_date: Mapped[date] = mapped_column(Date, nullable=False)


# ---------------------------------------------------------------------------
# Groups (best-effort propagation target)
# ---------------------------------------------------------------------------


class Group(Base):
    __tablename__ = "groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    member_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    total_xp: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class GroupMember(Base):
    """Membership row; ``weekly_xp`` is reset by the (external) weekly job."""

    __tablename__ = "group_members"
    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="group_members_group_id_user_id_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="member")
    weekly_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    group: Mapped[Group] = relationship("Group", lazy="joined")


class GroupChallenge(Base):
    """Shared weekly goal for a group; details are copied from a template when created."""

    __tablename__ = "group_challenges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    week_start: Mapped[date] = mapped_column(Date, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    challenge_type: Mapped[str] = mapped_column(String(16), nullable=False)
    target_value: Mapped[int] = mapped_column(Integer, nullable=False)
    current_progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    xp_reward_per_member: Mapped[int] = mapped_column(Integer, nullable=False, default=25)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
