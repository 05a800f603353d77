"""Progression enums and the pydantic result models handed back to callers."""

from __future__ import annotations

from datetime import date
from enum import Enum

from pydantic import BaseModel, Field


class ActionType(str, Enum):
    """Completed actions that earn XP."""

    TASK = "task"
    HABIT = "habit"
    FOCUS = "focus"
    SCHEDULE_BLOCK = "schedule_block"


class ChallengeType(str, Enum):
    """What a daily or weekly challenge counts."""

    TASKS = "tasks"
    HIGH_PRIORITY = "high_priority"
    HABITS = "habits"
    FOCUS = "focus"
    STREAK = "streak"
    DAILY_CHALLENGES = "daily_challenges"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class AchievementTier(str, Enum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"


# --- XP ---


class XpBreakdown(BaseModel):
    """Base award breakdown.

    The multiplier and bonus fields stay for older clients. Awards are never
    scaled, so they are always 1.0 and 0.
    """

    base_xp: int
    streak_multiplier: float = 1.0
    streak_bonus: int = 0
    permanent_bonus: int = 0
    total_xp: int


class BonusXp(BaseModel):
    """Extra XP on top of the base award, split for staged UI celebration."""

    challenge_xp: int = 0
    achievement_xp: int = 0
    daily_sweep: bool = False


# --- Achievements ---


class UnlockedTier(BaseModel):
    tier: AchievementTier
    xp_reward: int


class UnlockedAchievement(BaseModel):
    key: str
    name: str
    category: str
    stat_key: str
    current_tier: AchievementTier | None
    progress_value: int
    new_tiers: list[UnlockedTier]
    xp_awarded: int


# --- Challenges ---


class CompletedChallenge(BaseModel):
    challenge_id: int
    key: str
    name: str
    challenge_type: str
    difficulty: Difficulty | None = None
    progress: int
    target_value: int
    xp_awarded: int
    period: date


class ChallengesCompleted(BaseModel):
    daily: list[CompletedChallenge] = Field(default_factory=list)
    weekly: CompletedChallenge | None = None


# --- Award ---


class XpAwardResult(BaseModel):
    """Everything a route handler needs to answer and animate one completed action."""

    xp_breakdown: XpBreakdown
    action_total_xp: int
    new_xp_total: int
    new_level: int | None = None
    leveled_up: bool = False
    title: str | None = None
    new_streak: int
    achievements_unlocked: list[UnlockedAchievement] = Field(default_factory=list)
    challenges_completed: ChallengesCompleted = Field(default_factory=ChallengesCompleted)
    bonus_xp: BonusXp = Field(default_factory=BonusXp)


class XpRevokeResult(BaseModel):
    xp_removed: int
    new_xp_total: int
    level: int
    title: str
    level_changed: bool
