"""Achievement and challenge template seed data."""

from __future__ import annotations

import logging

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from questline.db.models import Achievement, DailyChallengeTemplate, WeeklyChallengeTemplate

logger = logging.getLogger(__name__)

ACHIEVEMENT_SEED_DATA: list[dict] = [
    # Streak
    {
        "key": "consistent", "category": "streak", "name": "Consistent",
        "description": "Maintain your streak", "icon_name": "Flame", "stat_key": "current_streak",
        "bronze_threshold": 7, "bronze_xp": 25, "silver_threshold": 30, "silver_xp": 100,
        "gold_threshold": 100, "gold_xp": 500, "sort_order": 1,
    },
    {
        "key": "comeback", "category": "streak", "name": "Comeback",
        "description": "Recover from broken streaks", "icon_name": "RefreshCw",
        "stat_key": "lifetime_streak_recoveries",
        "bronze_threshold": 3, "bronze_xp": 15, "silver_threshold": 10, "silver_xp": 50,
        "gold_threshold": 25, "gold_xp": 150, "sort_order": 2,
    },
    # Tasks
    {
        "key": "task_master", "category": "tasks", "name": "Task Master",
        "description": "Complete tasks", "icon_name": "CheckCircle", "stat_key": "lifetime_tasks_completed",
        "bronze_threshold": 25, "bronze_xp": 25, "silver_threshold": 100, "silver_xp": 100,
        "gold_threshold": 500, "gold_xp": 500, "sort_order": 3,
    },
    {
        "key": "priority_handler", "category": "tasks", "name": "Priority Handler",
        "description": "Complete high-priority tasks", "icon_name": "AlertTriangle",
        "stat_key": "lifetime_high_priority_completed",
        "bronze_threshold": 10, "bronze_xp": 30, "silver_threshold": 50, "silver_xp": 120,
        "gold_threshold": 200, "gold_xp": 500, "sort_order": 4,
    },
    # Focus
    {
        "key": "deep_worker", "category": "focus", "name": "Deep Worker",
        "description": "Accumulate focus time", "icon_name": "Clock", "stat_key": "lifetime_focus_minutes",
        "bronze_threshold": 300, "bronze_xp": 25, "silver_threshold": 1500, "silver_xp": 100,
        "gold_threshold": 6000, "gold_xp": 500, "sort_order": 5,
    },
    {
        "key": "marathon", "category": "focus", "name": "Marathon",
        "description": "Complete long focus sessions (60+ min)", "icon_name": "Timer",
        "stat_key": "lifetime_long_focus_sessions",
        "bronze_threshold": 3, "bronze_xp": 30, "silver_threshold": 10, "silver_xp": 100,
        "gold_threshold": 25, "gold_xp": 400, "sort_order": 6,
    },
    # Quests
    {
        "key": "adventurer", "category": "quests", "name": "Adventurer",
        "description": "Complete quests", "icon_name": "Flag", "stat_key": "lifetime_quests_completed",
        "bronze_threshold": 3, "bronze_xp": 50, "silver_threshold": 10, "silver_xp": 200,
        "gold_threshold": 25, "gold_xp": 600, "sort_order": 7,
    },
    # Habits
    {
        "key": "habit_former", "category": "habits", "name": "Habit Former",
        "description": "Complete habit entries", "icon_name": "Repeat", "stat_key": "lifetime_habits_completed",
        "bronze_threshold": 21, "bronze_xp": 30, "silver_threshold": 66, "silver_xp": 100,
        "gold_threshold": 200, "gold_xp": 400, "sort_order": 8,
    },
    {
        "key": "perfect_week", "category": "habits", "name": "Perfect Week",
        "description": "Complete all habits for a week", "icon_name": "Trophy", "stat_key": "lifetime_perfect_weeks",
        "bronze_threshold": 1, "bronze_xp": 40, "silver_threshold": 4, "silver_xp": 150,
        "gold_threshold": 12, "gold_xp": 500, "sort_order": 9,
    },
    # Special
    {
        "key": "early_bird", "category": "special", "name": "Early Bird",
        "description": "Complete tasks before 7am", "icon_name": "Sunrise", "stat_key": "lifetime_early_bird_tasks",
        "bronze_threshold": 5, "bronze_xp": 25, "silver_threshold": 25, "silver_xp": 100,
        "gold_threshold": 100, "gold_xp": 400, "sort_order": 10,
    },
    {
        "key": "night_owl", "category": "special", "name": "Night Owl",
        "description": "Complete tasks after 10pm", "icon_name": "Moon", "stat_key": "lifetime_night_owl_tasks",
        "bronze_threshold": 5, "bronze_xp": 25, "silver_threshold": 25, "silver_xp": 100,
        "gold_threshold": 100, "gold_xp": 400, "sort_order": 11,
    },
    {
        "key": "inbox_zero", "category": "special", "name": "Inbox Zero",
        "description": "Process brain dump entries", "icon_name": "Inbox",
        "stat_key": "lifetime_brain_dumps_processed",
        "bronze_threshold": 25, "bronze_xp": 30, "silver_threshold": 100, "silver_xp": 100,
        "gold_threshold": 500, "gold_xp": 400, "sort_order": 12,
    },
]

DAILY_TEMPLATE_SEED_DATA: list[dict] = [
    # Easy
    {"key": "complete_2_tasks", "name": "Task Starter", "description": "Complete 2 tasks",
     "challenge_type": "tasks", "target_value": 2, "xp_reward": 15, "difficulty": "easy"},
    {"key": "focus_15_min", "name": "Quick Focus", "description": "Focus for 15 minutes",
     "challenge_type": "focus", "target_value": 15, "xp_reward": 15, "difficulty": "easy"},
    {"key": "complete_habit", "name": "Habit Check", "description": "Complete at least 1 habit",
     "challenge_type": "habits", "target_value": 1, "xp_reward": 20, "difficulty": "easy"},
    # Medium
    {"key": "complete_4_tasks", "name": "Productive Day", "description": "Complete 4 tasks",
     "challenge_type": "tasks", "target_value": 4, "xp_reward": 35, "difficulty": "medium"},
    {"key": "focus_45_min", "name": "Deep Work", "description": "Focus for 45 minutes",
     "challenge_type": "focus", "target_value": 45, "xp_reward": 40, "difficulty": "medium"},
    {"key": "complete_all_habits", "name": "Habit Master", "description": "Complete all your habits",
     "challenge_type": "habits", "target_value": -1, "xp_reward": 50, "difficulty": "medium"},
    {"key": "high_priority_task", "name": "Priority First", "description": "Complete a high-priority task",
     "challenge_type": "high_priority", "target_value": 1, "xp_reward": 30, "difficulty": "medium"},
    # Hard
    {"key": "complete_6_tasks", "name": "Task Champion", "description": "Complete 6 tasks",
     "challenge_type": "tasks", "target_value": 6, "xp_reward": 60, "difficulty": "hard"},
    {"key": "focus_90_min", "name": "Ultra Focus", "description": "Focus for 90 minutes",
     "challenge_type": "focus", "target_value": 90, "xp_reward": 75, "difficulty": "hard"},
    {"key": "complete_2_high_priority", "name": "Priority Champion", "description": "Complete 2 high-priority tasks",
     "challenge_type": "high_priority", "target_value": 2, "xp_reward": 65, "difficulty": "hard"},
]

WEEKLY_TEMPLATE_SEED_DATA: list[dict] = [
    {"key": "weekly_20_tasks", "name": "Weekly Warrior", "description": "Complete 20 tasks this week",
     "challenge_type": "tasks", "target_value": 20, "xp_reward": 150},
    {"key": "weekly_5_hours_focus", "name": "Focus Champion", "description": "Accumulate 5 hours of focus time",
     "challenge_type": "focus", "target_value": 300, "xp_reward": 200},
    {"key": "weekly_streak", "name": "Consistency King", "description": "Maintain your streak all week",
     "challenge_type": "streak", "target_value": 7, "xp_reward": 100},
    {"key": "weekly_daily_challenges", "name": "Challenge Master",
     "description": "Complete all daily challenges for 5 days",
     "challenge_type": "daily_challenges", "target_value": 5, "xp_reward": 250},
]


def _insert_for(db: AsyncSession):
    if db.get_bind().dialect.name == "sqlite":
        return sqlite_insert
    return pg_insert


async def _upsert(db: AsyncSession, model: type, rows: list[dict]) -> int:
    insert = _insert_for(db)
    for row in rows:
        stmt = insert(model).values(**row)
        stmt = stmt.on_conflict_do_update(
            index_elements=["key"],
            set_={name: getattr(stmt.excluded, name) for name in row if name != "key"},
        )
        await db.execute(stmt)
    return len(rows)


async def seed_progression(db: AsyncSession) -> dict[str, int]:
    """Upsert every achievement and challenge template by key, then commit.

    Safe to run on every startup; rows already present are brought in line
    with the seed data and ids are preserved.
    """
    counts = {
        "achievements": await _upsert(db, Achievement, ACHIEVEMENT_SEED_DATA),
        "daily_templates": await _upsert(db, DailyChallengeTemplate, DAILY_TEMPLATE_SEED_DATA),
        "weekly_templates": await _upsert(db, WeeklyChallengeTemplate, WEEKLY_TEMPLATE_SEED_DATA),
    }
    await db.commit()
    logger.info(
        "Seeded %d achievements, %d daily and %d weekly challenge templates",
        counts["achievements"], counts["daily_templates"], counts["weekly_templates"],
    )
    return counts
