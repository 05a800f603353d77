"""Progression tables.

Creates user_profiles, user_streak_freezes, achievements, user_achievements,
daily/weekly challenge templates and per-user challenges, user_activity_log,
habits, habit_completions, groups, group_members and group_challenges.

Revision ID: 001_progression_tables
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_progression_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- User Profiles ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_profiles (
            user_id VARCHAR(64) PRIMARY KEY,
            display_name VARCHAR(64),
            xp_total BIGINT NOT NULL DEFAULT 0,
            level INTEGER NOT NULL DEFAULT 1,
            title VARCHAR(32) NOT NULL DEFAULT 'Novice',
            current_streak INTEGER NOT NULL DEFAULT 0,
            longest_streak INTEGER NOT NULL DEFAULT 0,
            last_active_date DATE,
            lifetime_tasks_completed INTEGER NOT NULL DEFAULT 0,
            lifetime_high_priority_completed INTEGER NOT NULL DEFAULT 0,
            lifetime_habits_completed INTEGER NOT NULL DEFAULT 0,
            lifetime_focus_minutes INTEGER NOT NULL DEFAULT 0,
            lifetime_long_focus_sessions INTEGER NOT NULL DEFAULT 0,
            lifetime_early_bird_tasks INTEGER NOT NULL DEFAULT 0,
            lifetime_night_owl_tasks INTEGER NOT NULL DEFAULT 0,
            lifetime_streak_recoveries INTEGER NOT NULL DEFAULT 0,
            lifetime_quests_completed INTEGER NOT NULL DEFAULT 0,
            lifetime_perfect_weeks INTEGER NOT NULL DEFAULT 0,
            lifetime_brain_dumps_processed INTEGER NOT NULL DEFAULT 0,
            achievements_unlocked INTEGER NOT NULL DEFAULT 0,
            permanent_xp_bonus DOUBLE PRECISION NOT NULL DEFAULT 1.0,
            version INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Streak Freezes ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_streak_freezes (
            id SERIAL PRIMARY KEY,
            user_id VARCHAR(64) UNIQUE NOT NULL REFERENCES user_profiles(user_id) ON DELETE CASCADE,
            available_freezes INTEGER NOT NULL DEFAULT 1
                CHECK (available_freezes BETWEEN 0 AND 3),
            last_freeze_earned DATE,
            last_freeze_used DATE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Achievements ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS achievements (
            id SERIAL PRIMARY KEY,
            key VARCHAR(64) UNIQUE NOT NULL,
            category VARCHAR(16) NOT NULL,
            name VARCHAR(128) NOT NULL,
            description TEXT NOT NULL,
            icon_name VARCHAR(64) NOT NULL DEFAULT 'Trophy',
            stat_key VARCHAR(64) NOT NULL,
            bronze_threshold INTEGER NOT NULL,
            bronze_xp INTEGER NOT NULL,
            silver_threshold INTEGER NOT NULL,
            silver_xp INTEGER NOT NULL,
            gold_threshold INTEGER NOT NULL,
            gold_xp INTEGER NOT NULL,
            sort_order INTEGER NOT NULL DEFAULT 0,
            CHECK (bronze_threshold < silver_threshold AND silver_threshold < gold_threshold)
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS user_achievements (
            id SERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            achievement_id INTEGER NOT NULL REFERENCES achievements(id) ON DELETE CASCADE,
            current_tier VARCHAR(8),
            bronze_unlocked_at TIMESTAMPTZ,
            silver_unlocked_at TIMESTAMPTZ,
            gold_unlocked_at TIMESTAMPTZ,
            progress_value INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            UNIQUE(user_id, achievement_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_user_achievements_user_id
        ON user_achievements(user_id)
    """)

    # --- Daily Challenges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS daily_challenge_templates (
            id SERIAL PRIMARY KEY,
            key VARCHAR(64) UNIQUE NOT NULL,
            name VARCHAR(128) NOT NULL,
            description TEXT NOT NULL,
            challenge_type VARCHAR(32) NOT NULL,
            target_value INTEGER NOT NULL,
            xp_reward INTEGER NOT NULL,
            difficulty VARCHAR(8) NOT NULL CHECK (difficulty IN ('easy', 'medium', 'hard'))
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS user_daily_challenges (
            id SERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            template_id INTEGER NOT NULL REFERENCES daily_challenge_templates(id) ON DELETE CASCADE,
            challenge_date DATE NOT NULL,
            progress INTEGER NOT NULL DEFAULT 0,
            completed BOOLEAN NOT NULL DEFAULT false,
            completed_at TIMESTAMPTZ,
            xp_awarded INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            UNIQUE(user_id, template_id, challenge_date)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_daily_challenges_user_date
        ON user_daily_challenges(user_id, challenge_date)
    """)

    # --- Weekly Challenges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS weekly_challenge_templates (
            id SERIAL PRIMARY KEY,
            key VARCHAR(64) UNIQUE NOT NULL,
            name VARCHAR(128) NOT NULL,
            description TEXT NOT NULL,
            challenge_type VARCHAR(32) NOT NULL,
            target_value INTEGER NOT NULL,
            xp_reward INTEGER NOT NULL
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS user_weekly_challenges (
            id SERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            template_id INTEGER NOT NULL REFERENCES weekly_challenge_templates(id) ON DELETE CASCADE,
            week_start DATE NOT NULL,
            progress INTEGER NOT NULL DEFAULT 0,
            completed BOOLEAN NOT NULL DEFAULT false,
            completed_at TIMESTAMPTZ,
            xp_awarded INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            UNIQUE(user_id, week_start)
        )
    """)

    # --- Activity Log ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_activity_log (
            id SERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            activity_date DATE NOT NULL,
            xp_earned INTEGER NOT NULL DEFAULT 0,
            tasks_completed INTEGER NOT NULL DEFAULT 0,
            focus_minutes INTEGER NOT NULL DEFAULT 0,
            habits_completed INTEGER NOT NULL DEFAULT 0,
            streak_maintained BOOLEAN NOT NULL DEFAULT false,
            freeze_used BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            UNIQUE(user_id, activity_date)
        )
    """)

    # --- Habits ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS habits (
            id SERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            name VARCHAR(128) NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_habits_user_id ON habits(user_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS habit_completions (
            id SERIAL PRIMARY KEY,
            habit_id INTEGER NOT NULL REFERENCES habits(id) ON DELETE CASCADE,
            user_id VARCHAR(64) NOT NULL,
            completed_date DATE NOT NULL,
            UNIQUE(habit_id, completed_date)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_habit_completions_user_date
        ON habit_completions(user_id, completed_date)
    """)

    # --- Groups ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS groups (
            id SERIAL PRIMARY KEY,
            name VARCHAR(128) NOT NULL,
            owner_id VARCHAR(64) NOT NULL,
            member_count INTEGER NOT NULL DEFAULT 1,
            total_xp BIGINT NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS group_members (
            id SERIAL PRIMARY KEY,
            group_id INTEGER NOT NULL REFERENCES groups(id) ON DELETE CASCADE,
            user_id VARCHAR(64) NOT NULL,
            role VARCHAR(16) NOT NULL DEFAULT 'member',
            weekly_xp INTEGER NOT NULL DEFAULT 0,
            joined_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            UNIQUE(group_id, user_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_group_members_user_id ON group_members(user_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS group_challenges (
            id SERIAL PRIMARY KEY,
            group_id INTEGER NOT NULL REFERENCES groups(id) ON DELETE CASCADE,
            week_start DATE NOT NULL,
            name VARCHAR(128) NOT NULL,
            challenge_type VARCHAR(16) NOT NULL,
            target_value INTEGER NOT NULL,
            current_progress INTEGER NOT NULL DEFAULT 0,
            completed BOOLEAN NOT NULL DEFAULT false,
            completed_at TIMESTAMPTZ,
            xp_reward_per_member INTEGER NOT NULL DEFAULT 25,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_group_challenges_group_week
        ON group_challenges(group_id, week_start)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS group_challenges CASCADE")
    op.execute("DROP TABLE IF EXISTS group_members CASCADE")
    op.execute("DROP TABLE IF EXISTS groups CASCADE")
    op.execute("DROP TABLE IF EXISTS habit_completions CASCADE")
    op.execute("DROP TABLE IF EXISTS habits CASCADE")
    op.execute("DROP TABLE IF EXISTS user_activity_log CASCADE")
    op.execute("DROP TABLE IF EXISTS user_weekly_challenges CASCADE")
    op.execute("DROP TABLE IF EXISTS weekly_challenge_templates CASCADE")
    op.execute("DROP TABLE IF EXISTS user_daily_challenges CASCADE")
    op.execute("DROP TABLE IF EXISTS daily_challenge_templates CASCADE")
    op.execute("DROP TABLE IF EXISTS user_achievements CASCADE")
    op.execute("DROP TABLE IF EXISTS achievements CASCADE")
    op.execute("DROP TABLE IF EXISTS user_streak_freezes CASCADE")
    op.execute("DROP TABLE IF EXISTS user_profiles CASCADE")
