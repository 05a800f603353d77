"""Progression engine: levels, streaks, achievements, challenges and XP awards."""
