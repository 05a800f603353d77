"""Shared test fixtures.

Integration tests run against a throwaway SQLite file (aiosqlite) built from
the ORM metadata, so each session gets its own connection and transactions
behave like they do on Postgres.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import date, datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from questline.config import Settings
from questline.db import models  # noqa: F401
from questline.db.base import Base
from questline.db.models import (
    DailyChallengeTemplate,
    UserProfile,
    UserStreakFreeze,
    WeeklyChallengeTemplate,
)
from questline.progression.seed import seed_progression
from questline.progression.xp_award import XpAwardOrchestrator

# Wednesday; the ISO week starts Monday 2026-03-02
FIXED_NOW = datetime(2026, 3, 4, 15, 0, tzinfo=timezone.utc)
TODAY = date(2026, 3, 4)
WEEK_START = date(2026, 3, 2)


class FakeClock:
    """Settable clock handed to the orchestrator."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: int = 1) -> None:
        self.now = self.now + timedelta(days=days)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'questline.db'}",
        timezone="UTC",
        award_max_attempts=3,
        seed_on_startup=False,
    )


@pytest_asyncio.fixture
async def engine(settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    eng = create_async_engine(settings.database_url)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """A direct session for service-level tests."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def seeded_factory(session_factory) -> async_sessionmaker[AsyncSession]:
    """Session factory over a database holding the full seed data."""
    async with session_factory() as session:
        await seed_progression(session)
    return session_factory


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_orchestrator(settings, clock):
    def _make(factory: async_sessionmaker[AsyncSession], **overrides) -> XpAwardOrchestrator:
        cfg = settings.model_copy(update=overrides) if overrides else settings
        return XpAwardOrchestrator(factory, settings=cfg, clock=clock)

    return _make


async def make_profile(
    factory: async_sessionmaker[AsyncSession],
    user_id: str = "user-1",
    available_freezes: int | None = 1,
    **fields,
) -> None:
    """Insert a profile (and freeze bank unless ``available_freezes`` is None)."""
    async with factory() as db:
        db.add(UserProfile(user_id=user_id, **fields))
        if available_freezes is not None:
            db.add(UserStreakFreeze(user_id=user_id, available_freezes=available_freezes))
        await db.commit()


async def add_templates(
    factory: async_sessionmaker[AsyncSession],
    daily: list[dict] | None = None,
    weekly: list[dict] | None = None,
) -> None:
    """Insert challenge templates. Missing name/description are filled from the key."""
    async with factory() as db:
        for row in daily or []:
            db.add(DailyChallengeTemplate(**{"name": row["key"], "description": row["key"], **row}))
        for row in weekly or []:
            db.add(WeeklyChallengeTemplate(**{"name": row["key"], "description": row["key"], **row}))
        await db.commit()
