"""Library bootstrap: logging, database and the award orchestrator."""

from __future__ import annotations

import logging

from questline.config import Settings, get_settings
from questline.database import close_db, get_session_factory, init_db
from questline.logging_config import setup_logging
from questline.progression.seed import seed_progression
from questline.progression.xp_award import XpAwardOrchestrator

logger = logging.getLogger(__name__)


async def init_progression(settings: Settings | None = None) -> XpAwardOrchestrator:
    """Start up the progression engine and return a ready orchestrator."""
    settings = settings or get_settings()
    setup_logging(settings)
    await init_db(settings.database_url, echo=settings.database_echo)

    if settings.seed_on_startup:
        # Seed data is idempotent
        try:
            async with get_session_factory()() as db:
                await seed_progression(db)
        except Exception:
            logger.warning("Progression seeding failed (tables may not exist yet)", exc_info=True)

    return XpAwardOrchestrator(get_session_factory(), settings=settings)


async def close_progression() -> None:
    await close_db()
