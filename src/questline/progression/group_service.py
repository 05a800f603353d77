"""Best-effort propagation of a completed action into the user's groups."""

from __future__ import annotations

import logging
from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from questline.db.models import GroupChallenge, GroupMember
from questline.progression.schemas import ChallengeType

logger = logging.getLogger(__name__)

# Group challenge type that advances by XP earned rather than by action count
XP_CHALLENGE_TYPE = "xp"


async def get_memberships(db: AsyncSession, user_id: str) -> list[GroupMember]:
    result = await db.execute(select(GroupMember).where(GroupMember.user_id == user_id))
    return list(result.scalars().all())


async def propagate_to_groups(
    db: AsyncSession,
    user_id: str,
    xp_earned: int,
    challenge_type: ChallengeType | None,
    increment: int,
    week_start: date,
    now: datetime,
) -> int:
    """Credit ``xp_earned`` to every group the user belongs to.

    Also advances each group's open challenge for the week when its type
    matches the action. Completing a group challenge grants no XP here.
    Returns the number of groups updated.
    """
    memberships = await get_memberships(db, user_id)
    if not memberships:
        return 0

    action_type = None
    if challenge_type is not None:
        action_type = ChallengeType.TASKS if challenge_type == ChallengeType.HIGH_PRIORITY else challenge_type

    for member in memberships:
        member.weekly_xp += xp_earned
        member.group.total_xp += xp_earned
        member.group.updated_at = now

        result = await db.execute(
            select(GroupChallenge).where(
                GroupChallenge.group_id == member.group_id,
                GroupChallenge.week_start == week_start,
                GroupChallenge.completed.is_(False),
            )
        )
        for challenge in result.scalars().all():
            if challenge.challenge_type == XP_CHALLENGE_TYPE:
                amount = xp_earned
            elif action_type is not None and challenge.challenge_type == action_type.value:
                amount = increment
            else:
                continue

            challenge.current_progress += amount
            if challenge.current_progress >= challenge.target_value:
                challenge.completed = True
                challenge.completed_at = now
                logger.info("Group %s completed challenge %s", member.group_id, challenge.name)

    await db.flush()
    return len(memberships)
