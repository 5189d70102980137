"""Badge award with insert-or-ignore duplicate prevention and notification."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from laro.database import dialect_insert
from laro.db.models import BadgeDefinition, BadgeNotification, UserBadge
from laro.gamification.levels import LevelChange, LevelManager
from laro.gamification.schemas import BadgeView

logger = logging.getLogger(__name__)


async def get_badge_by_key(db: AsyncSession, key: str) -> BadgeDefinition | None:
    """Fetch a badge definition by key."""
    result = await db.execute(select(BadgeDefinition).where(BadgeDefinition.key == key))
    return result.scalar_one_or_none()


async def award_badge(
    db: AsyncSession,
    user_id: int,
    badge: BadgeView,
    levels: LevelManager,
) -> LevelChange | None:
    """Award a badge to a user.

    Returns the XP level change if awarded, None if the badge was already
    earned (including by a concurrent pass). Handles:
    1. Insert into user_badges (ON CONFLICT DO NOTHING on user/badge)
    2. Insert or reset the badge notification to unshown
    3. Grant badge XP (idempotent via idempotency key)

    Flushes but does not commit.
    """
    now = datetime.now(timezone.utc)

    inserted = await db.execute(
        dialect_insert(db, UserBadge)
        .values(user_id=user_id, badge_id=badge.id, earned_at=now)
        .on_conflict_do_nothing(index_elements=["user_id", "badge_id"])
        .returning(UserBadge.id)
    )
    if inserted.scalar_one_or_none() is None:
        logger.info("Badge %s already awarded to user %s, skipping XP", badge.key, user_id)
        return None

    stmt = dialect_insert(db, BadgeNotification).values(
        user_id=user_id, badge_id=badge.id, shown=False, created_at=now
    )
    await db.execute(
        stmt.on_conflict_do_update(
            index_elements=["user_id", "badge_id"],
            set_={"shown": False, "created_at": stmt.excluded.created_at},
        )
    )

    change = await levels.award_xp(
        user_id,
        badge.xp_reward,
        source="badge",
        source_id=badge.key,
        idempotency_key=f"badge:{badge.key}:{user_id}",
    )
    logger.info("Awarded badge %s to user %s (+%d XP)", badge.key, user_id, badge.xp_reward)
    return change
