"""Level arithmetic and the only writer of a user's XP/level row.

Levels are linear: every ``xp_per_level`` XP is one level, starting at 1.
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from laro.config import get_settings
from laro.database import dialect_insert
from laro.db.models import UserProgression, XPTransaction

logger = structlog.get_logger()

DEFAULT_XP_PER_LEVEL = 1000


def compute_level(xp: int, xp_per_level: int = DEFAULT_XP_PER_LEVEL) -> int:
    """Level for a cumulative XP total. 0 XP is level 1."""
    return max(0, xp) // xp_per_level + 1


def xp_for_next_level(xp: int, xp_per_level: int = DEFAULT_XP_PER_LEVEL) -> int:
    """XP still missing until the next level boundary."""
    return compute_level(xp, xp_per_level) * xp_per_level - xp


def level_progress(xp: int, xp_per_level: int = DEFAULT_XP_PER_LEVEL) -> float:
    """Progress through the current level, 0-100."""
    level = compute_level(xp, xp_per_level)
    xp_into_level = xp - (level - 1) * xp_per_level
    return xp_into_level / xp_per_level * 100


class LevelInfo(BaseModel):
    points: int
    level: int
    xp_for_next_level: int
    level_progress: float


class LevelChange(BaseModel):
    granted: bool
    xp_awarded: int
    old_points: int
    new_points: int
    old_level: int
    new_level: int
    leveled_up: bool
    levels_gained: int
    xp_for_next_level: int
    level_progress: float


def level_info(xp: int, xp_per_level: int = DEFAULT_XP_PER_LEVEL) -> LevelInfo:
    return LevelInfo(
        points=xp,
        level=compute_level(xp, xp_per_level),
        xp_for_next_level=xp_for_next_level(xp, xp_per_level),
        level_progress=level_progress(xp, xp_per_level),
    )


class LevelManager:
    """Reads and mutates a user's cumulative XP and level."""

    def __init__(self, db: AsyncSession, xp_per_level: int | None = None) -> None:
        self.db = db
        self.xp_per_level = max(1, xp_per_level or get_settings().xp_per_level)

    async def lock_progression(self, user_id: int) -> UserProgression:
        """Get-or-create the user's progression row and hold a row lock on it.

        Concurrent attempt finishes and badge grants for the same user queue
        up behind this lock until the holding transaction commits.
        """
        await self.db.execute(
            dialect_insert(self.db, UserProgression)
            .values(user_id=user_id, total_xp=0, level=1, updated_at=datetime.now(timezone.utc))
            .on_conflict_do_nothing(index_elements=["user_id"])
        )
        result = await self.db.execute(
            select(UserProgression)
            .where(UserProgression.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def _record_transaction(
        self,
        user_id: int,
        amount: int,
        source: str,
        source_id: str | None,
        idempotency_key: str | None,
    ) -> bool:
        """Insert the XP log row. False if the idempotency key was already used."""
        stmt = (
            dialect_insert(self.db, XPTransaction)
            .values(
                user_id=user_id,
                amount=amount,
                source=source,
                source_id=source_id,
                idempotency_key=idempotency_key,
                created_at=datetime.now(timezone.utc),
            )
            .on_conflict_do_nothing(index_elements=["idempotency_key"])
            .returning(XPTransaction.id)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def award_xp(
        self,
        user_id: int,
        amount: int,
        source: str = "exercise",
        source_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> LevelChange:
        """Add XP, recompute the level and report whether the user levelled up.

        A repeated ``idempotency_key`` is a no-op reported with granted=False.
        Flushes but does not commit; the caller owns the transaction.
        """
        progression = await self.lock_progression(user_id)
        old_points = progression.total_xp
        old_level = progression.level

        if amount and not await self._record_transaction(user_id, amount, source, source_id, idempotency_key):
            logger.info("xp_duplicate_skipped", user_id=user_id, source=source, idempotency_key=idempotency_key)
            return self._change(old_points, old_points, old_level, old_level, granted=False, amount=0)

        new_points = old_points + amount
        new_level = compute_level(new_points, self.xp_per_level)
        progression.total_xp = new_points
        progression.level = new_level
        progression.updated_at = datetime.now(timezone.utc)
        await self.db.flush()

        leveled_up = new_level > old_level
        logger.info(
            "xp_awarded",
            user_id=user_id,
            amount=amount,
            source=source,
            old_points=old_points,
            new_points=new_points,
            old_level=old_level,
            new_level=new_level,
            leveled_up=leveled_up,
        )
        return self._change(old_points, new_points, old_level, new_level, granted=True, amount=amount)

    def _change(
        self,
        old_points: int,
        new_points: int,
        old_level: int,
        new_level: int,
        *,
        granted: bool,
        amount: int,
    ) -> LevelChange:
        return LevelChange(
            granted=granted,
            xp_awarded=amount,
            old_points=old_points,
            new_points=new_points,
            old_level=old_level,
            new_level=new_level,
            leveled_up=new_level > old_level,
            levels_gained=new_level - old_level,
            xp_for_next_level=xp_for_next_level(new_points, self.xp_per_level),
            level_progress=level_progress(new_points, self.xp_per_level),
        )

    async def recalculate_level(self, user_id: int) -> LevelInfo:
        """Recompute the stored level from stored XP only (data repair). Idempotent."""
        progression = await self.lock_progression(user_id)
        correct_level = compute_level(progression.total_xp, self.xp_per_level)
        if progression.level != correct_level:
            logger.info("level_recalculated", user_id=user_id, old_level=progression.level, new_level=correct_level)
            progression.level = correct_level
            progression.updated_at = datetime.now(timezone.utc)
        await self.db.flush()
        return level_info(progression.total_xp, self.xp_per_level)

    async def get_level_info(self, user_id: int) -> LevelInfo:
        """Current XP and level progress; a user without XP is level 1."""
        progression = await self.db.get(UserProgression, user_id)
        xp = progression.total_xp if progression else 0
        return level_info(xp, self.xp_per_level)
