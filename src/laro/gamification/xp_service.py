"""XP earned by a finished attempt, and the portion of it that is credited.

An attempt's score is its final XP (base + tier bonus). Only the part that
beats the user's previous best score on the same exercise is credited.
"""

from __future__ import annotations

from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from laro.db.models import Attempt
from laro.scoring.rewards import RewardTier

# Bonus as a percentage of base XP
BONUS_PERCENT: dict[RewardTier, int] = {
    RewardTier.COAL: 0,
    RewardTier.COPPER: 40,
    RewardTier.IRON: 60,
    RewardTier.GOLD: 80,
    RewardTier.DIAMOND: 100,
    RewardTier.EMERALD: 150,
}


class XPBreakdown(BaseModel):
    base_xp: int
    bonus_xp: int
    final_xp: int


class XPCredit(BaseModel):
    prev_best: int
    incremental_xp: int
    maxed_out: bool


def compute_xp(total_awarded: int, reward: RewardTier) -> XPBreakdown:
    """Base XP is the points awarded; the bonus scales with the reward tier."""
    base_xp = max(0, total_awarded)
    bonus_xp = base_xp * BONUS_PERCENT[reward] // 100
    return XPBreakdown(base_xp=base_xp, bonus_xp=bonus_xp, final_xp=base_xp + bonus_xp)


def credit_xp(final_xp: int, prev_best: int) -> XPCredit:
    """Credit only the improvement over the previous best.

    ``maxed_out`` distinguishes re-earning the existing best exactly from a
    strictly worse attempt; both credit nothing.
    """
    incremental_xp = max(0, final_xp - prev_best)
    return XPCredit(
        prev_best=prev_best,
        incremental_xp=incremental_xp,
        maxed_out=incremental_xp == 0 and final_xp == prev_best,
    )


async def get_previous_best(
    db: AsyncSession,
    user_id: int,
    exercise_id: int,
    exclude_attempt_id: int | None = None,
) -> int:
    """Highest score over the user's finished attempts on an exercise (0 if none)."""
    stmt = select(func.max(Attempt.score)).where(
        Attempt.user_id == user_id,
        Attempt.exercise_id == exercise_id,
        Attempt.finished_at.is_not(None),
    )
    if exclude_attempt_id is not None:
        stmt = stmt.where(Attempt.id != exclude_attempt_id)
    result = await db.execute(stmt)
    return int(result.scalar() or 0)
