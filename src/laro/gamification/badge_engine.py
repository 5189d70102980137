"""Badge engine: evaluates tiered badge families against a user's progress.

Per family the lifecycle is Locked -> Qualified -> Awarded. A pass awards
only the highest qualifying tier of each family; lower tiers that were
skipped are not back-filled later: only tiers above the highest one the
user holds are candidates. The award insert itself ignores duplicates, so
running a pass twice (even concurrently) never grants XP twice.
"""

from __future__ import annotations

from itertools import groupby

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from laro.config import Settings, get_settings
from laro.context import RequestContext
from laro.db.models import BadgeDefinition, UserBadge
from laro.gamification.badge_rules import collect_snapshot, requirement_met, requirement_progress
from laro.gamification.badge_service import award_badge, get_badge_by_key
from laro.gamification.levels import LevelManager
from laro.gamification.schemas import AwardedBadge, BadgeView, UserBadgeEntry

logger = structlog.get_logger()


class BadgeEngine:
    """Evaluates and awards badges for one user at a time."""

    def __init__(
        self,
        db: AsyncSession,
        settings: Settings | None = None,
        levels: LevelManager | None = None,
    ) -> None:
        self.db = db
        self.settings = settings or get_settings()
        self.levels = levels or LevelManager(db, self.settings.xp_per_level)

    def is_rare(self, badge: BadgeView) -> bool:
        return badge.category in self.settings.rare_badge_categories

    async def _earned_tiers(self, user_id: int) -> dict[str, int]:
        """Highest tier the user holds in each family."""
        result = await self.db.execute(
            select(BadgeDefinition.family, func.max(BadgeDefinition.tier))
            .join(UserBadge, UserBadge.badge_id == BadgeDefinition.id)
            .where(UserBadge.user_id == user_id)
            .group_by(BadgeDefinition.family)
        )
        return {family: tier for family, tier in result.all()}

    async def _candidate_badges(self, user_id: int) -> list[BadgeView]:
        """Tiers above the user's highest earned tier of each family, ordered by family."""
        earned = await self._earned_tiers(user_id)
        result = await self.db.execute(
            select(BadgeDefinition).order_by(BadgeDefinition.family, BadgeDefinition.tier)
        )
        return [
            BadgeView.model_validate(b)
            for b in result.scalars()
            if b.tier > earned.get(b.family, 0)
        ]

    async def _family_sizes(self) -> dict[str, int]:
        result = await self.db.execute(
            select(BadgeDefinition.family, func.count(BadgeDefinition.id)).group_by(BadgeDefinition.family)
        )
        return {family: count for family, count in result.all()}

    async def check_and_award_badges(self, ctx: RequestContext) -> list[AwardedBadge]:
        """Run one evaluation pass and return the newly awarded badges.

        Each award commits on its own; a failing award is rolled back and
        logged and the pass carries on with the next family.
        """
        ctx.bind()
        user_id = ctx.user_id

        snapshot = await collect_snapshot(self.db, user_id, self.settings)
        candidates = await self._candidate_badges(user_id)
        family_sizes = await self._family_sizes()

        awarded: list[AwardedBadge] = []
        for family, group in groupby(candidates, key=lambda b: b.family):
            tiers = list(group)
            qualifying = [
                b for b in tiers
                if requirement_met(b.requirement_type, b.requirement_value, b.requirement_param, snapshot)
            ]
            if not qualifying:
                continue

            top = max(qualifying, key=lambda b: b.tier)
            try:
                change = await award_badge(self.db, user_id, top, self.levels)
                await self.db.commit()
            except SQLAlchemyError:
                await self.db.rollback()
                logger.exception("badge_award_failed", user_id=user_id, badge=top.key)
                continue

            if change is None:
                continue

            awarded.append(
                AwardedBadge(
                    badge=top,
                    earned_tiers=len(qualifying),
                    total_tiers=family_sizes.get(family, len(tiers)),
                    is_rare=self.is_rare(top),
                    level_change=change,
                )
            )

        if awarded:
            logger.info("badges_awarded", user_id=user_id, badges=[a.badge.key for a in awarded])
        return awarded

    async def list_user_badges(self, ctx: RequestContext) -> list[UserBadgeEntry]:
        """All badges with earned state. Secret badges stay hidden until earned."""
        result = await self.db.execute(
            select(BadgeDefinition, UserBadge.earned_at)
            .outerjoin(
                UserBadge,
                (UserBadge.badge_id == BadgeDefinition.id) & (UserBadge.user_id == ctx.user_id),
            )
            .order_by(BadgeDefinition.category, BadgeDefinition.tier, BadgeDefinition.id)
        )
        entries = [
            UserBadgeEntry(badge=BadgeView.model_validate(badge), earned=earned_at is not None, earned_at=earned_at)
            for badge, earned_at in result.all()
            if not badge.is_secret or earned_at is not None
        ]
        # Earned first; sort is stable so catalog order holds within each half
        entries.sort(key=lambda e: not e.earned)
        return entries

    async def badge_progress(self, ctx: RequestContext, badge_key: str) -> int | None:
        """Current value toward a badge's requirement, or None for an unknown badge."""
        badge = await get_badge_by_key(self.db, badge_key)
        if badge is None:
            return None
        snapshot = await collect_snapshot(self.db, ctx.user_id, self.settings)
        return requirement_progress(badge.requirement_type, badge.requirement_param, snapshot)
