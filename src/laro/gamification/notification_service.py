"""Badge notification queue polled by the client after each attempt."""

from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from laro.config import Settings, get_settings
from laro.context import RequestContext
from laro.db.models import BadgeDefinition, BadgeNotification
from laro.gamification.schemas import BadgeNotificationItem, BadgeView


class NotificationService:
    """Reads and drains a user's unshown badge notifications."""

    def __init__(self, db: AsyncSession, settings: Settings | None = None) -> None:
        self.db = db
        self.settings = settings or get_settings()

    async def get_unshown_notifications(self, ctx: RequestContext) -> list[BadgeNotificationItem]:
        """Unshown notifications, oldest first, with tier progression info."""
        result = await self.db.execute(
            select(BadgeNotification)
            .where(
                BadgeNotification.user_id == ctx.user_id,
                BadgeNotification.shown.is_(False),
            )
            .order_by(BadgeNotification.created_at, BadgeNotification.id)
        )
        notifications = list(result.scalars().all())
        if not notifications:
            return []

        families = {n.badge.family for n in notifications}
        tier_rows = await self.db.execute(
            select(BadgeDefinition.family, BadgeDefinition.tier, BadgeDefinition.title)
            .where(BadgeDefinition.family.in_(families))
            .order_by(BadgeDefinition.tier)
        )
        tiers: dict[str, dict[int, str]] = {}
        for family, tier, title in tier_rows.all():
            tiers.setdefault(family, {})[tier] = title

        items = []
        for n in notifications:
            badge = BadgeView.model_validate(n.badge)
            family_tiers = tiers.get(badge.family, {})
            items.append(
                BadgeNotificationItem(
                    notification_id=n.id,
                    badge=badge,
                    current_tier=badge.tier,
                    total_tiers=max(1, len(family_tiers)),
                    next_tier_title=family_tiers.get(badge.tier + 1),
                    is_rare=badge.category in self.settings.rare_badge_categories,
                    created_at=n.created_at,
                )
            )
        return items

    async def mark_notifications_shown(self, ctx: RequestContext, notification_ids: list[int]) -> int:
        """Mark the caller's notifications as shown. Returns the number updated."""
        if not notification_ids:
            return 0
        result = await self.db.execute(
            update(BadgeNotification)
            .where(
                BadgeNotification.id.in_(notification_ids),
                BadgeNotification.user_id == ctx.user_id,
            )
            .values(shown=True)
        )
        await self.db.commit()
        return result.rowcount or 0

    async def drain_notifications(self, ctx: RequestContext) -> list[BadgeNotificationItem]:
        """Fetch unshown notifications and mark them shown in one call."""
        items = await self.get_unshown_notifications(ctx)
        await self.mark_notifications_shown(ctx, [i.notification_id for i in items])
        return items
