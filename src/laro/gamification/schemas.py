"""Pydantic result models for badge evaluation and notifications."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from laro.gamification.levels import LevelChange


class BadgeView(BaseModel):
    """Detached copy of a badge definition, safe to use across commits."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    key: str
    family: str
    tier: int
    title: str
    description: str = ""
    icon: str | None = None
    category: str
    requirement_type: str
    requirement_value: int
    requirement_param: str | None = None
    xp_reward: int
    is_secret: bool = False


class AwardedBadge(BaseModel):
    badge: BadgeView
    earned_tiers: int
    total_tiers: int
    is_rare: bool
    level_change: LevelChange | None = None


class UserBadgeEntry(BaseModel):
    badge: BadgeView
    earned: bool
    earned_at: datetime | None = None


class BadgeNotificationItem(BaseModel):
    notification_id: int
    badge: BadgeView
    current_tier: int
    total_tiers: int
    next_tier_title: str | None = None
    is_rare: bool
    created_at: datetime | None = None
