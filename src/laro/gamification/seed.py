"""Default badge catalog, seeded idempotently by key."""

from __future__ import annotations

import logging
import re

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from laro.db.models import BadgeDefinition

logger = logging.getLogger(__name__)

_TIER_SUFFIX = re.compile(r"_\d+$")


def derive_family(key: str) -> str:
    """Family of a legacy badge key, e.g. "getting_started_2" -> "getting_started"."""
    return _TIER_SUFFIX.sub("", key)


def _tiered(
    family: str,
    title: str,
    description: str,
    category: str,
    requirement_type: str,
    thresholds: list[tuple[int, int]],
    icon: str | None = None,
) -> list[dict]:
    """One definition per (threshold, xp_reward), tiers numbered from 1."""
    return [
        {
            "key": f"{family}_{tier}",
            "family": family,
            "tier": tier,
            "title": f"{title} {'I' * tier}" if tier <= 3 else f"{title} {tier}",
            "description": description.format(n=threshold),
            "icon": icon,
            "category": category,
            "requirement_type": requirement_type,
            "requirement_value": threshold,
            "xp_reward": xp,
        }
        for tier, (threshold, xp) in enumerate(thresholds, start=1)
    ]


BADGE_SEED_DATA: list[dict] = [
    # Progress
    *_tiered("getting_started", "Getting Started", "Finish {n} different exercises", "progress",
             "exercises_completed", [(1, 50), (5, 100), (10, 200)], icon="flag"),
    *_tiered("dedicated", "Dedicated", "Spend {n} seconds on finished exercises", "progress",
             "time_spent", [(600, 50), (3600, 150)], icon="clock"),
    # Rewards
    *_tiered("copper_collector", "Copper Collector", "Reach copper or better on {n} exercises", "rewards",
             "copper_earned", [(3, 50), (10, 100)], icon="copper"),
    *_tiered("iron_collector", "Iron Collector", "Reach iron or better on {n} exercises", "rewards",
             "iron_earned", [(3, 75), (10, 150)], icon="iron"),
    *_tiered("gold_collector", "Gold Collector", "Reach gold or better on {n} exercises", "rewards",
             "gold_earned", [(3, 100), (10, 200)], icon="gold"),
    *_tiered("diamond_hunter", "Diamond Hunter", "Reach diamond or better on {n} exercises", "rewards",
             "diamonds_earned", [(1, 100), (5, 200), (10, 400)], icon="diamond"),
    *_tiered("emerald_hunter", "Emerald Hunter", "Earn emerald on {n} exercises", "rewards",
             "emeralds_earned", [(1, 150), (5, 300)], icon="emerald"),
    # Skill
    *_tiered("perfect_streak", "Perfect Streak", "Answer {n} questions in a row correctly", "skill",
             "perfect_streak", [(5, 50), (10, 100), (25, 250)], icon="fire"),
    {
        "key": "first_try_emerald",
        "family": "first_try_emerald",
        "tier": 1,
        "title": "Natural Talent",
        "description": "Earn emerald on the very first attempt of an exercise",
        "icon": "star",
        "category": "mastery",
        "requirement_type": "first_try_emerald",
        "requirement_value": 1,
        "xp_reward": 250,
    },
    # Mastery
    *[
        {
            "key": f"{qtype}_master",
            "family": f"{qtype}_master",
            "tier": 1,
            "title": f"{label} Master",
            "description": f"Reach gold or better on every exercise with {label.lower()} questions",
            "icon": "crown",
            "category": "mastery",
            "requirement_type": "type_master",
            "requirement_value": 1,
            "requirement_param": qtype,
            "xp_reward": 300,
        }
        for qtype, label in (("choice", "Choice"), ("ordering", "Ordering"), ("matching", "Matching"))
    ],
    *[
        {
            "key": f"story_{difficulty}",
            "family": f"story_{difficulty}",
            "tier": 1,
            "title": f"{difficulty.capitalize()} Story",
            "description": f"Complete every {difficulty} exercise",
            "icon": "book",
            "category": "mastery",
            "requirement_type": "difficulty_complete",
            "requirement_value": 1,
            "requirement_param": difficulty,
            "xp_reward": 200 if difficulty == "easy" else 500,
        }
        for difficulty in ("easy", "hard")
    ],
    # Secret
    {
        "key": "night_owl",
        "family": "night_owl",
        "tier": 1,
        "title": "Night Owl",
        "description": "Finish an exercise between midnight and 05:00",
        "icon": "moon",
        "category": "secret",
        "requirement_type": "night_completion",
        "requirement_value": 1,
        "xp_reward": 100,
        "is_secret": True,
    },
    {
        "key": "speedster",
        "family": "speedster",
        "tier": 1,
        "title": "Speedster",
        "description": "Finish an exercise flawlessly in 30 seconds or less",
        "icon": "bolt",
        "category": "secret",
        "requirement_type": "speed_completion",
        "requirement_value": 1,
        "xp_reward": 100,
        "is_secret": True,
    },
]


async def seed_badges(db: AsyncSession, definitions: list[dict] | None = None) -> int:
    """Insert or update badge definitions by key. Returns number of badges seeded."""
    definitions = BADGE_SEED_DATA if definitions is None else definitions
    existing = {b.key: b for b in (await db.execute(select(BadgeDefinition))).scalars()}

    for sort_order, data in enumerate(definitions, start=1):
        values = {
            "family": derive_family(data["key"]),
            "tier": 1,
            "description": "",
            "icon": None,
            "requirement_param": None,
            "is_secret": False,
            "sort_order": sort_order,
            **data,
        }
        badge = existing.get(values["key"])
        if badge is None:
            db.add(BadgeDefinition(**values))
        else:
            for field, value in values.items():
                setattr(badge, field, value)

    await db.commit()
    logger.info("Seeded %d badge definitions", len(definitions))
    return len(definitions)
