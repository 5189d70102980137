"""Reward tiers derived from an attempt's score percentage.

Thresholds are evaluated ascending, each overwriting the previous one.
Diamond upgrades to emerald when the attempt also beat the time limit.
"""

from __future__ import annotations

from enum import Enum


class RewardTier(str, Enum):
    COAL = "coal"
    COPPER = "copper"
    IRON = "iron"
    GOLD = "gold"
    DIAMOND = "diamond"
    EMERALD = "emerald"

    @property
    def rank(self) -> int:
        return _TIER_ORDER.index(self)

    @classmethod
    def parse(cls, value: str | None) -> RewardTier | None:
        """Parse a stored reward column; unknown or empty values are None."""
        if not value:
            return None
        try:
            return cls(value)
        except ValueError:
            return None


_TIER_ORDER: tuple[RewardTier, ...] = (
    RewardTier.COAL,
    RewardTier.COPPER,
    RewardTier.IRON,
    RewardTier.GOLD,
    RewardTier.DIAMOND,
    RewardTier.EMERALD,
)

REWARD_THRESHOLDS: list[tuple[float, RewardTier]] = [
    (70.0, RewardTier.COPPER),
    (80.0, RewardTier.IRON),
    (90.0, RewardTier.GOLD),
    (100.0, RewardTier.DIAMOND),
]


def tiers_at_least(tier: RewardTier) -> frozenset[RewardTier]:
    """All tiers ranked at or above ``tier``."""
    return frozenset(t for t in _TIER_ORDER if t.rank >= tier.rank)


def better_reward(current: RewardTier | None, candidate: RewardTier) -> RewardTier:
    """The higher of two tiers; None counts as below coal."""
    if current is None or candidate.rank > current.rank:
        return candidate
    return current


def compute_percentage(total_awarded: int, total_possible: int) -> float:
    """Percent of available points earned (0 when the exercise is worth nothing)."""
    if total_possible <= 0:
        return 0.0
    return total_awarded * 100 / total_possible


def resolve_reward(percentage: float, elapsed_seconds: int, time_limit_seconds: int) -> RewardTier:
    """Map a score percentage and elapsed time to a reward tier."""
    reward = RewardTier.COAL
    for threshold, tier in REWARD_THRESHOLDS:
        if percentage >= threshold:
            reward = tier

    if reward is RewardTier.DIAMOND and 0 < elapsed_seconds <= time_limit_seconds:
        reward = RewardTier.EMERALD
    return reward
