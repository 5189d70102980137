"""Reward tier resolution tests: thresholds and the emerald time bound."""

import pytest

from laro.scoring.rewards import (
    RewardTier,
    better_reward,
    compute_percentage,
    resolve_reward,
    tiers_at_least,
)


class TestComputePercentage:
    def test_zero_possible_is_zero(self):
        assert compute_percentage(0, 0) == 0.0
        assert compute_percentage(5, 0) == 0.0

    def test_exact_boundaries(self):
        assert compute_percentage(7, 10) == 70.0
        assert compute_percentage(9, 10) == 90.0
        assert compute_percentage(20, 20) == 100.0


class TestResolveReward:
    """Thresholds ascend; diamond upgrades to emerald within the time limit."""

    @pytest.mark.parametrize(
        ("percentage", "expected"),
        [
            (0.0, RewardTier.COAL),
            (69.9, RewardTier.COAL),
            (70.0, RewardTier.COPPER),
            (79.99, RewardTier.COPPER),
            (80.0, RewardTier.IRON),
            (90.0, RewardTier.GOLD),
            (99.9, RewardTier.GOLD),
        ],
    )
    def test_thresholds(self, percentage, expected):
        assert resolve_reward(percentage, 10, 60) is expected

    def test_perfect_within_limit_is_emerald(self):
        assert resolve_reward(100.0, 45, 60) is RewardTier.EMERALD

    def test_perfect_at_limit_is_emerald(self):
        assert resolve_reward(100.0, 60, 60) is RewardTier.EMERALD

    def test_perfect_over_limit_is_diamond(self):
        assert resolve_reward(100.0, 61, 60) is RewardTier.DIAMOND

    def test_zero_elapsed_is_not_emerald(self):
        """A missing timer reading never earns the time bonus."""
        assert resolve_reward(100.0, 0, 60) is RewardTier.DIAMOND

    def test_fast_but_imperfect_stays_gold(self):
        assert resolve_reward(95.0, 5, 60) is RewardTier.GOLD


class TestTierOrder:
    def test_rank_order(self):
        ranks = [t.rank for t in RewardTier]
        assert ranks == sorted(ranks)
        assert RewardTier.EMERALD.rank > RewardTier.DIAMOND.rank > RewardTier.COAL.rank

    def test_better_reward_never_decreases(self):
        assert better_reward(None, RewardTier.COAL) is RewardTier.COAL
        assert better_reward(RewardTier.GOLD, RewardTier.IRON) is RewardTier.GOLD
        assert better_reward(RewardTier.GOLD, RewardTier.EMERALD) is RewardTier.EMERALD

    def test_tiers_at_least(self):
        assert tiers_at_least(RewardTier.DIAMOND) == {RewardTier.DIAMOND, RewardTier.EMERALD}
        assert len(tiers_at_least(RewardTier.COAL)) == 6

    def test_parse(self):
        assert RewardTier.parse("gold") is RewardTier.GOLD
        assert RewardTier.parse("") is None
        assert RewardTier.parse(None) is None
        assert RewardTier.parse("platinum") is None
