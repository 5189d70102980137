"""Badge requirement predicate tests over hand-built progress snapshots."""

from laro.gamification.badge_rules import (
    ProgressSnapshot,
    longest_streak,
    requirement_met,
    requirement_progress,
)
from laro.scoring.rewards import RewardTier


def _snapshot(**kwargs) -> ProgressSnapshot:
    return ProgressSnapshot(**kwargs)


class TestLongestStreak:
    def test_empty(self):
        assert longest_streak([]) == 0

    def test_resets_on_wrong_answer(self):
        assert longest_streak([True, True, False, True, True, True, False]) == 3

    def test_all_correct(self):
        assert longest_streak([True] * 7) == 7


class TestCountRequirements:
    def test_exercises_completed(self):
        snapshot = _snapshot(finished_exercise_ids=frozenset({1, 2, 3}))
        assert requirement_met("exercises_completed", 3, None, snapshot) is True
        assert requirement_met("exercises_completed", 4, None, snapshot) is False

    def test_tier_counts_include_higher_tiers(self):
        snapshot = _snapshot(
            best_rewards={1: RewardTier.GOLD, 2: RewardTier.DIAMOND, 3: RewardTier.EMERALD, 4: RewardTier.COAL}
        )
        assert requirement_progress("gold_earned", None, snapshot) == 3
        assert requirement_progress("diamonds_earned", None, snapshot) == 2
        assert requirement_progress("emeralds_earned", None, snapshot) == 1
        assert requirement_progress("coal_earned", None, snapshot) == 4

    def test_time_spent(self):
        snapshot = _snapshot(time_spent=600)
        assert requirement_met("time_spent", 600, None, snapshot) is True
        assert requirement_met("time_spent", 601, None, snapshot) is False

    def test_streak_and_secret_counters(self):
        snapshot = _snapshot(longest_streak=10, night_completions=1, speed_completions=0)
        assert requirement_met("perfect_streak", 10, None, snapshot) is True
        assert requirement_met("night_completion", 1, None, snapshot) is True
        assert requirement_met("speed_completion", 1, None, snapshot) is False

    def test_unknown_type_never_qualifies(self):
        snapshot = _snapshot(finished_exercise_ids=frozenset({1}))
        assert requirement_met("shares_submitted", 0, None, snapshot) is False
        assert requirement_progress("shares_submitted", None, snapshot) == 0


class TestCoverageRequirements:
    """type_master and difficulty_complete need every target exercise."""

    def test_type_master_requires_gold_everywhere(self):
        snapshot = _snapshot(
            best_rewards={1: RewardTier.GOLD, 2: RewardTier.IRON},
            exercises_by_question_type={"ordering": frozenset({1, 2})},
        )
        assert requirement_met("type_master", 1, "ordering", snapshot) is False
        assert requirement_progress("type_master", "ordering", snapshot) == 1

        upgraded = _snapshot(
            best_rewards={1: RewardTier.GOLD, 2: RewardTier.EMERALD},
            exercises_by_question_type={"ordering": frozenset({1, 2})},
        )
        assert requirement_met("type_master", 1, "ordering", upgraded) is True

    def test_type_master_with_no_exercises_never_qualifies(self):
        snapshot = _snapshot(best_rewards={1: RewardTier.EMERALD})
        assert requirement_met("type_master", 1, "matching", snapshot) is False

    def test_difficulty_complete(self):
        snapshot = _snapshot(
            completed_exercise_ids=frozenset({1, 2}),
            exercises_by_difficulty={"easy": frozenset({1, 2}), "hard": frozenset({3})},
        )
        assert requirement_met("difficulty_complete", 1, "easy", snapshot) is True
        assert requirement_met("difficulty_complete", 1, "hard", snapshot) is False
        assert requirement_met("difficulty_complete", 1, None, snapshot) is False
