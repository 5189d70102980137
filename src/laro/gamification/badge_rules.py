"""Badge requirement predicates over a user's aggregated progress.

``collect_snapshot`` materialises everything the predicates need in a
handful of queries; the predicates themselves are pure functions of the
snapshot and a badge's (type, threshold, param).
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from laro.catalog.schemas import question_kind
from laro.config import Settings, get_settings
from laro.db.models import Attempt, AttemptAnswer, Exercise, ExerciseProgress, Question
from laro.scoring.rewards import RewardTier, tiers_at_least


@dataclass(frozen=True)
class ProgressSnapshot:
    """Aggregated statistics for one user at evaluation time."""

    finished_exercise_ids: frozenset[int] = frozenset()
    completed_exercise_ids: frozenset[int] = frozenset()
    best_rewards: dict[int, RewardTier] = field(default_factory=dict)
    time_spent: int = 0
    first_try_emeralds: int = 0
    longest_streak: int = 0
    night_completions: int = 0
    speed_completions: int = 0
    exercises_by_question_type: dict[str, frozenset[int]] = field(default_factory=dict)
    exercises_by_difficulty: dict[str, frozenset[int]] = field(default_factory=dict)

    def exercises_with_best_at_least(self, tier: RewardTier) -> int:
        accepted = tiers_at_least(tier)
        return sum(1 for reward in self.best_rewards.values() if reward in accepted)


def longest_streak(outcomes: Iterable[bool]) -> int:
    """Longest run of consecutive True values in chronological order."""
    current = best = 0
    for correct in outcomes:
        current = current + 1 if correct else 0
        best = max(best, current)
    return best


def _best_at_least(tier: RewardTier) -> Callable[[ProgressSnapshot, str | None], int]:
    return lambda snapshot, _param: snapshot.exercises_with_best_at_least(tier)


# Count-style requirements: qualified when the measure reaches the threshold
MEASURES: dict[str, Callable[[ProgressSnapshot, str | None], int]] = {
    "exercises_completed": lambda s, _p: len(s.finished_exercise_ids),
    "diamonds_earned": _best_at_least(RewardTier.DIAMOND),
    "emeralds_earned": _best_at_least(RewardTier.EMERALD),
    "time_spent": lambda s, _p: s.time_spent,
    "coal_earned": _best_at_least(RewardTier.COAL),
    "copper_earned": _best_at_least(RewardTier.COPPER),
    "iron_earned": _best_at_least(RewardTier.IRON),
    "gold_earned": _best_at_least(RewardTier.GOLD),
    "first_try_emerald": lambda s, _p: s.first_try_emeralds,
    "perfect_streak": lambda s, _p: s.longest_streak,
    "night_completion": lambda s, _p: s.night_completions,
    "speed_completion": lambda s, _p: s.speed_completions,
}


def type_master_progress(snapshot: ProgressSnapshot, question_type: str | None) -> tuple[int, int]:
    """(exercises with gold or better, exercises containing the question type)."""
    targets = snapshot.exercises_by_question_type.get(question_type or "", frozenset())
    accepted = tiers_at_least(RewardTier.GOLD)
    mastered = sum(1 for exercise_id in targets if snapshot.best_rewards.get(exercise_id) in accepted)
    return mastered, len(targets)


def difficulty_progress(snapshot: ProgressSnapshot, difficulty: str | None) -> tuple[int, int]:
    """(completed exercises, exercises) of one difficulty."""
    targets = snapshot.exercises_by_difficulty.get(difficulty or "", frozenset())
    return len(targets & snapshot.completed_exercise_ids), len(targets)


# "Every exercise of a kind" requirements; an empty set never qualifies
COVERAGE: dict[str, Callable[[ProgressSnapshot, str | None], tuple[int, int]]] = {
    "type_master": type_master_progress,
    "difficulty_complete": difficulty_progress,
}


def requirement_met(
    requirement_type: str,
    threshold: int,
    param: str | None,
    snapshot: ProgressSnapshot,
) -> bool:
    """Whether a badge requirement holds. Unknown requirement types never qualify."""
    if requirement_type in COVERAGE:
        done, total = COVERAGE[requirement_type](snapshot, param)
        return total > 0 and done >= total

    measure = MEASURES.get(requirement_type)
    if measure is None:
        return False
    return measure(snapshot, param) >= threshold


def requirement_progress(requirement_type: str, param: str | None, snapshot: ProgressSnapshot) -> int:
    """Current value toward a requirement (0 for unknown types)."""
    if requirement_type in COVERAGE:
        return COVERAGE[requirement_type](snapshot, param)[0]
    measure = MEASURES.get(requirement_type)
    return measure(snapshot, param) if measure else 0


async def collect_snapshot(
    db: AsyncSession,
    user_id: int,
    settings: Settings | None = None,
) -> ProgressSnapshot:
    """Aggregate a user's finished attempts, progress rows and answer history."""
    settings = settings or get_settings()

    attempts = (
        await db.execute(
            select(Attempt.exercise_id, Attempt.finished_at, Attempt.reward, Attempt.elapsed_seconds)
            .where(Attempt.user_id == user_id, Attempt.finished_at.is_not(None))
            .order_by(Attempt.finished_at, Attempt.id)
        )
    ).all()

    finished: set[int] = set()
    first_try_emeralds = 0
    time_spent = 0
    night = 0
    speed = 0
    fast_rewards = {RewardTier.DIAMOND, RewardTier.EMERALD}
    for exercise_id, finished_at, reward, elapsed in attempts:
        tier = RewardTier.parse(reward)
        if exercise_id not in finished and tier is RewardTier.EMERALD:
            first_try_emeralds += 1
        finished.add(exercise_id)
        time_spent += elapsed or 0
        if finished_at.hour < settings.night_hours_end:
            night += 1
        if (elapsed or 0) <= settings.speed_completion_seconds and tier in fast_rewards:
            speed += 1

    progress_rows = (
        await db.execute(
            select(ExerciseProgress.exercise_id, ExerciseProgress.best_reward, ExerciseProgress.completed).where(
                ExerciseProgress.user_id == user_id
            )
        )
    ).all()
    best_rewards: dict[int, RewardTier] = {}
    completed: set[int] = set()
    for exercise_id, best_reward, is_completed in progress_rows:
        tier = RewardTier.parse(best_reward)
        if tier is not None:
            best_rewards[exercise_id] = tier
        if is_completed:
            completed.add(exercise_id)

    outcomes = (
        await db.execute(
            select(AttemptAnswer.correct)
            .join(Attempt, AttemptAnswer.attempt_id == Attempt.id)
            .where(Attempt.user_id == user_id, Attempt.finished_at.is_not(None))
            .order_by(Attempt.finished_at, Attempt.id, AttemptAnswer.id)
        )
    ).scalars()

    by_type: dict[str, set[int]] = {}
    for exercise_id, qtype in (await db.execute(select(Question.exercise_id, Question.type).distinct())).all():
        by_type.setdefault(qtype, set()).add(exercise_id)
        by_type.setdefault(question_kind(qtype), set()).add(exercise_id)

    by_difficulty: dict[str, set[int]] = {}
    for exercise_id, difficulty in (await db.execute(select(Exercise.id, Exercise.difficulty))).all():
        by_difficulty.setdefault(difficulty, set()).add(exercise_id)

    return ProgressSnapshot(
        finished_exercise_ids=frozenset(finished),
        completed_exercise_ids=frozenset(completed),
        best_rewards=best_rewards,
        time_spent=time_spent,
        first_try_emeralds=first_try_emeralds,
        longest_streak=longest_streak(outcomes),
        night_completions=night,
        speed_completions=speed,
        exercises_by_question_type={k: frozenset(v) for k, v in by_type.items()},
        exercises_by_difficulty={k: frozenset(v) for k, v in by_difficulty.items()},
    )
