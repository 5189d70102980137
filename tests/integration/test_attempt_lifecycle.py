"""Attempt lifecycle: start, answer, finish, replay."""

from __future__ import annotations

import pytest
from sqlalchemy import func, select

from laro.attempts.service import AttemptService
from laro.catalog.service import CatalogService
from laro.context import RequestContext
from laro.db.models import Attempt, AttemptAnswer, ExerciseProgress
from laro.exceptions import (
    AttemptClosedError,
    AttemptNotFoundError,
    ExerciseNotFoundError,
    NotFoundError,
    QuestionNotFoundError,
)
from laro.gamification.levels import LevelManager
from laro.scoring.rewards import RewardTier


async def _play(service, ctx, db, exercise_id, settings, *, wrong=0, elapsed=45):
    """Start an attempt, answer every question (the first ``wrong`` incorrectly) and finish."""
    questions = await CatalogService(db, settings).list_questions(exercise_id)
    attempt_id = await service.start_attempt(ctx, exercise_id)
    for i, question in enumerate(questions):
        want_correct = i >= wrong
        choice = next(c for c in question.choices if c.is_correct is want_correct)
        await service.submit_answer(ctx, attempt_id, question.id, {"choice_id": choice.id})
    return await service.finish_attempt(ctx, attempt_id, elapsed_seconds=elapsed)


class TestFinishAttempt:
    """End-to-end scoring, reward and XP crediting."""

    @pytest.mark.asyncio
    async def test_perfect_fast_attempt_is_emerald(self, db_session, ctx, user, choice_exercise, settings):
        service = AttemptService(db_session, settings)
        result = await _play(service, ctx, db_session, choice_exercise.id, settings)

        assert result.percentage == 100.0
        assert result.reward is RewardTier.EMERALD
        assert (result.base_xp, result.bonus_xp, result.score) == (20, 30, 50)
        assert result.xp_earned == 50
        assert result.maxed_out is False
        assert result.new_level == 1
        assert result.leveled_up is False
        assert result.correct_count == 2
        assert result.total_questions == 2
        assert result.running_correctness == [True, True]
        assert result.new_badges == []

        info = await LevelManager(db_session, settings.xp_per_level).get_level_info(user.id)
        assert info.points == 50

    @pytest.mark.asyncio
    async def test_zero_elapsed_stays_diamond(self, db_session, ctx, choice_exercise, settings):
        service = AttemptService(db_session, settings)
        result = await _play(service, ctx, db_session, choice_exercise.id, settings, elapsed=0)
        assert result.reward is RewardTier.DIAMOND
        assert result.score == 40

    @pytest.mark.asyncio
    async def test_replaying_same_score_is_maxed_out(self, db_session, ctx, user, choice_exercise, settings):
        service = AttemptService(db_session, settings)
        await _play(service, ctx, db_session, choice_exercise.id, settings)
        replay = await _play(service, ctx, db_session, choice_exercise.id, settings)

        assert replay.score == 50
        assert replay.xp_earned == 0
        assert replay.maxed_out is True
        info = await LevelManager(db_session, settings.xp_per_level).get_level_info(user.id)
        assert info.points == 50

    @pytest.mark.asyncio
    async def test_worse_replay_credits_nothing(self, db_session, ctx, choice_exercise, settings):
        service = AttemptService(db_session, settings)
        await _play(service, ctx, db_session, choice_exercise.id, settings)
        worse = await _play(service, ctx, db_session, choice_exercise.id, settings, wrong=1)

        assert worse.percentage == 50.0
        assert worse.reward is RewardTier.COAL
        assert worse.score == 10
        assert worse.xp_earned == 0
        assert worse.maxed_out is False

    @pytest.mark.asyncio
    async def test_improvement_credits_difference(self, db_session, ctx, user, choice_exercise, settings):
        service = AttemptService(db_session, settings)
        first = await _play(service, ctx, db_session, choice_exercise.id, settings, wrong=1)
        second = await _play(service, ctx, db_session, choice_exercise.id, settings)

        assert first.xp_earned == 10
        assert second.score == 50
        assert second.xp_earned == 40
        info = await LevelManager(db_session, settings.xp_per_level).get_level_info(user.id)
        assert info.points == 50

    @pytest.mark.asyncio
    async def test_progress_rollup_and_history(self, db_session, ctx, user, choice_exercise, settings):
        service = AttemptService(db_session, settings)
        await _play(service, ctx, db_session, choice_exercise.id, settings)
        await _play(service, ctx, db_session, choice_exercise.id, settings, wrong=1)

        progress = await db_session.scalar(
            select(ExerciseProgress).where(
                ExerciseProgress.user_id == user.id,
                ExerciseProgress.exercise_id == choice_exercise.id,
            )
        )
        assert progress.attempts_count == 2
        assert progress.best_reward == RewardTier.EMERALD.value
        assert progress.best_score == 50
        assert progress.total_score == 60
        assert progress.completed is True
        assert progress.first_completed_at is not None

        scores = (
            await db_session.execute(
                select(Attempt.score).where(Attempt.user_id == user.id).order_by(Attempt.id)
            )
        ).scalars().all()
        assert scores == [50, 10]

    @pytest.mark.asyncio
    async def test_unanswered_questions_count_as_zero(self, db_session, ctx, choice_exercise, settings):
        service = AttemptService(db_session, settings)
        questions = await CatalogService(db_session, settings).list_questions(choice_exercise.id)
        attempt_id = await service.start_attempt(ctx, choice_exercise.id)

        correct = next(c for c in questions[0].choices if c.is_correct)
        await service.submit_answer(ctx, attempt_id, questions[0].id, {"choice_id": correct.id})
        result = await service.finish_attempt(ctx, attempt_id, elapsed_seconds=10)

        assert result.percentage == 50.0
        assert result.correct_count == 1
        assert result.total_questions == 2
        assert result.running_correctness == [True]

    @pytest.mark.asyncio
    async def test_empty_exercise_scores_zero(self, db_session, ctx, make_exercise, settings):
        exercise = await make_exercise([])
        service = AttemptService(db_session, settings)
        attempt_id = await service.start_attempt(ctx, exercise.id)
        result = await service.finish_attempt(ctx, attempt_id, elapsed_seconds=5)

        assert result.percentage == 0.0
        assert result.reward is RewardTier.COAL
        assert result.xp_earned == 0


class TestSubmitAnswer:
    @pytest.mark.asyncio
    async def test_resubmission_overwrites(self, db_session, ctx, choice_exercise, settings):
        service = AttemptService(db_session, settings)
        question = (await CatalogService(db_session, settings).list_questions(choice_exercise.id))[0]
        wrong = next(c for c in question.choices if not c.is_correct)
        right = next(c for c in question.choices if c.is_correct)
        attempt_id = await service.start_attempt(ctx, choice_exercise.id)

        first = await service.submit_answer(ctx, attempt_id, question.id, {"choice_id": wrong.id})
        second = await service.submit_answer(ctx, attempt_id, question.id, {"choice_id": right.id})

        assert first.correct is False
        assert second.correct is True
        assert second.points_awarded == 10
        assert second.running_correctness == [True]

        rows = await db_session.scalar(
            select(func.count(AttemptAnswer.id)).where(AttemptAnswer.attempt_id == attempt_id)
        )
        assert rows == 1

    @pytest.mark.asyncio
    async def test_ordering_answer_has_breakdown(self, db_session, ctx, make_exercise, settings):
        exercise = await make_exercise([{"type": "ordering", "points": 20, "items": ["a", "b", "c", "d"]}])
        question = (await CatalogService(db_session, settings).list_questions(exercise.id))[0]
        order = question.canonical_order()
        service = AttemptService(db_session, settings)
        attempt_id = await service.start_attempt(ctx, exercise.id)

        partial = await service.submit_answer(
            ctx, attempt_id, question.id, {"order": [order[1], order[0], order[2], order[3]]}
        )
        assert partial.correct is False
        assert 0 < partial.points_awarded < 20
        assert partial.breakdown.inversions == 1

        exact = await service.submit_answer(ctx, attempt_id, question.id, {"order": order})
        assert exact.correct is True
        assert exact.points_awarded == 20
        assert exact.breakdown.is_exact is True

    @pytest.mark.asyncio
    async def test_choice_answer_has_no_breakdown(self, db_session, ctx, choice_exercise, settings):
        service = AttemptService(db_session, settings)
        question = (await CatalogService(db_session, settings).list_questions(choice_exercise.id))[0]
        attempt_id = await service.start_attempt(ctx, choice_exercise.id)
        result = await service.submit_answer(ctx, attempt_id, question.id, {"choice_id": question.choices[0].id})
        assert result.breakdown is None


class TestErrors:
    @pytest.mark.asyncio
    async def test_unknown_exercise(self, db_session, ctx, settings):
        with pytest.raises(ExerciseNotFoundError):
            await AttemptService(db_session, settings).start_attempt(ctx, 999)

    @pytest.mark.asyncio
    async def test_unknown_attempt(self, db_session, ctx, settings):
        service = AttemptService(db_session, settings)
        with pytest.raises(AttemptNotFoundError):
            await service.finish_attempt(ctx, 999, elapsed_seconds=10)
        with pytest.raises(NotFoundError):
            await service.submit_answer(ctx, 999, 1, {"choice_id": 1})

    @pytest.mark.asyncio
    async def test_attempt_of_another_user(self, db_session, ctx, other_user, choice_exercise, settings):
        service = AttemptService(db_session, settings)
        question = (await CatalogService(db_session, settings).list_questions(choice_exercise.id))[0]
        attempt_id = await service.start_attempt(ctx, choice_exercise.id)

        intruder = RequestContext(user_id=other_user.id)
        with pytest.raises(AttemptNotFoundError):
            await service.submit_answer(intruder, attempt_id, question.id, {"choice_id": question.choices[0].id})
        with pytest.raises(AttemptNotFoundError):
            await service.finish_attempt(intruder, attempt_id, elapsed_seconds=10)

    @pytest.mark.asyncio
    async def test_question_from_another_exercise(self, db_session, ctx, choice_exercise, make_exercise, settings):
        other = await make_exercise([{"type": "mcq", "choices": [("x", True)]}])
        foreign = (await CatalogService(db_session, settings).list_questions(other.id))[0]
        service = AttemptService(db_session, settings)
        attempt_id = await service.start_attempt(ctx, choice_exercise.id)

        with pytest.raises(QuestionNotFoundError):
            await service.submit_answer(ctx, attempt_id, foreign.id, {"choice_id": foreign.choices[0].id})

    @pytest.mark.asyncio
    async def test_finished_attempt_is_closed(self, db_session, ctx, user, choice_exercise, settings):
        service = AttemptService(db_session, settings)
        question = (await CatalogService(db_session, settings).list_questions(choice_exercise.id))[0]
        attempt_id = await service.start_attempt(ctx, choice_exercise.id)
        await service.finish_attempt(ctx, attempt_id, elapsed_seconds=10)

        with pytest.raises(AttemptClosedError):
            await service.finish_attempt(ctx, attempt_id, elapsed_seconds=10)
        with pytest.raises(AttemptClosedError):
            await service.submit_answer(ctx, attempt_id, question.id, {"choice_id": question.choices[0].id})

        progress = await db_session.scalar(
            select(ExerciseProgress).where(ExerciseProgress.user_id == user.id)
        )
        assert progress.attempts_count == 1
