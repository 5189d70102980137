"""Attempt lifecycle: start, submit answers, finish with reward and XP.

Finishing is the only step with a concurrency hazard: two finishes for the
same user and exercise (e.g. a client retry) must not both credit XP against
the same previous best. The attempt row and the user's progression row are
locked before ``prev_best`` is read, and attempt, progress and XP are
written in one transaction. Badge evaluation runs after that commit and can
never undo it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from laro.attempts.schemas import FinishResult, SubmitResult
from laro.catalog.service import CatalogService
from laro.config import Settings, get_settings
from laro.context import RequestContext
from laro.database import dialect_insert
from laro.db.models import Attempt, AttemptAnswer, ExerciseProgress
from laro.exceptions import (
    AttemptClosedError,
    AttemptNotFoundError,
    ExerciseNotFoundError,
    QuestionNotFoundError,
)
from laro.gamification.badge_engine import BadgeEngine
from laro.gamification.levels import LevelManager
from laro.gamification.schemas import AwardedBadge
from laro.gamification.xp_service import compute_xp, credit_xp, get_previous_best
from laro.scoring.evaluator import grade_answer, summarize_attempt
from laro.scoring.rewards import RewardTier, better_reward, compute_percentage, resolve_reward

logger = structlog.get_logger()


class AttemptService:
    """Runs one user's attempts against the catalog."""

    def __init__(self, db: AsyncSession, settings: Settings | None = None) -> None:
        self.db = db
        self.settings = settings or get_settings()
        self.catalog = CatalogService(db, self.settings)
        self.levels = LevelManager(db, self.settings.xp_per_level)

    async def start_attempt(self, ctx: RequestContext, exercise_id: int) -> int:
        """Open a new attempt and return its id."""
        ctx.bind()
        exercise = await self.catalog.get_exercise(exercise_id)
        if exercise is None:
            msg = f"Exercise {exercise_id} not found"
            raise ExerciseNotFoundError(msg)

        attempt = Attempt(
            user_id=ctx.user_id,
            exercise_id=exercise_id,
            started_at=datetime.now(timezone.utc),
            score=0,
            elapsed_seconds=0,
        )
        self.db.add(attempt)
        await self.db.flush()
        attempt_id = attempt.id
        await self.db.commit()

        logger.info("attempt_started", attempt_id=attempt_id, exercise_id=exercise_id)
        return attempt_id

    async def _load_open_attempt(self, ctx: RequestContext, attempt_id: int, lock: bool = False) -> Attempt:
        """The caller's unfinished attempt; rolls back and raises otherwise."""
        stmt = select(Attempt).where(Attempt.id == attempt_id, Attempt.user_id == ctx.user_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        attempt = (await self.db.execute(stmt)).scalar_one_or_none()

        if attempt is None:
            await self.db.rollback()
            msg = f"Attempt {attempt_id} not found"
            raise AttemptNotFoundError(msg)
        if attempt.finished_at is not None:
            await self.db.rollback()
            msg = f"Attempt {attempt_id} is already finished"
            raise AttemptClosedError(msg)
        return attempt

    async def _running_correctness(self, attempt_id: int) -> list[bool]:
        """Correctness of each answered question, in first-answered order."""
        result = await self.db.execute(
            select(AttemptAnswer.correct).where(AttemptAnswer.attempt_id == attempt_id).order_by(AttemptAnswer.id)
        )
        return [bool(c) for c in result.scalars()]

    async def submit_answer(
        self,
        ctx: RequestContext,
        attempt_id: int,
        question_id: int,
        payload: Any,
    ) -> SubmitResult:
        """Grade an answer and upsert it; resubmitting a question overwrites it."""
        ctx.bind()
        attempt = await self._load_open_attempt(ctx, attempt_id)

        question = await self.catalog.get_question(question_id, attempt.exercise_id)
        if question is None:
            await self.db.rollback()
            msg = f"Question {question_id} not found in exercise {attempt.exercise_id}"
            raise QuestionNotFoundError(msg)

        graded = grade_answer(question, payload)
        now = datetime.now(timezone.utc)

        stmt = dialect_insert(self.db, AttemptAnswer).values(
            attempt_id=attempt_id,
            question_id=question_id,
            user_answer=payload,
            correct=graded.correct,
            points_awarded=graded.points_awarded,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["attempt_id", "question_id"],
            set_={
                "user_answer": stmt.excluded.user_answer,
                "correct": stmt.excluded.correct,
                "points_awarded": stmt.excluded.points_awarded,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await self.db.execute(stmt)
        running = await self._running_correctness(attempt_id)
        await self.db.commit()

        logger.info(
            "answer_submitted",
            attempt_id=attempt_id,
            question_id=question_id,
            question_type=question.type,
            correct=graded.correct,
            points=graded.points_awarded,
        )
        return SubmitResult(
            question_id=question_id,
            correct=graded.correct,
            points_awarded=graded.points_awarded,
            running_correctness=running,
            breakdown=graded.breakdown,
        )

    async def _record_progress(
        self,
        user_id: int,
        exercise_id: int,
        score: int,
        reward: RewardTier,
        now: datetime,
    ) -> ExerciseProgress:
        """Create or roll up the user's progress row; bests only ever increase."""
        result = await self.db.execute(
            select(ExerciseProgress).where(
                ExerciseProgress.user_id == user_id,
                ExerciseProgress.exercise_id == exercise_id,
            )
        )
        progress = result.scalar_one_or_none()
        if progress is None:
            progress = ExerciseProgress(
                user_id=user_id,
                exercise_id=exercise_id,
                attempts_count=1,
                best_reward=reward.value,
                best_score=score,
                total_score=score,
                completed=True,
                first_completed_at=now,
                last_attempted_at=now,
            )
            self.db.add(progress)
        else:
            progress.attempts_count += 1
            progress.best_reward = better_reward(RewardTier.parse(progress.best_reward), reward).value
            progress.best_score = max(progress.best_score, score)
            progress.total_score += score
            progress.completed = True
            progress.first_completed_at = progress.first_completed_at or now
            progress.last_attempted_at = now
        await self.db.flush()
        return progress

    async def finish_attempt(self, ctx: RequestContext, attempt_id: int, elapsed_seconds: int) -> FinishResult:
        """Score the attempt, credit XP over the previous best, then evaluate badges."""
        ctx.bind()
        attempt = await self._load_open_attempt(ctx, attempt_id, lock=True)

        try:
            exercise = await self.catalog.get_exercise(attempt.exercise_id)
            if exercise is None:
                msg = f"Exercise {attempt.exercise_id} not found"
                raise ExerciseNotFoundError(msg)

            # Serialises finishes for this user until commit
            await self.levels.lock_progression(ctx.user_id)

            questions = await self.catalog.list_questions(exercise.id)
            answers = (
                await self.db.execute(
                    select(AttemptAnswer.correct, AttemptAnswer.points_awarded)
                    .where(AttemptAnswer.attempt_id == attempt_id)
                    .order_by(AttemptAnswer.id)
                )
            ).all()
            totals = summarize_attempt(questions, [(bool(c), int(p)) for c, p in answers])

            elapsed = max(0, int(elapsed_seconds))
            percentage = compute_percentage(totals.total_awarded, totals.total_possible)
            reward = resolve_reward(percentage, elapsed, self.catalog.time_limit_for(exercise))
            xp = compute_xp(totals.total_awarded, reward)

            prev_best = await get_previous_best(self.db, ctx.user_id, exercise.id, exclude_attempt_id=attempt_id)
            credit = credit_xp(xp.final_xp, prev_best)

            now = datetime.now(timezone.utc)
            attempt.finished_at = now
            attempt.score = xp.final_xp
            attempt.reward = reward.value
            attempt.elapsed_seconds = elapsed
            await self._record_progress(ctx.user_id, exercise.id, xp.final_xp, reward, now)

            change = await self.levels.award_xp(
                ctx.user_id,
                credit.incremental_xp,
                source="exercise",
                source_id=str(attempt_id),
                idempotency_key=f"attempt:{attempt_id}",
            )
            await self.db.commit()
        except (SQLAlchemyError, ExerciseNotFoundError):
            await self.db.rollback()
            raise

        logger.info(
            "attempt_finished",
            attempt_id=attempt_id,
            exercise_id=exercise.id,
            percentage=round(percentage, 1),
            reward=reward.value,
            final_xp=xp.final_xp,
            prev_best=prev_best,
            xp_earned=credit.incremental_xp,
            leveled_up=change.leveled_up,
        )

        new_badges = await self._evaluate_badges(ctx)

        return FinishResult(
            attempt_id=attempt_id,
            score=xp.final_xp,
            reward=reward,
            base_xp=xp.base_xp,
            bonus_xp=xp.bonus_xp,
            xp_earned=credit.incremental_xp,
            percentage=round(percentage, 1),
            new_level=change.new_level,
            leveled_up=change.leveled_up,
            maxed_out=credit.maxed_out,
            correct_count=totals.correct_count,
            total_questions=totals.total_questions,
            running_correctness=[bool(c) for c, _ in answers],
            new_badges=new_badges,
        )

    async def _evaluate_badges(self, ctx: RequestContext) -> list[AwardedBadge]:
        """Badge pass after the attempt commit; failures are logged, never raised."""
        try:
            return await BadgeEngine(self.db, self.settings, self.levels).check_and_award_badges(ctx)
        except Exception:
            logger.exception("badge_evaluation_failed", user_id=ctx.user_id)
            await self.db.rollback()
            return []
