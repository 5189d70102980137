"""Read-only access to the exercise/question catalog."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from laro.catalog.schemas import (
    ChoiceView,
    OrderingItemView,
    OrderingSpec,
    QuestionView,
    parse_question_spec,
)
from laro.config import Settings, get_settings
from laro.db.models import Choice, Exercise, OrderingItem, Question


class CatalogService:
    """Builds typed question views from catalog rows."""

    def __init__(self, db: AsyncSession, settings: Settings | None = None) -> None:
        self.db = db
        self.settings = settings or get_settings()

    async def get_exercise(self, exercise_id: int) -> Exercise | None:
        return await self.db.get(Exercise, exercise_id)

    def time_limit_for(self, exercise: Exercise) -> int:
        """Emerald time limit in seconds; falls back to the configured default."""
        if exercise.time_limit_seconds is None:
            return self.settings.default_time_limit_seconds
        return exercise.time_limit_seconds

    async def get_question(self, question_id: int, exercise_id: int) -> QuestionView | None:
        """Load one question of an exercise, or None if it is not part of it."""
        result = await self.db.execute(
            select(Question).where(
                Question.id == question_id,
                Question.exercise_id == exercise_id,
            )
        )
        question = result.scalar_one_or_none()
        if question is None:
            return None
        views = await self._build_views([question])
        return views[0]

    async def list_questions(self, exercise_id: int) -> list[QuestionView]:
        """All questions of an exercise in play order."""
        result = await self.db.execute(
            select(Question)
            .where(Question.exercise_id == exercise_id)
            .order_by(Question.position, Question.id)
        )
        return await self._build_views(list(result.scalars().all()))

    async def _build_views(self, questions: list[Question]) -> list[QuestionView]:
        if not questions:
            return []
        ids = [q.id for q in questions]

        choice_rows = await self.db.execute(
            select(Choice).where(Choice.question_id.in_(ids)).order_by(Choice.position, Choice.id)
        )
        choices: dict[int, list[ChoiceView]] = {}
        for c in choice_rows.scalars():
            choices.setdefault(c.question_id, []).append(
                ChoiceView(id=c.id, content=c.content, is_correct=c.is_correct, position=c.position)
            )

        item_rows = await self.db.execute(
            select(OrderingItem).where(OrderingItem.question_id.in_(ids)).order_by(OrderingItem.position)
        )
        items: dict[int, list[OrderingItemView]] = {}
        for i in item_rows.scalars():
            items.setdefault(i.question_id, []).append(
                OrderingItemView(id=i.id, content=i.content, position=i.position)
            )

        views = []
        for q in questions:
            spec = parse_question_spec(q.type, q.meta, self.settings.default_question_points)
            views.append(
                QuestionView(
                    id=q.id,
                    exercise_id=q.exercise_id,
                    type=q.type,
                    spec=spec,
                    choices=choices.get(q.id, []),
                    items=items.get(q.id, []) if isinstance(spec, OrderingSpec) else [],
                )
            )
        return views
