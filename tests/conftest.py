"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from laro.config import Settings
from laro.context import RequestContext
from laro.database import close_db, get_engine, get_session, init_db
from laro.db.base import Base
from laro.db.models import Choice, Exercise, OrderingItem, Question, User

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def settings() -> Settings:
    # No clock-dependent night badges during tests
    return Settings(database_url=TEST_DATABASE_URL, log_format="console", night_hours_end=0)


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database with the full schema."""
    await init_db(TEST_DATABASE_URL)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async for session in get_session():
        yield session

    await close_db()


async def _create_user(db: AsyncSession, name: str) -> User:
    user = User(display_name=name)
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def user(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "ana")


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "ben")


@pytest.fixture
def ctx(user: User) -> RequestContext:
    return RequestContext(user_id=user.id)


@pytest.fixture
def make_exercise(db_session: AsyncSession) -> Callable[..., Awaitable[Exercise]]:
    """Factory for an exercise with questions.

    Each question is a dict with ``type`` plus any of ``points``, ``tuning``,
    ``pairs`` (stored in meta), ``choices`` as (content, is_correct) pairs and
    ``items`` as ordering item contents in canonical order.
    """

    async def _make(
        questions: list[dict[str, Any]],
        *,
        title: str = "Exercise",
        difficulty: str = "medium",
        time_limit_seconds: int | None = 60,
    ) -> Exercise:
        exercise = Exercise(title=title, difficulty=difficulty, time_limit_seconds=time_limit_seconds)
        db_session.add(exercise)
        await db_session.flush()

        for position, data in enumerate(questions):
            meta = {k: data[k] for k in ("points", "tuning", "pairs") if k in data}
            question = Question(
                exercise_id=exercise.id,
                type=data["type"],
                content=f"Question {position + 1}",
                position=position,
                meta=meta,
            )
            db_session.add(question)
            await db_session.flush()

            for i, (content, is_correct) in enumerate(data.get("choices", [])):
                db_session.add(Choice(question_id=question.id, content=content, is_correct=is_correct, position=i))
            for i, content in enumerate(data.get("items", [])):
                db_session.add(OrderingItem(question_id=question.id, content=content, position=i))

        await db_session.commit()
        return exercise

    return _make


@pytest_asyncio.fixture
async def choice_exercise(make_exercise) -> Exercise:
    """Two single-answer questions worth 10 points each, 60 second limit."""
    return await make_exercise(
        [
            {"type": "mcq", "points": 10, "choices": [("Paris", True), ("Rome", False)]},
            {"type": "truefalse", "points": 10, "choices": [("True", False), ("False", True)]},
        ]
    )
