"""Per-question grading and per-attempt aggregation.

Grading is pure: the caller loads the question (with its choices or
ordering items) and hands over the raw answer payload. Unsupported types
and malformed payloads are graded incorrect with zero points rather than
raising.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel

from laro.catalog.schemas import CONTENT_ANSWER_TYPES, ChoiceSpec, MatchingSpec, OrderingSpec, QuestionView
from laro.scoring.ordering import OrderingScore, score_ordering


class GradedAnswer(BaseModel):
    correct: bool
    points_awarded: int
    breakdown: OrderingScore | None = None


class AttemptTotals(BaseModel):
    total_awarded: int
    total_possible: int
    correct_count: int
    total_questions: int


_WRONG = GradedAnswer(correct=False, points_awarded=0)


def _as_id(value: Any) -> Any:
    """Coerce JSON ids to int where possible; leave anything else untouched."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return value


def grade_choice(question: QuestionView, payload: Mapping[str, Any]) -> GradedAnswer:
    """Correct iff the referenced choice belongs to the question and is flagged correct.

    True/false and fill-blank questions may post the answer text instead of
    an id; the text is matched against choice contents before any id lookup.
    """
    raw = payload.get("choice_id")
    if raw is None or raw == "":
        return _WRONG

    choice = None
    if question.type in CONTENT_ANSWER_TYPES and isinstance(raw, str):
        needle = raw.strip().lower()
        choice = next((c for c in question.choices if c.content.strip().lower() == needle), None)
    if choice is None:
        choice_id = _as_id(raw)
        if isinstance(choice_id, int) and not isinstance(choice_id, bool):
            choice = next((c for c in question.choices if c.id == choice_id), None)

    if choice is None or not choice.is_correct:
        return _WRONG
    return GradedAnswer(correct=True, points_awarded=question.points)


def grade_ordering(question: QuestionView, spec: OrderingSpec, payload: Mapping[str, Any]) -> GradedAnswer:
    """Partial credit: points scale with the ordering ratio; correct only on exact order."""
    raw_order = payload.get("order")
    ids = [_as_id(v) for v in raw_order] if isinstance(raw_order, list) else []
    # Nested lists, objects and booleans are never item ids
    submitted = [v for v in ids if isinstance(v, (int, str)) and not isinstance(v, bool)]

    score = score_ordering(submitted, question.canonical_order(), spec.tuning)
    return GradedAnswer(
        correct=score.is_exact,
        points_awarded=int(round(question.points * score.ratio)),
        breakdown=score,
    )


def grade_matching(question: QuestionView, spec: MatchingSpec, payload: Mapping[str, Any]) -> GradedAnswer:
    """All-or-nothing: every required left -> right pair must be present."""
    required = spec.pairs
    submitted = payload.get("pairs")
    if not required or not isinstance(submitted, Mapping):
        return _WRONG

    answered = {str(k): str(v) for k, v in submitted.items()}
    if all(answered.get(left) == right for left, right in required.items()):
        return GradedAnswer(correct=True, points_awarded=question.points)
    return _WRONG


def grade_answer(question: QuestionView, payload: Any) -> GradedAnswer:
    """Grade one submitted answer."""
    if not isinstance(payload, Mapping):
        return _WRONG

    spec = question.spec
    if isinstance(spec, ChoiceSpec):
        return grade_choice(question, payload)
    if isinstance(spec, OrderingSpec):
        return grade_ordering(question, spec, payload)
    if isinstance(spec, MatchingSpec):
        return grade_matching(question, spec, payload)
    return _WRONG


def summarize_attempt(
    questions: Iterable[QuestionView],
    answers: Iterable[tuple[bool, int]],
) -> AttemptTotals:
    """Aggregate (correct, points_awarded) answer rows against the exercise's questions."""
    questions = list(questions)
    answers = list(answers)
    return AttemptTotals(
        total_awarded=sum(points for _, points in answers),
        total_possible=sum(q.points for q in questions),
        correct_count=sum(1 for correct, _ in answers if correct),
        total_questions=len(questions),
    )
