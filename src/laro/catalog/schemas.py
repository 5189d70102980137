"""Typed views of catalog questions.

A question row stores a free-form ``type`` plus a JSON ``meta`` blob. Both
are parsed into one member of the ``QuestionSpec`` tagged union so graders
never look at untyped dicts.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from laro.scoring.ordering import OrderingTuning

logger = logging.getLogger(__name__)

# Legacy question types that all grade as "pick the correct choice"
CHOICE_TYPES = frozenset({"choice", "mcq", "truefalse", "fillblank"})

# Choice types whose answer may be posted as the choice text
CONTENT_ANSWER_TYPES = frozenset({"truefalse", "fillblank"})


class ChoiceSpec(BaseModel):
    kind: Literal["choice"] = "choice"
    points: int = Field(default=10, ge=0)


class OrderingSpec(BaseModel):
    kind: Literal["ordering"] = "ordering"
    points: int = Field(default=10, ge=0)
    tuning: OrderingTuning | None = None


class MatchingSpec(BaseModel):
    kind: Literal["matching"] = "matching"
    points: int = Field(default=10, ge=0)
    pairs: dict[str, str] = Field(default_factory=dict)


class UnsupportedSpec(BaseModel):
    kind: Literal["unsupported"] = "unsupported"
    points: int = 10


QuestionSpec = Annotated[
    Union[ChoiceSpec, OrderingSpec, MatchingSpec, UnsupportedSpec],
    Field(discriminator="kind"),
]

_spec_adapter: TypeAdapter[QuestionSpec] = TypeAdapter(QuestionSpec)


def question_kind(question_type: str) -> str:
    """Map a stored question type onto its grading kind."""
    if question_type in CHOICE_TYPES:
        return "choice"
    if question_type in ("ordering", "matching"):
        return question_type
    return "unsupported"


def _coerce_points(meta: dict[str, Any], default_points: int) -> int:
    try:
        return max(0, int(meta.get("points", default_points)))
    except (TypeError, ValueError):
        return default_points


def parse_question_spec(
    question_type: str,
    meta: dict[str, Any] | None,
    default_points: int = 10,
) -> ChoiceSpec | OrderingSpec | MatchingSpec | UnsupportedSpec:
    """Parse a question's type and meta blob into a typed spec.

    Malformed meta degrades to an ungradeable ``UnsupportedSpec`` that still
    carries the question's point value, so the exercise total is unaffected.
    """
    meta = dict(meta or {})
    payload = {**meta, "kind": question_kind(question_type), "points": _coerce_points(meta, default_points)}
    try:
        return _spec_adapter.validate_python(payload)
    except ValidationError:
        logger.warning("Invalid meta for %s question, grading as unsupported", question_type, exc_info=True)
        return UnsupportedSpec(points=payload["points"])


class ChoiceView(BaseModel):
    id: int
    content: str
    is_correct: bool
    position: int = 0


class OrderingItemView(BaseModel):
    id: int
    content: str
    position: int


class QuestionView(BaseModel):
    """A question with its spec and the child rows its grader needs."""

    id: int
    exercise_id: int
    type: str
    spec: QuestionSpec
    choices: list[ChoiceView] = Field(default_factory=list)
    items: list[OrderingItemView] = Field(default_factory=list)

    @property
    def points(self) -> int:
        return self.spec.points

    def canonical_order(self) -> list[int]:
        """Ordering item ids in canonical position order."""
        return [item.id for item in sorted(self.items, key=lambda i: (i.position, i.id))]
