"""Pydantic result models for the attempt lifecycle."""

from __future__ import annotations

from pydantic import BaseModel

from laro.gamification.schemas import AwardedBadge
from laro.scoring.ordering import OrderingScore
from laro.scoring.rewards import RewardTier


class SubmitResult(BaseModel):
    question_id: int
    correct: bool
    points_awarded: int
    running_correctness: list[bool]
    breakdown: OrderingScore | None = None  # ordering questions only


class FinishResult(BaseModel):
    attempt_id: int
    score: int
    reward: RewardTier
    base_xp: int
    bonus_xp: int
    xp_earned: int
    percentage: float
    new_level: int
    leveled_up: bool
    maxed_out: bool
    correct_count: int
    total_questions: int
    running_correctness: list[bool]
    new_badges: list[AwardedBadge] = []
