"""Partial-credit scoring for ordering (sequencing) questions.

The ratio blends three signals computed on the submission after
normalisation:

  order accuracy   1 - inversions / max_inversions over the present items
  offsets          1 - total displacement / maximum possible displacement
  exact positions  share of slots holding the canonical item

The blend is scaled by the share of canonical items present, then raised to
``alpha``. Only a positionally identical submission scores 1.0 and counts as
correct; everything else is partial credit.
"""

from __future__ import annotations

from collections.abc import Hashable, Sequence

from pydantic import BaseModel, Field

DEFAULT_NEAR_THRESHOLD = 1
DEFAULT_FAR_THRESHOLD = 3
DEFAULT_SOFT_FACTOR = 0.5
DEFAULT_WEIGHT = 1 / 3
DEFAULT_ALPHA = 0.9
ALPHA_MIN = 0.5
ALPHA_MAX = 2.0


class OrderingTuning(BaseModel):
    """Per-question tuning knobs, stored under ``meta["tuning"]``."""

    near_threshold: int = Field(default=DEFAULT_NEAR_THRESHOLD, ge=0)
    far_threshold: int = Field(default=DEFAULT_FAR_THRESHOLD, ge=1)
    soft_factor: float = Field(default=DEFAULT_SOFT_FACTOR, ge=0.0, le=1.0)
    w_inversions: float = DEFAULT_WEIGHT
    w_offsets: float = DEFAULT_WEIGHT
    w_exact: float = DEFAULT_WEIGHT
    alpha: float = DEFAULT_ALPHA

    def normalized_weights(self) -> tuple[float, float, float]:
        """Weights clamped to >= 0 and scaled to sum to 1."""
        weights = [max(0.0, w) for w in (self.w_inversions, self.w_offsets, self.w_exact)]
        total = sum(weights)
        if total <= 0:
            return (DEFAULT_WEIGHT, DEFAULT_WEIGHT, DEFAULT_WEIGHT)
        return (weights[0] / total, weights[1] / total, weights[2] / total)

    def clamped_alpha(self) -> float:
        return min(max(self.alpha, ALPHA_MIN), ALPHA_MAX)


class OrderingScore(BaseModel):
    """Ratio plus the diagnostic breakdown shown after an ordering answer."""

    ratio: float
    is_exact: bool
    present_ratio: float
    inversions: int
    effective_inversions: float
    max_inversions: int
    displacements: dict[str, int]
    displacement_sum: int
    offs_norm: float
    exact_positions: int
    exact_ratio: float
    order_accuracy: float
    softened: bool = False


def count_inversions(ranks: Sequence[int]) -> int:
    """Count pairs i < j with ranks[i] > ranks[j]."""
    n = len(ranks)
    return sum(1 for i in range(n) for j in range(i + 1, n) if ranks[i] > ranks[j])


def max_displacement(n: int) -> int:
    """Largest total displacement of any permutation of n items (the reversal)."""
    return (n * n) // 2


def _normalize(submitted: Sequence[Hashable], canonical_pos: dict[Hashable, int]) -> list[Hashable]:
    """Drop unknown or unhashable ids and repeats, keeping first occurrences."""
    seen: set[Hashable] = set()
    present: list[Hashable] = []
    for item in submitted:
        if not isinstance(item, Hashable):
            continue
        if item in canonical_pos and item not in seen:
            seen.add(item)
            present.append(item)
    return present


def _is_single_far_miss(present_displacements: list[int], near: int, far: int) -> bool:
    far_indexes = [i for i, d in enumerate(present_displacements) if d >= far]
    if len(far_indexes) != 1:
        return False
    return all(d <= near for i, d in enumerate(present_displacements) if i != far_indexes[0])


def score_ordering(
    submitted: Sequence[Hashable],
    canonical: Sequence[Hashable],
    tuning: OrderingTuning | None = None,
) -> OrderingScore:
    """Score a submitted permutation against the canonical order."""
    tuning = tuning or OrderingTuning()
    canonical = list(canonical)
    total = len(canonical)
    canonical_pos = {item: i for i, item in enumerate(canonical)}

    if total == 0:
        return OrderingScore(
            ratio=0.0, is_exact=False, present_ratio=0.0, inversions=0, effective_inversions=0.0,
            max_inversions=0, displacements={}, displacement_sum=0, offs_norm=0.0,
            exact_positions=0, exact_ratio=0.0, order_accuracy=0.0,
        )

    present = _normalize(submitted, canonical_pos)
    present_ratio = len(present) / total

    if present == canonical:
        return OrderingScore(
            ratio=1.0, is_exact=True, present_ratio=1.0, inversions=0, effective_inversions=0.0,
            max_inversions=total * (total - 1) // 2, displacements={str(i): 0 for i in canonical},
            displacement_sum=0, offs_norm=0.0, exact_positions=total, exact_ratio=1.0, order_accuracy=1.0,
        )

    # Missing items go to the end, in canonical order, for displacement purposes
    present_set = set(present)
    full = present + [item for item in canonical if item not in present_set]

    n = len(present)
    inversions = count_inversions([canonical_pos[item] for item in present])
    max_inversions = n * (n - 1) // 2

    displacements = [abs(i - canonical_pos[item]) for i, item in enumerate(full)]
    displacement_sum = sum(displacements)
    max_disp = max_displacement(total)
    offs_norm = min(1.0, displacement_sum / max_disp) if max_disp else 0.0

    exact_positions = sum(1 for i, item in enumerate(full) if item == canonical[i])
    exact_ratio = exact_positions / total

    softened = _is_single_far_miss(displacements[:n], tuning.near_threshold, tuning.far_threshold)
    effective_inversions = inversions * tuning.soft_factor if softened else float(inversions)
    order_accuracy = 1.0 - effective_inversions / max_inversions if n >= 2 else 1.0

    w_inv, w_offs, w_exact = tuning.normalized_weights()
    base = w_inv * order_accuracy + w_offs * (1.0 - offs_norm) + w_exact * exact_ratio
    scaled = max(0.0, base * present_ratio)
    ratio = min(1.0, max(0.0, scaled ** tuning.clamped_alpha()))

    return OrderingScore(
        ratio=ratio,
        is_exact=False,
        present_ratio=present_ratio,
        inversions=inversions,
        effective_inversions=effective_inversions,
        max_inversions=max_inversions,
        displacements={str(item): d for item, d in zip(full, displacements)},
        displacement_sum=displacement_sum,
        offs_norm=offs_norm,
        exact_positions=exact_positions,
        exact_ratio=exact_ratio,
        order_accuracy=order_accuracy,
        softened=softened,
    )
