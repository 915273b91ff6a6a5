"""
Score Calculator

Pure functions, no database access and no side effects. Called by the score
service once per employee and exercised directly by unit tests.

Calculation model:
- Self ratings never enter the colleague score (reference only).
- Every reviewer category carries the same weight.
- A reviewer's contribution is the plain average of their own ratings.
- colleague_score is the mean of the per-reviewer averages (reviewer-weighted).
- Competency scores are the mean of every individual rating bucketed by the
  question's competency (rating-weighted).
- Category scores are the mean of per-reviewer averages within the category
  (reviewer-weighted).
- Means are kept as exact fractions until they are rounded for storage.
- Labels are read off the stored (rounded) score, rounding half up to the
  nearest band on the 1-4 scale.

Rating values are trusted to be integers in [1, 4]; submissions are
validated before they are stored.
"""
from collections import OrderedDict
from decimal import Decimal, ROUND_HALF_UP
from fractions import Fraction
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

from app.models.reviewer import ReviewerCategory
from app.schemas.score import (
    CategoryScore,
    ColleagueAggregate,
    CompetencyScore,
    RatingRecord,
    ReviewerRatings,
    SelfRating,
)

MIN_BAND = 1
MAX_BAND = 4

SCORE_LABELS = {
    4: "Outstanding Impact",
    3: "Significant Impact",
    2: "Moderate Impact",
    1: "Not Enough Impact",
}

COLLEAGUE_SCORE_PLACES = 4
BREAKDOWN_SCORE_PLACES = 2

_CATEGORY_ORDER = {category.value: index for index, category in enumerate(ReviewerCategory)}

Number = Union[int, float, Fraction]


def _to_decimal(value: Number) -> Decimal:
    if isinstance(value, Fraction):
        return Decimal(value.numerator) / Decimal(value.denominator)
    return Decimal(str(value))


def round_score(value: Number, places: int) -> float:
    """Round half up to a fixed number of decimal places."""
    quantum = Decimal(1).scaleb(-places)
    return float(_to_decimal(value).quantize(quantum, rounding=ROUND_HALF_UP))


def score_to_band(score: Number) -> int:
    """Nearest integer band (0.5 rounds up), clamped to the 1-4 scale."""
    rounded = int(_to_decimal(score).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    return min(MAX_BAND, max(MIN_BAND, rounded))


def score_to_label(score: Number) -> str:
    return SCORE_LABELS[score_to_band(score)]


def _rating_value(rating: Union[RatingRecord, SelfRating, Number]) -> Number:
    if isinstance(rating, RatingRecord):
        return rating.value
    if isinstance(rating, SelfRating):
        return rating.rating
    return rating


def reviewer_average(ratings: Iterable[Union[RatingRecord, Number]]) -> Optional[Fraction]:
    """Exact mean of one reviewer's ratings, None when there are none."""
    values = [_rating_value(r) for r in ratings]
    if not values:
        return None
    return Fraction(sum(values)) / len(values)


def calculate_colleague_score(reviewers: Sequence[ReviewerRatings]) -> Optional[ColleagueAggregate]:
    """
    Mean of per-reviewer averages.

    Each completed reviewer contributes exactly one value no matter how many
    questions they answered. Returns None when no reviewer has a defined
    average; callers must skip persistence in that case.
    """
    averages = [avg for avg in (reviewer_average(r.ratings) for r in reviewers) if avg is not None]
    if not averages:
        return None
    colleague_score = round_score(sum(averages) / len(averages), COLLEAGUE_SCORE_PLACES)
    return ColleagueAggregate(
        colleague_score=colleague_score,
        final_label=score_to_label(colleague_score),
        total_reviewers=len(averages),
    )


def calculate_competency_scores(
    reviewers: Sequence[ReviewerRatings],
    question_competency_map: Mapping[int, str],
) -> Dict[str, CompetencyScore]:
    """
    Per-competency mean over every individual rating from every reviewer.

    Ratings on questions without a known competency are dropped. Keys are
    returned in sorted competency-id order.
    """
    buckets: Dict[str, List[int]] = {}
    for reviewer in reviewers:
        for rating in reviewer.ratings:
            competency_id = question_competency_map.get(rating.question_id)
            if competency_id is None:
                continue
            buckets.setdefault(competency_id, []).append(rating.value)

    result: Dict[str, CompetencyScore] = OrderedDict()
    for competency_id in sorted(buckets):
        values = buckets[competency_id]
        score = round_score(Fraction(sum(values), len(values)), BREAKDOWN_SCORE_PLACES)
        result[competency_id] = CompetencyScore(
            score=score,
            label=score_to_label(score),
            response_count=len(values),
        )
    return result


def _category_sort_key(category: str):
    # Known categories first in declaration order, anything else alphabetically after
    return (_CATEGORY_ORDER.get(category, len(_CATEGORY_ORDER)), category)


def calculate_category_scores(reviewers: Sequence[ReviewerRatings]) -> Dict[str, CategoryScore]:
    """Per reviewer-category mean of per-reviewer averages."""
    buckets: Dict[str, List[Fraction]] = {}
    for reviewer in reviewers:
        avg = reviewer_average(reviewer.ratings)
        if avg is None:
            continue
        buckets.setdefault(reviewer.category, []).append(avg)

    result: Dict[str, CategoryScore] = OrderedDict()
    for category in sorted(buckets, key=_category_sort_key):
        averages = buckets[category]
        score = round_score(sum(averages) / len(averages), BREAKDOWN_SCORE_PLACES)
        result[category] = CategoryScore(
            score=score,
            label=score_to_label(score),
            reviewer_count=len(averages),
        )
    return result


def calculate_self_score(ratings: Iterable[Union[SelfRating, Number]]) -> Optional[float]:
    """Mean self-rating to 2 dp, None when nothing was submitted."""
    avg = reviewer_average(_rating_value(r) for r in ratings)
    if avg is None:
        return None
    return round_score(avg, BREAKDOWN_SCORE_PLACES)
