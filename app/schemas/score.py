from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Dict, List, Optional


# --- Calculator inputs ---

class RatingRecord(BaseModel):
    question_id: int
    value: int


class ReviewerRatings(BaseModel):
    """One COMPLETED reviewer with every rating they submitted."""
    reviewer_id: int
    category: str
    ratings: List[RatingRecord] = Field(default_factory=list)


class SelfRating(BaseModel):
    competency_id: str
    rating: int


# --- Calculator outputs ---

class ColleagueAggregate(BaseModel):
    colleague_score: float
    final_label: str
    total_reviewers: int


class CompetencyScore(BaseModel):
    score: float
    label: str
    response_count: int


class CategoryScore(BaseModel):
    score: float
    label: str
    reviewer_count: int


# --- Persistence / read contract ---

class CalculatedScoreRecord(BaseModel):
    """Full replacement payload for one (employee, cycle) scorecard."""
    employee_id: str
    cycle_id: int
    colleague_score: float
    self_score: Optional[float] = None
    final_label: str
    competency_scores: Dict[str, CompetencyScore]
    reviewer_category_scores: Dict[str, CategoryScore]
    total_reviewers: int


class CalculatedScoreResponse(BaseModel):
    id: int
    employee_id: str
    cycle_id: int
    colleague_score: float
    self_score: Optional[float] = None
    final_label: str
    competency_scores: Dict[str, CompetencyScore]
    reviewer_category_scores: Dict[str, CategoryScore]
    total_reviewers: int
    calculated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ScoreRunSummary(BaseModel):
    calculated: int = 0
    skipped: int = 0
    errors: int = 0


class RecalculationResult(ScoreRunSummary):
    cycle_id: int
    message: str
