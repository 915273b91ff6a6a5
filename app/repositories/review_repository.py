"""
Review Repository

All database access for review cycles, reviewer data and calculated scores.
Services never query models directly; they go through this gateway so the
lifecycle and scoring logic can be exercised against a fake in tests.

Database errors are not caught here. They propagate to the calling service,
which either surfaces them (admin actions) or counts them per item (batch runs).
"""
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import and_, func, update
from sqlalchemy.orm import Session, selectinload

from app.core.exceptions import StateConflictError
from app.models.assignment import SurveyAssignment
from app.models.calculated_score import CalculatedScore
from app.models.question import Question
from app.models.review_cycle import ReviewCycle, CycleStatus, RUNNING_STATUSES
from app.models.reviewer import SurveyReviewer, ReviewerStatus
from app.models.self_feedback import SelfFeedback, SelfFeedbackStatus
from app.schemas.score import (
    CalculatedScoreRecord,
    RatingRecord,
    ReviewerRatings,
    SelfRating,
)


class ReviewRepository:
    def __init__(self, db: Session):
        self.db = db

    # ── Cycles ─────────────────────────────────────────────

    def get_cycle(self, cycle_id: int) -> Optional[ReviewCycle]:
        return self.db.get(ReviewCycle, cycle_id)

    def list_cycles(
        self,
        page: int = 1,
        limit: int = 10,
        statuses: Optional[Sequence[str]] = None
    ) -> Tuple[List[ReviewCycle], int]:
        query = self.db.query(ReviewCycle)
        if statuses:
            query = query.filter(ReviewCycle.status.in_(list(statuses)))
        total = query.count()
        cycles = (
            query.order_by(ReviewCycle.start_date.desc(), ReviewCycle.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return cycles, total

    def find_overlapping_active_cycle(
        self,
        start_date: date,
        end_date: date,
        exclude_id: Optional[int] = None
    ) -> Optional[ReviewCycle]:
        """
        First ACTIVE/CLOSING cycle whose range overlaps [start_date, end_date).

        Two ranges overlap when existing.start < new.end AND existing.end > new.start,
        so ranges that only touch at an endpoint do not conflict.
        """
        query = self.db.query(ReviewCycle).filter(
            ReviewCycle.status.in_(RUNNING_STATUSES),
            ReviewCycle.start_date < end_date,
            ReviewCycle.end_date > start_date,
        )
        if exclude_id is not None:
            query = query.filter(ReviewCycle.id != exclude_id)
        # Locks the overlapping row where the backend supports it. When nothing
        # overlaps yet nothing is locked, so two overlapping DRAFT cycles activated
        # at the same moment can both pass this check.
        return query.order_by(ReviewCycle.start_date).with_for_update().first()

    def list_cycles_past_end_date(self, today: date) -> List[ReviewCycle]:
        """ACTIVE cycles whose end_date is strictly before today."""
        return (
            self.db.query(ReviewCycle)
            .filter(
                ReviewCycle.status == CycleStatus.ACTIVE.value,
                ReviewCycle.end_date < today,
            )
            .order_by(ReviewCycle.end_date, ReviewCycle.id)
            .all()
        )

    def list_closing_cycles_past_grace(self, today: date) -> List[ReviewCycle]:
        """CLOSING cycles whose end_date + grace_period_days is strictly before today."""
        closing = (
            self.db.query(ReviewCycle)
            .filter(ReviewCycle.status == CycleStatus.CLOSING.value)
            .order_by(ReviewCycle.end_date, ReviewCycle.id)
            .all()
        )
        # Grace arithmetic in Python keeps the query portable across SQLite and PostgreSQL
        return [c for c in closing if c.end_date + timedelta(days=c.grace_period_days or 0) < today]

    def transition_cycle_status(
        self,
        cycle_id: int,
        new_status: CycleStatus,
        expected_status: CycleStatus
    ) -> ReviewCycle:
        """
        Compare-and-set status change. Exactly one of several concurrent callers
        that expect the same source status can succeed; the others get a conflict.
        Does not commit.
        """
        result = self.db.execute(
            update(ReviewCycle)
            .where(
                and_(
                    ReviewCycle.id == cycle_id,
                    ReviewCycle.status == expected_status.value,
                )
            )
            .values(status=new_status.value, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StateConflictError(
                f"Review cycle {cycle_id} is no longer {expected_status.value}; "
                f"transition to {new_status.value} was not applied.",
                details={"cycle_id": cycle_id, "expected_status": expected_status.value}
            )
        cycle = self.get_cycle(cycle_id)
        self.db.refresh(cycle)
        return cycle

    def create_cycle(self, **fields) -> ReviewCycle:
        cycle = ReviewCycle(**fields)
        self.db.add(cycle)
        self.db.flush()
        return cycle

    def update_cycle(self, cycle: ReviewCycle, **fields) -> ReviewCycle:
        for key, value in fields.items():
            setattr(cycle, key, value)
        self.db.flush()
        return cycle

    def delete_cycle(self, cycle: ReviewCycle) -> None:
        self.db.delete(cycle)
        self.db.flush()

    # ── Reviewer data ──────────────────────────────────────

    def list_assignments(self, cycle_id: int) -> List[SurveyAssignment]:
        return (
            self.db.query(SurveyAssignment)
            .filter(SurveyAssignment.cycle_id == cycle_id)
            .order_by(SurveyAssignment.id)
            .all()
        )

    def list_completed_reviewers_with_responses(self, assignment_id: int) -> List[ReviewerRatings]:
        reviewers = (
            self.db.query(SurveyReviewer)
            .options(selectinload(SurveyReviewer.responses))
            .filter(
                SurveyReviewer.assignment_id == assignment_id,
                SurveyReviewer.status == ReviewerStatus.COMPLETED.value,
            )
            .order_by(SurveyReviewer.id)
            .all()
        )
        return [
            ReviewerRatings(
                reviewer_id=r.id,
                category=r.category,
                ratings=[RatingRecord(question_id=resp.question_id, value=resp.rating) for resp in r.responses],
            )
            for r in reviewers
        ]

    def load_submitted_self_assessment(self, employee_id: str, cycle_id: int) -> Optional[List[SelfRating]]:
        feedback = (
            self.db.query(SelfFeedback)
            .filter(
                SelfFeedback.employee_id == employee_id,
                SelfFeedback.cycle_id == cycle_id,
                SelfFeedback.status == SelfFeedbackStatus.SUBMITTED.value,
            )
            .first()
        )
        if feedback is None:
            return None
        return [SelfRating(**entry) for entry in (feedback.competency_ratings or [])]

    def load_question_competency_map(self) -> Dict[int, str]:
        rows = (
            self.db.query(Question.id, Question.competency_id)
            .filter(Question.is_active.is_(True))
            .all()
        )
        return {question_id: competency_id for question_id, competency_id in rows}

    # ── Calculated scores ──────────────────────────────────

    def upsert_calculated_score(self, record: CalculatedScoreRecord) -> CalculatedScore:
        """
        Insert or fully overwrite the (employee, cycle) scorecard. Every column is
        replaced, so nothing from an earlier calculation survives. Does not commit.
        """
        values = record.model_dump(mode="json")
        values["calculated_at"] = datetime.now(timezone.utc)

        score = (
            self.db.query(CalculatedScore)
            .filter(
                CalculatedScore.employee_id == record.employee_id,
                CalculatedScore.cycle_id == record.cycle_id,
            )
            .with_for_update()
            .first()
        )
        if score is None:
            score = CalculatedScore(**values)
            self.db.add(score)
        else:
            for key, value in values.items():
                setattr(score, key, value)
        self.db.flush()
        return score

    def get_calculated_score(self, employee_id: str, cycle_id: int) -> Optional[CalculatedScore]:
        return (
            self.db.query(CalculatedScore)
            .filter(
                CalculatedScore.employee_id == employee_id,
                CalculatedScore.cycle_id == cycle_id,
            )
            .first()
        )

    def list_scores_for_cycle(self, cycle_id: int) -> List[CalculatedScore]:
        return (
            self.db.query(CalculatedScore)
            .filter(CalculatedScore.cycle_id == cycle_id)
            .order_by(CalculatedScore.colleague_score.desc(), CalculatedScore.employee_id)
            .all()
        )

    def list_scores_for_employee(self, employee_id: str) -> List[CalculatedScore]:
        return (
            self.db.query(CalculatedScore)
            .filter(CalculatedScore.employee_id == employee_id)
            .order_by(CalculatedScore.calculated_at.desc(), CalculatedScore.id.desc())
            .all()
        )
