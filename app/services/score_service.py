"""
Score Service Layer

Orchestrates score calculation for a review cycle and serves the read
contract used by dashboards and reports.

Architecture:
- CycleService (COMPLETED transition) / admin recalculation -> ScoreService
- ScoreService -> ReviewRepository (load + upsert) and score_calculator (pure math)

Per-employee isolation: every assignment is calculated and committed on its
own. A failure for one employee is rolled back, logged with the cycle and
assignment ids and counted; it never stops the rest of the run.
"""
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError, StateConflictError
from app.models.calculated_score import CalculatedScore
from app.models.review_cycle import SCORED_STATUSES
from app.repositories.review_repository import ReviewRepository
from app.schemas.score import CalculatedScoreRecord, RecalculationResult, ScoreRunSummary
from app.services import score_calculator as calc
from app.services.audit import AuditAction, AuditService
from app.services.base import BaseService


class ScoreService(BaseService):
    """Calculates and persists one scorecard per employee in a cycle."""

    def __init__(self, db: Session, repository: Optional[ReviewRepository] = None, audit: Optional[AuditService] = None):
        super().__init__(db)
        self.repository = repository or ReviewRepository(db)
        self.audit = audit or AuditService(db)

    # ── Calculation ────────────────────────────────────────

    def run_for_cycle(self, cycle_id: int) -> ScoreRunSummary:
        """
        Calculate scores for every assignment in the cycle.

        Never raises. Per-assignment failures end up in `errors`; a failure to
        load the assignment list or the question map is counted as one error.
        """
        summary = ScoreRunSummary()
        try:
            assignments = self.repository.list_assignments(cycle_id)
            question_map = self.repository.load_question_competency_map()
        except Exception:
            self.db.rollback()
            summary.errors += 1
            self._logger.exception(
                f"Score calculation could not load assignments for cycle {cycle_id}",
                extra={"cycle_id": cycle_id},
            )
            return summary

        self.log_info(
            f"Calculating scores for cycle {cycle_id}: {len(assignments)} assignment(s)",
            cycle_id=cycle_id,
        )

        # Plain ids; a rollback expires the ORM instances
        targets = [(a.id, a.employee_id) for a in assignments]
        for assignment_id, employee_id in targets:
            try:
                written = self._calculate_for_employee(cycle_id, assignment_id, employee_id, question_map)
                if written is None:
                    summary.skipped += 1
                    continue
                self.db.commit()
                summary.calculated += 1
            except Exception:
                self.db.rollback()
                summary.errors += 1
                self._logger.exception(
                    f"Score calculation failed for assignment {assignment_id} in cycle {cycle_id}",
                    extra={"cycle_id": cycle_id, "assignment_id": assignment_id, "employee_id": employee_id},
                )

        self.log_info(
            f"Scores for cycle {cycle_id}: calculated={summary.calculated}, "
            f"skipped={summary.skipped}, errors={summary.errors}",
            cycle_id=cycle_id,
        )
        return summary

    def _calculate_for_employee(
        self,
        cycle_id: int,
        assignment_id: int,
        employee_id: str,
        question_map: dict
    ) -> Optional[CalculatedScore]:
        """Returns the upserted row, or None when there is nothing to score."""
        reviewers = self.repository.list_completed_reviewers_with_responses(assignment_id)
        if not reviewers:
            return None

        colleague = calc.calculate_colleague_score(reviewers)
        if colleague is None:
            return None

        competency_scores = calc.calculate_competency_scores(reviewers, question_map)
        category_scores = calc.calculate_category_scores(reviewers)

        self_ratings = self.repository.load_submitted_self_assessment(employee_id, cycle_id)
        self_score = calc.calculate_self_score(self_ratings) if self_ratings is not None else None

        record = CalculatedScoreRecord(
            employee_id=employee_id,
            cycle_id=cycle_id,
            colleague_score=colleague.colleague_score,
            self_score=self_score,
            final_label=colleague.final_label,
            competency_scores=competency_scores,
            reviewer_category_scores=category_scores,
            total_reviewers=colleague.total_reviewers,
        )
        return self.repository.upsert_calculated_score(record)

    def recompute(self, cycle_id: int, actor_id: Optional[str] = None) -> RecalculationResult:
        """
        On-demand recalculation for a COMPLETED or PUBLISHED cycle.
        Safe to repeat: every scorecard is overwritten in full.
        """
        cycle = self.repository.get_cycle(cycle_id)
        if cycle is None:
            raise NotFoundError(f"Review cycle {cycle_id} not found.")
        if cycle.status not in SCORED_STATUSES:
            raise StateConflictError(
                f"Scores can only be recalculated for COMPLETED or PUBLISHED cycles. "
                f"Current status: {cycle.status}",
                details={"cycle_id": cycle_id, "status": cycle.status}
            )
        cycle_name = cycle.name

        summary = self.run_for_cycle(cycle_id)

        self.audit.log_action(
            action=AuditAction.RECALCULATE,
            entity_type="calculated_scores",
            entity_id=cycle_id,
            user_id=actor_id,
            details=summary.model_dump()
        )
        self.db.commit()

        return RecalculationResult(
            cycle_id=cycle_id,
            message=f'Recalculation complete for cycle "{cycle_name}".',
            **summary.model_dump()
        )

    # ── Read contract ──────────────────────────────────────

    def get_score(self, employee_id: str, cycle_id: int) -> CalculatedScore:
        score = self.repository.get_calculated_score(employee_id, cycle_id)
        if score is None:
            raise NotFoundError(
                "Score not found. The cycle may not have been calculated yet.",
                details={"employee_id": employee_id, "cycle_id": cycle_id}
            )
        return score

    def list_scores_for_cycle(self, cycle_id: int) -> List[CalculatedScore]:
        if self.repository.get_cycle(cycle_id) is None:
            raise NotFoundError(f"Review cycle {cycle_id} not found.")
        return self.repository.list_scores_for_cycle(cycle_id)

    def list_scores_for_employee(self, employee_id: str) -> List[CalculatedScore]:
        return self.repository.list_scores_for_employee(employee_id)
