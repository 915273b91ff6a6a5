"""
Cycle Service Layer

Owns the review cycle state machine:

    DRAFT --[activate]--> ACTIVE --[sweep: end_date passed]--> CLOSING
          --[sweep: end_date + grace passed]--> COMPLETED --[publish]--> PUBLISHED

Admin transitions (activate, publish) and DRAFT edits fail fast with a typed
conflict. The sweep is driven by the scheduler, handles every cycle on its
own and always returns counts instead of raising.

Reaching COMPLETED hands the cycle to the injected score runner. Any object
with a `run_for_cycle(cycle_id)` method fits; the default is ScoreService.
"""
import math
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Optional, Protocol

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import NotFoundError, StateConflictError, BusinessValidationError
from app.models.review_cycle import ReviewCycle, CycleStatus, VALID_TRANSITIONS
from app.repositories.review_repository import ReviewRepository
from app.schemas.cycle import CycleCreate, CycleListResponse, CycleResponse, CycleUpdate, SweepResult
from app.schemas.score import ScoreRunSummary
from app.services.audit import AuditAction, AuditService, AUTO_TRIGGER, sanitize
from app.services.base import BaseService
from app.services.score_service import ScoreService


class ScoreRunner(Protocol):
    def run_for_cycle(self, cycle_id: int) -> ScoreRunSummary: ...


def compute_end_date(start_date: date, duration_months: int) -> date:
    """Last day of the cycle: start + N months - 1 day (e.g. Jan 1 + 3 months -> Mar 31)."""
    return start_date + relativedelta(months=duration_months) - timedelta(days=1)


def _snapshot(cycle: ReviewCycle) -> Dict[str, Any]:
    return sanitize(CycleResponse.model_validate(cycle).model_dump())


class CycleService(BaseService):
    def __init__(
        self,
        db: Session,
        repository: Optional[ReviewRepository] = None,
        score_runner: Optional[ScoreRunner] = None,
        audit: Optional[AuditService] = None,
        clock: Callable[[], date] = date.today
    ):
        super().__init__(db)
        self.repository = repository or ReviewRepository(db)
        self.audit = audit or AuditService(db)
        self.score_runner = score_runner or ScoreService(db, repository=self.repository, audit=self.audit)
        self.clock = clock

    # ── Queries ────────────────────────────────────────────

    def get_cycle(self, cycle_id: int) -> ReviewCycle:
        cycle = self.repository.get_cycle(cycle_id)
        if cycle is None:
            raise NotFoundError(f"Review cycle {cycle_id} not found.")
        return cycle

    def list_cycles(self, page: int = 1, limit: int = 10, status: Optional[str] = None) -> CycleListResponse:
        limit = max(1, min(limit, settings.max_page_size))
        page = max(1, page)
        statuses = [s.strip().upper() for s in status.split(",") if s.strip()] if status else None
        if statuses:
            unknown = [s for s in statuses if s not in CycleStatus.__members__]
            if unknown:
                raise BusinessValidationError(f"Unknown cycle status: {', '.join(unknown)}")
        cycles, total = self.repository.list_cycles(page=page, limit=limit, statuses=statuses)
        return CycleListResponse(
            cycles=[CycleResponse.model_validate(c) for c in cycles],
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit) if total else 0,
        )

    # ── DRAFT editing ──────────────────────────────────────

    def create_cycle(self, payload: CycleCreate, actor_id: Optional[str] = None) -> ReviewCycle:
        cycle = self.repository.create_cycle(
            name=payload.name,
            start_date=payload.start_date,
            end_date=compute_end_date(payload.start_date, payload.duration_months),
            duration_months=payload.duration_months,
            grace_period_days=payload.grace_period_days,
            enable_self_feedback=payload.enable_self_feedback,
            enable_colleague_feedback=payload.enable_colleague_feedback,
            reminder_schedule=payload.reminder_schedule,
            created_by=actor_id,
            status=CycleStatus.DRAFT.value,
        )
        self.audit.log_action(
            action=AuditAction.CREATE,
            entity_type="review_cycles",
            entity_id=cycle.id,
            user_id=actor_id,
            after_state=_snapshot(cycle)
        )
        self._commit()
        self.log_info(f"Created review cycle {cycle.id} ({cycle.name})", cycle_id=cycle.id)
        return cycle

    def update_cycle(self, cycle_id: int, payload: CycleUpdate, actor_id: Optional[str] = None) -> ReviewCycle:
        cycle = self._require_draft(cycle_id, "edited")
        before = _snapshot(cycle)

        updates = payload.model_dump(exclude_unset=True, exclude_none=True)
        start = updates.get("start_date", cycle.start_date)
        duration = updates.get("duration_months", cycle.duration_months)
        if "start_date" in updates or "duration_months" in updates:
            updates["end_date"] = compute_end_date(start, duration)

        self.repository.update_cycle(cycle, **updates)
        self.audit.log_action(
            action=AuditAction.UPDATE,
            entity_type="review_cycles",
            entity_id=cycle_id,
            user_id=actor_id,
            before_state=before,
            after_state=_snapshot(cycle)
        )
        self._commit()
        self.db.refresh(cycle)
        return cycle

    def delete_cycle(self, cycle_id: int, actor_id: Optional[str] = None) -> None:
        cycle = self._require_draft(cycle_id, "deleted")
        before = _snapshot(cycle)
        self.repository.delete_cycle(cycle)
        self.audit.log_action(
            action=AuditAction.DELETE,
            entity_type="review_cycles",
            entity_id=cycle_id,
            user_id=actor_id,
            before_state=before
        )
        self._commit()

    # ── Admin transitions ──────────────────────────────────

    def activate(self, cycle_id: int, actor_id: Optional[str] = None) -> ReviewCycle:
        """DRAFT -> ACTIVE, refused while another running cycle overlaps the dates."""
        cycle = self.get_cycle(cycle_id)
        self._check_transition(cycle, CycleStatus.ACTIVE)

        overlap = self.repository.find_overlapping_active_cycle(
            cycle.start_date, cycle.end_date, exclude_id=cycle.id
        )
        if overlap is not None:
            raise StateConflictError(
                f'Cannot activate: cycle "{overlap.name}" ({overlap.status}) overlaps these dates '
                f"({overlap.start_date.isoformat()} - {overlap.end_date.isoformat()}).",
                details={
                    "overlapping_cycle_id": overlap.id,
                    "overlapping_cycle_name": overlap.name,
                    "overlapping_status": overlap.status,
                    "overlapping_start_date": overlap.start_date.isoformat(),
                    "overlapping_end_date": overlap.end_date.isoformat(),
                }
            )

        return self._apply_transition(cycle, CycleStatus.ACTIVE, AuditAction.ACTIVATE, actor_id)

    def publish(self, cycle_id: int, actor_id: Optional[str] = None) -> ReviewCycle:
        """COMPLETED -> PUBLISHED. Results become visible to employees."""
        cycle = self.get_cycle(cycle_id)
        self._check_transition(cycle, CycleStatus.PUBLISHED)
        return self._apply_transition(cycle, CycleStatus.PUBLISHED, AuditAction.PUBLISH, actor_id)

    # ── Time-driven transitions ────────────────────────────

    def sweep(self, today: Optional[date] = None) -> SweepResult:
        """
        One scheduler tick.

        ACTIVE  -> CLOSING   when end_date < today
        CLOSING -> COMPLETED when end_date + grace_period_days < today, then scores

        Both candidate lists are read up front, so a cycle closed in this tick
        completes on a later one. Repeated or missed ticks converge on the same
        end state. Never raises.
        """
        today = today or self.clock()
        result = SweepResult(run_date=today)

        try:
            to_close = [c.id for c in self.repository.list_cycles_past_end_date(today)]
            to_complete = [c.id for c in self.repository.list_closing_cycles_past_grace(today)]
        except Exception:
            self.db.rollback()
            result.errors += 1
            self._logger.exception("Cycle sweep could not load candidate cycles", extra={"run_date": today.isoformat()})
            return result

        for cycle_id in to_close:
            try:
                self._auto_transition(cycle_id, CycleStatus.ACTIVE, CycleStatus.CLOSING, AuditAction.AUTO_CLOSE)
                result.closed += 1
            except Exception:
                self.db.rollback()
                result.errors += 1
                self._logger.exception(f"Failed to close review cycle {cycle_id}", extra={"cycle_id": cycle_id})

        for cycle_id in to_complete:
            try:
                self._auto_transition(cycle_id, CycleStatus.CLOSING, CycleStatus.COMPLETED, AuditAction.AUTO_COMPLETE)
                result.completed += 1
            except Exception:
                self.db.rollback()
                result.errors += 1
                self._logger.exception(f"Failed to complete review cycle {cycle_id}", extra={"cycle_id": cycle_id})
                continue

            try:
                summary = self.score_runner.run_for_cycle(cycle_id)
                self.log_info(
                    f"Scores calculated for cycle {cycle_id}: calculated={summary.calculated}, "
                    f"skipped={summary.skipped}, errors={summary.errors}",
                    cycle_id=cycle_id,
                )
            except Exception:
                self.db.rollback()
                result.errors += 1
                self._logger.exception(f"Score calculation failed for cycle {cycle_id}", extra={"cycle_id": cycle_id})

        self.log_info(
            f"Cycle sweep {today.isoformat()}: {result.closed} cycle(s) -> CLOSING, "
            f"{result.completed} cycle(s) -> COMPLETED, {result.errors} error(s)",
            run_date=today.isoformat(),
        )
        return result

    # ── Internals ──────────────────────────────────────────

    def _auto_transition(
        self,
        cycle_id: int,
        source: CycleStatus,
        target: CycleStatus,
        action: AuditAction
    ) -> ReviewCycle:
        cycle = self.repository.transition_cycle_status(cycle_id, target, expected_status=source)
        self.audit.log_cycle_transition(
            cycle_id, action, source.value, target.value, user_id=None, trigger=AUTO_TRIGGER
        )
        self._commit()
        self.log_info(f"Review cycle {cycle_id} ({cycle.name}) -> {target.value}", cycle_id=cycle_id)
        return cycle

    def _check_transition(self, cycle: ReviewCycle, target: CycleStatus) -> None:
        allowed: List[CycleStatus] = VALID_TRANSITIONS[CycleStatus(cycle.status)]
        if target not in allowed:
            allowed_names = ", ".join(s.value for s in allowed) or "none"
            raise StateConflictError(
                f'Cannot transition "{cycle.name}" from {cycle.status} to {target.value}. '
                f"Allowed next states: {allowed_names}.",
                details={
                    "cycle_id": cycle.id,
                    "current_status": cycle.status,
                    "requested_status": target.value,
                    "allowed": [s.value for s in allowed],
                }
            )

    def _apply_transition(
        self,
        cycle: ReviewCycle,
        target: CycleStatus,
        action: AuditAction,
        actor_id: Optional[str]
    ) -> ReviewCycle:
        source = CycleStatus(cycle.status)
        updated = self.repository.transition_cycle_status(cycle.id, target, expected_status=source)
        self.audit.log_cycle_transition(cycle.id, action, source.value, target.value, user_id=actor_id)
        self._commit()
        self.log_info(f"Review cycle {cycle.id} {source.value} -> {target.value}", cycle_id=cycle.id)
        return updated

    def _require_draft(self, cycle_id: int, verb: str) -> ReviewCycle:
        cycle = self.get_cycle(cycle_id)
        if cycle.status != CycleStatus.DRAFT.value:
            raise StateConflictError(
                f'Cycle "{cycle.name}" is {cycle.status}. Only DRAFT cycles can be {verb}.',
                details={"cycle_id": cycle_id, "status": cycle.status}
            )
        return cycle

    def _commit(self) -> None:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
