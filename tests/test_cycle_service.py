import pytest
from datetime import date
from app.core.exceptions import BusinessValidationError, NotFoundError, StateConflictError
from app.models import AuditLog, CalculatedScore, CycleStatus, ReviewCycle
from app.repositories.review_repository import ReviewRepository
from app.schemas.cycle import CycleCreate, CycleUpdate
from app.schemas.score import ScoreRunSummary
from app.services.cycle_service import CycleService, compute_end_date


class RecordingRunner:
    def __init__(self, fail_for=()):
        self.calls = []
        self.fail_for = set(fail_for)

    def run_for_cycle(self, cycle_id):
        self.calls.append(cycle_id)
        if cycle_id in self.fail_for:
            raise RuntimeError("scoring backend unavailable")
        return ScoreRunSummary(calculated=1)


@pytest.fixture
def runner():
    return RecordingRunner()


@pytest.fixture
def service(db_session, runner):
    return CycleService(db_session, score_runner=runner)


def _status(db_session, cycle_id):
    db_session.expire_all()
    return db_session.get(ReviewCycle, cycle_id).status


# ── end date ───────────────────────────────────────────────

@pytest.mark.parametrize("start,months,end", [
    (date(2026, 1, 1), 3, date(2026, 3, 31)),
    (date(2026, 1, 1), 12, date(2026, 12, 31)),
    (date(2026, 7, 15), 6, date(2027, 1, 14)),
    (date(2026, 11, 30), 3, date(2027, 2, 27)),
])
def test_compute_end_date(start, months, end):
    assert compute_end_date(start, months) == end


# ── DRAFT editing ──────────────────────────────────────────

def test_create_cycle_starts_as_draft(db_session, service):
    cycle = service.create_cycle(
        CycleCreate(name="Q2 2026 Review", start_date=date(2026, 4, 1), duration_months=3),
        actor_id="HR01",
    )

    assert cycle.status == "DRAFT"
    assert cycle.end_date == date(2026, 6, 30)
    assert cycle.grace_period_days == 3
    assert cycle.reminder_schedule == [7, 3, 1]
    entry = db_session.query(AuditLog).filter_by(action="CREATE").one()
    assert entry.user_id == "HR01"
    assert entry.entity_id == str(cycle.id)
    assert entry.after_state["end_date"] == "2026-06-30"


def test_update_recomputes_end_date(db_session, service, make_cycle):
    cycle = make_cycle()

    updated = service.update_cycle(cycle.id, CycleUpdate(duration_months=6), actor_id="HR01")

    assert updated.end_date == date(2026, 6, 30)
    assert updated.duration_months == 6
    entry = db_session.query(AuditLog).filter_by(action="UPDATE").one()
    assert entry.before_state["end_date"] == "2026-03-31"
    assert entry.after_state["end_date"] == "2026-06-30"


def test_update_name_keeps_dates(service, make_cycle):
    cycle = make_cycle()
    updated = service.update_cycle(cycle.id, CycleUpdate(name="Renamed Review"))
    assert updated.name == "Renamed Review"
    assert updated.end_date == date(2026, 3, 31)


@pytest.mark.parametrize("status", [CycleStatus.ACTIVE, CycleStatus.COMPLETED])
def test_only_draft_cycles_are_editable(service, make_cycle, status):
    cycle = make_cycle(status=status)
    with pytest.raises(StateConflictError) as exc:
        service.update_cycle(cycle.id, CycleUpdate(name="Too late"))
    assert "Only DRAFT cycles can be edited" in exc.value.message

    with pytest.raises(StateConflictError):
        service.delete_cycle(cycle.id)


def test_delete_draft_cycle(db_session, service, make_cycle):
    cycle = make_cycle()
    cycle_id = cycle.id

    service.delete_cycle(cycle_id, actor_id="HR01")

    with pytest.raises(NotFoundError):
        service.get_cycle(cycle_id)
    entry = db_session.query(AuditLog).filter_by(action="DELETE").one()
    assert entry.before_state["name"] == "Q1 2026 Review"


def test_list_cycles_filters_by_status(service, make_cycle):
    make_cycle(name="Draft One")
    make_cycle(name="Running", status=CycleStatus.ACTIVE)
    make_cycle(name="Done", start_date=date(2025, 1, 1), end_date=date(2025, 3, 31),
               status=CycleStatus.PUBLISHED)

    result = service.list_cycles(status="active, published")

    assert result.total == 2
    assert [c.name for c in result.cycles] == ["Running", "Done"]
    assert result.total_pages == 1


def test_list_cycles_rejects_unknown_status(service):
    with pytest.raises(BusinessValidationError):
        service.list_cycles(status="ACTIVE,ARCHIVED")


# ── activate / publish ─────────────────────────────────────

def test_activate_draft_cycle(db_session, service, make_cycle):
    cycle = make_cycle()

    activated = service.activate(cycle.id, actor_id="HR01")

    assert activated.status == "ACTIVE"
    entry = db_session.query(AuditLog).filter_by(action="ACTIVATE").one()
    assert entry.user_id == "HR01"
    assert entry.details == {"trigger": "MANUAL"}
    assert entry.before_state == {"status": "DRAFT"}
    assert entry.after_state == {"status": "ACTIVE"}


def test_activate_refused_while_overlapping_cycle_runs(db_session, service, make_cycle):
    running = make_cycle(name="Q1 2026 Review", status=CycleStatus.ACTIVE)
    draft = make_cycle(name="Spring 2026 Review", start_date=date(2026, 3, 1), end_date=date(2026, 5, 31))

    with pytest.raises(StateConflictError) as exc:
        service.activate(draft.id)

    assert '"Q1 2026 Review"' in exc.value.message
    assert exc.value.details["overlapping_cycle_id"] == running.id
    assert exc.value.details["overlapping_status"] == "ACTIVE"
    assert _status(db_session, draft.id) == "DRAFT"


def test_activate_refused_while_overlapping_cycle_is_closing(service, make_cycle):
    make_cycle(name="Q1 2026 Review", status=CycleStatus.CLOSING)
    draft = make_cycle(name="Overlapping", start_date=date(2026, 2, 1), end_date=date(2026, 4, 30))
    with pytest.raises(StateConflictError):
        service.activate(draft.id)


def test_activate_allows_adjacent_range(service, make_cycle):
    make_cycle(name="Q1 2026 Review", end_date=date(2026, 4, 1), status=CycleStatus.ACTIVE)
    draft = make_cycle(name="Q2 2026 Review", start_date=date(2026, 4, 1), end_date=date(2026, 6, 30))

    assert service.activate(draft.id).status == "ACTIVE"


@pytest.mark.parametrize("other_status", [CycleStatus.DRAFT, CycleStatus.COMPLETED, CycleStatus.PUBLISHED])
def test_activate_ignores_cycles_that_are_not_running(service, make_cycle, other_status):
    make_cycle(name="Other Review", status=other_status)
    draft = make_cycle(name="Same Dates Review")

    assert service.activate(draft.id).status == "ACTIVE"


def test_activate_from_active_is_a_conflict(service, make_cycle):
    cycle = make_cycle(status=CycleStatus.ACTIVE)
    with pytest.raises(StateConflictError) as exc:
        service.activate(cycle.id)
    assert "Allowed next states: CLOSING" in exc.value.message
    assert exc.value.details["allowed"] == ["CLOSING"]


def test_activate_unknown_cycle(service):
    with pytest.raises(NotFoundError):
        service.activate(404)


def test_publish_completed_cycle(db_session, service, make_cycle):
    cycle = make_cycle(status=CycleStatus.COMPLETED)

    assert service.publish(cycle.id, actor_id="HR01").status == "PUBLISHED"
    assert db_session.query(AuditLog).filter_by(action="PUBLISH").count() == 1


@pytest.mark.parametrize("status", [CycleStatus.DRAFT, CycleStatus.ACTIVE, CycleStatus.CLOSING, CycleStatus.PUBLISHED])
def test_publish_from_other_states_is_a_conflict(service, make_cycle, status):
    cycle = make_cycle(status=status)
    with pytest.raises(StateConflictError):
        service.publish(cycle.id)


def test_published_is_terminal(service, make_cycle):
    cycle = make_cycle(status=CycleStatus.PUBLISHED)
    with pytest.raises(StateConflictError) as exc:
        service.activate(cycle.id)
    assert "Allowed next states: none" in exc.value.message


def test_transition_with_stale_expected_status_conflicts(db_session, make_cycle):
    cycle = make_cycle(status=CycleStatus.ACTIVE)
    repository = ReviewRepository(db_session)

    with pytest.raises(StateConflictError):
        repository.transition_cycle_status(cycle.id, CycleStatus.ACTIVE, expected_status=CycleStatus.DRAFT)
    db_session.rollback()

    assert _status(db_session, cycle.id) == "ACTIVE"


# ── sweep ──────────────────────────────────────────────────

def test_sweep_closes_only_after_end_date(db_session, service, make_cycle, runner):
    cycle = make_cycle(status=CycleStatus.ACTIVE)

    on_end_date = service.sweep(today=date(2026, 3, 31))
    assert (on_end_date.closed, on_end_date.completed, on_end_date.errors) == (0, 0, 0)
    assert _status(db_session, cycle.id) == "ACTIVE"

    next_day = service.sweep(today=date(2026, 4, 1))
    assert next_day.closed == 1
    assert next_day.run_date == date(2026, 4, 1)
    assert _status(db_session, cycle.id) == "CLOSING"
    assert runner.calls == []


def test_sweep_completes_after_grace_period(db_session, service, make_cycle, runner):
    cycle = make_cycle(status=CycleStatus.CLOSING, grace_period_days=3)

    # end_date + grace = 2026-04-03, still inside the window
    assert service.sweep(today=date(2026, 4, 3)).completed == 0
    assert _status(db_session, cycle.id) == "CLOSING"

    result = service.sweep(today=date(2026, 4, 4))
    assert result.completed == 1
    assert _status(db_session, cycle.id) == "COMPLETED"
    assert runner.calls == [cycle.id]


def test_sweep_with_zero_grace(db_session, service, make_cycle):
    cycle = make_cycle(status=CycleStatus.CLOSING, grace_period_days=0)
    assert service.sweep(today=date(2026, 4, 1)).completed == 1
    assert _status(db_session, cycle.id) == "COMPLETED"


def test_cycle_closed_in_a_tick_completes_on_a_later_tick(db_session, service, make_cycle, runner):
    cycle = make_cycle(status=CycleStatus.ACTIVE, grace_period_days=0)

    first = service.sweep(today=date(2026, 6, 1))
    assert (first.closed, first.completed) == (1, 0)
    assert _status(db_session, cycle.id) == "CLOSING"

    second = service.sweep(today=date(2026, 6, 1))
    assert (second.closed, second.completed) == (0, 1)
    assert _status(db_session, cycle.id) == "COMPLETED"
    assert runner.calls == [cycle.id]


def test_repeated_sweep_is_a_no_op(db_session, service, make_cycle, runner):
    make_cycle(status=CycleStatus.CLOSING)
    service.sweep(today=date(2026, 5, 1))

    again = service.sweep(today=date(2026, 5, 1))

    assert (again.closed, again.completed, again.errors) == (0, 0, 0)
    assert len(runner.calls) == 1
    assert db_session.query(AuditLog).filter_by(action="AUTO_COMPLETE").count() == 1


def test_sweep_leaves_other_statuses_alone(db_session, service, make_cycle):
    ids = {
        status: make_cycle(name=f"{status.value} Review", status=status).id
        for status in (CycleStatus.DRAFT, CycleStatus.COMPLETED, CycleStatus.PUBLISHED)
    }

    result = service.sweep(today=date(2027, 1, 1))

    assert (result.closed, result.completed) == (0, 0)
    for status, cycle_id in ids.items():
        assert _status(db_session, cycle_id) == status.value


def test_sweep_audits_with_auto_trigger(db_session, service, make_cycle):
    cycle = make_cycle(status=CycleStatus.ACTIVE)
    service.sweep(today=date(2026, 4, 1))

    entry = db_session.query(AuditLog).filter_by(action="AUTO_CLOSE").one()
    assert entry.user_id is None
    assert entry.entity_id == str(cycle.id)
    assert entry.details == {"trigger": "AUTO"}
    assert entry.before_state == {"status": "ACTIVE"}
    assert entry.after_state == {"status": "CLOSING"}


def test_score_failure_does_not_undo_completion(db_session, make_cycle):
    failing = make_cycle(name="Failing Review", status=CycleStatus.CLOSING)
    healthy = make_cycle(name="Healthy Review", status=CycleStatus.CLOSING)
    runner = RecordingRunner(fail_for=[failing.id])

    result = CycleService(db_session, score_runner=runner).sweep(today=date(2026, 5, 1))

    assert result.completed == 2
    assert result.errors == 1
    assert _status(db_session, failing.id) == "COMPLETED"
    assert _status(db_session, healthy.id) == "COMPLETED"
    assert sorted(runner.calls) == sorted([failing.id, healthy.id])


def test_one_failing_transition_does_not_stop_the_sweep(db_session, service, make_cycle, monkeypatch):
    broken_id = make_cycle(name="Broken Review", status=CycleStatus.ACTIVE).id
    other_id = make_cycle(name="Other Review", status=CycleStatus.ACTIVE).id
    original = service.repository.transition_cycle_status

    def flaky(cycle_id, new_status, expected_status):
        if cycle_id == broken_id:
            raise RuntimeError("database is locked")
        return original(cycle_id, new_status, expected_status=expected_status)

    monkeypatch.setattr(service.repository, "transition_cycle_status", flaky)

    result = service.sweep(today=date(2026, 4, 1))

    assert (result.closed, result.errors) == (1, 1)
    assert _status(db_session, broken_id) == "ACTIVE"
    assert _status(db_session, other_id) == "CLOSING"


def test_sweep_reports_candidate_load_failure(service, monkeypatch):
    def boom(today):
        raise RuntimeError("connection refused")

    monkeypatch.setattr(service.repository, "list_cycles_past_end_date", boom)

    result = service.sweep(today=date(2026, 4, 1))

    assert (result.closed, result.completed, result.errors) == (0, 0, 1)


def test_sweep_uses_injected_clock(db_session, make_cycle, runner):
    cycle = make_cycle(status=CycleStatus.ACTIVE)
    service = CycleService(db_session, score_runner=runner, clock=lambda: date(2026, 4, 1))

    result = service.sweep()

    assert result.run_date == date(2026, 4, 1)
    assert _status(db_session, cycle.id) == "CLOSING"


def test_sweep_writes_scores_on_completion(db_session, make_cycle, make_assignment, questions):
    cycle = make_cycle(status=CycleStatus.CLOSING)
    make_assignment(cycle, "E100", [
        {"category": "MANAGER", "ratings": {1: 4, 4: 4}},
        {"category": "PEER", "ratings": {2: 3}},
    ])

    result = CycleService(db_session).sweep(today=date(2026, 4, 10))

    assert (result.completed, result.errors) == (1, 0)
    score = db_session.query(CalculatedScore).filter_by(cycle_id=cycle.id, employee_id="E100").one()
    assert score.colleague_score == 3.5
    assert score.final_label == "Outstanding Impact"
