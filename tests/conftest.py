import pytest
import os
from datetime import date, datetime, timezone
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SCHEDULER_ENABLED"] = "false"

from app.database import Base, get_db
from app.main import app
from app.models import (
    ReviewCycle, CycleStatus, SurveyAssignment, SurveyReviewer, ReviewerStatus,
    Question, SurveyResponse, SelfFeedback, SelfFeedbackStatus,
)
from fastapi.testclient import TestClient

# SQLite in-memory database configuration
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(scope="function")
def db_engine():
    """A fresh in-memory schema per test, so per-item commits and rollbacks are real."""
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(scope="function")
def client(db_session):
    """Get a TestClient that uses the test database session via dependency override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ── Data builders ──────────────────────────────────────────

# question id -> competency id
QUESTION_COMPETENCIES = {
    1: "COMMUNICATION",
    2: "COMMUNICATION",
    3: "COMMUNICATION",
    4: "DELIVERY",
    5: "DELIVERY",
    6: "OWNERSHIP",
}
INACTIVE_QUESTION_ID = 7


@pytest.fixture(scope="function")
def questions(db_session):
    for question_id, competency_id in QUESTION_COMPETENCIES.items():
        db_session.add(Question(id=question_id, competency_id=competency_id, is_active=True))
    db_session.add(Question(id=INACTIVE_QUESTION_ID, competency_id="RETIRED", is_active=False))
    db_session.commit()
    return dict(QUESTION_COMPETENCIES)


@pytest.fixture(scope="function")
def make_cycle(db_session):
    """Insert a cycle directly in any status, bypassing the service rules."""
    def _make_cycle(
        name="Q1 2026 Review",
        start_date=date(2026, 1, 1),
        end_date=date(2026, 3, 31),
        status=CycleStatus.DRAFT,
        grace_period_days=3,
        duration_months=3,
    ):
        cycle = ReviewCycle(
            name=name,
            start_date=start_date,
            end_date=end_date,
            duration_months=duration_months,
            grace_period_days=grace_period_days,
            status=status.value if isinstance(status, CycleStatus) else status,
            reminder_schedule=[7, 3, 1],
            created_by="EMP001",
        )
        db_session.add(cycle)
        db_session.commit()
        db_session.refresh(cycle)
        return cycle
    return _make_cycle


@pytest.fixture(scope="function")
def make_assignment(db_session):
    """
    Insert an assignment with reviewers.

    reviewers: [{"category": "PEER", "ratings": {question_id: rating}, "status": "COMPLETED"}]
    """
    def _make_assignment(cycle, employee_id, reviewers=()):
        assignment = SurveyAssignment(cycle_id=cycle.id, employee_id=employee_id)
        db_session.add(assignment)
        db_session.flush()
        for index, spec in enumerate(reviewers):
            status = spec.get("status", ReviewerStatus.COMPLETED.value)
            reviewer = SurveyReviewer(
                assignment_id=assignment.id,
                reviewer_employee_id=spec.get("reviewer", f"{employee_id}-R{index}"),
                category=spec["category"],
                status=status,
                completed_at=datetime.now(timezone.utc) if status == ReviewerStatus.COMPLETED.value else None,
            )
            db_session.add(reviewer)
            db_session.flush()
            for question_id, rating in spec.get("ratings", {}).items():
                db_session.add(SurveyResponse(reviewer_id=reviewer.id, question_id=question_id, rating=rating))
        db_session.flush()
        db_session.refresh(assignment)
        assignment.refresh_status()
        db_session.commit()
        return assignment
    return _make_assignment


@pytest.fixture(scope="function")
def make_self_feedback(db_session):
    def _make_self_feedback(cycle, employee_id, ratings, submitted=True):
        feedback = SelfFeedback(
            employee_id=employee_id,
            cycle_id=cycle.id,
            competency_ratings=[{"competency_id": c, "rating": r} for c, r in ratings.items()],
            status=SelfFeedbackStatus.SUBMITTED.value if submitted else SelfFeedbackStatus.DRAFT.value,
        )
        db_session.add(feedback)
        db_session.commit()
        return feedback
    return _make_self_feedback


@pytest.fixture(scope="function")
def worked_example(make_cycle, make_assignment, questions):
    """
    A COMPLETED cycle with:
    - E100: Manager avg 3, Peer avg 4, Peer avg 3, Direct report avg 4, plus a
      pending peer whose ratings must be ignored.
    - E200: only a pending reviewer, so nothing to score.
    """
    cycle = make_cycle(name="H1 2026 Review", status=CycleStatus.COMPLETED)
    scored = make_assignment(cycle, "E100", [
        {"category": "MANAGER", "ratings": {1: 3, 4: 3}},
        {"category": "PEER", "ratings": {1: 4}},
        {"category": "PEER", "ratings": {2: 3, 5: 3, 6: 3}},
        {"category": "DIRECT_REPORT", "ratings": {3: 4, 6: 4}},
        {"category": "PEER", "ratings": {1: 1, 2: 1}, "status": ReviewerStatus.IN_PROGRESS.value},
    ])
    unscored = make_assignment(cycle, "E200", [
        {"category": "MANAGER", "ratings": {}, "status": ReviewerStatus.PENDING.value},
    ])
    return cycle, scored, unscored
