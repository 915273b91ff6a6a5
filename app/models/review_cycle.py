"""
Review Cycle Model.

Lifecycle (forward only, terminal = PUBLISHED):
    DRAFT -> ACTIVE -> CLOSING -> COMPLETED -> PUBLISHED

DRAFT -> ACTIVE and COMPLETED -> PUBLISHED are admin actions;
ACTIVE -> CLOSING and CLOSING -> COMPLETED are driven by the daily sweep.
"""
from datetime import date, timedelta
from sqlalchemy import Column, Integer, String, Date, Boolean, DateTime, JSON, CheckConstraint
from sqlalchemy.sql import func
from app.database import Base
import enum


class CycleStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    CLOSING = "CLOSING"
    COMPLETED = "COMPLETED"
    PUBLISHED = "PUBLISHED"


# Allowed next state for every state
VALID_TRANSITIONS = {
    CycleStatus.DRAFT: [CycleStatus.ACTIVE],
    CycleStatus.ACTIVE: [CycleStatus.CLOSING],
    CycleStatus.CLOSING: [CycleStatus.COMPLETED],
    CycleStatus.COMPLETED: [CycleStatus.PUBLISHED],
    CycleStatus.PUBLISHED: [],
}

# Statuses that take part in the no-overlap rule
RUNNING_STATUSES = (CycleStatus.ACTIVE.value, CycleStatus.CLOSING.value)

# Statuses for which scores exist and may be recomputed
SCORED_STATUSES = (CycleStatus.COMPLETED.value, CycleStatus.PUBLISHED.value)


class ReviewCycle(Base):
    __tablename__ = "review_cycles"
    __table_args__ = (
        CheckConstraint("grace_period_days BETWEEN 0 AND 7", name="ck_review_cycles_grace"),
        CheckConstraint("end_date > start_date", name="ck_review_cycles_dates"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    duration_months = Column(Integer, nullable=False)
    grace_period_days = Column(Integer, nullable=False, default=3)
    status = Column(String(20), nullable=False, default=CycleStatus.DRAFT.value, index=True)

    enable_self_feedback = Column(Boolean, nullable=False, default=True)
    enable_colleague_feedback = Column(Boolean, nullable=False, default=True)
    reminder_schedule = Column(JSON, nullable=False, default=lambda: [7, 3, 1])

    created_by = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def grace_end_date(self) -> date:
        return self.end_date + timedelta(days=self.grace_period_days or 0)

    def overlaps(self, start: date, end: date) -> bool:
        """Open-interval overlap: adjacent ranges (end == other.start) do not overlap."""
        return self.start_date < end and self.end_date > start

    def __repr__(self):
        return f"<ReviewCycle {self.id} {self.name!r} {self.status}>"
