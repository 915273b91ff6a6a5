import enum
from datetime import datetime, timezone
from typing import List, Dict, Any
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.sql import func
from app.database import Base
from app.core.exceptions import StateConflictError


class SelfFeedbackStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"


class SelfFeedback(Base):
    """
    An employee's self-ratings per competency for one cycle.
    Reference only: never part of the colleague score. Frozen once submitted.
    """
    __tablename__ = "self_feedback"
    __table_args__ = (
        UniqueConstraint("employee_id", "cycle_id", name="uq_self_feedback_employee_cycle"),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(String, nullable=False, index=True)
    cycle_id = Column(Integer, ForeignKey("review_cycles.id", ondelete="CASCADE"), nullable=False, index=True)
    # [{"competency_id": "...", "rating": 1..4}, ...]
    competency_ratings = Column(JSON, nullable=False, default=list)
    status = Column(String(20), nullable=False, default=SelfFeedbackStatus.DRAFT.value)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def is_submitted(self) -> bool:
        return self.status == SelfFeedbackStatus.SUBMITTED.value

    def update_ratings(self, ratings: List[Dict[str, Any]]) -> None:
        if self.is_submitted:
            raise StateConflictError(
                f"Self feedback for employee {self.employee_id} in cycle {self.cycle_id} is already submitted."
            )
        self.competency_ratings = list(ratings)

    def submit(self) -> None:
        if self.is_submitted:
            raise StateConflictError(
                f"Self feedback for employee {self.employee_id} in cycle {self.cycle_id} is already submitted."
            )
        self.status = SelfFeedbackStatus.SUBMITTED.value
        self.submitted_at = datetime.now(timezone.utc)
