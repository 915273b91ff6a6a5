import enum
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
from app.models.reviewer import ReviewerStatus


class AssignmentStatus(str, enum.Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class SurveyAssignment(Base):
    """One ratee within one review cycle."""
    __tablename__ = "survey_assignments"
    __table_args__ = (
        UniqueConstraint("cycle_id", "employee_id", name="uq_survey_assignments_cycle_employee"),
    )

    id = Column(Integer, primary_key=True, index=True)
    cycle_id = Column(Integer, ForeignKey("review_cycles.id", ondelete="CASCADE"), nullable=False, index=True)
    employee_id = Column(String, nullable=False, index=True)
    status = Column(String(20), nullable=False, default=AssignmentStatus.PENDING.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    reviewers = relationship(
        "SurveyReviewer",
        back_populates="assignment",
        cascade="all, delete-orphan",
        order_by="SurveyReviewer.id",
    )

    def refresh_status(self) -> str:
        """Derive the assignment status from its reviewers' progress."""
        statuses = [r.status for r in self.reviewers]
        if statuses and all(s == ReviewerStatus.COMPLETED.value for s in statuses):
            self.status = AssignmentStatus.COMPLETED.value
        elif any(s != ReviewerStatus.PENDING.value for s in statuses):
            self.status = AssignmentStatus.IN_PROGRESS.value
        else:
            self.status = AssignmentStatus.PENDING.value
        return self.status
