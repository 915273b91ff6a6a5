import enum
import secrets
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from app.database import Base


class ReviewerCategory(str, enum.Enum):
    """Relationship of the reviewer to the ratee. Declaration order is the report order."""
    MANAGER = "MANAGER"
    PEER = "PEER"
    DIRECT_REPORT = "DIRECT_REPORT"
    INDIRECT_REPORT = "INDIRECT_REPORT"
    CROSS_FUNCTIONAL = "CROSS_FUNCTIONAL"
    CXO = "CXO"


class ReviewerStatus(str, enum.Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


def _new_access_token() -> str:
    return secrets.token_urlsafe(32)


class SurveyReviewer(Base):
    __tablename__ = "survey_reviewers"

    id = Column(Integer, primary_key=True, index=True)
    assignment_id = Column(Integer, ForeignKey("survey_assignments.id", ondelete="CASCADE"), nullable=False, index=True)
    reviewer_employee_id = Column(String, nullable=False, index=True)
    category = Column(String(30), nullable=False)
    status = Column(String(20), nullable=False, default=ReviewerStatus.PENDING.value, index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    access_token = Column(String(64), nullable=False, unique=True, default=_new_access_token)

    assignment = relationship("SurveyAssignment", back_populates="reviewers")
    responses = relationship(
        "SurveyResponse",
        back_populates="reviewer",
        cascade="all, delete-orphan",
        order_by="SurveyResponse.question_id",
    )
