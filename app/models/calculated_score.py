from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, JSON, UniqueConstraint
from app.database import Base


class CalculatedScore(Base):
    """
    Aggregate scorecard for one employee in one cycle.

    Written only by the score run. Recalculation overwrites every column of the
    existing row, it never merges.
    """
    __tablename__ = "calculated_scores"
    __table_args__ = (
        UniqueConstraint("employee_id", "cycle_id", name="uq_calculated_scores_employee_cycle"),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(String, nullable=False, index=True)
    cycle_id = Column(Integer, ForeignKey("review_cycles.id", ondelete="CASCADE"), nullable=False, index=True)
    colleague_score = Column(Float, nullable=False)  # 4 dp
    self_score = Column(Float, nullable=True)  # 2 dp, reference only
    final_label = Column(String(50), nullable=False)
    # {competency_id: {score, label, response_count}}
    competency_scores = Column(JSON, nullable=False, default=dict)
    # {category: {score, label, reviewer_count}}
    reviewer_category_scores = Column(JSON, nullable=False, default=dict)
    total_reviewers = Column(Integer, nullable=False)
    calculated_at = Column(DateTime(timezone=True), nullable=False)
