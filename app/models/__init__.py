# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import (
    review_cycle, assignment, reviewer, question, survey_response,
    self_feedback, calculated_score, audit_log
)

# Explicit class exports for cleaner imports
from .review_cycle import ReviewCycle, CycleStatus
from .assignment import SurveyAssignment, AssignmentStatus
from .reviewer import SurveyReviewer, ReviewerCategory, ReviewerStatus
from .question import Question
from .survey_response import SurveyResponse
from .self_feedback import SelfFeedback, SelfFeedbackStatus
from .calculated_score import CalculatedScore
from .audit_log import AuditLog

__all__ = [
    "ReviewCycle",
    "CycleStatus",
    "SurveyAssignment",
    "AssignmentStatus",
    "SurveyReviewer",
    "ReviewerCategory",
    "ReviewerStatus",
    "Question",
    "SurveyResponse",
    "SelfFeedback",
    "SelfFeedbackStatus",
    "CalculatedScore",
    "AuditLog",
]
