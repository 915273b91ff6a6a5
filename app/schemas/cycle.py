from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import date, datetime
from typing import List, Literal, Optional

from app.core.config import settings

DurationMonths = Literal[3, 4, 6, 12]


def _normalise_reminders(value: Optional[List[int]]) -> Optional[List[int]]:
    if value is None:
        return value
    if not 1 <= len(value) <= 10:
        raise ValueError("reminder_schedule must hold between 1 and 10 entries")
    if any(day < 1 or day > 30 for day in value):
        raise ValueError("reminder_schedule entries must be between 1 and 30 days")
    if len(set(value)) != len(value):
        raise ValueError("reminder_schedule entries must be unique")
    return sorted(value, reverse=True)


class CycleCreate(BaseModel):
    name: str = Field(min_length=3, max_length=100)
    start_date: date
    duration_months: DurationMonths
    grace_period_days: int = Field(default=settings.default_grace_period_days, ge=0, le=7)
    enable_self_feedback: bool = True
    enable_colleague_feedback: bool = True
    reminder_schedule: List[int] = Field(default_factory=lambda: list(settings.default_reminder_schedule))

    @field_validator("reminder_schedule")
    @classmethod
    def check_reminders(cls, value):
        return _normalise_reminders(value)


class CycleUpdate(BaseModel):
    """Editable fields while the cycle is DRAFT. end_date is always derived."""
    name: Optional[str] = Field(default=None, min_length=3, max_length=100)
    start_date: Optional[date] = None
    duration_months: Optional[DurationMonths] = None
    grace_period_days: Optional[int] = Field(default=None, ge=0, le=7)
    enable_self_feedback: Optional[bool] = None
    enable_colleague_feedback: Optional[bool] = None
    reminder_schedule: Optional[List[int]] = None

    @field_validator("reminder_schedule")
    @classmethod
    def check_reminders(cls, value):
        return _normalise_reminders(value)


class CycleResponse(BaseModel):
    id: int
    name: str
    start_date: date
    end_date: date
    duration_months: int
    grace_period_days: int
    status: str
    enable_self_feedback: bool
    enable_colleague_feedback: bool
    reminder_schedule: List[int]
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CycleListResponse(BaseModel):
    cycles: List[CycleResponse]
    page: int
    limit: int
    total: int
    total_pages: int


class SweepResult(BaseModel):
    """Outcome of one time-driven transition tick."""
    run_date: date
    closed: int = 0
    completed: int = 0
    errors: int = 0
