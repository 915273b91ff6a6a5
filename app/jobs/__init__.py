"""
Background Jobs Module

Handles scheduled tasks for:
- Review cycle auto transitions (ACTIVE -> CLOSING -> COMPLETED) and the
  score calculation they trigger
"""

from app.jobs.scheduler import scheduler, start_scheduler, shutdown_scheduler, get_job_status
from app.jobs.cycle_jobs import run_cycle_transitions

__all__ = [
    "scheduler",
    "start_scheduler",
    "shutdown_scheduler",
    "get_job_status",
    "run_cycle_transitions",
]
