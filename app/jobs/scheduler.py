"""
APScheduler configuration.

One recurring job: the review cycle sweep, once a day. The sweep is
idempotent with respect to end state, so missed or doubled runs are harmless;
coalescing and a single instance keep overlapping runs from piling up.
"""
import logging
from typing import Any, Dict, List

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.pool import ThreadPoolExecutor

from app.core.config import settings

logger = logging.getLogger(__name__)

CYCLE_SWEEP_JOB_ID = "review_cycle_transitions"

# Job stores
jobstores = {
    'default': MemoryJobStore()
}

# Executors
executors = {
    'default': ThreadPoolExecutor(max_workers=1),
}

# Job defaults
job_defaults = {
    'coalesce': True,  # Combine multiple pending executions into one
    'max_instances': 1,  # Only one instance of each job at a time
    'misfire_grace_time': settings.scheduler.misfire_grace_seconds,
}

scheduler = BackgroundScheduler(
    jobstores=jobstores,
    executors=executors,
    job_defaults=job_defaults,
    timezone=settings.scheduler.timezone
)


def register_jobs(target: BackgroundScheduler) -> None:
    """Add the recurring jobs to a scheduler (replacing any earlier registration)."""
    from app.jobs.cycle_jobs import run_cycle_transitions

    target.add_job(
        run_cycle_transitions,
        'cron',
        hour=settings.scheduler.sweep_hour,
        minute=settings.scheduler.sweep_minute,
        id=CYCLE_SWEEP_JOB_ID,
        name='Review cycle auto transitions',
        replace_existing=True,
    )


def start_scheduler():
    """Start the background job scheduler."""
    if not scheduler.running:
        register_jobs(scheduler)
        scheduler.start()
        logger.info("Background job scheduler started")

        for job in scheduler.get_jobs():
            logger.info(f"Scheduled job: {job.name} - Next run: {job.next_run_time}")


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Background job scheduler stopped")


def get_job_status() -> List[Dict[str, Any]]:
    """Get status of all scheduled jobs."""
    return [
        {
            "id": job.id,
            "name": job.name,
            "next_run_time": job.next_run_time.isoformat() if getattr(job, "next_run_time", None) else None,
            "trigger": str(job.trigger),
        }
        for job in scheduler.get_jobs()
    ]
