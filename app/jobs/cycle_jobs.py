"""
Review cycle background jobs.

run_cycle_transitions is the scheduler's entry point for the daily sweep.
It owns its session and never raises: a failed tick is logged and the next
tick picks up where this one left off.
"""
import logging
from datetime import date
from typing import Any, Dict, Optional

from app.database import SessionLocal
from app.services.cycle_service import CycleService

logger = logging.getLogger(__name__)


def run_cycle_transitions(today: Optional[date] = None) -> Dict[str, Any]:
    logger.info("[JOB] cycle transition sweep started")
    db = SessionLocal()
    try:
        result = CycleService(db).sweep(today)
        logger.info(
            f"[JOB] cycle transition sweep done: {result.closed} cycle(s) -> CLOSING, "
            f"{result.completed} cycle(s) -> COMPLETED, {result.errors} error(s)"
        )
        return result.model_dump(mode="json")
    except Exception as e:
        logger.error(f"[JOB] cycle transition sweep failed: {e}", exc_info=True)
        return {"run_date": (today or date.today()).isoformat(), "closed": 0, "completed": 0, "errors": 1}
    finally:
        db.close()
