from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from app.services.base import BaseService
from app.models.audit_log import AuditLog


class AuditAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    ACTIVATE = "ACTIVATE"
    PUBLISH = "PUBLISH"
    AUTO_CLOSE = "AUTO_CLOSE"
    AUTO_COMPLETE = "AUTO_COMPLETE"
    RECALCULATE = "RECALCULATE"


# Tag for transitions performed by the scheduler rather than a person
AUTO_TRIGGER = "AUTO"
MANUAL_TRIGGER = "MANUAL"


def sanitize(obj: Any) -> Any:
    """Make nested pydantic models, enums and dates JSON-storable."""
    if hasattr(obj, "model_dump"):
        return sanitize(obj.model_dump())
    if isinstance(obj, dict):
        return {k: sanitize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [sanitize(i) for i in obj]
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (date, datetime)):
        return obj.isoformat()
    return obj


class AuditService(BaseService):
    def log_action(
        self,
        action: AuditAction,
        entity_type: str,
        entity_id: Optional[Any],
        user_id: Optional[str] = None,
        details: Optional[dict] = None,
        before_state: Optional[dict] = None,
        after_state: Optional[dict] = None
    ) -> Optional[AuditLog]:
        """
        Create an audit log entry inside the caller's transaction.
        Strictly append-only.

        The entry is flushed, not committed, so it lands atomically with the
        business change it describes. A failure to write the entry is logged
        and not raised here, but a failed flush leaves the session needing a
        rollback: the caller's commit then fails and the business change is
        abandoned along with the entry.
        """
        try:
            db_log = AuditLog(
                action=sanitize(action),
                entity_type=entity_type,
                entity_id=str(entity_id) if entity_id is not None else None,
                user_id=user_id,
                details=sanitize(details or {}),
                before_state=sanitize(before_state),
                after_state=sanitize(after_state)
            )
            self.db.add(db_log)
            self.db.flush()
            return db_log
        except Exception as e:
            self.log_error(
                f"FAILED TO AUDIT LOG: {e}",
                exc_info=True,
                audit_action=sanitize(action),
                entity_type=entity_type,
                entity_id=str(entity_id),
            )
            return None

    def log_cycle_transition(
        self,
        cycle_id: int,
        action: AuditAction,
        old_status: str,
        new_status: str,
        user_id: Optional[str] = None,
        trigger: str = MANUAL_TRIGGER
    ) -> Optional[AuditLog]:
        return self.log_action(
            action=action,
            entity_type="review_cycles",
            entity_id=cycle_id,
            user_id=user_id,
            details={"trigger": trigger},
            before_state={"status": old_status},
            after_state={"status": new_status}
        )
