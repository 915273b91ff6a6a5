from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from app.database import Base


class AuditLog(Base):
    """Append-only trail of admin and system actions. user_id is null for system actions."""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    action = Column(String(50), nullable=False, index=True)  # ACTIVATE, PUBLISH, AUTO_CLOSE, ...
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String, nullable=True, index=True)
    user_id = Column(String, nullable=True)
    details = Column(JSON, nullable=True)
    before_state = Column(JSON, nullable=True)
    after_state = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
