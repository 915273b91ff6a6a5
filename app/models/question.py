from sqlalchemy import Column, Integer, String, Boolean
from app.database import Base


class Question(Base):
    """
    Catalog question, reduced to what scoring needs: the competency it measures.
    Question text and competency metadata are owned by the catalog.
    """
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, index=True)
    competency_id = Column(String, nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
