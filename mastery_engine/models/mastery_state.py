"""
Mastery State Model
One row per learner holding the serialised MasteryState
"""
from sqlalchemy import Column, Integer, String, DateTime, Text

from mastery_engine.core.database import Base


class MasteryStateRecord(Base):
    """
    Persisted learner state, versioned for optimistic concurrency
    """

    __tablename__ = "mastery_states"

    learner_id = Column(String, primary_key=True)
    tenant_id = Column(String, primary_key=True, index=True)

    version = Column(Integer, nullable=False, default=0)
    payload = Column(Text, nullable=False)  # MasteryState JSON
    last_updated = Column(DateTime(timezone=True))
