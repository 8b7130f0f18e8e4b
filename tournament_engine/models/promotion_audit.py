import datetime

from sqlalchemy import Column, Integer, ForeignKey, DateTime, JSON, Boolean
from tournament_engine.core.database import Base

class PromotionAudit(Base):
    """Append-only record of each executed promotion."""
    __tablename__ = "promotion_audits"

    id = Column(Integer, primary_key=True, index=True)
    stage_id = Column(Integer, ForeignKey("stages.id"), nullable=False, index=True)
    triggered_by = Column(Integer, nullable=True)
    simulated = Column(Boolean, default=False)
    result = Column(JSON, default=dict)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)
