from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.orm import relationship
from tournament_engine.core.database import Base

class Tournament(Base):
    __tablename__ = "tournaments"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    type = Column(String, default="multi_stage")  # "single_session" or "multi_stage"
    status = Column(String, default="pending")  # "pending", "active", "completed", "cancelled"
    starts_at = Column(DateTime, nullable=True)
    ends_at = Column(DateTime, nullable=True)
    settings = Column(JSON, default=dict)

    stages = relationship("Stage", back_populates="tournament", order_by="Stage.order")
