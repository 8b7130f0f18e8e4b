from sqlalchemy import Column, Integer, ForeignKey, DateTime, JSON, String
from sqlalchemy.orm import relationship
from tournament_engine.core.database import Base

class Fixture(Base):
    __tablename__ = "fixtures"

    id = Column(Integer, primary_key=True, index=True)
    stage_id = Column(Integer, ForeignKey("stages.id"), nullable=False, index=True)
    group_id = Column(Integer, ForeignKey("groups.id"), nullable=True)
    first_team_id = Column(Integer, ForeignKey("teams.id"), nullable=False)
    second_team_id = Column(Integer, ForeignKey("teams.id"), nullable=False)
    starts_at = Column(DateTime, nullable=True)
    duration = Column(Integer, nullable=True)  # minutes
    status = Column(String, default="upcoming")  # upcoming, in_progress, completed, cancelled, postponed
    first_team_score = Column(Integer, nullable=True)
    second_team_score = Column(Integer, nullable=True)
    score_details = Column(JSON, nullable=True)
    winning_team_id = Column(Integer, ForeignKey("teams.id"), nullable=True)
    # round, round label, match order, matchday, leg, third place flag
    meta = Column("metadata", JSON, default=dict)

    first_team = relationship("Team", foreign_keys=[first_team_id])
    second_team = relationship("Team", foreign_keys=[second_team_id])
