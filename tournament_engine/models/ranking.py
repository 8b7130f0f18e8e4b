from sqlalchemy import Column, Integer, ForeignKey, UniqueConstraint
from tournament_engine.core.database import Base

class Ranking(Base):
    """Derived standings row. Replaced wholesale on every recompute."""
    __tablename__ = "rankings"
    __table_args__ = (UniqueConstraint("stage_id", "group_id", "team_id", name="uq_ranking_scope"),)

    id = Column(Integer, primary_key=True, index=True)
    stage_id = Column(Integer, ForeignKey("stages.id"), nullable=False, index=True)
    group_id = Column(Integer, ForeignKey("groups.id"), nullable=True)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False)
    points = Column(Integer, default=0)
    played = Column(Integer, default=0)
    wins = Column(Integer, default=0)
    draws = Column(Integer, default=0)
    losses = Column(Integer, default=0)
    goals_for = Column(Integer, default=0)
    goals_against = Column(Integer, default=0)
    goal_difference = Column(Integer, default=0)
    rank = Column(Integer, nullable=False)
