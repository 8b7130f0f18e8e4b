from sqlalchemy import Column, Integer, String, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from tournament_engine.core.database import Base

class Stage(Base):
    __tablename__ = "stages"

    id = Column(Integer, primary_key=True, index=True)
    tournament_id = Column(Integer, ForeignKey("tournaments.id"), nullable=False)
    name = Column(String, nullable=False)
    order = Column(Integer, default=1)
    stage_type = Column(String, nullable=False)  # league, group, knockout, swiss, king_of_hill, custom
    status = Column(String, default="pending")  # pending, active, completed, cancelled
    settings = Column(JSON, default=dict)
    next_stage_id = Column(Integer, ForeignKey("stages.id"), nullable=True)

    tournament = relationship("Tournament", back_populates="stages")
    next_stage = relationship("Stage", remote_side=[id])
    teams = relationship("StageTeam", back_populates="stage", cascade="all, delete-orphan")
    groups = relationship("Group", back_populates="stage", order_by="Group.order", cascade="all, delete-orphan")
    promotion = relationship("StagePromotion", back_populates="stage", uselist=False,
                             foreign_keys="StagePromotion.stage_id")


class Group(Base):
    __tablename__ = "groups"

    id = Column(Integer, primary_key=True, index=True)
    stage_id = Column(Integer, ForeignKey("stages.id"), nullable=False)
    name = Column(String, nullable=False)
    order = Column(Integer, default=1)

    stage = relationship("Stage", back_populates="groups")


class StageTeam(Base):
    __tablename__ = "stage_teams"
    __table_args__ = (UniqueConstraint("stage_id", "team_id", name="uq_stage_team"),)

    id = Column(Integer, primary_key=True, index=True)
    stage_id = Column(Integer, ForeignKey("stages.id"), nullable=False)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False)
    seed = Column(Integer, nullable=True)
    group_id = Column(Integer, ForeignKey("groups.id"), nullable=True)
    # "metadata" is reserved on declarative classes
    meta = Column("metadata", JSON, default=dict)

    stage = relationship("Stage", back_populates="teams")
    team = relationship("Team")


class StagePromotion(Base):
    __tablename__ = "stage_promotions"

    id = Column(Integer, primary_key=True, index=True)
    stage_id = Column(Integer, ForeignKey("stages.id"), nullable=False, unique=True)
    next_stage_id = Column(Integer, ForeignKey("stages.id"), nullable=True)
    rule_type = Column(String, nullable=False)  # top_n, top_per_group, points_threshold, knockout_winners, custom
    rule_config = Column(JSON, default=dict)

    stage = relationship("Stage", back_populates="promotion", foreign_keys=[stage_id])
