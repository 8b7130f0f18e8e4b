from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from .settings_schemas import StageStatus, StageType


class TournamentBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    type: str = Field(default="multi_stage", pattern="^(single_session|multi_stage)$")
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    settings: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def ends_after_start(self):
        if self.ends_at and self.starts_at and self.ends_at < self.starts_at:
            raise ValueError("ends_at must be after starts_at")
        return self


class TournamentCreate(TournamentBase):
    pass


class TournamentRead(TournamentBase):
    id: int
    status: str

    class Config:
        from_attributes = True


class StageBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    order: int = Field(default=1, ge=1)
    stage_type: StageType
    settings: Dict[str, Any] = Field(default_factory=dict)
    next_stage_id: Optional[int] = None


class StageCreate(StageBase):
    pass


class StageRead(StageBase):
    id: int
    tournament_id: int
    status: StageStatus

    class Config:
        from_attributes = True
        use_enum_values = True


class TeamAssignment(BaseModel):
    team_id: int
    seed: Optional[int] = Field(default=None, ge=1)
    group_id: Optional[int] = None


class AssignTeamsRequest(BaseModel):
    teams: List[TeamAssignment]


class GroupCreate(BaseModel):
    name: str = Field(..., min_length=1)
    order: Optional[int] = Field(default=None, ge=1)


class GroupRead(BaseModel):
    id: int
    stage_id: int
    name: str
    order: int

    class Config:
        from_attributes = True
