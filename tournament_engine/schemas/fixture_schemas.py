from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, Field, model_validator


class FixtureStatus(str, Enum):
    UPCOMING = "upcoming"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    POSTPONED = "postponed"


class GenerationMode(str, Enum):
    AUTO = "auto"
    REGENERATE = "regenerate"
    NEXT_ROUND = "next_round"


class FixtureMetadata(BaseModel):
    round: int = 1
    round_label: Optional[str] = None
    match_order: int = 1
    matchday: Optional[int] = None
    leg: int = 1
    is_third_place: bool = False

    class Config:
        extra = "ignore"


class FixtureDraft(BaseModel):
    """A fixture produced by a generator, not yet persisted."""
    first_team_id: int
    second_team_id: int
    group_id: Optional[int] = None
    starts_at: Optional[datetime] = None
    duration: Optional[int] = None
    metadata: FixtureMetadata = Field(default_factory=FixtureMetadata)

    @model_validator(mode="after")
    def distinct_teams(self):
        if self.first_team_id == self.second_team_id:
            raise ValueError("A team cannot be paired with itself")
        return self


class FixtureRead(BaseModel):
    id: int
    stage_id: int
    group_id: Optional[int] = None
    first_team_id: int
    second_team_id: int
    starts_at: Optional[datetime] = None
    duration: Optional[int] = None
    status: FixtureStatus = FixtureStatus.UPCOMING
    first_team_score: Optional[int] = None
    second_team_score: Optional[int] = None
    score_details: Optional[Dict[str, Any]] = None
    winning_team_id: Optional[int] = None
    metadata: FixtureMetadata = Field(
        default_factory=FixtureMetadata,
        validation_alias=AliasChoices("meta", "metadata"),
    )

    class Config:
        from_attributes = True

    @property
    def is_scored(self) -> bool:
        return (
            self.status == FixtureStatus.COMPLETED
            and self.first_team_score is not None
            and self.second_team_score is not None
        )

    def involves(self, team_id: int) -> bool:
        return team_id in (self.first_team_id, self.second_team_id)


class FixtureCreate(BaseModel):
    """Manually scheduled fixture (custom stages)."""
    first_team_id: int
    second_team_id: int
    group_id: Optional[int] = None
    starts_at: Optional[datetime] = None
    duration: Optional[int] = Field(default=None, ge=1)
    round: int = Field(default=1, ge=1)
    round_label: Optional[str] = None

    @model_validator(mode="after")
    def distinct_teams(self):
        if self.first_team_id == self.second_team_id:
            raise ValueError("A team cannot play against itself")
        return self


class ScoreDetails(BaseModel):
    """Known keys of a result's ``score_details``; anything else is kept as given."""
    penalty_points: Dict[int, int] = Field(default_factory=dict)

    class Config:
        extra = "allow"


class FixtureResultSubmit(BaseModel):
    first_team_score: int = Field(..., ge=0)
    second_team_score: int = Field(..., ge=0)
    # Needed when a knockout tie is level on the scoreline (penalties, extra time)
    winning_team_id: Optional[int] = None
    score_details: Optional[Dict[str, Any]] = None


class FixtureStatusUpdate(BaseModel):
    status: FixtureStatus


class GenerateFixturesRequest(BaseModel):
    mode: GenerationMode = GenerationMode.AUTO
    auto_schedule: bool = True
    start_at: Optional[datetime] = None
