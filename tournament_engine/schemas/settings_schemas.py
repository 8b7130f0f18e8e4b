"""
Typed stage settings.

``Stage.settings`` is stored as JSON; it is decoded exactly once, at the
persistence boundary, into one of the variants below using ``stage_type`` as
the discriminator. Everything downstream works with the typed model.
"""
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from tournament_engine.core.config import settings


class StageType(str, Enum):
    LEAGUE = "league"
    GROUP = "group"
    KNOCKOUT = "knockout"
    SWISS = "swiss"
    KING_OF_HILL = "king_of_hill"
    CUSTOM = "custom"


class StageStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TieBreaker(str, Enum):
    GOAL_DIFFERENCE = "goal_difference"
    GOALS_FOR = "goals_for"
    GOALS_AGAINST = "goals_against"
    HEAD_TO_HEAD = "head_to_head"
    WINS = "wins"
    FAIR_PLAY = "fair_play"
    SEEDED_RANDOM = "seeded_random"


DEFAULT_TIE_BREAKERS = [
    TieBreaker.GOAL_DIFFERENCE,
    TieBreaker.GOALS_FOR,
    TieBreaker.HEAD_TO_HEAD,
]


class ScoringConfig(BaseModel):
    win: int = Field(default_factory=lambda: settings.DEFAULT_SCORING_WIN)
    draw: int = Field(default_factory=lambda: settings.DEFAULT_SCORING_DRAW)
    loss: int = Field(default_factory=lambda: settings.DEFAULT_SCORING_LOSS)


class BaseStageSettings(BaseModel):
    match_duration: int = Field(default_factory=lambda: settings.DEFAULT_MATCH_DURATION, ge=1)
    match_interval: int = Field(default_factory=lambda: settings.DEFAULT_MATCH_INTERVAL, ge=0)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    tie_breakers: List[TieBreaker] = Field(default_factory=lambda: list(DEFAULT_TIE_BREAKERS))
    # Salt for the seeded_random tie-breaker; the stage id is used when empty
    tiebreak_seed: Optional[str] = None

    class Config:
        extra = "ignore"


class LeagueSettings(BaseStageSettings):
    stage_type: Literal["league"] = "league"
    rounds: int = Field(default=1, ge=1)
    home_and_away: bool = False


class GroupSettings(LeagueSettings):
    stage_type: Literal["group"] = "group"
    groups_count: Optional[int] = Field(default=None, ge=2)
    teams_per_group: Optional[int] = Field(default=None, ge=2)


class KnockoutSettings(BaseStageSettings):
    stage_type: Literal["knockout"] = "knockout"
    legs: Literal[1, 2] = 1
    seeding: Literal["seeded", "as_assigned"] = "seeded"
    third_place_match: bool = False


class SwissSettings(BaseStageSettings):
    stage_type: Literal["swiss"] = "swiss"
    rounds: Optional[int] = Field(default=None, ge=1)


class KingOfHillSettings(BaseStageSettings):
    stage_type: Literal["king_of_hill"] = "king_of_hill"


class CustomSettings(BaseStageSettings):
    stage_type: Literal["custom"] = "custom"


StageSettings = Annotated[
    Union[LeagueSettings, GroupSettings, KnockoutSettings, SwissSettings, KingOfHillSettings, CustomSettings],
    Field(discriminator="stage_type"),
]

_stage_settings_adapter = TypeAdapter(StageSettings)


def decode_stage_settings(stage_type: str, raw: Optional[dict]) -> StageSettings:
    """Decode a stored settings map into the variant for ``stage_type``."""
    payload = dict(raw or {})
    payload["stage_type"] = stage_type
    return _stage_settings_adapter.validate_python(payload)
