from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter


class RuleType(str, Enum):
    TOP_N = "top_n"
    TOP_PER_GROUP = "top_per_group"
    POINTS_THRESHOLD = "points_threshold"
    KNOCKOUT_WINNERS = "knockout_winners"
    CUSTOM = "custom"


class TopNRule(BaseModel):
    rule_type: Literal["top_n"] = "top_n"
    n: int = Field(..., ge=1)


class TopPerGroupRule(BaseModel):
    rule_type: Literal["top_per_group"] = "top_per_group"
    n: int = Field(..., ge=1)


class PointsThresholdRule(BaseModel):
    rule_type: Literal["points_threshold"] = "points_threshold"
    threshold: int = Field(..., ge=0)


class KnockoutWinnersRule(BaseModel):
    rule_type: Literal["knockout_winners"] = "knockout_winners"


class CustomRule(BaseModel):
    rule_type: Literal["custom"] = "custom"
    handler_class: str = Field(..., min_length=1)
    params: Dict[str, Any] = Field(default_factory=dict)


PromotionRule = Annotated[
    Union[TopNRule, TopPerGroupRule, PointsThresholdRule, KnockoutWinnersRule, CustomRule],
    Field(discriminator="rule_type"),
]

_promotion_rule_adapter = TypeAdapter(PromotionRule)


def decode_promotion_rule(rule_type: str, raw: Optional[dict]) -> PromotionRule:
    payload = dict(raw or {})
    payload["rule_type"] = rule_type
    return _promotion_rule_adapter.validate_python(payload)


class PromotionConfigure(BaseModel):
    next_stage_id: int
    rule_type: RuleType
    rule_config: Dict[str, Any] = Field(default_factory=dict)


class PromotionRead(BaseModel):
    stage_id: int
    next_stage_id: Optional[int] = None
    rule_type: RuleType
    rule_config: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        from_attributes = True
        use_enum_values = True


class TeamRead(BaseModel):
    id: int
    name: str
    captain_id: Optional[int] = None

    class Config:
        from_attributes = True


class PromotionPreview(BaseModel):
    stage_id: int
    next_stage_id: int
    rule_type: RuleType
    teams: List[TeamRead] = Field(default_factory=list)

    class Config:
        use_enum_values = True


class PromotionAuditRead(BaseModel):
    id: int
    stage_id: int
    triggered_by: Optional[int] = None
    simulated: bool
    result: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    class Config:
        from_attributes = True
