from typing import Optional

from pydantic import BaseModel


class StageTeamRead(BaseModel):
    team_id: int
    seed: Optional[int] = None
    group_id: Optional[int] = None

    class Config:
        from_attributes = True


class RankingRow(BaseModel):
    team_id: int
    group_id: Optional[int] = None
    points: int = 0
    played: int = 0
    wins: int = 0
    draws: int = 0
    losses: int = 0
    goals_for: int = 0
    goals_against: int = 0
    goal_difference: int = 0
    rank: int = 0

    class Config:
        from_attributes = True
