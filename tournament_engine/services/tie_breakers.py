"""
Tie-break comparators for standings.

Each comparator receives a block of rows that are still level and returns a
sort key per team; a higher key ranks first. ``split_into_blocks`` applies
points and then the configured comparators left to right, only ever
re-ordering teams inside a block that is still tied.
"""
import hashlib
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Sequence

from tournament_engine.schemas.fixture_schemas import FixtureRead
from tournament_engine.schemas.ranking_schemas import RankingRow
from tournament_engine.schemas.settings_schemas import ScoringConfig, TieBreaker


@dataclass
class TieBreakContext:
    fixtures: Sequence[FixtureRead]
    scoring: ScoringConfig
    seed: str = ""
    penalty_points: Dict[int, int] = field(default_factory=dict)


Comparator = Callable[[List[RankingRow], TieBreakContext], Dict[int, tuple]]


def _goal_difference(block, context):
    return {row.team_id: (row.goal_difference,) for row in block}


def _goals_for(block, context):
    return {row.team_id: (row.goals_for,) for row in block}


def _goals_against(block, context):
    return {row.team_id: (-row.goals_against,) for row in block}


def _wins(block, context):
    return {row.team_id: (row.wins,) for row in block}


def _fair_play(block, context):
    # Fewer penalty points ranks higher
    return {row.team_id: (-context.penalty_points.get(row.team_id, 0),) for row in block}


def _head_to_head(block, context):
    """Mini-table built only from fixtures played among the tied teams."""
    tied = {row.team_id for row in block}
    points = {team_id: 0 for team_id in tied}
    diff = {team_id: 0 for team_id in tied}

    for fixture in context.fixtures:
        if not fixture.is_scored:
            continue
        if fixture.first_team_id not in tied or fixture.second_team_id not in tied:
            continue
        first, second = fixture.first_team_id, fixture.second_team_id
        first_score, second_score = fixture.first_team_score, fixture.second_team_score

        diff[first] += first_score - second_score
        diff[second] += second_score - first_score
        if first_score > second_score:
            points[first] += context.scoring.win
            points[second] += context.scoring.loss
        elif first_score < second_score:
            points[second] += context.scoring.win
            points[first] += context.scoring.loss
        else:
            points[first] += context.scoring.draw
            points[second] += context.scoring.draw

    return {team_id: (points[team_id], diff[team_id]) for team_id in tied}


def seeded_draw_key(seed: str, team_id: int) -> int:
    digest = hashlib.sha256(f"{seed}:{team_id}".encode("utf-8")).hexdigest()
    return int(digest, 16)


def _seeded_random(block, context):
    return {row.team_id: (seeded_draw_key(context.seed, row.team_id),) for row in block}


COMPARATORS: Dict[TieBreaker, Comparator] = {
    TieBreaker.GOAL_DIFFERENCE: _goal_difference,
    TieBreaker.GOALS_FOR: _goals_for,
    TieBreaker.GOALS_AGAINST: _goals_against,
    TieBreaker.HEAD_TO_HEAD: _head_to_head,
    TieBreaker.WINS: _wins,
    TieBreaker.FAIR_PLAY: _fair_play,
    TieBreaker.SEEDED_RANDOM: _seeded_random,
}


def _refine(block: List[RankingRow], keys: Dict[int, tuple]) -> List[List[RankingRow]]:
    ordered = sorted(block, key=lambda row: keys[row.team_id], reverse=True)
    refined: List[List[RankingRow]] = []
    for row in ordered:
        if refined and keys[refined[-1][0].team_id] == keys[row.team_id]:
            refined[-1].append(row)
        else:
            refined.append([row])
    return refined


def split_into_blocks(
    rows: List[RankingRow],
    tie_breakers: Sequence[TieBreaker],
    context: TieBreakContext,
) -> List[List[RankingRow]]:
    """Order rows into blocks; teams inside one block could not be separated."""
    if not rows:
        return []
    blocks = _refine(list(rows), {row.team_id: (row.points,) for row in rows})

    for tie_breaker in tie_breakers:
        comparator = COMPARATORS[TieBreaker(tie_breaker)]
        next_blocks: List[List[RankingRow]] = []
        for block in blocks:
            if len(block) == 1:
                next_blocks.append(block)
                continue
            next_blocks.extend(_refine(block, comparator(block, context)))
        blocks = next_blocks

    return blocks
