import logging
from collections import OrderedDict
from typing import Dict, List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from tournament_engine.core.errors import InvalidFixtureResult, InvalidGroupConfiguration, NoTeamsInStage
from tournament_engine.schemas.fixture_schemas import FixtureRead, ScoreDetails
from tournament_engine.schemas.ranking_schemas import RankingRow, StageTeamRead
from tournament_engine.schemas.settings_schemas import ScoringConfig, TieBreaker
from tournament_engine.services.tie_breakers import TieBreakContext, split_into_blocks

logger = logging.getLogger(__name__)


def _seed_order(team: StageTeamRead):
    return (team.seed is None, team.seed or 0, team.team_id)


def _penalty_points(fixture: FixtureRead) -> Dict[int, int]:
    """Fair-play penalty points recorded in ``score_details``, keyed by team id."""
    try:
        details = ScoreDetails.model_validate(fixture.score_details or {})
    except PydanticValidationError as exc:
        raise InvalidFixtureResult(
            f"Fixture {fixture.id} has malformed score details",
            details={"fixture_id": fixture.id, "errors": exc.errors(include_url=False)},
        ) from exc
    return details.penalty_points


def _accumulate(
    teams: Sequence[StageTeamRead],
    fixtures: Sequence[FixtureRead],
    scoring: ScoringConfig,
    group_id: Optional[int],
):
    rows = {team.team_id: RankingRow(team_id=team.team_id, group_id=group_id) for team in teams}
    penalties = {team.team_id: 0 for team in teams}
    counted: List[FixtureRead] = []

    for fixture in fixtures:
        if not fixture.is_scored:
            continue
        first = rows.get(fixture.first_team_id)
        second = rows.get(fixture.second_team_id)
        if first is None or second is None:
            continue
        counted.append(fixture)

        first_score, second_score = fixture.first_team_score, fixture.second_team_score
        first.played += 1
        second.played += 1
        first.goals_for += first_score
        first.goals_against += second_score
        second.goals_for += second_score
        second.goals_against += first_score

        if first_score == second_score:
            first.draws += 1
            second.draws += 1
            first.points += scoring.draw
            second.points += scoring.draw
        else:
            winner, loser = (first, second) if first_score > second_score else (second, first)
            winner.wins += 1
            loser.losses += 1
            winner.points += scoring.win
            loser.points += scoring.loss

        for team_id, points in _penalty_points(fixture).items():
            if team_id in penalties:
                penalties[team_id] += points

    for row in rows.values():
        row.goal_difference = row.goals_for - row.goals_against

    return rows, penalties, counted


def _rank_scope(
    teams: Sequence[StageTeamRead],
    fixtures: Sequence[FixtureRead],
    scoring: ScoringConfig,
    tie_breakers: Sequence[TieBreaker],
    tiebreak_seed: str,
    group_id: Optional[int],
) -> List[RankingRow]:
    rows, penalties, counted = _accumulate(teams, fixtures, scoring, group_id)
    context = TieBreakContext(
        fixtures=counted,
        scoring=scoring,
        seed=tiebreak_seed,
        penalty_points=penalties,
    )
    seed_positions = {team.team_id: _seed_order(team) for team in teams}

    ranked: List[RankingRow] = []
    for block in split_into_blocks(list(rows.values()), tie_breakers, context):
        # Competition ranking: a shared rank skips the following positions
        rank = len(ranked) + 1
        for row in sorted(block, key=lambda r: seed_positions[r.team_id]):
            row.rank = rank
            ranked.append(row)
    return ranked


def compute_rankings(
    teams: Sequence[StageTeamRead],
    fixtures: Sequence[FixtureRead],
    scoring: ScoringConfig,
    tie_breakers: Sequence[TieBreaker],
    tiebreak_seed: str = "",
) -> List[RankingRow]:
    """
    Build the full standings for a stage from its completed fixtures.

    Grouped stages are ranked independently per group, in ascending group id
    order. A stage where only some teams belong to a group is rejected rather
    than mixing grouped and ungrouped rows.
    """
    if not teams:
        raise NoTeamsInStage("No teams are assigned to this stage")

    grouped = [team for team in teams if team.group_id is not None]
    if grouped and len(grouped) != len(teams):
        raise InvalidGroupConfiguration(
            "Some teams are assigned to a group and others are not",
            details={"ungrouped": [t.team_id for t in teams if t.group_id is None]},
        )

    if not grouped:
        return _rank_scope(teams, fixtures, scoring, tie_breakers, tiebreak_seed, None)

    scopes: "OrderedDict[int, List[StageTeamRead]]" = OrderedDict()
    for team in sorted(teams, key=lambda t: t.group_id):
        scopes.setdefault(team.group_id, []).append(team)

    rankings: List[RankingRow] = []
    for group_id, group_teams in scopes.items():
        group_fixtures = [f for f in fixtures if f.group_id in (None, group_id)]
        rankings.extend(
            _rank_scope(group_teams, group_fixtures, scoring, tie_breakers, tiebreak_seed, group_id)
        )
    logger.debug("Ranked %d teams across %d groups", len(rankings), len(scopes))
    return rankings
