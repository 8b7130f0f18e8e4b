from unittest.mock import MagicMock

import pytest

from tournament_engine.core.errors import (
    AmbiguousRankingScope,
    CannotPromoteIncompleteKnockout,
    PromotionHandlerNotFound,
    RankingTieUnresolved,
)
from tournament_engine.schemas.promotion_schemas import (
    CustomRule,
    KnockoutWinnersRule,
    PointsThresholdRule,
    TopNRule,
    TopPerGroupRule,
    decode_promotion_rule,
)
from tournament_engine.schemas.ranking_schemas import RankingRow
from tournament_engine.schemas.settings_schemas import DEFAULT_TIE_BREAKERS, ScoringConfig, TieBreaker
from tournament_engine.services import promotion_engine
from tournament_engine.services.promotion_engine import PromotionContext, select_promoted_teams
from tournament_engine.services.ranking_calculator import compute_rankings


def _row(team_id, rank, points=0, group_id=None):
    return RankingRow(team_id=team_id, rank=rank, points=points, group_id=group_id)


@pytest.fixture
def flat_context():
    return PromotionContext(stage_id=1, next_stage_id=2)


@pytest.fixture
def grouped_context():
    return PromotionContext(stage_id=1, next_stage_id=2, group_ids=[10, 20])


class TestRankingRules:

    def test_top_n_takes_leading_teams(self, flat_context):
        rankings = [_row(5, 1), _row(3, 2), _row(8, 3), _row(1, 4)]
        assert select_promoted_teams(TopNRule(n=2), rankings, [], flat_context) == [5, 3]

    def test_top_n_on_grouped_stage_is_ambiguous(self, grouped_context):
        rankings = [_row(1, 1, group_id=10), _row(2, 1, group_id=20)]
        with pytest.raises(AmbiguousRankingScope):
            select_promoted_teams(TopNRule(n=1), rankings, [], grouped_context)

    def test_top_n_refuses_to_cut_a_tie(self, flat_context):
        rankings = [_row(1, 1), _row(2, 2), _row(3, 2), _row(4, 4)]
        with pytest.raises(RankingTieUnresolved) as exc_info:
            select_promoted_teams(TopNRule(n=2), rankings, [], flat_context)
        assert exc_info.value.details["team_ids"] == [2, 3]

    def test_top_n_accepts_tie_fully_inside_cut(self, flat_context):
        rankings = [_row(1, 1), _row(2, 2), _row(3, 2), _row(4, 4)]
        assert select_promoted_teams(TopNRule(n=3), rankings, [], flat_context) == [1, 2, 3]

    def test_top_n_larger_than_field(self, flat_context):
        rankings = [_row(1, 1), _row(2, 2)]
        assert select_promoted_teams(TopNRule(n=5), rankings, [], flat_context) == [1, 2]

    def test_top_per_group_in_group_order(self, grouped_context):
        rankings = [
            _row(3, 1, group_id=20), _row(4, 2, group_id=20),
            _row(1, 1, group_id=10), _row(2, 2, group_id=10),
        ]
        assert select_promoted_teams(TopPerGroupRule(n=1), rankings, [], grouped_context) == [1, 3]

    def test_top_per_group_requires_groups(self, flat_context):
        with pytest.raises(AmbiguousRankingScope):
            select_promoted_teams(TopPerGroupRule(n=1), [_row(1, 1)], [], flat_context)

    def test_points_threshold_keeps_ranking_order(self, flat_context):
        rankings = [_row(7, 1, points=9), _row(2, 2, points=6), _row(4, 3, points=6), _row(1, 4, points=3)]
        assert select_promoted_teams(PointsThresholdRule(threshold=6), rankings, [], flat_context) == [7, 2, 4]

    def test_points_threshold_may_select_nobody(self, flat_context):
        rankings = [_row(1, 1, points=3)]
        assert select_promoted_teams(PointsThresholdRule(threshold=10), rankings, [], flat_context) == []


class TestGroupedTieAtTheCut:
    """G1={1,2}, G2={3,4}; 1 beats 2 3-0, 3 and 4 draw 1-1."""

    @pytest.fixture
    def stage(self, make_team, make_fixture):
        teams = [make_team(1, group_id=10), make_team(2, group_id=10), make_team(3, group_id=20), make_team(4, group_id=20)]
        fixtures = [make_fixture(1, 2, 3, 0, group_id=10), make_fixture(3, 4, 1, 1, group_id=20)]
        return teams, fixtures

    def test_unresolved_without_terminal_tie_breaker(self, stage, grouped_context):
        teams, fixtures = stage
        rankings = compute_rankings(teams, fixtures, ScoringConfig(), DEFAULT_TIE_BREAKERS)
        with pytest.raises(RankingTieUnresolved):
            select_promoted_teams(TopPerGroupRule(n=1), rankings, fixtures, grouped_context)

    def test_seeded_tie_breaker_resolves(self, stage, grouped_context):
        teams, fixtures = stage
        tie_breakers = DEFAULT_TIE_BREAKERS + [TieBreaker.SEEDED_RANDOM]
        rankings = compute_rankings(teams, fixtures, ScoringConfig(), tie_breakers, tiebreak_seed="1")

        promoted = select_promoted_teams(TopPerGroupRule(n=1), rankings, fixtures, grouped_context)

        assert promoted[0] == 1
        assert len(promoted) == 2
        assert promoted[1] in (3, 4)


class TestKnockoutWinners:

    @pytest.fixture
    def eight_team_bracket(self, make_fixture):
        return [
            make_fixture(1, 8, 2, 0, round=1, match_order=1),
            make_fixture(4, 5, 1, 0, round=1, match_order=2),
            make_fixture(2, 7, 3, 1, round=1, match_order=3),
            make_fixture(3, 6, 0, 1, round=1, match_order=4),
            make_fixture(1, 4, 2, 1, round=2, match_order=1),
            make_fixture(2, 6, 1, 0, round=2, match_order=2),
            make_fixture(1, 2, 0, 1, round=3, match_order=1),
        ]

    def test_only_the_champion_remains(self, eight_team_bracket, flat_context):
        promoted = select_promoted_teams(KnockoutWinnersRule(), [], eight_team_bracket, flat_context)
        assert promoted == [2]

    def test_round_one_winner_beaten_later_is_excluded(self, eight_team_bracket, flat_context):
        # Team 4 won in round one and lost in round two
        promoted = select_promoted_teams(KnockoutWinnersRule(), [], eight_team_bracket, flat_context)
        assert 4 not in promoted

    def test_partial_bracket_promotes_round_winners(self, eight_team_bracket, flat_context):
        promoted = select_promoted_teams(KnockoutWinnersRule(), [], eight_team_bracket[:4], flat_context)
        assert promoted == [1, 4, 2, 6]

    def test_missing_winner_blocks_promotion(self, make_fixture, flat_context):
        fixtures = [make_fixture(1, 2, 1, 0, match_order=1), make_fixture(3, 4, match_order=2)]
        with pytest.raises(CannotPromoteIncompleteKnockout) as exc_info:
            select_promoted_teams(KnockoutWinnersRule(), [], fixtures, flat_context)
        assert exc_info.value.details["fixture_ids"] == [fixtures[1].id]

    def test_third_place_and_cancelled_fixtures_are_ignored(self, make_fixture, flat_context):
        fixtures = [
            make_fixture(1, 4, 1, 0, round=1, match_order=1),
            make_fixture(2, 3, 1, 0, round=1, match_order=2),
            make_fixture(1, 2, 2, 1, round=2, match_order=1),
            make_fixture(4, 3, 1, 0, round=2, match_order=2, is_third_place=True),
            make_fixture(5, 6, status="cancelled", round=1, match_order=3),
        ]
        assert select_promoted_teams(KnockoutWinnersRule(), [], fixtures, flat_context) == [1]

    def test_second_leg_decides(self, make_fixture, flat_context):
        fixtures = [
            make_fixture(1, 2, 2, 0, leg=1),
            make_fixture(2, 1, 3, 0, leg=2),
        ]
        assert select_promoted_teams(KnockoutWinnersRule(), [], fixtures, flat_context) == [2]


class TestCustomHandlers:

    @pytest.fixture
    def handler(self):
        mock = MagicMock(return_value=[3, 1, 3])
        promotion_engine.register_promotion_handler("wildcards", mock)
        yield mock
        promotion_engine.unregister_promotion_handler("wildcards")

    def test_registered_handler_is_called_with_params(self, handler, flat_context):
        rankings = [_row(1, 1), _row(3, 2)]
        rule = CustomRule(handler_class="wildcards", params={"limit": 2})

        promoted = select_promoted_teams(rule, rankings, [], flat_context)

        assert promoted == [3, 1]
        handler.assert_called_once_with(flat_context, rankings, [], {"limit": 2})

    def test_decorator_registration(self, flat_context):
        @promotion_engine.register_promotion_handler("everyone")
        def everyone(context, rankings, fixtures, params):
            return [row.team_id for row in rankings]

        try:
            rule = decode_promotion_rule("custom", {"handler_class": "everyone"})
            assert select_promoted_teams(rule, [_row(4, 1), _row(9, 2)], [], flat_context) == [4, 9]
        finally:
            promotion_engine.unregister_promotion_handler("everyone")

    def test_unknown_handler(self, flat_context):
        rule = CustomRule(handler_class="does.not.Exist")
        with pytest.raises(PromotionHandlerNotFound):
            select_promoted_teams(rule, [], [], flat_context)


class TestRuleDecoding:

    def test_rule_config_is_decoded_by_type(self):
        assert decode_promotion_rule("top_n", {"n": 4}) == TopNRule(n=4)
        assert decode_promotion_rule("points_threshold", {"threshold": 7}).threshold == 7

    def test_invalid_rule_config_is_rejected(self):
        from pydantic import ValidationError
        with pytest.raises(ValidationError):
            decode_promotion_rule("top_n", {"n": 0})
        with pytest.raises(ValidationError):
            decode_promotion_rule("custom", {})
