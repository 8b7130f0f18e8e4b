"""
Promotion rule evaluation.

``select_promoted_teams`` is the only place qualification is decided. The
stage service calls it both to preview a promotion and to execute one, so
the two can never disagree for the same inputs.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from tournament_engine.core.errors import (
    AmbiguousRankingScope,
    CannotPromoteIncompleteKnockout,
    PromotionHandlerNotFound,
    RankingTieUnresolved,
)
from tournament_engine.schemas.fixture_schemas import FixtureRead, FixtureStatus
from tournament_engine.schemas.promotion_schemas import (
    CustomRule,
    KnockoutWinnersRule,
    PointsThresholdRule,
    PromotionRule,
    TopNRule,
    TopPerGroupRule,
)
from tournament_engine.schemas.ranking_schemas import RankingRow

logger = logging.getLogger(__name__)


@dataclass
class PromotionContext:
    stage_id: int
    next_stage_id: Optional[int]
    # Group ids in display order; empty for ungrouped stages
    group_ids: List[int] = field(default_factory=list)

    @property
    def has_groups(self) -> bool:
        return bool(self.group_ids)


PromotionHandler = Callable[[PromotionContext, Sequence[RankingRow], Sequence[FixtureRead], dict], List[int]]

_handlers: Dict[str, PromotionHandler] = {}


def register_promotion_handler(name: str, handler: Optional[PromotionHandler] = None):
    """Register a custom promotion handler. Usable directly or as a decorator."""
    def decorator(func: PromotionHandler) -> PromotionHandler:
        _handlers[name] = func
        return func

    if handler is not None:
        return decorator(handler)
    return decorator


def unregister_promotion_handler(name: str):
    _handlers.pop(name, None)


def get_promotion_handler(name: str) -> PromotionHandler:
    try:
        return _handlers[name]
    except KeyError:
        raise PromotionHandlerNotFound(f"No promotion handler registered as '{name}'") from None


def _take(rows: List[RankingRow], n: int, scope: str) -> List[int]:
    """First ``n`` rows by rank; refuses to cut through a shared rank."""
    ordered = sorted(rows, key=lambda r: r.rank)
    if len(ordered) > n and ordered[n - 1].rank == ordered[n].rank:
        tied = [r.team_id for r in ordered if r.rank == ordered[n].rank]
        raise RankingTieUnresolved(
            f"Qualification cut-off in {scope} falls inside a tie at rank {ordered[n].rank}",
            details={"team_ids": tied},
        )
    return [r.team_id for r in ordered[:n]]


def _top_n(rule: TopNRule, context, rankings, fixtures):
    if context.has_groups:
        raise AmbiguousRankingScope("top_n cannot be applied to a grouped stage; use top_per_group")
    return _take(list(rankings), rule.n, "the stage")


def _top_per_group(rule: TopPerGroupRule, context, rankings, fixtures):
    if not context.has_groups:
        raise AmbiguousRankingScope("top_per_group requires a stage with groups")
    promoted: List[int] = []
    for group_id in context.group_ids:
        rows = [r for r in rankings if r.group_id == group_id]
        promoted.extend(_take(rows, rule.n, f"group {group_id}"))
    return promoted


def _points_threshold(rule: PointsThresholdRule, context, rankings, fixtures):
    return [r.team_id for r in rankings if r.points >= rule.threshold]


def _knockout_winners(rule: KnockoutWinnersRule, context, rankings, fixtures):
    deciding: Dict[tuple, FixtureRead] = {}
    for fixture in fixtures:
        if fixture.metadata.is_third_place or fixture.status == FixtureStatus.CANCELLED:
            continue
        tie = (fixture.metadata.round, fixture.metadata.match_order)
        current = deciding.get(tie)
        if current is None or fixture.metadata.leg > current.metadata.leg:
            deciding[tie] = fixture

    undecided = [f.id for f in deciding.values() if f.winning_team_id is None]
    if undecided:
        raise CannotPromoteIncompleteKnockout(
            "Every knockout tie needs a recorded winner before promotion",
            details={"fixture_ids": undecided},
        )

    latest: Dict[int, FixtureRead] = {}
    for tie in sorted(deciding):
        fixture = deciding[tie]
        latest[fixture.first_team_id] = fixture
        latest[fixture.second_team_id] = fixture

    # Furthest-progressed teams first
    ordered = sorted(
        latest.items(),
        key=lambda item: (-item[1].metadata.round, item[1].metadata.match_order),
    )
    return [team_id for team_id, fixture in ordered if fixture.winning_team_id == team_id]


def _custom(rule: CustomRule, context, rankings, fixtures):
    handler = get_promotion_handler(rule.handler_class)
    return list(handler(context, rankings, fixtures, dict(rule.params)))


_RULES = {
    TopNRule: _top_n,
    TopPerGroupRule: _top_per_group,
    PointsThresholdRule: _points_threshold,
    KnockoutWinnersRule: _knockout_winners,
    CustomRule: _custom,
}


def select_promoted_teams(
    rule: PromotionRule,
    rankings: Sequence[RankingRow],
    fixtures: Sequence[FixtureRead],
    context: PromotionContext,
) -> List[int]:
    """Return the ids of qualifying teams, in promotion order, without duplicates."""
    selected = _RULES[type(rule)](rule, context, rankings, fixtures)
    promoted: List[int] = []
    for team_id in selected:
        if team_id not in promoted:
            promoted.append(team_id)
    logger.debug("Stage %s: rule %s selected %s", context.stage_id, rule.rule_type, promoted)
    return promoted
