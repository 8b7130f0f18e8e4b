"""
Fixture generation strategies, one per stage format.

All strategies are pure: the same teams, seeds and settings always produce
the same drafts. Teams are ordered by seed, then team id, before pairing.
"""
import logging
import math
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from tournament_engine.core.errors import (
    AllRoundsGenerated,
    InsufficientTeams,
    InvalidGroupConfiguration,
    RoundNotComplete,
    UnsupportedStageType,
)
from tournament_engine.schemas.fixture_schemas import FixtureDraft, FixtureMetadata, FixtureRead, FixtureStatus
from tournament_engine.schemas.ranking_schemas import StageTeamRead
from tournament_engine.schemas.settings_schemas import (
    GroupSettings,
    KnockoutSettings,
    LeagueSettings,
    StageType,
    SwissSettings,
    TieBreaker,
)
from tournament_engine.schemas.stage_schemas import GroupRead
from tournament_engine.services.ranking_calculator import compute_rankings

logger = logging.getLogger(__name__)

FINISHED_STATUSES = (FixtureStatus.COMPLETED, FixtureStatus.CANCELLED)


def order_by_seed(teams: Sequence[StageTeamRead]) -> List[StageTeamRead]:
    return sorted(teams, key=lambda t: (t.seed is None, t.seed or 0, t.team_id))


def _latest_round(fixtures: Sequence[FixtureRead]) -> Tuple[int, List[FixtureRead]]:
    last = max(f.metadata.round for f in fixtures)
    return last, [f for f in fixtures if f.metadata.round == last]


def _require_round_finished(round_number: int, fixtures: Sequence[FixtureRead]):
    unfinished = [f.id for f in fixtures if f.status not in FINISHED_STATUSES]
    if unfinished:
        raise RoundNotComplete(
            f"Round {round_number} still has unfinished fixtures",
            details={"fixture_ids": unfinished},
        )


class FixtureStrategy:
    """Base class for format strategies."""

    stage_type: StageType

    def generate(self, settings, teams: Sequence[StageTeamRead], groups: Sequence[GroupRead]) -> List[FixtureDraft]:
        raise NotImplementedError

    def next_round(self, settings, teams: Sequence[StageTeamRead], fixtures: Sequence[FixtureRead]) -> List[FixtureDraft]:
        raise UnsupportedStageType(f"'{self.stage_type.value}' stages are generated in a single pass")


# --- Round robin -----------------------------------------------------------

def round_robin_matchdays(team_ids: Sequence[int]) -> List[List[Tuple[int, int]]]:
    """
    Circle method. Returns one list of pairs per matchday; every unordered
    pair appears exactly once. Odd counts get a phantom entry whose opponent
    sits the matchday out.
    """
    slots: List[Optional[int]] = list(team_ids)
    if len(slots) % 2 == 1:
        slots.append(None)
    count = len(slots)
    if count < 2:
        return []

    half = count // 2
    matchdays = []
    for day in range(count - 1):
        left = slots[:half]
        right = slots[half:][::-1]
        pairs = []
        for index, (home, away) in enumerate(zip(left, right)):
            if home is None or away is None:
                continue
            # Alternate the fixed slot so it does not always play at home
            if index == 0 and day % 2 == 1:
                home, away = away, home
            pairs.append((home, away))
        matchdays.append(pairs)
        slots = [slots[0], slots[-1]] + slots[1:-1]
    return matchdays


class LeagueStrategy(FixtureStrategy):
    stage_type = StageType.LEAGUE

    def _round_robin(self, settings: LeagueSettings, teams: Sequence[StageTeamRead], group_id=None) -> List[FixtureDraft]:
        ordered = order_by_seed(teams)
        if len(ordered) < 2:
            raise InsufficientTeams(
                "At least 2 teams are required for a round robin",
                details={"group_id": group_id, "teams": len(ordered)},
            )

        matchdays = round_robin_matchdays([t.team_id for t in ordered])
        if settings.home_and_away:
            matchdays = matchdays + [[(away, home) for home, away in day] for day in matchdays]

        drafts: List[FixtureDraft] = []
        matchday_number = 0
        for round_number in range(1, settings.rounds + 1):
            flip = round_number % 2 == 0
            for day in matchdays:
                matchday_number += 1
                for home, away in day:
                    if flip:
                        home, away = away, home
                    drafts.append(FixtureDraft(
                        first_team_id=home,
                        second_team_id=away,
                        group_id=group_id,
                        metadata=FixtureMetadata(
                            round=round_number,
                            round_label=f"Round {round_number}",
                            match_order=len(drafts) + 1,
                            matchday=matchday_number,
                        ),
                    ))
        return drafts

    def generate(self, settings, teams, groups):
        return self._round_robin(settings, teams)


class GroupStrategy(LeagueStrategy):
    stage_type = StageType.GROUP

    def generate(self, settings: GroupSettings, teams, groups):
        if len(groups) < 2:
            raise InvalidGroupConfiguration("A group stage needs at least 2 groups")

        group_ids = {g.id for g in groups}
        unassigned = [t.team_id for t in teams if t.group_id not in group_ids]
        if unassigned:
            raise InvalidGroupConfiguration(
                "Every team must be assigned to one of the stage's groups",
                details={"team_ids": unassigned},
            )

        drafts: List[FixtureDraft] = []
        for group in sorted(groups, key=lambda g: (g.order, g.id)):
            members = [t for t in teams if t.group_id == group.id]
            drafts.extend(self._round_robin(settings, members, group_id=group.id))
        return drafts


# --- Knockout --------------------------------------------------------------

def bracket_order(size: int) -> List[int]:
    """Seed positions for a bracket of ``size`` slots; 1 and 2 meet only in the final."""
    seeds = [1]
    while len(seeds) < size:
        mirror = 2 * len(seeds) + 1
        seeds = [s for seed in seeds for s in (seed, mirror - seed)]
    return seeds


def round_label(entrants: int) -> str:
    if entrants == 2:
        return "Final"
    if entrants == 4:
        return "Semi-Final"
    if entrants == 8:
        return "Quarter-Final"
    return f"Round of {entrants}"


class KnockoutStrategy(FixtureStrategy):
    stage_type = StageType.KNOCKOUT

    def _ordered(self, settings: KnockoutSettings, teams):
        if settings.seeding == "as_assigned":
            return list(teams)
        return order_by_seed(teams)

    def _bracket_size(self, team_count: int) -> int:
        return 1 << max(1, math.ceil(math.log2(team_count)))

    def first_round_slots(self, settings, teams) -> List[Tuple[Optional[int], Optional[int]]]:
        ordered = self._ordered(settings, teams)
        positions = bracket_order(self._bracket_size(len(ordered)))

        def team_at(seed):
            return ordered[seed - 1].team_id if seed <= len(ordered) else None

        return [(team_at(positions[i]), team_at(positions[i + 1])) for i in range(0, len(positions), 2)]

    def _tie(self, settings, first, second, round_number, label, match_order, is_third_place=False):
        legs = 1 if is_third_place else settings.legs
        drafts = []
        for leg in range(1, legs + 1):
            home, away = (first, second) if leg == 1 else (second, first)
            drafts.append(FixtureDraft(
                first_team_id=home,
                second_team_id=away,
                metadata=FixtureMetadata(
                    round=round_number,
                    round_label=label,
                    match_order=match_order,
                    leg=leg,
                    is_third_place=is_third_place,
                ),
            ))
        return drafts

    def generate(self, settings: KnockoutSettings, teams, groups):
        if len(teams) < 2:
            raise InsufficientTeams("A knockout bracket needs at least 2 teams")

        size = self._bracket_size(len(teams))
        drafts: List[FixtureDraft] = []
        for index, (first, second) in enumerate(self.first_round_slots(settings, teams)):
            if first is None or second is None:
                # Bye; the present team advances without a fixture
                continue
            drafts.extend(self._tie(settings, first, second, 1, round_label(size), index + 1))
        return drafts

    def next_round(self, settings: KnockoutSettings, teams, fixtures):
        bracket = [f for f in fixtures if not f.metadata.is_third_place]
        if not bracket:
            raise RoundNotComplete("The first round has not been generated yet")

        last_round, current = _latest_round(bracket)
        size = self._bracket_size(len(teams))
        slots_in_round = size >> last_round
        if slots_in_round <= 1:
            raise AllRoundsGenerated("The final has already been generated")
        _require_round_finished(last_round, [f for f in fixtures if f.metadata.round == last_round])

        byes = self.first_round_slots(settings, teams) if last_round == 1 else []
        advancers: List[Optional[int]] = []
        losers: List[Optional[int]] = []
        for match_order in range(1, slots_in_round + 1):
            legs = [f for f in current if f.metadata.match_order == match_order]
            if not legs:
                first, second = byes[match_order - 1] if byes else (None, None)
                advancers.append(first if first is not None else second)
                losers.append(None)
                continue
            deciding = max(legs, key=lambda f: f.metadata.leg)
            if deciding.winning_team_id is None:
                raise RoundNotComplete(
                    f"Tie {match_order} of round {last_round} has no winner",
                    details={"fixture_id": deciding.id},
                )
            advancers.append(deciding.winning_team_id)
            losers.append(
                deciding.second_team_id
                if deciding.winning_team_id == deciding.first_team_id
                else deciding.first_team_id
            )

        next_number = last_round + 1
        entrants = slots_in_round
        drafts: List[FixtureDraft] = []
        for index in range(0, len(advancers), 2):
            first, second = advancers[index], advancers[index + 1]
            if first is None or second is None:
                continue
            drafts.extend(self._tie(settings, first, second, next_number, round_label(entrants), index // 2 + 1))

        if settings.third_place_match and entrants == 2 and None not in losers:
            drafts.extend(self._tie(settings, losers[0], losers[1], next_number, "Third Place", 2, is_third_place=True))
        return drafts


# --- Swiss -----------------------------------------------------------------

def recommended_swiss_rounds(team_count: int) -> int:
    if team_count <= 4:
        return max(1, team_count - 1)
    return math.ceil(math.log2(team_count))


class SwissStrategy(FixtureStrategy):
    stage_type = StageType.SWISS

    def _pair(self, ordered: List[int], played: set, had_bye: set, round_number: int) -> List[FixtureDraft]:
        pool = list(ordered)
        if len(pool) % 2 == 1:
            candidates = [team_id for team_id in reversed(pool) if team_id not in had_bye]
            sitting_out = candidates[0] if candidates else pool[-1]
            pool.remove(sitting_out)
            logger.debug("Round %d bye goes to team %s", round_number, sitting_out)

        drafts: List[FixtureDraft] = []
        while pool:
            first = pool.pop(0)
            fresh = [team_id for team_id in pool if frozenset((first, team_id)) not in played]
            second = fresh[0] if fresh else pool[0]
            pool.remove(second)
            drafts.append(FixtureDraft(
                first_team_id=first,
                second_team_id=second,
                metadata=FixtureMetadata(
                    round=round_number,
                    round_label=f"Round {round_number}",
                    match_order=len(drafts) + 1,
                ),
            ))
        return drafts

    def generate(self, settings: SwissSettings, teams, groups):
        if len(teams) < 2:
            raise InsufficientTeams("A swiss stage needs at least 2 teams")
        ordered = [t.team_id for t in order_by_seed(teams)]
        return self._pair(ordered, set(), set(), 1)

    def next_round(self, settings: SwissSettings, teams, fixtures):
        if not fixtures:
            raise RoundNotComplete("The first round has not been generated yet")

        last_round, current = _latest_round(fixtures)
        max_rounds = settings.rounds or recommended_swiss_rounds(len(teams))
        if last_round >= max_rounds:
            raise AllRoundsGenerated(f"All {max_rounds} swiss rounds have been generated")
        _require_round_finished(last_round, current)

        standings = compute_rankings(
            [StageTeamRead(team_id=t.team_id, seed=t.seed) for t in teams],
            fixtures,
            settings.scoring,
            [TieBreaker.GOAL_DIFFERENCE, TieBreaker.GOALS_FOR],
        )
        ordered = [row.team_id for row in standings]

        played = {frozenset((f.first_team_id, f.second_team_id)) for f in fixtures}
        had_bye = set()
        for round_number in range(1, last_round + 1):
            present = set()
            for f in fixtures:
                if f.metadata.round == round_number:
                    present.update((f.first_team_id, f.second_team_id))
            had_bye.update(team_id for team_id in ordered if team_id not in present)

        return self._pair(ordered, played, had_bye, last_round + 1)


class CustomStrategy(FixtureStrategy):
    """Fixtures for custom stages are created by hand."""
    stage_type = StageType.CUSTOM

    def generate(self, settings, teams, groups):
        return []


STRATEGIES: Dict[StageType, FixtureStrategy] = {
    strategy.stage_type: strategy
    for strategy in (LeagueStrategy(), GroupStrategy(), KnockoutStrategy(), SwissStrategy(), CustomStrategy())
}


def get_strategy(stage_type) -> FixtureStrategy:
    strategy = STRATEGIES.get(StageType(stage_type))
    if strategy is None:
        raise UnsupportedStageType(f"Fixture generation is not supported for '{StageType(stage_type).value}' stages")
    return strategy


def generate_fixtures(stage_type, settings, teams: Sequence[StageTeamRead], groups: Sequence[GroupRead] = ()) -> List[FixtureDraft]:
    drafts = get_strategy(stage_type).generate(settings, teams, groups)
    logger.debug("Generated %d %s fixture drafts", len(drafts), StageType(stage_type).value)
    return drafts


def generate_next_round(stage_type, settings, teams: Sequence[StageTeamRead], fixtures: Sequence[FixtureRead]) -> List[FixtureDraft]:
    return get_strategy(stage_type).next_round(settings, teams, fixtures)


def schedule(drafts: List[FixtureDraft], start_at: Optional[datetime], duration: int, interval: int) -> List[FixtureDraft]:
    """Lay fixtures out back to back, ``duration + interval`` minutes apart."""
    step = timedelta(minutes=duration + interval)
    for index, draft in enumerate(drafts):
        draft.duration = duration
        draft.starts_at = start_at + index * step if start_at is not None else None
    return drafts
