import logging
import string
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func
from sqlalchemy.orm import Session

from tournament_engine.core.database import atomic
from tournament_engine.core.errors import (
    DuplicateTeam,
    FixtureNotFound,
    FixturesAlreadyGenerated,
    InvalidFixtureResult,
    InvalidGroupConfiguration,
    InvalidSettings,
    InvalidStageTransition,
    NoPromotionConfigured,
    NoTeamsInStage,
    StageNotActive,
    StageNotCompleted,
    StageNotEditable,
    StageNotFound,
    TeamNotFound,
    TournamentNotFound,
)
from tournament_engine.models import (
    Fixture,
    Group,
    PromotionAudit,
    Ranking,
    Stage,
    StagePromotion,
    StageTeam,
    Team,
    Tournament,
)
from tournament_engine.schemas import fixture_schemas, promotion_schemas, stage_schemas
from tournament_engine.schemas.fixture_schemas import FixtureRead, FixtureStatus, GenerationMode
from tournament_engine.schemas.promotion_schemas import PromotionPreview, TeamRead, decode_promotion_rule
from tournament_engine.schemas.ranking_schemas import RankingRow, StageTeamRead
from tournament_engine.schemas.settings_schemas import StageStatus, StageType, decode_stage_settings
from tournament_engine.schemas.stage_schemas import GroupRead
from tournament_engine.services import fixture_generator, ranking_calculator
from tournament_engine.services.promotion_engine import PromotionContext, select_promoted_teams

logger = logging.getLogger(__name__)

# Valid stage transitions: {current_status: [allowed_next_statuses]}
ALLOWED_TRANSITIONS: Dict[StageStatus, List[StageStatus]] = {
    StageStatus.PENDING: [StageStatus.ACTIVE, StageStatus.CANCELLED],
    StageStatus.ACTIVE: [StageStatus.COMPLETED, StageStatus.CANCELLED],
    StageStatus.COMPLETED: [],
    StageStatus.CANCELLED: [],
}

OPEN_FIXTURE_STATUSES = (FixtureStatus.UPCOMING.value, FixtureStatus.POSTPONED.value)


# --- Lookups ---------------------------------------------------------------

def get_tournament(db: Session, tournament_id: int) -> Tournament:
    tournament = db.query(Tournament).filter(Tournament.id == tournament_id).first()
    if not tournament:
        raise TournamentNotFound(f"Tournament {tournament_id} not found")
    return tournament


def get_stage(db: Session, stage_id: int) -> Stage:
    stage = db.query(Stage).filter(Stage.id == stage_id).first()
    if not stage:
        raise StageNotFound(f"Stage {stage_id} not found")
    return stage


def get_fixture(db: Session, fixture_id: int) -> Fixture:
    fixture = db.query(Fixture).filter(Fixture.id == fixture_id).first()
    if not fixture:
        raise FixtureNotFound(f"Fixture {fixture_id} not found")
    return fixture


def stage_settings(stage: Stage):
    try:
        return decode_stage_settings(stage.stage_type, stage.settings)
    except PydanticValidationError as exc:
        raise InvalidSettings(
            f"Invalid settings for {stage.stage_type} stage {stage.id}",
            details={"errors": exc.errors(include_url=False)},
        ) from exc


def _stage_teams(db: Session, stage_id: int) -> List[StageTeamRead]:
    rows = db.query(StageTeam).filter(StageTeam.stage_id == stage_id).order_by(StageTeam.id).all()
    return [StageTeamRead.model_validate(row) for row in rows]


def _groups(db: Session, stage_id: int) -> List[GroupRead]:
    rows = db.query(Group).filter(Group.stage_id == stage_id).order_by(Group.order, Group.id).all()
    return [GroupRead.model_validate(row) for row in rows]


def _fixtures(db: Session, stage_id: int) -> List[FixtureRead]:
    rows = db.query(Fixture).filter(Fixture.stage_id == stage_id).all()
    fixtures = [FixtureRead.model_validate(row) for row in rows]
    return sorted(fixtures, key=lambda f: (f.metadata.round, f.metadata.match_order, f.metadata.leg, f.id))


def _require_status(stage: Stage, allowed: Sequence[StageStatus], error, action: str):
    if StageStatus(stage.status) not in allowed:
        raise error(
            f"Cannot {action} while stage {stage.id} is {stage.status}",
            details={"stage_id": stage.id, "status": stage.status},
        )


# --- Tournaments and stages ------------------------------------------------

def create_tournament(db: Session, tournament: stage_schemas.TournamentCreate) -> Tournament:
    db_tournament = Tournament(**tournament.model_dump(), status="pending")
    db.add(db_tournament)
    db.commit()
    db.refresh(db_tournament)
    logger.info("Created tournament %s (%s)", db_tournament.id, db_tournament.name)
    return db_tournament


def create_stage(db: Session, tournament_id: int, stage: stage_schemas.StageCreate) -> Stage:
    get_tournament(db, tournament_id)
    stage_type = StageType(stage.stage_type)
    try:
        decode_stage_settings(stage_type.value, stage.settings)
    except PydanticValidationError as exc:
        raise InvalidSettings(
            f"Invalid settings for a {stage_type.value} stage",
            details={"errors": exc.errors(include_url=False)},
        ) from exc
    if stage.next_stage_id is not None:
        get_stage(db, stage.next_stage_id)

    db_stage = Stage(
        tournament_id=tournament_id,
        name=stage.name,
        order=stage.order,
        stage_type=stage_type.value,
        settings=stage.settings,
        next_stage_id=stage.next_stage_id,
        status=StageStatus.PENDING.value,
    )
    db.add(db_stage)
    db.commit()
    db.refresh(db_stage)
    logger.info("Created %s stage %s in tournament %s", db_stage.stage_type, db_stage.id, tournament_id)
    return db_stage


def create_group(db: Session, stage_id: int, group: stage_schemas.GroupCreate) -> Group:
    stage = get_stage(db, stage_id)
    _require_status(stage, [StageStatus.PENDING], StageNotEditable, "add groups")
    order = group.order
    if order is None:
        order = db.query(Group).filter(Group.stage_id == stage_id).count() + 1
    db_group = Group(stage_id=stage_id, name=group.name, order=order)
    db.add(db_group)
    db.commit()
    db.refresh(db_group)
    return db_group


def list_groups(db: Session, stage_id: int) -> List[GroupRead]:
    get_stage(db, stage_id)
    return _groups(db, stage_id)


def assign_teams(db: Session, stage_id: int, assignments: Sequence[stage_schemas.TeamAssignment]) -> List[StageTeamRead]:
    """
    Replace the stage roster. Teams without an explicit seed are seeded by
    their position in ``assignments``.
    """
    stage = get_stage(db, stage_id)
    _require_status(stage, [StageStatus.PENDING], StageNotEditable, "assign teams")

    team_ids = [a.team_id for a in assignments]
    duplicates = sorted({t for t in team_ids if team_ids.count(t) > 1})
    if duplicates:
        raise DuplicateTeam("A team can only be assigned to a stage once", details={"team_ids": duplicates})

    known = {row.id for row in db.query(Team.id).filter(Team.id.in_(team_ids)).all()} if team_ids else set()
    missing = [t for t in team_ids if t not in known]
    if missing:
        raise TeamNotFound("Unknown teams", details={"team_ids": missing})

    group_ids = {g.id for g in _groups(db, stage_id)}
    stray = [a.team_id for a in assignments if a.group_id is not None and a.group_id not in group_ids]
    if stray:
        raise InvalidGroupConfiguration("Group does not belong to this stage", details={"team_ids": stray})

    with atomic(db):
        db.query(StageTeam).filter(StageTeam.stage_id == stage_id).delete()
        db.flush()
        for index, assignment in enumerate(assignments):
            db.add(StageTeam(
                stage_id=stage_id,
                team_id=assignment.team_id,
                seed=assignment.seed if assignment.seed is not None else index + 1,
                group_id=assignment.group_id,
                meta={},
            ))
    logger.info("Assigned %d teams to stage %s", len(assignments), stage_id)
    return _stage_teams(db, stage_id)


def auto_assign_groups(db: Session, stage_id: int) -> List[GroupRead]:
    """
    Create groups for a group stage and spread its teams over them in snake
    order by seed (A, B, C, C, B, A, ...), so top seeds land in different groups.
    """
    stage = get_stage(db, stage_id)
    _require_status(stage, [StageStatus.PENDING], StageNotEditable, "distribute teams")
    if stage.stage_type != StageType.GROUP.value:
        raise InvalidGroupConfiguration("Only group stages can be split into groups")

    settings = stage_settings(stage)
    teams = fixture_generator.order_by_seed(_stage_teams(db, stage_id))
    if settings.groups_count:
        groups_count = settings.groups_count
    elif settings.teams_per_group:
        groups_count = -(-len(teams) // settings.teams_per_group)
    else:
        raise InvalidGroupConfiguration("Set groups_count or teams_per_group to distribute teams")

    if groups_count < 2 or len(teams) < groups_count * 2:
        raise InvalidGroupConfiguration(
            f"{len(teams)} teams cannot fill {groups_count} groups of at least 2",
            details={"teams": len(teams), "groups_count": groups_count},
        )

    with atomic(db):
        db.query(StageTeam).filter(StageTeam.stage_id == stage_id).update({StageTeam.group_id: None})
        db.query(Group).filter(Group.stage_id == stage_id).delete()
        groups = []
        for index in range(groups_count):
            group = Group(stage_id=stage_id, name=f"Group {string.ascii_uppercase[index % 26]}", order=index + 1)
            db.add(group)
            groups.append(group)
        db.flush()

        for position, team in enumerate(teams):
            lap, offset = divmod(position, groups_count)
            slot = offset if lap % 2 == 0 else groups_count - 1 - offset
            db.query(StageTeam).filter(
                StageTeam.stage_id == stage_id, StageTeam.team_id == team.team_id
            ).update({StageTeam.group_id: groups[slot].id})

    db.expire_all()
    logger.info("Distributed %d teams of stage %s into %d groups", len(teams), stage_id, groups_count)
    return _groups(db, stage_id)


def list_stage_teams(db: Session, stage_id: int) -> List[StageTeamRead]:
    get_stage(db, stage_id)
    return _stage_teams(db, stage_id)


# --- Lifecycle -------------------------------------------------------------

def _transition(db: Session, stage: Stage, target: StageStatus) -> Stage:
    current = StageStatus(stage.status)
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStageTransition(
            f"Stage {stage.id} cannot move from {current.value} to {target.value}",
            details={"from": current.value, "to": target.value},
        )
    stage.status = target.value
    logger.info("Stage %s: %s -> %s", stage.id, current.value, target.value)
    return stage


def start_stage(db: Session, stage_id: int) -> Stage:
    stage = get_stage(db, stage_id)
    if not db.query(StageTeam).filter(StageTeam.stage_id == stage_id).count():
        raise NoTeamsInStage(f"Stage {stage_id} has no teams to start with")
    with atomic(db):
        _transition(db, stage, StageStatus.ACTIVE)
        if stage.tournament.status == "pending":
            stage.tournament.status = "active"
    db.refresh(stage)
    return stage


def complete_stage(db: Session, stage_id: int) -> Stage:
    # Unfinished fixtures do not block completion
    stage = get_stage(db, stage_id)
    with atomic(db):
        _transition(db, stage, StageStatus.COMPLETED)
    db.refresh(stage)
    return stage


def cancel_stage(db: Session, stage_id: int) -> Stage:
    stage = get_stage(db, stage_id)
    with atomic(db):
        _transition(db, stage, StageStatus.CANCELLED)
        cancelled = db.query(Fixture).filter(
            Fixture.stage_id == stage_id, Fixture.status.in_(OPEN_FIXTURE_STATUSES)
        ).update({Fixture.status: FixtureStatus.CANCELLED.value})
    logger.info("Stage %s cancelled; %d open fixtures cancelled", stage_id, cancelled)
    db.refresh(stage)
    return stage


# --- Fixtures --------------------------------------------------------------

def _schedule_start(db: Session, stage: Stage, existing: Sequence[FixtureRead], start_at: Optional[datetime], settings) -> datetime:
    if start_at is not None:
        return start_at
    timed = [f for f in existing if f.starts_at is not None]
    if timed:
        last = max(timed, key=lambda f: f.starts_at)
        return last.starts_at + timedelta(minutes=(last.duration or settings.match_duration) + settings.match_interval)
    return stage.tournament.starts_at or datetime.utcnow()


def _draft_fixtures(
    db: Session,
    stage: Stage,
    settings,
    mode: GenerationMode,
    existing: Sequence[FixtureRead],
    start_at: Optional[datetime],
    auto_schedule: bool,
) -> List[fixture_schemas.FixtureDraft]:
    teams = _stage_teams(db, stage.id)
    if mode == GenerationMode.NEXT_ROUND:
        drafts = fixture_generator.generate_next_round(stage.stage_type, settings, teams, existing)
    else:
        drafts = fixture_generator.generate_fixtures(stage.stage_type, settings, teams, _groups(db, stage.id))

    if auto_schedule:
        base = existing if mode == GenerationMode.NEXT_ROUND else []
        start = _schedule_start(db, stage, base, start_at, settings)
        fixture_generator.schedule(drafts, start, settings.match_duration, settings.match_interval)
    else:
        for draft in drafts:
            draft.duration = settings.match_duration
    return drafts


def simulate_fixtures(
    db: Session,
    stage_id: int,
    start_at: Optional[datetime] = None,
    auto_schedule: bool = True,
) -> List[fixture_schemas.FixtureDraft]:
    """Preview the fixtures a fresh generation would create. Writes nothing."""
    stage = get_stage(db, stage_id)
    drafts = _draft_fixtures(db, stage, stage_settings(stage), GenerationMode.AUTO, [], start_at, auto_schedule)
    logger.debug("Stage %s: previewed %d fixtures", stage_id, len(drafts))
    return drafts


def generate_fixtures(
    db: Session,
    stage_id: int,
    mode: GenerationMode = GenerationMode.AUTO,
    start_at: Optional[datetime] = None,
    auto_schedule: bool = True,
) -> List[FixtureRead]:
    stage = get_stage(db, stage_id)
    settings = stage_settings(stage)
    mode = GenerationMode(mode)
    existing = _fixtures(db, stage_id)

    if mode == GenerationMode.NEXT_ROUND:
        _require_status(stage, [StageStatus.ACTIVE], StageNotActive, "generate the next round")
    else:
        _require_status(stage, [StageStatus.PENDING], StageNotEditable, "generate fixtures")
        if mode == GenerationMode.AUTO and existing:
            raise FixturesAlreadyGenerated(
                f"Stage {stage_id} already has {len(existing)} fixtures; use regenerate",
                details={"stage_id": stage_id},
            )

    drafts = _draft_fixtures(db, stage, settings, mode, existing, start_at, auto_schedule)

    created = []
    with atomic(db):
        if mode == GenerationMode.REGENERATE:
            db.query(Fixture).filter(Fixture.stage_id == stage_id).delete()
        for draft in drafts:
            fixture = Fixture(
                stage_id=stage_id,
                group_id=draft.group_id,
                first_team_id=draft.first_team_id,
                second_team_id=draft.second_team_id,
                starts_at=draft.starts_at,
                duration=draft.duration,
                status=FixtureStatus.UPCOMING.value,
                meta=draft.metadata.model_dump(),
            )
            db.add(fixture)
            created.append(fixture)

    logger.info("Stage %s: %s generation created %d fixtures", stage_id, mode.value, len(created))
    return [FixtureRead.model_validate(f) for f in created]


def create_fixture(db: Session, stage_id: int, fixture: fixture_schemas.FixtureCreate) -> FixtureRead:
    stage = get_stage(db, stage_id)
    _require_status(stage, [StageStatus.PENDING, StageStatus.ACTIVE], StageNotEditable, "create fixtures")
    settings = stage_settings(stage)

    roster = {t.team_id: t for t in _stage_teams(db, stage_id)}
    outsiders = [t for t in (fixture.first_team_id, fixture.second_team_id) if t not in roster]
    if outsiders:
        raise InvalidFixtureResult("Both teams must be assigned to the stage", details={"team_ids": outsiders})

    existing = _fixtures(db, stage_id)
    in_round = [f for f in existing if f.metadata.round == fixture.round]
    metadata = fixture_schemas.FixtureMetadata(
        round=fixture.round,
        round_label=fixture.round_label or f"Round {fixture.round}",
        match_order=max((f.metadata.match_order for f in in_round), default=0) + 1,
    )
    db_fixture = Fixture(
        stage_id=stage_id,
        group_id=fixture.group_id,
        first_team_id=fixture.first_team_id,
        second_team_id=fixture.second_team_id,
        starts_at=fixture.starts_at,
        duration=fixture.duration or settings.match_duration,
        status=FixtureStatus.UPCOMING.value,
        meta=metadata.model_dump(),
    )
    db.add(db_fixture)
    db.commit()
    db.refresh(db_fixture)
    return FixtureRead.model_validate(db_fixture)


def _derive_winner(db: Session, stage: Stage, fixture: Fixture, first_score: int, second_score: int) -> Optional[int]:
    metadata = fixture_schemas.FixtureMetadata.model_validate(fixture.meta or {})
    if stage.stage_type == StageType.KNOCKOUT.value and metadata.leg == 2:
        # Second leg decides the tie on aggregate
        for other in db.query(Fixture).filter(Fixture.stage_id == stage.id, Fixture.id != fixture.id).all():
            other_meta = fixture_schemas.FixtureMetadata.model_validate(other.meta or {})
            if (other_meta.round, other_meta.match_order, other_meta.leg) != (metadata.round, metadata.match_order, 1):
                continue
            if other.first_team_score is None or other.second_team_score is None:
                # No aggregate until the first leg has a score
                return None
            # Leg one was played with the sides reversed
            first_score += other.second_team_score
            second_score += other.first_team_score
            break

    if first_score > second_score:
        return fixture.first_team_id
    if second_score > first_score:
        return fixture.second_team_id
    return None


def submit_result(db: Session, fixture_id: int, result: fixture_schemas.FixtureResultSubmit) -> FixtureRead:
    fixture = get_fixture(db, fixture_id)
    stage = get_stage(db, fixture.stage_id)
    _require_status(stage, [StageStatus.ACTIVE], StageNotActive, "record results")
    if fixture.status == FixtureStatus.CANCELLED.value:
        raise InvalidFixtureResult(f"Fixture {fixture_id} was cancelled")
    if result.score_details is not None:
        try:
            fixture_schemas.ScoreDetails.model_validate(result.score_details)
        except PydanticValidationError as exc:
            raise InvalidFixtureResult(
                "Invalid score details",
                details={"errors": exc.errors(include_url=False)},
            ) from exc

    if result.winning_team_id is not None:
        if result.winning_team_id not in (fixture.first_team_id, fixture.second_team_id):
            raise InvalidFixtureResult(
                "The winner must be one of the fixture's teams",
                details={"winning_team_id": result.winning_team_id},
            )
        winner = result.winning_team_id
    else:
        winner = _derive_winner(db, stage, fixture, result.first_team_score, result.second_team_score)

    fixture.first_team_score = result.first_team_score
    fixture.second_team_score = result.second_team_score
    fixture.score_details = result.score_details
    fixture.winning_team_id = winner
    fixture.status = FixtureStatus.COMPLETED.value
    db.commit()
    db.refresh(fixture)
    logger.info(
        "Fixture %s: %s-%s, winner %s",
        fixture_id, result.first_team_score, result.second_team_score, winner,
    )
    return FixtureRead.model_validate(fixture)


def set_fixture_status(db: Session, fixture_id: int, status: FixtureStatus) -> FixtureRead:
    status = FixtureStatus(status)
    if status == FixtureStatus.COMPLETED:
        raise InvalidFixtureResult("Fixtures are completed by submitting a result")
    fixture = get_fixture(db, fixture_id)
    if fixture.status == FixtureStatus.COMPLETED.value:
        raise InvalidFixtureResult(f"Fixture {fixture_id} already has a result")
    fixture.status = status.value
    db.commit()
    db.refresh(fixture)
    return FixtureRead.model_validate(fixture)


def list_fixtures(db: Session, stage_id: int) -> List[FixtureRead]:
    get_stage(db, stage_id)
    return _fixtures(db, stage_id)


# --- Rankings --------------------------------------------------------------

def _rank(db: Session, stage: Stage, settings=None) -> List[RankingRow]:
    settings = settings or stage_settings(stage)
    return ranking_calculator.compute_rankings(
        _stage_teams(db, stage.id),
        _fixtures(db, stage.id),
        settings.scoring,
        settings.tie_breakers,
        settings.tiebreak_seed or str(stage.id),
    )


def compute_rankings(db: Session, stage_id: int) -> List[RankingRow]:
    """Recompute and replace the full ranking set of a stage."""
    stage = get_stage(db, stage_id)
    _require_status(stage, [StageStatus.ACTIVE, StageStatus.COMPLETED], StageNotActive, "compute rankings")
    rows = _rank(db, stage)

    with atomic(db):
        db.query(Ranking).filter(Ranking.stage_id == stage_id).delete()
        db.add_all([Ranking(stage_id=stage_id, **row.model_dump()) for row in rows])

    logger.info("Stage %s: rankings recomputed for %d teams", stage_id, len(rows))
    return rows


def list_rankings(db: Session, stage_id: int) -> List[RankingRow]:
    get_stage(db, stage_id)
    rows = db.query(Ranking).filter(Ranking.stage_id == stage_id).all()
    ordered = sorted(rows, key=lambda r: (r.group_id is not None, r.group_id or 0, r.rank, r.id))
    return [RankingRow.model_validate(row) for row in ordered]


# --- Promotion -------------------------------------------------------------

def configure_promotion(db: Session, stage_id: int, config: promotion_schemas.PromotionConfigure) -> StagePromotion:
    stage = get_stage(db, stage_id)
    next_stage = get_stage(db, config.next_stage_id)
    if next_stage.id == stage.id or next_stage.tournament_id != stage.tournament_id:
        raise InvalidSettings("The next stage must be another stage of the same tournament")
    try:
        decode_promotion_rule(config.rule_type.value, config.rule_config)
    except PydanticValidationError as exc:
        raise InvalidSettings(
            f"Invalid {config.rule_type.value} rule configuration",
            details={"errors": exc.errors(include_url=False)},
        ) from exc

    promotion = db.query(StagePromotion).filter(StagePromotion.stage_id == stage_id).first()
    if promotion is None:
        promotion = StagePromotion(stage_id=stage_id)
        db.add(promotion)
    promotion.next_stage_id = next_stage.id
    promotion.rule_type = config.rule_type.value
    promotion.rule_config = config.rule_config
    stage.next_stage_id = next_stage.id
    db.commit()
    db.refresh(promotion)
    return promotion


def _select(db: Session, stage: Stage):
    promotion = db.query(StagePromotion).filter(StagePromotion.stage_id == stage.id).first()
    next_stage_id = (promotion.next_stage_id if promotion else None) or stage.next_stage_id
    if promotion is None or next_stage_id is None:
        raise NoPromotionConfigured(f"Stage {stage.id} has no promotion rule and next stage")
    try:
        rule = decode_promotion_rule(promotion.rule_type, promotion.rule_config)
    except PydanticValidationError as exc:
        raise InvalidSettings(
            f"Stored promotion rule of stage {stage.id} is invalid",
            details={"errors": exc.errors(include_url=False)},
        ) from exc

    # Rankings are recomputed rather than read from the cache, so a preview
    # and an execution over the same results always agree.
    rankings = _rank(db, stage)
    grouped = {t.group_id for t in _stage_teams(db, stage.id) if t.group_id is not None}
    context = PromotionContext(
        stage_id=stage.id,
        next_stage_id=next_stage_id,
        group_ids=[g.id for g in _groups(db, stage.id) if g.id in grouped],
    )
    team_ids = select_promoted_teams(rule, rankings, _fixtures(db, stage.id), context)
    return rule, next_stage_id, team_ids


def _teams_in_order(db: Session, team_ids: Sequence[int]) -> List[Team]:
    by_id = {t.id: t for t in db.query(Team).filter(Team.id.in_(team_ids)).all()} if team_ids else {}
    return [by_id[team_id] for team_id in team_ids if team_id in by_id]


def simulate_promotion(db: Session, stage_id: int) -> PromotionPreview:
    """Preview who would be promoted. Writes nothing."""
    stage = get_stage(db, stage_id)
    _require_status(stage, [StageStatus.ACTIVE, StageStatus.COMPLETED], StageNotActive, "simulate promotion")
    rule, next_stage_id, team_ids = _select(db, stage)
    return PromotionPreview(
        stage_id=stage_id,
        next_stage_id=next_stage_id,
        rule_type=rule.rule_type,
        teams=[TeamRead.model_validate(t) for t in _teams_in_order(db, team_ids)],
    )


def execute_promotion(db: Session, stage_id: int, acting_user_id: Optional[int]) -> List[Team]:
    """
    Add the qualifying teams to the next stage and record one audit entry.

    Teams already on the next stage are left as they are. The audit entry is
    written even when nobody qualifies.
    """
    stage = get_stage(db, stage_id)
    _require_status(stage, [StageStatus.COMPLETED], StageNotCompleted, "execute promotion")
    rule, next_stage_id, team_ids = _select(db, stage)
    next_stage = get_stage(db, next_stage_id)
    _require_status(next_stage, [StageStatus.PENDING], StageNotEditable, "add promoted teams")

    with atomic(db):
        present = {
            row.team_id
            for row in db.query(StageTeam.team_id).filter(StageTeam.stage_id == next_stage_id).all()
        }
        next_seed = db.query(func.max(StageTeam.seed)).filter(StageTeam.stage_id == next_stage_id).scalar() or 0
        added = []
        for team_id in team_ids:
            if team_id in present:
                continue
            next_seed += 1
            db.add(StageTeam(stage_id=next_stage_id, team_id=team_id, seed=next_seed, meta={"promoted_from": stage_id}))
            added.append(team_id)
        db.add(PromotionAudit(
            stage_id=stage_id,
            triggered_by=acting_user_id,
            simulated=False,
            result={
                "next_stage_id": next_stage_id,
                "rule_type": rule.rule_type,
                "promoted_team_ids": team_ids,
                "added_team_ids": added,
            },
        ))

    logger.info(
        "Stage %s: promoted %d teams to stage %s (%d new), triggered by %s",
        stage_id, len(team_ids), next_stage_id, len(added), acting_user_id,
    )
    return _teams_in_order(db, team_ids)


def list_promotion_history(db: Session, stage_id: int) -> List[PromotionAudit]:
    get_stage(db, stage_id)
    return (
        db.query(PromotionAudit)
        .filter(PromotionAudit.stage_id == stage_id)
        .order_by(PromotionAudit.created_at.desc(), PromotionAudit.id.desc())
        .all()
    )
